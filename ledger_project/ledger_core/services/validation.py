import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.core.exceptions import ValidationError
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from ..exceptions import UnbalancedVoucherError
from ..models import EntryType

CENT = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    """Round to cents the way every amount comparison in the engine does."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def coerce_amount(value, field="amount") -> Decimal:
    """Decimal/str/int/float -> Decimal rounded to 2 places."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        # str() first so floats keep their printed value (0.1 not 0.1000000000000000055)
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return round_money(amount)


def coerce_date(value) -> datetime.date:
    """ISO string, date, datetime or None (today) -> date."""
    if value is None or value == "":
        return timezone.localdate()
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            parsed = parse_date(text)
            if parsed is None:
                # "2024-04-01T10:00:00Z" style timestamps
                stamp = parse_datetime(text)
                parsed = stamp.date() if stamp else None
        except ValueError:
            # well formed but impossible, e.g. 2024-02-30
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"Invalid date: {value!r}")


# ------------------------------------
# Voucher structure validation
# ------------------------------------
def validate_entries(entries) -> Decimal:
    """
    Check a proposed voucher's entries before anything is written.
    - at least two entries
    - every entry names a ledger, is DEBIT or CREDIT and has a positive amount
    - debits == credits after rounding to cents
    Returns the voucher total (either side).
    """
    entries = list(entries or [])
    if len(entries) < 2:
        raise ValidationError("A voucher needs at least two entries")

    total_debit = Decimal("0.00")
    total_credit = Decimal("0.00")

    for index, entry in enumerate(entries, start=1):
        ledger_name = (entry.get("ledger_name") or "").strip()
        if not ledger_name:
            raise ValidationError(f"Entry {index}: ledger name is required")

        entry_type = entry.get("entry_type")
        if entry_type not in EntryType.values:
            raise ValidationError(
                f"Entry {index}: entry type must be DEBIT or CREDIT, got {entry_type!r}"
            )

        amount = coerce_amount(entry.get("amount"), field=f"Entry {index} amount")
        if amount <= 0:
            raise ValidationError(f"Entry {index}: amount must be positive")

        if entry_type == EntryType.DEBIT:
            total_debit += amount
        else:
            total_credit += amount

    total_debit = round_money(total_debit)
    total_credit = round_money(total_credit)
    if total_debit != total_credit:
        raise UnbalancedVoucherError(
            f"Voucher is not balanced: debits {total_debit} != credits {total_credit}"
        )

    return total_debit
