import logging
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction

from ..exceptions import storage_errors
from ..models import (EntryType, Ledger, LedgerCategory, LedgerGroup,
                      LedgerNature, Voucher, VoucherCategory, VoucherType,
                      categories_of)
from .audit_helper import log_action
from .ledgers import (get_or_create_system_ledger, ledger_net_balance,
                      ledgers_in_categories, split_balance)
from .posting import create_voucher
from .validation import coerce_amount, coerce_date, round_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

CAPITAL_LEDGER_NAME = "Capital Account"
DEPRECIATION_LEDGER_NAME = "Depreciation Expense"


def _journal_type(company, name, abbreviation):
    """System JOURNAL voucher type (Closing Entry, Depreciation Entry), created on first use."""
    vt, created = VoucherType.objects.get_or_create(
        company=company,
        name=name,
        defaults={
            "abbreviation": abbreviation,
            "category": VoucherCategory.JOURNAL,
            "prefix": f"{abbreviation}/",
        },
    )
    if created:
        logger.info("Created voucher type %s", name, extra={"company": company.slug})
    return vt


def _capital_ledger(company):
    existing = ledgers_in_categories(company, [LedgerCategory.CAPITAL]).first()
    if existing:
        return existing
    return get_or_create_system_ledger(
        company,
        name=CAPITAL_LEDGER_NAME,
        group_name="Capital Account",
        category=LedgerCategory.CAPITAL,
    )


# ----------------------------
# Closing entries
# ----------------------------
def generate_closing_entries(company, as_of_date, narration=None, created_by=None):
    """
    Zero every income and expense ledger as of `as_of_date` and move the
    net result to capital.

    Each ledger with a balance gets an entry for the full balance on the
    opposite side; the capital entry takes the difference
    (CREDIT for a profit, DEBIT for a loss).
    """
    as_of = coerce_date(as_of_date)
    label = narration or "Year end"

    with storage_errors("generate closing entries"), transaction.atomic():
        entries = []
        net_total = ZERO  # debit positive: < 0 is a profit

        pnl_ledgers = ledgers_in_categories(
            company,
            categories_of(LedgerNature.INCOME, LedgerNature.EXPENSE),
            active_only=False,
        )
        for ledger in pnl_ledgers:
            net = ledger_net_balance(company, ledger, as_of)
            if net == 0:
                continue
            amount, balance_type = split_balance(net)
            entries.append({
                "ledger_name": ledger.name,
                "ledger_code": ledger.code,
                "entry_type": EntryType(balance_type).opposite,
                "amount": amount,
                "narration": f"Closing entry - {label}",
            })
            net_total += net

        if not entries:
            raise ValidationError(f"No closing entries to generate as of {as_of}")

        net_profit = -net_total
        if net_profit != 0:
            capital = _capital_ledger(company)
            entries.append({
                "ledger_name": capital.name,
                "ledger_code": capital.code,
                "entry_type": EntryType.CREDIT if net_profit > 0 else EntryType.DEBIT,
                "amount": abs(net_profit),
                "narration": (
                    f"Net {'Profit' if net_profit > 0 else 'Loss'} transferred - {label}"
                ),
            })

        vt = _journal_type(company, "Closing Entry", "CLS")
        voucher = create_voucher(
            company,
            {
                "voucher_type_id": vt.pk,
                "date": as_of,
                "reference": f"CLOSE-{as_of.isoformat()}",
                "narration": f"Closing entries - {label}",
                "entries": entries,
            },
            created_by=created_by,
        )

        log_action(
            action="close",
            instance=voucher,
            user=created_by,
            changes={"as_of_date": as_of.isoformat(), "net_profit": str(net_profit)},
        )

    logger.info(
        "Closed %d ledgers as of %s, net profit %s", len(entries), as_of, net_profit,
        extra={"company": company.slug, "voucher_id": voucher.pk},
    )
    return voucher


# ----------------------------
# Depreciation
# ----------------------------
def run_depreciation(company, as_of_date, rate=None, asset_categories=None,
                     narration=None, created_by=None):
    """
    Flat-rate depreciation on the book value of every asset ledger.

    Asset ledgers are those whose group category is in `asset_categories`
    (default: LEDGER_DEPRECIATION_ASSET_CATEGORIES). Each asset with a
    positive balance gets DEBIT Depreciation Expense / CREDIT asset, all in
    one "Depreciation Entry" voucher.
    """
    as_of = coerce_date(as_of_date)
    label = narration or "Annual depreciation"

    if rate is None:
        rate = getattr(settings, "LEDGER_DEPRECIATION_DEFAULT_RATE", "10")
    rate = coerce_amount(rate, field="rate")
    if rate <= 0 or rate > 100:
        raise ValidationError("Depreciation rate must be greater than 0 and at most 100")

    categories = list(
        asset_categories
        or getattr(settings, "LEDGER_DEPRECIATION_ASSET_CATEGORIES", [LedgerCategory.FIXED_ASSET])
    )
    for category in categories:
        if category not in LedgerCategory.values:
            raise ValidationError(f"Unknown ledger category: {category!r}")

    with storage_errors("run depreciation"), transaction.atomic():
        if not LedgerGroup.objects.for_company(company).filter(category__in=categories).exists():
            raise ValidationError("No asset groups found for depreciation")

        entries = []
        total = ZERO
        for ledger in ledgers_in_categories(company, categories):
            book_value = ledger_net_balance(company, ledger, as_of)
            if book_value <= 0:
                continue
            amount = round_money(book_value * rate / 100)
            if amount <= 0:
                continue
            entries += [
                {
                    "ledger_name": DEPRECIATION_LEDGER_NAME,
                    "entry_type": EntryType.DEBIT,
                    "amount": amount,
                    "narration": f"Depreciation on {ledger.name} - {label}",
                },
                {
                    "ledger_name": ledger.name,
                    "ledger_code": ledger.code,
                    "entry_type": EntryType.CREDIT,
                    "amount": amount,
                    "narration": f"Depreciation on {ledger.name} - {label}",
                },
            ]
            total += amount

        if not entries:
            raise ValidationError(f"No depreciation entries to generate as of {as_of}")

        get_or_create_system_ledger(
            company,
            name=DEPRECIATION_LEDGER_NAME,
            group_name="Indirect Expenses",
            category=LedgerCategory.INDIRECT_EXPENSE,
        )
        vt = _journal_type(company, "Depreciation Entry", "DEP")
        voucher = create_voucher(
            company,
            {
                "voucher_type_id": vt.pk,
                "date": as_of,
                "reference": f"DEP-{as_of.isoformat()}",
                "narration": f"Depreciation run as on {as_of.isoformat()} at {rate}%",
                "entries": entries,
            },
            created_by=created_by,
        )

        log_action(
            action="depreciate",
            instance=voucher,
            user=created_by,
            changes={
                "as_of_date": as_of.isoformat(),
                "rate": str(rate),
                "categories": categories,
                "total": str(total),
            },
        )

    logger.info(
        "Depreciation of %s at %s%% posted as %s", total, rate, voucher.voucher_number,
        extra={"company": company.slug},
    )
    return voucher


# ----------------------------
# Opening balance carry-forward
# ----------------------------
def carry_forward_balances(company, year_end, year_start, user=None):
    """
    Make every ledger's closing balance at `year_end` its opening balance
    effective from `year_start`.

    Vouchers dated before `year_start` stop counting toward balances from
    then on, so no voucher may sit between the two dates.
    """
    year_end = coerce_date(year_end)
    year_start = coerce_date(year_start)
    if year_start <= year_end:
        raise ValidationError("Year start must be after the year end")

    with storage_errors("carry forward balances"), transaction.atomic():
        gap = Voucher.objects.for_company(company).filter(
            date__gt=year_end, date__lt=year_start
        )
        if gap.exists():
            raise ValidationError(
                f"Vouchers exist between {year_end} and {year_start}; "
                "they would drop out of every balance"
            )

        # Lock every ledger of the tenant until the new openings are written
        ledgers = list(
            Ledger.objects.select_for_update().filter(company=company).order_by("id")
        )
        if not ledgers:
            raise ValidationError("No ledgers to carry forward")

        carried = []
        for ledger in ledgers:
            if ledger.opening_balance_date and year_end < ledger.opening_balance_date:
                raise ValidationError(
                    f"{ledger.name} already opens on {ledger.opening_balance_date}, "
                    f"after the year end {year_end}"
                )
            amount, balance_type = split_balance(
                ledger_net_balance(company, ledger, year_end)
            )
            ledger.opening_balance = amount
            ledger.opening_balance_type = balance_type
            ledger.opening_balance_date = year_start
            ledger.save(update_fields=[
                "opening_balance", "opening_balance_type", "opening_balance_date"
            ])
            carried.append({
                "ledger_name": ledger.name,
                "opening_balance": amount,
                "opening_balance_type": balance_type,
            })

        log_action(
            action="carry_forward",
            instance=company,
            company=company,
            user=user,
            changes={
                "year_end": year_end.isoformat(),
                "year_start": year_start.isoformat(),
                "ledgers": len(carried),
            },
        )

    logger.info(
        "Carried forward %d ledger balances from %s to %s", len(carried), year_end, year_start,
        extra={"company": company.slug},
    )
    return {
        "year_end": year_end,
        "year_start": year_start,
        "count": len(carried),
        "ledgers": carried,
    }
