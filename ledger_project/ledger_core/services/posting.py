import logging
from collections import defaultdict
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction

from ..exceptions import NotFoundError, storage_errors
from ..models import (BillReferenceType, EntryType, NumberingMethod, Voucher,
                      VoucherBillReference, VoucherCategory, VoucherEntry,
                      VoucherNumberingSeries, VoucherType)
from .audit_helper import log_action
from .bills import apply_bill_references, undo_bill_effects
from .ledgers import ledger_net_balance, resolve_ledger
from .numbering import reserve_number
from .validation import coerce_amount, coerce_date, validate_entries

logger = logging.getLogger(__name__)

REVERSING_TYPE_NAME = "Reversing Journal"


# ----------------------------
# Request normalisation
# ----------------------------
def _clean_text(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _prepare_bill_references(raw_refs, index):
    refs = []
    for ref in raw_refs or []:
        reference = _clean_text(ref.get("reference"))
        if not reference:
            raise ValidationError(f"Entry {index}: bill reference is required")

        amount = coerce_amount(ref.get("amount"), field=f"Entry {index} bill reference amount")
        if amount <= 0:
            raise ValidationError(f"Entry {index}: bill reference amount must be positive")

        reference_type = ref.get("reference_type") or BillReferenceType.AGAINST
        if reference_type not in BillReferenceType.values:
            raise ValidationError(f"Entry {index}: invalid bill reference type {reference_type!r}")

        due_date = ref.get("due_date")
        refs.append({
            "reference": reference,
            "amount": amount,
            "reference_type": reference_type,
            "due_date": coerce_date(due_date) if due_date else None,
            "remarks": _clean_text(ref.get("remarks")),
        })
    return refs


def _prepare_entries(raw_entries):
    """Validate a voucher's entries and return (normalised entries, total)."""
    total = validate_entries(raw_entries)

    entries = []
    for index, entry in enumerate(raw_entries, start=1):
        entries.append({
            "ledger_name": entry["ledger_name"].strip(),
            "ledger_code": _clean_text(entry.get("ledger_code")),
            "entry_type": entry["entry_type"],
            "amount": coerce_amount(entry["amount"]),
            "narration": _clean_text(entry.get("narration")),
            "cost_center_name": _clean_text(entry.get("cost_center_name")),
            "cost_category": _clean_text(entry.get("cost_category")),
            "bill_references": _prepare_bill_references(entry.get("bill_references"), index),
        })
    return entries, total


def check_credit_limits(company, entries):
    """
    Reject credits that would push a ledger's credit balance above its
    credit_limit. Credits to the same ledger within one voucher add up.
    """
    credits = defaultdict(lambda: Decimal("0.00"))
    for entry in entries:
        if entry["entry_type"] == EntryType.CREDIT:
            credits[entry["ledger_name"].lower()] += entry["amount"]

    for ledger_key, credit_amount in credits.items():
        ledger = resolve_ledger(company, ledger_key)
        # No limit configured (None or 0)
        if ledger is None or not ledger.credit_limit:
            continue

        net = ledger_net_balance(company, ledger)
        current_credit = -net if net < 0 else Decimal("0.00")
        new_credit = current_credit + credit_amount
        if new_credit > ledger.credit_limit:
            raise ValidationError(
                f"Credit limit of {ledger.credit_limit} for {ledger.name} will be exceeded. "
                f"Current balance: {current_credit}, new transaction: {credit_amount}, "
                f"result: {new_credit}"
            )


# ----------------------------
# Storage
# ----------------------------
def _load_numbering(company, voucher_type_id, series_id):
    if not voucher_type_id:
        raise ValidationError("voucher_type_id is required")
    try:
        vt = VoucherType.objects.get(pk=voucher_type_id, company=company)
    except (VoucherType.DoesNotExist, ValueError):
        raise NotFoundError(f"Voucher type {voucher_type_id} not found")

    series = None
    if series_id:
        try:
            series = VoucherNumberingSeries.objects.get(
                pk=series_id, company=company, voucher_type=vt
            )
        except (VoucherNumberingSeries.DoesNotExist, ValueError):
            raise NotFoundError(f"Numbering series {series_id} not found")
    return vt, series


def _assign_number(company, vt, series, manual_number):
    """Voucher number: the caller's manual one if permitted, else the next from the counter."""
    config = series or vt

    if manual_number:
        if not config.accepts_manual_numbers:
            raise ValidationError(
                f"Manual voucher numbers are not allowed for {vt.name}"
            )
        if not config.allow_duplicate_numbers:
            duplicate = Voucher.objects.filter(
                company=company,
                voucher_type=vt,
                numbering_series=series,
                voucher_number=manual_number,
            )
            if duplicate.exists():
                raise ValidationError(
                    f"Voucher number {manual_number} already exists for {vt.name}"
                )
        # counter is left untouched
        return manual_number

    if config.numbering_method == NumberingMethod.MANUAL:
        raise ValidationError(f"{vt.name} uses manual numbering; voucher_number is required")

    return reserve_number(company, vt.pk, series.pk if series else None)


def _insert_voucher(company, *, vt, series, voucher_number, voucher_date, reference,
                    narration, entries, total, created_by=None, reversal_of=None):
    voucher = Voucher.objects.create(
        company=company,
        voucher_type=vt,
        numbering_series=series,
        voucher_number=voucher_number,
        date=voucher_date,
        reference=reference,
        narration=narration,
        total_amount=total,
        created_by=created_by,
        reversal_of=reversal_of,
    )

    for entry in entries:
        voucher_entry = VoucherEntry.objects.create(
            company=company,
            voucher=voucher,
            ledger_name=entry["ledger_name"],
            ledger_code=entry["ledger_code"],
            entry_type=entry["entry_type"],
            amount=entry["amount"],
            narration=entry["narration"],
            cost_center_name=entry["cost_center_name"],
            cost_category=entry["cost_category"],
        )
        for ref in entry.get("bill_references", []):
            VoucherBillReference.objects.create(entry=voucher_entry, **ref)

    return voucher


# ----------------------------
# Voucher workflows
# ----------------------------
def create_voucher(company, data, *, track_bills=False, created_by=None):
    """
    Record one balanced voucher.

    `data` keys: voucher_type_id, numbering_series_id, voucher_number (manual),
    date, reference, narration and entries (ledger_name, entry_type, amount,
    optional ledger_code, narration, cost_center_name, cost_category,
    bill_references).

    Header, entries, bill references, the counter increment, optional bill
    tracking and the audit row commit together or not at all.
    """
    entries, total = _prepare_entries(data.get("entries"))
    voucher_date = coerce_date(data.get("date"))
    created_by = created_by or data.get("created_by")

    if getattr(settings, "LEDGER_ENFORCE_CREDIT_LIMITS", True):
        check_credit_limits(company, entries)

    with storage_errors("create voucher"), transaction.atomic():
        vt, series = _load_numbering(
            company, data.get("voucher_type_id"), data.get("numbering_series_id")
        )
        voucher_number = _assign_number(
            company, vt, series, _clean_text(data.get("voucher_number"))
        )
        voucher = _insert_voucher(
            company,
            vt=vt,
            series=series,
            voucher_number=voucher_number,
            voucher_date=voucher_date,
            reference=_clean_text(data.get("reference")),
            narration=_clean_text(data.get("narration")),
            entries=entries,
            total=total,
            created_by=created_by,
        )

        if track_bills:
            apply_bill_references(company, voucher, user=created_by)

        log_action(
            action="create",
            instance=voucher,
            user=created_by,
            changes={
                "voucher_number": voucher.voucher_number,
                "voucher_type": vt.name,
                "date": voucher_date.isoformat(),
                "total_amount": str(total),
                "entries": [
                    {
                        "ledger_name": e["ledger_name"],
                        "entry_type": e["entry_type"],
                        "amount": str(e["amount"]),
                    }
                    for e in entries
                ],
            },
        )

    logger.info(
        "Created voucher %s", voucher.voucher_number,
        extra={"company": company.slug, "voucher_id": voucher.pk, "total": str(total)},
    )
    return voucher


def list_vouchers(company, filters=None):
    """
    Newest-first vouchers with their entries.
    filters: voucher_type_id, from_date, to_date, limit (capped), offset.
    """
    filters = filters or {}
    qs = Voucher.objects.for_company(company)

    if filters.get("voucher_type_id"):
        qs = qs.filter(voucher_type_id=filters["voucher_type_id"])

    # A bad date narrows nothing rather than failing the listing
    for key, lookup in (("from_date", "date__gte"), ("to_date", "date__lte")):
        raw = filters.get(key)
        if not raw:
            continue
        try:
            qs = qs.filter(**{lookup: coerce_date(raw)})
        except ValidationError:
            logger.warning("Ignoring unparsable %s filter %r", key, raw)

    default_limit = getattr(settings, "LEDGER_VOUCHER_LIST_DEFAULT_LIMIT", 50)
    max_limit = getattr(settings, "LEDGER_VOUCHER_LIST_MAX_LIMIT", 200)
    try:
        limit = int(filters.get("limit") or default_limit)
    except (TypeError, ValueError):
        limit = default_limit
    limit = max(1, min(limit, max_limit))
    try:
        offset = max(0, int(filters.get("offset") or 0))
    except (TypeError, ValueError):
        offset = 0

    qs = (
        qs.select_related("voucher_type", "numbering_series")
        .prefetch_related("entries__bill_references")
        .order_by("-date", "-created_at", "-id")
    )
    return list(qs[offset:offset + limit])


def _reversing_voucher_type(company):
    vt = (
        VoucherType.objects.for_company(company)
        .filter(category=VoucherCategory.REVERSING_JOURNAL)
        .order_by("id")
        .first()
    )
    if vt:
        return vt
    vt, _ = VoucherType.objects.get_or_create(
        company=company,
        name=REVERSING_TYPE_NAME,
        defaults={
            "abbreviation": "RJV",
            "category": VoucherCategory.REVERSING_JOURNAL,
            "prefix": "RJV/",
        },
    )
    return vt


def create_reversing_journal(company, voucher_id, reversal_date=None, narration=None,
                             created_by=None):
    """
    Post the mirror image of a voucher (every DEBIT becomes CREDIT and
    vice versa) under the tenant's Reversing Journal type.
    A voucher is reversed at most once; reversals are final.
    Bill settlements the voucher made are undone and bills it opened are
    cancelled in the same transaction.
    """
    reversal_day = coerce_date(reversal_date)

    with storage_errors("reverse voucher"), transaction.atomic():
        try:
            # Lock the original so two reversals cannot race
            original = (
                Voucher.objects.select_for_update()
                .get(pk=voucher_id, company=company)
            )
        except (Voucher.DoesNotExist, ValueError):
            raise NotFoundError(f"Voucher {voucher_id} not found")

        if original.reversal_of_id:
            raise ValidationError(
                f"{original.voucher_number} is itself a reversal and cannot be reversed"
            )
        if Voucher.objects.filter(reversal_of=original).exists():
            raise ValidationError(f"{original.voucher_number} has already been reversed")

        entries = [
            {
                "ledger_name": e.ledger_name,
                "ledger_code": e.ledger_code,
                "entry_type": EntryType(e.entry_type).opposite,
                "amount": e.amount,
                "narration": e.narration,
                "cost_center_name": e.cost_center_name,
                "cost_category": e.cost_category,
            }
            for e in original.entries.order_by("id")
        ]

        vt = _reversing_voucher_type(company)
        reversal = _insert_voucher(
            company,
            vt=vt,
            series=None,
            voucher_number=reserve_number(company, vt.pk),
            voucher_date=reversal_day,
            reference=original.voucher_number,
            narration=_clean_text(narration) or f"Reversal of {original.voucher_number}",
            entries=entries,
            total=original.total_amount,
            created_by=created_by,
            reversal_of=original,
        )
        bill_effects = undo_bill_effects(company, original, user=created_by)

        log_action(
            action="reverse",
            instance=reversal,
            user=created_by,
            changes={
                "reversal_of": original.voucher_number,
                "voucher_number": reversal.voucher_number,
                "date": reversal_day.isoformat(),
                "total_amount": str(original.total_amount),
                "bills_reopened": [b.bill_number for b in bill_effects["reopened"]],
                "bills_cancelled": [b.bill_number for b in bill_effects["cancelled"]],
            },
        )

    logger.info(
        "Reversed voucher %s with %s", original.voucher_number, reversal.voucher_number,
        extra={"company": company.slug},
    )
    return reversal
