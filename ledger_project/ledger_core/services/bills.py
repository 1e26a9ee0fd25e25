import datetime
import logging
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone

from ..exceptions import NotFoundError, storage_errors
from ..models import (Bill, BillReferenceType, BillSettlement, BillStatus,
                      BillType, EntryType, Voucher, VoucherEntry)
from .audit_helper import log_action
from .validation import coerce_amount, coerce_date, round_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# (key, lower bound, upper bound) on days overdue, inclusive
AGING_BUCKETS = [
    ("current", None, 0),
    ("1_30", 1, 30),
    ("31_60", 31, 60),
    ("61_90", 61, 90),
    ("over_90", 91, None),
]

URGENT_WITHIN_DAYS = 3


def _bill_row(bill, **extra):
    row = {
        "id": bill.pk,
        "bill_number": bill.bill_number,
        "bill_type": bill.bill_type,
        "ledger_name": bill.ledger_name,
        "bill_date": bill.bill_date,
        "due_date": bill.due_date,
        "original_amount": bill.original_amount,
        "settled_amount": bill.settled_amount,
        "outstanding_amount": bill.outstanding_amount,
        "status": bill.status,
    }
    row.update(extra)
    return row


def _days_overdue(bill, as_on):
    # negative while the bill is not yet due
    return (as_on - bill.effective_due_date).days


def _lock_bill(company, bill_id):
    try:
        return Bill.objects.select_for_update().get(pk=bill_id, company=company)
    except (Bill.DoesNotExist, ValueError):
        raise NotFoundError(f"Bill {bill_id} not found")


# ----------------------------
# Bill lifecycle
# ----------------------------
def _insert_bill(company, *, bill_type, bill_number, ledger_name, amount, bill_date,
                 due_date=None, ledger_code=None, reference=None, narration=None,
                 voucher=None, voucher_entry=None, user=None):
    if Bill.objects.for_company(company).filter(bill_number=bill_number).exists():
        raise ValidationError(f"Bill number {bill_number} already exists")

    bill = Bill.objects.create(
        company=company,
        bill_type=bill_type,
        bill_number=bill_number,
        ledger_name=ledger_name,
        ledger_code=ledger_code,
        bill_date=bill_date,
        due_date=due_date,
        original_amount=amount,
        settled_amount=ZERO,
        outstanding_amount=amount,
        status=BillStatus.OPEN,
        reference=reference,
        narration=narration,
        voucher=voucher,
        voucher_entry=voucher_entry,
    )
    log_action(
        action="create",
        instance=bill,
        user=user,
        changes={
            "bill_number": bill_number,
            "bill_type": bill_type,
            "ledger_name": ledger_name,
            "amount": str(amount),
        },
    )
    return bill


def create_bill(company, data, user=None):
    """
    Open a receivable/payable bill.
    `data`: bill_type, bill_number, ledger_name, amount, bill_date, optional
    due_date, ledger_code, reference, narration, voucher_id, voucher_entry_id.
    """
    bill_type = data.get("bill_type")
    if bill_type not in BillType.values:
        raise ValidationError(f"Invalid bill type: {bill_type!r}")

    bill_number = (data.get("bill_number") or "").strip()
    if not bill_number:
        raise ValidationError("Bill number is required")
    ledger_name = (data.get("ledger_name") or "").strip()
    if not ledger_name:
        raise ValidationError("Ledger name is required")

    amount = coerce_amount(data.get("amount"))
    if amount <= 0:
        raise ValidationError("Bill amount must be positive")

    bill_date = coerce_date(data.get("bill_date"))
    due_date = coerce_date(data["due_date"]) if data.get("due_date") else None

    with storage_errors("create bill"), transaction.atomic():
        voucher = voucher_entry = None
        if data.get("voucher_id"):
            try:
                voucher = Voucher.objects.get(pk=data["voucher_id"], company=company)
            except (Voucher.DoesNotExist, ValueError):
                raise NotFoundError(f"Voucher {data['voucher_id']} not found")
        if data.get("voucher_entry_id"):
            entries = VoucherEntry.objects.filter(company=company)
            if voucher:
                entries = entries.filter(voucher=voucher)
            try:
                voucher_entry = entries.get(pk=data["voucher_entry_id"])
            except (VoucherEntry.DoesNotExist, ValueError):
                raise NotFoundError(f"Voucher entry {data['voucher_entry_id']} not found")
            voucher = voucher or voucher_entry.voucher

        bill = _insert_bill(
            company,
            bill_type=bill_type,
            bill_number=bill_number,
            ledger_name=ledger_name,
            ledger_code=data.get("ledger_code"),
            amount=amount,
            bill_date=bill_date,
            due_date=due_date,
            reference=data.get("reference"),
            narration=data.get("narration"),
            voucher=voucher,
            voucher_entry=voucher_entry,
            user=user,
        )

    logger.info(
        "Created %s bill %s for %s", bill_type, bill_number, amount,
        extra={"company": company.slug},
    )
    return bill


def _apply_settlement(company, bill, *, voucher, entry, amount, settlement_date,
                      reference=None, remarks=None, user=None):
    """Settle a bill already locked by the caller's select_for_update."""
    if bill.status == BillStatus.CANCELLED:
        raise ValidationError(f"Bill {bill.bill_number} is cancelled")
    if bill.status == BillStatus.SETTLED:
        raise ValidationError(f"Bill {bill.bill_number} is already settled")

    # The settling posting must name this bill in an AGAINST reference
    referenced = entry.bill_references.filter(
        reference_type=BillReferenceType.AGAINST,
        reference=bill.bill_number,
    ).aggregate(total=models.Sum("amount"))["total"]
    if referenced is None:
        raise ValidationError(
            f"Voucher entry {entry.pk} has no AGAINST reference to bill {bill.bill_number}"
        )
    already = BillSettlement.objects.filter(
        bill=bill, voucher_entry=entry
    ).aggregate(total=models.Sum("settlement_amount"))["total"] or ZERO
    if round_money(already + amount) > round_money(referenced):
        raise ValidationError(
            f"Settlement exceeds the {referenced} referenced against {bill.bill_number}"
        )

    outstanding = round_money(bill.outstanding_amount)
    if amount > outstanding:
        raise ValidationError(
            f"Settlement {amount} exceeds outstanding {outstanding} on {bill.bill_number}"
        )

    bill.settled_amount = round_money(bill.settled_amount + amount)
    bill.outstanding_amount = round_money(outstanding - amount)
    bill.status = BillStatus.SETTLED if bill.outstanding_amount == 0 else BillStatus.PARTIAL
    bill.save(update_fields=["settled_amount", "outstanding_amount", "status", "updated_at"])

    settlement = BillSettlement.objects.create(
        company=company,
        bill=bill,
        voucher=voucher,
        voucher_entry=entry,
        settlement_amount=amount,
        settlement_date=settlement_date,
        reference=reference,
        remarks=remarks,
    )
    log_action(
        action="settle",
        instance=bill,
        user=user,
        changes={
            "voucher_number": voucher.voucher_number,
            "amount": str(amount),
            "outstanding_amount": str(bill.outstanding_amount),
            "status": bill.status,
        },
    )
    return settlement


def settle_bill(company, bill_id, settlement, user=None):
    """
    Apply a settling posting to a bill.
    `settlement`: voucher_id, voucher_entry_id, amount, optional
    settlement_date (defaults to the voucher date), reference, remarks.
    """
    amount = coerce_amount(settlement.get("amount"))
    if amount <= 0:
        raise ValidationError("Settlement amount must be positive")

    with storage_errors("settle bill"), transaction.atomic():
        # Lock the bill row so concurrent settlements serialize on it
        bill = _lock_bill(company, bill_id)

        try:
            voucher = Voucher.objects.get(pk=settlement.get("voucher_id"), company=company)
        except (Voucher.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"Voucher {settlement.get('voucher_id')} not found")
        try:
            entry = voucher.entries.get(pk=settlement.get("voucher_entry_id"))
        except (VoucherEntry.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(
                f"Voucher entry {settlement.get('voucher_entry_id')} not found"
            )

        raw_date = settlement.get("settlement_date")
        _apply_settlement(
            company,
            bill,
            voucher=voucher,
            entry=entry,
            amount=amount,
            settlement_date=coerce_date(raw_date) if raw_date else voucher.date,
            reference=settlement.get("reference"),
            remarks=settlement.get("remarks"),
            user=user,
        )

    logger.info(
        "Settled %s against bill %s, outstanding %s", amount, bill.bill_number,
        bill.outstanding_amount, extra={"company": company.slug},
    )
    return bill


def cancel_bill(company, bill_id, reason=None, user=None):
    """Cancel a bill nobody has paid against yet."""
    with storage_errors("cancel bill"), transaction.atomic():
        bill = _lock_bill(company, bill_id)

        if bill.status == BillStatus.CANCELLED:
            raise ValidationError(f"Bill {bill.bill_number} is already cancelled")
        if bill.settlements.exists() or bill.settled_amount > 0:
            raise ValidationError(
                f"Bill {bill.bill_number} has settlements and cannot be cancelled"
            )

        previous = bill.outstanding_amount
        bill.status = BillStatus.CANCELLED
        bill.outstanding_amount = ZERO
        bill.save(update_fields=["status", "outstanding_amount", "updated_at"])

        log_action(
            action="cancel",
            instance=bill,
            user=user,
            changes={"reason": reason, "outstanding_amount": str(previous)},
        )

    logger.info("Cancelled bill %s", bill.bill_number, extra={"company": company.slug})
    return bill


def apply_bill_references(company, voucher, user=None):
    """
    Derive bills from a stored voucher's bill references, inside the
    voucher's transaction:
    - NEW opens a bill (RECEIVABLE for a DEBIT entry, PAYABLE for a CREDIT entry)
    - AGAINST settles the referenced bill
    ADVANCE and ON_ACCOUNT references are kept on the entry only.
    """
    created, settled = [], []
    entries = voucher.entries.prefetch_related("bill_references").order_by("id")

    for entry in entries:
        for ref in entry.bill_references.all():
            if ref.reference_type == BillReferenceType.NEW:
                bill_type = (
                    BillType.RECEIVABLE
                    if entry.entry_type == EntryType.DEBIT
                    else BillType.PAYABLE
                )
                created.append(_insert_bill(
                    company,
                    bill_type=bill_type,
                    bill_number=ref.reference,
                    ledger_name=entry.ledger_name,
                    ledger_code=entry.ledger_code,
                    amount=ref.amount,
                    bill_date=voucher.date,
                    due_date=ref.due_date,
                    reference=voucher.voucher_number,
                    narration=ref.remarks or voucher.narration,
                    voucher=voucher,
                    voucher_entry=entry,
                    user=user,
                ))
            elif ref.reference_type == BillReferenceType.AGAINST:
                try:
                    bill = Bill.objects.select_for_update().get(
                        company=company, bill_number=ref.reference
                    )
                except Bill.DoesNotExist:
                    raise NotFoundError(f"Bill {ref.reference} not found")
                settled.append(_apply_settlement(
                    company,
                    bill,
                    voucher=voucher,
                    entry=entry,
                    amount=ref.amount,
                    settlement_date=voucher.date,
                    reference=voucher.voucher_number,
                    remarks=ref.remarks,
                    user=user,
                ))

    return {"created": created, "settled": settled}


def undo_bill_effects(company, voucher, user=None):
    """
    Roll back the bill state a voucher caused, inside the caller's
    transaction (used when the voucher is reversed):
    - its settlements are removed and the bills' outstanding restored
    - bills it opened are cancelled; one that other postings already
      settled blocks the reversal
    Returns {"reopened", "cancelled"}.
    """
    settlements = list(
        BillSettlement.objects.filter(company=company, voucher=voucher).order_by("id")
    )
    opened_ids = list(
        Bill.objects.filter(company=company, voucher=voucher)
        .exclude(status=BillStatus.CANCELLED)
        .values_list("pk", flat=True)
    )
    bill_ids = sorted({s.bill_id for s in settlements} | set(opened_ids))
    # Lock in id order so concurrent reversals/settlements cannot deadlock
    bills = {
        bill.pk: bill
        for bill in Bill.objects.select_for_update().filter(pk__in=bill_ids).order_by("id")
    }

    reopened = []
    for settlement in settlements:
        bill = bills[settlement.bill_id]
        amount = settlement.settlement_amount
        settlement.delete()

        bill.settled_amount = round_money(bill.settled_amount - amount)
        bill.outstanding_amount = round_money(bill.outstanding_amount + amount)
        bill.status = BillStatus.PARTIAL if bill.settled_amount > 0 else BillStatus.OPEN
        bill.save(update_fields=["settled_amount", "outstanding_amount", "status", "updated_at"])
        log_action(
            action="unsettle",
            instance=bill,
            user=user,
            changes={
                "voucher_number": voucher.voucher_number,
                "amount": str(amount),
                "outstanding_amount": str(bill.outstanding_amount),
                "status": bill.status,
            },
        )
        reopened.append(bill)

    cancelled = []
    for bill_id in opened_ids:
        bill = bills[bill_id]
        if bill.settlements.exists():
            raise ValidationError(
                f"Bill {bill.bill_number} opened by {voucher.voucher_number} has "
                "settlements from other vouchers; reverse those first"
            )
        previous = bill.outstanding_amount
        bill.status = BillStatus.CANCELLED
        bill.outstanding_amount = ZERO
        bill.save(update_fields=["status", "outstanding_amount", "updated_at"])
        log_action(
            action="cancel",
            instance=bill,
            user=user,
            changes={
                "reason": f"Voucher {voucher.voucher_number} reversed",
                "outstanding_amount": str(previous),
            },
        )
        cancelled.append(bill)

    return {"reopened": reopened, "cancelled": cancelled}


# ----------------------------
# Listing & reports
# ----------------------------
def list_bills(company, filters=None):
    """
    filters: bill_type, status, ledger_name, from_date/to_date (bill date),
    due_from/due_to (due date), limit (capped), offset.
    Returns {"bills", "total", "limit", "offset"}.
    """
    filters = filters or {}
    qs = Bill.objects.for_company(company)

    if filters.get("bill_type"):
        qs = qs.filter(bill_type=filters["bill_type"])
    if filters.get("status"):
        qs = qs.filter(status=filters["status"])
    if filters.get("ledger_name"):
        qs = qs.filter(ledger_name__iexact=filters["ledger_name"].strip())

    for key, lookup in (
        ("from_date", "bill_date__gte"),
        ("to_date", "bill_date__lte"),
        ("due_from", "due_date__gte"),
        ("due_to", "due_date__lte"),
    ):
        if filters.get(key):
            qs = qs.filter(**{lookup: coerce_date(filters[key])})

    max_limit = getattr(settings, "LEDGER_BILL_LIST_MAX_LIMIT", 200)
    try:
        limit = int(filters.get("limit") or 50)
        offset = int(filters.get("offset") or 0)
    except (TypeError, ValueError):
        raise ValidationError("limit and offset must be integers")
    limit = max(1, min(limit, max_limit))
    offset = max(0, offset)

    total = qs.count()
    bills = list(qs.order_by("-bill_date", "-id")[offset:offset + limit])
    return {"bills": bills, "total": total, "limit": limit, "offset": offset}


def get_aging_report(company, bill_type=None, as_on_date=None):
    """Outstanding bills bucketed by days past (due_date or bill_date)."""
    as_on = coerce_date(as_on_date)
    buckets = {key: {"count": 0, "amount": ZERO} for key, _, _ in AGING_BUCKETS}
    rows = []

    for bill in Bill.objects.outstanding(company, bill_type).order_by("due_date", "bill_date"):
        days = _days_overdue(bill, as_on)
        for key, low, high in AGING_BUCKETS:
            if (low is None or days >= low) and (high is None or days <= high):
                break
        buckets[key]["count"] += 1
        buckets[key]["amount"] += bill.outstanding_amount
        rows.append(_bill_row(bill, days_overdue=max(days, 0), bucket=key))

    return {
        "as_on_date": as_on,
        "buckets": buckets,
        "total_count": len(rows),
        "total_outstanding": sum((b["amount"] for b in buckets.values()), ZERO),
        "bills": rows,
    }


def get_outstanding_by_ledger(company, bill_type=None):
    """Open/partial bills grouped per ledger (names compared case-insensitively)."""
    groups = {}
    for bill in Bill.objects.outstanding(company, bill_type).order_by("ledger_name", "bill_date"):
        group = groups.setdefault(bill.ledger_name.lower(), {
            "ledger_name": bill.ledger_name,
            "bill_count": 0,
            "total_outstanding": ZERO,
            "bills": [],
        })
        group["bill_count"] += 1
        group["total_outstanding"] += bill.outstanding_amount
        group["bills"].append(_bill_row(bill))

    return sorted(groups.values(), key=lambda g: g["ledger_name"].lower())


def get_reminders(company, bill_type=None, days_before=None, today=None):
    """
    Bills that are overdue or fall due within `days_before` days.
    reminder_type: OVERDUE, URGENT (due within 3 days) or WARNING.
    """
    if days_before is None:
        days_before = getattr(settings, "LEDGER_BILL_REMINDER_DAYS", 7)
    today = coerce_date(today)

    reminders = []
    for bill in Bill.objects.outstanding(company, bill_type).order_by("due_date", "bill_date"):
        days_overdue = _days_overdue(bill, today)
        days_until_due = -days_overdue
        if days_overdue <= 0 and days_until_due > days_before:
            continue

        if days_overdue > 0:
            reminder_type = "OVERDUE"
        elif days_until_due <= URGENT_WITHIN_DAYS:
            reminder_type = "URGENT"
        else:
            reminder_type = "WARNING"

        reminders.append(_bill_row(
            bill,
            days_until_due=days_until_due,
            days_overdue=max(days_overdue, 0),
            is_overdue=days_overdue > 0,
            reminder_type=reminder_type,
        ))
    return reminders


def _month_start(day, offset):
    month_index = day.year * 12 + (day.month - 1) + offset
    return datetime.date(month_index // 12, month_index % 12 + 1, 1)


def get_cash_flow_projections(company, months=6, today=None):
    """Expected receipts and payments per calendar month, starting with the current one."""
    today = coerce_date(today)
    bills = list(Bill.objects.outstanding(company).order_by("due_date", "bill_date"))

    projections = []
    for i in range(months):
        start, end = _month_start(today, i), _month_start(today, i + 1)
        month_bills = [b for b in bills if start <= b.effective_due_date < end]

        receivables = sum(
            (b.outstanding_amount for b in month_bills if b.bill_type == BillType.RECEIVABLE),
            ZERO,
        )
        payables = sum(
            (b.outstanding_amount for b in month_bills if b.bill_type == BillType.PAYABLE),
            ZERO,
        )
        projections.append({
            "month": start.strftime("%Y-%m"),
            "receivables_expected": receivables,
            "payables_expected": payables,
            "net_cash_flow": receivables - payables,
            "bills": [_bill_row(b) for b in month_bills],
        })
    return projections


def _side_analytics(bills, today):
    total = sum((b.original_amount for b in bills), ZERO)
    outstanding = sum((b.outstanding_amount for b in bills), ZERO)
    settled = sum((b.settled_amount for b in bills), ZERO)

    open_with_due = [
        b for b in bills if b.due_date and b.status != BillStatus.SETTLED
    ]
    overdue_days = sum(max((today - b.due_date).days, 0) for b in open_with_due)
    average = Decimal(overdue_days) / Decimal(len(open_with_due) or 1)

    rate = (settled / total * 100) if total > 0 else ZERO
    return {
        "count": len(bills),
        "total": total,
        "outstanding": outstanding,
        "settled": settled,
        "rate": round_money(rate),
        "average_overdue_days": round_money(average),
    }


def get_analytics(company, from_date=None, to_date=None, today=None):
    """Receivable/payable totals, collection and payment rates, net position."""
    today = coerce_date(today)
    # cancelled bills never count
    qs = Bill.objects.for_company(company).exclude(status=BillStatus.CANCELLED)
    if from_date:
        qs = qs.filter(bill_date__gte=coerce_date(from_date))
    if to_date:
        qs = qs.filter(bill_date__lte=coerce_date(to_date))

    bills = list(qs)
    receivables = _side_analytics(
        [b for b in bills if b.bill_type == BillType.RECEIVABLE], today
    )
    payables = _side_analytics(
        [b for b in bills if b.bill_type == BillType.PAYABLE], today
    )
    receivables["collection_rate"] = receivables.pop("rate")
    payables["payment_rate"] = payables.pop("rate")

    return {
        "receivables": receivables,
        "payables": payables,
        "net_position": receivables["outstanding"] - payables["outstanding"],
    }
