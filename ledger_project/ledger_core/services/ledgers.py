import logging
from decimal import Decimal

from django.db import models
from django.utils import timezone

from ..models import EntryType, Ledger, LedgerGroup, VoucherEntry

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


# ----------------------------
# Ledger directory
# ----------------------------
def resolve_ledger(company, ledger_name):
    """
    Match a voucher entry's free-text ledger name to the chart of accounts.
    Case-insensitive; returns None for names with no Ledger row.
    """
    if not ledger_name:
        return None
    return (
        Ledger.objects.for_company(company)
        .select_related("group")
        .filter(name__iexact=ledger_name.strip())
        .first()
    )


def ledgers_in_categories(company, categories, active_only=True):
    """Ledgers whose group category is one of `categories`."""
    qs = Ledger.objects.active(company) if active_only else Ledger.objects.for_company(company)
    return (
        qs.select_related("group")
        .filter(group__category__in=list(categories))
        .order_by("name")
    )


def ledger_net_balance(company, ledger, as_of=None):
    """
    Signed balance (debit positive) of `ledger` at the end of `as_of`.

    Opening balance + debits - credits of every entry naming the ledger
    whose voucher is dated within [opening_balance_date, as_of].
    """
    as_of = as_of or timezone.localdate()

    entries = VoucherEntry.objects.filter(
        company=company,
        ledger_name__iexact=ledger.name,
        voucher__date__lte=as_of,
    )
    # Postings before the opening date are already inside opening_balance
    if ledger.opening_balance_date:
        if as_of < ledger.opening_balance_date:
            return ZERO
        entries = entries.filter(voucher__date__gte=ledger.opening_balance_date)

    # One aggregate row per side:
    # [{"entry_type": "DEBIT", "total": Decimal("500.00")}, ...]
    totals = {
        row["entry_type"]: row["total"] or ZERO
        for row in entries.values("entry_type").annotate(total=models.Sum("amount"))
    }
    debit = totals.get(EntryType.DEBIT, ZERO)
    credit = totals.get(EntryType.CREDIT, ZERO)

    return ledger.signed_opening_balance + debit - credit


def split_balance(net):
    """Signed balance -> (amount, DEBIT|CREDIT)."""
    if net < 0:
        return -net, EntryType.CREDIT
    return net, EntryType.DEBIT


def get_ledger_balance(company, ledger_name, as_of=None):
    """Return (amount, balance_type) for a ledger name; unknown names are (0, DEBIT)."""
    ledger = resolve_ledger(company, ledger_name)
    if ledger is None:
        return ZERO, EntryType.DEBIT
    return split_balance(ledger_net_balance(company, ledger, as_of))


def get_or_create_system_ledger(company, *, name, group_name, category):
    """
    Fetch a ledger the engine posts to on its own (Capital, Depreciation).
    Creates it, and its group, when the chart of accounts lacks them.
    Must run inside the caller's transaction.
    """
    ledger = resolve_ledger(company, name)
    if ledger:
        return ledger

    group = (
        LedgerGroup.objects.for_company(company)
        .filter(category=category)
        .order_by("id")
        .first()
    )
    if group is None:
        group, _ = LedgerGroup.objects.get_or_create(
            company=company,
            name=group_name,
            defaults={"category": category},
        )

    ledger = Ledger.objects.create(company=company, group=group, name=name)
    logger.info(
        "Created system ledger %s under group %s", name, group.name,
        extra={"company": company.slug},
    )
    return ledger
