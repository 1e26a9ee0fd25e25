import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task  # register this function as a Celery task
def collect_bill_reminders(company_id, bill_type=None):
    """Reminder rows for a scheduled notifier; dates and amounts as strings."""
    # import lazily to avoid circular imports at module import time
    from .models import Company
    from .services.bills import get_reminders

    company = Company.objects.get(pk=company_id)
    reminders = get_reminders(company, bill_type=bill_type)

    logger.info(
        "Collected %d bill reminders", len(reminders),
        extra={"company": company.slug, "bill_type": bill_type},
    )
    # Task results go through the JSON serializer
    return [
        {
            "bill_number": r["bill_number"],
            "bill_type": r["bill_type"],
            "ledger_name": r["ledger_name"],
            "due_date": r["due_date"].isoformat() if r["due_date"] else None,
            "outstanding_amount": str(r["outstanding_amount"]),
            "days_overdue": r["days_overdue"],
            "days_until_due": r["days_until_due"],
            "reminder_type": r["reminder_type"],
        }
        for r in reminders
    ]


@shared_task
def run_period_end_depreciation(company_id, as_of_date, rate=None):
    """Post the period's depreciation voucher; returns its number."""
    from .models import Company
    from .services.year_end import run_depreciation

    company = Company.objects.get(pk=company_id)
    voucher = run_depreciation(company, as_of_date, rate=rate)
    return voucher.voucher_number


@shared_task
def seed_default_voucher_types(company_id):
    from .models import Company
    from .services.numbering import ensure_default_voucher_types

    company = Company.objects.get(pk=company_id)
    return [vt.name for vt in ensure_default_voucher_types(company)]
