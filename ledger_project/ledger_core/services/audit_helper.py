import logging
from typing import Optional

from ..models import AuditLog, Company

logger = logging.getLogger(__name__)


def log_action(
    *,
    action: str,
    instance,
    user=None,
    company: Optional[Company] = None,
    changes: dict | None = None,
):
    """
    Central audit logger for engine writes (vouchers, bills, period-end runs).
    Call inside the writing transaction so the audit row commits or rolls
    back with the change it describes.
    """

    if not company:
        company = getattr(instance, "company", None)

    entry = AuditLog.objects.create(
        company=company,
        user=user,
        action=action,
        object_type=instance.__class__.__name__,
        object_id=str(instance.pk),
        changes=changes,
    )
    logger.debug(
        "Audit %s %s#%s", action, entry.object_type, entry.object_id,
        extra={"company": getattr(company, "slug", None)},
    )
    return entry
