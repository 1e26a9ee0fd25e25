from django.conf import settings  # To access global project settings
from django.db import models
from ..managers import TenantManager
from .company import Company


# ---------- Audit / Event log ----------
class AuditLog(
    models.Model
):  # Gives accountability and traceability across the engine
    # Associate log entry with a tenant
    company = models.ForeignKey(
        Company,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
    )
    # Which user performed the action
    # (Nullable in case the action was automated, e.g. a Celery task)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL
    )
    # Common choices: create, reverse, settle, cancel, close, depreciate
    action = models.CharField(max_length=50)
    # What kind of object was affected (e.g., "Voucher", "Bill")
    object_type = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    # Store what changed, in JSON format
    changes = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        # Filter logs quickly
        indexes = [
            models.Index(fields=["company", "created_at"], name="audit_company_created_idx"),
            models.Index(fields=["company", "object_type", "object_id"], name="audit_company_object_idx"),
        ]

    def __str__(self):
        time = self.created_at
        return f"[{time:%Y-%m-%d %H:%M}] {self.user} {self.action} {self.object_type}({self.object_id})"
