from decimal import Decimal
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .choices import BillReferenceType, EntryType
from .company import Company
from .voucher_type import VoucherNumberingSeries, VoucherType


# ---------- Voucher (Header) & VoucherEntry ----------
class Voucher(models.Model):  # Represents one accounting transaction
    """
    Vouchers are write-once: header, entries and bill references are
    inserted together by services.posting.create_voucher and never edited
    or deleted afterwards. Corrections go through a linked reversal.
    """

    # Multi-tenant: every voucher belongs to a company
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    voucher_type = models.ForeignKey(
        VoucherType, on_delete=models.PROTECT, related_name="vouchers"
    )
    numbering_series = models.ForeignKey(
        VoucherNumberingSeries,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="vouchers",
    )
    # prefix + sequence + suffix, e.g. "SAL/42"
    voucher_number = models.CharField(max_length=64)
    date = models.DateField()
    reference = models.CharField(max_length=200, null=True, blank=True)
    narration = models.TextField(null=True, blank=True)
    # Sum of either side (they are equal)
    total_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00")
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL
    )
    # Set on a reversing voucher, points at the voucher it cancels out
    reversal_of = models.OneToOneField(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="reversed_by",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "date"], name="voucher_company_date_idx"),
            models.Index(fields=["company", "voucher_type", "voucher_number"], name="voucher_type_number_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gt=0),
                name="voucher_total_positive",
            ),
        ]

    def __str__(self):
        return f"{self.voucher_number} {self.date}"

    def compute_totals(self):
        """Return debits, credits sums for entries"""
        aggs = self.entries.aggregate(
            total_debit=models.Sum("amount", filter=models.Q(entry_type=EntryType.DEBIT)),
            total_credit=models.Sum("amount", filter=models.Q(entry_type=EntryType.CREDIT)),
        )
        return (
            aggs["total_debit"] or Decimal("0.00"),
            aggs["total_credit"] or Decimal("0.00"),
        )

    # True if double-entry rule holds: total debits = total credits
    def is_balanced(self):
        debit, credit = self.compute_totals()
        return debit == credit

    def save(self, *args, **kwargs):
        if self.pk and Voucher.objects.filter(pk=self.pk).exists():
            raise ValidationError(
                "Vouchers are immutable; post a reversing voucher instead."
            )
        super().save(*args, **kwargs)


class VoucherEntry(models.Model):  # One ledger posting (debit or credit)
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    voucher = models.ForeignKey(
        Voucher, on_delete=models.PROTECT, related_name="entries"
    )
    # Ledger is referenced by name, not FK: entries may name ledgers
    # that do not exist yet in the chart of accounts (imports).
    # Matching against Ledger.name is case-insensitive.
    ledger_name = models.CharField(max_length=200)
    ledger_code = models.CharField(max_length=32, null=True, blank=True)
    entry_type = models.CharField(max_length=6, choices=EntryType.choices)
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    narration = models.CharField(max_length=400, null=True, blank=True)
    cost_center_name = models.CharField(max_length=100, null=True, blank=True)
    cost_category = models.CharField(max_length=100, null=True, blank=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        verbose_name_plural = "voucher entries"
        indexes = [
            models.Index(fields=["company", "ledger_name"], name="ventry_company_ledger_idx"),
            models.Index(fields=["voucher"], name="ventry_voucher_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="voucherentry_amount_positive",
            ),
        ]

    def __str__(self):
        return f"{self.voucher_id} | {self.ledger_name} | {self.entry_type} {self.amount}"

    @property
    def signed_amount(self):
        return self.amount if self.entry_type == EntryType.DEBIT else -self.amount


class VoucherBillReference(models.Model):
    """Ties a posting to a receivable/payable bill."""

    entry = models.ForeignKey(
        VoucherEntry, on_delete=models.PROTECT, related_name="bill_references"
    )
    # Bill number being created (NEW) or settled (AGAINST)
    reference = models.CharField(max_length=64)
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    reference_type = models.CharField(
        max_length=12,
        choices=BillReferenceType.choices,
        default=BillReferenceType.AGAINST,
    )
    due_date = models.DateField(null=True, blank=True)
    remarks = models.CharField(max_length=400, null=True, blank=True)

    class Meta:
        indexes = [models.Index(fields=["reference"], name="billref_reference_idx")]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="billreference_amount_positive",
            ),
        ]

    def __str__(self):
        return f"{self.reference_type} {self.reference} {self.amount}"
