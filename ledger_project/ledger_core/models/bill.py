from decimal import Decimal
from django.db import models
from ..managers import BillManager, TenantManager
from .choices import BillStatus, BillType
from .company import Company
from .voucher import Voucher, VoucherEntry


# ---------- Bills / BillSettlements ----------

# A receivable or payable tracked bill-by-bill against voucher entries
class Bill(models.Model):
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    bill_type = models.CharField(max_length=10, choices=BillType.choices)
    # Party's bill/invoice number (e.g. "INV-4567")
    bill_number = models.CharField(max_length=64)
    # Party ledger, denormalized like VoucherEntry.ledger_name
    ledger_name = models.CharField(max_length=200)
    ledger_code = models.CharField(max_length=32, null=True, blank=True)
    bill_date = models.DateField()
    # when payment is expected (aging falls back to bill_date)
    due_date = models.DateField(null=True, blank=True)

    original_amount = models.DecimalField(max_digits=18, decimal_places=2)
    settled_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00")
    )
    # How much is still unpaid; mutated only under select_for_update
    outstanding_amount = models.DecimalField(max_digits=18, decimal_places=2)

    # Track workflow: OPEN → PARTIAL → SETTLED, or CANCELLED
    status = models.CharField(
        max_length=10, choices=BillStatus.choices, default=BillStatus.OPEN
    )
    reference = models.CharField(max_length=200, null=True, blank=True)
    narration = models.TextField(null=True, blank=True)

    # Originating voucher posting (optional)
    voucher = models.ForeignKey(
        Voucher, null=True, blank=True, on_delete=models.PROTECT, related_name="bills"
    )
    voucher_entry = models.ForeignKey(
        VoucherEntry, null=True, blank=True, on_delete=models.PROTECT, related_name="bills"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Enforce tenant scoping; Bill.objects.outstanding(company) for open bills
    objects = BillManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "bill_type", "status"], name="bill_company_type_status_idx"),
            models.Index(fields=["company", "ledger_name"], name="bill_company_ledger_idx"),
            models.Index(fields=["company", "due_date"], name="bill_company_due_idx"),
        ]
        constraints = [
            # Within one company, each bill number must be unique
            models.UniqueConstraint(
                fields=["company", "bill_number"],
                name="uq_bill_company_number",
            ),
            models.CheckConstraint(
                condition=models.Q(outstanding_amount__gte=0),
                name="bill_outstanding_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(original_amount__gt=0),
                name="bill_original_positive",
            ),
        ]

    def __str__(self):
        return f"Bill: {self.bill_number} [{self.status}]"

    @property
    def effective_due_date(self):
        return self.due_date or self.bill_date


class BillSettlement(models.Model):
    """One settling posting applied to a bill."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    bill = models.ForeignKey(
        Bill, on_delete=models.PROTECT, related_name="settlements"
    )
    voucher = models.ForeignKey(
        Voucher, on_delete=models.PROTECT, related_name="bill_settlements"
    )
    voucher_entry = models.ForeignKey(
        VoucherEntry, on_delete=models.PROTECT, related_name="bill_settlements"
    )
    settlement_amount = models.DecimalField(max_digits=18, decimal_places=2)
    settlement_date = models.DateField()
    reference = models.CharField(max_length=200, null=True, blank=True)
    remarks = models.CharField(max_length=400, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [models.Index(fields=["company", "bill"], name="settlement_company_bill_idx")]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(settlement_amount__gt=0),
                name="billsettlement_amount_positive",
            ),
        ]

    def __str__(self):
        return f"{self.bill.bill_number} ← {self.settlement_amount}"
