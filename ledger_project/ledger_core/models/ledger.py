from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models.functions import Lower
from ..managers import TenantManager
from .choices import CATEGORY_NATURE, EntryType, LedgerCategory
from .company import Company


# ---------- Chart of Accounts ----------
class LedgerGroup(models.Model):  # For organizing ledgers into categories
    # each company has its own set of groups (multi-tenant safe)
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    # group's label (e.g. "Indirect Expenses")
    name = models.CharField(max_length=100)
    # Drives closing / depreciation selection
    category = models.CharField(max_length=32, choices=LedgerCategory.choices)
    # Optional hierarchy (e.g. "Office Expenses" under "Indirect Expenses")
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,  # you can’t delete a parent if children exist
        related_name="children",
    )

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        # Group names repeat across companies but must be unique within one
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"], name="uq_company_ledgergroup_name"
            ),
        ]
        indexes = [models.Index(fields=["company", "category"], name="lgroup_company_category_idx")]

    def __str__(self):
        return f"{self.company.slug} - {self.name}"  # Example: "acme - Current Assets"

    @property
    def nature(self):
        return CATEGORY_NATURE[LedgerCategory(self.category)]

    def clean(self):
        if self.parent and self.parent.company_id != self.company_id:
            raise ValidationError(
                "Parent & child groups must belong to the same company"
            )


class Ledger(models.Model):
    """
    Ledger account in the chart of accounts.
    - name is unique per company; voucher entries refer to it by name
    - opening balance is effective from opening_balance_date (if set);
      postings dated before it are already folded into the opening balance
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    group = models.ForeignKey(
        LedgerGroup, on_delete=models.PROTECT, related_name="ledgers"
    )
    name = models.CharField(max_length=200)  # "Cash", "Sales Revenue"
    code = models.CharField(max_length=32, null=True, blank=True)

    opening_balance = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00")
    )
    opening_balance_type = models.CharField(
        max_length=6, choices=EntryType.choices, default=EntryType.DEBIT
    )
    # Set by year-end carry-forward
    opening_balance_date = models.DateField(null=True, blank=True)

    # Maximum credit balance the ledger may carry (None or 0 = unlimited)
    credit_limit = models.DecimalField(
        max_digits=18, decimal_places=2, null=True, blank=True
    )

    # “soft deactivate” ledgers without deleting history
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "group"], name="ledger_company_group_idx"),
            models.Index(fields=["company", "code"], name="ledger_company_code_idx"),
        ]
        constraints = [
            # Entries match ledgers case-insensitively, so "Sales" and "SALES" clash
            models.UniqueConstraint(
                Lower("name"), "company", name="uq_company_ledger_name_ci"
            ),
            models.CheckConstraint(
                condition=models.Q(opening_balance__gte=0),
                name="ledger_opening_balance_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.company.slug}:{self.name}"

    @property
    def signed_opening_balance(self):
        """Opening balance with debit positive, credit negative."""
        if self.opening_balance_type == EntryType.CREDIT:
            return -self.opening_balance
        return self.opening_balance

    def clean(self):
        # Check if group belongs to same company
        if self.group_id and self.group.company_id != self.company_id:
            raise ValidationError(
                "LedgerGroup must belong to the same company as Ledger."
            )
