from django.db import models
from ..managers import TenantManager
from .choices import NumberingBehavior, NumberingMethod, VoucherCategory
from .company import Company


# ---------- Voucher numbering configuration ----------
class NumberingConfig(models.Model):
    """Fields shared by a voucher type and its numbering series."""

    prefix = models.CharField(max_length=20, null=True, blank=True)  # "SAL/"
    suffix = models.CharField(max_length=20, null=True, blank=True)
    numbering_method = models.CharField(
        max_length=10,
        choices=NumberingMethod.choices,
        default=NumberingMethod.AUTOMATIC,
    )
    numbering_behavior = models.CharField(
        max_length=10,
        choices=NumberingBehavior.choices,
        default=NumberingBehavior.RENUMBER,
    )
    # Counter handed out by the numbering allocator;
    # only ever changed through an atomic UPDATE ... next_number + 1
    next_number = models.PositiveIntegerField(default=1)
    allow_manual_override = models.BooleanField(default=False)
    allow_duplicate_numbers = models.BooleanField(default=False)
    is_default = models.BooleanField(default=False)

    class Meta:
        abstract = True

    def format_number(self, sequence, fallback=None):
        """prefix + sequence + suffix, borrowing missing affixes from `fallback`."""
        prefix = self.prefix if self.prefix is not None else getattr(fallback, "prefix", None)
        suffix = self.suffix if self.suffix is not None else getattr(fallback, "suffix", None)
        return f"{prefix or ''}{sequence}{suffix or ''}"

    @property
    def accepts_manual_numbers(self):
        return (
            self.numbering_method == NumberingMethod.MANUAL
            or self.allow_manual_override
        )


class VoucherType(NumberingConfig):  # Sales, Payment, Journal, ...
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    name = models.CharField(max_length=100)
    abbreviation = models.CharField(max_length=20, null=True, blank=True)
    category = models.CharField(max_length=20, choices=VoucherCategory.choices)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        constraints = [
            # Within one company, each voucher type name must be unique
            models.UniqueConstraint(
                fields=["company", "name"], name="uq_company_vouchertype_name"
            ),
            models.CheckConstraint(
                condition=models.Q(next_number__gte=1),
                name="vouchertype_next_number_positive",
            ),
        ]
        indexes = [models.Index(fields=["company", "category"], name="vtype_company_category_idx")]

    def __str__(self):
        return f"{self.name} ({self.category})"


class VoucherNumberingSeries(NumberingConfig):
    """Independent number range under a voucher type (e.g. per branch)."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    voucher_type = models.ForeignKey(
        VoucherType, on_delete=models.CASCADE, related_name="numbering_series"
    )
    name = models.CharField(max_length=100)
    start_number = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        verbose_name_plural = "voucher numbering series"
        constraints = [
            models.UniqueConstraint(
                fields=["voucher_type", "name"], name="uq_series_type_name"
            ),
            # At most one default series per voucher type
            models.UniqueConstraint(
                fields=["voucher_type"],
                condition=models.Q(is_default=True),
                name="uq_series_one_default_per_type",
            ),
            models.CheckConstraint(
                condition=models.Q(next_number__gte=1),
                name="series_next_number_positive",
            ),
        ]

    def __str__(self):
        return f"{self.voucher_type.name} / {self.name}"
