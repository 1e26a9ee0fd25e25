import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models
from django.db.models.functions import Lower

ENTRY_TYPES = [("DEBIT", "Debit"), ("CREDIT", "Credit")]
NUMBERING_METHODS = [("AUTOMATIC", "Automatic"), ("MANUAL", "Manual")]
NUMBERING_BEHAVIORS = [("RENUMBER", "Renumber"), ("RETAIN", "Retain")]
VOUCHER_CATEGORIES = [
    ("PAYMENT", "Payment"),
    ("RECEIPT", "Receipt"),
    ("CONTRA", "Contra"),
    ("JOURNAL", "Journal"),
    ("SALES", "Sales"),
    ("PURCHASE", "Purchase"),
    ("DEBIT_NOTE", "Debit Note"),
    ("CREDIT_NOTE", "Credit Note"),
    ("REVERSING_JOURNAL", "Reversing Journal"),
]
LEDGER_CATEGORIES = [
    ("CAPITAL", "Capital Account"),
    ("RESERVES", "Reserves & Surplus"),
    ("LOAN", "Loans (Liability)"),
    ("CURRENT_LIABILITY", "Current Liabilities"),
    ("SUNDRY_CREDITOR", "Sundry Creditors"),
    ("DUTIES_TAXES", "Duties & Taxes"),
    ("FIXED_ASSET", "Fixed Assets"),
    ("INVESTMENT", "Investments"),
    ("CURRENT_ASSET", "Current Assets"),
    ("CASH", "Cash-in-Hand"),
    ("BANK_ACCOUNT", "Bank Accounts"),
    ("STOCK", "Stock-in-Hand"),
    ("SUNDRY_DEBTOR", "Sundry Debtors"),
    ("SALES", "Sales Accounts"),
    ("DIRECT_INCOME", "Direct Incomes"),
    ("INDIRECT_INCOME", "Indirect Incomes"),
    ("PURCHASE", "Purchase Accounts"),
    ("DIRECT_EXPENSE", "Direct Expenses"),
    ("INDIRECT_EXPENSE", "Indirect Expenses"),
    ("OTHER", "Other"),
]
BILL_REFERENCE_TYPES = [
    ("NEW", "New Ref"),
    ("AGAINST", "Against Ref"),
    ("ADVANCE", "Advance"),
    ("ON_ACCOUNT", "On Account"),
]
BILL_TYPES = [("RECEIVABLE", "Receivable"), ("PAYABLE", "Payable")]
BILL_STATUSES = [
    ("OPEN", "Open"),
    ("PARTIAL", "Partially settled"),
    ("SETTLED", "Settled"),
    ("CANCELLED", "Cancelled"),
]


def numbering_fields():
    # Shared by VoucherType and VoucherNumberingSeries
    return [
        ("prefix", models.CharField(blank=True, max_length=20, null=True)),
        ("suffix", models.CharField(blank=True, max_length=20, null=True)),
        ("numbering_method", models.CharField(choices=NUMBERING_METHODS, default="AUTOMATIC", max_length=10)),
        ("numbering_behavior", models.CharField(choices=NUMBERING_BEHAVIORS, default="RENUMBER", max_length=10)),
        ("next_number", models.PositiveIntegerField(default=1)),
        ("allow_manual_override", models.BooleanField(default=False)),
        ("allow_duplicate_numbers", models.BooleanField(default=False)),
        ("is_default", models.BooleanField(default=False)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Company",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("slug", models.SlugField(max_length=80, unique=True)),
                ("currency_code", models.CharField(default="USD", max_length=10)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"verbose_name_plural": "companies"},
        ),
        migrations.CreateModel(
            name="LedgerGroup",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("category", models.CharField(choices=LEDGER_CATEGORIES, max_length=32)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.company")),
                ("parent", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="children", to="ledger_core.ledgergroup")),
            ],
            options={
                "indexes": [models.Index(fields=["company", "category"], name="lgroup_company_category_idx")],
                "constraints": [models.UniqueConstraint(fields=("company", "name"), name="uq_company_ledgergroup_name")],
            },
        ),
        migrations.CreateModel(
            name="Ledger",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("code", models.CharField(blank=True, max_length=32, null=True)),
                ("opening_balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("opening_balance_type", models.CharField(choices=ENTRY_TYPES, default="DEBIT", max_length=6)),
                ("opening_balance_date", models.DateField(blank=True, null=True)),
                ("credit_limit", models.DecimalField(blank=True, decimal_places=2, max_digits=18, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.company")),
                ("group", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="ledgers", to="ledger_core.ledgergroup")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["company", "group"], name="ledger_company_group_idx"),
                    models.Index(fields=["company", "code"], name="ledger_company_code_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(Lower("name"), "company", name="uq_company_ledger_name_ci"),
                    models.CheckConstraint(condition=models.Q(opening_balance__gte=0), name="ledger_opening_balance_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="VoucherType",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *numbering_fields(),
                ("name", models.CharField(max_length=100)),
                ("abbreviation", models.CharField(blank=True, max_length=20, null=True)),
                ("category", models.CharField(choices=VOUCHER_CATEGORIES, max_length=20)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.company")),
            ],
            options={
                "indexes": [models.Index(fields=["company", "category"], name="vtype_company_category_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "name"), name="uq_company_vouchertype_name"),
                    models.CheckConstraint(condition=models.Q(next_number__gte=1), name="vouchertype_next_number_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="VoucherNumberingSeries",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *numbering_fields(),
                ("name", models.CharField(max_length=100)),
                ("start_number", models.PositiveIntegerField(default=1)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.company")),
                ("voucher_type", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="numbering_series", to="ledger_core.vouchertype")),
            ],
            options={
                "verbose_name_plural": "voucher numbering series",
                "constraints": [
                    models.UniqueConstraint(fields=("voucher_type", "name"), name="uq_series_type_name"),
                    models.UniqueConstraint(condition=models.Q(is_default=True), fields=("voucher_type",), name="uq_series_one_default_per_type"),
                    models.CheckConstraint(condition=models.Q(next_number__gte=1), name="series_next_number_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Voucher",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("voucher_number", models.CharField(max_length=64)),
                ("date", models.DateField()),
                ("reference", models.CharField(blank=True, max_length=200, null=True)),
                ("narration", models.TextField(blank=True, null=True)),
                ("total_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.company")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
                ("numbering_series", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="vouchers", to="ledger_core.vouchernumberingseries")),
                ("reversal_of", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="reversed_by", to="ledger_core.voucher")),
                ("voucher_type", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="vouchers", to="ledger_core.vouchertype")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["company", "date"], name="voucher_company_date_idx"),
                    models.Index(fields=["company", "voucher_type", "voucher_number"], name="voucher_type_number_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(total_amount__gt=0), name="voucher_total_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="VoucherEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("ledger_name", models.CharField(max_length=200)),
                ("ledger_code", models.CharField(blank=True, max_length=32, null=True)),
                ("entry_type", models.CharField(choices=ENTRY_TYPES, max_length=6)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("narration", models.CharField(blank=True, max_length=400, null=True)),
                ("cost_center_name", models.CharField(blank=True, max_length=100, null=True)),
                ("cost_category", models.CharField(blank=True, max_length=100, null=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.company")),
                ("voucher", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="entries", to="ledger_core.voucher")),
            ],
            options={
                "verbose_name_plural": "voucher entries",
                "indexes": [
                    models.Index(fields=["company", "ledger_name"], name="ventry_company_ledger_idx"),
                    models.Index(fields=["voucher"], name="ventry_voucher_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(amount__gt=0), name="voucherentry_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="VoucherBillReference",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("reference", models.CharField(max_length=64)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("reference_type", models.CharField(choices=BILL_REFERENCE_TYPES, default="AGAINST", max_length=12)),
                ("due_date", models.DateField(blank=True, null=True)),
                ("remarks", models.CharField(blank=True, max_length=400, null=True)),
                ("entry", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="bill_references", to="ledger_core.voucherentry")),
            ],
            options={
                "indexes": [models.Index(fields=["reference"], name="billref_reference_idx")],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(amount__gt=0), name="billreference_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Bill",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("bill_type", models.CharField(choices=BILL_TYPES, max_length=10)),
                ("bill_number", models.CharField(max_length=64)),
                ("ledger_name", models.CharField(max_length=200)),
                ("ledger_code", models.CharField(blank=True, max_length=32, null=True)),
                ("bill_date", models.DateField()),
                ("due_date", models.DateField(blank=True, null=True)),
                ("original_amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("settled_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("outstanding_amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("status", models.CharField(choices=BILL_STATUSES, default="OPEN", max_length=10)),
                ("reference", models.CharField(blank=True, max_length=200, null=True)),
                ("narration", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.company")),
                ("voucher", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="bills", to="ledger_core.voucher")),
                ("voucher_entry", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="bills", to="ledger_core.voucherentry")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["company", "bill_type", "status"], name="bill_company_type_status_idx"),
                    models.Index(fields=["company", "ledger_name"], name="bill_company_ledger_idx"),
                    models.Index(fields=["company", "due_date"], name="bill_company_due_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "bill_number"), name="uq_bill_company_number"),
                    models.CheckConstraint(condition=models.Q(outstanding_amount__gte=0), name="bill_outstanding_non_negative"),
                    models.CheckConstraint(condition=models.Q(original_amount__gt=0), name="bill_original_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BillSettlement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("settlement_amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("settlement_date", models.DateField()),
                ("reference", models.CharField(blank=True, max_length=200, null=True)),
                ("remarks", models.CharField(blank=True, max_length=400, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("bill", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="settlements", to="ledger_core.bill")),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.company")),
                ("voucher", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="bill_settlements", to="ledger_core.voucher")),
                ("voucher_entry", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="bill_settlements", to="ledger_core.voucherentry")),
            ],
            options={
                "indexes": [models.Index(fields=["company", "bill"], name="settlement_company_bill_idx")],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(settlement_amount__gt=0), name="billsettlement_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(max_length=50)),
                ("object_type", models.CharField(max_length=100)),
                ("object_id", models.CharField(max_length=100)),
                ("changes", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to="ledger_core.company")),
                ("user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["company", "created_at"], name="audit_company_created_idx"),
                    models.Index(fields=["company", "object_type", "object_id"], name="audit_company_object_idx"),
                ],
            },
        ),
    ]
