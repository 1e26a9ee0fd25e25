from django.db import models


# ---------- Closed enumerations driving engine branching ----------
class EntryType(models.TextChoices):
    DEBIT = "DEBIT", "Debit"
    CREDIT = "CREDIT", "Credit"

    @property
    def opposite(self):
        return EntryType.CREDIT if self is EntryType.DEBIT else EntryType.DEBIT


class VoucherCategory(models.TextChoices):
    PAYMENT = "PAYMENT", "Payment"
    RECEIPT = "RECEIPT", "Receipt"
    CONTRA = "CONTRA", "Contra"
    JOURNAL = "JOURNAL", "Journal"
    SALES = "SALES", "Sales"
    PURCHASE = "PURCHASE", "Purchase"
    DEBIT_NOTE = "DEBIT_NOTE", "Debit Note"
    CREDIT_NOTE = "CREDIT_NOTE", "Credit Note"
    REVERSING_JOURNAL = "REVERSING_JOURNAL", "Reversing Journal"


class NumberingMethod(models.TextChoices):
    AUTOMATIC = "AUTOMATIC", "Automatic"
    MANUAL = "MANUAL", "Manual"


class NumberingBehavior(models.TextChoices):
    RENUMBER = "RENUMBER", "Renumber"  # gaps tolerated
    RETAIN = "RETAIN", "Retain"


class BillReferenceType(models.TextChoices):
    NEW = "NEW", "New Ref"
    AGAINST = "AGAINST", "Against Ref"
    ADVANCE = "ADVANCE", "Advance"
    ON_ACCOUNT = "ON_ACCOUNT", "On Account"


class BillType(models.TextChoices):
    RECEIVABLE = "RECEIVABLE", "Receivable"
    PAYABLE = "PAYABLE", "Payable"


class BillStatus(models.TextChoices):
    OPEN = "OPEN", "Open"
    PARTIAL = "PARTIAL", "Partially settled"
    SETTLED = "SETTLED", "Settled"
    CANCELLED = "CANCELLED", "Cancelled"


class LedgerCategory(models.TextChoices):
    CAPITAL = "CAPITAL", "Capital Account"
    RESERVES = "RESERVES", "Reserves & Surplus"
    LOAN = "LOAN", "Loans (Liability)"
    CURRENT_LIABILITY = "CURRENT_LIABILITY", "Current Liabilities"
    SUNDRY_CREDITOR = "SUNDRY_CREDITOR", "Sundry Creditors"
    DUTIES_TAXES = "DUTIES_TAXES", "Duties & Taxes"
    FIXED_ASSET = "FIXED_ASSET", "Fixed Assets"
    INVESTMENT = "INVESTMENT", "Investments"
    CURRENT_ASSET = "CURRENT_ASSET", "Current Assets"
    CASH = "CASH", "Cash-in-Hand"
    BANK_ACCOUNT = "BANK_ACCOUNT", "Bank Accounts"
    STOCK = "STOCK", "Stock-in-Hand"
    SUNDRY_DEBTOR = "SUNDRY_DEBTOR", "Sundry Debtors"
    SALES = "SALES", "Sales Accounts"
    DIRECT_INCOME = "DIRECT_INCOME", "Direct Incomes"
    INDIRECT_INCOME = "INDIRECT_INCOME", "Indirect Incomes"
    PURCHASE = "PURCHASE", "Purchase Accounts"
    DIRECT_EXPENSE = "DIRECT_EXPENSE", "Direct Expenses"
    INDIRECT_EXPENSE = "INDIRECT_EXPENSE", "Indirect Expenses"
    OTHER = "OTHER", "Other"


class LedgerNature(models.TextChoices):
    ASSET = "ASSET", "Asset"
    LIABILITY = "LIABILITY", "Liability"
    CAPITAL = "CAPITAL", "Capital"
    INCOME = "INCOME", "Income"
    EXPENSE = "EXPENSE", "Expense"


# Every category belongs to exactly one nature
CATEGORY_NATURE = {
    LedgerCategory.CAPITAL: LedgerNature.CAPITAL,
    LedgerCategory.RESERVES: LedgerNature.CAPITAL,
    LedgerCategory.LOAN: LedgerNature.LIABILITY,
    LedgerCategory.CURRENT_LIABILITY: LedgerNature.LIABILITY,
    LedgerCategory.SUNDRY_CREDITOR: LedgerNature.LIABILITY,
    LedgerCategory.DUTIES_TAXES: LedgerNature.LIABILITY,
    LedgerCategory.FIXED_ASSET: LedgerNature.ASSET,
    LedgerCategory.INVESTMENT: LedgerNature.ASSET,
    LedgerCategory.CURRENT_ASSET: LedgerNature.ASSET,
    LedgerCategory.CASH: LedgerNature.ASSET,
    LedgerCategory.BANK_ACCOUNT: LedgerNature.ASSET,
    LedgerCategory.STOCK: LedgerNature.ASSET,
    LedgerCategory.SUNDRY_DEBTOR: LedgerNature.ASSET,
    LedgerCategory.OTHER: LedgerNature.ASSET,
    LedgerCategory.SALES: LedgerNature.INCOME,
    LedgerCategory.DIRECT_INCOME: LedgerNature.INCOME,
    LedgerCategory.INDIRECT_INCOME: LedgerNature.INCOME,
    LedgerCategory.PURCHASE: LedgerNature.EXPENSE,
    LedgerCategory.DIRECT_EXPENSE: LedgerNature.EXPENSE,
    LedgerCategory.INDIRECT_EXPENSE: LedgerNature.EXPENSE,
}

_unmapped = set(LedgerCategory) - set(CATEGORY_NATURE)
if _unmapped:
    raise RuntimeError(f"Ledger categories without a nature: {sorted(_unmapped)}")


def categories_of(*natures):
    """All ledger categories whose nature is one of `natures`."""
    return [cat for cat, nature in CATEGORY_NATURE.items() if nature in natures]
