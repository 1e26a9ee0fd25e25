from .auditlog import AuditLog
from .bill import Bill, BillSettlement
from .choices import (CATEGORY_NATURE, BillReferenceType, BillStatus,
                      BillType, EntryType, LedgerCategory, LedgerNature,
                      NumberingBehavior, NumberingMethod, VoucherCategory,
                      categories_of)
from .company import Company
from .ledger import Ledger, LedgerGroup
from .voucher import Voucher, VoucherBillReference, VoucherEntry
from .voucher_type import VoucherNumberingSeries, VoucherType
