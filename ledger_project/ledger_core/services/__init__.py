# Engine entry points; callers import from here
from .bills import (apply_bill_references, cancel_bill, create_bill,
                    get_aging_report, get_analytics,
                    get_cash_flow_projections, get_outstanding_by_ledger,
                    get_reminders, list_bills, settle_bill,
                    undo_bill_effects)
from .ledgers import get_ledger_balance, ledger_net_balance, resolve_ledger
from .numbering import (create_numbering_series, create_voucher_type,
                        ensure_default_voucher_types, get_next_voucher_number,
                        list_voucher_types, reserve_number,
                        update_voucher_type)
from .posting import create_reversing_journal, create_voucher, list_vouchers
from .validation import coerce_amount, coerce_date, validate_entries
from .year_end import (carry_forward_balances, generate_closing_entries,
                       run_depreciation)
