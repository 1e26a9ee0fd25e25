import datetime
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase, override_settings

from ledger_core.models import (AuditLog, EntryType, Ledger, LedgerCategory,
                                VoucherCategory)
from ledger_core.services.ledgers import get_ledger_balance
from ledger_core.services.numbering import create_voucher_type
from ledger_core.services.posting import create_voucher
from ledger_core.services.year_end import (carry_forward_balances,
                                           generate_closing_entries,
                                           run_depreciation)

from .factories import credit, debit, make_company, make_ledger, voucher_data

YEAR_END = datetime.date(2024, 3, 31)


class ClosingEntriesTests(TestCase):
    def setUp(self):
        self.company = make_company()
        make_ledger(self.company, "Cash", LedgerCategory.CASH)
        make_ledger(self.company, "Sales", LedgerCategory.SALES)
        make_ledger(self.company, "Rent", LedgerCategory.INDIRECT_EXPENSE)
        make_ledger(self.company, "Salaries", LedgerCategory.INDIRECT_EXPENSE)
        self.journal = create_voucher_type(self.company, {
            "name": "Journal", "category": VoucherCategory.JOURNAL, "prefix": "JRN/",
        })

    def post(self, entries, date="2024-03-15"):
        return create_voucher(self.company, voucher_data(self.journal, entries, date=date))

    def test_profit_moves_to_capital_and_voucher_balances(self):
        self.post([debit("Cash", 1000), credit("Sales", 1000)])
        self.post([debit("Rent", 200), credit("Cash", 200)])
        self.post([debit("Salaries", 100), credit("Cash", 100)])

        voucher = generate_closing_entries(self.company, YEAR_END)

        total_debit, total_credit = voucher.compute_totals()
        self.assertEqual(total_debit, total_credit)
        self.assertEqual(voucher.voucher_type.name, "Closing Entry")
        self.assertEqual(voucher.voucher_type.category, VoucherCategory.JOURNAL)

        capital = voucher.entries.get(ledger_name="Capital Account")
        self.assertEqual(capital.entry_type, EntryType.CREDIT)
        self.assertEqual(capital.amount, Decimal("700.00"))

        for name in ("Sales", "Rent", "Salaries"):
            self.assertEqual(get_ledger_balance(self.company, name, YEAR_END)[0], Decimal("0.00"))
        # capital ledger and its group were created
        self.assertEqual(
            Ledger.objects.get(company=self.company, name="Capital Account").group.category,
            LedgerCategory.CAPITAL,
        )
        self.assertTrue(AuditLog.objects.filter(action="close", object_id=str(voucher.pk)).exists())

    def test_loss_debits_capital(self):
        self.post([debit("Cash", 100), credit("Sales", 100)])
        self.post([debit("Rent", 400), credit("Cash", 400)])

        voucher = generate_closing_entries(self.company, YEAR_END)
        capital = voucher.entries.get(ledger_name="Capital Account")
        self.assertEqual(capital.entry_type, EntryType.DEBIT)
        self.assertEqual(capital.amount, Decimal("300.00"))
        self.assertTrue(voucher.is_balanced())

    def test_contra_balances_and_openings_are_closed(self):
        make_ledger(self.company, "Insurance", LedgerCategory.INDIRECT_EXPENSE)
        make_ledger(
            self.company, "Commission", LedgerCategory.INDIRECT_INCOME,
            opening_balance="50.00", opening_balance_type=EntryType.CREDIT,
        )
        # returns exceed sales: income ledger ends with a debit balance
        self.post([debit("Cash", 300), credit("Sales", 300)])
        self.post([debit("Sales", 450), credit("Cash", 450)])
        # refund exceeds premium: expense ledger ends with a credit balance
        self.post([debit("Insurance", 100), credit("Cash", 100)])
        self.post([debit("Cash", 250), credit("Insurance", 250)])

        voucher = generate_closing_entries(self.company, YEAR_END)

        self.assertTrue(voucher.is_balanced())
        closing = {
            e.ledger_name: (e.entry_type, e.amount) for e in voucher.entries.all()
        }
        self.assertEqual(closing, {
            "Sales": (EntryType.CREDIT, Decimal("150.00")),
            "Insurance": (EntryType.DEBIT, Decimal("150.00")),
            "Commission": (EntryType.DEBIT, Decimal("50.00")),
            "Capital Account": (EntryType.CREDIT, Decimal("50.00")),
        })
        for name in ("Sales", "Insurance", "Commission"):
            self.assertEqual(get_ledger_balance(self.company, name, YEAR_END)[0], Decimal("0.00"))

    def test_existing_capital_ledger_is_used(self):
        make_ledger(self.company, "Owner's Capital", LedgerCategory.CAPITAL)
        self.post([debit("Cash", 100), credit("Sales", 100)])

        voucher = generate_closing_entries(self.company, YEAR_END)
        self.assertTrue(voucher.entries.filter(ledger_name="Owner's Capital").exists())
        self.assertFalse(Ledger.objects.filter(name="Capital Account").exists())

    def test_postings_after_the_date_are_left_open(self):
        self.post([debit("Cash", 100), credit("Sales", 100)])
        self.post([debit("Cash", 50), credit("Sales", 50)], date="2024-04-02")

        voucher = generate_closing_entries(self.company, YEAR_END)
        self.assertEqual(voucher.total_amount, Decimal("100.00"))

    def test_nothing_to_close(self):
        self.post([debit("Cash", 100), credit("Bank", 100)])
        with self.assertRaises(ValidationError):
            generate_closing_entries(self.company, YEAR_END)


class DepreciationTests(TestCase):
    def setUp(self):
        self.company = make_company()
        make_ledger(self.company, "Machinery", LedgerCategory.FIXED_ASSET, opening_balance="10000.00")
        make_ledger(self.company, "Furniture", LedgerCategory.FIXED_ASSET, opening_balance="2500.00")
        make_ledger(self.company, "Land", LedgerCategory.INVESTMENT, opening_balance="50000.00")

    def test_default_rate_on_fixed_assets(self):
        voucher = run_depreciation(self.company, YEAR_END)

        self.assertEqual(voucher.voucher_type.name, "Depreciation Entry")
        self.assertEqual(voucher.total_amount, Decimal("1250.00"))
        self.assertTrue(voucher.is_balanced())
        self.assertEqual(
            get_ledger_balance(self.company, "Machinery", YEAR_END),
            (Decimal("9000.00"), EntryType.DEBIT),
        )
        self.assertEqual(
            get_ledger_balance(self.company, "Depreciation Expense", YEAR_END),
            (Decimal("1250.00"), EntryType.DEBIT),
        )
        # investments are not depreciated by default
        self.assertEqual(get_ledger_balance(self.company, "Land", YEAR_END)[0], Decimal("50000.00"))

    def test_explicit_rate_and_categories(self):
        voucher = run_depreciation(
            self.company, YEAR_END, rate="2.5", asset_categories=[LedgerCategory.INVESTMENT]
        )
        self.assertEqual(voucher.total_amount, Decimal("1250.00"))
        self.assertEqual(
            get_ledger_balance(self.company, "Machinery", YEAR_END)[0], Decimal("10000.00")
        )

    @override_settings(LEDGER_DEPRECIATION_DEFAULT_RATE="20")
    def test_rate_from_settings(self):
        voucher = run_depreciation(self.company, YEAR_END)
        self.assertEqual(voucher.total_amount, Decimal("2500.00"))

    def test_rate_bounds(self):
        for rate in (0, -5, "100.01"):
            with self.assertRaises(ValidationError):
                run_depreciation(self.company, YEAR_END, rate=rate)

    def test_no_asset_groups(self):
        with self.assertRaises(ValidationError):
            run_depreciation(self.company, YEAR_END, asset_categories=[LedgerCategory.STOCK])

    def test_nothing_to_depreciate(self):
        other = make_company(name="Other", slug="other")
        make_ledger(other, "Old Van", LedgerCategory.FIXED_ASSET)
        with self.assertRaises(ValidationError):
            run_depreciation(other, YEAR_END)


class CarryForwardTests(TestCase):
    def setUp(self):
        self.company = make_company()
        make_ledger(self.company, "Cash", LedgerCategory.CASH, opening_balance="100.00")
        make_ledger(self.company, "Loan", LedgerCategory.LOAN)
        self.journal = create_voucher_type(self.company, {
            "name": "Journal", "category": VoucherCategory.JOURNAL, "prefix": "JRN/",
        })
        create_voucher(self.company, voucher_data(
            self.journal, [debit("Cash", 5000), credit("Loan", 5000)], date="2024-02-01"
        ))

    def test_closing_balances_become_openings(self):
        result = carry_forward_balances(self.company, YEAR_END, "2024-04-01")
        self.assertEqual(result["count"], 2)

        cash = Ledger.objects.get(company=self.company, name="Cash")
        self.assertEqual(cash.opening_balance, Decimal("5100.00"))
        self.assertEqual(cash.opening_balance_type, EntryType.DEBIT)
        self.assertEqual(cash.opening_balance_date, datetime.date(2024, 4, 1))

        loan = Ledger.objects.get(company=self.company, name="Loan")
        self.assertEqual(loan.opening_balance, Decimal("5000.00"))
        self.assertEqual(loan.opening_balance_type, EntryType.CREDIT)

    def test_balances_are_not_double_counted_in_the_new_year(self):
        carry_forward_balances(self.company, YEAR_END, "2024-04-01")
        create_voucher(self.company, voucher_data(
            self.journal, [debit("Cash", 50), credit("Loan", 50)], date="2024-04-10"
        ))

        as_of = datetime.date(2024, 4, 30)
        self.assertEqual(
            get_ledger_balance(self.company, "Cash", as_of), (Decimal("5150.00"), EntryType.DEBIT)
        )
        self.assertEqual(
            get_ledger_balance(self.company, "Loan", as_of), (Decimal("5050.00"), EntryType.CREDIT)
        )

    def test_year_start_must_follow_year_end(self):
        with self.assertRaises(ValidationError):
            carry_forward_balances(self.company, YEAR_END, YEAR_END)

    def test_vouchers_in_the_gap_rejected(self):
        create_voucher(self.company, voucher_data(
            self.journal, [debit("Cash", 1), credit("Loan", 1)], date="2024-04-05"
        ))
        with self.assertRaises(ValidationError):
            carry_forward_balances(self.company, YEAR_END, "2024-04-10")

    def test_running_twice_for_the_same_year_rejected(self):
        carry_forward_balances(self.company, YEAR_END, "2024-04-01")
        with self.assertRaises(ValidationError):
            carry_forward_balances(self.company, datetime.date(2023, 3, 31), "2023-04-01")

    def test_tenant_without_ledgers_rejected(self):
        other = make_company(name="Other", slug="other")
        with self.assertRaises(ValidationError):
            carry_forward_balances(other, YEAR_END, "2024-04-01")
