from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction
from django.test import TestCase

from ledger_core.exceptions import NotFoundError
from ledger_core.models import (Bill, BillType, EntryType, Ledger,
                                LedgerCategory, Voucher)
from ledger_core.services.bills import create_bill, settle_bill
from ledger_core.services.ledgers import get_ledger_balance
from ledger_core.services.numbering import reserve_number
from ledger_core.services.posting import (create_reversing_journal,
                                          create_voucher)

from .factories import (credit, debit, make_company, make_ledger,
                        make_sales_type, voucher_data)


class TenantIsolationManagerTests(TestCase):
    def setUp(self):
        self.company_a = make_company(name="Company A", slug="com_a")
        self.company_b = make_company(name="Company B", slug="com_b")
        self.sales_a = make_sales_type(self.company_a)
        self.sales_b = make_sales_type(self.company_b)

        # same ledger name in both companies
        make_ledger(self.company_a, "Cash", LedgerCategory.CASH)
        make_ledger(self.company_b, "Cash", LedgerCategory.CASH)

        self.voucher_a = create_voucher(
            self.company_a, voucher_data(self.sales_a, [debit("Cash", 200), credit("Sales", 200)])
        )
        self.voucher_b = create_voucher(
            self.company_b, voucher_data(self.sales_b, [debit("Cash", 100), credit("Sales", 100)])
        )

    def test_for_company_returns_only_that_company_objects(self):
        """Compare voucher primary keys"""
        self.assertListEqual(
            list(
                Voucher.objects.for_company(self.company_a)
                .order_by("id")
                .values_list("pk", flat=True)
            ),
            [self.voucher_a.pk],
        )
        self.assertListEqual(
            list(
                Voucher.objects.for_company(self.company_b)
                .order_by("id")
                .values_list("pk", flat=True)
            ),
            [self.voucher_b.pk],
        )

    def test_get_other_company_object_raises_does_not_exist(self):
        # `for_company` shouldn't return the other company's record
        with self.assertRaises(Voucher.DoesNotExist):
            Voucher.objects.for_company(self.company_a).get(pk=self.voucher_b.pk)

    def test_numbering_is_per_tenant(self):
        # both tenants start at SAL/1
        self.assertEqual(self.voucher_a.voucher_number, "SAL/1")
        self.assertEqual(self.voucher_b.voucher_number, "SAL/1")
        with self.assertRaises(NotFoundError):
            reserve_number(self.company_a, self.sales_b.pk)

    def test_balances_only_count_own_entries(self):
        self.assertEqual(get_ledger_balance(self.company_a, "Cash"), (Decimal("200.00"), EntryType.DEBIT))
        self.assertEqual(get_ledger_balance(self.company_b, "Cash"), (Decimal("100.00"), EntryType.DEBIT))

    def test_cannot_reverse_other_tenants_voucher(self):
        with self.assertRaises(NotFoundError):
            create_reversing_journal(self.company_a, self.voucher_b.pk)


@pytest.mark.django_db
def test_bill_of_other_tenant_cannot_be_settled():
    company_a = make_company(name="Company A", slug="com_a")
    company_b = make_company(name="Company B", slug="com_b")
    sales_b = make_sales_type(company_b)

    bill_a = create_bill(company_a, {
        "bill_type": BillType.RECEIVABLE,
        "bill_number": "INV-1",
        "ledger_name": "Customer",
        "amount": 100,
    })
    voucher_b = create_voucher(company_b, voucher_data(sales_b, [
        debit("Bank", 100),
        credit("Customer", 100, bill_references=[{"reference": "INV-1", "amount": 100}]),
    ]))

    with pytest.raises(NotFoundError):
        settle_bill(company_b, bill_a.pk, {
            "voucher_id": voucher_b.pk,
            "voucher_entry_id": voucher_b.entries.get(ledger_name="Customer").pk,
            "amount": 100,
        })

    bill_a.refresh_from_db()
    assert bill_a.outstanding_amount == Decimal("100.00")
    assert Bill.objects.for_company(company_b).count() == 0


@pytest.mark.django_db
def test_ledger_names_are_unique_per_company_ignoring_case():
    company_a = make_company(name="Company A", slug="com_a")
    company_b = make_company(name="Company B", slug="com_b")
    make_ledger(company_a, "Sales", LedgerCategory.DIRECT_INCOME)

    with pytest.raises(IntegrityError), transaction.atomic():
        make_ledger(company_a, "SALES", LedgerCategory.DIRECT_INCOME)

    # the same name is free in another tenant
    make_ledger(company_b, "SALES", LedgerCategory.DIRECT_INCOME)
    assert Ledger.objects.filter(name__iexact="sales").count() == 2
