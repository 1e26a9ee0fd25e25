import datetime
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase

from ledger_core.exceptions import NotFoundError
from ledger_core.models import (AuditLog, Bill, BillSettlement, BillStatus,
                                BillType, Voucher, VoucherCategory)
from ledger_core.services.bills import (cancel_bill, create_bill,
                                        get_aging_report, get_analytics,
                                        get_cash_flow_projections,
                                        get_outstanding_by_ledger,
                                        get_reminders, list_bills,
                                        settle_bill)
from ledger_core.services.numbering import create_voucher_type
from ledger_core.services.posting import (create_reversing_journal,
                                          create_voucher)

from .factories import (credit, debit, make_company, make_sales_type,
                        voucher_data)


def against(bill_number, amount):
    return [{"reference": bill_number, "amount": amount, "reference_type": "AGAINST"}]


class BillLifecycleTests(TestCase):
    def setUp(self):
        self.company = make_company()
        self.receipt_type = create_voucher_type(self.company, {
            "name": "Receipt", "category": VoucherCategory.RECEIPT, "prefix": "RCT/",
        })
        self.bill = create_bill(self.company, {
            "bill_type": BillType.RECEIVABLE,
            "bill_number": "INV-1",
            "ledger_name": "Customer A",
            "amount": "1000",
            "bill_date": "2024-04-01",
            "due_date": "2024-05-01",
        })

    def make_receipt(self, amount, referenced=None):
        """Receipt voucher whose customer entry names INV-1 in an AGAINST reference."""
        voucher = create_voucher(self.company, voucher_data(self.receipt_type, [
            debit("Bank", amount),
            credit("Customer A", amount, bill_references=against("INV-1", referenced or amount)),
        ], date="2024-04-20"))
        return voucher, voucher.entries.get(ledger_name="Customer A")

    def settle(self, voucher, entry, amount):
        return settle_bill(self.company, self.bill.pk, {
            "voucher_id": voucher.pk,
            "voucher_entry_id": entry.pk,
            "amount": amount,
        })

    def test_new_bill_is_open_with_full_outstanding(self):
        self.assertEqual(self.bill.status, BillStatus.OPEN)
        self.assertEqual(self.bill.outstanding_amount, Decimal("1000.00"))
        self.assertEqual(self.bill.settled_amount, Decimal("0.00"))

    def test_partial_then_full_settlement_then_overpayment(self):
        voucher, entry = self.make_receipt(1000)

        bill = self.settle(voucher, entry, 400)
        self.assertEqual(bill.outstanding_amount, Decimal("600.00"))
        self.assertEqual(bill.status, BillStatus.PARTIAL)

        bill = self.settle(voucher, entry, 600)
        self.assertEqual(bill.outstanding_amount, Decimal("0.00"))
        self.assertEqual(bill.status, BillStatus.SETTLED)

        with self.assertRaises(ValidationError):
            self.settle(voucher, entry, 1)

        self.bill.refresh_from_db()
        self.assertEqual(self.bill.settled_amount, Decimal("1000.00"))
        self.assertEqual(BillSettlement.objects.filter(bill=self.bill).count(), 2)
        self.assertEqual(AuditLog.objects.filter(action="settle").count(), 2)

    def test_settlement_beyond_outstanding_rejected(self):
        voucher, entry = self.make_receipt(1200)
        with self.assertRaises(ValidationError):
            self.settle(voucher, entry, 1200)

        self.bill.refresh_from_db()
        self.assertEqual(self.bill.outstanding_amount, Decimal("1000.00"))
        self.assertEqual(self.bill.status, BillStatus.OPEN)

    def test_settlement_needs_against_reference(self):
        voucher = create_voucher(self.company, voucher_data(
            self.receipt_type, [debit("Bank", 100), credit("Customer A", 100)]
        ))
        entry = voucher.entries.get(ledger_name="Customer A")
        with self.assertRaises(ValidationError):
            self.settle(voucher, entry, 100)

    def test_settlement_limited_to_referenced_amount(self):
        voucher, entry = self.make_receipt(300, referenced=300)
        self.settle(voucher, entry, 200)
        with self.assertRaises(ValidationError):
            self.settle(voucher, entry, 200)

    def test_amounts_rounded_before_comparison(self):
        voucher, entry = self.make_receipt(1000)
        bill = self.settle(voucher, entry, "999.996")
        self.assertEqual(bill.status, BillStatus.SETTLED)

    def test_cancelled_bill_cannot_be_settled(self):
        voucher, entry = self.make_receipt(100)
        cancel_bill(self.company, self.bill.pk, reason="Raised in error")
        with self.assertRaises(ValidationError):
            self.settle(voucher, entry, 100)

    def test_cancel_sets_status_and_clears_outstanding(self):
        bill = cancel_bill(self.company, self.bill.pk)
        self.assertEqual(bill.status, BillStatus.CANCELLED)
        self.assertEqual(bill.outstanding_amount, Decimal("0.00"))
        with self.assertRaises(ValidationError):
            cancel_bill(self.company, self.bill.pk)

    def test_bill_with_settlements_cannot_be_cancelled(self):
        voucher, entry = self.make_receipt(100)
        self.settle(voucher, entry, 100)
        with self.assertRaises(ValidationError):
            cancel_bill(self.company, self.bill.pk)

    def test_duplicate_bill_number_rejected(self):
        with self.assertRaises(ValidationError):
            create_bill(self.company, {
                "bill_type": BillType.RECEIVABLE,
                "bill_number": "INV-1",
                "ledger_name": "Customer B",
                "amount": 5,
            })

    def test_non_positive_amount_rejected(self):
        with self.assertRaises(ValidationError):
            create_bill(self.company, {
                "bill_type": BillType.PAYABLE,
                "bill_number": "P-1",
                "ledger_name": "Supplier",
                "amount": 0,
            })

    def test_voucher_of_other_tenant_rejected(self):
        other = make_company(name="Other", slug="other")
        sales = make_sales_type(other)
        foreign = create_voucher(other, voucher_data(sales, [debit("Cash", 5), credit("Sales", 5)]))
        with self.assertRaises(NotFoundError):
            create_bill(self.company, {
                "bill_type": BillType.RECEIVABLE,
                "bill_number": "INV-2",
                "ledger_name": "Customer A",
                "amount": 5,
                "voucher_id": foreign.pk,
            })

    def test_unknown_bill_raises_not_found(self):
        voucher, entry = self.make_receipt(100)
        with self.assertRaises(NotFoundError):
            settle_bill(self.company, self.bill.pk + 1000, {
                "voucher_id": voucher.pk, "voucher_entry_id": entry.pk, "amount": 100,
            })


class TrackBillsFromVouchersTests(TestCase):
    def setUp(self):
        self.company = make_company()
        self.sales = make_sales_type(self.company)
        self.receipt_type = create_voucher_type(self.company, {
            "name": "Receipt", "category": VoucherCategory.RECEIPT, "prefix": "RCT/",
        })

    def test_new_reference_on_debit_opens_receivable(self):
        voucher = create_voucher(self.company, voucher_data(self.sales, [
            debit("Customer A", 500, bill_references=[
                {"reference": "INV-7", "amount": 500, "reference_type": "NEW",
                 "due_date": "2024-05-01"},
            ]),
            credit("Sales", 500),
        ]), track_bills=True)

        bill = Bill.objects.get(company=self.company, bill_number="INV-7")
        self.assertEqual(bill.bill_type, BillType.RECEIVABLE)
        self.assertEqual(bill.ledger_name, "Customer A")
        self.assertEqual(bill.original_amount, Decimal("500.00"))
        self.assertEqual(bill.due_date, datetime.date(2024, 5, 1))
        self.assertEqual(bill.voucher, voucher)

    def test_new_reference_on_credit_opens_payable(self):
        create_voucher(self.company, voucher_data(self.sales, [
            debit("Purchases", 80),
            credit("Supplier", 80, bill_references=[
                {"reference": "SUP-1", "amount": 80, "reference_type": "NEW"},
            ]),
        ]), track_bills=True)
        self.assertEqual(Bill.objects.get(bill_number="SUP-1").bill_type, BillType.PAYABLE)

    def test_against_reference_settles_bill(self):
        create_voucher(self.company, voucher_data(self.sales, [
            debit("Customer A", 500, bill_references=[
                {"reference": "INV-7", "amount": 500, "reference_type": "NEW"},
            ]),
            credit("Sales", 500),
        ]), track_bills=True)

        receipt = create_voucher(self.company, voucher_data(self.receipt_type, [
            debit("Bank", 200),
            credit("Customer A", 200, bill_references=against("INV-7", 200)),
        ], date="2024-04-10"), track_bills=True)

        bill = Bill.objects.get(bill_number="INV-7")
        self.assertEqual(bill.outstanding_amount, Decimal("300.00"))
        self.assertEqual(bill.status, BillStatus.PARTIAL)
        settlement = bill.settlements.get()
        self.assertEqual(settlement.voucher, receipt)
        self.assertEqual(settlement.settlement_date, datetime.date(2024, 4, 10))

    def test_untracked_voucher_leaves_bills_alone(self):
        create_voucher(self.company, voucher_data(self.sales, [
            debit("Customer A", 500, bill_references=[
                {"reference": "INV-7", "amount": 500, "reference_type": "NEW"},
            ]),
            credit("Sales", 500),
        ]))
        self.assertFalse(Bill.objects.exists())


class ReverseTrackedVoucherTests(TestCase):
    def setUp(self):
        self.company = make_company()
        self.sales = make_sales_type(self.company)
        self.receipt_type = create_voucher_type(self.company, {
            "name": "Receipt", "category": VoucherCategory.RECEIPT, "prefix": "RCT/",
        })

    def receive(self, bill_number, amount, date="2024-04-10"):
        return create_voucher(self.company, voucher_data(self.receipt_type, [
            debit("Bank", amount),
            credit("Customer A", amount, bill_references=against(bill_number, amount)),
        ], date=date), track_bills=True)

    def test_reversing_a_receipt_reopens_the_bill(self):
        create_bill(self.company, {
            "bill_type": BillType.RECEIVABLE,
            "bill_number": "INV-1",
            "ledger_name": "Customer A",
            "amount": 100,
            "bill_date": "2024-04-01",
        })
        receipt = self.receive("INV-1", 100)
        self.assertEqual(Bill.objects.get(bill_number="INV-1").status, BillStatus.SETTLED)

        create_reversing_journal(self.company, receipt.pk, "2024-04-11")

        bill = Bill.objects.get(bill_number="INV-1")
        self.assertEqual(bill.status, BillStatus.OPEN)
        self.assertEqual(bill.outstanding_amount, Decimal("100.00"))
        self.assertEqual(bill.settled_amount, Decimal("0.00"))
        self.assertFalse(bill.settlements.exists())
        self.assertTrue(AuditLog.objects.filter(action="unsettle", object_id=str(bill.pk)).exists())

    def test_reversing_one_of_two_receipts_leaves_bill_partial(self):
        create_bill(self.company, {
            "bill_type": BillType.RECEIVABLE,
            "bill_number": "INV-2",
            "ledger_name": "Customer A",
            "amount": 1000,
            "bill_date": "2024-04-01",
        })
        self.receive("INV-2", 300)
        second = self.receive("INV-2", 300, date="2024-04-12")

        create_reversing_journal(self.company, second.pk)

        bill = Bill.objects.get(bill_number="INV-2")
        self.assertEqual(bill.status, BillStatus.PARTIAL)
        self.assertEqual(bill.settled_amount, Decimal("300.00"))
        self.assertEqual(bill.outstanding_amount, Decimal("700.00"))
        self.assertEqual(bill.settlements.count(), 1)

    def test_reversing_the_opening_voucher_cancels_its_bill(self):
        invoice = create_voucher(self.company, voucher_data(self.sales, [
            debit("Customer A", 500, bill_references=[
                {"reference": "INV-7", "amount": 500, "reference_type": "NEW"},
            ]),
            credit("Sales", 500),
        ]), track_bills=True)

        reversal = create_reversing_journal(self.company, invoice.pk)

        bill = Bill.objects.get(bill_number="INV-7")
        self.assertEqual(bill.status, BillStatus.CANCELLED)
        self.assertEqual(bill.outstanding_amount, Decimal("0.00"))
        log = AuditLog.objects.get(action="reverse", object_id=str(reversal.pk))
        self.assertEqual(log.changes["bills_cancelled"], ["INV-7"])

    def test_opening_voucher_of_a_paid_bill_cannot_be_reversed(self):
        invoice = create_voucher(self.company, voucher_data(self.sales, [
            debit("Customer A", 500, bill_references=[
                {"reference": "INV-8", "amount": 500, "reference_type": "NEW"},
            ]),
            credit("Sales", 500),
        ]), track_bills=True)
        self.receive("INV-8", 200)

        with self.assertRaises(ValidationError):
            create_reversing_journal(self.company, invoice.pk)

        # nothing changed
        bill = Bill.objects.get(bill_number="INV-8")
        self.assertEqual(bill.status, BillStatus.PARTIAL)
        self.assertEqual(bill.outstanding_amount, Decimal("300.00"))
        self.assertFalse(Voucher.objects.filter(reversal_of=invoice).exists())


class BillReportTests(TestCase):
    def setUp(self):
        self.company = make_company()
        self.today = datetime.date(2024, 6, 30)

    def make_bill(self, number, amount, due_days, bill_type=BillType.RECEIVABLE,
                  ledger="Customer A", due=True):
        due_date = self.today + datetime.timedelta(days=due_days)
        return create_bill(self.company, {
            "bill_type": bill_type,
            "bill_number": number,
            "ledger_name": ledger,
            "amount": amount,
            "bill_date": due_date if not due else self.today - datetime.timedelta(days=120),
            "due_date": due_date if due else None,
        })

    def test_aging_buckets(self):
        self.make_bill("B-CUR", 10, 5)
        self.make_bill("B-DUE", 15, 0)
        self.make_bill("B-30", 20, -30)
        self.make_bill("B-45", 30, -45)
        self.make_bill("B-90", 40, -90)
        self.make_bill("B-91", 50, -91)

        report = get_aging_report(self.company, as_on_date=self.today)
        buckets = report["buckets"]

        self.assertEqual(buckets["current"], {"count": 2, "amount": Decimal("25.00")})
        self.assertEqual(buckets["1_30"], {"count": 1, "amount": Decimal("20.00")})
        self.assertEqual(buckets["31_60"], {"count": 1, "amount": Decimal("30.00")})
        self.assertEqual(buckets["61_90"], {"count": 1, "amount": Decimal("40.00")})
        self.assertEqual(buckets["over_90"], {"count": 1, "amount": Decimal("50.00")})
        self.assertEqual(report["total_outstanding"], Decimal("165.00"))
        self.assertEqual(report["total_count"], 6)

    def test_aging_falls_back_to_bill_date(self):
        self.make_bill("NO-DUE", 10, -45, due=False)
        report = get_aging_report(self.company, as_on_date=self.today)
        self.assertEqual(report["bills"][0]["bucket"], "31_60")

    def test_aging_filters_by_type_and_skips_cancelled(self):
        self.make_bill("R-1", 10, -5)
        self.make_bill("P-1", 10, -5, bill_type=BillType.PAYABLE, ledger="Supplier")
        cancelled = self.make_bill("R-2", 99, -5)
        cancel_bill(self.company, cancelled.pk)

        report = get_aging_report(self.company, BillType.RECEIVABLE, self.today)
        self.assertEqual([b["bill_number"] for b in report["bills"]], ["R-1"])

    def test_outstanding_grouped_by_ledger_case_insensitively(self):
        self.make_bill("A-1", 100, 10, ledger="Customer A")
        self.make_bill("A-2", 50, 20, ledger="customer a")
        self.make_bill("B-1", 70, 10, ledger="Customer B")

        groups = get_outstanding_by_ledger(self.company)
        self.assertEqual(len(groups), 2)
        self.assertEqual(groups[0]["bill_count"], 2)
        self.assertEqual(groups[0]["total_outstanding"], Decimal("150.00"))
        self.assertEqual(groups[1]["ledger_name"], "Customer B")

    def test_reminders(self):
        self.make_bill("OVER", 10, -3)
        self.make_bill("SOON", 10, 2)
        self.make_bill("LATER", 10, 6)
        self.make_bill("FAR", 10, 20)

        reminders = get_reminders(self.company, days_before=7, today=self.today)
        by_number = {r["bill_number"]: r for r in reminders}

        self.assertEqual(set(by_number), {"OVER", "SOON", "LATER"})
        self.assertEqual(by_number["OVER"]["reminder_type"], "OVERDUE")
        self.assertEqual(by_number["OVER"]["days_overdue"], 3)
        self.assertEqual(by_number["SOON"]["reminder_type"], "URGENT")
        self.assertEqual(by_number["LATER"]["reminder_type"], "WARNING")
        self.assertEqual(by_number["LATER"]["days_until_due"], 6)

    def test_cash_flow_projections(self):
        self.make_bill("JUL-R", 100, 5)                                  # 2024-07-05
        self.make_bill("AUG-P", 40, 40, bill_type=BillType.PAYABLE, ledger="Supplier")  # 2024-08-09
        self.make_bill("OLD", 999, -60)                                  # before the window

        projections = get_cash_flow_projections(self.company, months=3, today=datetime.date(2024, 7, 1))

        self.assertEqual([p["month"] for p in projections], ["2024-07", "2024-08", "2024-09"])
        self.assertEqual(projections[0]["receivables_expected"], Decimal("100.00"))
        self.assertEqual(projections[1]["payables_expected"], Decimal("40.00"))
        self.assertEqual(projections[1]["net_cash_flow"], Decimal("-40.00"))
        self.assertEqual(projections[2]["bills"], [])

    def test_analytics(self):
        receipt_type = create_voucher_type(self.company, {
            "name": "Receipt", "category": VoucherCategory.RECEIPT,
        })
        bill = self.make_bill("R-1", 1000, -10)
        self.make_bill("P-1", 500, 10, bill_type=BillType.PAYABLE, ledger="Supplier")
        voucher = create_voucher(self.company, voucher_data(receipt_type, [
            debit("Bank", 400),
            credit("Customer A", 400, bill_references=against("R-1", 400)),
        ]))
        settle_bill(self.company, bill.pk, {
            "voucher_id": voucher.pk,
            "voucher_entry_id": voucher.entries.get(ledger_name="Customer A").pk,
            "amount": 400,
        })

        analytics = get_analytics(self.company, today=self.today)
        receivables = analytics["receivables"]

        self.assertEqual(receivables["total"], Decimal("1000.00"))
        self.assertEqual(receivables["settled"], Decimal("400.00"))
        self.assertEqual(receivables["outstanding"], Decimal("600.00"))
        self.assertEqual(receivables["collection_rate"], Decimal("40.00"))
        self.assertEqual(receivables["average_overdue_days"], Decimal("10.00"))
        self.assertEqual(analytics["payables"]["payment_rate"], Decimal("0.00"))
        self.assertEqual(analytics["net_position"], Decimal("100.00"))

    def test_list_bills_filters_and_pages(self):
        for n in range(5):
            self.make_bill(f"R-{n}", 10, n)
        self.make_bill("P-1", 10, 1, bill_type=BillType.PAYABLE, ledger="Supplier")

        page = list_bills(self.company, {"bill_type": BillType.RECEIVABLE, "limit": 2, "offset": 1})
        self.assertEqual(page["total"], 5)
        self.assertEqual(len(page["bills"]), 2)

        self.assertEqual(list_bills(self.company, {"ledger_name": "supplier"})["total"], 1)
        self.assertEqual(list_bills(self.company, {"limit": 1000})["limit"], 200)
