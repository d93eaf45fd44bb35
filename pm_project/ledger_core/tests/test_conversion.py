import datetime
from decimal import Decimal
from unittest.mock import patch
from django.db import DatabaseError
from django.test import TestCase
from ..actors import Actor
from ..clock import FixedClock
from ..exceptions import ConversionPartialFailure, InvalidTransitionError
from ..models import Expense, LedgerTransaction, MonthlyRequest, Quotation, RequestItem
from ..services import (add_item, add_quotation, approve_request,
                        convert_to_expenses, update_request)
from ..services import chart, conversion


class ConvertToExpensesTests(TestCase):
    def setUp(self):
        self.clock = FixedClock(datetime.datetime(2025, 9, 15, 10, 0, tzinfo=datetime.timezone.utc))
        self.finance = Actor(id="u-fin", email="finance@example.com", role="finance")

    def _request(self, items, status="approved", **extra):
        request = MonthlyRequest.objects.create(
            title=extra.pop("title", "September operations"),
            residence_id="res-1",
            month=9,
            year=2025,
            status=status,
            submitted_by="manager@example.com",
            **extra,
        )
        for position, data in enumerate(items):
            data = dict(data)
            quotation = data.pop("quotation", None)
            item = RequestItem.objects.create(request=request, position=position, **data)
            if quotation:
                Quotation.objects.create(item=item, is_selected=True, **quotation)
        request.refresh_from_db()
        return request

    def test_each_item_gets_one_balanced_transaction(self):
        request = self._request([
            {"title": "Water", "estimated_cost": Decimal("50.00"), "category": "utilities"},
            {"title": "Plumbing repair", "estimated_cost": Decimal("200.00"),
             "category": "maintenance",
             "quotation": {"provider": "Acme Plumbing", "amount": Decimal("200.00")}},
            {"title": "Night patrol", "estimated_cost": Decimal("80.00"),
             "category": "services", "provider": "SecureGuard"},
            {"title": "Cleaning", "estimated_cost": Decimal("15.00"), "quantity": 2,
             "category": "services"},
        ])

        result = convert_to_expenses(request, self.finance, clock=self.clock)

        self.assertTrue(result.success)
        self.assertEqual(len(result.expenses), 4)
        self.assertEqual(result.total_amount, Decimal("360.00"))
        tx_ids = {e.transaction.transaction_id for e in result.expenses}
        self.assertEqual(len(tx_ids), 4)
        for expense in result.expenses:
            self.assertTrue(expense.transaction.is_balanced())
            self.assertEqual(expense.transaction.total_debit, expense.amount)
            self.assertEqual(expense.expense_date, datetime.date(2025, 9, 1))

        credits = [e.transaction.accounts("credit")[0] for e in result.expenses]
        self.assertEqual(credits[0], "2000")
        self.assertEqual(credits[1], chart.vendor_payable_code("Acme Plumbing"))
        self.assertEqual(credits[2], chart.vendor_payable_code("SecureGuard"))
        self.assertEqual(credits[3], "2000")
        self.assertEqual(result.expenses[3].amount, Decimal("30.00"))

        request.refresh_from_db()
        self.assertEqual(request.status, "completed")
        self.assertEqual(request.accounting_date, datetime.date(2025, 9, 1))

    def test_posting_carries_request_metadata(self):
        request = self._request([
            {"title": "Plumbing repair", "estimated_cost": Decimal("120.00"),
             "quotation": {"provider": "Acme Plumbing", "amount": Decimal("120.00")}},
        ])

        result = convert_to_expenses(request, self.finance, clock=self.clock)

        tx = result.expenses[0].transaction
        self.assertEqual(tx.source, "expense_accrual")
        self.assertEqual(tx.source_model, "Request")
        self.assertEqual(tx.source_id, str(request.pk))
        self.assertEqual(tx.reference, f"REQ-{request.pk}-0")
        self.assertEqual(tx.residence_id, "res-1")
        self.assertEqual(tx.metadata["vendor"], "Acme Plumbing")
        self.assertEqual(tx.metadata["item_index"], 0)
        self.assertEqual((tx.metadata["month"], tx.metadata["year"]), (9, 2025))

    def test_cash_request_credits_cash_for_items_without_vendor(self):
        request = self._request(
            [{"title": "Cleaning", "estimated_cost": Decimal("40.00")}],
            payment_method="Cash",
        )
        result = convert_to_expenses(request, self.finance, clock=self.clock)
        self.assertEqual(result.expenses[0].transaction.accounts("credit"), ["1015"])

    def test_explicit_approval_date_used_for_posting_and_expense(self):
        request = self._request([{"title": "Water", "estimated_cost": Decimal("50.00")}])
        result = convert_to_expenses(
            request, self.finance, date_approved=datetime.date(2025, 9, 12), clock=self.clock)

        expense = result.expenses[0]
        self.assertEqual(expense.expense_date, datetime.date(2025, 9, 12))
        self.assertEqual(expense.transaction.date, datetime.date(2025, 9, 12))

    def test_failing_item_rolls_request_back_to_pending(self):
        request = self._request(
            [
                {"title": "Water", "estimated_cost": Decimal("50.00")},
                {"title": "Generator", "estimated_cost": Decimal("900.00"), "category": "equipment"},
                {"title": "Electricity", "estimated_cost": Decimal("120.00")},
            ],
            approved_by="finance@example.com",
            approved_at=self.clock.now(),
        )
        real_create = chart._create_account

        def refuse_equipment(code, *args, **kwargs):
            if code == "5019":
                raise DatabaseError("account table locked")
            return real_create(code, *args, **kwargs)

        with patch("ledger_core.services.chart._create_account", side_effect=refuse_equipment):
            result = convert_to_expenses(request, self.finance, clock=self.clock)

        self.assertFalse(result.success)
        self.assertEqual(len(result.expenses), 2)
        self.assertEqual(len(result.errors), 1)
        self.assertEqual(result.errors[0].item_title, "Generator")
        self.assertEqual(result.errors[0].item_index, 1)
        self.assertEqual(Expense.objects.filter(request=request).count(), 2)
        self.assertEqual(LedgerTransaction.objects.count(), 2)
        with self.assertRaises(ConversionPartialFailure) as ctx:
            result.raise_for_errors()
        self.assertEqual(ctx.exception.errors[0].item_title, "Generator")

        request.refresh_from_db()
        self.assertEqual(request.status, "pending")
        self.assertEqual(request.approved_by, "")
        self.assertIsNone(request.approved_at)
        self.assertEqual(request.history.last().action, "conversion_failed")

    def test_retry_after_failure_does_not_post_twice(self):
        request = self._request([
            {"title": "Water", "estimated_cost": Decimal("50.00")},
            {"title": "Generator", "estimated_cost": Decimal("900.00"), "category": "equipment"},
        ])
        real_create = chart._create_account

        def refuse_equipment(code, *args, **kwargs):
            if code == "5019":
                raise DatabaseError("account table locked")
            return real_create(code, *args, **kwargs)

        with patch("ledger_core.services.chart._create_account", side_effect=refuse_equipment):
            convert_to_expenses(request, self.finance, clock=self.clock)

        result = approve_request(request, self.finance, clock=self.clock)

        self.assertTrue(result.success)
        self.assertEqual(len(result.expenses), 2)
        self.assertEqual(Expense.objects.filter(request=request).count(), 2)
        self.assertEqual(LedgerTransaction.objects.count(), 2)
        self.assertEqual(result.request.status, "completed")

    def test_completed_request_cannot_be_converted_again(self):
        request = self._request([{"title": "Water", "estimated_cost": Decimal("50.00")}])
        convert_to_expenses(request, self.finance, clock=self.clock)

        with self.assertRaises(InvalidTransitionError):
            convert_to_expenses(request, self.finance, clock=self.clock)
        self.assertEqual(LedgerTransaction.objects.count(), 1)
        self.assertEqual(Expense.objects.count(), 1)

    def test_only_approved_instances_convert(self):
        pending = self._request([{"title": "Water", "estimated_cost": Decimal("50.00")}],
                                status="pending")
        with self.assertRaises(InvalidTransitionError):
            convert_to_expenses(pending, self.finance, clock=self.clock)

        template = MonthlyRequest.objects.create(
            title="Utilities template", residence_id="res-1", is_template=True)
        with self.assertRaises(InvalidTransitionError):
            convert_to_expenses(template, self.finance, clock=self.clock)
        self.assertFalse(LedgerTransaction.objects.exists())

    def test_request_without_items_is_not_a_success(self):
        request = self._request([])
        result = convert_to_expenses(request, self.finance, clock=self.clock)

        self.assertFalse(result.success)
        self.assertEqual(result.errors, [])
        with self.assertRaises(ConversionPartialFailure):
            result.raise_for_errors()
        request.refresh_from_db()
        self.assertEqual(request.status, "pending")

    def test_zero_cost_item_reported_as_error(self):
        request = self._request([
            {"title": "Water", "estimated_cost": Decimal("50.00")},
            {"title": "Donated paint", "estimated_cost": Decimal("0.00")},
        ])
        result = convert_to_expenses(request, self.finance, clock=self.clock)

        self.assertEqual(len(result.expenses), 1)
        self.assertEqual(result.errors[0].item_title, "Donated paint")

    def test_expense_failure_rolls_back_its_posting(self):
        request = self._request([{"title": "Water", "estimated_cost": Decimal("50.00")}])

        with patch.object(Expense.objects, "create", side_effect=DatabaseError("disk full")):
            result = convert_to_expenses(request, self.finance, clock=self.clock)

        self.assertFalse(result.success)
        self.assertTrue(result.errors[0].transaction_id.startswith("TXN"))
        # the item's posting and expense land together or not at all
        self.assertFalse(LedgerTransaction.objects.exists())

    def test_deadline_stops_remaining_items(self):
        request = self._request([
            {"title": "Water", "estimated_cost": Decimal("50.00")},
            {"title": "Electricity", "estimated_cost": Decimal("120.00")},
            {"title": "Internet", "estimated_cost": Decimal("40.00")},
        ])
        real_post = conversion.post

        def slow_post(event, clock):
            tx = real_post(event, clock=clock)
            clock.advance(seconds=45)
            return tx

        with patch("ledger_core.services.conversion.post", side_effect=slow_post):
            result = convert_to_expenses(
                request, self.finance, clock=self.clock, timeout_seconds=30)

        self.assertTrue(result.timed_out)
        self.assertEqual(len(result.expenses), 1)
        self.assertEqual([e.item_title for e in result.errors], ["Electricity", "Internet"])
        request.refresh_from_db()
        self.assertEqual(request.status, "pending")


class PartiallyPostedRequestTests(TestCase):
    def setUp(self):
        self.clock = FixedClock(datetime.datetime(2025, 9, 15, 10, 0, tzinfo=datetime.timezone.utc))
        self.finance = Actor(id="u-fin", email="finance@example.com", role="finance")
        self.request = MonthlyRequest.objects.create(
            title="September operations", residence_id="res-1", month=9, year=2025,
            status="approved", submitted_by="manager@example.com")
        self.water = RequestItem.objects.create(
            request=self.request, position=0, title="Water", estimated_cost=Decimal("50.00"))
        RequestItem.objects.create(
            request=self.request, position=1, title="Generator",
            estimated_cost=Decimal("900.00"), category="equipment")
        real_create = chart._create_account

        def refuse_equipment(code, *args, **kwargs):
            if code == "5019":
                raise DatabaseError("account table locked")
            return real_create(code, *args, **kwargs)

        with patch("ledger_core.services.chart._create_account", side_effect=refuse_equipment):
            convert_to_expenses(self.request, self.finance, clock=self.clock)
        self.request.refresh_from_db()

    def test_posted_items_are_locked_while_pending(self):
        self.assertEqual(self.request.status, "pending")

        with self.assertRaises(InvalidTransitionError):
            add_quotation(self.water, self.finance, "Acme Water", Decimal("80.00"), clock=self.clock)
        with self.assertRaises(InvalidTransitionError):
            add_item(self.request, self.finance, clock=self.clock,
                     title="Internet", estimated_cost=Decimal("30.00"))
        with self.assertRaises(InvalidTransitionError):
            update_request(self.request, self.finance, clock=self.clock, payment_method="Cash")

        # descriptive fields stay editable
        update_request(self.request, self.finance, clock=self.clock, notes="Generator retry")
        self.request.refresh_from_db()
        self.assertEqual(self.request.total_estimated_cost, Decimal("950.00"))

    def test_changed_item_is_not_covered_by_its_old_expense(self):
        self.water.estimated_cost = Decimal("80.00")
        self.water.save()

        result = approve_request(self.request, self.finance, clock=self.clock)

        self.assertFalse(result.success)
        self.assertEqual([e.item_title for e in result.errors], ["Water"])
        self.assertIn("changed since its expense was posted", result.errors[0].message)
        self.assertTrue(result.errors[0].transaction_id.startswith("TXN"))
        self.assertEqual(result.request.status, "pending")
        self.assertEqual(Expense.objects.get(item_index=0).amount, Decimal("50.00"))

    def test_unchanged_items_complete_on_retry(self):
        result = approve_request(self.request, self.finance, clock=self.clock)

        self.assertTrue(result.success)
        self.assertEqual(result.total_amount, result.request.total_estimated_cost)
        self.assertEqual(LedgerTransaction.objects.count(), 2)
