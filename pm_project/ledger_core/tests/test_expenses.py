import datetime
from decimal import Decimal
from unittest.mock import patch
from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.test import TestCase
from ..actors import Actor
from ..clock import FixedClock
from ..exceptions import PersistenceError
from ..models import Expense, LedgerTransaction, MonthlyRequest, RequestItem
from ..services import (AccountCriteria, PayableCriteria, PostingEvent,
                        category_for_account_name, expense_date_for,
                        flag_overdue_expenses, mark_expense_paid,
                        materialize_expense, post, resolve_account)


class CategoryMappingTests(TestCase):
    def test_account_names_map_to_categories(self):
        expected = {
            "Water & Sewer Expense": "Utilities",
            "Electricity Expense": "Utilities",
            "Utilities Expense": "Utilities",
            "Plumbing Maintenance Expense": "Maintenance",
            "Maintenance Supplies": "Maintenance",
            "Property Tax Expense": "Taxes",
            "Insurance Expense": "Insurance",
            "Salaries & Wages Expense": "Salaries",
            "Supplies Expense": "Supplies",
            "Other Operating Expenses": "Other",
            "Gasket Stock": "Other",
            "Taxi Expense": "Other",
            "Building Materials": "Supplies",
            "": "Other",
        }
        for name, category in expected.items():
            self.assertEqual(category_for_account_name(name), category, name)

    def test_resolved_accounts_round_trip_to_their_category(self):
        cases = [
            ("Maintenance", "Plumbing leak"),
            ("Utilities", "Water"),
            ("Taxes", "Property tax"),
            ("Insurance", "Building insurance"),
            ("Salaries", "Groundsman salary"),
            ("Supplies", "Stationery"),
            ("Other", "Miscellaneous"),
        ]
        for category, title in cases:
            account = resolve_account(AccountCriteria(title=title))
            self.assertEqual(category_for_account_name(account.name), category, title)


class ExpenseDateTests(TestCase):
    def setUp(self):
        self.clock = FixedClock(datetime.datetime(2025, 9, 15, 10, 0, tzinfo=datetime.timezone.utc))
        self.request = MonthlyRequest.objects.create(
            title="Utilities", residence_id="res-1", month=8, year=2025, status="approved")

    def test_explicit_approval_date_wins(self):
        self.assertEqual(
            expense_date_for(self.request, datetime.date(2025, 9, 3), self.clock),
            datetime.date(2025, 9, 3),
        )
        self.assertEqual(
            expense_date_for(self.request, datetime.datetime(2025, 9, 4, 8, 30), self.clock),
            datetime.date(2025, 9, 4),
        )

    def test_request_month_used_when_no_date(self):
        self.assertEqual(expense_date_for(self.request, None, self.clock), datetime.date(2025, 8, 1))

    def test_today_as_last_resort(self):
        self.assertEqual(expense_date_for(None, None, self.clock), datetime.date(2025, 9, 15))


class MaterializeExpenseTests(TestCase):
    def setUp(self):
        self.clock = FixedClock(datetime.datetime(2025, 9, 15, 10, 0, tzinfo=datetime.timezone.utc))
        self.actor = Actor(id="u-fin", email="finance@example.com", role="finance")
        self.request = MonthlyRequest.objects.create(
            title="Utilities — September", residence_id="res-1", month=9, year=2025,
            status="approved")
        self.item = RequestItem.objects.create(
            request=self.request, title="Water", estimated_cost=Decimal("50.00"),
            category="utilities")
        self.tx = post(
            PostingEvent(
                amount=Decimal("50.00"),
                debit=AccountCriteria.from_item(self.item),
                credit=PayableCriteria(),
                description="Utilities — September: Water",
                date=datetime.date(2025, 9, 1),
            ),
            clock=self.clock,
        )

    def test_expense_links_to_its_transaction(self):
        expense = materialize_expense(
            self.item, self.tx, self.request, self.actor, item_index=0, clock=self.clock)

        self.assertEqual(expense.transaction, self.tx)
        self.assertEqual(expense.amount, Decimal("50.00"))
        self.assertEqual(expense.category, "Utilities")
        self.assertEqual(expense.expense_date, datetime.date(2025, 9, 1))
        self.assertEqual(expense.payment_status, "Pending")
        self.assertEqual(expense.residence_id, "res-1")
        self.assertEqual(expense.created_by, "finance@example.com")
        self.assertTrue(expense.expense_id.startswith("EXP_"))
        self.assertTrue(expense.expense_id.endswith("_item_0"))
        self.assertEqual(list(self.tx.expenses.all()), [expense])

    def test_unsaved_transaction_rejected(self):
        unsaved = LedgerTransaction(transaction_id="TXN0NOTSAVED")
        with self.assertRaises(PersistenceError) as ctx:
            materialize_expense(
                self.item, unsaved, self.request, self.actor, item_index=0, clock=self.clock)
        self.assertEqual(ctx.exception.transaction_id, "TXN0NOTSAVED")
        self.assertFalse(Expense.objects.exists())

    def test_storage_failure_reports_transaction_id(self):
        with patch.object(Expense.objects, "create", side_effect=DatabaseError("disk full")):
            with self.assertRaises(PersistenceError) as ctx:
                materialize_expense(
                    self.item, self.tx, self.request, self.actor, item_index=0, clock=self.clock)
        self.assertEqual(ctx.exception.transaction_id, self.tx.transaction_id)

    def test_request_expense_requires_transaction(self):
        with self.assertRaises(ValidationError):
            Expense.objects.create(
                expense_id="EXP_manual", residence_id="res-1", category="Other",
                amount=Decimal("5.00"), expense_date=datetime.date(2025, 9, 1),
                request=self.request, item_index=3)


class MarkExpensePaidTests(TestCase):
    def setUp(self):
        self.clock = FixedClock(datetime.datetime(2025, 9, 20, 9, 0, tzinfo=datetime.timezone.utc))
        self.actor = Actor(id="u-fin", email="finance@example.com", role="finance")
        self.request = MonthlyRequest.objects.create(
            title="September services", residence_id="res-1", month=9, year=2025,
            status="approved")

    def _accrued(self, title, credit, index=0):
        item = RequestItem.objects.create(
            request=self.request, position=index, title=title, estimated_cost=Decimal("80.00"))
        tx = post(
            PostingEvent(
                amount=item.line_total,
                debit=AccountCriteria.from_item(item),
                credit=credit,
                description=title,
                date=datetime.date(2025, 9, 1),
            ),
            clock=self.clock,
        )
        return materialize_expense(
            item, tx, self.request, self.actor, item_index=index, clock=self.clock)

    def test_vendor_accrual_settled_from_bank(self):
        expense = self._accrued("Water delivery", PayableCriteria(provider="City Water Co"))

        paid = mark_expense_paid(expense, self.actor, "Bank Transfer", clock=self.clock)

        self.assertEqual(paid.payment_status, "Paid")
        self.assertEqual(paid.payment_method, "Bank Transfer")
        self.assertEqual(paid.paid_date, datetime.date(2025, 9, 20))
        self.assertEqual(paid.paid_by, "finance@example.com")
        payment = paid.payment_transaction
        self.assertEqual(payment.source, "vendor_payment")
        self.assertTrue(payment.accounts("debit")[0].startswith("2000-"))
        self.assertEqual(payment.accounts("credit"), ["1000"])
        self.assertEqual(payment.total_debit, Decimal("80.00"))

    def test_general_payable_settled_from_cash(self):
        expense = self._accrued("Security patrol", PayableCriteria())

        paid = mark_expense_paid(expense, self.actor, "Cash", clock=self.clock)

        self.assertEqual(paid.payment_transaction.source, "payment")
        self.assertEqual(paid.payment_transaction.accounts("debit"), ["2000"])
        self.assertEqual(paid.payment_transaction.accounts("credit"), ["1015"])

    def test_cash_accrual_only_changes_status(self):
        expense = self._accrued("Cleaning", PayableCriteria(payment_method="Cash"))

        paid = mark_expense_paid(expense, self.actor, "Cash", clock=self.clock)

        self.assertEqual(paid.payment_status, "Paid")
        self.assertIsNone(paid.payment_transaction)
        self.assertEqual(LedgerTransaction.objects.count(), 1)

    def test_cannot_pay_twice_or_without_method(self):
        expense = self._accrued("Cleaning", PayableCriteria())
        with self.assertRaises(ValidationError):
            mark_expense_paid(expense, self.actor, "", clock=self.clock)

        paid = mark_expense_paid(expense, self.actor, "Ecocash", clock=self.clock)
        with self.assertRaises(ValidationError):
            mark_expense_paid(paid, self.actor, "Ecocash", clock=self.clock)


class OverdueTests(TestCase):
    def setUp(self):
        self.clock = FixedClock(datetime.datetime(2025, 9, 15, 10, 0, tzinfo=datetime.timezone.utc))

    def _expense(self, expense_id, expense_date, status="Pending", method=""):
        return Expense.objects.create(
            expense_id=expense_id, residence_id="res-1", category="Other",
            amount=Decimal("10.00"), expense_date=expense_date,
            payment_status=status, payment_method=method)

    def test_only_stale_pending_expenses_flagged(self):
        stale = self._expense("EXP_old", datetime.date(2025, 7, 1))
        recent = self._expense("EXP_new", datetime.date(2025, 9, 1))
        paid = self._expense("EXP_paid", datetime.date(2025, 6, 1), "Paid", "Cash")

        self.assertEqual(flag_overdue_expenses(days=30, clock=self.clock), 1)

        stale.refresh_from_db()
        recent.refresh_from_db()
        paid.refresh_from_db()
        self.assertEqual(stale.payment_status, "Overdue")
        self.assertEqual(recent.payment_status, "Pending")
        self.assertEqual(paid.payment_status, "Paid")
