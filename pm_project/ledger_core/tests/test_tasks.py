import datetime
from decimal import Decimal
from io import StringIO
from unittest.mock import patch
from django.core import mail
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError
from django.test import TestCase
from ..models import Account, Expense, MonthlyRequest, RequestItem
from ..services.chart import standard_accounts, vendor_payable_code
from ..tasks import flag_overdue_expenses, notify_request_outcome


class NotificationTaskTests(TestCase):
    def setUp(self):
        self.request = MonthlyRequest.objects.create(
            title="Utilities", residence_id="res-1", month=9, year=2025, status="completed",
            created_by="manager@example.com", submitted_by="manager@example.com")

    def test_outcome_mailed_to_submitter(self):
        sent = notify_request_outcome(self.request.pk, "approved", "finance@example.com")

        self.assertTrue(sent)
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ["manager@example.com"])
        self.assertEqual(message.subject, "Request approved: Utilities")
        self.assertIn("September 2025", message.body)
        self.assertIn("Reviewed by: finance@example.com", message.body)

    def test_missing_request_is_skipped(self):
        self.assertFalse(notify_request_outcome(self.request.pk + 100, "approved"))
        self.assertEqual(len(mail.outbox), 0)


class OverdueTaskTests(TestCase):
    def test_task_flags_old_pending_expenses(self):
        Expense.objects.create(
            expense_id="EXP_old", residence_id="res-1", category="Other",
            amount=Decimal("10.00"), expense_date=datetime.date(2020, 1, 1))

        self.assertEqual(flag_overdue_expenses(), 1)
        self.assertEqual(Expense.objects.get(expense_id="EXP_old").payment_status, "Overdue")


class SeedChartCommandTests(TestCase):
    def test_seed_is_idempotent(self):
        out = StringIO()
        call_command("seed_chart_of_accounts", stdout=out)
        call_command("seed_chart_of_accounts", stdout=out)

        self.assertEqual(Account.objects.count(), len(standard_accounts()))
        self.assertIn("Chart of accounts ready", out.getvalue())

    def test_vendor_payables_created_on_request(self):
        call_command("seed_chart_of_accounts", "--vendor", "Acme Plumbing",
                     "--vendor", "SecureGuard", stdout=StringIO())

        self.assertEqual(Account.objects.vendor_payables().count(), 2)
        self.assertTrue(Account.objects.filter(code=vendor_payable_code("Acme Plumbing")).exists())


class ProcessRequestCommandTests(TestCase):
    def setUp(self):
        self.request = MonthlyRequest.objects.create(
            title="Utilities", residence_id="res-1", month=9, year=2025, status="pending",
            submitted_by="manager@example.com")
        RequestItem.objects.create(
            request=self.request, title="Water", estimated_cost=Decimal("50.00"))

    def test_approve_converts_request(self):
        out = StringIO()
        call_command("process_request", "approve", str(self.request.pk),
                     "--email", "finance@example.com", stdout=out)

        self.request.refresh_from_db()
        self.assertEqual(self.request.status, "completed")
        self.assertIn("is now completed", out.getvalue())
        self.assertEqual(self.request.expenses.count(), 1)

    def test_reject_with_reason(self):
        call_command("process_request", "reject", str(self.request.pk),
                     "--email", "finance@example.com", "--reason", "Duplicate",
                     stdout=StringIO())

        self.request.refresh_from_db()
        self.assertEqual(self.request.status, "rejected")
        self.assertEqual(self.request.rejection_reason, "Duplicate")

    def test_non_approver_refused(self):
        with self.assertRaises(CommandError):
            call_command("process_request", "approve", str(self.request.pk),
                         "--email", "manager@example.com", "--role", "user",
                         stdout=StringIO())

    def test_failed_conversion_reported(self):
        with patch("ledger_core.services.chart._create_account",
                   side_effect=DatabaseError("read-only replica")):
            with self.assertRaises(CommandError):
                call_command("process_request", "approve", str(self.request.pk),
                             "--email", "finance@example.com",
                             stdout=StringIO(), stderr=StringIO())

        self.request.refresh_from_db()
        self.assertEqual(self.request.status, "pending")

    def test_unknown_request(self):
        with self.assertRaises(CommandError):
            call_command("process_request", "approve", "99999",
                         "--email", "finance@example.com", stdout=StringIO())
