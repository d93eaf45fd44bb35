from django.core.exceptions import PermissionDenied, ValidationError
from django.core.management.base import BaseCommand, CommandError

from ledger_core.actors import Actor
from ledger_core.exceptions import ConversionPartialFailure
from ledger_core.models import MonthlyRequest
from ledger_core.services import (approve_request, convert_to_expenses,
                                  reject_request, submit_request)

ACTIONS = ("submit", "approve", "reject", "convert")


class Command(BaseCommand):
    help = "Moves a monthly request through its workflow (submit/approve/reject/convert)."

    def add_arguments(self, parser):
        parser.add_argument("action", choices=ACTIONS)
        parser.add_argument("request_id", type=int)
        parser.add_argument("--email", required=True, help="Acting user's email")
        parser.add_argument("--role", default="finance", help="Acting user's role")
        parser.add_argument("--user-id", default="", help="Acting user's id")
        parser.add_argument("--reason", default="", help="Rejection reason")
        parser.add_argument("--notes", default="", help="Approval notes")

    def handle(self, *args, **options):
        try:
            request = MonthlyRequest.objects.get(pk=options["request_id"])
        except MonthlyRequest.DoesNotExist:
            raise CommandError(f"Request {options['request_id']} does not exist")

        actor = Actor(
            id=options["user_id"] or options["email"],
            email=options["email"],
            role=options["role"],
        )
        action = options["action"]

        try:
            if action == "submit":
                request = submit_request(request, actor)
            elif action == "reject":
                request = reject_request(request, actor, reason=options["reason"])
            elif action == "approve":
                result = approve_request(request, actor, notes=options["notes"])
                request = result.request
                self._report(result.conversion)
            else:
                result = convert_to_expenses(request, actor)
                request = result.request
                self._report(result)
        except (PermissionDenied, ValidationError) as exc:
            raise CommandError(str(exc))
        except ConversionPartialFailure as exc:
            for err in exc.errors:
                self.stderr.write(f"  {err.item_title}: {err.message}")
            raise CommandError(f"Request {request.pk} left in status pending")

        self.stdout.write(self.style.SUCCESS(
            f"Request {request.pk} is now {request.status}"))

    def _report(self, conversion):
        for expense in conversion.expenses:
            self.stdout.write(
                f"  {expense.expense_id} {expense.category} {expense.amount} "
                f"({expense.transaction.transaction_id})")
        conversion.raise_for_errors()
