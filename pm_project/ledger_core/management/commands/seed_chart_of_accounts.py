from django.core.management.base import BaseCommand
from django.db import transaction

from ledger_core.services.chart import (GENERAL_PAYABLE_ACCOUNT,
                                        get_or_create_account,
                                        standard_accounts,
                                        vendor_payable_account)


class Command(BaseCommand):
    help = "Creates the standard chart of accounts (idempotent)."

    # Define command-line argument
    def add_arguments(self, parser):
        parser.add_argument(
            "--vendor",
            action="append",
            default=[],
            help="Also create a payable sub-account for this vendor (repeatable)",
        )

    def handle(self, *args, **options):
        created = 0
        with transaction.atomic():
            for code, name, ac_type in standard_accounts():
                account = get_or_create_account(code, name, ac_type)
                if account.name == name and account.ac_type == ac_type:
                    self.stdout.write(f"  {account}")
                else:
                    # existing code kept its original name/type
                    self.stdout.write(self.style.WARNING(
                        f"  {account} (expected {name}, {ac_type})"))
                created += 1
            for vendor in options["vendor"]:
                account = vendor_payable_account(vendor)
                self.stdout.write(
                    f"  {account} under {GENERAL_PAYABLE_ACCOUNT[0]}")

        self.stdout.write(self.style.SUCCESS(
            f"Chart of accounts ready ({created} standard accounts)."))
