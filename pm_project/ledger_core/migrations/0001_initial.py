import django.db.models.deletion
import django.utils.timezone
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Account",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=32, unique=True)),
                ("name", models.CharField(max_length=200)),
                ("ac_type", models.CharField(choices=[("Asset", "Asset"), ("Liability", "Liability"), ("Equity", "Equity"), ("Income", "Income"), ("Expense", "Expense")], max_length=10)),
                ("category", models.CharField(blank=True, default="", max_length=100)),
                ("description", models.TextField(blank=True, default="")),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("parent", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="children", to="ledger_core.account")),
            ],
            options={
                "ordering": ["code"],
                "indexes": [
                    models.Index(fields=["ac_type"], name="ix_account_type"),
                    models.Index(fields=["parent"], name="ix_account_parent"),
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("transaction_id", models.CharField(max_length=40, unique=True)),
                ("date", models.DateField()),
                ("description", models.TextField(blank=True, default="")),
                ("reference", models.CharField(blank=True, default="", max_length=200)),
                ("entries", models.JSONField(default=list)),
                ("total_debit", models.DecimalField(decimal_places=2, max_digits=18)),
                ("total_credit", models.DecimalField(decimal_places=2, max_digits=18)),
                ("source", models.CharField(choices=[("expense_accrual", "Expense accrual"), ("payment", "Payment"), ("vendor_payment", "Vendor payment"), ("manual", "Manual")], max_length=30)),
                ("source_model", models.CharField(blank=True, default="", max_length=50)),
                ("source_id", models.CharField(blank=True, default="", max_length=64)),
                ("residence_id", models.CharField(blank=True, default="", max_length=64)),
                ("created_by", models.CharField(blank=True, default="", max_length=254)),
                ("status", models.CharField(choices=[("posted", "Posted")], default="posted", max_length=10)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("posted_at", models.DateTimeField()),
            ],
            options={
                "ordering": ["date", "id"],
                "indexes": [
                    models.Index(fields=["source_model", "source_id"], name="ix_ledger_tx_source"),
                    models.Index(fields=["residence_id", "date"], name="ix_ledger_tx_residence_date"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("total_debit", models.F("total_credit"))), name="ck_ledger_tx_balanced"),
                    models.CheckConstraint(condition=models.Q(("total_debit__gt", 0)), name="ck_ledger_tx_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="MonthlyRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True, default="")),
                ("residence_id", models.CharField(max_length=64)),
                ("month", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("year", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("is_template", models.BooleanField(default=False)),
                ("template_version", models.PositiveIntegerField(default=0)),
                ("status", models.CharField(choices=[("draft", "Draft"), ("pending", "Pending"), ("approved", "Approved"), ("rejected", "Rejected"), ("completed", "Completed")], default="draft", max_length=12)),
                ("total_estimated_cost", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("payment_method", models.CharField(blank=True, default="", max_length=30)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_by", models.CharField(blank=True, default="", max_length=254)),
                ("submitted_by", models.CharField(blank=True, default="", max_length=254)),
                ("submitted_by_id", models.CharField(blank=True, default="", max_length=64)),
                ("submitted_at", models.DateTimeField(blank=True, null=True)),
                ("approved_by", models.CharField(blank=True, default="", max_length=254)),
                ("approved_by_id", models.CharField(blank=True, default="", max_length=64)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("rejected_by", models.CharField(blank=True, default="", max_length=254)),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                ("rejection_reason", models.TextField(blank=True, default="")),
                ("accounting_date", models.DateField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("template", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="instances", to="ledger_core.monthlyrequest")),
            ],
            options={
                "ordering": ["-year", "-month", "title"],
                "indexes": [
                    models.Index(fields=["residence_id", "year", "month"], name="ix_request_residence_period"),
                    models.Index(fields=["status"], name="ix_request_status"),
                ],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("is_template", False), models.Q(("status", "rejected"), _negated=True)), fields=("residence_id", "month", "year", "title"), name="uq_request_live_month_title"),
                    models.CheckConstraint(condition=models.Q(("is_template", True), models.Q(("month__gte", 1), ("month__lte", 12), ("year__gte", 2020)), _connector="OR"), name="ck_request_instance_month_year"),
                ],
            },
        ),
        migrations.CreateModel(
            name="RequestItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("position", models.PositiveIntegerField(default=0)),
                ("title", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True, default="")),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("estimated_cost", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("category", models.CharField(choices=[("utilities", "Utilities"), ("maintenance", "Maintenance"), ("supplies", "Supplies"), ("equipment", "Equipment"), ("services", "Services"), ("other", "Other")], default="other", max_length=20)),
                ("provider", models.CharField(blank=True, default="", max_length=200)),
                ("notes", models.TextField(blank=True, default="")),
                ("request", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="ledger_core.monthlyrequest")),
            ],
            options={
                "ordering": ["position", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("request", "position"), name="uq_item_request_position"),
                    models.CheckConstraint(condition=models.Q(("quantity__gte", 1)), name="ck_item_quantity_min"),
                    models.CheckConstraint(condition=models.Q(("estimated_cost__gte", 0)), name="ck_item_cost_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Quotation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("provider", models.CharField(max_length=200)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("description", models.TextField(blank=True, default="")),
                ("is_selected", models.BooleanField(default=False)),
                ("uploaded_by", models.CharField(blank=True, default="", max_length=254)),
                ("selected_by", models.CharField(blank=True, default="", max_length=254)),
                ("selected_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("item", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="quotations", to="ledger_core.requestitem")),
            ],
            options={
                "ordering": ["id"],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("is_selected", True)), fields=("item",), name="uq_quotation_one_selected"),
                    models.CheckConstraint(condition=models.Q(("amount__gte", 0)), name="ck_quotation_amount_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ItemChange",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("item_title", models.CharField(max_length=200)),
                ("action", models.CharField(choices=[("added", "Added"), ("modified", "Modified"), ("removed", "Removed")], max_length=10)),
                ("field_name", models.CharField(blank=True, default="", max_length=50)),
                ("old_value", models.JSONField(blank=True, null=True)),
                ("new_value", models.JSONField(blank=True, null=True)),
                ("changed_by", models.CharField(blank=True, default="", max_length=254)),
                ("changed_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("effective_from", models.DateField()),
                ("status", models.CharField(choices=[("pending", "Pending"), ("approved", "Approved"), ("rejected", "Rejected")], default="pending", max_length=10)),
                ("reviewed_by", models.CharField(blank=True, default="", max_length=254)),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("note", models.TextField(blank=True, default="")),
                ("item", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="changes", to="ledger_core.requestitem")),
                ("template", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="item_changes", to="ledger_core.monthlyrequest")),
            ],
            options={
                "ordering": ["changed_at", "id"],
            },
        ),
        migrations.CreateModel(
            name="RequestHistory",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(max_length=100)),
                ("actor", models.CharField(blank=True, default="", max_length=254)),
                ("actor_role", models.CharField(blank=True, default="", max_length=30)),
                ("changes", models.JSONField(blank=True, default=list)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("request", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="history", to="ledger_core.monthlyrequest")),
            ],
            options={
                "ordering": ["created_at", "id"],
                "verbose_name_plural": "request history",
            },
        ),
        migrations.CreateModel(
            name="MonthlyApproval",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("month", models.PositiveSmallIntegerField()),
                ("year", models.PositiveSmallIntegerField()),
                ("status", models.CharField(choices=[("draft", "Draft"), ("pending", "Pending"), ("approved", "Approved"), ("rejected", "Rejected")], default="draft", max_length=10)),
                ("items", models.JSONField(blank=True, default=list)),
                ("total_cost", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("notes", models.TextField(blank=True, default="")),
                ("submitted_by", models.CharField(blank=True, default="", max_length=254)),
                ("submitted_at", models.DateTimeField(blank=True, null=True)),
                ("approved_by", models.CharField(blank=True, default="", max_length=254)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("rejected_by", models.CharField(blank=True, default="", max_length=254)),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                ("rejection_reason", models.TextField(blank=True, default="")),
                ("instance", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to="ledger_core.monthlyrequest")),
                ("template", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="monthly_approvals", to="ledger_core.monthlyrequest")),
            ],
            options={
                "ordering": ["year", "month"],
                "constraints": [
                    models.UniqueConstraint(fields=("template", "month", "year"), name="uq_monthly_approval_template_month"),
                    models.CheckConstraint(condition=models.Q(("month__gte", 1), ("month__lte", 12), ("year__gte", 2020)), name="ck_monthly_approval_month_year"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Expense",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("expense_id", models.CharField(max_length=64, unique=True)),
                ("residence_id", models.CharField(max_length=64)),
                ("category", models.CharField(choices=[("Maintenance", "Maintenance"), ("Utilities", "Utilities"), ("Taxes", "Taxes"), ("Insurance", "Insurance"), ("Salaries", "Salaries"), ("Supplies", "Supplies"), ("Other", "Other")], max_length=20)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("title", models.CharField(blank=True, default="", max_length=200)),
                ("description", models.TextField(blank=True, default="")),
                ("expense_date", models.DateField()),
                ("payment_status", models.CharField(choices=[("Pending", "Pending"), ("Paid", "Paid"), ("Overdue", "Overdue")], default="Pending", max_length=10)),
                ("payment_method", models.CharField(blank=True, choices=[("Bank Transfer", "Bank Transfer"), ("Cash", "Cash"), ("Online Payment", "Online Payment"), ("Ecocash", "Ecocash"), ("Innbucks", "Innbucks"), ("MasterCard", "MasterCard"), ("Visa", "Visa"), ("PayPal", "PayPal"), ("Petty Cash", "Petty Cash")], default="", max_length=20)),
                ("paid_by", models.CharField(blank=True, default="", max_length=254)),
                ("paid_date", models.DateField(blank=True, null=True)),
                ("item_index", models.PositiveIntegerField(blank=True, null=True)),
                ("created_by", models.CharField(blank=True, default="", max_length=254)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("payment_transaction", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="ledger_core.ledgertransaction")),
                ("request", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="expenses", to="ledger_core.monthlyrequest")),
                ("transaction", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="expenses", to="ledger_core.ledgertransaction")),
            ],
            options={
                "ordering": ["-expense_date", "id"],
                "indexes": [
                    models.Index(fields=["residence_id", "expense_date"], name="ix_expense_residence_date"),
                    models.Index(fields=["payment_status"], name="ix_expense_payment_status"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gte", 0)), name="ck_expense_amount_non_negative"),
                    models.CheckConstraint(condition=models.Q(("request__isnull", True), ("transaction__isnull", False), _connector="OR"), name="ck_expense_request_has_transaction"),
                    models.CheckConstraint(condition=models.Q(models.Q(("payment_status", "Paid"), _negated=True), models.Q(("payment_method", ""), _negated=True), _connector="OR"), name="ck_expense_paid_has_method"),
                    models.UniqueConstraint(condition=models.Q(("request__isnull", False)), fields=("request", "item_index"), name="uq_expense_request_item"),
                ],
            },
        ),
    ]
