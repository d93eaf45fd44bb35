from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from ..managers import ResidenceManager
from .ledger import LedgerTransaction
from .request import MonthlyRequest

EXPENSE_CATEGORIES = [
    ("Maintenance", "Maintenance"),
    ("Utilities", "Utilities"),
    ("Taxes", "Taxes"),
    ("Insurance", "Insurance"),
    ("Salaries", "Salaries"),
    ("Supplies", "Supplies"),
    ("Other", "Other"),
]

PAYMENT_STATUS = [
    ("Pending", "Pending"),
    ("Paid", "Paid"),
    ("Overdue", "Overdue"),
]

PAYMENT_METHODS = [
    ("Bank Transfer", "Bank Transfer"),
    ("Cash", "Cash"),
    ("Online Payment", "Online Payment"),
    ("Ecocash", "Ecocash"),
    ("Innbucks", "Innbucks"),
    ("MasterCard", "MasterCard"),
    ("Visa", "Visa"),
    ("PayPal", "PayPal"),
    ("Petty Cash", "Petty Cash"),
]


class Expense(models.Model):
    """Operational expense, accrued from one approved request item."""

    # e.g. EXP_lq2x7k_a81f3c
    expense_id = models.CharField(max_length=64, unique=True)
    residence_id = models.CharField(max_length=64)
    category = models.CharField(max_length=20, choices=EXPENSE_CATEGORIES)
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    title = models.CharField(max_length=200, blank=True, default="")
    description = models.TextField(blank=True, default="")
    expense_date = models.DateField()
    payment_status = models.CharField(
        max_length=10, choices=PAYMENT_STATUS, default="Pending")
    payment_method = models.CharField(
        max_length=20, choices=PAYMENT_METHODS, blank=True, default="")
    paid_by = models.CharField(max_length=254, blank=True, default="")
    paid_date = models.DateField(null=True, blank=True)

    # origin of the expense, when it came from a request
    request = models.ForeignKey(
        MonthlyRequest, null=True, blank=True, on_delete=models.PROTECT,
        related_name="expenses")
    item_index = models.PositiveIntegerField(null=True, blank=True)
    # accrual posting (debit expense / credit payable or cash)
    transaction = models.ForeignKey(
        LedgerTransaction, null=True, blank=True, on_delete=models.PROTECT,
        related_name="expenses")
    # settlement posting, once paid
    payment_transaction = models.ForeignKey(
        LedgerTransaction, null=True, blank=True, on_delete=models.PROTECT,
        related_name="+")

    created_by = models.CharField(max_length=254, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ResidenceManager()

    class Meta:
        ordering = ["-expense_date", "id"]
        indexes = [
            models.Index(fields=["residence_id", "expense_date"], name="ix_expense_residence_date"),
            models.Index(fields=["payment_status"], name="ix_expense_payment_status"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gte=0), name="ck_expense_amount_non_negative"
            ),
            # an expense converted from a request is always backed by a posting
            models.CheckConstraint(
                condition=Q(request__isnull=True) | Q(transaction__isnull=False),
                name="ck_expense_request_has_transaction",
            ),
            models.CheckConstraint(
                condition=~Q(payment_status="Paid") | ~Q(payment_method=""),
                name="ck_expense_paid_has_method",
            ),
            # one expense per request item
            models.UniqueConstraint(
                fields=["request", "item_index"],
                condition=Q(request__isnull=False),
                name="uq_expense_request_item",
            ),
        ]

    def __str__(self):
        return f"{self.expense_id} {self.category} {self.amount}"

    def clean(self):
        if self.amount is not None and self.amount < Decimal("0.00"):
            raise ValidationError("Expense amount cannot be negative.")
        if self.payment_status == "Paid" and not self.payment_method:
            raise ValidationError("A paid expense needs a payment method.")
        if self.request_id and not self.transaction_id:
            raise ValidationError(
                "Expenses converted from a request must reference their ledger transaction.")

    def save(self, *args, **kwargs):
        self.clean()
        super().save(*args, **kwargs)
