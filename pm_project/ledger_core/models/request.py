import calendar
import datetime
from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone
from ..exceptions import InvalidTransitionError
from ..managers import ResidenceManager

REQUEST_STATUS = [
    ("draft", "Draft"),  # still editable, not visible to finance
    ("pending", "Pending"),  # waiting for finance
    ("approved", "Approved"),  # approved, being converted
    ("rejected", "Rejected"),  # terminal
    ("completed", "Completed"),  # converted to expenses, terminal
]

MONTHLY_APPROVAL_STATUS = [
    ("draft", "Draft"),
    ("pending", "Pending"),
    ("approved", "Approved"),
    ("rejected", "Rejected"),
]

ITEM_CATEGORIES = [
    ("utilities", "Utilities"),
    ("maintenance", "Maintenance"),
    ("supplies", "Supplies"),
    ("equipment", "Equipment"),
    ("services", "Services"),
    ("other", "Other"),
]

CHANGE_ACTIONS = [
    ("added", "Added"),
    ("modified", "Modified"),
    ("removed", "Removed"),
]

CHANGE_STATUS = [
    ("pending", "Pending"),
    ("approved", "Approved"),
    ("rejected", "Rejected"),
]

MIN_YEAR = 2020


def first_of_month(month, year):
    return datetime.date(year, month, 1)


def month_label(month, year):
    return f"{calendar.month_name[month]} {year}"


class MonthlyRequest(models.Model):
    """
    Monthly operational request for a residence.
    Templates describe recurring items and never produce expenses;
    instances carry a month/year and go through draft → pending →
    approved → completed (or rejected).
    """

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default="")
    residence_id = models.CharField(max_length=64)
    # instances only; templates leave both empty
    month = models.PositiveSmallIntegerField(null=True, blank=True)
    year = models.PositiveSmallIntegerField(null=True, blank=True)
    is_template = models.BooleanField(default=False)
    # weak back-reference from an instance to the template it came from
    template = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        related_name="instances",
        on_delete=models.SET_NULL,
    )
    template_version = models.PositiveIntegerField(default=0)

    status = models.CharField(
        max_length=12, choices=REQUEST_STATUS, default="draft")
    # Σ estimated_cost × quantity over items
    total_estimated_cost = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    # drives the credit side for items without a vendor
    payment_method = models.CharField(max_length=30, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    created_by = models.CharField(max_length=254, blank=True, default="")
    submitted_by = models.CharField(max_length=254, blank=True, default="")
    submitted_by_id = models.CharField(max_length=64, blank=True, default="")
    submitted_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.CharField(max_length=254, blank=True, default="")
    approved_by_id = models.CharField(max_length=64, blank=True, default="")
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_by = models.CharField(max_length=254, blank=True, default="")
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True, default="")
    # stamped when the request is converted to expenses
    accounting_date = models.DateField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ResidenceManager()

    class Meta:
        ordering = ["-year", "-month", "title"]
        indexes = [
            models.Index(fields=["residence_id", "year", "month"], name="ix_request_residence_period"),
            models.Index(fields=["status"], name="ix_request_status"),
        ]
        constraints = [
            # one live request per residence, month and title
            models.UniqueConstraint(
                fields=["residence_id", "month", "year", "title"],
                condition=Q(is_template=False) & ~Q(status="rejected"),
                name="uq_request_live_month_title",
            ),
            models.CheckConstraint(
                condition=Q(is_template=True)
                | (Q(month__gte=1) & Q(month__lte=12) & Q(year__gte=MIN_YEAR)),
                name="ck_request_instance_month_year",
            ),
        ]

    def __str__(self):
        if self.is_template:
            return f"Template: {self.title}"
        return f"{self.title} ({self.month:02d}/{self.year}) [{self.status}]"

    @property
    def period_label(self):
        if self.month and self.year:
            return month_label(self.month, self.year)
        return ""

    def accounting_period_start(self):
        """First day of the request's month, or None for templates."""
        if self.month and self.year:
            return first_of_month(self.month, self.year)
        return None

    def recalc_totals(self):
        """Recompute total_estimated_cost from the current items."""
        total = sum(
            (item.line_total for item in self.items.all()), Decimal("0.00"))
        self.total_estimated_cost = total
        return total

    def clean(self):
        if self.is_template:
            return
        if self.month is None or not 1 <= self.month <= 12:
            raise ValidationError("Month must be between 1 and 12.")
        if self.year is None or self.year < MIN_YEAR:
            raise ValidationError(f"Year must be {MIN_YEAR} or later.")

    def save(self, *args, **kwargs):
        self.clean()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        # Only drafts may disappear; anything else has an audit trail
        if self.status != "draft":
            raise InvalidTransitionError(
                f"Cannot delete a request in status {self.status}.")
        return super().delete(*args, **kwargs)

    def transition_to(self, new_status, **changes):
        allowed = {
            "draft": ["pending"],
            "pending": ["approved", "rejected"],
            # back to pending when conversion fails
            "approved": ["completed", "pending"],
            "rejected": [],
            "completed": [],
        }
        if self.is_template:
            raise InvalidTransitionError(
                "Templates have no status workflow; use monthly approvals.")
        if new_status not in allowed.get(self.status, []):
            raise InvalidTransitionError(
                f"Cannot go from {self.status} to {new_status}")

        self.status = new_status
        for field, value in changes.items():
            setattr(self, field, value)
        self.save(update_fields=["status", "updated_at", *changes.keys()])

    def rollback_approval(self):
        """Return an approved request to pending and clear the approval."""
        self.transition_to(
            "pending",
            approved_by="",
            approved_by_id="",
            approved_at=None,
        )


class RequestItem(models.Model):
    """Line item of a request: quantity × estimated_cost = line_total."""

    request = models.ForeignKey(
        MonthlyRequest, on_delete=models.CASCADE, related_name="items")
    # processing order of the item within its request
    position = models.PositiveIntegerField(default=0)
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default="")
    quantity = models.PositiveIntegerField(default=1)
    estimated_cost = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    category = models.CharField(
        max_length=20, choices=ITEM_CATEGORIES, default="other")
    # supplier named on the item when no quotation was selected
    provider = models.CharField(max_length=200, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["position", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["request", "position"], name="uq_item_request_position"
            ),
            models.CheckConstraint(
                condition=Q(quantity__gte=1), name="ck_item_quantity_min"
            ),
            models.CheckConstraint(
                condition=Q(estimated_cost__gte=0), name="ck_item_cost_non_negative"
            ),
        ]

    def __str__(self):
        return f"{self.title} x{self.quantity}"

    @property
    def line_total(self):
        return (self.estimated_cost or Decimal("0.00")) * (self.quantity or 0)

    @property
    def selected_quotation(self):
        return self.quotations.filter(is_selected=True).first()

    @property
    def vendor_name(self):
        """Provider owed for this item: selected quotation first, then the item's own."""
        quotation = self.selected_quotation
        if quotation:
            return quotation.provider
        return self.provider

    def snapshot(self):
        """Plain-data copy used by monthly approvals."""
        return {
            "title": self.title,
            "description": self.description,
            "quantity": self.quantity,
            "estimated_cost": str(self.estimated_cost),
            "category": self.category,
            "provider": self.provider,
            "notes": self.notes,
            "quotations": [
                {
                    "provider": q.provider,
                    "amount": str(q.amount),
                    "description": q.description,
                    "is_selected": q.is_selected,
                }
                for q in self.quotations.all()
            ],
        }


class Quotation(models.Model):
    item = models.ForeignKey(
        RequestItem, on_delete=models.CASCADE, related_name="quotations")
    provider = models.CharField(max_length=200)
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    description = models.TextField(blank=True, default="")
    is_selected = models.BooleanField(default=False)
    uploaded_by = models.CharField(max_length=254, blank=True, default="")
    selected_by = models.CharField(max_length=254, blank=True, default="")
    selected_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            # at most one selected quotation per item
            models.UniqueConstraint(
                fields=["item"],
                condition=Q(is_selected=True),
                name="uq_quotation_one_selected",
            ),
            models.CheckConstraint(
                condition=Q(amount__gte=0), name="ck_quotation_amount_non_negative"
            ),
        ]

    def __str__(self):
        mark = " *" if self.is_selected else ""
        return f"{self.provider}: {self.amount}{mark}"


class ItemChange(models.Model):
    """Append-only record of a change made to a template's items."""

    template = models.ForeignKey(
        MonthlyRequest, on_delete=models.CASCADE, related_name="item_changes")
    # item may be gone (removed); title keeps the record readable
    item = models.ForeignKey(
        RequestItem, null=True, blank=True, on_delete=models.SET_NULL,
        related_name="changes")
    item_title = models.CharField(max_length=200)
    action = models.CharField(max_length=10, choices=CHANGE_ACTIONS)
    field_name = models.CharField(max_length=50, blank=True, default="")
    old_value = models.JSONField(null=True, blank=True)
    new_value = models.JSONField(null=True, blank=True)
    changed_by = models.CharField(max_length=254, blank=True, default="")
    changed_at = models.DateTimeField(default=timezone.now)
    effective_from = models.DateField()
    status = models.CharField(
        max_length=10, choices=CHANGE_STATUS, default="pending")
    reviewed_by = models.CharField(max_length=254, blank=True, default="")
    reviewed_at = models.DateTimeField(null=True, blank=True)
    note = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["changed_at", "id"]

    def __str__(self):
        return f"{self.action} {self.item_title} [{self.status}]"

    def delete(self, *args, **kwargs):
        raise ValidationError("Template change records cannot be deleted.")


class RequestHistory(models.Model):
    """Append-only audit trail of a request."""

    request = models.ForeignKey(
        MonthlyRequest, on_delete=models.CASCADE, related_name="history")
    action = models.CharField(max_length=100)
    actor = models.CharField(max_length=254, blank=True, default="")
    actor_role = models.CharField(max_length=30, blank=True, default="")
    # list of {"field", "old", "new"} or free-form strings
    changes = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["created_at", "id"]
        verbose_name_plural = "request history"

    def __str__(self):
        return f"{self.request_id} {self.action} by {self.actor}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Request history entries are append-only.")
        super().save(*args, **kwargs)


class MonthlyApproval(models.Model):
    """Approval of one template for one month, with a snapshot of its items."""

    template = models.ForeignKey(
        MonthlyRequest, on_delete=models.CASCADE, related_name="monthly_approvals")
    month = models.PositiveSmallIntegerField()
    year = models.PositiveSmallIntegerField()
    status = models.CharField(
        max_length=10, choices=MONTHLY_APPROVAL_STATUS, default="draft")
    items = models.JSONField(default=list, blank=True)
    total_cost = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    notes = models.TextField(blank=True, default="")
    submitted_by = models.CharField(max_length=254, blank=True, default="")
    submitted_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.CharField(max_length=254, blank=True, default="")
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_by = models.CharField(max_length=254, blank=True, default="")
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True, default="")
    # instance materialized when the month was approved
    instance = models.ForeignKey(
        MonthlyRequest, null=True, blank=True, on_delete=models.SET_NULL,
        related_name="+")

    class Meta:
        ordering = ["year", "month"]
        constraints = [
            models.UniqueConstraint(
                fields=["template", "month", "year"],
                name="uq_monthly_approval_template_month",
            ),
            models.CheckConstraint(
                condition=Q(month__gte=1) & Q(month__lte=12) & Q(year__gte=MIN_YEAR),
                name="ck_monthly_approval_month_year",
            ),
        ]

    def __str__(self):
        return f"{self.template_id} {month_label(self.month, self.year)} [{self.status}]"

    def period_index(self):
        return self.year * 12 + self.month

    def transition_to(self, new_status, **changes):
        allowed = {
            "draft": ["pending"],
            "pending": ["approved", "rejected"],
            # back to pending when the month's conversion fails
            "approved": ["pending"],
            "rejected": [],
        }
        if new_status not in allowed.get(self.status, []):
            raise InvalidTransitionError(
                f"Cannot go from {self.status} to {new_status}")
        self.status = new_status
        for field, value in changes.items():
            setattr(self, field, value)
        self.save()
