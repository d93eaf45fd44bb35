from django.core.exceptions import ValidationError
from django.db import models
from ..managers import AccountManager

# Choice Lists
AC_TYPES = [
    # Used in Account model to classify general ledger accounts
    ("Asset", "Asset"),
    ("Liability", "Liability"),
    ("Equity", "Equity"),
    ("Income", "Income"),
    ("Expense", "Expense"),
]

# Reporting category an account gets when it is created lazily
DEFAULT_CATEGORY_BY_TYPE = {
    "Asset": "Current Assets",
    "Liability": "Current Liabilities",
    "Equity": "Owner Equity",
    "Income": "Operating Revenue",
    "Expense": "Operating Expenses",
}


class Account(models.Model):
    """
    Ledger account in the chart of accounts.
    - code is globally unique and is the lookup key for the registry
    - ac_type never changes once the account exists
    - vendor payables are nested under the master payable (2000) via parent
    """

    # Every account has a code, e.g. "5001" or "2000-3fa4c1d2"
    code = models.CharField(max_length=32, unique=True)
    # Human-readable name, "Water & Sewer Expense", "Accounts Payable: Acme"
    name = models.CharField(max_length=200)
    ac_type = models.CharField(max_length=10, choices=AC_TYPES)
    category = models.CharField(max_length=100, blank=True, default="")
    description = models.TextField(blank=True, default="")
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        related_name="children",
        # you can’t delete a parent if children exist
        on_delete=models.PROTECT,
    )
    # “soft deactivate” instead of deleting history
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = AccountManager()

    class Meta:
        ordering = ["code"]
        indexes = [
            models.Index(fields=["ac_type"], name="ix_account_type"),
            models.Index(fields=["parent"], name="ix_account_parent"),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}"

    @property
    def is_vendor_payable(self):
        return self.parent_id is not None and self.ac_type == "Liability"

    def save(self, *args, **kwargs):
        if not self.category:
            self.category = DEFAULT_CATEGORY_BY_TYPE.get(self.ac_type, "")
        if self.pk:
            orig = Account.objects.filter(pk=self.pk).values("ac_type").first()
            # reports depend on the type; it is fixed at creation
            if orig and orig["ac_type"] != self.ac_type:
                raise ValidationError(
                    f"Cannot change type of account {self.code} "
                    f"from {orig['ac_type']} to {self.ac_type}")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(
            "Accounts are never deleted; set is_active=False instead.")
