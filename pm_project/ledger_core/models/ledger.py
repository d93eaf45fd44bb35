from dataclasses import asdict, dataclass
from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q

TRANSACTION_STATUS = [
    ("posted", "Posted"),  # finalized, immutable
]

TRANSACTION_SOURCES = [
    ("expense_accrual", "Expense accrual"),
    ("payment", "Payment"),
    ("vendor_payment", "Vendor payment"),
    ("manual", "Manual"),
]


@dataclass(frozen=True)
class LedgerLine:
    """One debit or credit line, stored inside its LedgerTransaction."""

    account_code: str
    account_name: str
    # denormalized at post time so renames never alter history
    account_type: str
    debit: Decimal
    credit: Decimal
    description: str = ""

    @property
    def is_debit(self):
        return self.debit > 0

    def validate(self):
        if self.debit < 0 or self.credit < 0:
            raise ValidationError(
                f"Line on {self.account_code} has a negative amount.")
        # either a debit line or a credit line, never both
        if (self.debit > 0) == (self.credit > 0):
            raise ValidationError(
                f"Line on {self.account_code} must carry exactly one of "
                "debit or credit.")

    def to_json(self):
        data = asdict(self)
        # JSONField cannot hold Decimal; keep exact cents as strings
        data["debit"] = str(self.debit)
        data["credit"] = str(self.credit)
        return data

    @classmethod
    def from_json(cls, data):
        return cls(
            account_code=data["account_code"],
            account_name=data["account_name"],
            account_type=data["account_type"],
            debit=Decimal(data["debit"]),
            credit=Decimal(data["credit"]),
            description=data.get("description", ""),
        )


class LedgerTransaction(models.Model):
    """A balanced, posted double-entry transaction."""

    # e.g. TXN1727712000000AB3CD
    transaction_id = models.CharField(max_length=40, unique=True)
    date = models.DateField()
    description = models.TextField(blank=True, default="")
    reference = models.CharField(max_length=200, blank=True, default="")
    # embedded lines, see LedgerLine.to_json
    entries = models.JSONField(default=list)
    total_debit = models.DecimalField(max_digits=18, decimal_places=2)
    total_credit = models.DecimalField(max_digits=18, decimal_places=2)
    # where the transaction came from (request accrual, payment, ...)
    source = models.CharField(max_length=30, choices=TRANSACTION_SOURCES)
    source_model = models.CharField(max_length=50, blank=True, default="")
    source_id = models.CharField(max_length=64, blank=True, default="")
    residence_id = models.CharField(max_length=64, blank=True, default="")
    # actor email
    created_by = models.CharField(max_length=254, blank=True, default="")
    status = models.CharField(
        max_length=10, choices=TRANSACTION_STATUS, default="posted")
    metadata = models.JSONField(default=dict, blank=True)
    posted_at = models.DateTimeField()

    class Meta:
        ordering = ["date", "id"]
        indexes = [
            models.Index(fields=["source_model", "source_id"], name="ix_ledger_tx_source"),
            models.Index(fields=["residence_id", "date"], name="ix_ledger_tx_residence_date"),
        ]
        constraints = [
            # double-entry rule enforced by the database as well
            models.CheckConstraint(
                condition=Q(total_debit=F("total_credit")),
                name="ck_ledger_tx_balanced",
            ),
            models.CheckConstraint(
                condition=Q(total_debit__gt=0),
                name="ck_ledger_tx_positive",
            ),
        ]

    def __str__(self):
        return f"{self.transaction_id} {self.date} [{self.status}]"

    @property
    def lines(self):
        return [LedgerLine.from_json(e) for e in self.entries]

    def compute_totals(self):
        """Return (debits, credits) summed over the embedded lines."""
        lines = self.lines
        return (
            sum((ln.debit for ln in lines), Decimal("0.00")),
            sum((ln.credit for ln in lines), Decimal("0.00")),
        )

    def is_balanced(self):
        debit, credit = self.compute_totals()
        return debit == credit

    def accounts(self, side=None):
        """Codes hit by this transaction, optionally only debits or credits."""
        codes = []
        for ln in self.lines:
            if side == "debit" and not ln.is_debit:
                continue
            if side == "credit" and ln.is_debit:
                continue
            codes.append(ln.account_code)
        return codes

    def save(self, *args, **kwargs):
        # Posted transactions are written exactly once
        if not self._state.adding:
            raise ValidationError(
                f"Ledger transaction {self.transaction_id} is posted and immutable.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(
            f"Ledger transaction {self.transaction_id} cannot be deleted.")
