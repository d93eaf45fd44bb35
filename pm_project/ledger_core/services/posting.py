import logging
import string
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.utils.crypto import get_random_string

from ..clock import default_clock
from ..exceptions import PostingError, UnbalancedPostingError
from ..models import LedgerLine, LedgerTransaction
from .chart import resolve

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
TXN_SUFFIX_CHARS = string.ascii_uppercase + string.digits


def to_money(value):
    """Quantize to cents; anything Decimal() accepts is fine."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def generate_transaction_id(clock=default_clock):
    """TXN + epoch milliseconds + 5 random characters."""
    millis = int(clock.now().timestamp() * 1000)
    return f"TXN{millis}{get_random_string(5, allowed_chars=TXN_SUFFIX_CHARS)}"


@dataclass
class EntrySpec:
    """One side of a posting before its account is resolved."""

    target: Any  # Account, criteria object or account code
    debit: Decimal = Decimal("0.00")
    credit: Decimal = Decimal("0.00")
    description: str = ""


@dataclass
class PostingEvent:
    """Everything needed to post one two-line transaction."""

    amount: Decimal
    debit: Any
    credit: Any
    description: str
    date: Any
    reference: str = ""
    residence_id: str = ""
    source: str = "expense_accrual"
    source_model: str = ""
    source_id: str = ""
    actor: Optional[Any] = None
    metadata: dict = field(default_factory=dict)


def check_balanced(lines):
    """Return the shared total; raise if debits and credits differ."""
    total_debit = sum((ln.debit for ln in lines), Decimal("0.00"))
    total_credit = sum((ln.credit for ln in lines), Decimal("0.00"))
    if total_debit != total_credit:
        raise UnbalancedPostingError(
            f"Transaction not balanced: debits={total_debit}, credits={total_credit}"
        )
    if total_debit <= 0:
        raise UnbalancedPostingError("Transaction total must be positive")
    return total_debit


def post_entries(
    entries,
    *,
    date,
    description,
    reference="",
    residence_id="",
    source="expense_accrual",
    source_model="",
    source_id="",
    actor=None,
    metadata=None,
    clock=default_clock,
):
    """
    Resolve every entry's account, verify the balance and persist the
    transaction already posted. Accounts created while resolving are
    rolled back with the transaction when anything fails.
    """
    try:
        with transaction.atomic():
            lines = []
            for spec in entries:
                account = resolve(spec.target)
                line = LedgerLine(
                    account_code=account.code,
                    account_name=account.name,
                    account_type=account.ac_type,
                    debit=to_money(spec.debit),
                    credit=to_money(spec.credit),
                    description=spec.description or description,
                )
                try:
                    line.validate()
                except ValidationError as exc:
                    raise UnbalancedPostingError(exc.messages[0]) from exc
                lines.append(line)

            if len(lines) < 2:
                raise UnbalancedPostingError("A transaction needs at least two lines")
            total = check_balanced(lines)

            txn_id = generate_transaction_id(clock)
            while LedgerTransaction.objects.filter(transaction_id=txn_id).exists():
                txn_id = generate_transaction_id(clock)

            ledger_tx = LedgerTransaction.objects.create(
                transaction_id=txn_id,
                date=date,
                description=description,
                reference=reference or "",
                entries=[ln.to_json() for ln in lines],
                total_debit=total,
                total_credit=total,
                source=source,
                source_model=source_model,
                source_id=str(source_id or ""),
                residence_id=str(residence_id or ""),
                created_by=getattr(actor, "email", "") or "",
                status="posted",
                metadata=metadata or {},
                posted_at=clock.now(),
            )
    except PostingError:
        raise
    except DatabaseError as exc:
        logger.error("Posting %r failed: %s", description, exc)
        raise PostingError(f"Could not persist transaction: {exc}") from exc

    logger.info(
        "Posted %s %s (%s lines, %s)", ledger_tx.transaction_id, total, len(lines), source
    )
    return ledger_tx


def post(event, clock=default_clock):
    """Post `event.amount` from the credit side to the debit side."""
    amount = to_money(event.amount)
    if amount <= 0:
        raise PostingError(f"Cannot post a non-positive amount ({amount})")
    entries = [
        EntrySpec(target=event.debit, debit=amount, description=event.description),
        EntrySpec(target=event.credit, credit=amount, description=event.description),
    ]
    return post_entries(
        entries,
        date=event.date,
        description=event.description,
        reference=event.reference,
        residence_id=event.residence_id,
        source=event.source,
        source_model=event.source_model,
        source_id=event.source_id,
        actor=event.actor,
        metadata=event.metadata,
        clock=clock,
    )
