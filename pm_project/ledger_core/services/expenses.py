import datetime
import logging
import string

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.utils.crypto import get_random_string

from ..clock import default_clock
from ..exceptions import PersistenceError
from ..models import Expense, LedgerTransaction
from .chart import CASH_ACCOUNT, PaymentSourceCriteria, contains_keyword
from .posting import PostingEvent, post

logger = logging.getLogger(__name__)

# Ordered: an account called "Maintenance Supplies" is maintenance, not supplies.
# Matched as whole words, so "Gasket Stock" is not gas and "Taxi" is not tax.
CATEGORY_HINTS = [
    ("Maintenance", ("maintenance", "repair", "repairs", "plumbing", "hvac")),
    ("Utilities", ("utilities", "utility", "water", "sewer", "electricity", "gas",
                   "internet", "telephone")),
    ("Taxes", ("tax", "taxes")),
    ("Insurance", ("insurance",)),
    ("Salaries", ("salary", "salaries", "wage", "wages", "payroll")),
    ("Supplies", ("supplies", "supply", "materials", "material")),
]

EXPENSE_ID_CHARS = string.ascii_lowercase + string.digits


def category_for_account_name(account_name):
    """Map an expense account's name to one of the closed expense categories."""
    name = (account_name or "").lower()
    for category, hints in CATEGORY_HINTS:
        if any(contains_keyword(name, hint) for hint in hints):
            return category
    return "Other"


def expense_date_for(request=None, date_approved=None, clock=default_clock):
    """
    Accounting date used for both the posting and the expense:
    1. an explicitly supplied approval date,
    2. the first day of the request's month,
    3. today.
    """
    if date_approved is not None:
        if isinstance(date_approved, datetime.datetime):
            return date_approved.date()
        return date_approved
    if request is not None:
        start = request.accounting_period_start()
        if start is not None:
            return start
    return clock.today()


def _base36(number):
    digits = string.digits + string.ascii_lowercase
    out = ""
    while number:
        number, rem = divmod(number, 36)
        out = digits[rem] + out
    return out or "0"


def generate_expense_id(clock=default_clock):
    """EXP_<base36 epoch millis>_<random>."""
    millis = int(clock.now().timestamp() * 1000)
    return f"EXP_{_base36(millis)}_{get_random_string(6, allowed_chars=EXPENSE_ID_CHARS)}"


def materialize_expense(
    item,
    ledger_tx,
    request,
    actor,
    *,
    item_index,
    date_approved=None,
    clock=default_clock,
):
    """
    Create the Expense for one converted item. `ledger_tx` must already be
    persisted; the expense keeps a reference to it.
    """
    if ledger_tx.pk is None or not LedgerTransaction.objects.filter(pk=ledger_tx.pk).exists():
        raise PersistenceError(
            "Expense requires a persisted ledger transaction",
            transaction_id=ledger_tx.transaction_id,
        )

    debit_lines = [ln for ln in ledger_tx.lines if ln.is_debit]
    account_name = debit_lines[0].account_name if debit_lines else ""

    try:
        with transaction.atomic():
            expense = Expense.objects.create(
                expense_id=f"{generate_expense_id(clock)}_item_{item_index}",
                residence_id=request.residence_id,
                category=category_for_account_name(account_name),
                amount=ledger_tx.total_debit,
                title=item.title,
                description=f"{request.title}: {item.description or item.title}",
                expense_date=expense_date_for(request, date_approved, clock),
                payment_status="Pending",
                request=request,
                item_index=item_index,
                transaction=ledger_tx,
                created_by=getattr(actor, "email", "") or "",
            )
    except (DatabaseError, ValidationError) as exc:
        logger.error(
            "Expense for %s item %s not saved after posting %s: %s",
            request.pk, item_index, ledger_tx.transaction_id, exc,
        )
        raise PersistenceError(
            f"Expense could not be saved: {exc}",
            transaction_id=ledger_tx.transaction_id,
        ) from exc

    logger.info(
        "Expense %s (%s, %s) linked to %s",
        expense.expense_id, expense.category, expense.amount, ledger_tx.transaction_id,
    )
    return expense


def _accrual_credit_line(expense):
    if expense.transaction_id is None:
        return None
    for ln in expense.transaction.lines:
        if not ln.is_debit:
            return ln
    return None


def mark_expense_paid(expense, actor, payment_method, paid_date=None, clock=default_clock):
    """
    Settle an expense. The liability credited at accrual is debited and the
    payment source is credited; accruals that already credited cash only
    change status.
    """
    if expense.payment_status == "Paid":
        raise ValidationError(f"Expense {expense.expense_id} is already paid.")
    if not payment_method:
        raise ValidationError("A payment method is required to mark an expense paid.")

    paid_date = paid_date or clock.today()
    with transaction.atomic():
        expense = Expense.objects.select_for_update().get(pk=expense.pk)
        credit_line = _accrual_credit_line(expense)

        payment_tx = None
        if credit_line is not None and credit_line.account_code != CASH_ACCOUNT[0] \
                and credit_line.account_type == "Liability":
            is_vendor = credit_line.account_code.startswith("2000-")
            payment_tx = post(
                PostingEvent(
                    amount=expense.amount,
                    debit=credit_line.account_code,
                    credit=PaymentSourceCriteria(payment_method),
                    description=f"Payment for {expense.title or expense.expense_id}",
                    date=paid_date,
                    reference=expense.expense_id,
                    residence_id=expense.residence_id,
                    source="vendor_payment" if is_vendor else "payment",
                    source_model="Expense",
                    source_id=str(expense.pk),
                    actor=actor,
                    metadata={"payment_method": payment_method},
                ),
                clock=clock,
            )

        expense.payment_status = "Paid"
        expense.payment_method = payment_method
        expense.paid_date = paid_date
        expense.paid_by = getattr(actor, "email", "") or ""
        expense.payment_transaction = payment_tx
        expense.save()

    logger.info("Expense %s marked paid via %s", expense.expense_id, payment_method)
    return expense


def flag_overdue_expenses(days=None, clock=default_clock):
    """Mark Pending expenses older than `days` as Overdue; return how many."""
    if days is None:
        days = getattr(settings, "LEDGER_OVERDUE_AFTER_DAYS", 30)
    cutoff = clock.today() - datetime.timedelta(days=days)
    updated = Expense.objects.filter(
        payment_status="Pending", expense_date__lt=cutoff
    ).update(payment_status="Overdue")
    if updated:
        logger.info("Flagged %s expenses overdue (before %s)", updated, cutoff)
    return updated
