import datetime
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction

from ..clock import default_clock
from ..exceptions import (ConversionPartialFailure, InvalidTransitionError,
                          PersistenceError, PostingError)
from ..models import Expense, MonthlyRequest
from .audit_helper import log_action
from .chart import AccountCriteria, PayableCriteria
from .expenses import expense_date_for, materialize_expense
from .posting import PostingEvent, post, to_money

logger = logging.getLogger(__name__)


@dataclass
class ItemError:
    item_title: str
    message: str
    item_index: Optional[int] = None
    # posting attempted for the item and rolled back with it
    transaction_id: Optional[str] = None


@dataclass
class ConversionResult:
    request: MonthlyRequest
    expenses: List[Expense] = field(default_factory=list)
    errors: List[ItemError] = field(default_factory=list)
    timed_out: bool = False

    @property
    def success(self):
        return not self.errors and bool(self.expenses)

    @property
    def total_amount(self):
        return sum((e.amount for e in self.expenses), Decimal("0.00"))

    def raise_for_errors(self):
        if not self.success:
            errors = self.errors or [
                ItemError(item_title=self.request.title, message="No expenses were created")
            ]
            raise ConversionPartialFailure(errors)
        return self


def _deadline(clock, seconds):
    if seconds is None:
        seconds = getattr(settings, "LEDGER_CONVERSION_TIMEOUT_SECONDS", 30)
    return clock.now() + datetime.timedelta(seconds=seconds)


def _accrual_event(request, item, index, actor, date):
    vendor = item.vendor_name
    return PostingEvent(
        amount=item.line_total,
        debit=AccountCriteria.from_item(item),
        credit=PayableCriteria(provider=vendor, payment_method=request.payment_method),
        description=f"{request.title}: {item.title}",
        date=date,
        reference=f"REQ-{request.pk}-{index}",
        residence_id=request.residence_id,
        source="expense_accrual",
        source_model="Request",
        source_id=str(request.pk),
        actor=actor,
        metadata={
            "request_type": "monthly",
            "item_index": index,
            "vendor": vendor or None,
            "month": request.month,
            "year": request.year,
        },
    )


def _convert_item(request, item, index, actor, date_approved, clock):
    """Post and materialize one item; both land or neither does."""
    date = expense_date_for(request, date_approved, clock)
    with transaction.atomic():
        ledger_tx = post(_accrual_event(request, item, index, actor, date), clock=clock)
        return materialize_expense(
            item, ledger_tx, request, actor,
            item_index=index, date_approved=date_approved, clock=clock,
        )


def _stale_expense(expense, item):
    """Why a previously posted expense no longer matches its item, if it does not."""
    amount = to_money(item.line_total)
    if expense.amount != amount:
        return f"Item changed since its expense was posted ({expense.amount} posted, now {amount})"
    posted = expense.transaction.metadata.get("vendor") if expense.transaction else None
    if posted != (item.vendor_name or None):
        return f"Item vendor changed since its expense was posted ({posted} posted, now {item.vendor_name})"
    return None


def convert_to_expenses(
    request,
    actor,
    *,
    date_approved=None,
    clock=default_clock,
    timeout_seconds=None,
):
    """
    Turn every item of an approved instance into one posted transaction and
    one expense, in item order. Item failures are collected and do not stop
    the remaining items. With no errors the request is completed; otherwise
    its approval is rolled back to pending.
    """
    deadline = _deadline(clock, timeout_seconds)

    with transaction.atomic():
        request = MonthlyRequest.objects.select_for_update().get(pk=request.pk)
        if request.is_template:
            raise InvalidTransitionError("Templates cannot be converted to expenses.")
        if request.status != "approved":
            raise InvalidTransitionError(
                f"Cannot convert a request in status {request.status}; it must be approved.")

        result = ConversionResult(request=request)
        # items that made it through an earlier, rolled back attempt
        existing = {e.item_index: e for e in request.expenses.all()}

        for index, item in enumerate(request.items.all()):
            if index in existing:
                posted = existing[index]
                stale = _stale_expense(posted, item)
                if stale:
                    result.errors.append(ItemError(
                        item_title=item.title, message=stale, item_index=index,
                        transaction_id=posted.transaction.transaction_id if posted.transaction else None,
                    ))
                else:
                    result.expenses.append(posted)
                continue
            if clock.now() > deadline:
                result.timed_out = True
                result.errors.append(ItemError(
                    item_title=item.title,
                    message="Conversion deadline exceeded before this item",
                    item_index=index,
                ))
                continue
            try:
                expense = _convert_item(request, item, index, actor, date_approved, clock)
            except PersistenceError as exc:
                result.errors.append(ItemError(
                    item_title=item.title, message=str(exc),
                    item_index=index, transaction_id=exc.transaction_id,
                ))
            except (PostingError, ValidationError, DatabaseError) as exc:
                logger.warning("Item %s of request %s failed: %s", index, request.pk, exc)
                result.errors.append(ItemError(
                    item_title=item.title, message=str(exc), item_index=index,
                ))
            else:
                result.expenses.append(expense)

        if result.success:
            request.transition_to(
                "completed",
                accounting_date=expense_date_for(request, date_approved, clock),
            )
            log_action(
                action="converted_to_expenses",
                request=request,
                actor=actor,
                changes=[e.expense_id for e in result.expenses],
                notes=f"{len(result.expenses)} expenses, total {result.total_amount}",
                at=clock.now(),
            )
            logger.info(
                "Request %s completed with %s expenses", request.pk, len(result.expenses))
        else:
            request.rollback_approval()
            log_action(
                action="conversion_failed",
                request=request,
                actor=actor,
                changes=[f"{e.item_title}: {e.message}" for e in result.errors],
                notes="Approval rolled back to pending",
                at=clock.now(),
            )
            logger.warning(
                "Request %s conversion failed (%s errors, %s expenses); back to pending",
                request.pk, len(result.errors), len(result.expenses),
            )

    return result
