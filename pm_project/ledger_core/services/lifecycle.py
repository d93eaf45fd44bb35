import logging
from dataclasses import dataclass
from typing import Optional

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import Max

from ..clock import default_clock
from ..exceptions import InvalidTransitionError
from ..models import MonthlyRequest, Quotation, RequestItem
from .audit_helper import diff_fields, log_action
from .conversion import ConversionResult, convert_to_expenses
from .notifications import notify_outcome

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = ("draft", "pending")
EDITABLE_FIELDS = ("title", "description", "notes", "payment_method")
ITEM_FIELDS = ("title", "description", "quantity", "estimated_cost", "category", "provider", "notes")


@dataclass
class ApprovalResult:
    request: MonthlyRequest
    success: bool
    conversion: Optional[ConversionResult] = None

    @property
    def errors(self):
        return self.conversion.errors if self.conversion else []

    @property
    def expenses(self):
        return self.conversion.expenses if self.conversion else []


def _require_approver(actor, verb):
    if not actor.can_approve:
        raise PermissionDenied(f"Role '{actor.role}' cannot {verb} requests.")


def _lock(request):
    return MonthlyRequest.objects.select_for_update().get(pk=request.pk)


def _require_open(request, action):
    """Items, quotations and payment method are editable on open, unposted instances."""
    if request.is_template:
        return
    if request.status not in EDITABLE_STATUSES:
        raise InvalidTransitionError(
            f"Cannot {action} a request in status {request.status}.")
    # a retried conversion reuses posted expenses by item position
    if request.expenses.exists():
        raise InvalidTransitionError(
            f"Cannot {action} request {request.pk}: its items are locked once expenses are posted.")


def initial_status(month, year, actor, clock=default_clock):
    """
    Status a new instance starts in: past or current months are approved
    straight away, future months wait for finance (admins keep a draft).
    """
    today = clock.today()
    if (year, month) <= (today.year, today.month):
        return "approved"
    return "draft" if actor.is_admin else "pending"


def ensure_no_duplicate(residence_id, month, year, title, exclude_pk=None):
    qs = (
        MonthlyRequest.objects.for_residence(residence_id)
        .instances()
        .for_month(month, year)
        .filter(title=title)
        .exclude(status="rejected")
    )
    if exclude_pk is not None:
        qs = qs.exclude(pk=exclude_pk)
    if qs.exists():
        raise ValidationError(
            f"A request '{title}' already exists for {month:02d}/{year} at this residence.")


def add_items(request, items):
    """Create items (and their quotations) in the given order after existing ones."""
    start = request.items.aggregate(last=Max("position"))["last"]
    start = -1 if start is None else start
    created = []
    for offset, data in enumerate(items, start=1):
        data = dict(data)
        quotations = data.pop("quotations", [])
        item = RequestItem.objects.create(
            request=request,
            position=start + offset,
            **{k: v for k, v in data.items() if k in ITEM_FIELDS},
        )
        for q in quotations:
            Quotation.objects.create(
                item=item,
                provider=q["provider"],
                amount=q["amount"],
                description=q.get("description", ""),
                is_selected=q.get("is_selected", False),
                uploaded_by=q.get("uploaded_by", ""),
            )
        created.append(item)
    request.refresh_from_db(fields=["total_estimated_cost"])
    return created


def copy_items(source, target):
    """Copy items with their quotations from one request to another."""
    payload = []
    for item in source.items.all():
        data = {field: getattr(item, field) for field in ITEM_FIELDS}
        data["quotations"] = [
            {
                "provider": q.provider,
                "amount": q.amount,
                "description": q.description,
                "is_selected": q.is_selected,
                "uploaded_by": q.uploaded_by,
            }
            for q in item.quotations.all()
        ]
        payload.append(data)
    return add_items(target, payload)


# ----------------------------
# Instance workflows
# ----------------------------
def create_request(
    *,
    residence_id,
    title,
    month,
    year,
    items,
    actor,
    description="",
    notes="",
    payment_method="",
    template=None,
    clock=default_clock,
):
    """
    Create a monthly instance. Requests for past or current months are
    approved on creation and converted right away.
    """
    ensure_no_duplicate(residence_id, month, year, title)
    status = initial_status(month, year, actor, clock)
    now = clock.now()

    with transaction.atomic():
        request = MonthlyRequest(
            title=title,
            description=description,
            residence_id=residence_id,
            month=month,
            year=year,
            template=template,
            status=status,
            notes=notes,
            payment_method=payment_method,
            created_by=actor.email,
        )
        if status in ("pending", "approved"):
            request.submitted_by = actor.email
            request.submitted_by_id = actor.id
            request.submitted_at = now
        if status == "approved":
            request.approved_by = actor.email
            request.approved_by_id = actor.id
            request.approved_at = now
        request.save()
        add_items(request, items)
        log_action(action="created", request=request, actor=actor,
                   notes=f"Initial status {status}", at=now)

    logger.info("Created request %s (%s) in %s", request.pk, request.period_label, status)

    if status == "approved":
        result = convert_to_expenses(request, actor, clock=clock)
        request = result.request
        notify_outcome(
            request, "approved" if result.success else "returned to pending", actor)
    return request


def submit_request(request, actor, clock=default_clock):
    with transaction.atomic():
        request = _lock(request)
        if request.status != "draft":
            raise InvalidTransitionError(
                f"Cannot go from {request.status} to pending")
        if not request.items.exists():
            raise InvalidTransitionError("Cannot submit a request without items.")
        request.transition_to(
            "pending",
            submitted_by=actor.email,
            submitted_by_id=actor.id,
            submitted_at=clock.now(),
        )
        log_action(action="submitted", request=request, actor=actor, at=clock.now())
    logger.info("Request %s submitted by %s", request.pk, actor.email)
    return request


def approve_request(request, actor, notes="", date_approved=None, clock=default_clock):
    """
    Approve a pending instance and convert it. When the conversion does not
    produce a clean result the approval is rolled back to pending and the
    result reports the failing items.
    """
    _require_approver(actor, "approve")

    with transaction.atomic():
        request = _lock(request)
        changes = {
            "approved_by": actor.email,
            "approved_by_id": actor.id,
            "approved_at": clock.now(),
        }
        if notes:
            changes["notes"] = f"{request.notes}\n{notes}".strip()
        request.transition_to("approved", **changes)
        log_action(action="approved", request=request, actor=actor, notes=notes, at=clock.now())

        conversion = convert_to_expenses(
            request, actor, date_approved=date_approved, clock=clock)
        request = conversion.request
        notify_outcome(
            request, "approved" if conversion.success else "returned to pending", actor)

    return ApprovalResult(request=request, success=conversion.success, conversion=conversion)


def reject_request(request, actor, reason="", clock=default_clock):
    _require_approver(actor, "reject")

    with transaction.atomic():
        request = _lock(request)
        request.transition_to(
            "rejected",
            rejected_by=actor.email,
            rejected_at=clock.now(),
            rejection_reason=reason,
        )
        log_action(action="rejected", request=request, actor=actor, notes=reason, at=clock.now())
        notify_outcome(request, "rejected", actor, reason=reason)

    logger.info("Request %s rejected by %s", request.pk, actor.email)
    return request


def resubmit_request(request, actor, clock=default_clock):
    """Clone a rejected instance into a fresh pending one."""
    if request.status != "rejected":
        raise InvalidTransitionError(
            f"Only rejected requests can be resubmitted (status {request.status}).")
    ensure_no_duplicate(request.residence_id, request.month, request.year, request.title)

    with transaction.atomic():
        clone = MonthlyRequest.objects.create(
            title=request.title,
            description=request.description,
            residence_id=request.residence_id,
            month=request.month,
            year=request.year,
            template=request.template,
            status="pending",
            notes=request.notes,
            payment_method=request.payment_method,
            created_by=actor.email,
            submitted_by=actor.email,
            submitted_by_id=actor.id,
            submitted_at=clock.now(),
        )
        copy_items(request, clone)
        log_action(action="resubmitted", request=clone, actor=actor,
                   notes=f"Resubmission of request {request.pk}", at=clock.now())
        log_action(action="resubmitted_as", request=request, actor=actor,
                   notes=f"Resubmitted as request {clone.pk}", at=clock.now())
    return clone


def update_request(request, actor, clock=default_clock, **fields):
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {sorted(unknown)}")

    with transaction.atomic():
        request = _lock(request)
        if not request.is_template and request.status not in EDITABLE_STATUSES:
            raise InvalidTransitionError(
                f"Cannot edit a request in status {request.status}.")
        if "payment_method" in fields:
            # the payment method picks the credit account of every posting
            _require_open(request, "change the payment method of")
        changes = diff_fields(request, fields)
        if not changes:
            return request
        if "title" in fields and not request.is_template:
            ensure_no_duplicate(
                request.residence_id, request.month, request.year, fields["title"],
                exclude_pk=request.pk)
        for field, value in fields.items():
            setattr(request, field, value)
        request.save()
        log_action(action="updated", request=request, actor=actor, changes=changes, at=clock.now())
    return request


def delete_request(request, actor):
    """Drafts only; the request disappears with its items and history."""
    pk = request.pk
    request.delete()
    logger.info("Request %s deleted by %s", pk, actor.email)


def add_item(request, actor, clock=default_clock, **data):
    with transaction.atomic():
        request = _lock(request)
        if request.is_template:
            raise ValidationError("Use add_template_item for templates.")
        _require_open(request, "add items to")
        (item,) = add_items(request, [data])
        log_action(action="item_added", request=request, actor=actor,
                   changes=[item.snapshot()], at=clock.now())
    return item


# ----------------------------
# Quotations
# ----------------------------
def add_quotation(item, actor, provider, amount, description="", clock=default_clock):
    _require_open(item.request, "change quotations on")
    quotation = Quotation.objects.create(
        item=item,
        provider=provider,
        amount=amount,
        description=description,
        uploaded_by=actor.email,
    )
    log_action(action="quotation_added", request=item.request, actor=actor,
               changes=[{"item": item.title, "provider": provider, "amount": str(amount)}],
               at=clock.now())
    return quotation


def select_quotation(quotation, actor, clock=default_clock):
    """
    Select one quotation for its item. Siblings are unselected and the
    item's unit cost becomes the quoted amount.
    """
    with transaction.atomic():
        item = RequestItem.objects.select_for_update().get(pk=quotation.item_id)
        _require_open(item.request, "change quotations on")
        old_cost = item.estimated_cost

        item.quotations.exclude(pk=quotation.pk).update(is_selected=False)
        quotation.refresh_from_db()
        quotation.is_selected = True
        quotation.selected_by = actor.email
        quotation.selected_at = clock.now()
        quotation.save()

        item.estimated_cost = quotation.amount
        item.save()  # signal recalculates the request total
        log_action(
            action="quotation_selected",
            request=item.request,
            actor=actor,
            changes=[{
                "field": f"{item.title}.estimated_cost",
                "old": str(old_cost),
                "new": str(quotation.amount),
            }],
            notes=f"Selected {quotation.provider}",
            at=clock.now(),
        )
    return quotation
