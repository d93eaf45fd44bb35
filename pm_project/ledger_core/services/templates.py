import calendar
import datetime
import logging
import re
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction

from ..clock import default_clock
from ..exceptions import InvalidTransitionError
from ..models import ItemChange, MonthlyApproval, MonthlyRequest, month_label
from .audit_helper import log_action
from .lifecycle import (ITEM_FIELDS, ApprovalResult, add_items, approve_request,
                        copy_items, ensure_no_duplicate, submit_request)

logger = logging.getLogger(__name__)

MONTH_YEAR_RE = re.compile(
    r"\b(" + "|".join(calendar.month_name[1:]) + r")\s+\d{4}\b", re.IGNORECASE)


def format_description_with_month(description, month, year):
    """Stamp "<Month> <Year>" into a description, replacing any existing one."""
    label = month_label(month, year)
    description = (description or "").strip()
    if MONTH_YEAR_RE.search(description):
        return MONTH_YEAR_RE.sub(label, description, count=1)
    if not description:
        return f"Monthly request for {label}"
    return f"{description} for {label}"


def next_month_start(clock=default_clock):
    today = clock.today()
    if today.month == 12:
        return datetime.date(today.year + 1, 1, 1)
    return datetime.date(today.year, today.month + 1, 1)


def _require_template(template):
    if not template.is_template:
        raise ValidationError(f"Request {template.pk} is not a template.")


def _bump_version(template):
    template.template_version += 1
    template.save(update_fields=["template_version", "updated_at"])


# ----------------------------
# Templates
# ----------------------------
def create_template(*, residence_id, title, items, actor, description="",
                    payment_method="", clock=default_clock):
    with transaction.atomic():
        template = MonthlyRequest.objects.create(
            title=title,
            description=description,
            residence_id=residence_id,
            is_template=True,
            payment_method=payment_method,
            created_by=actor.email,
        )
        add_items(template, items)
        log_action(action="template_created", request=template, actor=actor, at=clock.now())
    return template


def create_from_template(template, month, year, actor, clock=default_clock):
    """Draft instance for one month with the template's current items."""
    _require_template(template)
    ensure_no_duplicate(template.residence_id, month, year, template.title)

    with transaction.atomic():
        instance = MonthlyRequest.objects.create(
            title=template.title,
            description=format_description_with_month(template.description, month, year),
            residence_id=template.residence_id,
            month=month,
            year=year,
            template=template,
            template_version=template.template_version,
            status="draft",
            payment_method=template.payment_method,
            created_by=actor.email,
        )
        copy_items(template, instance)
        log_action(action="created_from_template", request=instance, actor=actor,
                   notes=f"Template {template.pk} v{template.template_version}",
                   at=clock.now())
    return instance


# ----------------------------
# Template item changes
# ----------------------------
def _record_change(template, item, actor, action, clock, field_name="", old=None, new=None):
    return ItemChange.objects.create(
        template=template,
        item=item,
        item_title=item.title,
        action=action,
        field_name=field_name,
        old_value=old,
        new_value=new,
        changed_by=actor.email,
        changed_at=clock.now(),
        effective_from=next_month_start(clock),
    )


def add_template_item(template, actor, clock=default_clock, **data):
    _require_template(template)
    with transaction.atomic():
        (item,) = add_items(template, [data])
        change = _record_change(template, item, actor, "added", clock, new=item.snapshot())
        _bump_version(template)
        log_action(action="template_item_added", request=template, actor=actor,
                   changes=[item.snapshot()], at=clock.now())
    return change


def modify_template_item(item, actor, clock=default_clock, **changes):
    template = item.request
    _require_template(template)
    unknown = set(changes) - set(ITEM_FIELDS)
    if unknown:
        raise ValidationError(f"Item fields cannot be edited: {sorted(unknown)}")

    recorded = []
    with transaction.atomic():
        for field, new in changes.items():
            old = getattr(item, field)
            if old == new:
                continue
            recorded.append(_record_change(
                template, item, actor, "modified", clock,
                field_name=field, old=str(old), new=str(new),
            ))
            setattr(item, field, new)
        if recorded:
            item.save()
            _bump_version(template)
            log_action(
                action="template_item_modified", request=template, actor=actor,
                changes=[{"field": c.field_name, "old": c.old_value, "new": c.new_value}
                         for c in recorded],
                at=clock.now(),
            )
    return recorded


def remove_template_item(item, actor, clock=default_clock):
    template = item.request
    _require_template(template)
    with transaction.atomic():
        change = _record_change(template, item, actor, "removed", clock, old=item.snapshot())
        item.delete()
        _bump_version(template)
        log_action(action="template_item_removed", request=template, actor=actor,
                   changes=[change.old_value], at=clock.now())
    return change


def _review_change(change, actor, status, clock, note=""):
    if not actor.can_approve:
        raise PermissionDenied(f"Role '{actor.role}' cannot review template changes.")
    with transaction.atomic():
        change = ItemChange.objects.select_for_update().get(pk=change.pk)
        if change.status != "pending":
            raise InvalidTransitionError(
                f"Cannot go from {change.status} to {status}")
        change.status = status
        change.reviewed_by = actor.email
        change.reviewed_at = clock.now()
        if note:
            change.note = f"{change.note}\n{note}".strip()
        change.save()
        log_action(action=f"template_change_{status}", request=change.template, actor=actor,
                   changes=[f"{change.action} {change.item_title}"], notes=note, at=clock.now())
    return change


def approve_template_change(change, actor, clock=default_clock):
    return _review_change(change, actor, "approved", clock)


def reject_template_change(change, actor, reason="", clock=default_clock):
    return _review_change(change, actor, "rejected", clock, note=reason)


# ----------------------------
# Monthly approvals
# ----------------------------
def _snapshot(template):
    items = [item.snapshot() for item in template.items.all()]
    total = sum(
        (Decimal(i["estimated_cost"]) * i["quantity"] for i in items), Decimal("0.00"))
    return items, total


def submit_month(template, month, year, actor, notes="", clock=default_clock):
    """Snapshot the template's items and put the month up for approval."""
    _require_template(template)
    with transaction.atomic():
        approval, _ = MonthlyApproval.objects.select_for_update().get_or_create(
            template=template, month=month, year=year)
        # approved -> pending is reserved for failed conversions
        if approval.status == "approved":
            raise InvalidTransitionError(
                f"{month_label(month, year)} is already approved.")
        items, total = _snapshot(template)
        if not items:
            raise ValidationError("Cannot submit a month for a template without items.")
        approval.transition_to(
            "pending",
            items=items,
            total_cost=total,
            notes=notes,
            submitted_by=actor.email,
            submitted_at=clock.now(),
        )
        log_action(action="month_submitted", request=template, actor=actor,
                   notes=month_label(month, year), at=clock.now())
    return approval


def _snapshot_items(approval):
    return [{k: v for k, v in i.items() if k in ITEM_FIELDS or k == "quotations"}
            for i in approval.items]


def _sync_to_snapshot(instance, approval, actor, clock):
    """Make a reused instance carry exactly the items the month was approved with."""
    if [item.snapshot() for item in instance.items.all()] == approval.items:
        return instance
    label = month_label(approval.month, approval.year)
    if instance.expenses.exists():
        raise InvalidTransitionError(
            f"{label} has posted expenses for items that differ from the approved snapshot.")
    instance.items.all().delete()
    add_items(instance, _snapshot_items(approval))
    log_action(action="synced_to_monthly_approval", request=instance, actor=actor,
               changes=approval.items, notes=f"Items replaced with the {label} snapshot",
               at=clock.now())
    logger.info("Request %s items replaced with the %s snapshot", instance.pk, label)
    return instance


def _instance_for_month(template, approval, actor, clock):
    """Pending instance carrying the approved snapshot, reused when it exists."""
    existing = (
        template.instances.filter(month=approval.month, year=approval.year)
        .exclude(status="rejected")
        .first()
    )
    if existing is not None:
        if existing.status == "draft":
            _sync_to_snapshot(existing, approval, actor, clock)
            return submit_request(existing, actor, clock=clock)
        if existing.status == "pending":
            return _sync_to_snapshot(existing, approval, actor, clock)
        raise InvalidTransitionError(
            f"{month_label(approval.month, approval.year)} already has a request "
            f"in status {existing.status}.")

    ensure_no_duplicate(template.residence_id, approval.month, approval.year, template.title)
    instance = MonthlyRequest.objects.create(
        title=template.title,
        description=format_description_with_month(
            template.description, approval.month, approval.year),
        residence_id=template.residence_id,
        month=approval.month,
        year=approval.year,
        template=template,
        template_version=template.template_version,
        status="pending",
        payment_method=template.payment_method,
        created_by=template.created_by,
        submitted_by=approval.submitted_by,
        submitted_at=approval.submitted_at,
    )
    add_items(instance, _snapshot_items(approval))
    log_action(action="created_from_monthly_approval", request=instance, actor=actor,
               notes=f"Template {template.pk}", at=clock.now())
    return instance


def approve_month(template, month, year, actor, notes="", clock=default_clock):
    """
    Approve one month of a template: the month's instance is approved and
    converted; if conversion fails the month goes back to pending too.
    """
    _require_template(template)
    if not actor.can_approve:
        raise PermissionDenied(f"Role '{actor.role}' cannot approve requests.")

    with transaction.atomic():
        approval = MonthlyApproval.objects.select_for_update().get(
            template=template, month=month, year=year)
        approval.transition_to(
            "approved", approved_by=actor.email, approved_at=clock.now(), notes=notes or approval.notes)
        instance = _instance_for_month(template, approval, actor, clock)
        result = approve_request(instance, actor, notes=notes, clock=clock)

        approval.instance = result.request
        if result.success:
            approval.save(update_fields=["instance"])
        else:
            approval.transition_to("pending", approved_by="", approved_at=None)
        log_action(
            action="month_approved" if result.success else "month_approval_rolled_back",
            request=template, actor=actor, notes=month_label(month, year), at=clock.now())
    return ApprovalResult(request=result.request, success=result.success,
                          conversion=result.conversion)


def reject_month(template, month, year, actor, reason="", clock=default_clock):
    """
    Reject one month. With LEDGER_CASCADE_MONTHLY_REJECTION enabled, later
    months that are not approved yet are put back to pending with a note so
    they get re-reviewed. Returns the rejected month followed by the flagged ones.
    """
    _require_template(template)
    if not actor.can_approve:
        raise PermissionDenied(f"Role '{actor.role}' cannot reject requests.")

    now = clock.now()
    label = month_label(month, year)
    with transaction.atomic():
        approval = MonthlyApproval.objects.select_for_update().get(
            template=template, month=month, year=year)
        approval.transition_to(
            "rejected", rejected_by=actor.email, rejected_at=now, rejection_reason=reason)
        flagged = []

        if getattr(settings, "LEDGER_CASCADE_MONTHLY_REJECTION", False):
            note = f"Review needed: {label} was rejected ({reason or 'no reason given'})."
            later = [
                a for a in template.monthly_approvals.select_for_update()
                .filter(status__in=("draft", "pending"))
                if a.period_index() > approval.period_index()
            ]
            for other in later:
                notes = f"{other.notes}\n{note}".strip()
                if other.status == "draft":
                    other.transition_to("pending", notes=notes)
                else:
                    other.notes = notes
                    other.save(update_fields=["notes"])
                flagged.append(other)
            if flagged:
                logger.info("Rejection of %s flagged %s later months for review",
                            label, len(flagged))

        log_action(action="month_rejected", request=template, actor=actor,
                   changes=[month_label(a.month, a.year) for a in [approval, *flagged]],
                   notes=reason, at=now)
    return [approval, *flagged]
