from typing import Optional

from django.utils import timezone

from ..models import MonthlyRequest, RequestHistory


def log_action(
    *,
    action: str,
    request: MonthlyRequest,
    actor=None,
    changes: list | None = None,
    notes: str = "",
    at: Optional[object] = None,
):
    """
    Append one entry to a request's history.
    Entries are never edited afterwards (caller ensures idempotency).
    """
    return RequestHistory.objects.create(
        request=request,
        action=action,
        actor=getattr(actor, "email", "") or "",
        actor_role=getattr(actor, "role", "") or "",
        changes=changes or [],
        notes=notes or "",
        created_at=at or timezone.now(),
    )


def diff_fields(instance, new_values: dict):
    """List of {"field", "old", "new"} for values that actually change."""
    changes = []
    for field, new in new_values.items():
        old = getattr(instance, field)
        if old != new:
            changes.append({"field": field, "old": str(old), "new": str(new)})
    return changes
