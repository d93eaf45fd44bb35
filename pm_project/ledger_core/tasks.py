import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


@shared_task  # register this function as a Celery task
def notify_request_outcome(request_id, outcome, actor_email="", reason=""):
    """Email the submitter about an approval, rejection or failed conversion."""
    # import models lazily to avoid circular imports at module import time
    from .models import MonthlyRequest

    request = MonthlyRequest.objects.filter(pk=request_id).first()
    if request is None:
        logger.info("Request %s gone; skipping %s notification", request_id, outcome)
        return False

    recipients = sorted({e for e in (request.submitted_by, request.created_by) if e})
    if not recipients:
        return False

    period = f" for {request.period_label}" if request.period_label else ""
    body = [
        f"Your request '{request.title}'{period} was {outcome}.",
        f"Total estimated cost: {request.total_estimated_cost}",
    ]
    if actor_email:
        body.append(f"Reviewed by: {actor_email}")
    if reason:
        body.append(f"Reason: {reason}")

    send_mail(
        subject=f"Request {outcome}: {request.title}",
        message="\n".join(body),
        from_email=settings.LEDGER_NOTIFICATION_FROM_EMAIL,
        recipient_list=recipients,
    )
    return True


@shared_task
def flag_overdue_expenses(days=None):
    """Periodic: move stale Pending expenses to Overdue."""
    from .services.expenses import flag_overdue_expenses as flag

    return flag(days=days)
