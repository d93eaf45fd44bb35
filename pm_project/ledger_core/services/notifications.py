import logging

from django.db import transaction

from ..tasks import notify_request_outcome

logger = logging.getLogger(__name__)


def notify_outcome(request, outcome, actor=None, reason=""):
    """
    Queue an outcome email once the surrounding transaction commits.
    Delivery problems are logged and never reach the caller.
    """
    request_id = request.pk
    actor_email = getattr(actor, "email", "") or ""

    def _dispatch():
        try:
            notify_request_outcome.delay(request_id, outcome, actor_email, reason)
        except Exception as exc:  # broker down, serialization, ...
            logger.warning(
                "Notification for request %s (%s) not queued: %s", request_id, outcome, exc
            )

    transaction.on_commit(_dispatch)
