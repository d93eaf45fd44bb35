from django.core.exceptions import ValidationError
from django.db.models.signals import post_delete, post_save, pre_delete
from django.dispatch import receiver

from .models import Account, LedgerTransaction, MonthlyRequest, RequestItem

"""
    Recalculate the request total when an item is added/updated/removed.
"""


@receiver((post_save, post_delete), sender=RequestItem)
def request_item_changed(sender, instance, **kwargs):
    try:
        request = MonthlyRequest.objects.get(pk=instance.request_id)
    except MonthlyRequest.DoesNotExist:
        # parent is being deleted along with its items
        return
    request.recalc_totals()
    request.save(update_fields=["total_estimated_cost"])


"""Accounts are deactivated, never deleted (queryset deletes included)."""


@receiver(pre_delete, sender=Account)
def prevent_delete_account(sender, instance, **kwargs):
    raise ValidationError(f"Cannot delete account {instance.code}.")


"""Posted ledger transactions are permanent."""


@receiver(pre_delete, sender=LedgerTransaction)
def prevent_delete_ledger_transaction(sender, instance, **kwargs):
    raise ValidationError(
        f"Cannot delete posted transaction {instance.transaction_id}.")


"""Only drafts may be deleted; submitted requests keep their audit trail."""


@receiver(pre_delete, sender=MonthlyRequest)
def prevent_delete_submitted_request(sender, instance, **kwargs):
    if not instance.is_template and instance.status != "draft":
        raise ValidationError(
            f"Cannot delete request {instance.pk} in status {instance.status}.")
