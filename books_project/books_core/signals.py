from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models.signals import post_save, pre_delete
from django.dispatch import receiver

from .chart import ensure_chart_of_accounts
from .inventory import move_stock
from .models import Company, Product, Transaction


"""Every company starts with the system chart of accounts."""


@receiver(post_save, sender=Company)
def create_system_accounts(sender, instance, created, **kwargs):
    if created:
        ensure_chart_of_accounts(instance)


"""A product created with opening stock gets an IN movement explaining it."""


@receiver(post_save, sender=Product)
def record_opening_stock(sender, instance, created, raw=False, **kwargs):
    if not created or raw or instance.is_service or not instance.opening_stock:
        return
    with transaction.atomic():
        # current_stock is rebuilt from the movement
        Product.objects.filter(pk=instance.pk).update(current_stock=0)
        move_stock(instance, instance.opening_stock, "IN", notes="Opening stock",
                   cost_price=instance.purchase_price)


"""Block deleting a posted document on its own; it is undone by reversal."""


@receiver(pre_delete, sender=Transaction)
def prevent_delete_posted_transaction(sender, instance, **kwargs):
    # reversal journals go away with the document they reverse
    if instance.reverses_id is not None:
        return
    if instance.posted_at is not None:
        raise ValidationError(f"Cannot delete {instance}: it is posted to the ledger.")
    if instance.payments.exists():
        raise ValidationError(f"Cannot delete {instance} with applied payments.")
