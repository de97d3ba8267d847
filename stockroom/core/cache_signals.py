"""
Cache invalidation signals
Invalidate cached dashboard metrics when stock, orders or master data change
"""
from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

from stockroom.inventory.signals import stock_delta_applied
from stockroom.purchasing.signals import purchase_order_confirmed
from .cache_utils import invalidate_dashboard_cache

logger = logging.getLogger(__name__)

# Thread-local storage to track signal suspension
_thread_locals = threading.local()

WATCHED_MODELS = {'Product', 'Category', 'Supplier', 'Warehouse', 'PurchaseOrder', 'User'}


@contextmanager
def suspend_cache_signals():
    """
    Context manager to temporarily suspend cache invalidation signals.
    Useful for bulk operations (imports) to prevent excessive cache clearing.
    Remember to manually invalidate cache after the block!
    """
    previous = is_suspended()
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = previous


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


def _invalidate_after_commit():
    # Invalidate AFTER the commit so readers can't repopulate with stale rows
    transaction.on_commit(invalidate_dashboard_cache)


@receiver(stock_delta_applied)
def invalidate_on_stock_delta(sender, **kwargs):
    if is_suspended():
        return
    _invalidate_after_commit()


@receiver(purchase_order_confirmed)
def invalidate_on_order_confirmed(sender, **kwargs):
    if is_suspended():
        return
    _invalidate_after_commit()


@receiver([post_save, post_delete])
def invalidate_on_master_data_change(sender, instance, **kwargs):
    """Counts on the dashboard depend on these models"""
    if is_suspended():
        return
    if sender.__name__ in WATCHED_MODELS:
        _invalidate_after_commit()
