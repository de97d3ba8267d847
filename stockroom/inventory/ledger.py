"""
Authoritative per-(product, warehouse) stock quantities.

Every change to ``WarehouseStock.quantity`` goes through ``StockLedger.adjust``.
The row is locked with ``select_for_update`` and the write itself is a guarded
``UPDATE ... WHERE quantity >= -delta``, so two concurrent withdrawals can
never both pass a stale availability check.
"""
import logging

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from stockroom.core.exceptions import InsufficientStock, UnknownLocation, ValidationError
from .models import WarehouseStock
from .signals import stock_delta_applied

logger = logging.getLogger(__name__)


class StockLedger:

    @staticmethod
    def atomic():
        """Transactional boundary; adjustments made inside commit or roll back together"""
        return transaction.atomic()

    @staticmethod
    def current(product_id, warehouse_id):
        quantity = WarehouseStock.objects.filter(
            product_id=product_id, warehouse_id=warehouse_id
        ).values_list('quantity', flat=True).first()
        return quantity or 0

    @staticmethod
    def lock(product_id, warehouse_ids):
        """
        Lock the rows of several warehouses for one product.

        Rows are locked in ascending warehouse id order so two transfers in
        opposite directions cannot deadlock. Must run inside ``atomic()``.
        """
        rows = WarehouseStock.objects.select_for_update().filter(
            product_id=product_id, warehouse_id__in=sorted(set(warehouse_ids))
        ).order_by('warehouse_id')
        return {row.warehouse_id: row for row in rows}

    @staticmethod
    def ensure_location(product_id, warehouse_id):
        """Register the product at a warehouse with zero stock if it is not there yet"""
        row, created = WarehouseStock.objects.get_or_create(
            product_id=product_id, warehouse_id=warehouse_id, defaults={'quantity': 0}
        )
        if created:
            logger.info(f"Product {product_id} registered at warehouse {warehouse_id}")
        return row

    @staticmethod
    def _open_location(product_id, warehouse_id):
        try:
            with transaction.atomic():
                return WarehouseStock.objects.create(product_id=product_id, warehouse_id=warehouse_id, quantity=0)
        except IntegrityError:
            # Another request created the row first
            return WarehouseStock.objects.select_for_update().get(product_id=product_id, warehouse_id=warehouse_id)

    @classmethod
    def adjust(cls, product_id, warehouse_id, delta):
        """
        Apply ``delta`` to the stock of a product in a warehouse.

        Returns the new quantity. Raises ``ValidationError`` for a zero or
        non-integer delta, ``UnknownLocation`` when withdrawing from a pair
        with no stock row and ``InsufficientStock`` when the result would be
        negative.
        """
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValidationError('Stock change must be a non-zero whole number.', field='quantity')

        with transaction.atomic():
            row = WarehouseStock.objects.select_for_update().filter(
                product_id=product_id, warehouse_id=warehouse_id
            ).first()
            if row is None:
                if delta < 0:
                    logger.warning(f"Withdrawal of {-delta} from product {product_id} at warehouse {warehouse_id} rejected: no stock row")
                    raise UnknownLocation(field='warehouse')
                row = cls._open_location(product_id, warehouse_id)

            updated = WarehouseStock.objects.filter(pk=row.pk, quantity__gte=-delta).update(
                quantity=F('quantity') + delta,
                updated_at=timezone.now(),
            )
            if not updated:
                available = WarehouseStock.objects.values_list('quantity', flat=True).get(pk=row.pk)
                logger.warning(f"Withdrawal of {-delta} from product {product_id} at warehouse {warehouse_id} rejected: only {available} available")
                raise InsufficientStock(available=available, requested=-delta)

            quantity = WarehouseStock.objects.values_list('quantity', flat=True).get(pk=row.pk)

        logger.info(f"Stock delta {delta:+d} applied to product {product_id} at warehouse {warehouse_id}, now {quantity}")
        stock_delta_applied.send(
            sender=cls,
            product_id=product_id,
            warehouse_id=warehouse_id,
            delta=delta,
            quantity=quantity,
        )
        return quantity
