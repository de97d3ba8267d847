"""
Purchase order state machine.

Orders are created as ``draft`` or ``confirmed`` and may move between those
two freely through ``update``. A single ``confirm`` action takes an open order
to ``completed`` (receiving its items into a warehouse) or ``cancelled``.
Both terminal statuses are final.
"""
import logging
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from stockroom.catalog.models import Product
from stockroom.core.exceptions import InvalidState, NotFound, ValidationError
from stockroom.inventory.models import StockMovement
from stockroom.inventory.services import MovementRecorder, validate_quantity
from stockroom.locations.models import Warehouse
from .models import PurchaseOrder, PurchaseOrderItem
from .signals import purchase_order_confirmed

logger = logging.getLogger(__name__)


def parse_order_date(value):
    """Accept a datetime, a date or ISO text; naive values use the current timezone"""
    if value in (None, ''):
        raise ValidationError('Order date is required.', field='order_date')
    if isinstance(value, str):
        try:
            parsed = parse_datetime(value.strip())
            if parsed is None:
                parsed_date = parse_date(value.strip())
                parsed = datetime.combine(parsed_date, time.min) if parsed_date else None
        except ValueError:
            # Well formed but not a real date, e.g. 2024-02-30
            parsed = None
        if parsed is None:
            raise ValidationError(f'Invalid order date: {value}.', field='order_date')
        value = parsed
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if not isinstance(value, datetime):
        raise ValidationError('Invalid order date.', field='order_date')
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value


class PurchaseOrderWorkflow:

    @staticmethod
    def orderable_products():
        """Products that can be put on a purchase order"""
        return Product.objects.filter(is_active=True).select_related('supplier', 'category').order_by('name')

    @staticmethod
    def _clean_items(items):
        """
        Validate line items given as dicts of product (instance or id),
        quantity and unit_price. Returns (product, quantity, unit_price) tuples.
        """
        if not items:
            raise ValidationError('A purchase order needs at least one item.', field='items')

        cleaned = []
        for index, item in enumerate(items, start=1):
            product = item.get('product')
            if not isinstance(product, Product):
                product = Product.objects.select_related('supplier').filter(pk=product).first()
                if product is None:
                    raise ValidationError(f'Item {index}: product does not exist.', field='items')
            if not product.is_active:
                raise ValidationError(f'Item {index}: product "{product.name}" is not active.', field='items')

            quantity = validate_quantity(item.get('quantity'), field='items')

            try:
                unit_price = Decimal(str(item.get('unit_price')))
            except (InvalidOperation, ValueError):
                raise ValidationError(f'Item {index}: unit price must be a number.', field='items')
            if not unit_price.is_finite() or unit_price < 0:
                raise ValidationError(f'Item {index}: unit price cannot be negative.', field='items')

            cleaned.append((product, quantity, unit_price))
        return cleaned

    @staticmethod
    def _check_open_status(status):
        if status not in PurchaseOrder.OPEN_STATUSES:
            raise ValidationError('Status must be "draft" or "confirmed".', field='status')

    @staticmethod
    def _write_items(order, cleaned_items):
        PurchaseOrderItem.objects.bulk_create([
            PurchaseOrderItem(order=order, product=product, quantity=quantity, unit_price=unit_price)
            for product, quantity, unit_price in cleaned_items
        ])

    @classmethod
    def create(cls, items, order_date, status, supplier=None, notes='', user=None):
        """
        Create an open purchase order. Nothing happens to stock.

        The supplier defaults to the supplier of the first item's product.
        """
        cls._check_open_status(status)
        order_date = parse_order_date(order_date)
        cleaned = cls._clean_items(items)
        supplier = supplier or cleaned[0][0].supplier
        if supplier is None:
            raise ValidationError('A supplier is required.', field='supplier')

        with transaction.atomic():
            order = PurchaseOrder.objects.create(
                supplier=supplier,
                order_date=order_date,
                status=status,
                notes=notes or '',
                created_by=user if user and user.is_authenticated else None,
            )
            cls._write_items(order, cleaned)

        logger.info(f"Purchase order {order.id} created as {status} with {len(cleaned)} item(s)")
        return order

    @classmethod
    def update(cls, order_id, items, order_date, status, supplier=None, notes=None):
        """
        Replace the items, date and status of an open order.

        As with ``create``, the supplier defaults to the first item's product supplier.
        """
        cls._check_open_status(status)
        order_date = parse_order_date(order_date)
        cleaned = cls._clean_items(items)
        supplier = supplier or cleaned[0][0].supplier
        if supplier is None:
            raise ValidationError('A supplier is required.', field='supplier')

        with transaction.atomic():
            order = PurchaseOrder.objects.select_for_update().filter(pk=order_id).first()
            if order is None:
                raise NotFound('Purchase order not found.')
            if order.is_terminal:
                logger.warning(f"Update of {order.status} purchase order {order_id} rejected")
                raise InvalidState(f'Purchase order is already {order.status} and cannot be changed.', field='status')

            order.order_date = order_date
            order.status = status
            order.supplier = supplier
            if notes is not None:
                order.notes = notes
            order.save()
            order.items.all().delete()
            cls._write_items(order, cleaned)

        logger.info(f"Purchase order {order.id} updated ({status}, {len(cleaned)} item(s))")
        return order

    @classmethod
    def confirm(cls, order_id, target_status, warehouse=None, notes=None, user=None):
        """
        Move an open order to ``completed`` or ``cancelled``.

        Completing needs a destination warehouse and receives every item there
        as a purchase movement; cancelling needs notes. The status check and
        the status write are one guarded UPDATE, so of two concurrent confirms
        exactly one wins and the other gets InvalidState. Any failure while
        receiving stock rolls the status change back too.
        """
        if target_status not in PurchaseOrder.TERMINAL_STATUSES:
            raise ValidationError('Status must be "completed" or "cancelled".', field='status')

        notes = (notes or '').strip()
        if target_status == PurchaseOrder.STATUS_COMPLETED:
            if warehouse in (None, ''):
                raise ValidationError('A warehouse is required to complete a purchase order.', field='warehouse')
            if not isinstance(warehouse, Warehouse):
                warehouse = Warehouse.objects.filter(pk=warehouse).first()
                if warehouse is None:
                    raise ValidationError('Warehouse does not exist.', field='warehouse')
        elif not notes:
            raise ValidationError('A reason is required to cancel a purchase order.', field='notes')

        now = timezone.now()
        changes = {'status': target_status, 'confirmed_at': now, 'updated_at': now}
        if target_status == PurchaseOrder.STATUS_COMPLETED:
            changes['warehouse'] = warehouse
        else:
            changes['notes'] = notes

        with transaction.atomic():
            claimed = PurchaseOrder.objects.filter(
                pk=order_id, status__in=PurchaseOrder.OPEN_STATUSES
            ).update(**changes)
            if not claimed:
                current = PurchaseOrder.objects.filter(pk=order_id).values_list('status', flat=True).first()
                if current is None:
                    raise NotFound('Purchase order not found.')
                logger.warning(f"Confirm of purchase order {order_id} to {target_status} rejected: already {current}")
                raise InvalidState(f'Purchase order is already {current}.', field='status')

            order = PurchaseOrder.objects.select_related('supplier', 'warehouse').get(pk=order_id)
            if target_status == PurchaseOrder.STATUS_COMPLETED:
                movement_notes = notes or f"Stock added from Purchase Order #{order.id}"
                for item in order.items.select_related('product'):
                    if not item.product.is_active:
                        raise ValidationError(f'Product "{item.product.name}" is not active.', field='items')
                    MovementRecorder.record_adjustment(
                        item.product,
                        warehouse,
                        StockMovement.TYPE_IN,
                        StockMovement.REASON_PURCHASE,
                        item.quantity,
                        notes=movement_notes,
                        user=user,
                        purchase_order=order,
                    )

        logger.info(f"Purchase order {order.id} {target_status}")
        purchase_order_confirmed.send(sender=cls, order=order, status=target_status)
        return order
