"""
Stock movement recording.

``MovementRecorder`` validates a movement, applies it to the ledger and
writes the append-only ``StockMovement`` row in the same transaction, so a
movement never exists without its ledger change (or the other way round).
"""
import logging
import uuid

from stockroom.core.exceptions import ValidationError
from .ledger import StockLedger
from .models import StockMovement

logger = logging.getLogger(__name__)

# Reasons a caller may pick directly; transfers are produced by record_transfer only
ADJUSTMENT_REASONS = (
    StockMovement.REASON_PURCHASE,
    StockMovement.REASON_SALE,
    StockMovement.REASON_RETURN,
    StockMovement.REASON_ADJUSTMENT,
    StockMovement.REASON_DAMAGE,
)
OUTBOUND_ONLY_REASONS = (StockMovement.REASON_SALE, StockMovement.REASON_DAMAGE)
MOVEMENT_TYPES = (StockMovement.TYPE_IN, StockMovement.TYPE_OUT)


def validate_quantity(quantity, field='quantity'):
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError('Quantity must be a positive whole number.', field=field)
    return quantity


def resolve_movement_type(reason, movement_type):
    """
    Return the movement type a reason allows.

    Sales and damage always remove stock: a missing type resolves to ``out``
    and an explicit ``in`` is rejected. The other reasons need an explicit type.
    """
    if reason == StockMovement.REASON_TRANSFER:
        raise ValidationError('Transfers must be recorded with the transfer operation.', field='reason')
    if reason not in ADJUSTMENT_REASONS:
        raise ValidationError(f'Unknown movement reason: {reason}.', field='reason')

    if reason in OUTBOUND_ONLY_REASONS:
        if movement_type in (None, ''):
            return StockMovement.TYPE_OUT
        if movement_type != StockMovement.TYPE_OUT:
            raise ValidationError(f'A {reason} movement can only remove stock.', field='movement_type')
        return movement_type

    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError('Movement type must be "in" or "out".', field='movement_type')
    return movement_type


class MovementRecorder:

    @staticmethod
    def record_adjustment(product, warehouse, movement_type, reason, quantity, notes='',
                          user=None, purchase_order=None):
        """Apply one stock adjustment and record it. Returns the StockMovement."""
        validate_quantity(quantity)
        movement_type = resolve_movement_type(reason, movement_type)
        delta = quantity if movement_type == StockMovement.TYPE_IN else -quantity

        with StockLedger.atomic():
            StockLedger.adjust(product.id, warehouse.id, delta)
            movement = StockMovement.objects.create(
                product=product,
                warehouse=warehouse,
                movement_type=movement_type,
                reason=reason,
                quantity=quantity,
                notes=notes or '',
                purchase_order=purchase_order,
                created_by=user if user and user.is_authenticated else None,
            )

        logger.info(f"Recorded {reason} movement {movement.id}: {movement_type} {quantity} x product {product.id} at warehouse {warehouse.id}")
        return movement

    @staticmethod
    def record_transfer(product, source, destination, quantity, notes='', user=None):
        """
        Move stock between two warehouses.

        Both legs commit together and share a correlation id. Returns the
        ``(out_movement, in_movement)`` pair.
        """
        if source.id == destination.id:
            raise ValidationError('Source and destination warehouse must be different.', field='destination_warehouse')
        validate_quantity(quantity)

        correlation_id = uuid.uuid4()
        created_by = user if user and user.is_authenticated else None

        with StockLedger.atomic():
            StockLedger.lock(product.id, [source.id, destination.id])
            StockLedger.adjust(product.id, source.id, -quantity)
            StockLedger.adjust(product.id, destination.id, quantity)

            legs = []
            for warehouse, movement_type in ((source, StockMovement.TYPE_OUT), (destination, StockMovement.TYPE_IN)):
                legs.append(StockMovement.objects.create(
                    product=product,
                    warehouse=warehouse,
                    movement_type=movement_type,
                    reason=StockMovement.REASON_TRANSFER,
                    quantity=quantity,
                    notes=notes or '',
                    correlation_id=correlation_id,
                    created_by=created_by,
                ))

        logger.info(f"Transferred {quantity} x product {product.id} from warehouse {source.id} to {destination.id} ({correlation_id})")
        return legs[0], legs[1]

    @classmethod
    def set_level(cls, product, warehouse, target_quantity, notes='', user=None):
        """
        Bring the stock of a product in a warehouse to ``target_quantity``.

        The difference is recorded as an adjustment; returns the movement, or
        None when the level already matches.
        """
        if isinstance(target_quantity, bool) or not isinstance(target_quantity, int) or target_quantity < 0:
            raise ValidationError('Stock must be a whole number of zero or more.', field='stock')

        with StockLedger.atomic():
            StockLedger.lock(product.id, [warehouse.id])
            difference = target_quantity - StockLedger.current(product.id, warehouse.id)
            if difference == 0:
                return None
            return cls.record_adjustment(
                product,
                warehouse,
                StockMovement.TYPE_IN if difference > 0 else StockMovement.TYPE_OUT,
                StockMovement.REASON_ADJUSTMENT,
                abs(difference),
                notes=notes,
                user=user,
            )
