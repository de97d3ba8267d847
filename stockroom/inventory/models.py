from django.db import models
from django.utils import timezone
from stockroom.core.exceptions import InvalidState
from stockroom.core.models import User


class WarehouseStock(models.Model):
    """
    Quantity of a product held in a warehouse.

    Rows are written only by ``StockLedger``; nothing else may change
    ``quantity`` directly.
    """
    product = models.ForeignKey('catalog.Product', on_delete=models.CASCADE, related_name='stock_levels')
    warehouse = models.ForeignKey('locations.Warehouse', on_delete=models.CASCADE, related_name='stock_levels')
    quantity = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.product} @ {self.warehouse}: {self.quantity}"

    class Meta:
        db_table = 'warehouse_stock'
        constraints = [
            models.UniqueConstraint(fields=['product', 'warehouse'], name='unique_product_warehouse_stock'),
        ]
        indexes = [
            models.Index(fields=['warehouse', 'product']),
            models.Index(fields=['quantity']),
        ]


class StockMovement(models.Model):
    """Append-only record of a stock quantity change"""
    TYPE_IN = 'in'
    TYPE_OUT = 'out'
    MOVEMENT_TYPE_CHOICES = [
        (TYPE_IN, 'Stock In'),
        (TYPE_OUT, 'Stock Out'),
    ]

    REASON_PURCHASE = 'purchase'
    REASON_SALE = 'sale'
    REASON_RETURN = 'return'
    REASON_TRANSFER = 'transfer'
    REASON_ADJUSTMENT = 'adjustment'
    REASON_DAMAGE = 'damage'
    REASON_CHOICES = [
        (REASON_PURCHASE, 'Purchase'),
        (REASON_SALE, 'Sale'),
        (REASON_RETURN, 'Return'),
        (REASON_TRANSFER, 'Transfer'),
        (REASON_ADJUSTMENT, 'Adjustment'),
        (REASON_DAMAGE, 'Damage'),
    ]

    product = models.ForeignKey('catalog.Product', on_delete=models.PROTECT, related_name='stock_movements')
    warehouse = models.ForeignKey('locations.Warehouse', on_delete=models.PROTECT, related_name='stock_movements')
    movement_type = models.CharField(max_length=10, choices=MOVEMENT_TYPE_CHOICES)
    reason = models.CharField(max_length=20, choices=REASON_CHOICES)
    quantity = models.PositiveIntegerField()
    notes = models.TextField(blank=True)
    # Shared by the two legs of a transfer
    correlation_id = models.UUIDField(null=True, blank=True, db_index=True)
    purchase_order = models.ForeignKey(
        'purchasing.PurchaseOrder', on_delete=models.PROTECT, null=True, blank=True, related_name='stock_movements'
    )
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_movements')
    movement_date = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.get_movement_type_display()} {self.quantity} x {self.product} ({self.reason})"

    @property
    def signed_quantity(self):
        return self.quantity if self.movement_type == self.TYPE_IN else -self.quantity

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise InvalidState('Stock movements cannot be modified once recorded.')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise InvalidState('Stock movements cannot be deleted.')

    class Meta:
        db_table = 'stock_movements'
        ordering = ['-movement_date', '-id']
        indexes = [
            models.Index(fields=['product', 'warehouse']),
            models.Index(fields=['movement_type', 'movement_date']),
            models.Index(fields=['reason']),
        ]
