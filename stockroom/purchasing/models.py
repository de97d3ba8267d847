from django.db import models
from decimal import Decimal
from stockroom.catalog.models import Product
from stockroom.parties.models import Supplier
from stockroom.locations.models import Warehouse
from stockroom.core.models import User


class PurchaseOrder(models.Model):
    """Purchase order to a supplier"""
    STATUS_DRAFT = 'draft'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    OPEN_STATUSES = (STATUS_DRAFT, STATUS_CONFIRMED)
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='purchase_orders')
    order_date = models.DateTimeField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    notes = models.TextField(blank=True)
    # Destination of the received stock, set when the order is completed
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, null=True, blank=True, related_name='purchase_orders')
    confirmed_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='purchase_orders')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"PO-{self.id}"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def get_total(self):
        """Get total order amount"""
        return sum((item.get_line_total() for item in self.items.all()), Decimal('0.00'))

    class Meta:
        db_table = 'purchase_orders'
        ordering = ['-order_date', '-created_at']
        indexes = [
            models.Index(fields=['status'], name='idx_po_status'),
            models.Index(fields=['supplier', 'status'], name='idx_po_supplier_status'),
            models.Index(fields=['-order_date', '-created_at'], name='idx_po_date_created'),
        ]


class PurchaseOrderItem(models.Model):
    """Purchase order line items"""
    order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='purchase_order_items')
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)

    def __str__(self):
        return f"{self.product} x {self.quantity}"

    def get_line_total(self):
        """Calculate line total"""
        return self.quantity * self.unit_price

    class Meta:
        db_table = 'purchase_order_items'
        ordering = ['id']
        indexes = [
            models.Index(fields=['order', 'product'], name='idx_poitem_order_product'),
        ]
