"""
Tests for the purchase order workflow and endpoints
"""
from decimal import Decimal
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework import status

from stockroom.catalog.models import Product
from stockroom.core.exceptions import InvalidState, NotFound, ValidationError
from stockroom.core.models import AuditLog
from stockroom.core.permissions import STAFF
from stockroom.core.test_utils import (
    TestDataFactory, AuthenticatedAPIClient, run_concurrently, supports_concurrent_writes,
)
from stockroom.inventory.ledger import StockLedger
from stockroom.inventory.models import StockMovement
from .models import PurchaseOrder, PurchaseOrderItem
from .workflow import PurchaseOrderWorkflow, parse_order_date


class PurchaseOrderWorkflowTest(TestCase):
    """Test order creation, updates and the terminal transitions"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.supplier = TestDataFactory.create_supplier(name='Acme')
        self.product = TestDataFactory.create_product(name='Widget', supplier=self.supplier)
        self.warehouse = TestDataFactory.create_warehouse(name='Main')

    def _order(self, quantity=5, status='confirmed'):
        return PurchaseOrderWorkflow.create(
            [{'product': self.product, 'quantity': quantity, 'unit_price': Decimal('2.50')}],
            timezone.now(),
            status,
            user=self.user,
        )

    def test_create_takes_supplier_from_first_product(self):
        order = self._order()
        self.assertEqual(order.supplier, self.supplier)
        self.assertEqual(order.items.count(), 1)
        self.assertEqual(order.get_total(), Decimal('12.50'))
        self.assertFalse(StockMovement.objects.exists())

    def test_create_validates_items(self):
        with self.assertRaises(ValidationError):
            PurchaseOrderWorkflow.create([], timezone.now(), 'draft')
        with self.assertRaises(ValidationError):
            PurchaseOrderWorkflow.create(
                [{'product': self.product, 'quantity': 0, 'unit_price': '1'}], timezone.now(), 'draft'
            )
        with self.assertRaises(ValidationError):
            PurchaseOrderWorkflow.create(
                [{'product': self.product, 'quantity': 1, 'unit_price': '-1'}], timezone.now(), 'draft'
            )
        with self.assertRaises(ValidationError):
            PurchaseOrderWorkflow.create(
                [{'product': 999999, 'quantity': 1, 'unit_price': '1'}], timezone.now(), 'draft'
            )
        self.assertFalse(PurchaseOrder.objects.exists())

    def test_create_rejects_terminal_status(self):
        with self.assertRaises(ValidationError):
            PurchaseOrderWorkflow.create(
                [{'product': self.product, 'quantity': 1, 'unit_price': '1'}], timezone.now(), 'completed'
            )

    def test_complete_receives_stock_once(self):
        """Completing a 5-unit order adds 5 units and exactly one purchase movement"""
        order = self._order(quantity=5)
        before = StockLedger.current(self.product.id, self.warehouse.id)

        PurchaseOrderWorkflow.confirm(order.id, 'completed', warehouse=self.warehouse, user=self.user)

        self.assertEqual(StockLedger.current(self.product.id, self.warehouse.id), before + 5)
        movement = StockMovement.objects.get(purchase_order=order)
        self.assertEqual((movement.movement_type, movement.reason, movement.quantity), ('in', 'purchase', 5))
        self.assertEqual(movement.notes, f'Stock added from Purchase Order #{order.id}')
        order.refresh_from_db()
        self.assertEqual(order.status, 'completed')
        self.assertEqual(order.warehouse, self.warehouse)
        self.assertIsNotNone(order.confirmed_at)

    def test_second_confirm_is_rejected(self):
        order = self._order(quantity=5)
        PurchaseOrderWorkflow.confirm(order.id, 'completed', warehouse=self.warehouse)
        with self.assertRaises(InvalidState):
            PurchaseOrderWorkflow.confirm(order.id, 'completed', warehouse=self.warehouse)
        with self.assertRaises(InvalidState):
            PurchaseOrderWorkflow.confirm(order.id, 'cancelled', notes='Too late')
        self.assertEqual(StockMovement.objects.filter(purchase_order=order).count(), 1)
        self.assertEqual(StockLedger.current(self.product.id, self.warehouse.id), 5)

    def test_complete_requires_warehouse(self):
        order = self._order()
        with self.assertRaises(ValidationError) as ctx:
            PurchaseOrderWorkflow.confirm(order.id, 'completed')
        self.assertEqual(ctx.exception.field, 'warehouse')
        order.refresh_from_db()
        self.assertEqual(order.status, 'confirmed')

    def test_cancel_requires_notes(self):
        order = self._order()
        with self.assertRaises(ValidationError) as ctx:
            PurchaseOrderWorkflow.confirm(order.id, 'cancelled', notes='   ')
        self.assertEqual(ctx.exception.field, 'notes')

    def test_cancel_leaves_stock_unchanged(self):
        TestDataFactory.create_stock(self.product, self.warehouse, 3)
        order = self._order()
        PurchaseOrderWorkflow.confirm(order.id, 'cancelled', notes='out of stock at supplier')

        order.refresh_from_db()
        self.assertEqual(order.status, 'cancelled')
        self.assertEqual(order.notes, 'out of stock at supplier')
        self.assertEqual(StockLedger.current(self.product.id, self.warehouse.id), 3)
        self.assertFalse(StockMovement.objects.exists())

    def test_inactive_product_blocks_completion(self):
        """A failure while receiving rolls the status back"""
        order = self._order()
        Product.objects.filter(pk=self.product.pk).update(is_active=False)

        with self.assertRaises(ValidationError):
            PurchaseOrderWorkflow.confirm(order.id, 'completed', warehouse=self.warehouse)
        order.refresh_from_db()
        self.assertEqual(order.status, 'confirmed')
        self.assertIsNone(order.warehouse)
        self.assertFalse(StockMovement.objects.exists())

    def test_confirm_unknown_order(self):
        with self.assertRaises(NotFound):
            PurchaseOrderWorkflow.confirm(999999, 'cancelled', notes='x')

    def test_update_replaces_items(self):
        order = self._order(status='draft')
        other = TestDataFactory.create_product(name='Gadget')
        PurchaseOrderWorkflow.update(
            order.id,
            [{'product': other.id, 'quantity': 2, 'unit_price': '4'}],
            '2026-03-01',
            'confirmed',
        )
        order.refresh_from_db()
        self.assertEqual(order.status, 'confirmed')
        self.assertEqual(order.supplier, other.supplier)
        self.assertEqual(list(order.items.values_list('product__name', flat=True)), ['Gadget'])

    def test_update_keeps_explicit_supplier(self):
        order = self._order(status='draft')
        other_supplier = TestDataFactory.create_supplier(name='Globex')
        PurchaseOrderWorkflow.update(
            order.id,
            [{'product': self.product, 'quantity': 3, 'unit_price': '2.50'}],
            '2026-03-01',
            'draft',
            supplier=other_supplier,
        )
        order.refresh_from_db()
        self.assertEqual(order.supplier, other_supplier)

    def test_invalid_calendar_date_rejected_on_create(self):
        with self.assertRaises(ValidationError):
            PurchaseOrderWorkflow.create(
                [{'product': self.product, 'quantity': 1, 'unit_price': '1'}], '2024-02-30', 'draft'
            )
        self.assertFalse(PurchaseOrder.objects.exists())

    def test_terminal_order_cannot_be_updated(self):
        order = self._order()
        PurchaseOrderWorkflow.confirm(order.id, 'cancelled', notes='No longer needed')
        with self.assertRaises(InvalidState):
            PurchaseOrderWorkflow.update(
                order.id, [{'product': self.product, 'quantity': 1, 'unit_price': '1'}], timezone.now(), 'draft'
            )
        self.assertEqual(PurchaseOrderItem.objects.get(order=order).quantity, 5)

    def test_parse_order_date(self):
        self.assertEqual(parse_order_date('2026-01-15').date().isoformat(), '2026-01-15')
        self.assertTrue(timezone.is_aware(parse_order_date('2026-01-15T10:30:00')))
        with self.assertRaises(ValidationError):
            parse_order_date('yesterday')
        with self.assertRaises(ValidationError) as ctx:
            parse_order_date('2024-02-30')
        self.assertEqual(ctx.exception.field, 'order_date')
        with self.assertRaises(ValidationError):
            parse_order_date('2024-02-10T25:00:00')


class ConcurrentConfirmTest(TransactionTestCase):
    """Test that racing confirms of one order complete it exactly once"""

    def setUp(self):
        if not supports_concurrent_writes():
            self.skipTest('database cannot serialise concurrent transactions')
        self.product = TestDataFactory.create_product(name='Widget')
        self.warehouse = TestDataFactory.create_warehouse(name='Main')
        self.order = PurchaseOrderWorkflow.create(
            [{'product': self.product, 'quantity': 5, 'unit_price': '2.00'}], timezone.now(), 'confirmed'
        )

    def _confirm(self, target_status, **kwargs):
        return lambda: PurchaseOrderWorkflow.confirm(self.order.id, target_status, **kwargs)

    def test_two_completions_receive_stock_once(self):
        outcomes = run_concurrently(
            self._confirm('completed', warehouse=self.warehouse.id),
            self._confirm('completed', warehouse=self.warehouse.id),
        )

        completed = [o for o in outcomes if isinstance(o, PurchaseOrder)]
        rejected = [o for o in outcomes if isinstance(o, InvalidState)]
        self.assertEqual((len(completed), len(rejected)), (1, 1), outcomes)
        self.assertEqual(StockMovement.objects.filter(purchase_order=self.order).count(), 1)
        self.assertEqual(StockLedger.current(self.product.id, self.warehouse.id), 5)
        self.assertEqual(PurchaseOrder.objects.get(pk=self.order.pk).status, 'completed')

    def test_complete_racing_cancel(self):
        """Whichever confirm wins, stock matches the final status"""
        outcomes = run_concurrently(
            self._confirm('completed', warehouse=self.warehouse.id),
            self._confirm('cancelled', notes='Supplier closed'),
        )

        self.assertEqual(len([o for o in outcomes if isinstance(o, PurchaseOrder)]), 1, outcomes)
        self.assertEqual(len([o for o in outcomes if isinstance(o, InvalidState)]), 1, outcomes)
        final_status = PurchaseOrder.objects.get(pk=self.order.pk).status
        expected = 5 if final_status == 'completed' else 0
        self.assertEqual(StockLedger.current(self.product.id, self.warehouse.id), expected)
        self.assertEqual(StockMovement.objects.filter(purchase_order=self.order).count(), expected // 5)


class PurchaseOrderAPITest(TestCase):
    """Test the purchase order endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(roles=[STAFF])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(name='Widget')
        self.warehouse = TestDataFactory.create_warehouse(name='Main')

    def _create(self, quantity=5, status_value='confirmed'):
        return self.client.post('/api/v1/purchase-orders/', {
            'order_date': '2026-02-01T09:00:00Z',
            'status': status_value,
            'items': [{'product': self.product.id, 'quantity': quantity, 'unit_price': '3.00'}],
        }, format='json')

    def test_create_order(self):
        response = self._create()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['supplier'], self.product.supplier_id)
        self.assertEqual(response.data['total'], '15.00')
        self.assertEqual(response.data['created_by'], self.user.id)

    def test_create_without_items_rejected(self):
        response = self.client.post('/api/v1/purchase-orders/', {
            'order_date': '2026-02-01T09:00:00Z', 'items': [],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(PurchaseOrder.objects.exists())

    def test_confirm_endpoint_completes_order(self):
        order_id = self._create(quantity=5).data['id']
        response = self.client.post(f'/api/v1/purchase-orders/{order_id}/confirm/', {
            'status': 'completed', 'warehouse': self.warehouse.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'completed')
        self.assertEqual(response.data['warehouse_name'], 'Main')
        self.assertEqual(StockLedger.current(self.product.id, self.warehouse.id), 5)
        self.assertTrue(AuditLog.objects.filter(action='order_confirm', object_id=str(order_id)).exists())

        response = self.client.post(f'/api/v1/purchase-orders/{order_id}/confirm/', {
            'status': 'completed', 'warehouse': self.warehouse.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(StockLedger.current(self.product.id, self.warehouse.id), 5)

    def test_cancel_endpoint_requires_notes(self):
        order_id = self._create().data['id']
        response = self.client.post(f'/api/v1/purchase-orders/{order_id}/confirm/', {'status': 'cancelled'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'notes')

    def test_update_with_supplier(self):
        order_id = self._create(status_value='draft').data['id']
        supplier = TestDataFactory.create_supplier(name='Globex')
        response = self.client.put(f'/api/v1/purchase-orders/{order_id}/', {
            'order_date': '2026-02-02T09:00:00Z',
            'status': 'confirmed',
            'supplier': supplier.id,
            'items': [{'product': self.product.id, 'quantity': 2, 'unit_price': '3.00'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(PurchaseOrder.objects.get(pk=order_id).supplier, supplier)

    def test_update_of_completed_order_conflicts(self):
        order_id = self._create().data['id']
        self.client.post(f'/api/v1/purchase-orders/{order_id}/confirm/', {
            'status': 'completed', 'warehouse': self.warehouse.id,
        }, format='json')
        response = self.client.put(f'/api/v1/purchase-orders/{order_id}/', {
            'order_date': '2026-02-02T09:00:00Z',
            'status': 'draft',
            'items': [{'product': self.product.id, 'quantity': 1, 'unit_price': '3.00'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_list_filters_by_status(self):
        self._create(status_value='draft')
        self._create(status_value='confirmed')
        response = self.client.get('/api/v1/purchase-orders/?status=draft')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_orderable_products_exclude_inactive(self):
        TestDataFactory.create_product(name='Retired', is_active=False)
        response = self.client.get('/api/v1/purchase-orders/products/')
        self.assertEqual([row['name'] for row in response.data], ['Widget'])
