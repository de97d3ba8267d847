"""
Tests for the stock ledger, movement recording and stock endpoints
"""
from django.db.models import Sum
from django.test import TestCase, TransactionTestCase
from rest_framework import status

from stockroom.core.exceptions import InsufficientStock, InvalidState, UnknownLocation, ValidationError
from stockroom.core.models import AuditLog
from stockroom.core.permissions import STAFF
from stockroom.core.test_utils import (
    TestDataFactory, AuthenticatedAPIClient, run_concurrently, supports_concurrent_writes,
)
from .ledger import StockLedger
from .models import StockMovement, WarehouseStock
from .services import MovementRecorder, resolve_movement_type


class StockLedgerTest(TestCase):
    """Test the ledger arithmetic and its guards"""

    def setUp(self):
        self.product = TestDataFactory.create_product()
        self.warehouse = TestDataFactory.create_warehouse()

    def test_adjust_creates_row_and_returns_quantity(self):
        self.assertEqual(StockLedger.adjust(self.product.id, self.warehouse.id, 5), 5)
        self.assertEqual(StockLedger.adjust(self.product.id, self.warehouse.id, -2), 3)
        self.assertEqual(StockLedger.current(self.product.id, self.warehouse.id), 3)

    def test_withdrawal_beyond_stock_is_refused(self):
        """Taking 10 out of 7 fails and leaves the quantity at 7"""
        StockLedger.adjust(self.product.id, self.warehouse.id, 7)
        with self.assertRaises(InsufficientStock) as ctx:
            StockLedger.adjust(self.product.id, self.warehouse.id, -10)
        self.assertEqual(ctx.exception.available, 7)
        self.assertEqual(ctx.exception.requested, 10)
        self.assertEqual(StockLedger.current(self.product.id, self.warehouse.id), 7)

    def test_withdrawal_from_unknown_location(self):
        with self.assertRaises(UnknownLocation):
            StockLedger.adjust(self.product.id, self.warehouse.id, -1)
        self.assertFalse(WarehouseStock.objects.filter(product=self.product).exists())

    def test_zero_and_non_integer_deltas_rejected(self):
        for delta in (0, 1.5, '3', True):
            with self.assertRaises(ValidationError):
                StockLedger.adjust(self.product.id, self.warehouse.id, delta)

    def test_row_kept_when_quantity_reaches_zero(self):
        StockLedger.adjust(self.product.id, self.warehouse.id, 4)
        self.assertEqual(StockLedger.adjust(self.product.id, self.warehouse.id, -4), 0)
        self.assertTrue(WarehouseStock.objects.filter(product=self.product, warehouse=self.warehouse).exists())

    def test_ensure_location_is_idempotent(self):
        StockLedger.ensure_location(self.product.id, self.warehouse.id)
        StockLedger.ensure_location(self.product.id, self.warehouse.id)
        self.assertEqual(WarehouseStock.objects.filter(product=self.product).count(), 1)
        self.assertEqual(StockLedger.current(self.product.id, self.warehouse.id), 0)


class ConcurrentWithdrawalTest(TransactionTestCase):
    """Test that racing withdrawals never drive stock negative"""

    def setUp(self):
        if not supports_concurrent_writes():
            self.skipTest('database cannot serialise concurrent transactions')
        self.product = TestDataFactory.create_product()
        self.warehouse = TestDataFactory.create_warehouse()
        TestDataFactory.create_stock(self.product, self.warehouse, 10)

    def _withdraw(self, quantity):
        return lambda: MovementRecorder.record_adjustment(
            self.product, self.warehouse, 'out', 'sale', quantity
        )

    def test_two_withdrawals_of_seven_from_ten(self):
        """Only one of two 7-unit sales fits into 10 units"""
        outcomes = run_concurrently(self._withdraw(7), self._withdraw(7))

        movements = [o for o in outcomes if isinstance(o, StockMovement)]
        refused = [o for o in outcomes if isinstance(o, InsufficientStock)]
        self.assertEqual((len(movements), len(refused)), (1, 1), outcomes)
        self.assertEqual(refused[0].available, 3)
        self.assertEqual(StockLedger.current(self.product.id, self.warehouse.id), 3)
        self.assertEqual(StockMovement.objects.filter(product=self.product).count(), 1)

    def test_many_small_withdrawals(self):
        outcomes = run_concurrently(*[self._withdraw(3) for _ in range(5)])

        succeeded = [o for o in outcomes if isinstance(o, StockMovement)]
        self.assertEqual(len(succeeded), 3, outcomes)
        self.assertTrue(all(isinstance(o, (StockMovement, InsufficientStock)) for o in outcomes), outcomes)
        self.assertEqual(StockLedger.current(self.product.id, self.warehouse.id), 1)
        total_out = StockMovement.objects.filter(product=self.product).aggregate(total=Sum('quantity'))['total']
        self.assertEqual(total_out, 9)


class MovementRecorderTest(TestCase):
    """Test movement rules and the ledger/movement consistency"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product()
        self.north = TestDataFactory.create_warehouse(name='North')
        self.south = TestDataFactory.create_warehouse(name='South')

    def _movement_total(self, warehouse):
        movements = StockMovement.objects.filter(product=self.product, warehouse=warehouse)
        return sum(movement.signed_quantity for movement in movements)

    def test_ledger_equals_sum_of_movements(self):
        """After a mix of movements every stock row equals its signed movement total"""
        MovementRecorder.record_adjustment(self.product, self.north, 'in', 'purchase', 20, user=self.user)
        MovementRecorder.record_adjustment(self.product, self.north, None, 'sale', 3)
        MovementRecorder.record_adjustment(self.product, self.north, 'in', 'return', 1)
        MovementRecorder.record_transfer(self.product, self.north, self.south, 8)
        MovementRecorder.record_adjustment(self.product, self.south, 'out', 'damage', 2)
        MovementRecorder.set_level(self.product, self.north, 4)

        for warehouse in (self.north, self.south):
            self.assertEqual(
                StockLedger.current(self.product.id, warehouse.id),
                self._movement_total(warehouse),
            )
        self.assertEqual(StockLedger.current(self.product.id, self.north.id), 4)
        self.assertEqual(StockLedger.current(self.product.id, self.south.id), 6)

    def test_failed_withdrawal_records_nothing(self):
        MovementRecorder.record_adjustment(self.product, self.north, 'in', 'adjustment', 7)
        with self.assertRaises(InsufficientStock):
            MovementRecorder.record_adjustment(self.product, self.north, 'out', 'adjustment', 10)
        self.assertEqual(StockMovement.objects.count(), 1)
        self.assertEqual(StockLedger.current(self.product.id, self.north.id), 7)

    def test_sale_defaults_to_out(self):
        MovementRecorder.record_adjustment(self.product, self.north, 'in', 'purchase', 5)
        movement = MovementRecorder.record_adjustment(self.product, self.north, None, 'sale', 2)
        self.assertEqual(movement.movement_type, StockMovement.TYPE_OUT)
        self.assertEqual(StockLedger.current(self.product.id, self.north.id), 3)

    def test_sale_and_damage_cannot_add_stock(self):
        for reason in ('sale', 'damage'):
            with self.assertRaises(ValidationError) as ctx:
                MovementRecorder.record_adjustment(self.product, self.north, 'in', reason, 5)
            self.assertEqual(ctx.exception.field, 'movement_type')
        self.assertFalse(StockMovement.objects.exists())

    def test_transfer_reason_rejected_for_adjustments(self):
        with self.assertRaises(ValidationError):
            resolve_movement_type('transfer', 'in')
        with self.assertRaises(ValidationError):
            resolve_movement_type('gift', 'in')

    def test_other_reasons_need_a_type(self):
        with self.assertRaises(ValidationError):
            resolve_movement_type('adjustment', None)
        self.assertEqual(resolve_movement_type('return', 'in'), 'in')

    def test_quantity_must_be_positive(self):
        for quantity in (0, -3):
            with self.assertRaises(ValidationError):
                MovementRecorder.record_adjustment(self.product, self.north, 'in', 'adjustment', quantity)

    def test_transfer_round_trip_preserves_total(self):
        """Two legs sharing a correlation id; moving back restores both levels"""
        MovementRecorder.record_adjustment(self.product, self.north, 'in', 'purchase', 10)

        out_leg, in_leg = MovementRecorder.record_transfer(self.product, self.north, self.south, 6, user=self.user)
        self.assertEqual(out_leg.correlation_id, in_leg.correlation_id)
        self.assertEqual((out_leg.movement_type, in_leg.movement_type), ('out', 'in'))
        self.assertEqual(out_leg.reason, StockMovement.REASON_TRANSFER)
        self.assertEqual(StockLedger.current(self.product.id, self.north.id), 4)
        self.assertEqual(StockLedger.current(self.product.id, self.south.id), 6)

        MovementRecorder.record_transfer(self.product, self.south, self.north, 6)
        self.assertEqual(StockLedger.current(self.product.id, self.north.id), 10)
        self.assertEqual(StockLedger.current(self.product.id, self.south.id), 0)
        total = WarehouseStock.objects.filter(product=self.product).aggregate(total=Sum('quantity'))['total']
        self.assertEqual(total, 10)

    def test_transfer_to_same_warehouse_rejected(self):
        MovementRecorder.record_adjustment(self.product, self.north, 'in', 'purchase', 10)
        with self.assertRaises(ValidationError) as ctx:
            MovementRecorder.record_transfer(self.product, self.north, self.north, 2)
        self.assertEqual(ctx.exception.field, 'destination_warehouse')
        self.assertEqual(StockMovement.objects.count(), 1)

    def test_failed_transfer_leaves_both_sides_untouched(self):
        MovementRecorder.record_adjustment(self.product, self.north, 'in', 'purchase', 3)
        with self.assertRaises(InsufficientStock):
            MovementRecorder.record_transfer(self.product, self.north, self.south, 5)
        self.assertEqual(StockLedger.current(self.product.id, self.north.id), 3)
        self.assertFalse(WarehouseStock.objects.filter(warehouse=self.south).exists())
        self.assertFalse(StockMovement.objects.filter(reason='transfer').exists())

    def test_set_level_records_difference(self):
        MovementRecorder.record_adjustment(self.product, self.north, 'in', 'purchase', 10)
        movement = MovementRecorder.set_level(self.product, self.north, 4, notes='Recount')
        self.assertEqual((movement.movement_type, movement.quantity), ('out', 6))
        self.assertEqual(movement.reason, StockMovement.REASON_ADJUSTMENT)
        self.assertIsNone(MovementRecorder.set_level(self.product, self.north, 4))

    def test_movements_are_append_only(self):
        movement = MovementRecorder.record_adjustment(self.product, self.north, 'in', 'purchase', 5)
        movement.notes = 'edited'
        with self.assertRaises(InvalidState):
            movement.save()
        with self.assertRaises(InvalidState):
            movement.delete()
        self.assertEqual(StockMovement.objects.get(pk=movement.pk).notes, '')


class StockAPITest(TestCase):
    """Test the stock and movement endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(roles=[STAFF])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(name='Hinge')
        self.north = TestDataFactory.create_warehouse(name='North')
        self.south = TestDataFactory.create_warehouse(name='South')

    def test_adjust_endpoint_records_movement(self):
        response = self.client.post('/api/v1/stock-movements/adjust/', {
            'product': self.product.id,
            'warehouse': self.north.id,
            'movement_type': 'in',
            'reason': 'purchase',
            'quantity': 12,
            'notes': 'Delivery',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['quantity'], 12)
        self.assertEqual(response.data['created_by'], self.user.id)
        self.assertEqual(StockLedger.current(self.product.id, self.north.id), 12)
        self.assertTrue(AuditLog.objects.filter(action='stock_adjust').exists())

    def test_adjust_endpoint_reports_insufficient_stock(self):
        TestDataFactory.create_stock(self.product, self.north, 7)
        response = self.client.post('/api/v1/stock-movements/adjust/', {
            'product': self.product.id,
            'warehouse': self.north.id,
            'movement_type': 'out',
            'reason': 'adjustment',
            'quantity': 10,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertIn('Available: 7', response.data['error'])
        self.assertFalse(StockMovement.objects.exists())

    def test_adjust_endpoint_rejects_sale_in(self):
        response = self.client.post('/api/v1/stock-movements/adjust/', {
            'product': self.product.id,
            'warehouse': self.north.id,
            'movement_type': 'in',
            'reason': 'sale',
            'quantity': 1,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'movement_type')

    def test_transfer_endpoint(self):
        TestDataFactory.create_stock(self.product, self.north, 9)
        response = self.client.post('/api/v1/stock-movements/transfer/', {
            'product': self.product.id,
            'source_warehouse': self.north.id,
            'destination_warehouse': self.south.id,
            'quantity': 4,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(response.data['movements']), 2)
        self.assertEqual(StockLedger.current(self.product.id, self.south.id), 4)

        response = self.client.get(f"/api/v1/stock-movements/?correlation_id={response.data['correlation_id']}")
        self.assertEqual(response.data['count'], 2)

    def test_stock_list_filters(self):
        TestDataFactory.create_stock(self.product, self.north, 3)
        TestDataFactory.create_stock(self.product, self.south, 30)

        response = self.client.get(f'/api/v1/stock/?warehouse={self.north.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

        response = self.client.get('/api/v1/stock/?max_quantity=5')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['warehouse_name'], 'North')

    def test_movement_list_filters_by_reason(self):
        MovementRecorder.record_adjustment(self.product, self.north, 'in', 'purchase', 5)
        MovementRecorder.record_adjustment(self.product, self.north, None, 'damage', 1)
        response = self.client.get('/api/v1/stock-movements/?reason=damage')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['movement_type'], 'out')
