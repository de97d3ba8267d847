"""
Tests for the dashboard
"""
from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework import status

from stockroom.core.permissions import MANAGER, STAFF
from stockroom.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockroom.inventory.services import MovementRecorder


class DashboardAPITest(TestCase):
    """Test dashboard metrics and access"""

    def setUp(self):
        cache.clear()
        self.manager = TestDataFactory.create_user(roles=[MANAGER])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    @override_settings(STOCKROOM_LOW_STOCK_THRESHOLD=5)
    def test_dashboard_metrics(self):
        warehouse = TestDataFactory.create_warehouse(name='Central')
        scarce = TestDataFactory.create_product(name='Scarce')
        plenty = TestDataFactory.create_product(name='Plenty')
        MovementRecorder.record_adjustment(scarce, warehouse, 'in', 'purchase', 3)
        MovementRecorder.record_adjustment(plenty, warehouse, 'in', 'purchase', 50)
        MovementRecorder.record_adjustment(plenty, warehouse, None, 'sale', 5)
        TestDataFactory.create_purchase_order(status='draft')

        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data

        self.assertEqual(data['counts']['products'], 2)
        self.assertEqual(data['counts']['warehouses'], 1)
        self.assertEqual(data['counts']['users'], 1)
        self.assertEqual(data['movements_last_30_days'], {'in': 2, 'out': 1})
        self.assertEqual(data['purchase_orders_last_30_days']['draft'], 1)
        self.assertEqual(data['purchase_orders_last_30_days']['completed'], 0)
        self.assertEqual([row['product_name'] for row in data['low_stock']], ['Scarce'])
        self.assertEqual(len(data['monthly_purchase_orders']), 12)
        self.assertEqual(sum(month['draft'] for month in data['monthly_purchase_orders']), 1)

    def test_recent_activity_lists_audit_entries(self):
        self.client.post('/api/v1/warehouses/', {'name': 'Depot'}, format='json')
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.data['recent_activity'][0]['model_name'], 'Warehouse')

    def test_staff_cannot_see_dashboard(self):
        self.client.authenticate_user(TestDataFactory.create_user(roles=[STAFF]))
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
