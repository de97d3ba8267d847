"""
Tests for the warehouse endpoints
"""
from django.test import TestCase
from rest_framework import status

from stockroom.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockroom.core.permissions import MANAGER, STAFF
from stockroom.core.models import AuditLog
from stockroom.inventory.services import MovementRecorder
from .models import Warehouse


class WarehouseAPITest(TestCase):
    """Test warehouse CRUD and role gating"""

    def setUp(self):
        self.manager = TestDataFactory.create_user(roles=[MANAGER])
        self.staff = TestDataFactory.create_user(roles=[STAFF])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    def test_create_warehouse_writes_audit_log(self):
        """A manager can create a warehouse and the action is audited"""
        response = self.client.post('/api/v1/warehouses/', {
            'name': 'Main Depot',
            'phone': '5550100',
            'email': 'depot@example.com',
            'address': '1 Dock Road',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(Warehouse.objects.filter(name='Main Depot').exists())
        self.assertTrue(AuditLog.objects.filter(model_name='Warehouse', action='create').exists())

    def test_staff_can_read_but_not_create(self):
        """Staff users get read access only"""
        TestDataFactory.create_warehouse(name='North')
        self.client.authenticate_user(self.staff)

        response = self.client.get('/api/v1/warehouses/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

        response = self.client.post('/api/v1/warehouses/', {'name': 'South'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_unauthenticated_request_rejected(self):
        self.client.logout()
        response = self.client.get('/api/v1/warehouses/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_search_filters_by_name(self):
        TestDataFactory.create_warehouse(name='Harbour')
        TestDataFactory.create_warehouse(name='Airport')
        response = self.client.get('/api/v1/warehouses/?search=harb')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['name'], 'Harbour')

    def test_delete_warehouse_with_movements_is_refused(self):
        """Movements protect their warehouse from deletion"""
        warehouse = TestDataFactory.create_warehouse()
        product = TestDataFactory.create_product()
        MovementRecorder.record_adjustment(product, warehouse, 'in', 'adjustment', 3)

        response = self.client.delete(f'/api/v1/warehouses/{warehouse.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('error', response.data)
        self.assertTrue(Warehouse.objects.filter(pk=warehouse.pk).exists())

    def test_delete_empty_warehouse(self):
        warehouse = TestDataFactory.create_warehouse()
        response = self.client.delete(f'/api/v1/warehouses/{warehouse.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Warehouse.objects.filter(pk=warehouse.pk).exists())

    def test_warehouse_products_lists_stock(self):
        """The products endpoint returns the ledger rows of the warehouse"""
        warehouse = TestDataFactory.create_warehouse()
        other = TestDataFactory.create_warehouse()
        product = TestDataFactory.create_product(name='Bolt')
        TestDataFactory.create_stock(product, warehouse, 12)
        TestDataFactory.create_stock(product, other, 4)

        response = self.client.get(f'/api/v1/warehouses/{warehouse.id}/products/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        row = response.data['results'][0]
        self.assertEqual(row['product_name'], 'Bolt')
        self.assertEqual(row['quantity'], 12)
