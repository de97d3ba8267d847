"""
Tests for categories and products
"""
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase
from rest_framework import status

from stockroom.core.exceptions import ValidationError
from stockroom.core.models import AuditLog
from stockroom.core.permissions import MANAGER, STAFF
from stockroom.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockroom.inventory.ledger import StockLedger
from stockroom.inventory.models import StockMovement, WarehouseStock
from stockroom.inventory.services import MovementRecorder
from .models import Category, Product
from .validators import parse_specifications


class SpecificationParsingTest(TestCase):
    """Test normalisation of product specifications"""

    def test_mapping_becomes_ordered_pairs(self):
        self.assertEqual(
            parse_specifications({'Colour': 'Red', 'Weight': 2}),
            [{'title': 'Colour', 'value': 'Red'}, {'title': 'Weight', 'value': '2'}],
        )

    def test_json_string_accepted(self):
        self.assertEqual(
            parse_specifications('[{"title": " Size ", "value": "XL"}]'),
            [{'title': 'Size', 'value': 'XL'}],
        )

    def test_empty_values(self):
        for value in (None, '', [], {}):
            self.assertEqual(parse_specifications(value), [])

    def test_malformed_specifications_rejected(self):
        for value in ('not json', [{'title': 'Size'}], [{'title': '', 'value': 'x'}], 42):
            with self.assertRaises(ValidationError):
                parse_specifications(value)


class CategoryAPITest(TestCase):

    def setUp(self):
        self.manager = TestDataFactory.create_user(roles=[MANAGER])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    def test_create_and_list_with_product_count(self):
        response = self.client.post('/api/v1/categories/', {'name': 'Fasteners', 'description': 'Bolts'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        TestDataFactory.create_product(category=Category.objects.get(name='Fasteners'))

        response = self.client.get('/api/v1/categories/?search=fast')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['product_count'], 1)

    def test_category_with_products_cannot_be_deleted(self):
        product = TestDataFactory.create_product()
        response = self.client.delete(f'/api/v1/categories/{product.category_id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Category.objects.filter(pk=product.category_id).exists())


class ProductAPITest(TestCase):
    """Test product CRUD and the stock side effects of product writes"""

    def setUp(self):
        self.manager = TestDataFactory.create_user(roles=[MANAGER])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)
        self.category = TestDataFactory.create_category(name='Tools')
        self.supplier = TestDataFactory.create_supplier(name='Acme')
        self.warehouse = TestDataFactory.create_warehouse(name='Central')

    def _payload(self, **overrides):
        payload = {
            'name': 'Hammer',
            'category': self.category.id,
            'supplier': self.supplier.id,
            'price': '12.50',
        }
        payload.update(overrides)
        return payload

    def test_create_with_initial_stock_records_movement(self):
        """Initial stock goes through the ledger as an inbound adjustment"""
        response = self.client.post('/api/v1/products/', self._payload(
            warehouse=self.warehouse.id, stock=15,
            specifications={'Weight': '1kg'},
        ), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_stock'], 15)
        self.assertEqual(response.data['specifications'], [{'title': 'Weight', 'value': '1kg'}])
        self.assertEqual(response.data['warehouses'][0]['warehouse_name'], 'Central')

        product = Product.objects.get(name='Hammer')
        movement = StockMovement.objects.get(product=product)
        self.assertEqual((movement.movement_type, movement.reason, movement.quantity), ('in', 'adjustment', 15))
        self.assertEqual(movement.notes, 'Initial stock for product creation')
        self.assertEqual(movement.created_by, self.manager)
        self.assertTrue(AuditLog.objects.filter(model_name='Product', action='create').exists())

    def test_create_with_warehouse_only_registers_location(self):
        response = self.client.post('/api/v1/products/', self._payload(warehouse=self.warehouse.id), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(WarehouseStock.objects.filter(warehouse=self.warehouse, quantity=0).exists())
        self.assertFalse(StockMovement.objects.exists())

    def test_stock_without_warehouse_rejected(self):
        response = self.client.post('/api/v1/products/', self._payload(stock=5), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('warehouse', response.data)
        self.assertFalse(Product.objects.exists())

    def test_negative_price_rejected(self):
        response = self.client.post('/api/v1/products/', self._payload(price='-1'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_duplicate_name_rejected(self):
        TestDataFactory.create_product(name='Hammer')
        response = self.client.post('/api/v1/products/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('name', response.data)

    def test_update_sets_stock_level(self):
        """Updating stock records only the difference"""
        product = TestDataFactory.create_product(category=self.category, supplier=self.supplier)
        MovementRecorder.record_adjustment(product, self.warehouse, 'in', 'purchase', 10)

        response = self.client.patch(f'/api/v1/products/{product.id}/', {
            'warehouse': self.warehouse.id, 'stock': 4, 'price': '20.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['price'], '20.00')
        self.assertEqual(StockLedger.current(product.id, self.warehouse.id), 4)
        movement = StockMovement.objects.filter(product=product).first()
        self.assertEqual((movement.movement_type, movement.quantity), ('out', 6))
        self.assertEqual(movement.notes, 'Stock adjustment for product update')

    def test_manual_must_be_pdf(self):
        product = TestDataFactory.create_product(category=self.category, supplier=self.supplier)
        upload = SimpleUploadedFile('manual.txt', b'hello', content_type='text/plain')
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'manual_pdf': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('manual_pdf', response.data)

    def test_manual_upload(self):
        product = TestDataFactory.create_product(category=self.category, supplier=self.supplier)
        upload = SimpleUploadedFile('manual.pdf', b'%PDF-1.4 test', content_type='application/pdf')
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'manual_pdf': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertTrue(product.manual_pdf.name.startswith('products/manuals/'))

    def test_product_with_history_cannot_be_deleted(self):
        product = TestDataFactory.create_product()
        MovementRecorder.record_adjustment(product, self.warehouse, 'in', 'purchase', 1)
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Product.objects.filter(pk=product.pk).exists())

    def test_delete_product_without_history(self):
        product = TestDataFactory.create_product()
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=product.pk).exists())

    def test_add_to_warehouse_adds_to_existing_stock(self):
        product = TestDataFactory.create_product()
        TestDataFactory.create_stock(product, self.warehouse, 3)
        response = self.client.post('/api/v1/products/add-to-warehouse/', {
            'product': product.id, 'warehouse': self.warehouse.id, 'stock': 5,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['quantity'], 8)
        self.assertEqual(StockMovement.objects.get(product=product).notes, 'Stock added to warehouse')

    def test_add_to_warehouse_requires_manager(self):
        staff = TestDataFactory.create_user(roles=[STAFF])
        self.client.authenticate_user(staff)
        product = TestDataFactory.create_product()
        response = self.client.post('/api/v1/products/add-to-warehouse/', {
            'product': product.id, 'warehouse': self.warehouse.id, 'stock': 5,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class ProductFilterTest(TestCase):
    """Test the product list filters"""

    def setUp(self):
        user = TestDataFactory.create_user(roles=[STAFF])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(user)
        self.warehouse = TestDataFactory.create_warehouse()
        power = TestDataFactory.create_category(name='Power Tools')
        self.drill = TestDataFactory.create_product(name='Cordless Drill', category=power)
        self.saw = TestDataFactory.create_product(name='Hand Saw', is_active=False)
        TestDataFactory.create_stock(self.drill, self.warehouse, 50)
        TestDataFactory.create_stock(self.saw, self.warehouse, 2)

    def test_search_matches_every_word(self):
        response = self.client.get('/api/v1/products/?search=power drill')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['name'], 'Cordless Drill')

    def test_active_filter(self):
        response = self.client.get('/api/v1/products/?active=false')
        self.assertEqual([row['name'] for row in response.data['results']], ['Hand Saw'])

    def test_low_stock_filter(self):
        response = self.client.get('/api/v1/products/?low_stock=5')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['total_stock'], 2)

    def test_warehouse_filter(self):
        other = TestDataFactory.create_warehouse()
        TestDataFactory.create_stock(TestDataFactory.create_product(), other, 1)
        response = self.client.get(f'/api/v1/products/?warehouse={self.warehouse.id}')
        self.assertEqual(response.data['count'], 2)

    def test_staff_cannot_create_products(self):
        response = self.client.post('/api/v1/products/', {'name': 'Nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
