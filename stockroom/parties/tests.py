"""
Tests for the supplier endpoints
"""
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase
from rest_framework import status

from stockroom.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockroom.core.permissions import ADMINISTRATOR, STAFF
from .models import Supplier


class SupplierAPITest(TestCase):
    """Test supplier CRUD"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(roles=[ADMINISTRATOR])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_create_supplier_with_document(self):
        document = SimpleUploadedFile('terms.pdf', b'%PDF-1.4 test', content_type='application/pdf')
        response = self.client.post('/api/v1/suppliers/', {
            'name': 'Acme Parts',
            'phone': '5550111',
            'email': 'sales@acme.test',
            'address': '2 Mill Lane',
            'document': document,
        }, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        supplier = Supplier.objects.get(name='Acme Parts')
        self.assertTrue(supplier.document.name.startswith('suppliers/documents/'))

    def test_document_must_be_pdf_or_word(self):
        document = SimpleUploadedFile('terms.exe', b'MZ', content_type='application/octet-stream')
        response = self.client.post('/api/v1/suppliers/', {
            'name': 'Bad Docs Ltd',
            'document': document,
        }, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('document', response.data)

    def test_duplicate_name_rejected(self):
        TestDataFactory.create_supplier(name='Globex')
        response = self.client.post('/api/v1/suppliers/', {'name': 'Globex'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_search_matches_email(self):
        TestDataFactory.create_supplier(name='Initech', email='hello@initech.test')
        TestDataFactory.create_supplier(name='Umbrella', email='info@umbrella.test')
        response = self.client.get('/api/v1/suppliers/?search=initech.test')
        self.assertEqual(response.data['count'], 1)

    def test_patch_supplier(self):
        supplier = TestDataFactory.create_supplier()
        response = self.client.patch(f'/api/v1/suppliers/{supplier.id}/', {'phone': '123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        supplier.refresh_from_db()
        self.assertEqual(supplier.phone, '123')

    def test_delete_supplier_with_products_refused(self):
        supplier = TestDataFactory.create_supplier()
        TestDataFactory.create_product(supplier=supplier)
        response = self.client.delete(f'/api/v1/suppliers/{supplier.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_staff_cannot_delete(self):
        supplier = TestDataFactory.create_supplier()
        staff = TestDataFactory.create_user(roles=[STAFF])
        self.client.authenticate_user(staff)
        response = self.client.delete(f'/api/v1/suppliers/{supplier.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
