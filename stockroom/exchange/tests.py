"""
Tests for spreadsheet exports, imports and import templates
"""
import io
import zipfile
from datetime import timedelta
from unittest import mock

import openpyxl
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status

from stockroom.catalog.models import Category, Product
from stockroom.core.exceptions import NotFound, ValidationError
from stockroom.core.models import AuditLog
from stockroom.core.permissions import MANAGER, STAFF
from stockroom.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockroom.inventory.ledger import StockLedger
from stockroom.inventory.models import StockMovement
from stockroom.locations.models import Warehouse
from stockroom.purchasing.models import PurchaseOrder
from .coordinators import ExportJobCoordinator, ImportJobCoordinator
from .exporters import build_workbook, clean_fields
from .importers import IMPORT_HANDLERS, normalize_header
from .models import ExportJob, ImportJob


def _workbook_rows(content):
    workbook = openpyxl.load_workbook(io.BytesIO(content))
    return [list(row) for row in workbook.worksheets[0].iter_rows(values_only=True)]


def _xlsx_upload(name, rows):
    workbook = openpyxl.Workbook()
    for row in rows:
        workbook.active.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return SimpleUploadedFile(name, buffer.getvalue())


def _truncate_first_sheet(upload):
    """Keep the zip container valid but cut the first worksheet's XML in half"""
    source = zipfile.ZipFile(io.BytesIO(upload.read()))
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as target:
        for item in source.infolist():
            data = source.read(item.filename)
            if item.filename == 'xl/worksheets/sheet1.xml':
                data = data[:len(data) // 2]
            target.writestr(item, data)
    return SimpleUploadedFile(upload.name, buffer.getvalue())


class ExporterTest(TestCase):
    """Test field selection and workbook layout"""

    def test_fields_come_out_in_schema_order(self):
        self.assertEqual(clean_fields('products', ['price', 'name']), ['name', 'price'])

    def test_empty_selection_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            clean_fields('products', [])
        self.assertEqual(ctx.exception.field, 'fields')

    def test_unknown_field_or_entity_rejected(self):
        with self.assertRaises(ValidationError):
            clean_fields('products', ['name', 'colour'])
        with self.assertRaises(ValidationError):
            clean_fields('invoices', ['name'])

    def test_product_workbook_layout(self):
        warehouse = TestDataFactory.create_warehouse(name='Central')
        product = TestDataFactory.create_product(
            name='Drill', price='49.90', specifications=[{'title': 'voltage', 'value': '18V'}]
        )
        TestDataFactory.create_stock(product, warehouse, 7)

        rows = _workbook_rows(build_workbook('products', ['name', 'warehouse', 'specifications', 'is_active']))
        self.assertEqual(rows[0], ['No', 'Name', 'Warehouse', 'Specifications', 'Status'])
        self.assertEqual(rows[1], [1, 'Drill', 'Central - Stock: 7', 'Voltage: 18V', 'Active'])

    def test_cancelled_order_shows_reason(self):
        order = TestDataFactory.create_purchase_order(status='cancelled', notes='Supplier closed')
        TestDataFactory.create_purchase_order_item(order, TestDataFactory.create_product(name='Nail'), quantity=3)

        rows = _workbook_rows(build_workbook('purchase_orders', ['product', 'quantity', 'status']))
        self.assertEqual(rows[1], [1, 'Nail', '3', 'Cancelled\nReason: Supplier closed'])


class ExportJobCoordinatorTest(TestCase):
    """Test the queued export lifecycle"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        TestDataFactory.create_product(name='Widget', price='5.00')

    def test_export_lifecycle(self):
        """queued -> ready -> fetched once -> gone"""
        with self.captureOnCommitCallbacks(execute=True):
            result = ExportJobCoordinator.start('products', ['price', 'name'], user=self.user)
        self.assertEqual(result['status'], 'queued')
        token = result['file']

        self.assertEqual(ExportJobCoordinator.status(token), {'ready': True, 'failed': False})

        file_name, content = ExportJobCoordinator.fetch_and_retire(token)
        self.assertTrue(file_name.startswith('products_'))
        self.assertTrue(file_name.endswith('.xlsx'))
        self.assertEqual(_workbook_rows(content), [['No', 'Name', 'Price'], [1, 'Widget', 5]])

        with self.assertRaises(NotFound):
            ExportJobCoordinator.fetch_and_retire(token)
        with self.assertRaises(NotFound):
            ExportJobCoordinator.status(token)
        self.assertFalse(ExportJob.objects.exists())

    def test_generation_waits_for_commit(self):
        with self.captureOnCommitCallbacks() as callbacks:
            token = ExportJobCoordinator.start('products', ['name'])['file']
        self.assertEqual(ExportJobCoordinator.status(token), {'ready': False, 'failed': False})

        for callback in callbacks:
            callback()
        self.assertEqual(ExportJobCoordinator.status(token), {'ready': True, 'failed': False})

    def test_invalid_selection_creates_no_job(self):
        with self.assertRaises(ValidationError):
            ExportJobCoordinator.start('products', [])
        self.assertFalse(ExportJob.objects.exists())

    def test_unknown_token(self):
        with self.assertRaises(NotFound):
            ExportJobCoordinator.status('does-not-exist')

    def test_expired_export_is_not_served(self):
        token = ExportJobCoordinator.start('products', ['name'])['file']
        ExportJob.objects.filter(token=token).update(expires_at=timezone.now() - timedelta(seconds=1))
        with self.assertRaises(NotFound):
            ExportJobCoordinator.fetch_and_retire(token)
        self.assertFalse(ExportJob.objects.filter(token=token).exists())

    def test_purge_expired_removes_file_and_job(self):
        path = default_storage.save('exports/stale.xlsx', ContentFile(b'stale'))
        ExportJob.objects.create(
            token='stale', entity_type='products', fields=['name'], status=ExportJob.STATUS_READY,
            file_path=path, file_name='products.xlsx', expires_at=timezone.now() - timedelta(minutes=5),
        )
        fresh = ExportJobCoordinator.start('products', ['name'])['file']

        self.assertEqual(ExportJobCoordinator.purge_expired(), 1)
        self.assertFalse(default_storage.exists(path))
        self.assertEqual(list(ExportJob.objects.values_list('token', flat=True)), [fresh])


class ImportJobCoordinatorTest(TestCase):
    """Test upload validation and row-by-row import"""

    def setUp(self):
        self.user = TestDataFactory.create_user(roles=[MANAGER])

    def _run(self, entity_type, upload):
        with self.captureOnCommitCallbacks(execute=True):
            result = ImportJobCoordinator.start(entity_type, upload, user=self.user)
        self.assertEqual(result['status'], 'queued')
        return ImportJob.objects.get(pk=result['job'])

    def test_normalize_header(self):
        self.assertEqual(normalize_header('Warehouse (If status is completed)'), 'warehouse_if_status_is_completed')
        self.assertEqual(normalize_header(' Product Name '), 'product_name')

    def test_wrong_extension_rejected_without_job(self):
        upload = SimpleUploadedFile('categories.txt', b'Name\nTools\n')
        result = ImportJobCoordinator.start('categories', upload, user=self.user)
        self.assertEqual(result['status'], 'rejected')
        self.assertFalse(ImportJob.objects.exists())

    def test_missing_file_and_unknown_entity_rejected(self):
        self.assertEqual(ImportJobCoordinator.start('categories', None)['status'], 'rejected')
        upload = SimpleUploadedFile('x.csv', b'Name\nTools\n')
        self.assertEqual(ImportJobCoordinator.start('invoices', upload)['status'], 'rejected')
        self.assertFalse(ImportJob.objects.exists())

    @override_settings(STOCKROOM_IMPORT_MAX_UPLOAD_BYTES=10)
    def test_oversized_upload_rejected(self):
        upload = SimpleUploadedFile('categories.csv', b'Name,Description\nTools,Hand tools\n')
        self.assertEqual(ImportJobCoordinator.start('categories', upload)['status'], 'rejected')
        self.assertFalse(ImportJob.objects.exists())

    def test_csv_import_collects_row_errors(self):
        """Good rows are applied, bad rows are reported with their row number"""
        upload = SimpleUploadedFile(
            'categories.csv',
            b'Name,Description\nTools,Hand tools\n,No name here\n\nPaint,Wall paint\n',
        )
        job = self._run('categories', upload)

        self.assertEqual(job.status, ImportJob.STATUS_DONE)
        self.assertEqual((job.processed_count, job.success_count, job.error_count), (3, 2, 1))
        self.assertEqual(job.errors, [{'row': 3, 'message': 'Name is required.'}])
        self.assertEqual(sorted(Category.objects.values_list('name', flat=True)), ['Paint', 'Tools'])
        self.assertFalse(default_storage.exists(job.file_path))
        self.assertTrue(AuditLog.objects.filter(action='imported', object_id=str(job.id)).exists())

    def test_import_upserts_by_name(self):
        TestDataFactory.create_category(name='Tools', description='Old')
        self._run('categories', SimpleUploadedFile('c.csv', b'Name,Description\nTools,New\n'))
        self.assertEqual(Category.objects.get(name='Tools').description, 'New')
        self.assertEqual(Category.objects.count(), 1)

    def test_xlsx_warehouse_import(self):
        upload = _xlsx_upload('warehouses.xlsx', [
            ['Name', 'Phone', 'Email', 'Address'],
            ['Harbour', '5550101', 'harbour@example.com', 'Pier 4'],
            ['Bad Mail', '5550102', 'not-an-email', 'Somewhere'],
        ])
        job = self._run('warehouses', upload)
        self.assertEqual((job.success_count, job.error_count), (1, 1))
        self.assertEqual(job.errors[0]['row'], 3)
        self.assertTrue(Warehouse.objects.filter(name='Harbour', address='Pier 4').exists())

    def test_product_import_records_initial_stock(self):
        TestDataFactory.create_supplier(name='Acme')
        TestDataFactory.create_category(name='Tools')
        warehouse = TestDataFactory.create_warehouse(name='Central')
        upload = _xlsx_upload('products.xlsx', [
            ['Product Name', 'Price', 'Specifications', 'Supplier', 'Category', 'Warehouse', 'Stock'],
            ['Hammer', 12.5, '{"weight": "1kg"}', 'Acme', 'Tools', 'Central', 8],
            ['Wrench', 9, '', 'Nobody', 'Tools', 'Central', 1],
        ])
        job = self._run('products', upload)

        self.assertEqual((job.success_count, job.error_count), (1, 1))
        self.assertIn('Nobody', job.errors[0]['message'])
        hammer = Product.objects.get(name='Hammer')
        self.assertEqual(hammer.specifications, [{'title': 'weight', 'value': '1kg'}])
        self.assertEqual(StockLedger.current(hammer.id, warehouse.id), 8)
        self.assertEqual(StockMovement.objects.get(product=hammer).notes, 'Initial stock from import')
        self.assertFalse(Product.objects.filter(name='Wrench').exists())

    def test_completed_purchase_order_import_receives_stock(self):
        product = TestDataFactory.create_product(name='Widget')
        warehouse = TestDataFactory.create_warehouse(name='Main')
        upload = SimpleUploadedFile(
            'orders.csv',
            b'Product Name,Order Date,Price,Quantity,Status,Warehouse (If status is completed)\n'
            b'Widget,2026-01-10 09:00,3,4,completed,Main\n'
            b'Widget,2026-01-11 09:00,3,2,draft,\n'
            b'Widget,2026-01-12 09:00,3,2,cancelled,\n',
        )
        job = self._run('purchase_orders', upload)

        self.assertEqual((job.success_count, job.error_count), (2, 1))
        self.assertEqual(job.errors[0]['row'], 4)
        self.assertEqual(StockLedger.current(product.id, warehouse.id), 4)
        completed = PurchaseOrder.objects.get(status='completed')
        self.assertEqual(completed.warehouse, warehouse)
        self.assertEqual(StockMovement.objects.get(purchase_order=completed).reason, 'purchase')
        self.assertTrue(PurchaseOrder.objects.filter(status='draft').exists())

    def test_unreadable_file_fails_the_job(self):
        job = self._run('categories', SimpleUploadedFile('broken.xlsx', b'definitely not a workbook'))
        self.assertEqual(job.status, ImportJob.STATUS_FAILED)
        self.assertTrue(job.error)
        self.assertFalse(default_storage.exists(job.file_path))

    def test_broken_worksheet_fails_the_job(self):
        """A valid zip whose sheet XML is cut off is unreadable, not stuck"""
        upload = _truncate_first_sheet(_xlsx_upload('categories.xlsx', [
            ['Name', 'Description'],
            ['Tools', 'Hand tools'],
            ['Paint', 'Wall paint'],
        ]))
        job = self._run('categories', upload)

        self.assertEqual(job.status, ImportJob.STATUS_FAILED)
        self.assertTrue(job.error)
        self.assertIsNotNone(job.finished_at)
        self.assertFalse(Category.objects.exists())
        self.assertFalse(default_storage.exists(job.file_path))
        self.assertTrue(AuditLog.objects.filter(action='imported', object_id=str(job.id)).exists())

    def test_unexpected_error_during_rows_fails_the_job(self):
        def lose_connection(row, user=None):
            raise DatabaseError('connection lost')

        upload = SimpleUploadedFile('categories.csv', b'Name\nTools\n')
        with mock.patch.dict(IMPORT_HANDLERS, {'categories': lose_connection}):
            job = self._run('categories', upload)

        self.assertEqual(job.status, ImportJob.STATUS_FAILED)
        self.assertEqual(job.error, 'connection lost')
        self.assertEqual(job.processed_count, 1)
        self.assertFalse(default_storage.exists(job.file_path))

    def test_processing_waits_for_commit(self):
        """The task is only queued once the job row is committed"""
        with self.captureOnCommitCallbacks() as callbacks:
            result = ImportJobCoordinator.start('categories', SimpleUploadedFile('c.csv', b'Name\nTools\n'))
        self.assertEqual(len(callbacks), 1)
        self.assertEqual(ImportJob.objects.get(pk=result['job']).status, ImportJob.STATUS_QUEUED)

        callbacks[0]()
        self.assertEqual(ImportJob.objects.get(pk=result['job']).status, ImportJob.STATUS_DONE)

    def test_status_of_unknown_job(self):
        with self.assertRaises(NotFound):
            ImportJobCoordinator.status('not-a-uuid')
        with self.assertRaises(NotFound):
            ImportJobCoordinator.status('7c9e6679-7425-40de-944b-e07fc1f90ae7')


class ExchangeAPITest(TestCase):
    """Test the export, import and template endpoints"""

    def setUp(self):
        self.manager = TestDataFactory.create_user(roles=[MANAGER])
        self.staff = TestDataFactory.create_user(roles=[STAFF])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    def test_export_via_api(self):
        TestDataFactory.create_supplier(name='Acme')
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post('/api/v1/exchange/suppliers/export/', {'fields': ['name']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED)
        token = response.data['file']
        self.assertIn('poll_interval', response.data)
        self.assertTrue(AuditLog.objects.filter(action='exported', object_reference=token).exists())

        response = self.client.get(f'/api/v1/exchange/export/{token}/status/')
        self.assertTrue(response.data['ready'])

        response = self.client.get(f'/api/v1/exchange/export/{token}/download/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('attachment', response['Content-Disposition'])
        self.assertEqual(_workbook_rows(response.content), [['No', 'Name'], [1, 'Acme']])

        response = self.client.get(f'/api/v1/exchange/export/{token}/download/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_export_with_no_fields_is_rejected(self):
        response = self.client.post('/api/v1/exchange/products/export/', {'fields': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'fields')
        self.assertFalse(ExportJob.objects.exists())

    def test_staff_can_export_but_not_import(self):
        self.client.authenticate_user(self.staff)
        response = self.client.post('/api/v1/exchange/categories/export/', {'fields': ['name']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED)

        upload = SimpleUploadedFile('categories.csv', b'Name\nTools\n')
        response = self.client.post('/api/v1/exchange/categories/import/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_import_via_api(self):
        upload = SimpleUploadedFile('categories.csv', b'Name,Description\nTools,Hand tools\n')
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post('/api/v1/exchange/categories/import/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED)

        response = self.client.get(f"/api/v1/exchange/import/{response.data['job']}/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'done')
        self.assertEqual(response.data['succeeded'], 1)

    def test_import_with_bad_extension(self):
        upload = SimpleUploadedFile('categories.pdf', b'%PDF')
        response = self.client.post('/api/v1/exchange/categories/import/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('error', response.data)
        self.assertFalse(ImportJob.objects.exists())

    def test_product_template_has_hidden_data_list(self):
        TestDataFactory.create_supplier(name='Acme')
        response = self.client.get('/api/v1/exchange/products/template/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        workbook = openpyxl.load_workbook(io.BytesIO(response.content))
        self.assertIn('DataList', workbook.sheetnames)
        self.assertEqual(workbook['DataList'].sheet_state, 'hidden')
        self.assertEqual(workbook['DataList']['A1'].value, 'Acme')
        headers = [cell.value for cell in workbook.worksheets[0][1]]
        self.assertEqual(headers[0], 'Product Name')

    def test_unknown_template(self):
        response = self.client.get('/api/v1/exchange/invoices/template/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
