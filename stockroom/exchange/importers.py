"""
Spreadsheet imports: file readers and one handler per entity type.

Readers turn the first sheet (or a CSV file) into dicts keyed by snake_case
header names. Handlers upsert one row each and raise on bad input; the
import task runs every handler call in its own savepoint.
"""
import csv
import io
import logging
import re
import zipfile
from decimal import Decimal, InvalidOperation
from xml.etree import ElementTree

import openpyxl
from openpyxl.utils.datetime import from_excel
from openpyxl.utils.exceptions import InvalidFileException
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db import IntegrityError
from django.utils import timezone

from stockroom.catalog.models import Category, Product
from stockroom.catalog.validators import parse_specifications
from stockroom.core.exceptions import StockroomError, ValidationError
from stockroom.inventory.ledger import StockLedger
from stockroom.inventory.models import StockMovement
from stockroom.inventory.services import MovementRecorder
from stockroom.locations.models import Warehouse
from stockroom.parties.models import Supplier
from stockroom.purchasing.models import PurchaseOrder
from stockroom.purchasing.workflow import PurchaseOrderWorkflow, parse_order_date

logger = logging.getLogger(__name__)

# Errors that skip a single row instead of failing the whole job
ROW_ERRORS = (StockroomError, DjangoValidationError, IntegrityError, InvalidOperation, ValueError, TypeError)

# ElementTree and lxml parse errors both derive from SyntaxError
XLSX_ERRORS = (
    InvalidFileException, zipfile.BadZipFile, ElementTree.ParseError, SyntaxError,
    KeyError, IndexError, ValueError, TypeError, OSError,
)


def normalize_header(value):
    """'Warehouse (If status is completed)' -> 'warehouse_if_status_is_completed'"""
    if value is None:
        return ''
    return re.sub(r'[^a-z0-9]+', '_', str(value).strip().lower()).strip('_')


def _rows_from_values(values):
    """Pair header names with data rows, skipping blank rows. Yields (row_number, dict)."""
    iterator = iter(values)
    header_row = next(iterator, None)
    if header_row is None:
        raise ValidationError('The file is empty.')
    headers = [normalize_header(cell) for cell in header_row]
    if not any(headers):
        raise ValidationError('The first row must contain column headers.')

    rows = []
    for row_number, values_row in enumerate(iterator, start=2):
        if all(cell is None or str(cell).strip() == '' for cell in values_row):
            continue
        rows.append((row_number, {
            header: cell for header, cell in zip(headers, values_row) if header
        }))
    return rows


def read_xlsx(fileobj):
    try:
        workbook = openpyxl.load_workbook(fileobj, read_only=True, data_only=True)
    except XLSX_ERRORS as e:
        raise ValidationError(f'The file could not be read as an Excel workbook: {e}')
    try:
        # Sheets are parsed lazily in read-only mode
        sheet = workbook.worksheets[0]
        return _rows_from_values(sheet.iter_rows(values_only=True))
    except XLSX_ERRORS as e:
        raise ValidationError(f'The worksheet could not be read: {e}')
    finally:
        workbook.close()


def read_csv(fileobj):
    try:
        text = fileobj.read().decode('utf-8-sig')
    except UnicodeDecodeError:
        raise ValidationError('CSV files must be UTF-8 encoded.')
    try:
        return _rows_from_values(csv.reader(io.StringIO(text)))
    except csv.Error as e:
        raise ValidationError(f'The CSV file could not be parsed: {e}')


READERS = {
    'xlsx': read_xlsx,
    'csv': read_csv,
}


def read_rows(fileobj, extension):
    if extension not in READERS:
        raise ValidationError(f'Unsupported file type: {extension}.')
    return READERS[extension](fileobj)


# Cell helpers

def _text(row, key):
    value = row.get(key)
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _required_text(row, key, label):
    value = _text(row, key)
    if not value:
        raise ValidationError(f'{label} is required.', field=key)
    return value


def _whole_number(row, key, label, default=None):
    value = row.get(key)
    if value is None or str(value).strip() == '':
        if default is None:
            raise ValidationError(f'{label} is required.', field=key)
        return default
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f'{label} must be a whole number.', field=key)
    if not number.is_finite() or number != number.to_integral_value():
        raise ValidationError(f'{label} must be a whole number.', field=key)
    return int(number)


def _price(row, key='price'):
    value = row.get(key)
    if value is None or str(value).strip() == '':
        return Decimal('0.00')
    try:
        price = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError('Price must be a number.', field=key)
    if not price.is_finite() or price < 0:
        raise ValidationError('Price cannot be negative.', field=key)
    return price.quantize(Decimal('0.01'))


def _email(row):
    email = _text(row, 'email')
    if email:
        try:
            validate_email(email)
        except DjangoValidationError:
            raise ValidationError(f'Invalid email address: {email}.', field='email')
    return email


def _lookup(model, name, label):
    obj = model.objects.filter(name=name).first()
    if obj is None:
        raise ValidationError(f'{label} "{name}" does not exist.', field=label.lower())
    return obj


def _order_date(value):
    """Excel serial number, datetime cell or text; empty means now"""
    if value is None or str(value).strip() == '':
        return timezone.now()
    if isinstance(value, bool):
        raise ValidationError('Invalid order date.', field='order_date')
    if isinstance(value, (int, float)):
        try:
            value = from_excel(value)
        except (ValueError, OverflowError):
            raise ValidationError(f'Invalid order date: {value}.', field='order_date')
    if isinstance(value, str):
        value = value.strip()
    return parse_order_date(value)


# Row handlers

def import_category_row(row, user=None):
    name = _required_text(row, 'name', 'Name')
    category, created = Category.objects.update_or_create(
        name=name, defaults={'description': _text(row, 'description')}
    )
    return category


def _import_contact_row(model, row):
    name = _required_text(row, 'name', 'Name')
    obj, created = model.objects.update_or_create(
        name=name,
        defaults={
            'phone': _text(row, 'phone')[:20],
            'email': _email(row),
            'address': _text(row, 'address'),
        },
    )
    return obj


def import_supplier_row(row, user=None):
    return _import_contact_row(Supplier, row)


def import_warehouse_row(row, user=None):
    return _import_contact_row(Warehouse, row)


def import_product_row(row, user=None):
    """Upsert a product by name; stock is added to the named warehouse"""
    name = _required_text(row, 'product_name', 'Product name')
    supplier = _lookup(Supplier, _required_text(row, 'supplier', 'Supplier'), 'Supplier')
    category = _lookup(Category, _required_text(row, 'category', 'Category'), 'Category')
    warehouse = _lookup(Warehouse, _required_text(row, 'warehouse', 'Warehouse'), 'Warehouse')
    stock = _whole_number(row, 'stock', 'Stock', default=0)
    if stock < 0:
        raise ValidationError('Stock cannot be negative.', field='stock')

    product, created = Product.objects.update_or_create(
        name=name,
        defaults={
            'supplier': supplier,
            'category': category,
            'price': _price(row),
            'specifications': parse_specifications(row.get('specifications')),
            'is_active': True,
        },
    )
    if stock:
        MovementRecorder.record_adjustment(
            product, warehouse, StockMovement.TYPE_IN, StockMovement.REASON_ADJUSTMENT, stock,
            notes='Initial stock from import', user=user,
        )
    else:
        StockLedger.ensure_location(product.id, warehouse.id)
    return product


IMPORTABLE_ORDER_STATUSES = (
    PurchaseOrder.STATUS_DRAFT,
    PurchaseOrder.STATUS_CONFIRMED,
    PurchaseOrder.STATUS_COMPLETED,
)


def import_purchase_order_row(row, user=None):
    """
    Create a single-item purchase order. A ``completed`` row is created as
    confirmed and then completed into the named warehouse.
    """
    product = _lookup(Product, _required_text(row, 'product_name', 'Product name'), 'Product')
    status = (_text(row, 'status') or PurchaseOrder.STATUS_DRAFT).lower()
    if status not in IMPORTABLE_ORDER_STATUSES:
        raise ValidationError(f'Status must be one of: {", ".join(IMPORTABLE_ORDER_STATUSES)}.', field='status')

    warehouse = None
    if status == PurchaseOrder.STATUS_COMPLETED:
        warehouse_name = _text(row, 'warehouse_if_status_is_completed') or _text(row, 'warehouse')
        if not warehouse_name:
            raise ValidationError('Warehouse is required for completed orders.', field='warehouse')
        warehouse = _lookup(Warehouse, warehouse_name, 'Warehouse')

    order = PurchaseOrderWorkflow.create(
        items=[{
            'product': product,
            'quantity': _whole_number(row, 'quantity', 'Quantity'),
            'unit_price': _price(row),
        }],
        order_date=_order_date(row.get('order_date')),
        status=PurchaseOrder.STATUS_CONFIRMED if warehouse else status,
        user=user,
    )
    if warehouse:
        order = PurchaseOrderWorkflow.confirm(
            order.id, PurchaseOrder.STATUS_COMPLETED, warehouse=warehouse,
            notes=f'Stock from purchase order import #{order.id}', user=user,
        )
    return order


IMPORT_HANDLERS = {
    'products': import_product_row,
    'purchase_orders': import_purchase_order_row,
    'warehouses': import_warehouse_row,
    'suppliers': import_supplier_row,
    'categories': import_category_row,
}
