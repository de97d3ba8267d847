"""
Spreadsheet exports.

Each entity has a fixed field schema; whatever order the client sends, the
columns come out in schema order after a leading row-number column.
"""
import io
import logging

import openpyxl
from openpyxl.styles import Alignment, Border, Font, Side
from openpyxl.utils import get_column_letter
from django.db.models import Prefetch
from django.utils import timezone

from stockroom.catalog.models import Category, Product
from stockroom.core.exceptions import ValidationError
from stockroom.inventory.models import WarehouseStock
from stockroom.locations.models import Warehouse
from stockroom.parties.models import Supplier
from stockroom.purchasing.models import PurchaseOrder, PurchaseOrderItem

logger = logging.getLogger(__name__)

EXPORT_SCHEMAS = {
    'products': ['name', 'price', 'total_stock', 'category', 'supplier', 'warehouse', 'specifications', 'is_active'],
    'purchase_orders': ['product', 'category', 'supplier', 'price', 'quantity', 'status', 'order_date'],
    'warehouses': ['name', 'phone', 'email', 'address', 'is_active'],
    'suppliers': ['name', 'phone', 'email', 'address', 'is_active'],
    'categories': ['name', 'description'],
}

HEADING_OVERRIDES = {
    'is_active': 'Status',
    'total_stock': 'Total Stock',
}

FONT_NAME = 'Trebuchet MS'
THIN = Side(style='thin', color='FF000000')
BORDER = Border(left=THIN, right=THIN, top=THIN, bottom=THIN)


def heading_for(field):
    if field in HEADING_OVERRIDES:
        return HEADING_OVERRIDES[field]
    label = field.replace('_', ' ')
    return label[:1].upper() + label[1:]


def clean_fields(entity_type, fields):
    """Validate a field selection and return it in schema order"""
    if entity_type not in EXPORT_SCHEMAS:
        raise ValidationError(f'Unknown export type: {entity_type}.', field='entity_type')
    schema = EXPORT_SCHEMAS[entity_type]
    if not fields:
        raise ValidationError('Select at least one field to export.', field='fields')
    unknown = sorted(set(fields) - set(schema))
    if unknown:
        raise ValidationError(f'Unknown export field(s): {", ".join(unknown)}.', field='fields')
    selected = set(fields)
    return [field for field in schema if field in selected]


def _status_label(is_active):
    return 'Active' if is_active else 'Non-Active'


def _format_specifications(specifications):
    lines = []
    for spec in specifications or []:
        if isinstance(spec, dict) and 'title' in spec and 'value' in spec:
            title = str(spec['title'])
            lines.append(f"{title[:1].upper()}{title[1:]}: {spec['value']}")
    return '\n'.join(lines)


def product_rows():
    products = Product.objects.select_related('category', 'supplier').prefetch_related(
        Prefetch('stock_levels', queryset=WarehouseStock.objects.select_related('warehouse').order_by('warehouse__name'))
    ).order_by('name')
    for product in products:
        levels = list(product.stock_levels.all())
        yield {
            'name': product.name,
            'price': product.price,
            'total_stock': sum(level.quantity for level in levels),
            'category': product.category.name,
            'supplier': product.supplier.name,
            'warehouse': '\n'.join(f"{level.warehouse.name} - Stock: {level.quantity}" for level in levels),
            'specifications': _format_specifications(product.specifications),
            'is_active': _status_label(product.is_active),
        }


def purchase_order_rows():
    orders = PurchaseOrder.objects.select_related('supplier').prefetch_related(
        Prefetch('items', queryset=PurchaseOrderItem.objects.select_related('product', 'product__category'))
    ).order_by('order_date', 'id')
    for order in orders:
        items = list(order.items.all())
        categories = []
        for item in items:
            if item.product.category.name not in categories:
                categories.append(item.product.category.name)
        if order.status == PurchaseOrder.STATUS_CANCELLED:
            status = f"Cancelled\nReason: {order.notes}"
        else:
            status = order.get_status_display()
        yield {
            'product': ', '.join(item.product.name for item in items),
            'category': ', '.join(categories),
            'supplier': order.supplier.name,
            'price': ', '.join(str(item.unit_price) for item in items),
            'quantity': ', '.join(str(item.quantity) for item in items),
            'status': status,
            'order_date': timezone.localtime(order.order_date).strftime('%Y-%m-%d %H:%M:%S'),
        }


def _contact_rows(model):
    for obj in model.objects.order_by('name'):
        yield {
            'name': obj.name,
            'phone': obj.phone,
            'email': obj.email,
            'address': obj.address,
            'is_active': _status_label(obj.is_active),
        }


def warehouse_rows():
    return _contact_rows(Warehouse)


def supplier_rows():
    return _contact_rows(Supplier)


def category_rows():
    for category in Category.objects.order_by('name'):
        yield {'name': category.name, 'description': category.description}


ROW_BUILDERS = {
    'products': product_rows,
    'purchase_orders': purchase_order_rows,
    'warehouses': warehouse_rows,
    'suppliers': supplier_rows,
    'categories': category_rows,
}


def _style_sheet(sheet, column_count):
    for cell in sheet[1]:
        cell.font = Font(name=FONT_NAME, size=11, bold=True)
        cell.alignment = Alignment(horizontal='center', vertical='center')
        cell.border = BORDER

    for row in sheet.iter_rows(min_row=2):
        for cell in row:
            cell.font = Font(name=FONT_NAME, size=10)
            cell.border = BORDER
            if cell.column == 1:
                cell.alignment = Alignment(horizontal='center', vertical='center')
            else:
                cell.alignment = Alignment(vertical='center', wrap_text=True)

    sheet.column_dimensions['A'].width = 5
    for index in range(2, column_count + 1):
        letter = get_column_letter(index)
        longest = 0
        for (value,) in sheet.iter_rows(min_col=index, max_col=index, values_only=True):
            for line in str(value if value is not None else '').split('\n'):
                longest = max(longest, len(line))
        sheet.column_dimensions[letter].width = min(max(longest + 2, 10), 60)


def build_workbook(entity_type, fields):
    """Render the selected fields of every row of an entity into xlsx bytes"""
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = heading_for(entity_type)[:31]
    sheet.append(['No'] + [heading_for(field) for field in fields])

    count = 0
    for count, row in enumerate(ROW_BUILDERS[entity_type](), start=1):
        sheet.append([count] + [row.get(field, '') for field in fields])

    _style_sheet(sheet, len(fields) + 1)
    buffer = io.BytesIO()
    workbook.save(buffer)
    logger.info(f"Built {entity_type} export with {count} row(s) and {len(fields)} field(s)")
    return buffer.getvalue()
