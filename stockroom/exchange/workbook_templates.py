"""Import templates: expected headers, a sample row and dropdowns fed by a hidden DataList sheet"""
import io

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.datavalidation import DataValidation

from stockroom.catalog.models import Category, Product
from stockroom.core.exceptions import NotFound
from stockroom.locations.models import Warehouse
from stockroom.parties.models import Supplier
from stockroom.purchasing.models import PurchaseOrder
from .importers import IMPORTABLE_ORDER_STATUSES

DROPDOWN_ROWS = 100
THIN = Side(style='thin')

CONTACT_TEMPLATE = {
    'headers': ['Name', 'Phone', 'Email', 'Address'],
    'sample': ['Example Name', '08123456789', 'contact@example.com', 'Example Street 1'],
    'lists': [],
}

TEMPLATES = {
    'categories': {
        'headers': ['Name', 'Description'],
        'sample': ['Example Category', 'Category description'],
        'lists': [],
    },
    'suppliers': CONTACT_TEMPLATE,
    'warehouses': CONTACT_TEMPLATE,
    'products': {
        'headers': ['Product Name', 'Price', 'Specifications', 'Supplier', 'Category', 'Warehouse', 'Stock'],
        'sample': ['Product Example', 10000, '{"color":"black","weight":"3kg"}', '', '', '', 100],
        # (column, source of the dropdown values)
        'lists': [
            ('D', lambda: Supplier.objects.filter(is_active=True).order_by('name').values_list('name', flat=True)),
            ('E', lambda: Category.objects.order_by('name').values_list('name', flat=True)),
            ('F', lambda: Warehouse.objects.filter(is_active=True).order_by('name').values_list('name', flat=True)),
        ],
    },
    'purchase_orders': {
        'headers': ['Product Name', 'Order Date', 'Price', 'Quantity', 'Status', 'Warehouse (If status is completed)'],
        'sample': ['', '2025-01-31 10:00', 10000, 10, PurchaseOrder.STATUS_DRAFT, ''],
        'lists': [
            ('A', lambda: Product.objects.filter(is_active=True).order_by('name').values_list('name', flat=True)),
            ('E', lambda: IMPORTABLE_ORDER_STATUSES),
            ('F', lambda: Warehouse.objects.filter(is_active=True).order_by('name').values_list('name', flat=True)),
        ],
    },
}


def _add_dropdowns(workbook, sheet, lists):
    data_sheet = workbook.create_sheet('DataList')
    for index, (column, source) in enumerate(lists, start=1):
        values = list(source())
        data_column = get_column_letter(index)
        for row, value in enumerate(values, start=1):
            data_sheet.cell(row=row, column=index, value=value)
        validation = DataValidation(
            type='list',
            formula1=f'DataList!${data_column}$1:${data_column}${max(len(values), 1)}',
            allow_blank=True,
        )
        sheet.add_data_validation(validation)
        validation.add(f'{column}2:{column}{DROPDOWN_ROWS}')
    data_sheet.sheet_state = 'hidden'


def template_workbook(entity_type):
    """Return (file_name, xlsx bytes) of the import template for an entity"""
    if entity_type not in TEMPLATES:
        raise NotFound(f'No import template for {entity_type}.')
    template = TEMPLATES[entity_type]

    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = 'Import'
    sheet.append(template['headers'])
    sheet.append(template['sample'])

    for cell in sheet[1]:
        cell.font = Font(name='Trebuchet MS', bold=True)
        cell.alignment = Alignment(horizontal='center')
        cell.border = Border(left=THIN, right=THIN, top=THIN, bottom=THIN)
        cell.fill = PatternFill(fill_type='solid', start_color='FFCCCCCC', end_color='FFCCCCCC')
    for index, header in enumerate(template['headers'], start=1):
        sheet.column_dimensions[get_column_letter(index)].width = max(20, len(header) + 4)

    if template['lists']:
        _add_dropdowns(workbook, sheet, template['lists'])

    buffer = io.BytesIO()
    workbook.save(buffer)
    return f'{entity_type}_import_template.xlsx', buffer.getvalue()
