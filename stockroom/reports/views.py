"""
Dashboard metrics

Aggregates are cached per threshold under the dashboard prefix; stock and
purchase-order signals invalidate them (see stockroom.core.cache_signals).
"""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from django.conf import settings
from django.db.models import Count
from django.db.models.functions import ExtractMonth
from django.utils import timezone
from datetime import timedelta
import logging

from stockroom.catalog.models import Category, Product
from stockroom.core.cache_utils import cached_query, DASHBOARD_KPI_CACHE_TTL, DASHBOARD_PREFIX
from stockroom.core.models import AuditLog, User
from stockroom.core.permissions import IsManager
from stockroom.core.serializers import AuditLogSerializer
from stockroom.inventory.models import StockMovement, WarehouseStock
from stockroom.locations.models import Warehouse
from stockroom.parties.models import Supplier
from stockroom.purchasing.models import PurchaseOrder

logger = logging.getLogger(__name__)


def _counts_by(queryset, field, keys):
    counts = dict.fromkeys(keys, 0)
    for row in queryset.values(field).annotate(total=Count('id')):
        counts[row[field]] = row['total']
    return counts


@cached_query(cache_ttl=DASHBOARD_KPI_CACHE_TTL, key_prefix=DASHBOARD_PREFIX)
def get_dashboard_metrics(low_stock_threshold):
    now = timezone.now()
    since = now - timedelta(days=30)
    statuses = [choice[0] for choice in PurchaseOrder.STATUS_CHOICES]

    low_stock = WarehouseStock.objects.select_related('product', 'warehouse').filter(
        quantity__lte=low_stock_threshold
    ).order_by('quantity', 'product__name')
    low_stock_rows = [
        {
            'product': row.product_id,
            'product_name': row.product.name,
            'warehouse': row.warehouse_id,
            'warehouse_name': row.warehouse.name,
            'quantity': row.quantity,
        }
        for row in low_stock
    ]

    # One row per month of the current year; months without orders stay at zero
    monthly = [dict(month=month, **dict.fromkeys(statuses, 0)) for month in range(1, 13)]
    year_orders = PurchaseOrder.objects.filter(order_date__year=timezone.localtime(now).year)
    for row in year_orders.annotate(month=ExtractMonth('order_date')).values('month', 'status').annotate(total=Count('id')):
        monthly[row['month'] - 1][row['status']] = row['total']

    recent_logs = AuditLog.objects.select_related('user').order_by('-created_at')[:10]

    return {
        'counts': {
            'users': User.objects.count(),
            'suppliers': Supplier.objects.count(),
            'warehouses': Warehouse.objects.count(),
            'categories': Category.objects.count(),
            'products': Product.objects.count(),
        },
        'purchase_orders_last_30_days': _counts_by(
            PurchaseOrder.objects.filter(order_date__gte=since), 'status', statuses
        ),
        'movements_last_30_days': _counts_by(
            StockMovement.objects.filter(movement_date__gte=since), 'movement_type',
            [StockMovement.TYPE_IN, StockMovement.TYPE_OUT]
        ),
        'low_stock_threshold': low_stock_threshold,
        'low_stock': low_stock_rows,
        'monthly_purchase_orders': monthly,
        'recent_activity': [dict(entry) for entry in AuditLogSerializer(recent_logs, many=True).data],
    }


@api_view(['GET'])
@permission_classes([IsManager])
def dashboard(request):
    """Back-office dashboard for Administrator and Manager roles"""
    metrics = get_dashboard_metrics(settings.STOCKROOM_LOW_STOCK_THRESHOLD)
    logger.debug(f"Dashboard served to {request.user.username}")
    return Response(metrics)
