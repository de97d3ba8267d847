import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Prefetch
from django.shortcuts import get_object_or_404
from stockroom.core.exceptions import StockroomError
from stockroom.core.utils import create_audit_log, error_response, paginated_response
from .filters import PurchaseOrderFilter
from .models import PurchaseOrder, PurchaseOrderItem
from .serializers import (
    PurchaseOrderSerializer, PurchaseOrderWriteSerializer,
    PurchaseOrderConfirmSerializer, OrderableProductSerializer,
)
from .workflow import PurchaseOrderWorkflow

logger = logging.getLogger(__name__)


def order_queryset():
    return PurchaseOrder.objects.select_related('supplier', 'warehouse', 'created_by').prefetch_related(
        Prefetch('items', queryset=PurchaseOrderItem.objects.select_related('product', 'product__category'))
    )


def _items_for_audit(items):
    return [
        {'product': item['product'].id, 'quantity': item['quantity'], 'unit_price': str(item['unit_price'])}
        for item in items
    ]


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def purchase_order_list_create(request):
    """List purchase orders (filterable) or create one as draft/confirmed"""
    if request.method == 'GET':
        queryset = PurchaseOrderFilter(request.query_params, queryset=order_queryset()).qs
        return paginated_response(request, queryset, PurchaseOrderSerializer)

    serializer = PurchaseOrderWriteSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        order = PurchaseOrderWorkflow.create(
            data['items'],
            data['order_date'],
            data['status'],
            supplier=data.get('supplier'),
            notes=data.get('notes') or '',
            user=request.user,
        )
    except StockroomError as e:
        logger.warning(f"Purchase order creation by {request.user.username} rejected: {e.message}")
        return error_response(e)

    create_audit_log(
        request=request,
        action='create',
        model_name='PurchaseOrder',
        object_id=order.id,
        object_name=str(order),
        changes={'status': order.status, 'items': _items_for_audit(data['items'])},
    )
    return Response(PurchaseOrderSerializer(order_queryset().get(pk=order.pk)).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated])
def purchase_order_detail(request, pk):
    """Retrieve an order, or replace the items of an open one"""
    order = get_object_or_404(order_queryset(), pk=pk)
    if request.method == 'GET':
        return Response(PurchaseOrderSerializer(order).data)

    serializer = PurchaseOrderWriteSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        PurchaseOrderWorkflow.update(
            pk,
            data['items'],
            data['order_date'],
            data['status'],
            supplier=data.get('supplier'),
            notes=data.get('notes'),
        )
    except StockroomError as e:
        logger.warning(f"Update of purchase order {pk} by {request.user.username} rejected: {e.message}")
        return error_response(e)

    create_audit_log(
        request=request,
        action='update',
        model_name='PurchaseOrder',
        object_id=pk,
        object_name=str(order),
        changes={'status': data['status'], 'items': _items_for_audit(data['items'])},
    )
    return Response(PurchaseOrderSerializer(order_queryset().get(pk=pk)).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def purchase_order_confirm(request, pk):
    """Complete (receive into a warehouse) or cancel an open order"""
    serializer = PurchaseOrderConfirmSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        order = PurchaseOrderWorkflow.confirm(
            pk,
            data['status'],
            warehouse=data.get('warehouse'),
            notes=data.get('notes'),
            user=request.user,
        )
    except StockroomError as e:
        logger.warning(f"Confirm of purchase order {pk} by {request.user.username} rejected: {e.message}")
        return error_response(e)

    create_audit_log(
        request=request,
        action='order_confirm',
        model_name='PurchaseOrder',
        object_id=order.id,
        object_name=str(order),
        changes={
            'status': order.status,
            'warehouse': order.warehouse.name if order.warehouse else None,
            'notes': order.notes,
        },
    )
    return Response(PurchaseOrderSerializer(order_queryset().get(pk=pk)).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def orderable_product_list(request):
    """Active products that can be ordered, with their supplier"""
    products = PurchaseOrderWorkflow.orderable_products()
    search = request.query_params.get('search', None)
    if search:
        products = products.filter(name__icontains=search)
    return Response(OrderableProductSerializer(products, many=True).data)
