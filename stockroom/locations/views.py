import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import ProtectedError
from django.shortcuts import get_object_or_404
from stockroom.core.permissions import IsManagerOrReadOnly
from stockroom.core.utils import create_audit_log, paginated_response
from .models import Warehouse
from .serializers import WarehouseSerializer

logger = logging.getLogger(__name__)


@api_view(['GET', 'POST'])
@permission_classes([IsManagerOrReadOnly])
def warehouse_list_create(request):
    """List warehouses (?search=, ?is_active=) or create a new warehouse"""
    if request.method == 'GET':
        warehouses = Warehouse.objects.all()
        search = request.query_params.get('search', None)
        is_active = request.query_params.get('is_active', None)
        if search:
            warehouses = warehouses.filter(name__icontains=search)
        if is_active is not None:
            warehouses = warehouses.filter(is_active=is_active.lower() == 'true')
        return paginated_response(request, warehouses, WarehouseSerializer)

    serializer = WarehouseSerializer(data=request.data)
    if serializer.is_valid():
        warehouse = serializer.save()
        logger.info(f"Warehouse '{warehouse.name}' created by {request.user.username}")
        create_audit_log(
            request=request,
            action='create',
            model_name='Warehouse',
            object_id=warehouse.id,
            object_name=warehouse.name,
            changes=serializer.data,
        )
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsManagerOrReadOnly])
def warehouse_detail(request, pk):
    """Retrieve, update or delete a warehouse"""
    warehouse = get_object_or_404(Warehouse, pk=pk)

    if request.method == 'GET':
        serializer = WarehouseSerializer(warehouse)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = WarehouseSerializer(warehouse, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(
                request=request,
                action='update',
                model_name='Warehouse',
                object_id=warehouse.id,
                object_name=warehouse.name,
                changes=serializer.validated_data,
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        name = warehouse.name
        try:
            warehouse.delete()
        except ProtectedError:
            logger.warning(f"Warehouse {pk} ({name}) has stock movements and cannot be deleted")
            return Response(
                {'error': 'Warehouse has stock history and cannot be deleted. Deactivate it instead.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        create_audit_log(
            request=request,
            action='delete',
            model_name='Warehouse',
            object_id=pk,
            object_name=name,
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def warehouse_products(request, pk):
    """Products stocked in a warehouse with their current quantity"""
    from stockroom.inventory.models import WarehouseStock
    from stockroom.inventory.serializers import WarehouseStockSerializer

    warehouse = get_object_or_404(Warehouse, pk=pk)
    stock = WarehouseStock.objects.filter(warehouse=warehouse).select_related(
        'product', 'product__category', 'warehouse'
    ).order_by('product__name')
    return paginated_response(request, stock, WarehouseStockSerializer)
