import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from stockroom.core.exceptions import StockroomError
from stockroom.core.utils import create_audit_log, error_response, paginated_response
from .filters import StockMovementFilter, WarehouseStockFilter
from .models import StockMovement, WarehouseStock
from .serializers import (
    WarehouseStockSerializer, StockMovementSerializer,
    StockAdjustmentSerializer, StockTransferSerializer,
)
from .services import MovementRecorder

logger = logging.getLogger(__name__)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def stock_list(request):
    """Current stock per (product, warehouse)"""
    queryset = WarehouseStock.objects.select_related('product', 'warehouse').order_by('product__name', 'warehouse__name')
    queryset = WarehouseStockFilter(request.query_params, queryset=queryset).qs
    return paginated_response(request, queryset, WarehouseStockSerializer, default_limit=50)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def stock_movement_list(request):
    """Movement history, newest first"""
    queryset = StockMovement.objects.select_related('product', 'warehouse', 'created_by')
    queryset = StockMovementFilter(request.query_params, queryset=queryset).qs
    return paginated_response(request, queryset, StockMovementSerializer, default_limit=50)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def stock_adjust(request):
    """Add or remove stock of a product in one warehouse"""
    serializer = StockAdjustmentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        movement = MovementRecorder.record_adjustment(
            data['product'],
            data['warehouse'],
            data['movement_type'],
            data['reason'],
            data['quantity'],
            notes=data['notes'],
            user=request.user,
        )
    except StockroomError as e:
        logger.warning(f"Stock adjustment by {request.user.username} rejected: {e.message}")
        return error_response(e)

    create_audit_log(
        request=request,
        action='stock_adjust',
        model_name='StockMovement',
        object_id=movement.id,
        object_name=data['product'].name,
        changes={
            'warehouse': data['warehouse'].name,
            'movement_type': movement.movement_type,
            'reason': movement.reason,
            'quantity': movement.quantity,
        },
    )
    return Response(StockMovementSerializer(movement).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def stock_transfer(request):
    """Move stock of a product between two warehouses"""
    serializer = StockTransferSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        out_leg, in_leg = MovementRecorder.record_transfer(
            data['product'],
            data['source_warehouse'],
            data['destination_warehouse'],
            data['quantity'],
            notes=data['notes'],
            user=request.user,
        )
    except StockroomError as e:
        logger.warning(f"Stock transfer by {request.user.username} rejected: {e.message}")
        return error_response(e)

    create_audit_log(
        request=request,
        action='stock_transfer',
        model_name='StockMovement',
        object_id=out_leg.id,
        object_name=data['product'].name,
        object_reference=str(out_leg.correlation_id),
        changes={
            'from': data['source_warehouse'].name,
            'to': data['destination_warehouse'].name,
            'quantity': out_leg.quantity,
        },
    )
    return Response({
        'correlation_id': str(out_leg.correlation_id),
        'movements': StockMovementSerializer([out_leg, in_leg], many=True).data,
    }, status=status.HTTP_201_CREATED)
