import logging
from decimal import Decimal
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from django.db import transaction
from django.db.models import Count, Prefetch, ProtectedError
from django.shortcuts import get_object_or_404
from stockroom.core.exceptions import StockroomError
from stockroom.core.permissions import IsManager, IsManagerOrReadOnly
from stockroom.core.utils import create_audit_log, error_response, paginated_response
from stockroom.inventory.ledger import StockLedger
from stockroom.inventory.models import StockMovement, WarehouseStock
from stockroom.inventory.serializers import WarehouseStockSerializer
from stockroom.inventory.services import MovementRecorder
from .filters import ProductFilter
from .models import Category, Product
from .serializers import CategorySerializer, ProductSerializer, ProductWarehouseSerializer

logger = logging.getLogger(__name__)


def product_queryset():
    return Product.objects.select_related('category', 'supplier').prefetch_related(
        Prefetch('stock_levels', queryset=WarehouseStock.objects.select_related('warehouse').order_by('warehouse__name'))
    )


def _audit_changes(validated_data):
    """JSON-safe view of validated serializer data for the audit log"""
    changes = {}
    for key, value in validated_data.items():
        if key == 'manual_pdf':
            continue
        if hasattr(value, 'pk'):
            value = value.pk
        elif isinstance(value, Decimal):
            value = str(value)
        changes[key] = value
    return changes


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsManagerOrReadOnly])
def category_list_create(request):
    """List categories with their product count or create a category"""
    if request.method == 'GET':
        categories = Category.objects.annotate(product_count=Count('products'))
        search = request.query_params.get('search', None)
        if search:
            categories = categories.filter(name__icontains=search)
        return paginated_response(request, categories, CategorySerializer)

    serializer = CategorySerializer(data=request.data)
    if serializer.is_valid():
        category = serializer.save()
        logger.info(f"Category '{category.name}' created by {request.user.username}")
        create_audit_log(
            request=request,
            action='create',
            model_name='Category',
            object_id=category.id,
            object_name=category.name,
            changes=_audit_changes(serializer.validated_data),
        )
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsManagerOrReadOnly])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    category = get_object_or_404(Category, pk=pk)

    if request.method == 'GET':
        return Response(CategorySerializer(category).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(
                request=request,
                action='update',
                model_name='Category',
                object_id=category.id,
                object_name=category.name,
                changes=_audit_changes(serializer.validated_data),
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        name = category.name
        try:
            category.delete()
        except ProtectedError:
            return Response(
                {'error': 'Category still has products and cannot be deleted.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        create_audit_log(request=request, action='delete', model_name='Category', object_id=pk, object_name=name)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsManagerOrReadOnly])
def product_list_create(request):
    """
    List products or create a product.

    GET supports the ProductFilter parameters (search, category, supplier,
    warehouse, active, low_stock) and ?page=&limit= pagination.
    POST accepts an optional ``warehouse`` and ``stock``: the initial stock is
    recorded as an adjustment movement in that warehouse.
    """
    if request.method == 'GET':
        queryset = ProductFilter(request.query_params, queryset=product_queryset()).qs
        return paginated_response(request, queryset, ProductSerializer)

    serializer = ProductSerializer(data=request.data)
    if not serializer.is_valid():
        logger.warning(f"Product creation validation failed: {serializer.errors}")
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    warehouse = serializer.validated_data.pop('warehouse', None)
    stock = serializer.validated_data.pop('stock', None)
    try:
        with transaction.atomic():
            product = serializer.save()
            if warehouse and stock:
                MovementRecorder.record_adjustment(
                    product, warehouse, StockMovement.TYPE_IN, StockMovement.REASON_ADJUSTMENT, stock,
                    notes='Initial stock for product creation', user=request.user,
                )
            elif warehouse:
                StockLedger.ensure_location(product.id, warehouse.id)
    except StockroomError as e:
        return error_response(e)

    logger.info(f"Product '{product.name}' created by {request.user.username}")
    create_audit_log(
        request=request,
        action='create',
        model_name='Product',
        object_id=product.id,
        object_name=product.name,
        changes=_audit_changes(dict(serializer.validated_data, warehouse=warehouse, stock=stock)),
    )
    return Response(ProductSerializer(product_queryset().get(pk=product.pk)).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsManagerOrReadOnly])
def product_detail(request, pk):
    """
    Retrieve, update or delete a product.

    An update carrying ``warehouse`` and ``stock`` sets the stock level in that
    warehouse; the difference is recorded as an adjustment movement.
    """
    product = get_object_or_404(product_queryset(), pk=pk)

    if request.method == 'GET':
        return Response(ProductSerializer(product).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        warehouse = serializer.validated_data.pop('warehouse', None)
        stock = serializer.validated_data.pop('stock', None)
        old_manual = product.manual_pdf.name if product.manual_pdf else None
        try:
            with transaction.atomic():
                serializer.save()
                if warehouse and stock is not None:
                    MovementRecorder.set_level(
                        product, warehouse, stock,
                        notes='Stock adjustment for product update', user=request.user,
                    )
        except StockroomError as e:
            return error_response(e)

        if old_manual and 'manual_pdf' in serializer.validated_data and product.manual_pdf.name != old_manual:
            product.manual_pdf.storage.delete(old_manual)
        create_audit_log(
            request=request,
            action='update',
            model_name='Product',
            object_id=product.id,
            object_name=product.name,
            changes=_audit_changes(dict(serializer.validated_data, warehouse=warehouse, stock=stock)),
        )
        return Response(ProductSerializer(product_queryset().get(pk=product.pk)).data)
    else:  # DELETE
        name = product.name
        manual = product.manual_pdf if product.manual_pdf else None
        try:
            product.delete()
        except ProtectedError:
            logger.warning(f"Product {pk} ({name}) has history and cannot be deleted")
            return Response(
                {'error': 'Product has stock movements or purchase orders and cannot be deleted. Deactivate it instead.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        if manual:
            manual.storage.delete(manual.name)
        create_audit_log(request=request, action='delete', model_name='Product', object_id=pk, object_name=name)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsManager])
def product_add_to_warehouse(request):
    """Stock an existing product in a warehouse (adds to any quantity already there)"""
    serializer = ProductWarehouseSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    product, warehouse, stock = data['product'], data['warehouse'], data['stock']

    try:
        if stock:
            MovementRecorder.record_adjustment(
                product, warehouse, StockMovement.TYPE_IN, StockMovement.REASON_ADJUSTMENT, stock,
                notes=data['notes'] or 'Stock added to warehouse', user=request.user,
            )
        else:
            StockLedger.ensure_location(product.id, warehouse.id)
    except StockroomError as e:
        return error_response(e)

    create_audit_log(
        request=request,
        action='stock_adjust',
        model_name='Product',
        object_id=product.id,
        object_name=product.name,
        changes={'warehouse': warehouse.name, 'added': stock},
    )
    level = WarehouseStock.objects.select_related('product', 'warehouse').get(product=product, warehouse=warehouse)
    return Response(WarehouseStockSerializer(level).data, status=status.HTTP_201_CREATED)
