from rest_framework import serializers
from stockroom.catalog.models import Product
from stockroom.locations.models import Warehouse
from .models import WarehouseStock, StockMovement


class WarehouseStockSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True)

    class Meta:
        model = WarehouseStock
        fields = ['id', 'product', 'product_name', 'warehouse', 'warehouse_name', 'quantity', 'updated_at']
        read_only_fields = fields


class StockMovementSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True)
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = StockMovement
        fields = ['id', 'product', 'product_name', 'warehouse', 'warehouse_name', 'movement_type',
                  'reason', 'quantity', 'notes', 'correlation_id', 'purchase_order',
                  'created_by', 'created_by_username', 'movement_date', 'created_at']
        read_only_fields = fields


class StockAdjustmentSerializer(serializers.Serializer):
    """Input of the adjust endpoint; movement rules are enforced by MovementRecorder"""
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    warehouse = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.all())
    movement_type = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    reason = serializers.CharField()
    quantity = serializers.IntegerField()
    notes = serializers.CharField(required=False, allow_blank=True, default='', max_length=255)


class StockTransferSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    source_warehouse = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.all())
    destination_warehouse = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.all())
    quantity = serializers.IntegerField()
    notes = serializers.CharField(required=False, allow_blank=True, default='', max_length=255)
