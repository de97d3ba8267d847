from decimal import Decimal
from rest_framework import serializers
from stockroom.core.exceptions import ValidationError as StockroomValidationError
from stockroom.locations.models import Warehouse
from .models import Category, Product
from .validators import parse_specifications, validate_manual_file


class CategorySerializer(serializers.ModelSerializer):
    product_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Category
        fields = ['id', 'name', 'description', 'product_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']


class ProductSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    total_stock = serializers.SerializerMethodField()
    warehouses = serializers.SerializerMethodField()
    specifications = serializers.JSONField(required=False)
    # Initial stock on create, target stock level on update
    warehouse = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.all(), write_only=True, required=False)
    stock = serializers.IntegerField(write_only=True, required=False, min_value=0)

    class Meta:
        model = Product
        fields = ['id', 'name', 'category', 'category_name', 'supplier', 'supplier_name', 'price',
                  'specifications', 'manual_pdf', 'is_active', 'total_stock', 'warehouses',
                  'warehouse', 'stock', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']
        extra_kwargs = {
            'price': {'min_value': Decimal('0')},
        }

    def get_total_stock(self, obj):
        return obj.total_stock()

    def get_warehouses(self, obj):
        return [
            {'warehouse': level.warehouse_id, 'warehouse_name': level.warehouse.name, 'quantity': level.quantity}
            for level in obj.stock_levels.all()
        ]

    def validate_specifications(self, value):
        try:
            return parse_specifications(value)
        except StockroomValidationError as e:
            raise serializers.ValidationError(e.message)

    def validate_manual_pdf(self, value):
        if value is None:
            return value
        try:
            return validate_manual_file(value)
        except StockroomValidationError as e:
            raise serializers.ValidationError(e.message)

    def validate(self, attrs):
        if attrs.get('stock') and not attrs.get('warehouse'):
            raise serializers.ValidationError({'warehouse': 'A warehouse is required when stock is given.'})
        return attrs


class ProductWarehouseSerializer(serializers.Serializer):
    """Add an existing product to a warehouse, optionally with stock"""
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    warehouse = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.filter(is_active=True))
    stock = serializers.IntegerField(min_value=0, default=0)
    notes = serializers.CharField(required=False, allow_blank=True, default='', max_length=255)
