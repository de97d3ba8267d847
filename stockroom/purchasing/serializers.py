from rest_framework import serializers
from stockroom.catalog.models import Product
from stockroom.locations.models import Warehouse
from stockroom.parties.models import Supplier
from .models import PurchaseOrder, PurchaseOrderItem


class PurchaseOrderItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    category_name = serializers.CharField(source='product.category.name', read_only=True)
    line_total = serializers.SerializerMethodField()

    class Meta:
        model = PurchaseOrderItem
        fields = ['id', 'product', 'product_name', 'category_name', 'quantity', 'unit_price', 'line_total']

    def get_line_total(self, obj):
        return str(obj.get_line_total())


class PurchaseOrderSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True, default=None)
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)
    items = PurchaseOrderItemSerializer(many=True, read_only=True)
    total = serializers.SerializerMethodField()

    class Meta:
        model = PurchaseOrder
        fields = ['id', 'supplier', 'supplier_name', 'order_date', 'status', 'notes', 'warehouse',
                  'warehouse_name', 'confirmed_at', 'items', 'total', 'created_by',
                  'created_by_username', 'created_at', 'updated_at']
        read_only_fields = fields

    def get_total(self, obj):
        return str(obj.get_total())


class PurchaseOrderItemInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.IntegerField()
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2)


class PurchaseOrderWriteSerializer(serializers.Serializer):
    """Input of create and update; state rules are enforced by PurchaseOrderWorkflow"""
    supplier = serializers.PrimaryKeyRelatedField(queryset=Supplier.objects.all(), required=False, allow_null=True)
    order_date = serializers.DateTimeField()
    status = serializers.ChoiceField(choices=PurchaseOrder.OPEN_STATUSES, default=PurchaseOrder.STATUS_DRAFT)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)
    items = PurchaseOrderItemInputSerializer(many=True, allow_empty=False)


class PurchaseOrderConfirmSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=PurchaseOrder.TERMINAL_STATUSES)
    warehouse = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.all(), required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)


class OrderableProductSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    category_name = serializers.CharField(source='category.name', read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'name', 'price', 'supplier', 'supplier_name', 'category', 'category_name']
        read_only_fields = fields
