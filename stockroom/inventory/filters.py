import django_filters
from django.db.models import Q
from .models import StockMovement, WarehouseStock


class WarehouseStockFilter(django_filters.FilterSet):
    """Filter ledger rows by product, warehouse and stock level"""
    search = django_filters.CharFilter(method='filter_search', label='Search')
    product = django_filters.NumberFilter(field_name='product_id')
    warehouse = django_filters.NumberFilter(field_name='warehouse_id')
    max_quantity = django_filters.NumberFilter(field_name='quantity', lookup_expr='lte')
    min_quantity = django_filters.NumberFilter(field_name='quantity', lookup_expr='gte')

    class Meta:
        model = WarehouseStock
        fields = ['search', 'product', 'warehouse', 'max_quantity', 'min_quantity']

    def filter_search(self, queryset, name, value):
        if not value:
            return queryset
        return queryset.filter(Q(product__name__icontains=value) | Q(warehouse__name__icontains=value))


class StockMovementFilter(django_filters.FilterSet):
    """Filter movements by product, warehouse, type, reason and date range"""
    search = django_filters.CharFilter(method='filter_search', label='Search')
    product = django_filters.NumberFilter(field_name='product_id')
    warehouse = django_filters.NumberFilter(field_name='warehouse_id')
    movement_type = django_filters.ChoiceFilter(choices=StockMovement.MOVEMENT_TYPE_CHOICES)
    reason = django_filters.ChoiceFilter(choices=StockMovement.REASON_CHOICES)
    purchase_order = django_filters.NumberFilter(field_name='purchase_order_id')
    correlation_id = django_filters.UUIDFilter(field_name='correlation_id')
    date_from = django_filters.DateFilter(field_name='movement_date', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='movement_date', lookup_expr='date__lte')

    class Meta:
        model = StockMovement
        fields = ['search', 'product', 'warehouse', 'movement_type', 'reason',
                  'purchase_order', 'correlation_id', 'date_from', 'date_to']

    def filter_search(self, queryset, name, value):
        """Match product name, warehouse name or notes"""
        if not value:
            return queryset
        return queryset.filter(
            Q(product__name__icontains=value) |
            Q(warehouse__name__icontains=value) |
            Q(notes__icontains=value)
        )
