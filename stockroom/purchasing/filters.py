import django_filters
from .models import PurchaseOrder


class PurchaseOrderFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=PurchaseOrder.STATUS_CHOICES)
    supplier = django_filters.NumberFilter(field_name='supplier_id')
    product = django_filters.NumberFilter(field_name='items__product_id', distinct=True)
    warehouse = django_filters.NumberFilter(field_name='warehouse_id')
    date_from = django_filters.DateFilter(field_name='order_date', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='order_date', lookup_expr='date__lte')

    class Meta:
        model = PurchaseOrder
        fields = ['status', 'supplier', 'product', 'warehouse', 'date_from', 'date_to']
