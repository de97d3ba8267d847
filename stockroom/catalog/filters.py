import django_filters
from django.db.models import Q, Sum, Value
from django.db.models.functions import Coalesce
from .models import Product


class ProductFilter(django_filters.FilterSet):
    """Filter for the product list using django-filter"""
    search = django_filters.CharFilter(method='filter_search', label='Search')
    category = django_filters.NumberFilter(field_name='category_id', lookup_expr='exact')
    supplier = django_filters.NumberFilter(field_name='supplier_id', lookup_expr='exact')
    warehouse = django_filters.NumberFilter(method='filter_warehouse', label='Warehouse ID')
    active = django_filters.CharFilter(method='filter_active', label='Active')
    low_stock = django_filters.NumberFilter(method='filter_low_stock', label='Total stock at or below')

    class Meta:
        model = Product
        fields = ['search', 'category', 'supplier', 'warehouse', 'active', 'low_stock']

    def filter_search(self, queryset, name, value):
        """Every word must appear in the product, category or supplier name"""
        if not value:
            return queryset
        for word in value.split():
            queryset = queryset.filter(
                Q(name__icontains=word) |
                Q(category__name__icontains=word) |
                Q(supplier__name__icontains=word)
            )
        return queryset

    def filter_warehouse(self, queryset, name, value):
        return queryset.filter(stock_levels__warehouse_id=value).distinct()

    def filter_active(self, queryset, name, value):
        if value.lower() in ('true', '1', 'yes'):
            return queryset.filter(is_active=True)
        if value.lower() in ('false', '0', 'no'):
            return queryset.filter(is_active=False)
        return queryset

    def filter_low_stock(self, queryset, name, value):
        return queryset.annotate(
            stock_sum=Coalesce(Sum('stock_levels__quantity'), Value(0))
        ).filter(stock_sum__lte=value)
