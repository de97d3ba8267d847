from django.urls import path
from .views import (
    purchase_order_list_create, purchase_order_detail,
    purchase_order_confirm, orderable_product_list,
)

urlpatterns = [
    path('purchase-orders/', purchase_order_list_create, name='purchase-order-list-create'),
    path('purchase-orders/products/', orderable_product_list, name='purchase-order-products'),
    path('purchase-orders/<int:pk>/', purchase_order_detail, name='purchase-order-detail'),
    path('purchase-orders/<int:pk>/confirm/', purchase_order_confirm, name='purchase-order-confirm'),
]
