from django.urls import path
from .views import (
    category_list_create, category_detail,
    product_list_create, product_detail, product_add_to_warehouse,
)

urlpatterns = [
    path('categories/', category_list_create, name='category-list-create'),
    path('categories/<int:pk>/', category_detail, name='category-detail'),
    path('products/', product_list_create, name='product-list-create'),
    path('products/add-to-warehouse/', product_add_to_warehouse, name='product-add-to-warehouse'),
    path('products/<int:pk>/', product_detail, name='product-detail'),
]
