from django.urls import path
from .views import stock_list, stock_movement_list, stock_adjust, stock_transfer

urlpatterns = [
    path('stock/', stock_list, name='stock-list'),
    path('stock-movements/', stock_movement_list, name='stock-movement-list'),
    path('stock-movements/adjust/', stock_adjust, name='stock-movement-adjust'),
    path('stock-movements/transfer/', stock_transfer, name='stock-movement-transfer'),
]
