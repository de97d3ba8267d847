from django.contrib import admin
from .models import WarehouseStock, StockMovement


@admin.register(WarehouseStock)
class WarehouseStockAdmin(admin.ModelAdmin):
    list_display = ['product', 'warehouse', 'quantity', 'updated_at']
    list_filter = ['warehouse']
    search_fields = ['product__name', 'warehouse__name']
    # Quantities change only through the ledger
    readonly_fields = ['product', 'warehouse', 'quantity', 'created_at', 'updated_at']

    def has_add_permission(self, request):
        return False


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ['product', 'warehouse', 'movement_type', 'reason', 'quantity', 'movement_date', 'created_by']
    list_filter = ['movement_type', 'reason', 'warehouse', 'movement_date']
    search_fields = ['product__name', 'warehouse__name', 'notes']
    readonly_fields = [f.name for f in StockMovement._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
