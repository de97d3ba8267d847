from django.contrib import admin
from .models import PurchaseOrder, PurchaseOrderItem


class PurchaseOrderItemInline(admin.TabularInline):
    model = PurchaseOrderItem
    extra = 0


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(admin.ModelAdmin):
    list_display = ['id', 'supplier', 'order_date', 'status', 'warehouse', 'confirmed_at', 'created_by']
    list_filter = ['status', 'order_date', 'supplier']
    search_fields = ['id', 'supplier__name', 'notes']
    # Status changes go through the confirm workflow
    readonly_fields = ['status', 'warehouse', 'confirmed_at', 'created_at', 'updated_at']
    inlines = [PurchaseOrderItemInline]
