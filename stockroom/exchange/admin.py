from django.contrib import admin
from .models import ExportJob, ImportJob


@admin.register(ExportJob)
class ExportJobAdmin(admin.ModelAdmin):
    list_display = ['token', 'entity_type', 'status', 'created_by', 'created_at', 'expires_at']
    list_filter = ['entity_type', 'status']
    search_fields = ['token', 'file_name']
    readonly_fields = ['token', 'fields', 'file_path', 'error', 'created_at', 'completed_at']


@admin.register(ImportJob)
class ImportJobAdmin(admin.ModelAdmin):
    list_display = ['id', 'entity_type', 'original_name', 'status', 'success_count', 'error_count', 'created_at']
    list_filter = ['entity_type', 'status']
    search_fields = ['original_name']
    readonly_fields = ['errors', 'error', 'started_at', 'finished_at']
