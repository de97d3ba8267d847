from django.urls import path
from .views import export_start, export_status, export_download, import_start, import_status, import_template

urlpatterns = [
    path('exchange/export/<str:token>/status/', export_status, name='export-status'),
    path('exchange/export/<str:token>/download/', export_download, name='export-download'),
    path('exchange/import/<uuid:job_id>/', import_status, name='import-status'),
    path('exchange/<str:entity_type>/export/', export_start, name='export-start'),
    path('exchange/<str:entity_type>/import/', import_start, name='import-start'),
    path('exchange/<str:entity_type>/template/', import_template, name='import-template'),
]
