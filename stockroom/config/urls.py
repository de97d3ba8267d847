"""
URL configuration for the stockroom project.

Every app mounts its API under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include, re_path
from django.conf import settings
from django.views.static import serve

admin.site.site_header = "Stockroom Admin Panel"
admin.site.site_title = "Stockroom Admin Portal"
admin.site.index_title = "Warehouse back-office administration"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('stockroom.core.urls')),
    path('api/v1/', include('stockroom.locations.urls')),
    path('api/v1/', include('stockroom.parties.urls')),
    path('api/v1/', include('stockroom.catalog.urls')),
    path('api/v1/', include('stockroom.inventory.urls')),
    path('api/v1/', include('stockroom.purchasing.urls')),
    path('api/v1/', include('stockroom.exchange.urls')),
    path('api/v1/', include('stockroom.reports.urls')),
    re_path(r'^media/(?P<path>.*)$', serve, {'document_root': settings.MEDIA_ROOT}),
]
