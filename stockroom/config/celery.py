import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'stockroom.config.settings')

app = Celery('stockroom')

# Read CELERY_* keys from Django settings
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django apps.
app.autodiscover_tasks()
