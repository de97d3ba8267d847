import uuid
from django.db import models
from django.utils import timezone
from stockroom.core.models import User


class ExportJob(models.Model):
    """A queued spreadsheet export; the token is handed to the client for polling"""
    STATUS_QUEUED = 'queued'
    STATUS_READY = 'ready'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = [
        (STATUS_QUEUED, 'Queued'),
        (STATUS_READY, 'Ready'),
        (STATUS_FAILED, 'Failed'),
    ]

    token = models.CharField(max_length=64, unique=True)
    entity_type = models.CharField(max_length=50)
    # Selected fields in export column order
    fields = models.JSONField(default=list)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_QUEUED)
    file_path = models.CharField(max_length=500, blank=True)
    file_name = models.CharField(max_length=255)
    error = models.TextField(blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='export_jobs')
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField()

    def __str__(self):
        return f"{self.entity_type} export {self.token} ({self.status})"

    @property
    def ready(self):
        return self.status == self.STATUS_READY

    @property
    def is_expired(self):
        return self.expires_at <= timezone.now()

    class Meta:
        db_table = 'export_jobs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['expires_at']),
        ]


class ImportJob(models.Model):
    """A queued spreadsheet import with its per-row outcome"""
    STATUS_QUEUED = 'queued'
    STATUS_PROCESSING = 'processing'
    STATUS_DONE = 'done'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = [
        (STATUS_QUEUED, 'Queued'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_DONE, 'Done'),
        (STATUS_FAILED, 'Failed'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    entity_type = models.CharField(max_length=50)
    file_path = models.CharField(max_length=500)
    original_name = models.CharField(max_length=255)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_QUEUED)
    processed_count = models.PositiveIntegerField(default=0)
    success_count = models.PositiveIntegerField(default=0)
    error_count = models.PositiveIntegerField(default=0)
    # [{"row": 3, "message": "..."}]
    errors = models.JSONField(default=list, blank=True)
    error = models.TextField(blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='import_jobs')
    created_at = models.DateTimeField(auto_now_add=True)
    started_at = models.DateTimeField(null=True, blank=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"{self.entity_type} import {self.original_name} ({self.status})"

    class Meta:
        db_table = 'import_jobs'
        ordering = ['-created_at']
