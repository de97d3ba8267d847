from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Back-office user. Roles are Django groups (Administrator, Manager, Staff)."""
    phone = models.CharField(max_length=20, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def has_role(self, *roles):
        if self.is_superuser:
            return True
        return self.groups.filter(name__in=roles).exists()

    class Meta:
        db_table = 'users'


class AuditLog(models.Model):
    """Audit log for mutating operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('stock_adjust', 'Stock Adjustment'),
        ('stock_transfer', 'Stock Transfer'),
        ('order_confirm', 'Purchase Order Confirmed'),
        ('exported', 'Exported'),
        ('imported', 'Imported'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., product name, order number)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., export token, transfer correlation id)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at']),
            models.Index(fields=['action']),
            models.Index(fields=['model_name']),
            models.Index(fields=['object_reference']),
        ]
