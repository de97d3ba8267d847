from rest_framework import serializers
from .models import Supplier

DOCUMENT_EXTENSIONS = ('pdf', 'doc', 'docx')
MAX_DOCUMENT_SIZE = 5 * 1024 * 1024


class SupplierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Supplier
        fields = ['id', 'name', 'phone', 'email', 'address', 'document', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate_document(self, value):
        if value is None:
            return value
        extension = value.name.rsplit('.', 1)[-1].lower() if '.' in value.name else ''
        if extension not in DOCUMENT_EXTENSIONS:
            raise serializers.ValidationError('Document must be a PDF or Word file.')
        if value.size > MAX_DOCUMENT_SIZE:
            raise serializers.ValidationError('Document must be smaller than 5 MB.')
        return value
