from rest_framework import serializers


class ExportRequestSerializer(serializers.Serializer):
    # Emptiness is reported by the coordinator, with the rest of the field checks
    fields = serializers.ListField(child=serializers.CharField(), allow_empty=True, required=False, default=list)
