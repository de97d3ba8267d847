import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from django.db.models import ProtectedError, Q
from django.shortcuts import get_object_or_404
from stockroom.core.permissions import IsManagerOrReadOnly
from stockroom.core.utils import create_audit_log, paginated_response
from .models import Supplier
from .serializers import SupplierSerializer

logger = logging.getLogger(__name__)


@api_view(['GET', 'POST'])
@permission_classes([IsManagerOrReadOnly])
def supplier_list_create(request):
    """List suppliers (?search= matches name, phone or email) or create one"""
    if request.method == 'GET':
        suppliers = Supplier.objects.all()
        search = request.query_params.get('search', None)
        if search:
            suppliers = suppliers.filter(
                Q(name__icontains=search) | Q(phone__icontains=search) | Q(email__icontains=search)
            )
        return paginated_response(request, suppliers, SupplierSerializer)

    serializer = SupplierSerializer(data=request.data)
    if serializer.is_valid():
        supplier = serializer.save()
        logger.info(f"Supplier '{supplier.name}' created by {request.user.username}")
        create_audit_log(
            request=request,
            action='create',
            model_name='Supplier',
            object_id=supplier.id,
            object_name=supplier.name,
            changes={k: v for k, v in serializer.data.items() if k != 'document'},
        )
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsManagerOrReadOnly])
def supplier_detail(request, pk):
    """Retrieve, update or delete a supplier"""
    supplier = get_object_or_404(Supplier, pk=pk)

    if request.method == 'GET':
        return Response(SupplierSerializer(supplier).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = SupplierSerializer(supplier, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            old_document = supplier.document.name if supplier.document else None
            serializer.save()
            # A replaced document is removed from storage
            if old_document and 'document' in serializer.validated_data and supplier.document.name != old_document:
                supplier.document.storage.delete(old_document)
            create_audit_log(
                request=request,
                action='update',
                model_name='Supplier',
                object_id=supplier.id,
                object_name=supplier.name,
                changes={k: v for k, v in serializer.validated_data.items() if k != 'document'},
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        name = supplier.name
        try:
            supplier.delete()
        except ProtectedError:
            logger.warning(f"Supplier {pk} ({name}) is referenced and cannot be deleted")
            return Response(
                {'error': 'Supplier has products or purchase orders and cannot be deleted.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        create_audit_log(
            request=request,
            action='delete',
            model_name='Supplier',
            object_id=pk,
            object_name=name,
        )
        return Response(status=status.HTTP_204_NO_CONTENT)
