import logging
from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from stockroom.core.exceptions import StockroomError
from stockroom.core.permissions import IsManager
from stockroom.core.utils import create_audit_log, error_response
from .coordinators import ExportJobCoordinator, ImportJobCoordinator
from .serializers import ExportRequestSerializer

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def _xlsx_response(file_name, content):
    response = HttpResponse(content, content_type=XLSX_CONTENT_TYPE)
    response['Content-Disposition'] = f'attachment; filename="{file_name}"'
    return response


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def export_start(request, entity_type):
    """Queue an export of the selected fields; poll the returned token"""
    serializer = ExportRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = ExportJobCoordinator.start(entity_type, serializer.validated_data['fields'], user=request.user)
    except StockroomError as e:
        return error_response(e)

    create_audit_log(
        request=request,
        action='exported',
        model_name=entity_type,
        object_id=result['file'],
        object_reference=result['file'],
        changes={'fields': serializer.validated_data['fields']},
    )
    return Response(result, status=status.HTTP_202_ACCEPTED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def export_status(request, token):
    try:
        return Response(ExportJobCoordinator.status(token))
    except StockroomError as e:
        return error_response(e)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def export_download(request, token):
    """Download a ready export. The file is deleted once served."""
    try:
        file_name, content = ExportJobCoordinator.fetch_and_retire(token)
    except StockroomError as e:
        return error_response(e)
    return _xlsx_response(file_name, content)


@api_view(['POST'])
@permission_classes([IsManager])
def import_start(request, entity_type):
    """Upload an xlsx or csv file for background import"""
    result = ImportJobCoordinator.start(entity_type, request.FILES.get('file'), user=request.user)
    if result['status'] == 'rejected':
        return Response({'error': result['message']}, status=status.HTTP_400_BAD_REQUEST)
    return Response(result, status=status.HTTP_202_ACCEPTED)


@api_view(['GET'])
@permission_classes([IsManager])
def import_status(request, job_id):
    try:
        return Response(ImportJobCoordinator.status(job_id))
    except StockroomError as e:
        return error_response(e)


@api_view(['GET'])
@permission_classes([IsManager])
def import_template(request, entity_type):
    """Blank import workbook with headers and dropdowns"""
    try:
        file_name, content = ImportJobCoordinator.template_workbook(entity_type)
    except StockroomError as e:
        return error_response(e)
    return _xlsx_response(file_name, content)
