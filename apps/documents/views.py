"""
Views for the documents app.
"""
from django.http import FileResponse
from django.shortcuts import redirect
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated

from apps.audit.decorators import audited
from apps.core.permissions import ActionPermissionsMixin, HasRole
from apps.core.responses import created_response, success_response
from apps.core.storage import get_storage_backend
from .serializers import (
    DocumentRejectSerializer, DocumentReviewSerializer, DocumentUploadSerializer, LoadDocumentSerializer
)
from .services import DocumentService, open_file

DISPATCH = HasRole('ADMIN', 'DISPATCHER')


class DocumentViewSet(ActionPermissionsMixin, viewsets.ViewSet):
    """
    Load paperwork: upload, listing, download, deletion and review.
    """
    permission_classes = [IsAuthenticated]
    permission_classes_by_action = {
        'approve': [IsAuthenticated, DISPATCH],
        'reject': [IsAuthenticated, DISPATCH],
    }
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    @action(detail=False, methods=['get', 'post'], url_path=r'loads/(?P<load_id>[^/.]+)')
    def for_load(self, request, load_id=None):
        """
        GET lists a load's documents (optional ``status`` filter); POST uploads one.
        """
        service = DocumentService(request.user)
        if request.method == 'GET':
            documents = service.list_for_load(load_id, request.query_params.get('status'))
            return success_response(data=LoadDocumentSerializer(documents, many=True).data)
        return self._upload(request, service, load_id)

    @audited('UPLOAD', 'DOCUMENT', lookup_kwarg=None)
    def _upload(self, request, service, load_id):
        serializer = DocumentUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = serializer.validated_data
        document = service.upload(load_id, data['file'], data['document_type'], data['description'])
        return created_response(LoadDocumentSerializer(document).data, 'Document uploaded successfully')

    def retrieve(self, request, pk=None):
        document = DocumentService(request.user).get(pk)
        return success_response(data=LoadDocumentSerializer(document).data)

    @action(detail=True, methods=['get'])
    def download(self, request, pk=None):
        document = DocumentService(request.user).get(pk)
        storage = get_storage_backend()
        if not storage.streams_locally:
            return redirect(storage.signed_url(document.file.storage_key))

        return FileResponse(
            open_file(document.file),
            as_attachment=True,
            filename=document.file.original_name,
            content_type=document.file.mime_type,
        )

    @audited('DELETE', 'DOCUMENT')
    def destroy(self, request, pk=None):
        DocumentService(request.user).delete(pk)
        return success_response(message='Document deleted successfully')

    @action(detail=True, methods=['post'])
    @audited('APPROVE', 'DOCUMENT')
    def approve(self, request, pk=None):
        serializer = DocumentReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        document = DocumentService(request.user).approve(pk, serializer.validated_data['notes'])
        return success_response(data=LoadDocumentSerializer(document).data, message='Document approved')

    @action(detail=True, methods=['post'])
    @audited('REJECT', 'DOCUMENT')
    def reject(self, request, pk=None):
        serializer = DocumentRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        document = DocumentService(request.user).reject(
            pk, serializer.validated_data['reason'], serializer.validated_data['notes']
        )
        return success_response(data=LoadDocumentSerializer(document).data, message='Document rejected')
