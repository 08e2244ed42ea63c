"""
Views for the pod app.
"""
from django.http import FileResponse
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated

from apps.audit.decorators import audited
from apps.core.permissions import ActionPermissionsMixin, HasRole, IsDriver
from apps.core.responses import created_response, success_response
from apps.documents.services import open_file
from .serializers import PodDocumentSerializer, PodSubmitSerializer, PodVerifySerializer
from .services import PodService


class PodViewSet(ActionPermissionsMixin, viewsets.ViewSet):
    """
    Proof of delivery: driver submission, lookup, photo fetch and verification.
    """
    permission_classes = [IsAuthenticated]
    permission_classes_by_action = {
        'submit': [IsAuthenticated, IsDriver],
        'verify': [IsAuthenticated, HasRole('ADMIN', 'DISPATCHER')],
    }
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    @action(detail=False, methods=['post'])
    @audited('SUBMIT', 'POD', lookup_kwarg=None)
    def submit(self, request):
        serializer = PodSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = dict(serializer.validated_data)
        load_id = data.pop('load_id')
        pod = PodService(request.user).submit(load_id, **data)
        return created_response(PodDocumentSerializer(pod).data, 'POD submitted successfully')

    @action(detail=False, methods=['get'], url_path=r'load/(?P<load_id>[^/.]+)')
    def for_load(self, request, load_id=None):
        pod = PodService(request.user).get_for_load(load_id)
        return success_response(data=PodDocumentSerializer(pod).data)

    def retrieve(self, request, pk=None):
        pod = PodService(request.user).get(pk)
        return success_response(data=PodDocumentSerializer(pod).data)

    @action(detail=True, methods=['post'])
    @audited('VERIFY', 'POD')
    def verify(self, request, pk=None):
        serializer = PodVerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        pod = PodService(request.user).verify(
            pk, serializer.validated_data['approved'], serializer.validated_data['notes']
        )
        message = 'POD approved, load completed' if pod.is_approved else 'POD rejected, resubmission required'
        return success_response(data=PodDocumentSerializer(pod).data, message=message)

    @action(detail=True, methods=['get'], url_path=r'photos/(?P<photo_id>[^/.]+)')
    def photo(self, request, pk=None, photo_id=None):
        photo = PodService(request.user).get_photo(pk, photo_id)
        return FileResponse(open_file(photo.file), content_type=photo.file.mime_type)
