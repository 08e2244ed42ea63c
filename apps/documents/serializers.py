"""
Serializers for the documents app.
"""
from rest_framework import serializers

from .models import DocumentApproval, FileUpload, LoadDocument


class FileUploadSerializer(serializers.ModelSerializer):
    size_mb = serializers.FloatField(source='get_file_size_mb', read_only=True)

    class Meta:
        model = FileUpload
        fields = ['id', 'original_name', 'mime_type', 'size_bytes', 'size_mb', 'category', 'created_at']


class DocumentApprovalSerializer(serializers.ModelSerializer):

    class Meta:
        model = DocumentApproval
        fields = ['id', 'approved', 'reviewed_by_id', 'rejection_reason', 'notes', 'created_at']


class LoadDocumentSerializer(serializers.ModelSerializer):
    """
    Load document with its file metadata and review history.
    """
    file = FileUploadSerializer(read_only=True)
    approvals = DocumentApprovalSerializer(many=True, read_only=True)
    load_number = serializers.CharField(source='load.load_number', read_only=True)

    class Meta:
        model = LoadDocument
        fields = [
            'id', 'load', 'load_number', 'document_type', 'description', 'status',
            'file', 'uploaded_by_id', 'uploaded_by_type', 'approvals', 'created_at', 'updated_at'
        ]


class DocumentUploadSerializer(serializers.Serializer):
    file = serializers.FileField()
    document_type = serializers.ChoiceField(choices=LoadDocument.DOCUMENT_TYPE_CHOICES)
    description = serializers.CharField(required=False, allow_blank=True, default='')


class DocumentReviewSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class DocumentRejectSerializer(DocumentReviewSerializer):
    reason = serializers.CharField()
