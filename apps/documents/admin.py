"""
Admin configuration for the documents app.
"""
from django.contrib import admin
from .models import DocumentApproval, FileUpload, LoadDocument


class DocumentApprovalInline(admin.TabularInline):
    model = DocumentApproval
    extra = 0
    can_delete = False
    readonly_fields = ['approved', 'reviewed_by_id', 'rejection_reason', 'notes', 'created_at']


@admin.register(LoadDocument)
class LoadDocumentAdmin(admin.ModelAdmin):
    list_display = ['load', 'document_type', 'status', 'uploaded_by_type', 'created_at']
    list_filter = ['document_type', 'status']
    search_fields = ['load__load_number', 'description']
    inlines = [DocumentApprovalInline]


@admin.register(FileUpload)
class FileUploadAdmin(admin.ModelAdmin):
    list_display = ['original_name', 'category', 'mime_type', 'size_bytes', 'deleted_at', 'created_at']
    list_filter = ['category', 'mime_type']
    search_fields = ['original_name', 'storage_key']
    readonly_fields = ['storage_key', 'size_bytes', 'uploaded_by_id', 'uploaded_by_type']
