"""
Admin configuration for the pod app.
"""
from django.contrib import admin
from .models import PodDocument, PodPhoto


class PodPhotoInline(admin.TabularInline):
    model = PodPhoto
    extra = 0
    readonly_fields = ['file', 'photo_order', 'caption']


@admin.register(PodDocument)
class PodDocumentAdmin(admin.ModelAdmin):
    list_display = ['load', 'driver', 'recipient_name', 'captured_at', 'verified_at', 'is_approved']
    list_filter = ['is_approved', 'verified_at']
    search_fields = ['load__load_number', 'recipient_name', 'driver__email']
    readonly_fields = ['signature_file', 'verified_at', 'verified_by_id', 'is_approved', 'verification_notes']
    inlines = [PodPhotoInline]
