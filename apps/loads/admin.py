"""
Admin configuration for the loads app.
"""
from django.contrib import admin
from .models import Load, LoadAssignment, LoadNegotiation, LoadStatusEvent, LoadStatusHistory


class LoadAssignmentInline(admin.TabularInline):
    model = LoadAssignment
    extra = 0
    readonly_fields = ['assigned_at', 'accepted_at', 'rejected_at', 'created_at']


class LoadStatusHistoryInline(admin.TabularInline):
    model = LoadStatusHistory
    extra = 0
    can_delete = False
    readonly_fields = ['from_status', 'to_status', 'changed_by_id', 'changed_by_type', 'notes', 'created_at']

    def has_add_permission(self, request, obj=None):
        return False


class LoadNegotiationInline(admin.TabularInline):
    model = LoadNegotiation
    extra = 0
    readonly_fields = ['created_at', 'responded_at']


@admin.register(Load)
class LoadAdmin(admin.ModelAdmin):
    list_display = [
        'load_number', 'status', 'shipper_client', 'origin', 'destination',
        'equipment_type', 'pickup_date', 'shipper_rate', 'created_at'
    ]
    list_filter = ['status', 'equipment_type', 'created_at']
    search_fields = ['load_number', 'origin', 'destination', 'commodity', 'shipper_client__company_name']
    readonly_fields = ['load_number', 'status', 'created_at', 'updated_at', 'deleted_at']
    inlines = [LoadAssignmentInline, LoadNegotiationInline, LoadStatusHistoryInline]

    fieldsets = (
        ('Basic Information', {
            'fields': (
                'load_number', 'status', 'shipper_client', 'created_by'
            )
        }),
        ('Route', {
            'fields': (
                'origin', 'origin_address', 'destination', 'destination_address', 'distance_miles'
            )
        }),
        ('Freight', {
            'fields': (
                'equipment_type', 'weight_lbs', 'commodity', 'special_instructions'
            )
        }),
        ('Schedule', {
            'fields': (
                'pickup_date', 'pickup_window_end', 'delivery_date', 'delivery_window_end',
                'actual_pickup_time', 'actual_delivery_time'
            )
        }),
        ('Rates', {
            'fields': ('shipper_rate', 'driver_pay', 'approved_negotiation')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at', 'deleted_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(LoadStatusEvent)
class LoadStatusEventAdmin(admin.ModelAdmin):
    list_display = ['load', 'status', 'driver', 'gps_lat', 'gps_lng', 'created_at']
    list_filter = ['status']
    readonly_fields = ['load', 'driver', 'status', 'notes', 'gps_lat', 'gps_lng', 'created_at']
