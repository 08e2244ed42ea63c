"""
Admin configuration for the fleet app.
"""
from django.contrib import admin
from .models import Driver, MaintenanceRecord, Vehicle, VehicleAssignment


class VehicleAssignmentInline(admin.TabularInline):
    model = VehicleAssignment
    extra = 0
    readonly_fields = ['assigned_at', 'unassigned_at', 'is_currently_assigned']


class MaintenanceRecordInline(admin.TabularInline):
    model = MaintenanceRecord
    extra = 0


@admin.register(Driver)
class DriverAdmin(admin.ModelAdmin):
    list_display = [
        'email', 'full_name', 'driver_type', 'license_number', 'license_expiry',
        'medical_cert_expiry', 'is_active', 'is_available'
    ]
    list_filter = ['driver_type', 'is_active', 'is_available', 'pay_type']
    search_fields = ['email', 'first_name', 'last_name', 'license_number']
    exclude = ['password']
    readonly_fields = ['failed_login_attempts', 'locked_until', 'last_login', 'created_at']

    fieldsets = (
        ('Identity', {
            'fields': ('email', 'first_name', 'last_name', 'phone', 'is_active', 'is_available')
        }),
        ('Licensing', {
            'fields': ('driver_type', 'license_number', 'license_state', 'license_expiry', 'medical_cert_expiry')
        }),
        ('Employment', {
            'fields': ('hire_date', 'termination_date', 'pay_type', 'pay_rate')
        }),
        ('Security', {
            'fields': ('failed_login_attempts', 'locked_until', 'last_login', 'created_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(Vehicle)
class VehicleAdmin(admin.ModelAdmin):
    list_display = ['unit_number', 'make', 'model', 'year', 'equipment_type', 'status', 'current_mileage']
    list_filter = ['status', 'equipment_type']
    search_fields = ['unit_number', 'vin', 'plate_number']
    inlines = [VehicleAssignmentInline, MaintenanceRecordInline]
