"""
Admin configuration for the accounts app.
"""
from django.contrib import admin
from .models import InternalUser, ShipperClient, ShipperUser, ShipperUserPermission


class ShipperUserPermissionInline(admin.TabularInline):
    model = ShipperUserPermission
    extra = 0


@admin.register(InternalUser)
class InternalUserAdmin(admin.ModelAdmin):
    list_display = ['email', 'full_name', 'role', 'is_active', 'last_login']
    list_filter = ['role', 'is_active']
    search_fields = ['email', 'first_name', 'last_name']
    exclude = ['password']
    readonly_fields = ['failed_login_attempts', 'locked_until', 'last_login', 'created_at']


@admin.register(ShipperClient)
class ShipperClientAdmin(admin.ModelAdmin):
    list_display = ['company_name', 'contact_email', 'status', 'payment_terms_days', 'current_balance']
    list_filter = ['status']
    search_fields = ['company_name', 'contact_email', 'tax_id']
    readonly_fields = ['current_balance', 'created_at', 'updated_at']


@admin.register(ShipperUser)
class ShipperUserAdmin(admin.ModelAdmin):
    list_display = ['email', 'full_name', 'shipper_client', 'is_primary_contact', 'is_active']
    list_filter = ['is_active', 'is_primary_contact']
    search_fields = ['email', 'first_name', 'last_name', 'shipper_client__company_name']
    exclude = ['password']
    readonly_fields = ['failed_login_attempts', 'locked_until', 'last_login', 'created_at']
    inlines = [ShipperUserPermissionInline]
