"""
Django admin configuration for RBAC app.
"""
from django.contrib import admin
from .models import (
    User,
    Permission,
    Role,
    RolePermission,
    UserRole,
    AuditLog,
)


class UserRoleInline(admin.TabularInline):
    model = UserRole
    fk_name = 'user'
    extra = 0
    autocomplete_fields = ['role']
    readonly_fields = ['assigned_by', 'created_at']


class RolePermissionInline(admin.TabularInline):
    model = RolePermission
    extra = 0
    autocomplete_fields = ['permission']


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    """
    Admin for the principal model.

    Role changes made here bypass the hierarchy checks and are not
    audited; use the API for governed changes.
    """
    list_display = ['email', 'name', 'org_id', 'company_id', 'is_active', 'is_superuser', 'created_at']
    list_filter = ['is_active', 'is_superuser']
    search_fields = ['email', 'name']
    ordering = ['name', 'email']

    fieldsets = (
        (None, {
            'fields': ('email', 'name', 'password_hash')
        }),
        ('Tenant Scope', {
            'fields': ('org_id', 'company_id')
        }),
        ('Access', {
            'fields': ('is_active', 'is_superuser', 'direct_permissions')
        }),
        ('Activity', {
            'fields': ('created_at', 'updated_at')
        }),
    )
    readonly_fields = ['created_at', 'updated_at']
    filter_horizontal = ['direct_permissions']
    inlines = [UserRoleInline]


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['name', 'hierarchy_level', 'is_system', 'guard_name', 'created_at']
    list_filter = ['is_system', 'guard_name']
    search_fields = ['name']
    ordering = ['hierarchy_level', 'name']
    inlines = [RolePermissionInline]


@admin.register(Permission)
class PermissionAdmin(admin.ModelAdmin):
    list_display = ['name', 'description', 'created_at']
    search_fields = ['name']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    """Read-only view of the audit trail."""
    list_display = ['created_at', 'user', 'action', 'target_type', 'target_id', 'ip_address']
    list_filter = ['action', 'target_type']
    search_fields = ['user__email', 'request_id']
    readonly_fields = [
        'user', 'action', 'target_type', 'target_id', 'old_values', 'new_values',
        'ip_address', 'user_agent', 'request_id', 'created_at',
    ]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
