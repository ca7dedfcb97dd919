"""
RBAC API URLs.

Provides endpoints for:
- Role management (CRUD, permission sync)
- Permission catalogue
- Governance (inventory, health, audit log)
- User role assignment
"""
from django.urls import path
from apps.rbac.views import (
    RoleListCreateView,
    RoleDetailView,
    RolePermissionsView,
    RolePermissionsSyncView,
    PermissionListView,
    RoleInventoryView,
    RoleHealthView,
    AuditLogListView,
    UserListView,
    UserDetailView,
    UserRolesView,
    UserRoleAddView,
    UserRoleRemoveView,
)

app_name = 'rbac'

urlpatterns = [
    # Role endpoints
    path('roles', RoleListCreateView.as_view(), name='role-list'),
    path('roles/<uuid:role_id>', RoleDetailView.as_view(), name='role-detail'),
    path('roles/<uuid:role_id>/permissions', RolePermissionsView.as_view(), name='role-permissions'),
    path('roles/<uuid:role_id>/permissions/sync', RolePermissionsSyncView.as_view(), name='role-permissions-sync'),

    # Permission catalogue
    path('permissions', PermissionListView.as_view(), name='permission-list'),

    # Governance endpoints
    path('admin/roles/inventory', RoleInventoryView.as_view(), name='role-inventory'),
    path('admin/roles/health', RoleHealthView.as_view(), name='role-health'),
    path('admin/roles/audit-logs', AuditLogListView.as_view(), name='audit-log-list'),

    # User role assignment endpoints
    path('admin/users', UserListView.as_view(), name='user-list'),
    path('admin/users/<uuid:user_id>', UserDetailView.as_view(), name='user-detail'),
    path('admin/users/<uuid:user_id>/roles', UserRolesView.as_view(), name='user-roles'),
    path('admin/users/<uuid:user_id>/roles/add', UserRoleAddView.as_view(), name='user-role-add'),
    path('admin/users/<uuid:user_id>/roles/remove', UserRoleRemoveView.as_view(), name='user-role-remove'),
]
