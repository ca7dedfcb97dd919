"""
RBAC API views for role governance and user role assignment.

All endpoints require an authenticated principal; rank and tenant checks
are delegated to the services, which receive `request.user` as the actor.
"""
import logging

from django.db.models import Count, Q
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework.views import APIView

from apps.core.exceptions import AuthorizationError, NotFoundError
from apps.core.logging import SecurityLogger
from apps.core.pagination import AuditLogPagination, StandardResultsSetPagination
from apps.core.responses import created_response, success_response
from apps.rbac.analytics import GovernanceService
from apps.rbac.hierarchy import TenantScope
from apps.rbac.models import Permission, Role, User
from apps.rbac.serializers import (
    AssignRolesSerializer,
    AuditLogSerializer,
    PermissionCatalogueSerializer,
    PermissionSerializer,
    RoleDetailSerializer,
    RoleSerializer,
    RoleWriteSerializer,
    SingleRoleSerializer,
    SyncPermissionsSerializer,
    UserDetailSerializer,
    UserWithRolesSerializer,
)
from apps.rbac.services import RoleService, UserRoleService

logger = logging.getLogger(__name__)

ENVELOPE_ERRORS = {
    403: OpenApiTypes.OBJECT,
    404: OpenApiTypes.OBJECT,
    422: OpenApiTypes.OBJECT,
}


# ===== ROLES =====

@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Roles'],
        summary='List roles',
        description='''
List all roles ordered by hierarchy level (most authoritative first), then name.

Each role carries live `permissions_count` and `users_count`.
        ''',
        parameters=[
            OpenApiParameter('search', OpenApiTypes.STR, description='Case-insensitive substring of the role name'),
        ],
        responses={200: RoleSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['RBAC - Roles'],
        summary='Create custom role',
        description='''
Create a custom role. The caller must outrank the requested `hierarchy_level`
(default 99). Roles created through the API are never system roles.
        ''',
        request=RoleWriteSerializer,
        responses={201: RoleSerializer, **ENVELOPE_ERRORS},
    ),
)
class RoleListCreateView(APIView):
    """
    GET /api/roles
    POST /api/roles
    """

    def get(self, request):
        roles = RoleService.list(search=request.query_params.get('search'))
        return success_response(RoleSerializer(roles, many=True).data)

    def post(self, request):
        serializer = RoleWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        role = RoleService.create(
            actor=request.user,
            request=request,
            **serializer.validated_data
        )
        return created_response(RoleSerializer(role).data, 'Role created successfully')


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Roles'],
        summary='Get role details',
        responses={200: RoleDetailSerializer, 404: OpenApiTypes.OBJECT},
    ),
    put=extend_schema(
        tags=['RBAC - Roles'],
        summary='Update role',
        description='''
Update name, hierarchy level, description or icon.

The caller must outrank both the role's current level and any new level.
System roles cannot be renamed.
        ''',
        request=RoleWriteSerializer,
        responses={200: RoleSerializer, **ENVELOPE_ERRORS},
    ),
    patch=extend_schema(
        tags=['RBAC - Roles'],
        summary='Partially update role',
        request=RoleWriteSerializer,
        responses={200: RoleSerializer, **ENVELOPE_ERRORS},
    ),
    delete=extend_schema(
        tags=['RBAC - Roles'],
        summary='Delete role',
        description='Delete a custom role. System roles cannot be deleted.',
        responses={200: OpenApiTypes.OBJECT, 403: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    ),
)
class RoleDetailView(APIView):
    """
    GET/PUT/PATCH/DELETE /api/roles/{id}
    """

    def get(self, request, role_id):
        role = RoleService.get_role(role_id)
        return success_response(RoleDetailSerializer(role).data)

    def put(self, request, role_id):
        return self._update(request, role_id)

    def patch(self, request, role_id):
        return self._update(request, role_id)

    def _update(self, request, role_id):
        serializer = RoleWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        role = RoleService.update(
            request.user,
            role_id,
            request=request,
            **serializer.validated_data
        )
        return success_response(RoleSerializer(role).data, 'Role updated successfully')

    def delete(self, request, role_id):
        RoleService.delete(request.user, role_id, request=request)
        return success_response(None, 'Role deleted successfully')


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Roles'],
        summary='List role permissions',
        responses={200: PermissionSerializer(many=True), 404: OpenApiTypes.OBJECT},
    )
)
class RolePermissionsView(APIView):
    """
    GET /api/roles/{id}/permissions
    """

    def get(self, request, role_id):
        role = RoleService.get_role(role_id)
        permissions = role.permissions.order_by('name')
        return success_response(PermissionSerializer(permissions, many=True).data)


@extend_schema_view(
    post=extend_schema(
        tags=['RBAC - Roles'],
        summary='Sync role permissions',
        description='''
Replace the role's permission set with exactly the given names.

Callers below top authority can only grant permissions they hold themselves.

**Example request body:**
```json
{"permissions": ["view_employees", "manage_leave"]}
```
        ''',
        request=SyncPermissionsSerializer,
        responses={200: RoleDetailSerializer, **ENVELOPE_ERRORS},
    )
)
class RolePermissionsSyncView(APIView):
    """
    POST /api/roles/{id}/permissions/sync
    """

    def post(self, request, role_id):
        # Resolve the role first so an unknown id is 404 before body validation
        RoleService.get_role(role_id)

        serializer = SyncPermissionsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        role = RoleService.sync_permissions(
            request.user,
            role_id,
            serializer.validated_data['permissions'],
            request=request,
        )
        return success_response(RoleDetailSerializer(role).data, 'Permissions synced successfully')


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Permissions'],
        summary='List permissions',
        parameters=[
            OpenApiParameter('search', OpenApiTypes.STR, description='Case-insensitive substring of the permission name'),
        ],
        responses={200: PermissionCatalogueSerializer(many=True)},
    )
)
class PermissionListView(APIView):
    """
    GET /api/permissions
    """

    def get(self, request):
        permissions = Permission.objects.annotate(
            roles_count=Count('role_permissions', distinct=True)
        ).order_by('name')

        search = request.query_params.get('search')
        if search:
            permissions = permissions.filter(name__icontains=search)

        return success_response(PermissionCatalogueSerializer(permissions, many=True).data)


# ===== GOVERNANCE =====

@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Governance'],
        summary='Role inventory',
        description='Every role with user and permission counts, ordered by hierarchy level then name.',
        responses={200: RoleSerializer(many=True)},
    )
)
class RoleInventoryView(APIView):
    """
    GET /api/admin/roles/inventory
    """

    def get(self, request):
        roles = GovernanceService.inventory()
        return success_response(RoleSerializer(roles, many=True).data)


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Governance'],
        summary='Role health report',
        description='''
Unused custom roles, overprivileged roles, orphan permissions, the role
distribution per hierarchy level and a summary with a 0-100 health score.
        ''',
        responses={200: OpenApiTypes.OBJECT},
    )
)
class RoleHealthView(APIView):
    """
    GET /api/admin/roles/health
    """

    def get(self, request):
        report = GovernanceService.health_metrics()
        return success_response({
            'unused_roles': RoleSerializer(report['unused_roles'], many=True).data,
            'overprivileged_roles': RoleSerializer(report['overprivileged_roles'], many=True).data,
            'orphan_permissions': PermissionSerializer(report['orphan_permissions'], many=True).data,
            'role_distribution': report['role_distribution'],
            'summary': report['summary'],
        })


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Governance'],
        summary='List role audit logs',
        description='Privilege-change audit trail, newest first.',
        parameters=[
            OpenApiParameter('page', OpenApiTypes.INT, description='Page number'),
            OpenApiParameter('per_page', OpenApiTypes.INT, description='Page size (default 20)'),
        ],
        responses={200: AuditLogSerializer(many=True)},
    )
)
class AuditLogListView(APIView):
    """
    GET /api/admin/roles/audit-logs
    """

    pagination_class = AuditLogPagination

    def get(self, request):
        logs = GovernanceService.audit_logs()

        paginator = self.pagination_class()
        page = paginator.paginate_queryset(logs, request, view=self)

        serializer = AuditLogSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)


# ===== USERS =====

def _get_accessible_user(request, user_id, operation):
    """Fetch a user the caller may see, or raise NotFoundError/AuthorizationError."""
    user = User.objects.prefetch_related('roles').filter(pk=user_id).first()
    if user is None:
        raise NotFoundError('User not found')

    if not TenantScope.can_access_user(request.user, user):
        message = 'You cannot access users outside your organization/company'
        SecurityLogger.log_authorization_denied(
            request.user, operation, message, target_user_id=str(user.id)
        )
        raise AuthorizationError(message)
    return user


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Users'],
        summary='List users with roles',
        description='''
Users visible to the caller (restricted to the caller's organization and
company unless the caller is top authority), with role summary.
        ''',
        parameters=[
            OpenApiParameter('search', OpenApiTypes.STR, description='Substring of name or email'),
            OpenApiParameter('role', OpenApiTypes.STR, description='Only users holding this role'),
            OpenApiParameter('page', OpenApiTypes.INT, description='Page number'),
            OpenApiParameter('per_page', OpenApiTypes.INT, description='Page size (default 15)'),
        ],
        responses={200: UserWithRolesSerializer(many=True)},
    )
)
class UserListView(APIView):
    """
    GET /api/admin/users
    """

    pagination_class = StandardResultsSetPagination

    def get(self, request):
        users = TenantScope.scope_queryset(
            request.user,
            User.objects.prefetch_related('roles').order_by('name', 'email'),
        )

        search = request.query_params.get('search')
        if search:
            users = users.filter(Q(name__icontains=search) | Q(email__icontains=search))

        role = request.query_params.get('role')
        if role:
            users = users.filter(roles__name=role).distinct()

        paginator = self.pagination_class()
        page = paginator.paginate_queryset(users, request, view=self)

        serializer = UserWithRolesSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Users'],
        summary='Get user with roles and permissions',
        responses={200: UserDetailSerializer, 403: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    )
)
class UserDetailView(APIView):
    """
    GET /api/admin/users/{id}
    """

    def get(self, request, user_id):
        user = _get_accessible_user(request, user_id, 'user_view')
        return success_response(UserDetailSerializer(user).data)


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Users'],
        summary='List user roles',
        responses={200: RoleSerializer(many=True), 403: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    ),
    post=extend_schema(
        tags=['RBAC - Users'],
        summary='Replace user roles',
        description='''
Replace the user's roles with exactly the given names. An empty list removes
all roles. Every requested role, and every role being dropped, must sit
strictly below the caller in the hierarchy.

**Example request body:**
```json
{"roles": ["hr", "staff"]}
```
        ''',
        request=AssignRolesSerializer,
        responses={200: UserDetailSerializer, **ENVELOPE_ERRORS},
    ),
)
class UserRolesView(APIView):
    """
    GET /api/admin/users/{id}/roles
    POST /api/admin/users/{id}/roles
    """

    def get(self, request, user_id):
        user = _get_accessible_user(request, user_id, 'user_roles_view')
        roles = Role.objects.filter(pk__in=user.roles.values('pk')).with_counts().ordered()
        return success_response(RoleSerializer(roles, many=True).data)

    def post(self, request, user_id):
        UserRoleService.check_target(request.user, user_id)

        serializer = AssignRolesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = UserRoleService.assign_roles(
            request.user,
            user_id,
            serializer.validated_data['roles'],
            request=request,
        )
        return success_response(UserDetailSerializer(user).data, 'User roles updated successfully')


@extend_schema_view(
    post=extend_schema(
        tags=['RBAC - Users'],
        summary='Add a role to a user',
        request=SingleRoleSerializer,
        responses={200: UserDetailSerializer, **ENVELOPE_ERRORS},
    )
)
class UserRoleAddView(APIView):
    """
    POST /api/admin/users/{id}/roles/add
    """

    def post(self, request, user_id):
        UserRoleService.check_target(request.user, user_id)

        serializer = SingleRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = UserRoleService.add_role(
            request.user,
            user_id,
            serializer.validated_data['role'],
            request=request,
        )
        return success_response(UserDetailSerializer(user).data, 'Role added successfully')


@extend_schema_view(
    post=extend_schema(
        tags=['RBAC - Users'],
        summary='Remove a role from a user',
        request=SingleRoleSerializer,
        responses={200: UserDetailSerializer, **ENVELOPE_ERRORS},
    )
)
class UserRoleRemoveView(APIView):
    """
    POST /api/admin/users/{id}/roles/remove
    """

    def post(self, request, user_id):
        UserRoleService.check_target(request.user, user_id)

        serializer = SingleRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = UserRoleService.remove_role(
            request.user,
            user_id,
            serializer.validated_data['role'],
            request=request,
        )
        return success_response(UserDetailSerializer(user).data, 'Role removed successfully')
