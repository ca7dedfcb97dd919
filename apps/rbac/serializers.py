"""
RBAC serializers for REST API endpoints.

Provides serialization for:
- Roles (list, detail, create/update input)
- Permissions and role-permission sync input
- Users with their roles, and role assignment input
- Audit logs
"""
from rest_framework import serializers

from apps.rbac.hierarchy import HierarchyEvaluator
from apps.rbac.models import (
    LOWEST_AUTHORITY_LEVEL,
    TOP_AUTHORITY_LEVEL,
    AuditLog,
    Permission,
    Role,
    User,
)


# ===== PERMISSION SERIALIZERS =====

class PermissionSerializer(serializers.ModelSerializer):
    """Serializer for Permission model."""

    class Meta:
        model = Permission
        fields = ['id', 'name', 'description', 'created_at', 'updated_at']
        read_only_fields = fields


class PermissionCatalogueSerializer(PermissionSerializer):
    """Permission with the number of roles granting it."""

    roles_count = serializers.SerializerMethodField()

    class Meta(PermissionSerializer.Meta):
        fields = PermissionSerializer.Meta.fields + ['roles_count']
        read_only_fields = fields

    def get_roles_count(self, obj):
        count = getattr(obj, 'roles_count', None)
        if count is None:
            count = obj.role_permissions.count()
        return count


# ===== ROLE SERIALIZERS =====

class RoleSerializer(serializers.ModelSerializer):
    """
    Serializer for Role model.

    Uses the annotated counts from RoleQuerySet.with_counts() when present.
    """

    permissions_count = serializers.SerializerMethodField()
    users_count = serializers.SerializerMethodField()

    class Meta:
        model = Role
        fields = [
            'id', 'name', 'guard_name', 'hierarchy_level', 'is_system',
            'description', 'icon', 'permissions_count', 'users_count',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_permissions_count(self, obj):
        count = getattr(obj, 'permissions_count', None)
        if count is None:
            count = obj.role_permissions.count()
        return count

    def get_users_count(self, obj):
        count = getattr(obj, 'users_count', None)
        if count is None:
            count = obj.user_roles.count()
        return count


class RoleDetailSerializer(RoleSerializer):
    """Detailed serializer for Role with full permission list."""

    permissions = serializers.SerializerMethodField()

    class Meta(RoleSerializer.Meta):
        fields = RoleSerializer.Meta.fields + ['permissions']
        read_only_fields = fields

    def get_permissions(self, obj):
        return PermissionSerializer(obj.permissions.order_by('name'), many=True).data


class RoleWriteSerializer(serializers.Serializer):
    """Input for creating and updating roles."""

    name = serializers.CharField(max_length=255)
    hierarchy_level = serializers.IntegerField(
        required=False,
        allow_null=True,
        min_value=TOP_AUTHORITY_LEVEL,
        max_value=LOWEST_AUTHORITY_LEVEL,
        help_text="Authority rank: 1 = highest, 99 = lowest"
    )
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    icon = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("The name field is required.")
        return value


class SyncPermissionsSerializer(serializers.Serializer):
    """Input for replacing a role's permission set."""

    permissions = serializers.ListField(
        child=serializers.CharField(),
        allow_empty=True,
        help_text="Permission names; the role ends up with exactly these"
    )

    def validate_permissions(self, value):
        """Validate all permission names exist."""
        known = set(Permission.objects.filter(name__in=value).values_list('name', flat=True))
        unknown = sorted(set(value) - known)
        if unknown:
            raise serializers.ValidationError(
                f"The selected permissions are invalid: {', '.join(unknown)}"
            )
        return value


# ===== USER SERIALIZERS =====

class UserWithRolesSerializer(serializers.ModelSerializer):
    """
    User listing row with role summary.

    Reads roles through `obj.roles.all()` so a prefetch_related('roles')
    on the queryset avoids per-row queries.
    """

    roles_list = serializers.SerializerMethodField()
    primary_role = serializers.SerializerMethodField()
    primary_role_icon = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'name', 'email', 'is_active', 'org_id', 'company_id',
            'roles_list', 'primary_role', 'primary_role_icon',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def _sorted_roles(self, obj):
        return sorted(obj.roles.all(), key=lambda role: (role.hierarchy_level, role.name))

    def get_roles_list(self, obj):
        return [role.name for role in self._sorted_roles(obj)]

    def get_primary_role(self, obj):
        roles = self._sorted_roles(obj)
        return roles[0].name if roles else None

    def get_primary_role_icon(self, obj):
        roles = self._sorted_roles(obj)
        return roles[0].icon if roles else None


class UserDetailSerializer(UserWithRolesSerializer):
    """User with full roles and effective permission names."""

    roles = serializers.SerializerMethodField()
    permissions_list = serializers.SerializerMethodField()

    class Meta(UserWithRolesSerializer.Meta):
        fields = UserWithRolesSerializer.Meta.fields + ['roles', 'permissions_list']
        read_only_fields = fields

    def get_roles(self, obj):
        return RoleSerializer(self._sorted_roles(obj), many=True).data

    def get_permissions_list(self, obj):
        return sorted(HierarchyEvaluator.effective_permissions(obj))


class AssignRolesSerializer(serializers.Serializer):
    """Input for replacing a user's roles."""

    roles = serializers.ListField(
        child=serializers.CharField(),
        allow_empty=True,
        help_text="Role names; the user ends up with exactly these"
    )

    def validate_roles(self, value):
        """Validate all role names exist."""
        known = set(Role.objects.filter(name__in=value).values_list('name', flat=True))
        unknown = sorted(set(value) - known)
        if unknown:
            raise serializers.ValidationError(
                f"The selected roles are invalid: {', '.join(unknown)}"
            )
        return value


class SingleRoleSerializer(serializers.Serializer):
    """Input for adding or removing one role."""

    role = serializers.CharField(help_text="Role name")

    def validate_role(self, value):
        if not Role.objects.filter(name=value).exists():
            raise serializers.ValidationError("The selected role is invalid.")
        return value


# ===== AUDIT SERIALIZERS =====

class AuditLogSerializer(serializers.ModelSerializer):
    """Serializer for AuditLog model with actor display info."""

    user = serializers.SerializerMethodField()

    class Meta:
        model = AuditLog
        fields = [
            'id', 'user', 'action', 'target_type', 'target_id',
            'old_values', 'new_values',
            'ip_address', 'user_agent', 'request_id',
            'created_at',
        ]
        read_only_fields = fields

    def get_user(self, obj):
        if obj.user is None:
            return None
        return {
            'id': str(obj.user.id),
            'name': obj.user.name,
            'email': obj.user.email,
        }
