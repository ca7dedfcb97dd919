"""
RBAC services.

Implements:
- RoleService: role CRUD and role-permission synchronization
- UserRoleService: role assignment to users (replace, add, remove)

Every mutation runs in one transaction: lock the target rows, check
authorization, mutate, append the audit entry. The calling principal is
always passed explicitly as `actor`.
"""
import logging
from typing import Iterable, List, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction

from apps.core.exceptions import (
    AuthorizationError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from apps.core.logging import SecurityLogger
from apps.rbac.hierarchy import HierarchyEvaluator, TenantScope
from apps.rbac.models import (
    LOWEST_AUTHORITY_LEVEL,
    TOP_AUTHORITY_LEVEL,
    AuditLog,
    Permission,
    Role,
    RolePermission,
    User,
    UserRole,
)

logger = logging.getLogger(__name__)


def _deny(actor, operation: str, message: str, **context):
    """Record a rejected privilege change and raise AuthorizationError."""
    SecurityLogger.log_authorization_denied(actor, operation, message, **context)
    raise AuthorizationError(message)


def _unique(names: Iterable[str]) -> List[str]:
    """De-duplicate names while keeping request order."""
    seen = []
    for name in names:
        if name not in seen:
            seen.append(name)
    return seen


class RoleService:
    """
    Service for role management: listing, CRUD and permission sync.
    """

    EDITABLE_FIELDS = ('name', 'hierarchy_level', 'description', 'icon')

    @classmethod
    def list(cls, search: Optional[str] = None):
        """
        Roles ordered by (hierarchy_level, name) with live counts.

        Args:
            search: Optional case-insensitive substring of the role name

        Returns:
            QuerySet of Role annotated with permissions_count and users_count
        """
        return Role.objects.search(search).with_counts().ordered()

    @classmethod
    def get_role(cls, role_id, for_update: bool = False) -> Role:
        """
        Fetch a role by id or raise NotFoundError.
        """
        queryset = Role.objects.select_for_update() if for_update else Role.objects.all()
        try:
            return queryset.get(pk=role_id)
        except (Role.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFoundError('Role not found')

    @staticmethod
    def _validate_level(level) -> int:
        if isinstance(level, bool) or not isinstance(level, int):
            raise ValidationError(
                'The hierarchy level must be an integer.',
                details={'errors': {'hierarchy_level': ['Must be an integer.']}}
            )
        if not TOP_AUTHORITY_LEVEL <= level <= LOWEST_AUTHORITY_LEVEL:
            message = (
                f'The hierarchy level must be between {TOP_AUTHORITY_LEVEL} '
                f'and {LOWEST_AUTHORITY_LEVEL}.'
            )
            raise ValidationError(message, details={'errors': {'hierarchy_level': [message]}})
        return level

    @staticmethod
    def _name_taken() -> ValidationError:
        message = 'The name has already been taken.'
        return ValidationError(message, details={'errors': {'name': [message]}})

    @classmethod
    def _validate_name_available(cls, name: str, exclude_id=None):
        queryset = Role.objects.filter(name=name)
        if exclude_id is not None:
            queryset = queryset.exclude(pk=exclude_id)
        if queryset.exists():
            raise cls._name_taken()

    @classmethod
    def create(cls, actor: User, name: str, hierarchy_level: Optional[int] = None,
               description: Optional[str] = None, icon: Optional[str] = None,
               request=None) -> Role:
        """
        Create a custom (non-system) role.

        The actor must dominate the requested level; a missing level
        defaults to the bottom of the hierarchy.

        Raises:
            ValidationError: Duplicate name or level outside [1, 99]
            AuthorizationError: Actor does not outrank the requested level
        """
        if hierarchy_level is None:
            hierarchy_level = LOWEST_AUTHORITY_LEVEL
        cls._validate_level(hierarchy_level)

        with transaction.atomic():
            cls._validate_name_available(name)

            if not HierarchyEvaluator.can_set_level(actor, hierarchy_level):
                _deny(
                    actor, 'role_create',
                    'You cannot create a role with higher priority than your own role',
                    requested_level=hierarchy_level,
                )

            # A concurrent insert of the same name can slip past the check above
            try:
                with transaction.atomic():
                    role = Role.objects.create(
                        name=name,
                        hierarchy_level=hierarchy_level,
                        description=description,
                        icon=icon,
                        is_system=False,
                    )
            except IntegrityError:
                raise cls._name_taken()

            AuditLog.log_action(
                action=AuditLog.ROLE_CREATED,
                user=actor,
                target_type=AuditLog.TARGET_ROLE,
                target_id=role.id,
                old_values=None,
                new_values=role.snapshot(),
                request=request,
            )

        logger.info(
            "Role created",
            extra={'role_id': str(role.id), 'hierarchy_level': hierarchy_level}
        )
        return role

    @classmethod
    def update(cls, actor: User, role_id, request=None, **fields) -> Role:
        """
        Update name, hierarchy_level, description or icon of a role.

        Editing requires dominating the role's current level; moving the
        role requires dominating the new level as well. System roles keep
        their name whoever asks. A field passed as None keeps its stored
        value.

        Raises:
            NotFoundError: Unknown role
            ForbiddenError: Renaming a system role
            AuthorizationError: Actor does not outrank the current or new level
            ValidationError: Duplicate name or level outside [1, 99]
        """
        changes = {
            key: value for key, value in fields.items()
            if key in cls.EDITABLE_FIELDS and value is not None
        }

        with transaction.atomic():
            role = cls.get_role(role_id, for_update=True)
            renaming = 'name' in changes and changes['name'] != role.name

            if renaming and role.is_system:
                SecurityLogger.log_system_role_protection(actor, role, 'rename')
                raise ForbiddenError('Cannot rename system roles')

            if not HierarchyEvaluator.can_manage_role(actor, role):
                _deny(
                    actor, 'role_update',
                    'You cannot edit a role with higher priority than your own role',
                    role_id=str(role.id),
                )

            if 'hierarchy_level' in changes:
                cls._validate_level(changes['hierarchy_level'])
                if not HierarchyEvaluator.can_set_level(actor, changes['hierarchy_level']):
                    _deny(
                        actor, 'role_update',
                        'You cannot set a hierarchy level higher than your own role',
                        role_id=str(role.id),
                        requested_level=changes['hierarchy_level'],
                    )

            if renaming:
                cls._validate_name_available(changes['name'], exclude_id=role.id)

            old_values = role.snapshot()
            for key, value in changes.items():
                setattr(role, key, value)
            try:
                with transaction.atomic():
                    role.save()
            except IntegrityError:
                raise cls._name_taken()

            AuditLog.log_action(
                action=AuditLog.ROLE_UPDATED,
                user=actor,
                target_type=AuditLog.TARGET_ROLE,
                target_id=role.id,
                old_values=old_values,
                new_values=role.snapshot(),
                request=request,
            )

        return role

    @classmethod
    def delete(cls, actor: User, role_id, request=None) -> None:
        """
        Hard-delete a custom role with its permission and user links.

        System roles are refused before the rank check, so every caller
        gets ForbiddenError for them.

        Raises:
            NotFoundError: Unknown role
            ForbiddenError: The role is a system role
            AuthorizationError: Actor does not outrank the role
        """
        with transaction.atomic():
            role = cls.get_role(role_id, for_update=True)

            if role.is_system:
                SecurityLogger.log_system_role_protection(actor, role, 'delete')
                raise ForbiddenError('Cannot delete system roles')

            if not HierarchyEvaluator.can_manage_role(actor, role):
                _deny(
                    actor, 'role_delete',
                    'You cannot delete a role with higher priority than your own role',
                    role_id=str(role.id),
                )

            target_id = role.id
            old_values = role.snapshot()
            old_values['permissions'] = role.permission_names()
            role.delete()

            AuditLog.log_action(
                action=AuditLog.ROLE_DELETED,
                user=actor,
                target_type=AuditLog.TARGET_ROLE,
                target_id=target_id,
                old_values=old_values,
                new_values=None,
                request=request,
            )

        logger.info("Role deleted", extra={'role_id': str(target_id)})

    @classmethod
    def sync_permissions(cls, actor: User, role_id, permission_names: Iterable[str],
                         request=None) -> Role:
        """
        Replace a role's permission set.

        Non-top actors can only grant permissions they hold themselves.
        Concurrent syncs of the same role resolve last-writer-wins.

        Raises:
            NotFoundError: Unknown role
            AuthorizationError: Actor does not outrank the role, or requests
                permissions outside their own effective set
            ValidationError: Unknown permission names
        """
        names = _unique(permission_names)

        with transaction.atomic():
            role = cls.get_role(role_id, for_update=True)

            if not HierarchyEvaluator.can_manage_role(actor, role):
                _deny(
                    actor, 'permissions_sync',
                    'You cannot modify permissions of a role with higher priority than your own role',
                    role_id=str(role.id),
                )

            permissions = list(Permission.objects.filter(name__in=names))
            known = {permission.name for permission in permissions}
            unknown = [name for name in names if name not in known]
            if unknown:
                message = f"Unknown permissions: {', '.join(unknown)}"
                raise ValidationError(message, details={'errors': {'permissions': [message]}})

            if not HierarchyEvaluator.is_top_authority(actor):
                held = HierarchyEvaluator.effective_permissions(actor)
                unauthorized = [name for name in names if name not in held]
                if unauthorized:
                    _deny(
                        actor, 'permissions_sync',
                        f"You cannot grant permissions you do not possess: {', '.join(unauthorized)}",
                        role_id=str(role.id),
                        unauthorized=unauthorized,
                    )

            old_names = role.permission_names()

            RolePermission.objects.filter(role=role).exclude(permission__in=permissions).delete()
            existing = set(
                RolePermission.objects.filter(role=role).values_list('permission_id', flat=True)
            )
            RolePermission.objects.bulk_create([
                RolePermission(role=role, permission=permission)
                for permission in permissions
                if permission.id not in existing
            ])
            role.save(update_fields=['updated_at'])

            AuditLog.log_action(
                action=AuditLog.PERMISSIONS_SYNCED,
                user=actor,
                target_type=AuditLog.TARGET_ROLE,
                target_id=role.id,
                old_values={'permissions': old_names},
                new_values={'permissions': sorted(known)},
                request=request,
            )

        return role


class UserRoleService:
    """
    Service for assigning roles to users within the caller's tenant and rank.
    """

    @classmethod
    def check_target(cls, actor: User, user_id) -> User:
        """
        Resolve the target user and check the actor may manage them.

        Views call this before validating the request body so that
        unreachable users answer 404/403 regardless of the payload.

        Raises:
            NotFoundError: Unknown user
            AuthorizationError: Target outside the actor's tenant, or
                not strictly below the actor in the hierarchy
        """
        return cls._get_target(actor, user_id, lock=False)

    @staticmethod
    def _get_target(actor: User, user_id, lock: bool = True) -> User:
        queryset = User.objects.select_for_update() if lock else User.objects.all()
        try:
            target = queryset.get(pk=user_id)
        except (User.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFoundError('User not found')

        if not TenantScope.can_access_user(actor, target):
            _deny(
                actor, 'user_roles_manage',
                'You cannot manage users outside your organization/company',
                target_user_id=str(target.id),
            )

        if not TenantScope.can_manage_user(actor, target):
            _deny(
                actor, 'user_roles_manage',
                'You cannot manage roles for a user with higher priority than your own role',
                target_user_id=str(target.id),
            )

        return target

    @staticmethod
    def _get_roles(role_names: Iterable[str]) -> List[Role]:
        names = _unique(role_names)
        roles = {role.name: role for role in Role.objects.filter(name__in=names)}
        missing = [name for name in names if name not in roles]
        if missing:
            raise NotFoundError(f"Role not found: {', '.join(missing)}")
        return [roles[name] for name in names]

    @staticmethod
    def _get_role(role_name: str) -> Role:
        role = Role.objects.by_name(role_name)
        if role is None:
            raise NotFoundError(f'Role not found: {role_name}')
        return role

    @staticmethod
    def _role_state(user: User) -> dict:
        return {'roles': sorted(user.roles.values_list('name', flat=True))}

    @classmethod
    def assign_roles(cls, actor: User, user_id, role_names: Iterable[str], request=None) -> User:
        """
        Replace the user's roles with exactly `role_names`.

        Every requested role and every role being dropped must sit strictly
        below the actor. An empty list removes all roles. Repeating the same
        assignment leaves state unchanged and is still audited.
        """
        with transaction.atomic():
            target = cls._get_target(actor, user_id)
            roles = cls._get_roles(role_names)
            actor_level = HierarchyEvaluator.effective_level(actor)

            unauthorized = [
                role.name for role in roles
                if not HierarchyEvaluator.dominates(actor_level, role.hierarchy_level)
            ]
            if unauthorized:
                _deny(
                    actor, 'user_roles_assign',
                    f"You cannot assign roles with higher priority than your own: {', '.join(unauthorized)}",
                    target_user_id=str(target.id),
                )

            requested_ids = {role.id for role in roles}
            current = list(target.roles.all())
            dropped = [role for role in current if role.id not in requested_ids]
            protected = [
                role.name for role in dropped
                if not HierarchyEvaluator.dominates(actor_level, role.hierarchy_level)
            ]
            if protected:
                _deny(
                    actor, 'user_roles_assign',
                    f"You cannot remove roles with higher priority than your own: {', '.join(protected)}",
                    target_user_id=str(target.id),
                )

            old_values = cls._role_state(target)

            UserRole.objects.filter(user=target, role__in=dropped).delete()
            current_ids = {role.id for role in current}
            UserRole.objects.bulk_create([
                UserRole(user=target, role=role, assigned_by=actor)
                for role in roles
                if role.id not in current_ids
            ])

            AuditLog.log_action(
                action=AuditLog.USER_ROLES_ASSIGNED,
                user=actor,
                target_type=AuditLog.TARGET_USER,
                target_id=target.id,
                old_values=old_values,
                new_values=cls._role_state(target),
                request=request,
            )

        logger.info(
            "User roles assigned",
            extra={'target_user_id': str(target.id), 'roles': [role.name for role in roles]}
        )
        return target

    @classmethod
    def add_role(cls, actor: User, user_id, role_name: str, request=None) -> User:
        """Add a single role to the user, keeping the others."""
        with transaction.atomic():
            target = cls._get_target(actor, user_id)
            role = cls._get_role(role_name)

            if not HierarchyEvaluator.can_manage_role(actor, role):
                _deny(
                    actor, 'user_role_add',
                    'You cannot assign a role with higher priority than your own role',
                    target_user_id=str(target.id),
                    role_name=role.name,
                )

            old_values = cls._role_state(target)
            UserRole.objects.get_or_create(
                user=target,
                role=role,
                defaults={'assigned_by': actor},
            )

            AuditLog.log_action(
                action=AuditLog.USER_ROLE_ADDED,
                user=actor,
                target_type=AuditLog.TARGET_USER,
                target_id=target.id,
                old_values=old_values,
                new_values=cls._role_state(target),
                request=request,
            )

        return target

    @classmethod
    def remove_role(cls, actor: User, user_id, role_name: str, request=None) -> User:
        """Remove a single role from the user. Removing an unheld role is a no-op."""
        with transaction.atomic():
            target = cls._get_target(actor, user_id)
            role = cls._get_role(role_name)

            if not HierarchyEvaluator.can_manage_role(actor, role):
                _deny(
                    actor, 'user_role_remove',
                    'You cannot remove a role with higher priority than your own role',
                    target_user_id=str(target.id),
                    role_name=role.name,
                )

            old_values = cls._role_state(target)
            UserRole.objects.filter(user=target, role=role).delete()

            AuditLog.log_action(
                action=AuditLog.USER_ROLE_REMOVED,
                user=actor,
                target_type=AuditLog.TARGET_USER,
                target_id=target.id,
                old_values=old_values,
                new_values=cls._role_state(target),
                request=request,
            )

        return target
