"""
RBAC models for hierarchical access governance.

Implements:
- User (principal with optional organization/company scope)
- Permission (global canonical permissions)
- Role (named permission bundle with a numeric hierarchy level)
- RolePermission (maps permissions to roles)
- UserRole (maps roles to users)
- AuditLog (append-only trail of privilege changes)
"""
import logging
from django.contrib.auth.hashers import make_password, check_password
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import DatabaseError, models
from django.db.models import Count, Q

from apps.core.exceptions import ConsistencyError
from apps.core.models import BaseModel

logger = logging.getLogger(__name__)

# Lower number = more authority. Level 1 is the top (administrator) rank.
TOP_AUTHORITY_LEVEL = 1
LOWEST_AUTHORITY_LEVEL = 99


class UserManager(models.Manager):
    """
    Manager for User queries.

    Compatible with Django's authentication system and admin interface.
    """

    def active(self):
        """Return only active users."""
        return self.filter(is_active=True)

    def create_user(self, email, password=None, **extra_fields):
        """Create a new user with hashed password."""
        if not email:
            raise ValueError('Email address is required')

        email = self.normalize_email(email)
        extra_fields.setdefault('is_active', True)

        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """Create a Django admin user (required by createsuperuser)."""
        extra_fields.setdefault('is_superuser', True)
        return self.create_user(email, password, **extra_fields)

    @staticmethod
    def normalize_email(email):
        """Lowercase the domain part of the email address."""
        email = email or ''
        try:
            email_name, domain_part = email.strip().rsplit('@', 1)
        except ValueError:
            pass
        else:
            email = email_name + '@' + domain_part.lower()
        return email

    def get_by_natural_key(self, email):
        return self.get(**{self.model.USERNAME_FIELD: email})


class User(BaseModel):
    """
    Principal subject to authorization checks.

    Identity (registration, login, tokens) is owned by the external identity
    service; this model carries the role assignments and tenant scope that
    governance decisions are made on.

    This is the AUTH_USER_MODEL for the project, including Django admin.
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        help_text="User email address (unique globally)"
    )
    name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Display name"
    )
    password_hash = models.CharField(
        max_length=255,
        blank=True,
        help_text="Hashed password",
        db_column='password_hash'
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether user account is active"
    )
    is_superuser = models.BooleanField(
        default=False,
        help_text="Django admin access (independent of the role hierarchy)"
    )

    # Tenant scope
    org_id = models.PositiveIntegerField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Organization scope identifier (null = no organization restriction)"
    )
    company_id = models.PositiveIntegerField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Company scope identifier (null = no company restriction)"
    )

    roles = models.ManyToManyField(
        'Role',
        through='UserRole',
        through_fields=('user', 'role'),
        related_name='users',
        blank=True,
    )
    direct_permissions = models.ManyToManyField(
        'Permission',
        related_name='direct_users',
        blank=True,
        help_text="Permissions granted to the user outside of any role"
    )

    USERNAME_FIELD = 'email'
    EMAIL_FIELD = 'email'
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        db_table = 'users'
        ordering = ['name', 'email']
        indexes = [
            models.Index(fields=['org_id', 'company_id']),
        ]

    def __str__(self):
        return self.email

    @property
    def password(self):
        """Alias for password_hash (Django admin expects a 'password' field)."""
        return self.password_hash

    @password.setter
    def password(self, value):
        self.password_hash = value

    def check_password(self, raw_password):
        """Check if provided password matches stored hash."""
        return check_password(raw_password, self.password_hash)

    def set_password(self, raw_password):
        """Set user password (hashes automatically)."""
        self.password_hash = make_password(raw_password)

    def get_full_name(self):
        return self.name or self.email

    def get_short_name(self):
        return self.get_full_name()

    def get_username(self):
        return self.email

    def natural_key(self):
        return (self.email,)

    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False

    @property
    def is_staff(self):
        """Django admin access follows is_superuser."""
        return self.is_superuser

    def has_perm(self, perm, obj=None):
        return self.is_active and self.is_superuser

    def has_perms(self, perm_list, obj=None):
        return self.is_active and self.is_superuser

    def has_module_perms(self, app_label):
        return self.is_active and self.is_superuser

    def role_names(self):
        """Names of assigned roles, most authoritative first."""
        return list(
            self.roles.order_by('hierarchy_level', 'name').values_list('name', flat=True)
        )

    def primary_role(self):
        """The assigned role with the lowest hierarchy level, or None."""
        return self.roles.order_by('hierarchy_level', 'name').first()


class PermissionManager(models.Manager):
    """Manager for Permission queries."""

    def by_name(self, name):
        """Find permission by name."""
        return self.filter(name=name).first()

    def orphans(self):
        """Permissions not owned by any role."""
        return self.annotate(
            roles_count=Count('role_permissions', distinct=True)
        ).filter(roles_count=0)


class Permission(BaseModel):
    """
    Global permission definitions.

    Canonical permissions are seeded during deployment (`seed_rbac`).
    """

    name = models.CharField(
        max_length=255,
        unique=True,
        db_index=True,
        help_text="Unique permission name (e.g., 'view_reports')"
    )
    description = models.TextField(
        blank=True,
        help_text="What this permission grants"
    )

    objects = PermissionManager()

    class Meta:
        db_table = 'permissions'
        ordering = ['name']

    def __str__(self):
        return self.name


class RoleQuerySet(models.QuerySet):
    """QuerySet helpers for role listings."""

    def ordered(self):
        """Most authoritative first, ties broken alphabetically."""
        return self.order_by('hierarchy_level', 'name')

    def with_counts(self):
        """Annotate live permissions_count and users_count."""
        return self.annotate(
            permissions_count=Count('role_permissions', distinct=True),
            users_count=Count('user_roles', distinct=True),
        )

    def search(self, term):
        if not term:
            return self
        return self.filter(name__icontains=term)


class RoleManager(models.Manager.from_queryset(RoleQuerySet)):
    """Manager for Role queries."""

    def by_name(self, name):
        """Find role by name."""
        return self.filter(name=name).first()

    def system_roles(self):
        return self.filter(is_system=True)

    def custom_roles(self):
        return self.filter(is_system=False)


class Role(BaseModel):
    """
    Named bundle of permissions with a position in the authority hierarchy.

    `hierarchy_level` runs from 1 (administrator) to 99 (least authority).
    System roles are seeded and can never be renamed or deleted.
    """

    name = models.CharField(
        max_length=255,
        unique=True,
        help_text="Role name (e.g., 'admin', 'hr')"
    )
    guard_name = models.CharField(
        max_length=50,
        default='web',
        help_text="Context tag the role applies to"
    )
    hierarchy_level = models.PositiveSmallIntegerField(
        default=LOWEST_AUTHORITY_LEVEL,
        validators=[
            MinValueValidator(TOP_AUTHORITY_LEVEL),
            MaxValueValidator(LOWEST_AUTHORITY_LEVEL),
        ],
        db_index=True,
        help_text="Authority rank: 1 = highest, 99 = lowest"
    )
    is_system = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether this is a protected system-seeded role"
    )
    description = models.TextField(
        null=True,
        blank=True,
        help_text="Role description"
    )
    icon = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Icon identifier shown by the frontends"
    )

    permissions = models.ManyToManyField(
        Permission,
        through='RolePermission',
        related_name='roles',
        blank=True,
    )

    objects = RoleManager()

    class Meta:
        db_table = 'roles'
        ordering = ['hierarchy_level', 'name']
        constraints = [
            models.CheckConstraint(
                condition=Q(hierarchy_level__gte=TOP_AUTHORITY_LEVEL) & Q(hierarchy_level__lte=LOWEST_AUTHORITY_LEVEL),
                name='role_hierarchy_level_range',
            ),
        ]

    def __str__(self):
        return f"{self.name} (level {self.hierarchy_level})"

    def permission_names(self):
        """Sorted names of the permissions granted by this role."""
        return sorted(
            Permission.objects.filter(role_permissions__role=self).values_list('name', flat=True)
        )

    def snapshot(self):
        """JSON-serializable state recorded in the audit trail."""
        return {
            'id': str(self.id),
            'name': self.name,
            'guard_name': self.guard_name,
            'hierarchy_level': self.hierarchy_level,
            'is_system': self.is_system,
            'description': self.description,
            'icon': self.icon,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class RolePermission(BaseModel):
    """
    Maps permissions to roles.
    """

    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='role_permissions',
        help_text="Role that grants this permission"
    )
    permission = models.ForeignKey(
        Permission,
        on_delete=models.CASCADE,
        related_name='role_permissions',
        help_text="Permission being granted"
    )

    class Meta:
        db_table = 'role_permissions'
        unique_together = [('role', 'permission')]
        ordering = ['role', 'permission']

    def __str__(self):
        return f"{self.role.name} -> {self.permission.name}"


class UserRole(BaseModel):
    """
    Maps roles to users. A user can hold multiple roles.
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='user_roles',
        help_text="User who holds this role"
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='user_roles',
        help_text="Role assigned to the user"
    )
    assigned_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='role_assignments_made',
        help_text="User who assigned this role"
    )

    class Meta:
        db_table = 'user_roles'
        unique_together = [('user', 'role')]
        ordering = ['user', 'role']

    def __str__(self):
        return f"{self.user.email} -> {self.role.name}"


class AuditLogQuerySet(models.QuerySet):

    def recent_first(self):
        return self.order_by('-created_at')

    def update(self, **kwargs):
        raise TypeError("Audit log entries are immutable")

    def delete(self):
        raise TypeError("Audit log entries cannot be deleted")


class AuditLogManager(models.Manager.from_queryset(AuditLogQuerySet)):
    """Manager for AuditLog queries."""

    def by_action(self, action):
        return self.filter(action=action)

    def by_target(self, target_type, target_id=None):
        """Get audit logs for a target type and optionally a target ID."""
        qs = self.filter(target_type=target_type)
        if target_id:
            qs = qs.filter(target_id=target_id)
        return qs


class AuditLog(BaseModel):
    """
    Append-only trail of privilege-affecting mutations.

    One entry is written in the same transaction as each role, permission
    or role-assignment change. Entries are never updated or deleted.
    """

    ROLE_CREATED = 'role_created'
    ROLE_UPDATED = 'role_updated'
    ROLE_DELETED = 'role_deleted'
    PERMISSIONS_SYNCED = 'permissions_synced'
    USER_ROLES_ASSIGNED = 'user_roles_assigned'
    USER_ROLE_ADDED = 'user_role_added'
    USER_ROLE_REMOVED = 'user_role_removed'

    ACTION_CHOICES = [
        (ROLE_CREATED, 'Role created'),
        (ROLE_UPDATED, 'Role updated'),
        (ROLE_DELETED, 'Role deleted'),
        (PERMISSIONS_SYNCED, 'Permissions synced'),
        (USER_ROLES_ASSIGNED, 'User roles assigned'),
        (USER_ROLE_ADDED, 'User role added'),
        (USER_ROLE_REMOVED, 'User role removed'),
    ]

    TARGET_ROLE = 'Role'
    TARGET_USER = 'User'

    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs',
        db_index=True,
        help_text="User who performed the action (null for system actions)"
    )
    action = models.CharField(
        max_length=50,
        choices=ACTION_CHOICES,
        db_index=True,
        help_text="Action performed"
    )
    target_type = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Type of target entity ('Role' or 'User')"
    )
    target_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="ID of target entity"
    )

    # Change Tracking
    old_values = models.JSONField(
        null=True,
        blank=True,
        help_text="State before the change (null for creation)"
    )
    new_values = models.JSONField(
        null=True,
        blank=True,
        help_text="State after the change (null for deletion)"
    )

    # Request Context
    ip_address = models.GenericIPAddressField(
        null=True,
        blank=True,
        help_text="IP address of the request"
    )
    user_agent = models.TextField(
        blank=True,
        help_text="User agent string"
    )
    request_id = models.CharField(
        max_length=64,
        blank=True,
        db_index=True,
        help_text="Request ID for tracing"
    )

    objects = AuditLogManager()

    class Meta:
        db_table = 'role_audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['target_type', 'target_id']),
            models.Index(fields=['action', 'created_at']),
        ]

    def __str__(self):
        user_str = self.user.email if self.user else 'System'
        return f"{user_str} - {self.action} - {self.target_type}:{self.target_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise TypeError("Audit log entries are immutable")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise TypeError("Audit log entries cannot be deleted")

    @classmethod
    def log_action(cls, action, user=None, target_type=None, target_id=None,
                   old_values=None, new_values=None, request=None):
        """
        Append an audit entry for a mutation.

        Must be called inside the mutation's transaction. A failed write
        raises ConsistencyError so the mutation rolls back with it.

        Args:
            action: One of ACTION_CHOICES
            user: User performing the action
            target_type: 'Role' or 'User'
            target_id: ID of target entity
            old_values: Snapshot before the change (None for creation)
            new_values: Snapshot after the change (None for deletion)
            request: Django/DRF request (for IP, user agent, request ID)

        Returns:
            AuditLog instance
        """
        log_data = {
            'action': action,
            'user': user,
            'target_type': target_type,
            'target_id': target_id,
            'old_values': old_values,
            'new_values': new_values,
        }

        if request is not None:
            log_data['ip_address'] = cls._get_client_ip(request)
            log_data['user_agent'] = request.META.get('HTTP_USER_AGENT', '')
            log_data['request_id'] = getattr(request, 'request_id', None) or ''

        try:
            return cls.objects.create(**log_data)
        except DatabaseError as e:
            from apps.core.logging import SecurityLogger
            SecurityLogger.log_audit_write_failed(action, target_type, target_id, str(e))
            raise ConsistencyError(
                'Audit entry could not be written; the change was not applied',
                details={'action': action}
            ) from e

    @staticmethod
    def _get_client_ip(request):
        """Extract client IP from request."""
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            return x_forwarded_for.split(',')[0].strip()
        return request.META.get('REMOTE_ADDR')
