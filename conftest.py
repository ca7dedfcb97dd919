"""
Pytest configuration and fixtures.
"""
import pytest
from django.conf import settings
import django
from django.core.management import call_command


def pytest_configure(config):
    """Configure Django settings for tests."""
    settings.DATABASES['default'] = {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': False,
    }
    settings.PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
    django.setup()


@pytest.fixture(scope='session')
def django_db_setup(django_db_setup, django_db_blocker):
    """Set up test database with migrations."""
    with django_db_blocker.unblock():
        call_command('migrate', '--run-syncdb', verbosity=0)


@pytest.fixture
def api_client():
    """Return DRF API client."""
    from rest_framework.test import APIClient
    return APIClient()


@pytest.fixture
def make_permission(db):
    """Factory for permissions by name."""
    from apps.rbac.models import Permission

    def _make(name, description=''):
        permission, _ = Permission.objects.get_or_create(
            name=name,
            defaults={'description': description},
        )
        return permission
    return _make


@pytest.fixture
def make_role(db, make_permission):
    """Factory for roles with an optional list of permission names."""
    from apps.rbac.models import Role, RolePermission

    def _make(name, level=99, is_system=False, permissions=(), **extra):
        role = Role.objects.create(
            name=name,
            hierarchy_level=level,
            is_system=is_system,
            **extra
        )
        for permission_name in permissions:
            RolePermission.objects.create(role=role, permission=make_permission(permission_name))
        return role
    return _make


@pytest.fixture
def make_user(db):
    """Factory for users holding the given roles."""
    from apps.rbac.models import User, UserRole

    counter = {'value': 0}

    def _make(roles=(), email=None, name=None, org_id=None, company_id=None, **extra):
        counter['value'] += 1
        user = User.objects.create_user(
            email=email or f"user{counter['value']}@example.com",
            password='test-password-123',
            name=name or f"User {counter['value']}",
            org_id=org_id,
            company_id=company_id,
            **extra
        )
        for role in roles:
            UserRole.objects.create(user=user, role=role)
        return user
    return _make


@pytest.fixture
def admin_role(make_role):
    """System administrator role (level 1)."""
    return make_role('admin', level=1, is_system=True, icon='shield')


@pytest.fixture
def hr_role(make_role):
    """System HR role (level 5) holding a handful of permissions."""
    return make_role(
        'hr', level=5, is_system=True, icon='users',
        permissions=['view_employees', 'manage_employees', 'approve_leave', 'view_reports'],
    )


@pytest.fixture
def company_role(make_role):
    """System company manager role (level 10)."""
    return make_role('company', level=10, is_system=True, icon='building', permissions=['view_employees'])


@pytest.fixture
def staff_role(make_role):
    """System staff role (level 50)."""
    return make_role('staff', level=50, is_system=True, icon='user', permissions=['request_leave'])


@pytest.fixture
def admin_user(make_user, admin_role):
    """Top authority user without tenant scope."""
    return make_user(roles=[admin_role], email='admin@example.com', name='Admin')


@pytest.fixture
def hr_user(make_user, hr_role):
    """HR user scoped to organization 1."""
    return make_user(roles=[hr_role], email='hr@example.com', name='HR Officer', org_id=1)


@pytest.fixture
def staff_user(make_user, staff_role):
    """Staff user in organization 1, company 1."""
    return make_user(roles=[staff_role], email='staff@example.com', name='Staff Member', org_id=1, company_id=1)
