"""
Tests for the seed_rbac and consolidate_legacy_roles management commands.
"""
from io import StringIO

import pytest
from django.core.management import call_command

from apps.rbac.management.commands.seed_rbac import Command as SeedCommand
from apps.rbac.models import AuditLog, Permission, Role, UserRole


def _run(*args):
    out = StringIO()
    call_command(*args, stdout=out)
    return out.getvalue()


@pytest.mark.django_db
class TestSeedRbac:

    def test_seeds_permissions_and_system_roles(self):
        _run('seed_rbac')

        assert Permission.objects.count() == len(SeedCommand.CANONICAL_PERMISSIONS)
        levels = dict(Role.objects.system_roles().values_list('name', 'hierarchy_level'))
        assert levels == {'admin': 1, 'hr': 5, 'company': 10, 'staff': 50}

    def test_admin_holds_every_permission(self):
        _run('seed_rbac')

        admin = Role.objects.get(name='admin')
        assert admin.permissions.count() == Permission.objects.count()
        assert Role.objects.get(name='staff').permission_names() == [
            'clock_in_out', 'request_leave', 'view_own_payslips', 'view_own_profile',
        ]

    def test_idempotent(self):
        _run('seed_rbac')
        output = _run('seed_rbac')

        assert 'Exists: admin' in output
        assert '0 permissions created' in output
        assert Role.objects.count() == 4
        assert Permission.objects.count() == len(SeedCommand.CANONICAL_PERMISSIONS)

    def test_keeps_grants_added_after_seeding(self, make_permission):
        _run('seed_rbac')
        staff = Role.objects.get(name='staff')
        extra = make_permission('view_reports')
        staff.permissions.add(extra)

        _run('seed_rbac')

        assert 'view_reports' in staff.permission_names()

    def test_marks_existing_role_as_system(self, make_role):
        make_role('hr', level=5)

        _run('seed_rbac')

        assert Role.objects.get(name='hr').is_system


@pytest.mark.django_db
class TestConsolidateLegacyRoles:

    @pytest.fixture
    def legacy_setup(self, make_role, make_user, hr_role):
        legacy = make_role('hr_officer', level=6, permissions=['view_employees'])
        users = [make_user(roles=[legacy]), make_user(roles=[legacy, hr_role])]
        return legacy, users

    def test_moves_users_and_deletes_legacy_role(self, legacy_setup, hr_role):
        legacy, users = legacy_setup

        output = _run('consolidate_legacy_roles')

        assert 'Deleted legacy role: hr_officer' in output
        assert 'Skipped: administrator -> admin' in output
        assert not Role.objects.filter(name='hr_officer').exists()
        for user in users:
            assert list(UserRole.objects.filter(user=user).values_list('role__name', flat=True)) == ['hr']

    def test_audits_every_change(self, legacy_setup):
        legacy, users = legacy_setup

        _run('consolidate_legacy_roles')

        assigned = AuditLog.objects.filter(action=AuditLog.USER_ROLES_ASSIGNED)
        assert assigned.count() == 2
        assert all(entry.user is None for entry in assigned)
        deleted = AuditLog.objects.get(action=AuditLog.ROLE_DELETED)
        assert deleted.target_id == legacy.id
        assert deleted.old_values['permissions'] == ['view_employees']

    def test_dry_run_changes_nothing(self, legacy_setup):
        output = _run('consolidate_legacy_roles', '--dry-run')

        assert 'Would migrate 2 users: hr_officer -> hr' in output
        assert Role.objects.filter(name='hr_officer').exists()
        assert AuditLog.objects.count() == 0
