"""
Tests for governance analytics: inventory, health metrics and health score.
"""
import pytest
from django.test import override_settings

from apps.rbac.analytics import GovernanceService, health_score
from apps.rbac.models import Permission, UserRole
from apps.rbac.services import RoleService


def _summary(unused=0, overprivileged=0, orphans=0):
    return {
        'unused_roles_count': unused,
        'overprivileged_roles_count': overprivileged,
        'orphan_permissions_count': orphans,
    }


class TestHealthScore:

    def test_perfect_score(self):
        assert health_score(_summary()) == 100

    def test_penalties(self):
        assert health_score(_summary(unused=2, overprivileged=1, orphans=3)) == 100 - 10 - 10 - 3

    def test_orphan_penalty_capped(self):
        assert health_score(_summary(orphans=40)) == 90

    def test_floor_at_zero(self):
        assert health_score(_summary(unused=30)) == 0


@pytest.mark.django_db
class TestInventory:

    def test_inventory_order_and_counts(self, admin_user, hr_role, staff_user, make_role):
        make_role('clerk', level=50, permissions=['view_reports'])

        inventory = list(GovernanceService.inventory())

        assert [role.name for role in inventory] == ['admin', 'hr', 'clerk', 'staff']
        by_name = {role.name: role for role in inventory}
        assert by_name['admin'].users_count == 1
        assert by_name['staff'].users_count == 1
        assert by_name['clerk'].users_count == 0
        assert by_name['clerk'].permissions_count == 1


@pytest.mark.django_db
class TestHealthMetrics:

    def test_unused_custom_role_clears_after_assignment(self, admin_user, make_role, make_user):
        custom = make_role('project lead', level=20)

        report = GovernanceService.health_metrics()
        assert custom in report['unused_roles']

        UserRole.objects.create(user=make_user(), role=custom)

        report = GovernanceService.health_metrics()
        assert custom not in report['unused_roles']

    def test_system_roles_never_unused(self, staff_role):
        report = GovernanceService.health_metrics()

        assert staff_role not in report['unused_roles']

    @override_settings(RBAC_OVERPRIVILEGED_THRESHOLD=2)
    def test_overprivileged_roles(self, make_role):
        broad = make_role('broad', level=20, permissions=['a', 'b', 'c'])
        narrow = make_role('narrow', level=20, permissions=['a', 'b'])
        top = make_role('root', level=1, permissions=['a', 'b', 'c', 'd'])

        report = GovernanceService.health_metrics()

        assert broad in report['overprivileged_roles']
        assert narrow not in report['overprivileged_roles']
        assert top not in report['overprivileged_roles']

    def test_default_threshold(self, make_role):
        names = [f'perm_{i}' for i in range(51)]
        wide = make_role('wide', level=20, permissions=names)
        exact = make_role('exact', level=20, permissions=names[:50])

        report = GovernanceService.health_metrics()

        assert wide in report['overprivileged_roles']
        assert exact not in report['overprivileged_roles']

    def test_orphan_permissions(self, staff_role, make_permission):
        orphan = make_permission('orphaned')

        report = GovernanceService.health_metrics()

        assert report['orphan_permissions'] == [orphan]

    def test_role_distribution(self, admin_user, hr_role, make_role, make_user):
        clerk = make_role('clerk', level=5)
        make_user(roles=[clerk])
        make_user(roles=[clerk, hr_role])

        report = GovernanceService.health_metrics()

        assert report['role_distribution'] == [
            {'hierarchy_level': 1, 'count': 1, 'total_users': 1},
            {'hierarchy_level': 5, 'count': 2, 'total_users': 3},
        ]

    def test_summary(self, admin_user, hr_role, make_role, make_permission):
        make_role('spare', level=30)
        make_permission('orphaned')

        summary = GovernanceService.health_metrics()['summary']

        assert summary['total_roles'] == 3
        assert summary['system_roles'] == 2
        assert summary['custom_roles'] == 1
        assert summary['total_permissions'] == Permission.objects.count()
        assert summary['unused_roles_count'] == 1
        assert summary['overprivileged_roles_count'] == 0
        assert summary['orphan_permissions_count'] == 1
        assert summary['health_score'] == 100 - 5 - 1

    def test_deleted_role_leaves_report(self, admin_user, make_role):
        role = make_role('short lived', level=30)
        RoleService.delete(admin_user, role.id)

        report = GovernanceService.health_metrics()

        assert role.id not in [r.id for r in report['unused_roles']]
