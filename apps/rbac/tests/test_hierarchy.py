"""
Tests for hierarchy ranking and tenant scoping.
"""
import pytest

from apps.rbac.hierarchy import HierarchyEvaluator, TenantScope
from apps.rbac.models import User


class TestDominates:
    """The single rank comparison used for roles, users and requested levels."""

    def test_top_authority_dominates_every_level(self):
        assert HierarchyEvaluator.dominates(1, 1)
        assert HierarchyEvaluator.dominates(1, 2)
        assert HierarchyEvaluator.dominates(1, 99)

    def test_strictly_weaker_level_is_dominated(self):
        assert HierarchyEvaluator.dominates(5, 6)
        assert HierarchyEvaluator.dominates(5, 99)

    def test_equal_level_is_not_dominated(self):
        assert not HierarchyEvaluator.dominates(5, 5)
        assert not HierarchyEvaluator.dominates(99, 99)

    def test_stronger_level_is_not_dominated(self):
        assert not HierarchyEvaluator.dominates(5, 1)
        assert not HierarchyEvaluator.dominates(10, 5)


@pytest.mark.django_db
class TestEffectiveLevel:

    def test_no_roles_is_lowest(self, make_user):
        assert HierarchyEvaluator.effective_level(make_user()) == 99

    def test_minimum_over_roles(self, make_user, hr_role, staff_role):
        user = make_user(roles=[staff_role, hr_role])

        assert HierarchyEvaluator.effective_level(user) == 5

    def test_is_top_authority(self, admin_user, hr_user):
        assert HierarchyEvaluator.is_top_authority(admin_user)
        assert not HierarchyEvaluator.is_top_authority(hr_user)

    def test_can_manage_role(self, hr_user, admin_role, hr_role, staff_role):
        assert HierarchyEvaluator.can_manage_role(hr_user, staff_role)
        assert not HierarchyEvaluator.can_manage_role(hr_user, hr_role)
        assert not HierarchyEvaluator.can_manage_role(hr_user, admin_role)

    def test_can_set_level(self, hr_user, admin_user):
        assert HierarchyEvaluator.can_set_level(hr_user, 6)
        assert not HierarchyEvaluator.can_set_level(hr_user, 5)
        assert HierarchyEvaluator.can_set_level(admin_user, 1)


@pytest.mark.django_db
class TestEffectivePermissions:

    def test_union_of_roles_and_direct(self, make_user, make_role, make_permission):
        reviewer = make_role('reviewer', level=30, permissions=['view_reports', 'view_leave'])
        clerk = make_role('clerk', level=40, permissions=['view_leave', 'clock_in_out'])
        user = make_user(roles=[reviewer, clerk])
        user.direct_permissions.add(make_permission('manage_documents'))

        assert HierarchyEvaluator.effective_permissions(user) == {
            'view_reports', 'view_leave', 'clock_in_out', 'manage_documents',
        }

    def test_no_roles_no_permissions(self, make_user):
        assert HierarchyEvaluator.effective_permissions(make_user()) == set()

    def test_other_users_roles_not_included(self, make_user, hr_role, staff_role):
        make_user(roles=[hr_role])
        user = make_user(roles=[staff_role])

        assert HierarchyEvaluator.effective_permissions(user) == {'request_leave'}


@pytest.mark.django_db
class TestTenantScope:

    def test_top_authority_accesses_any_tenant(self, admin_user, make_user):
        target = make_user(org_id=7, company_id=3)

        assert TenantScope.can_access_user(admin_user, target)

    def test_same_org_accessible(self, hr_user, make_user):
        assert TenantScope.can_access_user(hr_user, make_user(org_id=1, company_id=9))

    def test_other_org_denied(self, hr_user, make_user):
        assert not TenantScope.can_access_user(hr_user, make_user(org_id=2))

    def test_company_restriction(self, make_user, company_role):
        manager = make_user(roles=[company_role], org_id=1, company_id=4)

        assert TenantScope.can_access_user(manager, make_user(org_id=1, company_id=4))
        assert not TenantScope.can_access_user(manager, make_user(org_id=1, company_id=5))
        assert not TenantScope.can_access_user(manager, make_user(org_id=1))

    def test_unscoped_caller_unrestricted(self, make_user, company_role):
        caller = make_user(roles=[company_role])

        assert TenantScope.can_access_user(caller, make_user(org_id=3, company_id=8))

    def test_can_manage_user_without_roles(self, staff_user, make_user):
        assert TenantScope.can_manage_user(staff_user, make_user())

    def test_can_manage_weaker_user_only(self, hr_user, make_user, staff_role, hr_role, admin_role):
        assert TenantScope.can_manage_user(hr_user, make_user(roles=[staff_role]))
        assert not TenantScope.can_manage_user(hr_user, make_user(roles=[hr_role]))
        assert not TenantScope.can_manage_user(hr_user, make_user(roles=[admin_role]))

    def test_cannot_manage_self_below_top(self, hr_user):
        assert not TenantScope.can_manage_user(hr_user, hr_user)

    def test_top_authority_manages_peers(self, admin_user, make_user, admin_role):
        assert TenantScope.can_manage_user(admin_user, make_user(roles=[admin_role]))

    def test_scope_queryset(self, hr_user, admin_user, make_user):
        inside = make_user(org_id=1)
        outside = make_user(org_id=2)

        scoped = set(TenantScope.scope_queryset(hr_user, User.objects.all()))
        unscoped = set(TenantScope.scope_queryset(admin_user, User.objects.all()))

        assert inside in scoped
        assert hr_user in scoped
        assert outside not in scoped
        assert admin_user not in scoped
        assert {inside, outside, hr_user, admin_user} <= unscoped
