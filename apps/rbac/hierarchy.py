"""
Authorization primitives: hierarchy ranking and tenant scoping.

All rank and scope decisions for roles and users are made here. Services
call these helpers and raise on a negative answer; nothing else compares
hierarchy levels or tenant identifiers.
"""
from django.db.models import Min

from apps.rbac.models import (
    LOWEST_AUTHORITY_LEVEL,
    TOP_AUTHORITY_LEVEL,
    Permission,
)


class HierarchyEvaluator:
    """
    Rank comparisons between principals, roles and requested levels.

    Lower level = more authority. A principal without roles sits at the
    bottom of the hierarchy (level 99).
    """

    @staticmethod
    def effective_level(principal):
        """Minimum hierarchy_level over the principal's roles, 99 if none."""
        level = principal.roles.aggregate(level=Min('hierarchy_level'))['level']
        return LOWEST_AUTHORITY_LEVEL if level is None else level

    @classmethod
    def is_top_authority(cls, principal):
        return cls.effective_level(principal) == TOP_AUTHORITY_LEVEL

    @staticmethod
    def dominates(principal_level, target_level):
        """
        True if a principal at principal_level may act on target_level.

        Top authority dominates every level, including its own. Anyone else
        only dominates strictly weaker levels.
        """
        if principal_level == TOP_AUTHORITY_LEVEL:
            return True
        return target_level > principal_level

    @staticmethod
    def effective_permissions(principal):
        """Names of direct permissions plus permissions of every assigned role."""
        via_roles = Permission.objects.filter(
            role_permissions__role__user_roles__user=principal
        ).values_list('name', flat=True)
        direct = principal.direct_permissions.values_list('name', flat=True)
        return set(via_roles) | set(direct)

    @classmethod
    def can_manage_role(cls, principal, role):
        return cls.dominates(cls.effective_level(principal), role.hierarchy_level)

    @classmethod
    def can_set_level(cls, principal, level):
        return cls.dominates(cls.effective_level(principal), level)


class TenantScope:
    """
    Organization/company boundaries between a caller and target users.

    Top authority sees every tenant. Other callers are restricted on each
    scope they carry; a null scope on the caller means no restriction.
    """

    @staticmethod
    def can_access_user(caller, target):
        if HierarchyEvaluator.is_top_authority(caller):
            return True

        if caller.org_id is not None and target.org_id != caller.org_id:
            return False
        if caller.company_id is not None and target.company_id != caller.company_id:
            return False
        return True

    @staticmethod
    def can_manage_user(caller, target):
        """
        True if the caller outranks the target user.

        Users without roles can be managed by anyone who can access them.
        """
        caller_level = HierarchyEvaluator.effective_level(caller)
        if caller_level == TOP_AUTHORITY_LEVEL:
            return True
        if not target.roles.exists():
            return True
        return HierarchyEvaluator.effective_level(target) > caller_level

    @staticmethod
    def scope_queryset(caller, queryset):
        """Narrow a User queryset to the caller's organization and company."""
        if HierarchyEvaluator.is_top_authority(caller):
            return queryset
        if caller.org_id is not None:
            queryset = queryset.filter(org_id=caller.org_id)
        if caller.company_id is not None:
            queryset = queryset.filter(company_id=caller.company_id)
        return queryset
