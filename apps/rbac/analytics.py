"""
Governance analytics over roles and permissions.

Read-only: nothing here mutates state or runs inside a write transaction.
"""
from typing import Dict

from django.conf import settings
from django.db.models import Count

from apps.rbac.models import TOP_AUTHORITY_LEVEL, AuditLog, Permission, Role


def health_score(summary: Dict[str, int]) -> int:
    """
    Score role hygiene from 0 to 100.

    Each unused role costs 5 points, each overprivileged role 10 points,
    and each orphan permission 1 point up to a cap of 10.
    """
    score = (
        100
        - 5 * summary['unused_roles_count']
        - 10 * summary['overprivileged_roles_count']
        - min(summary['orphan_permissions_count'], 10)
    )
    return max(0, score)


class GovernanceService:
    """
    Inventory, health metrics and audit trail for the governance dashboard.
    """

    @staticmethod
    def overprivileged_threshold() -> int:
        return getattr(settings, 'RBAC_OVERPRIVILEGED_THRESHOLD', 50)

    @classmethod
    def inventory(cls):
        """All roles with live user and permission counts, most authoritative first."""
        return Role.objects.with_counts().ordered()

    @classmethod
    def health_metrics(cls) -> dict:
        """
        Compute the role health report.

        Returns:
            dict with unused_roles, overprivileged_roles, orphan_permissions,
            role_distribution and summary
        """
        roles = list(Role.objects.with_counts().ordered())

        unused_roles = [
            role for role in roles
            if not role.is_system and role.users_count == 0
        ]
        threshold = cls.overprivileged_threshold()
        overprivileged_roles = [
            role for role in roles
            if role.hierarchy_level > TOP_AUTHORITY_LEVEL and role.permissions_count > threshold
        ]
        orphan_permissions = list(Permission.objects.orphans().order_by('name'))

        role_distribution = list(
            Role.objects.order_by()
            .values('hierarchy_level')
            .annotate(count=Count('id', distinct=True))
            .order_by('hierarchy_level')
        )
        users_by_level = dict(
            Role.objects.order_by()
            .values('hierarchy_level')
            .annotate(total_users=Count('user_roles'))
            .values_list('hierarchy_level', 'total_users')
        )
        for row in role_distribution:
            row['total_users'] = users_by_level.get(row['hierarchy_level'], 0)

        system_roles = sum(1 for role in roles if role.is_system)
        summary = {
            'total_roles': len(roles),
            'system_roles': system_roles,
            'custom_roles': len(roles) - system_roles,
            'total_permissions': Permission.objects.count(),
            'unused_roles_count': len(unused_roles),
            'overprivileged_roles_count': len(overprivileged_roles),
            'orphan_permissions_count': len(orphan_permissions),
        }
        summary['health_score'] = health_score(summary)

        return {
            'unused_roles': unused_roles,
            'overprivileged_roles': overprivileged_roles,
            'orphan_permissions': orphan_permissions,
            'role_distribution': role_distribution,
            'summary': summary,
        }

    @staticmethod
    def audit_logs():
        """Audit entries newest first, with the acting user preloaded."""
        return AuditLog.objects.select_related('user').recent_first()
