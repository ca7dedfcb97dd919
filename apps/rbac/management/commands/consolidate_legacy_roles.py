"""
Management command to fold legacy roles into the canonical system roles.

Users holding a legacy role are moved to its canonical counterpart, then
the legacy role and its permission links are deleted. Pairs where either
role is missing are skipped. The change cannot be reversed automatically.
"""
import logging

from django.core.management.base import BaseCommand
from django.db import transaction

from apps.rbac.models import AuditLog, Role, RolePermission, UserRole

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Move users from legacy roles to canonical roles and delete the legacy roles'

    LEGACY_TO_CANONICAL = {
        'administrator': 'admin',
        'hr_officer': 'hr',
        'manager': 'company',
        'staff_member': 'staff',
    }

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report what would change without writing anything',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        if dry_run:
            self.stdout.write(self.style.WARNING('Dry run: no changes will be written'))

        migrated_total = 0
        for legacy_name, canonical_name in self.LEGACY_TO_CANONICAL.items():
            legacy = Role.objects.by_name(legacy_name)
            canonical = Role.objects.by_name(canonical_name)
            if legacy is None or canonical is None:
                self.stdout.write(f'  Skipped: {legacy_name} -> {canonical_name}')
                continue

            assignments = list(UserRole.objects.filter(role=legacy).select_related('user'))
            if dry_run:
                self.stdout.write(
                    f'  Would migrate {len(assignments)} users: {legacy_name} -> {canonical_name}'
                )
                continue

            migrated_total += self._consolidate(legacy, canonical, assignments)
            self.stdout.write(self.style.SUCCESS(f'✓ Deleted legacy role: {legacy_name}'))

        if not dry_run:
            self.stdout.write(self.style.SUCCESS(f'\n✓ Consolidation complete: {migrated_total} users migrated'))

    @transaction.atomic
    def _consolidate(self, legacy, canonical, assignments):
        for assignment in assignments:
            user = assignment.user
            old_roles = sorted(user.roles.values_list('name', flat=True))
            UserRole.objects.get_or_create(user=user, role=canonical)
            assignment.delete()

            AuditLog.log_action(
                action=AuditLog.USER_ROLES_ASSIGNED,
                user=None,
                target_type=AuditLog.TARGET_USER,
                target_id=user.id,
                old_values={'roles': old_roles},
                new_values={'roles': sorted(user.roles.values_list('name', flat=True))},
            )
            logger.info(
                "Migrated user from legacy role",
                extra={'target_user_id': str(user.id), 'legacy_role': legacy.name, 'role_name': canonical.name}
            )

        old_values = legacy.snapshot()
        old_values['permissions'] = legacy.permission_names()
        RolePermission.objects.filter(role=legacy).delete()
        legacy_id = legacy.id
        legacy.delete()

        AuditLog.log_action(
            action=AuditLog.ROLE_DELETED,
            user=None,
            target_type=AuditLog.TARGET_ROLE,
            target_id=legacy_id,
            old_values=old_values,
            new_values=None,
        )
        logger.info("Deleted legacy role", extra={'legacy_role': old_values['name']})
        return len(assignments)
