"""
Management command to seed canonical permissions and system roles.

Creates the global Permission records and the four protected system roles
(admin, hr, company, staff) with their permission sets. This command is
idempotent and safe to re-run; it never removes permissions that were
granted to a system role after seeding.
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from apps.rbac.models import Permission, Role, RolePermission


class Command(BaseCommand):
    help = 'Seed canonical permissions and system roles (idempotent)'

    CANONICAL_PERMISSIONS = [
        # Governance
        ('view_roles', 'View roles and their permissions'),
        ('manage_roles', 'Create, update and delete roles'),
        ('view_users', 'View users and their roles'),
        ('manage_users', 'Assign and remove user roles'),
        ('view_audit_logs', 'View the role audit trail'),

        # Organization
        ('view_organization', 'View organization structure'),
        ('manage_organization', 'Manage divisions, job titles and office locations'),

        # Employees
        ('view_employees', 'View employee records'),
        ('manage_employees', 'Create and update employee records'),
        ('view_own_profile', 'View own employee profile'),

        # Attendance
        ('view_attendance', 'View attendance records'),
        ('manage_attendance', 'Manage shifts and attendance corrections'),
        ('clock_in_out', 'Clock in and out'),

        # Leave
        ('view_leave', 'View leave requests'),
        ('approve_leave', 'Approve or reject leave requests'),
        ('request_leave', 'Submit own leave requests'),

        # Payroll
        ('view_payroll', 'View payroll runs and salary slips'),
        ('manage_payroll', 'Run payroll and manage benefits and deductions'),
        ('view_own_payslips', 'View own salary slips'),

        # Recruitment and documents
        ('manage_recruitment', 'Manage jobs and applicants'),
        ('manage_documents', 'Manage document storage settings'),
        ('view_reports', 'View reports and dashboards'),
    ]

    # name -> (hierarchy_level, icon, description, permission names or '*' for all)
    SYSTEM_ROLES = {
        'admin': (1, 'shield', 'Platform administrator with full access', '*'),
        'hr': (5, 'users', 'Human resources officer', [
            'view_roles', 'view_users', 'manage_users', 'view_audit_logs',
            'view_organization', 'view_employees', 'manage_employees', 'view_own_profile',
            'view_attendance', 'manage_attendance', 'clock_in_out',
            'view_leave', 'approve_leave', 'request_leave',
            'view_payroll', 'manage_payroll', 'view_own_payslips',
            'manage_recruitment', 'view_reports',
        ]),
        'company': (10, 'building', 'Company manager', [
            'view_users', 'view_organization', 'view_employees', 'view_own_profile',
            'view_attendance', 'clock_in_out',
            'view_leave', 'approve_leave', 'request_leave',
            'view_own_payslips', 'view_reports',
        ]),
        'staff': (50, 'user', 'Staff member', [
            'view_own_profile', 'clock_in_out', 'request_leave', 'view_own_payslips',
        ]),
    }

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Seeding canonical permissions...')

        created_count = 0
        for name, description in self.CANONICAL_PERMISSIONS:
            permission, created = Permission.objects.get_or_create(
                name=name,
                defaults={'description': description},
            )
            if created:
                created_count += 1
                self.stdout.write(self.style.SUCCESS(f'✓ Created permission: {name}'))
            elif permission.description != description:
                permission.description = description
                permission.save(update_fields=['description', 'updated_at'])
                self.stdout.write(self.style.WARNING(f'↻ Updated permission: {name}'))

        all_names = [name for name, _ in self.CANONICAL_PERMISSIONS]

        self.stdout.write('Seeding system roles...')
        for role_name, (level, icon, description, permission_names) in self.SYSTEM_ROLES.items():
            role, created = Role.objects.get_or_create(
                name=role_name,
                defaults={
                    'hierarchy_level': level,
                    'icon': icon,
                    'description': description,
                    'is_system': True,
                },
            )
            if not created and not role.is_system:
                role.is_system = True
                role.save(update_fields=['is_system', 'updated_at'])

            names = all_names if permission_names == '*' else permission_names
            granted = 0
            for permission in Permission.objects.filter(name__in=names):
                _, link_created = RolePermission.objects.get_or_create(role=role, permission=permission)
                granted += int(link_created)

            status = 'Created' if created else 'Exists'
            self.stdout.write(
                self.style.SUCCESS(
                    f'✓ {status}: {role_name} (level {role.hierarchy_level}, +{granted} permissions)'
                )
            )

        self.stdout.write(
            self.style.SUCCESS(
                f'\n✓ Seeding complete: {created_count} permissions created, '
                f'{Role.objects.system_roles().count()} system roles present'
            )
        )
