"""
Tests for the Django admin integration: email login backend and read-only audit log.
"""
import pytest
from django.contrib.admin.sites import site
from django.test import RequestFactory

from apps.rbac.backends import EmailAuthBackend
from apps.rbac.models import AuditLog, User


@pytest.mark.django_db
class TestEmailAuthBackend:

    def test_authenticates_with_email(self, make_user):
        user = make_user(email='clerk@example.com')

        authenticated = EmailAuthBackend().authenticate(None, username='clerk@EXAMPLE.com', password='test-password-123')

        assert authenticated == user

    def test_wrong_password(self, make_user):
        make_user(email='clerk@example.com')

        assert EmailAuthBackend().authenticate(None, username='clerk@example.com', password='nope') is None

    def test_unknown_email(self):
        assert EmailAuthBackend().authenticate(None, username='ghost@example.com', password='x') is None

    def test_inactive_user_rejected(self, make_user):
        user = make_user(email='gone@example.com', is_active=False)

        assert EmailAuthBackend().authenticate(None, username='gone@example.com', password='test-password-123') is None
        assert EmailAuthBackend().get_user(user.pk) is None

    def test_get_user(self, staff_user):
        assert EmailAuthBackend().get_user(staff_user.pk) == staff_user


@pytest.mark.django_db
class TestAuditLogAdmin:

    def test_audit_log_is_read_only(self):
        superuser = User.objects.create_superuser(email='root@example.com', password='secret-pass-1')
        request = RequestFactory().get('/admin/rbac/auditlog/')
        request.user = superuser
        model_admin = site._registry[AuditLog]

        assert not model_admin.has_add_permission(request)
        assert not model_admin.has_change_permission(request)
        assert not model_admin.has_delete_permission(request)

    def test_governance_models_registered(self):
        from apps.rbac.models import Permission, Role

        assert Role in site._registry
        assert Permission in site._registry
        assert User in site._registry
