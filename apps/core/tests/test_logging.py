"""
Tests for structured logging, PII masking and security events.
"""
import json
import logging
from unittest.mock import patch

from django.test import SimpleTestCase

from apps.core.logging import JSONFormatter, PIIMasker, SecurityLogger


class PIIMaskerTestCase(SimpleTestCase):
    """Test PII masking functionality."""

    def test_mask_email_addresses(self):
        """Test email address masking."""
        text = "Contact user@example.com or admin@test.org"
        masked = PIIMasker.mask_email(text)

        self.assertIn("u***@example.com", masked)
        self.assertNotIn("user@example.com", masked)
        self.assertIn("a****@test.org", masked)

    def test_mask_api_keys(self):
        """Test API key masking."""
        text = 'api_key: "sk_live_abc123" and token="bearer_xyz789"'
        masked = PIIMasker.mask_api_keys(text)

        self.assertIn("api_key: ********", masked)
        self.assertNotIn("sk_live_abc123", masked)
        self.assertNotIn("bearer_xyz789", masked)

    def test_mask_dict_sensitive_fields(self):
        """Test masking sensitive fields in dictionaries."""
        data = {
            'name': 'Jane Doe',
            'email': 'jane@example.com',
            'password': 'hunter2-hunter2',
            'role_name': 'hr',
            'nested': {'access_token': 'abc', 'note': 'mail jane@example.com'},
        }
        masked = PIIMasker.mask_dict(data)

        self.assertEqual(masked['name'], 'Jane Doe')
        self.assertEqual(masked['email'], '********')
        self.assertEqual(masked['password'], '********')
        self.assertEqual(masked['role_name'], 'hr')
        self.assertEqual(masked['nested']['access_token'], '********')
        self.assertEqual(masked['nested']['note'], 'mail j***@example.com')

    def test_non_string_passthrough(self):
        self.assertEqual(PIIMasker.mask_text(42), 42)
        self.assertEqual(PIIMasker.mask_dict(['a']), ['a'])


class JSONFormatterTestCase(SimpleTestCase):
    """Test JSON log formatting."""

    def _record(self, message, **extra):
        record = logging.LogRecord(
            name='apps.rbac', level=logging.INFO, pathname=__file__, lineno=10,
            msg=message, args=(), exc_info=None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_format_includes_context(self):
        record = self._record("Role created", request_id='req-1', role_id='abc')

        output = json.loads(JSONFormatter().format(record))

        self.assertEqual(output['message'], 'Role created')
        self.assertEqual(output['level'], 'INFO')
        self.assertEqual(output['logger'], 'apps.rbac')
        self.assertEqual(output['request_id'], 'req-1')
        self.assertEqual(output['role_id'], 'abc')

    def test_format_masks_message(self):
        record = self._record("Login for jane@example.com")

        output = json.loads(JSONFormatter().format(record))

        self.assertNotIn('jane@example.com', output['message'])

    def test_unserializable_extra_is_stringified(self):
        record = self._record("Event", target=object())

        output = json.loads(JSONFormatter().format(record))

        self.assertIsInstance(output['target'], str)


class SecurityLoggerTestCase(SimpleTestCase):
    """Test security event logging."""

    def test_authorization_denied_logged(self):
        with self.assertLogs('security', level='WARNING') as captured:
            SecurityLogger.log_authorization_denied(None, 'role_create', 'denied', requested_level=3)

        record = captured.records[0]
        self.assertEqual(record.event_type, 'authorization_denied')
        self.assertEqual(record.operation, 'role_create')
        self.assertEqual(record.requested_level, 3)

    @patch('apps.core.logging.sentry_sdk.capture_message')
    def test_audit_write_failure_alerts(self, capture_message):
        with self.assertLogs('security', level='ERROR'):
            SecurityLogger.log_audit_write_failed('role.created', 'Role', None, 'disk full')

        capture_message.assert_called_once()

    @patch('apps.core.logging.sentry_sdk.capture_message')
    def test_routine_events_not_alerted(self, capture_message):
        with self.assertLogs('security', level='WARNING'):
            SecurityLogger.log_event('system_role_protection', role_name='admin')

        capture_message.assert_not_called()
