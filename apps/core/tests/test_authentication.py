"""
Tests for bearer token authentication and request id middleware.
"""
import logging
import uuid

import jwt
import pytest
from django.conf import settings
from django.http import HttpResponse
from django.test import RequestFactory
from rest_framework import exceptions
from rest_framework.test import APIRequestFactory

from apps.core.authentication import JWTAuthentication
from apps.core.middleware import LoggingFilter, RequestIDMiddleware, get_request_id


def _bearer(payload, key=None):
    token = jwt.encode(payload, key or settings.JWT_SECRET_KEY, algorithm='HS256')
    return APIRequestFactory().get('/api/roles', HTTP_AUTHORIZATION=f'Bearer {token}')


@pytest.mark.django_db
class TestJWTAuthentication:

    def test_no_header_returns_none(self):
        request = APIRequestFactory().get('/api/roles')

        assert JWTAuthentication().authenticate(request) is None

    def test_other_scheme_ignored(self):
        request = APIRequestFactory().get('/api/roles', HTTP_AUTHORIZATION='Basic dXNlcjpwYXNz')

        assert JWTAuthentication().authenticate(request) is None

    def test_valid_token(self, staff_user):
        user, payload = JWTAuthentication().authenticate(_bearer({'user_id': str(staff_user.id)}))

        assert user == staff_user
        assert payload['user_id'] == str(staff_user.id)

    def test_wrong_signature(self, staff_user):
        request = _bearer({'user_id': str(staff_user.id)}, key='x' * 40)

        with pytest.raises(exceptions.AuthenticationFailed, match='Invalid token'):
            JWTAuthentication().authenticate(request)

    def test_missing_claim(self):
        with pytest.raises(exceptions.AuthenticationFailed, match='user_id'):
            JWTAuthentication().authenticate(_bearer({'sub': 'someone'}))

    def test_unknown_user(self):
        with pytest.raises(exceptions.AuthenticationFailed, match='not found'):
            JWTAuthentication().authenticate(_bearer({'user_id': str(uuid.uuid4())}))

    def test_malformed_user_id(self):
        with pytest.raises(exceptions.AuthenticationFailed, match='not found'):
            JWTAuthentication().authenticate(_bearer({'user_id': 'not-a-uuid'}))

    def test_header_with_extra_parts(self):
        request = APIRequestFactory().get('/api/roles', HTTP_AUTHORIZATION='Bearer a b')

        with pytest.raises(exceptions.AuthenticationFailed):
            JWTAuthentication().authenticate(request)


class TestRequestIDMiddleware:

    def _middleware(self):
        return RequestIDMiddleware(lambda request: HttpResponse('ok'))

    def test_generates_request_id(self):
        request = RequestFactory().get('/api/roles')

        response = self._middleware()(request)

        assert uuid.UUID(response['X-Request-ID'])
        assert request.request_id == response['X-Request-ID']

    def test_keeps_incoming_request_id(self):
        request = RequestFactory().get('/api/roles', HTTP_X_REQUEST_ID='upstream-1')

        response = self._middleware()(request)

        assert response['X-Request-ID'] == 'upstream-1'

    def test_thread_local_cleared_after_response(self):
        self._middleware()(RequestFactory().get('/api/roles'))

        assert get_request_id() is None

    def test_logging_filter_fills_request_id(self):
        record = logging.LogRecord('apps', logging.INFO, __file__, 1, 'msg', (), None)
        middleware = RequestIDMiddleware(lambda request: HttpResponse('ok'))
        request = RequestFactory().get('/api/roles', HTTP_X_REQUEST_ID='trace-9')
        middleware.process_request(request)

        try:
            assert LoggingFilter().filter(record)
            assert record.request_id == 'trace-9'
        finally:
            middleware.process_response(request, HttpResponse('ok'))
