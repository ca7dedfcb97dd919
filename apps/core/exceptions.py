"""
Domain exceptions and the DRF exception handler.

Every error leaves the API in the same envelope as successful responses:
{"success": false, "data": null, "message": "..."}
"""
import logging
from django.http import Http404
from rest_framework import status
from rest_framework import exceptions as drf_exceptions
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class HRMSException(Exception):
    """Base exception for HRMS domain errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message, details=None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(HRMSException):
    """Raised when input is malformed (duplicate name, out-of-range level, unknown reference)."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class AuthorizationError(HRMSException):
    """Raised when the caller's rank or tenant scope does not cover the target."""
    status_code = status.HTTP_403_FORBIDDEN


class ForbiddenError(HRMSException):
    """Raised when an entity is structurally protected (system roles)."""
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(HRMSException):
    """Raised when a referenced role, permission or user does not exist."""
    status_code = status.HTTP_404_NOT_FOUND


class ConsistencyError(HRMSException):
    """Raised when an audit entry cannot be written for an applied mutation."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def _envelope(message, status_code, request_id=None, errors=None):
    body = {
        'success': False,
        'data': None,
        'message': message,
    }
    if errors:
        body['errors'] = errors
    if request_id:
        body['request_id'] = request_id
    return Response(body, status=status_code)


def custom_exception_handler(exc, context):
    """
    Custom exception handler that logs errors and returns the response envelope.
    """
    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None
    log_extra = {
        'request_id': request_id,
        'path': request.path if request else None,
        'method': request.method if request else None,
        'exception': exc.__class__.__name__,
    }

    if isinstance(exc, HRMSException):
        if exc.status_code >= 500:
            logger.error(f"Domain error: {exc.message}", extra=log_extra, exc_info=True)
            message = 'An unexpected error occurred'
        else:
            logger.info(f"Request rejected: {exc.message}", extra=log_extra)
            message = exc.message
        return _envelope(message, exc.status_code, request_id, exc.details.get('errors'))

    if isinstance(exc, drf_exceptions.ValidationError):
        logger.info("Request validation failed", extra=log_extra)
        return _envelope(
            'The given data was invalid.',
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            request_id,
            exc.detail,
        )

    if isinstance(exc, Http404):
        return _envelope('Resource not found', status.HTTP_404_NOT_FOUND, request_id)

    # Call DRF's default exception handler for the remaining API exceptions
    response = exception_handler(exc, context)

    if response is None:
        logger.error(
            f"API Exception: {exc.__class__.__name__}",
            extra={**log_extra, 'detail': str(exc)},
            exc_info=True
        )
        return _envelope(
            'An unexpected error occurred',
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_id,
        )

    logger.warning(f"API Exception: {exc.__class__.__name__}", extra=log_extra)
    detail = response.data.get('detail') if isinstance(response.data, dict) else None
    wrapped = _envelope(str(detail) if detail else 'Request failed', response.status_code, request_id)
    for header, value in response.items():
        wrapped[header] = value
    return wrapped
