"""
Custom DRF authentication classes.
"""
import logging
import jwt
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework.authentication import BaseAuthentication, get_authorization_header
from rest_framework import exceptions

logger = logging.getLogger(__name__)


class JWTAuthentication(BaseAuthentication):
    """
    Resolve the calling principal from an `Authorization: Bearer <token>` header.

    Tokens are issued by the identity service; this class only validates the
    signature and expiry and loads the active User named by the `user_id` claim.
    """

    keyword = 'Bearer'

    def authenticate(self, request):
        """
        Return (user, payload) for a valid bearer token.

        Returns:
            tuple or None: None when no bearer token is present
        """
        auth = get_authorization_header(request).split()
        if not auth or auth[0].lower() != self.keyword.lower().encode():
            return None

        if len(auth) != 2:
            raise exceptions.AuthenticationFailed('Invalid authorization header.')

        try:
            token = auth[1].decode()
        except UnicodeError:
            raise exceptions.AuthenticationFailed('Invalid token encoding.')

        try:
            payload = jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[getattr(settings, 'JWT_ALGORITHM', 'HS256')]
            )
        except jwt.ExpiredSignatureError:
            raise exceptions.AuthenticationFailed('Token has expired.')
        except jwt.InvalidTokenError:
            logger.info(
                "Rejected invalid bearer token",
                extra={'request_id': getattr(request, 'request_id', None)}
            )
            raise exceptions.AuthenticationFailed('Invalid token.')

        user_id = payload.get('user_id')
        if not user_id:
            raise exceptions.AuthenticationFailed('Token has no user_id claim.')

        from apps.rbac.models import User
        try:
            user = User.objects.get(id=user_id, is_active=True)
        except (User.DoesNotExist, DjangoValidationError, ValueError):
            raise exceptions.AuthenticationFailed('User not found or inactive.')

        return (user, payload)

    def authenticate_header(self, request):
        return self.keyword
