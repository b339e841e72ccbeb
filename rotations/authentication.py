"""
Static bearer-token authentication for the lead webhooks.
"""
import hmac
import logging

from django.conf import settings
from django.contrib.auth.models import AnonymousUser
from rest_framework import exceptions, status
from rest_framework.authentication import BaseAuthentication, get_authorization_header

logger = logging.getLogger(__name__)


class WebhookAuthNotConfigured(exceptions.APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Webhook authentication is not properly configured'
    default_code = 'server_configuration_error'


class WebhookTokenAuthentication(BaseAuthentication):
    """
    Accepts `Authorization: Bearer <token>` where token equals
    settings.WEBHOOK_BEARER_TOKEN.

    Missing or malformed headers answer 401, a wrong token 403. Requests are
    rejected before the view runs, so nothing is stored or audited for them.
    """

    keyword = 'Bearer'

    def authenticate(self, request):
        auth = get_authorization_header(request).split()

        if not auth:
            raise exceptions.AuthenticationFailed('Authorization header is required')

        if auth[0].lower() != self.keyword.lower().encode():
            raise exceptions.AuthenticationFailed('Authorization header must be in format: Bearer <token>')

        if len(auth) == 1:
            raise exceptions.AuthenticationFailed('Bearer token is required')
        if len(auth) > 2:
            raise exceptions.AuthenticationFailed('Bearer token must not contain spaces')

        try:
            token = auth[1].decode()
        except UnicodeError:
            raise exceptions.AuthenticationFailed('Bearer token contains invalid characters')

        expected = getattr(settings, 'WEBHOOK_BEARER_TOKEN', None)
        if not expected:
            logger.error("WEBHOOK_BEARER_TOKEN is not set")
            raise WebhookAuthNotConfigured()

        if not hmac.compare_digest(token.encode(), expected.encode()):
            logger.warning("Webhook request with invalid bearer token rejected")
            raise exceptions.PermissionDenied('The provided Bearer token is not valid')

        return AnonymousUser(), token

    def authenticate_header(self, request):
        return f'{self.keyword} realm="webhook"'
