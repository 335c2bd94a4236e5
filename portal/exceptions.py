"""
Error taxonomy for the portal and the unified API exception handler.

Services raise these; views let them propagate and DRF hands them to
:func:`api_exception_handler`, which renders the common
``{'ok': False, 'error': {...}}`` envelope.
"""
from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.exceptions import ValidationError as SerializerValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class ValidationError(APIException):
    """Malformed or missing input; the user can correct it."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input.'
    default_code = 'validation_error'


class InvalidCredentials(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Invalid email or password.'
    default_code = 'invalid_credentials'


class Unauthorized(APIException):
    """The access gate refused the requested capability."""
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have access to this resource.'
    default_code = 'unauthorized'


class NotFoundError(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class InvalidTransition(APIException):
    """A state machine rule was violated; carries the current status."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Transition not allowed.'
    default_code = 'invalid_transition'

    def __init__(self, current_status: str, target_status: str | None = None, detail=None):
        self.current_status = current_status
        self.target_status = target_status
        if detail is None:
            detail = f'cannot move from {current_status} to {target_status}' if target_status else \
                f'not allowed while {current_status}'
        super().__init__(detail)


class IntegrityError(APIException):
    """Stored billing data breaks an invariant; never corrected silently."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Billing records are inconsistent.'
    default_code = 'integrity_error'

    def __init__(self, detail=None, invoice_id=None):
        self.invoice_id = invoice_id
        super().__init__(detail)


def _code_for(exc) -> str:
    if isinstance(exc, SerializerValidationError):
        return ValidationError.default_code
    codes = exc.get_codes() if isinstance(exc, APIException) else None
    if isinstance(codes, str):
        return codes
    return getattr(exc, 'default_code', 'api_error')


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception('unhandled error in %s', context.get('view').__class__.__name__, exc_info=exc)
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': 'Internal server error'}}, status=500)
    # normalize response
    if isinstance(resp.data, dict):
        message = resp.data.get('detail') or resp.data
    else:
        message = resp.data
    error = {'code': _code_for(exc), 'message': message}
    if isinstance(exc, InvalidTransition):
        error['currentStatus'] = exc.current_status
    if isinstance(exc, IntegrityError):
        logger.error('integrity error surfaced to client: %s', exc.detail)
    return Response({'ok': False, 'error': error}, status=resp.status_code, headers=_auth_headers(resp))


def _auth_headers(resp) -> dict:
    headers = {}
    for name in ('WWW-Authenticate', 'Retry-After'):
        if resp.has_header(name):
            headers[name] = resp[name]
    return headers
