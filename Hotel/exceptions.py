import logging

from django.core.exceptions import ObjectDoesNotExist
from django.db import IntegrityError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class NotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found'
    default_code = 'not_found'


class ValidationFailed(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid request'
    default_code = 'invalid'


class Conflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Conflict'
    default_code = 'conflict'


def _first_message(detail):
    if isinstance(detail, dict):
        for key, value in detail.items():
            message = _first_message(value)
            if key in ('non_field_errors', 'detail', 'error'):
                return message
            return f"{key}: {message}"
        return 'Invalid request'
    if isinstance(detail, (list, tuple)):
        return _first_message(detail[0]) if detail else 'Invalid request'
    return str(detail)


def api_exception_handler(exc, context):
    """Map every error to an HTTP status with an ``{"error": ...}`` body."""
    if isinstance(exc, ObjectDoesNotExist) and not isinstance(exc, Http404):
        exc = NotFound()
    elif isinstance(exc, IntegrityError):
        logger.warning('Integrity error in %s: %s', context.get('view').__class__.__name__, exc)
        exc = Conflict('Resource conflicts with an existing record')

    response = exception_handler(exc, context)

    if response is None:
        logger.exception('Unhandled error in %s', context.get('view').__class__.__name__, exc_info=exc)
        return Response(
            {'error': 'Internal server error'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    body = {'error': _first_message(response.data)}
    if isinstance(exc, ValidationError) and isinstance(response.data, dict):
        body['details'] = response.data
    response.data = body
    return response
