"""
Domain exceptions for the parking marketplace.

Each exception is a Django REST framework ``APIException`` so that views can
let it propagate and DRF renders the matching status code.
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class MarketplaceError(APIException):
    """Base class for expected, locally generated marketplace errors."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'The request could not be processed.'
    default_code = 'marketplace_error'


class ValidationError(MarketplaceError):
    """Malformed or out-of-policy input, such as an empty time range."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input.'
    default_code = 'invalid'


class InvalidTransitionError(MarketplaceError):
    """Requested booking or payment status change is not an allowed edge."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'This status transition is not allowed.'
    default_code = 'invalid_transition'


class InvalidStateError(MarketplaceError):
    """Entity is in a state that does not permit the operation."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'The resource is not in a state that permits this operation.'
    default_code = 'invalid_state'


class ForbiddenError(MarketplaceError):
    """Actor is not allowed to perform the operation."""
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'forbidden'


class NotFoundError(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'
    default_code = 'not_found'


class ConflictError(MarketplaceError):
    """Time range overlaps an existing booking or slot, or a duplicate was submitted."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The request conflicts with existing data.'
    default_code = 'conflict'


def exception_handler(exc, context):
    """
    DRF exception handler that also understands model validation errors.

    ``Model.full_clean()`` raises Django's ``ValidationError``; it is converted
    to a 400 response with the field messages. Every marketplace error is
    logged with the request path before being rendered.

    Args:
        exc: Raised exception
        context: DRF handler context (contains the view and request)

    Returns:
        Response or None: None lets DRF treat the exception as unhandled (500)
    """
    if isinstance(exc, DjangoValidationError):
        if hasattr(exc, 'error_dict'):
            detail = exc.message_dict
        else:
            detail = exc.messages
        exc = ValidationError(detail=detail)

    response = drf_exception_handler(exc, context)

    if response is not None and isinstance(exc, MarketplaceError):
        request = context.get('request')
        path = request.path if request is not None else 'unknown'
        user = getattr(request, 'user', None)
        user_id = getattr(user, 'id', None)
        logger.warning(
            f"{exc.__class__.__name__} on {path}: {exc.detail}, "
            f"User ID: {user_id}, Status: {response.status_code}"
        )

    return response
