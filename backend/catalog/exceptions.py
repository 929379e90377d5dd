"""
Domain exceptions and the DRF exception handler.

Provides a consistent error response format across the API:
    {"error": "<message>", "details": ...}
"""
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
from django.db import IntegrityError
import logging

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Base class for domain errors raised by services and counters."""
    status_code = status.HTTP_400_BAD_REQUEST


class ModelNotFound(CatalogError):
    """The referenced 3D model does not exist (or is not visible to the caller)."""
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, model_id):
        self.model_id = model_id
        super().__init__(f"Model {model_id} does not exist")


class PurchaseError(CatalogError):
    """The order cannot be placed or changed."""


class PaymentDeclined(PurchaseError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(self, order):
        self.order = order
        super().__init__('Payment was declined')


class AlreadyFollowing(CatalogError):
    status_code = status.HTTP_409_CONFLICT


def custom_exception_handler(exc, context):
    """
    Custom exception handler that:
    1. Logs all unexpected exceptions
    2. Converts domain and Django exceptions to DRF responses
    3. Provides consistent error format
    """

    # Call DRF's default exception handler first
    response = exception_handler(exc, context)

    # If DRF handled it, enhance the response
    if response is not None:
        if not isinstance(response.data, dict) or 'error' not in response.data:
            response.data = {
                'error': _summary(exc, response.data),
                'details': response.data
            }
        return response

    if isinstance(exc, CatalogError):
        return Response({'error': str(exc)}, status=exc.status_code)

    if isinstance(exc, IntegrityError):
        logger.warning(f"IntegrityError: {exc}")
        return Response(
            {'error': 'Data integrity error. This may be a duplicate entry.'},
            status=status.HTTP_409_CONFLICT
        )

    if isinstance(exc, ValueError):
        return Response(
            {'error': str(exc)},
            status=status.HTTP_400_BAD_REQUEST
        )

    logger.exception(f"Unhandled exception: {exc}")

    return Response(
        {'error': 'An unexpected error occurred.'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )


def _summary(exc, data) -> str:
    detail = getattr(exc, 'detail', None)
    if isinstance(detail, str):
        return str(detail)
    if isinstance(data, dict) and isinstance(data.get('detail'), str):
        return str(data['detail'])
    return 'Invalid request.'
