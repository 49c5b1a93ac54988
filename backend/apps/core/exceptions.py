import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class MarketplaceException(APIException):
    """Base exception for the marketplace API"""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'An error occurred in the marketplace'
    default_code = 'marketplace_error'


class ValidationFailed(MarketplaceException):
    """Exception raised for missing or malformed input"""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid request data'
    default_code = 'validation_failed'


class ResourceNotFound(MarketplaceException):
    """Exception raised when an order, shipment or tracking number is unknown"""
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found'
    default_code = 'not_found'


class Conflict(MarketplaceException):
    """Exception raised when a request conflicts with the stored state"""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Request conflicts with the current state'
    default_code = 'conflict'


class ShipmentAlreadyExists(Conflict):
    """Exception raised when an order already has a shipment"""
    default_detail = 'A shipment already exists for this order'
    default_code = 'shipment_exists'


class InvalidShipmentTransition(MarketplaceException):
    """Exception raised when a shipment status change is not allowed"""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Shipment status transition not allowed'
    default_code = 'invalid_transition'

    def __init__(self, current_status=None, new_status=None):
        self.current_status = current_status
        self.new_status = new_status
        detail = None
        if current_status and new_status:
            detail = f'Cannot move shipment from {current_status} to {new_status}'
        super().__init__(detail)


class InvalidSignature(MarketplaceException):
    """Exception raised when a provider callback fails signature verification"""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid callback signature'
    default_code = 'invalid_signature'


class PaymentInitiationFailed(MarketplaceException):
    """Exception raised when a payment provider refuses a payment request"""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Payment provider rejected the request'
    default_code = 'payment_initiation_failed'


def api_exception_handler(exc, context):
    """
    DRF exception handler.

    Known API exceptions keep DRF's handling; anything else is logged and
    surfaced as a generic 500 without internals.
    """
    response = exception_handler(exc, context)
    if response is not None:
        return response

    view = context.get('view')
    logger.error(
        f"Unhandled error in {view.__class__.__name__ if view else 'unknown view'}: {exc}",
        exc_info=exc,
    )
    return Response(
        {'error': 'Internal server error'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )
