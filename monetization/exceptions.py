from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError


class MonetizationError(APIException):
    """Base class for checkout errors rendered by the API exception handler."""
    extra_data = None


class ConfigurationError(MonetizationError):
    """
    The payment processor is not configured. Fatal: clients should hide
    monetization entirely rather than retry.
    """
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Payments are not available right now.'
    default_code = 'monetization_disabled'
    extra_data = {'monetization_enabled': False}


class CheckoutInitiationFailed(MonetizationError):
    """
    The processor could not be reached or refused the request. Nothing was
    persisted, so the client can simply try again.
    """
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Could not start checkout. Please try again.'
    default_code = 'checkout_initiation_failed'
    extra_data = {'retryable': True}


class ChargeFinalizationAmbiguous(MonetizationError):
    """
    A checkout came back without enough information to identify the charge.
    The amount and creator are never guessed.
    """
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'We could not confirm this payment yet.'
    default_code = 'charge_finalization_ambiguous'
    extra_data = {'inconclusive': True}


class ProcessorUnavailable(MonetizationError):
    """
    The processor could not be asked about an existing checkout. The charge
    keeps its current state and finalize can be called again.
    """
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Could not confirm the payment with the processor. Please refresh.'
    default_code = 'processor_unavailable'
    extra_data = {'retryable': True}


class InvalidCharge(ValidationError):
    """Rejected locally, before any call to the processor."""
    default_detail = 'Invalid charge.'
    default_code = 'invalid_charge'
