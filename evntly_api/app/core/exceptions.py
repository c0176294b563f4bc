"""
Domain exceptions raised by the service layer.

Every exception carries the HTTP status code that the API layer
should answer with.  Endpoints catch ``ServiceError`` and translate it
into an ``HTTPException``; nothing below the API layer knows about
FastAPI.
"""


class ServiceError(Exception):
    """Base class for all errors raised by services."""

    status_code = 500

    def __init__(self, message: str = "Internal Server Error") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Missing or malformed input.  No state was changed."""

    status_code = 400


class NotFoundError(ServiceError):
    """A referenced entity does not exist."""

    status_code = 404


class RegistrationClosedError(ServiceError):
    """The activity does not accept registrations right now."""

    status_code = 403


class ConflictError(ServiceError):
    """The request conflicts with the current state of a resource."""

    status_code = 409


class CapacityExceededError(ConflictError):
    """Not enough free slots for the requested ticket count."""


class AuthenticationError(ServiceError):
    """Missing or invalid credential."""

    status_code = 401


class SignatureError(AuthenticationError):
    """A payment signature did not match the expected HMAC."""

    status_code = 400


class ConfigurationError(ServiceError):
    """The organizer or the deployment is missing required settings."""

    status_code = 500


class ExternalServiceError(ServiceError):
    """A third-party API call failed."""

    status_code = 502


class PaymentGatewayError(ExternalServiceError):
    """The payment gateway rejected or failed an order request."""


class NotificationError(ExternalServiceError):
    """The mail provider rejected or failed a message."""
