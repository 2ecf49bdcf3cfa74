"""Domain errors raised by services.

Errors carry a category and a message code, never an HTTP status. The API
layer maps categories to status codes in ``src.api.core.exceptions.base``.
"""

from enum import Enum

from src.api.core.messages import MessageCode


class ErrorCategory(str, Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    INSUFFICIENT_CREDIT = "insufficient_credit"
    BAD_REQUEST = "bad_request"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    SERVICE_UNAVAILABLE = "service_unavailable"
    PROVIDER_FAILURE = "provider_failure"
    INTERNAL = "internal"


class DomainError(Exception):
    category: ErrorCategory = ErrorCategory.INTERNAL
    message_code: MessageCode = MessageCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str | None = None,
        details: dict | None = None,
        message_code: MessageCode | None = None,
    ):
        if message_code is not None:
            self.message_code = message_code
        self.details = details or {}
        super().__init__(message or self.message_code.value)

    @property
    def message(self) -> str:
        return str(self)


class UnauthorizedError(DomainError):
    category = ErrorCategory.UNAUTHORIZED
    message_code = MessageCode.AUTH_REQUIRED


class KeyUnusableError(DomainError):
    """Key exists but is locked or past its expiry."""

    category = ErrorCategory.FORBIDDEN
    message_code = MessageCode.KEY_LOCKED


class InsufficientCreditError(DomainError):
    """Reservation was rejected: unknown key, inactive key or low balance."""

    category = ErrorCategory.INSUFFICIENT_CREDIT
    message_code = MessageCode.INSUFFICIENT_CREDITS


class InvalidRequestError(DomainError):
    category = ErrorCategory.BAD_REQUEST
    message_code = MessageCode.BAD_REQUEST


class UnsupportedProviderError(InvalidRequestError):
    message_code = MessageCode.PROVIDER_NOT_SUPPORTED


class InvalidCreditAmountError(InvalidRequestError):
    message_code = MessageCode.INVALID_CREDIT_AMOUNT


class NotFoundError(DomainError):
    category = ErrorCategory.NOT_FOUND
    message_code = MessageCode.RESOURCE_NOT_FOUND


class ConflictError(DomainError):
    category = ErrorCategory.CONFLICT
    message_code = MessageCode.CONFLICT


class PaymentNotPendingError(ConflictError):
    message_code = MessageCode.PAYMENT_ALREADY_SETTLED


class PaymentExpiredError(ConflictError):
    message_code = MessageCode.PAYMENT_EXPIRED


class ProxyAssignedError(InvalidRequestError):
    message_code = MessageCode.PROXY_ASSIGNED


class NoUpstreamKeyError(DomainError):
    category = ErrorCategory.SERVICE_UNAVAILABLE
    message_code = MessageCode.NO_UPSTREAM_KEY


class ProviderFailureError(DomainError):
    category = ErrorCategory.PROVIDER_FAILURE
    message_code = MessageCode.PROVIDER_FAILURE


class SettlementError(DomainError):
    """Settlement backend call failed or returned an unusable payload."""

    category = ErrorCategory.SERVICE_UNAVAILABLE
    message_code = MessageCode.EXTERNAL_SERVICE_ERROR


class RefundFailedError(DomainError):
    """A reserved credit could not be returned; needs operator attention."""

    category = ErrorCategory.INTERNAL
    message_code = MessageCode.REFUND_FAILED
