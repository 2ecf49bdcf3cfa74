"""Centralized message codes and default messages for API responses."""

from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel


class MessageCode(str, Enum):
    """Centralized message codes for API responses."""

    # Success codes
    SUCCESS = "SUCCESS"
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"

    # Authentication & Authorization
    AUTH_REQUIRED = "AUTH_REQUIRED"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INVALID_API_KEY = "INVALID_API_KEY"
    ADMIN_TOKEN_INVALID = "ADMIN_TOKEN_INVALID"

    # Credit ledger
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    KEY_CREATED = "KEY_CREATED"
    KEY_NOT_FOUND = "KEY_NOT_FOUND"
    KEY_LOCKED = "KEY_LOCKED"
    KEY_EXPIRED = "KEY_EXPIRED"
    KEY_VALID = "KEY_VALID"
    CREDIT_USED = "CREDIT_USED"
    CREDIT_ADJUSTED = "CREDIT_ADJUSTED"

    # AI gateway
    GENERATION_COMPLETED = "GENERATION_COMPLETED"
    PROVIDER_NOT_SUPPORTED = "PROVIDER_NOT_SUPPORTED"
    PROVIDER_NOT_FOUND = "PROVIDER_NOT_FOUND"
    PROVIDER_KEY_TESTED = "PROVIDER_KEY_TESTED"
    NO_UPSTREAM_KEY = "NO_UPSTREAM_KEY"
    PROVIDER_FAILURE = "PROVIDER_FAILURE"
    REFUND_FAILED = "REFUND_FAILED"

    # Proxy pool
    PROXY_CREATED = "PROXY_CREATED"
    PROXY_NOT_FOUND = "PROXY_NOT_FOUND"
    PROXY_ASSIGNED = "PROXY_ASSIGNED"
    PROXY_ALREADY_EXISTS = "PROXY_ALREADY_EXISTS"
    PROXY_BATCH_TESTED = "PROXY_BATCH_TESTED"

    # Payments
    PAYMENT_CREATED = "PAYMENT_CREATED"
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"
    PAYMENT_ALREADY_SETTLED = "PAYMENT_ALREADY_SETTLED"
    PAYMENT_EXPIRED = "PAYMENT_EXPIRED"
    INVALID_CREDIT_AMOUNT = "INVALID_CREDIT_AMOUNT"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    # Service Errors
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    BAD_REQUEST = "BAD_REQUEST"
    CONFLICT = "CONFLICT"
    NOT_FOUND = "NOT_FOUND"


# Default messages for each message code
DEFAULT_MESSAGES = {
    # Success messages
    MessageCode.SUCCESS: "Operation completed successfully",
    MessageCode.CREATED: "Resource created successfully",
    MessageCode.UPDATED: "Resource updated successfully",
    MessageCode.DELETED: "Resource deleted successfully",
    # Authentication & Authorization
    MessageCode.AUTH_REQUIRED: "Authentication required",
    MessageCode.UNAUTHORIZED: "Authentication required",
    MessageCode.FORBIDDEN: "Access denied",
    MessageCode.INVALID_API_KEY: "Invalid or expired key",
    MessageCode.ADMIN_TOKEN_INVALID: "Invalid admin token",
    # Credit ledger
    MessageCode.INSUFFICIENT_CREDITS: "Insufficient credits or inactive key",
    MessageCode.KEY_CREATED: "Key created successfully",
    MessageCode.KEY_NOT_FOUND: "Key not found",
    MessageCode.KEY_LOCKED: "Key is locked",
    MessageCode.KEY_EXPIRED: "Key has expired",
    MessageCode.KEY_VALID: "Key is valid",
    MessageCode.CREDIT_USED: "Credit deducted successfully",
    MessageCode.CREDIT_ADJUSTED: "Credit adjusted successfully",
    # AI gateway
    MessageCode.GENERATION_COMPLETED: "Generation completed",
    MessageCode.PROVIDER_NOT_SUPPORTED: "Provider is not supported",
    MessageCode.PROVIDER_NOT_FOUND: "Provider not found",
    MessageCode.PROVIDER_KEY_TESTED: "Provider key test completed",
    MessageCode.NO_UPSTREAM_KEY: "No upstream API key available for provider",
    MessageCode.PROVIDER_FAILURE: "Upstream provider request failed",
    MessageCode.REFUND_FAILED: "Credit refund could not be recorded",
    # Proxy pool
    MessageCode.PROXY_CREATED: "Proxy created successfully",
    MessageCode.PROXY_NOT_FOUND: "Proxy not found",
    MessageCode.PROXY_ASSIGNED: "Proxy is assigned to an API key",
    MessageCode.PROXY_ALREADY_EXISTS: "Proxy with this host and port already exists",
    MessageCode.PROXY_BATCH_TESTED: "Proxy batch test completed",
    # Payments
    MessageCode.PAYMENT_CREATED: "Payment created successfully",
    MessageCode.PAYMENT_COMPLETED: "Payment completed successfully",
    MessageCode.PAYMENT_NOT_FOUND: "Payment not found",
    MessageCode.PAYMENT_ALREADY_SETTLED: "Payment is not pending",
    MessageCode.PAYMENT_EXPIRED: "Payment has expired",
    MessageCode.INVALID_CREDIT_AMOUNT: "Invalid credit amount",
    # Validation errors
    MessageCode.VALIDATION_ERROR: "Validation failed",
    MessageCode.INVALID_INPUT: "Invalid input provided",
    # Service Errors
    MessageCode.EXTERNAL_SERVICE_ERROR: "External service error",
    MessageCode.SERVICE_UNAVAILABLE: "Service temporarily unavailable",
    # Generic errors
    MessageCode.INTERNAL_ERROR: "Internal server error",
    MessageCode.INTERNAL_SERVER_ERROR: "Internal server error",
    MessageCode.RESOURCE_NOT_FOUND: "Resource not found",
    MessageCode.BAD_REQUEST: "Bad request",
    MessageCode.CONFLICT: "Request conflicts with current state",
    MessageCode.NOT_FOUND: "Resource not found",
}

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    """Base API response model with consistent structure and proper typing."""

    message_code: MessageCode
    message: str
    data: T | None = None

    @classmethod
    def success(
        cls,
        message_code: MessageCode = MessageCode.SUCCESS,
        message: str | None = None,
        data: T | None = None,
    ) -> "APIResponse[T]":
        """Create a success response."""
        return cls(
            message_code=message_code,
            message=message or DEFAULT_MESSAGES.get(message_code, "Success"),
            data=data,
        )

    @classmethod
    def error(
        cls,
        message_code: MessageCode,
        message: str | None = None,
        data: T | None = None,
    ) -> "APIResponse[T]":
        """Create an error response."""
        return cls(
            message_code=message_code,
            message=message or DEFAULT_MESSAGES.get(message_code, "Error occurred"),
            data=data,
        )


def get_default_message(message_code: MessageCode) -> str:
    """Get default message for a message code."""
    return DEFAULT_MESSAGES.get(message_code, "Operation completed")
