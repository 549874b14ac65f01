"""Centralized message codes and default messages for API responses."""

from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel


class MessageCode(str, Enum):
    """Centralized message codes for API responses."""

    # Success codes
    SUCCESS = "SUCCESS"
    METRICS_INVALIDATED = "METRICS_INVALIDATED"
    WEBHOOK_RECEIVED = "WEBHOOK_RECEIVED"

    # Authentication & Authorization
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_API_KEY = "INVALID_API_KEY"

    # Validation errors
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_WEBHOOK = "INVALID_WEBHOOK"

    # Service Errors
    METRICS_UNAVAILABLE = "METRICS_UNAVAILABLE"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"


# Default messages for each message code
DEFAULT_MESSAGES = {
    # Success messages
    MessageCode.SUCCESS: "Operation completed successfully",
    MessageCode.METRICS_INVALIDATED: "Metrics cache invalidated",
    MessageCode.WEBHOOK_RECEIVED: "Webhook received",
    # Authentication & Authorization
    MessageCode.UNAUTHORIZED: "Authentication required",
    MessageCode.INVALID_API_KEY: "Invalid or missing admin key",
    # Validation errors
    MessageCode.INVALID_INPUT: "Invalid input provided",
    MessageCode.INVALID_WEBHOOK: "Invalid webhook data",
    # Service Errors
    MessageCode.METRICS_UNAVAILABLE: "Metrics are temporarily unavailable",
    # Generic errors
    MessageCode.INTERNAL_ERROR: "Internal server error",
    MessageCode.BAD_REQUEST: "Bad request",
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


def get_default_message(message_code: MessageCode) -> str:
    """Get default message for a message code."""
    return DEFAULT_MESSAGES.get(message_code, "Operation completed")
