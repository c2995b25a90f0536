"""Centralized error handling module."""

from enum import Enum
from typing import Any, Dict

from wiremail.utils.logging import get_logger

_logger = None


def _get_logger():
    """Get logger with lazy initialisation."""
    global _logger
    if _logger is None:
        _logger = get_logger(__name__)
    return _logger


## Error Categories


class ErrorCategory(Enum):
    """Categories of errors for better handling."""

    NETWORK = "network"
    PROTOCOL = "protocol"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


## Custom Exceptions


class WiremailError(Exception):
    """Base exception for all wiremail errors."""

    category = ErrorCategory.UNKNOWN
    user_message = "An error occurred"

    def __init__(
        self, message: str | None = None, details: Dict[str, Any] | None = None
    ):
        """Initialise WiremailError with optional message and details."""
        self.message = message or self.user_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error details to a dictionary."""
        return {
            "error_type": self.__class__.__name__,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
        }


## Network Errors


class NetworkError(WiremailError):
    """Base exception for transport-level failures (connect, TLS, socket I/O)."""

    category = ErrorCategory.NETWORK
    user_message = "A network error occurred"


class NetworkTimeoutError(NetworkError):
    """Exception for network timeout errors."""

    user_message = "The connection timed out"


class ConnectionClosedError(NetworkError):
    """Exception raised when the server closes the socket mid-conversation."""

    user_message = "The server closed the connection"


## Protocol Errors


class ProtocolError(WiremailError):
    """Base exception for a server refusing a command."""

    category = ErrorCategory.PROTOCOL
    user_message = "The mail server rejected the request"


class IMAPError(ProtocolError):
    """Exception for IMAP protocol errors (tagged NO/BAD, bad greeting)."""

    user_message = "The IMAP server rejected the request"


class SMTPError(ProtocolError):
    """Exception for SMTP protocol errors (unexpected status code)."""

    user_message = "Failed to send email"


## Authentication Errors


class AuthenticationError(WiremailError):
    """Base exception for authentication-related errors."""

    category = ErrorCategory.AUTHENTICATION
    user_message = "An authentication error occurred"


class InvalidCredentialsError(AuthenticationError):
    """Exception for invalid login credentials."""

    user_message = "Invalid email or password"


class MissingCredentialsError(AuthenticationError):
    """Exception for missing login credentials."""

    user_message = "Email credentials not configured"


## Validation Errors


class ValidationError(WiremailError):
    """Base exception for validation-related errors."""

    category = ErrorCategory.VALIDATION
    user_message = "Invalid input"


class MissingRequiredFieldError(ValidationError):
    """Exception for missing required fields."""

    user_message = "A required field is missing"


## Configuration Errors


class ConfigurationError(WiremailError):
    """Base exception for configuration-related errors."""

    category = ErrorCategory.CONFIGURATION
    user_message = "A configuration error occurred"


class MissingConfigError(ConfigurationError):
    """Exception for missing configuration settings."""

    user_message = "Missing configuration settings"


class InvalidConfigError(ConfigurationError):
    """Exception for invalid configuration settings."""

    user_message = "Invalid configuration settings"


## Error Handler


class ErrorHandler:
    """Centralized error logging for command entry points."""

    @staticmethod
    def handle(
        error: Exception, context: str = "", log_traceback: bool = True
    ) -> Dict[str, Any]:
        """Log ``error`` under ``context`` and return it as a dictionary.

        Errors outside the wiremail hierarchy are reported as ``UnknownError``
        with the context recorded in their details.
        """
        if isinstance(error, WiremailError):
            info = error.to_dict()
        else:
            info = {
                "error_type": "UnknownError",
                "category": ErrorCategory.UNKNOWN.value,
                "message": str(error),
                "details": {"context": context},
            }

        _get_logger().error(
            f"{context}: {info['message']}",
            exc_info=error if log_traceback else None,
            extra={"error_type": info["error_type"], "category": info["category"]},
        )
        return info


## Utility Functions


def format_error_message(error: Exception) -> str:
    """Format an error message for display."""
    if isinstance(error, WiremailError):
        return error.message

    return "An unexpected error occurred - check logs for details."
