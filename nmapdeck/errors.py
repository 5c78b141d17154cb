"""Structured error taxonomy for nmapdeck."""
#
# PURPOSE:
# Error codes plus one typed exception so the API layer can turn any failure
# into a consistent JSON body with a sensible HTTP status.
#
# ERROR CODE FORMAT:
# - SCAN_XXX: Scan request / lifecycle errors
# - TOOL_XXX: nmap / docker execution errors
# - CONFIG_XXX: Configuration errors
# - SYSTEM_XXX: Everything else
#
# USAGE:
#   from nmapdeck.errors import NmapDeckError, ErrorCode
#
#   raise NmapDeckError(
#       ErrorCode.SCAN_PORTS_REQUIRED,
#       "Custom scan type requires port specification",
#       details={"scan_type": "custom"}
#   )
#
import json
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    # Scan Errors
    SCAN_REQUEST_INVALID = "SCAN_001"
    SCAN_TARGET_INVALID = "SCAN_002"
    SCAN_PORTS_REQUIRED = "SCAN_003"
    SCAN_NOT_FOUND = "SCAN_004"
    SCAN_ALREADY_REGISTERED = "SCAN_005"

    # Tool Errors
    TOOL_START_FAILED = "TOOL_001"
    TOOL_TIMEOUT = "TOOL_002"

    # Config Errors
    CONFIG_INVALID = "CONFIG_001"

    # System Errors
    SYSTEM_INTERNAL_ERROR = "SYSTEM_001"


class NmapDeckError(Exception):
    """
    Base exception carrying an error code, a human-readable message,
    optional details and the HTTP status the API should answer with.
    """

    HTTP_STATUS_MAP: Dict[ErrorCode, int] = {
        ErrorCode.SCAN_REQUEST_INVALID: 400,
        ErrorCode.SCAN_TARGET_INVALID: 400,
        ErrorCode.SCAN_PORTS_REQUIRED: 400,
        ErrorCode.SCAN_NOT_FOUND: 404,
        ErrorCode.SCAN_ALREADY_REGISTERED: 409,

        ErrorCode.TOOL_START_FAILED: 503,
        ErrorCode.TOOL_TIMEOUT: 408,

        ErrorCode.CONFIG_INVALID: 500,

        ErrorCode.SYSTEM_INTERNAL_ERROR: 500,
    }

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        http_status: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.http_status = http_status or self.HTTP_STATUS_MAP.get(code, 500)

        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for JSON serialization.

        Returns:
            Dictionary with code, message, details, and http_status
        """
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "http_status": self.http_status,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


def handle_error(error: Exception, context: Optional[str] = None) -> NmapDeckError:
    """
    Wrap an arbitrary exception in an NmapDeckError.

    Args:
        error: The original exception
        context: Optional context string (e.g., "while running target 10.0.0.1")

    Returns:
        NmapDeckError with a best-guess code and the original message
    """
    if isinstance(error, NmapDeckError):
        return error

    error_type = type(error).__name__

    if isinstance(error, TimeoutError) or "Timeout" in error_type:
        code = ErrorCode.TOOL_TIMEOUT
    elif isinstance(error, (FileNotFoundError, PermissionError)):
        code = ErrorCode.TOOL_START_FAILED
    else:
        code = ErrorCode.SYSTEM_INTERNAL_ERROR

    message = str(error) or error_type
    if context:
        message = f"{context}: {message}"

    return NmapDeckError(
        code=code,
        message=message,
        details={
            "original_type": error_type,
            "original_message": str(error),
        },
    )


__all__ = ["ErrorCode", "NmapDeckError", "handle_error"]
