"""
Exception types shared by every MCP server in the collection.
"""

from typing import Optional


class ToolError(Exception):
    """Raised by a tool handler; the message is returned to the client as an error result"""


class ConfigurationError(Exception):
    """Raised when required environment configuration is missing or invalid"""


class ApiError(Exception):
    """Error returned by an upstream HTTP or GraphQL API"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NotFoundError(ApiError):
    """Upstream resource does not exist"""

    def __init__(self, message: str):
        super().__init__(message, status=404)


def status_error(status: int, reason: str, action: str,
                 forbidden_message: str = "Access forbidden",
                 not_found_message: Optional[str] = None,
                 validation_errors: Optional[list] = None) -> ApiError:
    """Map an HTTP status to the error message clients surface to the user"""
    if status == 401:
        return ApiError("Invalid API key", status)
    if status == 403:
        return ApiError(forbidden_message, status)
    if status == 404:
        return NotFoundError(not_found_message or f"{action} failed: resource not found")
    if status == 422:
        details = ", ".join(str(e) for e in validation_errors) if validation_errors else "Unknown validation error"
        return ApiError(f"Validation failed: {details}", status)
    return ApiError(f"{action} failed: {status} {reason}", status)
