"""
Custom exceptions for genaikit

Every exception carries a display ``message`` and a ``details`` dict.
Orchestration errors additionally expose the raw ``detail`` string.
"""

from __future__ import annotations

from typing import Any


class GenAIKitError(Exception):
    """Base exception for all genaikit errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AuthenticationError(GenAIKitError):
    """Raised when credentials for the selected platform are missing."""

    def __init__(
        self,
        message: str = "Authentication failed",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)


# =============================================================================
# Generation errors
# =============================================================================


class GenerativeAIError(GenAIKitError):
    """Raised when a generation call cannot produce a usable result."""

    def __init__(
        self,
        message: str,
        detail: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if detail:
            details["detail"] = detail
        super().__init__(message, details)
        self.detail = detail


class BlockedResponseError(GenerativeAIError):
    """Raised when the service returns no candidates for a request."""

    def __init__(self, url: str, block_message: str):
        super().__init__(
            f"Error while requesting {url}:\r\n\r\n{block_message}",
            block_message,
            {"url": url},
        )
        self.url = url


class InvalidFunctionCallError(GenerativeAIError):
    """Raised when the model calls a function no registered tool provides."""

    def __init__(self, function_name: str):
        super().__init__(
            f"AI Model called an invalid function: {function_name}",
            f"Invalid function_name: {function_name}",
            {"function_name": function_name},
        )
        self.function_name = function_name


class FunctionCallLimitError(GenerativeAIError):
    """Raised when function resolution exceeds the configured round limit."""

    def __init__(self, max_rounds: int, function_name: str | None = None):
        super().__init__(
            f"Function calling exceeded the limit of {max_rounds} rounds",
            f"Last requested function: {function_name}" if function_name else None,
            {"max_rounds": max_rounds},
        )
        self.max_rounds = max_rounds
        self.function_name = function_name


# =============================================================================
# Configuration errors
# =============================================================================


class ConfigurationError(GenAIKitError):
    """Raised when a request or model is configured inconsistently."""

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details)
        self.config_key = config_key

    @property
    def detail(self) -> str:
        return self.message


class IncompatibleModeError(ConfigurationError):
    """Raised when JSON or cached-content mode is combined with built-in tools."""


class CachedContentModelMismatchError(ConfigurationError, ValueError):
    """Raised when the cached content belongs to a different model."""

    def __init__(self, model: str, cached_model: str):
        super().__init__(
            "CachedContent model must match the model of the GenerativeModel",
            "cached_content",
        )
        self.model = model
        self.cached_model = cached_model
        self.details.update({"model": model, "cached_model": cached_model})


# =============================================================================
# Transport errors
# =============================================================================


class APIError(GenAIKitError):
    """Raised when the API returns an error."""

    def __init__(
        self,
        message: str,
        status_code: int,
        status: str | None = None,
        response_body: str | None = None,
        endpoint: str | None = None,
    ):
        details: dict[str, Any] = {
            "status_code": status_code,
        }
        if status:
            details["status"] = status
        if response_body:
            details["response_body"] = response_body
        if endpoint:
            details["endpoint"] = endpoint
        super().__init__(message, details)
        self.status_code = status_code
        self.status = status
        self.response_body = response_body
        self.endpoint = endpoint

    @property
    def detail(self) -> str:
        return self.response_body or self.message


class RateLimitError(APIError):
    """Raised when API rate limit is exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        status_code: int = 429,
        status: str | None = None,
        response_body: str | None = None,
        endpoint: str | None = None,
        retry_after: int | None = None,
    ):
        super().__init__(message, status_code, status, response_body, endpoint)
        self.retry_after = retry_after
        if retry_after:
            self.details["retry_after"] = retry_after


class PermissionDeniedError(APIError):
    """Raised when permission is denied."""

    def __init__(
        self,
        message: str = "Permission denied",
        status_code: int = 403,
        status: str | None = None,
        response_body: str | None = None,
        endpoint: str | None = None,
    ):
        super().__init__(message, status_code, status, response_body, endpoint)


class NotFoundError(APIError):
    """Raised when a model or resource is not found."""

    def __init__(
        self,
        message: str = "Resource not found",
        status_code: int = 404,
        status: str | None = None,
        response_body: str | None = None,
        endpoint: str | None = None,
    ):
        super().__init__(message, status_code, status, response_body, endpoint)


# =============================================================================
# Session and tool errors
# =============================================================================


class SessionError(GenAIKitError):
    """Raised when there's an error with a chat session."""


class SessionBusyError(SessionError):
    """Raised when a chat session is used while a call is still in flight."""

    def __init__(self, message: str = "Chat session already has a request in flight"):
        super().__init__(message)


class ToolError(GenAIKitError):
    """Raised when there's an error with a tool."""

    def __init__(
        self,
        message: str,
        tool_name: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if tool_name:
            details["tool_name"] = tool_name
        super().__init__(message, details)
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Raised when a tool is asked to run a function it does not declare."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}", tool_name)
