"""Custom exceptions for the gateway."""

from typing import Any


class GatewayException(Exception):
    """
    Base exception for all gateway errors.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status used when the error reaches a client
        context: Additional context for debugging (never sent to clients)
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        context: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.context = context or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


# Startup / configuration Exceptions
class ConfigurationError(GatewayException):
    """Invalid or missing configuration detected at startup."""
    def __init__(self, setting: str, reason: str):
        super().__init__(
            f"Invalid configuration for {setting}: {reason}",
            context={"setting": setting},
        )
        self.setting = setting


class StartupError(GatewayException):
    """A dependency failed its readiness step before the listener bound."""
    def __init__(self, dependency: str, original_error: Exception):
        super().__init__(
            f"Failed to initialize {dependency}",
            context={"dependency": dependency, "original": str(original_error)},
        )
        self.dependency = dependency
        self.original_error = original_error


class RouteConflictError(GatewayException):
    """A route binding was registered out of order or twice."""
    def __init__(self, prefix: str, reason: str):
        super().__init__(
            f"Cannot bind {prefix}: {reason}",
            context={"prefix": prefix},
        )
        self.prefix = prefix


# Request Exceptions
class CorsRejected(GatewayException):
    """Origin is not trusted to read cross-origin responses."""
    def __init__(self, origin: str):
        super().__init__("Not allowed by CORS", status_code=403)
        self.origin = origin


class EntryDocumentMissing(GatewayException):
    """The single-page application entry document is not on disk."""
    def __init__(self, path: str):
        super().__init__(
            "index.html file not found",
            status_code=500,
            context={"path": path},
        )
        self.path = path


class SessionStoreError(GatewayException):
    """Session store could not be read or written."""
    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Session store {operation} failed: {reason}",
            context={"operation": operation},
        )
        self.operation = operation
