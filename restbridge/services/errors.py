"""
Error taxonomy shared by the services and the HTTP layer.

Every error carries a stable ``code``; the FastAPI exception handlers in
``restbridge.controllers.errors`` map each class to a fixed status code.
"""

from typing import Optional


class RestBridgeError(Exception):
    """Base class; also raised directly for unexpected backend failures."""

    def __init__(self, code: str, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details


class GatewayConnectionError(RestBridgeError):
    """Backend unreachable, credentials rejected or repository unknown."""

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__("CONNECTION_ERROR", message, details)


class BackendTimeoutError(GatewayConnectionError):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.code = "BACKEND_TIMEOUT"


class BackendStatusError(RestBridgeError):
    """Non-2xx answer from the backend that no service translated further."""

    def __init__(self, status_code: int, body: str, message: Optional[str] = None) -> None:
        super().__init__(
            "REST_ERROR",
            message or f"Backend returned HTTP {status_code}",
            details=body[:500] if body else None,
        )
        self.status_code = status_code
        self.body = body or ""


class SessionNotFoundError(RestBridgeError):
    def __init__(self, session_id: str) -> None:
        super().__init__("SESSION_NOT_FOUND", f"Session not found: {session_id}")
        self.session_id = session_id


class ObjectNotFoundError(RestBridgeError):
    """Object, folder, type, user or group missing on the backend."""

    def __init__(self, identifier: str, kind: str = "Object") -> None:
        super().__init__("OBJECT_NOT_FOUND", f"{kind} not found: {identifier}")
        self.identifier = identifier
        self.kind = kind


class DqlNotAvailableError(RestBridgeError):
    MESSAGE = (
        "DQL is not available on this Documentum REST Services endpoint. "
        "DQL may be disabled in the server configuration."
    )

    def __init__(self, details: Optional[str] = None) -> None:
        super().__init__("DQL_NOT_AVAILABLE", self.MESSAGE, details)


class DqlError(RestBridgeError):
    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__("DQL_ERROR", message, details)


class AggregateQueryNotSupportedError(DqlError):
    MESSAGE = (
        "Aggregate DQL queries (GROUP BY, COUNT, etc.) are not supported via REST Services. "
        "Use DFC Bridge for aggregate queries."
    )

    def __init__(self, query: Optional[str] = None) -> None:
        message = self.MESSAGE
        if query is not None:
            message = f"{message} Query: {_truncate(query)}"
        super().__init__(message)
        self.code = "AGGREGATE_QUERY_NOT_SUPPORTED"
        self.query = query


def _truncate(query: str, limit: int = 100) -> str:
    return query if len(query) <= limit else query[:limit] + "..."
