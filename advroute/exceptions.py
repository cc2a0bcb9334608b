"""
Custom exceptions for declarative route validation.
"""
from typing import Any, Dict, List, Optional


class AdvRouteError(Exception):
    """Base exception for advroute errors."""

    pass


class ConfigurationError(AdvRouteError):
    """Raised when routes are declared in an invalid order or combination."""

    pass


class StackConsistencyError(ConfigurationError):
    """Raised when a locked handler stack lost its anchor handler."""

    pass


class AnnotationError(ConfigurationError):
    """Raised when a schema annotation cannot be parsed or resolved."""

    def __init__(self, message: str, source: Optional[str] = None, position: Optional[int] = None):
        self.message = message
        self.source = source
        self.position = position
        if source is not None and position is not None:
            message = f"{message} at position {position} in {source!r}"
        super().__init__(message)


class ValidationError(AdvRouteError):
    """Base class for schema validation failures."""

    name = "ValidationError"
    status_code = 500

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        self.message = message
        self.errors = list(errors or [])
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Return the error payload surfaced to error handlers."""
        return {"name": self.name, "message": self.message, "errors": self.errors}


class RequestValidationError(ValidationError):
    """Raised when params, query, body, file or files fail validation."""

    name = "RequestValidationError"

    def __init__(self, message: str, property: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, errors)
        self.property = property

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["property"] = self.property
        return data


class ResponseValidationError(ValidationError):
    """Raised when no response contract accepts the outgoing payload."""

    name = "ResponseValidationError"
