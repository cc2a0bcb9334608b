"""
Pydantic models for error responses.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ErrorPayload(BaseModel):
    """JSON body written by the default error handler."""

    name: str = Field(..., description="Error class name")
    message: str = Field(..., description="Human readable error message")
    property: Optional[str] = Field(None, description="Request property that failed validation")
    errors: List[Dict[str, Any]] = Field(default_factory=list, description="Validator error details")

    @classmethod
    def from_exception(cls, error: Any) -> "ErrorPayload":
        """Build a payload from any raised error.

        Validation errors carry their own ``to_dict()``; anything else is
        reduced to its class name and message.
        """
        if hasattr(error, "to_dict"):
            data = error.to_dict()
            return cls(
                name=data.get("name", type(error).__name__),
                message=data.get("message", str(error)),
                property=data.get("property"),
                errors=data.get("errors") or [],
            )
        if isinstance(error, BaseException):
            return cls(name=type(error).__name__, message=str(error) or type(error).__name__)
        return cls(name="Error", message=str(error))

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)
