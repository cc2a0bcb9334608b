"""
Core data models for the host routing layer.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic_core import to_jsonable_python


class HTTPMethod(Enum):
    """Enumeration of supported HTTP methods."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


@dataclass
class Request:
    """Represents an HTTP request.

    ``body`` holds the already-parsed payload. ``base_url`` is the prefix of
    the router currently handling the request. ``state`` is per-request
    storage for handlers; middleware may also attach arbitrary attributes.
    """

    method: HTTPMethod
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    body: Any = None
    file: Any = None
    files: Any = None
    base_url: str = ""
    state: Dict[str, Any] = field(default_factory=dict)

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def get_content_type(self) -> Optional[str]:
        """Get the Content-Type header."""
        return self.get_header("Content-Type")


@dataclass
class Response:
    """Represents an HTTP response under construction.

    ``json()`` is the output primitive route pipelines serialize through.
    A single one-shot hook can be registered with ``intercept_json``; it is
    removed before it runs, so sends made from inside the hook go straight
    out.
    """

    status_code: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    headers_sent: bool = False
    _json_hook: Optional[Callable[[Any], Any]] = field(default=None, repr=False)

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("Content-Type")

    def status(self, code: int) -> "Response":
        """Set the status code. Returns the response for chaining."""
        self.status_code = int(code)
        return self

    def set_header(self, name: str, value: str) -> "Response":
        self.headers[name] = value
        return self

    def intercept_json(self, hook: Callable[[Any], Any]) -> None:
        """Run ``hook(data)`` on the next ``json()`` call and send its result."""
        self._json_hook = hook

    @property
    def intercepted(self) -> bool:
        return self._json_hook is not None

    def json(self, data: Any) -> "Response":
        """Serialize ``data`` as JSON and send it."""
        hook = self._json_hook
        if hook is not None:
            self._json_hook = None
            if self.headers_sent:
                return self
            data = hook(data)

        if self.headers_sent:
            return self

        return self.send(json.dumps(to_json_compatible(data)), "application/json")

    def send(self, body: Optional[str], content_type: Optional[str] = None) -> "Response":
        """Send a raw body, bypassing any JSON hook."""
        if self.headers_sent:
            return self
        if content_type:
            self.headers["Content-Type"] = content_type
        self.body = body
        self.headers["Content-Length"] = str(len(body.encode("utf-8")) if body else 0)
        self.headers_sent = True
        return self

    def get_json_body(self) -> Any:
        """Decode the sent body as JSON."""
        if self.body is None:
            return None
        return json.loads(self.body)


@dataclass
class UploadedFile:
    """A file received with a multipart request, as exposed to ``file``/``files`` schemas."""

    fieldname: str
    originalname: str
    mimetype: str = "application/octet-stream"
    size: int = 0
    content: bytes = b""

    def to_json(self) -> Dict[str, Any]:
        return {
            "fieldname": self.fieldname,
            "originalname": self.originalname,
            "mimetype": self.mimetype,
            "size": self.size,
        }


def files_to_json(files: Any) -> Any:
    """Convert uploaded file objects into plain data for validation."""
    if isinstance(files, UploadedFile):
        return files.to_json()
    if isinstance(files, dict):
        return {key: files_to_json(value) for key, value in files.items()}
    if isinstance(files, (list, tuple)):
        return [files_to_json(value) for value in files]
    return files


def _to_json_fallback(value: Any) -> Any:
    to_json = getattr(value, "to_json", None)
    if callable(to_json) and not isinstance(value, type):
        return to_json_compatible(to_json())
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json_compatible(value: Any) -> Any:
    """Deep-copy ``value`` into plain JSON data.

    Objects exposing ``to_json()`` are replaced by its result, which is
    normalized again. Everything else goes through pydantic's encoder, so
    models, dataclasses, enums, sets and dates come out as JSON values.
    """
    to_json = getattr(value, "to_json", None)
    if callable(to_json) and not isinstance(value, type):
        return to_json_compatible(to_json())

    if isinstance(value, dict):
        return {str(key): to_json_compatible(item) for key, item in value.items()}

    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json_compatible(item) for item in value]

    return to_jsonable_python(value, fallback=_to_json_fallback)
