"""
In-process test client.

Builds ``Request`` objects, runs them through ``Application.execute`` and
wraps the result in a ``ClientResponse``.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .application import Application, build_request
from .models import Response


@dataclass
class ClientResponse:
    """An executed response in test-friendly terms."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("Content-Type")

    def get_json_body(self) -> Any:
        """Decode the body as JSON."""
        if self.body is None:
            return None
        return json.loads(self.body)

    def is_successful(self) -> bool:
        """Check if response indicates success (2xx)."""
        return 200 <= self.status_code < 300

    def is_client_error(self) -> bool:
        """Check if response indicates client error (4xx)."""
        return 400 <= self.status_code < 500

    def is_server_error(self) -> bool:
        """Check if response indicates server error (5xx)."""
        return 500 <= self.status_code < 600

    @classmethod
    def from_response(cls, response: Response) -> "ClientResponse":
        return cls(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.body,
        )


class TestClient:
    """Synchronous client that executes requests directly against an ``Application``."""

    __test__ = False

    def __init__(self, app: Application):
        self.app = app

    def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        query: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        file: Any = None,
        files: Any = None,
    ) -> ClientResponse:
        """Execute a request. ``json`` is passed through as the parsed body."""
        headers = dict(headers or {})
        if json is not None:
            headers.setdefault("Content-Type", "application/json")

        request = build_request(method, path, headers=headers, query=query, body=json, file=file, files=files)
        return ClientResponse.from_response(self.app.execute(request))

    def get(self, path: str, **kwargs: Any) -> ClientResponse:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> ClientResponse:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> ClientResponse:
        return self.request("PUT", path, **kwargs)

    def patch(self, path: str, **kwargs: Any) -> ClientResponse:
        return self.request("PATCH", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> ClientResponse:
        return self.request("DELETE", path, **kwargs)
