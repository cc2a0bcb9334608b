"""
Application entry point: a root router plus request execution.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple, Union
from urllib.parse import parse_qs

from .builder import RouteBuilder
from .endpoints import Endpoint
from .error_models import ErrorPayload
from .extension import ExtendedRouter, RouterFactory
from .models import HTTPMethod, Request, Response

logger = logging.getLogger(__name__)


def parse_query_string(query_string: str) -> Dict[str, Any]:
    """Parse ``a=1&b=2&b=3`` into ``{"a": "1", "b": ["2", "3"]}``."""
    parsed = parse_qs(query_string, keep_blank_values=True)
    return {key: values[0] if len(values) == 1 else values for key, values in parsed.items()}


def build_request(
    method: Union[str, HTTPMethod],
    path: str,
    headers: Optional[Dict[str, str]] = None,
    query: Optional[Dict[str, Any]] = None,
    body: Any = None,
    file: Any = None,
    files: Any = None,
) -> Request:
    """Create a ``Request``, splitting any query string off ``path``."""
    if isinstance(method, str):
        method = HTTPMethod(method.upper())

    query = dict(query or {})
    if "?" in path:
        path, query_string = path.split("?", 1)
        query = {**parse_query_string(query_string), **query}

    return Request(
        method=method,
        path=path or "/",
        headers=dict(headers or {}),
        query=query,
        body=body,
        file=file,
        files=files,
    )


class Application:
    """Root of a routing tree.

    Handlers are plain ``(request, response, next)`` callables, sync or
    async. Requests nobody answers get a 404; errors nobody handles are
    logged and answered with a JSON ``ErrorPayload``.

    Example:
        app = Application()
        app.url("GET /users/:id").params("{id: id}").then(load_user)
        response = app.execute(build_request("GET", "/users/1"))
    """

    def __init__(self, router_factory: Optional[RouterFactory] = None):
        self.router_factory = router_factory or RouterFactory()
        self.router: ExtendedRouter = self.router_factory()

    def use(self, path_or_handler: Any, handler: Any = None, error_handler: Optional[bool] = None) -> "Application":
        self.router.use(path_or_handler, handler, error_handler=error_handler)
        return self

    def base_url(self, path: str) -> RouteBuilder:
        return self.router.base_url(path)

    def url(self, pattern: str) -> RouteBuilder:
        return self.router.url(pattern)

    def schema(self, name_or_code: Any, json_schema: Any = None) -> RouteBuilder:
        return self.router.schema(name_or_code, json_schema)

    def endpoints(self, force: bool = False) -> Tuple[Endpoint, ...]:
        return self.router_factory.endpoints(force)

    async def handle(self, request: Request) -> Response:
        """Dispatch ``request`` through the router and return the finished response."""
        self.router_factory.startup()

        if "?" in request.path:
            request.path, query_string = request.path.split("?", 1)
            request.query = {**parse_query_string(query_string), **request.query}

        response = Response()
        _, error = await self.router.handle(request, response)

        if error is not None:
            self.handle_error(error, request, response)
        elif not response.headers_sent:
            logger.debug(f"No handler answered {request.method.value} {request.path}")
            payload = ErrorPayload(name="NotFound", message=f"Cannot {request.method.value} {request.path}")
            response.status(404).send(payload.to_json(), "application/json")

        return response

    def handle_error(self, error: Any, request: Request, response: Response) -> None:
        """Default error handler, used when no error handler ended the chain."""
        exc_info = error if isinstance(error, BaseException) else None
        logger.error(
            f"Unhandled error processing {request.method.value} {request.path}: {error}",
            exc_info=exc_info,
        )
        if response.headers_sent:
            return

        status_code = getattr(error, "status_code", None)
        if not isinstance(status_code, int) or not 400 <= status_code <= 599:
            status_code = 500

        payload = ErrorPayload.from_exception(error)
        response.status(status_code).send(payload.to_json(), "application/json")

    def execute(self, request: Request) -> Response:
        """Execute a request synchronously."""
        return asyncio.run(self.handle(request))
