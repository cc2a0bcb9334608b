"""Router module: ordered handler chains with mounting support."""

import inspect
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple, Union

from .models import HTTPMethod, Request, Response
from .stack import HandlerStack

logger = logging.getLogger(__name__)

_PARAM_RE = re.compile(r"^(?::(\w+)|\{(\w+)\})$")


def normalize_path(prefix: str, path: str) -> str:
    """Normalize a path by combining prefix and path, handling double slashes.

    Args:
        prefix: The prefix path (e.g., "", "/", "/api", "/users")
        path: The route path (e.g., "/", "/list", "/:id", "/{id}")

    Returns:
        Normalized path without double slashes

    Examples:
        normalize_path("/", "/users") -> "/users"
        normalize_path("/api", "users") -> "/api/users"
        normalize_path("/api/", "/:id") -> "/api/:id"
    """
    # Ensure prefix starts with /
    if not prefix.startswith('/'):
        prefix = '/' + prefix

    # Remove trailing slash from prefix unless it's just "/"
    if prefix != '/' and prefix.endswith('/'):
        prefix = prefix.rstrip('/')

    # Ensure path starts with /
    if not path.startswith('/'):
        path = '/' + path

    if prefix == '/':
        return path

    return prefix + path


def compile_path(path: str, end: bool) -> Pattern[str]:
    """Compile ``/users/:id`` or ``/users/{id}`` into a regex with named groups.

    With ``end=False`` the pattern matches the path as a prefix on a segment
    boundary, which is how mounted routers and middleware are selected.
    """
    segments = [segment for segment in path.split('/') if segment]
    parts = []
    for segment in segments:
        match = _PARAM_RE.match(segment)
        if match:
            parts.append(f"(?P<{match.group(1) or match.group(2)}>[^/]+)")
        else:
            parts.append(re.escape(segment))

    pattern = "".join(f"/{part}" for part in parts)
    if end:
        return re.compile(f"^{pattern}/?$")
    return re.compile(f"^{pattern}(?=/|$)")


def is_error_handler(handler: Callable) -> bool:
    """Error handlers take four positional parameters: (error, request, response, next)."""
    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError):
        return False
    positional = [
        param for param in signature.parameters.values()
        if param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    return len(positional) == 4


class Next:
    """The continuation handed to a handler: ``next()`` or ``next(error)``."""

    __slots__ = ("called", "error")

    def __init__(self):
        self.called = False
        self.error: Any = None

    def __call__(self, error: Any = None) -> None:
        self.called = True
        self.error = error


class Layer:
    """One entry of a handler stack: a handler plus the path/method it applies to."""

    def __init__(
        self,
        path: str,
        handler: Any,
        method: Optional[str] = None,
        end: bool = False,
        error_handler: Optional[bool] = None,
    ):
        self.path = path
        self.handler = handler
        self.method = method.upper() if method else None
        self.end = end
        self.pattern = compile_path(path, end)
        if error_handler is None:
            error_handler = callable(handler) and not isinstance(handler, (Router, Route)) and is_error_handler(handler)
        self.is_error_handler = error_handler

    def match(self, path: str) -> Optional[Tuple[str, Dict[str, str]]]:
        match = self.pattern.match(path)
        if not match:
            return None
        return match.group(0), dict(match.groupdict())

    def __repr__(self) -> str:
        name = getattr(self.handler, "__name__", type(self.handler).__name__)
        return f"Layer({self.method or '*'} {self.path} -> {name})"


async def call_layer(
    layer: Layer, request: Request, response: Response, error: Any
) -> Tuple[bool, Any]:
    """Invoke one handler. Returns ``(continue, error)``.

    Normal handlers are skipped while an error is pending and error handlers
    are skipped otherwise. A raised exception becomes the pending error.
    """
    if (error is not None) != layer.is_error_handler:
        return True, error

    next_ = Next()
    args = (error, request, response, next_) if layer.is_error_handler else (request, response, next_)
    try:
        result = layer.handler(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as exc:
        return True, exc

    if not next_.called:
        return False, None
    return True, next_.error


class Route:
    """Handlers registered for one path, filtered by HTTP method."""

    def __init__(self, path: str):
        self.path = path
        self.stack = HandlerStack()

    def add(self, method: Optional[Union[str, HTTPMethod]], handler: Callable,
            error_handler: Optional[bool] = None) -> "Route":
        if isinstance(method, HTTPMethod):
            method = method.value
        self.stack.append(Layer("/", handler, method=method, error_handler=error_handler))
        return self

    def all(self, handler: Callable) -> "Route":
        return self.add(None, handler)

    def get(self, handler: Callable) -> "Route":
        return self.add("GET", handler)

    def post(self, handler: Callable) -> "Route":
        return self.add("POST", handler)

    def put(self, handler: Callable) -> "Route":
        return self.add("PUT", handler)

    def patch(self, handler: Callable) -> "Route":
        return self.add("PATCH", handler)

    def delete(self, handler: Callable) -> "Route":
        return self.add("DELETE", handler)

    def handles_method(self, method: HTTPMethod) -> bool:
        for layer in self.stack:
            if layer.method is None or layer.method == method.value:
                return True
            if method == HTTPMethod.HEAD and layer.method == "GET":
                return True
        return False

    def methods(self) -> List[str]:
        return sorted({layer.method for layer in self.stack if layer.method})

    async def dispatch(self, request: Request, response: Response, error: Any = None) -> Tuple[bool, Any]:
        method = request.method.value
        for layer in list(self.stack):
            if layer.method is not None and layer.method != method:
                if not (method == "HEAD" and layer.method == "GET"):
                    continue
            proceed, error = await call_layer(layer, request, response, error)
            if not proceed:
                return False, None
        return True, error


class Router:
    """Router class for organizing handler chains with mounting support.

    Routers hold an ordered stack of layers: middleware registered with
    ``use``, routes created with ``route`` and mounted sub-routers. Routers
    can be nested (mounted into other routers) under a path prefix.
    """

    def __init__(self):
        self.stack = HandlerStack()

    def use(self, path_or_handler: Any, handler: Any = None,
            error_handler: Optional[bool] = None) -> "Router":
        """Mount middleware or a sub-router, optionally under a path prefix.

        Example:
            api = Router()
            api.route("/users").get(list_users)
            app.use("/api", api)
            # This serves GET /api/users
        """
        if handler is None:
            path, handler = "/", path_or_handler
        else:
            path = path_or_handler
        self.stack.append(Layer(path, handler, error_handler=error_handler))
        logger.debug(f"Mounted {handler!r} at {path}")
        return self

    def route(self, path: str) -> Route:
        """Create a route for ``path`` and append it to this router's stack."""
        route = Route(path)
        self.stack.append(Layer(path, route, end=True, error_handler=False))
        return route

    def get(self, path: str):
        """Decorator to register a GET handler."""
        return self._route_decorator(HTTPMethod.GET, path)

    def post(self, path: str):
        """Decorator to register a POST handler."""
        return self._route_decorator(HTTPMethod.POST, path)

    def put(self, path: str):
        """Decorator to register a PUT handler."""
        return self._route_decorator(HTTPMethod.PUT, path)

    def patch(self, path: str):
        """Decorator to register a PATCH handler."""
        return self._route_decorator(HTTPMethod.PATCH, path)

    def delete(self, path: str):
        """Decorator to register a DELETE handler."""
        return self._route_decorator(HTTPMethod.DELETE, path)

    def _route_decorator(self, method: HTTPMethod, path: str):
        def decorator(func: Callable):
            self.route(path).add(method, func)
            return func

        return decorator

    async def handle(self, request: Request, response: Response, path: Optional[str] = None,
                     error: Any = None) -> Tuple[bool, Any]:
        """Run the stack for ``path`` (relative to this router's mount point).

        Returns ``(continue, error)``: ``continue`` is True when the chain fell
        through, carrying any error still pending.
        """
        if path is None:
            path = request.path

        for layer in list(self.stack):
            match = layer.match(path)
            if match is None:
                continue
            matched, params = match
            target = layer.handler

            if isinstance(target, Route):
                if not target.handles_method(request.method):
                    continue
                request.params = params
                proceed, error = await target.dispatch(request, response, error)
            elif isinstance(target, Router):
                base_url = request.base_url
                request.base_url = base_url + matched
                try:
                    proceed, error = await target.handle(request, response, path[len(matched):] or "/", error)
                finally:
                    request.base_url = base_url
            else:
                if params:
                    request.params = {**request.params, **params}
                proceed, error = await call_layer(layer, request, response, error)

            if not proceed:
                return False, None

        return True, error
