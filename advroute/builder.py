"""
Chainable, per-route declaration builder.
"""

import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

from .annotations import FIELDS, parse_url
from .endpoints import EndpointDescriptor
from .exceptions import ConfigurationError
from .models import Request, Response
from .router import Route, Router, normalize_path
from .stack import HandlerStack

if TYPE_CHECKING:
    from .extension import ExtendedRouter, RouterFactory

logger = logging.getLogger(__name__)

RESULT_KEY = "result"

_UNSET = object()


def pipeline_value(request: Request) -> Any:
    """The value the next ``then`` step receives: the last result, else the request."""
    return request.state.get(RESULT_KEY, request)


async def _settle(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _positional_arity(fn: Callable, maximum: int) -> int:
    """How many of up to ``maximum`` leading positional arguments ``fn`` accepts."""
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return maximum
    count = 0
    for param in signature.parameters.values():
        if param.kind == inspect.Parameter.VAR_POSITIONAL:
            return maximum
        if param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            count += 1
    return min(count, maximum)


class RouteBuilder:
    """Accumulates an endpoint descriptor and wires its handlers onto a route.

    A builder is bound once, either to a sub-router mounted at a prefix
    (``base_url``) or to a single method and path (``url``). Schema
    declarations register one validation handler; the first ``then`` or
    ``catch`` registers a flush handler that is locked as the last handler of
    the route, so everything chained later still runs before the response
    is written.

    Example:
        router.url("POST /users/:id") \\
            .params("{id: id}") \\
            .body("{name: string}") \\
            .then(lambda request: save(request.params["id"], request.body)) \\
            .response("{id: number, name: string}")
    """

    def __init__(self, factory: "RouterFactory", parent: "ExtendedRouter"):
        self.factory = factory
        self.parent = parent
        self.descriptor = EndpointDescriptor()
        self.route: Optional[Union[Route, Router]] = None
        self.router: Optional["ExtendedRouter"] = None
        self.method: Optional[str] = None
        self._validate_handler: Optional[Callable] = None
        self._result_handler: Optional[Callable] = None

    def _changed(self) -> None:
        self.factory.invalidate()

    def _ensure_unbound(self, operation: str) -> None:
        if self.route is not None:
            raise ConfigurationError(f"{operation}(): route is already bound to {self.describe()}")

    def _require_route(self, operation: str) -> Union[Route, Router]:
        if self.route is None:
            raise ConfigurationError(f"{operation}(): call url() or base_url() first")
        return self.route

    @property
    def stack(self) -> HandlerStack:
        return self._require_route("stack").stack

    def describe(self) -> str:
        if self.descriptor.url is not None:
            return repr(self.descriptor.url)
        if self.descriptor.base_url is not None:
            return f"base URL {self.descriptor.base_url!r}"
        return "nothing"

    # Binding

    def base_url(self, path: str) -> "RouteBuilder":
        """Mount a sub-router at ``path`` and bind this builder to it."""
        self._ensure_unbound("base_url")
        prepared = FIELDS["base_url"].prepare(path)
        self.parent.claim_base_url(prepared)
        self.descriptor.base_url = prepared

        self.router = self.factory()
        self.route = self.router
        self.parent.use(path, self.router)
        self._changed()
        logger.debug(f"Mounted sub-router at {path}")
        return self

    def url(self, pattern: str) -> "RouteBuilder":
        """Bind this builder to ``[METHOD] /path`` under the parent's base URL."""
        self._ensure_unbound("url")
        self.descriptor.url = FIELDS["url"].prepare(pattern)
        method, path = parse_url(pattern, self.factory.config.default_method)

        self.method = method
        self.route = self.parent.route(normalize_path(self.parent.base_url(), path))
        self._changed()
        logger.debug(f"Bound route {method} {self.route.path}")
        return self

    # Metadata

    def namespace(self, name: str) -> "RouteBuilder":
        self.descriptor.namespace = FIELDS["namespace"].prepare(name)
        self._changed()
        return self

    def ns(self, name: str) -> "RouteBuilder":
        return self.namespace(name)

    def description(self, text: str) -> "RouteBuilder":
        self.descriptor.description = FIELDS["description"].prepare(text)
        self._changed()
        return self

    def call(self, ref: Any) -> "RouteBuilder":
        """Attach reference metadata for documentation; never executed."""
        self.descriptor.call = FIELDS["call"].prepare(ref)
        self._changed()
        return self

    def schema(self, name_or_code: Any, json_schema: Any = None) -> "RouteBuilder":
        """Declare a named schema: ``schema("User = {...}")`` or ``schema("User", {...})``.

        The annotation is parsed here, so syntax errors raise at this call.
        """
        declaration = FIELDS["schema"].prepare(name_or_code, json_schema)
        ast = declaration.slot.parse(self.factory.registry)
        if declaration.name:
            self.factory.registry.declare(declaration.name, ast)
        self.descriptor.schema.append(declaration)
        self._changed()
        return self

    # Request and response contracts

    def _set_slot(self, name: str, spec: Any) -> "RouteBuilder":
        slot = FIELDS[name].prepare(spec)
        slot.parse(self.factory.registry)
        self._ensure_validate()
        setattr(self.descriptor, name, slot)
        self._changed()
        return self

    def params(self, spec: Any) -> "RouteBuilder":
        return self._set_slot("params", spec)

    def query(self, spec: Any) -> "RouteBuilder":
        return self._set_slot("query", spec)

    def body(self, spec: Any) -> "RouteBuilder":
        return self._set_slot("body", spec)

    def file(self, spec: Any) -> "RouteBuilder":
        return self._set_slot("file", spec)

    def files(self, spec: Any) -> "RouteBuilder":
        return self._set_slot("files", spec)

    def response(self, code_or_spec: Any, spec: Any = _UNSET) -> "RouteBuilder":
        """Add a response contract: ``response(spec)`` or ``response(code, spec)``.

        ``code`` may be an int, a range such as ``"300-400"`` or a wildcard
        such as ``"5XX"``; annotation text may also start with one.
        """
        if spec is _UNSET:
            code, spec = None, code_or_spec
        else:
            code = code_or_spec

        contract = FIELDS["response"].prepare(spec, code, self.factory.config.default_code)
        contract.slot.parse(self.factory.registry)
        self._ensure_validate()
        self.descriptor.response.append(contract)
        self._changed()
        return self

    def _ensure_validate(self) -> None:
        if self._validate_handler is not None:
            return

        factory = self.factory
        descriptor = self.descriptor

        def validate(request: Request, response: Response, next: Callable) -> None:
            factory.prepare(descriptor)
            factory.request_validator.validate(descriptor, request)
            if descriptor.response:
                factory.response_guard.install(descriptor.response, response)
            next()

        self.callback(validate, error_handler=False)
        self._validate_handler = validate

    # Handlers

    def callback(self, handler: Callable, error_handler: Optional[bool] = None) -> "RouteBuilder":
        """Register a raw ``handler(request, response, next)`` on the route.

        Four-parameter handlers ``(error, request, response, next)`` are
        registered as error handlers.
        """
        route = self._require_route("callback")
        if isinstance(route, Route):
            route.add(self.method, handler, error_handler=error_handler)
        else:
            route.use(handler, error_handler=error_handler)
        return self

    def then(self, fn: Callable[[Any], Any]) -> "RouteBuilder":
        """Transform the pipeline value with ``fn`` (sync or async)."""
        self._ensure_result_handler()

        async def then_handler(request: Request, response: Response, next: Callable) -> None:
            request.state[RESULT_KEY] = await _settle(fn(pipeline_value(request)))
            next()

        then_handler.__name__ = f"then_{getattr(fn, '__name__', 'handler')}"
        return self.callback(then_handler, error_handler=False)

    def catch(self, fn: Callable[[Any, Request, Response], Any]) -> "RouteBuilder":
        """Recover from an error with ``fn(error, request, response)``.

        ``fn`` may also accept only ``error`` or ``(error, request)``.

        The returned value resumes the ``then`` chain; raising passes the new
        error on to the next ``catch``.
        """
        self._ensure_result_handler()
        arity = _positional_arity(fn, 3)

        async def catch_handler(error: Any, request: Request, response: Response, next: Callable) -> None:
            args = (error, request, response)[:arity]
            request.state[RESULT_KEY] = await _settle(fn(*args))
            next()

        catch_handler.__name__ = f"catch_{getattr(fn, '__name__', 'handler')}"
        return self.callback(catch_handler, error_handler=True)

    def _ensure_result_handler(self) -> None:
        if self._result_handler is not None:
            return

        def flush(request: Request, response: Response, next: Callable) -> None:
            if response.headers_sent:
                return
            response.json(request.state.get(RESULT_KEY))

        self.callback(flush, error_handler=False)
        self.stack.lock_anchor()
        self._result_handler = flush

    def __repr__(self) -> str:
        return f"RouteBuilder({self.describe()})"
