"""
Router factory that adds declarative endpoint builders to host routers.
"""

import logging
from typing import Any, List, Optional, Tuple

from .builder import RouteBuilder
from .compiler import EndpointCompiler
from .config import ExtensionConfig
from .endpoints import Endpoint, EndpointDescriptor
from .exceptions import ConfigurationError
from .router import Router
from .schemas import SchemaRegistry
from .validation import RequestValidator, ResponseGuard

logger = logging.getLogger(__name__)

_UNSET = object()


class ExtendedRouter(Router):
    """A host ``Router`` whose ``base_url``/``url``/``schema`` start a ``RouteBuilder``."""

    def __init__(self, factory: "RouterFactory"):
        super().__init__()
        self.factory = factory
        self._base_url: Optional[str] = None

    def base_url(self, path: Any = _UNSET):
        """Mount a sub-router at ``path``; without arguments, return the current base URL."""
        if path is _UNSET:
            return self._base_url or ""
        if self._base_url:
            raise ConfigurationError("Router: baseUrl already set")
        return self.factory.builder(self).base_url(path)

    def claim_base_url(self, path: str) -> None:
        if self._base_url:
            raise ConfigurationError("Router: baseUrl already set")
        self._base_url = path

    def url(self, pattern: str) -> RouteBuilder:
        return self.factory.builder(self).url(pattern)

    def schema(self, name_or_code: Any, json_schema: Any = None) -> RouteBuilder:
        return self.factory.builder(self).schema(name_or_code, json_schema)

    def endpoints(self, force: bool = False) -> Tuple[Endpoint, ...]:
        return self.factory.endpoints(force)


class RouterFactory:
    """Creates extended routers that share one schema registry and endpoint list.

    Example:
        Router = RouterFactory(default_method="POST")
        router = Router()
        router.schema("User = {id: id, name: string}")
        router.url("/users/:id").params("User.props('id')").then(load_user)
        Router.endpoints()
    """

    def __init__(self, config: Optional[ExtensionConfig] = None, **options: Any):
        if config is not None and options:
            raise ConfigurationError("Pass either an ExtensionConfig or keyword options, not both")
        self.config = config if config is not None else ExtensionConfig(**options)
        self.config.validate()

        self.registry = SchemaRegistry(self.config.schemas)
        self.compiler = EndpointCompiler(self.registry, self.config.default_method)
        self.request_validator = RequestValidator(self.config.request_engine)
        self.response_guard = ResponseGuard(self.config.response_engine)
        self.builders: List[RouteBuilder] = []
        self._endpoints: Optional[Tuple[Endpoint, ...]] = None
        self._dirty = True
        self._started = False

    def __call__(self) -> ExtendedRouter:
        return ExtendedRouter(self)

    def builder(self, router: ExtendedRouter) -> RouteBuilder:
        builder = RouteBuilder(self, router)
        self.builders.append(builder)
        self.invalidate()
        return builder

    def descriptors(self) -> List[EndpointDescriptor]:
        return [builder.descriptor for builder in self.builders]

    def invalidate(self) -> None:
        self._dirty = True

    def endpoints(self, force: bool = False) -> Tuple[Endpoint, ...]:
        """Compile every registered endpoint; cached until something changes or ``force``."""
        if self._endpoints is not None and not force and not self._dirty:
            return self._endpoints

        self._endpoints = self.compiler.compile(self.descriptors(), force=force)
        self._dirty = False
        return self._endpoints

    def prepare(self, descriptor: EndpointDescriptor) -> None:
        """Make one route's schemas current before it validates a request."""
        if self._endpoints is None or self._dirty:
            self.compiler.prepare(descriptor, self.descriptors())

    def startup(self) -> None:
        """Compile all endpoints once, before the first request is served.

        Runs only when ``parse_endpoints`` is set. Errors propagate, so a bad
        annotation anywhere stops the application instead of failing one
        request later.
        """
        if not self.config.parse_endpoints or self._started:
            return
        logger.debug(f"Compiling {len(self.builders)} endpoints at startup")
        self.endpoints()
        self._started = True
