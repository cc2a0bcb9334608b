"""Two-phase compilation of endpoint descriptors into public endpoints."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Sequence, Tuple

from .annotations import FIELDS
from .endpoints import Endpoint, EndpointDescriptor, SchemaSlot
from .exceptions import ConfigurationError
from .schemas import SchemaRegistry

logger = logging.getLogger(__name__)


def iter_slots(descriptor: EndpointDescriptor) -> Iterator[SchemaSlot]:
    """Yield every schema slot a descriptor carries, in field order."""
    for name, value in descriptor.declared_fields():
        yield from FIELDS[name].slots(value)


class EndpointCompiler:
    """Turns raw annotations into JSON-Schema for a whole set of routes.

    Phase 1 parses every slot of every descriptor, which also fills the
    registry with ``Name = ...`` declarations. Only then does phase 2 compile
    ASTs into JSON-Schema, so a route may reference a schema declared by a
    route registered after it.

    A slot is compiled again whenever the registry has seen a declaration
    since it was last materialized, so redeclaring ``Name = ...`` reaches
    every route that uses it.
    """

    def __init__(self, registry: SchemaRegistry, default_method: str = "GET"):
        self.registry = registry
        self.default_method = default_method
        self._running = False

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if self._running:
            raise ConfigurationError("Endpoint compilation is already running")
        self._running = True
        try:
            yield
        finally:
            self._running = False

    def compile(self, descriptors: Sequence[EndpointDescriptor], force: bool = False) -> Tuple[Endpoint, ...]:
        with self._exclusive():
            if force:
                self._reset(descriptors)

            # Phase 1: declarations first, then every other slot.
            self._declare(descriptors)
            for descriptor in descriptors:
                self._parse(descriptor)

            # Phase 2: the registry is complete, materialize JSON-Schema.
            pending = [slot for descriptor in descriptors for slot in iter_slots(descriptor)
                       if slot.is_stale(self.registry)]
            logger.debug(f"Compiling {len(descriptors)} endpoints ({len(pending)} pending schemas, force={force})")
            for slot in pending:
                slot.materialize(self.registry)

            return tuple(self.finalize(descriptor) for descriptor in descriptors)

    def prepare(self, descriptor: EndpointDescriptor, descriptors: Sequence[EndpointDescriptor]) -> None:
        """Bring one descriptor's schemas up to date before it validates a request.

        Declarations of every descriptor are read first so forward references
        resolve, but only ``descriptor``'s own slots are materialized. An
        unknown name in another route therefore never fails this one.
        """
        with self._exclusive():
            self._declare(descriptors)
            self._parse(descriptor)
            for slot in iter_slots(descriptor):
                if slot.is_stale(self.registry):
                    slot.materialize(self.registry)

    def _declare(self, descriptors: Sequence[EndpointDescriptor]) -> None:
        for descriptor in descriptors:
            for declaration in descriptor.schema:
                if declaration.slot.ast is None:
                    ast = declaration.slot.parse(self.registry)
                    if declaration.name:
                        self.registry.declare(declaration.name, ast)

    def _parse(self, descriptor: EndpointDescriptor) -> None:
        for slot in iter_slots(descriptor):
            if slot.ast is None:
                slot.parse(self.registry)

    def _reset(self, descriptors: Sequence[EndpointDescriptor]) -> None:
        self.registry.clear_cache()
        for descriptor in descriptors:
            for slot in iter_slots(descriptor):
                slot.reset()
            for contract in descriptor.response:
                contract.reset()

    def finalize(self, descriptor: EndpointDescriptor) -> Endpoint:
        values: Dict[str, Any] = {}
        for name, value in descriptor.declared_fields():
            values[name] = FIELDS[name].finalize(value, default_method=self.default_method)
        return Endpoint(**values)
