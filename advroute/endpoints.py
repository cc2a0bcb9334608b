"""
Endpoint descriptors and their compiled, public form.

A route builder fills in an ``EndpointDescriptor`` while the caller chains
declarations. Schema-bearing fields hold ``SchemaSlot`` objects that move
through three forms: the raw declaration, the parsed AST and the JSON-Schema
document, plus a validator compiled lazily on first use. The compiler turns
each descriptor into an immutable ``Endpoint`` for documentation.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple

from .exceptions import ConfigurationError
from .parser import Declaration, Node, SchemaLiteral, parse_annotation
from .schemas import SchemaRegistry, compile_ast, schema_from_object

if TYPE_CHECKING:
    from .validation import CompiledValidator, ValidatorEngine


@dataclass(eq=False)
class SchemaSlot:
    """One schema declaration in its raw, AST and JSON-Schema forms.

    ``generation`` records the registry generation the JSON-Schema was
    materialized against; a later declaration makes the slot stale.
    """

    raw: Any
    ast: Optional[Node] = None
    json_schema: Optional[Dict[str, Any]] = None
    validate: Optional["CompiledValidator"] = None
    generation: Optional[int] = None

    def parse(self, registry: SchemaRegistry) -> Node:
        """Phase 1: build the AST, registering ``Name = ...`` declarations."""
        if isinstance(self.raw, str):
            self.ast = parse_annotation(self.raw)
        else:
            self.ast = SchemaLiteral(schema_from_object(self.raw))

        if isinstance(self.ast, Declaration):
            registry.declare(self.ast.name, self.ast.value)
        return self.ast

    def materialize(self, registry: SchemaRegistry) -> Dict[str, Any]:
        """Phase 2: compile the AST into JSON-Schema."""
        if self.ast is None:
            self.parse(registry)
        assert self.ast is not None
        self.json_schema = compile_ast(self.ast, registry)
        self.generation = registry.generation
        self.validate = None
        return self.json_schema

    def is_stale(self, registry: SchemaRegistry) -> bool:
        return self.json_schema is None or self.generation != registry.generation

    def compile_validator(self, engine: "ValidatorEngine") -> "CompiledValidator":
        if self.validate is None:
            if self.json_schema is None:
                raise ConfigurationError("Schema used before endpoints were compiled")
            self.validate = engine.compile(self.json_schema)
        return self.validate

    def reset(self) -> None:
        self.ast = None
        self.json_schema = None
        self.validate = None
        self.generation = None


@dataclass(eq=False)
class ResponseContract:
    """A response schema, optionally restricted to matching status codes."""

    slot: SchemaSlot
    code: Optional[str] = None
    status_schema: Optional[Dict[str, Any]] = None
    status_validate: Optional["CompiledValidator"] = None

    def compile_status_validator(self, engine: "ValidatorEngine") -> "CompiledValidator":
        if self.status_validate is None:
            assert self.status_schema is not None
            self.status_validate = engine.compile(self.status_schema)
        return self.status_validate

    def reset(self) -> None:
        self.status_validate = None


@dataclass(eq=False)
class SchemaDeclaration:
    """A named schema contributed to the shared registry by ``schema()``."""

    slot: SchemaSlot
    name: Optional[str] = None

    @property
    def declared_name(self) -> Optional[str]:
        if self.name:
            return self.name
        if isinstance(self.slot.ast, Declaration):
            return self.slot.ast.name
        return None


@dataclass
class EndpointDescriptor:
    """Mutable record of everything declared on one route builder."""

    namespace: Optional[str] = None
    description: Optional[str] = None
    base_url: Optional[str] = None
    url: Optional[str] = None
    params: Optional[SchemaSlot] = None
    query: Optional[SchemaSlot] = None
    body: Optional[SchemaSlot] = None
    file: Optional[SchemaSlot] = None
    files: Optional[SchemaSlot] = None
    response: List[ResponseContract] = field(default_factory=list)
    schema: List[SchemaDeclaration] = field(default_factory=list)
    call: Any = None

    def declared_fields(self) -> Iterator[Tuple[str, Any]]:
        """Yield ``(field, value)`` for every field that was set, in declaration order."""
        for name in DESCRIPTOR_FIELDS:
            value = getattr(self, name)
            if value is None or (isinstance(value, list) and not value):
                continue
            yield name, value


DESCRIPTOR_FIELDS = (
    "namespace",
    "description",
    "base_url",
    "url",
    "params",
    "query",
    "body",
    "file",
    "files",
    "response",
    "schema",
    "call",
)


@dataclass(frozen=True)
class UrlSpec:
    method: str
    path: str

    def to_dict(self) -> Dict[str, str]:
        return {"method": self.method, "path": self.path}


@dataclass(frozen=True)
class ResponseSpec:
    code: Optional[str]
    schema: Dict[str, Any]
    status_schema: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"schema": self.schema}
        if self.code is not None:
            data["code"] = self.code
        return data


@dataclass(frozen=True)
class SchemaSpec:
    name: Optional[str]
    schema: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "schema": self.schema}


@dataclass(frozen=True)
class Endpoint:
    """Compiled, introspectable contract of one route builder."""

    namespace: Optional[str] = None
    description: Optional[str] = None
    base_url: Optional[str] = None
    url: Optional[UrlSpec] = None
    params: Optional[Dict[str, Any]] = None
    query: Optional[Dict[str, Any]] = None
    body: Optional[Dict[str, Any]] = None
    file: Optional[Dict[str, Any]] = None
    files: Optional[Dict[str, Any]] = None
    response: Tuple[ResponseSpec, ...] = ()
    schema: Tuple[SchemaSpec, ...] = ()
    call: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready view, omitting fields that were never declared."""
        data: Dict[str, Any] = {}
        for name in DESCRIPTOR_FIELDS:
            value = getattr(self, name)
            if value is None or value == ():
                continue
            if isinstance(value, tuple):
                data[name] = [item.to_dict() for item in value]
            elif hasattr(value, "to_dict"):
                data[name] = value.to_dict()
            elif callable(value):
                data[name] = getattr(value, "__qualname__", repr(value))
            else:
                data[name] = value
        return data
