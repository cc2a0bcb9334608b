"""
Named-schema registry and AST to JSON-Schema compilation.
"""

import copy
import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set, Union

from pydantic import BaseModel

from .exceptions import AnnotationError
from .parser import (
    ArrayNode,
    Const,
    Declaration,
    MethodCall,
    Node,
    ObjectNode,
    Prop,
    Ref,
    SchemaLiteral,
    Spread,
    UnionNode,
    parse_annotation,
)

logger = logging.getLogger(__name__)

SchemaDeclaration = Union[str, Dict[str, Any], Node]

DEFAULT_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "any": {},
    "string": {"type": "string"},
    "number": {"type": "number"},
    "integer": {"type": "integer"},
    "int": {"type": "integer"},
    "boolean": {"type": "boolean"},
    "bool": {"type": "boolean"},
    "null": {"type": "null"},
    "object": {"type": "object"},
    "array": {"type": "array"},
    "id": {"type": "integer", "minimum": 1},
    "positive": {"type": "number", "exclusiveMinimum": 0},
    "negative": {"type": "number", "exclusiveMaximum": 0},
    "unsigned": {"type": "integer", "minimum": 0},
    "date": {"type": "string", "format": "date"},
    "date-time": {"type": "string", "format": "date-time"},
    "time": {"type": "string", "format": "time"},
    "email": {"type": "string", "format": "email"},
    "uri": {"type": "string", "format": "uri"},
    "url": {"type": "string", "format": "uri"},
    "uuid": {"type": "string", "format": "uuid"},
    "ipv4": {"type": "string", "format": "ipv4"},
    "ipv6": {"type": "string", "format": "ipv6"},
    "hostname": {"type": "string", "format": "hostname"},
}


class SchemaRegistry:
    """Process-wide mapping of schema names to their declarations.

    Declarations may be annotation text, JSON-Schema dicts or parsed AST
    nodes. ``resolve`` compiles a declaration on first use and caches the
    result; the cache is dropped whenever a declaration changes so later
    lookups see the newest definition. ``generation`` counts declarations so
    compiled schemas can tell when they are out of date.
    """

    def __init__(self, seed: Optional[Mapping[str, Any]] = None):
        self._declarations: Dict[str, SchemaDeclaration] = dict(DEFAULT_SCHEMAS)
        self._resolved: Dict[str, Dict[str, Any]] = {}
        self._resolving: Set[str] = set()
        self.generation = 0
        for name, value in (seed or {}).items():
            self.declare(name, value)

    def declare(self, name: str, value: Any) -> None:
        """Register or replace a named schema."""
        if not name:
            raise AnnotationError("Schema name must not be empty")
        if not isinstance(value, (str, dict, Node)):
            value = schema_from_object(value)
        self._declarations[name] = value
        self._resolved.clear()
        self.generation += 1
        logger.debug(f"Declared schema {name!r}")

    def resolve(self, name: str) -> Dict[str, Any]:
        """Return a fresh copy of the JSON-Schema registered under ``name``."""
        if name not in self._resolved:
            if name not in self._declarations:
                raise AnnotationError(f"Unknown schema {name!r}")
            if name in self._resolving:
                raise AnnotationError(f"Circular reference to schema {name!r}")

            self._resolving.add(name)
            try:
                declaration = self._declarations[name]
                if isinstance(declaration, str):
                    declaration = parse_annotation(declaration)
                if isinstance(declaration, Node):
                    schema = compile_ast(declaration, self)
                else:
                    schema = declaration
            finally:
                self._resolving.discard(name)

            self._resolved[name] = schema

        return copy.deepcopy(self._resolved[name])

    def clear_cache(self) -> None:
        self._resolved.clear()

    def names(self) -> List[str]:
        return list(self._declarations)

    def __contains__(self, name: object) -> bool:
        return name in self._declarations

    def __iter__(self) -> Iterator[str]:
        return iter(self._declarations)

    def __len__(self) -> int:
        return len(self._declarations)


def is_pydantic_model(value: Any) -> bool:
    return isinstance(value, type) and issubclass(value, BaseModel)


def schema_from_object(value: Any) -> Dict[str, Any]:
    """Turn a literal schema object into a JSON-Schema dict."""
    if isinstance(value, dict):
        return value
    if is_pydantic_model(value):
        return _inline_definitions(value.model_json_schema())
    to_json = getattr(value, "to_json", None)
    if callable(to_json):
        return schema_from_object(to_json())
    raise AnnotationError(f"Cannot use {type(value).__name__} as a schema")


def _inline_definitions(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Replace local ``$defs`` references so the schema can be embedded anywhere."""
    definitions = schema.pop("$defs", {})

    def replace(node: Any, seen: frozenset) -> Any:
        if isinstance(node, dict):
            ref = node.get("$ref")
            if isinstance(ref, str) and ref.startswith("#/$defs/"):
                name = ref[len("#/$defs/"):]
                if name in seen or name not in definitions:
                    raise AnnotationError(f"Cannot inline recursive model reference {ref!r}")
                return replace(copy.deepcopy(definitions[name]), seen | {name})
            return {key: replace(value, seen) for key, value in node.items()}
        if isinstance(node, list):
            return [replace(item, seen) for item in node]
        return node

    return replace(schema, frozenset())


def compile_ast(node: Node, registry: SchemaRegistry) -> Dict[str, Any]:
    """Materialize an annotation AST into a JSON-Schema document."""
    if isinstance(node, SchemaLiteral):
        return node.schema

    if isinstance(node, Declaration):
        return compile_ast(node.value, registry)

    if isinstance(node, Ref):
        return registry.resolve(node.name)

    if isinstance(node, Const):
        if node.value is None:
            return {"type": "null"}
        return {"const": node.value}

    if isinstance(node, ObjectNode):
        return _compile_object(node, registry)

    if isinstance(node, ArrayNode):
        schema: Dict[str, Any] = {"type": "array"}
        if node.items is not None:
            schema["items"] = compile_ast(node.items, registry)
        return schema

    if isinstance(node, UnionNode):
        return _compile_union([compile_ast(option, registry) for option in node.options])

    if isinstance(node, MethodCall):
        return apply_method(compile_ast(node.target, registry), node.method, node.args)

    raise AnnotationError(f"Cannot compile {type(node).__name__}")


def _compile_object(node: ObjectNode, registry: SchemaRegistry) -> Dict[str, Any]:
    properties: Dict[str, Any] = {}
    required: List[str] = []

    for member in node.members:
        if isinstance(member, Spread):
            source = compile_ast(member.value, registry)
            if "properties" not in source:
                raise AnnotationError("Only object schemas can be spread")
            for name, value in source["properties"].items():
                properties[name] = value
                if name in source.get("required", []) and name not in required:
                    required.append(name)
            continue

        assert isinstance(member, Prop)
        properties[member.name] = compile_ast(member.value, registry)
        if member.optional:
            if member.name in required:
                required.remove(member.name)
        elif member.name not in required:
            required.append(member.name)

    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def _compile_union(options: List[Dict[str, Any]]) -> Dict[str, Any]:
    # Plain {"type": X} alternatives collapse into a type list.
    if all(set(option) == {"type"} and isinstance(option["type"], str) for option in options):
        types: List[str] = []
        for option in options:
            if option["type"] not in types:
                types.append(option["type"])
        return {"type": types}

    # Const alternatives collapse into an enum.
    if all(set(option) == {"const"} for option in options):
        return {"enum": [option["const"] for option in options]}

    return {"anyOf": options}


def apply_method(schema: Dict[str, Any], method: str, args: tuple) -> Dict[str, Any]:
    """Apply a ``.method(...)`` modifier to a compiled schema."""
    schema = copy.deepcopy(schema)

    if method in ("props", "pick", "omit"):
        properties = _object_properties(schema, method)
        names = _flatten_names(args)
        missing = [name for name in names if name not in properties]
        if missing:
            raise AnnotationError(f"{method}(): unknown properties {missing}")
        if method == "omit":
            kept = [name for name in properties if name not in names]
        else:
            kept = names
        schema["properties"] = {name: properties[name] for name in kept}
        if "required" in schema:
            schema["required"] = [name for name in schema["required"] if name in kept]
            if not schema["required"]:
                del schema["required"]
        return schema

    if method == "partial":
        _object_properties(schema, method)
        schema.pop("required", None)
        return schema

    if method == "required":
        properties = _object_properties(schema, method)
        names = _flatten_names(args) or list(properties)
        required = schema.setdefault("required", [])
        for name in names:
            if name not in required:
                required.append(name)
        return schema

    if not args:
        schema[method] = True
    elif len(args) == 1:
        schema[method] = args[0]
    else:
        schema[method] = list(args)
    return schema


def _object_properties(schema: Dict[str, Any], method: str) -> Dict[str, Any]:
    if "properties" not in schema:
        raise AnnotationError(f"{method}() can only be used on object schemas")
    return schema["properties"]


def _flatten_names(args: tuple) -> List[str]:
    names: List[str] = []
    for arg in args:
        if isinstance(arg, list):
            names.extend(str(item) for item in arg)
        else:
            names.append(str(arg))
    return names
