"""
Parser for the compact schema annotation language.

Annotations describe data shapes in a terse, JavaScript-object-like syntax::

    {id: number, name: string, email?: email}
    [User]
    User.props('id')
    string.minLength(3) || null
    User = {id: id, name: string}

``parse_annotation`` turns text into a small immutable AST. Named references
are kept unresolved; ``advroute.schemas.compile_ast`` resolves them against
a ``SchemaRegistry`` when producing JSON-Schema.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from .exceptions import AnnotationError


class Node:
    """Base class for annotation AST nodes."""

    __slots__ = ()


@dataclass(frozen=True)
class Ref(Node):
    """Reference to a named schema (``string``, ``User``, ``date-time``)."""

    name: str


@dataclass(frozen=True)
class Const(Node):
    """Literal value: ``"a"``, ``1``, ``true``, ``null``."""

    value: Any


@dataclass(frozen=True)
class Prop(Node):
    name: str
    value: Node
    optional: bool = False


@dataclass(frozen=True)
class Spread(Node):
    """``...Name`` inside an object literal: copies the referenced properties."""

    value: Node


@dataclass(frozen=True)
class ObjectNode(Node):
    members: Tuple[Union[Prop, Spread], ...] = ()


@dataclass(frozen=True)
class ArrayNode(Node):
    items: Optional[Node] = None


@dataclass(frozen=True)
class UnionNode(Node):
    options: Tuple[Node, ...]


@dataclass(frozen=True)
class MethodCall(Node):
    """``target.method(args...)``; arguments are plain Python values."""

    target: Node
    method: str
    args: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class Declaration(Node):
    """``Name = expr``: contributes ``expr`` to the named-schema registry."""

    name: str
    value: Node


class SchemaLiteral(Node):
    """A JSON-Schema document supplied as an object, passed through untouched."""

    __slots__ = ("schema",)

    def __init__(self, schema: Dict[str, Any]):
        self.schema = schema

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SchemaLiteral) and other.schema == self.schema

    def __repr__(self) -> str:
        return f"SchemaLiteral({self.schema!r})"


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<number>-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)
  | (?P<spread>\.\.\.)
  | (?P<union>\|\|)
  | (?P<ident>[A-Za-z_$][\w$]*(?:-[A-Za-z_$][\w$]*)*)
  | (?P<punct>[{}\[\]():,?.=|])
    """,
    re.VERBOSE,
)

_KEYWORDS = {"true": True, "false": False, "null": None}


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    position: int


def tokenize(text: str) -> List[Token]:
    """Split annotation text into tokens, dropping whitespace."""
    tokens: List[Token] = []
    position = 0
    while position < len(text):
        match = _TOKEN_RE.match(text, position)
        if not match:
            raise AnnotationError(f"Unexpected character {text[position]!r}", text, position)
        kind = match.lastgroup or ""
        if kind == "punct" and match.group() == "|":
            kind = "union"
        if kind != "ws":
            tokens.append(Token(kind, match.group(), position))
        position = match.end()
    tokens.append(Token("eof", "", len(text)))
    return tokens


class AnnotationParser:
    """Recursive-descent parser over the token list of one annotation."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.index + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        if token.kind != "eof":
            self.index += 1
        return token

    def accept(self, value: str) -> bool:
        if self.current.value == value and self.current.kind in ("punct", "spread", "union"):
            self.advance()
            return True
        return False

    def expect(self, value: str) -> Token:
        token = self.current
        if not self.accept(value):
            self.error(f"Expected {value!r} but found {token.value or 'end of input'!r}")
        return token

    def error(self, message: str):
        raise AnnotationError(message, self.text, self.current.position)

    def parse(self) -> Node:
        if self.current.kind == "ident" and self.peek().value == "=":
            name = self.advance().value
            self.advance()
            node: Node = Declaration(name, self.parse_union())
        else:
            node = self.parse_union()

        if self.current.kind != "eof":
            self.error(f"Unexpected {self.current.value!r}")
        return node

    def parse_union(self) -> Node:
        options = [self.parse_postfix()]
        while self.current.kind == "union":
            self.advance()
            options.append(self.parse_postfix())
        if len(options) == 1:
            return options[0]
        return UnionNode(tuple(options))

    def parse_postfix(self) -> Node:
        node = self.parse_primary()
        while self.current.value == "." and self.current.kind == "punct":
            self.advance()
            if self.current.kind != "ident":
                self.error("Expected method name after '.'")
            method = self.advance().value
            args: List[Any] = []
            if self.accept("("):
                if not self.accept(")"):
                    args.append(self.parse_value())
                    while self.accept(","):
                        args.append(self.parse_value())
                    self.expect(")")
            node = MethodCall(node, method, tuple(args))
        return node

    def parse_primary(self) -> Node:
        token = self.current

        if token.kind == "punct" and token.value == "{":
            return self.parse_object()

        if token.kind == "punct" and token.value == "[":
            self.advance()
            if self.accept("]"):
                return ArrayNode()
            items = self.parse_union()
            self.expect("]")
            return ArrayNode(items)

        if token.kind == "punct" and token.value == "(":
            self.advance()
            node = self.parse_union()
            self.expect(")")
            return node

        if token.kind == "string":
            self.advance()
            return Const(_unquote(token.value))

        if token.kind == "number":
            self.advance()
            return Const(_number(token.value))

        if token.kind == "ident":
            self.advance()
            if token.value in _KEYWORDS:
                return Const(_KEYWORDS[token.value])
            return Ref(token.value)

        self.error(f"Unexpected {token.value or 'end of input'!r}")

    def parse_object(self) -> ObjectNode:
        self.expect("{")
        members: List[Union[Prop, Spread]] = []
        while not self.accept("}"):
            if self.current.kind == "spread":
                self.advance()
                members.append(Spread(self.parse_postfix()))
            else:
                token = self.advance()
                if token.kind == "ident":
                    name = token.value
                elif token.kind == "string":
                    name = _unquote(token.value)
                else:
                    self.index -= 1
                    self.error("Expected property name")
                optional = self.accept("?")
                self.expect(":")
                members.append(Prop(name, self.parse_union(), optional))

            if not self.accept(","):
                self.expect("}")
                break
        return ObjectNode(tuple(members))

    def parse_value(self) -> Any:
        """Parse a plain argument value for method calls."""
        token = self.current
        if token.kind == "string":
            self.advance()
            return _unquote(token.value)
        if token.kind == "number":
            self.advance()
            return _number(token.value)
        if token.kind == "ident" and token.value in _KEYWORDS:
            self.advance()
            return _KEYWORDS[token.value]
        if token.kind == "punct" and token.value == "[":
            self.advance()
            values: List[Any] = []
            if not self.accept("]"):
                values.append(self.parse_value())
                while self.accept(","):
                    values.append(self.parse_value())
                self.expect("]")
            return values
        self.error(f"Expected a literal argument but found {token.value or 'end of input'!r}")


def _unquote(raw: str) -> str:
    body = raw[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


def _number(raw: str) -> Union[int, float]:
    if re.fullmatch(r"-?\d+", raw):
        return int(raw)
    return float(raw)


def parse_annotation(text: str) -> Node:
    """Parse annotation text into an AST node."""
    if not isinstance(text, str):
        raise AnnotationError(f"Annotation must be a string, got {type(text).__name__}")
    if not text.strip():
        raise AnnotationError("Annotation is empty", text, 0)
    return AnnotationParser(text).parse()
