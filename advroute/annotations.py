"""
Per-field handling of endpoint declarations.

Every descriptor field has an entry in ``FIELDS`` that knows how to
``prepare`` a caller's raw declaration, which ``SchemaSlot`` objects it
carries for the compiler, and how to ``finalize`` the compiled value into
its public ``Endpoint`` form.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .endpoints import (
    ResponseContract,
    ResponseSpec,
    SchemaDeclaration,
    SchemaSlot,
    SchemaSpec,
    UrlSpec,
)
from .exceptions import AnnotationError
from .models import HTTPMethod

_URL_RE = re.compile(r"^\s*(?:([A-Za-z]+)\s+)?(\S+)\s*$")
_CODE_RE = re.compile(r"^\s*(\d[\dXx]{2})(?:\s*-\s*(\d{3}))?(?:\s+(.*))?$", re.DOTALL)

StatusCode = Union[int, str]


def parse_url(text: str, default_method: str = "GET") -> Tuple[str, str]:
    """Split a ``[METHOD] /path`` annotation into ``(METHOD, path)``."""
    match = _URL_RE.match(text or "")
    if not match:
        raise AnnotationError("Invalid URL annotation", text, 0)
    method, path = match.group(1), match.group(2)
    method = (method or default_method).upper()
    if method not in HTTPMethod.__members__:
        raise AnnotationError(f"Unknown HTTP method {method!r}", text, 0)
    return method, path


def split_response_code(text: str) -> Tuple[Optional[str], str]:
    """Separate a leading status code expression from a response annotation.

    ``"300 - 400 {success: false}"`` gives ``("300-400", "{success: false}")``.
    """
    match = _CODE_RE.match(text)
    if not match or not match.group(3):
        return None, text
    start, end, rest = match.groups()
    code = start.upper() if end is None else f"{start}-{end}"
    return code, rest


def status_code_schema(code: StatusCode) -> Dict[str, Any]:
    """Compile a code (``500``, ``"300-400"``, ``"5XX"``, ``"50X"``) into an integer matcher."""
    if isinstance(code, bool):
        raise AnnotationError(f"Invalid status code {code!r}")
    if isinstance(code, int):
        return {"type": "integer", "const": code}

    text = str(code).strip().upper().replace(" ", "")
    if re.fullmatch(r"\d{3}", text):
        return {"type": "integer", "const": int(text)}

    range_match = re.fullmatch(r"(\d{3})-(\d{3})", text)
    if range_match:
        low, high = int(range_match.group(1)), int(range_match.group(2))
        if low > high:
            raise AnnotationError(f"Invalid status code range {code!r}")
        return {"type": "integer", "minimum": low, "maximum": high}

    wildcard = re.fullmatch(r"(\d{1,2})(X{1,2})", text)
    if wildcard and len(text) == 3:
        digits, wildcards = wildcard.group(1), len(wildcard.group(2))
        low = int(digits) * 10 ** wildcards
        return {"type": "integer", "minimum": low, "maximum": low + 10 ** wildcards - 1}

    raise AnnotationError(f"Invalid status code {code!r}")


def _prepare_text(value: Any) -> str:
    if not isinstance(value, str):
        raise AnnotationError(f"Expected text, got {type(value).__name__}")
    return value


def _prepare_slot(spec: Any) -> SchemaSlot:
    if spec is None:
        raise AnnotationError("Schema must not be None")
    return SchemaSlot(spec)


def _prepare_response(spec: Any, code: Optional[StatusCode] = None,
                      default_code: Optional[StatusCode] = None) -> ResponseContract:
    if isinstance(spec, str):
        inline_code, spec = split_response_code(spec)
        if code is None:
            code = inline_code
    if code is None:
        code = default_code

    contract = ResponseContract(slot=_prepare_slot(spec))
    if code is not None:
        contract.status_schema = status_code_schema(code)
        contract.code = str(code).upper()
    return contract


def _prepare_schema(name_or_code: Any, json_schema: Any = None) -> SchemaDeclaration:
    if json_schema is not None:
        return SchemaDeclaration(slot=SchemaSlot(json_schema), name=_prepare_text(name_or_code))
    return SchemaDeclaration(slot=SchemaSlot(name_or_code))


def _no_slots(value: Any) -> Iterable[SchemaSlot]:
    return ()


def _single_slot(slot: SchemaSlot) -> Iterable[SchemaSlot]:
    return (slot,)


def _response_slots(contracts: List[ResponseContract]) -> Iterable[SchemaSlot]:
    return [contract.slot for contract in contracts]


def _schema_slots(declarations: List[SchemaDeclaration]) -> Iterable[SchemaSlot]:
    return [declaration.slot for declaration in declarations]


def _finalize_value(value: Any, **options: Any) -> Any:
    return value


def _finalize_url(value: str, default_method: str = "GET", **options: Any) -> UrlSpec:
    method, path = parse_url(value, default_method)
    return UrlSpec(method=method, path=path)


def _finalize_slot(slot: SchemaSlot, **options: Any) -> Optional[Dict[str, Any]]:
    return slot.json_schema


def _finalize_response(contracts: List[ResponseContract], **options: Any) -> Tuple[ResponseSpec, ...]:
    return tuple(
        ResponseSpec(code=contract.code, schema=contract.slot.json_schema or {},
                     status_schema=contract.status_schema)
        for contract in contracts
    )


def _finalize_schema(declarations: List[SchemaDeclaration], **options: Any) -> Tuple[SchemaSpec, ...]:
    return tuple(
        SchemaSpec(name=declaration.declared_name, schema=declaration.slot.json_schema or {})
        for declaration in declarations
    )


@dataclass(frozen=True)
class FieldAnnotation:
    """How one descriptor field is prepared, compiled and published."""

    prepare: Callable[..., Any]
    slots: Callable[[Any], Iterable[SchemaSlot]]
    finalize: Callable[..., Any]


_TEXT = FieldAnnotation(_prepare_text, _no_slots, _finalize_value)
_SLOT = FieldAnnotation(_prepare_slot, _single_slot, _finalize_slot)

FIELDS: Dict[str, FieldAnnotation] = {
    "namespace": _TEXT,
    "description": _TEXT,
    "base_url": _TEXT,
    "url": FieldAnnotation(_prepare_text, _no_slots, _finalize_url),
    "params": _SLOT,
    "query": _SLOT,
    "body": _SLOT,
    "file": _SLOT,
    "files": _SLOT,
    "response": FieldAnnotation(_prepare_response, _response_slots, _finalize_response),
    "schema": FieldAnnotation(_prepare_schema, _schema_slots, _finalize_schema),
    "call": FieldAnnotation(_finalize_value, _no_slots, _finalize_value),
}
