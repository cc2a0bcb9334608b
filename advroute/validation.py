"""
Request and response validation against compiled JSON-Schema documents.

``ValidatorEngine`` wraps the ``jsonschema`` library: it compiles a schema
once into a reusable ``CompiledValidator`` and, when ``coerce_types`` is
enabled, converts scalar property values to their declared type while
validating (numeric strings to numbers, "true" to True, numbers to
strings...).
"""

import logging
import re
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Sequence

from jsonschema import FormatChecker
from jsonschema import exceptions as jsonschema_exceptions
from jsonschema import validators as jsonschema_validators

from .exceptions import AnnotationError, RequestValidationError, ResponseValidationError
from .models import Request, Response, files_to_json, to_json_compatible

if TYPE_CHECKING:
    from .endpoints import EndpointDescriptor, ResponseContract

logger = logging.getLogger(__name__)

REQUEST_SLOTS = ("params", "query", "body", "file", "files")

_SLOT_MESSAGES = {
    "params": "Invalid URL params",
    "query": "Invalid URL query",
    "body": "Invalid request body",
    "file": "Invalid request file",
    "files": "Invalid request files",
}

_NUMERIC_RE = re.compile(r"^\s*-?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?\s*$")
_INTEGER_RE = re.compile(r"^\s*-?\d+\s*$")

_NO_COERCION = object()


def _matches_type(value: Any, type_name: str) -> bool:
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if type_name == "integer":
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if type_name == "boolean":
        return isinstance(value, bool)
    if type_name == "null":
        return value is None
    if type_name == "object":
        return isinstance(value, dict)
    if type_name == "array":
        return isinstance(value, list)
    return True


def _coerce_to(value: Any, type_name: str) -> Any:
    if type_name in ("number", "integer"):
        if isinstance(value, bool):
            return int(value)
        if value is None:
            return 0
        if isinstance(value, str):
            if _INTEGER_RE.match(value):
                return int(value)
            if type_name == "number" and _NUMERIC_RE.match(value):
                return float(value)
            if type_name == "integer" and _NUMERIC_RE.match(value):
                number = float(value)
                if number.is_integer():
                    return int(number)
        return _NO_COERCION

    if type_name == "string":
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        if value is None:
            return ""
        return _NO_COERCION

    if type_name == "boolean":
        if value in ("true", 1) and not isinstance(value, bool):
            return True
        if value in ("false", 0) and not isinstance(value, bool):
            return False
        if value is None:
            return False
        return _NO_COERCION

    if type_name == "null":
        if value == "" or (value == 0 and not isinstance(value, str)) or value is False:
            return None
        return _NO_COERCION

    return _NO_COERCION


def coerce_value(value: Any, schema: Any) -> Any:
    """Coerce a scalar ``value`` to the type declared by ``schema`` when possible."""
    if not isinstance(schema, dict) or "type" not in schema:
        return value
    if isinstance(value, (dict, list)):
        return value

    declared = schema["type"]
    types: Sequence[str] = [declared] if isinstance(declared, str) else declared
    if any(_matches_type(value, type_name) for type_name in types):
        return value

    for type_name in types:
        coerced = _coerce_to(value, type_name)
        if coerced is not _NO_COERCION:
            return coerced
    return value


_coercing_classes: Dict[type, type] = {}


def _coercing_validator_class(validator_class: type) -> type:
    """Extend a jsonschema validator class so properties and items coerce in place."""
    if validator_class in _coercing_classes:
        return _coercing_classes[validator_class]

    base_properties = validator_class.VALIDATORS["properties"]
    base_items = validator_class.VALIDATORS.get("items")

    def properties(validator, properties, instance, schema):
        if validator.is_type(instance, "object"):
            for name, subschema in properties.items():
                if name in instance:
                    instance[name] = coerce_value(instance[name], subschema)
        yield from base_properties(validator, properties, instance, schema)

    def items(validator, items, instance, schema):
        if validator.is_type(instance, "array") and isinstance(items, dict):
            for index, item in enumerate(instance):
                instance[index] = coerce_value(item, items)
        yield from base_items(validator, items, instance, schema)

    overrides: Dict[str, Callable] = {"properties": properties}
    if base_items is not None:
        overrides["items"] = items

    coercing = jsonschema_validators.extend(validator_class, overrides)
    _coercing_classes[validator_class] = coercing
    return coercing


def format_error(error: jsonschema_exceptions.ValidationError) -> Dict[str, Any]:
    """Convert a jsonschema error into the structured error payload."""
    params: Dict[str, Any] = {}
    if error.validator == "required" and isinstance(error.instance, dict):
        missing = [name for name in error.validator_value if name not in error.instance]
        if missing:
            params["missingProperty"] = missing[0]
    elif error.validator in ("type", "const", "enum", "format", "minimum", "maximum",
                             "exclusiveMinimum", "exclusiveMaximum", "minLength",
                             "maxLength", "minItems", "maxItems", "pattern"):
        params[error.validator] = error.validator_value

    return {
        "keyword": error.validator,
        "instancePath": "".join(f"/{part}" for part in error.absolute_path),
        "schemaPath": "#" + "".join(f"/{part}" for part in error.relative_schema_path),
        "params": params,
        "message": error.message,
    }


class CompiledValidator:
    """A reusable validator for one schema.

    Calling it returns a bool; the structured errors of the last call are
    kept on ``errors``.
    """

    def __init__(self, schema: Dict[str, Any], validator: Any):
        self.schema = schema
        self._validator = validator
        self.errors: List[Dict[str, Any]] = []

    def __call__(self, data: Any) -> bool:
        self.errors = [format_error(error) for error in self._validator.iter_errors(data)]
        return not self.errors


class ValidatorEngine:
    """Compiles JSON-Schema documents into ``CompiledValidator`` objects."""

    def __init__(self, coerce_types: bool = True, formats: bool = True,
                 default_validator: type = jsonschema_validators.Draft7Validator):
        self.coerce_types = coerce_types
        self.formats = formats
        self.default_validator = default_validator

    def compile(self, schema: Dict[str, Any]) -> CompiledValidator:
        validator_class = jsonschema_validators.validator_for(schema, default=self.default_validator)
        try:
            validator_class.check_schema(schema)
        except jsonschema_exceptions.SchemaError as exc:
            raise AnnotationError(f"Invalid JSON schema: {exc.message}") from exc

        if self.coerce_types:
            validator_class = _coercing_validator_class(validator_class)

        format_checker = FormatChecker() if self.formats else None
        return CompiledValidator(schema, validator_class(schema, format_checker=format_checker))

    def __repr__(self) -> str:
        return f"ValidatorEngine(coerce_types={self.coerce_types}, formats={self.formats})"


class RequestValidator:
    """Validates one request against an endpoint descriptor's slots."""

    def __init__(self, engine: ValidatorEngine):
        self.engine = engine

    def validate(self, descriptor: "EndpointDescriptor", request: Request) -> None:
        for name in REQUEST_SLOTS:
            slot = getattr(descriptor, name)
            if slot is None:
                continue

            validate = slot.compile_validator(self.engine)

            if name == "params":
                data: Any = dict(request.params or {})
            elif name in ("file", "files"):
                data = files_to_json(getattr(request, name))
            else:
                data = getattr(request, name)

            if not validate(data):
                logger.warning(f"Validation failed for {name} of {request.method.value} {request.path}: {validate.errors}")
                raise RequestValidationError(_SLOT_MESSAGES[name], name, validate.errors)

            if name == "params":
                self._apply_params(slot.json_schema, data, request)

    @staticmethod
    def _apply_params(schema: Dict[str, Any], coerced: Dict[str, Any], request: Request) -> None:
        # Only declared keys are written back; extras keep their raw values.
        for key in schema.get("properties", {}):
            if key in coerced:
                request.params[key] = coerced[key]


class ResponseGuard:
    """Checks the first JSON payload a response sends against its contracts."""

    def __init__(self, engine: ValidatorEngine):
        self.engine = engine

    def install(self, contracts: Iterable["ResponseContract"], response: Response) -> None:
        if response.headers_sent or response.intercepted:
            return
        contracts = list(contracts)
        response.intercept_json(lambda data: self.check(contracts, data, response.status_code))

    def check(self, contracts: Sequence["ResponseContract"], data: Any, status_code: Optional[int]) -> Any:
        """Return the normalized payload, or raise ``ResponseValidationError``."""
        body = to_json_compatible(data)
        last: Optional[CompiledValidator] = None

        for contract in contracts:
            if contract.status_schema is not None and status_code is not None:
                if not contract.compile_status_validator(self.engine)(status_code):
                    continue

            validate = contract.slot.compile_validator(self.engine)
            last = validate
            if validate(body):
                return body

        errors = last.errors if last is not None else []
        logger.warning(f"Response validation failed for status {status_code}: {errors}")
        raise ResponseValidationError("Invalid response body", errors)
