"""Tests for validator engines, coercion, request validation and the response guard."""

from dataclasses import dataclass
from datetime import date
from enum import Enum

import pytest
from pydantic import BaseModel

from advroute import (
    AnnotationError,
    HTTPMethod,
    Request,
    RequestValidationError,
    Response,
    ResponseValidationError,
    SchemaRegistry,
    UploadedFile,
    ValidatorEngine,
)
from advroute.annotations import FIELDS
from advroute.endpoints import EndpointDescriptor, SchemaSlot
from advroute.models import to_json_compatible
from advroute.validation import RequestValidator, ResponseGuard, coerce_value


def compiled_slot(spec, registry=None):
    slot = SchemaSlot(spec)
    slot.materialize(registry or SchemaRegistry())
    return slot


def compiled_contract(spec, code=None, default_code=None, registry=None):
    contract = FIELDS["response"].prepare(spec, code, default_code)
    contract.slot.materialize(registry or SchemaRegistry())
    return contract


class TestCoerceValue:
    """Test scalar coercion rules."""

    @pytest.mark.parametrize("value,schema,expected", [
        ("10", {"type": "number"}, 10),
        ("1.5", {"type": "number"}, 1.5),
        ("7", {"type": "integer"}, 7),
        ("true", {"type": "boolean"}, True),
        ("false", {"type": "boolean"}, False),
        (1, {"type": "boolean"}, True),
        (5, {"type": "string"}, "5"),
        (True, {"type": "string"}, "true"),
        ("", {"type": "null"}, None),
        ("5", {"type": ["null", "integer"]}, 5),
    ])
    def test_coercible(self, value, schema, expected):
        result = coerce_value(value, schema)
        assert result == expected
        assert type(result) is type(expected)

    @pytest.mark.parametrize("value,schema", [
        ("abc", {"type": "number"}),
        ("1.5", {"type": "integer"}),
        ("yes", {"type": "boolean"}),
        ({"a": 1}, {"type": "string"}),
        ("x", {"minLength": 1}),
    ])
    def test_not_coercible(self, value, schema):
        assert coerce_value(value, schema) == value

    def test_matching_value_untouched(self):
        assert coerce_value("abc", {"type": ["string", "number"]}) == "abc"


class TestValidatorEngine:
    def test_coercing_engine_mutates_properties(self):
        validate = ValidatorEngine().compile({
            "type": "object",
            "properties": {"id": {"type": "integer"}, "tags": {"type": "array", "items": {"type": "number"}}},
        })
        data = {"id": "3", "tags": ["1", "2.5"]}
        assert validate(data)
        assert data == {"id": 3, "tags": [1, 2.5]}

    def test_strict_engine_rejects(self):
        validate = ValidatorEngine(coerce_types=False).compile({
            "type": "object", "properties": {"id": {"type": "integer"}},
        })
        data = {"id": "3"}
        assert not validate(data)
        assert data == {"id": "3"}
        assert validate.errors[0]["keyword"] == "type"
        assert validate.errors[0]["instancePath"] == "/id"

    def test_required_error_shape(self):
        validate = ValidatorEngine().compile({"type": "object", "required": ["test"]})
        assert not validate({"wrong": 1})
        error = validate.errors[0]
        assert error["keyword"] == "required"
        assert error["params"] == {"missingProperty": "test"}
        assert error["schemaPath"] == "#/required"
        assert "test" in error["message"]

    def test_formats_checked(self):
        validate = ValidatorEngine().compile({"type": "string", "format": "date"})
        assert validate("2024-02-29")
        assert not validate("2024-13-01")

    def test_formats_disabled(self):
        validate = ValidatorEngine(formats=False).compile({"type": "string", "format": "date"})
        assert validate("not a date")

    def test_invalid_schema(self):
        with pytest.raises(AnnotationError, match="Invalid JSON schema"):
            ValidatorEngine().compile({"type": "nope"})

    def test_same_annotation_compiles_to_equivalent_validators(self):
        engine = ValidatorEngine()
        first = engine.compile(compiled_slot("{id: id}").json_schema)
        second = engine.compile(compiled_slot("{id: id}").json_schema)
        for sample in ({"id": 1}, {"id": 0}, {}, {"id": "2"}):
            assert first(dict(sample)) == second(dict(sample))


class Color(Enum):
    RED = "red"


class Item(BaseModel):
    name: str


@dataclass
class Point:
    x: int
    y: int


class TestToJsonCompatible:
    def test_nested_values(self):
        class Wrapper:
            def to_json(self):
                return {"when": date(2024, 1, 2), "tags": ("a", "b")}

        value = {
            "wrapper": Wrapper(),
            "item": Item(name="x"),
            "point": Point(1, 2),
            "color": Color.RED,
            "ids": {3},
        }
        assert to_json_compatible(value) == {
            "wrapper": {"when": "2024-01-02", "tags": ["a", "b"]},
            "item": {"name": "x"},
            "point": {"x": 1, "y": 2},
            "color": "red",
            "ids": [3],
        }

    def test_input_not_mutated(self):
        original = {"a": [1, 2]}
        copied = to_json_compatible(original)
        copied["a"].append(3)
        assert original == {"a": [1, 2]}


def make_request(**kwargs):
    return Request(method=HTTPMethod.POST, path="/test", **kwargs)


class TestRequestValidator:
    """Test slot order, coercion and error reporting."""

    def setup_method(self):
        self.validator = RequestValidator(ValidatorEngine())
        self.descriptor = EndpointDescriptor(
            params=compiled_slot("{id: id}"),
            query=compiled_slot("{search: string, limit?: integer}"),
            body=compiled_slot("{name: string, age: number}"),
        )

    def test_valid_request_is_coerced(self):
        request = make_request(
            params={"id": "1", "extra": "x"},
            query={"search": "a", "limit": "5"},
            body={"name": "max", "age": "20"},
        )
        self.validator.validate(self.descriptor, request)
        assert request.params == {"id": 1, "extra": "x"}
        assert request.query == {"search": "a", "limit": 5}
        assert request.body == {"name": "max", "age": 20}

    @pytest.mark.parametrize("overrides,failing", [
        ({"params": {"id": "asd"}}, "params"),
        ({"params": {"id": "0"}}, "params"),
        ({"query": {}}, "query"),
        ({"body": {"name": "max"}}, "body"),
    ])
    def test_first_failing_slot_reported(self, overrides, failing):
        fields = {"params": {"id": "1"}, "query": {"search": "a"}, "body": {"name": "max", "age": 1}}
        fields.update(overrides)
        with pytest.raises(RequestValidationError) as exc_info:
            self.validator.validate(self.descriptor, make_request(**fields))

        error = exc_info.value
        assert error.property == failing
        assert error.to_dict()["name"] == "RequestValidationError"
        assert error.to_dict()["property"] == failing
        assert error.errors

    def test_failed_params_not_written_back(self):
        request = make_request(params={"id": "asd"}, query={"search": "a"}, body={"name": "a", "age": 1})
        with pytest.raises(RequestValidationError):
            self.validator.validate(self.descriptor, request)
        assert request.params == {"id": "asd"}

    def test_file_slots_use_file_metadata(self):
        descriptor = EndpointDescriptor(
            file=compiled_slot("{mimetype: 'image/png', size: number.maximum(100)}"),
            files=compiled_slot("[{originalname: string}].minItems(1)"),
        )
        request = make_request(
            file=UploadedFile("avatar", "a.png", "image/png", size=10),
            files=[UploadedFile("docs", "a.txt")],
        )
        self.validator.validate(descriptor, request)

        request.file = UploadedFile("avatar", "big.png", "image/png", size=1000)
        with pytest.raises(RequestValidationError) as exc_info:
            self.validator.validate(descriptor, request)
        assert exc_info.value.property == "file"


class TestResponseGuard:
    """Test contract selection by status and body."""

    def setup_method(self):
        self.guard = ResponseGuard(ValidatorEngine())
        self.contracts = [
            compiled_contract("{success: false}", "300-400"),
            compiled_contract("{message: string}", 500),
            compiled_contract("{name: string}"),
        ]

    def test_range_contract(self):
        assert self.guard.check(self.contracts, {"success": False}, 350) == {"success": False}

    def test_exact_contract(self):
        assert self.guard.check(self.contracts, {"message": "x"}, 500) == {"message": "x"}

    def test_any_status_contract(self):
        assert self.guard.check(self.contracts, {"name": "x"}, 201) == {"name": "x"}
        assert self.guard.check(self.contracts, {"name": "x"}, 350) == {"name": "x"}

    def test_failure_carries_last_errors(self):
        with pytest.raises(ResponseValidationError) as exc_info:
            self.guard.check(self.contracts, {"wrong": 1}, 500)
        error = exc_info.value
        assert error.to_dict()["name"] == "ResponseValidationError"
        assert error.errors[0]["params"] == {"missingProperty": "name"}

    def test_no_matching_status_has_no_errors(self):
        contracts = [compiled_contract("{a: string}", 200)]
        with pytest.raises(ResponseValidationError) as exc_info:
            self.guard.check(contracts, {"a": "x"}, 404)
        assert exc_info.value.errors == []

    def test_hook_is_one_shot(self):
        response = Response()
        self.guard.install(self.contracts, response)
        assert response.intercepted

        with pytest.raises(ResponseValidationError):
            response.json({"wrong": 1})
        assert not response.intercepted
        assert not response.headers_sent

        response.json({"wrong": 1})
        assert response.get_json_body() == {"wrong": 1}

    def test_hook_sends_coerced_payload(self):
        response = Response()
        self.guard.install([compiled_contract("{id: number}", 200)], response)
        response.json({"id": "5"})
        assert response.get_json_body() == {"id": 5}

    def test_not_installed_after_send(self):
        response = Response()
        response.send("done", "text/plain")
        self.guard.install(self.contracts, response)
        assert not response.intercepted
