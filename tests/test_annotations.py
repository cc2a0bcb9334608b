"""Tests for URL and status code annotations and the field registry."""

import pytest

from advroute import AnnotationError
from advroute.annotations import FIELDS, parse_url, split_response_code, status_code_schema
from advroute.endpoints import ResponseContract, SchemaDeclaration, SchemaSlot, UrlSpec


class TestParseUrl:
    def test_method_and_path(self):
        assert parse_url("POST /users/:id") == ("POST", "/users/:id")

    def test_lowercase_method(self):
        assert parse_url("delete /users") == ("DELETE", "/users")

    def test_default_method(self):
        assert parse_url("/users") == ("GET", "/users")
        assert parse_url("/users", "put") == ("PUT", "/users")

    def test_unknown_method(self):
        with pytest.raises(AnnotationError, match="Unknown HTTP method"):
            parse_url("FETCH /users")

    def test_empty(self):
        with pytest.raises(AnnotationError):
            parse_url("")


class TestStatusCodes:
    """Test status code expressions."""

    def test_exact(self):
        assert status_code_schema(500) == {"type": "integer", "const": 500}
        assert status_code_schema("201") == {"type": "integer", "const": 201}

    def test_range(self):
        assert status_code_schema("300-400") == {"type": "integer", "minimum": 300, "maximum": 400}
        assert status_code_schema("300 - 400") == {"type": "integer", "minimum": 300, "maximum": 400}

    def test_wildcards(self):
        assert status_code_schema("5XX") == {"type": "integer", "minimum": 500, "maximum": 599}
        assert status_code_schema("50x") == {"type": "integer", "minimum": 500, "maximum": 509}

    @pytest.mark.parametrize("code", ["abc", "5000", "400-300", "X00", True])
    def test_invalid(self, code):
        with pytest.raises(AnnotationError):
            status_code_schema(code)

    def test_split_leading_code(self):
        assert split_response_code("300 - 400 {success: false}") == ("300-400", "{success: false}")
        assert split_response_code("500 {message: string}") == ("500", "{message: string}")
        assert split_response_code("50x {test: boolean}") == ("50X", "{test: boolean}")

    def test_split_without_code(self):
        assert split_response_code("{name: string}") == (None, "{name: string}")
        assert split_response_code("404") == (None, "404")


class TestFields:
    """Test prepare and finalize through the field registry."""

    def test_all_descriptor_fields_registered(self):
        assert set(FIELDS) == {
            "namespace", "description", "base_url", "url", "params", "query",
            "body", "file", "files", "response", "schema", "call",
        }

    def test_response_inline_code(self):
        contract = FIELDS["response"].prepare("500 {message: string}", None, 200)
        assert isinstance(contract, ResponseContract)
        assert contract.code == "500"
        assert contract.slot.raw == "{message: string}"

    def test_response_explicit_code_wins(self):
        contract = FIELDS["response"].prepare("{message: string}", 404, 200)
        assert contract.code == "404"
        assert contract.status_schema == {"type": "integer", "const": 404}

    def test_response_default_code(self):
        assert FIELDS["response"].prepare("{a: string}", None, 200).code == "200"
        any_status = FIELDS["response"].prepare("{a: string}", None, None)
        assert any_status.code is None
        assert any_status.status_schema is None

    def test_schema_named_literal(self):
        declaration = FIELDS["schema"].prepare("User", {"type": "object"})
        assert isinstance(declaration, SchemaDeclaration)
        assert declaration.declared_name == "User"

    def test_schema_annotation_name_comes_from_ast(self):
        declaration = FIELDS["schema"].prepare("User = {id: id}")
        assert declaration.declared_name is None

    def test_slot_prepare_rejects_none(self):
        with pytest.raises(AnnotationError):
            FIELDS["body"].prepare(None)

    def test_text_fields_reject_non_text(self):
        with pytest.raises(AnnotationError):
            FIELDS["namespace"].prepare(42)

    def test_url_finalize(self):
        assert FIELDS["url"].finalize("/:id", default_method="POST") == UrlSpec("POST", "/:id")

    def test_slots(self):
        slot = SchemaSlot("{a: string}")
        assert list(FIELDS["body"].slots(slot)) == [slot]
        assert list(FIELDS["namespace"].slots("users")) == []
