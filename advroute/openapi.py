"""
OpenAPI 3.0 documents built from compiled endpoints.
"""

import json
import os
import re
from typing import Any, Dict, List, Optional, Sequence

from .endpoints import Endpoint, ResponseSpec
from .router import normalize_path

_PARAM_SEGMENT = re.compile(r":(\w+)")
_WILDCARD_CODE = re.compile(r"^[1-5]XX$")

_FILE_SCHEMA = {"type": "string", "format": "binary"}


def convert_path(path: str) -> str:
    """Convert ``/users/:id`` to OpenAPI's ``/users/{id}``."""
    return _PARAM_SEGMENT.sub(r"{\1}", path)


def response_key(code: Optional[str]) -> str:
    """OpenAPI responses are keyed by exact code or ``NXX``; anything else is ``default``."""
    if code is None:
        return "default"
    if code.isdigit() or _WILDCARD_CODE.match(code):
        return code
    return "default"


def _parameters(schema: Optional[Dict[str, Any]], location: str) -> List[Dict[str, Any]]:
    if not schema:
        return []
    required = set(schema.get("required", []))
    parameters = []
    for name, property_schema in schema.get("properties", {}).items():
        parameters.append({
            "name": name,
            "in": location,
            "required": location == "path" or name in required,
            "schema": property_schema,
        })
    return parameters


def _request_body(endpoint: Endpoint) -> Optional[Dict[str, Any]]:
    content: Dict[str, Any] = {}
    if endpoint.body is not None:
        content["application/json"] = {"schema": endpoint.body}

    if endpoint.file is not None or endpoint.files is not None:
        properties: Dict[str, Any] = {}
        if endpoint.file is not None:
            properties["file"] = _FILE_SCHEMA
        if endpoint.files is not None:
            properties["files"] = {"type": "array", "items": _FILE_SCHEMA}
        content["multipart/form-data"] = {"schema": {"type": "object", "properties": properties}}

    if not content:
        return None
    return {"required": True, "content": content}


def _responses(contracts: Sequence[ResponseSpec]) -> Dict[str, Any]:
    if not contracts:
        return {"200": {"description": "Successful response"}}

    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for contract in contracts:
        grouped.setdefault(response_key(contract.code), []).append(contract.schema)

    responses: Dict[str, Any] = {}
    for key, schemas in grouped.items():
        schema = schemas[0] if len(schemas) == 1 else {"anyOf": schemas}
        responses[key] = {
            "description": "Successful response" if key.startswith("2") else "Response",
            "content": {"application/json": {"schema": schema}},
        }
    return responses


def _operation(endpoint: Endpoint) -> Dict[str, Any]:
    operation: Dict[str, Any] = {"responses": _responses(endpoint.response)}

    if endpoint.namespace:
        operation["tags"] = [endpoint.namespace]
    if endpoint.description:
        operation["description"] = endpoint.description

    parameters = _parameters(endpoint.params, "path") + _parameters(endpoint.query, "query")
    if parameters:
        operation["parameters"] = parameters

    request_body = _request_body(endpoint)
    if request_body:
        operation["requestBody"] = request_body

    return operation


def generate_openapi(
    endpoints: Sequence[Endpoint],
    title: str = "REST API",
    version: str = "1.0.0",
    description: str = "API generated by advroute",
    prefix: str = "/",
) -> Dict[str, Any]:
    """Build an OpenAPI 3.0 document from compiled endpoints.

    Paths are the ones declared with ``url()``, joined to ``prefix`` when the
    router is mounted somewhere other than the root. Named schemas become
    components.
    """
    spec: Dict[str, Any] = {
        "openapi": "3.0.0",
        "info": {"title": title, "version": version, "description": description},
        "paths": {},
    }
    components: Dict[str, Any] = {}

    for endpoint in endpoints:
        for declared in endpoint.schema:
            if declared.name:
                components[declared.name] = declared.schema

        if endpoint.url is None:
            continue

        path = convert_path(normalize_path(prefix, endpoint.url.path))
        spec["paths"].setdefault(path, {})[endpoint.url.method.lower()] = _operation(endpoint)

    if components:
        spec["components"] = {"schemas": components}

    return spec


def generate_openapi_json(
    endpoints: Sequence[Endpoint],
    title: str = "REST API",
    version: str = "1.0.0",
    description: str = "API generated by advroute",
    prefix: str = "/",
) -> str:
    """Generate the OpenAPI document as indented JSON."""
    return json.dumps(generate_openapi(endpoints, title, version, description, prefix), indent=2)


def save_openapi_json(
    endpoints: Sequence[Endpoint],
    filename: str = "openapi.json",
    docs_dir: str = "docs",
    title: str = "REST API",
    version: str = "1.0.0",
    description: str = "API generated by advroute",
) -> str:
    """Generate and save the OpenAPI document to a file in the docs directory."""

    # Create docs directory if it doesn't exist
    if not os.path.exists(docs_dir):
        os.makedirs(docs_dir)

    openapi_json = generate_openapi_json(endpoints, title, version, description)

    file_path = os.path.join(docs_dir, filename)
    with open(file_path, "w", encoding="utf-8") as f:
        f.write(openapi_json)

    return file_path
