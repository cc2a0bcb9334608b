"""
Declarative, schema-validated routes for a middleware-style async router.

Routes are declared as chains such as
``router.url("POST /users").body("{name: string}").then(save).response("{id: id}")``.
Annotations are compiled to JSON-Schema and validated with jsonschema,
coercing request values to the declared types.
"""

from .application import Application, build_request
from .builder import RouteBuilder
from .config import ExtensionConfig
from .endpoints import Endpoint
from .error_models import ErrorPayload
from .exceptions import (
    AdvRouteError,
    AnnotationError,
    ConfigurationError,
    RequestValidationError,
    ResponseValidationError,
    StackConsistencyError,
    ValidationError,
)
from .extension import ExtendedRouter, RouterFactory
from .models import HTTPMethod, Request, Response, UploadedFile
from .openapi import generate_openapi, generate_openapi_json, save_openapi_json
from .parser import parse_annotation
from .router import Route, Router
from .schemas import DEFAULT_SCHEMAS, SchemaRegistry
from .stack import HandlerStack
from .validation import ValidatorEngine

__version__ = "0.1.0"
__author__ = "advroute Contributors"
__license__ = "MIT"

__all__ = [
    "Application",
    "build_request",
    "RouterFactory",
    "ExtendedRouter",
    "RouteBuilder",
    "Router",
    "Route",
    "Request",
    "Response",
    "UploadedFile",
    "HTTPMethod",
    "HandlerStack",
    "ExtensionConfig",
    "ValidatorEngine",
    "SchemaRegistry",
    "DEFAULT_SCHEMAS",
    "Endpoint",
    "parse_annotation",
    "generate_openapi",
    "generate_openapi_json",
    "save_openapi_json",
    "ErrorPayload",
    "AdvRouteError",
    "ConfigurationError",
    "StackConsistencyError",
    "AnnotationError",
    "ValidationError",
    "RequestValidationError",
    "ResponseValidationError",
]
