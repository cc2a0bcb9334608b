"""Configuration for router extensions."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .annotations import status_code_schema
from .exceptions import AnnotationError, ConfigurationError
from .models import HTTPMethod
from .validation import ValidatorEngine


@dataclass
class ExtensionConfig:
    """Options shared by every router created from one ``RouterFactory``.

    Attributes:
        schemas: Named schemas seeded into the registry on top of the
                 built-in defaults. Values may be annotation text, JSON-Schema
                 dicts or pydantic model classes.

        engine: Validator engine used for both requests and responses unless
                overridden. Defaults to a coercing engine with format checks.

        request_engine: Engine for params/query/body/file/files.

        response_engine: Engine for response contracts. Pass
                         ``ValidatorEngine(coerce_types=False)`` to reject
                         payloads that only match after coercion.

        parse_endpoints: Compile every endpoint when the application serves
                         its first request, so annotation errors stop it
                         early. Each route still compiles its own schemas
                         on first use regardless.

        default_method: Method used by ``url()`` annotations without one.

        default_code: Status code given to ``response()`` contracts without
                      one. ``None`` makes such contracts apply to any status.

    Examples:
        ExtensionConfig(default_method="POST", parse_endpoints=False)

        ExtensionConfig(
            schemas={"User": "{id: id, name: string}"},
            response_engine=ValidatorEngine(coerce_types=False),
        )
    """

    schemas: Dict[str, Any] = field(default_factory=dict)
    engine: Optional[ValidatorEngine] = None
    request_engine: Optional[ValidatorEngine] = None
    response_engine: Optional[ValidatorEngine] = None
    parse_endpoints: bool = True
    default_method: str = "GET"
    default_code: Optional[Union[int, str]] = 200

    def __post_init__(self):
        if isinstance(self.default_method, HTTPMethod):
            self.default_method = self.default_method.value
        if isinstance(self.default_method, str):
            self.default_method = self.default_method.upper()

        if self.engine is None:
            self.engine = ValidatorEngine(coerce_types=True)
        if self.request_engine is None:
            self.request_engine = self.engine
        if self.response_engine is None:
            self.response_engine = self.engine

    def validate(self):
        """Validate the configuration."""
        if not isinstance(self.default_method, str) or self.default_method not in HTTPMethod.__members__:
            raise ConfigurationError(f"Unknown default method {self.default_method!r}")

        if not isinstance(self.schemas, dict):
            raise ConfigurationError("schemas must be a mapping of names to schemas")

        if self.default_code is not None:
            try:
                status_code_schema(self.default_code)
            except AnnotationError as exc:
                raise ConfigurationError(f"Invalid default code {self.default_code!r}") from exc
