"""
Shared pytest fixtures.
"""

import pytest

from advroute import Application, RouterFactory
from advroute.testing import TestClient


@pytest.fixture
def factory():
    """A router factory that compiles lazily and defaults to POST routes."""
    return RouterFactory(parse_endpoints=False, default_method="POST")


@pytest.fixture
def app(factory):
    return Application(factory)


@pytest.fixture
def client(app):
    return TestClient(app)
