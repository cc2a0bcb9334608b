"""Tests for Router functionality and mounting."""

import asyncio

import pytest

from advroute import HTTPMethod, Request, Response, Router
from advroute.router import compile_path, is_error_handler, normalize_path


def dispatch(router, method, path):
    request = Request(method=HTTPMethod(method), path=path)
    response = Response()
    proceed, error = asyncio.run(router.handle(request, response))
    return request, response, proceed, error


class TestPathNormalization:
    """Test path normalization utility."""

    def test_root_with_slash_path(self):
        assert normalize_path("/", "/users") == "/users"

    def test_root_with_no_slash_path(self):
        assert normalize_path("/", "users") == "/users"

    def test_prefix_with_slash_path(self):
        assert normalize_path("/api", "/users") == "/api/users"

    def test_prefix_with_trailing_slash(self):
        assert normalize_path("/api/", "/users") == "/api/users"

    def test_empty_prefix(self):
        assert normalize_path("", "/:id") == "/:id"

    def test_root_to_root(self):
        assert normalize_path("/", "/") == "/"


class TestCompilePath:
    def test_named_segments(self):
        assert compile_path("/users/:id", end=True).match("/users/10").groupdict() == {"id": "10"}
        assert compile_path("/users/{id}", end=True).match("/users/10/").groupdict() == {"id": "10"}

    def test_end_requires_full_match(self):
        assert compile_path("/users", end=True).match("/users/10") is None

    def test_prefix_matches_on_segment_boundary(self):
        pattern = compile_path("/api", end=False)
        assert pattern.match("/api/users")
        assert pattern.match("/api")
        assert pattern.match("/apis") is None


class TestErrorHandlerDetection:
    def test_four_parameters(self):
        def handler(err, req, res, next):
            pass

        assert is_error_handler(handler)

    def test_three_parameters(self):
        assert not is_error_handler(lambda req, res, next: None)


class TestDispatch:
    """Test handler chains, errors and mounting."""

    def test_route_method_filtering(self):
        router = Router()
        router.route("/users").get(lambda req, res, next: res.json({"method": "get"}))
        router.route("/users").post(lambda req, res, next: res.json({"method": "post"}))

        _, response, _, _ = dispatch(router, "POST", "/users")
        assert response.get_json_body() == {"method": "post"}

    def test_head_served_by_get(self):
        router = Router()
        router.route("/ping").get(lambda req, res, next: res.send("pong"))
        _, response, proceed, _ = dispatch(router, "HEAD", "/ping")
        assert not proceed
        assert response.body == "pong"

    def test_unmatched_falls_through(self):
        router = Router()
        router.route("/users").get(lambda req, res, next: res.json([]))
        _, response, proceed, error = dispatch(router, "GET", "/other")
        assert proceed
        assert error is None
        assert not response.headers_sent

    def test_middleware_then_route(self):
        router = Router()
        calls = []

        def middleware(req, res, next):
            calls.append("middleware")
            req.user = "max"
            next()

        async def handler(req, res, next):
            calls.append("handler")
            res.json({"user": req.user, "id": req.params["id"]})

        router.use(middleware)
        router.route("/users/:id").get(handler)

        _, response, _, _ = dispatch(router, "GET", "/users/7")
        assert calls == ["middleware", "handler"]
        assert response.get_json_body() == {"user": "max", "id": "7"}

    def test_raised_error_skips_to_error_handler(self):
        router = Router()
        calls = []

        def fail(req, res, next):
            raise ValueError("boom")

        def skipped(req, res, next):
            calls.append("skipped")
            next()

        def on_error(err, req, res, next):
            res.status(418).json({"error": str(err)})

        router.route("/fail").get(fail)
        router.use(skipped)
        router.use(on_error)

        _, response, _, _ = dispatch(router, "GET", "/fail")
        assert calls == []
        assert response.status_code == 418
        assert response.get_json_body() == {"error": "boom"}

    def test_next_with_error(self):
        router = Router()
        router.use(lambda req, res, next: next(KeyError("missing")))
        _, _, proceed, error = dispatch(router, "GET", "/")
        assert proceed
        assert isinstance(error, KeyError)

    def test_error_handler_can_recover(self):
        router = Router()
        router.use(lambda req, res, next: next(RuntimeError()))
        router.use(lambda err, req, res, next: next())
        router.use(lambda req, res, next: res.send("recovered"))

        _, response, _, _ = dispatch(router, "GET", "/")
        assert response.body == "recovered"

    def test_explicit_error_handler_flag(self):
        router = Router()
        router.use(lambda req, res, next: next(RuntimeError("x")))
        router.use(lambda *args: args[2].send("handled"), error_handler=True)

        _, response, _, _ = dispatch(router, "GET", "/")
        assert response.body == "handled"

    def test_mounted_router(self):
        api = Router()
        seen = {}

        def handler(req, res, next):
            seen["base_url"] = req.base_url
            res.json({"id": req.params["id"]})

        api.route("/users/:id").get(handler)
        root = Router()
        root.use("/api", api)

        request, response, _, _ = dispatch(root, "GET", "/api/users/3")
        assert response.get_json_body() == {"id": "3"}
        assert seen["base_url"] == "/api"
        assert request.base_url == ""

    def test_decorators(self):
        router = Router()

        @router.get("/items/{id}")
        def get_item(req, res, next):
            res.json({"id": req.params["id"]})

        _, response, _, _ = dispatch(router, "GET", "/items/abc")
        assert response.get_json_body() == {"id": "abc"}

    def test_route_methods(self):
        router = Router()
        route = router.route("/x")
        route.get(lambda req, res, next: None).delete(lambda req, res, next: None)
        assert route.methods() == ["DELETE", "GET"]


class TestResponse:
    def test_status_and_headers_chain(self):
        response = Response().status(201).set_header("X-Id", "1")
        assert response.status_code == 201
        assert response.headers["X-Id"] == "1"

    def test_send_once(self):
        response = Response()
        response.json({"a": 1})
        response.json({"b": 2})
        assert response.get_json_body() == {"a": 1}
        assert response.headers["Content-Type"] == "application/json"
        assert response.headers["Content-Length"] == str(len(response.body))

    @pytest.mark.parametrize("header", ["content-type", "Content-Type", "CONTENT-TYPE"])
    def test_case_insensitive_request_headers(self, header):
        request = Request(method=HTTPMethod.GET, path="/", headers={header: "application/json"})
        assert request.get_content_type() == "application/json"
