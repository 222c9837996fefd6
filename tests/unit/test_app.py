"""
Unit tests for the shipped application routes and startup behavior.
"""

import logging

import pytest

from routeserver import __main__ as cli
from routeserver.app import create_app, hello
from routeserver.config import ServerConfig
from routeserver.http import DuplicateRouteError, HTTPRequest, HTTPStatus, Router


class TestCreateApp:
    """Tests for create_app()."""

    def test_hello_world(self):
        response = create_app().dispatch(HTTPRequest(method="GET", path="/api"))

        assert response.status == HTTPStatus.OK
        assert response.body == b"Hello world"

    def test_post_not_allowed(self):
        response = create_app().dispatch(HTTPRequest(method="POST", path="/api"))

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET"

    def test_unknown_path(self):
        response = create_app().dispatch(HTTPRequest(method="GET", path="/nope"))
        assert response.status == HTTPStatus.NOT_FOUND

    def test_fresh_router_each_call(self):
        first = create_app()
        first.seal()
        second = create_app()

        assert first is not second
        assert not second.sealed

    def test_extendable_before_seal(self):
        router = create_app()
        router.register("GET", "/health", lambda request: "ok")

        assert len(router) == 2

    def test_static_routes_follow_api(self, tmp_path):
        (tmp_path / "index.html").write_text("home")
        (tmp_path / "api").write_text("shadowed")
        router = create_app(ServerConfig(static_dir=str(tmp_path)))

        assert [(r.method, r.pattern) for r in router.routes()] == [
            ("GET", "/api"),
            ("GET", "/"),
            ("GET", "/*filepath"),
        ]
        assert router.dispatch(HTTPRequest(method="GET", path="/api")).body == b"Hello world"
        assert router.dispatch(HTTPRequest(method="GET", path="/")).body == b"home"

    def test_static_fallback_makes_other_methods_405(self, tmp_path):
        router = create_app(ServerConfig(static_dir=str(tmp_path)))

        response = router.dispatch(HTTPRequest(method="POST", path="/anything"))

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET"

    def test_cors_preflight_routes(self):
        router = create_app(ServerConfig(cors_origin="*"))

        response = router.dispatch(HTTPRequest(method="OPTIONS", path="/api"))

        assert response.status == HTTPStatus.NO_CONTENT
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert router.allowed_methods("/api") == ["GET", "OPTIONS"]

    def test_default_config_adds_nothing(self):
        assert len(create_app(ServerConfig())) == 1

    def test_registering_api_twice_fails(self):
        with pytest.raises(DuplicateRouteError):
            create_app().register("GET", "/api", hello)


class TestStartupFailure:
    """Startup errors exit with status 1 before anything is bound."""

    def test_route_error_exits(self, monkeypatch, caplog):
        def broken_app(config=None) -> Router:
            router = Router()
            router.register("GET", "/api", hello)
            router.register("GET", "/api", hello)
            return router

        monkeypatch.setattr(cli, "create_app", broken_app)
        monkeypatch.delenv("PORT", raising=False)

        with caplog.at_level(logging.ERROR, logger="routeserver"):
            with pytest.raises(SystemExit) as exc_info:
                cli.main([])

        assert exc_info.value.code == 1
        assert "Route already registered" in caplog.text

    def test_bad_environment_exits(self, monkeypatch):
        monkeypatch.setenv("PORT", "not-a-port")

        with pytest.raises(SystemExit) as exc_info:
            cli.main([])

        assert exc_info.value.code == 1
