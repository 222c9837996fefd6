"""
Unit tests for the CORS policy.
"""

from routeserver.config import ServerConfig
from routeserver.cors import CORSPolicy
from routeserver.http import HTTPRequest, HTTPStatus


class TestCORSPolicy:
    """Tests for CORSPolicy."""

    def test_off_by_default(self):
        assert CORSPolicy.from_config(ServerConfig()) is None

    def test_from_config_splits_origins(self):
        policy = CORSPolicy.from_config(
            ServerConfig(cors_origin="https://a.com, https://b.com")
        )
        assert policy.allow_origins == ["https://a.com", "https://b.com"]

    def test_wildcard(self):
        headers = CORSPolicy().headers("https://anywhere.com")

        assert headers["Access-Control-Allow-Origin"] == "*"
        assert headers["Access-Control-Allow-Headers"] == "Content-Type"
        assert headers["Access-Control-Allow-Methods"] == "GET, POST, OPTIONS"
        assert "Vary" not in headers

    def test_listed_origin_is_echoed(self):
        headers = CORSPolicy(allow_origins=["https://app.com"]).headers("https://app.com")

        assert headers["Access-Control-Allow-Origin"] == "https://app.com"
        assert headers["Vary"] == "Origin"

    def test_unlisted_origin_gets_nothing(self):
        policy = CORSPolicy(allow_origins=["https://app.com"])
        assert policy.headers("https://evil.com") == {}

    def test_preflight(self):
        request = HTTPRequest(
            method="OPTIONS",
            path="/api",
            headers={"Origin": "https://app.com", "Access-Control-Request-Method": "POST"},
        )

        response = CORSPolicy(max_age=600).preflight(request)

        assert response.status == HTTPStatus.NO_CONTENT
        assert response.body == b""
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert response.headers["Access-Control-Max-Age"] == "600"
