"""Tests for health check endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from uptimerobot_operator.health import create_combined_wsgi_app, health_check_app, set_ready, start_server


def environ(path: str) -> dict:
    return {
        "REQUEST_METHOD": "GET",
        "PATH_INFO": path,
        "SCRIPT_NAME": "",
        "SERVER_NAME": "localhost",
        "SERVER_PORT": "8080",
        "wsgi.url_scheme": "http",
    }


@pytest.fixture(autouse=True)
def not_ready():
    set_ready(False)
    yield
    set_ready(False)


class TestHealthCheckApp:
    """Test cases for health_check_app."""

    def test_healthz(self):
        """Test that liveness is always ok."""
        start_response = MagicMock()

        body = b"".join(health_check_app(environ("/healthz"), start_response))

        assert body == b'{"status":"ok"}'
        assert start_response.call_args[0][0].startswith("200")

    def test_readyz_not_ready(self):
        """Test that readiness fails before startup completes."""
        start_response = MagicMock()

        body = b"".join(health_check_app(environ("/readyz"), start_response))

        assert b"not ready" in body
        assert start_response.call_args[0][0].startswith("503")

    def test_readyz_ready(self):
        """Test that readiness succeeds once flagged ready."""
        set_ready(True)
        start_response = MagicMock()

        body = b"".join(health_check_app(environ("/readyz"), start_response))

        assert body == b'{"status":"ready"}'
        assert start_response.call_args[0][0].startswith("200")

    def test_not_found(self):
        """Test unknown paths."""
        start_response = MagicMock()

        health_check_app(environ("/unknown"), start_response)

        assert start_response.call_args[0][0].startswith("404")

    def test_content_type_is_json(self):
        """Test that responses are JSON."""
        start_response = MagicMock()

        health_check_app(environ("/healthz"), start_response)

        headers = dict(start_response.call_args[0][1])
        assert headers["Content-Type"].startswith("application/json")


class TestCombinedApp:
    """Test cases for the combined WSGI application."""

    @patch("uptimerobot_operator.health.make_wsgi_app")
    def test_routes(self, mock_make_wsgi):
        """Test that health paths are served locally and the rest goes to prometheus."""
        metrics_app = MagicMock(return_value=[b"metrics"])
        mock_make_wsgi.return_value = metrics_app
        app = create_combined_wsgi_app()

        assert b"ok" in b"".join(app(environ("/healthz"), MagicMock()))
        metrics_app.assert_not_called()

        assert app(environ("/metrics"), MagicMock()) == [b"metrics"]
        metrics_app.assert_called_once()


class TestStartServer:
    """Test cases for start_server."""

    @patch("uptimerobot_operator.health.make_server")
    @patch("uptimerobot_operator.health.threading.Thread")
    def test_starts_daemon_thread(self, mock_thread, mock_make_server):
        """Test that the server is served from a daemon thread."""
        server = MagicMock()
        mock_make_server.return_value = server

        assert start_server(8080) is server

        assert mock_make_server.call_args[0][1] == 8080
        assert mock_thread.call_args.kwargs == {"target": server.serve_forever, "daemon": True}
        mock_thread.return_value.start.assert_called_once()
