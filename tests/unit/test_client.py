"""Tests for the UptimeRobot API client."""

from __future__ import annotations

import json

import httpx
import pytest

from uptimerobot_operator.services.uptimerobot import (
    ConflictError,
    NotFoundError,
    RetryPolicy,
    UptimeRobotAPIError,
    UptimeRobotClient,
)
from uptimerobot_operator.services.uptimerobot.client import api_base_url, parse_existing_id

BASE_URL = "https://api.test/v3"


def make_client(handler) -> UptimeRobotClient:
    return UptimeRobotClient(
        "secret-key", base_url=BASE_URL, retry=RetryPolicy(total=0), transport=httpx.MockTransport(handler)
    )


class TestRequests:
    """Test cases for request handling."""

    def test_headers_and_payload(self):
        """Test that requests carry the bearer token and JSON payload."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": 42})

        with make_client(handler) as api:
            result = api.create_monitor({"friendlyName": "web"})

        assert result == {"id": 42}
        assert seen == {
            "method": "POST",
            "path": "/v3/monitors",
            "auth": "Bearer secret-key",
            "body": {"friendlyName": "web"},
        }

    def test_not_found(self):
        """Test that 404 surfaces as NotFoundError."""
        api = make_client(lambda request: httpx.Response(404, json={"message": "gone"}))

        with pytest.raises(NotFoundError) as exc_info:
            api.get_monitor("7")

        assert exc_info.value.status == 404

    def test_conflict_carries_existing_id(self):
        """Test that 409 surfaces as ConflictError with the existing ID."""
        api = make_client(lambda request: httpx.Response(409, json={"monitor": {"id": 99}}))

        with pytest.raises(ConflictError) as exc_info:
            api.create_monitor({})

        assert exc_info.value.existing_id == "99"

    def test_other_errors(self):
        """Test that other failures surface as UptimeRobotAPIError with status and body."""
        api = make_client(lambda request: httpx.Response(400, json={"error": "bad interval"}))

        with pytest.raises(UptimeRobotAPIError) as exc_info:
            api.update_monitor("7", {"interval": 1})

        assert exc_info.value.status == 400
        assert exc_info.value.body == {"error": "bad interval"}
        assert not isinstance(exc_info.value, (NotFoundError, ConflictError))

    def test_non_json_success(self):
        """Test that a 2xx body that is not JSON is rejected."""
        api = make_client(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(UptimeRobotAPIError, match="unexpected non-JSON response"):
            api.get_monitor("7")

    def test_transport_error(self):
        """Test that transport failures become UptimeRobotAPIError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UptimeRobotAPIError, match="connection refused"):
            make_client(handler).get_monitor("7")

    def test_delete_missing_is_success(self):
        """Test that deleting an already deleted entity succeeds."""
        api = make_client(lambda request: httpx.Response(404))

        api.delete_monitor("7")
        api.delete_integration(3)


class TestPagination:
    """Test cases for collection listing."""

    def test_follows_next_link(self):
        """Test that nextLink is followed until the last page."""
        pages = {
            "": {"data": [{"id": 1}], "nextLink": "monitors?cursor=2"},
            "cursor=2": {"data": [{"id": 2}], "nextLink": f"{BASE_URL}/monitors?cursor=3"},
            "cursor=3": {"data": [{"id": 3}], "nextLink": None},
        }

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v3/monitors"
            return httpx.Response(200, json=pages[request.url.query.decode()])

        assert [m["id"] for m in make_client(handler).list_monitors()] == [1, 2, 3]

    def test_plain_list(self):
        """Test that a bare JSON array is accepted."""
        api = make_client(lambda request: httpx.Response(200, json=[{"id": 5}]))

        assert api.list_integrations() == [{"id": 5}]


class TestAccount:
    """Test cases for account level lookups."""

    def test_find_contact_id(self):
        """Test that contacts are matched by friendly name."""
        contacts = {"data": [{"id": 1, "friendlyName": "ops"}, {"id": 2, "friendlyName": "dev"}]}
        api = make_client(lambda request: httpx.Response(200, json=contacts))

        assert api.find_contact_id("dev") == "2"

    def test_find_contact_id_missing(self):
        """Test that an unknown contact raises NotFoundError."""
        api = make_client(lambda request: httpx.Response(200, json=[]))

        with pytest.raises(NotFoundError):
            api.find_contact_id("nobody")

    def test_account_details(self):
        """Test that the account e-mail is returned."""
        api = make_client(lambda request: httpx.Response(200, json={"email": "me@example.com"}))

        assert api.get_account_details() == "me@example.com"


class TestHelpers:
    """Test cases for module helpers."""

    @pytest.mark.parametrize(
        "body,expected",
        [
            ({"id": 5}, "5"),
            ({"data": {"id": "12"}}, "12"),
            ({"monitor": {"id": 3}}, "3"),
            ({"id": 0}, None),
            ({"id": True}, None),
            ({"id": "abc"}, None),
            ("conflict", None),
        ],
    )
    def test_parse_existing_id(self, body, expected):
        """Test extracting the existing ID from conflict bodies."""
        assert parse_existing_id(body) == expected

    def test_api_base_url(self, monkeypatch):
        """Test that UPTIME_ROBOT_API overrides the default endpoint."""
        monkeypatch.setenv("UPTIME_ROBOT_API", "https://example.test/v3/")
        assert api_base_url() == "https://example.test/v3"

        monkeypatch.delenv("UPTIME_ROBOT_API")
        assert api_base_url() == "https://api.uptimerobot.com/v3"
