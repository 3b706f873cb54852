"""
Tests for the HTTP transport and its error mapping.
"""

from unittest.mock import MagicMock

import pytest
import requests

from recordsync.client.transport import SyncTransport
from recordsync.core.config import SyncSettings
from recordsync.core.errors import (
    ConnectivityError,
    RequestTimeoutError,
    ServerError,
    ValidationError,
)


def _response(status_code=200, body=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    response.text = text
    return response


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def transport(session):
    settings = SyncSettings(api_url="http://sync.local:3001/", request_timeout_sec=7)
    return SyncTransport(settings, session=session)


class TestRequests:
    """Test how calls are issued."""

    def test_pull_sends_user_key_and_timeout(self, transport, session):
        session.get.return_value = _response(body={"clientes": []})

        assert transport.pull("empresa-a") == {"clientes": []}
        session.get.assert_called_once_with(
            "http://sync.local:3001/api/sync/pull",
            params={"userKey": "empresa-a"},
            timeout=7
        )

    def test_push_sends_dataset(self, transport, session):
        session.post.return_value = _response(body={"success": True, "version": 4})
        dataset = {"clientes": [{"rut": "1"}]}

        result = transport.push("empresa-a", dataset)

        assert result["version"] == 4
        session.post.assert_called_once_with(
            "http://sync.local:3001/api/sync/push",
            params={"userKey": "empresa-a"},
            json=dataset,
            timeout=7
        )

    def test_pull_rejects_non_object_payload(self, transport, session):
        session.get.return_value = _response(body=[1, 2])

        with pytest.raises(ServerError, match="Unexpected pull payload"):
            transport.pull("empresa-a")

    def test_invalid_json_is_server_error(self, transport, session):
        session.get.return_value = _response(body=ValueError("no json"))

        with pytest.raises(ServerError, match="Invalid JSON"):
            transport.pull("empresa-a")


class TestErrorMapping:
    """Test translation of failures into the error taxonomy."""

    def test_timeout(self, transport, session):
        session.get.side_effect = requests.exceptions.ReadTimeout("slow")

        with pytest.raises(RequestTimeoutError) as exc_info:
            transport.pull("empresa-a")
        assert exc_info.value.retryable is True

    def test_connect_timeout_is_a_timeout(self, transport, session):
        session.get.side_effect = requests.exceptions.ConnectTimeout("slow")

        with pytest.raises(RequestTimeoutError):
            transport.pull("empresa-a")

    def test_connection_error(self, transport, session):
        session.post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(ConnectivityError) as exc_info:
            transport.push("empresa-a", {"clientes": []})
        assert exc_info.value.retryable is False

    def test_other_request_error(self, transport, session):
        session.get.side_effect = requests.exceptions.TooManyRedirects("loop")

        with pytest.raises(ServerError):
            transport.pull("empresa-a")

    def test_bad_request_is_validation_error(self, transport, session):
        session.post.return_value = _response(400, body={"detail": "userKey is required"})

        with pytest.raises(ValidationError, match="userKey is required"):
            transport.push("", {"clientes": []})

    def test_server_failure_keeps_status(self, transport, session):
        session.get.return_value = _response(503, body={"detail": "Storage unavailable"})

        with pytest.raises(ServerError) as exc_info:
            transport.pull("empresa-a")
        assert exc_info.value.status_code == 503
        assert exc_info.value.retryable is True

    def test_non_json_error_body(self, transport, session):
        session.get.return_value = _response(502, body=ValueError("html"), text="<html>Bad Gateway</html>")

        with pytest.raises(ServerError, match="Bad Gateway"):
            transport.pull("empresa-a")


class TestHealth:
    """Test the connectivity probe."""

    def test_healthy(self, transport, session):
        session.get.return_value = _response(body={"status": "ok"})
        assert transport.health() is True

    def test_unreachable(self, transport, session):
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        assert transport.health() is False

    def test_server_error(self, transport, session):
        session.get.return_value = _response(500, body={"detail": "Internal server error"})
        assert transport.health() is False


def test_close_closes_session(transport, session):
    transport.close()
    session.close.assert_called_once()
