"""
HTTP transport for the replication endpoints.

Every call carries an explicit timeout. Failures are translated into the
shared error taxonomy so the coordinator can decide what is retryable.
"""

from typing import Any, Dict, Optional

import requests

from ..core.config import SyncSettings
from ..core.dataset import Dataset
from ..core.errors import ConnectivityError, RequestTimeoutError, ServerError, ValidationError
from ..util.logging import logger

HEALTH_PATH = "/api/health"
PULL_PATH = "/api/sync/pull"
PUSH_PATH = "/api/sync/push"


class SyncTransport:
    """Thin client for /api/health, /api/sync/pull and /api/sync/push."""

    def __init__(self, settings: SyncSettings = None, session=None):
        self.settings = settings or SyncSettings.from_env()
        self.session = session or requests.Session()

    def url(self, path: str) -> str:
        return f"{self.settings.api_url.rstrip('/')}{path}"

    def _request(self, method: str, path: str, params: Dict[str, Any] = None, json_body: Any = None):
        url = self.url(path)
        timeout = self.settings.request_timeout_sec

        try:
            if method == "GET":
                response = self.session.get(url, params=params, timeout=timeout)
            else:
                response = self.session.post(url, params=params, json=json_body, timeout=timeout)
        except requests.exceptions.Timeout as e:
            # Checked first: ConnectTimeout is also a ConnectionError
            raise RequestTimeoutError(f"{method} {path} timed out after {timeout}s") from e
        except requests.exceptions.ConnectionError as e:
            raise ConnectivityError(f"Cannot reach sync server: {e}") from e
        except requests.exceptions.RequestException as e:
            raise ServerError(f"{method} {path} failed: {e}") from e

        status = response.status_code
        if not 200 <= status < 300:
            detail = _error_detail(response)
            if status in (400, 422):
                raise ValidationError(f"HTTP {status}: {detail}")
            raise ServerError(f"HTTP {status}: {detail}", status_code=status)

        return response

    def _json(self, response, path: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ServerError(f"Invalid JSON from {path}: {e}", status_code=response.status_code) from e

    def health(self) -> bool:
        """Lightweight reachability check. Never raises."""
        try:
            self._request("GET", HEALTH_PATH)
            return True
        except (ConnectivityError, RequestTimeoutError, ServerError, ValidationError) as e:
            logger.debug(f"Health probe failed: {e}")
            return False

    def pull(self, user_key: str) -> Dataset:
        """Fetch the reconciled dataset for ``user_key``."""
        response = self._request("GET", PULL_PATH, params={"userKey": user_key})
        data = self._json(response, PULL_PATH)
        if not isinstance(data, dict):
            raise ServerError(f"Unexpected pull payload type: {type(data).__name__}")
        return data

    def push(self, user_key: str, dataset: Dataset) -> Dict[str, Any]:
        """Upload the local dataset; returns {success, version, updated_at, merged}."""
        response = self._request("POST", PUSH_PATH, params={"userKey": user_key}, json_body=dataset)
        return self._json(response, PUSH_PATH)

    def close(self):
        close = getattr(self.session, "close", None)
        if close:
            close()


def _error_detail(response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return (response.text or "")[:200]
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)[:200]
