"""HTTP client for the gamification platform REST API."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import requests

from .config import FUNIFIER_BASE_URL
from .errors import ErrorType, SyncError
from .models import PlatformStatus

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15
DATABASE_READ_TIMEOUT = 20
DATABASE_AGGREGATE_TIMEOUT = 25
DATABASE_BULK_TIMEOUT = 30


class PlatformClient:
    def __init__(
        self,
        credentials: str,
        base_url: str = FUNIFIER_BASE_URL,
        session: Optional[requests.Session] = None,
    ):
        if not credentials:
            raise SyncError(ErrorType.AUTHENTICATION, "No bearer credential supplied")
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.headers = {
            "Authorization": f"Bearer {credentials}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, timeout: float, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, headers=self.headers, timeout=timeout, **kwargs)
        except requests.Timeout as e:
            raise SyncError(ErrorType.NETWORK, f"Timeout after {timeout}s calling {path}", str(e)) from e
        except requests.RequestException as e:
            raise SyncError(ErrorType.NETWORK, f"Request to {path} failed: {e}") from e

        if resp.status_code in (401, 403):
            raise SyncError(
                ErrorType.AUTHENTICATION,
                f"{method} {path} rejected credentials",
                resp.text[:500],
                status_code=resp.status_code,
            )
        if resp.status_code >= 400:
            raise SyncError(
                ErrorType.REMOTE_REJECTION,
                f"{method} {path} returned HTTP {resp.status_code}",
                resp.text[:500],
                status_code=resp.status_code,
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise SyncError(
                ErrorType.DATA_PROCESSING, f"{method} {path} returned a non-JSON body", resp.text[:200]
            ) from e

    # --- Players ---

    def get_player_status(self, player_id: str) -> PlatformStatus:
        data = self._request("GET", f"/player/{player_id}/status", DEFAULT_TIMEOUT)
        if not isinstance(data, dict):
            raise SyncError(ErrorType.DATA_PROCESSING, f"Unexpected status payload for {player_id}")
        data.setdefault("_id", player_id)
        return PlatformStatus.from_api(data)

    # --- Action logs ---

    def submit_action_log(self, payload: dict, timeout: float) -> Any:
        return self._request("POST", "/action/log", timeout, json=payload)

    def submit_action_logs_bulk(self, payloads: list, timeout: float) -> Optional[int]:
        """
        Returns how many entries the platform registered, in submitted order.

        None when the call succeeded but the body carries no count: the entries
        may or may not have been registered.
        """
        data = self._request("POST", "/action/log/bulk", timeout, json=payloads)
        if isinstance(data, dict):
            registered = data.get("total_registered", data.get("registered"))
        elif isinstance(data, list):
            registered = len(data)
        else:
            registered = None
        try:
            count = int(registered) if registered is not None else None
        except (TypeError, ValueError):
            count = None
        if count is None:
            logger.warning(f"[Platform] Bulk response carries no registered count: {str(data)[:200]}")
            return None
        return max(0, min(count, len(payloads)))

    # --- Custom collections ---

    def database_find(self, collection: str, filter_: Optional[dict] = None) -> list:
        params = {"filter": json.dumps(filter_)} if filter_ else None
        data = self._request("GET", f"/database/{collection}", DATABASE_READ_TIMEOUT, params=params)
        return data or []

    def database_aggregate(self, collection: str, pipeline: list) -> list:
        data = self._request(
            "POST",
            f"/database/{collection}/aggregate",
            DATABASE_AGGREGATE_TIMEOUT,
            params={"strict": "true"},
            json=pipeline,
        )
        return data or []

    def database_insert_bulk(self, collection: str, documents: list) -> Any:
        return self._request("POST", f"/database/{collection}/bulk", DATABASE_BULK_TIMEOUT, json=documents)
