"""HTTP client for the key-value service holding rental and commute estimates."""

from __future__ import annotations

from typing import Any, Dict, Optional

import requests

Database = Dict[str, Dict[str, Any]]


class KeyValueClient:
    def __init__(
        self,
        endpoint: str,
        secret: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ) -> None:
        self.base = endpoint.rstrip("/")
        self.secret = secret
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers["Api-Key"] = self.secret
        return headers

    def _post(self, action: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        r = self.session.post(f"{self.base}/{action}", json=payload or {}, headers=self._headers(), timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def get(self) -> Database:
        """Fetch the whole blob; an empty store yields ``{}``."""
        r = self.session.get(f"{self.base}/get", headers=self._headers(), timeout=self.timeout)
        r.raise_for_status()
        data = r.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected key-value payload type: {type(data).__name__}")
        return data

    def set(self, data: Database, version: Optional[int] = None) -> Dict[str, Any]:
        """Overwrite the whole blob."""
        payload: Dict[str, Any] = {"data": data}
        if version is not None:
            payload["version"] = version
        return self._post("set", payload)

    def refresh(self) -> Dict[str, Any]:
        return self._post("refresh")

    def flush(self) -> Dict[str, Any]:
        return self._post("flush")

    def info_db(self) -> Dict[str, Any]:
        return self._post("infodb")

    def info_cache(self) -> Dict[str, Any]:
        return self._post("infocache")


__all__ = ["Database", "KeyValueClient"]
