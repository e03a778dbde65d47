"""Cached, optionally proxied access to third-party JSON and XML APIs."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Literal, Optional

import requests

from ..utils.caching import MISS, Cache, MemoryCache
from ..utils.logging import get_logger

LOGGER = get_logger("services.gateway")

# Errors a caller should expect when a provider fails or answers with an unexpected shape.
REMOTE_ERRORS = (
    requests.RequestException,
    ValueError,
    KeyError,
    TypeError,
    AttributeError,
    ET.ParseError,
)

_CACHE_PREFIX = "fetch_json:"


class RemoteGateway:
    def __init__(
        self,
        proxy_url: str,
        api_key: Optional[str] = None,
        cache: Optional[Cache] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ) -> None:
        self.proxy_url = proxy_url.rstrip("/")
        self.api_key = api_key
        self.cache = cache if cache is not None else MemoryCache()
        self.session = session or requests.Session()
        self.timeout = timeout

    def full_url(self, url: str, proxied: bool = False) -> str:
        if proxied:
            return f"{self.proxy_url}/{url}"
        return url

    def fetch_json(self, url: str, proxied: bool = False, fmt: Literal["json", "xml"] = "json") -> Any:
        """Fetch ``url`` and return its parsed payload.

        Payloads are cached for the lifetime of the cache under the exact final
        URL. Network, status and parse errors propagate to the caller.
        """

        full_url = self.full_url(url, proxied)
        key = f"{_CACHE_PREFIX}{full_url}"
        cached = self.cache.get(key)
        if cached is not MISS:
            LOGGER.debug("gateway_cache_hit url=%s", full_url)
            return cached

        headers = {"Api-Key": self.api_key} if self.api_key else {}
        LOGGER.debug("gateway_fetch url=%s format=%s", full_url, fmt)
        resp = self.session.get(full_url, headers=headers, timeout=self.timeout)
        resp.raise_for_status()
        if fmt == "json":
            parsed = resp.json()
        elif fmt == "xml":
            parsed = parse_search_results_xml(resp.text)
        else:
            raise ValueError(f"Unsupported response format: {fmt}")
        self.cache.set(key, parsed)
        return parsed


def parse_search_results_xml(text: str) -> List[Dict[str, Any]]:
    """Extract the ``response/results/result`` entries of a deep-search document."""

    root = ET.fromstring(text)
    results = root.find("response/results")
    if results is None:
        code = root.findtext("message/code")
        raise ValueError(f"Deep search response without results (code={code})")
    return [_element_to_dict(result) for result in results.findall("result")]


def _element_to_dict(element: ET.Element) -> Any:
    children = list(element)
    if not children:
        return (element.text or "").strip()
    payload: Dict[str, Any] = {}
    for child in children:
        value = _element_to_dict(child)
        if child.tag in payload:
            existing = payload[child.tag]
            if not isinstance(existing, list):
                payload[child.tag] = [existing]
            payload[child.tag].append(value)
        else:
            payload[child.tag] = value
    return payload


__all__ = ["RemoteGateway", "REMOTE_ERRORS", "parse_search_results_xml"]
