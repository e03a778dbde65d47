"""Environment-driven configuration for API keys and provider endpoints."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

GEOCODING_BASE_URL = "https://www.mapquestapi.com/geocoding/v1/address"
ZILLOW_BASE_URL = "https://www.zillow.com/search/GetSearchPageState.htm"
ZILLOW_API_BASE_URL = "https://www.zillow.com/webservice"
RENTBITS_API_BASE_URL = "https://www.rentbits.com/rb-api/1/rentals"
PROXY_URL = "http://localhost:5000/proxy"
DB_ENDPOINT = "http://localhost:5000/api"


@dataclass(frozen=True)
class Settings:
    mapquest_api_key: str = ""
    google_maps_api_key: Optional[str] = None
    zillow_api_key: Optional[str] = None
    db_endpoint: str = DB_ENDPOINT
    db_secret: Optional[str] = None
    proxy_url: str = PROXY_URL
    geocoding_base_url: str = GEOCODING_BASE_URL
    zillow_base_url: str = ZILLOW_BASE_URL
    zillow_api_base_url: str = ZILLOW_API_BASE_URL
    rentbits_api_base_url: str = RENTBITS_API_BASE_URL
    kv_database_url: str = "sqlite:///propsearch_kv.sqlite"
    kv_secret: Optional[str] = None
    http_timeout: float = 30.0
    host: str = "127.0.0.1"
    api_port: int = 8000
    kv_port: int = 5000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            mapquest_api_key=os.getenv("MAPQUEST_API_KEY", ""),
            google_maps_api_key=os.getenv("GOOGLE_MAPS_API_KEY") or None,
            zillow_api_key=os.getenv("ZILLOW_API_KEY") or None,
            db_endpoint=os.getenv("DB_ENDPOINT", DB_ENDPOINT).rstrip("/"),
            db_secret=os.getenv("DB_SECRET") or None,
            proxy_url=os.getenv("PROXY_URL", PROXY_URL).rstrip("/"),
            geocoding_base_url=os.getenv("GEOCODING_BASE_URL", GEOCODING_BASE_URL),
            zillow_base_url=os.getenv("ZILLOW_BASE_URL", ZILLOW_BASE_URL),
            zillow_api_base_url=os.getenv("ZILLOW_API_BASE_URL", ZILLOW_API_BASE_URL),
            rentbits_api_base_url=os.getenv("RENTBITS_API_BASE_URL", RENTBITS_API_BASE_URL),
            kv_database_url=os.getenv("KV_DATABASE_URL", "sqlite:///propsearch_kv.sqlite"),
            kv_secret=os.getenv("KV_SECRET") or None,
            http_timeout=float(os.getenv("HTTP_TIMEOUT", "30")),
            host=os.getenv("HOST", "127.0.0.1"),
            api_port=int(os.getenv("API_PORT", "8000")),
            kv_port=int(os.getenv("KV_PORT", "5000")),
        )


@lru_cache
def get_settings() -> Settings:
    """Settings read once per process."""
    return Settings.from_env()


__all__ = ["Settings", "get_settings"]
