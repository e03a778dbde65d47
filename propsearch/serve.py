"""Console entry points serving the search API and the key-value service with uvicorn."""

from __future__ import annotations

from typing import Optional

import uvicorn

from .config import Settings, get_settings
from .utils.logging import configure_logging


def api(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    configure_logging()
    uvicorn.run("propsearch.api:app", host=settings.host, port=settings.api_port)


def kv(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    configure_logging()
    uvicorn.run("propsearch.db.kv_server:create_app", factory=True, host=settings.host, port=settings.kv_port)


__all__ = ["api", "kv"]
