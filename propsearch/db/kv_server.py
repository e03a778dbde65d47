"""FastAPI key-value service persisting the estimates blob, plus the relay proxied provider calls go through.

Run with ``propsearch-kv`` (see ``propsearch.serve``).
"""

from __future__ import annotations

import re
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import requests
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from ..config import get_settings
from ..utils.caching import MISS, MemoryCache
from ..utils.logging import get_logger
from .blob_store import TABLE_NAME, BlobStore

LOGGER = get_logger("db.kv_server")

_SCHEME = re.compile(r"^(https?):/+", re.IGNORECASE)
_RELAYED_HEADERS = ("content-type", "cache-control")


def relay_target(path: str, query: str = "") -> Optional[str]:
    """Rebuild the upstream URL from a ``/proxy/<url>`` path; None unless it is http(s)."""

    target, count = _SCHEME.subn(lambda m: f"{m.group(1).lower()}://", path.lstrip("/"), count=1)
    if not count:
        return None
    return f"{target}?{query}" if query else target


def create_app(
    store: Optional[BlobStore] = None,
    cache: Optional[MemoryCache] = None,
    secret: Optional[str] = None,
    relay_session: Optional[requests.Session] = None,
) -> FastAPI:
    settings = get_settings()
    store = store or BlobStore(settings.kv_database_url)
    cache = cache if cache is not None else MemoryCache()
    secret = secret if secret is not None else settings.kv_secret
    relay_session = relay_session or requests.Session()

    def refresh() -> Optional[str]:
        data = store.fetch()
        if data is None:
            return None
        cache.set(TABLE_NAME, data)
        return "OK"

    def read() -> Dict[str, Any]:
        cached = cache.get(TABLE_NAME)
        if cached is not MISS:
            return cached
        data = store.fetch()
        if data is None:
            return {}
        cache.set(TABLE_NAME, data)
        return data

    def write(payload: Dict[str, Any]) -> None:
        version = payload.get("version")
        if isinstance(payload.get("data"), dict):
            data = payload["data"]
        else:
            data = {key: value for key, value in payload.items() if key != "version"}
        store.persist(data, version)
        cache.set(TABLE_NAME, data)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        LOGGER.info("kv_startup refreshed=%s", await run_in_threadpool(refresh))
        yield

    app = FastAPI(lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["Api-Key", "Authorization", "Content-Type", "Content-Length", "X-Requested-With"],
    )

    @app.middleware("http")
    async def require_api_key(request: Request, call_next):
        handshake = request.method == "OPTIONS" or request.url.path.rstrip("/") == "/api"
        if secret and not handshake and request.headers.get("Api-Key") != secret:
            return Response(status_code=403)
        return await call_next(request)

    @app.get("/api")
    def alive():
        return PlainTextResponse("alive")

    @app.get("/proxy/{target:path}")
    def relay(target: str, request: Request):
        url = relay_target(target, request.url.query)
        if url is None:
            return JSONResponse({"message": "Only http(s) targets can be relayed"}, status_code=400)
        try:
            upstream = relay_session.get(url, timeout=settings.http_timeout)
        except requests.RequestException as exc:
            LOGGER.warning("relay_failed url=%s error=%s", url, exc)
            return JSONResponse({"message": "Upstream request failed"}, status_code=502)
        headers = {name: upstream.headers[name] for name in _RELAYED_HEADERS if name in upstream.headers}
        return Response(content=upstream.content, status_code=upstream.status_code, headers=headers)

    @app.api_route("/api/{action}", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
    async def dispatch(action: str, request: Request):
        if request.method not in ("GET", "POST"):
            return Response(status_code=403)
        if action == "get":
            return await run_in_threadpool(read)
        if action == "set":
            try:
                payload: Dict[str, Any] = await request.json()
            except ValueError:
                payload = None
            if not isinstance(payload, dict):
                return JSONResponse({"message": "Expected a JSON object"}, status_code=400)
            await run_in_threadpool(write, payload)
            return {"message": "OK"}
        if action == "refresh":
            return {"message": await run_in_threadpool(refresh)}
        if action == "flush":
            cache.flush()
            return {"message": "OK"}
        if action == "infodb":
            return await run_in_threadpool(store.info)
        if action == "infocache":
            return {"entries": len(cache), "cached": cache.get(TABLE_NAME) is not MISS}
        return {"message": "Not defined"}

    return app


__all__ = ["create_app", "relay_target"]
