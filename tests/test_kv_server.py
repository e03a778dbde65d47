import threading

import pytest
import requests
from requests.structures import CaseInsensitiveDict
from fastapi.testclient import TestClient

from propsearch.db.blob_store import BlobStore
from propsearch.db.kv_client import KeyValueClient
from propsearch.db.kv_server import create_app, relay_target
from propsearch.utils.caching import MemoryCache

SECRET = "s3cret"
HEADERS = {"Api-Key": SECRET}


@pytest.fixture
def store(tmp_path):
    return BlobStore(f"sqlite:///{tmp_path / 'kv.sqlite'}")


@pytest.fixture
def client(store):
    with TestClient(create_app(store=store, cache=MemoryCache(), secret=SECRET)) as test_client:
        yield test_client


def test_alive(client):
    resp = client.get("/api")
    assert resp.status_code == 200
    assert resp.text == "alive"


def test_wrong_or_missing_key_is_forbidden(client):
    assert client.get("/api/get").status_code == 403
    assert client.get("/api/get", headers={"Api-Key": "nope"}).status_code == 403


def test_get_on_empty_store(client):
    assert client.get("/api/get", headers=HEADERS).json() == {}


def test_set_then_get_round_trip(client, store):
    data = {"42": {"rent_estimate": 1800}, "42@place-1": {"travel_time_seconds": 900}}
    resp = client.post("/api/set", json={"data": data}, headers=HEADERS)
    assert resp.json() == {"message": "OK"}
    assert client.get("/api/get", headers=HEADERS).json() == data
    assert store.fetch() == data
    assert store.latest_version() == 0


def test_set_accepts_bare_object_and_explicit_version(client, store):
    client.post("/api/set", json={"7": {"rent_estimate": 1000}, "version": 3}, headers=HEADERS)
    assert store.latest_version() == 3
    assert store.fetch() == {"7": {"rent_estimate": 1000}}


def test_set_rejects_non_object(client):
    resp = client.post("/api/set", content="[1, 2]", headers={**HEADERS, "Content-Type": "application/json"})
    assert resp.status_code == 400


def test_flush_and_refresh(client):
    assert client.post("/api/refresh", headers=HEADERS).json() == {"message": None}
    client.post("/api/set", json={"data": {"1": {"rent_estimate": 1}}}, headers=HEADERS)
    assert client.post("/api/flush", headers=HEADERS).json() == {"message": "OK"}
    assert client.post("/api/infocache", headers=HEADERS).json() == {"entries": 0, "cached": False}
    assert client.get("/api/get", headers=HEADERS).json() == {"1": {"rent_estimate": 1}}
    assert client.post("/api/refresh", headers=HEADERS).json() == {"message": "OK"}
    assert client.post("/api/infocache", headers=HEADERS).json()["cached"] is True


def test_infodb(client):
    info = client.post("/api/infodb", headers=HEADERS).json()
    assert info["dialect"] == "sqlite"
    assert info["latest_version"] is None


def test_unknown_action_and_method(client):
    assert client.get("/api/bogus", headers=HEADERS).json() == {"message": "Not defined"}
    assert client.put("/api/get", headers=HEADERS).status_code == 403


def test_startup_warms_cache_from_store(store):
    store.persist({"9": {"rent_estimate": 900}})
    cache = MemoryCache()
    with TestClient(create_app(store=store, cache=cache, secret=SECRET)):
        assert cache.get("properties") == {"9": {"rent_estimate": 900}}


def test_key_value_client_against_service(client):
    kv = KeyValueClient("http://testserver/api", secret=SECRET, session=client)
    assert kv.get() == {}
    assert kv.set({"5": {"rent_estimate": 1500}}) == {"message": "OK"}
    assert kv.get() == {"5": {"rent_estimate": 1500}}
    assert kv.info_cache()["cached"] is True


def test_key_value_client_admin_actions(client):
    kv = KeyValueClient("http://testserver/api", secret=SECRET, session=client)
    kv.set({"5": {"rent_estimate": 1500}}, version=2)
    assert kv.flush() == {"message": "OK"}
    assert kv.info_cache()["cached"] is False
    assert kv.refresh() == {"message": "OK"}
    assert kv.info_db()["latest_version"] == 2


class _SlowStore(BlobStore):
    """Holds ``persist`` until released so concurrent requests can be observed."""

    def __init__(self, url):
        super().__init__(url)
        self.started = threading.Event()
        self.release = threading.Event()
        self.finished = False

    def persist(self, data, version=None):
        self.started.set()
        self.release.wait(timeout=5)
        self.finished = True
        return super().persist(data, version)


def test_store_writes_do_not_block_other_requests(tmp_path):
    store = _SlowStore(f"sqlite:///{tmp_path / 'slow.sqlite'}")
    with TestClient(create_app(store=store, cache=MemoryCache(), secret=SECRET)) as client:
        writer = threading.Thread(
            target=client.post, args=("/api/set",), kwargs={"json": {"data": {"1": {}}}, "headers": HEADERS}
        )
        writer.start()
        assert store.started.wait(timeout=5)

        assert client.get("/api").text == "alive"
        assert client.post("/api/infocache", headers=HEADERS).status_code == 200
        assert store.finished is False

        store.release.set()
        writer.join(timeout=5)
    assert store.fetch() == {"1": {}}


def test_relay_target():
    assert relay_target("https://api.test/a/b", "x=1&y=2") == "https://api.test/a/b?x=1&y=2"
    assert relay_target("https:/api.test/a") == "https://api.test/a"
    assert relay_target("file:///etc/passwd") is None
    assert relay_target("api.test/a") is None


class _RelayResponse:
    status_code = 200
    content = b'{"ok": true}'
    headers = CaseInsensitiveDict({"Content-Type": "application/json", "Set-Cookie": "x=1"})


class _RelaySession:
    def __init__(self, fail=False):
        self.fail = fail
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        if self.fail:
            raise requests.ConnectionError("unreachable")
        return _RelayResponse()


def test_relay_forwards_get_requests(store):
    session = _RelaySession()
    with TestClient(create_app(store=store, cache=MemoryCache(), secret=SECRET, relay_session=session)) as client:
        assert client.get("/proxy/https://api.test/search?q=austin").status_code == 403
        resp = client.get("/proxy/https://api.test/search?q=austin", headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert resp.headers["content-type"] == "application/json"
    assert "set-cookie" not in resp.headers
    assert session.urls == ["https://api.test/search?q=austin"]


def test_relay_upstream_failure_is_bad_gateway(store):
    session = _RelaySession(fail=True)
    with TestClient(create_app(store=store, cache=MemoryCache(), secret=SECRET, relay_session=session)) as client:
        assert client.get("/proxy/https://api.test/x", headers=HEADERS).status_code == 502
        assert client.get("/proxy/ftp://api.test/x", headers=HEADERS).status_code == 400
