import csv
import io

from fastapi.testclient import TestClient

from propsearch.api import app, get_orchestrator
from propsearch.models.property import Property
from propsearch.services.orchestrator import Phase, SearchRun

client = TestClient(app)


def _properties():
    return [
        Property(id=1, address="1 Main St", price=200_000, rent_estimate=3000, beds=3, baths=2,
                 home_type="SINGLE_FAMILY", living_area=1000, travel_time_seconds=1200),
        Property(id=2, address="2 Main St", price=400_000, rent_estimate=3000, beds=3, baths=2,
                 home_type="SINGLE_FAMILY", travel_time_seconds=600),
        Property(id=3, address="3 Main St", price=150_000, beds=None, baths=None, home_type="LOT"),
    ]


class _FakeOrchestrator:
    def __init__(self, superseded=False):
        self.superseded = superseded
        self.properties = []
        self.loading = False
        self.phase = Phase.IDLE
        self.committed_sequence = 0
        self.requests = []

    def submit(self, request, progress=None):
        self.requests.append(request)
        if self.superseded:
            return None
        self.properties = _properties()
        self.committed_sequence += 1
        return SearchRun(sequence=self.committed_sequence, request=request, properties=self.properties)


def _use(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return orchestrator


def _search_body(**settings):
    return {"request": {"geo_location": {"description": "Austin, TX"}}, "settings": settings}


def test_health():
    assert client.get("/api/health").json() == {"status": "ok"}


def test_search_returns_filtered_sorted_items():
    orchestrator = _use(_FakeOrchestrator())
    resp = client.post("/api/search", json=_search_body(meets_rule=[1.0, 2.0]))
    assert resp.status_code == 200
    payload = resp.json()
    assert [item["id"] for item in payload["items"]] == [1]
    assert payload["total"] == 1
    assert payload["available"] == 3
    assert payload["superseded"] is False
    assert orchestrator.requests[0].radius == 3.5


def test_search_default_sort_is_commute_ascending():
    _use(_FakeOrchestrator())
    payload = client.post("/api/search", json=_search_body(meets_rule=None)).json()
    assert [item["id"] for item in payload["items"]] == [2, 1]


def test_superseded_search_is_flagged():
    _use(_FakeOrchestrator(superseded=True))
    payload = client.post("/api/search", json=_search_body()).json()
    assert payload["superseded"] is True
    assert payload["items"] == []


def test_invalid_request_rejected():
    _use(_FakeOrchestrator())
    body = {"request": {"geo_location": {"description": "Austin"}, "price_from": 500, "price_most": 100}}
    assert client.post("/api/search", json=body).status_code == 422


def test_filter_reuses_committed_properties():
    orchestrator = _use(_FakeOrchestrator())
    client.post("/api/search", json=_search_body())
    payload = client.post("/api/filter", json={"settings": {"include_land": True, "home_types": ["All"], "meets_rule": None}}).json()
    assert payload["total"] == 3
    assert len(orchestrator.requests) == 1


def test_export_csv_includes_computed_metrics():
    _use(_FakeOrchestrator())
    client.post("/api/search", json=_search_body())
    resp = client.post("/api/export", json={"settings": {"meets_rule": None, "sort_order": []}})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "properties.csv" in resp.headers["content-disposition"]
    rows = list(csv.DictReader(io.StringIO(resp.text)))
    assert [row["id"] for row in rows] == ["1", "2"]
    assert float(rows[0]["rent_to_price"]) == 1.5
    assert float(rows[0]["commute_minutes"]) == 20.0
    assert rows[0]["home_type"] == "Single Family"


def test_status_reports_committed_run():
    _use(_FakeOrchestrator())
    client.post("/api/search", json=_search_body())
    status = client.get("/api/status").json()
    assert status == {"loading": False, "phase": "idle", "committed_sequence": 1, "available": 3}
