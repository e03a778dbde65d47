"""In-process stand-ins for the remote providers used across the test modules."""

from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import requests

GEOCODE_URL = "https://geo.test/geocoding"
LISTINGS_URL = "https://listings.test/search"
COMPS_URL = "https://comps.test/rentals"
DEEP_SEARCH_URL = "https://deep.test/webservice"

Handler = Callable[[str], Any]


class FakeGateway:
    """Dispatches ``fetch_json`` calls to handlers registered by URL prefix."""

    def __init__(self, handlers: Optional[Dict[str, Handler]] = None) -> None:
        self.handlers = dict(handlers or {})
        self.calls: List[Tuple[str, bool, str]] = []

    def fetch_json(self, url: str, proxied: bool = False, fmt: str = "json") -> Any:
        self.calls.append((url, proxied, fmt))
        for prefix, handler in self.handlers.items():
            if url.startswith(prefix):
                return handler(url)
        raise requests.HTTPError(f"404 for {url}")

    def urls(self, prefix: str) -> List[str]:
        return [url for url, _, _ in self.calls if url.startswith(prefix)]


class FakeStore:
    def __init__(self, data: Optional[Dict[str, Any]] = None, fail_get: bool = False, fail_set: bool = False) -> None:
        self.data = dict(data or {})
        self.fail_get = fail_get
        self.fail_set = fail_set
        self.sets: List[Dict[str, Any]] = []

    def get(self) -> Dict[str, Any]:
        if self.fail_get:
            raise requests.ConnectionError("store unreachable")
        return dict(self.data)

    def set(self, data: Dict[str, Any], version: Optional[int] = None) -> Dict[str, Any]:
        if self.fail_set:
            raise requests.ConnectionError("store unreachable")
        self.sets.append(dict(data))
        self.data = dict(data)
        return {"message": "OK"}


def geocode_payload(lat: float, lng: float) -> Dict[str, Any]:
    return {"info": {"statusCode": 0}, "results": [{"locations": [{"latLng": {"lat": lat, "lng": lng}}]}]}


def geocode_handler(locations: Dict[str, Tuple[float, float]]) -> Handler:
    """Resolve the ``location`` query parameter against ``locations`` (lower-cased keys)."""

    def handle(url: str) -> Dict[str, Any]:
        query = parse_qs(urlparse(url).query)
        location = query["location"][0]
        if location not in locations:
            return {"info": {"statusCode": 0}, "results": []}
        return geocode_payload(*locations[location])

    return handle


def listing_payload(results: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"cat1": {"searchResults": {"mapResults": results}}}


def map_result(
    zpid: Optional[int],
    price: Optional[int],
    zip_code: str = "78701",
    street: str = "100 Main St",
    city: str = "Austin",
    **home: Any,
) -> Dict[str, Any]:
    slug = "-".join([*street.split(), city, "TX", zip_code])
    info = {
        "zpid": zpid,
        "streetAddress": street,
        "city": city,
        "state": "TX",
        "zipcode": zip_code,
        "bedrooms": 3,
        "bathrooms": 2,
        "homeType": "SINGLE_FAMILY",
        "livingArea": 1500,
    }
    info.update(home)
    return {
        "zpid": str(zpid) if zpid else None,
        "price": f"${price:,}" if price else None,
        "detailUrl": f"/homedetails/{slug}/{zpid}_zpid/",
        "statusType": "FOR_SALE",
        "hdpData": {"homeInfo": info},
    }


def comps_payload(prices: List[str]) -> Dict[str, Any]:
    return {"data": [{"price": price} for price in prices]}


class FakeDistanceMatrix:
    """Mimics ``googlemaps.Client.distance_matrix`` with per-origin durations."""

    def __init__(self, seconds: Optional[Dict[str, int]] = None, default: int = 900) -> None:
        self.seconds = seconds or {}
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    def distance_matrix(self, origins, destinations, **kwargs) -> Dict[str, Any]:
        self.calls.append({"origins": list(origins), "destinations": list(destinations), **kwargs})
        rows = []
        for origin in origins:
            value = self.seconds.get(origin, self.default)
            rows.append({"elements": [{"status": "OK", "duration_in_traffic": {"value": value}}]})
        return {"status": "OK", "rows": rows}


def comps_handler(by_center: Dict[Tuple[float, float], Any]) -> Handler:
    """Answer comparable queries for whichever center lies inside the requested bounds.

    Values are price lists, or exceptions to raise for that area.
    """

    def handle(url: str) -> Dict[str, Any]:
        south, north, west, east = (float(part) for part in parse_qs(urlparse(url).query)["bounds"][0].split(","))
        for (lat, lng), prices in by_center.items():
            if south < lat < north and west < lng < east:
                if isinstance(prices, Exception):
                    raise prices
                return comps_payload(prices)
        return comps_payload([])

    return handle
