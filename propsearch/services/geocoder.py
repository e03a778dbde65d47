"""Resolve free-text locations to coordinates and build search boxes around them."""

from __future__ import annotations

import math
from typing import Optional
from urllib.parse import quote

from ..models.property import BoundingBox, Location
from ..utils.coerce import to_float
from ..utils.logging import get_logger
from .gateway import RemoteGateway

LOGGER = get_logger("services.geocoder")

EARTH_RADIUS_M = 6378137.0
METERS_PER_MILE = 1609.34


class Geocoder:
    def __init__(self, gateway: RemoteGateway, base_url: str, api_key: str) -> None:
        self.gateway = gateway
        self.base_url = base_url
        self.api_key = api_key

    def resolve(self, location: str) -> Optional[Location]:
        """Return the primary coordinate for ``location`` or None when unresolvable."""

        url = f"{self.base_url}?key={self.api_key}&location={quote(location.lower())}"
        payload = self.gateway.fetch_json(url, proxied=True)
        status = (payload.get("info") or {}).get("statusCode")
        if status != 0:
            LOGGER.info("geocode_failed location=%s status=%s", location, status)
            return None
        results = payload.get("results") or []
        if not results or not results[0].get("locations"):
            LOGGER.info("geocode_empty location=%s", location)
            return None
        lat_lng = results[0]["locations"][0].get("latLng") or {}
        lat, lng = to_float(lat_lng.get("lat")), to_float(lat_lng.get("lng"))
        if lat is None or lng is None:
            LOGGER.info("geocode_without_coordinates location=%s", location)
            return None
        return Location(lat=lat, lng=lng)


def compute_offset(lat: float, lng: float, distance_m: float, heading_deg: float) -> Location:
    """Destination point ``distance_m`` meters from (lat, lng) along ``heading_deg`` on a sphere."""

    delta = distance_m / EARTH_RADIUS_M
    heading = math.radians(heading_deg)
    phi1 = math.radians(lat)
    lambda1 = math.radians(lng)
    sin_phi2 = math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * math.cos(heading)
    phi2 = math.asin(sin_phi2)
    lambda2 = lambda1 + math.atan2(
        math.sin(heading) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * sin_phi2,
    )
    return Location(lat=math.degrees(phi2), lng=math.degrees(lambda2))


def bounding_box(lat: float, lng: float, side: float) -> BoundingBox:
    """Square box whose edges lie ``side`` miles north, east, south and west of (lat, lng).

    Only valid for sides that are small compared to the Earth radius and away
    from the poles.
    """

    meters = side * METERS_PER_MILE
    return BoundingBox(
        north=compute_offset(lat, lng, meters, 0).lat,
        east=compute_offset(lat, lng, meters, 90).lng,
        south=compute_offset(lat, lng, meters, 180).lat,
        west=compute_offset(lat, lng, meters, 270).lng,
    )


__all__ = ["Geocoder", "bounding_box", "compute_offset"]
