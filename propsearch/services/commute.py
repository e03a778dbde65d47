"""Driving-time estimates from listings to a commute destination."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import googlemaps
from googlemaps.exceptions import ApiError, HTTPError, Timeout, TransportError

from ..models.property import Property
from ..utils.logging import get_logger
from ..utils.throttle import SlidingWindowThrottle

LOGGER = get_logger("services.commute")

BATCH_SIZE = 25
TUESDAY = 1
DEPARTURE_HOUR = 8
DEPARTURE_MINUTE = 10

COMMUTE_ERRORS = (ApiError, HTTPError, Timeout, TransportError)


def next_tuesday_departure(now: Optional[datetime] = None) -> datetime:
    """Next Tuesday 8:10 AM local time, today if it is Tuesday and not yet 8:10."""

    now = now or datetime.now()
    departure = now.replace(hour=DEPARTURE_HOUR, minute=DEPARTURE_MINUTE, second=0, microsecond=0)
    if now.weekday() == TUESDAY and now <= departure:
        return departure
    days_ahead = (TUESDAY - now.weekday()) % 7 or 7
    return departure + timedelta(days=days_ahead)


class CommuteEstimator:
    def __init__(self, client: Any, throttle: Optional[SlidingWindowThrottle] = None) -> None:
        self.client = client
        self.throttle = throttle or SlidingWindowThrottle(1, 2.0)
        self._distance_matrix = self.throttle.wrap(client.distance_matrix)

    @classmethod
    def from_key(cls, api_key: str) -> "CommuteEstimator":
        return cls(googlemaps.Client(key=api_key))

    def estimate(self, properties: List[Property], destination: str, now: Optional[datetime] = None) -> Dict[int, int]:
        """Travel seconds keyed by property id for properties without one yet.

        Properties missing any address part are never estimated. A failed batch
        contributes nothing; a non-OK element only skips its own property.
        """

        candidates = [
            prop for prop in properties if prop.id and prop.travel_time_seconds is None and prop.origin()
        ]
        departure = next_tuesday_departure(now)
        times: Dict[int, int] = {}
        batches = [candidates[i : i + BATCH_SIZE] for i in range(0, len(candidates), BATCH_SIZE)]
        for index, batch in enumerate(batches):
            try:
                response = self._distance_matrix(
                    origins=[prop.origin() for prop in batch],
                    destinations=[destination],
                    mode="driving",
                    units="imperial",
                    departure_time=departure,
                    traffic_model="best_guess",
                )
            except COMMUTE_ERRORS as exc:
                LOGGER.warning("commute_batch_failed batch=%s size=%s error=%s", index, len(batch), exc)
                continue
            if response.get("status", "OK") != "OK":
                LOGGER.warning("commute_batch_rejected batch=%s status=%s", index, response.get("status"))
                continue
            rows = response.get("rows") or []
            for prop, row in zip(batch, rows):
                seconds = _element_seconds(row)
                if seconds is not None:
                    times[prop.id] = seconds
        LOGGER.info("commute_estimates candidates=%s batches=%s estimated=%s", len(candidates), len(batches), len(times))
        return times


def _element_seconds(row: Dict[str, Any]) -> Optional[int]:
    elements = row.get("elements") or []
    if not elements or elements[0].get("status") != "OK":
        return None
    element = elements[0]
    duration = element.get("duration_in_traffic") or element.get("duration") or {}
    value = duration.get("value")
    return int(value) if value is not None else None


__all__ = ["CommuteEstimator", "next_tuesday_departure", "BATCH_SIZE"]
