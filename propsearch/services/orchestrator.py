"""Sequence geocoding, listing fetch, rent and commute enrichment into one merged result."""

from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..config import Settings, get_settings
from ..db.kv_client import Database, KeyValueClient
from ..models.property import Property
from ..models.search import FetchRequest
from ..utils.caching import Cache, MemoryCache
from ..utils.logging import get_logger
from .commute import COMMUTE_ERRORS, CommuteEstimator
from .gateway import REMOTE_ERRORS, RemoteGateway
from .geocoder import Geocoder, bounding_box
from .listings import ListingSource
from .rent_estimator import RentEstimator

LOGGER = get_logger("services.orchestrator")

TRAVEL_KEY = "travel_time_seconds"
# Listing box half-width in multiples of the request radius.
LISTING_BOX_FACTOR = 2

ProgressFn = Callable[[float], None]


class Phase(str, Enum):
    IDLE = "idle"
    GEOCODING = "geocoding"
    FETCHING_LISTINGS = "fetching_listings"
    READING_CACHE = "reading_cache"
    ESTIMATING_RENTS = "estimating_rents"
    WRITING_CACHE = "writing_cache"
    ESTIMATING_COMMUTE = "estimating_commute"


class Superseded(Exception):
    """Raised inside a run once a newer request has been submitted."""


class ProgressTracker:
    """Reports fractions in [0, 1] that never decrease."""

    def __init__(self, callback: Optional[ProgressFn] = None) -> None:
        self.callback = callback
        self.value = 0.0

    def report(self, fraction: float) -> None:
        fraction = max(self.value, min(1.0, fraction))
        self.value = fraction
        if self.callback:
            self.callback(fraction)

    def span(self, start: float, end: float) -> Callable[[int, int], None]:
        def step(done: int, total: int) -> None:
            self.report(start + (end - start) * (done / total if total else 1.0))

        return step


def commute_key(property_id: int, destination_key: str) -> str:
    return f"{property_id}@{destination_key}"


@dataclass
class SearchRun:
    sequence: int
    request: FetchRequest
    properties: List[Property]


class EnrichmentOrchestrator:
    def __init__(
        self,
        geocoder: Geocoder,
        listings: ListingSource,
        rent_estimator: RentEstimator,
        commute_estimator: Optional[CommuteEstimator] = None,
    ) -> None:
        self.geocoder = geocoder
        self.listings = listings
        self.rent_estimator = rent_estimator
        self.commute_estimator = commute_estimator
        self.phase = Phase.IDLE
        self.properties: List[Property] = []
        self.loading = False
        self.committed_sequence = 0
        self._sequence = 0
        self._sequence_lock = threading.Lock()
        self._cache_lock = threading.Lock()
        self._pending_write: Optional[Future] = None

    # ------------------------------------------------------------------
    # Public entry points
    def submit(self, request: FetchRequest, progress: Optional[ProgressFn] = None) -> Optional[SearchRun]:
        """Run ``request`` and commit its result unless a newer request arrived meanwhile.

        Returns None for superseded runs. In-flight HTTP calls of a superseded
        run are not cancelled; the run stops at its next phase boundary.
        """

        with self._sequence_lock:
            self._sequence += 1
            sequence = self._sequence
            self.loading = True
        try:
            properties = self._pipeline(request, ProgressTracker(progress), sequence)
        except Superseded:
            LOGGER.info("run_superseded sequence=%s", sequence)
            return None
        with self._sequence_lock:
            if sequence != self._sequence:
                LOGGER.info("run_discarded sequence=%s latest=%s", sequence, self._sequence)
                return None
            self.properties = properties
            self.committed_sequence = sequence
            self.loading = False
        return SearchRun(sequence=sequence, request=request, properties=properties)

    def run(self, request: FetchRequest, progress: Optional[ProgressFn] = None) -> List[Property]:
        """Run ``request`` to completion without taking part in supersession."""
        return self._pipeline(request, ProgressTracker(progress), None)

    @property
    def pending_write(self) -> Optional[Future]:
        return self._pending_write

    # ------------------------------------------------------------------
    # Pipeline
    def _pipeline(self, request: FetchRequest, tracker: ProgressTracker, sequence: Optional[int]) -> List[Property]:
        tracker.report(0.0)
        self._enter(Phase.GEOCODING, sequence)
        try:
            location = self.geocoder.resolve(request.geo_location.description)
        except REMOTE_ERRORS as exc:
            LOGGER.warning("geocode_error location=%s error=%s", request.geo_location.description, exc)
            location = None
        if location is None:
            return self._finish(tracker, [])
        tracker.report(0.1)

        self._enter(Phase.FETCHING_LISTINGS, sequence)
        box = bounding_box(location.lat, location.lng, request.radius * LISTING_BOX_FACTOR)
        try:
            properties = self.listings.search(
                box,
                request.price_from,
                request.price_most,
                include_for_sale=request.include_for_sale,
                include_recently_sold=request.include_recently_sold,
                sold_within=request.sold_within,
            )
        except REMOTE_ERRORS as exc:
            LOGGER.warning("listing_fetch_error error=%s", exc)
            properties = []
        tracker.report(0.3)
        if not properties:
            return self._finish(tracker, [])

        with self._cache_lock:
            if self._pending_write is not None:
                self._pending_write.result()
            properties = self._enrich(request, properties, tracker, sequence)
        return self._finish(tracker, properties)

    def _enrich(
        self,
        request: FetchRequest,
        properties: List[Property],
        tracker: ProgressTracker,
        sequence: Optional[int],
    ) -> List[Property]:
        self._enter(Phase.READING_CACHE, sequence)
        stored = self.rent_estimator.read_database()
        writable = stored is not None
        database: Database = stored or {}
        tracker.report(0.4)

        if self.rent_estimator.needs_estimate(properties, database):
            self._enter(Phase.ESTIMATING_RENTS, sequence)
        try:
            enrichment = self.rent_estimator.enrich(properties, database, progress=tracker.span(0.4, 0.7))
        except REMOTE_ERRORS as exc:
            LOGGER.warning("rent_enrichment_error error=%s", exc)
            enrichment = None
        if enrichment is not None:
            properties, database = enrichment.properties, enrichment.database
        tracker.report(0.7)

        self._enter(Phase.WRITING_CACHE, sequence)
        if writable and enrichment is not None and enrichment.changed:
            self._pending_write = self.rent_estimator.persist(database)
        tracker.report(0.75)

        destination = request.commute_location
        if destination is None or not destination.description:
            return properties
        if self.commute_estimator is None:
            LOGGER.info("commute_skipped reason=no_client")
            return properties

        self._enter(Phase.ESTIMATING_COMMUTE, sequence)
        properties = [_merge_commute(prop, database, destination.key) for prop in properties]
        try:
            times = self.commute_estimator.estimate(properties, destination.description)
        except (*REMOTE_ERRORS, *COMMUTE_ERRORS) as exc:
            LOGGER.warning("commute_error destination=%s error=%s", destination.description, exc)
            times = {}
        tracker.report(0.95)
        if times:
            database = dict(database)
            for property_id, seconds in times.items():
                database[commute_key(property_id, destination.key)] = {TRAVEL_KEY: seconds}
            if writable:
                self._pending_write = self.rent_estimator.persist(database)
            properties = [_apply_time(prop, times) for prop in properties]
        return properties

    def _enter(self, phase: Phase, sequence: Optional[int]) -> None:
        if sequence is not None and sequence != self._sequence:
            raise Superseded(phase.value)
        self.phase = phase
        LOGGER.debug("phase phase=%s sequence=%s", phase.value, sequence)

    def _finish(self, tracker: ProgressTracker, properties: List[Property]) -> List[Property]:
        self.phase = Phase.IDLE
        tracker.report(1.0)
        LOGGER.info("run_complete properties=%s", len(properties))
        return properties


def _merge_commute(prop: Property, database: Database, destination_key: str) -> Property:
    entry = database.get(commute_key(prop.id, destination_key)) if prop.id else None
    if entry and entry.get(TRAVEL_KEY) is not None:
        return prop.model_copy(update={TRAVEL_KEY: int(entry[TRAVEL_KEY])})
    return prop


def _apply_time(prop: Property, times: Dict[int, int]) -> Property:
    if prop.id in times:
        return prop.model_copy(update={TRAVEL_KEY: times[prop.id]})
    return prop


def build_orchestrator(settings: Optional[Settings] = None, cache: Optional[Cache] = None) -> EnrichmentOrchestrator:
    """Wire the pipeline from configuration."""

    settings = settings or get_settings()
    gateway = RemoteGateway(
        settings.proxy_url,
        api_key=settings.db_secret,
        cache=cache if cache is not None else MemoryCache(),
        timeout=settings.http_timeout,
    )
    geocoder = Geocoder(gateway, settings.geocoding_base_url, settings.mapquest_api_key)
    store = KeyValueClient(settings.db_endpoint, secret=settings.db_secret, timeout=settings.http_timeout)
    rent_estimator = RentEstimator(
        gateway,
        geocoder,
        store,
        settings.rentbits_api_base_url,
        deep_search_base_url=settings.zillow_api_base_url,
        deep_search_key=settings.zillow_api_key,
    )
    commute = CommuteEstimator.from_key(settings.google_maps_api_key) if settings.google_maps_api_key else None
    return EnrichmentOrchestrator(geocoder, ListingSource(gateway, settings.zillow_base_url), rent_estimator, commute)


__all__ = [
    "EnrichmentOrchestrator",
    "Phase",
    "ProgressTracker",
    "SearchRun",
    "build_orchestrator",
    "commute_key",
]
