"""Rental income estimates backed by the persistent key-value store and comparable rentals."""

from __future__ import annotations

from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import quote

import numpy as np

from ..db.kv_client import Database, KeyValueClient
from ..models.property import Location, Property
from ..utils.coerce import parse_money, to_float
from ..utils.logging import get_logger
from ..utils.throttle import SlidingWindowThrottle
from .gateway import REMOTE_ERRORS, RemoteGateway
from .geocoder import Geocoder, bounding_box

LOGGER = get_logger("services.rent_estimator")

RENT_KEY = "rent_estimate"
VALUE_KEY = "market_value_estimate"

# Rental comparables provider allows 5 requests per 3 seconds.
COMPS_LIMIT = 5
COMPS_PERIOD = 3.0
COMPS_BOX_MILES = 1

ProgressCallback = Callable[[int, int], None]


def median_estimate(values: Iterable[float]) -> Optional[float]:
    """Median of ``values``; even counts average the two middle values, empty gives None."""

    arr = np.array([v for v in values if v is not None], dtype=float)
    if arr.size == 0:
        return None
    return float(np.median(arr))


def rental_key(property_id: int) -> str:
    return str(property_id)


def merge_rental(prop: Property, database: Database) -> Property:
    if not prop.id:
        return prop
    entry = database.get(rental_key(prop.id)) or {}
    update = {key: entry[key] for key in (RENT_KEY, VALUE_KEY) if entry.get(key) is not None}
    return prop.model_copy(update=update) if update else prop


@dataclass
class RentEnrichment:
    properties: List[Property]
    database: Database
    changed: bool
    zips_requested: int = 0
    zips_estimated: int = 0


class RentEstimator:
    def __init__(
        self,
        gateway: RemoteGateway,
        geocoder: Geocoder,
        store: KeyValueClient,
        comps_base_url: str,
        throttle: Optional[SlidingWindowThrottle] = None,
        deep_search_base_url: Optional[str] = None,
        deep_search_key: Optional[str] = None,
        max_workers: int = COMPS_LIMIT,
        writer: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.gateway = gateway
        self.geocoder = geocoder
        self.store = store
        self.comps_base_url = comps_base_url
        self.throttle = throttle or SlidingWindowThrottle(COMPS_LIMIT, COMPS_PERIOD)
        self._throttled_fetch = self.throttle.wrap(gateway.fetch_json)
        self.deep_search_base_url = deep_search_base_url
        self.deep_search_key = deep_search_key
        self.max_workers = max_workers
        self._writer = writer or ThreadPoolExecutor(max_workers=1, thread_name_prefix="kv-write")
        self.last_write: Optional[Future] = None

    def estimate(self, properties: List[Property]) -> List[Property]:
        """Attach rent and valuation estimates to ``properties``.

        Reads the whole store, estimates what is missing and writes the store
        back in the background without waiting for it.
        """

        database = self.read_database()
        if database is None:
            return self.enrich(properties, {}).properties
        result = self.enrich(properties, database)
        if result.changed:
            self.persist(result.database)
        return result.properties

    def read_database(self) -> Optional[Database]:
        """Whole stored blob, or None when the store cannot be read."""
        try:
            database = self.store.get()
        except REMOTE_ERRORS as exc:
            LOGGER.warning("rental_db_read_failed error=%s", exc)
            return None
        LOGGER.info("rental_db_read entries=%s", len(database))
        return database

    def needs_estimate(self, properties: List[Property], database: Database) -> List[Property]:
        return [
            prop
            for prop in properties
            if prop.id and prop.address and prop.zip_code and prop.price
            and not prop.rent_estimate
            and rental_key(prop.id) not in database
        ]

    def enrich(
        self,
        properties: List[Property],
        database: Database,
        progress: Optional[ProgressCallback] = None,
    ) -> RentEnrichment:
        database = dict(database)
        changed = False
        for prop in properties:
            if prop.id and prop.rent_estimate:
                key = rental_key(prop.id)
                entry = {**database.get(key, {}), RENT_KEY: prop.rent_estimate}
                if prop.market_value_estimate:
                    entry[VALUE_KEY] = prop.market_value_estimate
                if database.get(key) != entry:
                    database[key] = entry
                    changed = True

        pending = self.needs_estimate(properties, database)
        by_zip: Dict[str, List[Property]] = defaultdict(list)
        for prop in pending:
            by_zip[prop.zip_code].append(prop)

        rents = self.estimate_zips(list(by_zip), progress=progress) if by_zip else {}
        for zip_code, rent in rents.items():
            for prop in by_zip[zip_code]:
                database[rental_key(prop.id)] = {RENT_KEY: rent}
                changed = True

        if self.deep_search_key and self.deep_search_base_url:
            leftovers = [prop for zip_code, props in by_zip.items() if zip_code not in rents for prop in props]
            for prop in leftovers:
                entry = self.deep_search_estimate(prop)
                if entry:
                    database[rental_key(prop.id)] = entry
                    changed = True

        LOGGER.info(
            "rent_estimates pending=%s zips=%s estimated_zips=%s",
            len(pending),
            len(by_zip),
            len(rents),
        )
        return RentEnrichment(
            properties=[merge_rental(prop, database) for prop in properties],
            database=database,
            changed=changed,
            zips_requested=len(by_zip),
            zips_estimated=len(rents),
        )

    def estimate_zips(self, zips: List[str], progress: Optional[ProgressCallback] = None) -> Dict[str, float]:
        """Median comparable rent per zip code; failing zips are left out."""

        rents: Dict[str, float] = {}
        total = len(zips)
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="rent-zip") as pool:
            futures = {zip_code: pool.submit(self._zip_estimate, zip_code) for zip_code in zips}
            for done, (zip_code, future) in enumerate(futures.items(), start=1):
                rent = future.result()
                if rent is not None:
                    rents[zip_code] = rent
                if progress:
                    progress(done, total)
        return rents

    def _zip_estimate(self, zip_code: str) -> Optional[float]:
        try:
            location = self.geocoder.resolve(zip_code)
            if location is None:
                return None
            return self.comparable_estimate(location)
        except REMOTE_ERRORS as exc:
            LOGGER.warning("zip_estimate_failed zip=%s error=%s", zip_code, exc)
            return None

    def comparable_estimate(self, location: Location) -> Optional[float]:
        box = bounding_box(location.lat, location.lng, COMPS_BOX_MILES)
        url = f"{self.comps_base_url}?bounds={box.south},{box.north},{box.west},{box.east}"
        payload = self._throttled_fetch(url, proxied=True)
        listings = payload.get("data") or []
        prices = [parse_money(item.get("price")) for item in listings if item.get("price")]
        return median_estimate(price for price in prices if price)

    def deep_search_estimate(self, prop: Property) -> Optional[Dict[str, float]]:
        """Rent and valuation for one property from the legacy XML deep-search API."""

        url = (
            f"{self.deep_search_base_url}/GetDeepSearchResults.htm?zws-id={self.deep_search_key}"
            f"&address={quote(prop.address or '')}&citystatezip={prop.zip_code}&rentzestimate=true"
        )
        try:
            results = self._throttled_fetch(url, proxied=True, fmt="xml")
        except REMOTE_ERRORS as exc:
            LOGGER.warning("deep_search_failed id=%s error=%s", prop.id, exc)
            return None
        for result in results:
            rent = to_float(_amount(result.get("rentzestimate")))
            if rent:
                entry = {RENT_KEY: rent}
                value = to_float(_amount(result.get("zestimate")))
                if value:
                    entry[VALUE_KEY] = value
                return entry
        return None

    def persist(self, database: Database) -> Future:
        """Start writing ``database`` back; the returned future resolves to success."""
        self.last_write = self._writer.submit(self._write, database)
        return self.last_write

    def _write(self, database: Database) -> bool:
        try:
            self.store.set(database)
        except REMOTE_ERRORS as exc:
            LOGGER.warning("rental_db_write_failed entries=%s error=%s", len(database), exc)
            return False
        LOGGER.info("rental_db_written entries=%s", len(database))
        return True


def _amount(node) -> Optional[str]:
    if isinstance(node, dict):
        amount = node.get("amount")
        return amount if isinstance(amount, str) else None
    return None


__all__ = ["RentEstimator", "RentEnrichment", "median_estimate", "merge_rental", "rental_key"]
