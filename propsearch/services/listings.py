"""Query the listings provider and normalise its heterogeneous records."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from ..models.property import SOLD, BoundingBox, Property
from ..utils.coerce import parse_money, to_float, to_int, to_str
from ..utils.logging import get_logger
from .gateway import RemoteGateway

LOGGER = get_logger("services.listings")

WANTS = {"cat1": ["mapResults"]}


class ListingSource:
    def __init__(self, gateway: RemoteGateway, base_url: str) -> None:
        self.gateway = gateway
        self.base_url = base_url

    def search(
        self,
        box: BoundingBox,
        price_from: int,
        price_most: int,
        include_for_sale: bool = True,
        include_recently_sold: bool = False,
        sold_within: Optional[str] = None,
    ) -> List[Property]:
        """Fetch active and/or recently sold listings inside ``box``.

        Both inventory classes are concatenated as returned; the provider keeps
        them disjoint. Records without an id are dropped.
        """

        raw: List[Dict[str, Any]] = []
        if include_for_sale:
            raw.extend(self._query(box, price_from, price_most, recently_sold=False))
        if include_recently_sold:
            raw.extend(self._query(box, price_from, price_most, recently_sold=True, sold_within=sold_within))
        parsed = [parse_result(item) for item in raw]
        kept = [prop for prop in parsed if prop.id]
        LOGGER.info("listings_parsed raw=%s kept=%s", len(raw), len(kept))
        return kept

    def _query(
        self,
        box: BoundingBox,
        price_from: int,
        price_most: int,
        recently_sold: bool,
        sold_within: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        state = search_query_state(box, price_from, price_most, recently_sold, sold_within)
        url = (
            f"{self.base_url}?searchQueryState={quote(json.dumps(state, separators=(',', ':')))}"
            f"&wants={quote(json.dumps(WANTS, separators=(',', ':')))}"
        )
        data = self.gateway.fetch_json(url, proxied=True)
        return data["cat1"]["searchResults"]["mapResults"] or []


def search_query_state(
    box: BoundingBox,
    price_from: int,
    price_most: int,
    recently_sold: bool,
    sold_within: Optional[str] = None,
) -> Dict[str, Any]:
    for_sale = not recently_sold
    filter_state: Dict[str, Any] = {
        "price": {"min": price_from, "max": price_most},
        "isAllHomes": {"value": True},
        "isRecentlySold": {"value": recently_sold},
        "isForSaleByAgent": {"value": for_sale},
        "isForSaleByOwner": {"value": for_sale},
        "isNewConstruction": {"value": for_sale},
        "isComingSoon": {"value": for_sale},
        "isAuction": {"value": for_sale},
        "isForSaleForeclosure": {"value": for_sale},
    }
    if recently_sold and sold_within:
        filter_state["doz"] = {"value": sold_within}
    return {"mapBounds": box.model_dump(), "filterState": filter_state}


def address_from_detail_url(detail_url: Optional[str]) -> Tuple[Optional[str], Optional[str], Optional[str], Optional[str]]:
    """Split ``/homedetails/123-Main-St-Austin-TX-78701/1_zpid/`` into (street, city, state, zip).

    Best effort only: the last three hyphen tokens are taken as city, state and
    zip, so a multi-word city keeps only its last word and the rest lands in the
    street.
    """

    if not detail_url:
        return None, None, None, None
    segments = detail_url.split("/")
    if len(segments) < 3 or not segments[2]:
        return None, None, None, None
    tokens = segments[2].split("-")
    if len(tokens) < 4:
        return None, None, None, None
    zip_code = tokens[-1] if tokens[-1].isdigit() else None
    return " ".join(tokens[:-3]) or None, tokens[-3] or None, tokens[-2] or None, zip_code


def parse_result(item: Dict[str, Any]) -> Property:
    """Normalise one raw map result, preferring HDP home info when present."""

    address, city, state, zip_code = address_from_detail_url(item.get("detailUrl"))
    fields: Dict[str, Any] = {
        "address": address or to_str(item.get("address")) or None,
        "city": city,
        "state": state,
        "zip_code": zip_code,
        "detail_url": item.get("detailUrl"),
        "img_src": item.get("imgSrc"),
        "listing_type": item.get("listingType") or None,
        "status_type": item.get("statusType") or None,
        "status_text": item.get("statusText") or None,
        "price": parse_money(item.get("unformattedPrice") or item.get("price")) or None,
        "area": to_float(item.get("area") or item.get("minArea")),
        "lot_area": to_float(item.get("lotAreaString")),
    }
    if item.get("statusType") == SOLD and isinstance(item.get("variableData"), dict):
        fields["last_sold_date"] = item["variableData"].get("text")

    home = (item.get("hdpData") or {}).get("homeInfo")
    if home:
        fields.update({k: v for k, v in _hdp_fields(home).items() if v is not None})
    else:
        fields["baths"] = to_float(item.get("baths") or item.get("minBaths"))
        fields["beds"] = to_float(item.get("beds") or item.get("minBeds"))
        fields["id"] = to_int(item.get("zpid"))
    return Property(**{k: v for k, v in fields.items() if v is not None})


def _hdp_fields(home: Dict[str, Any]) -> Dict[str, Any]:
    fields = {
        "id": to_int(home.get("zpid")),
        "baths": to_float(home.get("bathrooms")),
        "beds": to_float(home.get("bedrooms")),
        "city": home.get("city"),
        "state": home.get("state"),
        "zip_code": to_str(home.get("zipcode")) or None,
        "home_type": home.get("homeType"),
        "living_area": to_float(home.get("livingArea")),
        "rent_estimate": to_float(home.get("rentZestimate")),
        "market_value_estimate": to_float(home.get("zestimate")),
    }
    if home.get("streetAddress"):
        fields["address"] = home["streetAddress"]
    price = parse_money(home.get("price"))
    if price:
        fields["price"] = price
    return fields


__all__ = ["ListingSource", "address_from_detail_url", "parse_result", "search_query_state"]
