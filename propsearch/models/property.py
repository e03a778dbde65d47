"""Pydantic models representing listings and geographic helpers."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

NEW_CONSTRUCTION = "NEW_CONSTRUCTION"
SOLD = "SOLD"


class Location(BaseModel):
    lat: float
    lng: float


class BoundingBox(BaseModel):
    north: float
    east: float
    south: float
    west: float


class Property(BaseModel):
    id: Optional[int] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    detail_url: Optional[str] = None
    img_src: Optional[str] = None

    price: Optional[int] = None
    rent_estimate: Optional[float] = None
    market_value_estimate: Optional[float] = None

    beds: Optional[float] = None
    baths: Optional[float] = None
    area: Optional[float] = None
    living_area: Optional[float] = None
    lot_area: Optional[float] = None
    home_type: Optional[str] = None
    listing_type: Optional[str] = None
    status_type: Optional[str] = None
    status_text: Optional[str] = None
    last_sold_date: Optional[str] = None

    travel_time_seconds: Optional[int] = None

    def origin(self) -> Optional[str]:
        """Commute origin string, or None when any address part is missing."""
        if not (self.address and self.city and self.state and self.zip_code):
            return None
        return f"{self.address} {self.city}, {self.state} {self.zip_code}"


class PropertyListResponse(BaseModel):
    items: List[Property]
    total: int
    available: int
    superseded: bool = False
