"""Request and settings schemas for remote fetches and local filtering."""

from __future__ import annotations

from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

Dimension = Literal["Price", "Rent/Price Ratio", "Zestimate/Price Ratio", "Price/SqFt", "Commute"]

SOLD_WITHIN_CHOICES = ("1", "7", "14", "30", "90", "6m", "12m", "24m", "36m")


class PlaceInfo(BaseModel):
    description: str
    place_id: Optional[str] = None

    @property
    def key(self) -> str:
        """Stable identifier used to scope cached commute times."""
        return self.place_id or self.description.strip().lower()


class FetchRequest(BaseModel):
    """Parameters that require a new remote fetch when changed."""

    geo_location: PlaceInfo
    commute_location: Optional[PlaceInfo] = None
    # Miles. The listing box spans twice this distance from the center on each side.
    radius: float = Field(3.5, gt=0)
    price_from: int = Field(0, ge=0)
    price_most: int = Field(1_500_000, ge=0)
    include_for_sale: bool = True
    include_recently_sold: bool = False
    sold_within: Optional[str] = None

    @model_validator(mode="after")
    def _check_ranges(self) -> "FetchRequest":
        if self.price_most < self.price_from:
            raise ValueError("price_most must not be below price_from")
        if self.sold_within is not None and self.sold_within not in SOLD_WITHIN_CHOICES:
            raise ValueError(f"sold_within must be one of {SOLD_WITHIN_CHOICES}")
        return self


class SortOrder(BaseModel):
    dimension: Dimension
    ascending: bool = True
    # 0 dominates; larger numbers only break ties left by smaller ones.
    priority: int = 0


class FilterSettings(BaseModel):
    """Settings applied locally over already-fetched properties."""

    rent_only: bool = False
    new_construction: bool = False
    include_land: bool = False
    home_types: Optional[List[str]] = None
    meets_rule: Optional[Tuple[float, float]] = (0.0, 2.0)
    sort_order: List[SortOrder] = Field(
        default_factory=lambda: [SortOrder(dimension="Commute", ascending=True, priority=0)]
    )


class SearchRequest(BaseModel):
    request: FetchRequest
    settings: FilterSettings = Field(default_factory=FilterSettings)
