"""CSV export of filtered results with computed metrics."""

from __future__ import annotations

from typing import List

import pandas as pd

from ..models.property import Property
from .filtering import computed_metrics, home_type_label

COLUMNS = [
    "id",
    "address",
    "city",
    "state",
    "zip_code",
    "price",
    "rent_estimate",
    "market_value_estimate",
    "rent_to_price",
    "valuation_to_price",
    "price_per_sqft",
    "commute_minutes",
    "beds",
    "baths",
    "living_area",
    "lot_area",
    "home_type",
    "listing_type",
    "status_type",
    "last_sold_date",
    "detail_url",
]


class ExportService:
    def to_frame(self, properties: List[Property]) -> pd.DataFrame:
        rows = []
        for prop in properties:
            row = prop.model_dump()
            row.update(computed_metrics(prop))
            row["home_type"] = home_type_label(prop.home_type) or None
            rows.append(row)
        return pd.DataFrame(rows, columns=COLUMNS)

    def render(self, properties: List[Property]) -> bytes:
        df = self.to_frame(properties)
        for col in ("rent_to_price", "valuation_to_price", "price_per_sqft", "commute_minutes"):
            df[col] = pd.to_numeric(df[col], errors="coerce").round(2)
        return df.to_csv(index=False).encode("utf-8")


__all__ = ["ExportService", "COLUMNS"]
