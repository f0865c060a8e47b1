"""Shared structural validation for heritage datasets and catalog exports."""

from __future__ import annotations

from typing import Any, List, Set

import pandas as pd

CATALOG_EXPORT_REQUIRED_COLUMNS: Set[str] = {
    "id",
    "name",
    "country",
    "region",
    "popularity_score",
    "cost_index",
    "rating",
    "description",
    "travelers",
    "image_url",
    "is_new",
}


def validate_dataset_payload(payload: Any) -> List[Any]:
    """Return the row list of a ``{"data": [...]}`` payload or raise ValueError."""
    if not isinstance(payload, dict):
        raise ValueError(
            f"Heritage dataset must be a JSON object, got {type(payload).__name__}."
        )
    if "data" not in payload:
        raise ValueError("Heritage dataset is missing the 'data' key.")
    rows = payload["data"]
    if not isinstance(rows, list):
        raise ValueError(
            f"Heritage dataset 'data' must be a list, got {type(rows).__name__}."
        )
    return rows


def validate_catalog_frame(data: pd.DataFrame) -> None:
    """Raise a ValueError when required columns are missing."""
    missing = CATALOG_EXPORT_REQUIRED_COLUMNS - set(data.columns)
    if missing:
        raise ValueError(f"Catalog export missing columns: {', '.join(sorted(missing))}")
