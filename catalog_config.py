"""Shared catalog metric configuration and override parsing utilities."""

from __future__ import annotations

import math
from dataclasses import dataclass, fields, replace
from typing import Dict

TOTAL_ROW_MARKER = "Total"
DESCRIPTION_SEPARATOR = ", "
DESCRIPTION_TRUNCATION_MARKER = "…"


@dataclass(frozen=True)
class MetricConfig:
    # Visitor total that maps to a popularity score of 100.
    reference_visitors: float = 4_500_000
    cost_base: float = 80
    cost_span: float = 40
    rating_floor: float = 3.5
    rating_span: float = 1.5
    country: str = "India"
    region: str = "Asia"
    description_monuments: int = 3
    featured_count: int = 3


DEFAULT_METRIC_CONFIG = MetricConfig()

NUMERIC_KEYS = tuple(
    field.name for field in fields(MetricConfig) if field.type in ("float", "int")
)
INTEGER_KEYS = ("description_monuments", "featured_count")


def parse_metric_config(raw: str, base: MetricConfig = DEFAULT_METRIC_CONFIG) -> MetricConfig:
    if not raw.strip():
        return base

    values: Dict[str, float] = {}
    for piece in raw.split(","):
        if "=" not in piece:
            raise ValueError(f"Invalid metric format: '{piece}'. Use key=value.")
        key, value = piece.split("=", maxsplit=1)
        key = key.strip().lower()
        if key not in NUMERIC_KEYS:
            raise ValueError(
                f"Unknown metric key: '{key}'. Valid keys: {', '.join(NUMERIC_KEYS)}."
            )
        try:
            number = float(value.strip().replace("_", ""))
        except ValueError as exc:
            raise ValueError(f"Metric '{key}' is not numeric.") from exc
        if not math.isfinite(number):
            raise ValueError(f"Metric '{key}' must be finite.")
        if number < 0:
            raise ValueError(f"Metric '{key}' cannot be negative.")
        if key in INTEGER_KEYS:
            if not number.is_integer():
                raise ValueError(f"Metric '{key}' must be a whole number.")
            values[key] = int(number)
        else:
            values[key] = number

    if "reference_visitors" in values and math.isclose(values["reference_visitors"], 0.0):
        raise ValueError("Metric 'reference_visitors' must be greater than zero.")
    return replace(base, **values)
