"""Heritage city catalog pipeline.

This module reads the monument visitor dataset (circle, monument, domestic
visitors), groups rows by circle, derives popularity, cost and rating
metrics, resolves a display image per city and assembles a catalog ranked
by popularity.
"""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, field, fields, replace
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd
import requests

from catalog_config import (
    DEFAULT_METRIC_CONFIG,
    DESCRIPTION_SEPARATOR,
    DESCRIPTION_TRUNCATION_MARKER,
    TOTAL_ROW_MARKER,
    MetricConfig,
)
from dataset_schema import validate_dataset_payload
from image_service import DEFAULT_RESOLVER, ImageResolver, is_local_image

DEFAULT_DATASET_FILE = Path("data/heritage_monuments.json")
DATASET_FETCH_TIMEOUT = 60
SUMMARY_SAMPLE_SIZE = 3

RAW_COLUMNS = ["circle", "monument", "domestic_visitors"]

SKIPPED_INVALID = "skipped_invalid"
PROCESSING_ERROR = "processing_error"


class InvalidRowError(ValueError):
    """Raised for dataset rows that fail field validation."""


@dataclass(frozen=True)
class RawRow:
    circle: str
    monument: str
    domestic_visitors: float


@dataclass
class CircleAggregate:
    monuments: List[str] = field(default_factory=list)
    domestic_visitors_total: float = 0


@dataclass(frozen=True)
class RowDiagnostic:
    index: int
    row: Any
    kind: str
    reason: str


@dataclass(frozen=True)
class AggregationResult:
    aggregates: Dict[str, CircleAggregate]
    diagnostics: List[RowDiagnostic]

    @property
    def skipped(self) -> List[RowDiagnostic]:
        return [item for item in self.diagnostics if item.kind == SKIPPED_INVALID]

    @property
    def errors(self) -> List[RowDiagnostic]:
        return [item for item in self.diagnostics if item.kind == PROCESSING_ERROR]


@dataclass(frozen=True)
class CityMetrics:
    popularity_score: int
    cost_index: int
    rating: float


@dataclass(frozen=True)
class CityRecord:
    id: int
    name: str
    country: str
    region: str
    popularity_score: int
    cost_index: int
    rating: float
    description: str
    travelers: str
    image_url: str
    is_new: bool = False


class Catalog:
    """Popularity-ranked city records; only ``refresh`` rewrites image URLs."""

    def __init__(self, records: Sequence[CityRecord], featured_count: int = 3) -> None:
        self._records: List[CityRecord] = list(records)
        self.featured_count = featured_count

    def __iter__(self) -> Iterator[CityRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, index: int) -> CityRecord:
        return self._records[index]

    @property
    def records(self) -> Tuple[CityRecord, ...]:
        return tuple(self._records)

    def find(self, name: str) -> Optional[CityRecord]:
        for record in self._records:
            if record.name == name:
                return record
        return None

    def featured(self) -> List[CityRecord]:
        return [replace(record, is_new=True) for record in self._records[: self.featured_count]]

    def refresh(self, resolver: ImageResolver = DEFAULT_RESOLVER) -> None:
        """Re-resolve every image URL in place without re-sorting."""
        for position, record in enumerate(self._records):
            self._records[position] = replace(record, image_url=resolver.resolve(record.name))


def _round_half_up(value: float) -> float:
    # x.5 ties are exact in binary, so the shortest repr rounds the same way.
    return float(Decimal(repr(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _round_tenths(value: float) -> float:
    # Rounds the exact binary value, so 3.65 (stored as 3.6499...) gives 3.6.
    return float(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _is_total_marker(circle: str) -> bool:
    return circle.lower() == TOTAL_ROW_MARKER.lower()


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _parse_visitors(text: str) -> float:
    try:
        number = float(text)
    except ValueError as exc:
        raise InvalidRowError(f"domestic visitors '{text}' is not numeric") from exc
    if not math.isfinite(number) or number < 0:
        raise InvalidRowError(f"domestic visitors '{text}' must be a non-negative finite number")
    return number


def parse_row(row: Any) -> RawRow:
    if isinstance(row, (str, bytes)) or not isinstance(row, Sequence):
        raise InvalidRowError(f"row must be a sequence, got {type(row).__name__}")
    if len(row) < len(RAW_COLUMNS):
        raise InvalidRowError(f"row has {len(row)} columns, expected {len(RAW_COLUMNS)}")

    circle = _cell_text(row[0])
    monument = _cell_text(row[1])
    visitors_text = _cell_text(row[2])
    missing = [
        name
        for name, text in zip(RAW_COLUMNS, (circle, monument, visitors_text))
        if not text
    ]
    if missing:
        raise InvalidRowError(f"empty required fields: {', '.join(missing)}")

    return RawRow(circle=circle, monument=monument, domestic_visitors=_parse_visitors(visitors_text))


def _is_total_row(row: Any) -> bool:
    if isinstance(row, (str, bytes)) or not isinstance(row, Sequence) or not row:
        return False
    return _is_total_marker(_cell_text(row[0]))


def aggregate_rows(rows: Sequence[Any]) -> AggregationResult:
    """Group dataset rows by circle, collecting per-row diagnostics instead of failing."""
    aggregates: Dict[str, CircleAggregate] = {}
    diagnostics: List[RowDiagnostic] = []

    for index, row in enumerate(rows):
        try:
            if _is_total_row(row):
                continue
            parsed = parse_row(row)
            entry = aggregates.setdefault(parsed.circle, CircleAggregate())
            entry.monuments.append(parsed.monument)
            entry.domestic_visitors_total += parsed.domestic_visitors
        except InvalidRowError as exc:
            diagnostics.append(RowDiagnostic(index, row, SKIPPED_INVALID, str(exc)))
        except Exception as exc:
            diagnostics.append(
                RowDiagnostic(index, row, PROCESSING_ERROR, f"{type(exc).__name__}: {exc}")
            )

    return AggregationResult(aggregates=aggregates, diagnostics=diagnostics)


def derive_metrics(
    domestic_visitors_total: float,
    config: MetricConfig = DEFAULT_METRIC_CONFIG,
) -> CityMetrics:
    if not math.isfinite(domestic_visitors_total) or domestic_visitors_total < 0:
        raise ValueError(
            f"Visitor total must be a non-negative finite number, got {domestic_visitors_total}."
        )

    share = domestic_visitors_total / config.reference_visitors
    popularity = min(int(_round_half_up(share * 100)), 100)
    cost_index = int(config.cost_base + _round_half_up(share * config.cost_span))
    rating = _round_tenths(config.rating_floor + (popularity / 100) * config.rating_span)
    return CityMetrics(popularity_score=popularity, cost_index=cost_index, rating=rating)


def describe_monuments(monuments: Sequence[str], limit: int = 3) -> str:
    description = DESCRIPTION_SEPARATOR.join(monuments[:limit])
    if len(monuments) > limit:
        description += DESCRIPTION_TRUNCATION_MARKER
    return description


def format_travelers(domestic_visitors_total: float) -> str:
    return f"{domestic_visitors_total / 1_000_000:.1f}M"


def build_catalog(
    aggregates: Mapping[str, CircleAggregate],
    resolver: ImageResolver = DEFAULT_RESOLVER,
    config: MetricConfig = DEFAULT_METRIC_CONFIG,
) -> Catalog:
    records: List[CityRecord] = []
    for city_id, (circle, aggregate) in enumerate(aggregates.items(), start=1):
        metrics = derive_metrics(aggregate.domestic_visitors_total, config)
        records.append(
            CityRecord(
                id=city_id,
                name=circle,
                country=config.country,
                region=config.region,
                popularity_score=metrics.popularity_score,
                cost_index=metrics.cost_index,
                rating=metrics.rating,
                description=describe_monuments(aggregate.monuments, config.description_monuments),
                travelers=format_travelers(aggregate.domestic_visitors_total),
                image_url=resolver.resolve(circle),
            )
        )

    # sorted() is stable, so equal scores keep build order.
    records = sorted(records, key=lambda record: record.popularity_score, reverse=True)
    return Catalog(records, featured_count=config.featured_count)


def build_catalog_from_rows(
    rows: Sequence[Any],
    resolver: ImageResolver = DEFAULT_RESOLVER,
    config: MetricConfig = DEFAULT_METRIC_CONFIG,
) -> Tuple[Catalog, List[RowDiagnostic]]:
    result = aggregate_rows(rows)
    return build_catalog(result.aggregates, resolver=resolver, config=config), result.diagnostics


def catalog_to_frame(records: Sequence[CityRecord]) -> pd.DataFrame:
    columns = [item.name for item in fields(CityRecord)]
    return pd.DataFrame([asdict(record) for record in records], columns=columns)


def debug_summary(catalog: Catalog, resolver: ImageResolver = DEFAULT_RESOLVER) -> Dict[str, object]:
    return {
        "total_cities": len(catalog),
        "sample_cities": [asdict(record) for record in catalog.records[:SUMMARY_SAMPLE_SIZE]],
        "featured_count": len(catalog.featured()),
        "cities_with_custom_images": sum(
            1 for record in catalog if resolver.lookup(record.name) is not None
        ),
        "cities_with_local_images": sum(1 for record in catalog if is_local_image(record.image_url)),
    }


def read_dataset_file(path: Path) -> List[Any]:
    if not path.exists():
        raise FileNotFoundError(f"Heritage dataset not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".json":
        payload = json.loads(path.read_text(encoding="utf-8"))
        return validate_dataset_payload(payload)
    if suffix == ".csv":
        data = pd.read_csv(path, dtype=str, keep_default_na=False)
        if data.shape[1] < len(RAW_COLUMNS):
            raise ValueError(
                f"Heritage CSV needs {len(RAW_COLUMNS)} columns, found {data.shape[1]}."
            )
        return data.iloc[:, : len(RAW_COLUMNS)].values.tolist()
    raise ValueError(f"Unsupported dataset format: {path.suffix or path.name}")


def fetch_dataset(url: str, timeout: int = DATASET_FETCH_TIMEOUT) -> Dict[str, Any]:
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    payload = response.json()
    validate_dataset_payload(payload)
    return payload


def _is_remote(source: Union[str, Path]) -> bool:
    return isinstance(source, str) and source.startswith(("http://", "https://"))


def load_dataset(
    source: Union[str, Path] = DEFAULT_DATASET_FILE,
    cache_file: Optional[Path] = None,
) -> Tuple[List[Any], str]:
    """Return dataset rows and a label describing where they came from."""
    if not _is_remote(source):
        return read_dataset_file(Path(source)), "local"

    try:
        payload = fetch_dataset(str(source))
    except (requests.RequestException, ValueError) as exc:
        if cache_file is None or not cache_file.exists():
            raise RuntimeError(f"Dataset fetch failed and no cache was found: {exc}") from exc
        return read_dataset_file(cache_file), f"cache_fallback ({exc})"

    if cache_file is not None:
        cache_file.parent.mkdir(parents=True, exist_ok=True)
        cache_file.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
    return payload["data"], "live"
