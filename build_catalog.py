"""Build the heritage city catalog and export it in one run."""

from __future__ import annotations

import argparse
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import requests

from catalog_config import MetricConfig, parse_metric_config
from dataset_schema import validate_catalog_frame
from heritage_catalog import (
    DEFAULT_DATASET_FILE,
    Catalog,
    RowDiagnostic,
    aggregate_rows,
    build_catalog,
    catalog_to_frame,
    debug_summary,
    load_dataset,
)
from image_service import DEFAULT_RESOLVER, ImageResolver, load_image_with_fallbacks
from logging_utils import log_event, log_row_diagnostics

logger = logging.getLogger(__name__)

DEFAULT_CACHE_FILE = Path("data/heritage_monuments_cache.json")
OUTPUT_FORMATS = (".csv", ".json")


@dataclass(frozen=True)
class CatalogBuildResult:
    catalog: Catalog
    diagnostics: List[RowDiagnostic]
    summary: Dict[str, object]
    source: str


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Build the heritage city catalog from the monument visitor dataset."
    )
    parser.add_argument(
        "--dataset",
        default=str(DEFAULT_DATASET_FILE),
        help="Dataset JSON/CSV path, or an http(s) URL serving the JSON payload.",
    )
    parser.add_argument(
        "--cache-file",
        type=Path,
        default=DEFAULT_CACHE_FILE,
        help="Local copy used when a remote dataset cannot be fetched.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory where the catalog export is written.",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="heritage_catalog.csv",
        help="Export filename (inside output-dir); .csv or .json.",
    )
    parser.add_argument(
        "--metrics",
        default="",
        help=(
            "Comma-separated metric overrides, e.g. "
            "'reference_visitors=4500000,cost_base=80,cost_span=40'."
        ),
    )
    parser.add_argument(
        "--check-images",
        action="store_true",
        help="Probe every catalog image and report the URL that would be displayed.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level for pipeline diagnostics.",
    )
    return parser.parse_args(argv)


def _validate_args(args: argparse.Namespace) -> None:
    if Path(args.output).suffix.lower() not in OUTPUT_FORMATS:
        raise SystemExit(f"--output must end with one of: {', '.join(OUTPUT_FORMATS)}.")
    if not isinstance(logging.getLevelName(args.log_level.upper()), int):
        raise SystemExit(f"--log-level '{args.log_level}' is not a logging level.")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def build_heritage_catalog(
    dataset: str,
    cache_file: Optional[Path],
    config: MetricConfig,
    resolver: ImageResolver = DEFAULT_RESOLVER,
) -> CatalogBuildResult:
    rows, source = load_dataset(dataset, cache_file=cache_file)
    result = aggregate_rows(rows)
    log_row_diagnostics(logger, result.diagnostics)

    catalog = build_catalog(result.aggregates, resolver=resolver, config=config)
    summary = debug_summary(catalog, resolver=resolver)
    log_event(
        logger,
        logging.INFO,
        "catalog_built",
        source=source,
        rows=len(rows),
        cities=summary["total_cities"],
        skipped=len(result.skipped),
        errors=len(result.errors),
    )
    if not len(catalog):
        logger.error("No cities loaded from %s; check the dataset rows.", dataset)
    return CatalogBuildResult(
        catalog=catalog,
        diagnostics=result.diagnostics,
        summary=summary,
        source=source,
    )


def check_images(
    catalog: Catalog,
    resolver: ImageResolver = DEFAULT_RESOLVER,
    asset_root: Optional[Path] = None,
    session: Optional[requests.Session] = None,
) -> Dict[str, str]:
    displayed: Dict[str, str] = {}
    for record in catalog:
        url = load_image_with_fallbacks(
            record.name,
            resolver=resolver,
            asset_root=asset_root,
            session=session,
        )
        if url != record.image_url:
            log_event(
                logger,
                logging.WARNING,
                "image_substituted",
                city=record.name,
                primary=record.image_url,
                displayed=url,
            )
        displayed[record.name] = url
    return displayed


def write_export(frame: pd.DataFrame, output_path: Path) -> None:
    validate_catalog_frame(frame)
    if output_path.suffix.lower() == ".json":
        output_path.write_text(
            json.dumps(frame.to_dict(orient="records"), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
    else:
        frame.to_csv(output_path, index=False)


def _export_frame(catalog: Catalog) -> pd.DataFrame:
    featured = {record.id for record in catalog.featured()}
    frame = catalog_to_frame(catalog.records)
    frame["is_new"] = frame["id"].isin(featured)
    return frame


def _print_summary(result: CatalogBuildResult, output_path: Path) -> None:
    summary = result.summary
    print("Generated catalog:")
    print(f"- Heritage cities: {output_path.resolve()} | source={result.source}")
    print("\nCounts:")
    print(f"- Cities: {summary['total_cities']}")
    print(f"- Featured: {summary['featured_count']}")
    print(f"- With curated images: {summary['cities_with_custom_images']}")
    print(f"- With local images: {summary['cities_with_local_images']}")
    print(f"- Rows skipped or failed: {len(result.diagnostics)}")
    print("\nTop cities:")
    for sample in summary["sample_cities"]:
        print(
            f"- {sample['name']}: popularity={sample['popularity_score']} "
            f"rating={sample['rating']} travelers={sample['travelers']}"
        )
    print(f"\nGenerated at: {datetime.now().isoformat(timespec='seconds')}")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    _validate_args(args)
    _configure_logging(args.log_level)

    try:
        config = parse_metric_config(args.metrics)
    except ValueError as exc:
        raise SystemExit(f"Invalid metrics: {exc}") from exc

    args.output_dir.mkdir(parents=True, exist_ok=True)

    try:
        result = build_heritage_catalog(
            dataset=args.dataset,
            cache_file=args.cache_file,
            config=config,
        )
    except (FileNotFoundError, ValueError, RuntimeError) as exc:
        raise SystemExit(f"Catalog build failed: {exc}") from exc

    if args.check_images:
        check_images(result.catalog, asset_root=Path("public"))

    output_path = args.output_dir / args.output
    write_export(_export_frame(result.catalog), output_path)
    _print_summary(result, output_path=output_path)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
