from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pandas as pd
import streamlit as st
import streamlit.runtime as st_runtime

from catalog_config import DEFAULT_METRIC_CONFIG, parse_metric_config
from heritage_catalog import (
    DEFAULT_DATASET_FILE,
    Catalog,
    CityRecord,
    aggregate_rows,
    build_catalog,
    catalog_to_frame,
    debug_summary,
    load_dataset,
)
from image_fallback import ImageFallbackGuard
from image_service import DEFAULT_RESOLVER, ImageResolver, image_available, is_local_image
from logging_utils import log_event, log_row_diagnostics

logger = logging.getLogger(__name__)

# The cached catalog is shared by every session thread.
_REFRESH_LOCK = threading.Lock()

DEFAULT_ASSET_ROOT = Path("public")
SHORTLIST_MAX_ROWS = 100

SORT_OPTIONS = {
    "Most popular": ("popularity_score", False),
    "Highest rated": ("rating", False),
    "Most affordable": ("cost_index", True),
    "Name": ("name", True),
}

DEFAULT_FILTER_STATE = {
    "search_query": "",
    "sort_label": "Most popular",
    "max_cost_index": 120,
    "min_rating": 3.5,
    "check_remote_images": False,
}


def _initialize_ui_state() -> None:
    for key, value in DEFAULT_FILTER_STATE.items():
        st.session_state.setdefault(key, value)


def _reset_filter_controls() -> None:
    for key, value in DEFAULT_FILTER_STATE.items():
        st.session_state[key] = value


def _streamlit_runtime_exists() -> bool:
    try:
        return bool(st_runtime.exists())
    except Exception:
        return False


def _cache_resource_passthrough(*_args, **_kwargs):
    def decorator(func):
        return func

    return decorator


def _safe_cache_resource(*args, **kwargs):
    if _streamlit_runtime_exists():
        return st.cache_resource(*args, **kwargs)
    return _cache_resource_passthrough(*args, **kwargs)


@_safe_cache_resource(show_spinner=False)
def load_catalog(dataset: str, metrics: str) -> Tuple[Catalog, Dict[str, object], str]:
    rows, source = load_dataset(dataset)
    result = aggregate_rows(rows)
    log_row_diagnostics(logger, result.diagnostics)
    catalog = build_catalog(result.aggregates, config=parse_metric_config(metrics))
    summary = debug_summary(catalog)
    summary["rows_skipped"] = len(result.skipped)
    summary["rows_failed"] = len(result.errors)
    log_event(logger, logging.INFO, "catalog_loaded", source=source, cities=len(catalog))
    return catalog, summary, source


def _refresh_catalog_images(catalog: Catalog) -> None:
    with _REFRESH_LOCK:
        catalog.refresh()
    log_event(logger, logging.INFO, "catalog_images_refreshed", cities=len(catalog))


def _apply_catalog_filters(
    catalog_frame: pd.DataFrame,
    search_query: str,
    max_cost_index: float,
    min_rating: float,
) -> pd.DataFrame:
    filtered = catalog_frame.copy()

    filtered = filtered[filtered["cost_index"] <= max_cost_index]
    filtered = filtered[filtered["rating"] >= min_rating]

    query = search_query.strip()
    if query:
        query_mask = filtered["name"].str.contains(
            query, case=False, na=False, regex=False
        ) | filtered["description"].str.contains(query, case=False, na=False, regex=False)
        filtered = filtered[query_mask]

    return filtered


def _sort_catalog(filtered: pd.DataFrame, sort_label: str) -> pd.DataFrame:
    col, ascending = SORT_OPTIONS.get(sort_label, SORT_OPTIONS["Most popular"])
    sorted_data = filtered.sort_values(col, ascending=ascending, kind="stable").reset_index(
        drop=True
    )
    sorted_data["rank"] = sorted_data.index + 1
    return sorted_data


def _renderable_image(
    record: CityRecord,
    asset_root: Path,
    check_remote: bool,
    resolver: ImageResolver = DEFAULT_RESOLVER,
) -> Tuple[Optional[str], bool]:
    """Return the image to hand to ``st.image`` and whether it is a fallback."""
    substitutions: List[str] = []
    guard = ImageFallbackGuard(
        src=record.image_url,
        city_name=record.name,
        on_error=lambda: substitutions.append(record.name),
        resolver=resolver,
    )

    while not guard.exhausted:
        src = guard.current_src
        if is_local_image(src) or check_remote:
            available = image_available(src, asset_root=asset_root)
        else:
            available = True
        if available:
            guard.handle_load()
            break
        guard.handle_error()

    if substitutions:
        log_event(
            logger,
            logging.INFO,
            "image_fallback_used",
            city=record.name,
            primary=record.image_url,
            displayed=guard.current_src,
            exhausted=guard.exhausted,
        )

    src = guard.current_src
    if is_local_image(src):
        local_file = asset_root / src.lstrip("/")
        if not local_file.is_file():
            return None, guard.showing_fallback
        return str(local_file), guard.showing_fallback
    return src, guard.showing_fallback


def _profile_rows(record: CityRecord) -> List[Tuple[str, str]]:
    return [
        ("Location", f"{record.name}, {record.country}"),
        ("Region", record.region),
        ("Popularity", f"{record.popularity_score}/100"),
        ("Rating", f"{record.rating:.1f} / 5"),
        ("Cost Index", str(record.cost_index)),
        ("Domestic Travelers", record.travelers),
        ("Highlights", record.description),
    ]


def _show_city_card(record: CityRecord, asset_root: Path, check_remote: bool) -> None:
    src, is_fallback = _renderable_image(record, asset_root=asset_root, check_remote=check_remote)
    if src is not None:
        st.image(src, use_container_width=True)
    if is_fallback:
        st.caption("Fallback image")
    badge = " :sparkles: New" if record.is_new else ""
    st.markdown(f"**{record.name}**{badge}")
    st.caption(f"{record.description} | {record.rating:.1f} stars | {record.travelers} travelers")


def app() -> None:
    st.set_page_config(
        page_title="Heritage Scout",
        page_icon=":classical_building:",
        layout="wide",
    )

    st.title("Heritage Scout")
    st.caption("Explore Indian heritage cities ranked by domestic monument visitors.")
    _initialize_ui_state()

    dataset = os.getenv("HERITAGE_DATASET", str(DEFAULT_DATASET_FILE))
    asset_root = Path(os.getenv("HERITAGE_ASSET_ROOT", str(DEFAULT_ASSET_ROOT)))

    with st.sidebar:
        st.header("Catalog")
        metrics = st.text_input(
            "Metric overrides",
            value="",
            placeholder="reference_visitors=4500000",
            help="Comma-separated key=value pairs for popularity and cost scaling.",
        )
        try:
            parse_metric_config(metrics)
        except ValueError as exc:
            st.error(f"Invalid metric setup: {exc}")
            st.stop()

        left, right = st.columns(2)
        reload_clicked = left.button("Reload Dataset")
        refresh_clicked = right.button("Refresh Images", type="primary")
        st.checkbox(
            "Check remote images",
            key="check_remote_images",
            help="Probe remote image URLs and fall back when they fail to load.",
        )

    if reload_clicked:
        load_catalog.clear()

    with st.spinner("Building heritage catalog..."):
        try:
            catalog, summary, source = load_catalog(dataset, metrics)
        except (FileNotFoundError, ValueError, RuntimeError) as exc:
            st.error(str(exc))
            st.stop()

    if refresh_clicked:
        _refresh_catalog_images(catalog)
        st.toast("Image URLs re-resolved.")

    check_remote = bool(st.session_state["check_remote_images"])

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Cities", f"{summary['total_cities']:,}")
    col2.metric("Curated Images", f"{summary['cities_with_custom_images']:,}")
    col3.metric("Local Images", f"{summary['cities_with_local_images']:,}")
    col4.metric("Rows Skipped", f"{summary['rows_skipped'] + summary['rows_failed']:,}")
    st.caption(f"Data source: `{source}` | Dataset: `{dataset}`")

    if not len(catalog):
        st.warning("No cities were loaded. Check the dataset rows for formatting problems.")
        st.stop()

    st.subheader("Featured Destinations")
    featured = catalog.featured()
    for column, record in zip(st.columns(max(len(featured), 1)), featured):
        with column:
            _show_city_card(record, asset_root=asset_root, check_remote=check_remote)

    title_col, reset_col = st.columns([4, 1])
    with title_col:
        st.subheader("Search Cities")
    with reset_col:
        st.button("Reset Filters", on_click=_reset_filter_controls)

    search_col, sort_col = st.columns([2, 1])
    with search_col:
        search_query = st.text_input(
            "Search city or monument",
            placeholder="e.g., Agra, Sun Temple",
            key="search_query",
        )
    with sort_col:
        sort_label = st.selectbox(
            "Sort Results",
            options=list(SORT_OPTIONS.keys()),
            key="sort_label",
        )

    filter_left, filter_right = st.columns(2)
    with filter_left:
        max_cost_index = st.slider(
            "Max Cost Index",
            min_value=int(DEFAULT_METRIC_CONFIG.cost_base),
            max_value=200,
            key="max_cost_index",
        )
    with filter_right:
        min_rating = st.slider(
            "Min Rating",
            min_value=0.0,
            max_value=5.0,
            step=0.1,
            key="min_rating",
        )

    filtered = _apply_catalog_filters(
        catalog_to_frame(catalog.records),
        search_query=search_query,
        max_cost_index=float(max_cost_index),
        min_rating=float(min_rating),
    )
    if filtered.empty:
        st.warning("No cities match your current filters.")
        st.button("Reset Filters to Defaults", on_click=_reset_filter_controls)
        st.stop()

    filtered = _sort_catalog(filtered, sort_label=sort_label)

    tab_list, tab_profile = st.tabs(["City List", "City Profile"])

    with tab_list:
        st.dataframe(
            filtered.drop(columns=["image_url", "is_new"]).head(SHORTLIST_MAX_ROWS),
            use_container_width=True,
            hide_index=True,
        )
        st.download_button(
            label="Download Catalog CSV",
            data=filtered.to_csv(index=False).encode("utf-8"),
            file_name="heritage_catalog.csv",
            mime="text/csv",
        )

    with tab_profile:
        selected_name = st.selectbox("Find a city profile", options=filtered["name"].tolist())
        record = catalog.find(selected_name)
        if record is not None:
            image_col, detail_col = st.columns(2)
            with image_col:
                _show_city_card(record, asset_root=asset_root, check_remote=check_remote)
            with detail_col:
                for label, value in _profile_rows(record):
                    st.markdown(f"**{label}:** {value}")


if __name__ == "__main__":
    if not _streamlit_runtime_exists():
        raise SystemExit("Run this UI with: python3 -m streamlit run app.py")
    app()
