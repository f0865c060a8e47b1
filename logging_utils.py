"""
Structured logging for the heritage catalog build.

Aggregation returns row diagnostics instead of logging them; hosts forward
them here as `row_skipped_invalid` (WARNING) and `row_processing_error`
(ERROR) events, alongside build, refresh and image-fallback events. Each
event is one JSON object per line so city and monument names stay readable.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from heritage_catalog import RowDiagnostic

DIAGNOSTIC_EVENTS = {
    "skipped_invalid": ("row_skipped_invalid", logging.WARNING),
    "processing_error": ("row_processing_error", logging.ERROR),
}


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True, ensure_ascii=False))


def log_row_diagnostics(
    logger: logging.Logger,
    diagnostics: Iterable["RowDiagnostic"],
) -> int:
    """
    Forward aggregation diagnostics to ``logger`` and return how many were emitted.
    """

    emitted = 0
    for diagnostic in diagnostics:
        event, level = DIAGNOSTIC_EVENTS[diagnostic.kind]
        log_event(
            logger,
            level,
            event,
            index=diagnostic.index,
            row=diagnostic.row,
            reason=diagnostic.reason,
        )
        emitted += 1
    return emitted
