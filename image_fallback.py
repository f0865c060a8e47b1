"""Render-time image fallback guard.

Each displayed image owns one guard. A load failure substitutes a single
replacement source; a failure of that replacement is accepted as final.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Optional

from image_service import DEFAULT_RESOLVER, GENERIC_REMOTE_HERITAGE_IMAGE, ImageResolver


class FallbackState(Enum):
    INITIAL = "initial"
    FALLBACK_TRIED = "fallback_tried"
    EXHAUSTED = "exhausted"


class ImageFallbackGuard:
    def __init__(
        self,
        src: str,
        city_name: Optional[str] = None,
        fallback_src: Optional[str] = None,
        on_error: Optional[Callable[[], None]] = None,
        resolver: ImageResolver = DEFAULT_RESOLVER,
    ) -> None:
        self.city_name = city_name
        self.fallback_src = fallback_src
        self.on_error = on_error
        self.resolver = resolver
        self.reset(src)

    def reset(self, src: str) -> None:
        """Start a new failure chain for a freshly assigned source."""
        self.current_src = src
        self.state = FallbackState.INITIAL
        self.is_loading = True

    @property
    def showing_fallback(self) -> bool:
        return self.state is not FallbackState.INITIAL

    @property
    def exhausted(self) -> bool:
        return self.state is FallbackState.EXHAUSTED

    def handle_load(self) -> None:
        self.is_loading = False

    def handle_error(self) -> Optional[str]:
        """Apply a load failure and return the substituted source, if any."""
        if self.state is FallbackState.INITIAL:
            replacement = self._pick_replacement()
            self.state = FallbackState.FALLBACK_TRIED
            self.current_src = replacement
            if self.on_error is not None:
                self.on_error()
            return replacement

        # The replacement failed as well; keep it and stop substituting.
        self.state = FallbackState.EXHAUSTED
        self.is_loading = False
        return None

    def _pick_replacement(self) -> str:
        if self.city_name and self.fallback_src is None:
            candidate = self.resolver.resolve_fallback(self.city_name, self.current_src)
        elif self.fallback_src and self.fallback_src != self.current_src:
            candidate = self.fallback_src
        else:
            candidate = GENERIC_REMOTE_HERITAGE_IMAGE

        if candidate == self.current_src:
            return GENERIC_REMOTE_HERITAGE_IMAGE
        return candidate
