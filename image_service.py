"""City image resolution for the heritage catalog.

Three sources are consulted in a fixed order: bundled local assets for a
known set of cities, a curated table of remote images with optional
fallbacks, and a generic default heritage asset for everything else.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import AbstractSet, Dict, Iterable, Mapping, Optional

import requests

LOCAL_IMAGE_PREFIX = "/images/cities/"
LOCAL_IMAGE_EXTENSION = ".jpg"
DEFAULT_HERITAGE_IMAGE = f"{LOCAL_IMAGE_PREFIX}default-heritage{LOCAL_IMAGE_EXTENSION}"
GENERIC_REMOTE_HERITAGE_IMAGE = (
    "https://source.unsplash.com/400x300/?india-heritage-architecture"
)
PROBE_TIMEOUT_SECONDS = 10

_WHITESPACE_RUN = re.compile(r"\s+")


@dataclass(frozen=True)
class ImageSource:
    url: str
    fallback: Optional[str] = None
    description: Optional[str] = None


def _unsplash(photo_id: str) -> str:
    return f"https://images.unsplash.com/photo-{photo_id}?w=400&h=300&fit=crop&crop=center"


def _unsplash_search(query: str) -> str:
    return f"https://source.unsplash.com/400x300/?{query}"


# These cities always use the bundled asset, even when they also appear in
# the curated table.
LOCAL_IMAGE_CITIES: AbstractSet[str] = frozenset(
    {
        "Agra",
        "Aurangabad",
        "Delhi",
        "Hampi",
        "Mumbai",
    }
)

CURATED_CITY_IMAGES: Mapping[str, ImageSource] = MappingProxyType(
    {
        "Agra": ImageSource(
            url=_unsplash("1564507592333-c60657eea523"),
            fallback=_unsplash_search("taj-mahal-agra"),
            description="Taj Mahal, Agra",
        ),
        "Delhi": ImageSource(
            url=_unsplash("1587474260584-136574528ed5"),
            fallback=_unsplash_search("red-fort-delhi"),
            description="Red Fort, Delhi",
        ),
        "Mumbai": ImageSource(
            url=_unsplash("1570168007204-dfb528c6958f"),
            fallback=_unsplash_search("mumbai-gateway-india"),
            description="Gateway of India, Mumbai",
        ),
        "Aurangabad": ImageSource(
            url=_unsplash("1582719508461-905c673771fd"),
            fallback=_unsplash_search("ajanta-ellora-caves"),
            description="Ajanta Caves, Aurangabad",
        ),
        "Hampi": ImageSource(
            url=_unsplash("1582719478250-c89cae4dc85b"),
            fallback=_unsplash_search("hampi-ruins-karnataka"),
            description="Hampi Ruins, Karnataka",
        ),
        "Hyderabad": ImageSource(
            url=_unsplash("1595658658481-d53d3f999875"),
            fallback=_unsplash_search("charminar-hyderabad"),
            description="Charminar, Hyderabad",
        ),
        "Bhopal": ImageSource(
            url=_unsplash("1578662996442-48f60103fc96"),
            fallback=_unsplash_search("sanchi-stupa-bhopal"),
            description="Sanchi Stupa, Bhopal",
        ),
        "Dharwad": ImageSource(
            url=_unsplash("1596203732448-d3de7dba694a"),
            fallback=_unsplash_search("badami-caves-karnataka"),
            description="Badami Caves, Karnataka",
        ),
        "Lucknow": ImageSource(
            url=_unsplash("1578662996442-48f60103fc96"),
            fallback=_unsplash_search("bara-imambara-lucknow"),
            description="Bara Imambara, Lucknow",
        ),
        "Chennai": ImageSource(
            url=_unsplash("1582719478250-c89cae4dc85b"),
            fallback=_unsplash_search("mamallapuram-temples"),
            description="Mamallapuram Temples, Chennai",
        ),
        "Bhubaneswar": ImageSource(
            url=_unsplash("1578662996442-48f60103fc96"),
            fallback=_unsplash_search("konark-sun-temple"),
            description="Konark Sun Temple, Bhubaneswar",
        ),
        "Kolkata": ImageSource(
            url=_unsplash("1558431382-27e303142733"),
            fallback=_unsplash_search("victoria-memorial-kolkata"),
            description="Victoria Memorial, Kolkata",
        ),
        "Bangalore": ImageSource(
            url=_unsplash("1570168007204-dfb528c6958f"),
            fallback=_unsplash_search("tipu-sultan-palace-bangalore"),
            description="Tipu Sultan Palace, Bangalore",
        ),
        "Vadodara": ImageSource(
            url=_unsplash("1578662996442-48f60103fc96"),
            fallback=_unsplash_search("champaner-pavagadh-gujarat"),
            description="Champaner Pavagadh, Gujarat",
        ),
        "Thrissur": ImageSource(
            url=_unsplash("1578662996442-48f60103fc96"),
            fallback=_unsplash_search("kerala-backwaters-temples"),
            description="Kerala Heritage, Thrissur",
        ),
        "Tiruchirappalli": ImageSource(
            url=_unsplash("1578662996442-48f60103fc96"),
            fallback=_unsplash_search("rock-fort-temple-trichy"),
            description="Rock Fort Temple, Trichy",
        ),
        "Jhansi": ImageSource(
            url=_unsplash("1578662996442-48f60103fc96"),
            fallback=_unsplash_search("jhansi-fort-uttar-pradesh"),
            description="Jhansi Fort, Uttar Pradesh",
        ),
        "Sarnath": ImageSource(
            url=_unsplash("1578662996442-48f60103fc96"),
            fallback=_unsplash_search("sarnath-buddhist-temple"),
            description="Buddhist Temples, Sarnath",
        ),
        "Chandigarh": ImageSource(
            url=_unsplash("1578662996442-48f60103fc96"),
            fallback=_unsplash_search("rock-garden-chandigarh"),
            description="Rock Garden, Chandigarh",
        ),
        "Guwahati": ImageSource(
            url=_unsplash("1578662996442-48f60103fc96"),
            fallback=_unsplash_search("assam-temple-heritage"),
            description="Assam Heritage, Guwahati",
        ),
        "Nagpur": ImageSource(
            url=_unsplash("1578662996442-48f60103fc96"),
            description="Heritage Sites, Nagpur",
        ),
    }
)


def local_image_path(city_name: str) -> str:
    slug = _WHITESPACE_RUN.sub("-", city_name.strip().lower())
    return f"{LOCAL_IMAGE_PREFIX}{slug}{LOCAL_IMAGE_EXTENSION}"


def is_local_image(url: str) -> bool:
    return url.startswith(LOCAL_IMAGE_PREFIX)


class ImageResolver:
    """Resolves city names to image URLs against two static lookup tables."""

    def __init__(
        self,
        local_cities: Iterable[str] = LOCAL_IMAGE_CITIES,
        curated: Mapping[str, ImageSource] = CURATED_CITY_IMAGES,
    ) -> None:
        self.local_cities: AbstractSet[str] = frozenset(local_cities)
        self.curated: Mapping[str, ImageSource] = MappingProxyType(dict(curated))

    def uses_local_image(self, city_name: str) -> bool:
        return city_name in self.local_cities

    def lookup(self, city_name: str) -> Optional[ImageSource]:
        """Return the curated entry for ``city_name`` or ``None`` when absent."""
        return self.curated.get(city_name)

    def resolve(self, city_name: str) -> str:
        if self.uses_local_image(city_name):
            return local_image_path(city_name)
        source = self.lookup(city_name)
        if source is not None:
            return source.url
        return DEFAULT_HERITAGE_IMAGE

    def resolve_fallback(self, city_name: str, previously_tried: Optional[str] = None) -> str:
        """Pick a replacement image that differs from ``previously_tried`` when one exists."""
        if self.uses_local_image(city_name):
            return local_image_path(city_name)
        source = self.lookup(city_name)
        if source is not None and source.fallback and source.fallback != previously_tried:
            return source.fallback
        return DEFAULT_HERITAGE_IMAGE


DEFAULT_RESOLVER = ImageResolver()


def resolve_image_url(city_name: str, resolver: ImageResolver = DEFAULT_RESOLVER) -> str:
    return resolver.resolve(city_name)


def resolve_fallback_image_url(
    city_name: str,
    previously_tried: Optional[str] = None,
    resolver: ImageResolver = DEFAULT_RESOLVER,
) -> str:
    return resolver.resolve_fallback(city_name, previously_tried)


def get_all_city_images(resolver: ImageResolver = DEFAULT_RESOLVER) -> Dict[str, str]:
    return {city: source.url for city, source in resolver.curated.items()}


def probe_image(
    url: str,
    session: Optional[requests.Session] = None,
    timeout: int = PROBE_TIMEOUT_SECONDS,
) -> bool:
    """Return True when ``url`` answers with a successful image response."""
    http = session or requests
    try:
        response = http.head(url, timeout=timeout, allow_redirects=True)
        if response.status_code in (403, 405):
            # The streamed body is never read; closing releases the pooled connection.
            with http.get(url, timeout=timeout, stream=True) as streamed:
                return _is_image_response(streamed)
        return _is_image_response(response)
    except requests.RequestException:
        return False


def _is_image_response(response: requests.Response) -> bool:
    response.raise_for_status()
    content_type = response.headers.get("Content-Type", "")
    return not content_type or content_type.startswith("image/")


def image_available(
    url: str,
    asset_root: Optional[Path] = None,
    session: Optional[requests.Session] = None,
) -> bool:
    # Local assets are trusted unless an asset root is given to check against.
    if is_local_image(url):
        if asset_root is None:
            return True
        return (asset_root / url.lstrip("/")).is_file()
    return probe_image(url, session=session)


def load_image_with_fallbacks(
    city_name: str,
    resolver: ImageResolver = DEFAULT_RESOLVER,
    asset_root: Optional[Path] = None,
    session: Optional[requests.Session] = None,
) -> str:
    """Try the primary and fallback images, ending on the generic heritage image."""
    primary = resolver.resolve(city_name)
    if image_available(primary, asset_root=asset_root, session=session):
        return primary

    fallback = resolver.resolve_fallback(city_name, previously_tried=primary)
    if fallback != primary and image_available(fallback, asset_root=asset_root, session=session):
        return fallback

    return GENERIC_REMOTE_HERITAGE_IMAGE
