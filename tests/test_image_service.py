import tempfile
import unittest
from pathlib import Path
from unittest import mock

import requests

from image_service import (
    CURATED_CITY_IMAGES,
    DEFAULT_HERITAGE_IMAGE,
    GENERIC_REMOTE_HERITAGE_IMAGE,
    LOCAL_IMAGE_CITIES,
    ImageResolver,
    ImageSource,
    get_all_city_images,
    image_available,
    load_image_with_fallbacks,
    local_image_path,
    probe_image,
    resolve_fallback_image_url,
    resolve_image_url,
)


def _response(status_code: int = 200, content_type: str = "image/jpeg") -> mock.Mock:
    response = mock.MagicMock()
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    response.status_code = status_code
    response.headers = {"Content-Type": content_type}
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return response


class ResolveTests(unittest.TestCase):
    def setUp(self) -> None:
        self.resolver = ImageResolver(
            local_cities={"Agra", "New  Delhi"},
            curated={
                "Agra": ImageSource(url="https://img.example/agra.jpg"),
                "Kolkata": ImageSource(
                    url="https://img.example/kolkata.jpg",
                    fallback="https://img.example/kolkata-alt.jpg",
                ),
                "Nagpur": ImageSource(url="https://img.example/nagpur.jpg"),
            },
        )

    def test_local_path_is_lowercased_and_hyphenated(self) -> None:
        self.assertEqual(local_image_path("New  Delhi"), "/images/cities/new-delhi.jpg")
        self.assertEqual(local_image_path("Tiruchirappalli"), "/images/cities/tiruchirappalli.jpg")

    def test_local_set_wins_over_curated_table(self) -> None:
        self.assertEqual(self.resolver.resolve("Agra"), "/images/cities/agra.jpg")
        self.assertEqual(self.resolver.resolve("New  Delhi"), "/images/cities/new-delhi.jpg")

    def test_curated_then_default(self) -> None:
        self.assertEqual(self.resolver.resolve("Kolkata"), "https://img.example/kolkata.jpg")
        self.assertEqual(self.resolver.resolve("Pune"), DEFAULT_HERITAGE_IMAGE)

    def test_lookup_signals_missing_entries(self) -> None:
        self.assertIsNone(self.resolver.lookup("Pune"))
        self.assertEqual(self.resolver.lookup("Nagpur").url, "https://img.example/nagpur.jpg")

    def test_fallback_never_repeats_a_failed_url(self) -> None:
        self.assertEqual(
            self.resolver.resolve_fallback("Kolkata", "https://img.example/kolkata.jpg"),
            "https://img.example/kolkata-alt.jpg",
        )
        self.assertEqual(
            self.resolver.resolve_fallback("Kolkata", "https://img.example/kolkata-alt.jpg"),
            DEFAULT_HERITAGE_IMAGE,
        )

    def test_fallback_without_alternative_uses_default(self) -> None:
        self.assertEqual(self.resolver.resolve_fallback("Nagpur"), DEFAULT_HERITAGE_IMAGE)
        self.assertEqual(self.resolver.resolve_fallback("Pune"), DEFAULT_HERITAGE_IMAGE)
        self.assertEqual(self.resolver.resolve_fallback("Agra"), "/images/cities/agra.jpg")

    def test_tables_are_read_only(self) -> None:
        with self.assertRaises(TypeError):
            self.resolver.curated["Pune"] = ImageSource(url="https://img.example/pune.jpg")

    def test_default_tables(self) -> None:
        for city in LOCAL_IMAGE_CITIES:
            self.assertEqual(resolve_image_url(city), local_image_path(city))
        self.assertEqual(resolve_image_url("Hyderabad"), CURATED_CITY_IMAGES["Hyderabad"].url)
        self.assertEqual(
            resolve_fallback_image_url("Hyderabad", CURATED_CITY_IMAGES["Hyderabad"].url),
            CURATED_CITY_IMAGES["Hyderabad"].fallback,
        )
        self.assertEqual(get_all_city_images()["Kolkata"], CURATED_CITY_IMAGES["Kolkata"].url)


class ProbeTests(unittest.TestCase):
    def test_successful_image_response(self) -> None:
        session = mock.Mock()
        session.head.return_value = _response()

        self.assertTrue(probe_image("https://img.example/a.jpg", session=session))
        session.get.assert_not_called()

    def test_head_rejected_falls_back_to_get(self) -> None:
        session = mock.Mock()
        session.head.return_value = _response(status_code=405)
        session.get.return_value = _response()

        self.assertTrue(probe_image("https://img.example/a.jpg", session=session))
        session.get.assert_called_once()
        session.get.return_value.__exit__.assert_called_once()

    def test_streamed_get_is_closed_when_it_fails(self) -> None:
        session = mock.Mock()
        session.head.return_value = _response(status_code=403)
        session.get.return_value = _response(status_code=404)

        self.assertFalse(probe_image("https://img.example/a.jpg", session=session))
        session.get.return_value.__exit__.assert_called_once()

    def test_failures_and_non_images_report_unavailable(self) -> None:
        missing = mock.Mock()
        missing.head.return_value = _response(status_code=404)
        html = mock.Mock()
        html.head.return_value = _response(content_type="text/html")
        offline = mock.Mock()
        offline.head.side_effect = requests.ConnectionError("offline")

        self.assertFalse(probe_image("https://img.example/a.jpg", session=missing))
        self.assertFalse(probe_image("https://img.example/a.jpg", session=html))
        self.assertFalse(probe_image("https://img.example/a.jpg", session=offline))

    def test_local_assets_checked_against_asset_root(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "images" / "cities").mkdir(parents=True)
            (root / "images" / "cities" / "agra.jpg").write_bytes(b"jpg")

            self.assertTrue(image_available("/images/cities/agra.jpg", asset_root=root))
            self.assertFalse(image_available("/images/cities/goa.jpg", asset_root=root))
        self.assertTrue(image_available("/images/cities/goa.jpg"))


class LoadWithFallbacksTests(unittest.TestCase):
    def setUp(self) -> None:
        self.resolver = ImageResolver(
            local_cities=set(),
            curated={
                "Kolkata": ImageSource(
                    url="https://img.example/kolkata.jpg",
                    fallback="https://img.example/kolkata-alt.jpg",
                ),
            },
        )

    def test_primary_then_fallback_then_generic(self) -> None:
        session = mock.Mock()
        session.head.side_effect = [_response(status_code=404), _response()]
        self.assertEqual(
            load_image_with_fallbacks("Kolkata", resolver=self.resolver, session=session),
            "https://img.example/kolkata-alt.jpg",
        )

        session = mock.Mock()
        session.head.return_value = _response(status_code=404)
        self.assertEqual(
            load_image_with_fallbacks("Kolkata", resolver=self.resolver, session=session),
            GENERIC_REMOTE_HERITAGE_IMAGE,
        )

    def test_missing_default_asset_ends_on_generic_image(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            url = load_image_with_fallbacks("Pune", resolver=self.resolver, asset_root=Path(tmp))

        self.assertEqual(url, GENERIC_REMOTE_HERITAGE_IMAGE)


if __name__ == "__main__":
    unittest.main()
