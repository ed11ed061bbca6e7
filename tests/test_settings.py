# tests/test_settings.py

"""Tests for the Settings configuration class."""

import os
import unittest
from pathlib import Path
from unittest.mock import patch

from src.config.settings import Settings, _env_bool, _site_url


class TestSettings(unittest.TestCase):
    """Verify Settings constants."""

    def test_request_delay_is_positive_float(self) -> None:
        """REQUEST_DELAY must be a positive number."""
        self.assertIsInstance(Settings.REQUEST_DELAY, float)
        self.assertGreater(Settings.REQUEST_DELAY, 0)

    def test_timeouts_ordered_by_call_class(self) -> None:
        """Cart mutations use the shortest timeout, content the longest."""
        self.assertLess(Settings.CART_TIMEOUT, Settings.STATUS_TIMEOUT)
        self.assertLessEqual(Settings.STATUS_TIMEOUT, Settings.REQUEST_TIMEOUT)

    def test_max_retries_is_positive(self) -> None:
        """MAX_RETRIES must be >= 1."""
        self.assertGreaterEqual(Settings.MAX_RETRIES, 1)

    def test_cart_backoff_defaults(self) -> None:
        """Cart init retries three times starting at one second."""
        self.assertEqual(Settings.CART_MAX_RETRIES, 3)
        self.assertEqual(Settings.CART_RETRY_BASE_DELAY, 1.0)

    def test_image_batching_defaults(self) -> None:
        self.assertEqual(Settings.IMAGE_BATCH_SIZE, 5)
        self.assertEqual(Settings.IMAGE_DOWNLOAD_TIMEOUT, 30)

    def test_cache_version(self) -> None:
        self.assertEqual(Settings.CACHE_VERSION, "1.0.0")

    def test_paths_are_paths(self) -> None:
        """Directory settings must be Path objects."""
        for name in ("BASE_DIR", "CACHE_DIR", "IMAGE_CACHE_DIR", "LOGS_DIR"):
            with self.subTest(name=name):
                self.assertIsInstance(getattr(Settings, name), Path)

    def test_image_extensions_are_lowercase_dotted(self) -> None:
        for ext in Settings.IMAGE_EXTENSIONS:
            with self.subTest(ext=ext):
                self.assertTrue(ext.startswith("."))
                self.assertEqual(ext, ext.lower())


class TestHelpers(unittest.TestCase):
    """Env parsing helpers."""

    def test_site_url_adds_scheme_and_strips_slash(self) -> None:
        self.assertEqual(_site_url("shop.example.com/"), "http://shop.example.com")

    def test_site_url_strips_wp_json(self) -> None:
        self.assertEqual(
            _site_url("https://shop.example.com/wp-json/"),
            "https://shop.example.com",
        )

    def test_site_url_empty(self) -> None:
        self.assertEqual(_site_url(""), "")

    def test_env_bool_truthy_values(self) -> None:
        for raw in ("1", "true", "YES", " on "):
            with self.subTest(raw=raw), patch.dict(os.environ, {"X_FLAG": raw}):
                self.assertTrue(_env_bool("X_FLAG", False))

    def test_env_bool_default_when_unset(self) -> None:
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("X_MISSING_FLAG", None)
            self.assertTrue(_env_bool("X_MISSING_FLAG", True))

    def test_image_hosts_include_origin(self) -> None:
        with patch.object(Settings, "WORDPRESS_URL", "https://cms.example.com"):
            hosts = Settings.image_hosts()
        self.assertIn("cms.example.com", hosts)
        self.assertIn("localhost", hosts)

    def test_store_credentials_flag(self) -> None:
        with patch.object(Settings, "WC_CONSUMER_KEY", "ck"), patch.object(
            Settings, "WC_CONSUMER_SECRET", ""
        ):
            self.assertFalse(Settings.has_store_credentials())


if __name__ == "__main__":
    unittest.main()
