# tests/test_image_cache.py

"""Tests for the local origin image mirror."""

import asyncio
import tempfile
import threading
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

from src.storage.image_cache import ImageCache, image_filename

ORIGIN = "https://shop.example.com"


def _response(status: int = 200, body: bytes = b"\x89PNG") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.iter_content.return_value = [body]
    resp.headers = {"content-type": "image/png"}
    return resp


class TestImageFilename(unittest.TestCase):

    def test_keeps_extension(self) -> None:
        name = image_filename(f"{ORIGIN}/wp-content/a.png")
        self.assertTrue(name.endswith(".png"))
        self.assertEqual(len(name), 32 + 4)

    def test_defaults_to_jpg(self) -> None:
        self.assertTrue(image_filename(f"{ORIGIN}/img").endswith(".jpg"))

    def test_query_string_ignored_for_extension(self) -> None:
        self.assertTrue(
            image_filename(f"{ORIGIN}/a.webp?w=300").endswith(".webp")
        )


class TestImageCache(unittest.IsolatedAsyncioTestCase):
    """Download-once, passthrough and eviction behaviour."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        self.session = MagicMock()
        self.session.get.return_value = _response()
        self.cache = ImageCache(
            cache_dir=Path(self._tmp.name),
            allowed_hosts=frozenset({"shop.example.com"}),
            batch_size=2,
            batch_delay=0,
            session=self.session,
            clock=lambda: self.now,
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_second_request_is_a_hit(self) -> None:
        url = f"{ORIGIN}/wp-content/uploads/shirt.png"
        first = await self.cache.get_cached_image_url(url)
        second = await self.cache.get_cached_image_url(url)

        self.assertEqual(first, second)
        self.assertEqual(first, f"/api/images/{image_filename(url)}")
        self.assertEqual(self.session.get.call_count, 1)
        stats = self.cache.stats()
        self.assertEqual(stats.cache_hits, 1)
        self.assertEqual(stats.cache_misses, 1)
        self.assertEqual(stats.total_images, 1)

    async def test_foreign_host_passthrough(self) -> None:
        url = "https://evil.example.net/x.png"
        self.assertEqual(await self.cache.get_cached_image_url(url), url)
        self.session.get.assert_not_called()

    async def test_non_image_passthrough(self) -> None:
        url = f"{ORIGIN}/wp-content/readme.txt"
        self.assertEqual(await self.cache.get_cached_image_url(url), url)
        self.session.get.assert_not_called()

    async def test_download_failure_returns_original(self) -> None:
        self.session.get.return_value = _response(status=404)
        url = f"{ORIGIN}/missing.jpg"
        self.assertEqual(await self.cache.get_cached_image_url(url), url)
        self.assertEqual(self.cache.stats().download_errors, 1)
        self.assertFalse(
            (self.cache.files_dir / image_filename(url)).exists()
        )

    async def test_concurrent_requests_share_one_download(self) -> None:
        release = threading.Event()

        def slow_get(*args: object, **kwargs: object) -> MagicMock:
            release.wait(1)
            return _response(body=b"1234")

        self.session.get.side_effect = slow_get
        url = f"{ORIGIN}/wp-content/uploads/mug.png"

        pending = asyncio.gather(
            self.cache.get_cached_image_url(url),
            self.cache.get_cached_image_url(url),
        )
        await asyncio.sleep(0.01)
        release.set()
        first, second = await pending

        self.assertEqual(first, second)
        self.assertEqual(first, f"/api/images/{image_filename(url)}")
        self.assertEqual(self.session.get.call_count, 1)
        stats = self.cache.stats()
        self.assertEqual(stats.total_images, 1)
        self.assertEqual(stats.total_size, 4)
        self.assertEqual(stats.cache_misses, 1)

    async def test_vanished_file_is_downloaded_again(self) -> None:
        url = f"{ORIGIN}/a.png"
        await self.cache.get_cached_image_url(url)
        (self.cache.files_dir / image_filename(url)).unlink()
        await self.cache.get_cached_image_url(url)
        self.assertEqual(self.session.get.call_count, 2)
        self.assertEqual(self.cache.stats().total_images, 1)

    async def test_metadata_survives_reload(self) -> None:
        url = f"{ORIGIN}/a.png"
        await self.cache.get_cached_image_url(url)

        reopened = ImageCache(
            cache_dir=self.cache.cache_dir,
            allowed_hosts=frozenset({"shop.example.com"}),
            session=self.session,
        )
        await reopened.get_cached_image_url(url)
        self.assertEqual(self.session.get.call_count, 1)

    async def test_product_images_deduplicated(self) -> None:
        products = [
            {
                "images": [{"src": f"{ORIGIN}/a.png"}, {"src": f"{ORIGIN}/b.png"}],
                "featured_image": f"{ORIGIN}/a.png",
            },
            {"images": [{"src": f"{ORIGIN}/c.png"}]},
        ]
        considered = await self.cache.cache_product_images(products)
        self.assertEqual(considered, 3)
        self.assertEqual(self.session.get.call_count, 3)

    async def test_get_image_file(self) -> None:
        url = f"{ORIGIN}/a.png"
        await self.cache.get_cached_image_url(url)
        served = self.cache.get_image_file(image_filename(url))
        self.assertIsNotNone(served)
        data, mime = served
        self.assertEqual(data, b"\x89PNG")
        self.assertEqual(mime, "image/png")

    def test_get_image_file_rejects_paths(self) -> None:
        self.assertIsNone(self.cache.get_image_file("../metadata.json"))

    async def test_cleanup_evicts_old_images(self) -> None:
        old, fresh = f"{ORIGIN}/old.png", f"{ORIGIN}/fresh.png"
        await self.cache.get_cached_image_url(old)
        self.now += timedelta(days=6)
        await self.cache.get_cached_image_url(fresh)
        self.now += timedelta(days=2)

        removed = self.cache.cleanup(timedelta(days=7))

        self.assertEqual(removed, 1)
        self.assertFalse((self.cache.files_dir / image_filename(old)).exists())
        self.assertTrue((self.cache.files_dir / image_filename(fresh)).exists())
        self.assertEqual(self.cache.stats().total_images, 1)


if __name__ == "__main__":
    unittest.main()
