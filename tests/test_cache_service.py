# tests/test_cache_service.py

"""Tests for the typed cache service: recache, preserve-on-failure, webhooks."""

import asyncio
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

from src.clients.errors import OriginAuthError, OriginUnavailableError
from src.clients.origin_client import Page
from src.models.cache_models import ResourceKind
from src.services.cache_service import (
    METADATA_KEY,
    CacheService,
    checksum,
    describe_failure,
)
from src.storage.disk_cache import DiskCacheStore


def _product(pid: int, name: str = "", **extra: object) -> dict[str, object]:
    return {
        "id": pid,
        "name": name or f"Product {pid}",
        "slug": f"product-{pid}",
        "price": "10.00",
        "status": "publish",
        **extra,
    }


class CacheServiceTestCase(unittest.IsolatedAsyncioTestCase):
    """Shared wiring: temp store plus mocked origin clients."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        self.store = DiskCacheStore(
            cache_dir=Path(self._tmp.name),
            default_expiry=60,
            enabled=True,
            clock=lambda: self.now,
        )
        self.wordpress = MagicMock()
        self.woocommerce = MagicMock()
        self.service = CacheService(
            store=self.store,
            wordpress=self.wordpress,
            woocommerce=self.woocommerce,
            version="test",
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()


class TestHelpers(unittest.TestCase):

    def test_checksum_ignores_key_order(self) -> None:
        self.assertEqual(checksum({"a": 1, "b": 2}), checksum({"b": 2, "a": 1}))

    def test_describe_auth_failure(self) -> None:
        text = describe_failure(
            ResourceKind.PRODUCTS, OriginAuthError("nope", 401)
        )
        self.assertIn("products", text)
        self.assertIn("Read permission", text)

    def test_describe_unreachable_origin(self) -> None:
        text = describe_failure(
            ResourceKind.POSTS, OriginUnavailableError("timeout")
        )
        self.assertIn("WORDPRESS_URL", text)


class TestRecache(CacheServiceTestCase):
    """Fetch, normalise, persist and failure handling."""

    async def test_cache_products_persists_normalised(self) -> None:
        self.woocommerce.get_products.return_value = [
            _product(1, variations=[11, 12]),
        ]
        products = await self.service.cache_products()

        self.assertEqual(len(products), 1)
        self.assertEqual(products[0].variations, [])
        self.assertEqual(products[0].last_updated, "2026-03-01T12:00:00Z")
        stored = await self.service.get_products()
        self.assertEqual([p.id for p in stored], [1])

    async def test_failure_preserves_previous_products(self) -> None:
        self.woocommerce.get_products.return_value = [_product(1), _product(2)]
        await self.service.cache_products()

        self.woocommerce.get_products.side_effect = OriginUnavailableError(
            "down"
        )
        result = await self.service.cache_products()

        self.assertEqual([p.id for p in result], [1, 2])
        self.assertEqual(len(self.store.read_raw("products")), 2)

    async def test_refresh_failure_restores_snapshot(self) -> None:
        self.woocommerce.get_products.return_value = [_product(1)]
        await self.service.cache_products()

        self.woocommerce.get_products.side_effect = OriginAuthError("bad", 401)
        result = await self.service.cache_products(refresh=True)

        self.assertEqual([p.id for p in result], [1])
        self.assertEqual(
            [p["id"] for p in self.store.read_raw("products")], [1]
        )

    async def test_refresh_failure_keeps_original_timestamp(self) -> None:
        self.woocommerce.get_products.return_value = [_product(1)]
        await self.service.cache_products()
        written = self.store.read_entry("products")["lastUpdated"]

        self.now += timedelta(minutes=90)
        self.woocommerce.get_products.side_effect = OriginUnavailableError(
            "down"
        )
        await self.service.cache_products(refresh=True)

        self.assertEqual(self.store.read_entry("products")["lastUpdated"], written)
        self.assertIsNone(self.store.get("products"))

    async def test_site_info_refresh_failure_stays_stale(self) -> None:
        self.wordpress.get_site_info.return_value = {"title": "Shop"}
        await self.service.cache_site_info()

        self.now += timedelta(minutes=90)
        self.wordpress.get_site_info.side_effect = OriginUnavailableError("x")
        info = await self.service.cache_site_info(refresh=True)

        self.assertEqual(info.title, "Shop")
        self.assertIsNone(await self.service.get_site_info())

    async def test_failure_with_nothing_cached_stores_empty(self) -> None:
        self.wordpress.get_posts.side_effect = OriginUnavailableError("down")
        result = await self.service.cache_posts()
        self.assertEqual(result, [])
        self.assertEqual(self.store.read_raw("posts"), [])

    async def test_pages_and_posts_read_page_items(self) -> None:
        self.wordpress.get_pages.return_value = Page(
            items=[{"id": 5, "slug": "about", "title": {"rendered": "About"}}]
        )
        self.wordpress.get_posts.return_value = Page(
            items=[{"id": 9, "slug": "hello", "title": {"rendered": "Hi &amp; bye"}}]
        )
        await self.service.cache_pages()
        await self.service.cache_posts()

        page = await self.service.get_page_by_slug("about")
        post = await self.service.get_post_by_slug("hello")
        self.assertEqual(page.title, "About")
        self.assertEqual(post.title, "Hi & bye")

    async def test_site_info_failure_without_previous(self) -> None:
        self.wordpress.get_site_info.side_effect = OriginUnavailableError("x")
        self.assertIsNone(await self.service.cache_site_info())

    async def test_site_info_cached(self) -> None:
        self.wordpress.get_site_info.return_value = {
            "title": "Shop",
            "description": "Things",
            "logo": None,
            "site_icon": None,
        }
        await self.service.cache_site_info()
        info = await self.service.get_site_info()
        self.assertEqual(info.title, "Shop")


class TestMenus(CacheServiceTestCase):

    async def test_single_menu_becomes_primary(self) -> None:
        self.wordpress.get_menus.return_value = [
            {"term_id": 3, "name": "Links", "slug": "links"}
        ]
        self.wordpress.get_menu_with_items.return_value = {
            "items": [
                {
                    "ID": 1,
                    "title": "Shop",
                    "url": "https://shop.example.com/shop/",
                }
            ]
        }
        menus = await self.service.cache_menus()

        self.assertEqual(len(menus), 1)
        self.assertEqual(menus[0].location, "primary")
        self.assertEqual(menus[0].items[0].url, "/shop/")
        found = await self.service.get_menu_by_location("primary")
        self.assertEqual(found.slug, "links")

    async def test_cache_specific_menu_upserts_by_slug(self) -> None:
        self.store.set(
            "menus",
            [
                {"id": 1, "name": "Main", "slug": "main", "location": "primary"},
                {"id": 2, "name": "Footer", "slug": "footer", "location": "footer"},
            ],
        )
        self.wordpress.get_menu_with_items.return_value = {
            "term_id": 2,
            "name": "Footer",
            "slug": "footer",
            "items": [{"ID": 7, "title": "Contact", "url": "/contact"}],
        }
        menu = await self.service.cache_specific_menu("footer")

        self.assertIsNotNone(menu)
        menus = await self.service.get_menus()
        self.assertEqual([m.slug for m in menus], ["main", "footer"])
        self.assertEqual(menus[1].items[0].title, "Contact")

    async def test_cache_specific_menu_missing(self) -> None:
        self.wordpress.get_menu_with_items.return_value = None
        self.assertIsNone(await self.service.cache_specific_menu("ghost"))


class TestWebhookMutations(CacheServiceTestCase):
    """Product upsert/remove work even with caching switched off."""

    async def test_upsert_replaces_in_place_when_disabled(self) -> None:
        self.store.write_raw(
            "products", [_product(41), _product(42, "Old"), _product(43)]
        )
        self.service.update_config(enable_caching=False)

        await self.service.upsert_product_from_webhook(_product(42, "New"))

        stored = self.store.read_raw("products")
        self.assertEqual([p["id"] for p in stored], [41, 42, 43])
        self.assertEqual(stored[1]["name"], "New")

    async def test_upsert_appends_new_product(self) -> None:
        self.store.write_raw("products", [_product(1)])
        await self.service.upsert_product_from_webhook(_product(2))
        self.assertEqual(
            [p["id"] for p in self.store.read_raw("products")], [1, 2]
        )

    async def test_remove_product(self) -> None:
        self.store.write_raw("products", [_product(1), _product(2)])
        self.assertTrue(await self.service.remove_product_from_cache(1))
        self.assertFalse(await self.service.remove_product_from_cache(1))
        self.assertEqual(
            [p["id"] for p in self.store.read_raw("products")], [2]
        )

    async def test_upsert_during_refresh_is_not_lost(self) -> None:
        """A webhook racing a recache lands before or after, never lost."""
        self.store.write_raw("products", [_product(1)])
        self.woocommerce.get_products.return_value = [_product(1)]

        await asyncio.gather(
            self.service.cache_products(refresh=True),
            self.service.upsert_product_from_webhook(_product(42)),
        )
        ids = [p["id"] for p in self.store.read_raw("products")]
        # Refresh ran first (it took the lock first), upsert applied after
        self.assertEqual(ids, [1, 42])


class TestRefresh(CacheServiceTestCase):

    def _origin_ok(self) -> None:
        self.wordpress.get_site_info.return_value = {"title": "Shop"}
        self.wordpress.get_menus.return_value = []
        self.woocommerce.get_products.return_value = [_product(1), _product(2)]
        self.woocommerce.get_product_categories.return_value = [
            {"id": 3, "name": "Shoes &amp; Boots", "slug": "shoes"}
        ]
        self.wordpress.get_pages.return_value = Page(items=[])
        self.wordpress.get_posts.return_value = Page(items=[{"id": 4}])

    async def test_refresh_all_writes_metadata(self) -> None:
        self._origin_ok()
        metadata = await self.service.refresh_all()

        self.assertEqual(metadata.total_items, 4)
        self.assertEqual(metadata.version, "test")
        self.assertEqual(metadata.last_full_refresh, "2026-03-01T12:00:00Z")
        self.assertEqual(len(metadata.checksum), 32)
        stored = await self.service.get_metadata()
        self.assertEqual(stored.checksum, metadata.checksum)
        self.assertEqual(self.service.stats().last_refresh, metadata.last_full_refresh)
        categories = await self.service.get_product_categories()
        self.assertEqual(categories[0].name, "Shoes & Boots")

    async def test_refresh_all_survives_one_failing_kind(self) -> None:
        self._origin_ok()
        self.wordpress.get_posts.side_effect = OriginUnavailableError("down")
        metadata = await self.service.refresh_all()
        self.assertEqual(metadata.total_items, 3)
        self.assertEqual(self.store.read_raw("posts"), [])

    async def test_refresh_partial_stamps_metadata(self) -> None:
        self._origin_ok()
        await self.service.refresh_all()
        first = await self.service.get_metadata()

        self.now = datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)
        result = await self.service.refresh_partial(ResourceKind.PRODUCTS)

        self.assertEqual(len(result), 2)
        metadata = await self.service.get_metadata()
        self.assertEqual(metadata.last_full_refresh, first.last_full_refresh)
        self.assertEqual(metadata.last_partial_refresh, "2026-03-01T12:30:00Z")

    async def test_generic_set_and_invalidate(self) -> None:
        await self.service.set("custom", {"a": 1})
        self.assertEqual(await self.service.get("custom"), {"a": 1})
        await self.service.invalidate("custom")
        self.assertIsNone(await self.service.get("custom"))
        await self.service.set(METADATA_KEY, {})
        self.assertEqual(await self.service.clear(), 1)

    def test_update_config(self) -> None:
        config = self.service.update_config(cache_expiry=5, enable_webhooks=True)
        self.assertEqual(config.cache_expiry, 5)
        self.assertTrue(config.enable_webhooks)
        self.assertTrue(config.enable_caching)


if __name__ == "__main__":
    unittest.main()
