# tests/test_cached_api.py

"""Tests for the read-through cached API facade."""

import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

from src.clients.origin_client import Page
from src.services.cache_service import CacheService
from src.services.cached_api import CachedApi
from src.storage.disk_cache import DiskCacheStore


def _product(pid: int, **extra: object) -> dict[str, object]:
    base: dict[str, object] = {
        "id": pid,
        "name": f"Product {pid}",
        "slug": f"product-{pid}",
        "status": "publish",
    }
    base.update(extra)
    return base


class TestCachedApi(unittest.IsolatedAsyncioTestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = DiskCacheStore(
            cache_dir=Path(self._tmp.name),
            default_expiry=60,
            enabled=True,
            clock=lambda: datetime(2026, 3, 1, tzinfo=timezone.utc),
        )
        self.wordpress = MagicMock()
        self.woocommerce = MagicMock()
        self.api = CachedApi(
            CacheService(self.store, self.wordpress, self.woocommerce)
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _seed_products(self, products: list[dict[str, object]]) -> None:
        self.store.set("products", products)

    # ── Read-through ─────────────────────────────────────

    async def test_hit_does_not_touch_origin(self) -> None:
        self._seed_products([_product(1)])
        products = await self.api.get_products()
        self.assertEqual([p.id for p in products], [1])
        self.woocommerce.get_products.assert_not_called()

    async def test_miss_recaches_once(self) -> None:
        self.woocommerce.get_products.return_value = [_product(7)]
        products = await self.api.get_products()
        self.assertEqual([p.id for p in products], [7])
        self.assertEqual(self.woocommerce.get_products.call_count, 1)

    async def test_empty_origin_does_not_loop(self) -> None:
        self.woocommerce.get_products.return_value = []
        self.assertEqual(await self.api.get_products(), [])
        self.assertEqual(self.woocommerce.get_products.call_count, 1)

    async def test_unknown_product_id_recaches_once(self) -> None:
        self._seed_products([_product(1)])
        self.woocommerce.get_products.return_value = [_product(1), _product(2)]

        self.assertEqual((await self.api.get_product_by_id(2)).id, 2)
        self.assertIsNone(await self.api.get_product_by_id(99))
        self.assertEqual(self.woocommerce.get_products.call_count, 2)

    async def test_product_by_slug(self) -> None:
        self._seed_products([_product(1), _product(2)])
        product = await self.api.get_product_by_slug("product-2")
        self.assertEqual(product.id, 2)

    # ── Derived views ────────────────────────────────────

    async def test_featured_only_published(self) -> None:
        self._seed_products(
            [
                _product(1, featured=True),
                _product(2, featured=True, status="draft"),
                _product(3),
            ]
        )
        featured = await self.api.get_featured_products()
        self.assertEqual([p.id for p in featured], [1])

    async def test_on_sale_default_limit(self) -> None:
        self._seed_products([_product(i, on_sale=True) for i in range(12)])
        self.assertEqual(len(await self.api.get_on_sale_products()), 8)
        self.assertEqual(len(await self.api.get_on_sale_products(limit=3)), 3)

    async def test_products_by_category(self) -> None:
        shoes = {"id": 1, "name": "Shoes", "slug": "shoes"}
        self._seed_products(
            [_product(1, categories=[shoes]), _product(2)]
        )
        found = await self.api.get_products_by_category("shoes")
        self.assertEqual([p.id for p in found], [1])

    async def test_search_matches_description_text(self) -> None:
        self._seed_products(
            [
                _product(1, description="<p>Made of <b>organic</b> cotton</p>"),
                _product(2, tags=[{"id": 5, "name": "Organic", "slug": "o"}]),
                _product(3, name="Plain"),
            ]
        )
        found = await self.api.search_products("ORGANIC")
        self.assertEqual([p.id for p in found], [1, 2])

    async def test_search_blank_query(self) -> None:
        self._seed_products([_product(1)])
        self.assertEqual(await self.api.search_products("   "), [])

    async def test_recent_posts_sorted_desc(self) -> None:
        self.store.set(
            "posts",
            [
                {"id": 1, "slug": "a", "status": "publish", "date": "2026-01-01T00:00:00"},
                {"id": 2, "slug": "b", "status": "publish", "date": "2026-02-01T00:00:00"},
                {"id": 3, "slug": "c", "status": "draft", "date": "2026-03-01T00:00:00"},
            ],
        )
        recent = await self.api.get_recent_posts()
        self.assertEqual([p.id for p in recent], [2, 1])

    async def test_posts_by_category(self) -> None:
        self.store.set(
            "posts",
            [
                {"id": 1, "slug": "a", "status": "publish",
                 "categories": [{"id": 4, "name": "4", "slug": "4"}]},
                {"id": 2, "slug": "b", "status": "publish"},
            ],
        )
        found = await self.api.get_posts_by_category("4")
        self.assertEqual([p.id for p in found], [1])

    async def test_category_by_slug(self) -> None:
        self.woocommerce.get_product_categories.return_value = [
            {"id": 3, "name": "Hats", "slug": "hats"}
        ]
        category = await self.api.get_product_category_by_slug("hats")
        self.assertEqual(category.id, 3)

    async def test_page_by_slug_miss(self) -> None:
        self.wordpress.get_pages.return_value = Page(items=[])
        self.assertIsNone(await self.api.get_page_by_slug("nope"))
        self.assertEqual(self.wordpress.get_pages.call_count, 1)

    # ── Maintenance ──────────────────────────────────────

    async def test_refresh_single_kind_by_alias(self) -> None:
        self.woocommerce.get_product_categories.return_value = []
        metadata = await self.api.refresh_cache("categories")
        self.assertIsNotNone(metadata)
        self.woocommerce.get_product_categories.assert_called_once()
        self.woocommerce.get_products.assert_not_called()

    async def test_clear_cache(self) -> None:
        self._seed_products([_product(1)])
        self.assertEqual(await self.api.clear_cache(), 1)
        self.assertEqual(self.api.get_cache_stats().total_requests, 0)


if __name__ == "__main__":
    unittest.main()
