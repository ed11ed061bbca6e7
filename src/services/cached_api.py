# src/services/cached_api.py

"""Read-through facade over :class:`CacheService`.

Every getter reads the cache first.  On a miss it triggers exactly one
recache from the origin and reads again; it never loops.  Derived views
filter the full cached collection in memory and only return published
items.
"""

import logging

from src.models.cache_models import (
    CacheMetadata,
    CachedMenu,
    CachedPage,
    CachedPost,
    CachedProduct,
    CachedProductCategory,
    CachedSiteInfo,
    CacheStats,
    ResourceKind,
)
from src.services.cache_service import CacheService
from src.services.normalizers import html_to_text

logger = logging.getLogger("storefront.api")

PUBLISHED = "publish"


def _limited(items: list, limit: int | None) -> list:
    return items[:limit] if limit else items


def _matches(product: CachedProduct, term: str) -> bool:
    """Case-insensitive substring match across text and taxonomy names."""
    haystacks = [
        product.name,
        html_to_text(product.short_description),
        html_to_text(product.description),
    ]
    haystacks.extend(c.name for c in product.categories)
    haystacks.extend(t.name for t in product.tags)
    return any(term in h.lower() for h in haystacks)


class CachedApi:
    def __init__(self, cache: CacheService) -> None:
        self.cache = cache

    # ── Site / menus ─────────────────────────────────────

    async def get_site_info(self) -> CachedSiteInfo | None:
        cached = await self.cache.get_site_info()
        if cached is None:
            cached = await self.cache.cache_site_info()
        return cached

    async def get_menus(self) -> list[CachedMenu]:
        cached = await self.cache.get_menus()
        if not cached:
            cached = await self.cache.cache_menus()
        return cached

    async def get_menu_by_location(self, location: str) -> CachedMenu | None:
        menus = await self.get_menus()
        return next((m for m in menus if m.location == location), None)

    # ── Products ─────────────────────────────────────────

    async def get_products(self) -> list[CachedProduct]:
        cached = await self.cache.get_products()
        if not cached:
            cached = await self.cache.cache_products()
        return cached

    async def get_product_by_id(self, product_id: int) -> CachedProduct | None:
        product = await self.cache.get_product_by_id(product_id)
        if product is None:
            await self.cache.cache_products()
            product = await self.cache.get_product_by_id(product_id)
        return product

    async def get_product_by_slug(self, slug: str) -> CachedProduct | None:
        product = await self.cache.get_product_by_slug(slug)
        if product is None:
            await self.cache.cache_products()
            product = await self.cache.get_product_by_slug(slug)
        return product

    async def _published_products(self) -> list[CachedProduct]:
        return [p for p in await self.get_products() if p.status == PUBLISHED]

    async def get_featured_products(self, limit: int = 8) -> list[CachedProduct]:
        products = await self._published_products()
        return [p for p in products if p.featured][:limit]

    async def get_on_sale_products(self, limit: int = 8) -> list[CachedProduct]:
        products = await self._published_products()
        return [p for p in products if p.on_sale][:limit]

    async def get_products_by_category(
        self, category_slug: str, limit: int | None = None
    ) -> list[CachedProduct]:
        products = await self._published_products()
        filtered = [
            p
            for p in products
            if any(c.slug == category_slug for c in p.categories)
        ]
        return _limited(filtered, limit)

    async def search_products(
        self, query: str, limit: int | None = None
    ) -> list[CachedProduct]:
        term = query.strip().lower()
        if not term:
            return []
        products = await self._published_products()
        found = [p for p in products if _matches(p, term)]
        logger.debug("Search '%s' matched %d product(s)", query, len(found))
        return _limited(found, limit)

    # ── Categories ───────────────────────────────────────

    async def get_product_categories(self) -> list[CachedProductCategory]:
        cached = await self.cache.get_product_categories()
        if not cached:
            cached = await self.cache.cache_product_categories()
        return cached

    async def get_product_category_by_slug(
        self, slug: str
    ) -> CachedProductCategory | None:
        categories = await self.get_product_categories()
        return next((c for c in categories if c.slug == slug), None)

    # ── Pages / posts ────────────────────────────────────

    async def get_pages(self) -> list[CachedPage]:
        cached = await self.cache.get_pages()
        if not cached:
            cached = await self.cache.cache_pages()
        return cached

    async def get_page_by_slug(self, slug: str) -> CachedPage | None:
        page = await self.cache.get_page_by_slug(slug)
        if page is None:
            await self.cache.cache_pages()
            page = await self.cache.get_page_by_slug(slug)
        return page

    async def get_posts(self) -> list[CachedPost]:
        cached = await self.cache.get_posts()
        if not cached:
            cached = await self.cache.cache_posts()
        return cached

    async def get_post_by_slug(self, slug: str) -> CachedPost | None:
        post = await self.cache.get_post_by_slug(slug)
        if post is None:
            await self.cache.cache_posts()
            post = await self.cache.get_post_by_slug(slug)
        return post

    async def get_posts_by_category(
        self, category_slug: str, limit: int | None = None
    ) -> list[CachedPost]:
        posts = [p for p in await self.get_posts() if p.status == PUBLISHED]
        filtered = [
            p for p in posts if any(c.slug == category_slug for c in p.categories)
        ]
        return _limited(filtered, limit)

    async def get_recent_posts(self, limit: int = 5) -> list[CachedPost]:
        posts = [p for p in await self.get_posts() if p.status == PUBLISHED]
        # WordPress dates are ISO-8601 in site time, so they sort as strings
        posts.sort(key=lambda p: p.date, reverse=True)
        return posts[:limit]

    # ── Maintenance ──────────────────────────────────────

    async def refresh_cache(
        self, kind: ResourceKind | str | None = "all"
    ) -> CacheMetadata | None:
        """Refresh one kind, or everything for ``"all"`` / ``None``."""
        if kind in (None, "all"):
            return await self.cache.refresh_all()
        resource = kind if isinstance(kind, ResourceKind) else ResourceKind.parse(kind)
        await self.cache.refresh_partial(resource)
        return await self.cache.get_metadata()

    def get_cache_stats(self) -> CacheStats:
        return self.cache.stats()

    async def clear_cache(self) -> int:
        return await self.cache.clear()
