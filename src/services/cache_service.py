# src/services/cache_service.py

"""Typed cache over the disk store for the six storefront resource kinds.

Every ``cache_*`` coroutine fetches from the origin, normalises and
persists.  On an origin failure the previously cached collection is kept
and returned; an empty collection is only written when nothing was cached
before.  Failures never propagate past this class.

Writes to a key are serialised by a per-key :class:`asyncio.Lock`.  A
recache holds the lock from snapshot to final write, so a webhook upsert
for the same key runs strictly before or after it and is never lost in
between.
"""

import asyncio
import hashlib
import json
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from src.clients.errors import (
    OriginAuthError,
    OriginError,
    OriginNotFoundError,
    OriginUnavailableError,
    StoreUnavailableError,
)
from src.clients.woocommerce_client import WooCommerceClient
from src.clients.wordpress_client import WordPressClient
from src.config.settings import Settings
from src.models.cache_models import (
    CacheConfig,
    CachedMenu,
    CacheMetadata,
    CachedPage,
    CachedPost,
    CachedProduct,
    CachedProductCategory,
    CachedSiteInfo,
    CacheStats,
    ResourceKind,
)
from src.services import normalizers
from src.storage.disk_cache import DiskCacheStore, iso
from src.storage.image_cache import ImageCache

logger = logging.getLogger("storefront.cache")

T = TypeVar("T")

METADATA_KEY = "metadata"


def checksum(payload: Any) -> str:
    """MD5 of the canonical JSON encoding of *payload*."""
    encoded = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.md5(encoded.encode("utf-8")).hexdigest()


def describe_failure(kind: ResourceKind, exc: BaseException) -> str:
    """Actionable explanation for an origin failure."""
    if isinstance(exc, OriginAuthError):
        return (
            f"{kind.value}: authentication failed ({exc}). Check that the "
            "WooCommerce API key has Read permission and belongs to an "
            "administrator"
        )
    if isinstance(exc, (OriginNotFoundError, StoreUnavailableError)):
        return (
            f"{kind.value}: REST route not found ({exc}). Ensure the plugin "
            "is installed and activated"
        )
    if isinstance(exc, OriginUnavailableError):
        return (
            f"{kind.value}: cannot connect to the WordPress site ({exc}). "
            "Check WORDPRESS_URL"
        )
    return f"{kind.value}: {exc}"


class CacheService:
    """Fetch, normalise and persist storefront data."""

    def __init__(
        self,
        store: DiskCacheStore,
        wordpress: WordPressClient,
        woocommerce: WooCommerceClient,
        image_cache: ImageCache | None = None,
        enable_webhooks: bool = Settings.ENABLE_WEBHOOKS,
        webhook_secret: str = Settings.WEBHOOK_SECRET,
        version: str = Settings.CACHE_VERSION,
    ) -> None:
        self.store = store
        self.wordpress = wordpress
        self.woocommerce = woocommerce
        self.image_cache = image_cache
        self.enable_webhooks = enable_webhooks
        self.webhook_secret = webhook_secret
        self.version = version
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _now(self) -> str:
        return iso(self.store.clock())

    # ── Generic entry points ─────────────────────────────

    async def get(self, key: str, expiry_minutes: int | None = None) -> Any:
        return self.store.get(key, expiry_minutes)

    async def set(
        self, key: str, data: Any, expiry_minutes: int | None = None
    ) -> None:
        async with self.lock_for(key):
            self.store.set(key, data, expiry_minutes)

    async def invalidate(self, key: str) -> None:
        async with self.lock_for(key):
            self.store.invalidate(key)

    async def clear(self) -> int:
        return self.store.clear()

    def _snapshot(self, key: str, refresh: bool) -> dict[str, Any] | None:
        """Current stored entry, invalidating it when refreshing."""
        entry = self.store.read_entry(key)
        if refresh:
            self.store.invalidate(key)
        return entry

    def _restore(self, key: str, entry: dict[str, Any], refresh: bool) -> None:
        # Original lastUpdated is kept so a stale entry stays stale
        if refresh:
            self.store.restore_entry(key, entry)

    def _read_list(
        self, kind: ResourceKind, factory: Callable[[Any], T]
    ) -> list[T]:
        data = self.store.get(kind.value)
        if not isinstance(data, list):
            return []
        return [factory(d) for d in data if isinstance(d, dict)]

    async def _recache(
        self,
        kind: ResourceKind,
        fetch: Callable[[], list[dict[str, Any]]],
        normalize: Callable[[list[dict[str, Any]], str], list[Any]],
        factory: Callable[[Any], T],
        refresh: bool = False,
    ) -> list[T]:
        """Fetch + normalise + persist one collection under its lock.

        With *refresh* the entry is invalidated first; the snapshot taken
        before that is what gets restored if the origin fails.
        """
        key = kind.value
        async with self.lock_for(key):
            entry = self._snapshot(key, refresh)
            try:
                raw = await asyncio.to_thread(fetch)
                items = normalize(raw, self._now())
            except Exception as exc:
                logger.error(
                    "Failed to cache %s", describe_failure(kind, exc)
                )
                previous = entry.get("data") if entry else None
                if isinstance(previous, list) and previous:
                    logger.warning(
                        "Preserving existing %s cache with %d item(s)",
                        key,
                        len(previous),
                    )
                    self._restore(key, entry, refresh)
                    return [factory(p) for p in previous if isinstance(p, dict)]
                logger.warning("No existing %s cache, storing empty list", key)
                self.store.set(key, [])
                return []

            self.store.set(key, [i.to_dict() for i in items])
            logger.info("Cached %d %s", len(items), key)
            return items

    # ── Site info ────────────────────────────────────────

    async def get_site_info(self) -> CachedSiteInfo | None:
        data = self.store.get(ResourceKind.SITE_INFO.value)
        if not isinstance(data, dict):
            return None
        return CachedSiteInfo.from_dict(data)

    async def cache_site_info(self, refresh: bool = False) -> CachedSiteInfo | None:
        key = ResourceKind.SITE_INFO.value
        async with self.lock_for(key):
            entry = self._snapshot(key, refresh)
            try:
                raw = await asyncio.to_thread(self.wordpress.get_site_info)
            except Exception as exc:
                logger.error(
                    "Failed to cache %s",
                    describe_failure(ResourceKind.SITE_INFO, exc),
                )
                previous = entry.get("data") if entry else None
                if isinstance(previous, dict):
                    self._restore(key, entry, refresh)
                    return CachedSiteInfo.from_dict(previous)
                return None
            info = normalizers.normalize_site_info(raw, self._now())
            self.store.set(key, info.to_dict())
            logger.info("Cached site info '%s'", info.title)
            return info

    # ── Menus ────────────────────────────────────────────

    def _fetch_menus(self) -> list[tuple[dict[str, Any], dict[str, Any] | None]]:
        """Menu list plus per-menu detail where the list lacks items."""
        pairs: list[tuple[dict[str, Any], dict[str, Any] | None]] = []
        for basic in self.wordpress.get_menus():
            detailed = None
            if not basic.get("items"):
                slug = normalizers.menu_slug(basic)
                try:
                    detailed = self.wordpress.get_menu_with_items(slug)
                except OriginError as exc:
                    logger.warning(
                        "Could not fetch items for menu %s: %s", slug, exc
                    )
            pairs.append((basic, detailed))
        return pairs

    @staticmethod
    def _normalize_menus(
        pairs: list[tuple[dict[str, Any], dict[str, Any] | None]], now: str
    ) -> list[CachedMenu]:
        menus: list[CachedMenu] = []
        for basic, detailed in pairs:
            menus.append(
                normalizers.normalize_menu(
                    basic, detailed, is_first=not menus, now=now
                )
            )
        return normalizers.finalize_menus(menus)

    async def get_menus(self) -> list[CachedMenu]:
        return self._read_list(ResourceKind.MENUS, CachedMenu.from_dict)

    async def cache_menus(self, refresh: bool = False) -> list[CachedMenu]:
        return await self._recache(
            ResourceKind.MENUS,
            self._fetch_menus,
            self._normalize_menus,
            CachedMenu.from_dict,
            refresh,
        )

    async def get_menu_by_location(self, location: str) -> CachedMenu | None:
        return next(
            (m for m in await self.get_menus() if m.location == location),
            None,
        )

    async def get_menu_by_slug(self, slug: str) -> CachedMenu | None:
        return next(
            (m for m in await self.get_menus() if m.slug == slug), None
        )

    async def cache_specific_menu(self, slug: str) -> CachedMenu | None:
        """Refetch one menu and upsert it into the cached list by slug."""
        try:
            detailed = await asyncio.to_thread(
                self.wordpress.get_menu_with_items, slug
            )
        except Exception as exc:
            logger.error("Error caching specific menu '%s': %s", slug, exc)
            return None
        if detailed is None:
            logger.info("Menu '%s' not found", slug)
            return None

        key = ResourceKind.MENUS.value
        async with self.lock_for(key):
            existing = self.store.read_raw(key)
            menus = existing if isinstance(existing, list) else []
            menu = normalizers.normalize_menu(
                detailed, detailed, is_first=not menus, now=self._now()
            )
            entry = menu.to_dict()
            for index, current in enumerate(menus):
                if isinstance(current, dict) and current.get("slug") == slug:
                    menus[index] = entry
                    break
            else:
                menus.append(entry)
            self.store.set(key, menus)
        logger.info(
            "Cached specific menu '%s' with %d items",
            menu.name,
            len(menu.items),
        )
        return menu

    # ── Products ─────────────────────────────────────────

    async def get_products(self) -> list[CachedProduct]:
        return self._read_list(ResourceKind.PRODUCTS, CachedProduct.from_dict)

    async def cache_products(self, refresh: bool = False) -> list[CachedProduct]:
        products = await self._recache(
            ResourceKind.PRODUCTS,
            lambda: self.woocommerce.get_products({"per_page": 100}),
            lambda raw, now: [
                normalizers.normalize_product(p, now) for p in raw
            ],
            CachedProduct.from_dict,
            refresh,
        )
        if self.image_cache is not None and products:
            try:
                await self.image_cache.cache_product_images(
                    [p.to_dict() for p in products]
                )
            except Exception as exc:
                logger.error("Failed to cache product images: %s", exc)
        return products

    async def upsert_product_from_webhook(
        self, raw_product: dict[str, Any]
    ) -> CachedProduct:
        """Replace or append one product, ignoring the enabled flag."""
        product = normalizers.normalize_product(raw_product, self._now())
        key = ResourceKind.PRODUCTS.value
        async with self.lock_for(key):
            existing = self.store.read_raw(key)
            products = existing if isinstance(existing, list) else []
            entry = product.to_dict()
            for index, current in enumerate(products):
                if isinstance(current, dict) and current.get("id") == product.id:
                    products[index] = entry
                    break
            else:
                products.append(entry)
            self.store.write_raw(key, products)
        logger.info("Upserted product %d from webhook", product.id)
        return product

    async def remove_product_from_cache(self, product_id: int) -> bool:
        """Drop one product by id; True if it was present."""
        key = ResourceKind.PRODUCTS.value
        async with self.lock_for(key):
            existing = self.store.read_raw(key)
            products = existing if isinstance(existing, list) else []
            kept = [
                p
                for p in products
                if not (isinstance(p, dict) and p.get("id") == product_id)
            ]
            self.store.write_raw(key, kept)
        removed = len(kept) != len(products)
        logger.info(
            "Removed product %d from cache (present=%s)", product_id, removed
        )
        return removed

    async def get_product_by_id(self, product_id: int) -> CachedProduct | None:
        return next(
            (p for p in await self.get_products() if p.id == product_id),
            None,
        )

    async def get_product_by_slug(self, slug: str) -> CachedProduct | None:
        return next(
            (p for p in await self.get_products() if p.slug == slug), None
        )

    # ── Categories / pages / posts ───────────────────────

    async def get_product_categories(self) -> list[CachedProductCategory]:
        return self._read_list(
            ResourceKind.CATEGORIES, CachedProductCategory.from_dict
        )

    async def cache_product_categories(
        self, refresh: bool = False
    ) -> list[CachedProductCategory]:
        return await self._recache(
            ResourceKind.CATEGORIES,
            lambda: self.woocommerce.get_product_categories({"per_page": 100}),
            lambda raw, now: [
                normalizers.normalize_category(c, now) for c in raw
            ],
            CachedProductCategory.from_dict,
            refresh,
        )

    async def get_pages(self) -> list[CachedPage]:
        return self._read_list(ResourceKind.PAGES, CachedPage.from_dict)

    async def cache_pages(self, refresh: bool = False) -> list[CachedPage]:
        return await self._recache(
            ResourceKind.PAGES,
            lambda: self.wordpress.get_pages({"per_page": 100}).items,
            lambda raw, now: [normalizers.normalize_page(p, now) for p in raw],
            CachedPage.from_dict,
            refresh,
        )

    async def get_page_by_slug(self, slug: str) -> CachedPage | None:
        return next(
            (p for p in await self.get_pages() if p.slug == slug), None
        )

    async def get_posts(self) -> list[CachedPost]:
        return self._read_list(ResourceKind.POSTS, CachedPost.from_dict)

    async def cache_posts(self, refresh: bool = False) -> list[CachedPost]:
        return await self._recache(
            ResourceKind.POSTS,
            lambda: self.wordpress.get_posts({"per_page": 100}).items,
            lambda raw, now: [normalizers.normalize_post(p, now) for p in raw],
            CachedPost.from_dict,
            refresh,
        )

    async def get_post_by_slug(self, slug: str) -> CachedPost | None:
        return next(
            (p for p in await self.get_posts() if p.slug == slug), None
        )

    # ── Refresh ──────────────────────────────────────────

    def _recacher(self, kind: ResourceKind) -> Callable[..., Any]:
        return {
            ResourceKind.SITE_INFO: self.cache_site_info,
            ResourceKind.MENUS: self.cache_menus,
            ResourceKind.PRODUCTS: self.cache_products,
            ResourceKind.CATEGORIES: self.cache_product_categories,
            ResourceKind.PAGES: self.cache_pages,
            ResourceKind.POSTS: self.cache_posts,
        }[kind]

    async def _refresh_one(self, kind: ResourceKind) -> Any:
        return await self._recacher(kind)(refresh=True)

    async def refresh_all(self) -> CacheMetadata:
        """Recache every kind concurrently and record the metadata."""
        logger.info("Starting full cache refresh")
        kinds = list(ResourceKind)
        results = await asyncio.gather(
            *(self._refresh_one(k) for k in kinds)
        )

        payload: dict[str, Any] = {}
        total = 0
        for kind, result in zip(kinds, results):
            if isinstance(result, list):
                total += len(result)
                payload[kind.value] = [r.to_dict() for r in result]
            elif result is not None:
                payload[kind.value] = result.to_dict()

        now = self._now()
        metadata = CacheMetadata(
            last_full_refresh=now,
            last_partial_refresh=now,
            total_items=total,
            version=self.version,
            checksum=checksum(payload),
        )
        await self.set(METADATA_KEY, metadata.to_dict())
        self.store.mark_refreshed(now)
        logger.info("Cache refresh completed (%d items)", total)
        return metadata

    async def refresh_partial(self, kind: ResourceKind) -> Any:
        """Recache one kind and stamp ``last_partial_refresh``."""
        logger.info("Refreshing %s cache", kind.value)
        result = await self._refresh_one(kind)

        now = self._now()
        stored = self.store.get(METADATA_KEY)
        if isinstance(stored, dict):
            metadata = CacheMetadata.from_dict(stored)
        else:
            metadata = CacheMetadata(
                last_full_refresh=now,
                last_partial_refresh=now,
                version=self.version,
            )
        metadata.last_partial_refresh = now
        await self.set(METADATA_KEY, metadata.to_dict())
        self.store.mark_refreshed(now)
        return result

    async def get_metadata(self) -> CacheMetadata | None:
        stored = self.store.get(METADATA_KEY)
        return CacheMetadata.from_dict(stored) if isinstance(stored, dict) else None

    # ── Stats / config ───────────────────────────────────

    def stats(self) -> CacheStats:
        return self.store.stats()

    def config(self) -> CacheConfig:
        return CacheConfig(
            enable_caching=self.store.enabled,
            cache_expiry=self.store.default_expiry,
            enable_webhooks=self.enable_webhooks,
            webhook_secret=self.webhook_secret,
        )

    def update_config(self, **changes: Any) -> CacheConfig:
        """Adjust switches at runtime, e.g. ``enable_caching=False``."""
        if "enable_caching" in changes:
            self.store.enabled = bool(changes["enable_caching"])
        if "cache_expiry" in changes:
            self.store.default_expiry = int(changes["cache_expiry"])
        if "enable_webhooks" in changes:
            self.enable_webhooks = bool(changes["enable_webhooks"])
        if "webhook_secret" in changes:
            self.webhook_secret = str(changes["webhook_secret"])
        return self.config()
