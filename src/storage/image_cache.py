# src/storage/image_cache.py

"""Local mirror of origin images, addressed by a hash of their URL."""

import asyncio
import hashlib
import logging
import re
from dataclasses import asdict, dataclass
from datetime import timedelta
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import urlparse

from curl_cffi import requests as curl_requests

from src.config.settings import Settings
from src.models.cache_models import as_dict, as_int, as_str
from src.storage.disk_cache import (
    Clock,
    atomic_write_json,
    iso,
    parse_iso,
    read_json,
    utc_now,
)

logger = logging.getLogger("storefront.images")

_IMAGE_URL_RE = re.compile(
    r"\.(%s)(\?.*)?$"
    % "|".join(e.lstrip(".") for e in Settings.IMAGE_EXTENSIONS),
    re.IGNORECASE,
)


@dataclass
class CachedImage:
    original_url: str
    local_path: str
    filename: str
    size: int
    mime_type: str
    downloaded_at: str
    last_accessed: str

    @classmethod
    def from_dict(cls, raw: Any) -> "CachedImage":
        data = as_dict(raw)
        return cls(
            original_url=as_str(data.get("original_url")),
            local_path=as_str(data.get("local_path")),
            filename=as_str(data.get("filename")),
            size=as_int(data.get("size")),
            mime_type=as_str(data.get("mime_type"), "image/jpeg"),
            downloaded_at=as_str(data.get("downloaded_at")),
            last_accessed=as_str(data.get("last_accessed")),
        )


@dataclass
class ImageCacheStats:
    total_images: int = 0
    total_size: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    download_errors: int = 0
    last_cleanup: str = ""


def image_filename(url: str) -> str:
    """MD5 of the URL plus the path's extension (``.jpg`` by default)."""
    digest = hashlib.md5(url.encode("utf-8")).hexdigest()
    suffix = PurePosixPath(urlparse(url).path).suffix or ".jpg"
    return f"{digest}{suffix}"


class ImageCache:
    """Downloads origin images once and serves them from disk.

    Only URLs that look like images *and* live on an allowed host are
    mirrored; everything else is handed back unchanged so the cache never
    acts as an open proxy.  A failed download also returns the original
    URL.
    """

    def __init__(
        self,
        cache_dir: Path = Settings.IMAGE_CACHE_DIR,
        allowed_hosts: frozenset[str] | None = None,
        url_prefix: str = Settings.IMAGE_URL_PREFIX,
        timeout: int = Settings.IMAGE_DOWNLOAD_TIMEOUT,
        batch_size: int = Settings.IMAGE_BATCH_SIZE,
        batch_delay: float = Settings.IMAGE_BATCH_DELAY,
        session: Any = None,
        clock: Clock = utc_now,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.files_dir = self.cache_dir / "files"
        self.metadata_file = self.cache_dir / "metadata.json"
        self.stats_file = self.cache_dir / "stats.json"
        self.allowed_hosts = (
            allowed_hosts
            if allowed_hosts is not None
            else Settings.image_hosts()
        )
        self.url_prefix = url_prefix
        self.timeout = timeout
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay
        self.session = session or curl_requests.Session(
            impersonate=Settings.IMPERSONATE_BROWSER
        )
        self.clock = clock
        self._images: dict[str, CachedImage] = {}
        self._inflight: dict[str, asyncio.Task[CachedImage | None]] = {}
        self._stats = ImageCacheStats(last_cleanup=iso(clock()))
        self._loaded = False

    # ── Lifecycle ────────────────────────────────────────

    def load(self) -> None:
        """Read metadata and stats files into memory."""
        entries = read_json(self.metadata_file)
        if isinstance(entries, list):
            for raw in entries:
                image = CachedImage.from_dict(raw)
                if image.original_url:
                    self._images[image.original_url] = image
        stats = read_json(self.stats_file)
        if isinstance(stats, dict):
            known = asdict(self._stats)
            known.update(
                {k: v for k, v in stats.items() if k in known}
            )
            self._stats = ImageCacheStats(**known)
        self._loaded = True
        logger.debug("Loaded %d cached images", len(self._images))

    def save(self) -> None:
        try:
            atomic_write_json(
                self.metadata_file,
                [asdict(i) for i in self._images.values()],
            )
            atomic_write_json(self.stats_file, asdict(self._stats))
        except OSError as exc:
            logger.error("Error saving image cache: %s", exc)

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    # ── Lookup ───────────────────────────────────────────

    def is_cacheable(self, url: str) -> bool:
        if not url or not _IMAGE_URL_RE.search(url):
            return False
        return urlparse(url).hostname in self.allowed_hosts

    def local_url(self, filename: str) -> str:
        return f"{self.url_prefix}{filename}"

    async def get_cached_image_url(self, original_url: str) -> str:
        """Local URL for *original_url*, downloading it on first use."""
        if not self.is_cacheable(original_url):
            return original_url

        self._ensure_loaded()
        cached = self._images.get(original_url)
        if cached is not None:
            if Path(cached.local_path).exists():
                cached.last_accessed = iso(self.clock())
                self._stats.cache_hits += 1
                return self.local_url(cached.filename)
            logger.info("Cached file vanished for %s", original_url)
            self._drop(original_url)

        task = self._inflight.get(original_url)
        if task is None:
            self._stats.cache_misses += 1
            task = asyncio.ensure_future(self._download(original_url))
            self._inflight[original_url] = task
            task.add_done_callback(
                lambda _: self._inflight.pop(original_url, None)
            )
        else:
            logger.debug("Joining in-flight download of %s", original_url)

        # Shielded so one cancelled caller does not abort the others
        image = await asyncio.shield(task)
        if image is None:
            return original_url
        self.save()
        return self.local_url(image.filename)

    def _drop(self, url: str) -> None:
        image = self._images.pop(url, None)
        if image is not None:
            self._stats.total_images = max(0, self._stats.total_images - 1)
            self._stats.total_size = max(
                0, self._stats.total_size - image.size
            )

    # ── Download ─────────────────────────────────────────

    def _fetch(self, url: str, target: Path) -> tuple[int, str]:
        """Stream *url* into *target*; returns ``(size, mime_type)``."""
        resp = self.session.get(url, timeout=self.timeout, stream=True)
        try:
            if resp.status_code != 200:
                raise OSError(f"HTTP {resp.status_code}")
            size = 0
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as f:
                for chunk in resp.iter_content():
                    if chunk:
                        f.write(chunk)
                        size += len(chunk)
            mime = resp.headers.get("content-type") or "image/jpeg"
        finally:
            resp.close()
        return size, str(mime)

    async def _download(self, url: str) -> CachedImage | None:
        filename = image_filename(url)
        target = self.files_dir / filename
        try:
            size, mime = await asyncio.to_thread(self._fetch, url, target)
        except Exception as exc:
            logger.error("Error downloading image %s: %s", url, exc)
            target.unlink(missing_ok=True)
            self._stats.download_errors += 1
            return None

        now = iso(self.clock())
        image = CachedImage(
            original_url=url,
            local_path=str(target),
            filename=filename,
            size=size,
            mime_type=mime,
            downloaded_at=now,
            last_accessed=now,
        )
        self._drop(url)
        self._images[url] = image
        self._stats.total_images += 1
        self._stats.total_size += size
        logger.debug("Cached image %s -> %s (%d bytes)", url, filename, size)
        return image

    async def cache_product_images(
        self, products: list[dict[str, Any]]
    ) -> int:
        """Mirror every distinct product image, a few at a time.

        Returns the number of distinct URLs considered.
        """
        urls: list[str] = []
        seen: set[str] = set()
        for product in products:
            for image in product.get("images") or []:
                src = image.get("src") if isinstance(image, dict) else None
                if src and src not in seen:
                    seen.add(src)
                    urls.append(src)
            featured = product.get("featured_image")
            if featured and featured not in seen:
                seen.add(featured)
                urls.append(featured)

        logger.info("Caching %d product images", len(urls))
        for start in range(0, len(urls), self.batch_size):
            batch = urls[start:start + self.batch_size]
            await asyncio.gather(
                *(self.get_cached_image_url(u) for u in batch),
                return_exceptions=True,
            )
            if start + self.batch_size < len(urls):
                await asyncio.sleep(self.batch_delay)

        self.save()
        return len(urls)

    # ── Serving / maintenance ────────────────────────────

    def get_image_file(self, filename: str) -> tuple[bytes, str] | None:
        """Bytes and MIME type of a cached file, for the image route."""
        if Path(filename).name != filename:
            return None
        self._ensure_loaded()
        try:
            data = (self.files_dir / filename).read_bytes()
        except OSError as exc:
            logger.error("Error reading cached image %s: %s", filename, exc)
            return None
        mime = next(
            (
                i.mime_type
                for i in self._images.values()
                if i.filename == filename
            ),
            "image/jpeg",
        )
        return data, mime

    def stats(self) -> ImageCacheStats:
        self._ensure_loaded()
        return ImageCacheStats(**asdict(self._stats))

    def cleanup(
        self,
        max_age: timedelta = timedelta(days=Settings.IMAGE_MAX_AGE_DAYS),
    ) -> int:
        """Evict images not accessed within *max_age*; returns the count."""
        self._ensure_loaded()
        now = self.clock()
        deleted = 0
        for url, image in list(self._images.items()):
            accessed = parse_iso(image.last_accessed)
            if accessed is not None and now - accessed <= max_age:
                continue
            try:
                Path(image.local_path).unlink(missing_ok=True)
            except OSError as exc:
                logger.error(
                    "Error deleting cached image %s: %s", image.filename, exc
                )
                continue
            self._drop(url)
            deleted += 1

        self._stats.last_cleanup = iso(now)
        self.save()
        logger.info("Image cleanup removed %d file(s)", deleted)
        return deleted
