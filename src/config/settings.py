# src/config/settings.py

"""Central configuration for the storefront cache and cart sync engine."""

import os
from pathlib import Path
from urllib.parse import urlparse

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    """Read a boolean flag such as ``ENABLE_CACHE=true`` from the env."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _site_url(raw: str) -> str:
    """Normalise the WordPress site root (scheme added, slash stripped)."""
    url = raw.strip().rstrip("/")
    if url and not url.lower().startswith(("http://", "https://")):
        url = f"http://{url}"
    return url.removesuffix("/wp-json")


class Settings:
    """Central configuration for the storefront engine."""

    # --- Origin ---
    WORDPRESS_URL: str = _site_url(
        os.getenv("WORDPRESS_URL")
        or os.getenv("NEXT_PUBLIC_WORDPRESS_URL")
        or ""
    )
    WC_CONSUMER_KEY: str = os.getenv("WC_CONSUMER_KEY", "")
    WC_CONSUMER_SECRET: str = os.getenv("WC_CONSUMER_SECRET", "")

    # --- HTTP ---
    REQUEST_TIMEOUT: int = 15           # Content fetches (posts, products)
    STATUS_TIMEOUT: int = 10            # Menus, status probes
    CART_TIMEOUT: int = 5               # Cart mutations stay snappy
    MAX_RETRIES: int = 3                # Retry count on transient failures
    REQUEST_DELAY: float = 1.0          # Base backoff between retries
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "Accept-Language": "en-US,en;q=0.9",
    }

    # --- Disk cache ---
    ENABLE_CACHE: bool = _env_bool("ENABLE_CACHE", True)
    CACHE_EXPIRY_MINUTES: int = int(
        os.getenv("CACHE_EXPIRY_MINUTES", "60")
    )
    ENABLE_WEBHOOKS: bool = _env_bool("ENABLE_WEBHOOKS", False)
    WEBHOOK_SECRET: str = (
        os.getenv("WC_WEBHOOK_SECRET")
        or os.getenv("WEBHOOK_SECRET")
        or ""
    )
    CACHE_VERSION: str = "1.0.0"

    # --- Image cache ---
    IMAGE_EXTENSIONS: tuple[str, ...] = (
        ".jpg", ".jpeg", ".png", ".gif", ".webp",
        ".svg", ".bmp", ".tiff",
    )
    IMAGE_DOWNLOAD_TIMEOUT: int = 30
    IMAGE_BATCH_SIZE: int = 5
    IMAGE_BATCH_DELAY: float = 1.0      # Pause between download batches
    IMAGE_MAX_AGE_DAYS: int = 7
    IMAGE_URL_PREFIX: str = "/api/images/"

    # --- Cart ---
    CART_MAX_RETRIES: int = 3
    CART_RETRY_BASE_DELAY: float = 1.0  # 1s, 2s, 4s
    IDENTITY_SETTLE_DELAY: float = 0.2
    QUEUE_MIN_OPERATION_GAP: float = 0.1

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    CACHE_DIR: Path = Path(
        os.getenv("CACHE_DIR", str(BASE_DIR / ".cache" / "wordpress"))
    )
    IMAGE_CACHE_DIR: Path = Path(
        os.getenv("IMAGE_CACHE_DIR", str(BASE_DIR / ".cache" / "images"))
    )
    STATE_FILE: Path = Path(
        os.getenv("STATE_FILE", str(BASE_DIR / ".cache" / "state.json"))
    )
    LOGS_DIR: Path = BASE_DIR / "logs"

    @classmethod
    def image_hosts(cls) -> frozenset[str]:
        """Hosts whose images may be mirrored locally."""
        hosts = {"localhost", "127.0.0.1"}
        origin_host = urlparse(cls.WORDPRESS_URL).hostname
        if origin_host:
            hosts.add(origin_host)
        extra = os.getenv("IMAGE_CACHE_HOSTS", "")
        hosts.update(h.strip() for h in extra.split(",") if h.strip())
        return frozenset(hosts)

    @classmethod
    def is_origin_configured(cls) -> bool:
        """True when a WordPress site URL is available."""
        return bool(cls.WORDPRESS_URL)

    @classmethod
    def has_store_credentials(cls) -> bool:
        """True when REST v3 consumer credentials are set."""
        return bool(cls.WC_CONSUMER_KEY and cls.WC_CONSUMER_SECRET)
