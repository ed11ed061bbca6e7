# src/services/health_checker.py

"""Origin connectivity and WooCommerce availability checks."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from src.clients.errors import (
    OriginAuthError,
    OriginError,
    OriginNotFoundError,
    OriginUnavailableError,
)
from src.clients.origin_client import OriginClient
from src.clients.store_api_client import StoreApiClient
from src.clients.woocommerce_client import WooCommerceClient
from src.config.settings import Settings
from src.storage.disk_cache import iso, utc_now

logger = logging.getLogger("storefront.health")

_SLOW_MS = 5000


@dataclass
class HealthResult:
    """Result of a single endpoint health check."""

    source_id: str
    status: str  # "ok", "slow", "down"
    latency_ms: float
    message: str


@dataclass
class StoreStatus:
    """Whether the WooCommerce plugin is usable from here."""

    is_active: bool
    is_configured: bool
    message: str = ""
    latency_ms: float = 0.0
    last_checked: str = ""

    @property
    def is_available(self) -> bool:
        return self.is_active and self.is_configured


def probe_store(woocommerce: WooCommerceClient) -> StoreStatus:
    """Classify the store from a ``/system_status`` request.

    A 401 still means the plugin answered, so the store counts as active.
    """
    checked = iso(utc_now())
    if not (woocommerce.origin.is_configured and woocommerce.has_credentials):
        return StoreStatus(
            False, False, "WooCommerce credentials not configured",
            last_checked=checked,
        )

    start = time.monotonic()
    try:
        woocommerce.check_status()
    except OriginAuthError as exc:
        active, message = True, "WooCommerce API credentials are invalid"
        logger.warning("Store status: %s (%s)", message, exc)
    except OriginNotFoundError:
        active = False
        message = "WooCommerce plugin is not active or REST API is disabled"
    except OriginUnavailableError as exc:
        active, message = False, f"Cannot connect to WordPress server: {exc}"
    except OriginError as exc:
        active, message = False, exc.message or "Connection error"
    else:
        active, message = True, ""

    elapsed_ms = (time.monotonic() - start) * 1000
    return StoreStatus(active, True, message, elapsed_ms, checked)


def probe_endpoint(source_id: str, call: Callable[[], Any]) -> HealthResult:
    """Time *call* and turn its outcome into a :class:`HealthResult`."""
    start = time.monotonic()
    try:
        call()
    except OriginError as exc:
        elapsed_ms = (time.monotonic() - start) * 1000
        message = f"HTTP {exc.status_code}" if exc.status_code else str(exc)
        return HealthResult(source_id, "down", elapsed_ms, message[:80])

    elapsed_ms = (time.monotonic() - start) * 1000
    if elapsed_ms > _SLOW_MS:
        return HealthResult(source_id, "slow", elapsed_ms, "High latency")
    return HealthResult(source_id, "ok", elapsed_ms, "")


class HealthChecker:
    """Runs concurrent probes against the WordPress and WooCommerce APIs."""

    def __init__(
        self,
        origin: OriginClient | None = None,
        woocommerce: WooCommerceClient | None = None,
        store_api: StoreApiClient | None = None,
    ) -> None:
        self.origin = origin or OriginClient(max_retries=1)
        self.woocommerce = woocommerce or WooCommerceClient()
        self.store_api = store_api or StoreApiClient()

    def _probes(self) -> dict[str, Callable[[], Any]]:
        return {
            "wordpress": lambda: self.origin.get_json(
                "/wp-json/", timeout=Settings.STATUS_TIMEOUT
            ),
            "woocommerce": self.woocommerce.check_status,
            "store-api": lambda: self.store_api.origin.get_json(
                "/wp-json/wc/store/v1/cart", timeout=Settings.STATUS_TIMEOUT
            ),
        }

    async def check_all(self) -> list[HealthResult]:
        """Probe every endpoint concurrently."""
        if not self.origin.is_configured:
            return [
                HealthResult(name, "down", 0.0, "WORDPRESS_URL not configured")
                for name in self._probes()
            ]
        tasks = [
            asyncio.to_thread(probe_endpoint, name, call)
            for name, call in self._probes().items()
        ]
        results: list[HealthResult] = list(await asyncio.gather(*tasks))
        for r in results:
            logger.info(
                "Health check %s: %s (%.0fms) %s",
                r.source_id,
                r.status,
                r.latency_ms,
                r.message,
            )
        return results

    async def store_status(self) -> StoreStatus:
        status = await asyncio.to_thread(probe_store, self.woocommerce)
        logger.info(
            "Store status: active=%s configured=%s %s",
            status.is_active,
            status.is_configured,
            status.message,
        )
        return status
