# src/clients/woocommerce_client.py

"""WooCommerce REST v3 client (consumer key / secret Basic-Auth)."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from src.clients.errors import OriginAuthError, OriginError
from src.clients.origin_client import OriginClient, OriginResponse, Page
from src.config.settings import Settings

logger = logging.getLogger("storefront.origin")

_V3_PREFIX = "/wp-json/wc/v3"
_MAX_PAGES = 50


@dataclass
class CouponValidation:
    """Outcome of a server-side coupon pre-check."""

    valid: bool
    error: str = ""
    error_code: str = ""
    coupon: dict[str, Any] | None = None


def _email_allowed(patterns: list[str], email: str) -> bool:
    """Match *email* against WooCommerce restrictions (``*`` wildcards)."""
    for pattern in patterns:
        pattern = str(pattern)
        if pattern.lower() == email.lower():
            return True
        if "*" in pattern:
            regex = ".*".join(re.escape(p) for p in pattern.split("*"))
            if re.fullmatch(regex, email, re.IGNORECASE):
                return True
    return False


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class WooCommerceClient:
    """Products, categories, coupons and status from ``/wc/v3``."""

    def __init__(
        self,
        origin: OriginClient | None = None,
        consumer_key: str = Settings.WC_CONSUMER_KEY,
        consumer_secret: str = Settings.WC_CONSUMER_SECRET,
    ) -> None:
        self.has_credentials = bool(consumer_key and consumer_secret)
        self.origin = origin or OriginClient(
            auth=(consumer_key, consumer_secret)
            if self.has_credentials
            else None
        )

    def _get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        timeout: int | None = None,
    ) -> OriginResponse:
        if not self.has_credentials:
            raise OriginAuthError("WooCommerce credentials not configured")
        return self.origin.get_json(
            f"{_V3_PREFIX}{path}", params=params, timeout=timeout
        )

    def _get_all(
        self, path: str, params: dict[str, Any] | None
    ) -> list[dict[str, Any]]:
        """Walk every page of a listing."""
        params = {"per_page": 100, **(params or {})}
        items: list[dict[str, Any]] = []
        page_no = 1
        while page_no <= _MAX_PAGES:
            resp = self._get(path, {**params, "page": page_no})
            page = Page.from_response(resp, page_no)
            items.extend(page.items)
            if not page.has_next_page:
                break
            page_no += 1
        return items

    def get_products(
        self, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        return self._get_all("/products", params)

    def get_product(self, product_id: int) -> dict[str, Any]:
        data = self._get(f"/products/{product_id}").data
        return data if isinstance(data, dict) else {}

    def get_product_variations(
        self, product_id: int
    ) -> list[dict[str, Any]]:
        return self._get_all(f"/products/{product_id}/variations", None)

    def get_product_categories(
        self, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        return self._get_all("/products/categories", params)

    # ── Coupons ──────────────────────────────────────────

    def get_coupon_by_code(self, code: str) -> dict[str, Any] | None:
        data = self._get("/coupons", {"code": code}).data
        if isinstance(data, list) and data and isinstance(data[0], dict):
            return data[0]
        return None

    def validate_coupon(
        self,
        code: str,
        cart_total: float = 0.0,
        email: str | None = None,
        now: datetime | None = None,
    ) -> CouponValidation:
        """Check a coupon's restrictions before applying it to a cart."""
        try:
            coupon = self.get_coupon_by_code(code)
        except OriginError as exc:
            logger.error("Error validating coupon %s: %s", code, exc)
            return CouponValidation(
                False,
                "Error validating coupon",
                "woocommerce_coupon_validation_error",
            )

        if coupon is None:
            return CouponValidation(
                False,
                "Coupon code not found",
                "woocommerce_coupon_not_exist",
            )

        expires = coupon.get("date_expires")
        if expires:
            try:
                expiry = datetime.fromisoformat(str(expires))
            except ValueError:
                expiry = None
            current = now or datetime.now(expiry.tzinfo if expiry else None)
            if expiry is not None and expiry.tzinfo is None:
                current = current.replace(tzinfo=None)
            if expiry is not None and current > expiry:
                return CouponValidation(
                    False,
                    "This coupon has expired",
                    "woocommerce_coupon_expired",
                )

        usage_limit = coupon.get("usage_limit")
        if usage_limit and int(coupon.get("usage_count") or 0) >= int(
            usage_limit
        ):
            return CouponValidation(
                False,
                "Coupon usage limit has been reached",
                "woocommerce_coupon_usage_limit_reached",
            )

        minimum = coupon.get("minimum_amount")
        if minimum and _to_float(minimum) and cart_total < _to_float(minimum):
            return CouponValidation(
                False,
                f"Minimum order amount of ${minimum} required",
                "woocommerce_coupon_minimum_amount",
            )

        maximum = coupon.get("maximum_amount")
        if maximum and _to_float(maximum) and cart_total > _to_float(maximum):
            return CouponValidation(
                False,
                f"Maximum order amount of ${maximum} exceeded",
                "woocommerce_coupon_maximum_amount",
            )

        restrictions = coupon.get("email_restrictions") or []
        if restrictions and email and not _email_allowed(restrictions, email):
            return CouponValidation(
                False,
                "This coupon is not valid for your email address",
                "woocommerce_coupon_not_valid_for_email",
            )

        return CouponValidation(True, coupon=coupon)

    # ── Status ───────────────────────────────────────────

    def check_status(self) -> OriginResponse:
        """Probe ``/system_status``; raises the matching origin error."""
        return self._get("/system_status", timeout=Settings.STATUS_TIMEOUT)
