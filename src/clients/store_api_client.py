# src/clients/store_api_client.py

"""WooCommerce Store API (``/wp-json/wc/store/v1``) cart client.

Every call is addressed by a cart token sent as both ``Cart-Token`` and
``X-WC-Store-API-Nonce``.  When the origin hands back a new token in a
response header it is copied into the returned payload as ``cart_token``.
"""

import logging
from dataclasses import dataclass
from typing import Any

from src.clients.errors import (
    OriginAuthError,
    OriginError,
    OriginNotFoundError,
    OriginUnavailableError,
    StoreApiError,
    StoreUnavailableError,
)
from src.clients.origin_client import OriginClient, OriginResponse
from src.config.logging_config import mask_token
from src.config.settings import Settings

logger = logging.getLogger("storefront.cart")

_CART_PATH = "/wp-json/wc/store/v1/cart"
_TOKEN_HEADERS = ("cart-token", "x-wc-store-api-nonce")
_NONCE_HEADERS = ("x-wc-store-api-nonce", "cart-token", "nonce")


@dataclass
class CouponRemoval:
    """Result of :meth:`StoreApiClient.remove_coupon`.

    ``was_applied`` is False when the server cart never had the coupon;
    ``cart`` is then the server's current cart, returned untouched.
    """

    cart: dict[str, Any] | None
    was_applied: bool


def _token_headers(token: str | None) -> dict[str, str]:
    if not token:
        return {}
    return {"Cart-Token": token, "X-WC-Store-API-Nonce": token}


def _with_token(
    resp: OriginResponse, sent_token: str | None
) -> dict[str, Any]:
    """Return the cart payload with ``cart_token`` filled in."""
    data: dict[str, Any] = resp.data if isinstance(resp.data, dict) else {}
    fresh = resp.header(*_TOKEN_HEADERS)
    if fresh and fresh != sent_token:
        logger.debug("New cart token from response: %s", mask_token(fresh))
        data["cart_token"] = fresh
    elif not data.get("cart_token") and (fresh or sent_token):
        data["cart_token"] = fresh or sent_token
    return data


class StoreApiClient:
    """Cart mutations against the WooCommerce Store API."""

    def __init__(
        self,
        origin: OriginClient | None = None,
        cart_timeout: int = Settings.CART_TIMEOUT,
    ) -> None:
        # Cart writes are not idempotent, so no transport-level retries
        self.origin = origin or OriginClient(max_retries=1)
        self.cart_timeout = cart_timeout

    @property
    def is_configured(self) -> bool:
        return self.origin.is_configured

    def _post(
        self, action: str, token: str | None, payload: dict[str, Any]
    ) -> dict[str, Any]:
        try:
            resp = self.origin.post_json(
                f"{_CART_PATH}/{action}",
                payload,
                headers=_token_headers(token),
                timeout=self.cart_timeout,
            )
        except OriginError as exc:
            raise self._translate(exc) from exc
        return _with_token(resp, token)

    @staticmethod
    def _translate(exc: OriginError) -> OriginError:
        """Turn transport errors into Store-specific ones."""
        if isinstance(exc, OriginNotFoundError) and exc.code == "rest_no_route":
            return StoreUnavailableError(
                "WooCommerce is not available: Store API route missing "
                "(plugin appears to be deactivated)",
                exc.status_code,
                exc.code,
                exc.data,
            )
        if isinstance(exc, (OriginUnavailableError, OriginAuthError)):
            return exc
        if exc.code:
            return StoreApiError(
                exc.message, exc.status_code, exc.code, exc.data
            )
        return exc

    # ── Token ────────────────────────────────────────────

    def fetch_nonce(self) -> str | None:
        """Obtain a fresh token, or ``None`` when the origin offers none."""
        if not self.is_configured:
            return None
        try:
            resp = self.origin.get_json(
                _CART_PATH, timeout=Settings.STATUS_TIMEOUT
            )
        except OriginError as exc:
            logger.warning("Failed to get Store API nonce: %s", exc)
            return None
        nonce = resp.header(*_NONCE_HEADERS)
        if nonce:
            return nonce
        if isinstance(resp.data, dict) and resp.data.get("cart_token"):
            return str(resp.data["cart_token"])
        logger.warning(
            "No nonce in Store API response (headers: %s)",
            sorted(resp.headers),
        )
        return None

    # ── Cart ─────────────────────────────────────────────

    def get_cart(self, token: str | None = None) -> dict[str, Any] | None:
        if not self.is_configured:
            return None
        effective = token or self.fetch_nonce()
        logger.debug("Getting cart with token %s", mask_token(effective))
        try:
            resp = self.origin.get_json(
                _CART_PATH, headers=_token_headers(effective)
            )
        except OriginError as exc:
            raise self._translate(exc) from exc
        return _with_token(resp, effective)

    def add_item(
        self,
        product_id: int,
        quantity: int = 1,
        token: str | None = None,
    ) -> dict[str, Any] | None:
        if not self.is_configured:
            return None
        effective = token or self.fetch_nonce()
        payload = {"id": str(product_id), "quantity": int(quantity)}
        try:
            return self._post("add-item", effective, payload)
        except OriginAuthError:
            if token:
                raise
            # One retry with a freshly issued nonce
            fresh = self.fetch_nonce()
            if not fresh:
                raise
            logger.info("Retrying add-item with a fresh nonce")
            return self._post("add-item", fresh, payload)

    def update_item(
        self, token: str, key: str, quantity: int
    ) -> dict[str, Any] | None:
        if not self.is_configured:
            return None
        return self._post(
            "update-item", token, {"key": key, "quantity": int(quantity)}
        )

    def remove_item(self, token: str, key: str) -> dict[str, Any] | None:
        if not self.is_configured:
            return None
        return self._post("remove-item", token, {"key": key})

    def clear_cart(self, token: str) -> bool:
        """Remove every line one by one; the Store API has no bulk clear."""
        if not self.is_configured:
            return True
        cart = self.get_cart(token)
        for item in (cart or {}).get("items") or []:
            if isinstance(item, dict) and item.get("key"):
                self.remove_item(token, str(item["key"]))
        return True

    # ── Coupons ──────────────────────────────────────────

    def apply_coupon(
        self, token: str, code: str
    ) -> dict[str, Any] | None:
        if not self.is_configured:
            return None
        logger.info("Applying coupon %s (token %s)", code, mask_token(token))
        return self._post("apply-coupon", token, {"code": code})

    def remove_coupon(self, token: str, code: str) -> CouponRemoval:
        """Remove *code*, first checking the server actually has it."""
        if not self.is_configured:
            return CouponRemoval(None, False)
        current = self.get_cart(token)
        coupons = (current or {}).get("coupons") or []
        if not any(
            isinstance(c, dict) and c.get("code") == code for c in coupons
        ):
            logger.warning(
                "Coupon %s not on server cart (server has %s); resyncing",
                code,
                [c.get("code") for c in coupons if isinstance(c, dict)],
            )
            return CouponRemoval(current, False)
        cart = self._post("remove-coupon", token, {"code": code})
        return CouponRemoval(cart, True)
