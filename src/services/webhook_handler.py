# src/services/webhook_handler.py

"""Apply WordPress / WooCommerce webhook notifications to the cache.

WooCommerce signs the raw body with base64 HMAC-SHA256
(``X-WC-Webhook-Signature``) and sends the resource itself as the body,
with the event in ``X-WC-Webhook-Topic`` (e.g. ``product.updated``).
WordPress-side senders post a ``{action, type, id, data}`` envelope signed
with hex HMAC-SHA256 (``X-WP-Signature``).
"""

import base64
import hashlib
import hmac
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from src.config.settings import Settings
from src.models.cache_models import ResourceKind, WebhookPayload, as_int
from src.services.cache_service import CacheService

logger = logging.getLogger("storefront.webhooks")

_TYPE_KINDS = {
    "category": ResourceKind.CATEGORIES,
    "product_category": ResourceKind.CATEGORIES,
    "page": ResourceKind.PAGES,
    "post": ResourceKind.POSTS,
    "menu": ResourceKind.MENUS,
}


@dataclass
class WebhookResult:
    success: bool
    message: str
    status: int = 200


def _digest(secret: str, body: bytes) -> bytes:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()


def _lower_keys(headers: Mapping[str, str]) -> dict[str, str]:
    return {k.lower(): v for k, v in headers.items()}


class WebhookHandler:
    def __init__(
        self, cache: CacheService, secret: str = Settings.WEBHOOK_SECRET
    ) -> None:
        self.cache = cache
        self.secret = secret

    # ── Signatures ───────────────────────────────────────

    def verify_woocommerce(self, raw_body: bytes, signature: str) -> bool:
        """Base64 HMAC check; always passes when no secret is configured."""
        if not self.secret:
            logger.warning("No webhook secret configured, skipping verification")
            return True
        expected = base64.b64encode(_digest(self.secret, raw_body)).decode()
        return hmac.compare_digest(expected, signature or "")

    def verify_wordpress(self, raw_body: bytes, signature: str) -> bool:
        """Hex HMAC check; an unsigned delivery fails once a secret is set."""
        if not self.secret:
            return True
        expected = _digest(self.secret, raw_body).hex()
        return hmac.compare_digest(expected, signature or "")

    # ── Parsing ──────────────────────────────────────────

    @staticmethod
    def parse_payload(
        raw_body: bytes, headers: Mapping[str, str] | None = None
    ) -> WebhookPayload:
        """Build a payload from the body, falling back to WC headers."""
        lowered = _lower_keys(headers or {})
        try:
            body = json.loads(raw_body) if raw_body and raw_body.strip() else {}
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Webhook body is not valid JSON")
            body = {}
        if not isinstance(body, dict):
            body = {}

        if "action" in body and "type" in body:
            return WebhookPayload.from_dict(body)

        topic = lowered.get("x-wc-webhook-topic", "")
        header_type, _, header_action = topic.partition(".")
        resource_id = as_int(lowered.get("x-wc-webhook-resource-id"))
        # A WC body is the resource itself; its "type" is e.g. "simple"
        return WebhookPayload(
            action=header_action or "updated",
            type=header_type or "product",
            id=as_int(body.get("id")) or resource_id,
            data=body or None,
        )

    # ── Dispatch ─────────────────────────────────────────

    async def handle(self, payload: WebhookPayload) -> WebhookResult:
        action, kind, item_id = payload.action, payload.type, payload.id
        logger.info("Webhook: %s %s %s", action, kind, item_id)

        if kind == "test" or action == "test":
            pass
        elif kind == "product":
            await self._handle_product(payload)
        elif kind == "order":
            status = (payload.data or {}).get("status")
            if action == "updated" and status == "completed":
                await self.cache.refresh_partial(ResourceKind.PRODUCTS)
        elif kind == "menu":
            slug = (payload.data or {}).get("slug")
            if slug and action != "deleted":
                await self.cache.cache_specific_menu(str(slug))
            else:
                await self.cache.refresh_partial(ResourceKind.MENUS)
        elif kind in _TYPE_KINDS:
            await self.cache.refresh_partial(_TYPE_KINDS[kind])
        else:
            logger.info("Unhandled webhook type: %s", kind)

        return WebhookResult(
            True, f"Webhook processed: {action} {kind} {item_id}"
        )

    async def _handle_product(self, payload: WebhookPayload) -> None:
        data: dict[str, Any] = payload.data or {}
        if payload.action in ("created", "updated"):
            if data.get("id"):
                await self.cache.upsert_product_from_webhook(data)
            else:
                await self.cache.refresh_partial(ResourceKind.PRODUCTS)
        elif payload.action == "deleted":
            if payload.id:
                await self.cache.remove_product_from_cache(payload.id)
            else:
                await self.cache.refresh_partial(ResourceKind.PRODUCTS)

    async def receive(
        self,
        raw_body: bytes,
        headers: Mapping[str, str],
        source: str = "woocommerce",
    ) -> WebhookResult:
        """Verify, parse and apply one delivery as an HTTP endpoint would."""
        lowered = _lower_keys(headers)
        if source == "wordpress":
            valid = self.verify_wordpress(raw_body, lowered.get("x-wp-signature", ""))
        else:
            valid = self.verify_woocommerce(
                raw_body, lowered.get("x-wc-webhook-signature", "")
            )
        if not valid:
            logger.warning("Rejected %s webhook: invalid signature", source)
            return WebhookResult(False, "Invalid signature", 401)

        payload = self.parse_payload(raw_body, lowered)
        try:
            return await self.handle(payload)
        except Exception as exc:
            logger.exception("Webhook processing failed")
            return WebhookResult(False, f"Webhook processing failed: {exc}", 500)
