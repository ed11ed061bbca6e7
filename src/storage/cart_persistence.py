# src/storage/cart_persistence.py

"""Identity-scoped cart token and local cart backup."""

import logging

from src.config.logging_config import mask_token
from src.models.cart import CartItem
from src.storage.key_value_store import KeyValueStore

logger = logging.getLogger("storefront.cart")

TOKEN_PREFIX = "cart-token"
DATA_PREFIX = "woocommerce-cart"

UserId = int | str | None


def identity_suffix(user_id: UserId) -> str:
    """``guest`` for anonymous sessions, ``user-<id>`` otherwise."""
    return f"user-{user_id}" if user_id else "guest"


class CartPersistence:
    """Stores a cart token together with the identity it was issued for.

    A token read back for a different identity is treated as absent, so a
    token minted for one user is never replayed for another.
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    @staticmethod
    def token_key(user_id: UserId) -> str:
        return f"{TOKEN_PREFIX}-{identity_suffix(user_id)}"

    @staticmethod
    def data_key(user_id: UserId) -> str:
        return f"{DATA_PREFIX}-{identity_suffix(user_id)}"

    # ── Token ────────────────────────────────────────────

    def get_cart_token(self, user_id: UserId = None) -> str | None:
        record = self.kv.get(self.token_key(user_id))
        if not isinstance(record, dict):
            return None
        if record.get("identity") != identity_suffix(user_id):
            logger.warning(
                "Discarding cart token stored for %s under %s",
                record.get("identity"),
                identity_suffix(user_id),
            )
            return None
        token = record.get("token")
        return str(token) if token else None

    def set_cart_token(self, token: str | None, user_id: UserId = None) -> None:
        key = self.token_key(user_id)
        if token:
            self.kv.set(
                key, {"token": token, "identity": identity_suffix(user_id)}
            )
        else:
            self.kv.remove(key)
        logger.debug(
            "Cart token %s for %s: %s",
            "set" if token else "cleared",
            identity_suffix(user_id),
            mask_token(token),
        )

    def is_token_for(self, token: str | None, user_id: UserId) -> bool:
        """True if *token* is the one stored for *user_id*."""
        return bool(token) and self.get_cart_token(user_id) == token

    # ── Local backup ─────────────────────────────────────

    def get_local_cart(self, user_id: UserId = None) -> list[CartItem]:
        raw = self.kv.get(self.data_key(user_id))
        if not isinstance(raw, list):
            return []
        return [CartItem.from_dict(i) for i in raw if isinstance(i, dict)]

    def save_local_cart(
        self, items: list[CartItem], user_id: UserId = None
    ) -> None:
        self.kv.set(self.data_key(user_id), [i.to_dict() for i in items])

    def clear_identity(self, user_id: UserId = None) -> None:
        self.kv.remove(self.token_key(user_id))
        self.kv.remove(self.data_key(user_id))


def _is_guest_key(key: str) -> bool:
    return "-guest" in key or key.startswith("guest-")


def clear_all_guest_data(
    kv: KeyValueStore, prefixes: tuple[str, ...] = ()
) -> list[str]:
    """Remove every guest-scoped key; returns the removed key names."""
    removed: list[str] = []
    for key in kv.keys():
        scoped = _is_guest_key(key) or (
            any(key.startswith(p) for p in prefixes) and "-user-" not in key
        )
        if scoped:
            kv.remove(key)
            removed.append(key)
    logger.info("Cleared %d guest key(s)", len(removed))
    return removed
