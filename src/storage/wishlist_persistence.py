# src/storage/wishlist_persistence.py

"""Identity-scoped wishlist storage with a login-time merge."""

import logging

from src.models.cart import WishlistItem
from src.storage.cart_persistence import UserId, identity_suffix
from src.storage.key_value_store import KeyValueStore

logger = logging.getLogger("storefront.wishlist")

WISHLIST_PREFIX = "headless-wordpress-wishlist"


def merge_wishlists(
    existing: list[WishlistItem], incoming: list[WishlistItem]
) -> list[WishlistItem]:
    """Union by product id, keeping *existing* order and entries first."""
    merged = list(existing)
    seen = {item.id for item in merged}
    for item in incoming:
        if item.id not in seen:
            seen.add(item.id)
            merged.append(item)
    return merged


class WishlistPersistence:
    """Wishlist items keyed by product id, one list per identity."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    @staticmethod
    def storage_key(user_id: UserId = None) -> str:
        return f"{WISHLIST_PREFIX}-{identity_suffix(user_id)}"

    def get_items(self, user_id: UserId = None) -> list[WishlistItem]:
        raw = self.kv.get(self.storage_key(user_id))
        if raw is None:
            return []
        if not isinstance(raw, list) or not all(
            isinstance(i, dict) for i in raw
        ):
            logger.error(
                "Corrupt wishlist for %s, clearing it",
                identity_suffix(user_id),
            )
            self.clear(user_id)
            return []
        return [WishlistItem.from_dict(i) for i in raw]

    def save_items(
        self, items: list[WishlistItem], user_id: UserId = None
    ) -> None:
        self.kv.set(self.storage_key(user_id), [i.to_dict() for i in items])

    def clear(self, user_id: UserId = None) -> None:
        self.kv.remove(self.storage_key(user_id))

    def add(
        self, item: WishlistItem, user_id: UserId = None
    ) -> list[WishlistItem]:
        items = self.get_items(user_id)
        if any(i.id == item.id for i in items):
            return items
        items.append(item)
        self.save_items(items, user_id)
        return items

    def remove(
        self, product_id: int, user_id: UserId = None
    ) -> list[WishlistItem]:
        items = [i for i in self.get_items(user_id) if i.id != product_id]
        self.save_items(items, user_id)
        return items

    def contains(self, product_id: int, user_id: UserId = None) -> bool:
        return any(i.id == product_id for i in self.get_items(user_id))

    def count(self, user_id: UserId = None) -> int:
        return len(self.get_items(user_id))

    def migrate_on_auth_change(
        self, from_user: UserId, to_user: UserId
    ) -> list[WishlistItem]:
        """Merge *from_user*'s items into *to_user*'s stored set.

        The source set is cleared only when it was the guest set.
        """
        incoming = self.get_items(from_user)
        if not incoming:
            return self.get_items(to_user)

        merged = merge_wishlists(self.get_items(to_user), incoming)
        self.save_items(merged, to_user)
        if not from_user:
            self.clear(from_user)
        logger.info(
            "Migrated wishlist %s -> %s (%d item(s))",
            identity_suffix(from_user),
            identity_suffix(to_user),
            len(merged),
        )
        return merged
