# src/services/wishlist.py

"""In-memory wishlist for the current identity, persisted on every change."""

import logging
from typing import Any

from src.models.cache_models import CachedProduct, as_dict, as_int
from src.models.cart import WishlistItem
from src.storage.cart_persistence import UserId, identity_suffix
from src.storage.disk_cache import Clock, iso, utc_now
from src.storage.wishlist_persistence import WishlistPersistence

logger = logging.getLogger("storefront.wishlist")


class WishlistManager:
    def __init__(
        self,
        persistence: WishlistPersistence,
        user_id: UserId = None,
        clock: Clock = utc_now,
    ) -> None:
        self.persistence = persistence
        self.user_id = user_id
        self.clock = clock
        self.items: list[WishlistItem] = []
        self.is_hydrated = False

    def load(self) -> list[WishlistItem]:
        self.items = self.persistence.get_items(self.user_id)
        self.is_hydrated = True
        return self.items

    def _save(self) -> None:
        self.persistence.save_items(self.items, self.user_id)

    def set_identity(self, user_id: UserId) -> list[WishlistItem]:
        """Switch identity; logging in from guest merges the guest set."""
        if identity_suffix(user_id) == identity_suffix(self.user_id):
            return self.items
        previous = self.user_id
        if self.is_hydrated:
            self._save()
        self.user_id = user_id
        if not previous and user_id:
            self.items = self.persistence.migrate_on_auth_change(previous, user_id)
        else:
            self.items = self.persistence.get_items(user_id)
        self.is_hydrated = True
        logger.info(
            "Wishlist now %s with %d item(s)",
            identity_suffix(user_id),
            len(self.items),
        )
        return self.items

    def add(self, product: dict[str, Any] | CachedProduct) -> bool:
        """Add *product*; False if it was already wishlisted."""
        data = product.to_dict() if isinstance(product, CachedProduct) else as_dict(product)
        product_id = as_int(data.get("id"))
        if self.contains(product_id):
            return False
        self.items.append(
            WishlistItem(id=product_id, product=data, added_at=iso(self.clock()))
        )
        self._save()
        return True

    def remove(self, product_id: int) -> bool:
        before = len(self.items)
        self.items = [i for i in self.items if i.id != product_id]
        self._save()
        return len(self.items) != before

    def clear(self) -> None:
        self.items = []
        self._save()

    def clear_guest(self) -> None:
        """Drop stored guest items; in-memory items are cleared too."""
        self.persistence.clear(None)
        self.items = []

    def contains(self, product_id: int) -> bool:
        return any(i.id == product_id for i in self.items)

    def count(self) -> int:
        return len(self.items)
