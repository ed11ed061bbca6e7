# src/models/cart.py

"""Client-side cart and wishlist state.

Monetary values here are display units (e.g. dollars), never the
integer minor units used on the Store API wire.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from src.models.cache_models import as_dict, as_int, as_str


@dataclass
class CartItem:
    """One cart line, unique by ``key``."""

    key: str
    id: int
    quantity: int
    name: str = ""
    price: float = 0.0
    image: str = ""
    slug: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Any) -> "CartItem":
        data = as_dict(raw)
        try:
            price = float(data.get("price") or 0)
        except (TypeError, ValueError):
            price = 0.0
        return cls(
            key=as_str(data.get("key")),
            id=as_int(data.get("id")),
            quantity=as_int(data.get("quantity")),
            name=as_str(data.get("name")),
            price=price,
            image=as_str(data.get("image")),
            slug=as_str(data.get("slug")),
        )


@dataclass
class CartTotals:
    subtotal: float = 0.0
    discount_total: float = 0.0
    tax_total: float = 0.0
    shipping_total: float = 0.0
    total: float = 0.0

    @classmethod
    def from_items(cls, items: list[CartItem]) -> "CartTotals":
        """Local totals when the server has not supplied any."""
        subtotal = sum(i.price * i.quantity for i in items)
        return cls(subtotal=subtotal, total=subtotal)


@dataclass
class AppliedCoupon:
    code: str
    discount_type: str = "fixed_cart"
    amount: str = "0"
    discount_total: float = 0.0
    discount_tax: float = 0.0


@dataclass
class LoadingStates:
    """Per-operation busy flags for the UI."""

    adding_to_cart: bool = False
    updating_item: str | None = None
    removing_item: str | None = None
    clearing_cart: bool = False
    applying_coupon: bool = False
    removing_coupon: str | None = None


@dataclass
class CartState:
    items: list[CartItem] = field(
        default_factory=lambda: list[CartItem]()
    )
    totals: CartTotals = field(default_factory=CartTotals)
    item_count: int = 0
    cart_token: str | None = None
    applied_coupons: list[AppliedCoupon] = field(
        default_factory=lambda: list[AppliedCoupon]()
    )
    is_loading: bool = False
    is_hydrated: bool = False
    error: str | None = None
    needs_sync: bool = False
    retry_count: int = 0
    loading_states: LoadingStates = field(default_factory=LoadingStates)

    @property
    def total(self) -> float:
        return self.totals.total

    def find(self, key: str) -> CartItem | None:
        """Return the line with *key*, if present."""
        for item in self.items:
            if item.key == key:
                return item
        return None


@dataclass
class WishlistItem:
    """A saved product, unique by product ``id``."""

    id: int
    product: dict[str, Any]
    added_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Any) -> "WishlistItem":
        data = as_dict(raw)
        return cls(
            id=as_int(data.get("id")),
            product=as_dict(data.get("product")),
            added_at=as_str(data.get("added_at")),
        )
