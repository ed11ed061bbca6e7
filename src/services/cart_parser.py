# src/services/cart_parser.py

"""Store API cart payload -> local cart state.

Store API money fields are strings of integer minor units ("1299" for
12.99).  This module is the one place they are divided by 100.
"""

from typing import Any

from src.models.cache_models import as_dict, as_int, as_list, as_str
from src.models.cart import AppliedCoupon, CartItem, CartTotals

# Highest-priority first; different WooCommerce versions fill different ones
DISCOUNT_FIELDS = ("total_discount", "total_coupon_discount", "discount_total")
COUPON_DISCOUNT_FIELDS = ("total_discount", "discount", "currency_discount")

COUPON_ERROR_MESSAGES = {
    "woocommerce_coupon_not_exist": "Coupon code not found",
    "woocommerce_coupon_expired": "This coupon has expired",
    "woocommerce_coupon_usage_limit_reached": "Coupon usage limit has been reached",
    "woocommerce_coupon_not_valid_for_email": (
        "This coupon is not valid for your email address"
    ),
    "woocommerce_coupon_already_applied": "Coupon is already applied",
}

# The server message is more specific than ours for amount limits
_AMOUNT_DEFAULTS = {
    "woocommerce_coupon_minimum_amount": "Minimum order amount not met",
    "woocommerce_coupon_maximum_amount": "Maximum order amount exceeded",
}


def _present(value: Any) -> bool:
    return value not in (None, "", "0", 0)


def from_minor(value: Any) -> float:
    """``"1299"`` -> ``12.99``; anything unparsable is 0."""
    if value in (None, ""):
        return 0.0
    try:
        return float(value) / 100
    except (TypeError, ValueError):
        return 0.0


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def parse_item(raw: Any) -> CartItem:
    data = as_dict(raw)
    prices = as_dict(data.get("prices"))
    images = [i for i in as_list(data.get("images")) if isinstance(i, dict)]
    return CartItem(
        key=as_str(data.get("key")),
        id=as_int(data.get("id")),
        quantity=as_int(data.get("quantity")),
        name=as_str(data.get("name")),
        price=from_minor(prices.get("price")),
        image=as_str(images[0].get("src")) if images else "",
        slug=as_str(data.get("slug")),
    )


def parse_items(cart: dict[str, Any]) -> list[CartItem]:
    return [parse_item(i) for i in as_list(cart.get("items")) if isinstance(i, dict)]


def _coupon_discount_minor(totals: dict[str, Any]) -> Any:
    for name in COUPON_DISCOUNT_FIELDS:
        if _present(totals.get(name)):
            return totals[name]
    return None


def parse_coupon(raw: Any) -> AppliedCoupon:
    data = as_dict(raw)
    totals = as_dict(data.get("totals"))
    minor = _coupon_discount_minor(totals)
    if minor is not None:
        discount = from_minor(minor)
    else:
        # ``amount`` is already in display units
        discount = _to_float(data.get("amount"))
    amount = data.get("amount")
    if amount is None:
        amount = str(discount) if discount > 0 else "0"
    return AppliedCoupon(
        code=as_str(data.get("code")),
        discount_type=as_str(data.get("discount_type")) or "fixed_cart",
        amount=as_str(amount),
        discount_total=discount,
        discount_tax=from_minor(totals.get("discount_tax")),
    )


def parse_coupons(cart: dict[str, Any]) -> list[AppliedCoupon]:
    return [
        parse_coupon(c) for c in as_list(cart.get("coupons")) if isinstance(c, dict)
    ]


def parse_discount_total(cart: dict[str, Any]) -> float:
    """Cart-level discount from the most authoritative field present.

    Falls back to the sum of per-coupon discounts when no cart-level field
    is populated.
    """
    totals = as_dict(cart.get("totals"))
    for name in DISCOUNT_FIELDS:
        if _present(totals.get(name)):
            return from_minor(totals[name])
    return sum(
        from_minor(_coupon_discount_minor(as_dict(as_dict(c).get("totals"))))
        for c in as_list(cart.get("coupons"))
        if isinstance(c, dict)
    )


def parse_totals(cart: dict[str, Any]) -> CartTotals:
    totals = as_dict(cart.get("totals"))
    return CartTotals(
        subtotal=from_minor(totals.get("total_items") or totals.get("subtotal")),
        discount_total=parse_discount_total(cart),
        tax_total=from_minor(totals.get("total_tax")),
        shipping_total=from_minor(totals.get("total_shipping")),
        total=from_minor(totals.get("total_price") or totals.get("total")),
    )


def coupon_error_message(
    code: str, message: str = "", default: str = "Failed to apply coupon"
) -> str:
    """User-facing text for a WooCommerce coupon error code."""
    if code in COUPON_ERROR_MESSAGES:
        return COUPON_ERROR_MESSAGES[code]
    if code in _AMOUNT_DEFAULTS:
        return message or _AMOUNT_DEFAULTS[code]
    return message or default
