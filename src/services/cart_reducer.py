# src/services/cart_reducer.py

"""Pure state transitions for the cart.

``reduce(state, action)`` never mutates *state*; it returns a new
:class:`CartState`.  Local mutations (add/update/remove) recompute totals
from ``price * quantity`` since the server has not priced them yet.
"""

from dataclasses import dataclass, replace

from src.models.cart import (
    AppliedCoupon,
    CartItem,
    CartState,
    CartTotals,
    LoadingStates,
)


# ── Actions ──────────────────────────────────────────────


@dataclass(frozen=True)
class SetLoading:
    value: bool


@dataclass(frozen=True)
class SetHydrated:
    value: bool


@dataclass(frozen=True)
class SetError:
    message: str | None


@dataclass(frozen=True)
class SetCart:
    """Replace the whole cart, typically from a server response."""

    items: list[CartItem]
    cart_token: str | None = None
    totals: CartTotals | None = None
    coupons: list[AppliedCoupon] | None = None


@dataclass(frozen=True)
class AddItem:
    item: CartItem


@dataclass(frozen=True)
class UpdateItem:
    key: str
    quantity: int


@dataclass(frozen=True)
class RemoveItem:
    key: str


@dataclass(frozen=True)
class ClearCart:
    pass


@dataclass(frozen=True)
class SetCartToken:
    token: str | None


@dataclass(frozen=True)
class SetNeedsSync:
    value: bool


@dataclass(frozen=True)
class AddCoupon:
    coupon: AppliedCoupon


@dataclass(frozen=True)
class RemoveCoupon:
    code: str


@dataclass(frozen=True)
class UpdateTotals:
    totals: CartTotals


@dataclass(frozen=True)
class SetLoadingFlag:
    """Set one field of :class:`LoadingStates`, e.g. ``updating_item``."""

    name: str
    value: bool | str | None


@dataclass(frozen=True)
class IncrementRetry:
    pass


@dataclass(frozen=True)
class ResetRetry:
    pass


CartAction = (
    SetLoading
    | SetHydrated
    | SetError
    | SetCart
    | AddItem
    | UpdateItem
    | RemoveItem
    | ClearCart
    | SetCartToken
    | SetNeedsSync
    | AddCoupon
    | RemoveCoupon
    | UpdateTotals
    | SetLoadingFlag
    | IncrementRetry
    | ResetRetry
)


def item_count(items: list[CartItem]) -> int:
    return sum(i.quantity for i in items)


def _with_items(state: CartState, items: list[CartItem]) -> CartState:
    """New item list with locally computed totals.

    Server-side discount/tax/shipping are kept; only subtotal and total
    follow the local lines.
    """
    local = CartTotals.from_items(items)
    totals = replace(state.totals, subtotal=local.subtotal, total=local.total)
    return replace(
        state, items=items, totals=totals, item_count=item_count(items)
    )


def reduce(state: CartState, action: CartAction) -> CartState:
    if isinstance(action, SetLoading):
        return replace(state, is_loading=action.value)

    if isinstance(action, SetHydrated):
        return replace(state, is_hydrated=action.value)

    if isinstance(action, SetError):
        return replace(state, error=action.message, is_loading=False)

    if isinstance(action, SetCart):
        items = list(action.items)
        return replace(
            state,
            items=items,
            totals=action.totals or CartTotals.from_items(items),
            item_count=item_count(items),
            cart_token=action.cart_token or state.cart_token,
            applied_coupons=list(action.coupons or []),
            is_loading=False,
            is_hydrated=True,
            error=None,
            needs_sync=False,
        )

    if isinstance(action, AddItem):
        new = action.item
        if any(i.id == new.id for i in state.items):
            items = [
                replace(i, quantity=i.quantity + new.quantity)
                if i.id == new.id
                else i
                for i in state.items
            ]
        else:
            items = [*state.items, new]
        return _with_items(state, items)

    if isinstance(action, UpdateItem):
        items = [
            replace(i, quantity=action.quantity) if i.key == action.key else i
            for i in state.items
        ]
        return _with_items(state, [i for i in items if i.quantity > 0])

    if isinstance(action, RemoveItem):
        return _with_items(
            state, [i for i in state.items if i.key != action.key]
        )

    if isinstance(action, ClearCart):
        return replace(
            state,
            items=[],
            totals=CartTotals(),
            item_count=0,
            applied_coupons=[],
            needs_sync=True,
        )

    if isinstance(action, SetCartToken):
        return replace(state, cart_token=action.token)

    if isinstance(action, SetNeedsSync):
        return replace(state, needs_sync=action.value)

    if isinstance(action, AddCoupon):
        return replace(
            state, applied_coupons=[*state.applied_coupons, action.coupon]
        )

    if isinstance(action, RemoveCoupon):
        return replace(
            state,
            applied_coupons=[
                c for c in state.applied_coupons if c.code != action.code
            ],
        )

    if isinstance(action, UpdateTotals):
        return replace(state, totals=action.totals)

    if isinstance(action, SetLoadingFlag):
        flags: LoadingStates = replace(
            state.loading_states, **{action.name: action.value}
        )
        return replace(state, loading_states=flags)

    if isinstance(action, IncrementRetry):
        return replace(state, retry_count=state.retry_count + 1)

    if isinstance(action, ResetRetry):
        return replace(state, retry_count=0)

    return state
