# src/services/cart_sync.py

"""Client-side cart kept in step with the WooCommerce Store API.

State lives in an immutable :class:`CartState` updated only through
:func:`cart_reducer.reduce`.  Every remote mutation is routed through a
:class:`CartOperationQueue` so at most one runs against the cart token at
a time.  Store API calls are blocking and run via ``asyncio.to_thread``.

Lifecycle: ``initialize()`` loads the remote cart (retrying with
exponential backoff, then falling back to the local backup) and always
ends hydrated.  ``set_identity()`` swaps guest/user carts without ever
reusing a token minted for another identity, and drops mutations still
queued for the previous identity.

Lines added while the store is unreachable keep their ``local_`` key and
set ``needs_sync``.  The next server load re-adds them to the remote cart
before fetching it, so a reload never wipes them.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import fields
from typing import Any

from src.clients.errors import CartError, OriginError, is_store_unavailable
from src.clients.store_api_client import StoreApiClient
from src.clients.woocommerce_client import CouponValidation, WooCommerceClient
from src.config.logging_config import mask_token
from src.config.settings import Settings
from src.models.cache_models import CachedProduct, as_dict, as_int, as_list, as_str
from src.models.cart import CartItem, CartState, CartTotals, LoadingStates
from src.services import cart_reducer as actions
from src.services.cart_parser import (
    coupon_error_message,
    parse_coupons,
    parse_items,
    parse_totals,
)
from src.services.cart_queue import CartOperationQueue
from src.storage.cart_persistence import (
    CartPersistence,
    UserId,
    clear_all_guest_data,
    identity_suffix,
)

logger = logging.getLogger("storefront.cart")

CONNECT_ERROR = (
    "Unable to connect to the store. Please check your connection and try again."
)
ADD_ERROR = "Failed to add item to cart"
UPDATE_ERROR = "Failed to update cart item. Changes may not be saved."
REMOVE_ERROR = "Failed to remove item from cart. Item may still be in cart."
CLEAR_ERROR = "Failed to clear cart"
LOCAL_ONLY_NOTICE = "Added to local cart (WooCommerce unavailable)"
NO_TOKEN_ERROR = "No cart token available"
ALREADY_APPLIED_ERROR = "Coupon is already applied"
COUPON_RESYNCED = "Cart synchronized - coupon was already removed"
IDENTITY_CHANGED_ERROR = "Cart owner changed before the operation ran"

LOCAL_KEY_PREFIX = "local_"

# Remove-coupon codes meaning the server cart no longer has the coupon
_COUPON_GONE_CODES = (
    "woocommerce_rest_cart_coupon_invalid_code",
    "woocommerce_coupon_not_applied",
)

Listener = Callable[[CartState], None]
Product = dict[str, Any] | CachedProduct


def local_cart_item(product: Product, quantity: int) -> CartItem:
    """A cart line built from product data, keyed ``local_<id>_<ms>``."""
    data = product.to_dict() if isinstance(product, CachedProduct) else as_dict(product)
    try:
        price = float(data.get("price") or 0)
    except (TypeError, ValueError):
        price = 0.0
    images = [i for i in as_list(data.get("images")) if isinstance(i, dict)]
    product_id = as_int(data.get("id"))
    return CartItem(
        key=f"{LOCAL_KEY_PREFIX}{product_id}_{int(time.time() * 1000)}",
        id=product_id,
        quantity=quantity,
        name=as_str(data.get("name")),
        price=price,
        image=as_str(images[0].get("src")) if images else "",
        slug=as_str(data.get("slug")),
    )


def is_local_line(item: CartItem) -> bool:
    """True for a line the server has not keyed yet."""
    return item.key.startswith(LOCAL_KEY_PREFIX)


class CartManager:
    """Owns the cart state for one session (one identity at a time)."""

    def __init__(
        self,
        store_api: StoreApiClient,
        persistence: CartPersistence,
        queue: CartOperationQueue | None = None,
        woocommerce: WooCommerceClient | None = None,
        user_id: UserId = None,
        email: str | None = None,
        store_available: bool = True,
        max_retries: int = Settings.CART_MAX_RETRIES,
        retry_base_delay: float = Settings.CART_RETRY_BASE_DELAY,
        settle_delay: float = Settings.IDENTITY_SETTLE_DELAY,
    ) -> None:
        self.store_api = store_api
        self.persistence = persistence
        self.queue = queue or CartOperationQueue()
        self.woocommerce = woocommerce
        self.user_id = user_id
        self.email = email
        self.store_available = store_available
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.settle_delay = settle_delay
        self._state = CartState()
        self._listeners: list[Listener] = []

    # ── State plumbing ───────────────────────────────────

    @property
    def state(self) -> CartState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* after every state change; returns an unsubscriber."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _dispatch(self, action: actions.CartAction) -> None:
        self._state = actions.reduce(self._state, action)
        for listener in list(self._listeners):
            listener(self._state)

    def _flag(self, name: str, value: bool | str | None) -> None:
        self._dispatch(actions.SetLoadingFlag(name, value))

    def _reset_flags(self) -> None:
        for flag in fields(LoadingStates):
            if getattr(self._state.loading_states, flag.name) != flag.default:
                self._flag(flag.name, flag.default)

    async def _enqueue(self, operation: Callable[[], Any]) -> CartState:
        """Queue *operation* for the identity that is current right now."""
        owner = identity_suffix(self.user_id)

        async def fenced() -> CartState:
            if identity_suffix(self.user_id) != owner:
                logger.warning(
                    "Dropping cart operation queued for %s (now %s)",
                    owner,
                    identity_suffix(self.user_id),
                )
                raise CartError(IDENTITY_CHANGED_ERROR)
            return await operation()

        return await self.queue.enqueue(fenced)

    def _token(self) -> str | None:
        return self.persistence.get_cart_token(self.user_id)

    def _set_token(self, token: str | None) -> None:
        self.persistence.set_cart_token(token, self.user_id)
        self._dispatch(actions.SetCartToken(token))

    def _adopt_token(self, response: dict[str, Any], sent: str | None) -> None:
        fresh = response.get("cart_token")
        if fresh and fresh != sent:
            self._set_token(str(fresh))

    async def set_store_available(self, available: bool) -> CartState:
        """Follow the store status check; unavailable means local-only.

        Coming back online reloads the cart, which first pushes any lines
        added while the store was away.
        """
        came_back = available and not self.store_available
        if available != self.store_available:
            logger.info("Store availability changed: %s", available)
        self.store_available = available
        if came_back and self._sync_pending():
            return await self._enqueue(self._reload)
        return self._state

    # ── Local-only lines ─────────────────────────────────

    def _sync_pending(self) -> bool:
        return self._state.needs_sync and any(
            is_local_line(i) for i in self._state.items
        )

    async def _readd(self, items: list[CartItem], token: str) -> None:
        """Add each of *items* to the remote cart; failures are logged."""
        try:
            for item in items:
                try:
                    await asyncio.to_thread(
                        self.store_api.add_item, item.id, item.quantity, token
                    )
                except OriginError as exc:
                    logger.warning("Failed to sync item %d: %s", item.id, exc)
        finally:
            self._dispatch(actions.SetNeedsSync(False))

    async def _push_local_lines(self, token: str | None) -> str | None:
        """Re-add lines only known locally; returns the token used.

        Without a token a fresh cart is requested first to mint one.
        """
        if token is None:
            minted = await asyncio.to_thread(self.store_api.get_cart, None)
            token = as_str((minted or {}).get("cart_token")) or None
            if token is None:
                logger.warning("No cart token available to sync local lines")
                return None
            self._set_token(token)
        pending = [i for i in self._state.items if is_local_line(i)]
        logger.info("Syncing %d local-only cart line(s)", len(pending))
        await self._readd(pending, token)
        return token

    def _apply_server_cart(
        self,
        cart: dict[str, Any],
        token: str | None,
        keep_coupons: bool = False,
    ) -> list[CartItem]:
        items = parse_items(cart)
        if keep_coupons and "coupons" not in cart:
            coupons = list(self._state.applied_coupons)
        else:
            coupons = parse_coupons(cart)
        self._dispatch(
            actions.SetCart(
                items=items,
                cart_token=cart.get("cart_token") or token,
                totals=parse_totals(cart),
                coupons=coupons,
            )
        )
        return items

    def _apply_local_cart(self) -> bool:
        local = self.persistence.get_local_cart(self.user_id)
        if not local:
            return False
        self._dispatch(
            actions.SetCart(items=local, totals=CartTotals.from_items(local))
        )
        if any(is_local_line(i) for i in local):
            self._dispatch(actions.SetNeedsSync(True))
        return True

    # ── Loading ──────────────────────────────────────────

    async def _load_from_server(self) -> bool:
        """Replace local state with the remote cart; False on failure."""
        self._dispatch(actions.SetLoading(True))
        try:
            if not self.store_available:
                self._apply_local_cart()
                return True
            if not self.store_api.is_configured:
                return True

            token = self._token()
            try:
                if self._sync_pending():
                    token = await self._push_local_lines(token)
                    if token is None:
                        return False
                cart = await asyncio.to_thread(self.store_api.get_cart, token)
            except OriginError as exc:
                logger.error(
                    "Error loading cart from server (status %s): %s",
                    exc.status_code,
                    exc,
                )
                return False
            if not cart or cart.get("items") is None:
                logger.warning("Cart response had no items list")
                return False

            items = self._apply_server_cart(cart, token)
            self._adopt_token(cart, token)
            self.persistence.save_local_cart(items, self.user_id)
            logger.debug(
                "Loaded cart: %d line(s), token %s",
                len(items),
                mask_token(self._state.cart_token),
            )
            return True
        finally:
            self._dispatch(actions.SetLoading(False))

    async def initialize(self) -> CartState:
        """Load the remote cart, retrying with 1s/2s/4s backoff.

        After the last retry the local backup is shown (if any) with a
        connectivity error.  The cart always ends up hydrated.
        """
        for attempt in range(self.max_retries + 1):
            if await self._load_from_server():
                self._dispatch(actions.SetHydrated(True))
                self._dispatch(actions.ResetRetry())
                return self._state
            if attempt < self.max_retries:
                self._dispatch(actions.IncrementRetry())
                delay = self.retry_base_delay * 2**attempt
                logger.info(
                    "Cart load failed, retry %d/%d in %.1fs",
                    attempt + 1,
                    self.max_retries,
                    delay,
                )
                await asyncio.sleep(delay)

        logger.error("Max cart load retries reached, using local cart")
        self._apply_local_cart()
        self._dispatch(actions.SetHydrated(True))
        self._dispatch(actions.SetError(CONNECT_ERROR))
        return self._state

    async def set_identity(
        self, user_id: UserId, email: str | None = None
    ) -> CartState:
        """Switch guest/user identity and load that identity's cart.

        Mutations still queued for the previous identity are rejected, and
        logging out wipes whatever guest data was left behind.
        """
        self.email = email
        if identity_suffix(user_id) == identity_suffix(self.user_id):
            return self._state

        previous = self.user_id
        logger.info(
            "Cart identity change %s -> %s",
            identity_suffix(previous),
            identity_suffix(user_id),
        )
        self.user_id = user_id
        dropped = self.queue.clear()
        if dropped:
            logger.info("Dropped %d operation(s) from previous identity", dropped)
        self._reset_flags()
        if previous and not user_id:
            clear_all_guest_data(self.persistence.kv)
        self._dispatch(actions.SetLoading(True))
        self._dispatch(actions.SetHydrated(False))
        self._dispatch(actions.ClearCart())

        token = self._state.cart_token
        if token and not self.persistence.is_token_for(token, user_id):
            self._dispatch(actions.SetCartToken(None))

        if self.settle_delay > 0:
            await asyncio.sleep(self.settle_delay)

        if not await self._load_from_server():
            self._apply_local_cart()
        self._dispatch(actions.SetHydrated(True))
        return self._state

    async def refresh_cart(self) -> CartState:
        if self.store_api.is_configured:
            return await self._enqueue(self._reload)
        return self._state

    async def _reload(self) -> CartState:
        await self._load_from_server()
        return self._state

    async def sync_with_server(self) -> CartState:
        """Re-add every local line to the remote cart, then reload."""
        return await self._enqueue(self._sync)

    async def _sync(self) -> CartState:
        token = self._token()
        if not token or not self._state.items:
            self._dispatch(actions.SetNeedsSync(False))
            return self._state
        await self._readd(list(self._state.items), token)
        await self._load_from_server()
        return self._state

    # ── Items ────────────────────────────────────────────

    async def add_to_cart(self, product: Product, quantity: int = 1) -> CartState:
        """Optimistically add, then confirm remotely and reload the cart."""
        self._flag("adding_to_cart", True)
        item = local_cart_item(product, quantity)
        existing = next((i for i in self._state.items if i.id == item.id), None)
        self._dispatch(actions.AddItem(item))

        def rollback() -> None:
            if existing is not None:
                self._dispatch(actions.UpdateItem(existing.key, existing.quantity))
            else:
                self._dispatch(actions.RemoveItem(item.key))

        async def operation() -> CartState:
            try:
                if not self.store_available or not self.store_api.is_configured:
                    self.persistence.save_local_cart(self._state.items, self.user_id)
                    self._dispatch(actions.SetNeedsSync(True))
                    self._dispatch(actions.SetError(None))
                    return self._state

                token = self._token()
                if self._sync_pending() and (
                    existing is None or is_local_line(existing)
                ):
                    # The new line is local-keyed, so the push carries it
                    if await self._push_local_lines(token) is not None:
                        await self._load_from_server()
                        self._dispatch(actions.SetError(None))
                        return self._state
                    token = self._token()
                try:
                    response = await asyncio.to_thread(
                        self.store_api.add_item, item.id, quantity, token
                    )
                except OriginError as exc:
                    if not is_store_unavailable(exc):
                        raise
                    logger.warning("Store unavailable, keeping item locally")
                    self.persistence.save_local_cart(
                        self._state.items, self.user_id
                    )
                    self._dispatch(actions.SetNeedsSync(True))
                    self._dispatch(actions.SetError(LOCAL_ONLY_NOTICE))
                    return self._state

                self._adopt_token(response or {}, token)
                # The add response does not carry recalculated totals
                await self._load_from_server()
                self._dispatch(actions.SetError(None))
                return self._state
            except OriginError as exc:
                logger.error("Error adding product %d to cart: %s", item.id, exc)
                rollback()
                self._dispatch(actions.SetError(ADD_ERROR))
                raise CartError(ADD_ERROR, exc.code) from exc
            finally:
                self._flag("adding_to_cart", False)

        return await self._enqueue(operation)

    async def update_cart_item(self, key: str, quantity: int) -> CartState:
        """Optimistically set a line's quantity; rolled back on failure."""
        self._flag("updating_item", key)
        original = self._state.find(key)
        self._dispatch(actions.UpdateItem(key, quantity))

        async def operation() -> CartState:
            try:
                token = self._token()
                if not token:
                    raise CartError(NO_TOKEN_ERROR)
                try:
                    response = await asyncio.to_thread(
                        self.store_api.update_item, token, key, quantity
                    )
                except OriginError:
                    await self._load_from_server()
                    raise
                await self._settle(response, token)
                self._dispatch(actions.SetError(None))
                return self._state
            except (OriginError, CartError) as exc:
                logger.error("Error updating cart item %s: %s", key, exc)
                self._restore_quantity(original)
                self._dispatch(actions.SetError(UPDATE_ERROR))
                if isinstance(exc, CartError):
                    raise
                raise CartError(UPDATE_ERROR, exc.code) from exc
            finally:
                self._flag("updating_item", None)

        return await self._enqueue(operation)

    def _restore_quantity(self, original: CartItem | None) -> None:
        if original is None:
            return
        if self._state.find(original.key) is None:
            self._dispatch(actions.AddItem(original))
        else:
            self._dispatch(actions.UpdateItem(original.key, original.quantity))

    async def _settle(self, response: dict[str, Any] | None, token: str) -> None:
        """Rebuild state from a mutation response, else reload the cart."""
        if not response or response.get("items") is None:
            await self._load_from_server()
            return
        self._apply_server_cart(response, token, keep_coupons=True)
        self._adopt_token(response, token)
        self.persistence.save_local_cart(self._state.items, self.user_id)

    async def remove_from_cart(self, key: str) -> CartState:
        """Optimistically drop a line; restored on failure."""
        self._flag("removing_item", key)
        original = self._state.find(key)
        self._dispatch(actions.RemoveItem(key))

        async def operation() -> CartState:
            try:
                token = self._token()
                if not token:
                    raise CartError(NO_TOKEN_ERROR)
                response = await asyncio.to_thread(
                    self.store_api.remove_item, token, key
                )
                await self._settle(response, token)
                self._dispatch(actions.SetError(None))
                return self._state
            except (OriginError, CartError) as exc:
                logger.error("Error removing cart item %s: %s", key, exc)
                self._restore_quantity(original)
                self._dispatch(actions.SetError(REMOVE_ERROR))
                if isinstance(exc, CartError):
                    raise
                raise CartError(REMOVE_ERROR, exc.code) from exc
            finally:
                self._flag("removing_item", None)

        return await self._enqueue(operation)

    async def clear_cart(self) -> CartState:
        """Empty the remote cart line by line, then drop local state.

        The token is discarded whatever the remote outcome.
        """
        self._flag("clearing_cart", True)

        async def operation() -> CartState:
            try:
                token = self._token()
                if token:
                    try:
                        await asyncio.to_thread(self.store_api.clear_cart, token)
                    except OriginError as exc:
                        logger.warning("Remote cart clear failed: %s", exc)
                    self._set_token(None)
                self._dispatch(actions.ClearCart())
                self.persistence.clear_identity(self.user_id)
                self._dispatch(actions.SetError(None))
                return self._state
            except OSError as exc:
                self._dispatch(actions.SetError(CLEAR_ERROR))
                raise CartError(CLEAR_ERROR) from exc
            finally:
                self._flag("clearing_cart", False)

        return await self._enqueue(operation)

    # ── Coupons ──────────────────────────────────────────

    async def apply_coupon(self, code: str) -> CartState:
        self._flag("applying_coupon", True)

        async def operation() -> CartState:
            try:
                if any(c.code == code for c in self._state.applied_coupons):
                    raise CartError(
                        ALREADY_APPLIED_ERROR, "woocommerce_coupon_already_applied"
                    )
                token = self._token()
                if not token:
                    raise CartError(NO_TOKEN_ERROR)
                response = await asyncio.to_thread(
                    self.store_api.apply_coupon, token, code
                )
                if response:
                    self._adopt_token(response, token)
                    if response.get("items") is not None:
                        self._apply_server_cart(response, token)
                    self._dispatch(actions.SetError(None))
                return self._state
            except CartError as exc:
                self._dispatch(actions.SetError(exc.message))
                raise
            except OriginError as exc:
                message = coupon_error_message(exc.code, exc.message)
                logger.error("Error applying coupon %s: %s", code, exc)
                self._dispatch(actions.SetError(message))
                raise CartError(message, exc.code) from exc
            finally:
                self._flag("applying_coupon", False)

        return await self._enqueue(operation)

    async def remove_coupon(self, code: str) -> CartState:
        """Remove *code*; a coupon the server no longer has just resyncs."""
        self._flag("removing_coupon", code)

        async def operation() -> CartState:
            try:
                token = self._token()
                if not token:
                    raise CartError(NO_TOKEN_ERROR)
                removal = await asyncio.to_thread(
                    self.store_api.remove_coupon, token, code
                )
                cart = removal.cart
                if not removal.was_applied:
                    logger.info(
                        "Coupon %s already absent on server, resyncing", code
                    )
                if cart is None:
                    self._dispatch(actions.RemoveCoupon(code))
                elif cart.get("items") is not None:
                    self._adopt_token(cart, token)
                    self._apply_server_cart(cart, token)
                else:
                    await self._load_from_server()
                self._dispatch(actions.SetError(None))
                return self._state
            except CartError as exc:
                self._dispatch(actions.SetError(exc.message))
                raise
            except OriginError as exc:
                if exc.code in _COUPON_GONE_CODES:
                    await self._load_from_server()
                    message = COUPON_RESYNCED
                else:
                    message = coupon_error_message(
                        exc.code, exc.message, "Failed to remove coupon"
                    )
                logger.error("Error removing coupon %s: %s", code, exc)
                self._dispatch(actions.SetError(message))
                raise CartError(message, exc.code) from exc
            finally:
                self._flag("removing_coupon", None)

        return await self._enqueue(operation)

    async def validate_coupon(self, code: str) -> CouponValidation:
        """Pre-check *code* against the cart subtotal and session email."""
        if self.woocommerce is None:
            return CouponValidation(
                False, "Error validating coupon", "validation_error"
            )
        try:
            return await asyncio.to_thread(
                self.woocommerce.validate_coupon,
                code,
                self._state.totals.subtotal,
                self.email,
            )
        except OriginError as exc:
            logger.error("Error validating coupon %s: %s", code, exc)
            return CouponValidation(
                False, "Error validating coupon", "validation_error"
            )

    async def close(self) -> None:
        await self.queue.close()
        self._listeners.clear()
