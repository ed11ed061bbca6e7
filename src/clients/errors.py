# src/clients/errors.py

"""Error taxonomy for origin and cart failures."""

from typing import Any

# Substrings that mark a deactivated WooCommerce plugin in error messages
STORE_UNAVAILABLE_MARKERS: tuple[str, ...] = (
    "WooCommerce is not available",
    "plugin appears to be deactivated",
)


class OriginError(Exception):
    """Base class for every failure talking to WordPress / WooCommerce."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str = "",
        data: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.data = data


class OriginUnavailableError(OriginError):
    """Network, DNS, timeout or 5xx: the origin could not be reached."""


class OriginAuthError(OriginError):
    """401/403 or missing credentials. Never retried."""


class OriginNotFoundError(OriginError):
    """404 on a specific resource."""


class StoreUnavailableError(OriginError):
    """WooCommerce is deactivated or its REST namespace is missing."""


class StoreApiError(OriginError):
    """Store API rejected a cart request with a WooCommerce error code."""


class CartError(Exception):
    """A user-initiated cart mutation did not take effect."""

    def __init__(self, message: str, code: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class QueueClearedError(Exception):
    """Raised into operations still pending when the cart queue is cleared."""

    def __init__(self) -> None:
        super().__init__("Operation cancelled: Queue cleared")


def is_store_unavailable(exc: BaseException) -> bool:
    """True when *exc* signals that the cart backend is switched off."""
    if isinstance(exc, StoreUnavailableError):
        return True
    text = str(exc)
    return any(marker in text for marker in STORE_UNAVAILABLE_MARKERS)
