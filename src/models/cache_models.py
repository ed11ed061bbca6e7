# src/models/cache_models.py

"""Cached projections of WordPress / WooCommerce resources.

Every ``from_dict`` extracts fields one at a time with defaults, so a
malformed cache file or upstream payload yields predictable empty values
instead of leaking ``None`` through the pipeline.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class ResourceKind(str, Enum):
    """The six cached collections, valued by their cache key."""

    SITE_INFO = "site-info"
    MENUS = "menus"
    PRODUCTS = "products"
    CATEGORIES = "product-categories"
    PAGES = "pages"
    POSTS = "posts"

    @classmethod
    def parse(cls, raw: str) -> "ResourceKind":
        """Accept either the cache key or a short alias like ``categories``."""
        aliases = {"categories": cls.CATEGORIES, "site_info": cls.SITE_INFO}
        if raw in aliases:
            return aliases[raw]
        return cls(raw)


# ── Field extraction helpers ─────────────────────────────


def as_int(value: Any, default: int = 0) -> int:
    """Coerce an origin value to int, falling back to *default*."""
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def as_str(value: Any, default: str = "") -> str:
    """Coerce an origin value to str; ``None`` becomes *default*."""
    if value is None:
        return default
    return str(value)


def as_list(value: Any) -> list[Any]:
    """Return *value* if it is a list, else an empty list."""
    return value if isinstance(value, list) else []


def as_dict(value: Any) -> dict[str, Any]:
    """Return *value* if it is a dict, else an empty dict."""
    return value if isinstance(value, dict) else {}


# ── Site info ────────────────────────────────────────────


@dataclass
class SiteImage:
    """Logo or site icon reference."""

    url: str
    width: int = 0
    height: int = 0
    alt: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> "SiteImage | None":
        data = as_dict(raw)
        if not data.get("url"):
            return None
        return cls(
            url=as_str(data.get("url")),
            width=as_int(data.get("width")),
            height=as_int(data.get("height")),
            alt=as_str(data.get("alt")),
        )


@dataclass
class CachedSiteInfo:
    """Site title, tagline and branding images."""

    title: str
    description: str
    logo: SiteImage | None = None
    site_icon: SiteImage | None = None
    last_updated: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Any) -> "CachedSiteInfo":
        data = as_dict(raw)
        return cls(
            title=as_str(data.get("title")),
            description=as_str(data.get("description")),
            logo=SiteImage.from_dict(data.get("logo")),
            site_icon=SiteImage.from_dict(
                data.get("site_icon", data.get("siteIcon"))
            ),
            last_updated=as_str(data.get("last_updated")),
        )


# ── Menus ────────────────────────────────────────────────


@dataclass
class CachedMenuItem:
    """A single navigation entry with a root-relative URL."""

    id: int
    title: str
    url: str
    target: str = "_self"
    parent: int = 0
    order: int = 0

    @classmethod
    def from_dict(cls, raw: Any) -> "CachedMenuItem":
        data = as_dict(raw)
        return cls(
            id=as_int(data.get("id")),
            title=as_str(data.get("title")),
            url=as_str(data.get("url")),
            target=as_str(data.get("target"), "_self") or "_self",
            parent=as_int(data.get("parent")),
            order=as_int(data.get("order")),
        )


@dataclass
class CachedMenu:
    """A navigation menu bound to a theme location."""

    id: int
    name: str
    slug: str
    location: str
    items: list[CachedMenuItem] = field(
        default_factory=lambda: list[CachedMenuItem]()
    )
    last_updated: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Any) -> "CachedMenu":
        data = as_dict(raw)
        return cls(
            id=as_int(data.get("id")),
            name=as_str(data.get("name")),
            slug=as_str(data.get("slug")),
            location=as_str(data.get("location")),
            items=[
                CachedMenuItem.from_dict(i)
                for i in as_list(data.get("items"))
            ],
            last_updated=as_str(data.get("last_updated")),
        )


# ── Products ─────────────────────────────────────────────


@dataclass
class ProductImage:
    id: int
    src: str
    alt: str = ""
    name: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> "ProductImage":
        data = as_dict(raw)
        return cls(
            id=as_int(data.get("id")),
            src=as_str(data.get("src")),
            alt=as_str(data.get("alt")),
            name=as_str(data.get("name")),
        )


@dataclass
class TermRef:
    """Category or tag reference attached to a product or post."""

    id: int
    name: str
    slug: str

    @classmethod
    def from_dict(cls, raw: Any) -> "TermRef":
        data = as_dict(raw)
        return cls(
            id=as_int(data.get("id")),
            name=as_str(data.get("name")),
            slug=as_str(data.get("slug")),
        )


@dataclass
class ProductAttribute:
    id: int
    name: str
    options: list[str] = field(default_factory=lambda: list[str]())

    @classmethod
    def from_dict(cls, raw: Any) -> "ProductAttribute":
        data = as_dict(raw)
        return cls(
            id=as_int(data.get("id")),
            name=as_str(data.get("name")),
            options=[as_str(o) for o in as_list(data.get("options"))],
        )


@dataclass
class VariationAttribute:
    id: int
    name: str
    option: str

    @classmethod
    def from_dict(cls, raw: Any) -> "VariationAttribute":
        data = as_dict(raw)
        return cls(
            id=as_int(data.get("id")),
            name=as_str(data.get("name")),
            option=as_str(data.get("option")),
        )


@dataclass
class ProductVariation:
    """A fully-resolved variation (never a bare id)."""

    id: int
    price: str
    regular_price: str = ""
    sale_price: str = ""
    on_sale: bool = False
    attributes: list[VariationAttribute] = field(
        default_factory=lambda: list[VariationAttribute]()
    )

    @classmethod
    def from_dict(cls, raw: Any) -> "ProductVariation":
        data = as_dict(raw)
        return cls(
            id=as_int(data.get("id")),
            price=as_str(data.get("price")),
            regular_price=as_str(data.get("regular_price")),
            sale_price=as_str(data.get("sale_price")),
            on_sale=bool(data.get("on_sale")),
            attributes=[
                VariationAttribute.from_dict(a)
                for a in as_list(data.get("attributes"))
            ],
        )


@dataclass
class CachedProduct:
    """Normalised WooCommerce product as stored in ``products.json``."""

    id: int
    name: str
    slug: str
    price: str = ""
    regular_price: str = ""
    sale_price: str = ""
    on_sale: bool = False
    featured: bool = False
    status: str = ""
    short_description: str = ""
    description: str = ""
    images: list[ProductImage] = field(
        default_factory=lambda: list[ProductImage]()
    )
    categories: list[TermRef] = field(
        default_factory=lambda: list[TermRef]()
    )
    tags: list[TermRef] = field(default_factory=lambda: list[TermRef]())
    attributes: list[ProductAttribute] = field(
        default_factory=lambda: list[ProductAttribute]()
    )
    variations: list[ProductVariation] = field(
        default_factory=lambda: list[ProductVariation]()
    )
    stock_status: str = ""
    stock_quantity: int | None = None
    last_updated: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Any) -> "CachedProduct":
        data = as_dict(raw)
        stock = data.get("stock_quantity")
        return cls(
            id=as_int(data.get("id")),
            name=as_str(data.get("name")),
            slug=as_str(data.get("slug")),
            price=as_str(data.get("price")),
            regular_price=as_str(data.get("regular_price")),
            sale_price=as_str(data.get("sale_price")),
            on_sale=bool(data.get("on_sale")),
            featured=bool(data.get("featured")),
            status=as_str(data.get("status")),
            short_description=as_str(data.get("short_description")),
            description=as_str(data.get("description")),
            images=[
                ProductImage.from_dict(i)
                for i in as_list(data.get("images"))
            ],
            categories=[
                TermRef.from_dict(c)
                for c in as_list(data.get("categories"))
            ],
            tags=[TermRef.from_dict(t) for t in as_list(data.get("tags"))],
            attributes=[
                ProductAttribute.from_dict(a)
                for a in as_list(data.get("attributes"))
            ],
            variations=[
                ProductVariation.from_dict(v)
                for v in as_list(data.get("variations"))
                if isinstance(v, dict)
            ],
            stock_status=as_str(data.get("stock_status")),
            stock_quantity=None if stock is None else as_int(stock),
            last_updated=as_str(data.get("last_updated")),
        )


# ── Categories / pages / posts ───────────────────────────


@dataclass
class CategoryImage:
    id: int
    src: str
    alt: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> "CategoryImage | None":
        data = as_dict(raw)
        if not data:
            return None
        return cls(
            id=as_int(data.get("id")),
            src=as_str(data.get("src")),
            alt=as_str(data.get("alt")),
        )


@dataclass
class CachedProductCategory:
    id: int
    name: str
    slug: str
    description: str = ""
    parent: int = 0
    count: int = 0
    image: CategoryImage | None = None
    last_updated: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Any) -> "CachedProductCategory":
        data = as_dict(raw)
        return cls(
            id=as_int(data.get("id")),
            name=as_str(data.get("name")),
            slug=as_str(data.get("slug")),
            description=as_str(data.get("description")),
            parent=as_int(data.get("parent")),
            count=as_int(data.get("count")),
            image=CategoryImage.from_dict(data.get("image")),
            last_updated=as_str(data.get("last_updated")),
        )


@dataclass
class CachedPage:
    id: int
    title: str
    slug: str
    content: str = ""
    excerpt: str = ""
    status: str = ""
    parent: int = 0
    menu_order: int = 0
    last_updated: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Any) -> "CachedPage":
        data = as_dict(raw)
        return cls(
            id=as_int(data.get("id")),
            title=as_str(data.get("title")),
            slug=as_str(data.get("slug")),
            content=as_str(data.get("content")),
            excerpt=as_str(data.get("excerpt")),
            status=as_str(data.get("status")),
            parent=as_int(data.get("parent")),
            menu_order=as_int(data.get("menu_order")),
            last_updated=as_str(data.get("last_updated")),
        )


@dataclass
class FeaturedMedia:
    id: int
    src: str = ""
    alt: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> "FeaturedMedia | None":
        data = as_dict(raw)
        if not as_int(data.get("id")):
            return None
        return cls(
            id=as_int(data.get("id")),
            src=as_str(data.get("src")),
            alt=as_str(data.get("alt")),
        )


@dataclass
class CachedPost:
    id: int
    title: str
    slug: str
    content: str = ""
    excerpt: str = ""
    status: str = ""
    date: str = ""
    modified: str = ""
    categories: list[TermRef] = field(
        default_factory=lambda: list[TermRef]()
    )
    tags: list[TermRef] = field(default_factory=lambda: list[TermRef]())
    featured_media: FeaturedMedia | None = None
    last_updated: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Any) -> "CachedPost":
        data = as_dict(raw)
        return cls(
            id=as_int(data.get("id")),
            title=as_str(data.get("title")),
            slug=as_str(data.get("slug")),
            content=as_str(data.get("content")),
            excerpt=as_str(data.get("excerpt")),
            status=as_str(data.get("status")),
            date=as_str(data.get("date")),
            modified=as_str(data.get("modified")),
            categories=[
                TermRef.from_dict(c)
                for c in as_list(data.get("categories"))
            ],
            tags=[TermRef.from_dict(t) for t in as_list(data.get("tags"))],
            featured_media=FeaturedMedia.from_dict(
                data.get("featured_media")
            ),
            last_updated=as_str(data.get("last_updated")),
        )


# ── Bookkeeping ──────────────────────────────────────────


@dataclass
class CacheMetadata:
    """Written alongside the data after every refresh."""

    last_full_refresh: str
    last_partial_refresh: str
    total_items: int = 0
    version: str = ""
    checksum: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Any) -> "CacheMetadata":
        data = as_dict(raw)
        return cls(
            last_full_refresh=as_str(data.get("last_full_refresh")),
            last_partial_refresh=as_str(data.get("last_partial_refresh")),
            total_items=as_int(data.get("total_items")),
            version=as_str(data.get("version")),
            checksum=as_str(data.get("checksum")),
        )


@dataclass
class CacheStats:
    total_requests: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    last_refresh: str = ""
    hit_rate: float = 0.0


@dataclass
class CacheConfig:
    """Runtime-adjustable cache switches."""

    enable_caching: bool
    cache_expiry: int
    enable_webhooks: bool
    webhook_secret: str


@dataclass
class WebhookPayload:
    """Normalised webhook notification from WordPress or WooCommerce."""

    action: str
    type: str
    id: int = 0
    data: dict[str, Any] | None = None
    timestamp: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> "WebhookPayload":
        data = as_dict(raw)
        body = data.get("data")
        return cls(
            action=as_str(data.get("action"), "updated") or "updated",
            type=as_str(data.get("type"), "product") or "product",
            id=as_int(data.get("id")),
            data=body if isinstance(body, dict) else None,
            timestamp=as_str(data.get("timestamp")),
        )
