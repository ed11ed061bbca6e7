# src/services/normalizers.py

"""Turn raw WordPress / WooCommerce payloads into cached shapes."""

import html
import re
from typing import Any

from bs4 import BeautifulSoup

from src.models.cache_models import (
    CachedMenu,
    CachedMenuItem,
    CachedPage,
    CachedPost,
    CachedProduct,
    CachedProductCategory,
    CachedSiteInfo,
    CategoryImage,
    FeaturedMedia,
    ProductAttribute,
    ProductImage,
    ProductVariation,
    SiteImage,
    TermRef,
    VariationAttribute,
    as_dict,
    as_int,
    as_list,
    as_str,
)

_HOST_RE = re.compile(r"^https?://[^/]+", re.IGNORECASE)
_ABSOLUTE_PATHS = ("/wp-content/", "/wp-admin/")

_PRIMARY_HINTS = ("primary", "main", "header")
_FOOTER_HINTS = ("footer",)


def html_to_text(markup: str) -> str:
    """Visible text of an HTML fragment, whitespace collapsed."""
    if not markup:
        return ""
    if "<" not in markup:
        return " ".join(html.unescape(markup).split())
    text = BeautifulSoup(markup, "lxml").get_text(" ")
    return " ".join(text.split())


def _rendered(value: Any) -> str:
    """WordPress wraps titles/content as ``{"rendered": "..."}``."""
    if isinstance(value, dict):
        return as_str(value.get("rendered"))
    return as_str(value)


# ── Products ─────────────────────────────────────────────


def normalize_variations(raw: Any) -> list[ProductVariation]:
    """Expanded variation objects are kept; bare ids collapse to ``[]``."""
    variations = as_list(raw)
    if not variations or not isinstance(variations[0], dict):
        return []
    return [
        ProductVariation(
            id=as_int(v.get("id")),
            price=as_str(v.get("price")),
            regular_price=as_str(v.get("regular_price")),
            sale_price=as_str(v.get("sale_price")),
            on_sale=bool(v.get("on_sale")),
            attributes=[
                VariationAttribute(
                    id=as_int(a.get("id")),
                    name=as_str(a.get("name")),
                    option=as_str(a.get("option")),
                )
                for a in as_list(v.get("attributes"))
                if isinstance(a, dict)
            ],
        )
        for v in variations
        if isinstance(v, dict)
    ]


def _terms(raw: Any) -> list[TermRef]:
    return [
        TermRef(
            id=as_int(t.get("id")),
            name=as_str(t.get("name")),
            slug=as_str(t.get("slug")),
        )
        for t in as_list(raw)
        if isinstance(t, dict)
    ]


def normalize_product(raw: Any, now: str) -> CachedProduct:
    data = as_dict(raw)
    stock = data.get("stock_quantity")
    return CachedProduct(
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
            ProductImage(
                id=as_int(i.get("id")),
                src=as_str(i.get("src")),
                alt=as_str(i.get("alt")),
                name=as_str(i.get("name")),
            )
            for i in as_list(data.get("images"))
            if isinstance(i, dict)
        ],
        categories=_terms(data.get("categories")),
        tags=_terms(data.get("tags")),
        attributes=[
            ProductAttribute(
                id=as_int(a.get("id")),
                name=as_str(a.get("name")),
                options=[as_str(o) for o in as_list(a.get("options"))],
            )
            for a in as_list(data.get("attributes"))
            if isinstance(a, dict)
        ],
        variations=normalize_variations(data.get("variations")),
        stock_status=as_str(data.get("stock_status")),
        stock_quantity=None if stock is None else as_int(stock),
        last_updated=now,
    )


def normalize_category(raw: Any, now: str) -> CachedProductCategory:
    data = as_dict(raw)
    image = as_dict(data.get("image"))
    return CachedProductCategory(
        id=as_int(data.get("id")),
        name=html.unescape(as_str(data.get("name"))),
        slug=as_str(data.get("slug")),
        description=as_str(data.get("description")),
        parent=as_int(data.get("parent")),
        count=as_int(data.get("count")),
        image=CategoryImage(
            id=as_int(image.get("id")),
            src=as_str(image.get("src")),
            alt=as_str(image.get("alt")),
        )
        if image
        else None,
        last_updated=now,
    )


# ── Pages / posts ────────────────────────────────────────


def normalize_page(raw: Any, now: str) -> CachedPage:
    data = as_dict(raw)
    return CachedPage(
        id=as_int(data.get("id")),
        title=html.unescape(_rendered(data.get("title"))),
        slug=as_str(data.get("slug")),
        content=_rendered(data.get("content")),
        excerpt=_rendered(data.get("excerpt")),
        status=as_str(data.get("status")),
        parent=as_int(data.get("parent")),
        menu_order=as_int(data.get("menu_order")),
        last_updated=now,
    )


def _id_terms(raw: Any) -> list[TermRef]:
    """Posts only carry term ids; the id doubles as name and slug."""
    return [
        TermRef(id=as_int(t), name=str(as_int(t)), slug=str(as_int(t)))
        for t in as_list(raw)
    ]


def normalize_post(raw: Any, now: str) -> CachedPost:
    data = as_dict(raw)
    media_id = as_int(data.get("featured_media"))
    return CachedPost(
        id=as_int(data.get("id")),
        title=html.unescape(_rendered(data.get("title"))),
        slug=as_str(data.get("slug")),
        content=_rendered(data.get("content")),
        excerpt=_rendered(data.get("excerpt")),
        status=as_str(data.get("status")),
        date=as_str(data.get("date")),
        modified=as_str(data.get("modified")),
        categories=_id_terms(data.get("categories")),
        tags=_id_terms(data.get("tags")),
        featured_media=FeaturedMedia(id=media_id) if media_id else None,
        last_updated=now,
    )


# ── Site info ────────────────────────────────────────────


def normalize_site_info(raw: Any, now: str) -> CachedSiteInfo:
    data = as_dict(raw)
    return CachedSiteInfo(
        title=as_str(data.get("title")),
        description=as_str(data.get("description")),
        logo=SiteImage.from_dict(data.get("logo")),
        site_icon=SiteImage.from_dict(
            data.get("site_icon", data.get("siteIcon"))
        ),
        last_updated=now,
    )


# ── Menus ────────────────────────────────────────────────


def rewrite_menu_url(raw: Any) -> str:
    """Root-relative path for an origin URL.

    Upload and admin URLs stay absolute since they point at origin assets.
    """
    data = as_dict(raw)
    original = (
        data.get("url")
        or data.get("link")
        or data.get("guid")
        or f"/{data.get('post_name') or data.get('slug') or ''}"
    )
    if isinstance(original, dict):
        original = original.get("rendered", "")
    original = as_str(original)
    url = _HOST_RE.sub("", original)
    if not url.startswith("/"):
        url = f"/{url}"
    if any(p in url for p in _ABSOLUTE_PATHS):
        return original
    return url


def normalize_menu_item(raw: Any) -> CachedMenuItem:
    data = as_dict(raw)
    title = data.get("title") or data.get("post_title") or data.get("name")
    return CachedMenuItem(
        id=as_int(data.get("id") or data.get("ID")),
        title=html.unescape(_rendered(title)),
        url=rewrite_menu_url(data),
        target=as_str(data.get("target")) or "_self",
        parent=as_int(data.get("parent") or data.get("menu_item_parent")),
        order=as_int(data.get("menu_order") or data.get("order")),
    )


def infer_location(menu: dict[str, Any], is_first: bool) -> str:
    """Theme location for a menu that did not declare one."""
    explicit = menu.get("location")
    if explicit:
        return as_str(explicit)
    name = as_str(menu.get("name")).lower()
    slug = as_str(menu.get("slug")).lower()
    if any(h in name or h in slug for h in _PRIMARY_HINTS):
        return "primary"
    if any(h in name or h in slug for h in _FOOTER_HINTS):
        return "footer"
    if is_first:
        return "primary"
    return as_str(menu.get("slug")) or "primary"


def menu_slug(menu: dict[str, Any]) -> str:
    slug = as_str(menu.get("slug"))
    if slug:
        return slug
    return "-".join(as_str(menu.get("name")).lower().split())


def normalize_menu(
    basic: dict[str, Any],
    detailed: dict[str, Any] | None,
    is_first: bool,
    now: str,
) -> CachedMenu:
    """Merge a menu list entry with its detail payload (items)."""
    full = detailed or basic
    location_source = dict(basic)
    if full.get("location"):
        location_source["location"] = full["location"]
    return CachedMenu(
        id=as_int(
            basic.get("id") or basic.get("ID") or basic.get("term_id")
        ),
        name=as_str(basic.get("name") or basic.get("title")),
        slug=menu_slug(basic),
        location=infer_location(location_source, is_first),
        items=[
            normalize_menu_item(i)
            for i in as_list(full.get("items"))
            if isinstance(i, dict)
        ],
        last_updated=now,
    )


def finalize_menus(menus: list[CachedMenu]) -> list[CachedMenu]:
    """A lone menu is always the primary one."""
    if len(menus) == 1:
        menus[0].location = "primary"
    return menus
