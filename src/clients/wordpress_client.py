# src/clients/wordpress_client.py

"""WordPress REST (``/wp-json/wp/v2``) and menus plugin client."""

import html
import logging
from typing import Any

from src.clients.errors import OriginError, OriginNotFoundError
from src.clients.origin_client import OriginClient, Page
from src.config.settings import Settings

logger = logging.getLogger("storefront.origin")

_WP_PREFIX = "/wp-json/wp/v2"
_MENUS_PREFIX = "/wp-json/menus/v1"


class WordPressClient:
    """Thin wrapper returning decoded WordPress payloads."""

    def __init__(self, origin: OriginClient | None = None) -> None:
        self.origin = origin or OriginClient()

    # ── Site info ────────────────────────────────────────

    def _try_get(
        self, path: str, params: dict[str, Any] | None = None
    ) -> Any:
        """GET that logs and returns ``None`` instead of raising."""
        try:
            return self.origin.get_json(
                path, params=params, timeout=Settings.STATUS_TIMEOUT
            ).data
        except OriginError as exc:
            logger.info("Optional site-info lookup %s failed: %s", path, exc)
            return None

    def get_site_info(self) -> dict[str, Any]:
        """Title, description, logo and site icon of the site.

        Each of the three lookups (settings, REST root, logo media search)
        is allowed to fail independently.
        """
        settings = self._try_get(f"{_WP_PREFIX}/settings") or {}
        root = self._try_get("/wp-json/") or {}
        media = self._try_get(
            f"{_WP_PREFIX}/media", {"per_page": 10, "search": "logo"}
        )
        if not isinstance(settings, dict):
            settings = {}
        if not isinstance(root, dict):
            root = {}

        title = html.unescape(
            str(settings.get("title") or root.get("name") or "")
        )
        description = html.unescape(
            str(settings.get("description") or root.get("description") or "")
        )

        icon_url = root.get("site_icon_url") or ""
        site_icon = (
            {
                "url": icon_url,
                "width": 512,
                "height": 512,
                "alt": f"{title} Site Icon",
            }
            if icon_url
            else None
        )

        logo_data = media[0] if isinstance(media, list) and media else None
        logo = None
        if isinstance(logo_data, dict):
            details = logo_data.get("media_details") or {}
            rendered = (logo_data.get("title") or {}).get("rendered", "")
            logo = {
                "url": logo_data.get("source_url")
                or (logo_data.get("guid") or {}).get("rendered", ""),
                "width": details.get("width") or 180,
                "height": details.get("height") or 155,
                "alt": logo_data.get("alt_text")
                or html.unescape(rendered)
                or title,
            }

        return {
            "title": title,
            "description": description,
            "logo": logo,
            "site_icon": site_icon,
        }

    # ── Posts and pages ──────────────────────────────────

    def _get_page(
        self, resource: str, params: dict[str, Any] | None
    ) -> Page:
        params = dict(params or {})
        resp = self.origin.get_json(f"{_WP_PREFIX}/{resource}", params)
        return Page.from_response(resp, int(params.get("page", 1)))

    def get_posts(self, params: dict[str, Any] | None = None) -> Page:
        return self._get_page("posts", params)

    def get_pages(self, params: dict[str, Any] | None = None) -> Page:
        return self._get_page("pages", {**(params or {}), "_embed": "true"})

    # ── Menus ────────────────────────────────────────────

    def get_menus(self) -> list[dict[str, Any]]:
        """All registered menus, usually without their items."""
        resp = self.origin.get_json(
            f"{_MENUS_PREFIX}/menus", timeout=Settings.STATUS_TIMEOUT
        )
        if not isinstance(resp.data, list):
            return []
        return [m for m in resp.data if isinstance(m, dict)]

    def get_menu_with_items(self, slug: str) -> dict[str, Any] | None:
        """A single menu including its items, or ``None`` on 404."""
        try:
            resp = self.origin.get_json(
                f"{_MENUS_PREFIX}/menus/{slug}",
                timeout=Settings.STATUS_TIMEOUT,
            )
        except OriginNotFoundError:
            logger.info("Menu '%s' does not exist", slug)
            return None
        return resp.data if isinstance(resp.data, dict) else None

    def get_menu_by_location(self, location: str) -> dict[str, Any] | None:
        try:
            resp = self.origin.get_json(
                f"{_MENUS_PREFIX}/locations/{location}",
                timeout=Settings.STATUS_TIMEOUT,
            )
        except OriginError as exc:
            logger.info("No menu at location '%s': %s", location, exc)
            return None
        return resp.data if isinstance(resp.data, dict) else None
