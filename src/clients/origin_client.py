# src/clients/origin_client.py

"""Shared HTTP transport for WordPress, WooCommerce REST and Store API calls."""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from curl_cffi import requests as curl_requests

from src.clients.errors import (
    OriginAuthError,
    OriginError,
    OriginNotFoundError,
    OriginUnavailableError,
)
from src.config.settings import Settings

logger = logging.getLogger("storefront.origin")


@dataclass
class OriginResponse:
    """Decoded origin reply. Header names are stored lower-cased."""

    status_code: int
    data: Any
    headers: dict[str, str] = field(
        default_factory=lambda: dict[str, str]()
    )

    def header(self, *names: str) -> str | None:
        """Return the first header present among *names*."""
        for name in names:
            value = self.headers.get(name.lower())
            if value:
                return value
        return None


@dataclass
class Page:
    """One page of a paginated listing (``X-WP-Total`` headers)."""

    items: list[dict[str, Any]] = field(
        default_factory=lambda: list[dict[str, Any]]()
    )
    total: int = 0
    total_pages: int = 0
    current_page: int = 1

    @property
    def has_next_page(self) -> bool:
        return self.current_page < self.total_pages

    @classmethod
    def from_response(
        cls, resp: OriginResponse, current_page: int = 1
    ) -> "Page":
        items = resp.data if isinstance(resp.data, list) else []
        return cls(
            items=[i for i in items if isinstance(i, dict)],
            total=header_int(resp.header("x-wp-total")),
            total_pages=header_int(resp.header("x-wp-totalpages")),
            current_page=current_page,
        )


def header_int(value: str | None) -> int:
    try:
        return int(value or "0")
    except ValueError:
        return 0


def _decode(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


def error_for_status(
    status_code: int, data: Any, url: str
) -> OriginError:
    """Map a 4xx/5xx reply onto the error taxonomy."""
    body = data if isinstance(data, dict) else {}
    code = str(body.get("code", ""))
    message = str(body.get("message") or f"HTTP {status_code} from {url}")
    if status_code in (401, 403):
        return OriginAuthError(message, status_code, code, data)
    if status_code == 404:
        return OriginNotFoundError(message, status_code, code, data)
    if status_code >= 500:
        return OriginUnavailableError(message, status_code, code, data)
    return OriginError(message, status_code, code, data)


class OriginClient:
    """JSON client with retries and a cloudscraper fallback for GETs.

    Transient failures (network errors, 429, 5xx) are retried up to
    ``max_retries`` times with linear backoff.  Other 4xx replies are
    raised immediately as the matching :mod:`src.clients.errors` type.
    """

    def __init__(
        self,
        base_url: str = Settings.WORDPRESS_URL,
        timeout: int = Settings.REQUEST_TIMEOUT,
        max_retries: int = Settings.MAX_RETRIES,
        retry_delay: float = Settings.REQUEST_DELAY,
        auth: tuple[str, str] | None = None,
        session: Any = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.auth = auth
        self.session = session or curl_requests.Session(
            impersonate=Settings.IMPERSONATE_BROWSER
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> OriginResponse:
        return self.request(
            "GET", path, params=params, headers=headers, timeout=timeout
        )

    def post_json(
        self,
        path: str,
        payload: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> OriginResponse:
        return self.request(
            "POST", path, payload=payload, headers=headers, timeout=timeout
        )

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> OriginResponse:
        """Send one request, retrying transient failures."""
        if not self.is_configured:
            raise OriginAuthError("WordPress URL is not configured")

        url = self.url_for(path)
        merged = {**Settings.DEFAULT_HEADERS, **(headers or {})}
        effective_timeout = timeout or self.timeout
        last_error: OriginError | None = None
        network_failure = False

        for attempt in range(self.max_retries):
            try:
                resp = self.session.request(
                    method,
                    url,
                    params=params,
                    json=payload,
                    headers=merged,
                    timeout=effective_timeout,
                    auth=self.auth,
                )
            except Exception as exc:
                logger.warning(
                    "%s %s request error on attempt %d: %s",
                    method,
                    url,
                    attempt + 1,
                    exc,
                    exc_info=True,
                )
                network_failure = True
                last_error = OriginUnavailableError(
                    f"Cannot connect to {self.base_url}: {exc}"
                )
                time.sleep(self.retry_delay * (attempt + 1))
                continue

            network_failure = False
            data = _decode(resp.text)
            resp_headers = {
                str(k).lower(): str(v) for k, v in resp.headers.items()
            }
            if resp.status_code < 400:
                return OriginResponse(resp.status_code, data, resp_headers)

            error = error_for_status(resp.status_code, data, url)
            if resp.status_code != 429 and resp.status_code < 500:
                raise error
            logger.warning(
                "%s %s HTTP %d on attempt %d",
                method,
                url,
                resp.status_code,
                attempt + 1,
            )
            last_error = error
            time.sleep(self.retry_delay * (attempt + 1))

        if method == "GET" and network_failure:
            fallback = self._cloudscraper_get(
                url, params, merged, effective_timeout
            )
            if fallback is not None:
                return fallback

        raise last_error or OriginUnavailableError(
            f"{method} {url} failed"
        )

    def _cloudscraper_get(
        self,
        url: str,
        params: dict[str, Any] | None,
        headers: dict[str, str],
        timeout: int,
    ) -> OriginResponse | None:
        """Last-resort GET for origins behind a Cloudflare challenge."""
        logger.info("curl_cffi exhausted, falling back to cloudscraper")
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            resp: Any = scraper.get(
                url,
                params=params,
                headers=headers,
                timeout=timeout,
                auth=self.auth,
            )
            if resp.status_code < 400:
                return OriginResponse(
                    int(resp.status_code),
                    _decode(str(resp.text)),
                    {str(k).lower(): str(v) for k, v in resp.headers.items()},
                )
        except Exception as exc:
            logger.error(
                "cloudscraper fallback also failed: %s", exc, exc_info=True
            )
        return None
