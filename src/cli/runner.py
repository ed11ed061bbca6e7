# src/cli/runner.py

"""Headless maintenance commands for the storefront cache."""

import json
import logging
from datetime import timedelta
from pathlib import Path

from rich.console import Console
from rich.table import Table

from src.clients.woocommerce_client import WooCommerceClient
from src.clients.wordpress_client import WordPressClient
from src.config.settings import Settings
from src.models.cache_models import ResourceKind
from src.services.cache_service import METADATA_KEY, CacheService
from src.services.webhook_handler import WebhookHandler
from src.storage.disk_cache import DiskCacheStore
from src.storage.image_cache import ImageCache

logger = logging.getLogger("storefront.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def build_cache_service(with_images: bool = True) -> CacheService:
    """Wire the cache service from ``Settings``."""
    return CacheService(
        store=DiskCacheStore(),
        wordpress=WordPressClient(),
        woocommerce=WooCommerceClient(),
        image_cache=ImageCache() if with_images else None,
    )


def resolve_kind(raw: str | None) -> ResourceKind | None:
    """Map a CLI argument to a kind; ``None``/``all`` means every kind.

    Raises ``SystemExit`` on unknown names.
    """
    if raw in (None, "all"):
        return None
    try:
        return ResourceKind.parse(raw)
    except ValueError:
        valid = ", ".join(k.value for k in ResourceKind)
        _err.print(f"[red]Unknown cache kind: {raw}[/red]")
        _err.print(f"[dim]Available: all, {valid}[/dim]")
        raise SystemExit(1)


async def run_refresh(kind_name: str | None) -> int:
    """Refresh one kind or everything; 1 if nothing could be cached."""
    if not Settings.is_origin_configured():
        _err.print("[red]WORDPRESS_URL is not configured.[/red]")
        return 1

    kind = resolve_kind(kind_name)
    service = build_cache_service()

    if kind is None:
        _err.print("[bold]Refreshing all cache entries...[/bold]")
        metadata = await service.refresh_all()
        _err.print(
            f"[green]✓ {metadata.total_items} items cached"
            f" (checksum {metadata.checksum[:8]})[/green]"
        )
        return 0 if metadata.total_items else 1

    _err.print(f"[bold]Refreshing {kind.value}...[/bold]")
    result = await service.refresh_partial(kind)
    count = len(result) if isinstance(result, list) else int(result is not None)
    _err.print(f"[green]✓ {count} {kind.value} cached[/green]")
    return 0 if count else 1


def run_stats() -> int:
    """Print a table of cached entries and the refresh metadata."""
    store = DiskCacheStore()
    table = Table(
        title="Cache Entries",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Kind", style="bold")
    table.add_column("Items", justify="right")
    table.add_column("Last updated", style="dim")
    table.add_column("Status", justify="center")

    for kind in ResourceKind:
        entry = store.read_entry(kind.value)
        if entry is None:
            table.add_row(kind.value, "—", "—", "[red]missing[/red]")
            continue
        data = entry.get("data")
        items = len(data) if isinstance(data, list) else 1
        last_updated = str(entry.get("lastUpdated", ""))
        expiry = int(entry.get("expiry") or store.default_expiry)
        status = (
            "[yellow]stale[/yellow]"
            if store.is_expired(last_updated, expiry)
            else "[green]fresh[/green]"
        )
        table.add_row(kind.value, str(items), last_updated, status)

    Console().print(table)

    metadata = store.read_raw(METADATA_KEY)
    if isinstance(metadata, dict):
        _err.print(
            f"[dim]Last full refresh: {metadata.get('last_full_refresh', '—')}"
            f"  partial: {metadata.get('last_partial_refresh', '—')}"
            f"  version: {metadata.get('version', '—')}[/dim]"
        )
    return 0


def run_clear(kind_name: str | None) -> int:
    store = DiskCacheStore()
    kind = resolve_kind(kind_name)
    if kind is None:
        removed = store.clear()
        _err.print(f"[green]✓ Cleared {removed} cache file(s)[/green]")
    else:
        store.invalidate(kind.value)
        _err.print(f"[green]✓ Cleared {kind.value}[/green]")
    return 0


def run_images_cleanup(max_age_days: int) -> int:
    cache = ImageCache()
    removed = cache.cleanup(timedelta(days=max_age_days))
    _err.print(
        f"[green]✓ Removed {removed} image(s) unused for"
        f" {max_age_days} day(s)[/green]"
    )
    return 0


def run_images_stats() -> int:
    stats = ImageCache().stats()
    table = Table(title="Image Cache", title_style="bold cyan")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Images", f"{stats.total_images:,}")
    table.add_row("Size", f"{stats.total_size / 1024 / 1024:,.2f} MB")
    table.add_row("Hits", f"{stats.cache_hits:,}")
    table.add_row("Misses", f"{stats.cache_misses:,}")
    table.add_row("Download errors", f"{stats.download_errors:,}")
    table.add_row("Last cleanup", stats.last_cleanup or "—")
    Console().print(table)
    return 0


async def run_health_check() -> int:
    """Probe the origin APIs and report WooCommerce availability."""
    from src.services.health_checker import HealthChecker

    _err.print("[bold]Running origin health check...[/bold]")
    checker = HealthChecker()
    results = await checker.check_all()

    table = Table(
        title="Origin Health Check",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Endpoint", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Latency", justify="right")
    table.add_column("Notes", style="dim")

    any_down = False
    for r in results:
        if r.status == "ok":
            status = "[green]✅ OK[/green]"
        elif r.status == "slow":
            status = "[yellow]⚠️  SLOW[/yellow]"
        else:
            status = "[red]❌ DOWN[/red]"
            any_down = True

        latency = (
            f"{r.latency_ms:.0f}ms"
            if r.latency_ms > 0
            else "—"
        )
        table.add_row(
            r.source_id, status, latency, r.message,
        )

    Console().print(table)

    store = await checker.store_status()
    if store.is_available:
        _err.print("[green]WooCommerce store is available[/green]")
    else:
        _err.print(f"[yellow]WooCommerce unavailable: {store.message}[/yellow]")
    return 1 if any_down else 0


async def run_webhook_replay(path: str) -> int:
    """Apply a saved webhook body (or ``{body, headers}`` capture) locally.

    Signatures are not checked; the file is trusted operator input.
    """
    file_path = Path(path)
    try:
        raw = json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        _err.print(f"[red]Cannot read webhook file: {exc}[/red]")
        return 1

    headers: dict[str, str] = {}
    body = raw
    if isinstance(raw, dict) and "body" in raw and "headers" in raw:
        headers = {str(k): str(v) for k, v in dict(raw["headers"]).items()}
        body = raw["body"]

    service = build_cache_service(with_images=False)
    handler = WebhookHandler(service)
    payload = handler.parse_payload(json.dumps(body).encode("utf-8"), headers)
    result = await handler.handle(payload)

    colour = "green" if result.success else "red"
    _err.print(f"[{colour}]{result.message}[/{colour}]")
    return 0 if result.success else 1
