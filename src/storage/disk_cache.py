# src/storage/disk_cache.py

"""File-backed key/JSON cache with per-entry expiry.

Each key lives in ``<cache_dir>/<key>.json`` as
``{"data": ..., "lastUpdated": <ISO-8601>, "expiry": <minutes>}``.
Writes replace the whole file through a temp file + ``os.replace`` so a
reader never observes a half-written entry.
"""

import json
import logging
import os
import tempfile
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from src.config.settings import Settings
from src.models.cache_models import CacheStats

logger = logging.getLogger("storefront.cache")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


def parse_iso(value: str) -> datetime | None:
    """Parse an ISO timestamp (``Z`` suffix allowed) as an aware datetime."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def atomic_write_json(path: Path, payload: Any) -> None:
    """Serialise *payload* next to *path*, then rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_json(path: Path) -> Any:
    """Load JSON from *path*; missing or corrupt files yield ``None``."""
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        logger.warning("Unreadable cache file %s: %s", path, exc)
        return None


class DiskCacheStore:
    """Key → JSON cache on disk.

    ``get`` returns ``None`` both on a miss and on a stale entry; it never
    raises.  When ``enabled`` is False every ``get`` is a miss and ``set``
    does nothing, while :meth:`read_raw` / :meth:`write_raw` keep working
    for the webhook path.
    """

    def __init__(
        self,
        cache_dir: Path = Settings.CACHE_DIR,
        default_expiry: int = Settings.CACHE_EXPIRY_MINUTES,
        enabled: bool = Settings.ENABLE_CACHE,
        clock: Clock = utc_now,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.default_expiry = default_expiry
        self.enabled = enabled
        self.clock = clock
        self._stats = CacheStats(last_refresh=iso(clock()))

    def path_for(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def _record(self, hit: bool) -> None:
        s = self._stats
        s.total_requests += 1
        if hit:
            s.cache_hits += 1
        else:
            s.cache_misses += 1
        s.hit_rate = s.cache_hits / s.total_requests

    def is_expired(self, last_updated: str, expiry_minutes: int) -> bool:
        written = parse_iso(last_updated)
        if written is None:
            return True
        age_minutes = (self.clock() - written).total_seconds() / 60
        return age_minutes > expiry_minutes

    def get(self, key: str, expiry_minutes: int | None = None) -> Any:
        """Return the cached data for *key*, or ``None`` if absent/stale."""
        if not self.enabled:
            self._record(False)
            return None

        entry = read_json(self.path_for(key))
        if not isinstance(entry, dict) or "data" not in entry:
            self._record(False)
            return None

        expiry = expiry_minutes or self.default_expiry
        if self.is_expired(str(entry.get("lastUpdated", "")), expiry):
            logger.debug("Cache entry '%s' is stale", key)
            self._record(False)
            return None

        self._record(True)
        return entry["data"]

    def set(self, key: str, data: Any, expiry_minutes: int | None = None) -> None:
        if not self.enabled:
            return
        try:
            self.write_raw(key, data, expiry_minutes)
        except OSError as exc:
            logger.error("Failed to cache data for key %s: %s", key, exc)

    def read_entry(self, key: str) -> dict[str, Any] | None:
        """The whole ``{data, lastUpdated, expiry}`` record, if readable."""
        entry = read_json(self.path_for(key))
        if isinstance(entry, dict) and "data" in entry:
            return entry
        return None

    def read_raw(self, key: str) -> Any:
        """Stored data regardless of expiry or the enabled flag."""
        entry = self.read_entry(key)
        return entry.get("data") if entry is not None else None

    def write_raw(
        self, key: str, data: Any, expiry_minutes: int | None = None
    ) -> None:
        """Write *data* regardless of the enabled flag."""
        atomic_write_json(
            self.path_for(key),
            {
                "data": data,
                "lastUpdated": iso(self.clock()),
                "expiry": expiry_minutes or self.default_expiry,
            },
        )

    def restore_entry(self, key: str, entry: dict[str, Any]) -> None:
        """Put back a record from :meth:`read_entry` with its timestamp."""
        atomic_write_json(self.path_for(key), entry)

    def invalidate(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)

    def clear(self) -> int:
        """Delete every ``*.json`` entry; returns how many were removed."""
        if not self.cache_dir.exists():
            logger.info("Cache directory does not exist, nothing to clear")
            return 0
        files = list(self.cache_dir.glob("*.json"))
        for path in files:
            path.unlink(missing_ok=True)
        logger.info("Cleared %d cache file(s)", len(files))
        return len(files)

    def mark_refreshed(self, when: str) -> None:
        self._stats.last_refresh = when

    def stats(self) -> CacheStats:
        s = self._stats
        return CacheStats(
            total_requests=s.total_requests,
            cache_hits=s.cache_hits,
            cache_misses=s.cache_misses,
            last_refresh=s.last_refresh,
            hit_rate=s.hit_rate,
        )
