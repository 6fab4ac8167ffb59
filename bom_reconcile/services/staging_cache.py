from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from ..models.row import ClassifiedRow
from ..models.run_context import RunContext

"""Staging cache for the Phase 1 -> Phase 3 hand-off.

The cache is an optimization only. Phase 3 asks it for the classified row
set and, on a miss (expired, evicted, never written, unreadable), re-derives
the rows from the source file instead. Keys are scoped by namespace and run
id, so concurrent runs never share entries and no locking is needed beyond
each backend's own bookkeeping.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "STAGING_TTL_SECONDS",
    "StagingCache",
    "InMemoryTTLCache",
    "FileTTLCache",
    "stage_run",
    "load_staged_rows",
]

STAGING_TTL_SECONDS = 7200

ALL_ROWS_KEY = "ALL_ROWS"
RUN_CONFIG_KEY = "RUN_CONFIG"


class StagingCache(Protocol):
    def put(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def get(self, key: str) -> str | None: ...


class InMemoryTTLCache:
    """Process-local TTL cache. ``clock`` is injectable for tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, str]] = {}

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + ttl_seconds, value)

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value


class FileTTLCache:
    """Directory-backed TTL cache; entries survive the process.

    One JSON file per key: {"expires_at": <epoch seconds>, "value": <str>}.
    Every put sweeps expired entries, so a directory shared by many runs
    holds at most the entries of runs younger than the TTL.
    """

    def __init__(self, directory: Path, clock: Callable[[], float] = time.time) -> None:
        self.directory = directory
        self._clock = clock

    def _path(self, key: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.json"

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = {"key": key, "expires_at": self._clock() + ttl_seconds, "value": value}
        tmp = self._path(key).with_suffix(".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self._path(key))
        self.sweep()

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None
        if self._clock() >= payload.get("expires_at", 0):
            path.unlink(missing_ok=True)
            return None
        return payload.get("value")

    def sweep(self) -> int:
        """Delete expired or unreadable entry files and return how many went."""
        now = self._clock()
        removed = 0
        for path in self.directory.glob("*.json"):
            try:
                expires_at = json.loads(path.read_text(encoding="utf-8")).get("expires_at", 0)
            except (OSError, json.JSONDecodeError, AttributeError):
                expires_at = 0
            if now >= expires_at:
                path.unlink(missing_ok=True)
                removed += 1
        if removed:
            logger.debug("staging cache swept expired=%d dir=%s", removed, self.directory)
        return removed


def stage_run(cache: StagingCache, ctx: RunContext, rows: list[ClassifiedRow]) -> bool:
    """Stage the run config and the complete row set for Phase 3.

    Args:
        cache: Staging cache backend
        ctx: Run context; entries are keyed by namespace and run id
        rows: Complete classified row set

    Returns:
        True when both entries were written, False when the cache refused.
        A refusal is logged and never raised.
    """
    try:
        cache.put(
            ctx.cache_key(RUN_CONFIG_KEY),
            json.dumps(
                {
                    "namespace": ctx.namespace,
                    "run_id": ctx.run_id,
                    "source_file": str(ctx.config.source_file),
                }
            ),
            STAGING_TTL_SECONDS,
        )
        cache.put(
            ctx.cache_key(ALL_ROWS_KEY),
            json.dumps([r.to_dict() for r in rows], ensure_ascii=False),
            STAGING_TTL_SECONDS,
        )
    except Exception as e:
        logger.warning("staging cache write failed (phase 3 will re-derive rows): %s", e)
        return False
    logger.debug("staged rows=%d key=%s", len(rows), ctx.cache_key(ALL_ROWS_KEY))
    return True


def load_staged_rows(
    cache: StagingCache, ctx: RunContext, rederive: Callable[[], list[ClassifiedRow]]
) -> list[ClassifiedRow]:
    """Return the staged row set for this run.

    Args:
        cache: Staging cache backend
        ctx: Run context whose entries were staged by stage_run
        rederive: Rebuilds the rows from the source file

    Returns:
        The staged rows, or ``rederive()`` when the entry is missing, expired,
        unreadable or the cache read raised
    """
    try:
        raw = cache.get(ctx.cache_key(ALL_ROWS_KEY))
    except Exception as e:
        logger.warning("staging cache read failed: %s", e)
        raw = None
    if raw is not None:
        try:
            return [ClassifiedRow.from_dict(d) for d in json.loads(raw)]
        except (ValueError, KeyError, TypeError, ArithmeticError) as e:
            logger.warning("staged rows unreadable, re-deriving: %s", e)
    else:
        logger.info("staging cache miss key=%s -> re-deriving rows from source", ctx.cache_key(ALL_ROWS_KEY))
    return rederive()
