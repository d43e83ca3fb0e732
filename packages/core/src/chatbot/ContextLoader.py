"""Cached loader for the biography document the assistant answers from."""

import logging
import os
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60

REFRESH_POLICIES = ("ttl", "mtime")


def default_context_paths() -> list[Path]:
    """Candidate locations relative to the working directory, in order."""
    cwd = Path.cwd()
    return [
        cwd / "public" / "context.md",
        cwd.parent / "public" / "context.md",
        cwd / "context.md",
    ]


@dataclass
class CachedContext:
    """The single cached copy of the biography.

    Attributes:
        content: Text served to the chat relay.
        loaded_at: Clock reading when the slot was last filled.
        source: File the content was read from, or ``None`` if ``content``
            is the fallback.
        mtime: Modification time of ``source`` when it was read.
    """

    content: str
    loaded_at: float
    source: Path | None = None
    mtime: float | None = None


class ContextLoader:
    """Read the biography from disk and serve it from a single cached slot.

    Two refresh policies are supported:

    * ``ttl`` reloads only after ``ttl_seconds`` have elapsed.
    * ``mtime`` reloads whenever the file's modification time advances.

    When no candidate path can be read, ``fallback`` is cached and the
    filesystem is left alone until ``ttl_seconds`` have elapsed, whatever the
    policy.  :meth:`get` never raises and never returns an empty string.
    """

    def __init__(
        self,
        paths: Sequence[str | os.PathLike],
        fallback: str,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        policy: str = "ttl",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if policy not in REFRESH_POLICIES:
            raise ValueError(
                f"Unknown context refresh policy '{policy}'. "
                f"Expected one of: {', '.join(REFRESH_POLICIES)}"
            )
        if not fallback:
            raise ValueError("Fallback context must not be empty.")

        self._paths = [Path(p) for p in paths]
        self._fallback = fallback
        self._ttl = ttl_seconds
        self._policy = policy
        self._clock = clock
        self._cached: CachedContext | None = None
        self._lock = threading.Lock()

    @property
    def cached(self) -> CachedContext | None:
        """The current cache slot, mostly useful for diagnostics."""
        return self._cached

    def get(self) -> str:
        """Return the biography text, reloading it when the cache is stale."""
        with self._lock:
            now = self._clock()
            cached = self._cached

            if cached is not None and not self._is_stale(cached, now):
                return cached.content

            self._cached = self._load(now)
            return self._cached.content

    def invalidate(self) -> None:
        """Drop the cached copy so the next :meth:`get` reads from disk."""
        with self._lock:
            self._cached = None

    def _is_stale(self, cached: CachedContext, now: float) -> bool:
        expired = now - cached.loaded_at >= self._ttl
        if self._policy == "ttl" or cached.source is None:
            return expired

        try:
            return cached.source.stat().st_mtime > cached.mtime
        except OSError:
            return True

    def _load(self, now: float) -> CachedContext:
        for path in self._paths:
            try:
                mtime = path.stat().st_mtime
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.debug("Context not readable at %s: %s", path, e)
                continue

            if not content.strip():
                logger.warning("Context file %s is empty, skipping", path)
                continue

            logger.info("Context loaded from %s (%d chars)", path, len(content))
            return CachedContext(
                content=content, loaded_at=now, source=path, mtime=mtime
            )

        logger.error(
            "Context file not found in any expected location: %s. "
            "Serving fallback context.",
            ", ".join(str(p) for p in self._paths),
        )
        return CachedContext(content=self._fallback, loaded_at=now)
