"""Per-run response cache with in-flight request sharing"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple


logger = logging.getLogger(__name__)

_MISSING = object()


def make_key(service: str, operation: str, *parts: Any) -> Tuple:
    """Build a normalized cache key.

    String parts are case-folded and whitespace-collapsed so that
    "Daft Punk" and " daft  punk" share one entry.

    Args:
        service: Service family name
        operation: Operation name, e.g. "artist.getSimilar"
        *parts: Query arguments

    Returns:
        Hashable cache key
    """
    normalized = []
    for part in parts:
        if isinstance(part, str):
            normalized.append(" ".join(part.split()).casefold())
        elif isinstance(part, (list, tuple)):
            normalized.append(tuple(part))
        else:
            normalized.append(part)
    return (service, operation, *normalized)


class RunCache:
    """Key/value store whose lifetime is one pipeline invocation.

    Besides completed responses it tracks in-flight requests, so a second
    caller asking for the same key awaits the first request instead of
    issuing a duplicate.
    """

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id
        self._values: Dict[Hashable, Any] = {}
        self._inflight: Dict[Hashable, "asyncio.Future[Any]"] = {}
        self.hits = 0
        self.inflight_hits = 0
        self.misses = 0
        self.closed = False

    def __contains__(self, key: Hashable) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def is_inflight(self, key: Hashable) -> bool:
        return key in self._inflight

    def get(self, key: Hashable, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: Hashable, value: Any) -> None:
        if self.closed:
            logger.debug("Ignoring write to closed run cache: %s", key)
            return
        self._values[key] = value

    async def get_or_fetch(
        self,
        key: Hashable,
        fetch: Callable[[], Awaitable[Any]],
        should_cache: Callable[[Any], bool] = lambda value: True,
    ) -> Any:
        """Return a cached value, join an in-flight fetch, or start one.

        Args:
            key: Normalized query key
            fetch: Zero-argument coroutine factory producing the value
            should_cache: Predicate deciding whether a result is stored

        Returns:
            Cached or freshly fetched value
        """
        value = self._values.get(key, _MISSING)
        if value is not _MISSING:
            self.hits += 1
            return value

        pending = self._inflight.get(key)
        if pending is not None:
            self.inflight_hits += 1
            return await asyncio.shield(pending)

        self.misses += 1
        loop = asyncio.get_running_loop()
        future: "asyncio.Future[Any]" = loop.create_future()
        self._inflight[key] = future
        try:
            result = await fetch()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Retrieve so an unawaited failure is not reported as unhandled
            future.exception()
            raise
        else:
            if should_cache(result):
                self.set(key, result)
            future.set_result(result)
            return result
        finally:
            self._inflight.pop(key, None)

    def stats(self) -> Dict[str, int]:
        return {
            "entries": len(self._values),
            "hits": self.hits,
            "inflight_hits": self.inflight_hits,
            "misses": self.misses,
        }

    def clear(self) -> None:
        """Drop every entry and stop accepting writes."""
        self._values.clear()
        self._inflight.clear()
        self.closed = True
