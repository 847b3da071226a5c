"""
In-process cache of rendered views.

Rendered HTML for a path is cached per variant key (usually the viewer's
organization). Mutations call revalidate_path() so the next request renders
fresh data.

Each path carries a generation number that revalidate_path() increments. A
render stores its result only if the generation it started under is still
current, so a render that read rows before a mutation is never cached after
the mutation's invalidation.
"""

import threading
from typing import Callable, Dict


class ViewCache:
    """Cache of rendered views keyed by path, then by variant key."""

    def __init__(self):
        self._cache: Dict[str, Dict[str, str]] = {}  # {path: {key: html}}
        self._generations: Dict[str, int] = {}
        self._lock = threading.Lock()

    def get_or_render(self, path: str, key: str, render: Callable[[], str]) -> str:
        """
        Return the cached view for (path, key), rendering it on a miss.

        The render callable runs outside the lock. If the path is
        revalidated while it runs, the result is returned to this caller
        but not cached.
        """
        with self._lock:
            cached = self._cache.get(path, {}).get(key)
            generation = self._generations.get(path, 0)
        if cached is not None:
            return cached

        html = render()
        with self._lock:
            if self._generations.get(path, 0) == generation:
                self._cache.setdefault(path, {})[key] = html
        return html

    def revalidate_path(self, path: str) -> None:
        """Drop every cached variant of a path."""
        with self._lock:
            self._cache.pop(path, None)
            self._generations[path] = self._generations.get(path, 0) + 1

    def is_cached(self, path: str, key: str) -> bool:
        with self._lock:
            return key in self._cache.get(path, {})

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


_view_cache = ViewCache()


def get_view_cache() -> ViewCache:
    """Get the global view cache instance."""
    return _view_cache
