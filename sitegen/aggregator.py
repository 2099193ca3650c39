"""Thread-safe accumulation of sitemap entries and feed category membership."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass

from sitegen.entity import Entity


@dataclass(frozen=True)
class SitemapEntry:
    loc: str
    lastmod: str = ""
    priority: str = ""
    changefreq: str = ""


@dataclass(frozen=True)
class CategoryMembers:
    slug: str
    name: str
    entities: tuple[Entity, ...]


def sitemap_loc(base_url: str, path: str) -> str:
    if path == "/":
        return f"{base_url}/"
    return f"{base_url}{path}".rstrip("/")


class OutputAggregator:
    """Collects per-page emissions from concurrent render workers.

    Every mutation happens inside one lock. ``close()`` is called once all workers
    have joined; snapshots taken before that are rejected.
    """

    def __init__(self, base_url: str, lastmod: str) -> None:
        self.base_url = base_url
        self.lastmod = lastmod
        self._lock = threading.Lock()
        self._sitemap: list[SitemapEntry] = []
        self._paths: set[str] = set()
        self._categories: dict[str, CategoryMembers] = {}
        self._closed = False

    def record_page(self, path: str, *, priority: str = "", changefreq: str = "") -> SitemapEntry:
        entry = SitemapEntry(
            loc=sitemap_loc(self.base_url, path),
            lastmod=self.lastmod,
            priority=priority,
            changefreq=changefreq,
        )
        with self._lock:
            if self._closed:
                raise RuntimeError("aggregator is closed")
            if path in self._paths:
                raise ValueError(f"page {path} was already recorded")
            self._paths.add(path)
            self._sitemap.append(entry)
        return entry

    def has_page(self, path: str) -> bool:
        with self._lock:
            return path in self._paths

    def record_category(self, slug: str, name: str, entities: Iterable[Entity]) -> None:
        members = CategoryMembers(slug=slug, name=name, entities=tuple(entities))
        with self._lock:
            if self._closed:
                raise RuntimeError("aggregator is closed")
            self._categories[slug] = members

    def close(self) -> None:
        with self._lock:
            self._closed = True

    @property
    def page_count(self) -> int:
        with self._lock:
            return len(self._sitemap)

    def sitemap_entries(self) -> list[SitemapEntry]:
        with self._lock:
            if not self._closed:
                raise RuntimeError("sitemap entries are only available after close()")
            return list(self._sitemap)

    def categories(self) -> list[CategoryMembers]:
        """Category memberships ordered by slug."""
        with self._lock:
            if not self._closed:
                raise RuntimeError("categories are only available after close()")
            return [self._categories[slug] for slug in sorted(self._categories)]
