"""Taxonomy grouping, pagination windows and A-Z letter groups."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Container, Iterable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from sitegen.config import TaxonomyConfig
from sitegen.entity import Entity, EntityIndex, slugify
from sitegen.overrides import OverrideTable

logger = logging.getLogger(__name__)

LETTER_SENTINEL = "#"
LETTER_SENTINEL_SLUG = "num"
ALL_ENTITIES_DIR = "all"
RESERVED_ENTRY_RE = re.compile(rf"^(?:index|letter-(?:{LETTER_SENTINEL_SLUG}|[a-z]))$")
PAGED_SLUG_RE = re.compile(r"^(?P<base>.+)-page-(?P<page>\d+)$")

T = TypeVar("T")


@dataclass(frozen=True)
class TaxonomyEntry:
    name: str
    slug: str
    entities: tuple[Entity, ...]

    @property
    def count(self) -> int:
        return len(self.entities)


@dataclass(frozen=True)
class LetterGroup:
    letter: str
    entries: tuple[TaxonomyEntry, ...]

    @property
    def slug(self) -> str:
        return letter_slug(self.letter)


@dataclass(frozen=True)
class Taxonomy:
    config: TaxonomyConfig
    entries: tuple[TaxonomyEntry, ...]
    letter_groups: tuple[LetterGroup, ...]

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def label(self) -> str:
        return self.config.label

    @property
    def label_singular(self) -> str:
        return self.config.label_singular or self.config.label

    @property
    def show_letter_pages(self) -> bool:
        return len(self.entries) >= self.config.letter_page_threshold

    @property
    def index_url(self) -> str:
        return taxonomy_index_url(self.name)

    def find_entry(self, slug: str) -> TaxonomyEntry | None:
        for entry in self.entries:
            if entry.slug == slug:
                return entry
        return None


@dataclass(frozen=True)
class PageLink:
    number: int
    url: str


@dataclass(frozen=True)
class PaginationWindow:
    current_page: int
    total_pages: int
    total_items: int
    start_index: int
    end_index: int
    prev_url: str | None
    next_url: str | None
    page_urls: tuple[PageLink, ...]

    @property
    def size(self) -> int:
        return self.end_index - self.start_index

    def slice(self, items: Sequence[T]) -> list[T]:
        return list(items[self.start_index : self.end_index])


def resolve_taxonomy_values(
    entity: Entity,
    config: TaxonomyConfig,
    overrides: OverrideTable | None = None,
) -> list[str]:
    """Return the raw grouping values for ``entity``.

    A non-empty override always wins over the entity's own field.
    """
    if config.override_field and overrides is not None:
        override_values = overrides.values_for(entity.slug, config.override_field)
        if override_values:
            return override_values

    value = entity.fields.get(config.field)
    if value is None:
        return []
    if config.multi_value:
        if isinstance(value, str):
            return [value]
        if isinstance(value, tuple):
            return [item for item in value if isinstance(item, str)]
        return []
    if isinstance(value, str) and value:
        return [value]
    return []


def is_reserved_entry_slug(slug: str, slugs: Container[str]) -> bool:
    """True when an entry's hub URL would land on another page of its taxonomy.

    ``index`` is the taxonomy index, ``letter-<x>`` a letter page and
    ``<other>-page-<n>`` a later page of the ``other`` hub.
    """
    if RESERVED_ENTRY_RE.match(slug):
        return True
    paged = PAGED_SLUG_RE.match(slug)
    return paged is not None and int(paged.group("page")) >= 2 and paged.group("base") in slugs


def build_taxonomy(
    entities: Iterable[Entity],
    config: TaxonomyConfig,
    overrides: OverrideTable | None = None,
) -> Taxonomy:
    names: dict[str, str] = {}
    members: dict[str, list[Entity]] = {}

    for entity in entities:
        seen: set[str] = set()
        for value in resolve_taxonomy_values(entity, config, overrides):
            slug = slugify(value)
            if not slug or slug in seen:
                continue
            seen.add(slug)
            # First occurrence fixes the display name.
            names.setdefault(slug, value)
            members.setdefault(slug, []).append(entity)

    kept = {slug for slug in members if len(members[slug]) >= config.min_entities}
    dropped = len(members) - len(kept)
    if dropped:
        logger.debug(
            "Taxonomy %s: dropped %d entries below min_entities=%d",
            config.name,
            dropped,
            config.min_entities,
        )
    for slug in sorted(slug for slug in kept if is_reserved_entry_slug(slug, kept)):
        logger.warning("Taxonomy %s: entry %s collides with a taxonomy page; skipping", config.name, slug)
        kept.discard(slug)

    entries = tuple(
        TaxonomyEntry(name=names[slug], slug=slug, entities=tuple(members[slug])) for slug in sorted(kept)
    )
    return Taxonomy(config=config, entries=entries, letter_groups=tuple(group_by_letter(entries)))


def build_taxonomies(
    index: EntityIndex,
    configs: Iterable[TaxonomyConfig],
    overrides: OverrideTable | None = None,
) -> list[Taxonomy]:
    taxonomies: list[Taxonomy] = []
    for config in configs:
        taxonomy = build_taxonomy(index, config, overrides)
        logger.info("Taxonomy %s: %d entries", taxonomy.name, len(taxonomy.entries))
        taxonomies.append(taxonomy)
    return taxonomies


def total_pages(count: int, page_size: int) -> int:
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return max(1, -(-count // page_size))


def compute_pagination(
    count: int,
    page: int,
    page_size: int,
    url_for: Callable[[int], str],
) -> PaginationWindow:
    pages = total_pages(count, page_size)
    if page < 1 or page > pages:
        raise ValueError(f"page {page} is outside 1..{pages}")

    start = (page - 1) * page_size
    end = min(start + page_size, count)
    return PaginationWindow(
        current_page=page,
        total_pages=pages,
        total_items=count,
        start_index=start,
        end_index=end,
        prev_url=url_for(page - 1) if page > 1 else None,
        next_url=url_for(page + 1) if page < pages else None,
        page_urls=tuple(PageLink(number=number, url=url_for(number)) for number in range(1, pages + 1)),
    )


def hub_page_url(taxonomy_name: str, entry_slug: str, page: int = 1) -> str:
    if page == 1:
        return f"/{taxonomy_name}/{entry_slug}.html"
    return f"/{taxonomy_name}/{entry_slug}-page-{page}.html"


def compute_hub_pagination(
    taxonomy_name: str,
    entry: TaxonomyEntry,
    page: int,
    page_size: int,
) -> PaginationWindow:
    return compute_pagination(
        entry.count,
        page,
        page_size,
        lambda number: hub_page_url(taxonomy_name, entry.slug, number),
    )


def all_entities_page_url(page: int = 1) -> str:
    if page == 1:
        return f"/{ALL_ENTITIES_DIR}/index.html"
    return f"/{ALL_ENTITIES_DIR}/page-{page}.html"


def taxonomy_index_url(taxonomy_name: str) -> str:
    return f"/{taxonomy_name}/"


def letter_bucket(name: str) -> str:
    if not name:
        return LETTER_SENTINEL
    # Some characters upper-case to several (ß -> SS); the bucket keeps one.
    first = name[0].upper()[0]
    if first.isalpha():
        return first
    return LETTER_SENTINEL


def letter_slug(letter: str) -> str:
    if letter == LETTER_SENTINEL:
        return LETTER_SENTINEL_SLUG
    return letter.lower()


def letter_page_url(taxonomy_name: str, letter: str) -> str:
    return f"/{taxonomy_name}/letter-{letter_slug(letter)}.html"


def group_by_letter(entries: Iterable[TaxonomyEntry]) -> list[LetterGroup]:
    """Partition entries by the upper-cased first character of their display name.

    Non-letters share the ``#`` bucket. Buckets sort lexically by label and each
    keeps the entries' incoming order.
    """
    buckets: dict[str, list[TaxonomyEntry]] = {}
    for entry in entries:
        buckets.setdefault(letter_bucket(entry.name), []).append(entry)
    return [LetterGroup(letter=letter, entries=tuple(buckets[letter])) for letter in sorted(buckets)]


def top_entries(entries: Sequence[TaxonomyEntry], limit: int | None = None) -> list[TaxonomyEntry]:
    ranked = sorted(entries, key=lambda entry: entry.count, reverse=True)
    if limit is None:
        return ranked
    return ranked[: max(limit, 0)]
