"""Content records and the per-build slug index."""

from __future__ import annotations

import datetime as _dt
import logging
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Union

from sitegen.errors import DuplicateSlugError
from sitegen.schemas import DuplicateSlugPolicy

logger = logging.getLogger(__name__)

NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")

Scalar = Union[str, int, float, bool]
FieldValue = Union[Scalar, tuple[str, ...], tuple[Mapping[str, Any], ...]]


def slugify(value: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to a hyphen, trim hyphens."""
    return NON_ALNUM_RE.sub("-", value.lower()).strip("-")


@dataclass(frozen=True)
class FAQ:
    question: str
    answer: str


def _freeze_mapping(value: Mapping[str, Any]) -> Mapping[str, Any]:
    frozen: dict[str, Any] = {}
    for key, item in value.items():
        normalized = normalize_field_value(item)
        if normalized is not None:
            frozen[str(key)] = normalized
    return MappingProxyType(frozen)


def normalize_field_value(value: Any) -> FieldValue | None:
    """Coerce a loosely typed front-matter value into one of the supported variants.

    Supported variants are str, int, float, bool, a tuple of strings and a tuple of
    read-only records. A lone mapping becomes a one-record tuple and
    dates become ISO strings. Anything else is dropped (None).
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, str)):
        return value
    if isinstance(value, (_dt.date, _dt.datetime)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return (_freeze_mapping(value),)
    if isinstance(value, (list, tuple)):
        if value and all(isinstance(item, Mapping) for item in value):
            return tuple(_freeze_mapping(item) for item in value)
        items: list[str] = []
        for item in value:
            if item is None or isinstance(item, (Mapping, list, tuple)):
                continue
            if isinstance(item, (_dt.date, _dt.datetime)):
                items.append(item.isoformat())
            elif isinstance(item, bool):
                items.append("true" if item else "false")
            else:
                items.append(str(item))
        return tuple(items)
    return None


SectionValue = Union[str, tuple[str, ...], tuple[FAQ, ...]]


@dataclass(frozen=True, eq=False)
class Entity:
    slug: str
    fields: Mapping[str, FieldValue] = field(default_factory=lambda: MappingProxyType({}))
    sections: Mapping[str, SectionValue] = field(default_factory=lambda: MappingProxyType({}))
    body: str = ""
    source_path: Path | None = None

    @classmethod
    def create(
        cls,
        slug: str,
        fields: Mapping[str, Any] | None = None,
        sections: Mapping[str, Any] | None = None,
        *,
        body: str = "",
        source_path: Path | None = None,
    ) -> "Entity":
        normalized_fields: dict[str, FieldValue] = {}
        for key, value in (fields or {}).items():
            normalized = normalize_field_value(value)
            if normalized is not None:
                normalized_fields[str(key)] = normalized

        normalized_sections: dict[str, SectionValue] = {}
        for key, value in (sections or {}).items():
            if isinstance(value, str):
                normalized_sections[str(key)] = value
            elif isinstance(value, (list, tuple)):
                normalized_sections[str(key)] = tuple(value)

        return cls(
            slug=slug,
            fields=MappingProxyType(normalized_fields),
            sections=MappingProxyType(normalized_sections),
            body=body,
            source_path=source_path,
        )

    def get_str(self, key: str, default: str = "") -> str:
        value = self.fields.get(key)
        if isinstance(value, str):
            return value
        return default

    def get_str_list(self, key: str) -> list[str]:
        value = self.fields.get(key)
        if isinstance(value, tuple):
            return [item for item in value if isinstance(item, str)]
        return []

    def get_records(self, key: str) -> list[Mapping[str, Any]]:
        value = self.fields.get(key)
        if isinstance(value, tuple):
            return [item for item in value if isinstance(item, Mapping)]
        return []

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.fields.get(key)
        if isinstance(value, bool):
            return default
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value)
        return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self.fields.get(key)
        if isinstance(value, bool):
            return default
        if isinstance(value, (int, float)):
            return float(value)
        return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.fields.get(key)
        if isinstance(value, bool):
            return value
        return default

    def has_field(self, key: str) -> bool:
        value = self.fields.get(key)
        if value is None:
            return False
        if isinstance(value, (str, tuple)):
            return len(value) > 0
        return True

    def get_section_items(self, name: str) -> list[str]:
        value = self.sections.get(name)
        if isinstance(value, tuple):
            return [item for item in value if isinstance(item, str)]
        return []

    def get_section_text(self, name: str) -> str:
        value = self.sections.get(name)
        if isinstance(value, str):
            return value
        return ""

    def get_faqs(self, name: str = "faqs") -> list[FAQ]:
        value = self.sections.get(name)
        if isinstance(value, tuple):
            return [item for item in value if isinstance(item, FAQ)]
        return []


def _source_label(entity: Entity) -> str:
    if entity.source_path is None:
        return f"<{entity.slug}>"
    return entity.source_path.as_posix()


class EntityIndex:
    """Read-only, slug-keyed view over every entity loaded for one build.

    Iteration follows load order, which is the deterministic default ordering for
    listings. Nothing is added, removed or replaced after construction.
    """

    def __init__(self, by_slug: Mapping[str, Entity]) -> None:
        self._by_slug: Mapping[str, Entity] = MappingProxyType(dict(by_slug))
        self._ordered: tuple[Entity, ...] = tuple(self._by_slug.values())
        self.skipped_duplicates: tuple[str, ...] = ()

    @classmethod
    def from_entities(
        cls,
        entities: Iterable[Entity],
        *,
        duplicate_policy: DuplicateSlugPolicy = DuplicateSlugPolicy.skip,
        reserved_slugs: Iterable[str] = (),
    ) -> "EntityIndex":
        """Index ``entities`` by slug.

        Slugs in ``reserved_slugs`` belong to site pages (the homepage, static
        pages) and are skipped with a warning.
        """
        reserved = frozenset(reserved_slugs)
        by_slug: dict[str, Entity] = {}
        skipped: list[str] = []
        for entity in entities:
            if entity.slug in reserved:
                logger.warning(
                    "Slug %s is reserved for a site page; skipping %s",
                    entity.slug,
                    _source_label(entity),
                )
                continue
            existing = by_slug.get(entity.slug)
            if existing is None:
                by_slug[entity.slug] = entity
                continue

            if duplicate_policy == DuplicateSlugPolicy.error:
                raise DuplicateSlugError(
                    slug=entity.slug,
                    first_source=_source_label(existing),
                    duplicate_source=_source_label(entity),
                )
            if duplicate_policy == DuplicateSlugPolicy.overwrite:
                logger.warning(
                    "Duplicate slug %s: %s replaces %s",
                    entity.slug,
                    _source_label(entity),
                    _source_label(existing),
                )
                by_slug[entity.slug] = entity
            else:
                logger.warning(
                    "Duplicate slug %s: skipping %s (keeping %s)",
                    entity.slug,
                    _source_label(entity),
                    _source_label(existing),
                )
                skipped.append(entity.slug)

        index = cls(by_slug)
        index.skipped_duplicates = tuple(skipped)
        return index

    def __len__(self) -> int:
        return len(self._ordered)

    def __iter__(self) -> Iterator[Entity]:
        return iter(self._ordered)

    def __contains__(self, slug: object) -> bool:
        return slug in self._by_slug

    def get(self, slug: str) -> Entity | None:
        return self._by_slug.get(slug)

    def resolve(self, slugs: Iterable[str]) -> list[Entity]:
        """Map slugs to entities, silently dropping unknown slugs."""
        resolved: list[Entity] = []
        for slug in slugs:
            entity = self._by_slug.get(slug)
            if entity is not None:
                resolved.append(entity)
        return resolved

    @property
    def entities(self) -> tuple[Entity, ...]:
        return self._ordered

    @property
    def slugs(self) -> list[str]:
        return [entity.slug for entity in self._ordered]
