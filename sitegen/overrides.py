"""Read-only enrichment override table keyed by entity slug."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from pydantic import ConfigDict, Field, ValidationError

from sitegen.schemas import OVERRIDE_PATH_SEPARATOR, SiteBaseModel

logger = logging.getLogger(__name__)


class OverrideCacheEntry(SiteBaseModel):
    model_config = ConfigDict(extra="ignore")

    content_hash: str = Field(default="", alias="contentHash")
    enrichment: dict[str, Any] = Field(default_factory=dict)
    timestamp: str = ""


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({str(key): _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


class OverrideTable(Mapping[str, Mapping[str, Any]]):
    """Slug -> enrichment data. Absence of a slug means "no override"."""

    def __init__(self, data: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._data: Mapping[str, Mapping[str, Any]] = MappingProxyType(
            {slug: _freeze(payload) for slug, payload in (data or {}).items()}
        )

    def __getitem__(self, slug: str) -> Mapping[str, Any]:
        return self._data[slug]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def values_for(self, slug: str, path: str | None) -> list[str]:
        if not path:
            return []
        data = self._data.get(slug)
        if data is None:
            return []
        return extract_override_values(data, path)


def _to_strings(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [item for item in value if isinstance(item, str)]
    return []


def extract_override_values(data: Mapping[str, Any], path: str) -> list[str]:
    """Resolve ``container[].field`` or a plain key against one enrichment record.

    The two-part form collects the non-empty string ``field`` of every mapping in
    the ``container`` list. A plain key yields a string or the strings of a list.
    """
    if OVERRIDE_PATH_SEPARATOR not in path:
        return _to_strings(data.get(path))

    container, _, sub_field = path.partition(OVERRIDE_PATH_SEPARATOR)
    items = data.get(container)
    if not isinstance(items, (list, tuple)):
        return []

    values: list[str] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        value = item.get(sub_field)
        if isinstance(value, str) and value:
            values.append(value)
    return values


def read_override_file(path: Path) -> dict[str, Any] | None:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Skipping override cache %s: %s", path.name, exc)
        return None
    try:
        entry = OverrideCacheEntry.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Skipping override cache %s: %s", path.name, exc.errors()[0]["msg"])
        return None
    return entry.enrichment


def load_override_table(overrides_dir: Path | None) -> OverrideTable:
    if overrides_dir is None:
        return OverrideTable()
    if not overrides_dir.is_dir():
        logger.warning("Override directory %s not found; continuing without overrides", overrides_dir.as_posix())
        return OverrideTable()

    try:
        paths = sorted(path for path in overrides_dir.iterdir() if path.is_file() and path.suffix == ".json")
    except OSError as exc:
        logger.warning("Unable to list override directory %s: %s", overrides_dir.as_posix(), exc)
        return OverrideTable()

    data: dict[str, dict[str, Any]] = {}
    for path in paths:
        enrichment = read_override_file(path)
        if enrichment is not None:
            data[path.stem] = enrichment
    logger.info("Loaded %d override records from %s", len(data), overrides_dir.as_posix())
    return OverrideTable(data)
