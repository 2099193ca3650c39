"""Ancillary site outputs and optional side inputs."""

from __future__ import annotations

import json
import logging
import shutil
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from sitegen.config import SiteConfig
from sitegen.entity import Entity, EntityIndex
from sitegen.sitemap import SITEMAP_FILENAME
from sitegen.taxonomy import Taxonomy, hub_page_url

logger = logging.getLogger(__name__)

STANDARD_BOTS = ("Googlebot", "Bingbot")
SEARCH_INDEX_FILENAME = "search-index.json"
SEARCH_DESCRIPTION_LIMIT = 120


def robots_txt(config: SiteConfig) -> str:
    lines = ["User-agent: *"]
    if config.robots.allow_all:
        lines.append("Allow: /")
    lines.append("")

    for bot in (*STANDARD_BOTS, *config.robots.extra_bots):
        lines.extend([f"User-agent: {bot}", "Allow: /", ""])

    lines.append(f"Sitemap: {config.site.base_url}/{SITEMAP_FILENAME}")
    return "\n".join(lines) + "\n"


def llms_txt(config: SiteConfig, entities: Sequence[Entity], taxonomies: Sequence[Taxonomy]) -> str:
    base_url = config.site.base_url
    title_field = config.data.title_field
    description_field = config.data.description_field

    lines = [f"# {config.site.name}", ""]
    if config.llms_txt.tagline:
        lines.extend([f"> {config.llms_txt.tagline}", ""])

    lines.append(f"## {config.data.entity_label.title()}s")
    for entity in sorted(entities, key=lambda item: item.get_str(title_field)):
        title = entity.get_str(title_field, entity.slug)
        description = entity.get_str(description_field)
        lines.append(f"- [{title}]({base_url}/{entity.slug}.html): {description}")
    lines.append("")

    by_name = {taxonomy.name: taxonomy for taxonomy in taxonomies}
    for name in config.llms_txt.taxonomies:
        taxonomy = by_name.get(name)
        if taxonomy is None:
            continue
        lines.append(f"## {taxonomy.label}")
        for entry in taxonomy.entries:
            lines.append(f"- [{entry.name}]({base_url}{hub_page_url(taxonomy.name, entry.slug)})")
        lines.append("")
    return "\n".join(lines)


def manifest_json(config: SiteConfig) -> str:
    manifest = {
        "name": config.site.name,
        "short_name": config.site.name,
        "description": config.site.description,
        "start_url": "/",
        "display": "standalone",
        "background_color": "#FAFAF7",
        "theme_color": "#5B7B5E",
    }
    return json.dumps(manifest, indent=2) + "\n"


def search_index(config: SiteConfig, entities: Sequence[Entity]) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for entity in entities:
        row: dict[str, Any] = {
            "t": entity.get_str(config.data.title_field, entity.slug),
            "d": entity.get_str(config.data.description_field)[:SEARCH_DESCRIPTION_LIMIT],
            "s": entity.slug,
        }
        for field_name in config.search.fields:
            value = entity.fields.get(field_name)
            if isinstance(value, tuple):
                value = [item for item in value if isinstance(item, str)]
            if value not in (None, "", []):
                row[field_name] = value
        rows.append(row)
    return rows


def search_index_json(config: SiteConfig, entities: Sequence[Entity]) -> str:
    return json.dumps(search_index(config, entities), ensure_ascii=False, separators=(",", ":"))


def load_favorites(path: Path | None, index: EntityIndex) -> list[Entity]:
    """Resolve a JSON list of slugs; unknown slugs are dropped."""
    if path is None:
        return []
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Favorites unavailable (%s): %s", path.as_posix(), exc)
        return []
    if not isinstance(payload, list):
        logger.warning("Favorites file %s must contain a JSON list of slugs", path.as_posix())
        return []
    return index.resolve(item for item in payload if isinstance(item, str))


def load_contributors(path: Path | None) -> dict[str, Any]:
    if path is None:
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Contributors unavailable (%s): %s", path.as_posix(), exc)
        return {}
    if not isinstance(payload, dict):
        logger.warning("Contributors file %s must contain a JSON object", path.as_posix())
        return {}
    return payload


def copy_static(source: Path | None, destination: Path) -> int:
    """Copy the static asset tree into ``destination``; returns the number of files copied."""
    if source is None:
        return 0
    if not source.is_dir():
        logger.warning("Static directory %s not found; skipping asset copy", source.as_posix())
        return 0
    try:
        shutil.copytree(source, destination, dirs_exist_ok=True)
    except OSError as exc:
        logger.warning("Failed to copy static assets from %s: %s", source.as_posix(), exc)
    return sum(1 for path in source.rglob("*") if path.is_file())
