"""Jinja2 page rendering: template name + page context -> HTML."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Protocol

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, TemplateError, select_autoescape
from markupsafe import Markup

from sitegen.config import SiteConfig, SiteSettings
from sitegen.entity import Entity, slugify
from sitegen.errors import TemplateRenderError
from sitegen.structured_data import Breadcrumb
from sitegen.taxonomy import LetterGroup, PaginationWindow, Taxonomy, TaxonomyEntry, hub_page_url

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


@dataclass(frozen=True)
class OGMeta:
    title: str
    description: str
    url: str
    image: str = ""
    type: str = "article"
    site_name: str = ""


@dataclass(frozen=True)
class PageContext:
    site: SiteSettings
    path: str
    canonical_url: str
    og: OGMeta
    json_ld: Markup = Markup("")
    breadcrumbs: tuple[Breadcrumb, ...] = ()
    taxonomies: tuple[Taxonomy, ...] = ()
    entity_label: str = "item"
    title_field: str = "title"
    description_field: str = "description"


@dataclass(frozen=True)
class EntityPageContext(PageContext):
    entity: Entity | None = None
    title: str = ""
    description: str = ""
    related: tuple[Entity, ...] = ()
    memberships: Mapping[str, tuple[TaxonomyEntry, ...]] = field(default_factory=dict)
    enrichment: Mapping[str, Any] = field(default_factory=dict)
    contributors: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HubPageContext(PageContext):
    taxonomy: Taxonomy | None = None
    entry: TaxonomyEntry | None = None
    entities: tuple[Entity, ...] = ()
    pagination: PaginationWindow | None = None
    contributors: Mapping[str, Any] = field(default_factory=dict)
    contributor_profile: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TaxonomyIndexContext(PageContext):
    taxonomy: Taxonomy | None = None
    entries: tuple[TaxonomyEntry, ...] = ()
    top_entries: tuple[TaxonomyEntry, ...] = ()
    letter_groups: tuple[LetterGroup, ...] = ()


@dataclass(frozen=True)
class LetterPageContext(PageContext):
    taxonomy: Taxonomy | None = None
    letter: str = ""
    entries: tuple[TaxonomyEntry, ...] = ()
    letter_groups: tuple[LetterGroup, ...] = ()


@dataclass(frozen=True)
class AllEntitiesPageContext(PageContext):
    entities: tuple[Entity, ...] = ()
    pagination: PaginationWindow | None = None
    total_entities: int = 0


@dataclass(frozen=True)
class HomepageContext(PageContext):
    entities: tuple[Entity, ...] = ()
    favorites: tuple[Entity, ...] = ()
    entity_count: int = 0
    contributors: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StaticPageContext(PageContext):
    title: str = ""


class PageRenderer(Protocol):
    def render(self, template_name: str, context: PageContext) -> str: ...


def context_vars(context: Any) -> dict[str, Any]:
    """Expose a context dataclass's fields as top-level template variables."""
    if isinstance(context, Mapping):
        return dict(context)
    return {item.name: getattr(context, item.name) for item in fields(context)}


def format_number(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.1f}"
    return f"{int(value):,}"


def truncate_text(value: str, limit: int = 160) -> str:
    text = str(value)
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


class TemplateRenderer:
    """Render pages from the configured template directory.

    Templates missing from ``templates_dir`` (or the whole directory) fall back to the
    packaged defaults.
    """

    def __init__(self, templates_dir: Path | None = None) -> None:
        search_path: list[FileSystemLoader] = []
        if templates_dir is not None and templates_dir.is_dir():
            search_path.append(FileSystemLoader(str(templates_dir)))
        elif templates_dir is not None:
            logger.warning(
                "Template directory %s not found; using packaged templates", templates_dir.as_posix()
            )
        search_path.append(FileSystemLoader(str(DEFAULT_TEMPLATES_DIR)))

        self.env = Environment(
            loader=ChoiceLoader(search_path),
            autoescape=select_autoescape(("html", "htm", "xml")),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._register_filters()

    def _register_filters(self) -> None:
        self.env.filters["slugify"] = slugify
        self.env.filters["format_number"] = format_number
        self.env.filters["truncate_text"] = truncate_text
        self.env.globals["hub_page_url"] = hub_page_url

    def render(self, template_name: str, context: Any) -> str:
        try:
            template = self.env.get_template(template_name)
            return template.render(**context_vars(context))
        except TemplateError as exc:
            raise TemplateRenderError(template_name=template_name, details=str(exc)) from exc


def absolute_url(base_url: str, path: str) -> str:
    return f"{base_url}{path}"


def entity_breadcrumbs(
    config: SiteConfig,
    entity: Entity,
    taxonomies: Sequence[Taxonomy],
    page_url: str,
) -> list[Breadcrumb]:
    """Home -> breadcrumb-taxonomy entry (when it survived filtering) -> entity."""
    base_url = config.site.base_url
    crumbs = [Breadcrumb(name="Home", url=f"{base_url}/")]

    taxonomy_name = config.data.breadcrumb_taxonomy
    if taxonomy_name:
        for taxonomy in taxonomies:
            if taxonomy.name != taxonomy_name:
                continue
            value = entity.get_str(taxonomy.config.field)
            entry = taxonomy.find_entry(slugify(value)) if value else None
            if entry is not None:
                crumbs.append(
                    Breadcrumb(name=entry.name, url=absolute_url(base_url, hub_page_url(taxonomy.name, entry.slug)))
                )
            break

    crumbs.append(Breadcrumb(name=entity.get_str(config.data.title_field, entity.slug), url=page_url))
    return crumbs


def hub_breadcrumbs(base_url: str, taxonomy: Taxonomy, entry: TaxonomyEntry) -> list[Breadcrumb]:
    return [
        Breadcrumb(name="Home", url=f"{base_url}/"),
        Breadcrumb(name=taxonomy.label, url=absolute_url(base_url, taxonomy.index_url)),
        Breadcrumb(name=entry.name, url=absolute_url(base_url, hub_page_url(taxonomy.name, entry.slug))),
    ]


def taxonomy_index_breadcrumbs(base_url: str, taxonomy: Taxonomy) -> list[Breadcrumb]:
    return [
        Breadcrumb(name="Home", url=f"{base_url}/"),
        Breadcrumb(name=taxonomy.label, url=absolute_url(base_url, taxonomy.index_url)),
    ]


def letter_breadcrumbs(base_url: str, taxonomy: Taxonomy, letter: str, page_url: str) -> list[Breadcrumb]:
    return [
        Breadcrumb(name="Home", url=f"{base_url}/"),
        Breadcrumb(name=taxonomy.label, url=absolute_url(base_url, taxonomy.index_url)),
        Breadcrumb(name=f"Letter {letter}", url=page_url),
    ]


def all_entities_breadcrumbs(base_url: str, entity_label: str, page_url: str) -> list[Breadcrumb]:
    return [
        Breadcrumb(name="Home", url=f"{base_url}/"),
        Breadcrumb(name=f"All {entity_label.title()}s", url=page_url),
    ]
