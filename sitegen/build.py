"""One full, deterministic build pass: load, group, render, aggregate, emit."""

from __future__ import annotations

import concurrent.futures
import datetime as _dt
import logging
import shutil
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from sitegen import share_images
from sitegen.aggregator import OutputAggregator
from sitegen.config import SiteConfig
from sitegen.entity import Entity, EntityIndex
from sitegen.errors import OutputWriteError, StructuralRenderError
from sitegen.feeds import RSSFeed, generate_feeds
from sitegen.loader import load_entities
from sitegen.overrides import OverrideTable, load_override_table
from sitegen.render import (
    AllEntitiesPageContext,
    EntityPageContext,
    HomepageContext,
    HubPageContext,
    LetterPageContext,
    OGMeta,
    PageContext,
    PageRenderer,
    StaticPageContext,
    TaxonomyIndexContext,
    TemplateRenderer,
    absolute_url,
    all_entities_breadcrumbs,
    entity_breadcrumbs,
    hub_breadcrumbs,
    letter_breadcrumbs,
    taxonomy_index_breadcrumbs,
)
from sitegen.schemas import PageKind, SiteBaseModel
from sitegen.share_images import NameCount
from sitegen.site_files import (
    SEARCH_INDEX_FILENAME,
    copy_static,
    llms_txt,
    load_contributors,
    load_favorites,
    manifest_json,
    robots_txt,
    search_index_json,
)
from sitegen.sitemap import SitemapFile, generate_sitemap_files
from sitegen.structured_data import ListedItem, StructuredDataBuilder, script_tags
from sitegen.taxonomy import (
    Taxonomy,
    TaxonomyEntry,
    all_entities_page_url,
    build_taxonomies,
    compute_hub_pagination,
    compute_pagination,
    hub_page_url,
    letter_page_url,
    top_entries,
    total_pages,
)

logger = logging.getLogger(__name__)

TOP_ENTRY_LIMIT = 20
SHARE_TAG_LIMIT = 3


class BuildSummary(SiteBaseModel):
    entity_count: int
    taxonomy_count: int
    taxonomy_entry_count: int
    sitemap_url_count: int
    sitemap_file_count: int
    rss_feed_count: int
    entity_failures: int
    skipped_duplicates: int = 0
    duration_seconds: float
    output_dir: str


@dataclass(frozen=True)
class BuildContext:
    """Read-only state shared by every render job of one pass."""

    config: SiteConfig
    index: EntityIndex
    overrides: OverrideTable
    taxonomies: tuple[Taxonomy, ...]
    memberships: Mapping[str, Mapping[str, tuple[TaxonomyEntry, ...]]]
    favorites: tuple[Entity, ...] = ()
    contributors: Mapping[str, Any] = field(default_factory=dict)
    build_time: _dt.datetime = field(default_factory=lambda: _dt.datetime.now(_dt.timezone.utc))

    @property
    def build_date(self) -> str:
        return self.build_time.strftime("%Y-%m-%d")

    @property
    def base_url(self) -> str:
        return self.config.site.base_url

    def memberships_for(self, entity: Entity) -> dict[str, tuple[TaxonomyEntry, ...]]:
        return {
            name: by_slug[entity.slug]
            for name, by_slug in self.memberships.items()
            if entity.slug in by_slug
        }


def index_memberships(taxonomies: Sequence[Taxonomy]) -> Mapping[str, Mapping[str, tuple[TaxonomyEntry, ...]]]:
    """Taxonomy name -> entity slug -> entries the entity belongs to, in entry order."""
    result: dict[str, Mapping[str, tuple[TaxonomyEntry, ...]]] = {}
    for taxonomy in taxonomies:
        by_slug: dict[str, list[TaxonomyEntry]] = {}
        for entry in taxonomy.entries:
            for entity in entry.entities:
                by_slug.setdefault(entity.slug, []).append(entry)
        result[taxonomy.name] = MappingProxyType({slug: tuple(entries) for slug, entries in by_slug.items()})
    return MappingProxyType(result)


def write_text(path: Path, content: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise OutputWriteError(path=path.as_posix(), details=str(exc)) from exc


HOMEPAGE_PATH = "/index.html"


def reserved_entity_slugs(config: SiteConfig) -> set[str]:
    """Entity slugs whose page would land on the homepage or a top-level static page."""
    reserved = {HOMEPAGE_PATH.strip("/").removesuffix(".html")}
    for relative_path in config.templates.static_pages:
        if "/" not in relative_path and relative_path.endswith(".html"):
            reserved.add(relative_path.removesuffix(".html"))
    return reserved


def output_file_for(output_dir: Path, url_path: str) -> Path:
    relative = url_path.lstrip("/")
    if not relative or relative.endswith("/"):
        relative += "index.html"
    return output_dir / relative


class SiteBuilder:
    def __init__(
        self,
        config: SiteConfig,
        *,
        renderer: PageRenderer | None = None,
        build_time: _dt.datetime | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.renderer = renderer if renderer is not None else TemplateRenderer(config.paths.templates)
        self.build_time = build_time or _dt.datetime.now(_dt.timezone.utc)
        self.clock = clock
        self.output_dir = config.paths.output
        self.schemas = StructuredDataBuilder(config)

    def build(self) -> BuildSummary:
        started = self.clock()
        logger.info("Building site: %s", self.config.site.name)

        context = self.prepare()
        self.prepare_output_dir()
        copied = copy_static(self.config.paths.static, self.output_dir)
        if copied:
            logger.info("Copied %d static files", copied)

        aggregator = OutputAggregator(self.config.site.base_url, context.build_date)
        category_taxonomy = self.config.category_taxonomy
        if category_taxonomy is not None:
            taxonomy = next(item for item in context.taxonomies if item.name == category_taxonomy.name)
            for entry in taxonomy.entries:
                aggregator.record_category(entry.slug, entry.name, entry.entities)

        failures = self.render_entity_pages(context, aggregator)
        self.render_structural_pages(context, aggregator)
        aggregator.close()

        sitemap_entries = aggregator.sitemap_entries()
        sitemap_files = self.write_sitemaps(aggregator)
        feeds = self.write_feeds(context, aggregator)
        self.write_site_files(context)

        summary = BuildSummary(
            entity_count=len(context.index),
            taxonomy_count=len(context.taxonomies),
            taxonomy_entry_count=sum(len(taxonomy.entries) for taxonomy in context.taxonomies),
            sitemap_url_count=len(sitemap_entries),
            sitemap_file_count=len(sitemap_files),
            rss_feed_count=len(feeds),
            entity_failures=failures,
            skipped_duplicates=len(context.index.skipped_duplicates),
            duration_seconds=round(self.clock() - started, 3),
            output_dir=self.output_dir.as_posix(),
        )
        logger.info(
            "Built %d entities, %d taxonomy entries, %d sitemap URLs in %.2fs (%d entity failures)",
            summary.entity_count,
            summary.taxonomy_entry_count,
            summary.sitemap_url_count,
            summary.duration_seconds,
            summary.entity_failures,
        )
        return summary

    def prepare(self) -> BuildContext:
        config = self.config
        entities = load_entities(config.paths.data, config.data)
        index = EntityIndex.from_entities(
            entities,
            duplicate_policy=config.data.duplicate_slugs,
            reserved_slugs=reserved_entity_slugs(config),
        )
        overrides = load_override_table(config.paths.overrides)
        taxonomies = tuple(build_taxonomies(index, config.taxonomies, overrides))
        return BuildContext(
            config=config,
            index=index,
            overrides=overrides,
            taxonomies=taxonomies,
            memberships=index_memberships(taxonomies),
            favorites=tuple(load_favorites(config.extra.favorites, index)),
            contributors=MappingProxyType(load_contributors(config.extra.contributors)),
            build_time=self.build_time,
        )

    def prepare_output_dir(self) -> None:
        try:
            if self.config.output.clean_build and self.output_dir.exists():
                shutil.rmtree(self.output_dir)
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(path=self.output_dir.as_posix(), details=str(exc)) from exc

    # Shared helpers

    def _page_kwargs(self, context: BuildContext, path: str) -> dict[str, Any]:
        data = self.config.data
        return {
            "site": self.config.site,
            "path": path,
            "canonical_url": absolute_url(context.base_url, path),
            "taxonomies": context.taxonomies,
            "entity_label": data.entity_label,
            "title_field": data.title_field,
            "description_field": data.description_field,
        }

    def _og(
        self,
        context: BuildContext,
        title: str,
        description: str,
        path: str,
        image_path: str,
        og_type: str = "article",
    ) -> OGMeta:
        return OGMeta(
            title=title,
            description=description,
            url=absolute_url(context.base_url, path),
            image=f"{context.base_url}/{image_path}",
            type=og_type,
            site_name=self.config.site.name,
        )

    def _write_share_image(self, relative_path: str, svg: str) -> None:
        try:
            write_text(self.output_dir / relative_path, svg)
        except OutputWriteError as exc:
            logger.warning("Share image skipped: %s", exc)

    def _render_structural(
        self,
        kind: PageKind,
        template_name: str,
        page: PageContext,
        aggregator: OutputAggregator,
    ) -> None:
        try:
            markup = self.renderer.render(template_name, page)
            write_text(output_file_for(self.output_dir, page.path), markup)
            self._record(aggregator, page.path, kind)
        except StructuralRenderError:
            raise
        except Exception as exc:
            raise StructuralRenderError(page_kind=kind.value, page_path=page.path, details=str(exc)) from exc

    def _record(self, aggregator: OutputAggregator, path: str, kind: PageKind) -> None:
        sitemap = self.config.sitemap
        aggregator.record_page(path, priority=sitemap.priority_for(kind), changefreq=sitemap.change_freq_for(kind))

    def _title(self, entity: Entity) -> str:
        return entity.get_str(self.config.data.title_field, entity.slug)

    def _listed_entities(self, context: BuildContext, entities: Sequence[Entity]) -> list[ListedItem]:
        return [
            ListedItem(name=self._title(item), url=absolute_url(context.base_url, f"/{item.slug}.html"))
            for item in entities
        ]

    # Entity stage

    def render_entity_pages(self, context: BuildContext, aggregator: OutputAggregator) -> int:
        entities = context.index.entities
        logger.info("Rendering %d entity pages with %d workers", len(entities), self.config.build.workers)
        failures = 0
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.config.build.workers) as executor:
            futures = {
                executor.submit(self.render_entity_page, context, entity, aggregator): entity for entity in entities
            }
            for future in concurrent.futures.as_completed(futures):
                entity = futures[future]
                try:
                    future.result()
                except Exception as exc:
                    failures += 1
                    logger.warning("Failed to render %s: %s", entity.slug, exc)
        if failures:
            logger.warning("%d entity pages had errors", failures)
        return failures

    def render_entity_page(self, context: BuildContext, entity: Entity, aggregator: OutputAggregator) -> None:
        data = self.config.data
        path = f"/{entity.slug}.html"
        page_url = absolute_url(context.base_url, path)
        title = self._title(entity)
        description = entity.get_str(data.description_field)

        related = tuple(context.index.resolve(entity.get_str_list(data.related_field)))
        memberships = context.memberships_for(entity)
        breadcrumbs = entity_breadcrumbs(self.config, entity, context.taxonomies, page_url)

        tags = [entries[0].name for entries in memberships.values()][:SHARE_TAG_LIMIT]
        image_path = share_images.entity_image_path(entity.slug)
        self._write_share_image(image_path, share_images.entity_svg(self.config.site.name, title, tags))
        image_url = f"{context.base_url}/{image_path}"

        json_ld = script_tags(
            self.schemas.entity(
                entity,
                page_url,
                related=[(self._title(item), absolute_url(context.base_url, f"/{item.slug}.html")) for item in related],
                image_url=image_url,
            ),
            self.schemas.breadcrumbs(breadcrumbs),
            self.schemas.faq_page(entity.get_faqs()),
        )
        page = EntityPageContext(
            **self._page_kwargs(context, path),
            og=self._og(context, f"{title} | {self.config.site.name}", description, path, image_path),
            json_ld=json_ld,
            breadcrumbs=tuple(breadcrumbs),
            entity=entity,
            title=title,
            description=description,
            related=related,
            memberships=MappingProxyType(memberships),
            enrichment=context.overrides.get(entity.slug, MappingProxyType({})),
            contributors=context.contributors,
        )
        markup = self.renderer.render(self.config.templates.entity, page)
        write_text(output_file_for(self.output_dir, path), markup)
        self._record(aggregator, path, PageKind.entity)

    # Structural stage

    def render_structural_pages(self, context: BuildContext, aggregator: OutputAggregator) -> None:
        for taxonomy in context.taxonomies:
            logger.info("Rendering taxonomy pages for %s", taxonomy.name)
            self.render_hub_pages(context, taxonomy, aggregator)
            self.render_taxonomy_index(context, taxonomy, aggregator)
            self.render_letter_pages(context, taxonomy, aggregator)
        self.render_all_entities_pages(context, aggregator)
        self.render_homepage(context, aggregator)
        self.render_static_pages(context, aggregator)

    def _distribution(self, context: BuildContext, entities: Sequence[Entity], exclude: str = "") -> list[NameCount]:
        for taxonomy in context.taxonomies:
            if taxonomy.name == exclude:
                continue
            by_slug = context.memberships[taxonomy.name]
            counts: dict[str, int] = {}
            for entity in entities:
                for entry in by_slug.get(entity.slug, ()):
                    counts[entry.name] = counts.get(entry.name, 0) + 1
            ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
            return [NameCount(name=name, count=count) for name, count in ranked[: share_images.MAX_BARS]]
        return []

    def render_hub_pages(self, context: BuildContext, taxonomy: Taxonomy, aggregator: OutputAggregator) -> None:
        per_page = self.config.pagination.entities_per_page
        site_name = self.config.site.name
        for entry in taxonomy.entries:
            image_path = share_images.hub_image_path(taxonomy.name, entry.slug)
            self._write_share_image(
                image_path,
                share_images.hub_svg(
                    site_name,
                    entry.name,
                    taxonomy.label,
                    entry.count,
                    self._distribution(context, entry.entities, exclude=taxonomy.name),
                ),
            )
            breadcrumbs = tuple(hub_breadcrumbs(context.base_url, taxonomy, entry))
            description = f"{entry.count} {self.config.data.entity_label}s in {taxonomy.label_singular} {entry.name}."
            profiles = context.contributors.get("profiles")
            contributor_profile = profiles.get(entry.slug) if isinstance(profiles, Mapping) else None
            if not isinstance(contributor_profile, Mapping):
                contributor_profile = {}

            for number in range(1, total_pages(entry.count, per_page) + 1):
                window = compute_hub_pagination(taxonomy.name, entry, number, per_page)
                path = hub_page_url(taxonomy.name, entry.slug, number)
                members = tuple(window.slice(entry.entities))
                title = entry.name if number == 1 else f"{entry.name} (page {number})"
                listed = self._listed_entities(context, members)
                page = HubPageContext(
                    **self._page_kwargs(context, path),
                    og=self._og(context, f"{title} | {site_name}", description, path, image_path),
                    json_ld=script_tags(
                        self.schemas.collection_page(
                            title,
                            description,
                            absolute_url(context.base_url, path),
                            listed,
                            f"{context.base_url}/{image_path}",
                        ),
                        self.schemas.breadcrumbs(breadcrumbs),
                    ),
                    breadcrumbs=breadcrumbs,
                    taxonomy=taxonomy,
                    entry=entry,
                    entities=members,
                    pagination=window,
                    contributors=context.contributors,
                    contributor_profile=contributor_profile,
                )
                kind = PageKind.hub_page_1 if number == 1 else PageKind.hub_page_n
                self._render_structural(kind, taxonomy.config.template, page, aggregator)

    def render_taxonomy_index(self, context: BuildContext, taxonomy: Taxonomy, aggregator: OutputAggregator) -> None:
        site_name = self.config.site.name
        path = taxonomy.index_url
        top = top_entries(taxonomy.entries, TOP_ENTRY_LIMIT)
        image_path = share_images.taxonomy_index_image_path(taxonomy.name)
        self._write_share_image(
            image_path,
            share_images.taxonomy_index_svg(
                site_name,
                taxonomy.label,
                [NameCount(name=entry.name, count=entry.count) for entry in top[: share_images.MAX_BARS]],
            ),
        )

        description = taxonomy.config.index_description or f"Browse {len(taxonomy.entries)} {taxonomy.label.lower()}."
        breadcrumbs = tuple(taxonomy_index_breadcrumbs(context.base_url, taxonomy))
        listed = [
            ListedItem(name=entry.name, url=absolute_url(context.base_url, hub_page_url(taxonomy.name, entry.slug)))
            for entry in taxonomy.entries
        ]
        page = TaxonomyIndexContext(
            **self._page_kwargs(context, path),
            og=self._og(context, f"{taxonomy.label} | {site_name}", description, path, image_path),
            json_ld=script_tags(
                self.schemas.item_list(taxonomy.label, description, listed, f"{context.base_url}/{image_path}"),
                self.schemas.breadcrumbs(breadcrumbs),
            ),
            breadcrumbs=breadcrumbs,
            taxonomy=taxonomy,
            entries=taxonomy.entries,
            top_entries=tuple(top),
            letter_groups=taxonomy.letter_groups if taxonomy.show_letter_pages else (),
        )
        self._render_structural(PageKind.taxonomy_index, taxonomy.config.index_template, page, aggregator)

    def render_letter_pages(self, context: BuildContext, taxonomy: Taxonomy, aggregator: OutputAggregator) -> None:
        if not taxonomy.show_letter_pages:
            return
        site_name = self.config.site.name
        for group in taxonomy.letter_groups:
            path = letter_page_url(taxonomy.name, group.letter)
            page_url = absolute_url(context.base_url, path)
            image_path = share_images.letter_image_path(taxonomy.name, group.letter)
            self._write_share_image(
                image_path,
                share_images.letter_svg(site_name, taxonomy.label, group.letter, len(group.entries)),
            )
            title = f"{taxonomy.label}: {group.letter}"
            description = f"{len(group.entries)} {taxonomy.label.lower()} starting with {group.letter}."
            breadcrumbs = tuple(letter_breadcrumbs(context.base_url, taxonomy, group.letter, page_url))
            listed = [
                ListedItem(name=entry.name, url=absolute_url(context.base_url, hub_page_url(taxonomy.name, entry.slug)))
                for entry in group.entries
            ]
            page = LetterPageContext(
                **self._page_kwargs(context, path),
                og=self._og(context, f"{title} | {site_name}", description, path, image_path),
                json_ld=script_tags(
                    self.schemas.item_list(title, description, listed, f"{context.base_url}/{image_path}"),
                    self.schemas.breadcrumbs(breadcrumbs),
                ),
                breadcrumbs=breadcrumbs,
                taxonomy=taxonomy,
                letter=group.letter,
                entries=group.entries,
                letter_groups=taxonomy.letter_groups,
            )
            self._render_structural(PageKind.letter_page, taxonomy.config.letter_template, page, aggregator)

    def render_all_entities_pages(self, context: BuildContext, aggregator: OutputAggregator) -> None:
        entities = context.index.entities
        per_page = self.config.pagination.entities_per_page
        site_name = self.config.site.name
        label = self.config.data.entity_label
        image_path = share_images.all_entities_image_path()
        distribution = self._distribution(context, entities)
        self._write_share_image(
            image_path,
            share_images.all_entities_svg(site_name, label, len(entities), distribution),
        )

        description = f"Browse all {len(entities)} {label}s."
        for number in range(1, total_pages(len(entities), per_page) + 1):
            window = compute_pagination(len(entities), number, per_page, all_entities_page_url)
            path = all_entities_page_url(number)
            page_url = absolute_url(context.base_url, path)
            members = tuple(window.slice(entities))
            title = f"All {label.title()}s" if number == 1 else f"All {label.title()}s (page {number})"
            breadcrumbs = tuple(all_entities_breadcrumbs(context.base_url, label, page_url))
            listed = self._listed_entities(context, members)
            page = AllEntitiesPageContext(
                **self._page_kwargs(context, path),
                og=self._og(context, f"{title} | {site_name}", description, path, image_path),
                json_ld=script_tags(
                    self.schemas.collection_page(
                        title, description, page_url, listed, f"{context.base_url}/{image_path}"
                    ),
                    self.schemas.breadcrumbs(breadcrumbs),
                ),
                breadcrumbs=breadcrumbs,
                entities=members,
                pagination=window,
                total_entities=len(entities),
            )
            self._render_structural(PageKind.all_entities, self.config.templates.all_entities, page, aggregator)

    def render_homepage(self, context: BuildContext, aggregator: OutputAggregator) -> None:
        site = self.config.site
        path = HOMEPAGE_PATH
        image_path = share_images.homepage_image_path()
        stats = [NameCount(name=taxonomy.label, count=len(taxonomy.entries)) for taxonomy in context.taxonomies]
        self._write_share_image(
            image_path,
            share_images.homepage_svg(
                site.name, site.description, self.config.data.entity_label, len(context.index), stats
            ),
        )
        page = HomepageContext(
            **{**self._page_kwargs(context, path), "canonical_url": f"{context.base_url}/"},
            og=OGMeta(
                title=site.name,
                description=site.description,
                url=f"{context.base_url}/",
                image=f"{context.base_url}/{image_path}",
                type="website",
                site_name=site.name,
            ),
            json_ld=script_tags(self.schemas.website(f"{context.base_url}/{image_path}")),
            entities=context.index.entities,
            favorites=context.favorites,
            entity_count=len(context.index),
            contributors=context.contributors,
        )
        self._render_structural(PageKind.homepage, self.config.templates.homepage, page, aggregator)

    def render_static_pages(self, context: BuildContext, aggregator: OutputAggregator) -> None:
        """Render ``templates.static_pages``; render failures only skip the page, write failures are fatal."""
        site = self.config.site
        for relative_path, template_name in sorted(self.config.templates.static_pages.items()):
            path = f"/{relative_path}"
            if aggregator.has_page(path) or aggregator.has_page(path.removesuffix("index.html")):
                logger.warning("Static page %s collides with a generated page; skipping", path)
                continue
            page = StaticPageContext(
                **self._page_kwargs(context, path),
                og=OGMeta(
                    title=site.name,
                    description=site.description,
                    url=absolute_url(context.base_url, path),
                    site_name=site.name,
                ),
                title=site.name,
            )
            try:
                markup = self.renderer.render(template_name, page)
            except Exception as exc:
                logger.warning("Failed to render static page %s: %s", path, exc)
                continue
            write_text(output_file_for(self.output_dir, path), markup)

    # Outputs

    def write_sitemaps(self, aggregator: OutputAggregator) -> list[SitemapFile]:
        entries = aggregator.sitemap_entries()
        files = generate_sitemap_files(entries, self.config.site.base_url, self.config.sitemap.max_urls_per_file)
        for sitemap_file in files:
            write_text(self.output_dir / sitemap_file.filename, sitemap_file.content)
        logger.info("Generated %d sitemap file(s) for %d URLs", len(files), len(entries))
        return files

    def write_feeds(self, context: BuildContext, aggregator: OutputAggregator) -> list[RSSFeed]:
        feeds = generate_feeds(self.config, context.index.entities, aggregator.categories(), context.build_time)
        for feed in feeds:
            write_text(self.output_dir / feed.relative_path, feed.content)
        if feeds:
            logger.info("Generated %d RSS feed(s)", len(feeds))
        return feeds

    def write_site_files(self, context: BuildContext) -> None:
        config = self.config
        write_text(self.output_dir / "robots.txt", robots_txt(config))
        write_text(self.output_dir / "manifest.json", manifest_json(config))
        if config.site.cname:
            write_text(self.output_dir / "CNAME", config.site.cname + "\n")
        if config.llms_txt.enabled:
            write_text(self.output_dir / "llms.txt", llms_txt(config, context.index.entities, context.taxonomies))
        if config.search.enabled and len(context.index):
            write_text(self.output_dir / SEARCH_INDEX_FILENAME, search_index_json(config, context.index.entities))


def build_site(
    config: SiteConfig,
    *,
    renderer: PageRenderer | None = None,
    build_time: _dt.datetime | None = None,
) -> BuildSummary:
    return SiteBuilder(config, renderer=renderer, build_time=build_time).build()
