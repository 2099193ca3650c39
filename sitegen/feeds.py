"""RSS 2.0 feeds: one site-wide, optionally one per category entry."""

from __future__ import annotations

import datetime as _dt
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from email.utils import format_datetime
from xml.etree.ElementTree import Element, SubElement, indent, tostring

from sitegen.aggregator import CategoryMembers
from sitegen.config import SiteConfig
from sitegen.entity import Entity
from sitegen.taxonomy import hub_page_url

logger = logging.getLogger(__name__)

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'


@dataclass(frozen=True)
class RSSFeed:
    relative_path: str
    content: str
    item_count: int


@dataclass(frozen=True)
class FeedChannel:
    title: str
    link: str
    description: str
    language: str


def category_names_by_entity(categories: Sequence[CategoryMembers]) -> dict[str, list[str]]:
    """Entity slug -> names of the category entries it belongs to, in category order."""
    names: dict[str, list[str]] = {}
    for category in categories:
        for entity in category.entities:
            names.setdefault(entity.slug, []).append(category.name)
    return names


def render_feed(
    channel: FeedChannel,
    entities: Sequence[Entity],
    config: SiteConfig,
    build_time: _dt.datetime,
    category_names: Mapping[str, Sequence[str]] | None = None,
) -> str:
    base_url = config.site.base_url
    title_field = config.data.title_field
    description_field = config.data.description_field
    pub_date = format_datetime(build_time)

    rss = Element("rss", attrib={"version": "2.0"})
    channel_el = SubElement(rss, "channel")
    SubElement(channel_el, "title").text = channel.title
    SubElement(channel_el, "link").text = channel.link
    SubElement(channel_el, "description").text = channel.description
    SubElement(channel_el, "language").text = channel.language
    SubElement(channel_el, "lastBuildDate").text = pub_date

    for entity in entities:
        link = f"{base_url}/{entity.slug}.html"
        item_el = SubElement(channel_el, "item")
        SubElement(item_el, "title").text = entity.get_str(title_field, entity.slug)
        SubElement(item_el, "link").text = link
        SubElement(item_el, "description").text = entity.get_str(description_field)
        for category in (category_names or {}).get(entity.slug, ()):
            SubElement(item_el, "category").text = category
        SubElement(item_el, "guid").text = link
        SubElement(item_el, "pubDate").text = pub_date

    indent(rss, space="  ")
    return XML_HEADER + tostring(rss, encoding="unicode") + "\n"


def category_feed_path(taxonomy_name: str, entry_slug: str) -> str:
    return f"{taxonomy_name}/{entry_slug}/feed.xml"


def generate_feeds(
    config: SiteConfig,
    entities: Sequence[Entity],
    categories: Sequence[CategoryMembers],
    build_time: _dt.datetime,
) -> list[RSSFeed]:
    settings = config.rss
    if not settings.enabled:
        return []

    site = config.site
    if build_time.tzinfo is None:
        build_time = build_time.replace(tzinfo=_dt.timezone.utc)

    categories = sorted(categories, key=lambda item: item.slug)
    category_names = category_names_by_entity(categories)
    main_channel = FeedChannel(
        title=site.name,
        link=site.base_url,
        description=site.description,
        language=site.language,
    )
    feeds = [
        RSSFeed(
            relative_path=settings.main_feed,
            content=render_feed(main_channel, entities, config, build_time, category_names),
            item_count=len(entities),
        )
    ]

    taxonomy = config.category_taxonomy
    if settings.category_feeds and taxonomy is not None:
        entity_label = config.data.entity_label
        for category in categories:
            channel = FeedChannel(
                title=f"{site.name} - {category.name}",
                link=f"{site.base_url}{hub_page_url(taxonomy.name, category.slug)}",
                description=f"{category.name} {entity_label}s",
                language=site.language,
            )
            feeds.append(
                RSSFeed(
                    relative_path=category_feed_path(taxonomy.name, category.slug),
                    content=render_feed(channel, category.entities, config, build_time, category_names),
                    item_count=len(category.entities),
                )
            )
    return feeds
