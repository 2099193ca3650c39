from __future__ import annotations

import datetime as dt
import xml.etree.ElementTree as ET
from pathlib import Path

from sitegen.aggregator import CategoryMembers
from sitegen.config import SiteConfig, parse_site_config
from sitegen.entity import Entity
from sitegen.feeds import generate_feeds

BUILD_TIME = dt.datetime(2025, 1, 2, 8, 30, tzinfo=dt.timezone.utc)


def _config(tmp_path: Path, **rss: object) -> SiteConfig:
    payload = {
        "site": {"name": "Recipes", "base_url": "https://example.com", "description": "Good food"},
        "paths": {"data": "content"},
        "taxonomies": [{"name": "category", "label": "Categories", "field": "category"}],
        "rss": rss,
    }
    return parse_site_config(payload, base_dir=tmp_path, environ={})


def _entities() -> list[Entity]:
    return [
        Entity.create("tomato-soup", {"title": "Tomato Soup", "description": "Warm", "category": "Soup"}),
        Entity.create("apple-pie", {"title": "Apple Pie", "category": "Dessert"}),
        Entity.create("plain", {}),
    ]


def _categories(entities: list[Entity]) -> list[CategoryMembers]:
    soup, pie, _ = entities
    return [
        CategoryMembers(slug="soup", name="Soup", entities=(soup,)),
        CategoryMembers(slug="dessert", name="Dessert", entities=(pie,)),
    ]


def _parse(content: str) -> ET.Element:
    return ET.fromstring(content.split("\n", 1)[1])


def test_disabled_rss_emits_nothing(tmp_path: Path) -> None:
    assert generate_feeds(_config(tmp_path), _entities(), [], BUILD_TIME) == []


def test_main_feed_lists_every_entity(tmp_path: Path) -> None:
    config = _config(tmp_path, enabled=True, category_taxonomy="category")
    entities = _entities()

    feeds = generate_feeds(config, entities, _categories(entities), BUILD_TIME)

    assert len(feeds) == 1
    feed = feeds[0]
    assert feed.relative_path == "feed.xml"
    assert feed.item_count == 3

    channel = _parse(feed.content).find("channel")
    assert channel.findtext("title") == "Recipes"
    assert channel.findtext("link") == "https://example.com"
    assert channel.findtext("language") == "en"
    assert channel.findtext("lastBuildDate") == "Thu, 02 Jan 2025 08:30:00 +0000"

    items = channel.findall("item")
    assert [item.findtext("link") for item in items] == [
        "https://example.com/tomato-soup.html",
        "https://example.com/apple-pie.html",
        "https://example.com/plain.html",
    ]
    assert items[0].findtext("title") == "Tomato Soup"
    assert items[0].findtext("description") == "Warm"
    assert items[0].findtext("category") == "Soup"
    assert items[0].findtext("guid") == items[0].findtext("link")
    assert items[2].findtext("title") == "plain"
    assert items[2].find("category") is None


def test_category_feeds_follow_slug_order(tmp_path: Path) -> None:
    config = _config(tmp_path, enabled=True, category_feeds=True, category_taxonomy="category")
    entities = _entities()

    feeds = generate_feeds(config, entities, _categories(entities), BUILD_TIME)

    assert [feed.relative_path for feed in feeds] == [
        "feed.xml",
        "category/dessert/feed.xml",
        "category/soup/feed.xml",
    ]
    dessert = _parse(feeds[1].content).find("channel")
    assert dessert.findtext("title") == "Recipes - Dessert"
    assert dessert.findtext("link") == "https://example.com/category/dessert.html"
    assert [item.findtext("title") for item in dessert.findall("item")] == ["Apple Pie"]


def test_naive_build_time_is_treated_as_utc(tmp_path: Path) -> None:
    config = _config(tmp_path, enabled=True)

    feeds = generate_feeds(config, [], [], dt.datetime(2025, 1, 2, 8, 30))

    assert feeds[0].item_count == 0
    assert _parse(feeds[0].content).find("channel").findtext("lastBuildDate").endswith("+0000")


def test_item_categories_come_from_category_entries(tmp_path: Path) -> None:
    config = _config(tmp_path, enabled=True, category_taxonomy="category")
    stew = Entity.create("stew", {"title": "Stew", "category": "raw value"})
    categories = [
        CategoryMembers(slug="winter", name="Winter", entities=(stew,)),
        CategoryMembers(slug="comfort", name="Comfort", entities=(stew,)),
    ]

    feeds = generate_feeds(config, [stew], categories, BUILD_TIME)

    item = _parse(feeds[0].content).find("channel").find("item")
    assert [node.text for node in item.findall("category")] == ["Comfort", "Winter"]
