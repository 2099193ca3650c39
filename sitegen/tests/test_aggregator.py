from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from sitegen.aggregator import OutputAggregator, sitemap_loc
from sitegen.entity import Entity


def test_sitemap_loc_keeps_only_root_trailing_slash() -> None:
    assert sitemap_loc("https://example.com", "/") == "https://example.com/"
    assert sitemap_loc("https://example.com", "/category/") == "https://example.com/category"
    assert sitemap_loc("https://example.com", "/soup.html") == "https://example.com/soup.html"


def test_concurrent_records_are_all_kept() -> None:
    aggregator = OutputAggregator("https://example.com", "2025-01-01")

    def emit(worker: int) -> None:
        for number in range(50):
            aggregator.record_page(f"/w{worker}/{number}.html", priority="0.8", changefreq="weekly")

    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(emit, range(8)))

    aggregator.close()
    entries = aggregator.sitemap_entries()

    assert aggregator.page_count == 400
    assert len({entry.loc for entry in entries}) == 400
    assert all(entry.lastmod == "2025-01-01" for entry in entries)


def test_snapshots_require_close_and_close_rejects_new_records() -> None:
    aggregator = OutputAggregator("https://example.com", "2025-01-01")
    aggregator.record_page("/", priority="1.0")

    with pytest.raises(RuntimeError, match="only available after close"):
        aggregator.sitemap_entries()
    with pytest.raises(RuntimeError, match="only available after close"):
        aggregator.categories()

    aggregator.close()

    with pytest.raises(RuntimeError, match="aggregator is closed"):
        aggregator.record_page("/late.html")
    with pytest.raises(RuntimeError, match="aggregator is closed"):
        aggregator.record_category("late", "Late", [])
    assert [entry.loc for entry in aggregator.sitemap_entries()] == ["https://example.com/"]


def test_categories_are_returned_in_slug_order() -> None:
    aggregator = OutputAggregator("https://example.com", "2025-01-01")
    soup = Entity.create("tomato-soup", {"title": "Tomato Soup"})
    aggregator.record_category("soup", "Soup", [soup])
    aggregator.record_category("dessert", "Dessert", [])
    aggregator.close()

    categories = aggregator.categories()

    assert [category.slug for category in categories] == ["dessert", "soup"]
    assert categories[1].entities == (soup,)


def test_a_page_path_can_only_be_recorded_once() -> None:
    aggregator = OutputAggregator("https://example.com", "2025-01-01")
    aggregator.record_page("/index.html", priority="1.0")

    assert aggregator.has_page("/index.html")
    assert not aggregator.has_page("/soup.html")
    with pytest.raises(ValueError, match="page /index.html was already recorded"):
        aggregator.record_page("/index.html")

    aggregator.close()
    assert len(aggregator.sitemap_entries()) == 1
