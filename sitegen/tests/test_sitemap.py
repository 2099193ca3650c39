from __future__ import annotations

import xml.etree.ElementTree as ET

from sitegen.aggregator import SitemapEntry
from sitegen.sitemap import SITEMAP_NS, generate_sitemap_files

NS = {"sm": SITEMAP_NS}


def _entries(count: int) -> list[SitemapEntry]:
    return [
        SitemapEntry(
            loc=f"https://example.com/e/{number}.html", lastmod="2025-01-01", priority="0.8", changefreq="weekly"
        )
        for number in range(count)
    ]


def test_small_sitemap_is_a_single_urlset() -> None:
    files = generate_sitemap_files(_entries(3), "https://example.com", max_per_file=50)

    assert len(files) == 1
    sitemap = files[0]
    assert sitemap.filename == "sitemap.xml"
    assert sitemap.url_count == 3
    assert sitemap.content.startswith('<?xml version="1.0" encoding="UTF-8"?>')

    root = ET.fromstring(sitemap.content.split("\n", 1)[1])
    assert root.tag == f"{{{SITEMAP_NS}}}urlset"
    urls = root.findall("sm:url", NS)
    assert [url.findtext("sm:loc", namespaces=NS) for url in urls] == [entry.loc for entry in _entries(3)]
    assert urls[0].findtext("sm:priority", namespaces=NS) == "0.8"
    assert urls[0].findtext("sm:changefreq", namespaces=NS) == "weekly"


def test_exactly_at_limit_stays_single_file() -> None:
    files = generate_sitemap_files(_entries(50), "https://example.com", max_per_file=50)

    assert [sitemap.filename for sitemap in files] == ["sitemap.xml"]


def test_large_sitemap_is_split_behind_an_index() -> None:
    entries = _entries(130)

    files = generate_sitemap_files(entries, "https://example.com", max_per_file=50)

    assert [sitemap.filename for sitemap in files] == ["sitemap.xml", "sitemap-1.xml", "sitemap-2.xml", "sitemap-3.xml"]
    assert [sitemap.url_count for sitemap in files[1:]] == [50, 50, 30]

    index = ET.fromstring(files[0].content.split("\n", 1)[1])
    assert index.tag == f"{{{SITEMAP_NS}}}sitemapindex"
    assert [node.findtext("sm:loc", namespaces=NS) for node in index.findall("sm:sitemap", NS)] == [
        "https://example.com/sitemap-1.xml",
        "https://example.com/sitemap-2.xml",
        "https://example.com/sitemap-3.xml",
    ]
    assert index.find("sm:sitemap/sm:lastmod", NS).text == "2025-01-01"

    locs: list[str] = []
    for part in files[1:]:
        root = ET.fromstring(part.content.split("\n", 1)[1])
        locs.extend(url.findtext("sm:loc", namespaces=NS) for url in root.findall("sm:url", NS))
    assert locs == [entry.loc for entry in entries]


def test_empty_entries_produce_empty_urlset() -> None:
    files = generate_sitemap_files([], "https://example.com", max_per_file=50)

    assert len(files) == 1
    assert files[0].url_count == 0
    root = ET.fromstring(files[0].content.split("\n", 1)[1])
    assert list(root) == []
