from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from xml.etree.ElementTree import Element, SubElement, indent, tostring

from sitegen.aggregator import SitemapEntry
from sitegen.config import DEFAULT_MAX_URLS_PER_FILE

logger = logging.getLogger(__name__)

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
SITEMAP_FILENAME = "sitemap.xml"
XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'


@dataclass(frozen=True)
class SitemapFile:
    filename: str
    content: str
    url_count: int


def _serialize(root: Element) -> str:
    indent(root, space="  ")
    return XML_HEADER + tostring(root, encoding="unicode") + "\n"


def render_urlset(entries: Sequence[SitemapEntry]) -> str:
    root = Element("urlset", attrib={"xmlns": SITEMAP_NS})
    for entry in entries:
        url_el = SubElement(root, "url")
        SubElement(url_el, "loc").text = entry.loc
        if entry.lastmod:
            SubElement(url_el, "lastmod").text = entry.lastmod
        if entry.priority:
            SubElement(url_el, "priority").text = entry.priority
        if entry.changefreq:
            SubElement(url_el, "changefreq").text = entry.changefreq
    return _serialize(root)


def render_sitemap_index(locations: Sequence[str], lastmod: str) -> str:
    root = Element("sitemapindex", attrib={"xmlns": SITEMAP_NS})
    for loc in locations:
        sitemap_el = SubElement(root, "sitemap")
        SubElement(sitemap_el, "loc").text = loc
        if lastmod:
            SubElement(sitemap_el, "lastmod").text = lastmod
    return _serialize(root)


def chunk_entries(entries: Sequence[SitemapEntry], size: int) -> list[list[SitemapEntry]]:
    return [list(entries[start : start + size]) for start in range(0, len(entries), size)]


def generate_sitemap_files(
    entries: Sequence[SitemapEntry],
    base_url: str,
    max_per_file: int = DEFAULT_MAX_URLS_PER_FILE,
) -> list[SitemapFile]:
    """Build ``sitemap.xml`` alone, or an index plus ``sitemap-N.xml`` parts.

    Entries keep accumulation order. The index is stamped with the first entry's
    lastmod.
    """
    if max_per_file <= 0:
        max_per_file = DEFAULT_MAX_URLS_PER_FILE

    if len(entries) <= max_per_file:
        return [SitemapFile(filename=SITEMAP_FILENAME, content=render_urlset(entries), url_count=len(entries))]

    lastmod = entries[0].lastmod
    parts: list[SitemapFile] = []
    for number, chunk in enumerate(chunk_entries(entries, max_per_file), start=1):
        parts.append(SitemapFile(filename=f"sitemap-{number}.xml", content=render_urlset(chunk), url_count=len(chunk)))

    index = SitemapFile(
        filename=SITEMAP_FILENAME,
        content=render_sitemap_index([f"{base_url}/{part.filename}" for part in parts], lastmod),
        url_count=len(parts),
    )
    logger.debug("Split %d sitemap entries into %d files", len(entries), len(parts))
    return [index, *parts]
