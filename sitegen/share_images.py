"""Deterministic SVG share cards (1200x630) for Open Graph previews."""

from __future__ import annotations

import html
from collections.abc import Sequence
from dataclasses import dataclass

from sitegen.taxonomy import letter_slug

SHARE_IMAGE_DIR = "images/share"

WIDTH = 1200
HEIGHT = 630
BACKGROUND = "#0f1117"
TEXT = "#e4e4e7"
MUTED = "#71717a"
ACCENT = "#5B7B5E"
ACCENT_ALT = "#C4956A"
BAR_COLORS = ("#5B7B5E", "#C4956A", "#4A7B9B", "#7C5BB0", "#A68B2D", "#B94A4A", "#6B6B6B", "#3d8b6e")
MAX_BARS = 8
FONT = "system-ui,sans-serif"


@dataclass(frozen=True)
class NameCount:
    name: str
    count: int


def _escape(text: str) -> str:
    return html.escape(text, quote=True)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def _text(x: int, y: int, body: str, *, size: int, fill: str, weight: str = "", anchor: str = "") -> str:
    attrs = f'x="{x}" y="{y}" font-family="{FONT}" font-size="{size}" fill="{fill}"'
    if weight:
        attrs += f' font-weight="{weight}"'
    if anchor:
        attrs += f' text-anchor="{anchor}"'
    return f"  <text {attrs}>{_escape(body)}</text>"


def _scaffold(site_name: str, page_title: str, content: list[str]) -> str:
    lines = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{WIDTH}" height="{HEIGHT}" viewBox="0 0 {WIDTH} {HEIGHT}">',
        f'  <rect width="{WIDTH}" height="{HEIGHT}" fill="{BACKGROUND}"/>',
        _text(60, 56, site_name, size=18, fill=MUTED, weight="600"),
        _text(60, 110, _truncate(page_title, 60), size=36, fill=TEXT, weight="700"),
        *content,
        f'  <rect x="0" y="{HEIGHT - 8}" width="{WIDTH}" height="8" fill="url(#accent-grad)"/>',
        "  <defs>",
        '    <linearGradient id="accent-grad" x1="0" y1="0" x2="1" y2="0">',
        f'      <stop offset="0" stop-color="{ACCENT}"/>',
        f'      <stop offset="1" stop-color="{ACCENT_ALT}"/>',
        "    </linearGradient>",
        "  </defs>",
        "</svg>",
    ]
    return "\n".join(lines) + "\n"


def _bars(
    bars: Sequence[NameCount], *, x: int, y: int, max_width: int, bar_height: int = 28, gap: int = 14
) -> list[str]:
    bars = list(bars)[:MAX_BARS]
    if not bars:
        return []
    peak = max(bar.count for bar in bars) or 1

    lines: list[str] = []
    for position, bar in enumerate(bars):
        width = max(4, (bar.count * max_width) // peak)
        top = y + position * (bar_height + gap)
        color = BAR_COLORS[position % len(BAR_COLORS)]
        lines.append(
            f'  <rect x="{x}" y="{top}" width="{width}" height="{bar_height}" rx="4" fill="{color}" opacity="0.85"/>'
        )
        lines.append(_text(x, top - 4, _truncate(bar.name, 30), size=14, fill=TEXT))
        lines.append(_text(x + width + 8, top + bar_height - 4, str(bar.count), size=13, fill=MUTED))
    return lines


def _pills(labels: Sequence[str], *, x: int = 60, y: int = 170) -> list[str]:
    lines: list[str] = []
    for position, label in enumerate(label for label in labels if label):
        color = BAR_COLORS[position % len(BAR_COLORS)]
        width = len(label) * 10 + 24
        lines.append(f'  <rect x="{x}" y="{y}" width="{width}" height="32" rx="16" fill="{color}" opacity="0.2"/>')
        lines.append(_text(x + 12, y + 21, label, size=14, fill=color, weight="600"))
        x += width + 12
    return lines


def entity_image_path(slug: str) -> str:
    return f"{SHARE_IMAGE_DIR}/{slug}.svg"


def hub_image_path(taxonomy_name: str, entry_slug: str) -> str:
    return f"{SHARE_IMAGE_DIR}/{taxonomy_name}-{entry_slug}.svg"


def taxonomy_index_image_path(taxonomy_name: str) -> str:
    return f"{SHARE_IMAGE_DIR}/{taxonomy_name}-index.svg"


def letter_image_path(taxonomy_name: str, letter: str) -> str:
    return f"{SHARE_IMAGE_DIR}/{taxonomy_name}-letter-{letter_slug(letter)}.svg"


def all_entities_image_path() -> str:
    return f"{SHARE_IMAGE_DIR}/all-entities.svg"


def homepage_image_path() -> str:
    return f"{SHARE_IMAGE_DIR}/homepage.svg"


def entity_svg(site_name: str, title: str, tags: Sequence[str] = ()) -> str:
    content = _pills(tags)
    content.append(
        f'  <text x="600" y="380" text-anchor="middle" font-family="Georgia,serif" font-size="48" '
        f'font-weight="700" fill="{TEXT}" opacity="0.15">{_escape(_truncate(title, 40))}</text>'
    )
    return _scaffold(site_name, title, content)


def hub_svg(site_name: str, entry_name: str, taxonomy_label: str, count: int, top: Sequence[NameCount] = ()) -> str:
    content = [
        _text(60, 160, taxonomy_label, size=18, fill=MUTED),
        _text(60, 200, f"{count} items", size=22, fill=ACCENT, weight="600"),
        *_bars(top, x=60, y=250, max_width=900),
    ]
    return _scaffold(site_name, entry_name, content)


def taxonomy_index_svg(site_name: str, taxonomy_label: str, top: Sequence[NameCount]) -> str:
    content = [
        _text(60, 160, f"{len(top)} top {taxonomy_label.lower()}", size=18, fill=MUTED),
        *_bars(top, x=60, y=220, max_width=900),
    ]
    return _scaffold(site_name, f"All {taxonomy_label}", content)


def letter_svg(site_name: str, taxonomy_label: str, letter: str, entry_count: int) -> str:
    content = [
        f'  <text x="600" y="420" text-anchor="middle" font-family="Georgia,serif" font-size="220" '
        f'font-weight="700" fill="{ACCENT}" opacity="0.35">{_escape(letter)}</text>',
        _text(60, 160, f"{entry_count} {taxonomy_label.lower()}", size=22, fill=ACCENT, weight="600"),
    ]
    return _scaffold(site_name, f"{taxonomy_label}: {letter}", content)


def all_entities_svg(site_name: str, entity_label: str, total: int, distribution: Sequence[NameCount] = ()) -> str:
    content = [
        _text(60, 160, f"{total} total {entity_label}s", size=22, fill=ACCENT, weight="600"),
        *_bars(distribution, x=60, y=220, max_width=900),
    ]
    return _scaffold(site_name, f"All {entity_label.title()}s", content)


def homepage_svg(
    site_name: str, description: str, entity_label: str, total: int, stats: Sequence[NameCount] = ()
) -> str:
    content = [
        _text(60, 160, _truncate(description, 80), size=18, fill=MUTED),
        _text(60, 200, f"{total} total {entity_label}s", size=22, fill=ACCENT, weight="600"),
        *_bars(stats, x=60, y=250, max_width=900),
    ]
    return _scaffold(site_name, site_name, content)
