"""Load entities from markdown files with YAML front matter."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import yaml

from sitegen.config import BodySection, DataSettings
from sitegen.entity import FAQ, Entity, slugify
from sitegen.errors import CorpusLoadError
from sitegen.schemas import SectionType

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(r"\A---\n(.*?)\n---[ \t]*(?:\n|\Z)", re.DOTALL)
ORDERED_ITEM_RE = re.compile(r"^\d{1,4}\. (.*)$")


class MalformedEntityFile(ValueError):
    pass


def split_frontmatter(markdown: str) -> tuple[dict[str, Any], str]:
    text = markdown.replace("\r\n", "\n").strip()
    if not text.startswith("---"):
        return {}, text

    match = FRONTMATTER_RE.match(text)
    if not match:
        raise MalformedEntityFile("no closing --- found for front matter")
    try:
        metadata = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise MalformedEntityFile(f"front matter YAML parse error: {exc}") from exc
    if not isinstance(metadata, dict):
        raise MalformedEntityFile("front matter must be a mapping")
    body = text[match.end() :].strip()
    return metadata, body


def split_h2_sections(body: str) -> dict[str, str]:
    sections: dict[str, str] = {}
    current_heading: str | None = None
    current_lines: list[str] = []

    for line in body.splitlines():
        if line.startswith("## "):
            if current_heading is not None and current_heading not in sections:
                sections[current_heading] = "\n".join(current_lines).strip()
            current_heading = line[3:].strip()
            current_lines = []
            continue
        current_lines.append(line)

    if current_heading is not None and current_heading not in sections:
        sections[current_heading] = "\n".join(current_lines).strip()
    return sections


def parse_unordered_list(content: str) -> tuple[str, ...]:
    items: list[str] = []
    for line in content.splitlines():
        text = line.strip()
        if text.startswith("- ") or text.startswith("* "):
            items.append(text[2:].strip())
    return tuple(items)


def parse_ordered_list(content: str) -> tuple[str, ...]:
    items: list[str] = []
    for line in content.splitlines():
        match = ORDERED_ITEM_RE.match(line.strip())
        if match:
            items.append(match.group(1).strip())
    return tuple(items)


def parse_faqs(content: str) -> tuple[FAQ, ...]:
    faqs: list[FAQ] = []
    question: str | None = None
    answer_lines: list[str] = []

    for line in content.splitlines():
        if line.startswith("### "):
            if question:
                faqs.append(FAQ(question=question, answer="\n".join(answer_lines).strip()))
            question = line[4:].strip()
            answer_lines = []
            continue
        if question is not None:
            answer_lines.append(line)

    if question:
        faqs.append(FAQ(question=question, answer="\n".join(answer_lines).strip()))
    return tuple(faqs)


def parse_body_sections(body: str, body_sections: list[BodySection]) -> dict[str, Any]:
    raw_sections = split_h2_sections(body)
    parsed: dict[str, Any] = {}
    for section in body_sections:
        content = raw_sections.get(section.header, "")
        if not content:
            continue
        if section.type == SectionType.unordered_list:
            parsed[section.name] = parse_unordered_list(content)
        elif section.type == SectionType.ordered_list:
            parsed[section.name] = parse_ordered_list(content)
        elif section.type == SectionType.faq:
            parsed[section.name] = parse_faqs(content)
        else:
            parsed[section.name] = content
    return parsed


def derive_slug(path: Path, metadata: dict[str, Any], settings: DataSettings) -> str:
    field_name = settings.slug_field
    if field_name is not None:
        value = metadata.get(field_name)
        if isinstance(value, str) and slugify(value):
            return slugify(value)
        logger.debug("Slug field %s missing in %s; falling back to filename", field_name, path.name)
    return slugify(path.stem)


def load_entity_file(path: Path, settings: DataSettings) -> Entity:
    markdown = path.read_text(encoding="utf-8")
    metadata, body = split_frontmatter(markdown)
    slug = derive_slug(path, metadata, settings)
    if not slug:
        raise MalformedEntityFile("unable to derive a slug")
    return Entity.create(
        slug,
        metadata,
        parse_body_sections(body, settings.body_sections),
        body=body,
        source_path=path,
    )


def load_entities(data_dir: Path, settings: DataSettings) -> list[Entity]:
    """Read every ``*.md`` file directly under ``data_dir`` in filename order.

    Files that cannot be parsed are skipped with a warning. A missing or unreadable
    directory is fatal.
    """
    if not data_dir.is_dir():
        raise CorpusLoadError(data_dir=data_dir.as_posix(), details="directory does not exist")
    try:
        paths = sorted(path for path in data_dir.iterdir() if path.is_file() and path.suffix == ".md")
    except OSError as exc:
        raise CorpusLoadError(data_dir=data_dir.as_posix(), details=str(exc)) from exc

    entities: list[Entity] = []
    for path in paths:
        try:
            entities.append(load_entity_file(path, settings))
        except (OSError, UnicodeDecodeError, MalformedEntityFile) as exc:
            logger.warning("Skipping %s: %s", path.name, exc)
    logger.info("Loaded %d entities from %s", len(entities), data_dir.as_posix())
    return entities
