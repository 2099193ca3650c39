"""schema.org JSON-LD objects for rendered pages."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from markupsafe import Markup

from sitegen.config import SiteConfig
from sitegen.entity import FAQ, Entity

SCHEMA_CONTEXT = "https://schema.org"


@dataclass(frozen=True)
class Breadcrumb:
    name: str
    url: str = ""


@dataclass(frozen=True)
class ListedItem:
    name: str
    url: str


def _list_elements(items: Sequence[ListedItem]) -> list[dict[str, Any]]:
    return [
        {"@type": "ListItem", "position": position, "url": item.url, "name": item.name}
        for position, item in enumerate(items, start=1)
    ]


def _thaw(value: Any) -> Any:
    """Plain dicts and lists for ``json.dumps``; a lone record becomes an object."""
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        items = [_thaw(item) for item in value]
        if len(items) == 1 and isinstance(items[0], dict):
            return items[0]
        return items
    return value


def _mapped_value(entity: Entity, field_name: str) -> Any:
    value = entity.fields.get(field_name)
    if value is None:
        section_items = entity.get_section_items(field_name)
        if section_items:
            return section_items
        return entity.get_section_text(field_name) or None
    if isinstance(value, tuple):
        return _thaw(value)
    if isinstance(value, str) and not value:
        return None
    return value


class StructuredDataBuilder:
    def __init__(self, config: SiteConfig) -> None:
        self.config = config

    def entity(
        self,
        entity: Entity,
        page_url: str,
        *,
        related: Iterable[tuple[str, str]] = (),
        image_url: str = "",
    ) -> dict[str, Any]:
        settings = self.config.structured_data
        data_settings = self.config.data
        schema: dict[str, Any] = {
            "@context": SCHEMA_CONTEXT,
            "@type": settings.entity_type,
            "name": entity.get_str(data_settings.title_field, entity.slug),
            "url": page_url,
            "datePublished": settings.date_published,
        }
        description = entity.get_str(data_settings.description_field)
        if description:
            schema["description"] = description
        if image_url:
            schema["image"] = [image_url]

        for schema_key, field_name in settings.field_mappings.items():
            value = _mapped_value(entity, field_name)
            if value is not None and value != []:
                schema[schema_key] = value

        keywords = entity.get_str_list("keywords") + list(settings.extra_keywords)
        if keywords:
            schema["keywords"] = ", ".join(keywords)

        related_items = [
            {"@type": settings.entity_type, "name": title, "url": url} for title, url in related
        ]
        if related_items:
            schema["isRelatedTo"] = related_items
        return schema

    def breadcrumbs(self, items: Sequence[Breadcrumb]) -> dict[str, Any]:
        elements: list[dict[str, Any]] = []
        for position, item in enumerate(items, start=1):
            element: dict[str, Any] = {"@type": "ListItem", "position": position, "name": item.name}
            if item.url:
                element["item"] = item.url
            elements.append(element)
        return {"@context": SCHEMA_CONTEXT, "@type": "BreadcrumbList", "itemListElement": elements}

    def faq_page(self, faqs: Sequence[FAQ]) -> dict[str, Any] | None:
        if not faqs:
            return None
        return {
            "@context": SCHEMA_CONTEXT,
            "@type": "FAQPage",
            "mainEntity": [
                {
                    "@type": "Question",
                    "name": faq.question,
                    "acceptedAnswer": {"@type": "Answer", "text": faq.answer},
                }
                for faq in faqs
            ],
        }

    def website(self, image_url: str = "") -> dict[str, Any]:
        site = self.config.site
        schema: dict[str, Any] = {
            "@context": SCHEMA_CONTEXT,
            "@type": "WebSite",
            "name": site.name,
            "url": site.base_url,
            "description": site.description,
            "publisher": {"@type": "Organization", "name": site.name, "url": site.base_url},
        }
        if image_url:
            schema["image"] = image_url
        return schema

    def item_list(
        self,
        name: str,
        description: str,
        items: Sequence[ListedItem],
        image_url: str = "",
    ) -> dict[str, Any]:
        schema: dict[str, Any] = {
            "@context": SCHEMA_CONTEXT,
            "@type": "ItemList",
            "name": name,
            "description": description,
            "numberOfItems": len(items),
            "itemListElement": _list_elements(items),
        }
        if image_url:
            schema["image"] = image_url
        return schema

    def collection_page(
        self,
        name: str,
        description: str,
        page_url: str,
        items: Sequence[ListedItem],
        image_url: str = "",
    ) -> dict[str, Any]:
        schema: dict[str, Any] = {
            "@context": SCHEMA_CONTEXT,
            "@type": "CollectionPage",
            "name": name,
            "url": page_url,
            "description": description,
            "mainEntity": {
                "@type": "ItemList",
                "numberOfItems": len(items),
                "itemListElement": _list_elements(items),
            },
        }
        if image_url:
            schema["image"] = image_url
        return schema


def script_tags(*schemas: Mapping[str, Any] | None) -> Markup:
    """Serialize schemas into ``<script type="application/ld+json">`` blocks, skipping ``None``."""
    blocks: list[str] = []
    for schema in schemas:
        if schema is None:
            continue
        payload = json.dumps(schema, ensure_ascii=False, sort_keys=True)
        # Keep "</script>" inside string values from closing the tag early.
        payload = payload.replace("</", "<\\/")
        blocks.append(f'<script type="application/ld+json">{payload}</script>')
    return Markup("\n".join(blocks))
