from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict

SLUG_TOKEN_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
PRIORITY_RE = re.compile(r"^(?:0(?:\.\d)?|1(?:\.0)?)$")
OVERRIDE_PATH_SEPARATOR = "[]."
FIELD_SLUG_PREFIX = "field:"


class SiteBaseModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ChangeFrequency(str, Enum):
    always = "always"
    hourly = "hourly"
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"
    never = "never"


class PageKind(str, Enum):
    homepage = "homepage"
    entity = "entity"
    taxonomy_index = "taxonomy_index"
    hub_page_1 = "hub_page_1"
    hub_page_n = "hub_page_n"
    hub = "hub"
    letter_page = "letter_page"
    all_entities = "all_entities"


class SectionType(str, Enum):
    unordered_list = "unordered_list"
    ordered_list = "ordered_list"
    faq = "faq"
    markdown = "markdown"


class DuplicateSlugPolicy(str, Enum):
    skip = "skip"
    overwrite = "overwrite"
    error = "error"


def validate_slug_token(value: str, *, field_name: str) -> str:
    text = value.strip()
    if not SLUG_TOKEN_RE.match(text):
        raise ValueError(f"{field_name} must be lowercase kebab-case")
    return text


def validate_field_key(value: str, *, field_name: str) -> str:
    text = value.strip()
    if not text:
        raise ValueError(f"{field_name} must be non-empty")
    if any(char.isspace() for char in text):
        raise ValueError(f"{field_name} cannot contain whitespace")
    return text


def validate_override_path(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if OVERRIDE_PATH_SEPARATOR not in text:
        return validate_field_key(text, field_name="override_field")

    container, _, sub_field = text.partition(OVERRIDE_PATH_SEPARATOR)
    if not container or not sub_field:
        raise ValueError("override_field must look like <container>[].<field>")
    if OVERRIDE_PATH_SEPARATOR in sub_field:
        raise ValueError("override_field supports a single [] level")
    validate_field_key(container, field_name="override_field container")
    validate_field_key(sub_field, field_name="override_field sub-field")
    return text


def validate_slug_source(value: str) -> str:
    text = value.strip()
    if text == "filename":
        return text
    if text.startswith(FIELD_SLUG_PREFIX):
        validate_field_key(text[len(FIELD_SLUG_PREFIX) :], field_name="slug_source field")
        return text
    raise ValueError("slug_source must be 'filename' or 'field:<name>'")


def validate_priority(value: str) -> str:
    text = value.strip()
    if not PRIORITY_RE.match(text):
        raise ValueError("sitemap priority must be between 0.0 and 1.0 with one decimal")
    return text


def normalize_relative_output_path(value: str) -> str:
    text = value.strip().lstrip("/")
    if not text:
        raise ValueError("path must be non-empty")
    if ".." in text.split("/"):
        raise ValueError("path cannot contain '..'")
    return text


def normalize_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    return text
