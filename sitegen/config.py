from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError, field_validator, model_validator

from sitegen.schemas import (
    ChangeFrequency,
    DuplicateSlugPolicy,
    PageKind,
    SectionType,
    SiteBaseModel,
    normalize_optional_text,
    normalize_relative_output_path,
    validate_field_key,
    validate_override_path,
    validate_priority,
    validate_slug_source,
    validate_slug_token,
)

DEFAULT_ENTITIES_PER_PAGE = 48
DEFAULT_MAX_URLS_PER_FILE = 50000
DEFAULT_LETTER_PAGE_THRESHOLD = 50
DEFAULT_WORKERS = 8
MAX_WORKERS = 64

DEFAULT_PRIORITIES: dict[PageKind, str] = {
    PageKind.homepage: "1.0",
    PageKind.entity: "0.8",
    PageKind.taxonomy_index: "0.7",
    PageKind.hub_page_1: "0.6",
    PageKind.hub_page_n: "0.4",
    PageKind.letter_page: "0.5",
    PageKind.all_entities: "0.5",
}
DEFAULT_CHANGE_FREQS: dict[PageKind, ChangeFrequency] = {
    PageKind.homepage: ChangeFrequency.daily,
    PageKind.entity: ChangeFrequency.weekly,
    PageKind.taxonomy_index: ChangeFrequency.weekly,
    PageKind.hub: ChangeFrequency.weekly,
    PageKind.letter_page: ChangeFrequency.weekly,
    PageKind.all_entities: ChangeFrequency.weekly,
}

_PATH_KEYS = ("data", "templates", "output", "overrides", "static")
_EXTRA_PATH_KEYS = ("favorites", "contributors")


class SiteConfigError(ValueError):
    def __init__(self, *, config_path: str, details: str) -> None:
        super().__init__(f"invalid site config '{config_path}': {details}")
        self.config_path = config_path
        self.details = details


def _parse_bool(raw: str, *, env_var: str) -> bool:
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{env_var} must be a boolean value")


class SiteSettings(SiteBaseModel):
    name: str
    base_url: str
    description: str = ""
    language: str = "en"
    author: str | None = None
    cname: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("site.name is required")
        return text

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        text = value.strip().rstrip("/")
        if not text.startswith(("http://", "https://")):
            raise ValueError("site.base_url must use http or https")
        return text

    @field_validator("author", "cname")
    @classmethod
    def normalize_optional(cls, value: str | None) -> str | None:
        return normalize_optional_text(value)


class PathSettings(SiteBaseModel):
    data: Path
    templates: Path = Path("templates")
    output: Path = Path("public")
    overrides: Path | None = None
    static: Path | None = None


class BodySection(SiteBaseModel):
    name: str
    header: str
    type: SectionType = SectionType.markdown

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return validate_field_key(value, field_name="body section name")

    @field_validator("header")
    @classmethod
    def validate_header(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("body section header must be non-empty")
        return text


class DataSettings(SiteBaseModel):
    entity_label: str = "item"
    slug_source: str = "filename"
    duplicate_slugs: DuplicateSlugPolicy = DuplicateSlugPolicy.skip
    body_sections: list[BodySection] = Field(default_factory=list)
    title_field: str = "title"
    description_field: str = "description"
    related_field: str = "related"
    breadcrumb_taxonomy: str | None = None

    @field_validator("slug_source")
    @classmethod
    def validate_source(cls, value: str) -> str:
        return validate_slug_source(value)

    @field_validator("title_field", "description_field", "related_field")
    @classmethod
    def validate_keys(cls, value: str) -> str:
        return validate_field_key(value, field_name="data field")

    @field_validator("breadcrumb_taxonomy")
    @classmethod
    def normalize_breadcrumb(cls, value: str | None) -> str | None:
        return normalize_optional_text(value)

    @property
    def slug_field(self) -> str | None:
        if self.slug_source.startswith("field:"):
            return self.slug_source[len("field:") :]
        return None


class TaxonomyConfig(SiteBaseModel):
    name: str
    label: str
    label_singular: str | None = None
    field: str
    multi_value: bool = False
    min_entities: int = 1
    letter_page_threshold: int = DEFAULT_LETTER_PAGE_THRESHOLD
    invert: bool = False
    override_field: str | None = None
    template: str = "hub.html"
    index_template: str = "taxonomy_index.html"
    letter_template: str = "letter.html"
    index_description: str = ""

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return validate_slug_token(value, field_name="taxonomy name")

    @field_validator("field")
    @classmethod
    def validate_field(cls, value: str) -> str:
        return validate_field_key(value, field_name="taxonomy field")

    @field_validator("override_field")
    @classmethod
    def validate_override(cls, value: str | None) -> str | None:
        return validate_override_path(value)

    @field_validator("min_entities", "letter_page_threshold")
    @classmethod
    def default_non_positive(cls, value: int, info) -> int:
        if value > 0:
            return value
        if info.field_name == "min_entities":
            return 1
        return DEFAULT_LETTER_PAGE_THRESHOLD

    @model_validator(mode="after")
    def validate_taxonomy(self) -> "TaxonomyConfig":
        if self.invert:
            raise ValueError(f"taxonomy {self.name}: inverted taxonomies are not supported")
        if self.label_singular is None:
            self.label_singular = self.label
        return self


class PaginationSettings(SiteBaseModel):
    entities_per_page: int = DEFAULT_ENTITIES_PER_PAGE

    @field_validator("entities_per_page")
    @classmethod
    def default_non_positive(cls, value: int) -> int:
        return value if value > 0 else DEFAULT_ENTITIES_PER_PAGE


class StructuredDataSettings(SiteBaseModel):
    entity_type: str = "Thing"
    field_mappings: dict[str, str] = Field(default_factory=dict)
    extra_keywords: list[str] = Field(default_factory=list)
    date_published: str = "2025-01-01"


class SitemapSettings(SiteBaseModel):
    max_urls_per_file: int = DEFAULT_MAX_URLS_PER_FILE
    priorities: dict[PageKind, str] = Field(default_factory=lambda: dict(DEFAULT_PRIORITIES))
    change_freqs: dict[PageKind, ChangeFrequency] = Field(
        default_factory=lambda: dict(DEFAULT_CHANGE_FREQS)
    )

    @field_validator("max_urls_per_file")
    @classmethod
    def default_non_positive(cls, value: int) -> int:
        return value if value > 0 else DEFAULT_MAX_URLS_PER_FILE

    @field_validator("priorities")
    @classmethod
    def merge_priorities(cls, value: dict[PageKind, str]) -> dict[PageKind, str]:
        merged = dict(DEFAULT_PRIORITIES)
        for kind, priority in value.items():
            merged[kind] = validate_priority(priority)
        return merged

    @field_validator("change_freqs")
    @classmethod
    def merge_change_freqs(
        cls, value: dict[PageKind, ChangeFrequency]
    ) -> dict[PageKind, ChangeFrequency]:
        return {**DEFAULT_CHANGE_FREQS, **value}

    def priority_for(self, kind: PageKind) -> str:
        return self.priorities.get(kind, "0.5")

    def change_freq_for(self, kind: PageKind) -> str:
        if kind in (PageKind.hub_page_1, PageKind.hub_page_n):
            kind = PageKind.hub
        return self.change_freqs.get(kind, ChangeFrequency.weekly).value


class RSSSettings(SiteBaseModel):
    enabled: bool = False
    main_feed: str = "feed.xml"
    category_feeds: bool = False
    category_taxonomy: str | None = None

    @field_validator("main_feed")
    @classmethod
    def validate_main_feed(cls, value: str) -> str:
        return normalize_relative_output_path(value)


class RobotsSettings(SiteBaseModel):
    allow_all: bool = True
    extra_bots: list[str] = Field(default_factory=list)


class LlmsTxtSettings(SiteBaseModel):
    enabled: bool = False
    tagline: str = ""
    taxonomies: list[str] = Field(default_factory=list)


class SearchSettings(SiteBaseModel):
    enabled: bool = False
    fields: list[str] = Field(default_factory=list)


class ExtraSettings(SiteBaseModel):
    favorites: Path | None = None
    contributors: Path | None = None


class TemplateSettings(SiteBaseModel):
    entity: str = "entity.html"
    homepage: str = "index.html"
    all_entities: str = "all_entities.html"
    static_pages: dict[str, str] = Field(default_factory=dict)

    @field_validator("static_pages")
    @classmethod
    def validate_static_pages(cls, value: dict[str, str]) -> dict[str, str]:
        return {normalize_relative_output_path(path): template for path, template in value.items()}


class OutputSettings(SiteBaseModel):
    clean_build: bool = True


class BuildSettings(SiteBaseModel):
    workers: int = DEFAULT_WORKERS

    @field_validator("workers")
    @classmethod
    def validate_workers(cls, value: int) -> int:
        if value < 1 or value > MAX_WORKERS:
            raise ValueError(f"build.workers must be between 1 and {MAX_WORKERS}")
        return value


class SiteConfig(SiteBaseModel):
    site: SiteSettings
    paths: PathSettings
    data: DataSettings = Field(default_factory=DataSettings)
    taxonomies: list[TaxonomyConfig] = Field(default_factory=list)
    pagination: PaginationSettings = Field(default_factory=PaginationSettings)
    structured_data: StructuredDataSettings = Field(default_factory=StructuredDataSettings)
    sitemap: SitemapSettings = Field(default_factory=SitemapSettings)
    rss: RSSSettings = Field(default_factory=RSSSettings)
    robots: RobotsSettings = Field(default_factory=RobotsSettings)
    llms_txt: LlmsTxtSettings = Field(default_factory=LlmsTxtSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    extra: ExtraSettings = Field(default_factory=ExtraSettings)
    templates: TemplateSettings = Field(default_factory=TemplateSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)
    build: BuildSettings = Field(default_factory=BuildSettings)

    @model_validator(mode="after")
    def validate_references(self) -> "SiteConfig":
        names = [taxonomy.name for taxonomy in self.taxonomies]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate taxonomy names: {', '.join(duplicates)}")
        known = set(names)

        if self.rss.category_feeds:
            if not self.rss.category_taxonomy:
                raise ValueError("rss.category_taxonomy is required when category_feeds is enabled")
            if self.rss.category_taxonomy not in known:
                raise ValueError(f"rss.category_taxonomy references unknown taxonomy: {self.rss.category_taxonomy}")
        if self.data.breadcrumb_taxonomy and self.data.breadcrumb_taxonomy not in known:
            raise ValueError(
                f"data.breadcrumb_taxonomy references unknown taxonomy: {self.data.breadcrumb_taxonomy}"
            )
        unknown_llms = sorted(set(self.llms_txt.taxonomies) - known)
        if unknown_llms:
            raise ValueError(f"llms_txt.taxonomies references unknown taxonomy: {', '.join(unknown_llms)}")
        return self

    def taxonomy(self, name: str) -> TaxonomyConfig | None:
        for taxonomy in self.taxonomies:
            if taxonomy.name == name:
                return taxonomy
        return None

    @property
    def category_taxonomy(self) -> TaxonomyConfig | None:
        if not self.rss.category_taxonomy:
            return None
        return self.taxonomy(self.rss.category_taxonomy)


def _resolve_path(value: Any, base_dir: Path) -> Any:
    if value is None or value == "":
        return None
    path = Path(str(value))
    if path.is_absolute():
        return path
    return (base_dir / path).resolve()


def resolve_config_paths(payload: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    paths = payload.get("paths")
    if isinstance(paths, dict):
        for key in _PATH_KEYS:
            if key in paths:
                paths[key] = _resolve_path(paths[key], base_dir)
        for key, default in (("templates", "templates"), ("output", "public")):
            if key not in paths:
                paths[key] = _resolve_path(default, base_dir)

    extra = payload.get("extra")
    if isinstance(extra, dict):
        for key in _EXTRA_PATH_KEYS:
            if key in extra:
                extra[key] = _resolve_path(extra[key], base_dir)
    return payload


def apply_env_overrides(payload: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    env = dict(environ)

    if "SITEGEN_BASE_URL" in env:
        payload.setdefault("site", {})["base_url"] = env["SITEGEN_BASE_URL"]
    if "SITEGEN_OUTPUT_DIR" in env:
        payload.setdefault("paths", {})["output"] = env["SITEGEN_OUTPUT_DIR"]
    if "SITEGEN_WORKERS" in env:
        raw = env["SITEGEN_WORKERS"].strip()
        try:
            workers = int(raw)
        except ValueError as exc:
            raise ValueError("SITEGEN_WORKERS must be an integer") from exc
        payload.setdefault("build", {})["workers"] = workers
    if "SITEGEN_CLEAN_BUILD" in env:
        payload.setdefault("output", {})["clean_build"] = _parse_bool(
            env["SITEGEN_CLEAN_BUILD"],
            env_var="SITEGEN_CLEAN_BUILD",
        )
    return payload


def parse_site_config(
    payload: Mapping[str, Any],
    *,
    base_dir: Path,
    config_label: str = "<memory>",
    environ: Mapping[str, str] | None = None,
) -> SiteConfig:
    data: dict[str, Any] = {
        key: dict(value) if isinstance(value, Mapping) else value for key, value in payload.items()
    }
    try:
        data = apply_env_overrides(data, os.environ if environ is None else environ)
    except ValueError as exc:
        raise SiteConfigError(config_path=config_label, details=str(exc)) from exc
    data = resolve_config_paths(data, base_dir)

    try:
        return SiteConfig.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first["msg"]
        details = f"{location}: {message}" if location else message
        raise SiteConfigError(config_path=config_label, details=details) from exc


def load_site_config(path: Path, *, environ: Mapping[str, str] | None = None) -> SiteConfig:
    config_path = path.resolve()
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SiteConfigError(config_path=config_path.as_posix(), details=str(exc)) from exc

    try:
        payload = yaml.safe_load(raw) or {}
    except yaml.YAMLError as exc:
        raise SiteConfigError(config_path=config_path.as_posix(), details=f"YAML parse error: {exc}") from exc
    if not isinstance(payload, dict):
        raise SiteConfigError(config_path=config_path.as_posix(), details="top-level YAML must be a mapping")

    return parse_site_config(
        payload,
        base_dir=config_path.parent,
        config_label=config_path.as_posix(),
        environ=environ,
    )
