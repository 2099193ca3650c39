from __future__ import annotations

from pathlib import Path

import pytest

from sitegen.config import (
    DEFAULT_ENTITIES_PER_PAGE,
    DEFAULT_LETTER_PAGE_THRESHOLD,
    DEFAULT_MAX_URLS_PER_FILE,
    DEFAULT_WORKERS,
    SiteConfigError,
    load_site_config,
    parse_site_config,
)
from sitegen.schemas import DuplicateSlugPolicy, PageKind


def _payload(**overrides: object) -> dict:
    payload: dict = {
        "site": {"name": "Recipes", "base_url": "https://example.com/"},
        "paths": {"data": "content"},
        "taxonomies": [
            {"name": "category", "label": "Categories", "field": "category"},
        ],
    }
    payload.update(overrides)
    return payload


def test_parse_site_config_applies_defaults_and_resolves_paths(tmp_path: Path) -> None:
    config = parse_site_config(_payload(), base_dir=tmp_path, environ={})

    assert config.site.base_url == "https://example.com"
    assert config.paths.data == (tmp_path / "content").resolve()
    assert config.paths.output == (tmp_path / "public").resolve()
    assert config.paths.templates == (tmp_path / "templates").resolve()
    assert config.paths.overrides is None
    assert config.pagination.entities_per_page == DEFAULT_ENTITIES_PER_PAGE
    assert config.sitemap.max_urls_per_file == DEFAULT_MAX_URLS_PER_FILE
    assert config.build.workers == DEFAULT_WORKERS
    assert config.data.duplicate_slugs == DuplicateSlugPolicy.skip
    assert config.output.clean_build is True

    taxonomy = config.taxonomies[0]
    assert taxonomy.label_singular == "Categories"
    assert taxonomy.min_entities == 1
    assert taxonomy.letter_page_threshold == DEFAULT_LETTER_PAGE_THRESHOLD


def test_non_positive_sizes_fall_back_to_defaults(tmp_path: Path) -> None:
    config = parse_site_config(
        _payload(
            pagination={"entities_per_page": 0},
            sitemap={"max_urls_per_file": -5},
            taxonomies=[
                {
                    "name": "cuisine",
                    "label": "Cuisines",
                    "field": "cuisine",
                    "min_entities": 0,
                    "letter_page_threshold": 0,
                }
            ],
        ),
        base_dir=tmp_path,
        environ={},
    )

    assert config.pagination.entities_per_page == DEFAULT_ENTITIES_PER_PAGE
    assert config.sitemap.max_urls_per_file == DEFAULT_MAX_URLS_PER_FILE
    assert config.taxonomies[0].min_entities == 1
    assert config.taxonomies[0].letter_page_threshold == DEFAULT_LETTER_PAGE_THRESHOLD


def test_sitemap_settings_merge_partial_priorities(tmp_path: Path) -> None:
    config = parse_site_config(
        _payload(sitemap={"priorities": {"entity": "0.9"}, "change_freqs": {"hub": "daily"}}),
        base_dir=tmp_path,
        environ={},
    )

    assert config.sitemap.priority_for(PageKind.entity) == "0.9"
    assert config.sitemap.priority_for(PageKind.homepage) == "1.0"
    assert config.sitemap.change_freq_for(PageKind.hub_page_n) == "daily"
    assert config.sitemap.change_freq_for(PageKind.homepage) == "daily"
    assert config.sitemap.change_freq_for(PageKind.entity) == "weekly"


def test_inverted_taxonomy_is_rejected(tmp_path: Path) -> None:
    payload = _payload(
        taxonomies=[{"name": "category", "label": "Categories", "field": "category", "invert": True}]
    )

    with pytest.raises(SiteConfigError, match="inverted taxonomies are not supported"):
        parse_site_config(payload, base_dir=tmp_path, environ={})


def test_duplicate_taxonomy_names_are_rejected(tmp_path: Path) -> None:
    payload = _payload(
        taxonomies=[
            {"name": "category", "label": "Categories", "field": "category"},
            {"name": "category", "label": "Again", "field": "other"},
        ]
    )

    with pytest.raises(SiteConfigError, match="duplicate taxonomy names: category"):
        parse_site_config(payload, base_dir=tmp_path, environ={})


def test_category_feeds_require_known_taxonomy(tmp_path: Path) -> None:
    payload = _payload(rss={"enabled": True, "category_feeds": True, "category_taxonomy": "cuisine"})

    with pytest.raises(SiteConfigError, match="unknown taxonomy: cuisine"):
        parse_site_config(payload, base_dir=tmp_path, environ={})


def test_unknown_keys_and_bad_override_paths_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(SiteConfigError, match="Extra inputs are not permitted"):
        parse_site_config(_payload(unexpected=True), base_dir=tmp_path, environ={})

    payload = _payload(
        taxonomies=[
            {
                "name": "ingredient",
                "label": "Ingredients",
                "field": "ingredients",
                "override_field": "ingredients[].",
            }
        ]
    )
    with pytest.raises(SiteConfigError, match=r"override_field must look like <container>\[\]\.<field>"):
        parse_site_config(payload, base_dir=tmp_path, environ={})


def test_base_url_must_be_http(tmp_path: Path) -> None:
    payload = _payload(site={"name": "Recipes", "base_url": "ftp://example.com"})

    with pytest.raises(SiteConfigError, match="site.base_url must use http or https"):
        parse_site_config(payload, base_dir=tmp_path, environ={})


def test_env_overrides_take_precedence(tmp_path: Path) -> None:
    config = parse_site_config(
        _payload(),
        base_dir=tmp_path,
        environ={
            "SITEGEN_BASE_URL": "https://staging.example.com",
            "SITEGEN_OUTPUT_DIR": "dist",
            "SITEGEN_WORKERS": "3",
            "SITEGEN_CLEAN_BUILD": "off",
        },
    )

    assert config.site.base_url == "https://staging.example.com"
    assert config.paths.output == (tmp_path / "dist").resolve()
    assert config.build.workers == 3
    assert config.output.clean_build is False


def test_env_overrides_reject_invalid_values(tmp_path: Path) -> None:
    with pytest.raises(SiteConfigError, match="SITEGEN_WORKERS must be an integer"):
        parse_site_config(_payload(), base_dir=tmp_path, environ={"SITEGEN_WORKERS": "many"})

    with pytest.raises(SiteConfigError, match="SITEGEN_CLEAN_BUILD must be a boolean value"):
        parse_site_config(_payload(), base_dir=tmp_path, environ={"SITEGEN_CLEAN_BUILD": "maybe"})

    with pytest.raises(SiteConfigError, match="build.workers must be between 1 and 64"):
        parse_site_config(_payload(), base_dir=tmp_path, environ={"SITEGEN_WORKERS": "0"})


def test_load_site_config_reads_yaml_relative_to_file(tmp_path: Path) -> None:
    config_dir = tmp_path / "site"
    config_dir.mkdir()
    config_path = config_dir / "site.yaml"
    config_path.write_text(
        "\n".join(
            [
                "site:",
                "  name: Recipes",
                "  base_url: https://example.com",
                "paths:",
                "  data: content",
                "  overrides: cache",
                "extra:",
                "  favorites: favorites.json",
            ]
        )
        + "\n",
        encoding="utf-8",
    )

    config = load_site_config(config_path, environ={})

    assert config.paths.data == (config_dir / "content").resolve()
    assert config.paths.overrides == (config_dir / "cache").resolve()
    assert config.extra.favorites == (config_dir / "favorites.json").resolve()


def test_load_site_config_reports_yaml_and_shape_errors(tmp_path: Path) -> None:
    missing = tmp_path / "missing.yaml"
    with pytest.raises(SiteConfigError, match="invalid site config"):
        load_site_config(missing, environ={})

    broken = tmp_path / "broken.yaml"
    broken.write_text("site: [unclosed\n", encoding="utf-8")
    with pytest.raises(SiteConfigError, match="YAML parse error"):
        load_site_config(broken, environ={})

    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(SiteConfigError, match="top-level YAML must be a mapping"):
        load_site_config(listing, environ={})
