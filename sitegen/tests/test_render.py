from __future__ import annotations

import logging
from pathlib import Path

import pytest
from markupsafe import Markup

from sitegen.config import SiteSettings
from sitegen.entity import FAQ, Entity
from sitegen.errors import TemplateRenderError
from sitegen.render import (
    EntityPageContext,
    OGMeta,
    StaticPageContext,
    TemplateRenderer,
    context_vars,
    format_number,
    truncate_text,
)

SITE = SiteSettings(name="Recipes", base_url="https://example.com")


def _static_page(path: str = "/about.html") -> StaticPageContext:
    return StaticPageContext(
        site=SITE,
        path=path,
        canonical_url=f"https://example.com{path}",
        og=OGMeta(title="About", description="About us", url=f"https://example.com{path}"),
        title="About",
    )


def test_context_vars_exposes_dataclass_fields() -> None:
    variables = context_vars(_static_page())

    assert variables["title"] == "About"
    assert variables["path"] == "/about.html"
    assert variables["site"] is SITE
    assert context_vars({"a": 1}) == {"a": 1}


@pytest.mark.parametrize(
    ("value", "expected"),
    [(1234567, "1,234,567"), (12.0, "12"), (1234.56, "1,234.6"), ("n/a", "n/a"), (True, "True")],
)
def test_format_number(value: object, expected: str) -> None:
    assert format_number(value) == expected


def test_truncate_text() -> None:
    assert truncate_text("short", 10) == "short"
    assert truncate_text("a much longer sentence", 10) == "a much lo…"


def test_user_templates_override_packaged_defaults(tmp_path: Path) -> None:
    (tmp_path / "about.html").write_text("<p>{{ title }} at {{ site.name }}</p>", encoding="utf-8")
    renderer = TemplateRenderer(tmp_path)

    assert renderer.render("about.html", _static_page()) == "<p>About at Recipes</p>"


def test_missing_template_directory_falls_back_to_packaged(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="sitegen.render"):
        renderer = TemplateRenderer(tmp_path / "absent")

    assert "using packaged templates" in caplog.text
    entity = Entity.create(
        "tomato-soup",
        {"title": "Tomato Soup", "description": "Warm <b>bowl</b>"},
        {"ingredients": ["4 tomatoes"], "faqs": [FAQ("Freeze?", "Yes.")], "notes": "Serve hot."},
    )
    page = EntityPageContext(
        site=SITE,
        path="/tomato-soup.html",
        canonical_url="https://example.com/tomato-soup.html",
        og=OGMeta(title="Tomato Soup | Recipes", description="Warm", url="https://example.com/tomato-soup.html"),
        json_ld=Markup('<script type="application/ld+json">{}</script>'),
        entity=entity,
        title="Tomato Soup",
        description=entity.get_str("description"),
    )

    html = renderer.render("entity.html", page)

    assert "<h1>Tomato Soup</h1>" in html
    assert "Warm &lt;b&gt;bowl&lt;/b&gt;" in html
    assert '<script type="application/ld+json">{}</script>' in html
    assert '<link rel="canonical" href="https://example.com/tomato-soup.html">' in html
    assert "<li>4 tomatoes</li>" in html
    assert "<strong>Freeze?</strong>" in html


def test_template_errors_are_wrapped(tmp_path: Path) -> None:
    (tmp_path / "broken.html").write_text("{% if %}", encoding="utf-8")
    renderer = TemplateRenderer(tmp_path)

    with pytest.raises(TemplateRenderError, match="broken.html"):
        renderer.render("broken.html", _static_page())
    with pytest.raises(TemplateRenderError, match="missing.html"):
        renderer.render("missing.html", _static_page())
