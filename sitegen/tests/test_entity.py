from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path

import pytest

from sitegen.entity import FAQ, Entity, EntityIndex, normalize_field_value, slugify
from sitegen.errors import DuplicateSlugError
from sitegen.schemas import DuplicateSlugPolicy


def _entity(slug: str, source: str | None = None, **fields: object) -> Entity:
    return Entity.create(slug, fields, source_path=Path(source) if source else None)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Crème Brûlée", "cr-me-br-l-e"),
        ("  Quick & Easy  ", "quick-easy"),
        ("Soup", "soup"),
        ("---", ""),
        ("Mains/Sides 2", "mains-sides-2"),
    ],
)
def test_slugify_collapses_non_alphanumeric_runs(raw: str, expected: str) -> None:
    assert slugify(raw) == expected


def test_normalize_field_value_covers_supported_variants() -> None:
    assert normalize_field_value("text") == "text"
    assert normalize_field_value(3) == 3
    assert normalize_field_value(True) is True
    assert normalize_field_value(dt.date(2025, 3, 1)) == "2025-03-01"
    assert normalize_field_value(["a", 2, None, dt.date(2025, 1, 2)]) == ("a", "2", "2025-01-02")
    records = normalize_field_value([{"name": "salt"}, {"name": "pepper"}])
    assert isinstance(records, tuple)
    assert [record["name"] for record in records] == ["salt", "pepper"]
    assert normalize_field_value(None) is None
    assert normalize_field_value(object()) is None


def test_entity_accessors_return_defaults_on_absence_or_mismatch() -> None:
    entity = Entity.create(
        "pancakes",
        {
            "title": "Pancakes",
            "servings": 4,
            "rating": 4.5,
            "vegetarian": True,
            "tags": ["breakfast", "sweet"],
            "ingredients": [{"name": "flour"}],
            "empty": "",
        },
        {"steps": ["Mix", "Cook"], "notes": "Serve warm.", "faqs": [FAQ("Freeze?", "Yes.")]},
    )

    assert entity.get_str("title") == "Pancakes"
    assert entity.get_str("servings", "n/a") == "n/a"
    assert entity.get_int("servings") == 4
    assert entity.get_int("title", -1) == -1
    assert entity.get_int("vegetarian", 7) == 7
    assert entity.get_float("rating") == 4.5
    assert entity.get_float("servings") == 4.0
    assert entity.get_bool("vegetarian") is True
    assert entity.get_bool("title") is False
    assert entity.get_str_list("tags") == ["breakfast", "sweet"]
    assert entity.get_str_list("title") == []
    assert entity.get_records("ingredients")[0]["name"] == "flour"
    assert entity.has_field("tags") is True
    assert entity.has_field("empty") is False
    assert entity.has_field("missing") is False
    assert entity.get_section_items("steps") == ["Mix", "Cook"]
    assert entity.get_section_text("notes") == "Serve warm."
    assert entity.get_section_text("steps") == ""
    assert entity.get_faqs() == [FAQ("Freeze?", "Yes.")]


def test_entity_fields_are_read_only() -> None:
    entity = _entity("soup", title="Soup")

    with pytest.raises(TypeError):
        entity.fields["title"] = "Other"  # type: ignore[index]


def test_entity_index_keeps_load_order_and_resolves_slugs() -> None:
    index = EntityIndex.from_entities([_entity("b"), _entity("a"), _entity("c")])

    assert index.slugs == ["b", "a", "c"]
    assert len(index) == 3
    assert "a" in index
    assert "z" not in index
    assert index.get("a") is not None
    assert index.get("z") is None
    assert [entity.slug for entity in index.resolve(["c", "missing", "b"])] == ["c", "b"]


def test_duplicate_slugs_skip_keeps_first_record() -> None:
    first = _entity("soup", "data/a-soup.md", title="First")
    second = _entity("soup", "data/b-soup.md", title="Second")

    index = EntityIndex.from_entities([first, second], duplicate_policy=DuplicateSlugPolicy.skip)

    assert len(index) == 1
    assert index.get("soup") is first
    assert index.skipped_duplicates == ("soup",)


def test_duplicate_slugs_overwrite_keeps_last_record_in_first_position() -> None:
    entities = [
        _entity("soup", "data/a.md", title="First"),
        _entity("salad", "data/b.md"),
        _entity("soup", "data/c.md", title="Last"),
    ]

    index = EntityIndex.from_entities(entities, duplicate_policy=DuplicateSlugPolicy.overwrite)

    assert index.slugs == ["soup", "salad"]
    assert index.get("soup").get_str("title") == "Last"
    assert index.skipped_duplicates == ()


def test_duplicate_slugs_error_policy_raises() -> None:
    entities = [_entity("soup", "data/a.md"), _entity("soup", "data/b.md")]

    with pytest.raises(DuplicateSlugError, match="duplicate entity slug 'soup': data/b.md collides with data/a.md"):
        EntityIndex.from_entities(entities, duplicate_policy=DuplicateSlugPolicy.error)


def test_reserved_slugs_are_skipped_with_a_warning(caplog: pytest.LogCaptureFixture) -> None:
    entities = [_entity("index", "data/index.md"), _entity("pie", "data/pie.md"), _entity("about", "data/about.md")]

    with caplog.at_level(logging.WARNING, logger="sitegen.entity"):
        index = EntityIndex.from_entities(entities, reserved_slugs={"index", "about"})

    assert index.slugs == ["pie"]
    assert index.skipped_duplicates == ()
    assert "Slug index is reserved for a site page; skipping data/index.md" in caplog.text
