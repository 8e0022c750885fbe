"""Legacy export loading and per-item normalization."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from linebuild_engine.migration.legacy import (
    LegacyItemError,
    LegacyLoadError,
    load_legacy_items,
    normalize_legacy_item,
)


def _quesadilla() -> dict[str, object]:
    return {
        "item_id": 8006896,
        "item_name": "Quesadilla",
        "procedures": [
            {
                "activity_type": "cook",
                "procedure_steps": [
                    {"sub_steps_title": "Heat tortilla in turbo for 30 sec"},
                    {"title": "   "},
                ],
            },
            {"id": "p-9", "title": "Garnish with cilantro", "related_item_number": 1234},
        ],
    }


def test_nested_steps_inherit_the_outer_activity() -> None:
    item = normalize_legacy_item(_quesadilla())

    assert item.item_id == "8006896"
    assert item.source_id == "8006896"
    assert [(step.id, step.activity_type, step.title) for step in item.steps] == [
        ("step-0-0", "COOK", "Heat tortilla in turbo for 30 sec"),
        ("p-9", "GARNISH", "Garnish with cilantro"),
    ]
    assert item.steps[1].related_item_number == "1234"
    assert item.quality_warnings() == ()


def test_missing_ids_fall_back_to_positions() -> None:
    item = normalize_legacy_item({"procedures": [{"title": "Chop onions"}]}, index=4)

    assert (item.source_id, item.item_id, item.item_name) == ("legacy-4", "item-4", "Unknown Item")
    assert item.steps[0].id == "proc-0"
    assert item.quality_warnings() == ("all steps are free text (no BOM references)",)


def test_older_exports_keep_procedures_under_line_builds() -> None:
    raw = {
        "item_id": "bowl-1",
        "line_builds": [{"tasks": [{"procedures": [{"title": "Portion rice"}]}]}],
    }

    item = normalize_legacy_item(raw)

    assert [step.title for step in item.steps] == ["Portion rice"]


def test_item_without_procedures_has_a_quality_warning() -> None:
    item = normalize_legacy_item({"item_id": "empty"})

    assert item.steps == ()
    assert item.quality_warnings() == ("no procedures found",)


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ("not an object", r"items\[2\]: expected object, got str"),
        ({"procedures": "Chop"}, r"items\[2\]\.procedures: expected list"),
        ({"procedures": [42]}, r"items\[2\]\.procedures\[0\]: expected object"),
        ({"item_name": True}, r"items\[2\]\.item_name: expected string, got bool"),
    ],
)
def test_malformed_items_raise_item_errors(raw: object, message: str) -> None:
    with pytest.raises(LegacyItemError, match=message):
        normalize_legacy_item(raw, index=2)


def test_load_accepts_a_list_or_an_items_wrapper(tmp_path: Path) -> None:
    bare = tmp_path / "bare.json"
    bare.write_text(json.dumps([{"item_id": "a"}]), encoding="utf-8")
    wrapped = tmp_path / "wrapped.json"
    wrapped.write_text(
        json.dumps({"items": [{"item_id": "a"}, {"item_id": "b"}]}), encoding="utf-8"
    )

    assert load_legacy_items(bare) == [{"item_id": "a"}]
    assert len(load_legacy_items(wrapped)) == 2


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("{not json", "invalid JSON"),
        ('"just text"', "expected a list of items"),
        ('{"items": {"a": 1}}', "items: expected list, got dict"),
    ],
)
def test_load_rejects_bad_files(tmp_path: Path, content: str, message: str) -> None:
    source = tmp_path / "export.json"
    source.write_text(content, encoding="utf-8")

    with pytest.raises(LegacyLoadError, match=message):
        load_legacy_items(source)


def test_load_reports_unreadable_files(tmp_path: Path) -> None:
    with pytest.raises(LegacyLoadError, match="unable to read"):
        load_legacy_items(tmp_path / "missing.json")
