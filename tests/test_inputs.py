from __future__ import annotations

import pytest

from eiscpctl.core.inputs import (
    BUILTIN_INPUT_LABELS,
    build_input_labels,
    label_overrides_from_mapping,
    normalize_input_code,
)


def test_default_map_is_builtin_table() -> None:
    labels = build_input_labels()
    assert dict(labels.labels) == dict(BUILTIN_INPUT_LABELS)
    assert labels.label_for("00") == "Video 1"
    assert labels.label_for("2E") == "BT Audio"


def test_allow_list_replaces_working_set() -> None:
    labels = build_input_labels(["02", "10"])
    assert labels.codes() == ["02", "10"]
    assert labels.label_for("02") == "GAME"
    assert labels.label_for("10") == "BD/DVD"
    assert "00" not in labels


def test_allow_list_code_without_builtin_gets_generated_label() -> None:
    labels = build_input_labels(["02", "55"])
    assert labels.label_for("55") == "SLI 55"


def test_overrides_only_apply_inside_allow_list() -> None:
    labels = build_input_labels(["02", "10"], {"10": "Blu-ray", "23": "Apple TV"})
    assert labels.codes() == ["02", "10"]
    assert labels.label_for("10") == "Blu-ray"


def test_overrides_extend_map_without_allow_list() -> None:
    labels = build_input_labels((), {"23": "Apple TV", "99": ""})
    assert labels.label_for("23") == "Apple TV"
    assert labels.label_for("99") == "SLI 99"
    assert "00" in labels


def test_label_lookup_is_case_insensitive() -> None:
    labels = build_input_labels((), {"23": "Apple TV"})
    assert labels.code_for_label("apple tv") == "23"
    assert labels.code_for_label("nope") is None


def test_snapshot_is_immutable() -> None:
    labels = build_input_labels()
    with pytest.raises(TypeError):
        labels.labels["00"] = "Changed"  # type: ignore[index]


def test_choices_are_sorted_by_code() -> None:
    labels = build_input_labels(["10", "02"])
    assert labels.choices() == [("02", "GAME"), ("10", "BD/DVD")]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (2, "02"),
        (10, "10"),
        (3.0, "03"),
        ("2e", "2E"),
        (" 1 ", "01"),
        ("23", "23"),
        (True, ""),
        (None, ""),
        (-1, ""),
        ("", ""),
    ],
)
def test_normalize_input_code(raw: object, expected: str) -> None:
    assert normalize_input_code(raw) == expected


def test_label_overrides_from_mapping() -> None:
    overrides = label_overrides_from_mapping(
        {
            "host": "192.0.2.10",
            "inputLabel_23": " Apple TV ",
            "inputLabel_2e": "Phone",
            "inputLabel_": "ignored",
            "inputLabel_05": 7,
        }
    )
    assert overrides == {"23": "Apple TV", "2E": "Phone", "05": ""}
