"""Input source (SLI) code/label registry."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

LABEL_KEY_PREFIX = "inputLabel_"

BUILTIN_INPUT_LABELS: Mapping[str, str] = MappingProxyType(
    {
        "00": "Video 1",
        "01": "Video 2",
        "02": "GAME",
        "03": "AUX",
        "04": "Video 5",
        "05": "Video 6",
        "06": "Video 7",
        "10": "BD/DVD",
        "12": "TV",
        "20": "TV",
        "21": "TV/CD",
        "22": "Cable/Sat",
        "23": "HDMI 1",
        "24": "HDMI 2",
        "25": "HDMI 3",
        "26": "HDMI 4",
        "2E": "BT Audio",
        "30": "CD",
        "31": "FM",
        "32": "AM",
        "40": "USB",
        "41": "Network",
        "44": "Bluetooth",
        "80": "USB Front",
        "81": "USB Rear",
    }
)


def fallback_label(code: str) -> str:
    return f"SLI {code}"


def normalize_input_code(raw: Any) -> str:
    """Return the canonical 2-character form of an input code, or "" if unusable.

    Integers are rendered as zero-padded decimals (2 -> "02"); strings are
    stripped, uppercased and left-padded when a single character is given.
    """
    if isinstance(raw, bool):
        return ""
    if isinstance(raw, int):
        return f"{raw:02d}" if raw >= 0 else ""
    if isinstance(raw, float):
        return f"{int(raw):02d}" if raw.is_integer() and raw >= 0 else ""
    if not isinstance(raw, str):
        return ""
    code = raw.strip().upper()
    if len(code) == 1:
        code = "0" + code
    return code


@dataclass(frozen=True)
class InputLabelMap:
    labels: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))

    def __contains__(self, code: object) -> bool:
        return code in self.labels

    def __len__(self) -> int:
        return len(self.labels)

    def codes(self) -> list[str]:
        return sorted(self.labels)

    def label_for(self, code: str) -> str:
        return self.labels.get(code) or fallback_label(code)

    def code_for_label(self, label: str) -> str | None:
        wanted = label.strip().lower()
        for code in self.codes():
            if self.labels[code].lower() == wanted:
                return code
        return None

    def choices(self) -> list[tuple[str, str]]:
        return [(code, self.label_for(code)) for code in self.codes() if self.labels[code].strip()]


def _filter_active(base: Mapping[str, str], active_codes: Iterable[str]) -> dict[str, str]:
    filtered = {code: base.get(code) or fallback_label(code) for code in active_codes if code}
    return filtered if filtered else dict(base)


def _apply_overrides(
    labels: Mapping[str, str],
    overrides: Mapping[str, str],
    active_codes: frozenset[str],
) -> dict[str, str]:
    merged = dict(labels)
    for code, label in overrides.items():
        if not code:
            continue
        if active_codes and code not in active_codes:
            continue
        merged[code] = label.strip() or fallback_label(code)
    return merged


def build_input_labels(
    active_codes: Iterable[str] = (),
    overrides: Mapping[str, str] | None = None,
    *,
    base: Mapping[str, str] = BUILTIN_INPUT_LABELS,
) -> InputLabelMap:
    """Build the working label map: base table, allow-list filter, per-code overrides."""
    active = frozenset(code for code in active_codes if code)
    labels = _filter_active(base, sorted(active))
    labels = _apply_overrides(labels, overrides or {}, active)
    return InputLabelMap(labels=labels)


def label_overrides_from_mapping(doc: Mapping[str, Any]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, value in doc.items():
        if not isinstance(key, str) or not key.startswith(LABEL_KEY_PREFIX):
            continue
        code = normalize_input_code(key[len(LABEL_KEY_PREFIX):])
        if not code:
            continue
        overrides[code] = value.strip() if isinstance(value, str) else ""
    return overrides
