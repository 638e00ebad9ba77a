from __future__ import annotations

import math
from dataclasses import dataclass, fields, replace
from enum import Enum

from harmony_planner.models import StyleOverrides, StyleSpecification
from harmony_planner.services.errors import InvalidStyleProfile


class ExplainMode(str, Enum):
    NONE = "none"
    BRIEF = "brief"
    FULL = "full"


WEIGHT_FIELDS = (
    "risk_level",
    "reharm_depth",
    "voice_leading_strictness",
    "modulation_aggressiveness",
    "max_chord_complexity",
)


@dataclass(frozen=True)
class StyleProfile:
    """Search weights for one plan request. Never mutated once built."""

    beam_width: int = 6
    max_depth: int = 32
    risk_level: float = 0.4
    reharm_depth: float = 0.5
    voice_leading_strictness: float = 0.7
    modulation_aggressiveness: float = 0.35
    max_chord_complexity: float = 0.6
    explain_mode: ExplainMode = ExplainMode.NONE
    name: str = "custom"

    def problems(self) -> list[str]:
        found: list[str] = []
        if isinstance(self.beam_width, bool) or not isinstance(self.beam_width, int) or self.beam_width < 1:
            found.append(f"beam_width must be a positive integer (got {self.beam_width!r})")
        if isinstance(self.max_depth, bool) or not isinstance(self.max_depth, int) or self.max_depth < 1:
            found.append(f"max_depth must be a positive integer (got {self.max_depth!r})")
        for name in WEIGHT_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or math.isnan(value) or not 0.0 <= value <= 1.0:
                found.append(f"{name} must be within [0, 1] (got {value!r})")
        if not isinstance(self.explain_mode, ExplainMode):
            found.append(f"explain_mode must be one of none, brief, full (got {self.explain_mode!r})")
        return found

    def validate(self) -> "StyleProfile":
        found = self.problems()
        if found:
            raise InvalidStyleProfile(found)
        return self

    @property
    def modulation_radius(self) -> int:
        return 1 + int(math.floor(2 * self.modulation_aggressiveness))

    def with_overrides(self, overrides: StyleOverrides | None) -> "StyleProfile":
        if overrides is None:
            return self
        updates = {name: value for name, value in overrides.model_dump().items() if value is not None}
        return replace(self, **updates)


STYLE_PRESETS: dict[str, StyleProfile] = {
    "balanced": StyleProfile(name="balanced"),
    "smooth_ballad": StyleProfile(
        beam_width=5,
        max_depth=14,
        risk_level=0.3,
        reharm_depth=0.35,
        voice_leading_strictness=0.9,
        modulation_aggressiveness=0.25,
        max_chord_complexity=0.5,
        name="smooth_ballad",
    ),
    "gospel_drive": StyleProfile(
        beam_width=8,
        max_depth=20,
        risk_level=0.75,
        reharm_depth=0.85,
        voice_leading_strictness=0.55,
        modulation_aggressiveness=0.7,
        max_chord_complexity=0.8,
        name="gospel_drive",
    ),
    "pop_radio": StyleProfile(
        beam_width=7,
        max_depth=18,
        risk_level=0.5,
        reharm_depth=0.6,
        voice_leading_strictness=0.65,
        modulation_aggressiveness=0.5,
        max_chord_complexity=0.65,
        name="pop_radio",
    ),
}


def parse_explain_mode(value: str | ExplainMode | None) -> ExplainMode:
    if isinstance(value, ExplainMode):
        return value
    cleaned = (value or "none").strip().lower()
    cleaned = {"detailed": "full", "debug": "full", "off": "none"}.get(cleaned, cleaned)
    try:
        return ExplainMode(cleaned)
    except ValueError as exc:
        raise InvalidStyleProfile([f"explain_mode must be one of none, brief, full (got {value!r})"]) from exc


def profile_for_preset(
    preset: str,
    explain: str | ExplainMode | None = None,
    overrides: StyleOverrides | None = None,
) -> StyleProfile:
    key = preset.strip().lower()
    if key not in STYLE_PRESETS:
        raise InvalidStyleProfile([f"unknown style preset '{preset}' (choose from {', '.join(STYLE_PRESETS)})"])
    profile = STYLE_PRESETS[key].with_overrides(overrides)
    profile = replace(profile, explain_mode=parse_explain_mode(explain))
    if overrides is not None and overrides.model_dump(exclude_none=True):
        profile = replace(profile, name=f"{key}+overrides")
    return profile.validate()


def profile_from_specification(spec: StyleSpecification, explain: str | ExplainMode | None = None) -> StyleProfile:
    return profile_for_preset(spec.preset, explain, spec.overrides)


def preset_table() -> dict[str, dict[str, object]]:
    table: dict[str, dict[str, object]] = {}
    for name, profile in STYLE_PRESETS.items():
        table[name] = {
            field.name: getattr(profile, field.name)
            for field in fields(profile)
            if field.name not in {"explain_mode", "name"}
        }
    return table
