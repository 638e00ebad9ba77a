from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from harmony_planner.services.music_theory import normalize_mode


SlotRole = Literal["normal", "cadence_target", "turnaround", "modulation_point"]
CadenceName = Literal["authentic", "plagal", "half", "deceptive", "none"]
CandidateKindName = Literal["literal", "substitution", "modulation"]
ExplainModeName = Literal["none", "brief", "full"]
TemplateSource = Literal["builtin", "local", "inline", "file"]
TemplateSourcePriority = Literal["auto", "builtin", "local"]

TEMPLATE_ID_PATTERN = r"^[A-Za-z0-9_-]+$"
EXPLAIN_ALIASES = {"detailed": "full", "debug": "full", "off": "none"}


class KeySpecification(BaseModel):
    tonic: str | int = Field(description="Pitch label like C, F#, Bb or a pitch class 0-11")
    mode: str = "major"

    @field_validator("mode", mode="before")
    @classmethod
    def canonical_mode(cls, value: str | None) -> str:
        return "major" if value is None else normalize_mode(value)


class BarSlot(BaseModel):
    beats: float = Field(default=4, gt=0)
    role: SlotRole = "normal"
    cadence: CadenceName | None = None

    @model_validator(mode="after")
    def cadence_hint_matches_role(self):
        if self.role == "cadence_target":
            if self.cadence is None or self.cadence == "none":
                self.cadence = "authentic"
        elif self.cadence is not None:
            raise ValueError("Only cadence_target slots may carry a cadence hint.")
        return self


class Phrase(BaseModel):
    label: str = Field(min_length=1, max_length=40)
    bars: list[BarSlot] = Field(min_length=1)
    modulation_hint: str | None = Field(default=None, max_length=80)


class ReharmZone(BaseModel):
    start_bar: int = Field(ge=1)
    end_bar: int = Field(ge=1)
    risk: float = Field(default=0.5, ge=0, le=1)

    @model_validator(mode="after")
    def ordered_bars(self):
        if self.end_bar < self.start_bar:
            raise ValueError("Reharm zone end_bar must not precede start_bar.")
        return self


class Template(BaseModel):
    id: str = Field(min_length=1, max_length=80, pattern=TEMPLATE_ID_PATTERN)
    version: int = Field(default=1, ge=1)
    meter: str = "4/4"
    description: str = ""
    phrases: list[Phrase] = Field(min_length=1)
    tension_curve: list[float] = Field(default_factory=list)
    reharm_zones: list[ReharmZone] = Field(default_factory=list)

    @field_validator("meter")
    @classmethod
    def validate_meter(cls, value: str) -> str:
        m = re.fullmatch(r"(\d{1,2})\s*/\s*(\d{1,2})", value.strip())
        if not m:
            raise ValueError("Invalid meter. Use forms like 4/4, 3/4, 6/8.")
        return f"{int(m.group(1))}/{int(m.group(2))}"

    @field_validator("tension_curve")
    @classmethod
    def validate_tension_curve(cls, value: list[float]) -> list[float]:
        if any(not 0.0 <= point <= 1.0 for point in value):
            raise ValueError("Tension curve values must lie within [0, 1].")
        return value

    @model_validator(mode="after")
    def curve_and_zones_fit_the_form(self):
        bars = self.total_bars
        if self.tension_curve and len(self.tension_curve) != bars:
            raise ValueError(f"Tension curve has {len(self.tension_curve)} points but the template has {bars} bars.")
        for zone in self.reharm_zones:
            if zone.end_bar > bars:
                raise ValueError(f"Reharm zone {zone.start_bar}-{zone.end_bar} runs past bar {bars}.")
        return self

    @property
    def total_bars(self) -> int:
        return sum(len(phrase.bars) for phrase in self.phrases)

    def slots(self) -> list[BarSlot]:
        return [slot for phrase in self.phrases for slot in phrase.bars]


class TemplateSummary(BaseModel):
    id: str
    version: int
    bars: int
    phrases: int
    source: TemplateSource
    meter: str = "4/4"
    description: str = ""


class TemplateDescriptor(BaseModel):
    id: str
    version: int
    bars: int = Field(ge=1)
    source: TemplateSource


class StyleOverrides(BaseModel):
    beam_width: int | None = None
    max_depth: int | None = None
    risk_level: float | None = None
    reharm_depth: float | None = None
    voice_leading_strictness: float | None = None
    modulation_aggressiveness: float | None = None
    max_chord_complexity: float | None = None


class StyleSpecification(BaseModel):
    preset: str = Field(default="balanced", min_length=1, max_length=40)
    overrides: StyleOverrides | None = None


class PlanRequest(BaseModel):
    template_id: str | None = Field(default=None, min_length=1, max_length=80)
    template: Template | None = Field(default=None, description="Inline template planned without importing it")
    key: KeySpecification
    style: StyleSpecification = Field(default_factory=StyleSpecification)
    explain: ExplainModeName = "none"

    @field_validator("explain", mode="before")
    @classmethod
    def normalize_explain(cls, value: str | None) -> str:
        if value is None:
            return "none"
        cleaned = str(value).strip().lower()
        return EXPLAIN_ALIASES.get(cleaned, cleaned)

    @model_validator(mode="after")
    def exactly_one_template(self):
        if (self.template_id is None) == (self.template is None):
            raise ValueError("Provide either template_id or an inline template, not both.")
        return self

    @property
    def template_ref(self) -> str | Template:
        return self.template if self.template is not None else self.template_id


class StateSnapshot(BaseModel):
    bar: int = Field(ge=1)
    rank: int = Field(ge=0)
    parent_rank: int | None = None
    chord: str
    numeral: str
    function: str
    key: str
    kind: CandidateKindName
    step_cost: float
    cumulative_cost: float
    modulation_count: int = Field(ge=0)


class BarSummary(BaseModel):
    bar: int = Field(ge=1)
    phrase: str
    role: SlotRole
    chord: str
    numeral: str
    function: str
    key: str
    kind: CandidateKindName
    substitution: str
    pitch_classes: list[int] = Field(min_length=3)
    step_cost: float
    cadence: CadenceName = "none"


class CadenceSummary(BaseModel):
    phrase: str
    start_bar: int = Field(ge=1)
    end_bar: int = Field(ge=1)
    kind: CadenceName
    expected: CadenceName
    approach_chord: str | None = None
    resolution_chord: str


class PhraseSummary(BaseModel):
    label: str
    start_bar: int = Field(ge=1)
    end_bar: int = Field(ge=1)
    bars: list[BarSummary]
    cadences: list[str] = Field(default_factory=list)
    highlights: list[str] = Field(default_factory=list)


class PlanResponse(BaseModel):
    template: TemplateDescriptor
    key: KeySpecification
    style: str
    explain_mode: ExplainModeName
    total_cost: float
    diagnostics: list[str] = Field(default_factory=list)
    phrases: list[PhraseSummary]
    cadences: list[CadenceSummary] = Field(default_factory=list)
    states: list[StateSnapshot] = Field(default_factory=list)

    @property
    def bars(self) -> list[BarSummary]:
        return [bar for phrase in self.phrases for bar in phrase.bars]
