from __future__ import annotations

from harmony_planner.models import (
    BarSlot,
    BarSummary,
    CadenceSummary,
    PhraseSummary,
    PlanResponse,
    Template,
    TemplateDescriptor,
)
from harmony_planner.services.candidates import Candidate
from harmony_planner.services.explain import numeral_for
from harmony_planner.services.key_context import KeyContext
from harmony_planner.services.music_theory import classify_cadence, classify_function, pitch_classes_of
from harmony_planner.services.planner import ChordChoice, SearchResult
from harmony_planner.services.style import StyleProfile


def _highlight(candidate: Candidate, previous: Candidate | None, bar: int) -> str | None:
    if candidate.implies_modulation:
        origin = previous.key.label if previous is not None else "?"
        return f"Bar {bar}: modulates from {origin} to {candidate.key.label} on {candidate.symbol}."
    if candidate.substitution != "diatonic":
        label = candidate.substitution.replace("_", " ")
        return f"Bar {bar}: {candidate.symbol} as {label} ({numeral_for(candidate)})."
    return None


class PlanAssembler:
    """Turns the winning search path back into phrases, bars and cadence summaries."""

    def __init__(self, template: Template, source: str, key: KeyContext, profile: StyleProfile) -> None:
        self.template = template
        self.source = source
        self.key = key
        self.profile = profile

    def _bar_summary(self, bar: int, phrase: str, slot: BarSlot, choice: ChordChoice) -> BarSummary:
        candidate = choice.candidate
        scale = candidate.key.scale
        return BarSummary(
            bar=bar,
            phrase=phrase,
            role=slot.role,
            chord=candidate.symbol,
            numeral=numeral_for(candidate),
            function=classify_function(candidate.chord, scale),
            key=candidate.key.label,
            kind=candidate.kind.value,
            substitution=candidate.substitution,
            pitch_classes=pitch_classes_of(candidate.chord),
            step_cost=round(choice.step_cost, 6),
            cadence=candidate.cadence if slot.role == "cadence_target" else "none",
        )

    def _cadence_summary(
        self, bar: int, phrase: str, slot: BarSlot, choice: ChordChoice, previous: ChordChoice | None
    ) -> CadenceSummary:
        candidate = choice.candidate
        approach = previous.candidate.chord if previous is not None else None
        return CadenceSummary(
            phrase=phrase,
            start_bar=bar - 1 if previous is not None else bar,
            end_bar=bar,
            kind=classify_cadence(approach, candidate.chord, candidate.key.scale),
            expected=slot.cadence or "authentic",
            approach_chord=previous.candidate.symbol if previous is not None else None,
            resolution_chord=candidate.symbol,
        )

    def assemble(self, result: SearchResult) -> PlanResponse:
        if len(result.path) != self.template.total_bars:
            raise ValueError(
                f"Search path covers {len(result.path)} bars but template '{self.template.id}' has {self.template.total_bars}."
            )

        phrases: list[PhraseSummary] = []
        cadences: list[CadenceSummary] = []
        diagnostics: list[str] = [
            f"Searched {len(result.path)} bars with beam width {self.profile.beam_width} "
            f"(peak beam {max(result.beam_sizes, default=0)})."
        ]
        previous: ChordChoice | None = None
        bar = 0
        for phrase in self.template.phrases:
            start_bar = bar + 1
            bars: list[BarSummary] = []
            phrase_cadences: list[str] = []
            highlights: list[str] = []
            for slot in phrase.bars:
                choice = result.path[bar]
                bar += 1
                bars.append(self._bar_summary(bar, phrase.label, slot, choice))
                note = _highlight(choice.candidate, previous.candidate if previous else None, bar)
                if note:
                    highlights.append(note)
                if slot.role == "cadence_target":
                    summary = self._cadence_summary(bar, phrase.label, slot, choice, previous)
                    cadences.append(summary)
                    phrase_cadences.append(f"{summary.kind} at bar {bar}")
                    if summary.kind != summary.expected:
                        diagnostics.append(
                            f"Bar {bar}: cadence resolved as {summary.kind}, template asked for {summary.expected}."
                        )
                previous = choice
            phrases.append(
                PhraseSummary(
                    label=phrase.label,
                    start_bar=start_bar,
                    end_bar=bar,
                    bars=bars,
                    cadences=phrase_cadences,
                    highlights=highlights,
                )
            )

        modulations = sum(1 for choice in result.path if choice.candidate.implies_modulation)
        if modulations:
            diagnostics.append(f"{modulations} modulation(s) along the winning path.")

        return PlanResponse(
            template=TemplateDescriptor(
                id=self.template.id,
                version=self.template.version,
                bars=self.template.total_bars,
                source=self.source,
            ),
            key=self.key.to_specification(),
            style=self.profile.name,
            explain_mode=self.profile.explain_mode.value,
            total_cost=round(result.total_cost, 6),
            diagnostics=diagnostics,
            phrases=phrases,
            cadences=cadences,
            states=result.snapshots,
        )
