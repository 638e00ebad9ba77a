from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from harmony_planner.models import StateSnapshot
from harmony_planner.services.candidates import Candidate
from harmony_planner.services.music_theory import classify_function, roman_numeral, secondary_dominant_numeral
from harmony_planner.services.style import ExplainMode

if TYPE_CHECKING:
    from harmony_planner.services.planner import BeamNode, ChoiceArena, ChordChoice


def numeral_for(candidate: Candidate) -> str:
    scale = candidate.key.scale
    if candidate.substitution == "secondary_dominant":
        return secondary_dominant_numeral(candidate.chord, scale)
    return roman_numeral(candidate.chord, scale)


def _round_cost(value: float) -> float:
    return round(value, 6)


def build_snapshot(
    choice: "ChordChoice",
    *,
    rank: int,
    parent_rank: int | None,
    cumulative_cost: float,
    modulation_count: int,
) -> StateSnapshot:
    candidate = choice.candidate
    return StateSnapshot(
        bar=choice.depth + 1,
        rank=rank,
        parent_rank=parent_rank,
        chord=candidate.symbol,
        numeral=numeral_for(candidate),
        function=classify_function(candidate.chord, candidate.key.scale),
        key=candidate.key.label,
        kind=candidate.kind.value,
        step_cost=_round_cost(choice.step_cost),
        cumulative_cost=_round_cost(cumulative_cost),
        modulation_count=modulation_count,
    )


class ExplainRecorder:
    """Collects state snapshots at the granularity of the active explain mode.

    ``none`` keeps nothing, ``brief`` keeps the winning path once the search is
    over, ``full`` keeps every surviving beam node at every depth.
    """

    def __init__(self, mode: ExplainMode) -> None:
        self.mode = mode
        self._snapshots: list[StateSnapshot] = []

    @property
    def snapshots(self) -> list[StateSnapshot]:
        return list(self._snapshots)

    def record_depth(self, beam: Sequence["BeamNode"], arena: "ChoiceArena") -> None:
        if self.mode is not ExplainMode.FULL:
            return
        for rank, node in enumerate(beam):
            if node.choice_index is None:
                continue
            self._snapshots.append(
                build_snapshot(
                    arena[node.choice_index],
                    rank=rank,
                    parent_rank=node.parent_rank,
                    cumulative_cost=node.cost,
                    modulation_count=node.state.modulation_count,
                )
            )

    def record_winning_path(self, path: Sequence["ChordChoice"]) -> None:
        if self.mode is not ExplainMode.BRIEF:
            return
        cumulative = 0.0
        modulations = 0
        for choice in path:
            cumulative += choice.step_cost
            if choice.candidate.implies_modulation:
                modulations += 1
            self._snapshots.append(
                build_snapshot(
                    choice,
                    rank=0,
                    parent_rank=0 if choice.depth > 0 else None,
                    cumulative_cost=cumulative,
                    modulation_count=modulations,
                )
            )
