from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from harmony_planner.models import BarSlot
from harmony_planner.services.key_context import KeyContext
from harmony_planner.services.music_theory import (
    DOMINANT_FUNCTIONS,
    Chord,
    classify_cadence,
    classify_function,
    commonality_rank,
)
from harmony_planner.services.style import StyleProfile

OPENING_DEGREES = (1,)
MODULATION_RANK = 2


class CandidateKind(str, Enum):
    LITERAL = "literal"
    SUBSTITUTION = "substitution"
    MODULATION = "modulation"


@dataclass(frozen=True)
class HarmonicState:
    bar_index: int
    key: KeyContext
    chord: Chord | None = None
    degree: int | None = None
    recent_roots: tuple[int, ...] = ()
    modulation_count: int = 0

    @classmethod
    def opening(cls, key: KeyContext) -> "HarmonicState":
        return cls(bar_index=0, key=key)

    def advance(self, candidate: "Candidate") -> "HarmonicState":
        return HarmonicState(
            bar_index=self.bar_index + 1,
            key=candidate.key,
            chord=candidate.chord,
            degree=candidate.degree,
            recent_roots=(self.recent_roots + (candidate.chord.root,))[-2:],
            modulation_count=self.modulation_count + (1 if candidate.implies_modulation else 0),
        )


@dataclass(frozen=True)
class Candidate:
    """One legal next chord plus the transition metadata the cost model reads."""

    kind: CandidateKind
    chord: Chord
    key: KeyContext
    degree: int
    substitution: str
    distance: float
    commonality_rank: int
    modulation_distance: int = 0
    cadence: str = "none"

    @property
    def implies_modulation(self) -> bool:
        return self.kind is CandidateKind.MODULATION

    @property
    def complexity(self) -> float:
        return self.chord.complexity

    @property
    def symbol(self) -> str:
        return self.chord.symbol


class CandidateGenerator:
    def candidates(self, state: HarmonicState, slot: BarSlot, profile: StyleProfile) -> list[Candidate]:
        key = state.key
        degrees = OPENING_DEGREES if state.chord is None else tuple(range(1, 8))

        pool: list[Candidate] = []
        for degree in degrees:
            rank = commonality_rank(state.degree, degree)
            for entry in key.vocabulary_at(degree, profile.max_chord_complexity, profile.reharm_depth):
                pool.append(
                    Candidate(
                        kind=CandidateKind.LITERAL if entry.is_literal else CandidateKind.SUBSTITUTION,
                        chord=entry.chord,
                        key=key,
                        degree=degree,
                        substitution=entry.substitution,
                        distance=entry.distance,
                        commonality_rank=rank,
                    )
                )

        if slot.role == "modulation_point" and profile.modulation_aggressiveness > 0 and state.chord is not None:
            pool.extend(self._modulations(key, profile))

        if slot.role == "cadence_target":
            pool = self._cadential(state, pool)
        elif slot.role == "turnaround":
            pool = [c for c in pool if classify_function(c.chord, c.key.scale) in DOMINANT_FUNCTIONS]

        return self._dedupe(pool)

    def _modulations(self, key: KeyContext, profile: StyleProfile) -> list[Candidate]:
        found: list[Candidate] = []
        for target, distance in key.modulation_targets(profile.modulation_radius):
            new_key = key.relative_key(target)
            for entry in new_key.vocabulary_at(1, profile.max_chord_complexity, profile.reharm_depth):
                if entry.substitution != "diatonic":
                    continue
                found.append(
                    Candidate(
                        kind=CandidateKind.MODULATION,
                        chord=entry.chord,
                        key=new_key,
                        degree=1,
                        substitution=entry.substitution,
                        distance=entry.distance,
                        commonality_rank=MODULATION_RANK,
                        modulation_distance=distance,
                    )
                )
        return found

    def _cadential(self, state: HarmonicState, pool: list[Candidate]) -> list[Candidate]:
        resolutions: list[Candidate] = []
        for candidate in pool:
            if candidate.implies_modulation:
                continue
            cadence = classify_cadence(state.chord, candidate.chord, candidate.key.scale)
            if cadence == "none":
                continue
            resolutions.append(replace(candidate, cadence=cadence))
        return resolutions

    @staticmethod
    def _dedupe(pool: list[Candidate]) -> list[Candidate]:
        seen: set[tuple[Chord, KeyContext]] = set()
        unique: list[Candidate] = []
        for candidate in pool:
            marker = (candidate.chord, candidate.key)
            if marker in seen:
                continue
            seen.add(marker)
            unique.append(candidate)
        return unique


def cadential_resolution_set(previous: Chord | None, key: KeyContext, profile: StyleProfile) -> list[Chord]:
    """Chords a cadence slot accepts after ``previous`` in ``key``."""
    state = HarmonicState(bar_index=1, key=key, chord=previous, degree=key.scale.degree_of(previous.root) if previous else None)
    slot = BarSlot(role="cadence_target")
    return [c.chord for c in CandidateGenerator().candidates(state, slot, profile)]
