from __future__ import annotations

from dataclasses import dataclass

from harmony_planner.models import BarSlot
from harmony_planner.services.candidates import Candidate, CandidateKind, HarmonicState
from harmony_planner.services.music_theory import interval_class, sets_up_cadence
from harmony_planner.services.style import StyleProfile

LEAP_THRESHOLD = 3
CONSECUTIVE_LEAP_PENALTY = 0.2
RANK_WEIGHT = 0.35
DISTANCE_WEIGHT = 1.0
MODULATION_FLOOR = 0.1
MODULATION_BASE = 1.0
OVERSHOOT_WEIGHT = 2.0
CADENCE_FIT_BONUS = 0.5
CADENCE_APPROACH_PENALTY = 0.5


@dataclass(frozen=True)
class CostBreakdown:
    smoothness: float
    unconventionality: float
    modulation: float
    overshoot: float
    cadence_shortfall: float = 0.0
    cadence_approach: float = 0.0

    @property
    def total(self) -> float:
        # Every term is non-negative, so cumulative cost never decreases.
        return (
            self.smoothness
            + self.unconventionality
            + self.modulation
            + self.overshoot
            + self.cadence_shortfall
            + self.cadence_approach
        )


def smoothness_penalty(recent_roots: tuple[int, ...], root: int) -> float:
    """Root-motion distance in [0, 1], plus a surcharge for a second leap in a row."""
    if not recent_roots:
        return 0.0
    motion = interval_class(recent_roots[-1], root)
    penalty = motion / 6
    if len(recent_roots) >= 2 and motion >= LEAP_THRESHOLD:
        if interval_class(recent_roots[-2], recent_roots[-1]) >= LEAP_THRESHOLD:
            penalty += CONSECUTIVE_LEAP_PENALTY
    return penalty


def unconventionality_penalty(candidate: Candidate) -> float:
    return RANK_WEIGHT * candidate.commonality_rank + DISTANCE_WEIGHT * candidate.distance


class CostModel:
    """Additive, pure transition cost. Same inputs always give the same number.

    The cadence-fit bonus is applied relative to the best outcome: a cadence slot
    charges the bonus it did not earn, so a matching resolution pays nothing extra
    and a mismatch pays ``CADENCE_FIT_BONUS``. ``upcoming`` is the slot after the one
    being filled; when it is a cadence target the chord is charged if it cannot set
    up the hinted cadence.
    """

    def __init__(self, profile: StyleProfile) -> None:
        self.profile = profile

    def breakdown(
        self, prior: HarmonicState, candidate: Candidate, slot: BarSlot, upcoming: BarSlot | None = None
    ) -> CostBreakdown:
        profile = self.profile
        return CostBreakdown(
            smoothness=profile.voice_leading_strictness * smoothness_penalty(prior.recent_roots, candidate.chord.root),
            unconventionality=(1.0 - profile.risk_level) * unconventionality_penalty(candidate),
            modulation=self.modulation_cost(candidate),
            overshoot=self.complexity_overshoot_penalty(candidate),
            cadence_shortfall=self.cadence_shortfall(candidate, slot),
            cadence_approach=self.cadence_approach_penalty(candidate, upcoming),
        )

    def cost(
        self, prior: HarmonicState, candidate: Candidate, slot: BarSlot, upcoming: BarSlot | None = None
    ) -> float:
        return self.breakdown(prior, candidate, slot, upcoming).total

    def modulation_cost(self, candidate: Candidate) -> float:
        if candidate.kind is CandidateKind.MODULATION:
            steps = 1 + candidate.modulation_distance
            return steps * (MODULATION_FLOOR + MODULATION_BASE * (1.0 - self.profile.modulation_aggressiveness))
        if candidate.kind in (CandidateKind.LITERAL, CandidateKind.SUBSTITUTION):
            return 0.0
        raise ValueError(f"Unhandled candidate kind {candidate.kind!r}")

    def complexity_overshoot_penalty(self, candidate: Candidate) -> float:
        return OVERSHOOT_WEIGHT * max(0.0, candidate.complexity - self.profile.max_chord_complexity)

    def cadence_fit_bonus(self, candidate: Candidate, slot: BarSlot) -> float:
        if slot.role != "cadence_target":
            return 0.0
        return CADENCE_FIT_BONUS if candidate.cadence == slot.cadence else 0.0

    def cadence_shortfall(self, candidate: Candidate, slot: BarSlot) -> float:
        if slot.role != "cadence_target":
            return 0.0
        return CADENCE_FIT_BONUS - self.cadence_fit_bonus(candidate, slot)

    def cadence_approach_penalty(self, candidate: Candidate, upcoming: BarSlot | None) -> float:
        if upcoming is None or upcoming.role != "cadence_target":
            return 0.0
        if sets_up_cadence(candidate.chord, upcoming.cadence, candidate.key.scale):
            return 0.0
        return CADENCE_APPROACH_PENALTY
