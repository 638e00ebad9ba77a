from dataclasses import replace

import pytest

from harmony_planner.models import BarSlot
from harmony_planner.services.candidates import Candidate, CandidateKind, HarmonicState
from harmony_planner.services.cost_model import CostModel, smoothness_penalty, unconventionality_penalty
from harmony_planner.services.key_context import KeyContext
from harmony_planner.services.music_theory import Chord
from harmony_planner.services.style import STYLE_PRESETS

BALANCED = STYLE_PRESETS["balanced"]
C_MAJOR = KeyContext.resolve("C")


def _candidate(chord: Chord, **changes) -> Candidate:
    base = Candidate(
        kind=CandidateKind.LITERAL,
        chord=chord,
        key=C_MAJOR,
        degree=1,
        substitution="diatonic",
        distance=0.0,
        commonality_rank=0,
    )
    return replace(base, **changes)


def test_smoothness_penalty_grows_with_root_motion():
    assert smoothness_penalty((), 7) == 0.0
    assert smoothness_penalty((0,), 2) < smoothness_penalty((0,), 5)
    assert smoothness_penalty((0,), 7) == pytest.approx(5 / 6)


def test_consecutive_leaps_cost_extra():
    single = smoothness_penalty((2,), 7)
    double = smoothness_penalty((0, 5), 10)
    assert double == pytest.approx(single + 0.2)


def test_unconventionality_combines_rank_and_distance():
    plain = _candidate(Chord(0, "maj"))
    odd = _candidate(Chord(8, "maj"), commonality_rank=2, distance=0.6, substitution="borrowed")
    assert unconventionality_penalty(plain) == 0.0
    assert unconventionality_penalty(odd) == pytest.approx(0.35 * 2 + 0.6)


def test_risk_level_flattens_unconventionality():
    prior = HarmonicState(bar_index=1, key=C_MAJOR, chord=Chord(0, "maj"), degree=1, recent_roots=(0,))
    odd = _candidate(Chord(0, "maj", ("7",)), distance=0.45, commonality_rank=3, substitution="secondary_dominant")
    cautious = CostModel(replace(BALANCED, risk_level=0.0)).cost(prior, odd, BarSlot())
    daring = CostModel(replace(BALANCED, risk_level=1.0)).cost(prior, odd, BarSlot())
    assert daring < cautious
    assert daring == 0.0


def test_modulation_cost_drops_as_aggressiveness_rises():
    modulation = _candidate(
        Chord(7, "maj"), kind=CandidateKind.MODULATION, key=KeyContext.resolve("G"), modulation_distance=1
    )
    timid = CostModel(replace(BALANCED, modulation_aggressiveness=0.1)).modulation_cost(modulation)
    bold = CostModel(replace(BALANCED, modulation_aggressiveness=0.9)).modulation_cost(modulation)
    assert bold < timid
    assert CostModel(BALANCED).modulation_cost(_candidate(Chord(0, "maj"))) == 0.0


def test_complexity_overshoot_is_zero_under_the_cap():
    model = CostModel(replace(BALANCED, max_chord_complexity=0.25))
    assert model.complexity_overshoot_penalty(_candidate(Chord(0, "maj", ("maj7",)))) == 0.0
    assert model.complexity_overshoot_penalty(_candidate(Chord(0, "maj", ("maj7", "9")))) == pytest.approx(0.5)


def test_cadence_fit_bonus_rewards_the_requested_resolution():
    prior = HarmonicState(bar_index=7, key=C_MAJOR, chord=Chord(7, "maj"), degree=5, recent_roots=(2, 7))
    slot = BarSlot(role="cadence_target", cadence="authentic")
    model = CostModel(BALANCED)
    tonic = _candidate(Chord(0, "maj"), cadence="authentic")
    deceptive = _candidate(Chord(9, "min"), degree=6, cadence="deceptive")
    assert model.cadence_fit_bonus(tonic, slot) == 0.5
    assert model.cadence_fit_bonus(deceptive, slot) == 0.0
    assert model.cadence_fit_bonus(tonic, BarSlot()) == 0.0
    assert model.cadence_shortfall(tonic, slot) == 0.0
    assert model.cadence_shortfall(deceptive, slot) == 0.5
    assert model.cost(prior, tonic, slot) == pytest.approx(model.cost(prior, tonic, BarSlot()))


def test_cadence_mismatch_costs_even_when_the_move_is_free():
    prior = HarmonicState(bar_index=3, key=C_MAJOR, chord=Chord(7, "maj"), degree=5, recent_roots=(7,))
    slot = BarSlot(role="cadence_target", cadence="authentic")
    model = CostModel(replace(BALANCED, risk_level=1.0, voice_leading_strictness=0.0))
    matching = _candidate(Chord(0, "maj"), cadence="authentic")
    missing = _candidate(Chord(9, "min"), degree=6, cadence="deceptive")
    assert model.cost(prior, matching, slot) == 0.0
    assert model.cost(prior, missing, slot) == pytest.approx(0.5)
    assert model.breakdown(prior, missing, slot).cadence_shortfall == 0.5


@pytest.mark.parametrize(
    "hint,fits,misses",
    [
        ("authentic", Chord(7, "maj"), Chord(9, "min")),
        ("deceptive", Chord(11, "dim"), Chord(5, "maj")),
        ("plagal", Chord(5, "maj"), Chord(7, "maj")),
        ("half", Chord(0, "maj"), Chord(7, "maj", ("7",))),
    ],
)
def test_bar_before_a_cadence_pays_when_it_cannot_set_it_up(hint, fits, misses):
    prior = HarmonicState(bar_index=2, key=C_MAJOR, chord=Chord(2, "min"), degree=2, recent_roots=(2,))
    upcoming = BarSlot(role="cadence_target", cadence=hint)
    model = CostModel(BALANCED)
    assert model.cadence_approach_penalty(_candidate(fits), upcoming) == 0.0
    assert model.cadence_approach_penalty(_candidate(misses), upcoming) == 0.5
    assert model.cadence_approach_penalty(_candidate(misses), BarSlot()) == 0.0
    assert model.cadence_approach_penalty(_candidate(misses), None) == 0.0
    assert model.cost(prior, _candidate(misses), BarSlot(), upcoming) == pytest.approx(
        model.cost(prior, _candidate(misses), BarSlot()) + 0.5
    )


def test_cost_is_pure():
    prior = HarmonicState(bar_index=2, key=C_MAJOR, chord=Chord(5, "maj"), degree=4, recent_roots=(0, 5))
    candidate = _candidate(Chord(7, "maj", ("7",)), degree=5, distance=0.15)
    model = CostModel(BALANCED)
    assert model.cost(prior, candidate, BarSlot()) == model.cost(prior, candidate, BarSlot())
    assert model.breakdown(prior, candidate, BarSlot()).total == model.cost(prior, candidate, BarSlot())
