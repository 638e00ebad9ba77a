from dataclasses import replace

from harmony_planner.models import BarSlot
from harmony_planner.services.candidates import (
    CandidateGenerator,
    CandidateKind,
    HarmonicState,
    cadential_resolution_set,
)
from harmony_planner.services.key_context import KeyContext
from harmony_planner.services.music_theory import DOMINANT_FUNCTIONS, Chord, classify_function
from harmony_planner.services.style import STYLE_PRESETS

BALANCED = STYLE_PRESETS["balanced"]
C_MAJOR = KeyContext.resolve("C")


def _after(chord: Chord, degree: int, key: KeyContext = C_MAJOR) -> HarmonicState:
    return HarmonicState(bar_index=3, key=key, chord=chord, degree=degree, recent_roots=(0, chord.root))


def test_opening_candidates_stay_on_the_tonic_degree():
    candidates = CandidateGenerator().candidates(HarmonicState.opening(C_MAJOR), BarSlot(), BALANCED)
    assert candidates[0].symbol == "C"
    assert candidates[0].kind is CandidateKind.LITERAL
    assert {candidate.degree for candidate in candidates} == {1}
    assert all(candidate.commonality_rank == 0 for candidate in candidates)


def test_literal_chord_is_always_offered_and_output_is_deduplicated():
    candidates = CandidateGenerator().candidates(_after(Chord(7, "maj"), 5), BarSlot(), BALANCED)
    literals = {candidate.symbol for candidate in candidates if candidate.kind is CandidateKind.LITERAL}
    assert literals == {"C", "Dm", "Em", "F", "G", "Am", "Bdim"}
    markers = [(candidate.chord, candidate.key) for candidate in candidates]
    assert len(markers) == len(set(markers))


def test_candidates_respect_complexity_cap_and_reharm_depth():
    profile = replace(BALANCED, max_chord_complexity=0.25, reharm_depth=0.2)
    candidates = CandidateGenerator().candidates(_after(Chord(0, "maj"), 1), BarSlot(), profile)
    assert candidates
    assert all(candidate.complexity <= 0.25 for candidate in candidates)
    assert all(candidate.distance <= 0.2 for candidate in candidates)


def test_cadence_slot_only_offers_classified_resolutions():
    slot = BarSlot(role="cadence_target", cadence="authentic")
    candidates = CandidateGenerator().candidates(_after(Chord(7, "maj"), 5), slot, BALANCED)
    assert {candidate.cadence for candidate in candidates} == {"authentic", "deceptive"}
    assert all(candidate.kind is not CandidateKind.MODULATION for candidate in candidates)
    assert "C" in {candidate.symbol for candidate in candidates}


def test_cadence_slot_after_tonic_falls_back_to_half_cadence():
    resolutions = cadential_resolution_set(Chord(0, "maj"), C_MAJOR, BALANCED)
    assert [chord.symbol for chord in resolutions] == ["G", "G7", "G7(9)"]


def test_turnaround_keeps_dominant_function_only():
    slot = BarSlot(role="turnaround")
    candidates = CandidateGenerator().candidates(_after(Chord(5, "maj"), 4), slot, BALANCED)
    assert candidates
    assert all(classify_function(candidate.chord, C_MAJOR.scale) in DOMINANT_FUNCTIONS for candidate in candidates)


def test_modulation_point_adds_neighbour_keys_only_when_aggressive():
    slot = BarSlot(role="modulation_point")
    state = _after(Chord(0, "maj"), 1)

    modulations = [
        candidate
        for candidate in CandidateGenerator().candidates(state, slot, BALANCED)
        if candidate.kind is CandidateKind.MODULATION
    ]
    assert {candidate.key.label for candidate in modulations} == {"F major", "A minor", "G major"}
    assert all(candidate.implies_modulation for candidate in modulations)

    timid = replace(BALANCED, modulation_aggressiveness=0.0)
    assert not [
        candidate
        for candidate in CandidateGenerator().candidates(state, slot, timid)
        if candidate.kind is CandidateKind.MODULATION
    ]


def test_harmonic_state_tracks_last_two_roots_and_modulations():
    slot = BarSlot(role="modulation_point")
    state = _after(Chord(0, "maj"), 1)
    modulation = next(
        candidate
        for candidate in CandidateGenerator().candidates(state, slot, BALANCED)
        if candidate.kind is CandidateKind.MODULATION
    )
    advanced = state.advance(modulation)
    assert advanced.bar_index == 4
    assert advanced.recent_roots == (0, modulation.chord.root)
    assert advanced.modulation_count == 1
    assert advanced.key == modulation.key
