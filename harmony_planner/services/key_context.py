from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from harmony_planner.models import KeySpecification
from harmony_planner.services.errors import UnknownKey
from harmony_planner.services.music_theory import (
    MODE_PATTERNS,
    PARALLEL_MODE,
    Chord,
    Scale,
    diatonic_ninth_token,
    diatonic_seventh_token,
    diatonic_triad,
    normalize_mode,
    parse_pitch_class,
    pitch_class_label,
)

# Distance from the literal diatonic triad, per substitution class.
LITERAL_DISTANCE = 0.0
SEVENTH_DISTANCE = 0.15
NINTH_DISTANCE = 0.25
SECONDARY_DOMINANT_DISTANCE = 0.45
SECONDARY_DOMINANT_NINTH_DISTANCE = 0.5
BORROWED_DISTANCE = 0.6
BORROWED_SEVENTH_DISTANCE = 0.7
TRITONE_DISTANCE = 0.85
TRITONE_DEGREES = (2, 5)


@dataclass(frozen=True)
class VocabularyEntry:
    chord: Chord
    degree: int
    substitution: str
    distance: float

    @property
    def complexity(self) -> float:
        return self.chord.complexity

    @property
    def is_literal(self) -> bool:
        return self.distance == LITERAL_DISTANCE


@dataclass(frozen=True)
class ModulationTarget:
    fifths: int
    mode: str

    def distance_from(self, mode: str) -> int:
        return abs(self.fifths) + (0 if self.mode == mode else 1)


@lru_cache(maxsize=512)
def _vocabulary(tonic: int, mode: str, degree: int) -> tuple[VocabularyEntry, ...]:
    scale = Scale(tonic=tonic, mode=mode)
    literal = diatonic_triad(scale, degree)
    seventh = diatonic_seventh_token(scale, degree)
    ninth = diatonic_ninth_token(scale, degree)
    entries = [
        VocabularyEntry(literal, degree, "diatonic", LITERAL_DISTANCE),
        VocabularyEntry(Chord(literal.root, literal.quality, (seventh,)), degree, "diatonic", SEVENTH_DISTANCE),
        VocabularyEntry(Chord(literal.root, literal.quality, (seventh, ninth)), degree, "diatonic", NINTH_DISTANCE),
    ]

    secondary = Chord(literal.root, "maj", ("7",))
    if not (literal.quality == "maj" and seventh == "7"):
        entries.append(VocabularyEntry(secondary, degree, "secondary_dominant", SECONDARY_DOMINANT_DISTANCE))
        entries.append(
            VocabularyEntry(
                Chord(literal.root, "maj", ("7", "9")),
                degree,
                "secondary_dominant",
                SECONDARY_DOMINANT_NINTH_DISTANCE,
            )
        )

    parallel = Scale(tonic=tonic, mode=PARALLEL_MODE[mode])
    borrowed = diatonic_triad(parallel, degree)
    if (borrowed.root, borrowed.quality) != (literal.root, literal.quality):
        entries.append(VocabularyEntry(borrowed, degree, "borrowed", BORROWED_DISTANCE))
        entries.append(
            VocabularyEntry(
                Chord(borrowed.root, borrowed.quality, (diatonic_seventh_token(parallel, degree),)),
                degree,
                "borrowed",
                BORROWED_SEVENTH_DISTANCE,
            )
        )

    if degree in TRITONE_DEGREES:
        entries.append(
            VocabularyEntry(Chord((literal.root + 6) % 12, "maj", ("7",)), degree, "tritone_substitute", TRITONE_DISTANCE)
        )

    seen: set[Chord] = set()
    unique: list[VocabularyEntry] = []
    for entry in entries:
        if entry.chord in seen:
            continue
        seen.add(entry.chord)
        unique.append(entry)
    return tuple(unique)


@dataclass(frozen=True)
class KeyContext:
    """A resolved key: tonic pitch class plus mode, with its chord vocabulary."""

    tonic: int
    mode: str

    @classmethod
    def resolve(cls, tonic: str | int, mode: str = "major") -> "KeyContext":
        pc = parse_pitch_class(tonic)
        if pc is None:
            raise UnknownKey(f"Unknown tonic '{tonic}'. Use pitch labels like C, F#, Bb or 0-11.", tonic=str(tonic))
        normalized = normalize_mode(mode)
        if normalized not in MODE_PATTERNS:
            raise UnknownKey(f"Unknown mode '{mode}'. Supported modes: major, minor.", mode=str(mode))
        return cls(tonic=pc, mode=normalized)

    @classmethod
    def from_specification(cls, spec: KeySpecification) -> "KeyContext":
        return cls.resolve(spec.tonic, spec.mode)

    @property
    def scale(self) -> Scale:
        return Scale(tonic=self.tonic, mode=self.mode)

    @property
    def label(self) -> str:
        return f"{pitch_class_label(self.tonic)} {self.mode}"

    def to_specification(self) -> KeySpecification:
        return KeySpecification(tonic=pitch_class_label(self.tonic), mode=self.mode)

    def literal_chord(self, degree: int) -> Chord:
        return diatonic_triad(self.scale, degree)

    def vocabulary_at(
        self,
        scale_degree: int,
        complexity_cap: float,
        reharm_depth: float = 1.0,
    ) -> tuple[VocabularyEntry, ...]:
        """Chords usable at a degree, ordered by distance from the literal triad.

        The literal triad is always first when it fits under ``complexity_cap``;
        substitutions are kept only while their distance stays within ``reharm_depth``.
        """
        if not 1 <= scale_degree <= 7:
            raise ValueError(f"Scale degree must be 1-7, got {scale_degree}.")
        eligible = [
            entry
            for entry in _vocabulary(self.tonic, self.mode, scale_degree)
            if entry.complexity <= complexity_cap + 1e-9 and entry.distance <= reharm_depth + 1e-9
        ]
        return tuple(sorted(eligible, key=lambda entry: (entry.distance, entry.chord.symbol)))

    def relative_key(self, modulation_target: ModulationTarget) -> "KeyContext":
        tonic = (self.tonic + 7 * modulation_target.fifths) % 12
        target_mode = normalize_mode(modulation_target.mode)
        if target_mode not in MODE_PATTERNS:
            raise UnknownKey(f"Unknown mode '{modulation_target.mode}'.", mode=modulation_target.mode)
        if target_mode != self.mode:
            # Relative keys share a key signature: minor sits a minor third below its major.
            tonic = (tonic + (9 if target_mode == "minor" else 3)) % 12
        return KeyContext(tonic=tonic, mode=target_mode)

    def modulation_targets(self, radius: int) -> list[tuple[ModulationTarget, int]]:
        targets: list[tuple[ModulationTarget, int]] = []
        for fifths in range(-radius, radius + 1):
            for mode in (self.mode, PARALLEL_MODE[self.mode]):
                if fifths == 0 and mode == self.mode:
                    continue
                target = ModulationTarget(fifths=fifths, mode=mode)
                distance = target.distance_from(self.mode)
                if distance <= radius:
                    targets.append((target, distance))
        targets.sort(key=lambda item: (item[1], item[0].fifths, item[0].mode))
        return targets
