from __future__ import annotations

from dataclasses import dataclass

NOTE_TO_SEMITONE = {
    "C": 0,
    "C#": 1,
    "Db": 1,
    "D": 2,
    "D#": 3,
    "Eb": 3,
    "E": 4,
    "F": 5,
    "F#": 6,
    "Gb": 6,
    "G": 7,
    "G#": 8,
    "Ab": 8,
    "A": 9,
    "A#": 10,
    "Bb": 10,
    "B": 11,
}
PITCH_CLASS_LABELS = ["C", "C#", "D", "Eb", "E", "F", "F#", "G", "Ab", "A", "Bb", "B"]

MAJOR_PATTERN = [0, 2, 4, 5, 7, 9, 11]
MINOR_PATTERN = [0, 2, 3, 5, 7, 8, 10]
MODE_PATTERNS = {"major": MAJOR_PATTERN, "minor": MINOR_PATTERN}
MODE_ALIASES = {"ionian": "major", "aeolian": "minor", "natural minor": "minor", "maj": "major", "min": "minor"}
PARALLEL_MODE = {"major": "minor", "minor": "major"}

TRIAD_INTERVALS = {
    "maj": (0, 4, 7),
    "min": (0, 3, 7),
    "dim": (0, 3, 6),
    "aug": (0, 4, 8),
}
TRIAD_SUFFIX = {"maj": "", "min": "m", "dim": "dim", "aug": "+"}

# Extension tokens in canonical order; the seventh is rendered inline, tensions in parentheses.
EXTENSION_INTERVALS = {
    "7": 10,
    "maj7": 11,
    "b9": 13,
    "9": 14,
}
SEVENTH_TOKENS = ("7", "maj7")
MAX_EXTENSIONS = 4

FUNCTION_KINDS = (
    "tonic",
    "supertonic",
    "mediant",
    "subdominant",
    "dominant",
    "submediant",
    "leading_tone",
)
DOMINANT_FUNCTIONS = {"dominant", "leading_tone"}
ROMAN_NUMERALS = ("I", "II", "III", "IV", "V", "VI", "VII")

# Commonality rank between scale degrees (0 = most idiomatic, 3 = least), shared by both modes.
PROGRESSION_RANKS: dict[int, dict[int, int]] = {
    1: {1: 3, 2: 1, 3: 2, 4: 0, 5: 0, 6: 1, 7: 3},
    2: {1: 2, 2: 3, 3: 3, 4: 2, 5: 0, 6: 3, 7: 1},
    3: {1: 3, 2: 2, 3: 3, 4: 1, 5: 3, 6: 0, 7: 3},
    4: {1: 0, 2: 1, 3: 3, 4: 3, 5: 0, 6: 2, 7: 2},
    5: {1: 0, 2: 3, 3: 3, 4: 2, 5: 3, 6: 1, 7: 3},
    6: {1: 2, 2: 0, 3: 2, 4: 0, 5: 1, 6: 3, 7: 3},
    7: {1: 0, 2: 3, 3: 2, 4: 3, 5: 2, 6: 2, 7: 3},
}
MAX_COMMONALITY_RANK = 3


def normalize_mode(mode: str) -> str:
    cleaned = str(mode).strip().lower()
    return MODE_ALIASES.get(cleaned, cleaned)


def parse_pitch_class(tonic: str | int) -> int | None:
    """Resolve a tonic label (C, F#, Bb, C♯) or an integer 0-11 to a pitch class."""
    if isinstance(tonic, bool):
        return None
    if isinstance(tonic, int):
        return tonic if 0 <= tonic <= 11 else None
    cleaned = str(tonic).strip()
    if not cleaned:
        return None
    letter = cleaned[0].upper()
    if letter not in NOTE_TO_SEMITONE:
        return None
    offset = 0
    for ch in cleaned[1:]:
        if ch in {"#", "♯"}:
            offset += 1
        elif ch in {"b", "♭"}:
            offset -= 1
        else:
            return None
    return (NOTE_TO_SEMITONE[letter] + offset) % 12


def pitch_class_label(pc: int) -> str:
    return PITCH_CLASS_LABELS[pc % 12]


def interval_class(a: int, b: int) -> int:
    distance = abs(a - b) % 12
    return min(distance, 12 - distance)


@dataclass(frozen=True)
class Scale:
    tonic: int
    mode: str

    @property
    def semitones(self) -> list[int]:
        return [(self.tonic + p) % 12 for p in MODE_PATTERNS[self.mode]]

    def degree_of(self, pc: int) -> int | None:
        semis = self.semitones
        if pc % 12 in semis:
            return semis.index(pc % 12) + 1
        return None


@dataclass(frozen=True)
class Chord:
    root: int
    quality: str
    extensions: tuple[str, ...] = ()

    @property
    def complexity(self) -> float:
        return min(1.0, len(self.extensions) / MAX_EXTENSIONS)

    @property
    def is_dominant_seventh(self) -> bool:
        return self.quality == "maj" and "7" in self.extensions

    @property
    def symbol(self) -> str:
        name = pitch_class_label(self.root)
        exts = set(self.extensions)
        if self.quality == "dim" and "7" in exts:
            head = "m7b5"
            exts.discard("7")
        else:
            head = TRIAD_SUFFIX[self.quality]
            for token in SEVENTH_TOKENS:
                if token in exts:
                    head += token
                    exts.discard(token)
        tensions = [token for token in EXTENSION_INTERVALS if token in exts]
        if tensions:
            head += f"({','.join(tensions)})"
        return f"{name}{head}"


def triad_quality(third: int, fifth: int) -> str:
    for quality, intervals in TRIAD_INTERVALS.items():
        if intervals[1] == third % 12 and intervals[2] == fifth % 12:
            return quality
    raise ValueError(f"No triad quality for intervals {third}/{fifth}.")


def diatonic_triad(scale: Scale, degree: int) -> Chord:
    idx = (degree - 1) % 7
    semis = scale.semitones
    root = semis[idx]
    quality = triad_quality(semis[(idx + 2) % 7] - root, semis[(idx + 4) % 7] - root)
    return Chord(root=root, quality=quality)


def diatonic_seventh_token(scale: Scale, degree: int) -> str:
    idx = (degree - 1) % 7
    semis = scale.semitones
    return "maj7" if (semis[(idx + 6) % 7] - semis[idx]) % 12 == 11 else "7"


def diatonic_ninth_token(scale: Scale, degree: int) -> str:
    idx = (degree - 1) % 7
    semis = scale.semitones
    return "b9" if (semis[(idx + 1) % 7] - semis[idx]) % 12 == 1 else "9"


def pitch_classes_of(chord: Chord) -> list[int]:
    tones = [(chord.root + step) % 12 for step in TRIAD_INTERVALS[chord.quality]]
    for token in EXTENSION_INTERVALS:
        if token in chord.extensions:
            if chord.quality == "dim" and token == "7":
                # Half-diminished: the seventh sits a minor seventh above the root.
                pc = (chord.root + 10) % 12
            else:
                pc = (chord.root + EXTENSION_INTERVALS[token]) % 12
            if pc not in tones:
                tones.append(pc)
    return tones


def _scale_degree_for_root(root: int, scale: Scale) -> tuple[int | None, bool]:
    degree = scale.degree_of(root)
    if degree is not None:
        return degree, False
    # Chromatic roots read as the lowered form of the degree above.
    return scale.degree_of(root + 1), True


def classify_function(chord: Chord, scale: Scale) -> str:
    if chord.is_dominant_seventh and (chord.root - scale.tonic) % 12 == 1:
        return "dominant"
    degree, _lowered = _scale_degree_for_root(chord.root, scale)
    if degree is None:
        return "chromatic"
    return FUNCTION_KINDS[degree - 1]


def classify_cadence(previous: Chord | None, chord: Chord, scale: Scale) -> str:
    if previous is None:
        return "none"
    prev_function = classify_function(previous, scale)
    function = classify_function(chord, scale)
    if chord.root == scale.tonic:
        if prev_function in DOMINANT_FUNCTIONS:
            return "authentic"
        if prev_function == "subdominant":
            return "plagal"
        return "none"
    if prev_function in DOMINANT_FUNCTIONS and function == "submediant":
        return "deceptive"
    if function == "dominant" and prev_function not in DOMINANT_FUNCTIONS:
        return "half"
    return "none"


def sets_up_cadence(chord: Chord, cadence: str, scale: Scale) -> bool:
    """Whether ``chord`` can precede a resolution classified as ``cadence``."""
    function = classify_function(chord, scale)
    if cadence in {"authentic", "deceptive"}:
        return function in DOMINANT_FUNCTIONS
    if cadence == "plagal":
        return function == "subdominant"
    if cadence == "half":
        return function not in DOMINANT_FUNCTIONS
    return True


def commonality_rank(previous_degree: int | None, degree: int) -> int:
    if previous_degree is None:
        return 0 if degree == 1 else MAX_COMMONALITY_RANK
    return PROGRESSION_RANKS[previous_degree][degree]


def _numeral_for_triad(chord: Chord, scale: Scale) -> str:
    degree, lowered = _scale_degree_for_root(chord.root, scale)
    if degree is None:
        return "?"
    numeral = ROMAN_NUMERALS[degree - 1]
    if chord.quality in {"min", "dim"}:
        numeral = numeral.lower()
    if lowered:
        numeral = f"b{numeral}"
    return numeral


def roman_numeral(chord: Chord, scale: Scale) -> str:
    numeral = _numeral_for_triad(chord, scale)
    exts = set(chord.extensions)
    if chord.quality == "dim":
        numeral += "ø7" if "7" in exts else "°"
        exts.discard("7")
    elif chord.quality == "aug":
        numeral += "+"
    if "maj7" in exts:
        numeral += "maj7"
    elif "7" in exts:
        numeral += "7"
    tensions = [token for token in ("b9", "9") if token in exts]
    if tensions:
        numeral += f"({','.join(tensions)})"
    return numeral


def secondary_dominant_numeral(chord: Chord, scale: Scale) -> str:
    target_root = (chord.root + 5) % 12
    target_degree = scale.degree_of(target_root)
    if target_degree is None:
        return roman_numeral(chord, scale)
    target = _numeral_for_triad(diatonic_triad(scale, target_degree), scale)
    head = "V9" if "9" in chord.extensions else "V7"
    return f"{head}/{target}"
