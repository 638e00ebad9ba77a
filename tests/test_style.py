from dataclasses import replace

import pytest

from harmony_planner.models import StyleOverrides, StyleSpecification
from harmony_planner.services.errors import InvalidStyleProfile
from harmony_planner.services.style import (
    STYLE_PRESETS,
    ExplainMode,
    StyleProfile,
    parse_explain_mode,
    preset_table,
    profile_for_preset,
    profile_from_specification,
)


def test_balanced_defaults():
    profile = profile_for_preset("balanced")
    assert profile.beam_width == 6
    assert profile.max_depth == 32
    assert (profile.risk_level, profile.reharm_depth) == (0.4, 0.5)
    assert profile.explain_mode is ExplainMode.NONE
    assert profile.name == "balanced"


def test_every_preset_is_valid():
    for name, profile in STYLE_PRESETS.items():
        assert profile.problems() == [], name


def test_overrides_rename_the_profile():
    profile = profile_for_preset("Pop_Radio", overrides=StyleOverrides(beam_width=3, risk_level=0.9))
    assert profile.beam_width == 3
    assert profile.risk_level == 0.9
    assert profile.reharm_depth == STYLE_PRESETS["pop_radio"].reharm_depth
    assert profile.name == "pop_radio+overrides"


def test_empty_overrides_keep_the_preset_name():
    assert profile_for_preset("balanced", overrides=StyleOverrides()).name == "balanced"


def test_unknown_preset():
    with pytest.raises(InvalidStyleProfile) as exc_info:
        profile_for_preset("polka")
    assert "polka" in str(exc_info.value)


def test_out_of_range_values_are_all_reported():
    with pytest.raises(InvalidStyleProfile) as exc_info:
        profile_for_preset("balanced", overrides=StyleOverrides(beam_width=0, risk_level=1.5, reharm_depth=-0.1))
    problems = exc_info.value.problems
    assert len(problems) == 3
    assert any("risk_level" in problem for problem in problems)
    assert exc_info.value.to_detail()["code"] == "invalid_style_profile"


def test_nan_weight_is_invalid():
    assert StyleProfile(voice_leading_strictness=float("nan")).problems()


@pytest.mark.parametrize(
    "raw,expected",
    [(None, ExplainMode.NONE), ("Brief", ExplainMode.BRIEF), ("detailed", ExplainMode.FULL), ("off", ExplainMode.NONE)],
)
def test_parse_explain_mode(raw, expected):
    assert parse_explain_mode(raw) is expected


def test_parse_explain_mode_rejects_unknown_values():
    with pytest.raises(InvalidStyleProfile):
        parse_explain_mode("verbose")


def test_modulation_radius_grows_with_aggressiveness():
    assert replace(STYLE_PRESETS["balanced"], modulation_aggressiveness=0.0).modulation_radius == 1
    assert replace(STYLE_PRESETS["balanced"], modulation_aggressiveness=0.5).modulation_radius == 2
    assert replace(STYLE_PRESETS["balanced"], modulation_aggressiveness=1.0).modulation_radius == 3


def test_profile_from_specification():
    spec = StyleSpecification(preset="gospel_drive", overrides=StyleOverrides(max_depth=40))
    profile = profile_from_specification(spec, "full")
    assert profile.max_depth == 40
    assert profile.beam_width == 8
    assert profile.explain_mode is ExplainMode.FULL


def test_preset_table_lists_search_fields():
    table = preset_table()
    assert set(table) == {"balanced", "smooth_ballad", "gospel_drive", "pop_radio"}
    assert table["smooth_ballad"]["max_depth"] == 14
    assert "explain_mode" not in table["balanced"]
