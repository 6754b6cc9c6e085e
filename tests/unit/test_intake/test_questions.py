"""Unit tests for intake questions and answer resolution."""

from __future__ import annotations

from deep_research.intake.questions import (
    default_answers,
    detect_regions,
    detect_timeframe,
    get_default_questions,
    prefill_questions,
    resolve_intake,
)


def test_study_specific_question_is_appended():
    ids = [q.id for q in get_default_questions("cost_model")]
    assert ids == ["region", "timeframe", "cost_drivers"]
    assert [q.id for q in get_default_questions("custom")] == ["region", "timeframe"]


def test_detect_region_and_timeframe():
    assert detect_regions("carbon steel in North America and Europe") == ["na", "eu"]
    assert detect_timeframe("outlook for the next 5 years") == "5y"
    assert detect_timeframe("current prices") is None


def test_prefill_marks_query_sourced_defaults():
    questions = prefill_questions("Copper cathode in China over 6 months", get_default_questions("market_analysis"))
    by_id = {q.id: q for q in questions}
    assert by_id["region"].default == ["apac"]
    assert by_id["region"].prefilled_from == "query"
    assert by_id["timeframe"].default == "6m"


def test_prefill_does_not_mutate_catalogue():
    prefill_questions("steel in Europe", get_default_questions("market_analysis"))
    assert get_default_questions("market_analysis")[0].default == ["global"]


def test_default_answers():
    answers = default_answers(get_default_questions("risk_assessment"))
    assert answers == {"region": ["global"], "timeframe": "12m", "risk_types": ["supply_chain", "price"]}


def test_resolve_intake_labels():
    intake = resolve_intake({"region": ["na", "eu"], "timeframe": "12m", "budget": "1m_10m"})
    assert intake.regions == ["North America", "Europe"]
    assert intake.region_text == "North America, Europe"
    assert intake.primary_region == "North America"
    assert intake.timeframe == "12 Months"
    assert intake.extras == {"budget": "1m_10m"}


def test_resolve_intake_defaults():
    intake = resolve_intake({})
    assert intake.regions == ["Global"]
    assert intake.timeframe == "Current"
