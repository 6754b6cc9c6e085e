"""Unit tests for deep research intent scoring."""

from __future__ import annotations

import pytest

from deep_research.intake.scoring import (
    SUGGEST_THRESHOLD,
    build_chat_context,
    get_estimates,
    get_study_type_description,
    get_study_type_label,
    infer_study_type,
    score_intent,
)


def test_sourcing_study_request_triggers():
    result = score_intent(
        "Please prepare a comprehensive sourcing study for carbon steel across North America "
        "over the next 5-year outlook"
    )
    assert result.score >= 0.75
    assert result.inferred_study_type == "sourcing_study"
    assert result.should_trigger is True
    assert result.should_suggest is False
    assert "sourcing study" in [m.label for m in result.matched_signals]
    assert result.matched_signals[0].category == "high"


def test_short_query_scores_zero():
    result = score_intent("hi")
    assert result.score == 0.0
    assert result.should_trigger is False
    assert result.reason == "Query too short"


def test_negative_signal_keeps_score_low():
    result = score_intent("Show me my recent reports")
    assert result.score < SUGGEST_THRESHOLD
    negative = [m for m in result.matched_signals if m.label == "show me query"]
    assert negative and negative[0].category == "negative"
    assert negative[0].weight < 0
    assert result.should_trigger is False


@pytest.mark.parametrize("query", [None, 42, ["a list"], {"q": "dict"}])
def test_invalid_input_never_raises(query):
    result = score_intent(query)
    assert result.score == 0.0
    assert result.reason == "invalid input"


def test_scoring_is_pure():
    query = "Need a deep dive on lithium battery supplier landscape and pricing trends"
    assert score_intent(query) == score_intent(query)


def test_conversation_context_boosts_score():
    query = "What about pricing trends for copper cathode this year"
    messages = [
        {"role": "user", "content": "Tell me about copper"},
        {"role": "assistant", "content": "Copper is..."},
        {"role": "user", "content": "compare copper and aluminum"},
        {"role": "user", "content": "and steel trends?"},
        {"role": "user", "content": "what drives lithium costs?"},
    ]
    context = build_chat_context(messages)
    assert context.follow_up_count == 3
    assert context.has_complexity_indicators is True
    assert score_intent(query, context).score > score_intent(query).score


@pytest.mark.parametrize(
    ("query", "expected"),
    [
        ("Build a should-cost model for PET bottles", "cost_model"),
        ("Run a supplier evaluation for packaging vendors", "supplier_assessment"),
        ("Geopolitical risk review for rare earths", "risk_assessment"),
        ("Tell me something about widgets", "market_analysis"),
    ],
)
def test_infer_study_type(query, expected):
    assert infer_study_type(query) == expected


def test_estimates_fall_back_to_market_analysis():
    assert get_estimates("unknown") == get_estimates("market_analysis")
    credits, _ = get_estimates("custom", {"custom": {"credits": 42, "time": "1 minute"}})
    assert credits == 42


def test_score_carries_study_type_label():
    result = score_intent("Build a detailed cost model with a should-cost breakdown for corrugated packaging")
    assert result.study_type_label == get_study_type_label(result.inferred_study_type)
    assert result.study_type_description

    invalid = score_intent(None)
    assert invalid.study_type_label == "Market Analysis"


def test_unknown_study_type_label_falls_back():
    assert get_study_type_label("nonsense") == "Market Analysis"
    assert get_study_type_description("custom").startswith("Tailored research")
