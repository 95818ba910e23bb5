"""
Unit tests for the response verification layer.

Pure-logic components, no network and no model:
  Group A (9)  — claim extraction and token boundaries
  Group B (9)  — hallucination detector
  Group C (9)  — numeric accuracy verifier
  Group D (6)  — disclaimer enforcer and contextual caveats
  Group E (12) — confidence assessor (reference and basic formulas)
"""

import math

import pytest


# ===========================================================================
# Group A — claim extraction
# ===========================================================================

def test_claims_keep_decimals_inside_sentences():
    """A decimal point is not a sentence boundary."""
    from ghostfolio_agent.verification.claims import extract_claims
    claims = extract_claims(
        "Your portfolio is worth $100,000.50 with a 15.3% return. It is well diversified."
    )
    assert claims == ["Your portfolio is worth $100,000.50 with a 15.3% return"]


def test_claims_ignore_sentences_without_numbers():
    from ghostfolio_agent.verification.claims import extract_claims
    assert extract_claims("Your holdings look balanced. Nothing stands out!") == []


def test_claims_detect_precise_decimals():
    """A number with two or more decimals is a claim even without $ or %."""
    from ghostfolio_agent.verification.claims import extract_claims
    assert extract_claims("The beta is 1.2345 overall!") == ["The beta is 1.2345 overall"]


def test_claims_plain_integers_are_not_claims():
    from ghostfolio_agent.verification.claims import extract_claims
    assert extract_claims("You hold 12 positions across 3 accounts.") == []


def test_claims_preserve_order_and_duplicates():
    from ghostfolio_agent.verification.claims import extract_claims
    claims = extract_claims("AAPL is 40%. MSFT is $1,200. AAPL is 40%.")
    assert claims == ["AAPL is 40%", "MSFT is $1,200", "AAPL is 40%"]


def test_claim_numbers_skip_tokens_glued_to_words():
    from ghostfolio_agent.verification.claims import extract_claim_numbers
    assert extract_claim_numbers("Up 1,234.56 and -5 today for AAPL2") == ["1,234.56", "-5"]


@pytest.mark.parametrize("text, expected", [
    ("$1,234.56", ["1,234.56"]),
    ("1,234,567.891 units", ["1,234,567.891"]),
    ("0.5", ["0.5"]),
    ("down -3.2% today", ["-3.2"]),
    ("12 %", ["12"]),
    ("25%", ["25"]),
    ("$1,200.", ["1,200"]),
    (".5", ["5"]),
    ("1.2.3", ["1.2", "3"]),
    ("1,23", ["1", "23"]),
    # a minus glued to a word is not a sign
    ("x-5", ["5"]),
    ("3-for-1 split", ["3", "1"]),
    # four or more digits need thousands separators
    ("worth $999999 today", []),
    ("worth 100000", []),
    ("Q3 2025 results", []),
    ("AAPL2 rose", []),
    ("1e5", []),
    ("_5", []),
])
def test_claim_number_token_boundaries(text, expected):
    from ghostfolio_agent.verification.claims import extract_claim_numbers
    assert extract_claim_numbers(text) == expected


@pytest.mark.parametrize("pattern, text, matches", [
    ("_PERCENT_CLAIM", "up 12%", True),
    ("_PERCENT_CLAIM", "up 12 %", True),
    ("_PERCENT_CLAIM", "up 3.5   %", True),
    ("_PERCENT_CLAIM", "up 1,5%", True),
    ("_PERCENT_CLAIM", "up 12 percent", False),
    ("_PERCENT_CLAIM", "% only", False),
    ("_DOLLAR_CLAIM", "$5", True),
    ("_DOLLAR_CLAIM", "$999999", True),
    ("_DOLLAR_CLAIM", "costs $,", True),
    ("_DOLLAR_CLAIM", "$ 5", False),
    ("_DOLLAR_CLAIM", "USD 5", False),
    ("_DECIMAL_CLAIM", "beta 1.25", True),
    ("_DECIMAL_CLAIM", "v1.05", True),
    ("_DECIMAL_CLAIM", ",.50", True),
    ("_DECIMAL_CLAIM", "beta 1.2", False),
    ("_DECIMAL_CLAIM", "1,234.5", False),
    ("_DECIMAL_CLAIM", ".50", False),
])
def test_claim_patterns(pattern, text, matches):
    from ghostfolio_agent.verification import claims
    assert bool(getattr(claims, pattern).search(text)) is matches


@pytest.mark.parametrize("text, expected", [
    ("Up 15.3% today. Next!", ["Up 15.3% today", "Next"]),
    ("Worth $1,200. Done", ["Worth $1,200", "Done"]),
    ("Really?! Yes...", ["Really", "Yes"]),
    ("v1.2.3 ok", ["v1.2", "3 ok"]),
    ("", []),
])
def test_sentence_split_boundaries(text, expected):
    from ghostfolio_agent.verification.claims import split_sentences
    assert split_sentences(text) == expected


# ===========================================================================
# Group B — hallucination detector
# ===========================================================================

def test_hallucination_grounded_response_scores_low():
    """Formatted figures match the raw tool numbers they came from."""
    from ghostfolio_agent.verification.hallucination import HallucinationDetector
    result = HallucinationDetector().check(
        "Your portfolio is worth $100,000.50 with a 15.3% return.",
        [{"totalValue": 100000.5, "returnPercent": 15.3}],
    )
    assert result.score < 0.1
    assert result.should_regenerate is False
    assert result.total_claims == 1


def test_hallucination_fabricated_figures_are_flagged():
    from ghostfolio_agent.verification.hallucination import HallucinationDetector
    result = HallucinationDetector().check(
        "Your portfolio returned 45.7% this year. It is now worth $999,999.",
        [{"totalValue": 100000, "returnPercent": 15.3}],
    )
    assert len(result.flagged_claims) == 2
    assert result.score == 1.0
    assert result.should_warn is True
    assert result.should_regenerate is True


def test_hallucination_no_claims_scores_zero_even_without_tools():
    from ghostfolio_agent.verification.hallucination import HallucinationDetector
    result = HallucinationDetector().check("Diversification spreads risk across assets.", [])
    assert result.score == 0
    assert result.total_claims == 0
    assert result.flagged_claims == []


def test_hallucination_claim_without_numbers_gets_benefit_of_doubt():
    from ghostfolio_agent.verification.hallucination import is_claim_grounded
    assert is_claim_grounded("Growth was solid", "{}") is True


def test_hallucination_percentage_matches_fraction_in_tool_data():
    """30.82% in prose matches 0.3082 in the tool output."""
    from ghostfolio_agent.verification.hallucination import build_corpus, is_claim_grounded
    corpus = build_corpus([{"allocationInPercentage": 0.3082}])
    assert is_claim_grounded("AAPL makes up 30.82% of the portfolio", corpus) is True


def test_hallucination_more_precise_response_matches_rounded_tool_value():
    from ghostfolio_agent.verification.hallucination import build_corpus, is_claim_grounded
    corpus = build_corpus([{"value": 1234.57}])
    assert is_claim_grounded("The position is worth $1,234.567", corpus) is True


def test_hallucination_integer_floats_serialize_without_decimal_suffix():
    from ghostfolio_agent.verification.hallucination import build_corpus
    assert build_corpus([{"total": 2500.0, "ok": True}]) == '[{"total": 2500, "ok": true}]'


def test_hallucination_warn_and_regenerate_thresholds():
    """One ungrounded claim in twenty (score 0.05) warns but does not regenerate."""
    from ghostfolio_agent.verification.hallucination import HallucinationDetector
    text = " ".join(["AAPL is 15.3%."] * 19 + ["MSFT is 77.7%."])
    result = HallucinationDetector().check(text, [{"r": 15.3}])
    assert result.total_claims == 20
    assert result.score == pytest.approx(0.05)
    assert result.should_warn is True
    assert result.should_regenerate is False


def test_hallucination_counts_are_consistent():
    from ghostfolio_agent.verification.hallucination import HallucinationDetector
    result = HallucinationDetector().check(
        "Cash is $5,000. Bonds are 25%. Gold is 12.75%.",
        [{"cash": 5000, "bonds": 0.25}],
    )
    assert result.grounded_claims + len(result.flagged_claims) == result.total_claims
    assert result.flagged_claims == ["Gold is 12.75%"]


# ===========================================================================
# Group C — numeric accuracy verifier
# ===========================================================================

def test_accuracy_matching_numbers_pass():
    from ghostfolio_agent.verification.fact_checker import verify_numerical_accuracy
    outcome = verify_numerical_accuracy([100000, 15.3, 35], [100000, 15.3, 35, 50000, 20.1])
    assert outcome.accurate is True
    assert outcome.mismatches == []


def test_accuracy_drifted_number_reports_closest_tool_value():
    from ghostfolio_agent.verification.fact_checker import verify_numerical_accuracy
    outcome = verify_numerical_accuracy([100000, 25.0], [100000, 15.3])
    assert outcome.accurate is False
    assert len(outcome.mismatches) == 1
    assert outcome.mismatches[0].closest == 15.3
    assert outcome.mismatches[0].response == 25.0


def test_accuracy_ignores_negligible_response_numbers():
    from ghostfolio_agent.verification.fact_checker import verify_numerical_accuracy
    assert verify_numerical_accuracy([0.0005], [5]).accurate is True


def test_accuracy_zero_closest_value_gives_infinite_drift():
    from ghostfolio_agent.verification.fact_checker import verify_numerical_accuracy
    outcome = verify_numerical_accuracy([0.5], [0])
    assert outcome.accurate is False
    assert math.isinf(outcome.mismatches[0].drift)


def test_accuracy_sub_cent_difference_is_tolerated():
    """Relative drift alone is not enough; the absolute gap must exceed a cent."""
    from ghostfolio_agent.verification.fact_checker import verify_numerical_accuracy
    assert verify_numerical_accuracy([0.015], [0.01]).accurate is True


def test_accuracy_without_tool_numbers_is_vacuously_accurate():
    from ghostfolio_agent.verification.fact_checker import verify_numerical_accuracy
    assert verify_numerical_accuracy([42.0], []).accurate is True


def test_extract_numbers_strips_separators_and_percent():
    from ghostfolio_agent.verification.fact_checker import extract_numbers
    assert extract_numbers("Worth $1,234.50, up 12.5% across 3 holdings") == [1234.5, 12.5, 3.0]


def test_collect_tool_numbers_walks_nested_results():
    from ghostfolio_agent.verification.fact_checker import collect_tool_numbers
    numbers = collect_tool_numbers({"a": 1, "b": [2.5, True, None, "up 3.5%"], "c": {"d": 4}})
    assert sorted(numbers) == [1.0, 2.5, 3.5, 4.0]


@pytest.mark.parametrize("text, expected", [
    ("$1,234,567.89", [1234567.89]),
    ("down -3.2%", [-3.2]),
    ("-0.25% and 7", [-0.25, 7.0]),
    ("12 %", [12.0]),
    ("25%", [25.0]),
    ("25%x", [25.0]),
    ("$1,200.", [1200.0]),
    (".5", [5.0]),
    ("1,23", [1.0, 23.0]),
    ("x-5", [5.0]),
    ("worth 100000", []),
    ("1234 shares", []),
    ("AAPL2", []),
])
def test_extract_numbers_token_boundaries(text, expected):
    from ghostfolio_agent.verification.fact_checker import extract_numbers
    assert extract_numbers(text) == expected


# ===========================================================================
# Group D — disclaimer enforcer
# ===========================================================================

def test_disclaimer_appended_when_missing():
    from ghostfolio_agent.verification.disclaimer import DISCLAIMER, enforce_disclaimer
    text = enforce_disclaimer("Your portfolio is up this month.")
    assert text.startswith("Your portfolio is up this month.")
    assert text.endswith(f"\n\n---\n*{DISCLAIMER}*")


def test_disclaimer_is_idempotent():
    from ghostfolio_agent.verification.disclaimer import enforce_disclaimer
    once = enforce_disclaimer("AAPL is your largest holding.")
    assert enforce_disclaimer(once) == once


def test_disclaimer_existing_recommendation_language_is_respected():
    from ghostfolio_agent.verification.disclaimer import enforce_disclaimer
    text = "This is not a buy recommendation."
    assert enforce_disclaimer(text) == text


def test_disclaimer_pattern_is_case_insensitive():
    from ghostfolio_agent.verification.disclaimer import enforce_disclaimer
    text = "NOT FINANCIAL ADVICE. Bonds are 25% of the portfolio."
    assert enforce_disclaimer(text) == text


def test_contextual_disclaimers_dedupe_and_keep_order():
    from ghostfolio_agent.verification.disclaimer import CONTEXTUAL_DISCLAIMERS, contextual_disclaimers
    caveats = contextual_disclaimers(
        ["tax_estimator", "portfolio_summary", "tax_estimator", "not_a_tool"]
    )
    assert caveats == [
        CONTEXTUAL_DISCLAIMERS["tax_estimator"],
        CONTEXTUAL_DISCLAIMERS["portfolio_summary"],
    ]


def test_get_disclaimer_returns_fixed_text():
    from ghostfolio_agent.verification.disclaimer import DISCLAIMER, get_disclaimer
    assert get_disclaimer() == DISCLAIMER
    assert "educational purposes" in DISCLAIMER


# ===========================================================================
# Group E — confidence assessor
# ===========================================================================

def _signals(**overrides):
    from ghostfolio_agent.verification.confidence import ConfidenceSignals
    values = {"tool_call_count": 3, "has_errors": False, "response_length": 500}
    values.update(overrides)
    return ConfidenceSignals(**values)


def test_confidence_tools_beat_no_tools():
    from ghostfolio_agent.verification.confidence import assess_confidence
    assert assess_confidence(_signals(tool_call_count=0)) < assess_confidence(_signals())


def test_confidence_clean_turn_scores_base():
    from ghostfolio_agent.verification.confidence import assess_confidence
    assert assess_confidence(_signals()) == pytest.approx(0.95)


@pytest.mark.parametrize("overrides,expected", [
    ({"tool_call_count": 0}, 0.60),
    ({"has_errors": True}, 0.80),
    ({"response_length": 49}, 0.85),
    ({"hallucination_score": 0.1}, 0.87),
    ({"hallucination_score": 1.0}, 0.80),
    ({"tool_errors": 2}, 0.75),
    ({"data_age_minutes": 30}, 0.95),
    ({"data_age_minutes": 60}, 0.92),
    ({"data_age_minutes": 10_000}, 0.80),
])
def test_confidence_each_signal(overrides, expected):
    from ghostfolio_agent.verification.confidence import assess_confidence
    assert assess_confidence(_signals(**overrides)) == pytest.approx(expected)


def test_confidence_is_clamped_for_extreme_inputs():
    from ghostfolio_agent.verification.confidence import assess_confidence
    assert assess_confidence(_signals(tool_errors=100, has_errors=True, tool_call_count=0)) == 0.0
    assert assess_confidence(_signals(tool_errors=-100)) == 1.0
    assert 0.0 <= assess_confidence(_signals(hallucination_score=-50)) <= 1.0


def test_basic_confidence_signals():
    from ghostfolio_agent.verification.confidence import assess_basic_confidence
    assert assess_basic_confidence(3, False, 500) == pytest.approx(0.8)
    assert assess_basic_confidence(0, False, 500) == pytest.approx(0.5)
    assert assess_basic_confidence(3, True, 500) == pytest.approx(0.6)
    assert assess_basic_confidence(3, False, 10) == pytest.approx(0.7)
    assert assess_basic_confidence(0, True, 10) == pytest.approx(0.2)
