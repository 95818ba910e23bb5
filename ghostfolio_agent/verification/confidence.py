from dataclasses import dataclass

# Weights are tuned by hand, not learned.
BASE_CONFIDENCE = 0.95
NO_TOOLS_PENALTY = 0.35
VERIFICATION_ERROR_PENALTY = 0.15
SHORT_RESPONSE_PENALTY = 0.10
SHORT_RESPONSE_CHARS = 50
HALLUCINATION_WEIGHT = 0.8
HALLUCINATION_PENALTY_CAP = 0.15
TOOL_ERROR_PENALTY = 0.10
STALE_DATA_MINUTES = 30
STALE_DATA_PENALTY_PER_MINUTE = 0.001
STALE_DATA_PENALTY_CAP = 0.15

LOW_CONFIDENCE_THRESHOLD = 0.7


@dataclass
class ConfidenceSignals:
    tool_call_count: int
    has_errors: bool
    response_length: int
    hallucination_score: float | None = None
    tool_errors: int = 0
    data_age_minutes: float | None = None


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def assess_confidence(signals: ConfidenceSignals) -> float:
    """
    Scores how much a finished answer can be trusted, in [0, 1].

    Starts at 0.95 and subtracts for: no tool calls (0.35), a verification
    failure on the accepted answer (0.15), an answer under 50 characters
    (0.10), ungrounded claims (hallucination score x 0.8, capped at 0.15),
    each failed tool call (0.10), and market data older than 30 minutes
    (0.001 per extra minute, capped at 0.15).
    """
    score = BASE_CONFIDENCE

    if signals.tool_call_count == 0:
        score -= NO_TOOLS_PENALTY
    if signals.has_errors:
        score -= VERIFICATION_ERROR_PENALTY
    if signals.response_length < SHORT_RESPONSE_CHARS:
        score -= SHORT_RESPONSE_PENALTY
    if signals.hallucination_score is not None:
        score -= min(HALLUCINATION_PENALTY_CAP, signals.hallucination_score * HALLUCINATION_WEIGHT)
    score -= signals.tool_errors * TOOL_ERROR_PENALTY
    if signals.data_age_minutes is not None and signals.data_age_minutes > STALE_DATA_MINUTES:
        stale = (signals.data_age_minutes - STALE_DATA_MINUTES) * STALE_DATA_PENALTY_PER_MINUTE
        score -= min(STALE_DATA_PENALTY_CAP, stale)

    return _clamp(score)


def assess_basic_confidence(tool_call_count: int, has_errors: bool, response_length: int) -> float:
    """Three-signal score: base 0.8, minus 0.3 without tools, 0.2 on errors, 0.1 if short."""
    score = 0.8
    if tool_call_count == 0:
        score -= 0.3
    if has_errors:
        score -= 0.2
    if response_length < SHORT_RESPONSE_CHARS:
        score -= 0.1
    return _clamp(score)
