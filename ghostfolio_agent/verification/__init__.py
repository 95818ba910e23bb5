from ghostfolio_agent.verification.claims import extract_claims
from ghostfolio_agent.verification.confidence import (
    ConfidenceSignals,
    assess_basic_confidence,
    assess_confidence,
)
from ghostfolio_agent.verification.disclaimer import (
    contextual_disclaimers,
    enforce_disclaimer,
    get_disclaimer,
)
from ghostfolio_agent.verification.fact_checker import (
    AccuracyOutcome,
    collect_tool_numbers,
    extract_numbers,
    verify_numerical_accuracy,
)
from ghostfolio_agent.verification.hallucination import (
    HallucinationDetector,
    HallucinationResult,
    is_claim_grounded,
)

__all__ = [
    "AccuracyOutcome",
    "ConfidenceSignals",
    "HallucinationDetector",
    "HallucinationResult",
    "assess_basic_confidence",
    "assess_confidence",
    "collect_tool_numbers",
    "contextual_disclaimers",
    "enforce_disclaimer",
    "extract_claims",
    "extract_numbers",
    "get_disclaimer",
    "is_claim_grounded",
    "verify_numerical_accuracy",
]
