"""
Hallucination detection for numeric claims.

A claim (a sentence carrying a percentage, dollar amount or precise
decimal) is grounded when at least one of its significant numbers can be
found in the serialized tool output, allowing for the usual rounding and
percentage-vs-fraction presentations. The score is the share of claims
that could not be grounded.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Context, Decimal

from ghostfolio_agent.verification.claims import extract_claim_numbers, extract_claims

logger = logging.getLogger(__name__)

WARN_THRESHOLD = 0.03
REGENERATE_THRESHOLD = 0.05

# Numbers below this magnitude carry no signal (0, 0.00, list markers).
MIN_SIGNIFICANT = 0.01

_WIDE = Context(prec=400)


@dataclass
class HallucinationResult:
    score: float
    flagged_claims: list[str] = field(default_factory=list)
    grounded_claims: int = 0
    total_claims: int = 0
    should_warn: bool = False
    should_regenerate: bool = False

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "flagged_claims": self.flagged_claims,
            "grounded_claims": self.grounded_claims,
            "total_claims": self.total_claims,
            "should_warn": self.should_warn,
            "should_regenerate": self.should_regenerate,
        }


# ---------------------------------------------------------------------------
# Number formatting helpers
# ---------------------------------------------------------------------------

def plain_number(value: float) -> str:
    """Shortest string for a number, integers without a trailing '.0'."""
    if math.isfinite(value) and value == int(value):
        return str(int(value))
    return repr(value)


def fixed(value: float, digits: int) -> str:
    """Fixed-point formatting that rounds exact halves away from zero."""
    quantum = Decimal(1).scaleb(-digits)
    exact = Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP, context=_WIDE)
    return str(exact)


def _round_half_up(value: float) -> str:
    return str(math.floor(value + 0.5))


def _normalize(node):
    if isinstance(node, bool) or node is None:
        return node
    if isinstance(node, float):
        if math.isfinite(node) and node == int(node):
            return int(node)
        return node
    if isinstance(node, dict):
        return {str(k): _normalize(v) for k, v in node.items()}
    if isinstance(node, (list, tuple)):
        return [_normalize(v) for v in node]
    return node


def build_corpus(tool_results) -> str:
    """Lower-cased JSON of the tool results, numbers written as plain numbers."""
    return json.dumps(_normalize(tool_results), default=str).lower()


def _candidate_forms(cleaned: str, value: float) -> list[str]:
    forms = [
        cleaned,
        plain_number(value),
        fixed(value, 2),
        fixed(value, 1),
        _round_half_up(value),
        plain_number(float(fixed(value, 1))),
    ]
    if 0 <= value <= 100:
        fraction = value / 100
        forms.extend([fixed(fraction, 4), fixed(fraction, 3), fixed(fraction, 2)])
    return forms


def is_claim_grounded(claim: str, corpus: str) -> bool:
    """
    True when any significant number in `claim` appears in `corpus` in
    one of its accepted forms. Claims without numbers get the benefit of
    the doubt.
    """
    tokens = extract_claim_numbers(claim)
    if not tokens:
        return True

    for token in tokens:
        cleaned = token.replace(",", "")
        try:
            value = float(cleaned)
        except ValueError:
            continue
        if not math.isfinite(value) or abs(value) < MIN_SIGNIFICANT:
            continue
        if any(form in corpus for form in _candidate_forms(cleaned, value)):
            return True
    return False


class HallucinationDetector:
    def __init__(
        self,
        warn_threshold: float = WARN_THRESHOLD,
        regenerate_threshold: float = REGENERATE_THRESHOLD,
    ):
        self.warn_threshold = warn_threshold
        self.regenerate_threshold = regenerate_threshold

    def check(self, response_text: str, tool_results: list) -> HallucinationResult:
        claims = extract_claims(response_text)
        corpus = build_corpus(tool_results)

        flagged = []
        grounded = 0
        for claim in claims:
            if is_claim_grounded(claim, corpus):
                grounded += 1
            else:
                flagged.append(claim)

        total = len(claims)
        score = len(flagged) / total if total else 0.0
        result = HallucinationResult(
            score=score,
            flagged_claims=flagged,
            grounded_claims=grounded,
            total_claims=total,
            should_warn=score > self.warn_threshold,
            should_regenerate=score > self.regenerate_threshold,
        )

        if result.should_warn:
            logger.warning(
                "Hallucination check: %d/%d claims ungrounded (score: %.2f)",
                len(flagged), total, score,
            )
        return result
