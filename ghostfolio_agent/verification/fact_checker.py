import math
import re
from dataclasses import dataclass, field

_NUMBER = re.compile(r"(?<!\w)-?\d{1,3}(?:,\d{3})*(?:\.\d+)?%?(?!\w)", re.ASCII)

# Response numbers smaller than this are ignored (list markers, zeros).
MIN_RESPONSE_MAGNITUDE = 0.001
MIN_ABSOLUTE_DIFFERENCE = 0.01


@dataclass
class NumberMismatch:
    response: float
    closest: float
    drift: float

    def to_dict(self) -> dict:
        return {"response": self.response, "closest": self.closest, "drift": self.drift}


@dataclass
class AccuracyOutcome:
    accurate: bool
    mismatches: list[NumberMismatch] = field(default_factory=list)


def extract_numbers(text: str) -> list[float]:
    """Find all numeric values in a text string, with ',' and '%' stripped."""
    numbers = []
    for token in _NUMBER.findall(text):
        cleaned = token.replace(",", "").replace("%", "")
        try:
            numbers.append(float(cleaned))
        except ValueError:
            continue
    return numbers


def collect_tool_numbers(tool_results) -> list[float]:
    """
    Walks JSON-like tool output and returns every number it carries:
    numeric leaves as-is (booleans excluded) plus numbers written inside
    string leaves such as "12.5% of the portfolio".
    """
    numbers: list[float] = []
    stack = [tool_results]
    while stack:
        node = stack.pop()
        if isinstance(node, bool) or node is None:
            continue
        if isinstance(node, (int, float)):
            if not math.isnan(node):
                numbers.append(float(node))
        elif isinstance(node, str):
            numbers.extend(extract_numbers(node))
        elif isinstance(node, dict):
            stack.extend(node.values())
        elif isinstance(node, (list, tuple)):
            stack.extend(node)
    return numbers


def verify_numerical_accuracy(
    response_numbers: list[float],
    tool_numbers: list[float],
    tolerance: float = 0.01,
) -> AccuracyOutcome:
    """
    Checks every number in a response against the closest number the tools
    produced. A number is a mismatch when its relative drift from the
    closest tool value exceeds `tolerance` and the absolute difference is
    more than a cent.
    """
    mismatches = []
    if not tool_numbers:
        return AccuracyOutcome(accurate=True)

    for value in response_numbers:
        if abs(value) < MIN_RESPONSE_MAGNITUDE:
            continue
        closest = min(tool_numbers, key=lambda t: abs(t - value))
        difference = abs(value - closest)
        drift = difference / abs(closest) if closest != 0 else math.inf
        if drift > tolerance and difference > MIN_ABSOLUTE_DIFFERENCE:
            mismatches.append(NumberMismatch(response=value, closest=closest, drift=drift))

    return AccuracyOutcome(accurate=not mismatches, mismatches=mismatches)
