import re
from typing import Iterable

DISCLAIMER = (
    "This information is for educational purposes only and does not constitute "
    "financial advice. Please consult a qualified financial advisor before making "
    "investment decisions."
)

# Any of these already counts as a disclaimer.
DISCLAIMER_PATTERN = re.compile(
    r"financial advice|consult.*advisor|educational purposes|not.*recommendation",
    re.IGNORECASE,
)

CONTEXTUAL_DISCLAIMERS = {
    "portfolio_summary": (
        "Portfolio values reflect the most recent market data available and may "
        "lag real-time prices."
    ),
    "transaction_analyzer": (
        "Transaction analysis only covers activities recorded in Ghostfolio. "
        "Trades held at other brokers are not included."
    ),
    "market_context": (
        "Market prices may be delayed and should not be relied on for trading decisions."
    ),
    "tax_estimator": (
        "Tax figures are estimates from simplified FIFO lot matching with a 365-day "
        "holding period. They ignore wash sales, fees and local tax rules. Consult a "
        "tax professional before filing."
    ),
    "compliance_checker": (
        "Compliance checks apply generic diversification thresholds and are not a "
        "suitability review."
    ),
    "allocation_optimizer": (
        "Rebalancing suggestions are illustrative and do not account for taxes, "
        "trading costs or personal circumstances."
    ),
}


def get_disclaimer() -> str:
    return DISCLAIMER


def enforce_disclaimer(text: str) -> str:
    """Appends the standard disclaimer footer unless the text already has one."""
    if DISCLAIMER_PATTERN.search(text):
        return text
    return f"{text}\n\n---\n*{DISCLAIMER}*"


def contextual_disclaimers(tool_names: Iterable[str]) -> list[str]:
    """One caveat per distinct tool used, in order of first use."""
    seen = set()
    caveats = []
    for name in tool_names:
        if name in seen or name not in CONTEXTUAL_DISCLAIMERS:
            continue
        seen.add(name)
        caveats.append(CONTEXTUAL_DISCLAIMERS[name])
    return caveats
