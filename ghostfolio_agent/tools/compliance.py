from collections import defaultdict
from typing import Literal

from pydantic import BaseModel, Field

from ghostfolio_agent.registry import ToolContext
from ghostfolio_agent.tools.portfolio import holdings_list

RuleName = Literal["concentration", "diversification", "currency"]
DEFAULT_RULES = ["concentration", "diversification", "currency"]

POSITION_LIMIT = 0.25
POSITION_WARNING = 0.15
ASSET_CLASS_LIMIT = 0.8
ASSET_CLASS_WARNING = 0.6
MIN_HOLDINGS = 5
CURRENCY_WARNING = 0.7


class ComplianceCheckerArgs(BaseModel):
    rule_set: list[RuleName] = Field(
        default_factory=lambda: list(DEFAULT_RULES),
        description="Rules to check: concentration, diversification, currency",
    )


def _finding(rule, severity, description, positions, value, threshold) -> dict:
    return {
        "rule": rule,
        "severity": severity,
        "description": description,
        "affected_positions": positions,
        "value": value,
        "threshold": threshold,
    }


def _allocation(h: dict) -> float:
    return h.get("allocationInPercentage") or 0


def _concentration(holdings: list[dict]) -> list[dict]:
    findings = []
    for h in holdings:
        alloc = _allocation(h)
        name = h.get("name") or h.get("symbol")
        if alloc > POSITION_LIMIT:
            findings.append(_finding(
                "Single Position Concentration", "violation",
                f"{name} represents {alloc * 100:.1f}% of the portfolio, "
                f"exceeding the 25% single-position limit.",
                [h.get("symbol")], alloc, POSITION_LIMIT,
            ))
        elif alloc > POSITION_WARNING:
            findings.append(_finding(
                "Single Position Concentration", "warning",
                f"{name} represents {alloc * 100:.1f}% of the portfolio, "
                f"approaching the 25% concentration limit.",
                [h.get("symbol")], alloc, POSITION_LIMIT,
            ))
    return findings


def _diversification(holdings: list[dict]) -> list[dict]:
    findings = []
    by_class = defaultdict(float)
    for h in holdings:
        by_class[h.get("assetClass") or "UNKNOWN"] += _allocation(h)

    for asset_class, alloc in by_class.items():
        positions = [h.get("symbol") for h in holdings if (h.get("assetClass") or "UNKNOWN") == asset_class]
        if alloc > ASSET_CLASS_LIMIT:
            findings.append(_finding(
                "Asset Class Diversification", "violation",
                f"{asset_class} represents {alloc * 100:.1f}% of the portfolio. "
                f"Consider diversifying across asset classes.",
                positions, alloc, ASSET_CLASS_LIMIT,
            ))
        elif alloc > ASSET_CLASS_WARNING:
            findings.append(_finding(
                "Asset Class Diversification", "warning",
                f"{asset_class} represents {alloc * 100:.1f}% of the portfolio.",
                positions, alloc, ASSET_CLASS_LIMIT,
            ))

    if len(holdings) < MIN_HOLDINGS:
        findings.append(_finding(
            "Minimum Holdings", "warning",
            f"Portfolio has only {len(holdings)} holdings. "
            f"Consider adding more positions for better diversification.",
            [h.get("symbol") for h in holdings], len(holdings), MIN_HOLDINGS,
        ))
    return findings


def _currency(holdings: list[dict]) -> list[dict]:
    findings = []
    exposure = defaultdict(float)
    for h in holdings:
        exposure[h.get("currency") or "UNKNOWN"] += _allocation(h)

    for currency, share in exposure.items():
        if share > CURRENCY_WARNING:
            findings.append(_finding(
                "Currency Concentration", "warning",
                f"{share * 100:.1f}% of the portfolio is denominated in {currency}. "
                f"Consider currency diversification.",
                [h.get("symbol") for h in holdings if h.get("currency") == currency],
                share, CURRENCY_WARNING,
            ))
    return findings


RULES = {
    "concentration": _concentration,
    "diversification": _diversification,
    "currency": _currency,
}


def check_compliance(holdings: list[dict], rule_set: list[str]) -> dict:
    """
    Runs the selected rules over Ghostfolio holdings (allocationInPercentage
    as a 0-1 fraction).

    Rules:
      concentration   - a position over 25% is a violation, over 15% a warning
      diversification - an asset class over 80% is a violation, over 60% a
                        warning; fewer than 5 holdings is a warning
      currency        - over 70% in one currency is a warning
    """
    findings = []
    for rule in rule_set:
        findings.extend(RULES[rule](holdings))

    violations = [f for f in findings if f["severity"] == "violation"]
    warnings = [f for f in findings if f["severity"] == "warning"]
    return {
        "rules_checked": list(rule_set),
        "total_holdings": len(holdings),
        "violations": violations,
        "warnings": warnings,
        "summary": {
            "violation_count": len(violations),
            "warning_count": len(warnings),
            "is_compliant": not violations,
        },
    }


async def compliance_checker(args: ComplianceCheckerArgs, ctx: ToolContext) -> dict:
    details = await ctx.client.get_portfolio_details(with_markets=False)
    return check_compliance(holdings_list(details), args.rule_set)
