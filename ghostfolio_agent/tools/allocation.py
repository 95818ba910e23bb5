from collections import defaultdict
from typing import Annotated

from pydantic import BaseModel, Field

from ghostfolio_agent.registry import ToolContext
from ghostfolio_agent.tools.portfolio import holdings_list

ON_TARGET_BAND = 1.0
SUGGESTION_BAND = 2.0
REBALANCE_THRESHOLD = 5.0
ALIGNED_MESSAGE = "Portfolio is well-aligned with target allocation."


class AllocationOptimizerArgs(BaseModel):
    target_allocation: dict[str, Annotated[float, Field(ge=0, le=1)]] = Field(
        description=(
            "Target allocation as asset class to fraction (0-1). "
            'E.g., {"EQUITY": 0.6, "FIXED_INCOME": 0.3, "LIQUIDITY": 0.1}'
        ),
    )


def _direction(drift: float) -> str:
    if abs(drift) < ON_TARGET_BAND:
        return "on-target"
    return "over" if drift > 0 else "under"


def compare_allocation(holdings: list[dict], target_allocation: dict[str, float]) -> dict:
    """
    Current vs target weight per asset class in percentage points, sorted by
    absolute drift. Suggestions are text only; no orders are produced.
    """
    current = defaultdict(float)
    for h in holdings:
        current[h.get("assetClass") or "OTHER"] += h.get("allocationInPercentage") or 0

    asset_classes = list(dict.fromkeys([*current.keys(), *target_allocation.keys()]))

    comparison = []
    total_drift = 0.0
    for asset_class in asset_classes:
        current_pct = current.get(asset_class, 0) * 100
        target_pct = target_allocation.get(asset_class, 0) * 100
        drift = current_pct - target_pct
        total_drift += abs(drift)
        comparison.append({
            "asset_class": asset_class,
            "current_percent": round(current_pct, 2),
            "target_percent": round(target_pct, 2),
            "drift_percent": round(drift, 2),
            "drift_direction": _direction(drift),
        })

    comparison.sort(key=lambda c: abs(c["drift_percent"]), reverse=True)

    suggestions = []
    for entry in comparison:
        drift = entry["drift_percent"]
        if entry["drift_direction"] == "over" and drift > SUGGESTION_BAND:
            verb = "reducing"
        elif entry["drift_direction"] == "under" and drift < -SUGGESTION_BAND:
            verb = "increasing"
        else:
            continue
        suggestions.append(
            f"Consider {verb} {entry['asset_class']} exposure by ~{abs(drift):.1f}pp "
            f"(currently {entry['current_percent']:.1f}%, target {entry['target_percent']:.1f}%)."
        )

    return {
        "comparison": comparison,
        "total_drift_percent": round(total_drift, 2),
        "is_rebalance_needed": total_drift > REBALANCE_THRESHOLD,
        "suggestions": suggestions or [ALIGNED_MESSAGE],
        "holdings_count": len(holdings),
    }


async def allocation_optimizer(args: AllocationOptimizerArgs, ctx: ToolContext) -> dict:
    details = await ctx.client.get_portfolio_details(with_markets=False)
    result = compare_allocation(holdings_list(details), args.target_allocation)
    summary = details.get("summary") or {}
    result["total_value_in_base_currency"] = summary.get("currentValueInBaseCurrency")
    return result
