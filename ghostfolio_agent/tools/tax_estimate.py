from pydantic import BaseModel, Field

from ghostfolio_agent.registry import ToolContext
from ghostfolio_agent.tax_lots import compute_tax_lots


class TaxEstimatorArgs(BaseModel):
    tax_year: int = Field(ge=1900, le=2200, description="The tax year to estimate for")
    jurisdiction: str | None = Field(default=None, description="Tax jurisdiction (US-only in v1)")
    lot_method: str = Field(default="FIFO", description="Lot matching method (FIFO default)")


async def tax_estimator(args: TaxEstimatorArgs, ctx: ToolContext) -> dict:
    """
    Realized gains for the tax year from FIFO lot matching over the user's
    BUY and SELL orders, plus the cost basis still held.
    """
    orders = await ctx.client.get_orders()
    activities = [
        a for a in orders.get("activities", [])
        if a.get("type") in ("BUY", "SELL")
    ]
    result = compute_tax_lots(
        activities,
        tax_year=args.tax_year,
        lot_method=args.lot_method,
        currency=ctx.user_currency,
    )
    result["jurisdiction"] = args.jurisdiction or "US"
    return result
