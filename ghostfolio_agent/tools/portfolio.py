from pydantic import BaseModel, Field

from ghostfolio_agent.registry import ToolContext
from ghostfolio_agent.tools.market_data import get_previous_close_map

DATA_WARNING = "Some portfolio data may be incomplete due to data provider issues."


class PortfolioSummaryArgs(BaseModel):
    with_markets: bool = Field(default=True, description="Include market data for each holding")
    with_summary: bool = Field(default=True, description="Include summary statistics")


def holdings_list(details: dict) -> list[dict]:
    """Ghostfolio returns holdings keyed by symbol; older versions return a list."""
    holdings = details.get("holdings") or {}
    if isinstance(holdings, dict):
        return list(holdings.values())
    return list(holdings)


def _base_currency_change(holding: dict, change: float, user_currency: str) -> float | None:
    """
    Converts a value change from the holding's currency into the base
    currency, using the rate implied by valueInBaseCurrency when the two
    currencies differ.
    """
    currency = holding.get("currency")
    if not currency or not user_currency:
        return None
    if currency == user_currency:
        return change
    market_value = (holding.get("marketPrice") or 0) * (holding.get("quantity") or 0)
    base_value = holding.get("valueInBaseCurrency")
    if not market_value or base_value is None:
        return None
    return change * (base_value / market_value)


async def portfolio_summary(args: PortfolioSummaryArgs, ctx: ToolContext) -> dict:
    """
    Holdings (sorted by allocation, largest first) with previous close and
    daily change, the portfolio summary block, and a warning when Ghostfolio
    reports data provider errors.
    """
    details = await ctx.client.get_portfolio_details(with_markets=args.with_markets)
    raw_holdings = holdings_list(details)

    identifiers = [
        (h["dataSource"], h["symbol"])
        for h in raw_holdings
        if h.get("dataSource") and h.get("symbol")
    ]
    previous_closes = await get_previous_close_map(ctx.client, identifiers)

    daily_change_total = 0.0
    total_value = 0.0
    holdings = []
    for h in raw_holdings:
        market_price = h.get("marketPrice") or 0
        previous_close = previous_closes.get(h.get("symbol"))
        price_change = price_change_pct = value_change = None

        if previous_close:
            price_change = round(market_price - previous_close, 2)
            price_change_pct = round((market_price - previous_close) / previous_close * 100, 2)
            converted = _base_currency_change(h, price_change * (h.get("quantity") or 0), ctx.user_currency)
            if converted is not None:
                value_change = round(converted, 2)
                daily_change_total += value_change

        total_value += h.get("valueInBaseCurrency") or 0

        holdings.append({
            "name": h.get("name"),
            "symbol": h.get("symbol"),
            "currency": h.get("currency"),
            "asset_class": h.get("assetClass"),
            "asset_sub_class": h.get("assetSubClass"),
            "allocation_in_percentage": h.get("allocationInPercentage") or 0,
            "value_in_base_currency": h.get("valueInBaseCurrency"),
            "net_performance_percent": h.get("netPerformancePercentWithCurrencyEffect"),
            "market_price": h.get("marketPrice"),
            "quantity": h.get("quantity"),
            "sectors": h.get("sectors", []),
            "countries": h.get("countries", []),
            "previous_close": previous_close,
            "daily_price_change": price_change,
            "daily_price_change_percent": price_change_pct,
            "daily_value_change_in_base_currency": value_change,
        })

    holdings.sort(key=lambda x: x["allocation_in_percentage"], reverse=True)

    daily_change_pct = round(daily_change_total / total_value * 100, 2) if total_value > 0 else 0
    result = {
        "holdings_count": len(holdings),
        "holdings": holdings,
        "daily_change": {
            "value_in_base_currency": round(daily_change_total, 2),
            "percentage": daily_change_pct,
        },
        "currency": ctx.user_currency,
    }

    summary = details.get("summary")
    if args.with_summary and summary:
        result["summary"] = {
            "cash": summary.get("cash"),
            "current_value_in_base_currency": summary.get("currentValueInBaseCurrency"),
            "total_investment": summary.get("totalInvestment"),
            "dividend_in_base_currency": summary.get("dividendInBaseCurrency"),
            "fees_in_base_currency": summary.get("fees"),
            "net_performance": summary.get("netPerformance"),
            "net_performance_percentage": summary.get("netPerformancePercentage"),
        }

    if details.get("hasErrors") or details.get("hasError"):
        result["warnings"] = [DATA_WARNING]
    return result
