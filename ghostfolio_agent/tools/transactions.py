from collections import Counter
from datetime import datetime, time, timezone

from pydantic import BaseModel, Field

from ghostfolio_agent.registry import ToolContext
from ghostfolio_agent.tax_lots import parse_activity_date

ACTIVITY_TYPES = ("BUY", "SELL", "DIVIDEND", "FEE", "INTEREST", "LIABILITY")


class TransactionAnalyzerArgs(BaseModel):
    start_date: str | None = Field(default=None, description="Start date filter (ISO 8601)")
    end_date: str | None = Field(default=None, description="End date filter (ISO 8601)")
    types: list[str] | None = Field(
        default=None,
        description="Filter by activity types: BUY, SELL, DIVIDEND, FEE, INTEREST, LIABILITY",
    )


def _end_of_day_if_date_only(raw: str) -> datetime:
    parsed = parse_activity_date(raw)
    if len(raw.strip()) == 10:
        parsed = datetime.combine(parsed.date(), time.max, tzinfo=timezone.utc)
    return parsed


def filter_activities(activities: list[dict], args: TransactionAnalyzerArgs) -> list[dict]:
    start = parse_activity_date(args.start_date) if args.start_date else None
    end = _end_of_day_if_date_only(args.end_date) if args.end_date else None
    wanted = {t.upper() for t in args.types} if args.types else None

    selected = []
    for activity in activities:
        if wanted and str(activity.get("type", "")).upper() not in wanted:
            continue
        when = parse_activity_date(activity["date"])
        if start and when < start:
            continue
        if end and when > end:
            continue
        selected.append(activity)
    return selected


def summarize_activities(activities: list[dict], user_currency: str) -> dict:
    """Counts by type and by month (YYYY-MM), total fees and the covered date range."""
    by_type: Counter = Counter()
    by_month: Counter = Counter()
    total_fees = 0.0
    earliest = latest = None

    for activity in activities:
        by_type[activity.get("type", "UNKNOWN")] += 1
        when = parse_activity_date(activity["date"]).astimezone(timezone.utc)
        by_month[when.strftime("%Y-%m")] += 1
        total_fees += activity.get("fee") or 0
        if earliest is None or when < earliest:
            earliest = when
        if latest is None or when > latest:
            latest = when

    return {
        "total_activities": len(activities),
        "by_type": dict(by_type),
        "by_month": dict(sorted(by_month.items())),
        "total_fees": round(total_fees, 2),
        "date_range": {
            "earliest": earliest.isoformat() if earliest else None,
            "latest": latest.isoformat() if latest else None,
        },
        "user_currency": user_currency,
    }


async def transaction_analyzer(args: TransactionAnalyzerArgs, ctx: ToolContext) -> dict:
    orders = await ctx.client.get_orders()
    activities = filter_activities(orders.get("activities", []), args)
    return summarize_activities(activities, ctx.user_currency)
