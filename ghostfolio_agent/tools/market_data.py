import asyncio
import logging
from datetime import date, datetime, timedelta, timezone

from pydantic import BaseModel, Field

from ghostfolio_agent.registry import ToolContext

logger = logging.getLogger(__name__)

PREVIOUS_CLOSE_LOOKBACK_DAYS = 5


class SymbolRef(BaseModel):
    symbol: str = Field(description="The ticker symbol")
    data_source: str = Field(
        default="YAHOO",
        description="Data source (e.g., YAHOO, COINGECKO, MANUAL)",
    )


class MarketContextArgs(BaseModel):
    symbols: list[SymbolRef] = Field(
        min_length=1,
        description="Array of symbol and data source pairs",
    )


def _history_date(raw) -> date | None:
    try:
        return datetime.fromisoformat(str(raw)[:10]).date()
    except ValueError:
        return None


def previous_close_from_history(history: list[dict], today: date) -> float | None:
    """Most recent positive close in the days before `today`, within the lookback window."""
    earliest = today - timedelta(days=PREVIOUS_CLOSE_LOOKBACK_DAYS)
    best_day, best_value = None, None
    for point in history or []:
        day = _history_date(point.get("date"))
        value = point.get("value", point.get("marketPrice"))
        if day is None or value is None or value <= 0:
            continue
        if earliest <= day < today and (best_day is None or day > best_day):
            best_day, best_value = day, float(value)
    return best_value


async def get_previous_close_map(client, identifiers: list[tuple[str, str]], today: date | None = None) -> dict[str, float]:
    """
    Previous close per symbol for (data_source, symbol) pairs, looking back up
    to five days to skip weekends and holidays. Symbols whose history cannot
    be loaded are left out.
    """
    if not identifiers:
        return {}
    today = today or datetime.now(timezone.utc).date()

    responses = await asyncio.gather(
        *(
            client.get_symbol(data_source, symbol, history_days=PREVIOUS_CLOSE_LOOKBACK_DAYS + 1)
            for data_source, symbol in identifiers
        ),
        return_exceptions=True,
    )

    closes = {}
    for (_, symbol), response in zip(identifiers, responses):
        if isinstance(response, Exception):
            logger.warning("Previous close lookup failed for %s: %s", symbol, response)
            continue
        close = previous_close_from_history(response.get("historicalData", []), today)
        if close is not None:
            closes[symbol] = close
    return closes


def quote_as_of(response: dict, fetched_at: datetime) -> datetime:
    """
    When the quoted price is still the close of an earlier day (manual,
    delisted or closed-market symbols), the quote dates from that day.
    Otherwise it is treated as live at fetch time.
    """
    price = response.get("marketPrice")
    if price is None:
        return fetched_at
    today = fetched_at.date()
    latest_day, latest_value = None, None
    for point in response.get("historicalData") or []:
        day = _history_date(point.get("date"))
        value = point.get("value", point.get("marketPrice"))
        if day is None or value is None or day >= today:
            continue
        if latest_day is None or day > latest_day:
            latest_day, latest_value = day, float(value)
    if latest_day is not None and abs(latest_value - float(price)) < 1e-9:
        return datetime(latest_day.year, latest_day.month, latest_day.day, tzinfo=timezone.utc)
    return fetched_at


async def market_context(args: MarketContextArgs, ctx: ToolContext) -> dict:
    """
    Current quote (price, currency, market state, data source) for each
    requested symbol. Symbols that fail are listed under `errors`; if every
    symbol fails the first error is raised. `as_of` is the age of the
    oldest quote, see quote_as_of.
    """
    responses = await asyncio.gather(
        *(
            ctx.client.get_symbol(ref.data_source, ref.symbol, history_days=PREVIOUS_CLOSE_LOOKBACK_DAYS + 1)
            for ref in args.symbols
        ),
        return_exceptions=True,
    )

    fetched_at = datetime.now(timezone.utc)
    quotes, errors, quote_times = [], [], []
    for ref, response in zip(args.symbols, responses):
        if isinstance(response, Exception):
            errors.append({"symbol": ref.symbol, "message": str(response)})
            continue
        quotes.append({
            "symbol": response.get("symbol", ref.symbol),
            "currency": response.get("currency"),
            "market_price": response.get("marketPrice"),
            "market_state": response.get("marketState"),
            "data_source": response.get("dataSource", ref.data_source),
        })
        quote_times.append(quote_as_of(response, fetched_at))

    if not quotes and errors:
        first = next(r for r in responses if isinstance(r, Exception))
        raise first

    result = {
        "quotes": quotes,
        "timestamp": fetched_at.isoformat(),
        "as_of": min(quote_times).isoformat(),
    }
    if errors:
        result["errors"] = errors
    return result
