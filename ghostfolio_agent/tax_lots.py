"""
FIFO tax-lot matching over BUY/SELL activity history.

Each symbol gets a queue of buy lots, oldest first. Every sell up to the
end of the tax year consumes lots bought on or before it, from the front
of the queue, splitting the front lot when it is larger than what is
left to match. Sells in earlier years only use lots up. Every fragment
matched inside the tax year is a realized gain or loss, classified
long-term when the position was held more than 365 days. This is a
calendar approximation of "more than one year" and ignores leap days,
wash sales and fees.
"""

import logging
from collections import defaultdict, deque
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone

logger = logging.getLogger(__name__)

LOT_EPSILON = 0.0001
LONG_TERM_DAYS = 365
MAX_REPORTED_LOTS = 50
SUPPORTED_LOT_METHODS = ("FIFO",)

TAX_NOTE = (
    "This is an estimate based on FIFO lot matching. "
    "Consult a tax professional for accurate tax filing."
)


@dataclass(slots=True)
class TaxLot:
    symbol: str
    buy_date: datetime
    quantity: float
    cost_basis: float
    sell_date: datetime | None = None
    proceeds: float | None = None
    gain_loss: float | None = None
    is_long_term: bool | None = None

    @property
    def unit_cost(self) -> float:
        return self.cost_basis / self.quantity if self.quantity else 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["buy_date"] = self.buy_date.isoformat()
        data["sell_date"] = self.sell_date.isoformat() if self.sell_date else None
        return data


def parse_activity_date(raw) -> datetime:
    """Accepts datetime, date or ISO strings (including a trailing 'Z')."""
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, date):
        parsed = datetime(raw.year, raw.month, raw.day)
    else:
        text = str(raw).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def activity_symbol(activity: dict) -> str:
    profile = activity.get("SymbolProfile") or {}
    return profile.get("symbol") or activity.get("symbol") or "UNKNOWN"


def _r2(value: float) -> float:
    return round(value, 2)


def build_lot_queues(activities: list[dict]) -> dict[str, deque]:
    """One chronologically sorted queue of open buy lots per symbol."""
    lots_by_symbol: dict[str, list[TaxLot]] = defaultdict(list)
    for activity in activities:
        if activity.get("type") != "BUY":
            continue
        quantity = float(activity.get("quantity") or 0)
        if quantity <= 0:
            continue
        unit_price = float(activity.get("unitPrice") or 0)
        symbol = activity_symbol(activity)
        lots_by_symbol[symbol].append(
            TaxLot(
                symbol=symbol,
                buy_date=parse_activity_date(activity["date"]),
                quantity=quantity,
                cost_basis=unit_price * quantity,
            )
        )
    return {
        symbol: deque(sorted(lots, key=lambda lot: lot.buy_date))
        for symbol, lots in lots_by_symbol.items()
    }


def match_sell(
    queue: deque,
    symbol: str,
    quantity: float,
    proceeds: float,
    sell_date: datetime,
) -> tuple[list[TaxLot], float]:
    """
    Consumes `quantity` from the front of `queue` and returns the realized
    fragments plus any quantity that could not be matched. The front lot is
    reduced in place when only part of it is sold. Lots bought after
    `sell_date` are never matched.
    """
    fragments = []
    remaining = quantity
    proceeds_per_unit = proceeds / quantity if quantity else 0.0

    while remaining > LOT_EPSILON and queue:
        lot = queue[0]
        if lot.buy_date > sell_date:
            break
        matched = min(remaining, lot.quantity)
        fragment_cost = lot.unit_cost * matched
        fragment_proceeds = proceeds_per_unit * matched
        holding_days = (sell_date - lot.buy_date).total_seconds() / 86400

        fragments.append(
            TaxLot(
                symbol=symbol,
                buy_date=lot.buy_date,
                quantity=matched,
                cost_basis=fragment_cost,
                sell_date=sell_date,
                proceeds=fragment_proceeds,
                gain_loss=fragment_proceeds - fragment_cost,
                is_long_term=holding_days > LONG_TERM_DAYS,
            )
        )

        lot.quantity -= matched
        lot.cost_basis -= fragment_cost
        remaining -= matched
        if lot.quantity <= LOT_EPSILON:
            queue.popleft()

    return fragments, max(0.0, remaining)


def compute_tax_lots(
    activities: list[dict],
    tax_year: int,
    lot_method: str = "FIFO",
    currency: str = "USD",
) -> dict:
    """
    Realized and unrealized figures for `tax_year` from BUY/SELL activities
    (Ghostfolio order shape: type, date, quantity, unitPrice, SymbolProfile).
    """
    method = (lot_method or "FIFO").upper()
    if method not in SUPPORTED_LOT_METHODS:
        raise ValueError(f"Unsupported lot method: {lot_method}. Only FIFO is available.")

    year_start = datetime(tax_year, 1, 1, tzinfo=timezone.utc)
    year_end = datetime(tax_year, 12, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)

    queues = build_lot_queues(activities)

    sells = []
    for activity in activities:
        if activity.get("type") != "SELL":
            continue
        sell_date = parse_activity_date(activity["date"])
        if sell_date <= year_end:
            sells.append((sell_date, activity))
    sells.sort(key=lambda pair: pair[0])

    realized: list[TaxLot] = []
    unmatched = []
    for sell_date, sell in sells:
        quantity = float(sell.get("quantity") or 0)
        if quantity <= 0:
            continue
        symbol = activity_symbol(sell)
        proceeds = float(sell.get("unitPrice") or 0) * quantity
        fragments, leftover = match_sell(
            queues.get(symbol, deque()), symbol, quantity, proceeds, sell_date
        )
        # earlier years only use up lots
        if sell_date < year_start:
            continue
        realized.extend(fragments)
        if leftover > LOT_EPSILON:
            logger.warning(
                "Sell of %s on %s exceeds open lots by %.4f shares",
                symbol, sell_date.date().isoformat(), leftover,
            )
            unmatched.append({
                "symbol": symbol,
                "sell_date": sell_date.isoformat(),
                "quantity": leftover,
            })

    short_term = sum(lot.gain_loss for lot in realized if not lot.is_long_term)
    long_term = sum(lot.gain_loss for lot in realized if lot.is_long_term)
    unrealized_cost_basis = sum(lot.cost_basis for queue in queues.values() for lot in queue)

    result = {
        "tax_year": tax_year,
        "lot_method": method,
        "currency": currency,
        "realized_gains": {
            "total": _r2(short_term + long_term),
            "short_term": _r2(short_term),
            "long_term": _r2(long_term),
            "transaction_count": len(realized),
        },
        "unrealized_cost_basis": _r2(unrealized_cost_basis),
        # most recent fragments, still in chronological order
        "lots": [lot.to_dict() for lot in realized[-MAX_REPORTED_LOTS:]],
        "note": TAX_NOTE,
    }
    if len(realized) > MAX_REPORTED_LOTS:
        result["lots_omitted"] = len(realized) - MAX_REPORTED_LOTS
    if unmatched:
        result["unmatched_sells"] = unmatched
    return result
