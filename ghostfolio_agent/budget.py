import logging
import threading
from datetime import date, datetime, timezone
from typing import Callable

from ghostfolio_agent.config import INPUT_PRICE_PER_MILLION, OUTPUT_PRICE_PER_MILLION
from ghostfolio_agent.errors import BudgetExceededError
from ghostfolio_agent.state import TokenUsage

logger = logging.getLogger(__name__)


def estimate_cost(usage: TokenUsage) -> float:
    """USD cost of a turn at Haiku pricing."""
    return (
        usage.prompt_tokens * INPUT_PRICE_PER_MILLION / 1_000_000
        + usage.completion_tokens * OUTPUT_PRICE_PER_MILLION / 1_000_000
    )


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class DailySpendTracker:
    """
    Running model spend for the current calendar day (UTC), shared by all
    requests in the process. The total resets when the date changes.
    Pass `today` to control the clock in tests.
    """

    def __init__(self, cap_usd: float = 5.0, today: Callable[[], date] = _utc_today):
        self.cap_usd = cap_usd
        self._today = today
        self._lock = threading.Lock()
        self._date = today()
        self._total = 0.0
        self._requests = 0

    def _roll(self) -> None:
        current = self._today()
        if current != self._date:
            self._date = current
            self._total = 0.0
            self._requests = 0

    def ensure_within_budget(self) -> None:
        """Raises BudgetExceededError once today's spend has reached the cap."""
        with self._lock:
            self._roll()
            if self._total >= self.cap_usd:
                logger.warning(
                    "Daily AI cost cap reached: $%.4f >= $%.2f", self._total, self.cap_usd
                )
                raise BudgetExceededError()

    def record(self, cost_usd: float) -> float:
        with self._lock:
            self._roll()
            self._total += cost_usd
            self._requests += 1
            return self._total

    def snapshot(self) -> dict:
        with self._lock:
            self._roll()
            return {
                "date": self._date.isoformat(),
                "total_requests": self._requests,
                "estimated_cost_usd": round(self._total, 6),
                "daily_cap_usd": self.cap_usd,
                "remaining_usd": round(max(0.0, self.cap_usd - self._total), 6),
                "cost_assumptions": {
                    "input_price_per_million": INPUT_PRICE_PER_MILLION,
                    "output_price_per_million": OUTPUT_PRICE_PER_MILLION,
                },
            }
