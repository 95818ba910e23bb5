"""
pytest conftest for the agent eval suite.

Provides in-process fakes so no test touches the network:
1. FakeGhostfolioClient: canned portfolio details, orders and symbol quotes
   with the same method surface as GhostfolioClient.
2. ScriptedModel: a ToolCallingModel that replays scripted tool calls and
   answers, one script entry per model invocation.
pytest-asyncio runs in STRICT mode; async tests carry @pytest.mark.asyncio.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from ghostfolio_agent.ghostfolio_client import GhostfolioAPIError
from ghostfolio_agent.llm import GenerationResult
from ghostfolio_agent.registry import ToolContext
from ghostfolio_agent.state import TokenUsage


# ---------------------------------------------------------------------------
# Ghostfolio fake
# ---------------------------------------------------------------------------

def _holding(symbol, name, asset_class, allocation, value, price, quantity, currency="USD"):
    return {
        "symbol": symbol,
        "name": name,
        "currency": currency,
        "assetClass": asset_class,
        "assetSubClass": "STOCK" if asset_class == "EQUITY" else "BOND",
        "allocationInPercentage": allocation,
        "valueInBaseCurrency": value,
        "marketPrice": price,
        "quantity": quantity,
        "dataSource": "YAHOO",
        "netPerformancePercentWithCurrencyEffect": 0.1,
        "sectors": [],
        "countries": [],
    }


def sample_details() -> dict:
    return {
        "holdings": {
            "AAPL": _holding("AAPL", "Apple Inc.", "EQUITY", 0.4, 40000, 200, 200),
            "VTI": _holding("VTI", "Vanguard Total Stock Market", "EQUITY", 0.35, 35000, 250, 140),
            "BND": _holding("BND", "Vanguard Total Bond Market", "FIXED_INCOME", 0.25, 25000, 80, 312.5),
        },
        "summary": {
            "cash": 0,
            "currentValueInBaseCurrency": 100000,
            "totalInvestment": 85000,
            "dividendInBaseCurrency": 1200,
            "fees": 35,
            "netPerformance": 15000,
            "netPerformancePercentage": 0.1765,
        },
        "hasErrors": False,
    }


class FakeGhostfolioClient:
    def __init__(self, details=None, activities=None, quotes=None, closes=None, fail=None):
        self.details = details if details is not None else sample_details()
        self.activities = activities or []
        self.quotes = quotes or {}
        # symbol -> previous close, served as yesterday's historical data point
        self.closes = closes or {}
        # method name -> exception to raise
        self.fail = fail or {}
        self.calls = []

    def _maybe_fail(self, method):
        self.calls.append(method)
        if method in self.fail:
            raise self.fail[method]

    async def get_portfolio_details(self, with_markets=True):
        self._maybe_fail("get_portfolio_details")
        return self.details

    async def get_orders(self):
        self._maybe_fail("get_orders")
        return {"activities": self.activities, "count": len(self.activities)}

    async def get_symbol(self, data_source, symbol, history_days=0):
        self._maybe_fail("get_symbol")
        if symbol in self.fail:
            raise self.fail[symbol]
        quote = dict(self.quotes.get(symbol, {"marketPrice": 100.0, "currency": "USD"}))
        quote.setdefault("symbol", symbol)
        quote.setdefault("dataSource", data_source)
        if history_days:
            yesterday = (datetime.now(timezone.utc) - timedelta(days=1)).date()
            close = self.closes.get(symbol)
            quote["historicalData"] = (
                [{"date": yesterday.isoformat(), "value": close}] if close is not None else []
            )
        return quote


# ---------------------------------------------------------------------------
# Model fake
# ---------------------------------------------------------------------------

class ScriptedModel:
    """
    Replays one script entry per invocation: (tool_calls, answer_text) where
    tool_calls is a list of (tool_name, args). The last entry repeats once
    the script runs out.
    """

    def __init__(self, script, usage=None, delay=0.0, error=None):
        self.script = script
        self.usage = usage or TokenUsage(prompt_tokens=1000, completion_tokens=200)
        self.delay = delay
        self.error = error
        self.calls = 0
        self.received_messages = []
        self.pending_tools = []

    def _next(self):
        entry = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        return entry

    async def generate(self, *, system, messages, tools, execute_tool, max_steps):
        tool_calls, text = self._next()
        self.received_messages.append(messages)
        if self.error is not None:
            raise self.error
        if tool_calls:
            await asyncio.gather(*(execute_tool(name, args) for name, args in tool_calls))
        if self.delay:
            await asyncio.sleep(self.delay)
        return GenerationResult(text=text, usage=self.usage, steps=2 if tool_calls else 1)

    async def stream(self, *, system, messages, tools, execute_tool, max_steps):
        tool_calls, text = self._next()
        self.received_messages.append(messages)
        if tool_calls:
            await asyncio.gather(*(execute_tool(name, args) for name, args in tool_calls))
        for i in range(0, len(text), 16):
            if self.delay:
                await asyncio.sleep(self.delay)
            yield text[i:i + 16]
        yield GenerationResult(text=text, usage=self.usage, steps=2 if tool_calls else 1)


@pytest.fixture
def fake_client():
    return FakeGhostfolioClient()


@pytest.fixture
def tool_context(fake_client):
    return ToolContext(client=fake_client, user_currency="USD")


@pytest.fixture
def make_client():
    return FakeGhostfolioClient


@pytest.fixture
def make_model():
    return ScriptedModel


@pytest.fixture
def api_error():
    return GhostfolioAPIError
