import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph
from pydantic import ValidationError

from ghostfolio_agent.errors import AgentTimeoutError
from ghostfolio_agent.llm import ToolCallingModel
from ghostfolio_agent.registry import ToolContext, ToolRegistry, UnknownToolError
from ghostfolio_agent.state import AgentState, ToolCallRecord
from ghostfolio_agent.tax_lots import parse_activity_date
from ghostfolio_agent.verification.confidence import (
    LOW_CONFIDENCE_THRESHOLD,
    ConfidenceSignals,
    assess_confidence,
)
from ghostfolio_agent.verification.disclaimer import contextual_disclaimers, enforce_disclaimer
from ghostfolio_agent.verification.fact_checker import (
    AccuracyOutcome,
    collect_tool_numbers,
    extract_numbers,
    verify_numerical_accuracy,
)
from ghostfolio_agent.verification.hallucination import HallucinationDetector, HallucinationResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a read-only financial portfolio assistant for Ghostfolio. You help users understand their portfolio, holdings, transactions, taxes, compliance, and allocation.

RULES:
1. READ-ONLY. Never suggest executing trades or modifying the portfolio. If asked to buy/sell, explain you can only analyze.
2. Include a disclaimer that your analysis is educational only, not financial advice.
3. Only reference data from your tools. Never fabricate holdings, prices, or figures.
4. Use exact values from tool results. Do not round unless explicitly stated.
5. If a tool returns an error, clearly state the limitation.
6. Never access other users' data.
7. Structure responses clearly when presenting complex data.

If confidence is low due to partial data, add uncertainty language and recommend consulting a professional. Always end with a disclaimer about seeking professional financial advice."""

UNVERIFIED_NOTE = (
    "*Note: Some claims in this response could not be fully verified against the "
    "source data. Please cross-reference important figures.*"
)
LOW_CONFIDENCE_NOTE = (
    "*Note: This analysis has limited confidence due to incomplete data. Please "
    "consult a qualified financial professional for important decisions.*"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AgentRuntime:
    """Collaborators for one chat turn, passed to the graph via config["configurable"]."""

    model: ToolCallingModel
    registry: ToolRegistry
    context: ToolContext
    detector: HallucinationDetector = field(default_factory=HallucinationDetector)
    max_steps: int = 3
    max_retries: int = 1
    timeout_seconds: float = 25.0
    history_window: int = 10
    now: Callable[[], datetime] = _utcnow


def _runtime(config: RunnableConfig) -> AgentRuntime:
    return config["configurable"]["runtime"]


# ---------------------------------------------------------------------------
# Tool execution boundary
# ---------------------------------------------------------------------------

class ToolCallLog:
    """
    Tool calls made during one attempt. Once the attempt is closed (finished,
    timed out or superseded by a retry) late results are dropped.
    """

    def __init__(self, trace_id: str, attempt: int):
        self.trace_id = trace_id
        self.attempt = attempt
        self.records: list[ToolCallRecord] = []
        self.closed = False

    def record(self, record: ToolCallRecord) -> bool:
        if self.closed:
            logger.debug(
                "[%s] Dropping late %s result from attempt %d",
                self.trace_id, record.tool_name, self.attempt,
            )
            return False
        self.records.append(record)
        return True

    def close(self) -> None:
        self.closed = True


async def invoke_tool(runtime: AgentRuntime, log: ToolCallLog, name: str, args: dict) -> dict:
    """
    Runs one tool call behind its own error boundary. Failures are returned
    to the model as {"error": True, "message": ...} so the turn continues.
    """
    start = time.perf_counter()
    error = None
    try:
        result = await runtime.registry.execute(name, args, runtime.context)
    except ValidationError as exc:
        first = exc.errors()[0]
        field_path = ".".join(str(p) for p in first["loc"]) or "input"
        error = f"invalid arguments ({field_path}: {first['msg']})"
        result = {"error": True, "message": f"Tool {name} failed: {error}"}
    except UnknownToolError:
        error = "unknown tool"
        result = {"error": True, "message": f"Tool {name} failed: unknown tool"}
    except Exception as exc:
        error = str(exc) or type(exc).__name__
        result = {"error": True, "message": f"Tool {name} failed: {error}"}

    duration_ms = round((time.perf_counter() - start) * 1000)
    if error:
        logger.warning("[%s] Tool %s failed after %dms: %s", log.trace_id, name, duration_ms, error)
    log.record(ToolCallRecord(tool_name=name, args=args, result=result, duration_ms=duration_ms, error=error))
    return result


def to_model_messages(history: list[BaseMessage], user_query: str, window: int) -> list[dict]:
    """Last `window` history turns plus the new user message, in Anthropic format."""
    recent = history[-window:] if window else []
    messages = []
    for m in recent:
        if not m.content:
            continue
        if isinstance(m, HumanMessage):
            messages.append({"role": "user", "content": m.content})
        elif isinstance(m, AIMessage) and messages:
            messages.append({"role": "assistant", "content": m.content})
    messages.append({"role": "user", "content": user_query})
    return messages


# ---------------------------------------------------------------------------
# Verification helpers (shared with the streaming path)
# ---------------------------------------------------------------------------

def tool_results(records: list[ToolCallRecord]) -> list:
    return [r.result for r in records]


def check_accuracy(text: str, records: list[ToolCallRecord]) -> Optional[AccuracyOutcome]:
    """None when there is nothing to compare (no tools or no numbers on either side)."""
    if not records:
        return None
    response_numbers = extract_numbers(text)
    tool_numbers = collect_tool_numbers(tool_results(records))
    if not response_numbers or not tool_numbers:
        return None
    return verify_numerical_accuracy(response_numbers, tool_numbers)


def data_age_minutes(records: list[ToolCallRecord], now: datetime) -> Optional[float]:
    """Age of the oldest `as_of` timestamp reported by a successful tool."""
    ages = []
    for r in records:
        if r.error or not isinstance(r.result, dict) or not r.result.get("as_of"):
            continue
        try:
            as_of = parse_activity_date(r.result["as_of"])
        except ValueError:
            continue
        ages.append((now - as_of).total_seconds() / 60)
    return max(ages) if ages else None


def finalize_response(
    text: str,
    records: list[ToolCallRecord],
    hallucination: Optional[HallucinationResult],
    accuracy_failed: bool,
    verification_failed: bool,
    now: datetime,
) -> tuple[str, float, list[str]]:
    """Disclaimer, confidence score, warning notes and per-tool caveats for an accepted answer."""
    final = enforce_disclaimer(text)
    signals = ConfidenceSignals(
        tool_call_count=len(records),
        has_errors=verification_failed,
        response_length=len(final),
        hallucination_score=hallucination.score if hallucination else None,
        tool_errors=sum(1 for r in records if r.error),
        data_age_minutes=data_age_minutes(records, now),
    )
    confidence = assess_confidence(signals)

    if accuracy_failed or (hallucination and hallucination.should_warn):
        final += f"\n\n{UNVERIFIED_NOTE}"
    if confidence < LOW_CONFIDENCE_THRESHOLD:
        final += f"\n\n{LOW_CONFIDENCE_NOTE}"

    return final, confidence, contextual_disclaimers(r.tool_name for r in records)


# ---------------------------------------------------------------------------
# Attempt node
# ---------------------------------------------------------------------------

async def attempt_node(state: AgentState, config: RunnableConfig) -> AgentState:
    """Invokes the model once (up to max_steps tool rounds) under the time budget."""
    runtime = _runtime(config)
    attempt = state["attempt"]
    trace_id = state["trace_id"]

    if attempt > 0:
        logger.warning(
            "[%s] Retry attempt %d/%d due to verification failure",
            trace_id, attempt, runtime.max_retries,
        )

    log = ToolCallLog(trace_id, attempt)

    async def execute_tool(name: str, args: dict) -> dict:
        return await invoke_tool(runtime, log, name, args)

    try:
        result = await asyncio.wait_for(
            runtime.model.generate(
                system=SYSTEM_PROMPT,
                messages=to_model_messages(state["messages"], state["user_query"], runtime.history_window),
                tools=runtime.registry.as_anthropic_tools(),
                execute_tool=execute_tool,
                max_steps=runtime.max_steps,
            ),
            timeout=runtime.timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        raise AgentTimeoutError() from exc
    finally:
        log.close()

    return {
        **state,
        "attempt": attempt + 1,
        "response_text": result.text,
        "steps": state["steps"] + result.steps,
        "usage": state["usage"] + result.usage,
        "tool_calls": list(log.records),
        "accuracy_failed": False,
        "hallucination": None,
        "verification_failed": False,
    }


# ---------------------------------------------------------------------------
# Verify node
# ---------------------------------------------------------------------------

async def verify_node(state: AgentState, config: RunnableConfig) -> AgentState:
    """
    Numeric accuracy first, then hallucination grounding. Either failure
    asks for a retry while the retry budget lasts; after that the answer is
    accepted and finalize adds a warning.
    """
    runtime = _runtime(config)
    text = state["response_text"]
    records = state["tool_calls"]
    trace_id = state["trace_id"]
    can_retry = state["attempt"] <= runtime.max_retries

    accuracy = check_accuracy(text, records)
    accuracy_failed = accuracy is not None and not accuracy.accurate
    if accuracy_failed:
        logger.warning(
            "[%s] Numerical accuracy check failed on attempt %d: %d mismatch(es)",
            trace_id, state["attempt"], len(accuracy.mismatches),
        )
        if can_retry:
            return {**state, "verification_outcome": "retry", "accuracy_failed": True}

    hallucination = runtime.detector.check(text, tool_results(records)) if records else None
    if hallucination and hallucination.should_regenerate and can_retry:
        logger.warning(
            "[%s] Hallucination score %.2f on attempt %d, regenerating",
            trace_id, hallucination.score, state["attempt"],
        )
        return {**state, "verification_outcome": "retry", "hallucination": hallucination}

    verification_failed = accuracy_failed or bool(hallucination and hallucination.should_regenerate)
    warned = verification_failed or bool(hallucination and hallucination.should_warn)
    return {
        **state,
        "verification_outcome": "accept_with_warning" if warned else "pass",
        "accuracy_failed": accuracy_failed,
        "hallucination": hallucination,
        "verification_failed": verification_failed,
    }


def _route_after_verify(state: AgentState) -> str:
    return "attempt" if state["verification_outcome"] == "retry" else "finalize"


# ---------------------------------------------------------------------------
# Finalize node
# ---------------------------------------------------------------------------

async def finalize_node(state: AgentState, config: RunnableConfig) -> AgentState:
    runtime = _runtime(config)
    final, confidence, disclaimers = finalize_response(
        state["response_text"],
        state["tool_calls"],
        state["hallucination"],
        state["accuracy_failed"],
        state["verification_failed"],
        runtime.now(),
    )
    return {
        **state,
        "final_response": final,
        "confidence_score": confidence,
        "disclaimers": disclaimers,
    }


def build_graph():
    """Builds and compiles the attempt / verify / finalize state machine."""
    g = StateGraph(AgentState)

    g.add_node("attempt", attempt_node)
    g.add_node("verify", verify_node)
    g.add_node("finalize", finalize_node)

    g.set_entry_point("attempt")
    g.add_edge("attempt", "verify")
    g.add_conditional_edges(
        "verify",
        _route_after_verify,
        {"attempt": "attempt", "finalize": "finalize"},
    )
    g.add_edge("finalize", END)

    return g.compile()
