"""
Chat entry points: `chat` runs the verification graph, `chat_stream`
streams model text as it arrives and finishes with one metadata line.

Both check the feature flag, API key and daily budget before any model
call, account token cost afterwards and log one JSON telemetry line per
turn.
"""

import asyncio
import json
import logging
import time
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from ghostfolio_agent.budget import DailySpendTracker, estimate_cost
from ghostfolio_agent.config import AgentSettings
from ghostfolio_agent.errors import (
    AgentDisabledError,
    AgentError,
    AgentRequestError,
    AgentTimeoutError,
    ErrorCategory,
    MissingAPIKeyError,
    categorize_error,
)
from ghostfolio_agent.graph import (
    SYSTEM_PROMPT,
    AgentRuntime,
    ToolCallLog,
    build_graph,
    check_accuracy,
    finalize_response,
    invoke_tool,
    to_model_messages,
    tool_results,
)
from ghostfolio_agent.llm import GenerationResult, ToolCallingModel
from ghostfolio_agent.registry import ToolContext, ToolRegistry
from ghostfolio_agent.state import TokenUsage, ToolCallRecord, initial_state
from ghostfolio_agent.store import ConversationStore
from ghostfolio_agent.verification.disclaimer import get_disclaimer
from ghostfolio_agent.verification.hallucination import HallucinationDetector

logger = logging.getLogger(__name__)

META_SENTINEL = "\n__META__:"


@dataclass
class ChatResult:
    message: str
    confidence: float
    disclaimer: str
    disclaimers: list[str]
    tool_calls: list[ToolCallRecord]
    usage: TokenUsage
    duration_ms: int
    trace_id: str
    retries: int = 0
    cost_usd: float = 0.0
    flagged_claims: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "confidence": self.confidence,
            "disclaimer": self.disclaimer,
            "disclaimers": self.disclaimers,
            "tool_calls": [r.to_dict() for r in self.tool_calls],
            "usage": self.usage.to_dict(),
            "duration_ms": self.duration_ms,
            "trace_id": self.trace_id,
        }


def history_to_messages(history: list[dict]) -> list[BaseMessage]:
    """Keeps user and assistant turns; anything else is ignored."""
    messages: list[BaseMessage] = []
    for m in history or []:
        role = m.get("role", "")
        content = m.get("content", "")
        if role == "user":
            messages.append(HumanMessage(content=content))
        elif role == "assistant":
            messages.append(AIMessage(content=content))
    return messages


async def _with_deadline(items: AsyncIterator, deadline: float) -> AsyncIterator:
    """Re-yields `items`, raising asyncio.TimeoutError once the monotonic deadline passes."""
    iterator = items.__aiter__()
    try:
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise asyncio.TimeoutError()
            try:
                item = await asyncio.wait_for(iterator.__anext__(), timeout=remaining)
            except StopAsyncIteration:
                return
            yield item
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


def _typed_error(category: ErrorCategory) -> AgentError:
    if category is ErrorCategory.TIMEOUT_ERROR:
        return AgentTimeoutError()
    return AgentRequestError(category=category)


class AgentService:
    def __init__(
        self,
        settings: AgentSettings,
        model: ToolCallingModel | None,
        registry: ToolRegistry,
        spend_tracker: DailySpendTracker,
        conversations: ConversationStore | None = None,
        detector: HallucinationDetector | None = None,
    ):
        self.settings = settings
        self.model = model
        self.registry = registry
        self.spend_tracker = spend_tracker
        self.conversations = conversations
        self.detector = detector or HallucinationDetector()
        self.graph = build_graph()

    # ------------------------------------------------------------------
    # Guards and bookkeeping
    # ------------------------------------------------------------------

    def _preflight(self) -> None:
        if not self.settings.enabled:
            raise AgentDisabledError()
        if self.model is None:
            raise MissingAPIKeyError()
        self.spend_tracker.ensure_within_budget()

    def _runtime(self, context: ToolContext, timeout_seconds: float) -> AgentRuntime:
        return AgentRuntime(
            model=self.model,
            registry=self.registry,
            context=context,
            detector=self.detector,
            max_steps=self.settings.max_steps,
            max_retries=self.settings.max_retries,
            timeout_seconds=timeout_seconds,
            history_window=self.settings.history_window,
        )

    def _account(self, trace_id: str, usage: TokenUsage) -> float:
        cost = estimate_cost(usage)
        daily_total = self.spend_tracker.record(cost)
        logger.info("[%s] Turn cost $%.6f, daily total $%.4f", trace_id, cost, daily_total)
        return cost

    def _log_telemetry(self, result: ChatResult, steps: int) -> None:
        logger.info(json.dumps({
            "event": "ai_agent_telemetry",
            "trace_id": result.trace_id,
            "duration_ms": result.duration_ms,
            "tools_called": [r.tool_name for r in result.tool_calls],
            "tool_timings": [
                {"tool": r.tool_name, "duration_ms": r.duration_ms, "error": r.error is not None}
                for r in result.tool_calls
            ],
            "steps": steps,
            "retries": result.retries,
            "confidence": result.confidence,
            "flagged_claims": len(result.flagged_claims),
            "prompt_tokens": result.usage.prompt_tokens,
            "completion_tokens": result.usage.completion_tokens,
            "estimated_cost_usd": round(result.cost_usd, 6),
        }))

    def _log_error(self, trace_id: str, started: float, exc: Exception) -> ErrorCategory:
        category = categorize_error(exc)
        logger.error(json.dumps({
            "event": "ai_agent_error",
            "trace_id": trace_id,
            "category": category.value,
            "error": str(exc)[:300],
            "duration_ms": round((time.perf_counter() - started) * 1000),
        }))
        return category

    def _remember(self, conversation_id: str | None, message: str, answer: str, trace_id: str) -> None:
        if self.conversations is None or not conversation_id:
            return
        self.conversations.append(conversation_id, "user", message)
        self.conversations.append(conversation_id, "assistant", answer, trace_id=trace_id)

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(
        self,
        history: list[dict],
        message: str,
        context: ToolContext,
        conversation_id: str | None = None,
    ) -> ChatResult:
        self._preflight()
        trace_id = str(uuid.uuid4())
        started = time.perf_counter()
        logger.info("[%s] Chat request: %s", trace_id, message[:80])

        runtime = self._runtime(context, self.settings.timeout_seconds)
        state = initial_state(trace_id, history_to_messages(history), message)
        try:
            final = await self.graph.ainvoke(state, config={"configurable": {"runtime": runtime}})
        except AgentError as exc:
            self._log_error(trace_id, started, exc)
            raise
        except Exception as exc:
            raise _typed_error(self._log_error(trace_id, started, exc)) from exc

        hallucination = final["hallucination"]
        result = ChatResult(
            message=final["final_response"],
            confidence=final["confidence_score"],
            disclaimer=get_disclaimer(),
            disclaimers=final["disclaimers"],
            tool_calls=final["tool_calls"],
            usage=final["usage"],
            duration_ms=round((time.perf_counter() - started) * 1000),
            trace_id=trace_id,
            retries=final["attempt"] - 1,
            flagged_claims=hallucination.flagged_claims if hallucination else [],
        )
        result.cost_usd = self._account(trace_id, result.usage)
        self._log_telemetry(result, final["steps"])
        self._remember(conversation_id, message, result.message, trace_id)
        return result

    def chat_stream(
        self,
        history: list[dict],
        message: str,
        context: ToolContext,
        conversation_id: str | None = None,
    ) -> AsyncIterator[str]:
        """
        Yields raw text chunks as the model produces them, then any footer
        (disclaimer, notes) as one more chunk, then META_SENTINEL followed
        by the JSON metadata. Streamed text cannot be retracted, so there is
        no retry here: verification only feeds the notes and confidence.
        """
        self._preflight()
        return self._stream(history, message, context, conversation_id)

    async def _stream(self, history, message, context, conversation_id) -> AsyncIterator[str]:
        trace_id = str(uuid.uuid4())
        started = time.perf_counter()
        logger.info("[%s] Streaming chat request: %s", trace_id, message[:80])

        runtime = self._runtime(context, self.settings.stream_timeout_seconds)
        log = ToolCallLog(trace_id, 0)

        async def execute_tool(name: str, args: dict) -> dict:
            return await invoke_tool(runtime, log, name, args)

        generation = GenerationResult(text="")
        try:
            stream = self.model.stream(
                system=SYSTEM_PROMPT,
                messages=to_model_messages(history_to_messages(history), message, runtime.history_window),
                tools=self.registry.as_anthropic_tools(),
                execute_tool=execute_tool,
                max_steps=runtime.max_steps,
            )
            async for item in _with_deadline(stream, time.monotonic() + runtime.timeout_seconds):
                if isinstance(item, GenerationResult):
                    generation = item
                else:
                    yield item
        except AgentError as exc:
            self._log_error(trace_id, started, exc)
            raise
        except Exception as exc:
            raise _typed_error(self._log_error(trace_id, started, exc)) from exc
        finally:
            log.close()

        records = log.records
        accuracy = check_accuracy(generation.text, records)
        accuracy_failed = accuracy is not None and not accuracy.accurate
        hallucination = self.detector.check(generation.text, tool_results(records)) if records else None
        verification_failed = accuracy_failed or bool(hallucination and hallucination.should_regenerate)

        final, confidence, disclaimers = finalize_response(
            generation.text, records, hallucination, accuracy_failed, verification_failed, runtime.now(),
        )
        footer = final[len(generation.text):]
        if footer:
            yield footer

        result = ChatResult(
            message=final,
            confidence=confidence,
            disclaimer=get_disclaimer(),
            disclaimers=disclaimers,
            tool_calls=records,
            usage=generation.usage,
            duration_ms=round((time.perf_counter() - started) * 1000),
            trace_id=trace_id,
            flagged_claims=hallucination.flagged_claims if hallucination else [],
        )
        result.cost_usd = self._account(trace_id, result.usage)
        self._log_telemetry(result, generation.steps)
        self._remember(conversation_id, message, result.message, trace_id)

        yield META_SENTINEL + json.dumps(result.to_dict(), default=str)
