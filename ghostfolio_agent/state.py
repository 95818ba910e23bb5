from dataclasses import dataclass, field
from typing import Any, Optional, TypedDict

from langchain_core.messages import BaseMessage

from ghostfolio_agent.verification.hallucination import HallucinationResult


@dataclass
class ToolCallRecord:
    tool_name: str
    args: dict
    result: Any
    duration_ms: int
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "tool_name": self.tool_name,
            "args": self.args,
            "result": self.result,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            self.prompt_tokens + other.prompt_tokens,
            self.completion_tokens + other.completion_tokens,
        )

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.prompt_tokens + self.completion_tokens,
        }


class AgentState(TypedDict):
    # Conversation
    trace_id: str
    messages: list[BaseMessage]
    user_query: str

    # Attempt loop. `attempt` counts completed model invocations.
    attempt: int
    response_text: str
    steps: int
    usage: TokenUsage

    # Tool execution tracking (replaced at the start of every attempt)
    tool_calls: list[ToolCallRecord]

    # Verification layer
    verification_outcome: str          # "pass" | "retry" | "accept_with_warning"
    accuracy_failed: bool
    hallucination: Optional[HallucinationResult]
    verification_failed: bool

    # Response
    final_response: Optional[str]
    confidence_score: float
    disclaimers: list[str]


def initial_state(trace_id: str, messages: list[BaseMessage], user_query: str) -> AgentState:
    return {
        "trace_id": trace_id,
        "messages": messages,
        "user_query": user_query,
        "attempt": 0,
        "response_text": "",
        "steps": 0,
        "usage": TokenUsage(),
        "tool_calls": [],
        "verification_outcome": "pass",
        "accuracy_failed": False,
        "hallucination": None,
        "verification_failed": False,
        "final_response": None,
        "confidence_score": 0.0,
        "disclaimers": [],
    }
