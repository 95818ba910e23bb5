"""
Model boundary: a Claude tool-use loop.

The orchestrator only sees `generate` and `stream`. Each model step may
request several tools; they are executed concurrently through the
`execute_tool` callback, which never raises (tool failures come back as
`{"error": True, ...}` results), and the loop stops after `max_steps`
model calls.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol, Union

import anthropic

from ghostfolio_agent.config import DEFAULT_MODEL
from ghostfolio_agent.state import TokenUsage

logger = logging.getLogger(__name__)

STEP_SEPARATOR = "\n\n"

ExecuteTool = Callable[[str, dict], Awaitable[dict]]


@dataclass
class GenerationResult:
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    steps: int = 1


StreamItem = Union[str, GenerationResult]


class ToolCallingModel(Protocol):
    async def generate(
        self,
        *,
        system: str,
        messages: list[dict],
        tools: list[dict],
        execute_tool: ExecuteTool,
        max_steps: int,
    ) -> GenerationResult: ...

    def stream(
        self,
        *,
        system: str,
        messages: list[dict],
        tools: list[dict],
        execute_tool: ExecuteTool,
        max_steps: int,
    ) -> AsyncIterator[StreamItem]: ...


def _block_param(block) -> dict | None:
    if block.type == "text":
        return {"type": "text", "text": block.text}
    if block.type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    return None


def _text_of(content) -> str:
    return "".join(block.text for block in content if block.type == "text")


def _usage_of(message) -> TokenUsage:
    usage = getattr(message, "usage", None)
    if usage is None:
        return TokenUsage()
    return TokenUsage(usage.input_tokens or 0, usage.output_tokens or 0)


async def run_tool_calls(tool_uses: list, execute_tool: ExecuteTool) -> list[dict]:
    """
    Runs every tool requested in one step concurrently and returns the
    matching tool_result blocks. Shielded so a cancelled step lets
    in-flight calls finish instead of tearing them down mid-request.
    """
    tasks = [
        asyncio.ensure_future(execute_tool(block.name, dict(block.input or {})))
        for block in tool_uses
    ]
    results = await asyncio.gather(*(asyncio.shield(task) for task in tasks))
    return [
        {
            "type": "tool_result",
            "tool_use_id": block.id,
            "content": json.dumps(result, default=str),
            "is_error": isinstance(result, dict) and result.get("error") is True,
        }
        for block, result in zip(tool_uses, results)
    ]


class AnthropicToolRunner:
    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 1024,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key)

    def _request(self, system: str, conversation: list[dict], tools: list[dict]) -> dict:
        request = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": conversation,
        }
        if tools:
            request["tools"] = tools
        return request

    async def _advance(self, message, conversation: list[dict], execute_tool: ExecuteTool) -> bool:
        """Executes requested tools and extends the conversation. False when the model is done."""
        tool_uses = [block for block in message.content if block.type == "tool_use"]
        if message.stop_reason != "tool_use" or not tool_uses:
            return False
        assistant_blocks = [p for p in (_block_param(b) for b in message.content) if p]
        conversation.append({"role": "assistant", "content": assistant_blocks})
        conversation.append({"role": "user", "content": await run_tool_calls(tool_uses, execute_tool)})
        return True

    async def generate(self, *, system, messages, tools, execute_tool, max_steps) -> GenerationResult:
        conversation = list(messages)
        usage = TokenUsage()
        texts = []
        step = 0

        while step < max_steps:
            step += 1
            message = await self.client.messages.create(**self._request(system, conversation, tools))
            usage = usage + _usage_of(message)
            text = _text_of(message.content)
            texts.append(text)
            if not await self._advance(message, conversation, execute_tool):
                break
            logger.debug("Model step %d requested tools, continuing", step)

        final_text = texts[-1] if texts and texts[-1].strip() else STEP_SEPARATOR.join(t for t in texts if t.strip())
        return GenerationResult(text=final_text, usage=usage, steps=step)

    async def stream(self, *, system, messages, tools, execute_tool, max_steps) -> AsyncIterator[StreamItem]:
        conversation = list(messages)
        usage = TokenUsage()
        streamed = []
        step = 0

        while step < max_steps:
            step += 1
            step_started = False
            async with self.client.messages.stream(**self._request(system, conversation, tools)) as stream:
                async for chunk in stream.text_stream:
                    if not step_started and chunk:
                        step_started = True
                        # text from an earlier tool step reads as its own paragraph
                        if streamed and not "".join(streamed).endswith(STEP_SEPARATOR):
                            streamed.append(STEP_SEPARATOR)
                            yield STEP_SEPARATOR
                    streamed.append(chunk)
                    yield chunk
                message = await stream.get_final_message()
            usage = usage + _usage_of(message)
            if not await self._advance(message, conversation, execute_tool):
                break

        yield GenerationResult(text="".join(streamed), usage=usage, steps=step)
