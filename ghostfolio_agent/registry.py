"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict

from ghostfolio_agent.ghostfolio_client import GhostfolioClient


@dataclass
class ToolContext:
    """Per-request collaborators handed to every tool."""

    client: GhostfolioClient
    user_currency: str = "USD"


ToolHandler = Callable[[BaseModel, ToolContext], Awaitable[dict]]


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: ToolHandler

    async def invoke(self, payload: dict[str, Any], context: ToolContext) -> dict:
        args = self.args_schema.model_validate(payload or {})
        return await self.handler(args, context)

    def input_schema(self) -> dict:
        schema = self.args_schema.model_json_schema()
        schema.pop("title", None)
        return schema


class UnknownToolError(KeyError):
    pass


class ToolRegistry:
    """Stores tool specs and exports the tool list the model is offered."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    async def execute(self, name: str, payload: dict[str, Any], context: ToolContext) -> dict:
        """Validates `payload` against the tool's schema and runs it.

        Raises UnknownToolError for unknown tools and pydantic.ValidationError for bad
        arguments; the orchestrator turns both into inline error results.
        """
        spec = self._tools.get(name)
        if spec is None:
            raise UnknownToolError(name)
        return await spec.invoke(payload, context)

    def as_anthropic_tools(self) -> list[dict]:
        return [
            {
                "name": spec.name,
                "description": spec.description,
                "input_schema": spec.input_schema(),
            }
            for spec in self._tools.values()
        ]
