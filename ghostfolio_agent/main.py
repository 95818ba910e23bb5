import json
import logging
from datetime import datetime, timezone
from typing import Literal, Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from ghostfolio_agent.budget import DailySpendTracker
from ghostfolio_agent.config import load_settings
from ghostfolio_agent.errors import AgentError
from ghostfolio_agent.ghostfolio_client import GhostfolioClient
from ghostfolio_agent.llm import AnthropicToolRunner
from ghostfolio_agent.registry import ToolContext
from ghostfolio_agent.service import META_SENTINEL, AgentService
from ghostfolio_agent.store import ConversationStore, FeedbackEntry, FeedbackStore
from ghostfolio_agent.tools import build_registry

settings = load_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Ghostfolio AI Agent",
    description="Read-only portfolio assistant with verified, tool-grounded answers",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

spend_tracker = DailySpendTracker(cap_usd=settings.daily_cost_cap_usd)
feedback_store = FeedbackStore()
conversation_store = ConversationStore()

_service: AgentService | None = None


def get_agent_service() -> AgentService:
    global _service
    if _service is None:
        model = None
        if settings.anthropic_api_key:
            model = AnthropicToolRunner(
                api_key=settings.anthropic_api_key,
                model=settings.model,
                max_tokens=settings.max_tokens,
            )
        _service = AgentService(
            settings=settings,
            model=model,
            registry=build_registry(),
            spend_tracker=spend_tracker,
            conversations=conversation_store,
        )
    return _service


def _ghostfolio_client(bearer_token: str | None) -> GhostfolioClient:
    # The caller's own token wins over the shared one
    return GhostfolioClient(
        base_url=settings.ghostfolio_base_url,
        token=bearer_token or settings.ghostfolio_token,
        timeout=settings.ghostfolio_timeout_seconds,
    )


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=4000)
    history: list[dict] = []
    conversation_id: Optional[str] = None
    # Optional: the logged-in user's Ghostfolio bearer token.
    bearer_token: Optional[str] = None


class FeedbackRequest(BaseModel):
    trace_id: str = Field(min_length=1)
    rating: Literal["up", "down"]
    correction: Optional[str] = Field(default=None, max_length=2000)


def _history_for(req: ChatRequest) -> list[dict]:
    if req.history or not req.conversation_id:
        return req.history
    return conversation_store.history(req.conversation_id)


@app.exception_handler(AgentError)
async def agent_error_handler(request: Request, exc: AgentError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.post("/chat")
async def chat(req: ChatRequest, service: AgentService = Depends(get_agent_service)):
    async with _ghostfolio_client(req.bearer_token) as client:
        context = ToolContext(client=client, user_currency=settings.base_currency)
        result = await service.chat(_history_for(req), req.message, context, req.conversation_id)
    return result.to_dict()


@app.post("/chat/stream")
async def chat_stream(req: ChatRequest, service: AgentService = Depends(get_agent_service)):
    """
    Plain-text stream of the answer as it is generated. The last line is
    META_SENTINEL followed by JSON with confidence, disclaimers, tool calls
    and usage (or an error category if the turn failed mid-stream).
    """
    client = _ghostfolio_client(req.bearer_token)
    context = ToolContext(client=client, user_currency=settings.base_currency)
    try:
        chunks = service.chat_stream(_history_for(req), req.message, context, req.conversation_id)
    except AgentError:
        await client.close()
        raise

    async def generate():
        try:
            async for chunk in chunks:
                yield chunk
        except AgentError as exc:
            yield META_SENTINEL + json.dumps(exc.to_dict())
        finally:
            await client.close()

    return StreamingResponse(generate(), media_type="text/plain; charset=utf-8")


@app.post("/feedback")
async def feedback(req: FeedbackRequest):
    total = feedback_store.add(
        FeedbackEntry(trace_id=req.trace_id, rating=req.rating, correction=req.correction)
    )
    logger.info("Feedback %s recorded for trace %s", req.rating, req.trace_id)
    return {"status": "recorded", "total_feedback": total}


@app.get("/feedback/summary")
async def feedback_summary():
    return feedback_store.summary()


@app.get("/costs")
async def costs(service: AgentService = Depends(get_agent_service)):
    snapshot = service.spend_tracker.snapshot()
    snapshot["model"] = service.settings.model
    return snapshot


@app.get("/health")
async def health():
    async with _ghostfolio_client(None) as client:
        ghostfolio_ok = await client.health()

    return {
        "status": "ok",
        "agent_enabled": settings.enabled,
        "model_configured": bool(settings.anthropic_api_key),
        "ghostfolio_reachable": ghostfolio_ok,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    uvicorn.run("ghostfolio_agent.main:app", host="0.0.0.0", port=8000)
