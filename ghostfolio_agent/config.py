import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEFAULT_MODEL = "claude-haiku-4-5-20251001"

# Haiku pricing, USD per million tokens
INPUT_PRICE_PER_MILLION = 0.80
OUTPUT_PRICE_PER_MILLION = 4.00


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class AgentSettings(BaseModel):
    """Runtime settings for the portfolio agent, read from the environment."""

    enabled: bool = True
    anthropic_api_key: str | None = None
    model: str = DEFAULT_MODEL
    max_tokens: int = Field(default=1024, ge=1)
    max_steps: int = Field(default=3, ge=1)
    max_retries: int = Field(default=1, ge=0)
    timeout_seconds: float = Field(default=25.0, gt=0)
    stream_timeout_seconds: float = Field(default=30.0, gt=0)
    history_window: int = Field(default=10, ge=0)
    daily_cost_cap_usd: float = Field(default=5.0, ge=0)

    ghostfolio_base_url: str = "http://localhost:3333"
    ghostfolio_token: str | None = None
    ghostfolio_timeout_seconds: float = Field(default=10.0, gt=0)
    base_currency: str = "USD"

    log_level: str = "INFO"


def load_settings() -> AgentSettings:
    """Builds AgentSettings from environment variables (.env is loaded on import)."""
    return AgentSettings(
        enabled=_env_bool("ENABLE_FEATURE_AI_AGENT", True),
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
        model=os.getenv("ANTHROPIC_MODEL", DEFAULT_MODEL),
        max_tokens=int(os.getenv("AGENT_MAX_TOKENS", "1024")),
        max_steps=int(os.getenv("AGENT_MAX_STEPS", "3")),
        max_retries=int(os.getenv("AGENT_MAX_RETRIES", "1")),
        timeout_seconds=float(os.getenv("AGENT_TIMEOUT_SECONDS", "25")),
        stream_timeout_seconds=float(os.getenv("AGENT_STREAM_TIMEOUT_SECONDS", "30")),
        history_window=int(os.getenv("AGENT_HISTORY_WINDOW", "10")),
        daily_cost_cap_usd=float(os.getenv("DAILY_COST_CAP_USD", "5.0")),
        ghostfolio_base_url=os.getenv("GHOSTFOLIO_BASE_URL", "http://localhost:3333"),
        ghostfolio_token=os.getenv("GHOSTFOLIO_BEARER_TOKEN") or None,
        ghostfolio_timeout_seconds=float(os.getenv("GHOSTFOLIO_TIMEOUT_SECONDS", "10")),
        base_currency=os.getenv("BASE_CURRENCY", "USD"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
