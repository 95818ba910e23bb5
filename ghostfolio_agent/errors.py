"""
Error taxonomy for the chat pipeline.

Every failure that reaches the caller is an AgentError carrying a category,
an HTTP status and a message that is safe to show to the user. Tool and
verification failures are normally recovered inside a turn and never get
this far.
"""

import asyncio
from enum import Enum

import anthropic
from pydantic import ValidationError


class ErrorCategory(str, Enum):
    API_ERROR = "api_error"
    TIMEOUT_ERROR = "timeout_error"
    TOOL_ERROR = "tool_error"
    VERIFICATION_ERROR = "verification_error"
    VALIDATION_ERROR = "validation_error"
    UNKNOWN = "unknown"


class AgentError(Exception):
    status_code = 500
    category = ErrorCategory.UNKNOWN
    user_message = "Failed to process chat request"

    def __init__(self, message: str | None = None, category: ErrorCategory | None = None):
        self.message = message or self.user_message
        if category is not None:
            self.category = category
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.category.value, "message": self.message}


class AgentDisabledError(AgentError):
    status_code = 403
    category = ErrorCategory.VALIDATION_ERROR
    user_message = "AI agent feature is disabled"


class MissingAPIKeyError(AgentError):
    status_code = 503
    category = ErrorCategory.API_ERROR
    user_message = "AI agent is not configured: missing Anthropic API key"


class BudgetExceededError(AgentError):
    status_code = 429
    category = ErrorCategory.API_ERROR
    user_message = "Daily AI budget exceeded. Please try again tomorrow."


class AgentTimeoutError(AgentError):
    status_code = 504
    category = ErrorCategory.TIMEOUT_ERROR
    user_message = "The AI agent timed out. Please try a simpler question."


class AgentRequestError(AgentError):
    status_code = 500


_TIMEOUT_KEYWORDS = ("timeout", "timed out", "abort")
_VALIDATION_KEYWORDS = ("validation", "invalid", "required")
_API_KEYWORDS = ("api", "anthropic", "rate limit", "network", "fetch", "connection")
_VERIFICATION_KEYWORDS = ("verification", "hallucination", "accuracy")
_TOOL_KEYWORDS = ("tool", "execute")


def categorize_error(error: BaseException) -> ErrorCategory:
    """
    Classifies an arbitrary exception into an ErrorCategory.
    Known exception types win; otherwise the message is matched against
    keyword groups in priority order (timeout, validation, api,
    verification, tool).
    """
    if isinstance(error, AgentError):
        return error.category
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, anthropic.APITimeoutError)):
        return ErrorCategory.TIMEOUT_ERROR
    if isinstance(error, ValidationError):
        return ErrorCategory.VALIDATION_ERROR
    if isinstance(error, anthropic.APIError):
        return ErrorCategory.API_ERROR

    message = f"{type(error).__name__} {error}".lower()
    for keywords, category in (
        (_TIMEOUT_KEYWORDS, ErrorCategory.TIMEOUT_ERROR),
        (_VALIDATION_KEYWORDS, ErrorCategory.VALIDATION_ERROR),
        (_API_KEYWORDS, ErrorCategory.API_ERROR),
        (_VERIFICATION_KEYWORDS, ErrorCategory.VERIFICATION_ERROR),
        (_TOOL_KEYWORDS, ErrorCategory.TOOL_ERROR),
    ):
        if any(k in message for k in keywords):
            return category
    return ErrorCategory.UNKNOWN
