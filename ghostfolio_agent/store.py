import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field

Rating = Literal["up", "down"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FeedbackEntry(BaseModel):
    trace_id: str
    rating: Rating
    correction: Optional[str] = None
    timestamp: str = Field(default_factory=_now_iso)


class FeedbackStore:
    """In-memory feedback log. Entries are kept for the life of the process."""

    def __init__(self) -> None:
        self._entries: list[FeedbackEntry] = []
        self._lock = threading.Lock()

    def add(self, entry: FeedbackEntry) -> int:
        with self._lock:
            self._entries.append(entry)
            return len(self._entries)

    def entries(self) -> list[FeedbackEntry]:
        with self._lock:
            return list(self._entries)

    def summary(self) -> dict:
        entries = self.entries()
        if not entries:
            return {
                "total": 0,
                "positive": 0,
                "negative": 0,
                "approval_rate": "N/A",
                "message": "No feedback recorded yet.",
            }
        positive = sum(1 for e in entries if e.rating == "up")
        return {
            "total": len(entries),
            "positive": positive,
            "negative": len(entries) - positive,
            "approval_rate": f"{positive / len(entries) * 100:.0f}%",
            "corrections": sum(1 for e in entries if e.correction),
        }


class ConversationStore:
    """In-memory conversation transcripts keyed by conversation id."""

    def __init__(self, max_messages: int = 200) -> None:
        self.max_messages = max_messages
        self._conversations: dict[str, list[dict]] = defaultdict(list)
        self._lock = threading.Lock()

    def append(self, conversation_id: str, role: str, content: str, trace_id: str | None = None) -> None:
        entry = {"role": role, "content": content, "timestamp": _now_iso()}
        if trace_id:
            entry["trace_id"] = trace_id
        with self._lock:
            messages = self._conversations[conversation_id]
            messages.append(entry)
            del messages[:-self.max_messages]

    def history(self, conversation_id: str) -> list[dict]:
        with self._lock:
            return [
                {"role": m["role"], "content": m["content"]}
                for m in self._conversations.get(conversation_id, [])
            ]
