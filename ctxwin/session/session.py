"""Session management - tracks conversation state"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from ctxwin.storage.storage import Storage

from .context import SummaryCache
from .message import Message, messages_from_dicts, messages_to_dicts

logger = logging.getLogger(__name__)


def _load_summary_cache(data: dict | None, message_count: int) -> SummaryCache | None:
    if not data:
        return None
    try:
        cache = SummaryCache.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Discarding malformed summary cache: {e}")
        return None
    if cache.covers_messages_up_to_index > message_count:
        logger.warning(
            f"Discarding summary cache covering {cache.covers_messages_up_to_index} "
            f"messages in a history of {message_count}"
        )
        return None
    return cache


@dataclass
class Session:
    """A conversation: the full, never-truncated history plus its summary cache"""

    id: str
    title: str = "New Session"
    messages: list[Message] = field(default_factory=list)
    summary_cache: SummaryCache | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def create(cls, title: str = "New Session") -> "Session":
        """Create a new session"""
        session_id = f"session_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}"
        session = cls(id=session_id, title=title)
        session.save()
        return session

    @classmethod
    def load(cls, session_id: str) -> "Session | None":
        """Load a session from storage"""
        data = Storage.read(["session", session_id])
        if not data:
            return None
        messages = messages_from_dicts(data.get("messages", []))
        return cls(
            id=data["id"],
            title=data.get("title", "New Session"),
            messages=messages,
            summary_cache=_load_summary_cache(data.get("summary_cache"), len(messages)),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )

    @classmethod
    def list_sessions(cls) -> list[dict]:
        """List all saved sessions"""
        sessions = []
        for key in Storage.list(["session"]):
            data = Storage.read(key)
            if data:
                sessions.append({
                    "id": data["id"],
                    "title": data.get("title", "New Session"),
                    "messages": len(data.get("messages", [])),
                    "updated_at": data.get("updated_at"),
                })
        return sorted(sessions, key=lambda x: x.get("updated_at", ""), reverse=True)

    def save(self):
        """Save session to storage"""
        self.updated_at = datetime.now()
        Storage.write(["session", self.id], {
            "id": self.id,
            "title": self.title,
            "messages": messages_to_dicts(self.messages),
            "summary_cache": self.summary_cache.to_dict() if self.summary_cache else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        })

    def add_message(self, message: Message):
        """Append a message to the full history"""
        self.messages.append(message)
        self.save()

    def get_messages(self) -> list[Message]:
        """Snapshot of the full history"""
        return list(self.messages)

    def set_summary_cache(self, cache: SummaryCache | None):
        """Replace the summary cache and persist it"""
        self.summary_cache = cache
        self.save()

    def set_title(self, title: str):
        """Update session title"""
        self.title = title
        self.save()

    def clear(self):
        """Clear all messages and the summary that covered them"""
        self.messages = []
        self.summary_cache = None
        self.save()
