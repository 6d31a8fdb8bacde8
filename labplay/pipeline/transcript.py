"""
ChatTranscript: append-only log of chat messages, oldest first.
"""

import threading
from typing import Any, List, Optional, Tuple

from labplay.pipeline.guard import apply_guard_event
from labplay.schemas.chat_schema import ChatMessage, MessageKind

WELCOME_TEXT = (
    "Upload a CSV or Excel dataset to begin. The AI agent will analyse it, "
    "suggest top models, and build a complete ML pipeline for you."
)


def welcome_message() -> ChatMessage:
    return ChatMessage(id="welcome", kind=MessageKind.WELCOME, text=WELCOME_TEXT)


class ChatTranscript:
    def __init__(self):
        self._lock = threading.RLock()
        self._messages: Tuple[ChatMessage, ...] = (welcome_message(),)

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def messages(self) -> List[ChatMessage]:
        with self._lock:
            return list(self._messages)

    def append(self, message: ChatMessage) -> ChatMessage:
        with self._lock:
            self._messages = self._messages + (message,)
        return message

    def add(self, kind: MessageKind, **fields) -> ChatMessage:
        return self.append(ChatMessage(kind=kind, **fields))

    def info(self, text: str) -> ChatMessage:
        return self.add(MessageKind.INFO, text=text)

    def error(self, text: str) -> ChatMessage:
        return self.add(MessageKind.ERROR, text=text)

    def record_guard(self, event: Any) -> Optional[ChatMessage]:
        """Append the message for a guard event; returns it, or None if the event is not a guard event."""
        with self._lock:
            before = len(self._messages)
            self._messages = apply_guard_event(self._messages, event)
            return self._messages[-1] if len(self._messages) > before else None

    def restore(self, messages: List[ChatMessage]) -> None:
        """Replace the log with a cached copy (see history.TranscriptCache)."""
        with self._lock:
            self._messages = tuple(messages) or (welcome_message(),)

    def reset(self) -> None:
        with self._lock:
            self._messages = (welcome_message(),)
