"""
Rendering of the agent's guard (auto-repair) events into transcript messages.

The same pure function serves the streaming endpoints and the bundled
guard_events of a chat reply, so both paths render repairs identically.
"""

from typing import Any, Optional, Sequence, Tuple, get_args

from labplay.schemas.chat_schema import ChatMessage, GuardStep, MessageKind
from labplay.schemas.event_schema import (
    FixAttemptEvent,
    FixSuccessEvent,
    GuardAnalyzingEvent,
    GuardEvent,
    GuardGiveUpEvent,
    WebSearchingEvent,
)

GUARD_EVENT_TYPES = get_args(GuardEvent)


def last_error_line(preview: Any) -> str:
    """Most informative single line of a traceback: its last non-blank line."""
    if not isinstance(preview, str):
        return ""
    lines = [line.strip() for line in preview.split("\n") if line.strip()]
    return lines[-1] if lines else preview[:120]


def is_guard_event(event: Any) -> bool:
    return isinstance(event, GUARD_EVENT_TYPES)


def guard_message(event: Any) -> Optional[ChatMessage]:
    """The transcript message for a guard event, or None for anything else."""
    if isinstance(event, GuardAnalyzingEvent):
        text = f"**{event.title}** — {last_error_line(event.error_preview)}"
        return ChatMessage(kind=MessageKind.GUARD, guard_step=GuardStep.ANALYZING, text=text)
    if isinstance(event, WebSearchingEvent):
        return ChatMessage(kind=MessageKind.GUARD, guard_step=GuardStep.SEARCHING, text=event.query)
    if isinstance(event, FixAttemptEvent):
        return ChatMessage(
            kind=MessageKind.GUARD,
            guard_step=GuardStep.FIXING,
            text=event.explanation,
            guard_code=event.code,
        )
    if isinstance(event, FixSuccessEvent):
        return ChatMessage(kind=MessageKind.GUARD, guard_step=GuardStep.SUCCESS, text=event.explanation)
    if isinstance(event, GuardGiveUpEvent):
        return ChatMessage(
            kind=MessageKind.GUARD,
            guard_step=GuardStep.FAILED,
            text=f"Retries exhausted for **{event.title}**",
        )
    return None


def apply_guard_event(messages: Sequence[ChatMessage], event: Any) -> Tuple[ChatMessage, ...]:
    """Return `messages` with the event's guard message appended (unchanged for non-guard events)."""
    message = guard_message(event)
    if message is None:
        return tuple(messages)
    return tuple(messages) + (message,)
