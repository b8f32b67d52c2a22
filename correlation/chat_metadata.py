"""
Chat metadata for the selected conversation.

Downstream generators use these counts to decide, for instance, whether a
dialogue section is worth writing at all.
"""

from dataclasses import dataclass
from typing import Sequence

from core.models import ConversationEvent

SUBSTANTIAL_MESSAGE_CHARS = 20


@dataclass
class ChatMetadata:
    """Message counts over the returned events."""
    total_messages: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    substantial_user_messages: int = 0
    sessions: int = 0

    def to_dict(self) -> dict:
        return {
            'total_messages': self.total_messages,
            'user_messages': {
                'total': self.user_messages,
                'over_twenty_characters': self.substantial_user_messages,
            },
            'assistant_messages': self.assistant_messages,
            'sessions': self.sessions,
        }


def _is_substantial(event: ConversationEvent) -> bool:
    return event.role == "user" and event.has_text and len(event.text.strip()) >= SUBSTANTIAL_MESSAGE_CHARS


def summarize_chat(events: Sequence[ConversationEvent]) -> ChatMetadata:
    return ChatMetadata(
        total_messages=len(events),
        user_messages=sum(1 for e in events if e.role == "user"),
        assistant_messages=sum(1 for e in events if e.role == "assistant"),
        substantial_user_messages=sum(1 for e in events if _is_substantial(e)),
        sessions=len({e.session_id for e in events if e.session_id}),
    )


def has_substantial_user_input(events: Sequence[ConversationEvent]) -> bool:
    """True if any user message carries at least 20 characters of text."""
    return any(_is_substantial(e) for e in events)
