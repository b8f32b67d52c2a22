"""
Session Grouping

Partitions window-filtered events into per-session groups:
- Events sharing a session id form one Session
- Each Session's events are sorted chronologically
- Sessions are ordered by start time (ties broken by session id)
- Events without a session id are dropped and counted

Every input event with a session id lands in exactly one Session.

Usage:
    from context.session_grouping import SessionGrouper

    grouping = SessionGrouper().group(events)
    if grouping.is_single_session:
        ...
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from core.models import ConversationEvent, Session

logger = logging.getLogger(__name__)


@dataclass
class SessionGrouping:
    """Result of grouping: ordered sessions plus the drop count."""
    sessions: List[Session] = field(default_factory=list)
    dropped_without_session_id: int = 0

    @property
    def session_count(self) -> int:
        return len(self.sessions)

    @property
    def is_empty(self) -> bool:
        return not self.sessions

    @property
    def is_single_session(self) -> bool:
        return len(self.sessions) == 1

    @property
    def event_count(self) -> int:
        return sum(session.event_count for session in self.sessions)

    def to_dict(self) -> dict:
        return {
            'session_count': self.session_count,
            'event_count': self.event_count,
            'dropped_without_session_id': self.dropped_without_session_id,
            'sessions': [
                {
                    'session_id': session.short_id,
                    'events': session.event_count,
                    'start_time': session.start_time,
                    'end_time': session.end_time,
                }
                for session in self.sessions
            ],
        }


class SessionGrouper:
    """Groups conversation events by session id. Deterministic."""

    def group(self, events: Sequence[ConversationEvent]) -> SessionGrouping:
        buckets: Dict[str, List[ConversationEvent]] = defaultdict(list)
        dropped = 0

        for event in events:
            if not event.session_id:
                dropped += 1
                continue
            buckets[event.session_id].append(event)

        sessions = [
            Session(session_id, tuple(sorted(bucket, key=lambda e: e.sort_key)))
            for session_id, bucket in buckets.items()
        ]
        sessions.sort(key=lambda s: (s.started_at, s.start_time, s.session_id))

        if dropped:
            logger.debug(f"Dropped {dropped} events without a session id")
        logger.debug(
            f"Grouped {len(events) - dropped} events into {len(sessions)} sessions: "
            f"{[s.short_id for s in sessions]}"
        )

        return SessionGrouping(sessions=sessions, dropped_without_session_id=dropped)


def flatten_sessions(sessions: Sequence[Session]) -> List[ConversationEvent]:
    """Merge the events of several sessions into one chronological list."""
    events = [event for session in sessions for event in session.events]
    events.sort(key=lambda e: e.sort_key)
    return events
