"""
Commit Evidence Detection

Checks whether a session ended with the assistant running a commit command.
This is a strong hint that the session produced the commit being described,
but only a hint: it goes into the classifier prompt and never selects a
session by itself.

Only tool invocations count. A text message that merely mentions "commit"
is not evidence.

Usage:
    from context.commit_evidence import CommitEvidenceDetector

    detector = CommitEvidenceDetector()
    signal = detector.detect(session)
    if signal.has_commit_action:
        print(signal.matched_command)
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence

from core.models import Session

logger = logging.getLogger(__name__)

DEFAULT_TAIL_SIZE = 3
DEFAULT_KEYWORDS = ("commit",)


@dataclass(frozen=True)
class EvidenceSignal:
    """Outcome of inspecting one session's tail."""
    has_commit_action: bool
    matched_command: Optional[str] = None
    events_checked: int = 0


class CommitEvidenceDetector:
    """
    Looks for a commit action in the last few events of a session.

    A signal is present iff one of the last `tail_size` events is an
    assistant event holding a tool invocation whose command contains one of
    `keywords`, case-insensitively.
    """

    def __init__(
        self,
        tail_size: int = DEFAULT_TAIL_SIZE,
        keywords: Iterable[str] = DEFAULT_KEYWORDS
    ):
        self.tail_size = tail_size
        self.keywords = tuple(k.lower() for k in keywords if k)

    def detect(self, session: Session) -> EvidenceSignal:
        tail = session.tail(self.tail_size)

        for event in reversed(tail):
            if event.role != "assistant":
                continue
            for tool_use in event.tool_uses:
                command = tool_use.command.lower()
                if any(keyword in command for keyword in self.keywords):
                    logger.debug(f"Session {session.short_id}: commit action via [{tool_use.name}]")
                    return EvidenceSignal(
                        has_commit_action=True,
                        matched_command=tool_use.command,
                        events_checked=len(tail),
                    )

        return EvidenceSignal(has_commit_action=False, events_checked=len(tail))

    def detect_all(self, sessions: Sequence[Session]) -> Dict[str, EvidenceSignal]:
        """Evidence for every session, keyed by full session id."""
        return {session.session_id: self.detect(session) for session in sessions}
