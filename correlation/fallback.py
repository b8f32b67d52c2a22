"""
Fallback Selector

Turns a multi-session decision into a concrete session selection, whatever
the classifier does. Modelled as a small explicit state machine:

    MULTI_SESSION_ENTRY -> AI_ATTEMPTED -> AI_SUCCESS_NONEMPTY -> RESOLVED
                                        -> AI_SUCCESS_EMPTY    -> RESOLVED
                                        -> AI_ERROR            -> RESOLVED

Resolution rules:
- Non-empty selection: those sessions, merged chronologically (method "ai")
- Empty selection: the session whose last event is latest
  (method "fallback_most_recent"; ties go to the earlier session)
- Classifier error of any kind: the first session by start time
  (method "fallback_first")
- Nothing to select from: empty (method "fallback_none")

select() never raises.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from core.models import CommitInfo, ConversationEvent, Session
from context.session_grouping import flatten_sessions

logger = logging.getLogger(__name__)


class SelectionState(Enum):
    MULTI_SESSION_ENTRY = "multi_session_entry"
    AI_ATTEMPTED = "ai_attempted"
    AI_SUCCESS_NONEMPTY = "ai_success_nonempty"
    AI_SUCCESS_EMPTY = "ai_success_empty"
    AI_ERROR = "ai_error"
    RESOLVED = "resolved"


class SelectionMethod(Enum):
    AI = "ai"
    FALLBACK_MOST_RECENT = "fallback_most_recent"
    FALLBACK_FIRST = "fallback_first"
    FALLBACK_NONE = "fallback_none"


@dataclass
class ClassificationResult:
    """Which sessions were chosen and how."""
    selected_session_ids: List[str] = field(default_factory=list)
    method: SelectionMethod = SelectionMethod.FALLBACK_NONE
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'selected_session_ids': list(self.selected_session_ids),
            'method': self.method.value,
            'error': self.error,
        }


@dataclass
class SelectionOutcome:
    """Selected sessions plus the path the state machine took."""
    classification: ClassificationResult
    sessions: List[Session] = field(default_factory=list)
    events: List[ConversationEvent] = field(default_factory=list)
    transitions: List[SelectionState] = field(default_factory=list)

    @property
    def method(self) -> SelectionMethod:
        return self.classification.method


ClassifyFn = Callable[[Sequence[Session], CommitInfo], List[str]]


class FallbackSelector:
    """
    Runs the classifier once and resolves its outcome deterministically.

    Args:
        classify: Callable (sessions, commit) -> list of full session ids.
            Anything it raises is treated as a classifier error.
    """

    def __init__(self, classify: ClassifyFn):
        self.classify = classify

    def select(self, sessions: Sequence[Session], commit: CommitInfo) -> SelectionOutcome:
        sessions = list(sessions)
        transitions = [SelectionState.MULTI_SESSION_ENTRY]

        if not sessions:
            transitions.append(SelectionState.RESOLVED)
            return SelectionOutcome(
                classification=ClassificationResult(method=SelectionMethod.FALLBACK_NONE),
                transitions=transitions,
            )

        transitions.append(SelectionState.AI_ATTEMPTED)
        try:
            selected_ids = list(self.classify(sessions, commit))
        except Exception as e:
            transitions.append(SelectionState.AI_ERROR)
            logger.warning(f"Session classification failed, using first session: {type(e).__name__}: {e}")
            chosen = [sessions[0]]
            result = ClassificationResult(
                selected_session_ids=[sessions[0].session_id],
                method=SelectionMethod.FALLBACK_FIRST,
                error=str(e) or type(e).__name__,
            )
            return self._resolve(result, chosen, transitions)

        by_id = {session.session_id: session for session in sessions}
        chosen = [by_id[sid] for sid in dict.fromkeys(selected_ids) if sid in by_id]

        if chosen:
            transitions.append(SelectionState.AI_SUCCESS_NONEMPTY)
            chosen.sort(key=lambda s: sessions.index(s))
            result = ClassificationResult(
                selected_session_ids=[s.session_id for s in chosen],
                method=SelectionMethod.AI,
            )
            return self._resolve(result, chosen, transitions)

        transitions.append(SelectionState.AI_SUCCESS_EMPTY)
        latest = most_recent_session(sessions)
        logger.info(f"Classifier selected no sessions, using most recent ({latest.short_id})")
        result = ClassificationResult(
            selected_session_ids=[latest.session_id],
            method=SelectionMethod.FALLBACK_MOST_RECENT,
        )
        return self._resolve(result, [latest], transitions)

    @staticmethod
    def _resolve(
        result: ClassificationResult,
        chosen: List[Session],
        transitions: List[SelectionState]
    ) -> SelectionOutcome:
        transitions.append(SelectionState.RESOLVED)
        logger.debug(
            f"Selection resolved via {result.method.value}: "
            f"{[sid[:8] for sid in result.selected_session_ids]}"
        )
        return SelectionOutcome(
            classification=result,
            sessions=chosen,
            events=flatten_sessions(chosen),
            transitions=transitions,
        )


def most_recent_session(sessions: Sequence[Session]) -> Session:
    """Session whose latest event is most recent; earliest in order wins ties."""
    best = sessions[0]
    for session in sessions[1:]:
        if session.ended_at > best.ended_at:
            best = session
    return best
