"""
Commit-to-Conversation Correlation Engine

Entry point that turns a commit window into the conversation context that
produced the commit:

1. Discover transcript files and collect events for the project/window
2. Group events into sessions
3. One session: use it. Several: classify, with deterministic fallback
4. Redact sensitive data
5. Enforce the token budget

Only ValidationError (bad inputs) escapes correlate(). Every other failure
is logged and yields an empty result.

Usage:
    from core.config import load_config
    from correlation.engine import CorrelationEngine
    from correlation.commit_analysis import build_commit_info

    engine = CorrelationEngine(load_config("correlation.yaml"))
    result = engine.correlate(
        current_commit_time="2025-08-20T21:00:00Z",
        previous_commit_time="2025-08-20T19:30:00Z",
        project_path="/home/dev/project",
        commit=build_commit_info(message, diff),
    )
    for event in result.events:
        print(event.role, event.text)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from core.config import CorrelationConfig
from core.errors import ValidationError
from core.llm_provider import LLMProvider, get_provider
from core.metrics import PhaseTimer, RunStats
from core.models import CommitInfo, ConversationEvent, Session, TimeWindow, parse_timestamp
from core.sensitive_data import SensitiveDataRedactor, empty_redaction_counts
from context.commit_evidence import CommitEvidenceDetector
from context.session_grouping import SessionGrouper, flatten_sessions
from correlation.chat_metadata import ChatMetadata, summarize_chat
from correlation.fallback import ClassificationResult, FallbackSelector, SelectionMethod
from correlation.session_classifier import SessionClassifier
from correlation.token_budget import BudgetReport, TokenBudgetFilter
from parsers.event_store import EventStoreScanner, ScanStats, discover_transcript_files

logger = logging.getLogger(__name__)

TimeInput = Union[datetime, str]


# =============================================================================
# Result
# =============================================================================

@dataclass
class CorrelationResult:
    """
    Conversation context for one commit.

    classification is None when no decision was needed (exactly one session).
    """
    events: List[ConversationEvent] = field(default_factory=list)
    sessions: List[Session] = field(default_factory=list)
    classification: Optional[ClassificationResult] = None
    redaction_counts: Dict[str, int] = field(default_factory=empty_redaction_counts)
    budget: Optional[BudgetReport] = None
    chat_metadata: ChatMetadata = field(default_factory=ChatMetadata)
    stats: Optional[RunStats] = None

    @property
    def is_empty(self) -> bool:
        return not self.events

    def to_dict(self) -> Dict[str, Any]:
        return {
            "events": [
                {
                    "session_id": event.session_id,
                    "timestamp": event.timestamp,
                    "role": event.role,
                    "text": event.text,
                }
                for event in self.events
            ],
            "sessions": [session.session_id for session in self.sessions],
            "classification": self.classification.to_dict() if self.classification else None,
            "redaction_counts": dict(self.redaction_counts),
            "budget": self.budget.to_dict() if self.budget else None,
            "chat_metadata": self.chat_metadata.to_dict(),
            "stats": self.stats.to_dict() if self.stats else None,
        }


# =============================================================================
# Engine
# =============================================================================

class CorrelationEngine:
    """
    Correlates a commit with the conversation sessions that led to it.

    Collaborators may be injected (mainly for tests); anything not injected is
    built from config. The reasoning-service provider is only built when a
    multi-session decision actually needs it.
    """

    def __init__(
        self,
        config: Optional[CorrelationConfig] = None,
        provider: Optional[LLMProvider] = None,
        redactor: Optional[SensitiveDataRedactor] = None,
        classifier: Optional[SessionClassifier] = None,
        scanner: Optional[EventStoreScanner] = None
    ):
        self.config = config or CorrelationConfig()
        self._provider = provider
        self._classifier = classifier
        self._scanner = scanner

        self.redactor = redactor or SensitiveDataRedactor(self.config.redaction)
        self.grouper = SessionGrouper()
        self.evidence_detector = CommitEvidenceDetector(
            tail_size=self.config.evidence.tail_size,
            keywords=self.config.evidence.keywords,
        )
        self.budget_filter = TokenBudgetFilter(
            max_tokens=self.config.budget.max_tokens,
            prompt_overhead_tokens=self.config.budget.prompt_overhead_tokens,
            min_recent_events=self.config.budget.min_recent_events,
            chars_per_token=self.config.budget.chars_per_token,
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def correlate(
        self,
        current_commit_time: TimeInput,
        previous_commit_time: Optional[TimeInput],
        project_path: str,
        commit: Optional[CommitInfo] = None
    ) -> CorrelationResult:
        """
        Collect the conversation context for one commit.

        Args:
            current_commit_time: Commit timestamp (datetime or ISO-8601 string)
            previous_commit_time: Parent commit timestamp, None for the first commit
            project_path: Repository path; must equal the transcripts' cwd
            commit: Commit message/files/diff for classification and budgeting

        Returns:
            CorrelationResult (empty when nothing qualifies or on failure)

        Raises:
            ValidationError: On malformed inputs
        """
        window = self._validate(current_commit_time, previous_commit_time, project_path)
        commit = commit or CommitInfo()
        stats = RunStats.start()

        try:
            result = self._run(window, project_path, commit, stats)
        except Exception as e:
            logger.exception(f"Correlation failed for {project_path}; returning empty context")
            stats.record_error("correlate", e)
            stats.complete(success=False)
            return CorrelationResult(stats=stats)

        stats.events_returned = len(result.events)
        stats.complete(success=True)
        result.stats = stats
        return result

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _run(
        self,
        window: TimeWindow,
        project_path: str,
        commit: CommitInfo,
        stats: RunStats
    ) -> CorrelationResult:
        scanner = self._scanner or EventStoreScanner(max_workers=self.config.scanner.max_workers)

        with PhaseTimer("scan", stats):
            discovery_stats = ScanStats()
            files = discover_transcript_files(self.config.scanner.root_path, discovery_stats)
            events = scanner.collect_events(files, window, project_path)
            scan_stats = ScanStats()
            scan_stats.merge(discovery_stats)
            scan_stats.merge(scanner.stats)
            stats.scan = scan_stats.to_dict()

        with PhaseTimer("grouping", stats):
            grouping = self.grouper.group(events)
            stats.sessions_found = grouping.session_count
            stats.events_without_session_id = grouping.dropped_without_session_id

        if grouping.is_empty:
            logger.info(f"No conversation sessions in window for {project_path}")
            stats.classification_method = SelectionMethod.FALLBACK_NONE.value
            return CorrelationResult(
                classification=ClassificationResult(method=SelectionMethod.FALLBACK_NONE),
                budget=self.budget_filter.apply([], commit.diff)[1],
            )

        classification = None
        if grouping.is_single_session:
            stats.single_session = True
            selected_sessions = list(grouping.sessions)
            selected_events = flatten_sessions(selected_sessions)
            logger.info(f"Single session {selected_sessions[0].short_id} in window, skipping classification")
        else:
            with PhaseTimer("classification", stats):
                outcome = self._select(grouping.sessions, commit, stats)
            classification = outcome.classification
            selected_sessions = outcome.sessions
            selected_events = outcome.events
            stats.classification_method = classification.method.value

        stats.selected_sessions = len(selected_sessions)

        with PhaseTimer("redaction", stats):
            redacted_events, redaction_counts = self._redact(selected_events)
            stats.redaction_counts = dict(redaction_counts)

        with PhaseTimer("budget", stats):
            budgeted_events, budget = self.budget_filter.apply(redacted_events, commit.diff)
            stats.budget = budget.to_dict()

        return CorrelationResult(
            events=budgeted_events,
            sessions=selected_sessions,
            classification=classification,
            redaction_counts=redaction_counts,
            budget=budget,
            chat_metadata=summarize_chat(budgeted_events),
        )

    def _select(self, sessions: Sequence[Session], commit: CommitInfo, stats: RunStats):
        evidence = self.evidence_detector.detect_all(sessions)
        flagged = [sid[:8] for sid, signal in evidence.items() if signal.has_commit_action]
        if flagged:
            logger.debug(f"Commit actions found in sessions {flagged}")

        def classify(candidates, commit_info):
            classifier = self._get_classifier()
            calls_before = classifier.call_count
            try:
                return classifier.classify(candidates, commit_info, evidence)
            finally:
                if classifier.call_count > calls_before:
                    stats.record_classifier_call(classifier.last_latency_ms)

        outcome = FallbackSelector(classify).select(sessions, commit)
        if outcome.classification.error:
            stats.errors.append({
                "phase": "classification",
                "error_type": "ClassificationError",
                "message": outcome.classification.error,
            })
        return outcome

    def _get_classifier(self) -> SessionClassifier:
        """Build the classifier (and its provider) on first use."""
        if self._classifier is None:
            provider = self._provider
            if provider is None:
                provider = get_provider(self.config.classifier.to_provider_config())
                self._provider = provider
            settings = self.config.classifier
            self._classifier = SessionClassifier(
                provider,
                redactor=self.redactor,
                evidence_detector=self.evidence_detector,
                timeout_seconds=settings.timeout_seconds,
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
                tail_events=settings.tail_events,
                preview_chars=settings.preview_chars,
            )
        return self._classifier

    def _redact(self, events: Sequence[ConversationEvent]):
        counts = empty_redaction_counts()
        redacted = []
        for event in events:
            clean_event, event_counts = self.redactor.redact_event(event)
            redacted.append(clean_event)
            for name, count in event_counts.items():
                counts[name] += count

        total = sum(counts.values())
        if total:
            logger.info(f"Redacted {total} sensitive items from {len(events)} events")
        return redacted, counts

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def _validate(
        self,
        current_commit_time: TimeInput,
        previous_commit_time: Optional[TimeInput],
        project_path: str
    ) -> TimeWindow:
        if not isinstance(project_path, str) or not project_path.strip():
            raise ValidationError(f"project_path must be a non-empty string, got {project_path!r}")

        current = _coerce_time(current_commit_time, "current_commit_time")
        if current is None:
            raise ValidationError("current_commit_time is required")
        previous = _coerce_time(previous_commit_time, "previous_commit_time")

        if previous is not None and previous > current:
            logger.warning("previous_commit_time is after current_commit_time; window is empty")
        return TimeWindow(current_commit_time=current, previous_commit_time=previous)


def _coerce_time(value: Optional[TimeInput], name: str) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, (datetime, str)):
        raise ValidationError(f"{name} must be a datetime or ISO-8601 string, got {type(value).__name__}")
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValidationError(f"{name} is not a valid ISO-8601 timestamp: {value!r}")
    return parsed
