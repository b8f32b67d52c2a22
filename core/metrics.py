"""
Run Metrics for Correlation Invocations

Collects per-invocation observability data:
- Scan counts (files, lines, filtered records)
- Session grouping and classification outcome
- Classifier latency
- Redaction counts and token budget figures
- Per-phase timings

A RunStats lives exactly as long as one correlate() call and is returned on
the result. Nothing is persisted or transmitted.

Usage:
    from core.metrics import RunStats, PhaseTimer

    stats = RunStats.start()
    with PhaseTimer("scan", stats):
        ...
    stats.complete()
    print(stats.to_dict())
"""

import time
import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================

class RunStatus(Enum):
    """Status of a correlation run."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# Data Models
# =============================================================================

@dataclass
class RunStats:
    """Metrics for one correlation invocation."""
    run_id: str
    started_at: datetime
    status: RunStatus = RunStatus.RUNNING
    completed_at: Optional[datetime] = None

    # Scanner
    scan: Dict[str, int] = field(default_factory=dict)

    # Grouping
    sessions_found: int = 0
    events_without_session_id: int = 0
    single_session: bool = False

    # Classification
    classification_method: Optional[str] = None
    classifier_calls: int = 0
    classifier_latency_ms: float = 0.0
    selected_sessions: int = 0

    # Output shaping
    redaction_counts: Dict[str, int] = field(default_factory=dict)
    budget: Dict[str, Any] = field(default_factory=dict)
    events_returned: int = 0

    errors: List[Dict[str, str]] = field(default_factory=list)
    phase_timings: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def start(cls) -> "RunStats":
        """Create stats for a new run."""
        return cls(run_id=uuid.uuid4().hex[:12], started_at=datetime.now())

    @property
    def duration_seconds(self) -> float:
        """Get run duration in seconds."""
        end = self.completed_at or datetime.now()
        return (end - self.started_at).total_seconds()

    def record_phase_timing(self, phase_name: str, duration_seconds: float):
        """Record the duration of a pipeline phase (accumulates on repeat)."""
        self.phase_timings[phase_name] = (
            self.phase_timings.get(phase_name, 0.0) + duration_seconds
        )

    def record_classifier_call(self, latency_ms: float):
        """Record one call to the reasoning service."""
        self.classifier_calls += 1
        self.classifier_latency_ms += latency_ms

    def record_error(self, phase: str, error: Exception):
        """Record an absorbed error. Only the type and message are kept."""
        self.errors.append({
            "phase": phase,
            "error_type": type(error).__name__,
            "message": str(error),
        })

    def complete(self, success: bool = True):
        """Mark the run finished."""
        self.completed_at = datetime.now()
        self.status = RunStatus.COMPLETED if success else RunStatus.FAILED
        logger.debug(
            f"Run {self.run_id} {self.status.value} in {self.duration_seconds:.3f}s "
            f"({self.events_returned} events, method={self.classification_method})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "status": self.status.value,
            "duration_seconds": self.duration_seconds,
            "scan": dict(self.scan),
            "sessions_found": self.sessions_found,
            "events_without_session_id": self.events_without_session_id,
            "single_session": self.single_session,
            "classification_method": self.classification_method,
            "classifier_calls": self.classifier_calls,
            "classifier_latency_ms": self.classifier_latency_ms,
            "selected_sessions": self.selected_sessions,
            "redaction_counts": dict(self.redaction_counts),
            "budget": dict(self.budget),
            "events_returned": self.events_returned,
            "error_count": len(self.errors),
            "errors": list(self.errors),
            "phase_timings": dict(self.phase_timings),
        }


# =============================================================================
# Context Managers
# =============================================================================

class PhaseTimer:
    """
    Context manager for timing a pipeline phase.

    Usage:
        with PhaseTimer("classification", stats):
            # Do classification work
    """

    def __init__(self, phase_name: str, stats: Optional[RunStats] = None):
        """
        Initialize phase timer.

        Args:
            phase_name: Name of the phase
            stats: RunStats to record into (timing is only measured if None)
        """
        self.phase_name = phase_name
        self.stats = stats
        self.start_time = None
        self.duration = 0.0

    def __enter__(self) -> 'PhaseTimer':
        """Start timing."""
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Record duration."""
        self.duration = time.time() - self.start_time
        if self.stats is not None:
            self.stats.record_phase_timing(self.phase_name, self.duration)
        return False
