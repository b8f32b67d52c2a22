"""
Session Context Analysis

This module provides:
- Session grouping: Partitioning transcript events by tool session
- Commit evidence: Detecting sessions that ended with a commit action

Usage:
    from context import SessionGrouper, CommitEvidenceDetector

    grouping = SessionGrouper().group(events)

    detector = CommitEvidenceDetector()
    evidence = detector.detect_all(grouping.sessions)
"""

from .session_grouping import SessionGrouper, SessionGrouping, flatten_sessions
from .commit_evidence import CommitEvidenceDetector, EvidenceSignal

__all__ = [
    'SessionGrouper',
    'SessionGrouping',
    'flatten_sessions',
    'CommitEvidenceDetector',
    'EvidenceSignal',
]
