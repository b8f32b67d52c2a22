"""
Commit-to-Conversation Correlation

This module provides:
- CorrelationEngine: Window filtering, session selection, redaction, budgeting
- SessionClassifier: Reasoning-service selection among overlapping sessions
- FallbackSelector: Deterministic recovery when classification fails
- TokenBudgetFilter: Keeps the returned context under the token budget

Usage:
    from correlation import CorrelationEngine

    engine = CorrelationEngine()
    result = engine.correlate(current_time, previous_time, "/path/to/repo")
"""

from .engine import CorrelationEngine, CorrelationResult
from .session_classifier import SessionClassifier, ParsedSelection, parse_selection, match_session_ids
from .fallback import FallbackSelector, ClassificationResult, SelectionMethod, SelectionOutcome
from .token_budget import TokenBudgetFilter, BudgetReport
from .commit_analysis import analyze_commit_content, build_commit_info
from .chat_metadata import summarize_chat, has_substantial_user_input

__all__ = [
    'CorrelationEngine',
    'CorrelationResult',
    'SessionClassifier',
    'ParsedSelection',
    'parse_selection',
    'match_session_ids',
    'FallbackSelector',
    'ClassificationResult',
    'SelectionMethod',
    'SelectionOutcome',
    'TokenBudgetFilter',
    'BudgetReport',
    'analyze_commit_content',
    'build_commit_info',
    'summarize_chat',
    'has_substantial_user_input',
]
