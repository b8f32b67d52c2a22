"""
Token Budget Filter

Keeps the returned context under the downstream model's input budget.

Estimate: ceil(chars / 4) per text. Total = events + diff + fixed prompt
overhead. When over budget, reduction runs in three phases and stops as soon
as the total fits:

1. Drop tool-only events (no prose), oldest first
2. Drop the oldest remaining events
3. Truncate the text of the oldest protected events

The most recent `min_recent_events` events are protected from removal, so a
non-empty input never comes back empty. If the diff alone exceeds the budget
the result is reported with within_budget=False.

Usage:
    from correlation.token_budget import TokenBudgetFilter

    events, report = TokenBudgetFilter().apply(events, commit.diff)
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from core.models import ConversationEvent

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = " [truncated]"


@dataclass
class BudgetReport:
    """What the budget filter did."""
    max_tokens: int
    tokens_before: int
    tokens_after: int
    events_before: int
    events_after: int
    events_removed: int = 0
    events_truncated: int = 0
    chars_removed: int = 0

    @property
    def within_budget(self) -> bool:
        return self.tokens_after <= self.max_tokens

    @property
    def tokens_saved(self) -> int:
        return self.tokens_before - self.tokens_after

    def to_dict(self) -> dict:
        return {
            'max_tokens': self.max_tokens,
            'tokens_before': self.tokens_before,
            'tokens_after': self.tokens_after,
            'tokens_saved': self.tokens_saved,
            'events_before': self.events_before,
            'events_after': self.events_after,
            'events_removed': self.events_removed,
            'events_truncated': self.events_truncated,
            'chars_removed': self.chars_removed,
            'within_budget': self.within_budget,
        }


class TokenBudgetFilter:
    """Trims events until the estimated prompt fits the token budget."""

    def __init__(
        self,
        max_tokens: int = 120000,
        prompt_overhead_tokens: int = 2000,
        min_recent_events: int = 5,
        chars_per_token: int = 4
    ):
        self.max_tokens = max_tokens
        self.prompt_overhead_tokens = prompt_overhead_tokens
        self.min_recent_events = max(1, min_recent_events)
        self.chars_per_token = max(1, chars_per_token)

    def estimate_tokens(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)

    def estimate_total(self, events: Sequence[ConversationEvent], diff: str = "") -> int:
        return (
            sum(self.estimate_tokens(event.text) for event in events)
            + self.estimate_tokens(diff)
            + self.prompt_overhead_tokens
        )

    def apply(
        self,
        events: Sequence[ConversationEvent],
        diff: str = ""
    ) -> Tuple[List[ConversationEvent], BudgetReport]:
        """
        Reduce events to fit the budget.

        Args:
            events: Chronologically ordered events
            diff: Commit diff text (counted, never trimmed)

        Returns:
            Tuple of (kept events in original order, report)
        """
        kept = list(events)
        token_counts = [self.estimate_tokens(event.text) for event in kept]
        fixed = self.estimate_tokens(diff) + self.prompt_overhead_tokens
        total = sum(token_counts) + fixed

        report = BudgetReport(
            max_tokens=self.max_tokens,
            tokens_before=total,
            tokens_after=total,
            events_before=len(kept),
            events_after=len(kept),
        )

        if total <= self.max_tokens:
            return kept, report

        protected_from = max(0, len(kept) - self.min_recent_events)
        removable = list(range(protected_from))
        removed = set()

        # Phase 1: tool-only events, oldest first
        for index in removable:
            if total <= self.max_tokens:
                break
            if not kept[index].has_text:
                removed.add(index)
                total -= token_counts[index]
                report.chars_removed += len(kept[index].text)

        # Phase 2: oldest remaining events
        for index in removable:
            if total <= self.max_tokens:
                break
            if index not in removed:
                removed.add(index)
                total -= token_counts[index]
                report.chars_removed += len(kept[index].text)

        # Phase 3: truncate protected events, oldest first
        for index in range(protected_from, len(kept)):
            if total <= self.max_tokens:
                break
            event, saved_tokens, saved_chars = self._truncate(kept[index], total - self.max_tokens)
            if saved_chars <= 0:
                continue
            kept[index] = event
            total -= saved_tokens
            token_counts[index] -= saved_tokens
            report.events_truncated += 1
            report.chars_removed += saved_chars

        result = [event for index, event in enumerate(kept) if index not in removed]

        report.tokens_after = total
        report.events_after = len(result)
        report.events_removed = len(removed)

        log = logger.info if report.within_budget else logger.warning
        log(
            f"Token budget: {report.tokens_before} -> {report.tokens_after} "
            f"(max {self.max_tokens}), removed {report.events_removed} events, "
            f"truncated {report.events_truncated}"
        )
        return result, report

    def _truncate(self, event: ConversationEvent, excess_tokens: int) -> Tuple[ConversationEvent, int, int]:
        """Shorten one event's text by roughly excess_tokens. Returns (event, tokens saved, chars saved)."""
        text = event.text
        keep = len(text) - excess_tokens * self.chars_per_token - len(TRUNCATION_MARKER)
        keep = max(0, keep)
        if keep + len(TRUNCATION_MARKER) >= len(text):
            return event, 0, 0

        new_text = text[:keep] + TRUNCATION_MARKER
        saved_tokens = self.estimate_tokens(text) - self.estimate_tokens(new_text)
        return event.with_text(new_text), saved_tokens, len(text) - len(new_text)
