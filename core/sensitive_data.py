"""
Sensitive Data Redaction

Masks credential-shaped substrings in transcript text before it is sent to
the reasoning service or handed downstream.

Redaction categories:
- keys: API keys (known prefixes, contextual key/token/secret/password
  values, truncated keys)
- jwts: JSON Web Tokens
- tokens: Authorization bearer tokens
- emails: Email addresses

Only per-category counts are ever reported. Matched values are never logged,
stored or returned.

Usage:
    from core.sensitive_data import SensitiveDataRedactor

    redactor = SensitiveDataRedactor()
    clean_text, outcome = redactor.process(raw_text)

    if outcome.found:
        print(f"Redacted {outcome.total} items")
"""

import re
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Pattern, Set, Tuple

from core.models import ConversationEvent, TextBlock, ToolResultBlock, ToolUseBlock

logger = logging.getLogger(__name__)


# =============================================================================
# Enums and Constants
# =============================================================================

class RedactionCategory(Enum):
    """Categories of sensitive data we redact."""
    KEY = "keys"
    JWT = "jwts"
    TOKEN = "tokens"
    EMAIL = "emails"


PLACEHOLDERS = {
    RedactionCategory.KEY: "[REDACTED_KEY]",
    RedactionCategory.JWT: "[REDACTED_JWT]",
    RedactionCategory.TOKEN: "[REDACTED_TOKEN]",
    RedactionCategory.EMAIL: "[REDACTED_EMAIL]",
}


# =============================================================================
# Data Models
# =============================================================================

@dataclass
class RedactionConfig:
    """Redaction configuration."""
    enabled: bool = True

    # Category toggles
    redact_keys: bool = True
    redact_jwts: bool = True
    redact_tokens: bool = True
    redact_emails: bool = True

    # Email domains left untouched (e.g. noreply addresses in commit trailers)
    allowed_email_domains: Set[str] = field(default_factory=set)


@dataclass
class RedactionOutcome:
    """Per-call redaction record. Counts only."""
    timestamp: datetime
    input_length: int
    output_length: int
    counts: Dict[str, int]

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def found(self) -> bool:
        return self.total > 0

    @property
    def keys_redacted(self) -> int:
        return self.counts.get(RedactionCategory.KEY.value, 0)

    @property
    def jwts_redacted(self) -> int:
        return self.counts.get(RedactionCategory.JWT.value, 0)

    @property
    def tokens_redacted(self) -> int:
        return self.counts.get(RedactionCategory.TOKEN.value, 0)

    @property
    def emails_redacted(self) -> int:
        return self.counts.get(RedactionCategory.EMAIL.value, 0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "input_length": self.input_length,
            "output_length": self.output_length,
            "counts": dict(self.counts),
            "total": self.total,
        }


def empty_redaction_counts() -> Dict[str, int]:
    return {category.value: 0 for category in RedactionCategory}


# =============================================================================
# Pattern Definitions
# =============================================================================

class SensitivePatterns:
    """
    Compiled regex patterns for credential detection.

    Patterns are applied in REDACTION_ORDER. JWTs run first so that the
    contextual "token: <value>" pattern cannot consume only their header.
    """

    # JSON Web Tokens (base64url header.payload.signature)
    JWT = re.compile(
        r'\beyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+'
    )

    # Known provider key prefixes (OpenAI, Stripe, Google, AWS, GitHub, GitLab)
    KEY_PREFIX = re.compile(
        r'\b(?:sk-|pk-|rk-|AIza|AKIA|gho_|ghp_|ghs_|ghu_|glpat-)[a-zA-Z0-9_-]{10,}'
    )

    # Hex values next to key-indicating words
    CONTEXTUAL_HEX = re.compile(
        r'\b(?:api_?key|token|secret|password|credential)[\s:=]+[a-f0-9]{16,64}\b',
        re.IGNORECASE
    )

    # Alphanumeric values next to key-indicating words
    CONTEXTUAL_KEY = re.compile(
        r'\b(?:api_?key|token|secret|password|credential)[\s:=]+[a-zA-Z0-9_-]{20,}\b',
        re.IGNORECASE
    )

    # Keys shown masked ("abcd1234***") or elided ("sk_live_9f8e...c4d2")
    TRUNCATED_KEY = re.compile(
        r'\b(?=[a-zA-Z_-]*\d)[a-zA-Z0-9_-]{8,}(?:\*{3,}|\.{3}[a-zA-Z0-9_-]+)'
    )

    # Authorization bearer tokens
    BEARER = re.compile(
        r'\bBearer\s+[a-zA-Z0-9\-._~+/]{16,}=*',
        re.IGNORECASE
    )

    # Email addresses
    EMAIL = re.compile(
        r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}'
    )

    REDACTION_ORDER: List[Tuple[RedactionCategory, Pattern]] = [
        (RedactionCategory.JWT, JWT),
        (RedactionCategory.KEY, KEY_PREFIX),
        (RedactionCategory.KEY, CONTEXTUAL_HEX),
        (RedactionCategory.KEY, CONTEXTUAL_KEY),
        (RedactionCategory.KEY, TRUNCATED_KEY),
        (RedactionCategory.TOKEN, BEARER),
        (RedactionCategory.EMAIL, EMAIL),
    ]


# =============================================================================
# Redactor
# =============================================================================

class SensitiveDataRedactor:
    """
    Applies the ordered redaction passes to text.

    Redaction is idempotent: every placeholder starts with "[" and no pattern
    can match one, so running process() on its own output changes nothing.
    """

    def __init__(self, config: RedactionConfig = None):
        """
        Initialize redactor.

        Args:
            config: Redaction configuration (uses defaults if None)
        """
        self.config = config or RedactionConfig()

        # Statistics
        self._total_processed = 0
        self._total_redactions = 0
        self._by_category: Dict[str, int] = empty_redaction_counts()

    def process(self, text: str) -> Tuple[str, RedactionOutcome]:
        """
        Redact sensitive data from text.

        Args:
            text: Text to process

        Returns:
            Tuple of (redacted_text, outcome)
        """
        counts = empty_redaction_counts()

        if not self.config.enabled or not text:
            return text, RedactionOutcome(
                timestamp=datetime.now(),
                input_length=len(text) if text else 0,
                output_length=len(text) if text else 0,
                counts=counts
            )

        result = text
        for category, pattern in SensitivePatterns.REDACTION_ORDER:
            if not self._should_redact(category):
                continue
            result, replaced = self._apply(pattern, category, result)
            counts[category.value] += replaced

        outcome = RedactionOutcome(
            timestamp=datetime.now(),
            input_length=len(text),
            output_length=len(result),
            counts=counts
        )

        self._total_processed += 1
        if outcome.found:
            self._total_redactions += outcome.total
            for name, count in counts.items():
                self._by_category[name] += count
            logger.debug(f"Redacted {outcome.total} items from {len(text)} chars: {self._summarize(counts)}")

        return result, outcome

    def redact(self, text: str) -> str:
        """Redact and return the text only."""
        clean_text, _ = self.process(text)
        return clean_text

    def redact_event(self, event: ConversationEvent) -> Tuple[ConversationEvent, Dict[str, int]]:
        """
        Redact every text-bearing field of an event.

        Block structure is kept, so a tool-only event stays tool-only.

        Returns:
            Tuple of (redacted event copy, per-category counts)
        """
        counts = empty_redaction_counts()

        def clean(text: str) -> str:
            redacted, outcome = self.process(text)
            for name, count in outcome.counts.items():
                counts[name] += count
            return redacted

        if isinstance(event.content, str):
            return replace(event, content=clean(event.content)), counts

        blocks = []
        for block in event.content:
            if isinstance(block, TextBlock):
                blocks.append(replace(block, text=clean(block.text)))
            elif isinstance(block, ToolUseBlock):
                blocks.append(replace(block, command=clean(block.command)))
            elif isinstance(block, ToolResultBlock):
                blocks.append(replace(block, text=clean(block.text)))
            else:
                blocks.append(block)
        return replace(event, content=tuple(blocks)), counts

    def has_sensitive_data(self, text: str) -> bool:
        """
        Quick check if text contains anything that would be redacted.

        Args:
            text: Text to check

        Returns:
            True if at least one pass would fire
        """
        if not self.config.enabled or not text:
            return False
        _, outcome = SensitiveDataRedactor(self.config).process(text)
        return outcome.found

    def _should_redact(self, category: RedactionCategory) -> bool:
        """Check if this category is enabled."""
        toggles = {
            RedactionCategory.KEY: self.config.redact_keys,
            RedactionCategory.JWT: self.config.redact_jwts,
            RedactionCategory.TOKEN: self.config.redact_tokens,
            RedactionCategory.EMAIL: self.config.redact_emails,
        }
        return toggles.get(category, True)

    def _apply(
        self,
        pattern: Pattern,
        category: RedactionCategory,
        text: str
    ) -> Tuple[str, int]:
        """Run one pass; returns the new text and the number of replacements."""
        placeholder = PLACEHOLDERS[category]
        replaced = 0

        def substitute(match) -> str:
            nonlocal replaced
            if category == RedactionCategory.EMAIL and self._is_allowed_email(match.group()):
                return match.group()
            replaced += 1
            return placeholder

        return pattern.sub(substitute, text), replaced

    def _is_allowed_email(self, value: str) -> bool:
        """Check email domain allowlist."""
        domain = value.rsplit("@", 1)[-1].lower()
        return domain in self.config.allowed_email_domains

    @staticmethod
    def _summarize(counts: Dict[str, int]) -> str:
        return ", ".join(f"{count} {name}" for name, count in counts.items() if count)

    def get_stats(self) -> Dict[str, Any]:
        """Get processing statistics."""
        return {
            "total_processed": self._total_processed,
            "total_redactions": self._total_redactions,
            "redactions_by_category": dict(self._by_category),
            "config": {
                "enabled": self.config.enabled,
                "redact_keys": self.config.redact_keys,
                "redact_jwts": self.config.redact_jwts,
                "redact_tokens": self.config.redact_tokens,
                "redact_emails": self.config.redact_emails,
            }
        }

    def reset_stats(self):
        """Reset processing statistics."""
        self._total_processed = 0
        self._total_redactions = 0
        self._by_category = empty_redaction_counts()


# =============================================================================
# Convenience Functions
# =============================================================================

def redact_sensitive_data(text: str, **config_overrides) -> str:
    """
    Quick redaction for simple use cases.

    Args:
        text: Text to redact
        **config_overrides: RedactionConfig options

    Returns:
        Redacted text
    """
    redactor = SensitiveDataRedactor(RedactionConfig(**config_overrides))
    return redactor.redact(text)

