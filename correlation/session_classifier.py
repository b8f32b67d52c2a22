"""
Session Relevance Classifier

Asks a reasoning service which of several overlapping sessions led to a
commit. Used only when the commit window holds more than one session.

Contract:
- One request, fixed system instruction, temperature 0.1, max 1000 tokens
- 30 second wall-clock timeout; no retry
- Response must contain a JSON object {"sessionIds": [...]}
- Returned ids are matched to real sessions (exact, then prefix)

Every failure surfaces as ClassificationError. Recovery belongs to the
fallback selector, not to this module.

Usage:
    from correlation.session_classifier import SessionClassifier

    classifier = SessionClassifier(provider)
    session_ids = classifier.classify(sessions, commit)
"""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from core.errors import ClassificationError, ClassificationTimeoutError, ResponseParseError
from core.llm_provider import LLMProvider, LLMProviderError, LLMRequest
from core.models import CommitInfo, Session
from core.sensitive_data import SensitiveDataRedactor
from context.commit_evidence import CommitEvidenceDetector, EvidenceSignal

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SYSTEM_PROMPT = (
    "You are analyzing Claude Code chat sessions to determine which ones led to "
    "specific git commits. Be precise and follow the structured analysis format."
)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_TEMPERATURE = 0.1
DEFAULT_MAX_TOKENS = 1000
DEFAULT_TAIL_EVENTS = 5
DEFAULT_PREVIEW_CHARS = 100


# =============================================================================
# Response Parsing
# =============================================================================

@dataclass
class ParsedSelection:
    """
    Outcome of parsing a classifier response.

    Either ok with session_ids (possibly empty), or not ok with an error
    describing which stage failed.
    """
    ok: bool
    session_ids: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def success(cls, session_ids: List[str]) -> "ParsedSelection":
        return cls(ok=True, session_ids=session_ids)

    @classmethod
    def failure(cls, error: str) -> "ParsedSelection":
        return cls(ok=False, error=error)


def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} block in text.

    Braces inside JSON strings (including escaped quotes) do not count
    toward balance.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False

        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue

            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]

        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)

    return None


def parse_selection(text: str) -> ParsedSelection:
    """
    Parse a classifier response into session ids.

    Stages: locate a balanced object, decode JSON, validate that
    "sessionIds" is a list of strings.
    """
    if not text or not text.strip():
        return ParsedSelection.failure("Empty response")

    block = extract_json_object(text)
    if block is None:
        return ParsedSelection.failure("No JSON object found in response")

    try:
        data = json.loads(block)
    except json.JSONDecodeError as e:
        return ParsedSelection.failure(f"Invalid JSON in response: {e.msg}")

    if not isinstance(data, dict):
        return ParsedSelection.failure("Response JSON is not an object")

    session_ids = data.get("sessionIds")
    if not isinstance(session_ids, list):
        return ParsedSelection.failure('Response has no "sessionIds" array')
    if not all(isinstance(item, str) for item in session_ids):
        return ParsedSelection.failure('"sessionIds" must contain only strings')

    return ParsedSelection.success([item.strip() for item in session_ids if item.strip()])


def match_session_ids(raw_ids: Sequence[str], sessions: Sequence[Session]) -> List[str]:
    """
    Map returned ids onto real sessions.

    Exact match first, then the first session (chronological order) whose id
    starts with the returned value. Unmatched ids are dropped. The result is
    ordered by first appearance and de-duplicated.
    """
    known = {session.session_id for session in sessions}
    matched: List[str] = []

    for raw_id in raw_ids:
        if raw_id in known:
            full_id = raw_id
        else:
            candidates = [s.session_id for s in sessions if s.session_id.startswith(raw_id)]
            if not candidates:
                logger.debug(f"Dropping unmatched session id {raw_id[:8]!r}")
                continue
            if len(candidates) > 1:
                logger.warning(
                    f"Session prefix {raw_id!r} matches {len(candidates)} sessions; "
                    f"using earliest ({candidates[0][:8]})"
                )
            full_id = candidates[0]

        if full_id not in matched:
            matched.append(full_id)

    return matched


# =============================================================================
# Classifier
# =============================================================================

class SessionClassifier:
    """
    Reasoning-service session classifier.

    Builds the structured prompt, runs a single bounded call and validates
    the answer.
    """

    def __init__(
        self,
        provider: LLMProvider,
        redactor: Optional[SensitiveDataRedactor] = None,
        evidence_detector: Optional[CommitEvidenceDetector] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        tail_events: int = DEFAULT_TAIL_EVENTS,
        preview_chars: int = DEFAULT_PREVIEW_CHARS
    ):
        self.provider = provider
        self.redactor = redactor or SensitiveDataRedactor()
        self.evidence_detector = evidence_detector or CommitEvidenceDetector()
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.tail_events = tail_events
        self.preview_chars = preview_chars

        self.call_count = 0
        self.last_latency_ms = 0.0

    # -------------------------------------------------------------------------
    # Prompt
    # -------------------------------------------------------------------------

    def build_prompt(
        self,
        sessions: Sequence[Session],
        commit: CommitInfo,
        evidence: Optional[Dict[str, EvidenceSignal]] = None
    ) -> str:
        """Build the four-step selection prompt."""
        if evidence is None:
            evidence = self.evidence_detector.detect_all(sessions)

        files = ", ".join(commit.files) if commit.files else "Multiple files"
        lines = [
            "# Step 1: Review Available Data",
            "",
            "Recent commit details:",
            f"**Message**: {self.redactor.redact(commit.message)}",
            f"**Files**: {files}",
            f"**Changes**: {commit.change_summary or 'Not summarized'}",
            "",
            f"You have conversation data from {len(sessions)} sessions "
            "(each from a different Claude Code tab):",
        ]

        signals = 0
        for index, session in enumerate(sessions, start=1):
            lines.append("")
            lines.append(f"Session {index} ({session.session_id}):")
            lines.append(f"- {session.event_count} total messages")
            lines.append("- Recent messages:")
            for event in session.tail(self.tail_events):
                lines.append(f"  - {event.role}: {self._preview(event.text)}")

            signal = evidence.get(session.session_id)
            if signal is not None and signal.has_commit_action:
                lines.append("  - Contains git commit command (strong signal)")
                signals += 1

        lines.extend([
            "",
            "# Step 2: Examine Sessions",
            "",
            "For each session above, what topics were discussed?",
            "",
            "# Step 3: Analyze Commit",
            "",
            "Look at the commit details to understand what was changed/implemented.",
            "",
            "# Step 4: Make Selection",
            "",
            "Which session(s) led to this commit?",
            "",
            'Note: If a session\'s last messages contain "git commit" in a Bash command, '
            "that session very likely relates to this commit.",
            "",
            "Respond with a JSON object containing:",
            '- key "sessionIds": value must be an array of sessionId strings '
            "(use the full session ids shown above)",
        ])

        prompt = "\n".join(lines) + "\n"
        logger.debug(f"Built {len(prompt)} character prompt with {signals} commit signals")
        return prompt

    def _preview(self, text: str) -> str:
        if not text:
            return "[no text content]"
        clean = self.redactor.redact(text)
        return clean[:self.preview_chars] + "..."

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def classify(
        self,
        sessions: Sequence[Session],
        commit: CommitInfo,
        evidence: Optional[Dict[str, EvidenceSignal]] = None
    ) -> List[str]:
        """
        Select the sessions that led to the commit.

        Returns:
            Matched full session ids (may be empty)

        Raises:
            ClassificationTimeoutError: Service did not answer in time
            ResponseParseError: Answer did not contain a valid selection
            ClassificationError: Any other provider failure
        """
        prompt = self.build_prompt(sessions, commit, evidence)
        request = LLMRequest(
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system_prompt=SYSTEM_PROMPT,
            timeout_seconds=self.timeout_seconds,
        )

        logger.info(f"Classifying {len(sessions)} sessions with {self.provider.name}/{self.provider.model}")
        content = self._complete_with_timeout(request)

        parsed = parse_selection(content)
        if not parsed.ok:
            raise ResponseParseError(parsed.error)

        matched = match_session_ids(parsed.session_ids, sessions)
        logger.info(f"Classifier selected {len(matched)}/{len(sessions)} sessions")
        return matched

    def _complete_with_timeout(self, request: LLMRequest) -> str:
        """Run one provider call bounded by timeout_seconds."""
        self.call_count += 1
        start_time = time.time()

        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(self.provider.complete, request)
            response = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            raise ClassificationTimeoutError(self.timeout_seconds)
        except LLMProviderError as e:
            raise ClassificationError(f"{e.provider} request failed: {e}", original_error=e)
        except Exception as e:
            raise ClassificationError(f"Classifier call failed: {e}", original_error=e)
        finally:
            self.last_latency_ms = (time.time() - start_time) * 1000
            executor.shutdown(wait=False)

        if not response.content or not response.content.strip():
            raise ResponseParseError("No response content from reasoning service")
        return response.content
