"""
Data models for commit/conversation correlation.

Transcript content arrives either as a plain string or as a list of typed
blocks. It is modelled as a small tagged union (TextBlock, ToolUseBlock,
ToolResultBlock) and every consumer goes through normalize_content() to get
plain text.

Usage:
    from core.models import ConversationEvent, Session, TimeWindow

    window = TimeWindow(current_commit_time, previous_commit_time)
    if window.contains(event.occurred_at):
        ...
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple, Union


# =============================================================================
# Content Blocks
# =============================================================================

@dataclass(frozen=True)
class TextBlock:
    """Plain text written by the user or the assistant."""
    text: str

    def to_text(self) -> str:
        return self.text


@dataclass(frozen=True)
class ToolUseBlock:
    """A tool invocation issued by the assistant."""
    name: str
    command: str = ""
    tool_use_id: Optional[str] = None

    def to_text(self) -> str:
        if self.command:
            return f"[{self.name}] {self.command}"
        return f"[{self.name}]"


@dataclass(frozen=True)
class ToolResultBlock:
    """Output returned to the assistant by a tool."""
    tool_use_id: Optional[str] = None
    text: str = ""

    def to_text(self) -> str:
        return "[tool result]"


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock]
Content = Union[str, Tuple[ContentBlock, ...]]


def normalize_content(content: Union[str, Sequence[ContentBlock], None]) -> str:
    """
    Map any content shape to plain text.

    Args:
        content: Plain string, sequence of content blocks, or None

    Returns:
        Plain text; block renderings are joined with a single space
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    parts = [block.to_text() for block in content]
    return " ".join(part for part in parts if part)


def content_has_text(content: Union[str, Sequence[ContentBlock], None]) -> bool:
    """True if the content carries any human/assistant prose (not tool-only)."""
    if content is None:
        return False
    if isinstance(content, str):
        return bool(content.strip())
    return any(isinstance(block, TextBlock) and block.text.strip() for block in content)


# =============================================================================
# Timestamps
# =============================================================================

def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into a timezone-aware UTC datetime.

    Transcript timestamps look like "2025-08-20T20:54:46.152Z". Naive values
    are interpreted as UTC.

    Returns:
        Parsed datetime, or None when the value is missing or invalid
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class TimeWindow:
    """
    Commit-bounded interval (previous_commit_time, current_commit_time].

    The lower bound is open and the upper bound closed. A missing lower bound
    (first commit in history) is unbounded.
    """
    current_commit_time: datetime
    previous_commit_time: Optional[datetime] = None

    def contains(self, moment: datetime) -> bool:
        if moment > self.current_commit_time:
            return False
        if self.previous_commit_time is not None and moment <= self.previous_commit_time:
            return False
        return True

    @property
    def duration_minutes(self) -> Optional[float]:
        if self.previous_commit_time is None:
            return None
        delta = self.current_commit_time - self.previous_commit_time
        return delta.total_seconds() / 60


# =============================================================================
# Conversation Events and Sessions
# =============================================================================

@dataclass(frozen=True)
class ConversationEvent:
    """
    One transcript record.

    Attributes:
        session_id: Opaque session identifier (None when the record has none)
        timestamp: ISO-8601 string exactly as recorded
        occurred_at: Parsed UTC datetime of timestamp
        origin_project: Working directory the tool was attached to (cwd)
        role: "user" or "assistant"
        content: Plain string or tuple of content blocks
        uuid: Record identifier, when present
        is_meta: Tool-generated meta record (e.g. command caveats)
    """
    session_id: Optional[str]
    timestamp: str
    occurred_at: datetime
    origin_project: str
    role: str
    content: Content
    uuid: Optional[str] = None
    is_meta: bool = False

    @property
    def text(self) -> str:
        """Normalized plain-text content."""
        return normalize_content(self.content)

    @property
    def has_text(self) -> bool:
        return content_has_text(self.content)

    @property
    def tool_uses(self) -> List[ToolUseBlock]:
        if isinstance(self.content, str):
            return []
        return [block for block in self.content if isinstance(block, ToolUseBlock)]

    @property
    def sort_key(self) -> Tuple[datetime, str]:
        return (self.occurred_at, self.timestamp)

    def with_text(self, text: str) -> "ConversationEvent":
        """Return a copy whose content is replaced by plain text."""
        return replace(self, content=text)


@dataclass(frozen=True)
class Session:
    """A non-empty, chronologically sorted group of events sharing a session id."""
    session_id: str
    events: Tuple[ConversationEvent, ...]

    def __post_init__(self):
        if not self.events:
            raise ValueError(f"Session {self.session_id} has no events")

    @property
    def short_id(self) -> str:
        return self.session_id[:8]

    @property
    def start_time(self) -> str:
        return self.events[0].timestamp

    @property
    def end_time(self) -> str:
        return self.events[-1].timestamp

    @property
    def started_at(self) -> datetime:
        return self.events[0].occurred_at

    @property
    def ended_at(self) -> datetime:
        return self.events[-1].occurred_at

    @property
    def event_count(self) -> int:
        return len(self.events)

    def tail(self, count: int) -> Tuple[ConversationEvent, ...]:
        """Last `count` events, oldest first."""
        if count <= 0:
            return ()
        return self.events[-count:]


# =============================================================================
# Commit Context
# =============================================================================

@dataclass
class CommitInfo:
    """
    Commit metadata supplied by the git collector.

    Attributes:
        message: Full commit message
        files: Changed file paths
        change_summary: Short description of the change
        diff: Unified diff text (used for budgeting only)
    """
    message: str = ""
    files: List[str] = field(default_factory=list)
    change_summary: str = ""
    diff: str = ""

    @property
    def subject(self) -> str:
        return self.message.split("\n", 1)[0].strip()
