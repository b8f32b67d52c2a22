"""
Transcript builders for correlation tests.

Builds raw JSONL records (as written by the assistant tool), on-disk
transcript stores, and in-memory ConversationEvents/Sessions.

All times are expressed as minutes after BASE_TIME.
"""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from core.models import ConversationEvent, Session, TextBlock, ToolUseBlock, parse_timestamp

PROJECT_PATH = "/home/dev/project"
OTHER_PROJECT_PATH = "/home/dev/other"

BASE_TIME = datetime(2025, 8, 20, 20, 0, 0, tzinfo=timezone.utc)

SESSION_A = "aaaaaaaa-1111-4000-8000-000000000001"
SESSION_B = "bbbbbbbb-2222-4000-8000-000000000002"
SESSION_C = "cccccccc-3333-4000-8000-000000000003"


# =============================================================================
# Times
# =============================================================================

def at(minutes: float) -> datetime:
    """Aware UTC datetime `minutes` after BASE_TIME."""
    return BASE_TIME + timedelta(minutes=minutes)


def ts(minutes: float) -> str:
    """Transcript-style timestamp ("...T20:54:46.152Z")."""
    moment = at(minutes)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


# =============================================================================
# Raw Records
# =============================================================================

def record(
    session_id: Optional[str],
    minutes: float,
    role: str = "user",
    content: Any = "hello",
    cwd: str = PROJECT_PATH,
    **extra
) -> Dict[str, Any]:
    """One transcript record as it appears in a .jsonl file."""
    data = {
        "type": role,
        "timestamp": ts(minutes),
        "cwd": cwd,
        "message": {"role": role, "content": content},
    }
    if session_id is not None:
        data["sessionId"] = session_id
    data.update(extra)
    return data


def tool_use_content(command: str, name: str = "Bash", text: Optional[str] = None) -> List[Dict[str, Any]]:
    blocks = []
    if text:
        blocks.append({"type": "text", "text": text})
    blocks.append({"type": "tool_use", "id": "toolu_01", "name": name, "input": {"command": command}})
    return blocks


def write_transcript(
    root: Path,
    session_id: str,
    records: Sequence[Dict[str, Any]],
    project_dir: str = "-home-dev-project",
    extra_lines: Sequence[str] = ()
) -> Path:
    """Write records to <root>/<project_dir>/<session_id>.jsonl."""
    directory = root / project_dir
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{session_id}.jsonl"
    lines = [json.dumps(r) for r in records] + list(extra_lines)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


# =============================================================================
# In-memory Events
# =============================================================================

def make_event(
    session_id: Optional[str],
    minutes: float,
    role: str = "user",
    content: Any = "hello",
    origin_project: str = PROJECT_PATH
) -> ConversationEvent:
    timestamp = ts(minutes)
    return ConversationEvent(
        session_id=session_id,
        timestamp=timestamp,
        occurred_at=parse_timestamp(timestamp),
        origin_project=origin_project,
        role=role,
        content=content,
    )


def commit_event(session_id: str, minutes: float, command: str = 'git commit -m "Add parser"') -> ConversationEvent:
    """Assistant event running a commit command through Bash."""
    return make_event(
        session_id, minutes, role="assistant",
        content=(TextBlock("Committing now."), ToolUseBlock(name="Bash", command=command)),
    )


def make_session(session_id: str, minutes: Sequence[float], role_cycle: Sequence[str] = ("user", "assistant")) -> Session:
    events = tuple(
        make_event(session_id, minute, role=role_cycle[i % len(role_cycle)], content=f"message {i} in {session_id[:4]}")
        for i, minute in enumerate(sorted(minutes))
    )
    return Session(session_id, events)
