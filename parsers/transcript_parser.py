"""
Parser for Claude Code session transcripts.

Each transcript file is JSONL: one JSON object per line, one file per tool
session, stored under ~/.claude/projects/<encoded-project>/<session>.jsonl.

Structure (fields used here):
{
  "sessionId": "4f1c...",
  "timestamp": "2025-08-20T20:54:46.152Z",
  "cwd": "/home/dev/project",
  "type": "user" | "assistant" | "summary" | ...,
  "uuid": "...",
  "isMeta": false,
  "message": {
    "role": "user" | "assistant",
    "content": "plain text" | [
      {"type": "text", "text": "..."},
      {"type": "tool_use", "id": "...", "name": "Bash", "input": {"command": "git commit -m ..."}},
      {"type": "tool_result", "tool_use_id": "...", "content": "..." | [{"type": "text", "text": "..."}]}
    ]
  }
}

Lines are parsed independently; a bad line never affects its neighbours.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from core.errors import RecordParseError, TimestampError
from core.models import (
    ContentBlock,
    Content,
    ConversationEvent,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

CONVERSATION_ROLES = ("user", "assistant")


def decode_line(line: str, line_number: Optional[int] = None) -> Dict[str, Any]:
    """
    Decode one JSONL line into a record dict.

    Raises:
        RecordParseError: If the line is not a JSON object
    """
    try:
        record = json.loads(line)
    except json.JSONDecodeError as e:
        raise RecordParseError(f"Invalid JSON: {e.msg}", line_number)

    if not isinstance(record, dict):
        raise RecordParseError("Record is not a JSON object", line_number)
    return record


def record_project(record: Dict[str, Any]) -> Optional[str]:
    """Working directory the record was written from."""
    cwd = record.get("cwd")
    return cwd if isinstance(cwd, str) else None


def parse_record(record: Dict[str, Any], line_number: Optional[int] = None) -> ConversationEvent:
    """
    Build a ConversationEvent from a decoded record.

    Args:
        record: Decoded JSON object
        line_number: 1-based line number for error reporting

    Returns:
        ConversationEvent

    Raises:
        TimestampError: If the timestamp is missing or unparseable
        RecordParseError: If the record is not a user/assistant message
    """
    message = record.get("message")
    if not isinstance(message, dict):
        raise RecordParseError("Record has no message object", line_number)

    role = message.get("role") or record.get("type")
    if role not in CONVERSATION_ROLES:
        raise RecordParseError(f"Unsupported record role: {role!r}", line_number)

    raw_timestamp = record.get("timestamp")
    occurred_at = parse_timestamp(raw_timestamp) if isinstance(raw_timestamp, str) else None
    if occurred_at is None:
        raise TimestampError(f"Unparseable timestamp: {raw_timestamp!r}", line_number)

    session_id = record.get("sessionId")
    if not isinstance(session_id, str) or not session_id:
        session_id = None

    return ConversationEvent(
        session_id=session_id,
        timestamp=raw_timestamp,
        occurred_at=occurred_at,
        origin_project=record_project(record) or "",
        role=role,
        content=parse_content(message.get("content"), line_number),
        uuid=record.get("uuid"),
        is_meta=bool(record.get("isMeta", False)),
    )


def parse_content(raw: Any, line_number: Optional[int] = None) -> Content:
    """
    Convert a raw message content value into the content union.

    Plain strings stay strings; block lists become a tuple of typed blocks.
    Block types without a text rendering (images, thinking) are skipped.
    """
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    if not isinstance(raw, list):
        raise RecordParseError(f"Unsupported content type: {type(raw).__name__}", line_number)

    blocks: List[ContentBlock] = []
    for item in raw:
        block = _parse_block(item)
        if block is not None:
            blocks.append(block)
    return tuple(blocks)


def _parse_block(item: Any) -> Optional[ContentBlock]:
    if isinstance(item, str):
        return TextBlock(item)
    if not isinstance(item, dict):
        return None

    block_type = item.get("type")

    if block_type == "text":
        return TextBlock(str(item.get("text", "")))

    if block_type == "tool_use":
        return ToolUseBlock(
            name=str(item.get("name", "tool")),
            command=_tool_command(item),
            tool_use_id=item.get("id"),
        )

    if block_type == "tool_result":
        return ToolResultBlock(
            tool_use_id=item.get("tool_use_id"),
            text=_tool_result_text(item.get("content")),
        )

    return None


def _tool_command(item: Dict[str, Any]) -> str:
    """Command string from block.command or block.input.command."""
    command = item.get("command")
    if isinstance(command, str):
        return command
    tool_input = item.get("input")
    if isinstance(tool_input, dict) and isinstance(tool_input.get("command"), str):
        return tool_input["command"]
    return ""


def _tool_result_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return " ".join(
            part.get("text", "") for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        )
    return ""
