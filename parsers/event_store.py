"""
Transcript event store scanner.

Finds every session transcript below the store root and extracts the
conversation events that belong to one project and fall inside one commit
window.

Layout:
    <root>/<encoded-project-dir>/<session-uuid>.jsonl

Failures are absorbed here: a missing root yields no files, an unreadable
directory or file is skipped, a malformed line is skipped. Every skip is
counted in ScanStats.

Usage:
    from parsers.event_store import EventStoreScanner, discover_transcript_files

    files = discover_transcript_files("~/.claude/projects")
    scanner = EventStoreScanner(max_workers=8)
    events = scanner.collect_events(files, window, "/home/dev/project")
    print(scanner.stats.to_dict())
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from core.errors import DiscoveryError, FileReadError, RecordParseError, TimestampError
from core.models import ConversationEvent, TimeWindow
from parsers.transcript_parser import decode_line, parse_record, record_project

logger = logging.getLogger(__name__)

TRANSCRIPT_SUFFIX = ".jsonl"


# =============================================================================
# Data Models
# =============================================================================

@dataclass
class ScanStats:
    """Aggregate counts for one scan. Side channel only."""
    projects_checked: int = 0
    files_found: int = 0
    files_processed: int = 0
    files_skipped: int = 0
    lines_parsed: int = 0
    malformed_lines: int = 0
    records_accepted: int = 0
    project_filtered: int = 0
    time_filtered: int = 0
    timestamp_failures: int = 0

    def merge(self, other: "ScanStats"):
        """Add another stats object's counts into this one."""
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))

    def to_dict(self) -> Dict[str, int]:
        """Convert to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


# =============================================================================
# Discovery
# =============================================================================

def discover_transcript_files(
    root: Union[str, Path],
    stats: Optional[ScanStats] = None
) -> List[str]:
    """
    Find every transcript file one level below each project directory.

    Args:
        root: Transcript store root (e.g. ~/.claude/projects)
        stats: Optional ScanStats to record projects_checked/files_found into

    Returns:
        Sorted list of file paths; empty if the root is missing
    """
    stats = stats if stats is not None else ScanStats()
    root_path = Path(root).expanduser()

    try:
        project_dirs = _list_project_dirs(root_path)
    except DiscoveryError as e:
        logger.warning(f"Transcript discovery skipped: {e}")
        return []

    files: List[str] = []
    for project_dir in project_dirs:
        stats.projects_checked += 1
        try:
            entries = sorted(project_dir.iterdir())
        except OSError as e:
            logger.warning(f"Skipping unreadable project directory {project_dir}: {e.strerror or e}")
            continue

        for entry in entries:
            if entry.suffix == TRANSCRIPT_SUFFIX and entry.is_file():
                files.append(str(entry))

    files.sort()
    stats.files_found += len(files)
    logger.debug(f"Found {len(files)} transcript files in {stats.projects_checked} project directories")
    return files


def _list_project_dirs(root_path: Path) -> List[Path]:
    if not root_path.is_dir():
        raise DiscoveryError(f"Transcript root does not exist: {root_path}", str(root_path))
    try:
        return sorted(entry for entry in root_path.iterdir() if entry.is_dir())
    except OSError as e:
        raise DiscoveryError(f"Cannot list transcript root {root_path}: {e}", str(root_path))


# =============================================================================
# Scanner
# =============================================================================

class EventStoreScanner:
    """
    Reads transcript files and filters their records by project and window.

    Files are read concurrently by a bounded thread pool. Results are merged
    in input-file order and then sorted chronologically, so the output never
    depends on completion order.
    """

    def __init__(self, max_workers: int = 8, encoding: str = "utf-8"):
        """
        Initialize scanner.

        Args:
            max_workers: Upper bound on concurrently read files
            encoding: Transcript file encoding (invalid bytes are replaced)
        """
        self.max_workers = max(1, int(max_workers))
        self.encoding = encoding
        self.stats = ScanStats()

    def collect_events(
        self,
        files: Sequence[str],
        window: TimeWindow,
        project_path: str
    ) -> List[ConversationEvent]:
        """
        Collect qualifying events from transcript files.

        A record qualifies iff its cwd equals project_path exactly and its
        timestamp lies in window. self.stats is reset and describes this
        call only.

        Args:
            files: Transcript file paths (from discover_transcript_files)
            window: Commit window (previous, current]
            project_path: Repository path to match against record cwd

        Returns:
            Qualifying events sorted by (occurred_at, timestamp)
        """
        self.stats = ScanStats()
        files = list(files)
        if not files:
            return []

        workers = min(self.max_workers, len(files))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(
                lambda path: self._read_file(path, window, project_path),
                files
            ))

        events: List[ConversationEvent] = []
        for file_events, file_stats in results:
            events.extend(file_events)
            self.stats.merge(file_stats)

        events.sort(key=lambda event: event.sort_key)
        logger.info(
            f"Collected {len(events)} events from {self.stats.files_processed} files "
            f"({self.stats.files_skipped} skipped, {self.stats.malformed_lines} malformed lines)"
        )
        return events

    def _read_file(
        self,
        path: str,
        window: TimeWindow,
        project_path: str
    ) -> Tuple[List[ConversationEvent], ScanStats]:
        """Read and filter one file. Never raises."""
        stats = ScanStats()

        try:
            lines = self._read_lines(path)
        except FileReadError as e:
            stats.files_skipped += 1
            logger.warning(f"Skipping transcript {os.path.basename(path)}: {e}")
            return [], stats

        stats.files_processed += 1
        events: List[ConversationEvent] = []

        for line_number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            stats.lines_parsed += 1

            try:
                record = decode_line(line, line_number)
            except RecordParseError as e:
                stats.malformed_lines += 1
                logger.debug(f"{os.path.basename(path)}:{line_number}: {e}")
                continue

            if record_project(record) != project_path:
                stats.project_filtered += 1
                continue

            try:
                event = parse_record(record, line_number)
            except TimestampError:
                stats.timestamp_failures += 1
                continue
            except RecordParseError as e:
                stats.malformed_lines += 1
                logger.debug(f"{os.path.basename(path)}:{line_number}: {e}")
                continue

            if not window.contains(event.occurred_at):
                stats.time_filtered += 1
                continue

            stats.records_accepted += 1
            events.append(event)

        return events, stats

    def _read_lines(self, path: str) -> List[str]:
        try:
            with open(path, "r", encoding=self.encoding, errors="replace") as f:
                content = f.read()
        except OSError as e:
            raise FileReadError(f"Cannot read file: {e.strerror or e}", path, original_error=e)
        # Records are newline-delimited; JSON strings may carry raw U+2028/U+2029
        return content.split("\n")
