"""
Tests for transcript discovery and window/project filtering.
"""

import json
import os

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.models import TimeWindow
from parsers.event_store import EventStoreScanner, ScanStats, discover_transcript_files
from tests.fixtures.transcripts import (
    SESSION_A, SESSION_B, PROJECT_PATH, OTHER_PROJECT_PATH,
    record, write_transcript, at
)


@pytest.fixture
def window():
    """Window (minute 0, minute 60]."""
    return TimeWindow(current_commit_time=at(60), previous_commit_time=at(0))


class TestDiscovery:
    """Tests for discover_transcript_files."""

    def test_missing_root_is_empty(self, tmp_path):
        assert discover_transcript_files(tmp_path / "nope") == []

    def test_finds_jsonl_one_level_down(self, tmp_path):
        write_transcript(tmp_path, SESSION_A, [record(SESSION_A, 1)])
        write_transcript(tmp_path, SESSION_B, [record(SESSION_B, 1)], project_dir="-home-dev-other")
        (tmp_path / "-home-dev-project" / "notes.txt").write_text("x")
        nested = tmp_path / "-home-dev-project" / "deeper"
        nested.mkdir()
        (nested / "hidden.jsonl").write_text("{}\n")
        (tmp_path / "stray.jsonl").write_text("{}\n")

        stats = ScanStats()
        files = discover_transcript_files(tmp_path, stats)

        assert sorted(os.path.basename(f) for f in files) == [f"{SESSION_A}.jsonl", f"{SESSION_B}.jsonl"]
        assert files == sorted(files)
        assert stats.projects_checked == 2
        assert stats.files_found == 2

    def test_accepts_string_root(self, tmp_path):
        write_transcript(tmp_path, SESSION_A, [record(SESSION_A, 1)])

        assert len(discover_transcript_files(str(tmp_path))) == 1


class TestCollectEvents:
    """Tests for EventStoreScanner.collect_events."""

    def test_window_and_project_filter(self, tmp_path, window):
        path = write_transcript(tmp_path, SESSION_A, [
            record(SESSION_A, 0, content="at previous commit"),
            record(SESSION_A, 10, content="inside"),
            record(SESSION_A, 20, cwd=OTHER_PROJECT_PATH, content="other project"),
            record(SESSION_A, 60, "assistant", content="at current commit"),
            record(SESSION_A, 61, content="after commit"),
        ])

        scanner = EventStoreScanner(max_workers=2)
        events = scanner.collect_events([str(path)], window, PROJECT_PATH)

        assert [e.text for e in events] == ["inside", "at current commit"]
        assert scanner.stats.records_accepted == 2
        assert scanner.stats.time_filtered == 2
        assert scanner.stats.project_filtered == 1

    def test_every_event_satisfies_window_and_project(self, tmp_path, window):
        files = []
        for index, session_id in enumerate((SESSION_A, SESSION_B)):
            files.append(str(write_transcript(tmp_path, session_id, [
                record(session_id, minute, cwd=cwd)
                for minute in (-5, 0, 3 + index, 30, 60, 90)
                for cwd in (PROJECT_PATH, OTHER_PROJECT_PATH, PROJECT_PATH + "/sub")
            ])))

        events = EventStoreScanner().collect_events(files, window, PROJECT_PATH)

        assert events
        for event in events:
            assert event.origin_project == PROJECT_PATH
            assert window.contains(event.occurred_at)

    def test_sorted_across_files(self, tmp_path, window):
        a = write_transcript(tmp_path, SESSION_A, [record(SESSION_A, m) for m in (5, 25, 45)])
        b = write_transcript(tmp_path, SESSION_B, [record(SESSION_B, m) for m in (15, 35)])

        events = EventStoreScanner(max_workers=4).collect_events([str(b), str(a)], window, PROJECT_PATH)

        assert [e.occurred_at for e in events] == sorted(e.occurred_at for e in events)
        assert [e.session_id[:1] for e in events] == ["a", "b", "a", "b", "a"]

    def test_malformed_lines_skipped(self, tmp_path, window):
        path = write_transcript(
            tmp_path, SESSION_A,
            [record(SESSION_A, 5, content="good")],
            extra_lines=["{broken json", "", "   ", '"just a string"', '{"type": "summary", "cwd": "%s", "message": {}}' % PROJECT_PATH],
        )

        scanner = EventStoreScanner()
        events = scanner.collect_events([str(path)], window, PROJECT_PATH)

        assert [e.text for e in events] == ["good"]
        assert scanner.stats.malformed_lines == 3
        assert scanner.stats.lines_parsed == 4

    def test_bad_timestamp_dropped_and_counted(self, tmp_path, window):
        bad = record(SESSION_A, 5)
        bad["timestamp"] = "garbage"
        path = write_transcript(tmp_path, SESSION_A, [bad, record(SESSION_A, 6, content="ok")])

        scanner = EventStoreScanner()
        events = scanner.collect_events([str(path)], window, PROJECT_PATH)

        assert [e.text for e in events] == ["ok"]
        assert scanner.stats.timestamp_failures == 1
        assert scanner.stats.malformed_lines == 0

    def test_unreadable_file_skipped(self, tmp_path, window):
        good = write_transcript(tmp_path, SESSION_A, [record(SESSION_A, 5)])
        missing = tmp_path / "-home-dev-project" / "gone.jsonl"

        scanner = EventStoreScanner()
        events = scanner.collect_events([str(missing), str(good)], window, PROJECT_PATH)

        assert len(events) == 1
        assert scanner.stats.files_skipped == 1
        assert scanner.stats.files_processed == 1

    def test_invalid_utf8_replaced(self, tmp_path, window):
        path = write_transcript(tmp_path, SESSION_A, [record(SESSION_A, 5, content="ok")])
        with open(path, "ab") as f:
            f.write(b"\xff\xfe garbage\n")

        events = EventStoreScanner().collect_events([str(path)], window, PROJECT_PATH)

        assert len(events) == 1

    def test_unicode_line_separators_inside_strings(self, tmp_path, window):
        text = "first\u2028second\u2029third\x85end"
        path = write_transcript(
            tmp_path, SESSION_A,
            [record(SESSION_A, 5, content="before")],
            extra_lines=[
                json.dumps(record(SESSION_A, 6, content=text), ensure_ascii=False),
                json.dumps(record(SESSION_A, 7, content="after")),
            ],
        )

        scanner = EventStoreScanner()
        events = scanner.collect_events([str(path)], window, PROJECT_PATH)

        assert [e.text for e in events] == ["before", text, "after"]
        assert scanner.stats.lines_parsed == 3
        assert scanner.stats.malformed_lines == 0

    def test_crlf_line_endings(self, tmp_path, window):
        path = tmp_path / "crlf.jsonl"
        lines = [json.dumps(record(SESSION_A, minute)) for minute in (5, 6)]
        path.write_bytes(("\r\n".join(lines) + "\r\n").encode("utf-8"))

        events = EventStoreScanner().collect_events([str(path)], window, PROJECT_PATH)

        assert len(events) == 2

    def test_stats_cover_latest_call_only(self, tmp_path, window):
        path = write_transcript(tmp_path, SESSION_A, [record(SESSION_A, 5), record(SESSION_A, 6)])
        scanner = EventStoreScanner()

        scanner.collect_events([str(path)], window, PROJECT_PATH)
        scanner.collect_events([str(path)], window, PROJECT_PATH)

        assert scanner.stats.files_processed == 1
        assert scanner.stats.records_accepted == 2

        scanner.collect_events([], window, PROJECT_PATH)

        assert scanner.stats.records_accepted == 0

    def test_no_files(self, window):
        assert EventStoreScanner().collect_events([], window, PROJECT_PATH) == []

    def test_stats_to_dict(self):
        stats = ScanStats(files_found=2)
        other = ScanStats(files_found=1, malformed_lines=3)
        stats.merge(other)

        assert stats.to_dict()["files_found"] == 3
        assert stats.to_dict()["malformed_lines"] == 3
