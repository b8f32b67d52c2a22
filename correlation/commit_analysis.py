"""
Commit content analysis.

Splits the files touched by a diff into documentation and functional code,
and fills in the commit context the classifier shows to the reasoning
service when the caller did not supply it.

Usage:
    from correlation.commit_analysis import analyze_commit_content, build_commit_info

    analysis = analyze_commit_content(diff)
    if analysis.has_only_docs:
        ...
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from core.models import CommitInfo

DIFF_HEADER_PATTERN = re.compile(r'^diff --git a/(.+) b/.+$')

DOC_SUFFIXES = ('.md', '.txt')
DOC_MARKERS = ('README', 'CHANGELOG')


@dataclass
class CommitContentAnalysis:
    """Changed files of a commit, split by kind."""
    changed_files: List[str] = field(default_factory=list)
    doc_files: List[str] = field(default_factory=list)
    functional_files: List[str] = field(default_factory=list)

    @property
    def has_functional_code(self) -> bool:
        return bool(self.functional_files)

    @property
    def has_only_docs(self) -> bool:
        return bool(self.changed_files) and not self.functional_files

    def to_dict(self) -> dict:
        return {
            'changed_files': list(self.changed_files),
            'doc_files': list(self.doc_files),
            'functional_files': list(self.functional_files),
            'has_functional_code': self.has_functional_code,
            'has_only_docs': self.has_only_docs,
        }


def is_documentation_file(path: str) -> bool:
    return path.endswith(DOC_SUFFIXES) or any(marker in path for marker in DOC_MARKERS)


def analyze_commit_content(diff: str) -> CommitContentAnalysis:
    """Categorize the files named in `diff --git` headers."""
    changed_files = []
    for line in (diff or "").split("\n"):
        match = DIFF_HEADER_PATTERN.match(line)
        if match:
            changed_files.append(match.group(1))

    doc_files = [path for path in changed_files if is_documentation_file(path)]
    functional_files = [path for path in changed_files if path not in doc_files]

    return CommitContentAnalysis(
        changed_files=changed_files,
        doc_files=doc_files,
        functional_files=functional_files,
    )


def summarize_changes(analysis: CommitContentAnalysis) -> str:
    """One-line description of what a commit touched."""
    if not analysis.changed_files:
        return ""
    if analysis.has_only_docs:
        return f"Documentation-only change ({len(analysis.doc_files)} files)"
    summary = f"{len(analysis.changed_files)} files changed ({len(analysis.functional_files)} code"
    if analysis.doc_files:
        summary += f", {len(analysis.doc_files)} docs"
    return summary + ")"


def build_commit_info(
    message: str,
    diff: str = "",
    files: Optional[List[str]] = None,
    change_summary: Optional[str] = None
) -> CommitInfo:
    """
    Assemble a CommitInfo, deriving files and change summary from the diff
    where the caller supplied none.
    """
    analysis = analyze_commit_content(diff)
    return CommitInfo(
        message=message or "",
        files=list(files) if files is not None else analysis.changed_files,
        change_summary=change_summary if change_summary is not None else summarize_changes(analysis),
        diff=diff or "",
    )
