"""
Corpus Models — The documents the matrix builder reads.

A CorpusDocument is ephemeral: loaded by whatever scans docs or git history,
read once per build, then dropped.
"""

from dataclasses import dataclass
from enum import Enum


class DocumentRole(str, Enum):
    """Which side of the trust debt comparison a document belongs to."""

    INTENT = "intent"
    """Specs, READMEs, design docs: what the project says it does."""

    REALITY = "reality"
    """Commits, code, changelogs: what the project actually does."""


@dataclass(frozen=True)
class CorpusDocument:
    """A single document from either corpus."""

    source_id: str
    """Stable identifier (file path, commit hash...). Also the fold order."""

    role: DocumentRole
    text: str
    weight: float = 1.0
