from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple, Union


class FileApplyStatus(str, Enum):
    Create = "create"
    Update = "update"
    Move = "move"
    Delete = "delete"
    Failed = "failed"


@dataclass(frozen=True)
class Chunk:
    """
    One localized edit inside an Update hunk.

    - old_lines: lines expected in the current file (context + removed lines)
    - new_lines: lines that replace them (context + added lines)
    - change_context: optional single line located before old_lines are searched
    - is_end_of_file: old_lines are expected to be the last lines of the file
    A chunk with empty old_lines is a pure insertion.
    """

    old_lines: Tuple[str, ...] = ()
    new_lines: Tuple[str, ...] = ()
    change_context: Optional[str] = None
    is_end_of_file: bool = False

    @property
    def is_insertion(self) -> bool:
        return not self.old_lines


@dataclass(frozen=True)
class AddFile:
    path: str
    contents: str


@dataclass(frozen=True)
class DeleteFile:
    path: str


@dataclass(frozen=True)
class UpdateFile:
    path: str
    chunks: Tuple[Chunk, ...]
    move_path: Optional[str] = None


Hunk = Union[AddFile, DeleteFile, UpdateFile]


@dataclass(frozen=True)
class ParsedPatch:
    hunks: Tuple[Hunk, ...]
    # Normalized patch text (trimmed, heredoc wrapper removed)
    patch: str


class Replacement(NamedTuple):
    start: int
    old_length: int
    new_lines: Tuple[str, ...]


@dataclass
class PatchError:
    msg: str
    filename: Optional[str] = None
    line: Optional[int] = None
    hint: Optional[str] = None


@dataclass
class PatchResult:
    summary: str
    outcome: str
    changes_map: Dict[str, str] = field(default_factory=dict)
    statuses: Dict[str, FileApplyStatus] = field(default_factory=dict)
    errors: List[PatchError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome == "success"
