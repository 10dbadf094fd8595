from __future__ import annotations

from typing import Optional


class DiffError(ValueError):
    """Any problem detected while parsing or applying a patch."""


class PatchParseError(DiffError):
    """Patch text does not follow the patch grammar. Aborts the whole parse."""

    def __init__(self, msg: str, *, line: Optional[int] = None) -> None:
        super().__init__(msg)
        self.msg = msg
        self.line = line


class PatchApplyError(DiffError):
    """File content does not match what an update hunk expects."""

    def __init__(self, msg: str, *, filename: Optional[str] = None) -> None:
        super().__init__(msg)
        self.msg = msg
        self.filename = filename


class PathPolicyError(DiffError):
    """A hunk targets a path the file operations refuse to touch."""

    def __init__(self, msg: str, *, filename: Optional[str] = None) -> None:
        super().__init__(msg)
        self.msg = msg
        self.filename = filename
