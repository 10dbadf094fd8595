from __future__ import annotations

import pathlib
import posixpath
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from fuzzpatch.logger import logger
from fuzzpatch.settings import PatchPolicy
from .dsl import parse_patch_text
from .errors import DiffError, PatchApplyError, PatchParseError, PathPolicyError
from .match import (
    apply_replacements,
    apply_update_chunks,
    compute_replacements,
    derive_new_contents,
    normalize_punctuation,
    seek_sequence,
)
from .models import (
    AddFile,
    Chunk,
    DeleteFile,
    FileApplyStatus,
    Hunk,
    ParsedPatch,
    PatchError,
    PatchResult,
    Replacement,
    UpdateFile,
)

__all__ = [
    "AddFile",
    "Chunk",
    "DeleteFile",
    "DiffError",
    "DryRunPatchFileOps",
    "FileApplyStatus",
    "FileSystemPatchFileOps",
    "Hunk",
    "ParsedPatch",
    "PatchApplyError",
    "PatchError",
    "PatchFileOps",
    "PatchParseError",
    "PatchResult",
    "PathPolicyError",
    "Replacement",
    "UpdateFile",
    "apply_patch",
    "apply_replacements",
    "apply_update_chunks",
    "compute_replacements",
    "derive_new_contents",
    "normalize_punctuation",
    "parse_patch_text",
    "seek_sequence",
]

# Substrings of paths that are never written unless the policy allows it
SENSITIVE_PATTERNS: Tuple[str, ...] = (
    ".env",
    ".env.local",
    ".env.production",
    "credentials",
    "secret",
    ".key",
    ".pem",
    ".p12",
    ".pfx",
    "id_rsa",
    "id_ed25519",
    ".ssh",
    "password",
    "token",
)

_WINDOWS_DRIVE_RE = re.compile(r"^[A-Za-z]:[\\/]")


class PatchFileOps(ABC):
    """
    Abstract contract for file operations used by the patch driver.
    Implementations must handle path safety and track changes map.
    """

    @abstractmethod
    def open(self, rel: str) -> str: ...

    @abstractmethod
    def write(self, rel: str, content: str) -> None: ...

    @abstractmethod
    def delete(self, rel: str) -> None: ...

    @property
    @abstractmethod
    def changes_map(self) -> Dict[str, str]:
        """
        A map of relative file paths to change kind: 'created' | 'updated' | 'deleted'.
        """
        ...


def _is_sensitive(rel: str) -> bool:
    lower = rel.lower()
    return any(p in lower for p in SENSITIVE_PATTERNS)


def _denied_by(rel: str, denied_paths: List[str]) -> Optional[str]:
    lower = rel.lower()
    for denied in denied_paths:
        norm = denied.strip().replace("\\", "/").lower()
        if norm and norm in lower:
            return denied
    return None


def _is_allowed(rel: str, allowed_paths: List[str]) -> bool:
    if not allowed_paths:
        return True
    lower = rel.lower()
    for allowed in allowed_paths:
        norm = allowed.replace("\\", "/").lower().rstrip("/")
        if lower == norm or lower.startswith(norm + "/"):
            return True
    return False


class FileSystemPatchFileOps(PatchFileOps):
    """
    File-backed implementation that enforces path safety under base_path,
    applies the write policy and records change kinds.
    """

    def __init__(self, base_path: pathlib.Path, policy: Optional[PatchPolicy] = None):
        self._base_path = base_path
        self._policy = policy or PatchPolicy()
        self._changes: Dict[str, str] = {}

    def _resolve_safe_path(self, rel: str) -> pathlib.Path:
        norm = rel.replace("\\", "/")
        if norm.startswith("/") or norm.startswith("~") or _WINDOWS_DRIVE_RE.match(rel):
            raise PathPolicyError(f"Absolute paths are not allowed: {rel}", filename=rel)
        abs_path = (self._base_path / norm).resolve()
        base_resolved = self._base_path.resolve()
        if abs_path != base_resolved and base_resolved not in abs_path.parents:
            raise PathPolicyError(f"Path escapes project root: {rel}", filename=rel)

        if self._policy.deny_sensitive and _is_sensitive(norm):
            raise PathPolicyError(f"Refusing to modify sensitive file: {rel}", filename=rel)
        denied = _denied_by(norm, self._policy.denied_paths)
        if denied is not None:
            raise PathPolicyError(f"Path is denied by policy ({denied}): {rel}", filename=rel)
        if not _is_allowed(norm, self._policy.allowed_paths):
            raise PathPolicyError(f"Path is not in the allowed list: {rel}", filename=rel)
        return abs_path

    def _record(self, rel: str, change: str) -> None:
        prev = self._changes.get(rel)
        if prev is None:
            self._changes[rel] = change
            return
        if change == "deleted":
            self._changes[rel] = change
        elif change == "updated" and prev != "deleted":
            self._changes[rel] = change

    def open(self, rel: str) -> str:
        path = self._resolve_safe_path(rel)
        with path.open("rt", encoding="utf-8", newline="") as fh:
            return fh.read()

    def write(self, rel: str, content: str) -> None:
        path = self._resolve_safe_path(rel)
        existed = path.exists()
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wt", encoding="utf-8", newline="") as fh:
            fh.write(content)
        self._record(rel, "updated" if existed else "created")

    def delete(self, rel: str) -> None:
        path = self._resolve_safe_path(rel)
        path.unlink(missing_ok=True)
        self._record(rel, "deleted")

    @property
    def changes_map(self) -> Dict[str, str]:
        return self._changes


class DryRunPatchFileOps(FileSystemPatchFileOps):
    """Reads real files and validates paths, but only records writes and deletes."""

    def __init__(self, base_path: pathlib.Path, policy: Optional[PatchPolicy] = None):
        super().__init__(base_path, policy)
        self.pending_writes: Dict[str, str] = {}
        self.pending_deletes: List[str] = []

    def open(self, rel: str) -> str:
        if rel in self.pending_writes:
            return self.pending_writes[rel]
        return super().open(rel)

    def write(self, rel: str, content: str) -> None:
        path = self._resolve_safe_path(rel)
        existed = path.exists() or rel in self.pending_writes
        self.pending_writes[rel] = content
        self._record(rel, "updated" if existed else "created")

    def delete(self, rel: str) -> None:
        self._resolve_safe_path(rel)
        self.pending_writes.pop(rel, None)
        self.pending_deletes.append(rel)
        self._record(rel, "deleted")


def _same_path(a: str, b: str) -> bool:
    return posixpath.normpath(a.replace("\\", "/")) == posixpath.normpath(
        b.replace("\\", "/")
    )


def _apply_hunk(hunk: Hunk, ops: PatchFileOps) -> Tuple[str, FileApplyStatus]:
    """
    Realize one hunk through ops. Returns (display name, status).
    A move whose target is the source path itself is applied as an update.
    """
    if isinstance(hunk, AddFile):
        ops.write(hunk.path, hunk.contents)
        return hunk.path, FileApplyStatus.Create
    if isinstance(hunk, DeleteFile):
        ops.delete(hunk.path)
        return hunk.path, FileApplyStatus.Delete
    if isinstance(hunk, UpdateFile):
        new_content = apply_update_chunks(hunk.path, hunk.chunks, ops.open)
        if hunk.move_path and not _same_path(hunk.move_path, hunk.path):
            ops.write(hunk.move_path, new_content)
            ops.delete(hunk.path)
            return f"{hunk.path} -> {hunk.move_path}", FileApplyStatus.Move
        ops.write(hunk.path, new_content)
        return hunk.path, FileApplyStatus.Update
    raise TypeError(f"Unknown hunk type: {type(hunk).__name__}")


def _build_summary(
    applied: List[Tuple[str, FileApplyStatus]], errors: List[PatchError]
) -> str:
    sections = (
        (FileApplyStatus.Create, "Added files:"),
        (FileApplyStatus.Update, "Updated files:"),
        (FileApplyStatus.Move, "Moved files:"),
        (FileApplyStatus.Delete, "Deleted files:"),
    )
    lines: List[str] = []
    if not errors:
        lines.append("Applied patch successfully.")
    elif not applied:
        lines.append("Patch application failed. No changes were applied.")
    else:
        lines.append("Patch application completed with errors. Summary:")

    for status, title in sections:
        names = [name for name, s in applied if s == status]
        if names:
            lines.append(title)
            for name in names:
                lines.append(f"* {name}")

    if errors:
        lines.append("Errors:")
        for e in errors:
            loc = ""
            if e.filename and e.line is not None:
                loc = f"{e.filename}:{e.line}: "
            elif e.filename:
                loc = f"{e.filename}: "
            elif e.line is not None:
                loc = f"line {e.line}: "
            lines.append(f"* {loc}{e.msg}")
            if e.hint:
                lines.append(f"  Hint: {e.hint}")
    return "\n".join(lines)


def apply_patch(
    text: str,
    base_path: pathlib.Path,
    ops: Optional[PatchFileOps] = None,
    policy: Optional[PatchPolicy] = None,
) -> PatchResult:
    """
    Parse patch text and apply every hunk in order.
    If ops is not provided, a file-backed implementation under base_path is used.
    A hunk that fails is reported and skipped; the remaining hunks still run.
    """
    file_ops = ops or FileSystemPatchFileOps(base_path, policy)

    try:
        parsed = parse_patch_text(text)
    except PatchParseError as e:
        logger.warning("patch_parse_failed", error=e.msg, line=e.line)
        err = PatchError(
            msg=e.msg,
            line=e.line,
            hint="Regenerate the patch inside *** Begin Patch / *** End Patch markers.",
        )
        return PatchResult(
            summary=_build_summary([], [err]), outcome="fail", errors=[err]
        )

    if not parsed.hunks:
        err = PatchError(msg="No hunks found in patch")
        return PatchResult(
            summary=_build_summary([], [err]), outcome="fail", errors=[err]
        )

    applied: List[Tuple[str, FileApplyStatus]] = []
    statuses: Dict[str, FileApplyStatus] = {}
    errors: List[PatchError] = []
    for hunk in parsed.hunks:
        try:
            name, status = _apply_hunk(hunk, file_ops)
        except (DiffError, OSError) as e:
            msg = getattr(e, "msg", None) or f"{type(e).__name__}: {e}"
            hint = None
            if isinstance(e, PatchApplyError):
                hint = "The file no longer matches the patch. Re-read it and regenerate the chunk."
            errors.append(PatchError(msg=msg, filename=hunk.path, hint=hint))
            statuses[hunk.path] = FileApplyStatus.Failed
            logger.warning("hunk_failed", path=hunk.path, error=msg)
            continue
        applied.append((name, status))
        statuses[hunk.path] = status
        logger.info("hunk_applied", path=hunk.path, status=status.value)

    return PatchResult(
        summary=_build_summary(applied, errors),
        outcome="fail" if errors else "success",
        changes_map=dict(file_ops.changes_map),
        statuses=statuses,
        errors=errors,
    )
