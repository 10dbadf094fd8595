from __future__ import annotations

import re
from typing import List, Optional, Tuple

from fuzzpatch.logger import logger
from .errors import PatchParseError
from .models import AddFile, Chunk, DeleteFile, Hunk, ParsedPatch, UpdateFile


BEGIN_PATCH_MARKER = "*** Begin Patch"
END_PATCH_MARKER = "*** End Patch"
ADD_FILE_MARKER = "*** Add File: "
DELETE_FILE_MARKER = "*** Delete File: "
UPDATE_FILE_MARKER = "*** Update File: "
MOVE_TO_MARKER = "*** Move to: "
EOF_MARKER = "*** End of File"
CHANGE_CONTEXT_MARKER = "@@ "
EMPTY_CHANGE_CONTEXT_MARKER = "@@"
HUNK_PREFIX = "***"

HEREDOC_OPENERS = ("<<EOF", "<<'EOF'", '<<"EOF"')
HEREDOC_CLOSER = "EOF"

LINE_SPLIT_RE = re.compile(r"\r?\n")


def _hunk_error(line_no: int, msg: str) -> PatchParseError:
    return PatchParseError(f"Invalid patch hunk at line {line_no}: {msg}", line=line_no)


def _check_boundaries_strict(lines: List[str]) -> Optional[str]:
    first = lines[0].strip() if lines else None
    last = lines[-1].strip() if lines else None
    if first == BEGIN_PATCH_MARKER and last == END_PATCH_MARKER:
        return None
    if first != BEGIN_PATCH_MARKER:
        return f"The first line of the patch must be '{BEGIN_PATCH_MARKER}'"
    return f"The last line of the patch must be '{END_PATCH_MARKER}'"


def _check_boundaries(lines: List[str]) -> List[str]:
    """
    Validate the *** Begin Patch / *** End Patch envelope.
    A single shell heredoc wrapper (<<EOF ... EOF) is tolerated; anything
    wrapped deeper is rejected with the outer boundary error.
    """
    error = _check_boundaries_strict(lines)
    if error is None:
        return lines
    if len(lines) >= 4:
        first, last = lines[0], lines[-1]
        if first in HEREDOC_OPENERS and last.endswith(HEREDOC_CLOSER):
            inner = lines[1:-1]
            if _check_boundaries_strict(inner) is None:
                return inner
    raise PatchParseError(error, line=1)


def parse_patch_text(text: str) -> ParsedPatch:
    """
    Parse patch text into an ordered tuple of hunks.

    Raises PatchParseError on the first grammar violation; no partial result
    is ever returned.
    """
    trimmed = text.strip()
    if not trimmed:
        raise PatchParseError("Invalid patch: input is empty.")

    lines = _check_boundaries(LINE_SPLIT_RE.split(trimmed))

    hunks: List[Hunk] = []
    remaining = lines[1:-1]
    # Line number of remaining[0] in the validated patch
    line_no = 2
    while remaining:
        hunk, consumed = _parse_one_hunk(remaining, line_no)
        hunks.append(hunk)
        line_no += consumed
        remaining = remaining[consumed:]

    logger.debug("patch_parsed", hunks=len(hunks))
    return ParsedPatch(hunks=tuple(hunks), patch="\n".join(lines))


def _parse_one_hunk(lines: List[str], line_no: int) -> Tuple[Hunk, int]:
    header = lines[0].strip()

    if header.startswith(ADD_FILE_MARKER):
        path = header[len(ADD_FILE_MARKER) :]
        contents: List[str] = []
        for raw in lines[1:]:
            if not raw.startswith("+"):
                break
            contents.append(raw[1:] + "\n")
        return AddFile(path=path, contents="".join(contents)), 1 + len(contents)

    if header.startswith(DELETE_FILE_MARKER):
        return DeleteFile(path=header[len(DELETE_FILE_MARKER) :]), 1

    if header.startswith(UPDATE_FILE_MARKER):
        return _parse_update_hunk(lines, line_no)

    if header.startswith(MOVE_TO_MARKER.rstrip()):
        raise _hunk_error(
            line_no,
            f"'{lines[0]}' must directly follow an '{UPDATE_FILE_MARKER}{{path}}' header",
        )

    raise _hunk_error(
        line_no,
        f"'{lines[0]}' is not a valid hunk header. Valid hunk headers: "
        f"'{ADD_FILE_MARKER}{{path}}', '{DELETE_FILE_MARKER}{{path}}', "
        f"'{UPDATE_FILE_MARKER}{{path}}'",
    )


def _parse_update_hunk(lines: List[str], line_no: int) -> Tuple[UpdateFile, int]:
    path = lines[0].strip()[len(UPDATE_FILE_MARKER) :]
    consumed = 1

    move_path: Optional[str] = None
    if len(lines) > 1 and lines[1].strip().startswith(MOVE_TO_MARKER):
        move_path = lines[1].strip()[len(MOVE_TO_MARKER) :]
        consumed += 1

    chunks: List[Chunk] = []
    while consumed < len(lines):
        raw = lines[consumed]
        if raw.strip() == "":
            consumed += 1
            continue
        if raw.startswith(HUNK_PREFIX):
            break
        chunk, used = _parse_chunk(
            lines[consumed:], line_no + consumed, allow_missing_context=not chunks
        )
        chunks.append(chunk)
        consumed += used

    if not chunks:
        raise _hunk_error(line_no, f"Update file hunk for path '{path}' is empty")

    return UpdateFile(path=path, chunks=tuple(chunks), move_path=move_path), consumed


def _parse_chunk(
    lines: List[str], line_no: int, *, allow_missing_context: bool
) -> Tuple[Chunk, int]:
    change_context: Optional[str] = None
    start = 0
    first = lines[0]
    if first == EMPTY_CHANGE_CONTEXT_MARKER:
        start = 1
    elif first.startswith(CHANGE_CONTEXT_MARKER):
        change_context = first[len(CHANGE_CONTEXT_MARKER) :]
        start = 1
    elif not allow_missing_context:
        raise _hunk_error(
            line_no,
            f"Expected update hunk to start with a @@ context marker, got: '{first}'",
        )

    if start >= len(lines):
        raise _hunk_error(line_no + 1, "Update hunk does not contain any lines")

    old_lines: List[str] = []
    new_lines: List[str] = []
    is_end_of_file = False
    parsed = 0
    for raw in lines[start:]:
        if raw == EOF_MARKER:
            if parsed == 0:
                raise _hunk_error(line_no + 1, "Update hunk does not contain any lines")
            is_end_of_file = True
            parsed += 1
            break
        if raw == "":
            old_lines.append("")
            new_lines.append("")
        elif raw[0] == " ":
            old_lines.append(raw[1:])
            new_lines.append(raw[1:])
        elif raw[0] == "+":
            new_lines.append(raw[1:])
        elif raw[0] == "-":
            old_lines.append(raw[1:])
        elif parsed == 0:
            raise _hunk_error(
                line_no + 1,
                f"Unexpected line found in update hunk: '{raw}'. Every line should "
                "start with ' ' (context line), '+' (added line), or '-' (removed line)",
            )
        else:
            break
        parsed += 1

    chunk = Chunk(
        old_lines=tuple(old_lines),
        new_lines=tuple(new_lines),
        change_context=change_context,
        is_end_of_file=is_end_of_file,
    )
    return chunk, start + parsed
