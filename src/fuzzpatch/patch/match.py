from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Sequence

from fuzzpatch.logger import logger
from .errors import PatchApplyError
from .models import Chunk, Replacement


_PUNCTUATION_MAP = {
    # Hyphens, dashes and minus sign
    **dict.fromkeys("\u2010\u2011\u2012\u2013\u2014\u2015\u2212", "-"),
    # Curly, low and high-reversed single quotes
    **dict.fromkeys("\u2018\u2019\u201a\u201b", "'"),
    # Curly, low and high-reversed double quotes
    **dict.fromkeys("\u201c\u201d\u201e\u201f", '"'),
    # Non-breaking, en/em and other typographic spaces
    **dict.fromkeys(
        "\u00a0\u2002\u2003\u2004\u2005\u2006\u2007\u2008\u2009\u200a"
        "\u202f\u205f\u3000",
        " ",
    ),
}
_PUNCTUATION_TABLE = str.maketrans(_PUNCTUATION_MAP)


def normalize_punctuation(value: str) -> str:
    """Map look-alike Unicode punctuation and spaces to their ASCII form."""
    return value.translate(_PUNCTUATION_TABLE)


def _exact(value: str) -> str:
    return value


def _rstrip(value: str) -> str:
    return value.rstrip()


def _strip(value: str) -> str:
    return value.strip()


def _normalized(value: str) -> str:
    return normalize_punctuation(value.strip())


# Comparators in strict priority order
MATCH_LEVELS: Sequence[Callable[[str], str]] = (_exact, _rstrip, _strip, _normalized)


def _lines_match(
    lines: Sequence[str],
    pattern: Sequence[str],
    start: int,
    normalize: Callable[[str], str],
) -> bool:
    for idx, expected in enumerate(pattern):
        if start + idx >= len(lines):
            return False
        if normalize(lines[start + idx]) != normalize(expected):
            return False
    return True


def seek_sequence(
    lines: Sequence[str],
    pattern: Sequence[str],
    start: int,
    eof: bool,
) -> Optional[int]:
    """
    Find the first index >= start where pattern occurs in lines.

    Each comparator level scans the whole allowed range before the next,
    looser level is tried, so an exact match anywhere wins over a fuzzy
    match at an earlier index. With eof set the scan starts at the last
    position the pattern fits, preferring the tail of the file.
    """
    if not pattern:
        return start
    if len(pattern) > len(lines):
        return None

    max_start = len(lines) - len(pattern)
    search_start = max_start if eof else start
    if search_start > max_start:
        return None

    for normalize in MATCH_LEVELS:
        for i in range(search_start, max_start + 1):
            if _lines_match(lines, pattern, i, normalize):
                return i
    return None


def compute_replacements(
    lines: Sequence[str], path: str, chunks: Iterable[Chunk]
) -> List[Replacement]:
    """
    Resolve each chunk of one update hunk to a (start, old_length, new_lines)
    replacement against the original lines. Chunks are searched in order with
    a forward-only pointer.
    """
    replacements: List[Replacement] = []
    pointer = 0

    for chunk in chunks:
        if chunk.change_context:
            ctx_idx = seek_sequence(lines, [chunk.change_context], pointer, False)
            if ctx_idx is None:
                raise PatchApplyError(
                    f"Failed to find context '{chunk.change_context}' in {path}",
                    filename=path,
                )
            pointer = ctx_idx + 1

        if chunk.is_insertion:
            if lines and lines[-1] == "":
                insertion_idx = len(lines) - 1
            else:
                insertion_idx = len(lines)
            replacements.append(Replacement(insertion_idx, 0, chunk.new_lines))
            continue

        pattern = chunk.old_lines
        new_slice = chunk.new_lines
        found = seek_sequence(lines, pattern, pointer, chunk.is_end_of_file)
        if found is None and pattern[-1] == "":
            # Retry without the trailing blank line the patch author may have added
            pattern = pattern[:-1]
            if new_slice and new_slice[-1] == "":
                new_slice = new_slice[:-1]
            found = seek_sequence(lines, pattern, pointer, chunk.is_end_of_file)

        if found is None:
            old_text = "\n".join(chunk.old_lines)
            raise PatchApplyError(
                f"Failed to find expected lines in {path}:\n{old_text}",
                filename=path,
            )

        replacements.append(Replacement(found, len(pattern), new_slice))
        pointer = found + len(pattern)

    replacements.sort(key=lambda r: r.start)
    return replacements


def apply_replacements(
    lines: Sequence[str], replacements: Sequence[Replacement]
) -> List[str]:
    """
    Apply replacements to a copy of lines.
    Replacements go in descending start order so indices computed against the
    original lines stay valid.
    """
    result = list(lines)
    for start, old_length, new_lines in reversed(replacements):
        if start < len(result):
            del result[start : start + old_length]
        result[start:start] = new_lines
    return result


def derive_new_contents(path: str, original: str, chunks: Iterable[Chunk]) -> str:
    """Apply update chunks to file text. The result always ends with one newline."""
    lines = original.split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    replacements = compute_replacements(lines, path, chunks)
    new_lines = apply_replacements(lines, replacements)

    if not new_lines or new_lines[-1] != "":
        new_lines.append("")
    logger.debug("chunks_applied", path=path, replacements=len(replacements))
    return "\n".join(new_lines)


def apply_update_chunks(
    path: str, chunks: Iterable[Chunk], open_fn: Callable[[str], str]
) -> str:
    """Read path through open_fn and return its new full text."""
    try:
        original = open_fn(path)
    except (OSError, UnicodeDecodeError) as e:
        raise PatchApplyError(
            f"Failed to read file to update {path}: {e}", filename=path
        ) from e
    return derive_new_contents(path, original, chunks)
