import pytest

from fuzzpatch.patch.dsl import parse_patch_text
from fuzzpatch.patch.errors import PatchParseError
from fuzzpatch.patch.models import AddFile, Chunk, DeleteFile, UpdateFile


THREE_HUNKS = """*** Begin Patch
*** Add File: docs/new.md
+# Title
+body
*** Delete File: old.txt
*** Update File: src/app.py
*** Move to: src/main.py
@@ def main():
-    return 1
+    return 2
*** End Patch"""


def test_parses_hunks_in_source_order():
    parsed = parse_patch_text(THREE_HUNKS)

    assert parsed.hunks == (
        AddFile(path="docs/new.md", contents="# Title\nbody\n"),
        DeleteFile(path="old.txt"),
        UpdateFile(
            path="src/app.py",
            move_path="src/main.py",
            chunks=(
                Chunk(
                    old_lines=("    return 1",),
                    new_lines=("    return 2",),
                    change_context="def main():",
                ),
            ),
        ),
    )
    assert parsed.patch == THREE_HUNKS


def test_surrounding_whitespace_and_crlf_are_accepted():
    text = "\n\n*** Begin Patch\r\n*** Delete File: a.txt\r\n*** End Patch\n\n"
    parsed = parse_patch_text(text)
    assert parsed.hunks == (DeleteFile(path="a.txt"),)


@pytest.mark.parametrize("opener", ["<<EOF", "<<'EOF'", '<<"EOF"'])
def test_heredoc_wrapped_patch_parses_like_plain(opener):
    wrapped = f"{opener}\n{THREE_HUNKS}\nEOF"
    plain = parse_patch_text(THREE_HUNKS)
    parsed = parse_patch_text(wrapped)
    assert parsed.hunks == plain.hunks
    assert parsed.patch == THREE_HUNKS


def test_double_heredoc_is_rejected_with_outer_boundary_error():
    wrapped = f"<<EOF\n<<EOF\n{THREE_HUNKS}\nEOF\nEOF"
    with pytest.raises(PatchParseError) as exc:
        parse_patch_text(wrapped)
    assert "The first line of the patch must be '*** Begin Patch'" in str(exc.value)


def test_missing_end_marker():
    with pytest.raises(PatchParseError) as exc:
        parse_patch_text("*** Begin Patch\n*** Delete File: a.txt\n")
    assert "The last line of the patch must be '*** End Patch'" in str(exc.value)


def test_empty_input():
    with pytest.raises(PatchParseError) as exc:
        parse_patch_text("  \n\t ")
    assert "input is empty" in str(exc.value)


def test_unknown_hunk_header_lists_valid_headers():
    text = "*** Begin Patch\n*** Frobnicate File: x\n*** End Patch"
    with pytest.raises(PatchParseError) as exc:
        parse_patch_text(text)
    msg = str(exc.value)
    assert "'*** Frobnicate File: x' is not a valid hunk header" in msg
    assert "'*** Add File: {path}'" in msg
    assert "'*** Delete File: {path}'" in msg
    assert "'*** Update File: {path}'" in msg
    assert exc.value.line == 2


def test_empty_update_hunk():
    text = "*** Begin Patch\n*** Update File: a.py\n*** End Patch"
    with pytest.raises(PatchParseError) as exc:
        parse_patch_text(text)
    assert "Update file hunk for path 'a.py' is empty" in str(exc.value)


def test_first_chunk_may_omit_context_marker():
    text = "*** Begin Patch\n*** Update File: a.py\n-x\n+y\n*** End Patch"
    (hunk,) = parse_patch_text(text).hunks
    assert hunk.chunks == (Chunk(old_lines=("x",), new_lines=("y",)),)


def test_later_chunk_requires_context_marker():
    text = "\n".join(
        [
            "*** Begin Patch",
            "*** Update File: a.py",
            "-x",
            "+y",
            "garbage",
            "*** End Patch",
        ]
    )
    with pytest.raises(PatchParseError) as exc:
        parse_patch_text(text)
    assert "Expected update hunk to start with a @@ context marker, got: 'garbage'" in str(
        exc.value
    )


def test_unexpected_line_before_any_content():
    text = "*** Begin Patch\n*** Update File: a.py\n@@\nfoo\n*** End Patch"
    with pytest.raises(PatchParseError) as exc:
        parse_patch_text(text)
    msg = str(exc.value)
    assert "Unexpected line found in update hunk: 'foo'" in msg
    assert "' ' (context line), '+' (added line), or '-' (removed line)" in msg


def test_context_marker_without_lines():
    text = "*** Begin Patch\n*** Update File: a.py\n@@ class A\n*** End Patch"
    with pytest.raises(PatchParseError) as exc:
        parse_patch_text(text)
    assert "Update hunk does not contain any lines" in str(exc.value)


def test_multiple_chunks_with_and_without_context_text():
    text = "\n".join(
        [
            "*** Begin Patch",
            "*** Update File: a.py",
            "@@ class A",
            " keep",
            "-old",
            "+new",
            "",
            "@@",
            "+tail",
            "*** End Patch",
        ]
    )
    (hunk,) = parse_patch_text(text).hunks
    assert hunk.chunks == (
        # The blank line belongs to the first chunk as empty context
        Chunk(
            old_lines=("keep", "old", ""),
            new_lines=("keep", "new", ""),
            change_context="class A",
        ),
        Chunk(old_lines=(), new_lines=("tail",)),
    )
    assert hunk.chunks[1].is_insertion
    assert not hunk.chunks[0].is_insertion


def test_blank_lines_between_chunks_are_skipped():
    text = "\n".join(
        [
            "*** Begin Patch",
            "*** Update File: a.py",
            "@@ one",
            "-a",
            "+b",
            "*** Update File: b.py",
            "",
            "@@ two",
            "-c",
            "+d",
            "*** End Patch",
        ]
    )
    first, second = parse_patch_text(text).hunks
    assert first.chunks == (Chunk(("a",), ("b",), "one"),)
    assert second.chunks == (Chunk(("c",), ("d",), "two"),)


def test_end_of_file_marker():
    text = "\n".join(
        [
            "*** Begin Patch",
            "*** Update File: a.py",
            "@@",
            " last",
            "+appended",
            "*** End of File",
            "*** End Patch",
        ]
    )
    (hunk,) = parse_patch_text(text).hunks
    (chunk,) = hunk.chunks
    assert chunk.is_end_of_file
    assert chunk.old_lines == ("last",)
    assert chunk.new_lines == ("last", "appended")


def test_end_of_file_marker_requires_content():
    text = "*** Begin Patch\n*** Update File: a.py\n@@\n*** End of File\n*** End Patch"
    with pytest.raises(PatchParseError) as exc:
        parse_patch_text(text)
    assert "Update hunk does not contain any lines" in str(exc.value)


def test_move_to_outside_update_header_is_rejected():
    text = "*** Begin Patch\n*** Delete File: a.py\n*** Move to: b.py\n*** End Patch"
    with pytest.raises(PatchParseError) as exc:
        parse_patch_text(text)
    assert "must directly follow an '*** Update File: {path}' header" in str(exc.value)


def test_add_file_stops_at_first_non_plus_line():
    text = "\n".join(
        [
            "*** Begin Patch",
            "*** Add File: a.txt",
            "+one",
            "+",
            "+three",
            "*** Add File: empty.txt",
            "*** End Patch",
        ]
    )
    first, second = parse_patch_text(text).hunks
    assert first == AddFile(path="a.txt", contents="one\n\nthree\n")
    assert second == AddFile(path="empty.txt", contents="")


def test_no_hunks_between_markers():
    assert parse_patch_text("*** Begin Patch\n*** End Patch").hunks == ()
