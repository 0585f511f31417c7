"""
Diff Engine - unified diffs and change statistics for file mutations.

Pure and deterministic: the same (original, proposed) pair always produces
byte-identical diff text. Lines are split on "\\n" only and keep their
terminators, so a file that does not end in a newline is marked with
"\\ No newline at end of file" and apply_unified_diff() can reproduce the
proposed text exactly.
"""

import re
from difflib import SequenceMatcher

from toolgate.types import DiffStat, FileDiff

NO_NEWLINE_MARKER = "\\ No newline at end of file"
DEFAULT_CONTEXT_LINES = 3

_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


def split_lines(text: str) -> list[str]:
    """Split on newlines, keeping each line's terminator."""
    if not text:
        return []
    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def _format_range(start: int, stop: int) -> str:
    # Same convention as difflib: an empty range names the line before it.
    beginning = start + 1
    length = stop - start
    if length == 1:
        return f"{beginning}"
    if not length:
        beginning -= 1
    return f"{beginning},{length}"


def _emit(out: list[str], prefix: str, line: str) -> None:
    if line.endswith("\n"):
        out.append(prefix + line)
    else:
        out.append(prefix + line + "\n")
        out.append(NO_NEWLINE_MARKER + "\n")


def _matcher(original_lines: list[str], proposed_lines: list[str]) -> SequenceMatcher:
    return SequenceMatcher(None, original_lines, proposed_lines, autojunk=False)


def create_unified_diff(
    original: str,
    proposed: str,
    file_name: str,
    old_header: str = "Original",
    new_header: str = "Proposed",
    context: int = DEFAULT_CONTEXT_LINES,
) -> str:
    """Unified diff of original -> proposed with `context` lines around each change."""
    a = split_lines(original)
    b = split_lines(proposed)
    out = [
        f"--- {file_name}\t{old_header}\n",
        f"+++ {file_name}\t{new_header}\n",
    ]
    for group in _matcher(a, b).get_grouped_opcodes(context):
        first, last = group[0], group[-1]
        old_range = _format_range(first[1], last[2])
        new_range = _format_range(first[3], last[4])
        out.append(f"@@ -{old_range} +{new_range} @@\n")
        for tag, i1, i2, j1, j2 in group:
            if tag == "equal":
                for line in a[i1:i2]:
                    _emit(out, " ", line)
                continue
            if tag in ("replace", "delete"):
                for line in a[i1:i2]:
                    _emit(out, "-", line)
            if tag in ("replace", "insert"):
                for line in b[j1:j2]:
                    _emit(out, "+", line)
    return "".join(out)


def compute_diff_stat(original: str, proposed: str) -> DiffStat:
    """
    Count added and removed lines.

    Each contiguous run the matcher reports as inserted, deleted or replaced
    counts its lines once toward the matching counter.
    """
    additions = 0
    deletions = 0
    for tag, i1, i2, j1, j2 in _matcher(split_lines(original), split_lines(proposed)).get_opcodes():
        if tag in ("replace", "delete"):
            deletions += i2 - i1
        if tag in ("replace", "insert"):
            additions += j2 - j1
    return DiffStat(additions=additions, deletions=deletions)


def build_file_diff(
    file_name: str,
    original: str,
    proposed: str,
    old_header: str = "Original",
    new_header: str = "Proposed",
    context: int = DEFAULT_CONTEXT_LINES,
) -> FileDiff:
    return FileDiff(
        unified_diff=create_unified_diff(
            original, proposed, file_name, old_header, new_header, context
        ),
        file_name=file_name,
        original_content=original,
        new_content=proposed,
        stats=compute_diff_stat(original, proposed),
    )


def apply_unified_diff(original: str, diff: str) -> str:
    """
    Apply a diff produced by create_unified_diff() to original.

    Raises ValueError if a context or removed line does not match.
    """
    source = split_lines(original)
    diff_lines = split_lines(diff)
    out: list[str] = []
    pos = 0
    i = 0

    while i < len(diff_lines):
        match = _HUNK_HEADER.match(diff_lines[i])
        i += 1
        if match is None:
            continue

        old_start = int(match.group(1))
        old_count = int(match.group(2)) if match.group(2) is not None else 1
        new_count = int(match.group(4)) if match.group(4) is not None else 1
        index = old_start - 1 if old_count else old_start
        if index < pos:
            raise ValueError(f"Overlapping hunk at line {old_start}")
        out.extend(source[pos:index])
        pos = index

        remaining_old, remaining_new = old_count, new_count
        while (remaining_old or remaining_new) and i < len(diff_lines):
            line = diff_lines[i]
            i += 1
            prefix, text = line[:1], line[1:]
            if i < len(diff_lines) and diff_lines[i].startswith("\\"):
                text = text.removesuffix("\n")
                i += 1
            if prefix in (" ", "-"):
                if pos >= len(source) or source[pos] != text:
                    raise ValueError(f"Diff does not apply at line {pos + 1}")
                pos += 1
                remaining_old -= 1
                if prefix == " ":
                    out.append(text)
                    remaining_new -= 1
            elif prefix == "+":
                out.append(text)
                remaining_new -= 1
            else:
                raise ValueError(f"Unexpected diff line: {line!r}")

    out.extend(source[pos:])
    return "".join(out)
