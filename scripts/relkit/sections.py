"""Marker-delimited regions in PR comments and PR descriptions.

Pure text functions; the gh calls that read and write the documents live in
``relkit.github``. Everything here is idempotent: applying the same content
to the output of a previous application returns it unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass


def comment_marker(name: str) -> str:
    """Wrap ``name`` as an HTML comment marker unless it already is one."""
    text = name.strip()
    if text.startswith("<!--") and text.endswith("-->"):
        return text
    return f"<!-- {text} -->"


def compose_comment_body(marker: str, content: str) -> str:
    return f"{marker}\n{content}"


def find_comment_by_marker(comments: list[dict], marker: str) -> int | None:
    """Return the id of the first comment whose body starts with ``marker``."""
    for comment in comments:
        body = str(comment.get("body") or "")
        if not body.startswith(marker):
            continue
        comment_id = comment.get("id")
        if isinstance(comment_id, int) and not isinstance(comment_id, bool):
            return comment_id
    return None


@dataclass(frozen=True)
class CommentPlan:
    """What to do for one marked comment: update ``comment_id`` or create."""
    action: str
    body: str
    comment_id: int | None = None


def plan_comment_upsert(comments: list[dict], marker: str, content: str) -> CommentPlan:
    body = compose_comment_body(marker, content)
    anchor = find_comment_by_marker(comments, marker)
    if anchor is None:
        return CommentPlan(action="create", body=body)
    return CommentPlan(action="update", body=body, comment_id=anchor)


def compose_section(start_marker: str, end_marker: str, content: str) -> str:
    body = content.rstrip("\n")
    return f"{start_marker}\n{body}\n{end_marker}"


def _is_blank(line: str) -> bool:
    return not line.strip()


def _is_marker_line(line: str, marker: str) -> bool:
    return line.strip() == marker


def _trim_trailing_blank_lines(lines: list[str]) -> tuple[list[str], bool]:
    """Drop trailing blank lines; report whether any were dropped."""
    end = len(lines)
    while end > 0 and _is_blank(lines[end - 1]):
        end -= 1
    return lines[:end], end < len(lines)


def find_section_span(lines: list[str], start_marker: str, end_marker: str) -> tuple[int, int] | None:
    """Line indexes of the first start marker and the last end marker after it.

    Preferring the outermost span absorbs stray duplicate end markers left
    by earlier broken edits. A start marker without a later end marker is
    treated as no section at all.
    """
    start = next((i for i, ln in enumerate(lines) if _is_marker_line(ln, start_marker)), None)
    if start is None:
        return None
    end = None
    for i in range(len(lines) - 1, start, -1):
        if _is_marker_line(lines[i], end_marker):
            end = i
            break
    if end is None:
        return None
    return start, end


def update_section(document: str | None, start_marker: str, end_marker: str, content: str) -> str:
    """Replace the marked section of ``document`` with ``content``, or append it.

    Text outside the section is kept as is, except that blank lines directly
    above the section collapse to at most one so repeated updates cannot
    grow whitespace. The result always ends with a newline.
    """
    section = compose_section(start_marker, end_marker, content)
    lines = (document or "").splitlines(keepends=True)
    span = find_section_span(lines, start_marker, end_marker)

    if span is None:
        body, _ = _trim_trailing_blank_lines(lines)
        if not body:
            return section + "\n"
        text = "".join(body)
        if not text.endswith("\n"):
            text += "\n"
        return f"{text}\n{section}\n"

    start, end = span
    before, had_blank = _trim_trailing_blank_lines(lines[:start])
    after = lines[end + 1:]

    out = ""
    if before:
        out = "".join(before)
        if had_blank:
            out += "\n"
    out += section + "\n"
    if after:
        out += "".join(after)
    return out
