"""Markdown helpers for relkit PR comments.

Keep surface area small: severity badges + tables + <details> blocks.
"""

from __future__ import annotations

_SEVERITY_ICON = {
    "critical": "🔴",
    "high": "🟠",
    "moderate": "🟡",
    "low": "🔵",
}

_DEFAULT_ICON = "⚪"


def severity_icon(severity: str | None) -> str:
    """Severity icon."""
    text = str(severity or "").strip().lower()
    return _SEVERITY_ICON.get(text, _DEFAULT_ICON)


def cell(value: object) -> str:
    """Make text safe for a single table cell."""
    text = " ".join(str(value if value is not None else "").split())
    return text.replace("|", "\\|")


def link(label: str, url: str | None) -> str:
    """Link, or the bare label when there is no URL."""
    label = cell(label)
    url = (url or "").strip()
    if not url:
        return label
    return f"[{label}]({url})"


def table(headers: list[str], rows: list[list[str]], *, align: list[str] | None = None) -> list[str]:
    """Render a pipe table; ``align`` entries are ``left`` or ``right``."""
    if not rows:
        return []
    rules = []
    for idx, header in enumerate(headers):
        width = max(len(header), 3)
        if align and idx < len(align) and align[idx] == "right":
            rules.append("-" * (width - 1) + ":")
        else:
            rules.append("-" * width)
    lines = [
        "| " + " | ".join(headers) + " |",
        "|" + "|".join(rules) + "|",
    ]
    for row in rows:
        lines.append("| " + " | ".join(row) + " |")
    return lines


def details_block(
    body_lines: list[str],
    *,
    summary: str = "Details",
    indent: str = "",
) -> list[str]:
    """Details block."""
    if not body_lines:
        return []
    lines = [f"{indent}<details><summary>{summary}</summary>", ""]
    for ln in body_lines:
        if ln:
            lines.append(f"{indent}{ln}")
        else:
            lines.append("")
    lines.extend(["", f"{indent}</details>"])
    return lines
