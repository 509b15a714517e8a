#!/usr/bin/env python3
"""Update a section of the PR description between two HTML comment markers.

Usage: update-pr-section.py <start-marker> <end-marker> <content-file> <section-label>

Replaces the existing section in place or appends it to the description.
Never fails the step: a missing PR context or content file, or a GitHub API
error, only produces a warning.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from relkit.actions import ActionContext, error, warn
from relkit.publish import publish_section


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Replace or append a marked PR description section.")
    p.add_argument("start_marker", help="Line marking the start of the section")
    p.add_argument("end_marker", help="Line marking the end of the section")
    p.add_argument("content_file", help="Path to section content markdown")
    p.add_argument("label", help="Human-readable section name for log lines")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    start = args.start_marker.strip()
    end = args.end_marker.strip()
    if not start or not end or start == end:
        error("start and end markers must be non-empty and distinct")
        return 2

    content_path = Path(args.content_file)
    try:
        content = content_path.read_text(encoding="utf-8")
    except OSError:
        warn(f"No content file found at {content_path}")
        return 0

    publish_section(ActionContext.from_env(), start, end, content, args.label)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
