#!/usr/bin/env python3
"""Create or update the PR comment identified by a unique HTML marker.

Usage: update-pr-comment.py <marker> <content-file> <comment-label>

The marker may be a bare name (``SECURITY_AUDIT``) or a full
``<!-- ... -->`` comment. Never fails the step: a missing PR context or
content file, or a GitHub API error, only produces a warning.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from relkit.actions import ActionContext, warn
from relkit.publish import publish_comment


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Upsert PR comment by HTML marker.")
    p.add_argument("marker", help="Marker name or HTML comment marker")
    p.add_argument("content_file", help="Path to comment body markdown")
    p.add_argument("label", help="Human-readable comment name for log lines")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    content_path = Path(args.content_file)
    try:
        content = content_path.read_text(encoding="utf-8")
    except OSError:
        warn(f"No content file found at {content_path}")
        return 0

    publish_comment(ActionContext.from_env(), args.marker, content, args.label)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
