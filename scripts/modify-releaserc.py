#!/usr/bin/env python3
"""Prepare a semantic-release config for a PR changelog preview.

Usage: modify-releaserc.py <config-file> <branch-name>

Rewrites the file in place: the PR branch becomes the only release branch
and the GitHub-release and git commit-back plugins are removed.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from relkit.actions import error
from relkit.releaserc import ReleaseConfigError, detect_format, rewrite_release_config


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Rewrite a .releaserc for a preview run.")
    p.add_argument("config_file", help="Path to .releaserc(.yml|.yaml|.json)")
    p.add_argument("branch", help="Branch to treat as the release branch")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    path = Path(args.config_file)

    try:
        document = path.read_text(encoding="utf-8")
    except OSError as exc:
        error(f"modify-releaserc: unable to read {path}: {exc}")
        return 1

    try:
        fmt = detect_format(path, document)
        rewritten = rewrite_release_config(document, fmt, args.branch)
    except ReleaseConfigError as exc:
        error(f"modify-releaserc: {exc}")
        return 1

    try:
        path.write_text(rewritten, encoding="utf-8")
    except OSError as exc:
        error(f"modify-releaserc: unable to write {path}: {exc}")
        return 1

    print(f"Modified {path} for branch: {args.branch.strip()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
