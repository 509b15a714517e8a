#!/usr/bin/env python3
"""Warn when core packages have a new major version available.

Runs ``npm outdated --json`` for the policy's core packages, writes the
markdown report, sets the ``status`` step output (pass|warn) and upserts the
DEPENDENCY_CHECK PR comment. A warning never fails the step.
"""

from __future__ import annotations

import argparse
import json
import os
import subprocess
import sys
import tempfile
from pathlib import Path

from relkit.actions import ActionContext, error, load_step_policy, notice, set_output, warn
from relkit.outdated import COMMENT_MARKER_NAME, evaluate_outdated, render_dependency_report
from relkit.policy import POLICY_FILE, ConfigError
from relkit.publish import publish_comment


def default_output_path() -> Path:
    base = os.environ.get("RUNNER_TEMP") or tempfile.gettempdir()
    return Path(base) / "dependency-check.md"


def run_npm_outdated(packages: list[str]) -> str:
    """``npm outdated`` exits 1 whenever something is outdated; only stdout matters."""
    result = subprocess.run(
        ["npm", "outdated", "--json", *packages],
        capture_output=True,
        text=True,
        check=False,
    )
    return result.stdout or ""


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Report major updates for core packages.")
    p.add_argument("--policy", default=POLICY_FILE, help="Path to the dependency policy file")
    p.add_argument("--outdated-json", default="", help="Read npm outdated JSON from this file instead of running npm")
    p.add_argument("--output", default="", help="Path to write the markdown report")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    ctx = ActionContext.from_env()

    try:
        policy = load_step_policy(Path(args.policy))
    except ConfigError as exc:
        error(str(exc))
        return 2

    core = list(policy.core_packages)
    if not core:
        notice("No core packages configured, skipping dependency check")
        set_output(ctx.github_output, "status", "pass")
        return 0

    try:
        if args.outdated_json:
            raw = Path(args.outdated_json).read_text(encoding="utf-8")
        else:
            raw = run_npm_outdated(core)
    except OSError as exc:
        warn(f"dependency-check: unable to read npm outdated output: {exc}")
        raw = ""

    try:
        outdated = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError as exc:
        warn(f"dependency-check: npm outdated output is not JSON: {exc}")
        outdated = {}

    report = evaluate_outdated(outdated, core)
    markdown = render_dependency_report(report, core)

    out_path = Path(args.output) if args.output else default_output_path()
    try:
        out_path.write_text(markdown, encoding="utf-8")
    except OSError as exc:
        warn(f"dependency-check: failed to write {out_path}: {exc}")

    set_output(ctx.github_output, "status", report.status)
    publish_comment(ctx, COMMENT_MARKER_NAME, markdown, "dependency check")

    for pkg in report.major_updates:
        warn(f"{pkg.name} {pkg.current} -> {pkg.latest} is a major update")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
