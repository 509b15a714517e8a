#!/usr/bin/env python3
"""Run npm audit, apply the dependency policy, and report on the PR.

Writes the markdown report, sets the ``status`` step output (pass|fail),
upserts the SECURITY_AUDIT PR comment, and exits 1 when unallowlisted
advisories meet the ``fail-on`` threshold. Missing or unreadable audit
data (no lockfile, npm not installed) is reported as an empty audit.
"""

from __future__ import annotations

import argparse
import json
import os
import subprocess
import sys
import tempfile
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from relkit.actions import (
    ActionContext,
    endgroup,
    error,
    group,
    load_step_policy,
    notice,
    set_output,
    warn,
)
from relkit.advisories import classify, extract_advisories
from relkit.audit_report import COMMENT_MARKER_NAME, render_audit_report
from relkit.policy import POLICY_FILE, ConfigError
from relkit.publish import publish_comment


class AuditDataError(RuntimeError):
    """npm audit produced no usable report."""


def default_output_path() -> Path:
    base = os.environ.get("RUNNER_TEMP") or tempfile.gettempdir()
    return Path(base) / "security-audit.md"


def run_npm_audit(production_only: bool) -> str:
    """Run ``npm audit --json``; its exit code only signals findings and is ignored."""
    cmd = ["npm", "audit", "--json"]
    if production_only:
        cmd.append("--omit=dev")
        notice("Auditing production dependencies only (--omit=dev)")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except OSError as exc:
        raise AuditDataError(f"unable to run npm audit: {exc}") from exc
    return result.stdout or ""


def parse_audit_output(raw: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise AuditDataError(f"npm audit output is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise AuditDataError("npm audit output is not a JSON object")
    npm_error = data.get("error")
    if isinstance(npm_error, dict):
        summary = npm_error.get("summary") or npm_error.get("code") or "unknown error"
        raise AuditDataError(f"npm audit failed: {summary}")
    return data


def _parse_today(value: str | None) -> date:
    if value:
        return date.fromisoformat(value)
    return datetime.now(timezone.utc).date()


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Gate the build on npm audit results.")
    p.add_argument("--policy", default=POLICY_FILE, help="Path to the dependency policy file")
    p.add_argument("--audit-json", default="", help="Read npm audit JSON from this file instead of running npm")
    p.add_argument("--output", default="", help="Path to write the markdown report")
    p.add_argument("--today", default="", help="Evaluate allowlist expiry as of YYYY-MM-DD (default: UTC today)")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    ctx = ActionContext.from_env()

    try:
        policy = load_step_policy(Path(args.policy))
    except ConfigError as exc:
        error(str(exc))
        return 2

    try:
        today = _parse_today(args.today or None)
    except ValueError:
        error(f"--today must be YYYY-MM-DD, got {args.today!r}")
        return 2

    try:
        if args.audit_json:
            raw = Path(args.audit_json).read_text(encoding="utf-8")
        else:
            group("Running npm audit")
            try:
                raw = run_npm_audit(policy.audit_production_only)
            finally:
                endgroup()
        audit = parse_audit_output(raw)
    except (OSError, AuditDataError) as exc:
        warn(f"security-audit: no usable audit data ({exc}), reporting an empty audit")
        audit = {}

    report = classify(extract_advisories(audit), policy, today)
    rendered = render_audit_report(report)

    out_path = Path(args.output) if args.output else default_output_path()
    try:
        out_path.write_text(rendered.markdown, encoding="utf-8")
    except OSError as exc:
        error(f"security-audit: failed to write {out_path}: {exc}")
        set_output(ctx.github_output, "status", "fail")
        return 1

    set_output(ctx.github_output, "status", rendered.status)
    publish_comment(ctx, COMMENT_MARKER_NAME, rendered.markdown, "security audit")

    if rendered.status == "fail":
        error(
            f"Security audit found {len(report.failing)} unallowlisted vulnerabilities "
            f"at or above '{report.threshold}' severity. See PR comment for details."
        )
        return 1

    print(
        f"Security audit passed: {report.total} total advisories, "
        f"{len(report.waived)} waived, 0 above threshold."
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
