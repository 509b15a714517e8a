#!/usr/bin/env python3
"""Read .dependency-policy.yml with action-input fallbacks.

Used by workflow steps to avoid awk/grep YAML parsing.

Commands:
  core-packages    Print: core packages (one per line)
  fail-on          Print: audit severity threshold
  production-only  Print: true|false
  allowlist        Print: <id>\t<reason>\t<expires> per allowlist entry
  export           Write core_packages, audit_fail_on and audit_production_only
                   to $GITHUB_OUTPUT (stdout when unset)
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from relkit.actions import ActionContext, error, load_step_policy, set_output
from relkit.policy import POLICY_FILE, ConfigError


def _single_line(value: str | None) -> str:
    if not value:
        return ""
    # Make shell parsing safe; reasons with newlines render poorly anyway.
    return " ".join(value.replace("\t", " ").split())


def main(argv: list[str]) -> int:
    """Main."""
    parser = argparse.ArgumentParser(prog="read-dependency-policy.py")
    parser.add_argument("--policy", default=POLICY_FILE)
    sub = parser.add_subparsers(dest="cmd", required=True)
    for name in ("core-packages", "fail-on", "production-only", "allowlist", "export"):
        sub.add_parser(name)

    args = parser.parse_args(argv)

    try:
        policy = load_step_policy(Path(args.policy))
    except ConfigError as e:
        error(str(e))
        return 2

    if args.cmd == "core-packages":
        for item in policy.core_packages:
            print(_single_line(item))
        return 0

    if args.cmd == "fail-on":
        print(policy.audit_fail_on)
        return 0

    if args.cmd == "production-only":
        print("true" if policy.audit_production_only else "false")
        return 0

    if args.cmd == "allowlist":
        for entry in policy.allowlist.values():
            expires = entry.expires.isoformat() if entry.expires else ""
            print("\t".join([_single_line(entry.id), _single_line(entry.reason), expires]))
        return 0

    if args.cmd == "export":
        output = ActionContext.from_env().github_output
        set_output(output, "core_packages", "\n".join(policy.core_packages))
        set_output(output, "audit_fail_on", policy.audit_fail_on)
        set_output(output, "audit_production_only", "true" if policy.audit_production_only else "false")
        return 0

    print("unknown command", file=sys.stderr)  # pragma: no cover
    return 2  # pragma: no cover


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
