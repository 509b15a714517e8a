"""GitHub Actions runtime helpers.

Workflow-command logging (``::warning::`` and friends), step outputs, and the
per-invocation context resolved from the runner environment.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from relkit.policy import Policy, PolicyFallbacks, load_policy


def notice(message: str) -> None:
    """Notice."""
    print(f"::notice::{message}", file=sys.stderr)


def warn(message: str) -> None:
    """Warn."""
    print(f"::warning::{message}", file=sys.stderr)


def error(message: str) -> None:
    """Error."""
    print(f"::error::{message}", file=sys.stderr)


def group(title: str) -> None:
    print(f"::group::{title}", file=sys.stderr)


def endgroup() -> None:
    print("::endgroup::", file=sys.stderr)


@dataclass(frozen=True)
class ActionContext:
    """Runner environment needed by the step scripts."""

    repo: str = ""
    pr_number: int | None = None
    github_output: Path | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ActionContext":
        """Build the context from ``GITHUB_REPOSITORY``, ``PR_NUMBER`` and ``GITHUB_OUTPUT``."""
        env = os.environ if environ is None else environ
        repo = (env.get("GITHUB_REPOSITORY") or "").strip()

        pr_number: int | None = None
        raw_pr = (env.get("PR_NUMBER") or "").strip()
        if raw_pr:
            try:
                pr_number = int(raw_pr)
            except ValueError:
                pr_number = None
            if pr_number is not None and pr_number <= 0:
                pr_number = None

        raw_output = (env.get("GITHUB_OUTPUT") or "").strip()
        github_output = Path(raw_output) if raw_output else None
        return cls(repo=repo, pr_number=pr_number, github_output=github_output)

    @property
    def has_pull_request(self) -> bool:
        return bool(self.repo) and self.pr_number is not None


def load_step_policy(path: Path, environ: Mapping[str, str] | None = None) -> Policy:
    """Load the dependency policy for a step, announcing where it came from.

    Raises:
        ConfigError: the resolved ``fail-on`` threshold is invalid.
    """
    env = os.environ if environ is None else environ
    policy = load_policy(path, PolicyFallbacks.from_env(env))
    for message in policy.warnings:
        warn(message)
    if policy.source is not None:
        notice(f"Using config from {policy.source}")
    elif not policy.warnings:
        notice(f"No {path.name} found, using action input defaults")
    return policy


def set_output(path: Path | None, key: str, value: str) -> None:
    """Append a step output; multi-line values use the heredoc delimiter form.

    Without a ``GITHUB_OUTPUT`` file (local runs) the pair is echoed to stdout.
    """
    if path is None:
        print(f"{key}={value}")
        return
    with path.open("a", encoding="utf-8") as fh:
        if "\n" not in value:
            fh.write(f"{key}={value}\n")
            return
        delimiter = f"RELKIT_{key.upper()}_{uuid4().hex}"
        while delimiter in value:
            delimiter = f"RELKIT_{key.upper()}_{uuid4().hex}"
        fh.write(f"{key}<<{delimiter}\n")
        fh.write(value)
        if not value.endswith("\n"):
            fh.write("\n")
        fh.write(f"{delimiter}\n")
