"""GitHub PR comment and description utilities.

Thin ``gh api`` wrappers plus the read-modify-write procedures that keep one
marked comment, or one marked section of the PR body, up to date.
"""
from __future__ import annotations

import json
import os
import random
import subprocess
import sys
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager

from relkit.sections import CommentPlan, plan_comment_upsert, update_section


class ExternalCallError(Exception):
    """A gh CLI call failed."""


class CommentPermissionError(ExternalCallError):
    """Token lacks pull-requests: write permission."""


class TransientGitHubError(ExternalCallError):
    """GitHub API returned a transient error (5xx)."""


class GhCommandError(ExternalCallError):
    """gh exited non-zero for a non-transient reason."""

    def __init__(self, returncode: int, stderr: str):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"gh exited with {returncode}: {stderr.strip()}")


def _is_transient_error(stderr: str) -> bool:
    """Check if error is a transient GitHub API error (5xx)."""
    transient_codes = ("502", "503", "504")
    lower_stderr = stderr.lower()
    # Handle both gh CLI format "(http 503)" and raw "HTTP 503" formats
    return any(
        f"(http {code})" in lower_stderr or f"http {code}" in lower_stderr
        for code in transient_codes
    )


def _run_gh(
    args: list[str],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
) -> subprocess.CompletedProcess[str]:
    """Run a gh CLI command with retry logic for transient errors.

    Args:
        args: Arguments to pass to gh CLI
        max_retries: Maximum number of attempts for transient errors
        base_delay: Base delay in seconds between retries (uses exponential backoff)

    Raises:
        CommentPermissionError: Token lacks pull-requests: write permission
        TransientGitHubError: GitHub API returned 5xx after all retries
        GhCommandError: Other gh CLI failures, including gh not being installed
    """
    for attempt in range(max_retries):
        try:
            result = subprocess.run(
                ["gh", *args], capture_output=True, text=True, check=False
            )
        except OSError as exc:
            raise GhCommandError(127, str(exc)) from exc

        if result.returncode == 0:
            return result

        stderr = (result.stderr or "").lower()

        # Check for permission errors (don't retry these)
        if any(s in stderr for s in ("403", "resource not accessible", "insufficient")):
            raise CommentPermissionError(
                "Unable to update the pull request: token lacks pull-requests: write permission.\n"
                "Add this to your workflow:\n"
                "permissions:\n"
                "  contents: read\n"
                "  pull-requests: write"
            )

        if _is_transient_error(result.stderr or ""):
            if attempt < max_retries - 1:
                # Exponential backoff with jitter: 1s, 2s, 4s + random jitter
                delay = base_delay * (2 ** attempt) + random.uniform(0, 0.5)
                print(
                    f"::warning::GitHub API error (attempt {attempt + 1}/{max_retries}), "
                    f"retrying in {delay:.1f}s...",
                    file=sys.stderr,
                )
                time.sleep(delay)
                continue
            raise TransientGitHubError(
                f"GitHub API returned transient error after {max_retries} attempts: "
                f"{result.stderr}"
            )

        raise GhCommandError(result.returncode, result.stderr or "")

    # The loop must either return or raise. This code should be unreachable.
    raise RuntimeError("_run_gh retry loop exited unexpectedly")


@contextmanager
def _body_file(body: str) -> Iterator[str]:
    """Write ``body`` to a temp file for ``-F body=@file`` (avoids argv length limits)."""
    fd, path = tempfile.mkstemp(prefix="relkit-body-", suffix=".md")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(body)
        yield path
    finally:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass


def fetch_comments(
    repo: str,
    pr_number: int,
    *,
    per_page: int = 100,
    max_pages: int = 20,
) -> list[dict]:
    """Fetch all issue comments for a PR (paginated)."""
    comments: list[dict] = []
    for page in range(1, max_pages + 1):
        endpoint = f"repos/{repo}/issues/{pr_number}/comments?per_page={per_page}&page={page}"
        result = _run_gh(["api", endpoint])
        try:
            payload = json.loads(result.stdout or "[]")
        except json.JSONDecodeError:
            break
        if not isinstance(payload, list) or not payload:
            break
        comments.extend([c for c in payload if isinstance(c, dict)])
        if len(payload) < per_page:
            break
    return comments


# One gh attempt per comment write; upsert_marked_comment owns any follow-up.
WRITE_ATTEMPTS = 1


def create_comment(repo: str, pr_number: int, body: str) -> None:
    with _body_file(body) as path:
        _run_gh([
            "api",
            f"repos/{repo}/issues/{pr_number}/comments",
            "-F", f"body=@{path}",
        ], max_retries=WRITE_ATTEMPTS)


def update_comment(repo: str, comment_id: int, body: str) -> None:
    with _body_file(body) as path:
        _run_gh([
            "api",
            f"repos/{repo}/issues/comments/{comment_id}",
            "-X", "PATCH",
            "-F", f"body=@{path}",
        ], max_retries=WRITE_ATTEMPTS)


def get_pr_body(repo: str, pr_number: int) -> str:
    """Current PR description; a PR without one yields ``""``."""
    result = _run_gh(["api", f"repos/{repo}/pulls/{pr_number}"])
    try:
        payload = json.loads(result.stdout or "{}")
    except json.JSONDecodeError as exc:
        raise GhCommandError(0, f"unparseable pull request payload: {exc}") from exc
    if not isinstance(payload, dict):
        return ""
    return str(payload.get("body") or "")


def set_pr_body(repo: str, pr_number: int, body: str) -> None:
    """PATCH the PR description, retrying once on 5xx."""
    with _body_file(body) as path:
        _run_gh([
            "api",
            f"repos/{repo}/pulls/{pr_number}",
            "-X", "PATCH",
            "-F", f"body=@{path}",
        ], max_retries=2)


def _write_landed(repo: str, pr_number: int, plan: CommentPlan, comment_id: int | None = None) -> bool:
    """Whether a failed write actually went through (e.g. the response was lost).

    With ``comment_id`` only that comment is checked; otherwise any comment
    already carrying the planned body counts.
    """
    try:
        comments = fetch_comments(repo, pr_number)
    except ExternalCallError:
        return False
    for comment in comments:
        if comment_id is not None and comment.get("id") != comment_id:
            continue
        if str(comment.get("body") or "") == plan.body:
            return True
    return False


def upsert_marked_comment(
    *,
    repo: str,
    pr_number: int,
    marker: str,
    content: str,
    comments: list[dict] | None = None,
) -> str:
    """Find the PR comment starting with ``marker`` and update it, or create one.

    At most two writes are made. A failed update is checked against a fresh
    listing: an anchor that already carries the new body counts as updated,
    anything else falls back to creating a comment, and that create is not
    retried. A transient failure of a first create is checked the same way
    and retried once only if no comment with the body exists.
    Returns ``"updated"`` or ``"created"``.

    If comments is provided, searches that list instead of fetching from API.

    Raises:
        ExternalCallError: listing or creating comments failed.
    """
    if comments is None:
        comments = fetch_comments(repo, pr_number)

    plan = plan_comment_upsert(comments, marker, content)
    if plan.action == "update" and plan.comment_id is not None:
        try:
            update_comment(repo, plan.comment_id, plan.body)
            return "updated"
        except CommentPermissionError:
            raise
        except ExternalCallError as exc:
            if _write_landed(repo, pr_number, plan, plan.comment_id):
                return "updated"
            print(
                f"::warning::Failed to update comment {plan.comment_id} ({exc}), creating a new one",
                file=sys.stderr,
            )
        create_comment(repo, pr_number, plan.body)
        return "created"

    try:
        create_comment(repo, pr_number, plan.body)
    except TransientGitHubError as exc:
        if _write_landed(repo, pr_number, plan):
            return "created"
        print(f"::warning::Failed to create comment ({exc}), retrying once", file=sys.stderr)
        create_comment(repo, pr_number, plan.body)
    return "created"


def update_pr_body_section(
    *,
    repo: str,
    pr_number: int,
    start_marker: str,
    end_marker: str,
    content: str,
) -> bool:
    """Rewrite the marked section of the PR description.

    Returns False when the description already held exactly this section and
    no write was needed.
    """
    current = get_pr_body(repo, pr_number)
    updated = update_section(current, start_marker, end_marker, content)
    if updated == current:
        return False
    set_pr_body(repo, pr_number, updated)
    return True
