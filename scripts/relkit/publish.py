"""Best-effort PR commentary.

Posting to the PR is a side effect of a step, never its outcome: missing PR
context is skipped and gh failures only produce a warning.
"""

from __future__ import annotations

from relkit.actions import ActionContext, notice, warn
from relkit.github import ExternalCallError, update_pr_body_section, upsert_marked_comment
from relkit.sections import comment_marker


def publish_comment(ctx: ActionContext, marker_name: str, content: str, label: str) -> bool:
    """Upsert the ``marker_name`` comment on the PR. Returns True when posted."""
    if not ctx.has_pull_request:
        warn(f"PR_NUMBER or GITHUB_REPOSITORY not set, skipping {label} comment")
        return False

    try:
        outcome = upsert_marked_comment(
            repo=ctx.repo,
            pr_number=ctx.pr_number,
            marker=comment_marker(marker_name),
            content=content,
        )
    except ExternalCallError as exc:
        warn(f"Failed to post {label} comment on PR #{ctx.pr_number}: {exc}")
        return False

    notice(f"PR #{ctx.pr_number} {label} comment {outcome}")
    return True


def publish_section(
    ctx: ActionContext,
    start_marker: str,
    end_marker: str,
    content: str,
    label: str,
) -> bool:
    """Replace or append the marked ``label`` section of the PR description."""
    if not ctx.has_pull_request:
        warn("PR_NUMBER or GITHUB_REPOSITORY not set, skipping PR body update")
        return False

    try:
        changed = update_pr_body_section(
            repo=ctx.repo,
            pr_number=ctx.pr_number,
            start_marker=start_marker,
            end_marker=end_marker,
            content=content,
        )
    except ExternalCallError as exc:
        warn(f"Failed to update {label} section of PR #{ctx.pr_number}: {exc}")
        return False

    if changed:
        notice(f"PR #{ctx.pr_number} body updated with {label}")
    else:
        notice(f"PR #{ctx.pr_number} {label} section already up to date")
    return True
