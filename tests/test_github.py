"""Tests for relkit.github — gh wrapper, comment upsert, PR body sections."""
from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

import relkit.github as mod
from relkit.github import (
    CommentPermissionError,
    GhCommandError,
    TransientGitHubError,
    fetch_comments,
    get_pr_body,
    update_pr_body_section,
    upsert_marked_comment,
)

MARKER = "<!-- SECURITY_AUDIT -->"


class FakeGh:
    """Records gh calls; the body of ``-F body=@file`` is captured before the file is removed."""

    def __init__(self, responses=None):
        self.calls: list[list[str]] = []
        self.bodies: list[str] = []
        self.responses = responses or {}

    def __call__(self, args, **kwargs):
        self.calls.append(args)
        for arg in args:
            if arg.startswith("body=@"):
                self.bodies.append(Path(arg[len("body=@"):]).read_text(encoding="utf-8"))
        key = self._key(args)
        result = self.responses.get(key)
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(args)
        return subprocess.CompletedProcess(args=args, returncode=0, stdout=result or "", stderr="")

    @staticmethod
    def _key(args):
        method = args[args.index("-X") + 1] if "-X" in args else ("POST" if "-F" in args else "GET")
        return (method, args[1].split("?")[0])


class TestUpsertMarkedComment:
    def test_creates_comment_when_none_exists(self, monkeypatch):
        gh = FakeGh()
        monkeypatch.setattr(mod, "_run_gh", gh)

        outcome = upsert_marked_comment(
            repo="owner/repo", pr_number=42, marker=MARKER, content="Report", comments=[]
        )

        assert outcome == "created"
        assert len(gh.calls) == 1
        assert gh.calls[0][:2] == ["api", "repos/owner/repo/issues/42/comments"]
        assert gh.calls[0][2] == "-F"
        assert gh.bodies == [f"{MARKER}\nReport"]

    def test_updates_existing_comment(self, monkeypatch):
        gh = FakeGh()
        monkeypatch.setattr(mod, "_run_gh", gh)

        outcome = upsert_marked_comment(
            repo="owner/repo",
            pr_number=42,
            marker=MARKER,
            content="New",
            comments=[{"id": 1, "body": "hi"}, {"id": 555, "body": f"{MARKER}\nOld"}],
        )

        assert outcome == "updated"
        assert gh.calls[0][:4] == ["api", "repos/owner/repo/issues/comments/555", "-X", "PATCH"]
        assert gh.bodies == [f"{MARKER}\nNew"]

    def test_fetches_comments_when_not_provided(self, monkeypatch):
        listing = json.dumps([{"id": 999, "body": f"{MARKER}\nContent"}])
        gh = FakeGh({("GET", "repos/owner/repo/issues/42/comments"): listing})
        monkeypatch.setattr(mod, "_run_gh", gh)

        upsert_marked_comment(repo="owner/repo", pr_number=42, marker=MARKER, content="C")

        assert len(gh.calls) == 2
        assert gh.calls[1][1] == "repos/owner/repo/issues/comments/999"

    def test_failed_update_falls_back_to_create(self, monkeypatch):
        gh = FakeGh({
            ("PATCH", "repos/o/r/issues/comments/7"): GhCommandError(1, "HTTP 404: Not Found"),
            ("GET", "repos/o/r/issues/5/comments"): "[]",
        })
        monkeypatch.setattr(mod, "_run_gh", gh)

        outcome = upsert_marked_comment(
            repo="o/r", pr_number=5, marker=MARKER, content="x",
            comments=[{"id": 7, "body": f"{MARKER}\nold"}],
        )

        assert outcome == "created"
        assert [FakeGh._key(c) for c in gh.calls] == [
            ("PATCH", "repos/o/r/issues/comments/7"),
            ("GET", "repos/o/r/issues/5/comments"),
            ("POST", "repos/o/r/issues/5/comments"),
        ]

    def test_failed_update_that_landed_does_not_duplicate(self, monkeypatch):
        landed = json.dumps([{"id": 7, "body": f"{MARKER}\nx"}])
        gh = FakeGh({
            ("PATCH", "repos/o/r/issues/comments/7"): TransientGitHubError("502"),
            ("GET", "repos/o/r/issues/5/comments"): landed,
        })
        monkeypatch.setattr(mod, "_run_gh", gh)

        outcome = upsert_marked_comment(
            repo="o/r", pr_number=5, marker=MARKER, content="x",
            comments=[{"id": 7, "body": f"{MARKER}\nold"}],
        )

        assert outcome == "updated"
        assert ("POST", "repos/o/r/issues/5/comments") not in [FakeGh._key(c) for c in gh.calls]

    def test_permission_error_on_update_is_raised(self, monkeypatch):
        gh = FakeGh({("PATCH", "repos/o/r/issues/comments/7"): CommentPermissionError("no")})
        monkeypatch.setattr(mod, "_run_gh", gh)

        with pytest.raises(CommentPermissionError):
            upsert_marked_comment(
                repo="o/r", pr_number=5, marker=MARKER, content="x",
                comments=[{"id": 7, "body": f"{MARKER}\nold"}],
            )
        assert len(gh.calls) == 1

    def test_body_file_is_cleaned_up(self, monkeypatch):
        gh = FakeGh()
        monkeypatch.setattr(mod, "_run_gh", gh)

        upsert_marked_comment(repo="o/r", pr_number=1, marker=MARKER, content="x", comments=[])

        path = gh.calls[0][-1][len("body=@"):]
        assert not Path(path).exists()


def _fail_first(exc):
    """Response that raises ``exc`` on the first call and succeeds afterwards."""
    calls = []

    def respond(args):
        calls.append(args)
        if len(calls) == 1:
            raise exc
        return subprocess.CompletedProcess(args=args, returncode=0, stdout="", stderr="")

    return respond


def _post_count(gh):
    return [FakeGh._key(c)[0] for c in gh.calls].count("POST")


class TestWriteAttemptBound:
    def test_transient_create_is_retried_once(self, monkeypatch, capsys):
        gh = FakeGh({
            ("POST", "repos/o/r/issues/5/comments"): _fail_first(TransientGitHubError("HTTP 502")),
            ("GET", "repos/o/r/issues/5/comments"): "[]",
        })
        monkeypatch.setattr(mod, "_run_gh", gh)

        outcome = upsert_marked_comment(repo="o/r", pr_number=5, marker=MARKER, content="x", comments=[])

        assert outcome == "created"
        assert _post_count(gh) == 2
        assert "::warning::Failed to create comment" in capsys.readouterr().err

    def test_transient_create_that_landed_is_not_repeated(self, monkeypatch):
        landed = json.dumps([{"id": 3, "body": f"{MARKER}\nx"}])
        gh = FakeGh({
            ("POST", "repos/o/r/issues/5/comments"): TransientGitHubError("HTTP 502"),
            ("GET", "repos/o/r/issues/5/comments"): landed,
        })
        monkeypatch.setattr(mod, "_run_gh", gh)

        outcome = upsert_marked_comment(repo="o/r", pr_number=5, marker=MARKER, content="x", comments=[])

        assert outcome == "created"
        assert _post_count(gh) == 1

    def test_second_create_failure_is_raised(self, monkeypatch):
        gh = FakeGh({
            ("POST", "repos/o/r/issues/5/comments"): TransientGitHubError("HTTP 503"),
            ("GET", "repos/o/r/issues/5/comments"): "[]",
        })
        monkeypatch.setattr(mod, "_run_gh", gh)

        with pytest.raises(TransientGitHubError):
            upsert_marked_comment(repo="o/r", pr_number=5, marker=MARKER, content="x", comments=[])
        assert _post_count(gh) == 2

    def test_update_then_create_is_two_writes(self, monkeypatch):
        gh = FakeGh({
            ("PATCH", "repos/o/r/issues/comments/7"): TransientGitHubError("HTTP 502"),
            ("POST", "repos/o/r/issues/5/comments"): TransientGitHubError("HTTP 502"),
            ("GET", "repos/o/r/issues/5/comments"): "[]",
        })
        monkeypatch.setattr(mod, "_run_gh", gh)

        with pytest.raises(TransientGitHubError):
            upsert_marked_comment(
                repo="o/r", pr_number=5, marker=MARKER, content="x",
                comments=[{"id": 7, "body": f"{MARKER}\nold"}],
            )
        writes = [k for k in map(FakeGh._key, gh.calls) if k[0] != "GET"]
        assert writes == [
            ("PATCH", "repos/o/r/issues/comments/7"),
            ("POST", "repos/o/r/issues/5/comments"),
        ]

    def test_create_comment_makes_a_single_gh_call(self, monkeypatch):
        attempts = []

        def mock_subprocess_run(args, **kwargs):
            attempts.append(args)
            return subprocess.CompletedProcess(
                args=args, returncode=1, stdout="", stderr="HTTP 502 Bad Gateway"
            )

        monkeypatch.setattr(mod.subprocess, "run", mock_subprocess_run)
        monkeypatch.setattr(mod.time, "sleep", lambda _s: None)

        with pytest.raises(TransientGitHubError):
            mod.create_comment("o/r", 1, "body")
        assert len(attempts) == 1

    def test_pr_body_patch_retries_once(self, monkeypatch):
        attempts = []

        def mock_subprocess_run(args, **kwargs):
            attempts.append(args)
            return subprocess.CompletedProcess(args=args, returncode=1, stdout="", stderr="HTTP 504")

        monkeypatch.setattr(mod.subprocess, "run", mock_subprocess_run)
        monkeypatch.setattr(mod.time, "sleep", lambda _s: None)

        with pytest.raises(TransientGitHubError):
            mod.set_pr_body("o/r", 1, "body")
        assert len(attempts) == 2


class TestPrBodySection:
    def test_get_pr_body_null_is_empty(self, monkeypatch):
        gh = FakeGh({("GET", "repos/o/r/pulls/3"): json.dumps({"body": None})})
        monkeypatch.setattr(mod, "_run_gh", gh)
        assert get_pr_body("o/r", 3) == ""

    def test_appends_section(self, monkeypatch):
        gh = FakeGh({("GET", "repos/o/r/pulls/3"): json.dumps({"body": "Description"})})
        monkeypatch.setattr(mod, "_run_gh", gh)

        changed = update_pr_body_section(
            repo="o/r", pr_number=3, start_marker="<!-- S -->", end_marker="<!-- E -->",
            content="notes",
        )

        assert changed is True
        assert FakeGh._key(gh.calls[-1]) == ("PATCH", "repos/o/r/pulls/3")
        assert gh.bodies == ["Description\n\n<!-- S -->\nnotes\n<!-- E -->\n"]

    def test_unchanged_section_skips_write(self, monkeypatch):
        body = "Description\n\n<!-- S -->\nnotes\n<!-- E -->\n"
        gh = FakeGh({("GET", "repos/o/r/pulls/3"): json.dumps({"body": body})})
        monkeypatch.setattr(mod, "_run_gh", gh)

        changed = update_pr_body_section(
            repo="o/r", pr_number=3, start_marker="<!-- S -->", end_marker="<!-- E -->",
            content="notes",
        )

        assert changed is False
        assert len(gh.calls) == 1


class TestFetchComments:
    def test_stops_after_short_page(self, monkeypatch):
        pages = {
            1: json.dumps([{"id": i, "body": ""} for i in range(3)]),
            2: json.dumps([{"id": 9, "body": ""}, "junk"]),
        }
        requested = []

        def fake(args, **kwargs):
            page = int(args[1].rsplit("page=", 1)[1])
            requested.append(page)
            return subprocess.CompletedProcess(args=args, returncode=0, stdout=pages[page], stderr="")

        monkeypatch.setattr(mod, "_run_gh", fake)
        comments = fetch_comments("o/r", 1, per_page=3)
        assert [c["id"] for c in comments] == [0, 1, 2, 9]
        assert requested == [1, 2]

    def test_stops_on_empty_page(self, monkeypatch):
        pages = {1: json.dumps([{"id": 1, "body": ""}, {"id": 2, "body": ""}]), 2: "[]"}

        def fake(args, **kwargs):
            page = int(args[1].rsplit("page=", 1)[1])
            return subprocess.CompletedProcess(args=args, returncode=0, stdout=pages[page], stderr="")

        monkeypatch.setattr(mod, "_run_gh", fake)
        assert [c["id"] for c in fetch_comments("o/r", 1, per_page=2)] == [1, 2]

    def test_stops_on_invalid_json(self, monkeypatch):
        def fake(args, **kwargs):
            return subprocess.CompletedProcess(args=args, returncode=0, stdout="<html>", stderr="")

        monkeypatch.setattr(mod, "_run_gh", fake)
        assert fetch_comments("o/r", 1) == []


class TestRunGhErrorHandling:
    def test_403_raises_permission_error(self, monkeypatch):
        def mock_subprocess_run(args, **kwargs):
            return subprocess.CompletedProcess(
                args=args,
                returncode=1,
                stdout="",
                stderr="HTTP 403: Resource not accessible by integration",
            )

        monkeypatch.setattr(mod.subprocess, "run", mock_subprocess_run)

        with pytest.raises(CommentPermissionError, match="pull-requests: write"):
            mod._run_gh(["api", "repos/x/y/issues/1/comments"])

    def test_transient_error_retries_then_raises(self, monkeypatch):
        attempts = []

        def mock_subprocess_run(args, **kwargs):
            attempts.append(args)
            return subprocess.CompletedProcess(
                args=args, returncode=1, stdout="", stderr="gh: Bad Gateway (HTTP 502)"
            )

        monkeypatch.setattr(mod.subprocess, "run", mock_subprocess_run)
        monkeypatch.setattr(mod.time, "sleep", lambda _s: None)

        with pytest.raises(TransientGitHubError):
            mod._run_gh(["api", "x"], max_retries=3)
        assert len(attempts) == 3

    def test_transient_error_recovers(self, monkeypatch, capsys):
        results = iter([
            subprocess.CompletedProcess(args=[], returncode=1, stdout="", stderr="HTTP 503"),
            subprocess.CompletedProcess(args=[], returncode=0, stdout="ok", stderr=""),
        ])
        monkeypatch.setattr(mod.subprocess, "run", lambda args, **kwargs: next(results))
        monkeypatch.setattr(mod.time, "sleep", lambda _s: None)

        assert mod._run_gh(["api", "x"]).stdout == "ok"
        assert "::warning::GitHub API error (attempt 1/3)" in capsys.readouterr().err

    def test_other_failures_raise_gh_command_error(self, monkeypatch):
        def mock_subprocess_run(args, **kwargs):
            return subprocess.CompletedProcess(args=args, returncode=1, stdout="", stderr="HTTP 404: Not Found")

        monkeypatch.setattr(mod.subprocess, "run", mock_subprocess_run)

        with pytest.raises(GhCommandError) as exc_info:
            mod._run_gh(["api", "x"])
        assert exc_info.value.returncode == 1
        assert "404" in exc_info.value.stderr

    def test_missing_gh_binary(self, monkeypatch):
        def mock_subprocess_run(args, **kwargs):
            raise FileNotFoundError("gh")

        monkeypatch.setattr(mod.subprocess, "run", mock_subprocess_run)

        with pytest.raises(GhCommandError):
            mod._run_gh(["api", "x"])
