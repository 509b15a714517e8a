"""Rewrite a semantic-release config for a PR preview run.

The preview treats the PR branch as the release branch and must neither
publish a GitHub release nor push a release commit, so the publishing and
commit-back plugins are removed. YAML is edited line by line to keep the
user's comments and formatting; JSON is round-tripped through ``json``.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

PUBLISH_PLUGIN = "@semantic-release/github"
COMMIT_BACK_PLUGIN = "@semantic-release/git"
PREVIEW_STRIPPED_PLUGINS = (PUBLISH_PLUGIN, COMMIT_BACK_PLUGIN)

YAML = "yaml"
JSON = "json"

_JS_SUFFIXES = {".js", ".cjs", ".mjs", ".ts"}

# "branches:" followed by its block value: indented lines, or an indentless
# "- item" sequence at column 0. Blank lines after the block are not part of it.
_BLOCK_BRANCHES_RE = re.compile(
    r"^branches:[ \t]*(?:#.*)?\n"
    r"(?:(?:[ \t]*\n)*(?:[ \t]+\S.*|-(?:[ \t].*)?)(?:\n|\Z))*",
    re.MULTILINE,
)
# Inline value, including a flow list continued on indented lines.
_INLINE_BRANCHES_RE = re.compile(
    r"^branches:[^\n]*(?:\n[ \t]+\S[^\n]*)*(?:\n\][^\n]*)?", re.MULTILINE
)


class ReleaseConfigError(ValueError):
    """Release config cannot be rewritten."""


def detect_format(path: Path, document: str) -> str:
    """Pick ``yaml`` or ``json`` from the file name, sniffing bare ``.releaserc``."""
    suffix = path.suffix.lower()
    if suffix in (".yml", ".yaml"):
        return YAML
    if suffix == ".json":
        return JSON
    if suffix in _JS_SUFFIXES:
        raise ReleaseConfigError(f"JavaScript release configs are not supported: {path}")
    return JSON if document.lstrip().startswith("{") else YAML


def _indent_width(line: str) -> int:
    return len(line) - len(line.lstrip(" \t"))


def _plugin_item_pattern(name: str) -> re.Pattern[str]:
    quoted = re.escape(name)
    # "- name", "- - name" (array with options on following lines) or
    # "- [name, {...}]". The trailing guard keeps "@x/git" from matching "@x/github".
    return re.compile(
        r"^[ \t]*-[ \t]+(?:-[ \t]+|\[[ \t]*)?"
        rf"(?P<q>[\"']?){quoted}(?P=q)"
        r"[ \t]*(?:$|,|\]|#)"
    )


def _strip_yaml_plugins(document: str, names: tuple[str, ...]) -> str:
    patterns = [_plugin_item_pattern(name) for name in names]
    lines = document.splitlines(keepends=True)
    out: list[str] = []
    pending_blank: list[str] = []
    skip_deeper_than: int | None = None

    for line in lines:
        if skip_deeper_than is not None:
            if not line.strip():
                pending_blank.append(line)
                continue
            if _indent_width(line) > skip_deeper_than:
                pending_blank.clear()
                continue
            skip_deeper_than = None
            out.extend(pending_blank)
            pending_blank.clear()

        if any(p.match(line) for p in patterns):
            # Options of a nested "- - name" entry sit on deeper-indented lines.
            skip_deeper_than = _indent_width(line)
            continue
        out.append(line)
    out.extend(pending_blank)
    return "".join(out)


def _rewrite_yaml(document: str, branch: str) -> str:
    replacement = f"branches: [{json.dumps(branch)}]"
    if _BLOCK_BRANCHES_RE.search(document):
        # The block form must be handled first: an inline replacement would
        # leave its list items dangling.
        document = _BLOCK_BRANCHES_RE.sub(lambda _m: replacement + "\n", document, count=1)
    else:
        document = _INLINE_BRANCHES_RE.sub(lambda _m: replacement, document, count=1)
    return _strip_yaml_plugins(document, PREVIEW_STRIPPED_PLUGINS)


def _plugin_name(entry: Any) -> str | None:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, list) and entry and isinstance(entry[0], str):
        return entry[0]
    return None


def _rewrite_json(document: str, branch: str) -> str:
    try:
        config = json.loads(document)
    except json.JSONDecodeError as exc:
        raise ReleaseConfigError(f"invalid JSON release config: {exc}") from exc
    if not isinstance(config, dict):
        raise ReleaseConfigError("JSON release config must be an object")

    config["branches"] = [branch]
    plugins = config.get("plugins")
    if isinstance(plugins, list):
        config["plugins"] = [
            p for p in plugins if _plugin_name(p) not in PREVIEW_STRIPPED_PLUGINS
        ]
    return json.dumps(config, indent=2, ensure_ascii=False) + "\n"


def rewrite_release_config(document: str, fmt: str, branch: str) -> str:
    """Restrict releases to ``branch`` and drop the publish/commit-back plugins."""
    branch = branch.strip()
    if not branch:
        raise ReleaseConfigError("branch name must be non-empty")
    if fmt == YAML:
        return _rewrite_yaml(document, branch)
    if fmt == JSON:
        return _rewrite_json(document, branch)
    raise ReleaseConfigError(f"unknown release config format: {fmt}")
