"""Major-version drift of the policy's core packages (``npm outdated --json``)."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from relkit.markdown import cell, table

COMMENT_MARKER_NAME = "DEPENDENCY_CHECK"

MAJOR = "major"
MINOR = "minor"
PATCH = "patch"
NONE = "none"

_VERSION_RE = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")

_UPDATE_ICON = {MAJOR: "⚠️", MINOR: "🔼", PATCH: "🔹", NONE: "✅"}


def _parse_version(value: object) -> tuple[int, int, int] | None:
    match = _VERSION_RE.search(str(value or ""))
    if not match:
        return None
    return tuple(int(part) if part else 0 for part in match.groups())  # type: ignore[return-value]


def update_kind(current: object, latest: object) -> str:
    """Classify the ``current`` -> ``latest`` jump.

    Below 1.0.0 a minor bump is breaking, so it counts as major.
    """
    cur = _parse_version(current)
    new = _parse_version(latest)
    if cur is None or new is None or new <= cur:
        return NONE
    if new[0] != cur[0]:
        return MAJOR
    if cur[0] == 0 and new[1] != cur[1]:
        return MAJOR
    if new[1] != cur[1]:
        return MINOR
    return PATCH


@dataclass(frozen=True)
class PackageStatus:
    name: str
    current: str
    wanted: str
    latest: str
    kind: str


@dataclass(frozen=True)
class DependencyReport:
    packages: list[PackageStatus] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    @property
    def major_updates(self) -> list[PackageStatus]:
        return [p for p in self.packages if p.kind == MAJOR]

    @property
    def status(self) -> str:
        return "warn" if self.major_updates else "pass"


def evaluate_outdated(outdated: Any, core_packages: Iterable[str]) -> DependencyReport:
    """Check each core package against ``npm outdated --json`` output.

    Packages absent from the output are up to date; packages npm reports
    without a ``current`` version are not installed and listed as missing.
    """
    data = outdated if isinstance(outdated, dict) else {}
    report = DependencyReport()
    for name in dict.fromkeys(core_packages):
        info = data.get(name)
        if info is None:
            continue
        # Workspaces report a list of entries, one per dependent.
        if isinstance(info, list):
            info = next((item for item in info if isinstance(item, dict)), {})
        if not isinstance(info, dict):
            continue
        current = str(info.get("current") or "").strip()
        if not current:
            report.missing.append(name)
            continue
        latest = str(info.get("latest") or "").strip()
        report.packages.append(
            PackageStatus(
                name=name,
                current=current,
                wanted=str(info.get("wanted") or "").strip(),
                latest=latest,
                kind=update_kind(current, latest),
            )
        )
    return report


def render_dependency_report(report: DependencyReport, core_packages: Iterable[str]) -> str:
    core = list(dict.fromkeys(core_packages))
    lines = ["## 📦 Dependency Check", ""]

    if not core:
        lines.extend(["No core packages configured.", ""])
    elif report.major_updates:
        count = len(report.major_updates)
        noun = "package has" if count == 1 else "packages have"
        lines.extend([f"⚠️ **{count} core {noun} a major update available**", ""])
    else:
        lines.extend([f"✅ **All {len(core)} core packages are within their major version**", ""])

    rows = [
        [
            f"`{cell(p.name)}`",
            cell(p.current),
            cell(p.wanted) or "—",
            cell(p.latest) or "—",
            f"{_UPDATE_ICON.get(p.kind, '')} {p.kind}".strip(),
        ]
        for p in report.packages
    ]
    if rows:
        lines.extend(table(["Package", "Current", "Wanted", "Latest", "Update"], rows))
        lines.append("")

    if report.missing:
        names = ", ".join(f"`{cell(n)}`" for n in report.missing)
        lines.extend([f"Not installed: {names}", ""])

    lines.append("---")
    lines.append("*Major updates are reported as a warning and do not fail the build.*")
    return "\n".join(lines) + "\n"
