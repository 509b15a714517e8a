"""npm audit advisory extraction and policy classification."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from relkit.policy import Policy

SEVERITY_RANK = {"critical": 4, "high": 3, "moderate": 2, "low": 1, "info": 0}

_GHSA_RE = re.compile(r"GHSA-[a-z0-9-]+")


def severity_rank(severity: object) -> int:
    """Rank used for threshold comparison; unknown severities rank 0."""
    return SEVERITY_RANK.get(str(severity or "").strip().lower(), 0)


@dataclass(frozen=True)
class Advisory:
    """A single advisory reported against an installed package."""
    id: str
    severity: str
    package: str
    title: str = "Unknown"
    fix: str = "No"
    url: str = ""


@dataclass(frozen=True)
class WaivedAdvisory:
    """An advisory suppressed by an active allowlist entry."""
    advisory: Advisory
    reason: str = ""
    expires: date | None = None


@dataclass(frozen=True)
class ClassifiedReport:
    """Advisories split into failing / waived / below-threshold."""
    threshold: str
    failing: list[Advisory] = field(default_factory=list)
    waived: list[WaivedAdvisory] = field(default_factory=list)
    below_threshold: list[Advisory] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "fail" if self.failing else "pass"

    @property
    def total(self) -> int:
        return len(self.failing) + len(self.waived) + len(self.below_threshold)

    def all_advisories(self) -> list[Advisory]:
        """Every classified advisory, failing first."""
        return [
            *self.failing,
            *(item.advisory for item in self.waived),
            *self.below_threshold,
        ]


def _fix_label(fix_available: Any) -> str:
    if isinstance(fix_available, dict):
        name = str(fix_available.get("name") or "").strip()
        version = str(fix_available.get("version") or "").strip()
        if name and version:
            return f"{name}@{version}"
        return "Yes"
    return "Yes" if fix_available else "No"


def extract_advisories(audit: Any) -> list[Advisory]:
    """Collect unique advisories from ``npm audit --json`` output.

    Only object ``via`` entries with a URL are advisories; string entries
    point at another vulnerable package and are skipped. The id is the GHSA
    token from the URL, falling back to the npm source number.
    """
    if not isinstance(audit, dict):
        return []
    vulnerabilities = audit.get("vulnerabilities")
    if not isinstance(vulnerabilities, dict):
        return []

    advisories: list[Advisory] = []
    seen: set[str] = set()
    for pkg, info in vulnerabilities.items():
        if not isinstance(info, dict):
            continue
        via_list = info.get("via")
        if not isinstance(via_list, list):
            continue
        fix = _fix_label(info.get("fixAvailable"))
        for via in via_list:
            if not isinstance(via, dict) or not via.get("url"):
                continue
            url = str(via["url"])
            match = _GHSA_RE.search(url)
            advisory_id = match.group(0) if match else str(via.get("source"))
            if advisory_id in seen:
                continue
            seen.add(advisory_id)
            advisories.append(
                Advisory(
                    id=advisory_id,
                    severity=str(via.get("severity") or "unknown").strip().lower(),
                    package=str(via.get("name") or pkg),
                    title=str(via.get("title") or "Unknown"),
                    fix=fix,
                    url=url,
                )
            )
    return advisories


def classify(advisories: Iterable[Advisory], policy: Policy, today: date) -> ClassifiedReport:
    """Apply the allowlist and ``fail-on`` threshold.

    An allowlist entry waives its advisory until the end of its ``expires``
    day; once expired the advisory is judged on severity alone.
    """
    threshold = policy.audit_fail_on
    threshold_rank = severity_rank(threshold)
    report = ClassifiedReport(threshold=threshold)

    seen: set[str] = set()
    for advisory in advisories:
        if advisory.id in seen:
            continue
        seen.add(advisory.id)

        entry = policy.allowlist.get(advisory.id)
        if entry is not None and entry.is_active(today):
            report.waived.append(
                WaivedAdvisory(advisory=advisory, reason=entry.reason, expires=entry.expires)
            )
            continue

        if severity_rank(advisory.severity) >= threshold_rank:
            report.failing.append(advisory)
        else:
            report.below_threshold.append(advisory)
    return report
