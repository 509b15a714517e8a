"""Render a classified npm audit as the security-audit PR comment."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from relkit.advisories import Advisory, ClassifiedReport, severity_rank
from relkit.markdown import cell, details_block, link, severity_icon, table

COMMENT_MARKER_NAME = "SECURITY_AUDIT"

_ADVISORY_HEADERS = ["Advisory", "Severity", "Package", "Description", "Fix"]
_WAIVED_HEADERS = ["Advisory", "Severity", "Package", "Reason", "Expires"]


@dataclass(frozen=True)
class RenderedReport:
    markdown: str
    status: str


def _by_severity(advisories: list[Advisory]) -> list[Advisory]:
    # sorted() is stable: equal severities keep audit order.
    return sorted(advisories, key=lambda a: severity_rank(a.severity), reverse=True)


def _advisory_rows(advisories: list[Advisory], *, icons: bool) -> list[list[str]]:
    rows = []
    for a in _by_severity(advisories):
        severity = f"{severity_icon(a.severity)} {a.severity}" if icons else a.severity
        rows.append([link(a.id, a.url), cell(severity), cell(a.package), cell(a.title), cell(a.fix)])
    return rows


def severity_summary(advisories: list[Advisory]) -> str:
    """``2 critical, 1 low`` ordered from most to least severe."""
    counts = Counter(a.severity for a in advisories)
    ordered = sorted(counts.items(), key=lambda kv: severity_rank(kv[0]), reverse=True)
    return ", ".join(f"{n} {sev}" for sev, n in ordered)


def render_audit_report(report: ClassifiedReport) -> RenderedReport:
    """Render markdown for ``report``; the status is taken from the report unchanged."""
    threshold = report.threshold
    lines = ["## 🔒 Security Audit", ""]

    if report.total == 0:
        lines.extend(["✅ **No vulnerabilities found.** Clean audit.", ""])
    else:
        failing = report.failing
        if failing:
            noun = "vulnerability" if len(failing) == 1 else "vulnerabilities"
            lines.append(f"❌ **{len(failing)} {noun}** above threshold (`{threshold}`)")
        else:
            lines.append(f"✅ **No unallowlisted vulnerabilities** above threshold (`{threshold}`)")
        lines.append("")
        lines.append(
            f"Total: {report.total} advisories ({severity_summary(report.all_advisories())})"
        )
        lines.append("")

        if failing:
            lines.extend(["### Failing Vulnerabilities", ""])
            lines.extend(table(_ADVISORY_HEADERS, _advisory_rows(failing, icons=True)))
            lines.append("")

        if report.waived:
            rows = [
                [
                    link(w.advisory.id, w.advisory.url),
                    cell(w.advisory.severity),
                    cell(w.advisory.package),
                    cell(w.reason) or "—",
                    w.expires.isoformat() if w.expires else "—",
                ]
                for w in report.waived
            ]
            lines.extend(["### Allowlisted (waived)", ""])
            lines.extend(table(_WAIVED_HEADERS, rows, align=["left"] * 4 + ["right"]))
            lines.append("")

        if report.below_threshold:
            body = table(_ADVISORY_HEADERS, _advisory_rows(report.below_threshold, icons=False))
            summary = f"Below threshold ({len(report.below_threshold)} advisories)"
            lines.extend(details_block(body, summary=summary))
            lines.append("")

    lines.append("---")
    lines.append(f"*Threshold: `{threshold}` | Generated by relkit security audit*")
    return RenderedReport(markdown="\n".join(lines) + "\n", status=report.status)
