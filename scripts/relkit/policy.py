"""Typed loader for .dependency-policy.yml.

Document values override the action-input fallbacks field by field. A policy
file that cannot be read as a policy degrades to the fallbacks; an invalid
``fail-on`` threshold is always fatal.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

POLICY_FILE = ".dependency-policy.yml"

SEVERITY_LEVELS = ("critical", "high", "moderate", "low")

DEFAULT_FAIL_ON = "high"


class ConfigError(RuntimeError):
    """Policy resolves to an unusable configuration."""
    pass


class PolicyParseError(ValueError):
    """Policy document is malformed; callers fall back to defaults."""
    pass


@dataclass(frozen=True)
class AllowlistEntry:
    """A waiver for a single advisory id."""
    id: str
    reason: str = ""
    expires: date | None = None

    def is_active(self, today: date) -> bool:
        """Active when unbounded or expiring today or later."""
        return self.expires is None or self.expires >= today


@dataclass(frozen=True)
class PolicyFallbacks:
    """Action inputs used when the policy document is absent or silent."""
    core_packages: tuple[str, ...] = ()
    audit_fail_on: str = DEFAULT_FAIL_ON
    audit_production_only: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "PolicyFallbacks":
        """Read ``INPUT_CORE_PACKAGES``, ``INPUT_AUDIT_FAIL_ON`` and ``INPUT_AUDIT_PRODUCTION_ONLY``."""
        packages = tuple(
            item.strip()
            for item in (environ.get("INPUT_CORE_PACKAGES") or "").split(",")
            if item.strip()
        )
        fail_on = (environ.get("INPUT_AUDIT_FAIL_ON") or "").strip().lower() or DEFAULT_FAIL_ON
        production_only = (environ.get("INPUT_AUDIT_PRODUCTION_ONLY") or "").strip().lower() == "true"
        return cls(
            core_packages=packages,
            audit_fail_on=fail_on,
            audit_production_only=production_only,
        )


@dataclass(frozen=True)
class Policy:
    """Resolved dependency policy."""
    core_packages: tuple[str, ...] = ()
    audit_fail_on: str = DEFAULT_FAIL_ON
    audit_production_only: bool = False
    allowlist: Mapping[str, AllowlistEntry] = field(default_factory=dict)
    source: Path | None = None
    warnings: tuple[str, ...] = ()


def _require_mapping(value: Any, ctx: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise PolicyParseError(f"{ctx}: expected mapping")
    return value


def _require_list(value: Any, ctx: str) -> list[Any]:
    if not isinstance(value, list):
        raise PolicyParseError(f"{ctx}: expected list")
    return value


def _scalar_text(value: Any, ctx: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise PolicyParseError(f"{ctx}: expected scalar")
    return str(value).strip()


def _parse_bool(value: Any, ctx: str) -> bool:
    if isinstance(value, bool):
        return value
    text = _scalar_text(value, ctx).lower()
    if text in {"true", "false"}:
        return text == "true"
    raise PolicyParseError(f"{ctx}: expected true or false")


def _parse_expires(value: Any, ctx: str) -> date | None:
    if value is None:
        return None
    # yaml.safe_load turns unquoted 2025-01-31 into a date already.
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = _scalar_text(value, ctx)
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise PolicyParseError(f"{ctx}: expected YYYY-MM-DD date, got {text!r}") from None


def _parse_core_packages(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    items = _require_list(value, "core-packages")
    packages = []
    for idx, item in enumerate(items):
        name = _scalar_text(item, f"core-packages[{idx}]")
        if name:
            packages.append(name)
    return tuple(packages)


def _parse_allowlist(value: Any) -> dict[str, AllowlistEntry]:
    if value is None:
        return {}
    entries: dict[str, AllowlistEntry] = {}
    for idx, item in enumerate(_require_list(value, "audit.allowlist")):
        ctx = f"audit.allowlist[{idx}]"
        raw = _require_mapping(item, ctx)
        advisory_id = _scalar_text(raw.get("id"), f"{ctx}.id")
        if not advisory_id:
            continue
        entries[advisory_id] = AllowlistEntry(
            id=advisory_id,
            reason=_scalar_text(raw.get("reason"), f"{ctx}.reason"),
            expires=_parse_expires(raw.get("expires"), f"{ctx}.expires"),
        )
    return entries


def parse_policy_document(text: str) -> dict[str, Any]:
    """Parse policy YAML into the recognized fields.

    Only keys present in the document appear in the result, so the caller
    can merge it over fallbacks one field at a time.
    """
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise PolicyParseError(f"invalid YAML: {e}") from e

    if raw is None:
        return {}
    doc = _require_mapping(raw, "policy")

    fields: dict[str, Any] = {}
    packages = _parse_core_packages(doc.get("core-packages"))
    if packages:
        fields["core_packages"] = packages

    audit_raw = doc.get("audit")
    if audit_raw is not None:
        audit = _require_mapping(audit_raw, "audit")
        fail_on = _scalar_text(audit.get("fail-on"), "audit.fail-on")
        if fail_on:
            fields["audit_fail_on"] = fail_on.lower()
        if audit.get("production-only") is not None:
            fields["audit_production_only"] = _parse_bool(
                audit.get("production-only"), "audit.production-only"
            )
        allowlist = _parse_allowlist(audit.get("allowlist"))
        if allowlist:
            fields["allowlist"] = allowlist
    return fields


def validate_fail_on(value: str) -> str:
    """Return the normalized threshold or raise ConfigError."""
    normalized = str(value or "").strip().lower()
    if normalized not in SEVERITY_LEVELS:
        raise ConfigError(
            f"Invalid audit-fail-on value: '{value}' (must be critical, high, moderate, or low)"
        )
    return normalized


def load_policy(path: Path | None, fallbacks: PolicyFallbacks) -> Policy:
    """Load the policy file at ``path`` over ``fallbacks``.

    Raises:
        ConfigError: the resolved ``fail-on`` threshold is not a known severity.
    """
    fields: dict[str, Any] = {}
    source: Path | None = None
    warnings: list[str] = []

    if path is not None and path.is_file():
        try:
            fields = parse_policy_document(path.read_text(encoding="utf-8"))
            source = path
        except (OSError, UnicodeDecodeError) as e:
            warnings.append(f"Unable to read {path}: {e}; using action input defaults")
        except PolicyParseError as e:
            warnings.append(f"Ignoring malformed {path}: {e}; using action input defaults")

    return Policy(
        core_packages=fields.get("core_packages", fallbacks.core_packages),
        audit_fail_on=validate_fail_on(fields.get("audit_fail_on", fallbacks.audit_fail_on)),
        audit_production_only=fields.get(
            "audit_production_only", fallbacks.audit_production_only
        ),
        allowlist=MappingProxyType(dict(fields.get("allowlist", {}))),
        source=source,
        warnings=tuple(warnings),
    )
