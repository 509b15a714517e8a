"""Import helpers for scripts that aren't packages."""
import importlib.util
import sys
from pathlib import Path

import pytest

SCRIPTS_DIR = Path(__file__).parent.parent / "scripts"

# Add scripts/ to sys.path so the hyphenated scripts can import relkit.
if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))

RUNNER_ENV = (
    "GITHUB_OUTPUT",
    "GITHUB_REPOSITORY",
    "PR_NUMBER",
    "RUNNER_TEMP",
    "INPUT_CORE_PACKAGES",
    "INPUT_AUDIT_FAIL_ON",
    "INPUT_AUDIT_PRODUCTION_ONLY",
)


def import_script(name: str, filename: str):
    """Import a script file as a module using importlib."""
    spec = importlib.util.spec_from_file_location(name, SCRIPTS_DIR / filename)
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


@pytest.fixture(autouse=True)
def _isolate_runner_env(monkeypatch):
    """Tests never see the CI runner's own GitHub Actions environment."""
    for key in RUNNER_ENV:
        monkeypatch.delenv(key, raising=False)
