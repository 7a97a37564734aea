from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
PYTEST_TEMP = Path(os.environ.get("PYTEST_DEBUG_TEMPROOT", "/tmp/deesse-pytest")).resolve()
os.environ.setdefault("PYTEST_DEBUG_TEMPROOT", str(PYTEST_TEMP))
PYTEST_TEMP.mkdir(parents=True, exist_ok=True)
SANDBOX_HOME = PYTEST_TEMP / "global-home"
os.environ.setdefault("DEESSE_HOME", str(SANDBOX_HOME))
SANDBOX_HOME.mkdir(parents=True, exist_ok=True)
for entry in (SRC, ROOT):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))

from deesse import __version__  # noqa: E402
from deesse.settings import RuntimeSettings  # noqa: E402


@pytest.fixture()
def runtime_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> RuntimeSettings:
    monkeypatch.setenv("DEESSE_TELEMETRY", "1")
    runtime = tmp_path / "runtime"
    home = runtime / "home"
    template_dir = home / "templates"
    log_dir = home / "logs"
    for directory in (home, template_dir, log_dir):
        directory.mkdir(parents=True, exist_ok=True)
    return RuntimeSettings(
        home_dir=home,
        template_dir=template_dir,
        log_dir=log_dir,
        download_retries=0,
        cli_version=__version__,
    )
