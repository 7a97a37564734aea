from __future__ import annotations

import json
from pathlib import Path

import pytest

from deesse.adapters.archive_template_repo import ArchiveTemplateRepository
from deesse.adapters.fs_template_repo import FSTemplateRepository
from deesse.app.templates import TemplateResolver, build_template_repository
from deesse.domain.template import TemplateReference, UnknownTemplateError
from deesse.ports.template_repo import DownloadFailedError
from deesse.settings import RuntimeSettings
from tests._fakes import DummyResponse, DummySession, build_archive


def _events(settings: RuntimeSettings) -> list[dict]:
    log_path = settings.log_dir / "telemetry.jsonl"
    if not log_path.exists():
        return []
    return [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines() if line]


def test_unknown_template_fails_before_network(runtime_settings: RuntimeSettings) -> None:
    session = DummySession([])
    repo = ArchiveTemplateRepository(runtime_settings.template_dir, session=session, retries=0)
    resolver = TemplateResolver(repo, runtime_settings)

    with pytest.raises(UnknownTemplateError):
        resolver.resolve(TemplateReference("enterprise", "main"))

    assert session.calls == []
    assert list(runtime_settings.template_dir.iterdir()) == []


def test_resolve_fetches_then_hits_cache(runtime_settings: RuntimeSettings) -> None:
    session = DummySession([DummyResponse(200, build_archive())])
    repo = ArchiveTemplateRepository(runtime_settings.template_dir, session=session, retries=0)
    resolver = TemplateResolver(repo, runtime_settings)
    reference = TemplateReference("minimal", "main")

    first = resolver.resolve(reference)
    second = resolver.resolve(reference)

    assert first.root_dir == second.root_dir
    assert len(session.calls) == 1
    resolve_events = [evt for evt in _events(runtime_settings) if evt["event"] == "template.resolve"]
    assert [evt["payload"]["cache_hit"] for evt in resolve_events] == [False, True]
    assert all(evt["status"] == "ok" for evt in resolve_events)


def test_resolve_propagates_fetch_failures(runtime_settings: RuntimeSettings) -> None:
    session = DummySession([DummyResponse(404, b"", reason="Not Found")])
    repo = ArchiveTemplateRepository(runtime_settings.template_dir, session=session, retries=0)
    resolver = TemplateResolver(repo, runtime_settings)

    with pytest.raises(DownloadFailedError):
        resolver.resolve(TemplateReference("default", "missing-branch"))

    failures = [evt for evt in _events(runtime_settings) if evt.get("status") == "failed"]
    assert failures and failures[-1]["payload"]["error_type"] == "DownloadFailedError"


def test_build_repository_prefers_local_checkout(runtime_settings: RuntimeSettings, tmp_path: Path) -> None:
    assert isinstance(build_template_repository(runtime_settings), ArchiveTemplateRepository)

    local = RuntimeSettings(
        home_dir=runtime_settings.home_dir,
        template_dir=runtime_settings.template_dir,
        log_dir=runtime_settings.log_dir,
        local_templates=tmp_path / "checkout",
    )
    assert isinstance(build_template_repository(local), FSTemplateRepository)
