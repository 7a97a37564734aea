"""Resolve template references to directories holding the template tree."""

from __future__ import annotations

import time

from deesse.adapters.archive_template_repo import ArchiveTemplateRepository
from deesse.adapters.fs_template_repo import FSTemplateRepository
from deesse.domain.template import TemplateDescriptor, TemplateReference, ensure_supported
from deesse.ports.template_repo import FetchFailedError, TemplateRepository
from deesse.settings import RuntimeSettings
from deesse.utils.telemetry import record_structured_event


def build_template_repository(settings: RuntimeSettings) -> TemplateRepository:
    if settings.local_templates is not None:
        return FSTemplateRepository(settings.local_templates)
    return ArchiveTemplateRepository(
        settings.template_dir,
        repo=settings.templates_repo,
        timeout=settings.download_timeout,
        retries=settings.download_retries,
    )


class TemplateResolver:
    """Return a ready-to-copy template directory, fetching it on a cache miss."""

    def __init__(self, repository: TemplateRepository, settings: RuntimeSettings) -> None:
        self._repository = repository
        self._settings = settings

    @property
    def repository(self) -> TemplateRepository:
        return self._repository

    def resolve(self, reference: TemplateReference, *, refresh: bool = False) -> TemplateDescriptor:
        ensure_supported(reference.identifier)
        cache_hit = not refresh and self._repository.is_cached(reference)
        payload = {
            "template": reference.identifier,
            "ref": reference.ref,
            "source": self._repository.source,
            "cache_hit": cache_hit,
            "refresh": refresh,
        }
        started = time.perf_counter()
        try:
            descriptor = self._repository.ensure_available(reference, refresh=refresh)
        except FetchFailedError as exc:
            record_structured_event(
                self._settings,
                "template.resolve",
                payload=payload | {"error": str(exc), "error_type": type(exc).__name__},
                level="error",
                status="failed",
                component="resolver",
            )
            raise
        descriptor.validate()
        record_structured_event(
            self._settings,
            "template.resolve",
            payload=payload | {"path": str(descriptor.root_dir)},
            status="ok",
            component="resolver",
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        return descriptor
