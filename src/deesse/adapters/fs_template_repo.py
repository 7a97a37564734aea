"""Filesystem-backed template repository (local checkout of the templates repo)."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

from deesse.domain.template import (
    TEMPLATE_CATALOG,
    TemplateDescriptor,
    TemplateReference,
)
from deesse.ports.template_repo import TemplateNotFoundInArchiveError, TemplateRepository


class FSTemplateRepository(TemplateRepository):
    """Serve templates straight from ``<source_root>/templates/<name>``.

    Used for template development: nothing is downloaded or cached, and the
    ref of a reference is ignored since the checkout is whatever is on disk.
    """

    source = "local"

    def __init__(self, source_root: Path) -> None:
        self._source_root = source_root

    def _candidates(self, identifier: str) -> list[Path]:
        return [
            self._source_root / "templates" / identifier,
            self._source_root / identifier,
        ]

    def ensure_available(self, reference: TemplateReference, *, refresh: bool = False) -> TemplateDescriptor:
        for root in self._candidates(reference.identifier):
            if root.is_dir():
                return TemplateDescriptor(
                    reference=reference,
                    root_dir=root,
                    manifest_file=None,
                    source=self.source,
                )
        raise TemplateNotFoundInArchiveError(
            f"Template {reference.identifier} not found under {self._source_root}"
        )

    def is_cached(self, reference: TemplateReference) -> bool:
        return any(root.is_dir() for root in self._candidates(reference.identifier))

    def list_cached(self) -> Iterable[TemplateDescriptor]:
        descriptors: list[TemplateDescriptor] = []
        for info in TEMPLATE_CATALOG:
            reference = TemplateReference(info.name, "local")
            if self.is_cached(reference):
                descriptors.append(self.ensure_available(reference))
        return descriptors

    def purge(self, reference: TemplateReference | None = None) -> List[Path]:
        return []
