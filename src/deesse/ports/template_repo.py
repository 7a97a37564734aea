"""Port definitions for template storage."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List

from deesse.domain.template import TemplateDescriptor, TemplateError, TemplateReference


class FetchFailedError(TemplateError):
    """Raised when a template cannot be retrieved into the cache."""


class DownloadFailedError(FetchFailedError):
    """Raised when the template archive cannot be downloaded.

    ``retryable`` marks transport errors and 5xx responses, which the archive
    repository may attempt again; 4xx responses are final.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        reason: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason
        self.retryable = retryable


class ArchiveExtractionError(FetchFailedError):
    pass


class TemplateNotFoundInArchiveError(FetchFailedError):
    pass


class TemplateRepository(ABC):
    source: str = "unknown"

    @abstractmethod
    def ensure_available(self, reference: TemplateReference, *, refresh: bool = False) -> TemplateDescriptor:
        """Return a descriptor whose root directory holds the complete template tree."""

    @abstractmethod
    def is_cached(self, reference: TemplateReference) -> bool:
        """Return True when ``ensure_available`` would not touch the network."""

    @abstractmethod
    def list_cached(self) -> Iterable[TemplateDescriptor]:
        """List template entries available without fetching."""

    @abstractmethod
    def purge(self, reference: TemplateReference | None = None) -> List[Path]:
        """Remove one cached entry (or all of them) and return removed paths."""
