"""Domain model for project templates and their cached copies."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterator, Mapping, Tuple

DEFAULT_REF = "main"
DEFAULT_TEMPLATE = "default"
MANIFEST_FILENAME = ".deesse-template.json"
PROJECT_NAME_VAR = "PROJECT_NAME"
PLACEHOLDER_PREFIX = ".gitkeep"

_UNSAFE_KEY_CHARS = re.compile(r"[\\/\s]+")
_PROJECT_NAME_RE = re.compile(r"^[a-z0-9-]+$")


class TemplateError(RuntimeError):
    """Base class for every template acquisition or generation failure."""


class UnknownTemplateError(TemplateError):
    """Raised when a template identifier is outside the supported set."""


class InvalidTemplateError(TemplateError):
    """Raised when a resolved template directory is missing or incomplete."""


class InvalidProjectNameError(TemplateError):
    pass


@dataclass(frozen=True)
class TemplateInfo:
    name: str
    label: str
    description: str


TEMPLATE_CATALOG: Tuple[TemplateInfo, ...] = (
    TemplateInfo("minimal", "Minimal", "Bare Next.js app wired to DeesseJS"),
    TemplateInfo("default", "Default (Tailwind + shadcn/ui)", "Starter with Tailwind CSS and shadcn/ui"),
)

SUPPORTED_TEMPLATES = frozenset(info.name for info in TEMPLATE_CATALOG)


def ensure_supported(name: str) -> str:
    if name not in SUPPORTED_TEMPLATES:
        available = ", ".join(info.name for info in TEMPLATE_CATALOG)
        raise UnknownTemplateError(f"Unknown template '{name}'. Available: {available}")
    return name


def validate_project_name(value: str) -> str:
    """Return ``value`` when it is a usable project name or ``"."``."""

    if not value:
        raise InvalidProjectNameError("Project name is required")
    if value != "." and not _PROJECT_NAME_RE.match(value):
        raise InvalidProjectNameError(
            "Project name must be lowercase and contain only letters, numbers, and hyphens "
            '(or use "." for current directory)'
        )
    return value


def is_placeholder(relative: PurePosixPath | Path | str) -> bool:
    return PurePosixPath(str(relative)).name.startswith(PLACEHOLDER_PREFIX)


@dataclass(frozen=True)
class TemplateReference:
    """A template identifier pinned to a source ref (branch or tag)."""

    identifier: str
    ref: str = DEFAULT_REF

    @property
    def cache_key(self) -> str:
        return _UNSAFE_KEY_CHARS.sub("_", f"{self.identifier}-{self.ref}")

    def __str__(self) -> str:
        return f"{self.identifier}@{self.ref}"


@dataclass(frozen=True)
class TemplateDescriptor:
    reference: TemplateReference
    root_dir: Path
    manifest_file: Path | None = None
    source: str = "archive"

    def validate(self) -> None:
        if not self.root_dir.is_dir():
            raise InvalidTemplateError(f"Template directory missing: {self.root_dir}")
        if self.manifest_file is not None and not self.manifest_file.exists():
            raise InvalidTemplateError(f"Template manifest missing: {self.manifest_file}")

    def manifest(self) -> Dict[str, Any]:
        if self.manifest_file is None:
            return {}
        try:
            return json.loads(self.manifest_file.read_text("utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise InvalidTemplateError(f"Template manifest unreadable: {self.manifest_file}") from exc


@dataclass(frozen=True)
class MaterializationRequest:
    reference: TemplateReference
    target_dir: Path
    variables: Mapping[str, str] = field(default_factory=dict)
    in_place: bool = False


@dataclass(frozen=True)
class MaterializationResult:
    target_dir: Path
    files: Tuple[str, ...]

    @property
    def count(self) -> int:
        return len(self.files)

    def paths(self) -> Iterator[Path]:
        for relative in self.files:
            yield self.target_dir / relative


__all__ = [
    "DEFAULT_REF",
    "DEFAULT_TEMPLATE",
    "MANIFEST_FILENAME",
    "PROJECT_NAME_VAR",
    "SUPPORTED_TEMPLATES",
    "TEMPLATE_CATALOG",
    "InvalidProjectNameError",
    "InvalidTemplateError",
    "MaterializationRequest",
    "MaterializationResult",
    "TemplateDescriptor",
    "TemplateError",
    "TemplateInfo",
    "TemplateReference",
    "UnknownTemplateError",
    "ensure_supported",
    "is_placeholder",
    "validate_project_name",
]
