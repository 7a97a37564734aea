"""Application services that generate a project from a resolved template."""

from __future__ import annotations

import os
import re
import shutil
import tempfile
import time
from pathlib import Path, PurePosixPath
from typing import List, Mapping

from deesse.app.templates.service import TemplateResolver
from deesse.domain.template import (
    MANIFEST_FILENAME,
    PROJECT_NAME_VAR,
    InvalidTemplateError,
    MaterializationRequest,
    MaterializationResult,
    TemplateError,
    is_placeholder,
)
from deesse.settings import RuntimeSettings
from deesse.utils.telemetry import record_structured_event

TOKEN_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
STAGING_INFIX = ".staging-"
SKIPPED_FILES = frozenset({MANIFEST_FILENAME})


class TargetNotEmptyError(TemplateError):
    """Raised before any write when the target directory already has content."""


class MaterializationFailedError(TemplateError):
    pass


def substitute(text: str, variables: Mapping[str, str]) -> str:
    """Replace ``{{ NAME }}`` tokens for known variables; unknown tokens stay as-is."""

    def _replace(match: re.Match[str]) -> str:
        value = variables.get(match.group(1))
        return match.group(0) if value is None else value

    return TOKEN_PATTERN.sub(_replace, text)


def render_name(name: str, variables: Mapping[str, str], *, is_file: bool) -> str:
    rendered = substitute(name, variables)
    if is_file and rendered.startswith("_"):
        rendered = "." + rendered[1:]
    if rendered in {"", ".", ".."} or "/" in rendered or "\\" in rendered:
        raise MaterializationFailedError(f"Template path segment '{name}' renders to unsafe name '{rendered}'")
    return rendered


def project_variables(project_name: str, target_dir: Path) -> dict[str, str]:
    name = target_dir.resolve().name if project_name == "." else project_name
    return {PROJECT_NAME_VAR: name}


class TemplateMaterializer:
    """Copy a template tree into a target directory with variable substitution.

    Everything is rendered into a staging directory next to the target and
    moved into place only once the whole tree has been written; a failure
    removes the staging directory and leaves the target as it was.
    """

    def check_target(self, target_dir: Path, *, in_place: bool = False) -> None:
        try:
            occupied = target_dir.is_dir() and any(target_dir.iterdir())
        except OSError as exc:
            raise MaterializationFailedError(f"Cannot inspect target directory {target_dir}: {exc}") from exc
        if target_dir.exists():
            if not target_dir.is_dir():
                raise TargetNotEmptyError(f'Target "{target_dir}" exists and is not a directory.')
            if occupied:
                if in_place:
                    raise TargetNotEmptyError(
                        "Current directory is not empty. Please choose an empty directory or use a subdirectory."
                    )
                raise TargetNotEmptyError(
                    f'Target directory "{target_dir}" is not empty. Please choose an empty directory.'
                )
        elif in_place:
            raise MaterializationFailedError(f"Current directory does not exist: {target_dir}")

    def materialize(
        self,
        template_dir: Path,
        target_dir: Path,
        variables: Mapping[str, str],
        *,
        in_place: bool = False,
    ) -> MaterializationResult:
        if not template_dir.is_dir():
            raise InvalidTemplateError(f"Template directory missing: {template_dir}")
        target = target_dir.expanduser().absolute()
        self.check_target(target, in_place=in_place)

        staging_root: Path | None = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            staging_root = self._make_staging(target)
            tree = staging_root / "tree"
            tree.mkdir()
            written = self._render_tree(template_dir, tree, variables)
            self._promote(tree, target)
        except TemplateError:
            raise
        except OSError as exc:
            raise MaterializationFailedError(f"Failed to write project files into {target}: {exc}") from exc
        finally:
            if staging_root is not None and staging_root.exists():
                shutil.rmtree(staging_root, ignore_errors=True)

        files = tuple(relative for relative in written if not is_placeholder(relative))
        return MaterializationResult(target_dir=target, files=files)

    def _make_staging(self, target: Path) -> Path:
        prefix = f".{target.name or 'project'}{STAGING_INFIX}"
        try:
            return Path(tempfile.mkdtemp(prefix=prefix, dir=target.parent))
        except PermissionError:
            # parent not writable (e.g. generating into the current directory)
            return Path(tempfile.mkdtemp(prefix=prefix))

    def _render_tree(self, source: Path, destination: Path, variables: Mapping[str, str]) -> List[str]:
        written: list[str] = []
        for current, dirnames, filenames in os.walk(source, followlinks=True):
            dirnames.sort()
            current_path = Path(current)
            relative_dir = current_path.relative_to(source)
            real = current_path.resolve()
            for depth in range(len(relative_dir.parts)):
                if source.joinpath(*relative_dir.parts[:depth]).resolve() == real:
                    raise InvalidTemplateError(f"Template directory links back into itself: {current_path}")
            rendered_dir = PurePosixPath(
                *(render_name(part, variables, is_file=False) for part in relative_dir.parts)
            )
            output_dir = destination.joinpath(*rendered_dir.parts)
            output_dir.mkdir(parents=True, exist_ok=True)
            for filename in sorted(filenames):
                if not relative_dir.parts and filename in SKIPPED_FILES:
                    continue
                rendered = render_name(filename, variables, is_file=True)
                self._render_file(current_path / filename, output_dir / rendered, variables)
                written.append((rendered_dir / rendered).as_posix())
        return sorted(written)

    def _render_file(self, source: Path, destination: Path, variables: Mapping[str, str]) -> None:
        data = source.read_bytes()
        if b"\x00" not in data:
            try:
                text = data.decode("utf-8")
            except UnicodeDecodeError:
                text = None
            if text is not None and TOKEN_PATTERN.search(text):
                data = substitute(text, variables).encode("utf-8")
        destination.write_bytes(data)
        shutil.copymode(source, destination)

    def _promote(self, tree: Path, target: Path) -> None:
        if not target.exists():
            shutil.move(str(tree), str(target))
            return
        for entry in sorted(tree.iterdir()):
            shutil.move(str(entry), str(target / entry.name))


class ScaffoldService:
    def __init__(
        self,
        resolver: TemplateResolver,
        settings: RuntimeSettings,
        materializer: TemplateMaterializer | None = None,
    ) -> None:
        self._resolver = resolver
        self._settings = settings
        self._materializer = materializer or TemplateMaterializer()

    def create(self, request: MaterializationRequest, *, refresh: bool = False) -> MaterializationResult:
        """Resolve the requested template, then copy it into the target directory.

        The target is checked before the template is resolved so a non-empty
        directory fails without touching the network.
        """

        target = request.target_dir.expanduser().absolute()
        payload = {
            "template": request.reference.identifier,
            "ref": request.reference.ref,
            "in_place": request.in_place,
        }
        started = time.perf_counter()
        try:
            self._materializer.check_target(target, in_place=request.in_place)
            descriptor = self._resolver.resolve(request.reference, refresh=refresh)
            result = self._materializer.materialize(
                descriptor.root_dir,
                target,
                request.variables,
                in_place=request.in_place,
            )
        except TemplateError as exc:
            record_structured_event(
                self._settings,
                "scaffold.create",
                payload=payload | {"error": str(exc), "error_type": type(exc).__name__},
                level="error",
                status="failed",
                component="scaffold",
            )
            raise
        record_structured_event(
            self._settings,
            "scaffold.create",
            payload=payload | {"files": result.count, "target": str(result.target_dir)},
            status="ok",
            component="scaffold",
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        return result


__all__ = [
    "MaterializationFailedError",
    "ScaffoldService",
    "TargetNotEmptyError",
    "TemplateMaterializer",
    "project_variables",
    "render_name",
    "substitute",
]
