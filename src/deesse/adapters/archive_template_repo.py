"""Template repository backed by GitHub branch archives."""

from __future__ import annotations

import hashlib
import json
import os
import shutil
import tempfile
import time
import uuid
import zipfile
from datetime import datetime, timezone
from http import HTTPStatus
from pathlib import Path
from typing import Callable, Iterable, List, Tuple

import requests

from deesse.domain.template import (
    MANIFEST_FILENAME,
    TemplateDescriptor,
    TemplateReference,
)
from deesse.ports.template_repo import (
    ArchiveExtractionError,
    DownloadFailedError,
    FetchFailedError,
    TemplateNotFoundInArchiveError,
    TemplateRepository,
)
from deesse.settings import (
    DEFAULT_DOWNLOAD_RETRIES,
    DEFAULT_DOWNLOAD_TIMEOUT,
    DEFAULT_TEMPLATES_REPO,
)

ARCHIVE_URL = "https://github.com/{repo}/archive/refs/heads/{ref}.zip"
CHUNK_SIZE = 64 * 1024
DEFAULT_BACKOFF = 0.5
STAGING_INFIX = ".staging-"
RETIRED_INFIX = ".previous-"


def compute_tree_checksum(root: Path) -> Tuple[str, int]:
    """Return the SHA-256 of every file under ``root`` and the file count."""

    digest = hashlib.sha256()
    count = 0
    for path in sorted(root.rglob("*")):
        if path.is_file() and path.name != MANIFEST_FILENAME:
            digest.update(path.relative_to(root).as_posix().encode("utf-8"))
            digest.update(path.read_bytes())
            count += 1
    return digest.hexdigest(), count


class ArchiveTemplateRepository(TemplateRepository):
    """Fetch templates from ``<repo>/templates/<name>`` and cache them by reference.

    A cache entry lives at ``<base_dir>/<identifier>-<ref>`` and counts as
    valid only once its manifest exists. Entries are assembled in a staging
    directory next to the final path and renamed into place, so an
    interrupted or failed fetch never leaves a directory that a later call
    would accept.
    """

    source = "archive"

    def __init__(
        self,
        base_dir: Path,
        *,
        repo: str = DEFAULT_TEMPLATES_REPO,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
        retries: int = DEFAULT_DOWNLOAD_RETRIES,
        backoff: float = DEFAULT_BACKOFF,
        work_dir: Path | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._base_dir = base_dir
        self._repo = repo
        self._session = session or requests.Session()
        self._timeout = timeout
        self._retries = max(0, retries)
        self._backoff = backoff
        self._work_dir = work_dir
        self._sleep = sleep

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def archive_url(self, reference: TemplateReference) -> str:
        return ARCHIVE_URL.format(repo=self._repo, ref=reference.ref)

    def entry_path(self, reference: TemplateReference) -> Path:
        return self._base_dir / reference.cache_key

    def is_cached(self, reference: TemplateReference) -> bool:
        return _is_complete(self.entry_path(reference))

    def ensure_available(self, reference: TemplateReference, *, refresh: bool = False) -> TemplateDescriptor:
        final_path = self.entry_path(reference)
        if not refresh and _is_complete(final_path):
            return self._descriptor(reference, final_path)
        try:
            if final_path.exists() and not _is_complete(final_path):
                # stale entry without manifest
                shutil.rmtree(final_path)
            self._base_dir.mkdir(parents=True, exist_ok=True)
            if self._work_dir is not None:
                self._work_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.TemporaryDirectory(prefix=f"deesse-{reference.cache_key}-", dir=self._work_dir) as tmp:
                self._fetch_into(Path(tmp), reference, final_path, replace=refresh)
        except OSError as exc:
            raise FetchFailedError(f"Could not store template {reference} in {self._base_dir}: {exc}") from exc
        return self._descriptor(reference, final_path)

    def _fetch_into(self, work: Path, reference: TemplateReference, final_path: Path, *, replace: bool) -> None:
        key = reference.cache_key
        url = self.archive_url(reference)
        archive_path = work / f"{key}.zip"
        self._download(url, archive_path)
        extract_root = work / "extract"
        self._extract(archive_path, extract_root)
        archive_path.unlink()
        source_dir = self._locate(extract_root, reference, url)

        staging: Path | None = Path(tempfile.mkdtemp(prefix=f".{key}{STAGING_INFIX}", dir=self._base_dir))
        try:
            for entry in sorted(source_dir.iterdir()):
                shutil.move(str(entry), str(staging / entry.name))
            self._write_manifest(staging, reference, url)
            self._commit(staging, final_path, replace=replace)
            staging = None
        finally:
            if staging is not None and staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

    def list_cached(self) -> Iterable[TemplateDescriptor]:
        if not self._base_dir.exists():
            return []
        descriptors: list[TemplateDescriptor] = []
        for entry in sorted(p for p in self._base_dir.iterdir() if p.is_dir()):
            if entry.name.startswith(".") or not _is_complete(entry):
                continue
            try:
                payload = json.loads((entry / MANIFEST_FILENAME).read_text("utf-8"))
            except (OSError, json.JSONDecodeError):
                continue
            reference = TemplateReference(str(payload.get("template", entry.name)), str(payload.get("ref", "")))
            descriptors.append(self._descriptor(reference, entry))
        return descriptors

    def purge(self, reference: TemplateReference | None = None) -> List[Path]:
        if reference is not None:
            target = self.entry_path(reference)
            if not target.exists():
                return []
            shutil.rmtree(target)
            return [target]
        if not self._base_dir.exists():
            return []
        removed: list[Path] = []
        for entry in sorted(self._base_dir.iterdir()):
            if entry.is_dir():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            removed.append(entry)
        return removed

    def _descriptor(self, reference: TemplateReference, root: Path) -> TemplateDescriptor:
        return TemplateDescriptor(
            reference=reference,
            root_dir=root,
            manifest_file=root / MANIFEST_FILENAME,
            source=self.source,
        )

    def _download(self, url: str, destination: Path) -> None:
        for attempt in range(self._retries + 1):
            try:
                self._download_once(url, destination)
                return
            except DownloadFailedError as exc:
                if not exc.retryable or attempt == self._retries:
                    raise
                self._sleep(self._backoff * 2**attempt)

    def _download_once(self, url: str, destination: Path) -> None:
        try:
            response = self._session.get(url, stream=True, timeout=self._timeout)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise DownloadFailedError(f"Failed to download template from {url}: {exc}", retryable=True) from exc
        except requests.RequestException as exc:
            raise DownloadFailedError(f"Failed to download template from {url}: {exc}") from exc
        try:
            if not response.ok:
                reason = response.reason or _status_phrase(response.status_code)
                raise DownloadFailedError(
                    f"Failed to download template: {response.status_code} {reason}",
                    status_code=response.status_code,
                    reason=reason,
                    retryable=response.status_code >= 500,
                )
            with destination.open("wb") as fh:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        fh.write(chunk)
        except requests.RequestException as exc:
            raise DownloadFailedError(f"Template download interrupted: {exc}", retryable=True) from exc
        finally:
            response.close()

    def _extract(self, archive_path: Path, destination: Path) -> None:
        destination.mkdir(parents=True, exist_ok=True)
        root = destination.resolve()
        try:
            with zipfile.ZipFile(archive_path) as bundle:
                members = bundle.infolist()
                for member in members:
                    target = (root / member.filename).resolve()
                    if target != root and root not in target.parents:
                        raise ArchiveExtractionError(f"Archive member escapes extraction root: {member.filename}")
                for member in members:
                    extracted = Path(bundle.extract(member, root))
                    mode = (member.external_attr >> 16) & 0o777
                    if mode and not member.is_dir():
                        extracted.chmod(mode)
        except ArchiveExtractionError:
            raise
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
            raise ArchiveExtractionError(f"Template archive is corrupt: {exc}") from exc
        except (NotImplementedError, RuntimeError) as exc:
            # unsupported compression method or encrypted member
            raise ArchiveExtractionError(f"Template archive cannot be extracted: {exc}") from exc

    def _locate(self, extract_root: Path, reference: TemplateReference, url: str) -> Path:
        top_level = sorted(p for p in extract_root.iterdir() if p.is_dir())
        if len(top_level) == 1:
            archive_root = top_level[0]
        else:
            repo_name = self._repo.rsplit("/", 1)[-1]
            archive_root = extract_root / f"{repo_name}-{reference.ref.replace('/', '-')}"
        candidate = archive_root / "templates" / reference.identifier
        if not candidate.is_dir():
            raise TemplateNotFoundInArchiveError(
                f"Template '{reference.identifier}' not found in {url} (expected templates/{reference.identifier})"
            )
        return candidate

    def _write_manifest(self, staging: Path, reference: TemplateReference, url: str) -> None:
        checksum, count = compute_tree_checksum(staging)
        payload = {
            "template": reference.identifier,
            "ref": reference.ref,
            "source_url": url,
            "fetched_at": datetime.now(timezone.utc).isoformat(),
            "files": count,
            "checksum": checksum,
        }
        (staging / MANIFEST_FILENAME).write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    def _commit(self, staging: Path, final_path: Path, *, replace: bool = False) -> None:
        """Rename ``staging`` onto ``final_path``.

        With ``replace`` an existing entry is moved aside first and only
        deleted once the new one is in place; if the rename fails it is put
        back, so a failed refresh keeps the previous copy usable.
        """

        retired: Path | None = None
        if replace and final_path.exists():
            retired = final_path.with_name(f".{final_path.name}{RETIRED_INFIX}{uuid.uuid4().hex[:8]}")
            os.rename(final_path, retired)
        try:
            os.rename(staging, final_path)
        except OSError as exc:
            if _is_complete(final_path):
                # another process installed the same reference first
                shutil.rmtree(staging)
                return
            if retired is not None:
                os.rename(retired, final_path)
                retired = None
            raise FetchFailedError(f"Could not move template into cache at {final_path}: {exc}") from exc
        finally:
            if retired is not None:
                shutil.rmtree(retired, ignore_errors=True)


def _is_complete(path: Path) -> bool:
    return path.is_dir() and (path / MANIFEST_FILENAME).is_file()


def _status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Unknown status"


__all__ = ["ArchiveTemplateRepository", "ARCHIVE_URL", "compute_tree_checksum"]
