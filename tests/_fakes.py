from __future__ import annotations

import io
import zipfile
from typing import Any, Dict, Iterator, List, Sequence, Union

ARCHIVE_ROOT = "deessejs-main"

TEMPLATE_FILES: Dict[str, Union[str, bytes]] = {
    "templates/minimal/package.json": '{\n  "name": "{{PROJECT_NAME}}",\n  "private": true\n}\n',
    "templates/minimal/README.md": "# {{ PROJECT_NAME }}\n\nGenerated with DeesseJS.\n",
    "templates/minimal/_gitignore": "node_modules\n.next\n",
    "templates/minimal/src/app/page.tsx": "export default function Page() {\n  return <h1>{{PROJECT_NAME}}</h1>;\n}\n",
    "templates/minimal/public/.gitkeep": "",
    "templates/default/package.json": '{"name": "{{PROJECT_NAME}}", "dependencies": {"tailwindcss": "^4"}}\n',
    "templates/default/src/app/globals.css": "@import 'tailwindcss';\n",
    "README.md": "# deessejs monorepo\n",
}


def build_archive(files: Dict[str, Union[str, bytes]] | None = None, *, root: str = ARCHIVE_ROOT) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as bundle:
        for name, content in (TEMPLATE_FILES if files is None else files).items():
            data = content.encode("utf-8") if isinstance(content, str) else content
            bundle.writestr(f"{root}/{name}", data)
    return buffer.getvalue()


class DummyResponse:
    def __init__(
        self,
        status_code: int = 200,
        content: bytes = b"",
        *,
        reason: str | None = None,
        stream_error: Exception | None = None,
    ) -> None:
        self.status_code = status_code
        self.content = content
        self.reason = reason
        self.closed = False
        self._stream_error = stream_error

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]
        if self._stream_error is not None:
            raise self._stream_error

    def close(self) -> None:
        self.closed = True


class DummySession:
    def __init__(self, responses: Sequence[Union[DummyResponse, Exception]]) -> None:
        self._responses: List[Union[DummyResponse, Exception]] = list(responses)
        self.calls: List[str] = []
        self.kwargs: List[Dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> DummyResponse:
        self.calls.append(url)
        self.kwargs.append(kwargs)
        if not self._responses:
            raise AssertionError("no more responses queued")
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item
