"""
Shared pytest fixtures: in-memory GTFS bundles shaped like the real feed and
a fake `requests` session that serves them without network access.
"""
import io
import zipfile
from typing import Callable, Dict, Iterable, List, Optional

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from gtfs.processor import FILES_OF_INTEREST, MODES

SOURCE_URL = "https://feeds.example.org/gtfs.zip"


def file_content(mode_name: str, file_name: str, version: str = "") -> bytes:
    return f"{version}{mode_name}:{file_name}\nid,value\n1,{mode_name}-{file_name}\n".encode()


def make_zip(entries: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def make_bundle(modes=MODES, files: Iterable[str] = FILES_OF_INTEREST,
                missing: Optional[Dict[str, List[str]]] = None,
                corrupt_modes: Iterable[str] = (),
                extra_files: Iterable[str] = ("agency.txt", "shapes.txt"),
                version: str = "") -> bytes:
    """Builds an outer archive with `<ordinal>/google_transit.zip` per mode."""
    missing = missing or {}
    corrupt_modes = set(corrupt_modes)
    outer: Dict[str, bytes] = {}
    for mode in modes:
        if mode.name in corrupt_modes:
            outer[f"{mode.ordinal}/google_transit.zip"] = b"this is not a zip file"
            continue
        inner = {
            name: file_content(mode.name, name, version)
            for name in list(files) + list(extra_files)
            if name not in missing.get(mode.name, [])
        }
        outer[f"{mode.ordinal}/google_transit.zip"] = make_zip(inner)
    # Unrelated modes present in the real bundle
    outer["3/google_transit.zip"] = make_zip({"stops.txt": b"stop_id\n"})
    return make_zip(outer)


class FakeResponse:
    def __init__(self, body: bytes = b"", status_code: int = 200,
                 headers: Optional[Dict[str, str]] = None,
                 chunk_size: int = 1024, fail_after_chunks: Optional[int] = None):
        self.body = body
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {})
        self.chunk_size = chunk_size
        self.fail_after_chunks = fail_after_chunks
        self.closed = False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def iter_content(self, chunk_size: int = 1):
        size = self.chunk_size or chunk_size
        for index, start in enumerate(range(0, len(self.body), size)):
            if self.fail_after_chunks is not None and index >= self.fail_after_chunks:
                raise requests.exceptions.ChunkedEncodingError("connection broken")
            yield self.body[start:start + size]

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def zip_response(body: bytes, with_length: bool = True, content_type: str = "application/zip") -> FakeResponse:
    headers = {"Content-Type": content_type}
    if with_length:
        headers["Content-Length"] = str(len(body))
    return FakeResponse(body, headers=headers)


class FakeSession:
    """Stands in for requests.Session; maps URLs to responses or exceptions."""

    def __init__(self, responses: Dict[str, object], on_get: Optional[Callable[[str], None]] = None):
        self.responses = responses
        self.on_get = on_get
        self.calls: List[dict] = []

    def get(self, url: str, stream: bool = False, timeout=None):
        self.calls.append({"url": url, "stream": stream, "timeout": timeout})
        if self.on_get is not None:
            self.on_get(url)
        response = self.responses[url]
        if isinstance(response, BaseException):
            raise response
        return response

    def close(self) -> None:
        pass


@pytest.fixture
def bundle_bytes() -> bytes:
    return make_bundle()


@pytest.fixture
def fake_session(bundle_bytes) -> FakeSession:
    return FakeSession({SOURCE_URL: zip_response(bundle_bytes)})


@pytest.fixture
def data_root(tmp_path):
    root = tmp_path / "work"
    root.mkdir()
    return root


@pytest.fixture
def public_dir(tmp_path):
    return tmp_path / "out" / "public"
