from __future__ import annotations

import io
from pathlib import Path
from typing import Optional

import pytest

from play_publisher.console import Console
from play_publisher.errors import PublisherApiError
from play_publisher.metadata import sha1_of_file
from play_publisher.models import AppFileFormat, AppFileMetadata, PublishContext, UploadFile

APPLICATION_ID = "org.example.app"
DEFAULT_TRACKS = ("production", "beta", "alpha", "internal")


class FakeBackend:
    """Records every call, and answers like Google Play would for an app with the given state."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.edit_id = "the-edit-id"
        self.tracks: list[dict] = [{"track": t, "releases": [{"status": "completed"}]} for t in DEFAULT_TRACKS]
        self.bundles: Optional[list[dict]] = []
        self.apks: Optional[list[dict]] = []
        self.expansion_files: dict[tuple[int, str], dict] = {}
        self.version_codes: dict[Path, int] = {}
        self.commit_errors: list[Exception] = []
        self.errors: dict[str, Exception] = {}

    def _record(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        if name in self.errors:
            raise self.errors[name]

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    @property
    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def insert_edit(self, application_id):
        self._record("insert_edit", application_id)
        return self.edit_id

    def list_tracks(self, application_id, edit_id):
        self._record("list_tracks", application_id, edit_id)
        return self.tracks

    def list_bundles(self, application_id, edit_id):
        self._record("list_bundles", application_id, edit_id)
        return self.bundles

    def list_apks(self, application_id, edit_id):
        self._record("list_apks", application_id, edit_id)
        return self.apks

    def upload_bundle(self, application_id, edit_id, path):
        self._record("upload_bundle", application_id, edit_id, path)
        return {"versionCode": self.version_codes.get(path, 43), "sha1": "the:sha"}

    def upload_apk(self, application_id, edit_id, path):
        self._record("upload_apk", application_id, edit_id, path)
        return {"versionCode": self.version_codes.get(path, 42), "binary": {"sha1": "the:sha"}}

    def upload_deobfuscation_file(self, application_id, edit_id, version_code, file_type, path):
        self._record("upload_deobfuscation_file", application_id, edit_id, version_code, file_type, path)
        return {"deobfuscationFile": {"symbolType": file_type}}

    def get_expansion_file(self, application_id, edit_id, version_code, file_type):
        self._record("get_expansion_file", application_id, edit_id, version_code, file_type)
        return self.expansion_files.get((version_code, file_type))

    def upload_expansion_file(self, application_id, edit_id, version_code, file_type, path):
        self._record("upload_expansion_file", application_id, edit_id, version_code, file_type, path)
        return {"expansionFile": {"fileSize": str(path.stat().st_size)}}

    def update_expansion_file(self, application_id, edit_id, version_code, file_type, references_version):
        self._record("update_expansion_file", application_id, edit_id, version_code, file_type, references_version)
        return {"referencesVersion": references_version}

    def update_track(self, application_id, edit_id, track_name, body):
        self._record("update_track", application_id, edit_id, track_name, body)
        return body

    def commit_edit(self, application_id, edit_id, changes_not_sent_for_review):
        self._record("commit_edit", application_id, edit_id, changes_not_sent_for_review)
        if self.commit_errors:
            raise self.commit_errors.pop(0)
        return {"id": edit_id}

    def upload_internal_app_sharing_apk(self, application_id, path):
        self._record("upload_internal_app_sharing_apk", application_id, path)
        return {
            "downloadUrl": "https://play.google.com/test/download.apk",
            "sha256": "abc123",
            "certificateFingerprint": "AA:BB",
        }

    def upload_internal_app_sharing_bundle(self, application_id, path):
        self._record("upload_internal_app_sharing_bundle", application_id, path)
        return {"downloadUrl": "https://play.google.com/test/download.aab", "sha256": "def456"}


@pytest.fixture
def api_error():
    def make(message: str, status: int = 403) -> PublisherApiError:
        return PublisherApiError(
            f"Google API error (HTTP {status}): {message}",
            status=status,
            message=message,
            error_messages=[message],
        )

    return make


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def context(tmp_path: Path) -> PublishContext:
    return PublishContext(
        application_id=APPLICATION_ID,
        console=Console(io.StringIO()),
        workspace=tmp_path,
        credential_name="test-credentials",
    )


@pytest.fixture
def output(context: PublishContext):
    def read() -> str:
        return context.console.stream.getvalue()

    return read


@pytest.fixture
def make_app_file(tmp_path: Path, backend: FakeBackend):
    def make(
        relative_path: str = "build/outputs/apk/app.apk",
        version_code: int = 42,
        version_name: Optional[str] = None,
        content: Optional[bytes] = None,
        mapping_file: Optional[Path] = None,
        native_debug_symbol_file: Optional[Path] = None,
    ) -> UploadFile:
        path = tmp_path / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content if content is not None else f"dummy-{version_code}".encode())
        file_format = AppFileFormat.BUNDLE if path.suffix == ".aab" else AppFileFormat.APK
        backend.version_codes[path] = version_code
        return UploadFile(
            path=path,
            file_format=file_format,
            sha1_hash=sha1_of_file(path),
            metadata=AppFileMetadata(
                application_id=APPLICATION_ID,
                version_code=version_code,
                version_name=version_name or f"1.{version_code}",
                min_sdk_version="21",
            ),
            mapping_file=mapping_file,
            native_debug_symbol_file=native_debug_symbol_file,
        )

    return make


@pytest.fixture
def write_file(tmp_path: Path):
    def write(relative_path: str, content: bytes = b"content") -> Path:
        path = tmp_path / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    return write
