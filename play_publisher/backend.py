from __future__ import annotations

import random
import time
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload, build_http

from play_publisher.errors import CredentialsError, PublisherApiError, UploadError

SCOPE = "https://www.googleapis.com/auth/androidpublisher"

UPLOAD_CHUNK_SIZE = 10 * 1024 * 1024
MAX_RETRIES = 8
TRANSIENT_STATUSES = (500, 502, 503, 504)

# Failures below the HTTP layer, or while refreshing the access token
CONNECTION_ERRORS = (OSError, httplib2.HttpLib2Error, TransportError, RefreshError)

ProgressCallback = Callable[[int], None]


class PlayBackend(Protocol):
    """The subset of the Google Play Developer API used for publishing.

    Methods return the decoded JSON resources of the API, e.g. `{"versionCode": 42}`
    for an upload. Any failure is raised as `PublisherApiError`.
    """

    def insert_edit(self, application_id: str) -> str: ...

    def list_tracks(self, application_id: str, edit_id: str) -> list[dict]: ...

    def list_bundles(self, application_id: str, edit_id: str) -> list[dict]: ...

    def list_apks(self, application_id: str, edit_id: str) -> list[dict]: ...

    def upload_bundle(self, application_id: str, edit_id: str, path: Path) -> dict: ...

    def upload_apk(self, application_id: str, edit_id: str, path: Path) -> dict: ...

    def upload_deobfuscation_file(
        self, application_id: str, edit_id: str, version_code: int, file_type: str, path: Path
    ) -> dict: ...

    def get_expansion_file(
        self, application_id: str, edit_id: str, version_code: int, file_type: str
    ) -> Optional[dict]: ...

    def upload_expansion_file(
        self, application_id: str, edit_id: str, version_code: int, file_type: str, path: Path
    ) -> dict: ...

    def update_expansion_file(
        self, application_id: str, edit_id: str, version_code: int, file_type: str, references_version: int
    ) -> dict: ...

    def update_track(self, application_id: str, edit_id: str, track_name: str, body: dict) -> dict: ...

    def commit_edit(self, application_id: str, edit_id: str, changes_not_sent_for_review: bool) -> dict: ...

    def upload_internal_app_sharing_apk(self, application_id: str, path: Path) -> dict: ...

    def upload_internal_app_sharing_bundle(self, application_id: str, path: Path) -> dict: ...


def api_error(e: HttpError) -> PublisherApiError:
    status = getattr(getattr(e, "resp", None), "status", None)
    return PublisherApiError.from_response(status, getattr(e, "content", None))


def connection_error(e: Exception) -> UploadError:
    if isinstance(e, RefreshError):
        return CredentialsError(str(e))
    return PublisherApiError(f"Google API error: {e}")


class GooglePlayBackend:
    def __init__(
        self,
        service: Any,
        *,
        chunk_size: int = UPLOAD_CHUNK_SIZE,
        max_retries: int = MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self._service = service
        self._chunk_size = chunk_size
        self._max_retries = max_retries
        self._sleep = sleep
        self._on_progress = on_progress

    @classmethod
    def from_credentials(cls, credentials: Any, **kwargs: Any) -> "GooglePlayBackend":
        http = build_http()
        authed_http = AuthorizedHttp(credentials, http=http)
        service = build("androidpublisher", "v3", http=authed_http, cache_discovery=False)
        return cls(service, **kwargs)

    def _execute(self, request: Any) -> dict:
        try:
            return request.execute() or {}
        except HttpError as e:
            raise api_error(e) from e
        except CONNECTION_ERRORS as e:
            raise connection_error(e) from e

    def _media(self, path: Path) -> MediaFileUpload:
        return MediaFileUpload(
            str(path),
            mimetype="application/octet-stream",
            resumable=True,
            chunksize=self._chunk_size,
        )

    def _upload(self, request: Any) -> dict:
        response = None
        last_pct = -1
        attempt = 0

        while response is None:
            try:
                status, response = request.next_chunk(num_retries=3)
                attempt = 0

                if status and self._on_progress is not None:
                    pct = int(status.progress() * 100)
                    if pct != last_pct:
                        last_pct = pct
                        self._on_progress(pct)

            except HttpError as e:
                # Retry transient server-side errors with exponential backoff
                code = getattr(getattr(e, "resp", None), "status", None)
                if code in TRANSIENT_STATUSES and attempt < self._max_retries:
                    self._sleep(min(60, (2 ** attempt)) + random.random())
                    attempt += 1
                    continue
                raise api_error(e) from e
            except CONNECTION_ERRORS as e:
                raise connection_error(e) from e

        return response

    def insert_edit(self, application_id: str) -> str:
        edit = self._execute(self._service.edits().insert(body={}, packageName=application_id))
        return edit["id"]

    def list_tracks(self, application_id: str, edit_id: str) -> list[dict]:
        response = self._execute(
            self._service.edits().tracks().list(packageName=application_id, editId=edit_id)
        )
        return response.get("tracks") or []

    def list_bundles(self, application_id: str, edit_id: str) -> list[dict]:
        response = self._execute(
            self._service.edits().bundles().list(packageName=application_id, editId=edit_id)
        )
        return response.get("bundles") or []

    def list_apks(self, application_id: str, edit_id: str) -> list[dict]:
        response = self._execute(
            self._service.edits().apks().list(packageName=application_id, editId=edit_id)
        )
        return response.get("apks") or []

    def upload_bundle(self, application_id: str, edit_id: str, path: Path) -> dict:
        request = self._service.edits().bundles().upload(
            packageName=application_id,
            editId=edit_id,
            media_body=self._media(path),
            # Prevents an API error when uploading large bundles
            ackBundleInstallationWarning=True,
        )
        return self._upload(request)

    def upload_apk(self, application_id: str, edit_id: str, path: Path) -> dict:
        request = self._service.edits().apks().upload(
            packageName=application_id,
            editId=edit_id,
            media_body=self._media(path),
        )
        return self._upload(request)

    def upload_deobfuscation_file(
        self, application_id: str, edit_id: str, version_code: int, file_type: str, path: Path
    ) -> dict:
        request = self._service.edits().deobfuscationfiles().upload(
            packageName=application_id,
            editId=edit_id,
            apkVersionCode=version_code,
            deobfuscationFileType=file_type,
            media_body=self._media(path),
        )
        return self._upload(request)

    def get_expansion_file(
        self, application_id: str, edit_id: str, version_code: int, file_type: str
    ) -> Optional[dict]:
        request = self._service.edits().expansionfiles().get(
            packageName=application_id,
            editId=edit_id,
            apkVersionCode=version_code,
            expansionFileType=file_type,
        )
        try:
            return request.execute() or {}
        except HttpError as e:
            # 404 means there is no such expansion file or reference
            if getattr(getattr(e, "resp", None), "status", None) == 404:
                return None
            raise api_error(e) from e
        except CONNECTION_ERRORS as e:
            raise connection_error(e) from e

    def upload_expansion_file(
        self, application_id: str, edit_id: str, version_code: int, file_type: str, path: Path
    ) -> dict:
        request = self._service.edits().expansionfiles().upload(
            packageName=application_id,
            editId=edit_id,
            apkVersionCode=version_code,
            expansionFileType=file_type,
            media_body=self._media(path),
        )
        return self._upload(request)

    def update_expansion_file(
        self, application_id: str, edit_id: str, version_code: int, file_type: str, references_version: int
    ) -> dict:
        return self._execute(
            self._service.edits().expansionfiles().update(
                packageName=application_id,
                editId=edit_id,
                apkVersionCode=version_code,
                expansionFileType=file_type,
                body={"referencesVersion": references_version},
            )
        )

    def update_track(self, application_id: str, edit_id: str, track_name: str, body: dict) -> dict:
        return self._execute(
            self._service.edits().tracks().update(
                packageName=application_id,
                editId=edit_id,
                track=track_name,
                body=body,
            )
        )

    def commit_edit(self, application_id: str, edit_id: str, changes_not_sent_for_review: bool) -> dict:
        return self._execute(
            self._service.edits().commit(
                packageName=application_id,
                editId=edit_id,
                changesNotSentForReview=changes_not_sent_for_review,
            )
        )

    def upload_internal_app_sharing_apk(self, application_id: str, path: Path) -> dict:
        request = self._service.internalappsharingartifacts().uploadapk(
            packageName=application_id,
            media_body=self._media(path),
        )
        return self._upload(request)

    def upload_internal_app_sharing_bundle(self, application_id: str, path: Path) -> dict:
        request = self._service.internalappsharingartifacts().uploadbundle(
            packageName=application_id,
            media_body=self._media(path),
        )
        return self._upload(request)
