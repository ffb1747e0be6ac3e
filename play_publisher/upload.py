from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence

from play_publisher.backend import PlayBackend
from play_publisher.console import human_readable_size
from play_publisher.errors import ConfigurationError
from play_publisher.models import (
    DEOBFUSCATION_FILE_TYPE_NATIVE_CODE,
    DEOBFUSCATION_FILE_TYPE_PROGUARD,
    OBB_FILE_TYPES,
    AppFileFormat,
    EditSession,
    ExistingAppFiles,
    ExpansionFile,
    ExpansionFileSet,
    PublishContext,
    UploadFile,
)


@dataclass(frozen=True)
class UploadRequest:
    app_files: Sequence[UploadFile]
    expansion_files: Mapping[int, ExpansionFileSet] = field(default_factory=dict)
    use_previous_expansion_files_if_missing: bool = False
    additional_version_codes: Sequence[int] = ()
    in_app_update_priority: Optional[int] = None
    release_name: Optional[str] = None


@dataclass(frozen=True)
class UploadOutcome:
    success: bool
    version_codes: tuple[int, ...] = ()
    release_name: Optional[str] = None
    duplicate_file: Optional[Path] = None


@dataclass
class ExpansionState:
    """The latest version code known to have each type of expansion file.

    `previous` holds what was found on Google Play before this edit, while `uploaded`
    tracks files uploaded during this edit, which take precedence.
    """

    previous: dict[str, int] = field(default_factory=dict)
    uploaded: dict[str, int] = field(default_factory=dict)

    def latest(self, file_type: str) -> Optional[int]:
        if file_type in self.uploaded:
            return self.uploaded[file_type]
        return self.previous.get(file_type)


def print_app_file_details(context: PublishContext, app_file: UploadFile, width: int = 17) -> None:
    console = context.console
    rows = [
        (f"{app_file.file_format.label} file", context.relative_name(app_file.path)),
        ("File size", human_readable_size(app_file.path.stat().st_size)),
        ("SHA-1 hash", app_file.sha1_hash),
        ("versionCode", str(app_file.version_code)),
        ("versionName", app_file.version_name),
        ("minSdkVersion", app_file.metadata.min_sdk_version),
    ]
    for label, value in rows:
        console.print(f"{label:>{width}}: {value}")


def expand_release_name(release_name: Optional[str], app_files: Sequence[UploadFile]) -> Optional[str]:
    if not release_name or not app_files:
        return release_name
    first = app_files[0]
    return release_name.replace("{versionCode}", str(first.version_code)).replace(
        "{versionName}", first.version_name
    )


def merge_version_codes(uploaded: Iterable[int], additional: Iterable[int]) -> tuple[int, ...]:
    merged: list[int] = []
    for version_code in list(uploaded) + list(additional):
        if version_code not in merged:
            merged.append(version_code)
    return tuple(merged)


def upload_app_files(
    backend: PlayBackend,
    context: PublishContext,
    session: EditSession,
    existing: ExistingAppFiles,
    request: UploadRequest,
) -> UploadOutcome:
    """Uploads the app files, plus their mapping and expansion files, to the edit.

    Stops without uploading anything further if any file already exists on Google Play.
    """
    app_files = list(request.app_files)
    if not app_files:
        raise ConfigurationError("There are no app files to upload")
    file_format = app_files[0].file_format
    if any(f.file_format is not file_format for f in app_files):
        raise ConfigurationError("AAB and APK files cannot be uploaded together")

    console = context.console
    console.print(f"Uploading {len(app_files)} file(s) with application ID: {session.application_id}")
    console.blank()

    uploaded_version_codes: list[int] = []
    for app_file in app_files:
        print_app_file_details(context, app_file)

        # Google Play would reject a file which has already been uploaded
        if existing.contains_hash(app_file.sha1_hash):
            console.blank()
            console.print("This file already exists in the Google Play account; it cannot be uploaded again")
            return UploadOutcome(success=False, duplicate_file=app_file.path)

        version_code = upload_app_file(backend, context, session, app_file)
        uploaded_version_codes.append(version_code)

        upload_deobfuscation_file(
            backend, context, session, version_code, app_file.mapping_file,
            DEOBFUSCATION_FILE_TYPE_PROGUARD, "ProGuard mapping",
        )
        upload_deobfuscation_file(
            backend, context, session, version_code, app_file.native_debug_symbol_file,
            DEOBFUSCATION_FILE_TYPE_NATIVE_CODE, "Native symbols",
        )
        console.blank()

    if request.expansion_files or request.use_previous_expansion_files_if_missing:
        if file_format is AppFileFormat.APK:
            apply_expansion_files(
                backend,
                context,
                session,
                existing,
                uploaded_version_codes,
                request.expansion_files,
                request.use_previous_expansion_files_if_missing,
            )
        else:
            console.print("Ignoring expansion file settings, as we are uploading AAB file(s)")
        console.blank()

    if request.additional_version_codes:
        console.print(
            f"Including existing version codes: {', '.join(str(v) for v in request.additional_version_codes)}"
        )
        console.blank()

    if request.in_app_update_priority is not None:
        console.print(f"Setting in-app update priority to {request.in_app_update_priority}")
        console.blank()

    return UploadOutcome(
        success=True,
        version_codes=merge_version_codes(uploaded_version_codes, request.additional_version_codes),
        release_name=expand_release_name(request.release_name, app_files),
    )


def upload_app_file(
    backend: PlayBackend, context: PublishContext, session: EditSession, app_file: UploadFile
) -> int:
    context.check_interrupted()
    if app_file.file_format is AppFileFormat.BUNDLE:
        uploaded = backend.upload_bundle(session.application_id, session.edit_id, app_file.path)
    else:
        uploaded = backend.upload_apk(session.application_id, session.edit_id, app_file.path)
    return int(uploaded["versionCode"])


def upload_deobfuscation_file(
    backend: PlayBackend,
    context: PublishContext,
    session: EditSession,
    version_code: int,
    path: Optional[Path],
    file_type: str,
    description: str,
) -> bool:
    if path is None:
        return False

    console = context.console
    relative_name = context.relative_name(path)
    # Google Play rejects empty mapping files
    if path.stat().st_size == 0:
        console.print(f" Ignoring empty {description} file: {relative_name}")
        return False

    console.print(f" {description:>16}: {relative_name}")
    context.check_interrupted()
    backend.upload_deobfuscation_file(session.application_id, session.edit_id, version_code, file_type, path)
    return True


def apply_expansion_files(
    backend: PlayBackend,
    context: PublishContext,
    session: EditSession,
    existing: ExistingAppFiles,
    uploaded_version_codes: Iterable[int],
    expansion_files: Mapping[int, ExpansionFileSet],
    use_previous_if_missing: bool,
) -> ExpansionState:
    """Uploads or associates the expansion files for each of the uploaded APKs.

    Version codes are handled in ascending order, so that an expansion file uploaded with
    the lowest version code can be reused by the higher version codes in the same edit.
    """
    state = ExpansionState()
    if use_previous_if_missing:
        for file_type in OBB_FILE_TYPES:
            latest = find_latest_expansion_file_version_code(
                backend, context, session, existing.version_codes, file_type
            )
            if latest is not None:
                state.previous[file_type] = latest

    console = context.console
    for version_code in sorted(set(uploaded_version_codes)):
        file_set = expansion_files.get(version_code) or ExpansionFileSet()
        console.print(f"Handling expansion files for versionCode {version_code}")
        for file_type in OBB_FILE_TYPES:
            apply_expansion_file(
                backend, context, session, state, version_code, file_type,
                file_set.get(file_type), use_previous_if_missing,
            )
        console.blank()
    return state


def apply_expansion_file(
    backend: PlayBackend,
    context: PublishContext,
    session: EditSession,
    state: ExpansionState,
    version_code: int,
    file_type: str,
    path: Optional[Path],
    use_previous_if_missing: bool,
) -> None:
    console = context.console
    if path is not None:
        console.print(f"- Uploading new {file_type} expansion file: {path.name}")
        context.check_interrupted()
        backend.upload_expansion_file(session.application_id, session.edit_id, version_code, file_type, path)
        state.uploaded[file_type] = version_code
        return

    if not use_previous_if_missing:
        console.print(f"- No {file_type} expansion file to apply")
        return

    latest = state.latest(file_type)
    if latest is None:
        console.print(
            f"- No {file_type} expansion file to apply, and no existing APK with a {file_type} "
            f"expansion file was found"
        )
        return

    console.print(f"- Applying {file_type} expansion file from previous APK: {latest}")
    context.check_interrupted()
    backend.update_expansion_file(session.application_id, session.edit_id, version_code, file_type, latest)


def find_latest_expansion_file_version_code(
    backend: PlayBackend,
    context: PublishContext,
    session: EditSession,
    version_codes: Iterable[int],
    file_type: str,
) -> Optional[int]:
    """Returns the newest version code with an expansion file of this type, if any."""
    for version_code in sorted(set(version_codes), reverse=True):
        context.check_interrupted()
        response = backend.get_expansion_file(session.application_id, session.edit_id, version_code, file_type)
        if response is None:
            continue
        expansion_file = ExpansionFile(
            file_size=int(response.get("fileSize") or 0),
            references_version=int(response.get("referencesVersion") or 0),
        )
        if expansion_file.file_size > 0:
            return version_code
        if expansion_file.references_version > 0:
            return expansion_file.references_version
    return None
