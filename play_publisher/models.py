from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from play_publisher.console import Console
from play_publisher.errors import UploadInterruptedError

TRACK_NAME_INTERNAL_APP_SHARING = "internal-app-sharing"

DEOBFUSCATION_FILE_TYPE_PROGUARD = "proguard"
DEOBFUSCATION_FILE_TYPE_NATIVE_CODE = "nativeCode"

OBB_FILE_TYPE_MAIN = "main"
OBB_FILE_TYPE_PATCH = "patch"
OBB_FILE_TYPES = (OBB_FILE_TYPE_MAIN, OBB_FILE_TYPE_PATCH)


class AppFileFormat(Enum):
    APK = "apk"
    BUNDLE = "aab"

    @property
    def label(self) -> str:
        return "AAB" if self is AppFileFormat.BUNDLE else "APK"


@dataclass(frozen=True)
class AppFileMetadata:
    application_id: str
    version_code: int
    version_name: str
    min_sdk_version: str


@dataclass(frozen=True)
class UploadFile:
    path: Path
    file_format: AppFileFormat
    sha1_hash: str
    metadata: AppFileMetadata
    mapping_file: Optional[Path] = None
    native_debug_symbol_file: Optional[Path] = None

    @property
    def version_code(self) -> int:
        return self.metadata.version_code

    @property
    def version_name(self) -> str:
        return self.metadata.version_name


@dataclass(frozen=True)
class EditSession:
    application_id: str
    edit_id: str


@dataclass(frozen=True)
class ExistingAppFiles:
    hashes: frozenset[str] = frozenset()
    version_codes: frozenset[int] = frozenset()

    def contains_hash(self, sha1_hash: str) -> bool:
        return sha1_hash.lower() in self.hashes


@dataclass(frozen=True)
class ExpansionFile:
    file_size: int = 0
    references_version: int = 0


@dataclass(frozen=True)
class ExpansionFileSet:
    main_file: Optional[Path] = None
    patch_file: Optional[Path] = None

    def get(self, file_type: str) -> Optional[Path]:
        return self.main_file if file_type == OBB_FILE_TYPE_MAIN else self.patch_file


@dataclass(frozen=True)
class ReleaseNote:
    language: str
    text: str


@dataclass(frozen=True)
class InternalAppSharingArtifact:
    download_url: str
    sha256: Optional[str] = None
    certificate_fingerprint: Optional[str] = None


@dataclass(frozen=True)
class TrackDestination:
    track_name: str
    rollout_percentage: float

    @property
    def rollout_fraction(self) -> float:
        return self.rollout_percentage / 100


@dataclass(frozen=True)
class InternalAppSharingDestination:
    pass


Destination = Union[TrackDestination, InternalAppSharingDestination]


@dataclass
class PublishContext:
    """Everything an operation needs besides the backend itself."""

    application_id: str
    console: Console
    workspace: Optional[Path] = None
    credential_name: str = "(unknown)"
    interrupted: threading.Event = field(default_factory=threading.Event)

    def check_interrupted(self) -> None:
        if self.interrupted.is_set():
            raise UploadInterruptedError("The upload was interrupted")

    def relative_name(self, path: Path) -> str:
        if self.workspace is not None:
            try:
                return str(Path(path).relative_to(self.workspace))
            except ValueError:
                pass
        return str(path)
