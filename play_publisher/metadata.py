from __future__ import annotations

import hashlib
import os
import re
import shlex
import subprocess
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional, Protocol

from play_publisher.errors import MetadataError
from play_publisher.models import AppFileFormat, AppFileMetadata, UploadFile

ANDROID_NS = "{http://schemas.android.com/apk/res/android}"

BADGING_PACKAGE_RE = re.compile(r"^package:\s*(.*)$", re.MULTILINE)
BADGING_ATTR_RE = re.compile(r"(\w+)='([^']*)'")
BADGING_MIN_SDK_RE = re.compile(r"^(?:minSdkVersion|sdkVersion):'([^']*)'", re.MULTILINE)


class MetadataExtractor(Protocol):
    def get_app_file_metadata(self, path: Path, file_format: AppFileFormat) -> AppFileMetadata: ...


def run(cmd: list[str], *, cwd: Optional[str] = None) -> str:
    try:
        p = subprocess.run(cmd, cwd=cwd, check=False, text=True, stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
    except OSError as e:
        raise MetadataError(f"Could not run {cmd[0]}: {e}") from e
    if p.returncode != 0:
        raise MetadataError(f"Command failed ({p.returncode}): {' '.join(cmd)}\n{p.stdout}")
    return p.stdout.strip()


def sha1_of_file(path: Path) -> str:
    h = hashlib.sha1()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def file_format_for(path: Path) -> AppFileFormat:
    return AppFileFormat.BUNDLE if path.suffix.lower() == ".aab" else AppFileFormat.APK


def parse_badging(output: str) -> AppFileMetadata:
    m = BADGING_PACKAGE_RE.search(output)
    if not m:
        raise MetadataError("No package information found in the APK")
    attrs = dict(BADGING_ATTR_RE.findall(m.group(1)))
    sdk = BADGING_MIN_SDK_RE.search(output)
    try:
        version_code = int(attrs["versionCode"])
    except (KeyError, ValueError) as e:
        raise MetadataError(f"Could not read the versionCode of the APK: {attrs.get('versionCode')!r}") from e
    return AppFileMetadata(
        application_id=attrs.get("name", ""),
        version_code=version_code,
        version_name=attrs.get("versionName", ""),
        min_sdk_version=sdk.group(1) if sdk else "1",
    )


def parse_manifest_xml(output: str) -> AppFileMetadata:
    try:
        manifest = ET.fromstring(output)
    except ET.ParseError as e:
        raise MetadataError(f"Could not parse the bundle manifest: {e}") from e
    uses_sdk = manifest.find("uses-sdk")
    min_sdk = uses_sdk.get(f"{ANDROID_NS}minSdkVersion") if uses_sdk is not None else None
    raw_version_code = manifest.get(f"{ANDROID_NS}versionCode")
    try:
        version_code = int(raw_version_code or "")
    except ValueError as e:
        raise MetadataError(f"Could not read the versionCode of the bundle: {raw_version_code!r}") from e
    return AppFileMetadata(
        application_id=manifest.get("package", ""),
        version_code=version_code,
        version_name=manifest.get(f"{ANDROID_NS}versionName", ""),
        min_sdk_version=min_sdk or "1",
    )


class SdkToolsMetadataExtractor:
    """Reads app file metadata with `aapt2` (APK) and `bundletool` (AAB) from the Android SDK."""

    def __init__(self, aapt2: Optional[str] = None, bundletool: Optional[str] = None):
        self.aapt2 = shlex.split(aapt2 or os.environ.get("AAPT2", "aapt2"))
        self.bundletool = shlex.split(bundletool or os.environ.get("BUNDLETOOL", "bundletool"))

    def get_app_file_metadata(self, path: Path, file_format: AppFileFormat) -> AppFileMetadata:
        if file_format is AppFileFormat.BUNDLE:
            return parse_manifest_xml(run(self.bundletool + ["dump", "manifest", "--bundle", str(path)]))
        return parse_badging(run(self.aapt2 + ["dump", "badging", str(path)]))


def load_upload_file(
    extractor: MetadataExtractor,
    path: Path,
    mapping_file: Optional[Path] = None,
    native_debug_symbol_file: Optional[Path] = None,
) -> UploadFile:
    file_format = file_format_for(path)
    return UploadFile(
        path=path,
        file_format=file_format,
        sha1_hash=sha1_of_file(path),
        metadata=extractor.get_app_file_metadata(path, file_format),
        mapping_file=mapping_file,
        native_debug_symbol_file=native_debug_symbol_file,
    )
