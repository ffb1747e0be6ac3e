from __future__ import annotations

import re
from pathlib import Path
from typing import Optional, Sequence

from play_publisher.console import Console
from play_publisher.errors import ConfigurationError
from play_publisher.metadata import MetadataExtractor, load_upload_file
from play_publisher.models import OBB_FILE_TYPE_MAIN, OBB_FILE_TYPE_PATCH, ExpansionFileSet, UploadFile

DEFAULT_FILES_PATTERN = "**/build/outputs/**/*.aab, **/build/outputs/**/*.apk"

OBB_FILE_REGEX = re.compile(r"^(main|patch)\.([0-9]+)\.([._a-z0-9]+)\.obb$", re.IGNORECASE)


def split_patterns(patterns: str) -> list[str]:
    return [p.strip() for p in patterns.split(",") if p.strip()]


def find_files(workspace: Path, patterns: str) -> list[Path]:
    found: set[Path] = set()
    for pattern in split_patterns(patterns):
        try:
            found.update(p for p in workspace.glob(pattern) if p.is_file())
        except NotImplementedError:
            raise ConfigurationError(
                f"File pattern '{pattern}' must be relative to the workspace directory"
            ) from None
    return sorted(found)


def select_app_files(workspace: Path, patterns: Optional[str], console: Console) -> list[Path]:
    """Returns the AAB files matching the patterns or, if there are none, the APK files."""
    patterns = patterns or DEFAULT_FILES_PATTERN
    matches = find_files(workspace, patterns)
    bundles = [p for p in matches if p.suffix.lower() == ".aab"]
    apks = [p for p in matches if p.suffix.lower() == ".apk"]
    if not bundles and not apks:
        raise ConfigurationError(f"No AAB or APK files matching the pattern '{patterns}' could be found")
    if bundles and apks:
        console.print("Both AAB and APK files were found; only the AAB files will be uploaded")
    return bundles or apks


def _shared_dir_depth(a: Path, b: Path) -> int:
    depth = 0
    for x, y in zip(a.parent.parts, b.parent.parts):
        if x != y:
            break
        depth += 1
    return depth


def pair_auxiliary_file(
    app_file: Path, candidates: Sequence[Path], console: Console, description: str
) -> Optional[Path]:
    """Picks the mapping or symbols file for an app file: the only one, or the closest by directory."""
    if not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0]
    scored = sorted(((_shared_dir_depth(app_file, c), c) for c in candidates), key=lambda s: -s[0])
    if len(scored) > 1 and scored[0][0] == scored[1][0]:
        tied = ", ".join(str(c) for depth, c in scored if depth == scored[0][0])
        console.print(
            f"Ignoring {description} files for {app_file.name}, as more than one matches it equally: {tied}"
        )
        return None
    return scored[0][1]


def find_expansion_files(
    workspace: Path, patterns: Optional[str], console: Console
) -> dict[int, ExpansionFileSet]:
    if not patterns:
        return {}

    found: dict[int, dict[str, Path]] = {}
    for path in find_files(workspace, patterns):
        m = OBB_FILE_REGEX.match(path.name)
        if not m:
            console.print(f"Ignoring expansion file with an unexpected name: {path.name}")
            continue
        file_type = m.group(1).lower()
        version_code = int(m.group(2))
        files = found.setdefault(version_code, {})
        if file_type in files:
            raise ConfigurationError(
                f"Multiple {file_type} expansion files were found for versionCode {version_code}"
            )
        files[file_type] = path

    return {
        version_code: ExpansionFileSet(
            main_file=files.get(OBB_FILE_TYPE_MAIN),
            patch_file=files.get(OBB_FILE_TYPE_PATCH),
        )
        for version_code, files in found.items()
    }


def collect_upload_files(
    workspace: Path,
    extractor: MetadataExtractor,
    console: Console,
    files_pattern: Optional[str] = None,
    deobfuscation_files_pattern: Optional[str] = None,
    native_debug_symbol_files_pattern: Optional[str] = None,
    expected_application_id: Optional[str] = None,
) -> list[UploadFile]:
    mapping_files = find_files(workspace, deobfuscation_files_pattern) if deobfuscation_files_pattern else []
    symbol_files = (
        find_files(workspace, native_debug_symbol_files_pattern) if native_debug_symbol_files_pattern else []
    )

    upload_files = [
        load_upload_file(
            extractor,
            path,
            mapping_file=pair_auxiliary_file(path, mapping_files, console, "ProGuard mapping"),
            native_debug_symbol_file=pair_auxiliary_file(path, symbol_files, console, "native symbols"),
        )
        for path in select_app_files(workspace, files_pattern, console)
    ]

    application_ids = sorted({f.metadata.application_id for f in upload_files})
    if len(application_ids) > 1:
        raise ConfigurationError(
            f"Multiple files were found, with different application IDs: {', '.join(application_ids)}"
        )
    if expected_application_id and application_ids[0] != expected_application_id:
        raise ConfigurationError(
            f"The files have application ID '{application_ids[0]}', "
            f"but '{expected_application_id}' was expected"
        )
    return upload_files
