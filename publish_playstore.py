#!/usr/bin/env python3
from __future__ import annotations

import argparse
import socket
from typing import Optional, Sequence

from play_publisher.backend import GooglePlayBackend
from play_publisher.config import build_config
from play_publisher.console import Console
from play_publisher.credentials import credential_name, load_credentials
from play_publisher.errors import UploadError
from play_publisher.files import collect_upload_files, find_expansion_files
from play_publisher.metadata import SdkToolsMetadataExtractor
from play_publisher.models import InternalAppSharingDestination, PublishContext
from play_publisher.publisher import get_publisher_error_message, publish
from play_publisher.upload import UploadRequest

socket.setdefaulttimeout(30 * 60)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Upload APK or AAB files to Google Play.")
    ap.add_argument("--credentials", help="Service account JSON: a file path, raw JSON, or '-' for stdin")
    ap.add_argument("--workspace", default=".", help="Directory that file patterns are relative to")
    ap.add_argument("--application-id", help="Fail unless the files have this application ID")
    ap.add_argument("--files-pattern", help="Comma-separated glob patterns of AAB or APK files")
    ap.add_argument("--deobfuscation-files-pattern", help="Glob patterns of ProGuard mapping files")
    ap.add_argument("--native-debug-symbol-files-pattern", help="Glob patterns of native debug symbol files")
    ap.add_argument("--expansion-files-pattern", help="Glob patterns of expansion (.obb) files")
    ap.add_argument(
        "--use-previous-expansion-files",
        dest="use_previous_expansion_files_if_missing",
        action="store_true",
        help="Reuse the latest expansion files if none are given for an APK",
    )
    ap.add_argument("--track", help="internal|alpha|beta|production, a custom track, or internal-app-sharing")
    ap.add_argument("--rollout-percentage", help="0 creates a draft, 100 rolls out to everyone, e.g. '12.5%%'")
    ap.add_argument(
        "--release-name", help="May contain {versionCode} and {versionName}; defaults to $CI_COMMIT_TAG"
    )
    ap.add_argument("--in-app-update-priority", help="In-app update priority of the release")
    ap.add_argument("--additional-version-codes", help="Existing version codes to include, e.g. '5, 55'")
    ap.add_argument(
        "--release-notes",
        action="append",
        metavar="LANG=TEXT",
        help=(
            "Release notes for a language; use LANG=@file to read them from a file in the workspace. "
            "May be repeated"
        ),
    )
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    console = Console()

    try:
        config = build_config(args)

        app_files = collect_upload_files(
            config.workspace,
            SdkToolsMetadataExtractor(),
            console,
            files_pattern=config.files_pattern,
            deobfuscation_files_pattern=config.deobfuscation_files_pattern,
            native_debug_symbol_files_pattern=config.native_debug_symbol_files_pattern,
            expected_application_id=config.application_id,
        )
        expansion_files = {}
        if not isinstance(config.destination, InternalAppSharingDestination):
            expansion_files = find_expansion_files(config.workspace, config.expansion_files_pattern, console)

        credentials = load_credentials(config.credentials)
        backend = GooglePlayBackend.from_credentials(
            credentials, on_progress=lambda pct: console.print(f"Upload progress: {pct}%")
        )
        context = PublishContext(
            application_id=app_files[0].metadata.application_id,
            console=console,
            workspace=config.workspace,
            credential_name=credential_name(credentials),
        )
        request = UploadRequest(
            app_files=app_files,
            expansion_files=expansion_files,
            use_previous_expansion_files_if_missing=config.use_previous_expansion_files_if_missing,
            additional_version_codes=config.additional_version_codes,
            in_app_update_priority=config.in_app_update_priority,
            release_name=config.release_name,
        )

        result = publish(backend, context, config.destination, request, config.release_notes)
    except UploadError as e:
        console.error("Upload to Google Play failed")
        console.error(get_publisher_error_message(e))
        return 1
    except Exception as e:
        console.error(f"Unexpected error: {e}")
        console.error(get_publisher_error_message(e))
        return 1

    if not result.success:
        console.error("Upload to Google Play failed")
        return 1

    if result.artifact is not None:
        console.print(f"OK: package={context.application_id} url={result.artifact.download_url}")
    else:
        codes = ", ".join(str(v) for v in result.version_codes)
        console.print(
            f"OK: package={context.application_id} track={result.track_name} versionCodes={codes} "
            f"name={result.release_name or '(default)'}"
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
