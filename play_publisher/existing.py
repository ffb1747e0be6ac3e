from __future__ import annotations

from play_publisher.backend import PlayBackend
from play_publisher.models import EditSession, ExistingAppFiles


def snapshot_existing_app_files(backend: PlayBackend, session: EditSession) -> ExistingAppFiles:
    hashes: set[str] = set()
    version_codes: set[int] = set()

    for bundle in backend.list_bundles(session.application_id, session.edit_id) or []:
        version_codes.add(int(bundle["versionCode"]))
        if bundle.get("sha1"):
            hashes.add(bundle["sha1"].lower())

    for apk in backend.list_apks(session.application_id, session.edit_id) or []:
        version_codes.add(int(apk["versionCode"]))
        sha1 = (apk.get("binary") or {}).get("sha1")
        if sha1:
            hashes.add(sha1.lower())

    return ExistingAppFiles(hashes=frozenset(hashes), version_codes=frozenset(version_codes))
