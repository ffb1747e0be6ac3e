from __future__ import annotations

from typing import Iterable, Optional, Sequence

from play_publisher.backend import PlayBackend
from play_publisher.models import EditSession, PublishContext, ReleaseNote

STATUS_DRAFT = "draft"
STATUS_IN_PROGRESS = "inProgress"
STATUS_COMPLETED = "completed"


def format_percentage(value: float) -> str:
    """Formats a percentage with up to four decimal places, e.g. 12.5 or 100."""
    text = f"{value:.4f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def rollout_status(rollout_fraction: float) -> tuple[str, Optional[float]]:
    """Returns the release status for a rollout fraction, plus the fraction to send, if any."""
    if rollout_fraction == 0:
        return STATUS_DRAFT, None
    if rollout_fraction == 1:
        return STATUS_COMPLETED, None
    return STATUS_IN_PROGRESS, rollout_fraction


def build_release(
    version_codes: Iterable[int],
    rollout_fraction: float,
    in_app_update_priority: Optional[int] = None,
    release_name: Optional[str] = None,
    release_notes: Optional[Sequence[ReleaseNote]] = None,
) -> dict:
    status, fraction = rollout_status(rollout_fraction)
    release: dict = {
        # The API encodes int64 values as strings
        "versionCodes": [str(v) for v in sorted(set(version_codes))],
        "status": status,
    }
    if fraction is not None:
        release["userFraction"] = fraction
    if release_name:
        release["name"] = release_name
    if in_app_update_priority is not None:
        release["inAppUpdatePriority"] = in_app_update_priority
    if release_notes:
        release["releaseNotes"] = [{"language": n.language, "text": n.text} for n in release_notes]
    return release


def assign_to_track(
    backend: PlayBackend,
    context: PublishContext,
    session: EditSession,
    track_name: str,
    version_codes: Iterable[int],
    rollout_fraction: float,
    in_app_update_priority: Optional[int] = None,
    release_name: Optional[str] = None,
    release_notes: Optional[Sequence[ReleaseNote]] = None,
) -> dict:
    """Assigns a single release, containing the given version codes, to a release track.

    This replaces whichever releases the track had within this edit.
    """
    release = build_release(
        version_codes, rollout_fraction, in_app_update_priority, release_name, release_notes
    )
    is_draft = release["status"] == STATUS_DRAFT

    console = context.console
    rollout = f"{format_percentage(rollout_fraction * 100)}%"
    if is_draft:
        rollout += " (draft)"
    languages = sorted(n.language for n in release_notes or [])

    console.print(f"Updating release track '{track_name}':")
    console.print(f"- Application ID:  {session.application_id}")
    console.print(f"- Version codes:   {', '.join(release['versionCodes'])}")
    console.print(f"- Staged rollout:  {rollout}")
    console.print(
        f"- Update priority: {in_app_update_priority if in_app_update_priority is not None else '(default)'}"
    )
    console.print(f"- Release name:    {release_name or '(default)'}")
    console.print(f"- Release notes:   {', '.join(languages) if languages else '(none)'}")
    console.blank()

    context.check_interrupted()
    body = {"track": track_name, "releases": [release]}
    updated = backend.update_track(session.application_id, session.edit_id, track_name, body)

    releases = (updated or {}).get("releases") or [release]
    assigned = ", ".join(str(v) for v in releases[0].get("versionCodes") or [])
    if is_draft:
        console.print(f"New '{track_name}' draft release created, with the version code(s): {assigned}")
    else:
        console.print(f"The '{track_name}' release track will now contain the version code(s): {assigned}")
    console.blank()
    return updated
