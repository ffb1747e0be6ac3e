from __future__ import annotations

from typing import Iterable, Optional

from play_publisher.backend import PlayBackend
from play_publisher.models import EditSession, PublishContext


def list_published_tracks(backend: PlayBackend, session: EditSession) -> list[str]:
    """Returns the names of tracks which have at least one release."""
    tracks = backend.list_tracks(session.application_id, session.edit_id)
    return [t["track"] for t in tracks if t.get("track") and t.get("releases")]


def resolve_track_name(candidate: str, known_tracks: Iterable[str]) -> Optional[str]:
    wanted = candidate.lower()
    for name in known_tracks:
        if name.lower() == wanted:
            return name
    return None


def confirm_track_name(
    backend: PlayBackend, context: PublishContext, session: EditSession, track_name: str
) -> str:
    """Returns the server's spelling of `track_name`, or `track_name` itself if it isn't listed."""
    context.check_interrupted()
    canonical = resolve_track_name(track_name, list_published_tracks(backend, session))
    if canonical is not None:
        # Track names are case-sensitive on Google Play
        return canonical

    # Tracks without any releases are not listed, so this isn't necessarily an error
    console = context.console
    console.print(f"Release track '{track_name}' could not be found on Google Play")
    console.print("- This may be because this track does not yet have any releases, so we will continue…")
    console.print(
        "- Note: Custom track names are case-sensitive; double-check your configuration, if this build fails"
    )
    return track_name
