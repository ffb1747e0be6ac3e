from __future__ import annotations

import traceback
from dataclasses import dataclass
from typing import Optional, Sequence

from play_publisher.backend import PlayBackend
from play_publisher.edits import commit_edit, open_edit
from play_publisher.errors import (
    ConfigurationError,
    CredentialsError,
    PublisherApiError,
    UploadInterruptedError,
)
from play_publisher.existing import snapshot_existing_app_files
from play_publisher.models import (
    Destination,
    InternalAppSharingArtifact,
    InternalAppSharingDestination,
    PublishContext,
    ReleaseNote,
    TrackDestination,
)
from play_publisher.releases import assign_to_track
from play_publisher.sharing import share_app_file
from play_publisher.tracks import confirm_track_name
from play_publisher.upload import UploadRequest, upload_app_files


@dataclass(frozen=True)
class PublishResult:
    success: bool
    track_name: Optional[str] = None
    version_codes: tuple[int, ...] = ()
    release_name: Optional[str] = None
    sent_without_review: bool = False
    artifact: Optional[InternalAppSharingArtifact] = None


def publish(
    backend: PlayBackend,
    context: PublishContext,
    destination: Destination,
    request: UploadRequest,
    release_notes: Optional[Sequence[ReleaseNote]] = None,
) -> PublishResult:
    try:
        if isinstance(destination, InternalAppSharingDestination):
            return publish_to_internal_app_sharing(backend, context, request)
        if isinstance(destination, TrackDestination):
            return publish_to_track(backend, context, destination, request, release_notes)
        raise TypeError(f"Unknown destination: {destination!r}")
    except KeyboardInterrupt as e:
        raise UploadInterruptedError("The upload was interrupted") from e


def publish_to_internal_app_sharing(
    backend: PlayBackend, context: PublishContext, request: UploadRequest
) -> PublishResult:
    if len(request.app_files) != 1:
        raise ConfigurationError(
            f"Internal app sharing accepts exactly one file, but {len(request.app_files)} were found"
        )
    app_file = request.app_files[0]
    artifact = share_app_file(backend, context, app_file)
    return PublishResult(success=True, version_codes=(app_file.version_code,), artifact=artifact)


def publish_to_track(
    backend: PlayBackend,
    context: PublishContext,
    destination: TrackDestination,
    request: UploadRequest,
    release_notes: Optional[Sequence[ReleaseNote]] = None,
) -> PublishResult:
    console = context.console
    console.print("Authenticating to Google Play API...")
    console.print(f"- Credential:     {context.credential_name}")
    console.print(f"- Application ID: {context.application_id}")
    console.blank()

    # Opening an edit also verifies that the credentials are working
    session = open_edit(backend, context)
    track_name = confirm_track_name(backend, context, session, destination.track_name)
    existing = snapshot_existing_app_files(backend, session)

    outcome = upload_app_files(backend, context, session, existing, request)
    if not outcome.success:
        # The edit is never committed, so Google Play discards it
        return PublishResult(success=False, track_name=track_name)

    assign_to_track(
        backend,
        context,
        session,
        track_name,
        outcome.version_codes,
        destination.rollout_fraction,
        request.in_app_update_priority,
        outcome.release_name,
        release_notes,
    )
    sent_without_review = commit_edit(backend, context, session)
    return PublishResult(
        success=True,
        track_name=track_name,
        version_codes=outcome.version_codes,
        release_name=outcome.release_name,
        sent_without_review=sent_without_review,
    )


def get_publisher_error_message(e: BaseException) -> str:
    """Returns a user-friendly(ish) description of why publishing failed."""
    if isinstance(e, (CredentialsError, ConfigurationError, UploadInterruptedError)):
        return str(e)
    if isinstance(e, PublisherApiError):
        if not e.error_messages:
            cause = e.__cause__ if e.__cause__ is not None else e
            return f"Unknown error: {cause}"
        return "\n" + "".join(f"- {msg}\n" for msg in e.error_messages)

    # Anything else is unrelated to Google Play, so show everything
    return "".join(traceback.format_exception(type(e), e, e.__traceback__))
