from __future__ import annotations

from play_publisher.backend import PlayBackend
from play_publisher.models import AppFileFormat, InternalAppSharingArtifact, PublishContext, UploadFile
from play_publisher.upload import print_app_file_details


def share_app_file(
    backend: PlayBackend, context: PublishContext, app_file: UploadFile
) -> InternalAppSharingArtifact:
    """Uploads a single file to internal app sharing; no edit is involved."""
    console = context.console
    console.print("Uploading file to internal app sharing on Google Play...")
    console.print(f"- Credential:     {context.credential_name}")
    console.print(f"- Application ID: {context.application_id}")
    console.blank()

    print_app_file_details(context, app_file, width=16)
    console.blank()

    context.check_interrupted()
    if app_file.file_format is AppFileFormat.APK:
        response = backend.upload_internal_app_sharing_apk(context.application_id, app_file.path)
    else:
        response = backend.upload_internal_app_sharing_bundle(context.application_id, app_file.path)

    artifact = InternalAppSharingArtifact(
        download_url=response["downloadUrl"],
        sha256=response.get("sha256"),
        certificate_fingerprint=response.get("certificateFingerprint"),
    )
    console.print("Internal app sharing file was successfully uploaded to Google Play:")
    console.print(artifact.download_url)
    return artifact
