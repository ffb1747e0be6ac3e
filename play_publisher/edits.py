from __future__ import annotations

from play_publisher.backend import PlayBackend
from play_publisher.errors import PublisherApiError
from play_publisher.models import EditSession, PublishContext

# Google Play rejects a commit with this in the error message when the changes
# can't be sent for review automatically
CHANGES_NOT_SENT_FOR_REVIEW = "changesNotSentForReview"


def open_edit(backend: PlayBackend, context: PublishContext) -> EditSession:
    context.check_interrupted()
    edit_id = backend.insert_edit(context.application_id)
    return EditSession(application_id=context.application_id, edit_id=edit_id)


def cannot_be_sent_for_review(e: PublisherApiError) -> bool:
    return bool(e.message) and CHANGES_NOT_SENT_FOR_REVIEW in e.message


def commit_edit(backend: PlayBackend, context: PublishContext, session: EditSession) -> bool:
    """Commits the edit, sending the changes for review if possible.

    Returns True if the commit had to be retried without sending for review.
    """
    console = context.console
    console.print("Applying changes to Google Play...")
    context.check_interrupted()

    sent_without_review = False
    try:
        backend.commit_edit(session.application_id, session.edit_id, changes_not_sent_for_review=False)
    except PublisherApiError as e:
        if not cannot_be_sent_for_review(e):
            raise
        sent_without_review = True
        backend.commit_edit(session.application_id, session.edit_id, changes_not_sent_for_review=True)

    console.print("Changes were successfully applied to Google Play")
    if sent_without_review:
        console.print(
            "- However, it has indicated that these changes need to be manually submitted "
            "for review via the Google Play Console"
        )
    return sent_without_review
