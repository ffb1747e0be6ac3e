from __future__ import annotations

import json
from typing import Optional


class UploadError(Exception):
    pass


class ConfigurationError(UploadError):
    pass


class CredentialsError(UploadError):
    pass


class UploadInterruptedError(UploadError):
    pass


class PublisherApiError(UploadError):
    """A failed call to the Google Play Developer API.

    `message` is the top-level error message from the response body, and
    `error_messages` holds the individual messages from its `errors` list,
    which are what we show to the user.
    """

    def __init__(
        self,
        description: str,
        *,
        status: Optional[int] = None,
        message: Optional[str] = None,
        error_messages: Optional[list[str]] = None,
    ):
        super().__init__(description)
        self.status = status
        self.message = message
        self.error_messages = error_messages or []

    @classmethod
    def from_response(cls, status: Optional[int], content: bytes | str | None) -> "PublisherApiError":
        if isinstance(content, bytes):
            content = content.decode("utf-8", errors="replace")
        content = content or ""

        message = None
        error_messages: list[str] = []
        try:
            error = json.loads(content).get("error") or {}
        except (ValueError, AttributeError):
            error = {}
        if isinstance(error, dict):
            message = error.get("message")
            for item in error.get("errors") or []:
                if isinstance(item, dict) and item.get("message"):
                    error_messages.append(item["message"])
            if not error_messages and message:
                error_messages.append(message)

        description = f"Google API error (HTTP {status if status else '??'})"
        if message:
            description = f"{description}: {message}"
        elif content:
            description = f"{description}:\n{content}"
        return cls(description, status=status, message=message, error_messages=error_messages)


class MetadataError(UploadError):
    pass
