from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Optional

from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account

from play_publisher.backend import SCOPE
from play_publisher.errors import CredentialsError

CREDENTIALS_ENV_VARS = ("GOOGLE_PLAY_CREDENTIALS", "GOOGLE_APPLICATION_CREDENTIALS")


def load_service_account_info(value: str) -> dict:
    """
    Accepts:
      - "-" to read JSON from stdin
      - a path to a JSON file
      - a raw JSON string
    """
    if value == "-":
        return json.loads(sys.stdin.read())

    if value.lstrip().startswith("{"):
        return json.loads(value)

    p = Path(value)
    if p.is_file():
        return json.loads(p.read_text(encoding="utf-8"))

    return json.loads(value)


def load_credentials(value: Optional[str] = None) -> service_account.Credentials:
    if not value:
        value = next((os.environ[v] for v in CREDENTIALS_ENV_VARS if os.environ.get(v)), None)
    if not value:
        raise CredentialsError(
            f"No Google Play credentials were provided; pass --credentials or set {CREDENTIALS_ENV_VARS[0]}"
        )

    try:
        info = load_service_account_info(value)
        return service_account.Credentials.from_service_account_info(info, scopes=[SCOPE])
    except (OSError, ValueError, GoogleAuthError) as e:
        raise CredentialsError(f"Could not load the Google Play service account credentials: {e}") from e


def credential_name(credentials: service_account.Credentials) -> str:
    return getattr(credentials, "service_account_email", None) or "(unknown)"
