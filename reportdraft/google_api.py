# reportdraft/google_api.py

import logging
from pathlib import Path
from typing import Any, Sequence

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

LOGGER = logging.getLogger(__name__)

GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.compose", "https://www.googleapis.com/auth/gmail.readonly"]
SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]


def load_credentials(token_path: Path, scopes: Sequence[str]) -> Credentials:
    """
    Load an authorized-user token file, refreshing it when expired.

    The refreshed token is written back so the next run starts valid.
    """
    token_path = Path(token_path).expanduser()
    if not token_path.exists():
        raise FileNotFoundError(f"Google token file not found: {token_path}")

    credentials = Credentials.from_authorized_user_file(str(token_path), list(scopes))
    if credentials.valid:
        return credentials

    if not credentials.refresh_token:
        raise RuntimeError(f"Token at {token_path} is invalid and has no refresh token")

    try:
        credentials.refresh(Request())
    except RefreshError as exc:
        raise RuntimeError(f"Refresh token expired or revoked: {exc}") from exc

    token_path.write_text(credentials.to_json(), encoding="utf-8")
    LOGGER.info("Refreshed Google credentials at %s", token_path)
    return credentials


def build_service(api: str, version: str, token_path: Path, scopes: Sequence[str]) -> Any:
    credentials = load_credentials(token_path, scopes)
    service = build(api, version, credentials=credentials, cache_discovery=False)
    LOGGER.info("%s %s service initialized", api, version)
    return service
