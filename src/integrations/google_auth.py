"""
Syllabus Calendar — Google Calendar Authentication.

Each user connects their own Google account: the bot hands out a consent
URL, the user pastes back the authorization code, and the resulting token
JSON is stored on the user's row. Without a token, sync is unavailable.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]


def get_google_auth_url() -> tuple[str, InstalledAppFlow]:
    """Generate a Google OAuth2 authorization URL for manual flow.

    Returns (auth_url, flow) — the user visits auth_url, authorizes,
    and pastes back the auth code.
    """
    from src.config import settings

    creds_path = Path(settings.GOOGLE_CREDENTIALS_PATH)
    if not creds_path.exists():
        raise FileNotFoundError(
            f"Google credentials file not found at {creds_path}. "
            "Download it from the Google Cloud Console."
        )

    flow = InstalledAppFlow.from_client_secrets_file(
        str(creds_path), SCOPES,
        redirect_uri="urn:ietf:wg:oauth:2.0:oob",
    )
    auth_url, _ = flow.authorization_url(prompt="consent", access_type="offline")
    return auth_url, flow


def exchange_google_auth_code(flow: InstalledAppFlow, code: str) -> str:
    """Exchange an authorization code for credentials.

    Returns the token as a JSON string suitable for storing in UserDB.
    """
    flow.fetch_token(code=code.strip())
    return flow.credentials.to_json()


def get_calendar_service_for_user(token_json: str):
    """Build a Google Calendar API service from stored user credentials.

    Refreshes the token if expired.
    """
    creds = Credentials.from_authorized_user_info(json.loads(token_json), SCOPES)
    if creds.expired and creds.refresh_token:
        creds.refresh(Request())
        logger.info("Google token refreshed")
    return build("calendar", "v3", credentials=creds, cache_discovery=False)
