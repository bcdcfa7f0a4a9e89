"""
Google Calendar client - OAuth2 consent and Meet-link creation.

Teachers connect their Google account once (authorization-code flow with
offline access); the long-lived refresh credential is stored on the user.
Creating a session inserts a calendar event with a conference request and
returns the video entry point. Any failure raises DependencyError; there is
no retry and no local fallback.
"""

import uuid
from datetime import timedelta
from urllib.parse import urlencode

import httpx

from virtuclass import config
from virtuclass.errors import DependencyError
from virtuclass.logging_config import get_logger, log_with_context

logger = get_logger("integrations")

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
SCOPES = ["https://www.googleapis.com/auth/calendar.events"]


class GoogleCalendarClient:
    def __init__(self, client_id: str = None, client_secret: str = None,
                 redirect_uri: str = None, timeout: float = None):
        self.client_id = client_id or config.GOOGLE_CLIENT_ID
        self.client_secret = client_secret or config.GOOGLE_CLIENT_SECRET
        self.redirect_uri = redirect_uri or config.GOOGLE_OAUTH_REDIRECT
        self.timeout = timeout or config.HTTP_TIMEOUT_SECONDS

    def build_auth_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return "{}?{}".format(AUTH_URL, urlencode(params))

    def _post_token(self, data: dict) -> dict:
        payload = {"client_id": self.client_id, "client_secret": self.client_secret, **data}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(TOKEN_URL, data=payload)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPError as e:
            log_with_context(logger, "ERROR", "Google token request failed: {}".format(e),
                             extra_data={"grant_type": data.get("grant_type")})
            raise DependencyError("Google authorization failed") from e

    def exchange_code(self, code: str) -> dict:
        """Trade a one-time authorization code for tokens (may include refresh_token)."""
        return self._post_token({
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        })

    def create_meet_event(self, refresh_token: str, summary: str, start,
                          duration_minutes: int, description: str = None) -> dict:
        """
        Insert a calendar event with a Meet conference.

        Args:
            refresh_token: teacher's stored Google credential
            summary: event title
            start: naive UTC start datetime
            duration_minutes: event length

        Returns:
            {"event_id": str, "meet_url": str}
        """
        tokens = self._post_token({"refresh_token": refresh_token, "grant_type": "refresh_token"})
        access_token = tokens.get("access_token")
        if not access_token:
            raise DependencyError("Google did not return an access token")

        end = start + timedelta(minutes=duration_minutes)
        body = {
            "summary": summary,
            "description": description,
            "start": {"dateTime": start.isoformat() + "Z"},
            "end": {"dateTime": end.isoformat() + "Z"},
            "conferenceData": {
                "createRequest": {
                    "requestId": "meet-{}".format(uuid.uuid4().hex),
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
        }
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(
                    EVENTS_URL,
                    params={"conferenceDataVersion": 1},
                    headers={"Authorization": "Bearer {}".format(access_token)},
                    json=body,
                )
                resp.raise_for_status()
                event = resp.json()
        except httpx.HTTPError as e:
            log_with_context(logger, "ERROR", "Calendar event creation failed: {}".format(e))
            raise DependencyError("Failed to create Google Meet event") from e

        entry_points = (event.get("conferenceData") or {}).get("entryPoints") or []
        video = next((ep for ep in entry_points if ep.get("entryPointType") == "video"), None)
        meet_url = (video or {}).get("uri") or event.get("hangoutLink") or ""
        if not event.get("id") or not meet_url:
            raise DependencyError("Google did not return a Meet link")

        log_with_context(logger, "INFO", "Meet event created",
                         context={"event_id": event["id"]})
        return {"event_id": event["id"], "meet_url": meet_url}


_default_calendar = GoogleCalendarClient()


def get_calendar() -> GoogleCalendarClient:
    return _default_calendar
