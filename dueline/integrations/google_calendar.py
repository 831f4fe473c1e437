"""Google Calendar integration for dueline (read-only)."""

import logging
import os
from datetime import date, datetime, time, timedelta
from typing import List, Optional
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from dotenv import load_dotenv

from dueline.errors import CalendarProviderError
from dueline.models.constants import UNTITLED_EVENT_TITLE
from dueline.models.occurrence import ExternalEvent

load_dotenv()

logger = logging.getLogger(__name__)

# Google Calendar API scopes (events are never written back)
SCOPES = ['https://www.googleapis.com/auth/calendar.readonly']

# Only the fields the day index needs
EVENT_FIELDS = "items(id,summary,description,status,htmlLink,start,end),nextPageToken"


def local_midnight(day: date) -> datetime:
    """Start of `day` in the machine's local timezone, with its UTC offset attached."""
    return datetime.combine(day, time.min).astimezone()


def event_from_google(item: dict) -> Optional[ExternalEvent]:
    """Map a Google Calendar event resource to an ExternalEvent.

    Timed events use the date and HH:MM of `start.dateTime` as written (the local
    calendar's wall clock); all-day events use `start.date` and have no time.
    Returns None for cancelled events or events without a usable start.
    """
    if item.get("status") == "cancelled":
        return None
    start = item.get("start") or {}
    date_time = start.get("dateTime")
    all_day = start.get("date")
    try:
        if date_time:
            day = date.fromisoformat(date_time[:10])
            start_time = date_time[11:16] or None
        elif all_day:
            day = date.fromisoformat(all_day)
            start_time = None
        else:
            logger.debug(f"Skipping calendar event {item.get('id')} without a start")
            return None
    except ValueError:
        logger.debug(f"Skipping calendar event {item.get('id')} with malformed start {start!r}")
        return None

    return ExternalEvent(
        id=item["id"],
        title=item.get("summary") or UNTITLED_EVENT_TITLE,
        date=day,
        time=start_time,
        description=item.get("description"),
        html_link=item.get("htmlLink"),
    )


class GoogleCalendarClient:
    """Read-only client for Google Calendar API (an external CalendarProvider)."""

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        calendar_id: Optional[str] = None,
        credentials_path: Optional[str] = None,
        token_path: Optional[str] = None,
        interactive: bool = False,
    ):
        """Initialize Google Calendar client.

        Args:
            credentials: Ready-to-use OAuth2 credentials. If None, the local token /
                        client-secrets files are used (see `_authenticate`).
            calendar_id: Google Calendar ID to read.
                        If None, reads from GOOGLE_CALENDAR_ID env var (defaults to 'primary').
            credentials_path: Path to OAuth2 client secrets JSON file.
                             If None, reads from GOOGLE_CALENDAR_CREDENTIALS_PATH env var.
            token_path: Path to store the OAuth2 token.
                       If None, reads from GOOGLE_CALENDAR_TOKEN_PATH env var (defaults to 'token.json').
            interactive: Run the browser consent flow when no usable token exists.
                        Only the setup step (`python -m dueline.integrations.google_calendar`)
                        passes True; request handlers never block on a browser.
        """
        self.calendar_id = calendar_id or os.getenv("GOOGLE_CALENDAR_ID", "primary")
        self.credentials_path = credentials_path or os.getenv("GOOGLE_CALENDAR_CREDENTIALS_PATH", "credentials.json")
        self.token_path = token_path or os.getenv("GOOGLE_CALENDAR_TOKEN_PATH", "token.json")
        self.interactive = interactive
        self.service = None
        if credentials is not None:
            self.creds = credentials
            self.service = build('calendar', 'v3', credentials=credentials, cache_discovery=False)
        else:
            self._authenticate()

    def _authenticate(self):
        """Authenticate with Google Calendar API using OAuth2.

        Raises:
            CalendarProviderError: no usable token exists and the client is not interactive
        """
        creds = None

        # Load existing token if available
        if os.path.exists(self.token_path):
            creds = Credentials.from_authorized_user_file(self.token_path, SCOPES)

        # If no valid credentials, get new ones
        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                creds.refresh(Request())
            elif not self.interactive:
                raise CalendarProviderError(
                    f"No usable Google Calendar token at {self.token_path}. "
                    "Run `python -m dueline.integrations.google_calendar` once to authorize."
                )
            else:
                if not os.path.exists(self.credentials_path):
                    raise FileNotFoundError(
                        f"Google Calendar credentials not found at {self.credentials_path}. "
                        "Please download OAuth2 credentials from Google Cloud Console."
                    )
                flow = InstalledAppFlow.from_client_secrets_file(
                    self.credentials_path, SCOPES
                )
                creds = flow.run_local_server(port=0)

            # Save credentials for next run
            with open(self.token_path, 'w') as token:
                token.write(creds.to_json())

        self.creds = creds
        self.service = build('calendar', 'v3', credentials=creds, cache_discovery=False)

    def list_events_in_range(
        self,
        time_min_rfc3339: str,
        time_max_rfc3339: str,
        fields: Optional[str] = None,
    ) -> List[dict]:
        """List single (expanded) events between two RFC3339 timestamps, following pagination.

        Raises:
            CalendarProviderError: If API call fails
        """
        items: List[dict] = []
        page_token = None
        while True:
            params = {
                'calendarId': self.calendar_id,
                'timeMin': time_min_rfc3339,
                'timeMax': time_max_rfc3339,
                'singleEvents': True,
                'orderBy': 'startTime',
                'showDeleted': False,
            }
            if fields:
                params['fields'] = fields
            if page_token:
                params['pageToken'] = page_token
            try:
                response = self.service.events().list(**params).execute()
            except HttpError as error:
                raise CalendarProviderError(f"Failed to list calendar events: {error}") from error

            items.extend(response.get('items') or [])
            page_token = response.get('nextPageToken')
            if not page_token:
                break
        return items

    def list_events(self, start: date, end: date) -> List[ExternalEvent]:
        """Events starting on a day in [start, end] of the local calendar."""
        time_min = local_midnight(start).isoformat()
        time_max = local_midnight(end + timedelta(days=1)).isoformat()
        items = self.list_events_in_range(time_min, time_max, fields=EVENT_FIELDS)

        events: List[ExternalEvent] = []
        for item in items:
            event = event_from_google(item)
            if event is not None and start <= event.date <= end:
                events.append(event)
        logger.debug(f"Fetched {len(events)} calendar events for {start.isoformat()}..{end.isoformat()}")
        return events


if __name__ == "__main__":
    # One-time setup: run the consent flow and write the token the API reads.
    logging.basicConfig(level=logging.INFO)
    client = GoogleCalendarClient(interactive=True)
    logger.info(f"Google Calendar token written to {client.token_path}")
