"""Fitbit API client for making authenticated requests.

This module provides a client for interacting with the Fitbit API to retrieve
sleep logs, sleep stage timelines and the most recent sleep stage.

Juan Hernandez-Vargas - 2025
"""

from datetime import date as date_type
from datetime import datetime
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

import requests

import lib.auth
from lib.errors import AuthorizationError
from lib.errors import RemoteUnavailable
from lib.models import LiveStage
from lib.models import SleepSample
from lib.models import StageEvent


def parse_fitbit_time(value: str) -> datetime:
    """Parse a Fitbit timestamp.

    Fitbit API returns times in the user's local timezone (no Z suffix).

    Args:
        value: Timestamp such as '2025-01-02T03:04:00.000'.

    Returns:
        Naive local datetime.
    """
    return datetime.fromisoformat(value.replace('.000', ''))


def main_sleep(sleep_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Pick the main sleep log from a sleep-by-date response.

    Args:
        sleep_data: Response of the sleep log endpoint.

    Returns:
        The log flagged isMainSleep, else the first log, else None.
    """
    logs = sleep_data.get('sleep') or []
    if not logs:
        return None
    for log in logs:
        if log.get('isMainSleep'):
            return log
    return logs[0]


def sample_from_log(log: Dict[str, Any]) -> SleepSample:
    """Build a SleepSample from one Fitbit sleep log."""
    summary = log.get('levels', {}).get('summary', {})
    return SleepSample(
        date_of_sleep=log['dateOfSleep'],
        total_minutes=log.get('minutesAsleep', 0),
        deep_minutes=summary.get('deep', {}).get('minutes', 0),
        light_minutes=summary.get('light', {}).get('minutes', 0),
        rem_minutes=summary.get('rem', {}).get('minutes', 0),
        wake_minutes=summary.get('wake', {}).get('minutes', 0),
        efficiency=log.get('efficiency'),
    )


def stage_events_from_log(log: Dict[str, Any]) -> List[StageEvent]:
    """Extract the ordered stage timeline from one Fitbit sleep log."""
    return [
        StageEvent(timestamp=parse_fitbit_time(entry['dateTime']), stage=entry.get('level', 'wake').lower())
        for entry in log.get('levels', {}).get('data', [])
    ]


class FitbitClient:
    """Client for making authenticated requests to Fitbit API."""

    API_BASE_URL = 'https://api.fitbit.com'
    API_VERSION = '1'
    SLEEP_API_VERSION = '1.2'

    def __init__(self, auth: lib.auth.FitbitAuth, timeout: float = 30):
        """Initialize FitbitClient with authentication.

        Args:
            auth: FitbitAuth instance managing the stored tokens.
            timeout: Request timeout in seconds.
        """
        self.auth = auth
        self.timeout = timeout

    def _make_request(
        self,
        method: str,
        endpoint: str,
        version: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Make an authenticated request to the Fitbit API.

        Args:
            method: HTTP method (GET, POST, etc.).
            endpoint: API endpoint path.
            version: API version, defaults to API_VERSION.
            params: Optional query parameters.

        Returns:
            JSON response as dictionary.

        Raises:
            NotAuthenticated: If no tokens are stored.
            AuthenticationExpired: If the request is rejected even after a refresh.
            RemoteUnavailable: On network errors or 5xx responses.
            requests.exceptions.HTTPError: For other failed requests.
        """
        url = f'{self.API_BASE_URL}/{version or self.API_VERSION}{endpoint}'

        def send(access_token: str) -> Dict[str, Any]:
            headers = {
                'Authorization': f'Bearer {access_token}',
                'Accept': 'application/json',
            }

            try:
                response = requests.request(
                    method=method,
                    url=url,
                    headers=headers,
                    params=params,
                    timeout=self.timeout,
                )
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                raise RemoteUnavailable(f'Fitbit API unreachable: {e}') from e

            if response.status_code == 401:
                raise AuthorizationError(f'Unauthorized: {method} {endpoint}')
            if response.status_code >= 500:
                raise RemoteUnavailable(f'Fitbit API error {response.status_code}: {method} {endpoint}')

            response.raise_for_status()
            return response.json()

        return self.auth.call_authenticated(send)

    def get_user_profile(self) -> Dict[str, Any]:
        """Get the authenticated user's profile information.

        Returns:
            User profile data.
        """
        return self._make_request('GET', '/user/-/profile.json')

    def get_sleep_log(self, date: str) -> Dict[str, Any]:
        """Get sleep logs for a specific date.

        Args:
            date: Date in format YYYY-MM-DD or 'today'.

        Returns:
            Sleep log data, with stage timelines under levels.data.
        """
        endpoint = f'/user/-/sleep/date/{date}.json'
        return self._make_request('GET', endpoint, version=self.SLEEP_API_VERSION)

    def fetch_sleep_session(self, date: str) -> Optional[SleepSample]:
        """Get the main sleep session summary for a date.

        Args:
            date: Date in format YYYY-MM-DD or 'today'.

        Returns:
            SleepSample, or None if nothing was logged.
        """
        log = main_sleep(self.get_sleep_log(date))
        if log is None:
            return None
        return sample_from_log(log)

    def fetch_stage_events(self, date: str) -> List[StageEvent]:
        """Get the stage timeline of the main sleep session for a date.

        Args:
            date: Date in format YYYY-MM-DD or 'today'.

        Returns:
            Ordered stage events, empty if nothing was logged.
        """
        log = main_sleep(self.get_sleep_log(date))
        if log is None:
            return []
        return stage_events_from_log(log)

    def fetch_live_stage(self, today: Optional[date_type] = None) -> Optional[LiveStage]:
        """Get the most recent stage reading of tonight's main sleep.

        Args:
            today: Local date to query, defaults to the current date.

        Returns:
            LiveStage for the last timeline entry, or None if there is none.
        """
        today = today or date_type.today()
        events = self.fetch_stage_events(today.isoformat())
        if not events:
            return None
        last = events[-1]
        return LiveStage(stage=last.stage, timestamp=last.timestamp)
