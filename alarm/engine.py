"""Alarm decision engine and the per-minute check service.

Juan Hernandez-Vargas - 2025
"""

import logging
from datetime import datetime
from datetime import timedelta
from typing import Callable
from typing import Iterable
from typing import Optional

import requests

import lib.client
import lib.database
from lib.errors import RemoteUnavailable
from lib.models import Alarm
from lib.models import FireDecision
from lib.models import LiveStage


logger = logging.getLogger(__name__)

FRESH_SAMPLE_AGE = timedelta(minutes=30)
LIGHT_SLEEPER_STAGES = ('wake', 'rem')


def find_due_alarm(alarms: Iterable[Alarm], now: datetime) -> Optional[Alarm]:
    """First enabled alarm set for now's hour and minute.

    Alarms sharing a time are not deduplicated; iteration order decides.
    """
    for alarm in alarms:
        if alarm.enabled and alarm.hour == now.hour and alarm.minute == now.minute:
            return alarm
    return None


def fresh_stage(sample: Optional[LiveStage], now: datetime) -> Optional[str]:
    """Stage label of a reading taken less than 30 minutes ago, else None."""
    if sample is None:
        return None
    if now - sample.timestamp >= FRESH_SAMPLE_AGE:
        return None
    return sample.stage


def select_sound(alarm: Alarm, stage: Optional[str]) -> Optional[str]:
    """Gentle sound when awake or in REM, loud sound for light, deep or unknown."""
    if stage in LIGHT_SLEEPER_STAGES:
        return alarm.sound_rem
    return alarm.sound_nonrem


def check_alarms(
    alarms: Iterable[Alarm],
    now: datetime,
    live_stage_query: Callable[[], Optional[LiveStage]],
) -> FireDecision:
    """Decide whether an alarm fires this minute and which sound it uses.

    The live stage is only queried when an alarm is due.

    Args:
        alarms: Configured alarms.
        now: Current local time.
        live_stage_query: Returns the latest stage reading, or None.

    Returns:
        FireDecision for this minute.
    """
    alarm = find_due_alarm(alarms, now)
    if alarm is None:
        return FireDecision(should_fire=False)

    stage = fresh_stage(live_stage_query(), now)
    return FireDecision(should_fire=True, sound=select_sound(alarm, stage), alarm=alarm, stage=stage)


class AlarmChecker:
    """Answers the scheduler's once-a-minute check."""

    def __init__(
        self,
        db: lib.database.SleepDatabase,
        fitbit_client: lib.client.FitbitClient,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize AlarmChecker.

        Args:
            db: Connected database holding the alarms.
            fitbit_client: Client used for the live stage query.
            clock: Source of the current local time.
        """
        self.db = db
        self.fitbit_client = fitbit_client
        self.clock = clock

    def check(self) -> FireDecision:
        """Check the alarms against the current minute.

        Network and server errors from Fitbit result in not firing.
        Authentication errors propagate so the user can log in again.

        Returns:
            FireDecision for the current minute.
        """
        now = self.clock()
        alarms = self.db.get_alarms()

        try:
            decision = check_alarms(
                alarms,
                now,
                lambda: self.fitbit_client.fetch_live_stage(now.date()),
            )
        except (RemoteUnavailable, requests.exceptions.RequestException) as e:
            logger.error(f'Alarm check failed, not firing: {e}')
            return FireDecision(should_fire=False)

        if decision.should_fire:
            logger.info(
                f'Alarm {decision.alarm.hhmm} due: stage={decision.stage or "unknown"}, sound={decision.sound}'
            )
        return decision
