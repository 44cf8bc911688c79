"""Minute-aligned polling loop that drives alarm playback.

Juan Hernandez-Vargas - 2025
"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable
from typing import Optional

import requests

import alarm.player
from lib.errors import AuthenticationExpired
from lib.errors import NotAuthenticated
from lib.errors import TokenExchangeFailed
from lib.models import FireDecision


logger = logging.getLogger(__name__)

CHECK_INTERVAL_SECONDS = 60


def seconds_until_next_minute(now: datetime) -> int:
    """Whole seconds from now until the next top of the minute."""
    return 60 - now.second


def http_check(url: str, timeout: float = 10) -> FireDecision:
    """Ask a remote check endpoint whether an alarm should fire.

    Args:
        url: URL answering GET with {"shouldFire": bool, "sound": str}.
        timeout: Request timeout in seconds.

    Returns:
        FireDecision built from the response.

    Raises:
        requests.exceptions.RequestException: If the request fails.
    """
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    data = response.json()
    return FireDecision(should_fire=bool(data.get('shouldFire')), sound=data.get('sound'))


class AlarmScheduler:
    """Runs a check at every minute boundary on one background thread.

    Only one check is in flight at a time. A slow check delays the next one
    instead of skipping it. Firing never stops the loop.
    """

    def __init__(
        self,
        check: Callable[[], FireDecision],
        player: alarm.player.AlarmPlayer,
        clock: Callable[[], datetime] = datetime.now,
        interval: float = CHECK_INTERVAL_SECONDS,
    ):
        """Initialize AlarmScheduler.

        Args:
            check: Returns the decision for the current minute.
            player: Playback state machine to drive.
            clock: Source of the current local time, used for alignment.
            interval: Seconds between checks after the first one.
        """
        self.check = check
        self.player = player
        self.clock = clock
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start polling in a background thread."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name='alarm-scheduler', daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel the pending tick and wait for the loop to exit.

        A check already in flight is allowed to finish; its result is
        discarded.
        """
        self._stop_event.set()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def tick(self) -> Optional[FireDecision]:
        """Run one check and ring if it says so.

        Returns:
            The decision, or None if the check failed or the scheduler was
            stopped while it ran.
        """
        try:
            decision = self.check()
        except (NotAuthenticated, AuthenticationExpired, TokenExchangeFailed) as e:
            logger.error(f'Fitbit authorization needed, run "sleep-alarm login": {e}')
            return None
        except Exception as e:
            logger.error(f'Alarm check failed: {e}')
            return None

        if self._stop_event.is_set():
            return None

        if decision.should_fire and decision.sound:
            logger.info(f'Alarm fired, sound: {decision.sound}')
            try:
                self.player.play(decision.sound)
            except Exception as e:
                logger.error(f'Could not play {decision.sound}: {e}')
        else:
            logger.info('No alarm to fire')
        return decision

    def _run(self) -> None:
        delay = seconds_until_next_minute(self.clock())
        logger.info(f'Alarm scheduler started, first check in {delay}s')

        deadline = time.monotonic() + delay
        while not self._stop_event.wait(max(0.0, deadline - time.monotonic())):
            self.tick()
            deadline += self.interval

        logger.info('Alarm scheduler stopped')
