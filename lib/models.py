"""Data types shared by the auth, client, persistence and alarm modules.

Juan Hernandez-Vargas - 2025
"""

from dataclasses import asdict
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from typing import Any
from typing import Dict
from typing import Optional


@dataclass(frozen=True)
class TokenPair:
    """OAuth token pair as returned by the Fitbit token endpoint."""

    access_token: str
    refresh_token: str
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    user_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TokenPair':
        """Build a TokenPair from a token endpoint response or saved record.

        Args:
            data: Token dictionary.

        Returns:
            TokenPair instance.

        Raises:
            ValueError: If the access or refresh token is missing.
        """
        if not data.get('access_token') or not data.get('refresh_token'):
            raise ValueError('Token data must contain access_token and refresh_token')

        return cls(
            access_token=data['access_token'],
            refresh_token=data['refresh_token'],
            token_type=data.get('token_type'),
            expires_in=data.get('expires_in'),
            scope=data.get('scope'),
            user_id=data.get('user_id'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class StageEvent:
    """Start of a sleep stage period within one sleep session."""

    timestamp: datetime
    stage: str


@dataclass(frozen=True)
class LiveStage:
    """Most recent stage reading for the current night."""

    stage: str
    timestamp: datetime


@dataclass(frozen=True)
class SleepSample:
    """Summary of one night of sleep, keyed by date of sleep."""

    date_of_sleep: str
    total_minutes: int
    deep_minutes: int = 0
    light_minutes: int = 0
    rem_minutes: int = 0
    wake_minutes: int = 0
    efficiency: Optional[int] = None


@dataclass(frozen=True)
class Alarm:
    """Daily alarm with one sound per sleep-stage branch."""

    id: int
    hour: int
    minute: int
    enabled: bool
    sound_nonrem: Optional[str]
    sound_rem: Optional[str]

    @property
    def hhmm(self) -> str:
        """Alarm time as HH:MM."""
        return f'{self.hour:02d}:{self.minute:02d}'


@dataclass(frozen=True)
class FireDecision:
    """Result of one alarm check; never persisted."""

    should_fire: bool
    sound: Optional[str] = None
    alarm: Optional[Alarm] = field(default=None, compare=False)
    stage: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the check endpoint's JSON shape."""
        if not self.should_fire:
            return {'shouldFire': False}
        return {'shouldFire': True, 'sound': self.sound}
