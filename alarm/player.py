"""Single-voice alarm playback state machine.

Juan Hernandez-Vargas - 2025
"""

import logging
import threading
from enum import Enum
from typing import Optional
from typing import Protocol


logger = logging.getLogger(__name__)


class Voice(Protocol):
    """A loaded sound that can be played, paused and rewound."""

    loop: bool

    @property
    def position(self) -> float: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def rewind(self) -> None: ...


class AudioBackend(Protocol):
    def load(self, sound: str) -> Voice: ...


class PlaybackState(Enum):
    IDLE = 'idle'
    RINGING = 'ringing'


class AlarmPlayer:
    """Owns the one voice that may be ringing at any time.

    Idle --play(sound)--> Ringing --stop()--> Idle. Playing the sound that is
    already ringing does nothing; playing a different one loads it, then stops
    the current voice.
    """

    def __init__(self, backend: AudioBackend):
        self.backend = backend
        self._lock = threading.Lock()
        self._state = PlaybackState.IDLE
        self._sound: Optional[str] = None
        self._voice: Optional[Voice] = None

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def sound(self) -> Optional[str]:
        return self._sound

    def play(self, sound: str) -> bool:
        """Start looping a sound.

        Args:
            sound: Sound asset name.

        Returns:
            True if playback started, False if the sound was already ringing.
        """
        with self._lock:
            if self._state is PlaybackState.RINGING and self._sound == sound:
                return False

            # A sound that fails to load leaves the current one ringing
            voice = self.backend.load(sound)
            voice.loop = True
            voice.rewind()

            if self._voice is not None:
                logger.info(f'Switching alarm sound {self._sound} -> {sound}')
                self._halt()

            voice.play()

            self._voice = voice
            self._sound = sound
            self._state = PlaybackState.RINGING
            logger.info(f'Ringing: {sound}')
            return True

    def stop(self) -> None:
        """Stop ringing and rewind the sound to its start."""
        with self._lock:
            if self._voice is not None:
                self._halt()
                logger.info('Alarm stopped')
            self._state = PlaybackState.IDLE

    def _halt(self) -> None:
        self._voice.pause()
        self._voice.rewind()
        self._voice = None
        self._sound = None
