"""WAV playback backend for AlarmPlayer using simpleaudio.

Juan Hernandez-Vargas - 2025
"""

import threading
import time
import wave
from pathlib import Path
from typing import Optional

import simpleaudio as sa


class WavVoice:
    """A WAV file played on a background thread, optionally looping."""

    def __init__(self, wav_path: Path):
        with wave.open(str(wav_path), 'rb') as wf:
            self._channels = wf.getnchannels()
            self._sample_width = wf.getsampwidth()
            self._frame_rate = wf.getframerate()
            self._frames = wf.readframes(wf.getnframes())

        self.loop = False
        self._frame_size = self._channels * self._sample_width
        self._offset = 0
        self._started_at: Optional[float] = None
        self._started_offset = 0
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    @property
    def position(self) -> float:
        """Playback position in seconds from the start of the file."""
        with self._lock:
            offset = self._current_offset()
        return offset / float(self._frame_size * self._frame_rate)

    def play(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()

    def pause(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread and thread.is_alive():
            thread.join(timeout=2.0)
        with self._lock:
            self._offset = self._current_offset()
            self._started_at = None

    def rewind(self) -> None:
        with self._lock:
            self._offset = 0
            self._started_offset = 0
            if self._started_at is not None:
                self._started_at = time.time()

    def _current_offset(self) -> int:
        if self._started_at is None:
            return self._offset
        elapsed_frames = int((time.time() - self._started_at) * self._frame_rate)
        offset = self._started_offset + elapsed_frames * self._frame_size
        return offset % len(self._frames) if self._frames else 0

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            with self._lock:
                start = self._offset
                self._started_offset = start
                self._started_at = time.time()

            play_obj = sa.play_buffer(
                self._frames[start:],
                num_channels=self._channels,
                bytes_per_sample=self._sample_width,
                sample_rate=self._frame_rate,
            )
            # Wait for the chunk to finish or stop early
            while play_obj.is_playing():
                if self._stop_event.is_set():
                    play_obj.stop()
                    return
                time.sleep(0.02)

            with self._lock:
                self._offset = 0
                if not self.loop:
                    self._started_at = None
                    return


class SimpleAudioBackend:
    """Loads alarm sounds from the sounds directory."""

    def __init__(self, sounds_dir: str):
        self.sounds_dir = Path(sounds_dir)

    def load(self, sound: str) -> WavVoice:
        path = self.sounds_dir / sound
        if path.suffix.lower() != '.wav':
            raise ValueError(f'Only WAV sounds can be played locally: {sound}')
        return WavVoice(path)
