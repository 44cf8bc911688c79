"""Alarm sound asset lookup.

Juan Hernandez-Vargas - 2025
"""

from pathlib import Path
from typing import List


SOUND_EXTENSIONS = ('.mp3', '.wav', '.ogg')
DEFAULT_SOUNDS_DIR = 'sounds'


def list_sounds(directory: str) -> List[str]:
    """Names of the audio files in a directory, sorted.

    The directory is created if it does not exist yet.
    """
    path = Path(directory)
    path.mkdir(parents=True, exist_ok=True)
    return sorted(
        entry.name
        for entry in path.iterdir()
        if entry.is_file() and entry.suffix.lower() in SOUND_EXTENSIONS
    )
