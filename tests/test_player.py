import pytest

from alarm.player import AlarmPlayer
from alarm.player import PlaybackState


class FakeVoice:
    def __init__(self, sound):
        self.sound = sound
        self.loop = False
        self.playing = False
        self.position = 0.0
        self.play_calls = 0

    def play(self):
        self.playing = True
        self.play_calls += 1

    def pause(self):
        self.playing = False

    def rewind(self):
        self.position = 0.0


class FakeBackend:
    def __init__(self):
        self.voices = []

    def load(self, sound):
        if not sound.endswith('.wav'):
            raise ValueError(f'Only WAV sounds can be played locally: {sound}')
        voice = FakeVoice(sound)
        self.voices.append(voice)
        return voice


def test_play_starts_looping_from_idle():
    backend = FakeBackend()
    player = AlarmPlayer(backend)

    assert player.play('a.wav') is True

    voice = backend.voices[0]
    assert player.state is PlaybackState.RINGING
    assert player.sound == 'a.wav'
    assert voice.playing and voice.loop


def test_repeated_fire_with_same_sound_is_a_no_op():
    backend = FakeBackend()
    player = AlarmPlayer(backend)
    player.play('a.wav')
    voice = backend.voices[0]
    voice.position = 12.5

    assert player.play('a.wav') is False

    assert len(backend.voices) == 1
    assert voice.play_calls == 1
    assert voice.position == 12.5
    assert voice.playing and voice.loop


def test_different_sound_replaces_ringing_voice():
    backend = FakeBackend()
    player = AlarmPlayer(backend)
    player.play('a.wav')
    first = backend.voices[0]
    first.position = 30.0

    assert player.play('b.wav') is True

    second = backend.voices[1]
    assert not first.playing
    assert first.position == 0.0
    assert second.playing and second.loop
    assert second.position == 0.0
    assert player.sound == 'b.wav'


def test_stop_returns_to_idle_and_rewinds():
    backend = FakeBackend()
    player = AlarmPlayer(backend)
    player.play('a.wav')
    voice = backend.voices[0]
    voice.position = 42.0

    player.stop()

    assert player.state is PlaybackState.IDLE
    assert player.sound is None
    assert not voice.playing
    assert voice.position == 0.0


def test_stop_when_idle_is_harmless():
    player = AlarmPlayer(FakeBackend())
    player.stop()
    assert player.state is PlaybackState.IDLE


def test_same_sound_rings_again_after_stop():
    backend = FakeBackend()
    player = AlarmPlayer(backend)
    player.play('a.wav')
    player.stop()

    assert player.play('a.wav') is True
    assert len(backend.voices) == 2


def test_failed_switch_keeps_current_sound_ringing():
    backend = FakeBackend()
    player = AlarmPlayer(backend)
    player.play('a.wav')
    voice = backend.voices[0]

    with pytest.raises(ValueError):
        player.play('b.mp3')

    assert player.state is PlaybackState.RINGING
    assert player.sound == 'a.wav'
    assert voice.playing and voice.play_calls == 1


def test_failed_load_from_idle_stays_idle():
    player = AlarmPlayer(FakeBackend())

    with pytest.raises(ValueError):
        player.play('b.mp3')

    assert player.state is PlaybackState.IDLE
    assert player.sound is None
