import threading
from datetime import datetime
from unittest import mock

import requests

import alarm.scheduler
from alarm.scheduler import AlarmScheduler
from alarm.scheduler import seconds_until_next_minute
from helpers import make_response
from lib.errors import AuthenticationExpired
from lib.models import FireDecision


def test_seconds_until_next_minute():
    assert seconds_until_next_minute(datetime(2025, 3, 2, 6, 59, 45)) == 15
    assert seconds_until_next_minute(datetime(2025, 3, 2, 6, 59, 0, 500)) == 60


def test_tick_rings_when_check_fires():
    player = mock.Mock()
    scheduler = AlarmScheduler(lambda: FireDecision(True, 'a.wav'), player)

    assert scheduler.tick() == FireDecision(True, 'a.wav')
    player.play.assert_called_once_with('a.wav')


def test_tick_without_alarm_leaves_player_alone():
    player = mock.Mock()
    scheduler = AlarmScheduler(lambda: FireDecision(False), player)

    scheduler.tick()

    player.play.assert_not_called()
    player.stop.assert_not_called()


def test_fire_without_sound_does_not_ring():
    player = mock.Mock()
    AlarmScheduler(lambda: FireDecision(True, None), player).tick()
    player.play.assert_not_called()


def test_failed_check_is_treated_as_no_decision():
    player = mock.Mock()

    def failing():
        raise requests.exceptions.ConnectionError('server down')

    assert AlarmScheduler(failing, player).tick() is None
    player.play.assert_not_called()


def test_authentication_failure_is_logged_not_raised(caplog):
    def failing():
        raise AuthenticationExpired('log in again')

    assert AlarmScheduler(failing, mock.Mock()).tick() is None
    assert 'login' in caplog.text


def test_result_of_check_finishing_after_stop_is_discarded():
    player = mock.Mock()
    scheduler = None

    def slow_check():
        scheduler.stop()
        return FireDecision(True, 'a.wav')

    scheduler = AlarmScheduler(slow_check, player)

    assert scheduler.tick() is None
    player.play.assert_not_called()


def test_stop_cancels_pending_first_tick():
    check = mock.Mock(return_value=FireDecision(False))
    scheduler = AlarmScheduler(check, mock.Mock(), clock=lambda: datetime(2025, 3, 2, 7, 0, 1))

    scheduler.start()
    scheduler.stop(timeout=5)

    assert not scheduler.running
    check.assert_not_called()


def test_loop_keeps_polling_while_ringing():
    ticks = []
    done = threading.Event()
    player = mock.Mock()

    def check():
        ticks.append(1)
        if len(ticks) >= 3:
            done.set()
        return FireDecision(True, 'a.wav')

    scheduler = AlarmScheduler(check, player, clock=lambda: datetime(2025, 3, 2, 6, 59, 59), interval=0.01)
    scheduler.start()
    try:
        assert done.wait(timeout=10)
    finally:
        scheduler.stop(timeout=5)

    assert len(ticks) >= 3
    assert player.play.call_count >= 3
    player.stop.assert_not_called()


@mock.patch('alarm.scheduler.requests.get')
def test_http_check(mock_get):
    mock_get.return_value = make_response(200, {'shouldFire': True, 'sound': 'b.mp3'})

    assert alarm.scheduler.http_check('http://localhost:3000/alarms/check') == FireDecision(True, 'b.mp3')
    mock_get.assert_called_once_with('http://localhost:3000/alarms/check', timeout=10)


@mock.patch('alarm.scheduler.requests.get')
def test_http_check_without_fire(mock_get):
    mock_get.return_value = make_response(200, {'shouldFire': False})
    assert alarm.scheduler.http_check('http://localhost:3000/alarms/check') == FireDecision(False)


def test_playback_error_does_not_stop_polling():
    player = mock.Mock()
    player.play.side_effect = ValueError('Only WAV sounds can be played locally: a.mp3')
    scheduler = AlarmScheduler(lambda: FireDecision(True, 'a.mp3'), player)

    assert scheduler.tick() == FireDecision(True, 'a.mp3')
    assert scheduler.tick() == FireDecision(True, 'a.mp3')
    assert player.play.call_count == 2
