import json
from unittest import mock

import pytest
from click.testing import CliRunner

import cli.sleep_alarm_cli as sleep_alarm_cli
from lib.errors import NotAuthenticated
from lib.models import Alarm
from lib.models import FireDecision


ENV = {
    'FITBIT_CLIENT_ID': 'client',
    'FITBIT_CLIENT_SECRET': 'secret',
}


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def db():
    database = mock.Mock()
    with mock.patch.object(sleep_alarm_cli, '_open_db', return_value=database):
        yield database


@pytest.fixture
def sounds_dir(tmp_path):
    for name in ('loud.wav', 'soft.mp3', 'notes.txt'):
        (tmp_path / name).write_bytes(b'')
    return str(tmp_path)


def test_format_minutes():
    assert sleep_alarm_cli.format_minutes(412) == '6:52'
    assert sleep_alarm_cli.format_minutes(60) == '1:00'


def test_sounds_lists_audio_files_only(runner, sounds_dir):
    result = runner.invoke(sleep_alarm_cli.cli, ['sounds', '--sounds-dir', sounds_dir])

    assert result.exit_code == 0
    assert result.output.split() == ['loud.wav', 'soft.mp3']


def test_add_alarm(runner, db, sounds_dir):
    db.get_alarms.return_value = []
    db.add_alarm.return_value = Alarm(3, 6, 30, True, 'loud.wav', 'soft.mp3')

    result = runner.invoke(sleep_alarm_cli.cli, [
        'alarms', 'add', '--sounds-dir', sounds_dir,
        '--time', '06:30', '--nonrem-sound', 'loud.wav', '--rem-sound', 'soft.mp3',
    ])

    assert result.exit_code == 0, result.output
    db.add_alarm.assert_called_once_with(6, 30, 'loud.wav', 'soft.mp3')
    assert '✓ Alarm 3 set for 06:30' in result.output


def test_add_alarm_limit(runner, db, sounds_dir):
    db.get_alarms.return_value = [Alarm(i, 6, i, True, 'loud.wav', 'soft.mp3') for i in range(6)]

    result = runner.invoke(sleep_alarm_cli.cli, [
        'alarms', 'add', '--sounds-dir', sounds_dir,
        '--time', '07:00', '--nonrem-sound', 'loud.wav', '--rem-sound', 'soft.mp3',
    ])

    assert result.exit_code == 1
    db.add_alarm.assert_not_called()


def test_add_alarm_rejects_bad_time_and_unknown_sound(runner, db, sounds_dir):
    bad_time = runner.invoke(sleep_alarm_cli.cli, [
        'alarms', 'add', '--sounds-dir', sounds_dir,
        '--time', '25:00', '--nonrem-sound', 'loud.wav', '--rem-sound', 'soft.mp3',
    ])
    unknown = runner.invoke(sleep_alarm_cli.cli, [
        'alarms', 'add', '--sounds-dir', sounds_dir,
        '--time', '07:00', '--nonrem-sound', 'missing.wav', '--rem-sound', 'soft.mp3',
    ])

    assert bad_time.exit_code == 2
    assert unknown.exit_code == 2
    db.add_alarm.assert_not_called()


def test_list_and_toggle_alarms(runner, db):
    db.get_alarms.return_value = [Alarm(1, 7, 0, False, 'A', 'B')]

    listed = runner.invoke(sleep_alarm_cli.cli, ['alarms', 'list'])
    toggled = runner.invoke(sleep_alarm_cli.cli, ['alarms', 'toggle', '1', 'on'])

    assert '[1] 07:00 off' in listed.output
    assert toggled.exit_code == 0
    db.toggle_alarm.assert_called_once_with(1, True)


def test_check_prints_decision(runner, db):
    with mock.patch.object(sleep_alarm_cli, '_load_client'), \
            mock.patch('alarm.engine.AlarmChecker.check', return_value=FireDecision(True, 'soft.mp3')):
        result = runner.invoke(sleep_alarm_cli.cli, ['check'], env=ENV)

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {'shouldFire': True, 'sound': 'soft.mp3'}
    db.close.assert_called_once()


def test_check_asks_to_login_again(runner, db):
    with mock.patch.object(sleep_alarm_cli, '_load_client'), \
            mock.patch('alarm.engine.AlarmChecker.check', side_effect=NotAuthenticated('no tokens')):
        result = runner.invoke(sleep_alarm_cli.cli, ['check'], env=ENV)

    assert result.exit_code == 1
    assert 'login' in result.output


def test_commands_need_stored_tokens(runner, tmp_path):
    result = runner.invoke(
        sleep_alarm_cli.cli,
        ['profile', '--token-file', str(tmp_path / 'none.json')],
        env=ENV,
    )

    assert result.exit_code == 1
    assert 'Token file not found' in result.output


def test_wake_times(runner):
    client = mock.Mock()
    client.fetch_stage_events.return_value = []

    with mock.patch.object(sleep_alarm_cli, '_load_client', return_value=client):
        result = runner.invoke(sleep_alarm_cli.cli, ['wake-times', '--bedtime', '23:00'], env=ENV)

    assert result.exit_code == 0, result.output
    assert 'about 90 minutes' in result.output
    assert '03:30 (3 cycles)' in result.output
    assert '06:30 (5 cycles)' in result.output


def test_logout_removes_tokens(runner, tmp_path):
    token_file = tmp_path / 'tokens.json'
    token_file.write_text('{}')

    result = runner.invoke(sleep_alarm_cli.cli, ['logout', '--token-file', str(token_file)])

    assert result.exit_code == 0
    assert not token_file.exists()


def test_corrupt_token_file_asks_to_login_again(runner, tmp_path):
    token_file = tmp_path / 'tokens.json'
    token_file.write_text('{"access_token": ')

    result = runner.invoke(sleep_alarm_cli.cli, ['profile', '--token-file', str(token_file)], env=ENV)

    assert result.exit_code == 1
    assert 'unreadable' in result.output
    assert 'login' in result.output


def test_alarm_time_is_zero_padded():
    assert Alarm(1, 7, 5, True, 'loud.wav', 'soft.mp3').hhmm == '07:05'
