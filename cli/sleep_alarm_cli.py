"""Command-line interface for the Fitbit sleep alarm.

This CLI utility authenticates with Fitbit, syncs sleep sessions, estimates
the sleep cycle, manages alarms and runs the alarm watcher that picks a
sound from the live sleep stage.

Juan Hernandez-Vargas - 2025
"""

import json
import logging
import sys
import time
from datetime import date as date_type
from datetime import datetime

import click

import alarm.cycle
import alarm.engine
import alarm.player
import alarm.scheduler
import alarm.sounds
import lib.auth
import lib.client
import lib.credentials
import lib.database
import sync.sync_sleep
from lib.errors import AuthenticationExpired
from lib.errors import FitbitError
from lib.errors import NotAuthenticated
from lib.errors import SessionExpired


MAX_ALARMS = 6
RECENT_DAYS = 7


def fitbit_options(f):
    """Add the OAuth client and credential file options to a command."""
    options = [
        click.option(
            '--client-id',
            envvar='FITBIT_CLIENT_ID',
            required=True,
            help='Fitbit OAuth 2.0 client ID.',
        ),
        click.option(
            '--client-secret',
            envvar='FITBIT_CLIENT_SECRET',
            required=True,
            help='Fitbit OAuth 2.0 client secret.',
        ),
        click.option(
            '--redirect-url',
            envvar='FITBIT_REDIRECT_URL',
            default='http://localhost:8080/redirect',
            help='OAuth 2.0 redirect URL.',
        ),
        click.option(
            '--token-file',
            envvar='FITBIT_TOKEN_FILE',
            default=lib.credentials.DEFAULT_TOKEN_FILE,
            help='File holding authentication tokens.',
        ),
        click.option(
            '--verifier-file',
            envvar='FITBIT_VERIFIER_FILE',
            default=lib.credentials.DEFAULT_VERIFIER_FILE,
            help='File holding the pending PKCE verifier.',
        ),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def sounds_option(f):
    return click.option(
        '--sounds-dir',
        envvar='SLEEP_ALARM_SOUNDS_DIR',
        default=alarm.sounds.DEFAULT_SOUNDS_DIR,
        help='Directory containing alarm sounds.',
    )(f)


def _make_auth(client_id, client_secret, redirect_url, token_file, verifier_file, scopes=None):
    store = lib.credentials.CredentialStore(token_file, verifier_file)
    return lib.auth.FitbitAuth(
        client_id=client_id,
        client_secret=client_secret,
        redirect_url=redirect_url,
        store=store,
        scopes=scopes,
    )


def _load_client(client_id, client_secret, redirect_url, token_file, verifier_file) -> lib.client.FitbitClient:
    """Build a client from stored tokens.

    Raises:
        SystemExit: If no usable tokens are stored.
    """
    auth = _make_auth(client_id, client_secret, redirect_url, token_file, verifier_file)
    try:
        tokens = auth.store.load_tokens()
    except NotAuthenticated as e:
        _fail('Stored tokens rejected', e)
    if tokens is None:
        click.echo(f'✗ Token file not found: {token_file}', err=True)
        click.echo('Please run "login" command first.', err=True)
        sys.exit(1)
    return lib.client.FitbitClient(auth)


def _open_db() -> lib.database.SleepDatabase:
    db = lib.database.SleepDatabase(lib.database.db_config_from_env())
    try:
        db.connect()
    except Exception as e:
        click.echo(f'✗ Database connection failed: {str(e)}', err=True)
        sys.exit(1)
    return db


def _fail(action: str, error: Exception):
    click.echo(f'✗ {action}: {str(error)}', err=True)
    if isinstance(error, (NotAuthenticated, AuthenticationExpired, SessionExpired)):
        click.echo('Please run "login" command again.', err=True)
    sys.exit(1)


def format_minutes(total_minutes: int) -> str:
    """Format minutes as H:MM."""
    return f'{total_minutes // 60}:{total_minutes % 60:02d}'


@click.group()
@click.pass_context
def cli(ctx):
    """Fitbit sleep alarm: wakes you with a sound chosen by your sleep stage."""
    ctx.ensure_object(dict)


@cli.command()
@fitbit_options
@click.option(
    '--scope',
    multiple=True,
    default=lib.auth.DEFAULT_SCOPES,
    help='OAuth scopes to request (can specify multiple times).',
)
def login(client_id, client_secret, redirect_url, token_file, verifier_file, scope):
    """Authenticate with Fitbit and save access tokens."""
    click.echo('Starting Fitbit authentication...')

    auth = _make_auth(client_id, client_secret, redirect_url, token_file, verifier_file, list(scope))

    try:
        tokens = auth.authorize()
        click.echo(f'✓ Authentication successful! Tokens saved to {token_file}')
        click.echo(f'Access token expires in {tokens.expires_in} seconds')
    except Exception as e:
        _fail('Authentication failed', e)


@cli.command()
@fitbit_options
def refresh(client_id, client_secret, redirect_url, token_file, verifier_file):
    """Refresh access token using refresh token."""
    auth = _make_auth(client_id, client_secret, redirect_url, token_file, verifier_file)

    try:
        tokens = auth.refresh()
        click.echo(f'✓ Token refreshed successfully! Saved to {token_file}')
        click.echo(f'Access token expires in {tokens.expires_in} seconds')
    except FitbitError as e:
        _fail('Token refresh failed', e)


@cli.command()
@click.option(
    '--token-file',
    envvar='FITBIT_TOKEN_FILE',
    default=lib.credentials.DEFAULT_TOKEN_FILE,
    help='File holding authentication tokens.',
)
@click.option(
    '--verifier-file',
    envvar='FITBIT_VERIFIER_FILE',
    default=lib.credentials.DEFAULT_VERIFIER_FILE,
    help='File holding the pending PKCE verifier.',
)
def logout(token_file, verifier_file):
    """Delete stored tokens."""
    lib.credentials.CredentialStore(token_file, verifier_file).clear()
    click.echo('✓ Stored tokens removed')


@cli.command()
@fitbit_options
def profile(client_id, client_secret, redirect_url, token_file, verifier_file):
    """Get user profile information."""
    client = _load_client(client_id, client_secret, redirect_url, token_file, verifier_file)

    try:
        profile_data = client.get_user_profile()
        click.echo(json.dumps(profile_data, indent=2))
    except Exception as e:
        _fail('Failed to get profile', e)


@cli.command('init-db')
def init_db():
    """Create the database tables."""
    db = _open_db()
    try:
        db.create_tables()
        click.echo('✓ Tables created')
    finally:
        db.close()


@cli.command('sync-sleep')
@fitbit_options
@click.option(
    '--date',
    default='today',
    help='Date of sleep (YYYY-MM-DD or "today").',
)
def sync_sleep(client_id, client_secret, redirect_url, token_file, verifier_file, date):
    """Store the main sleep session of a date."""
    client = _load_client(client_id, client_secret, redirect_url, token_file, verifier_file)
    db = _open_db()

    try:
        sync.sync_sleep.SleepSync(db, client).sync_sleep_date(date)
    except Exception as e:
        _fail('Sync failed', e)
    finally:
        db.close()


@cli.command()
@fitbit_options
def summary(client_id, client_secret, redirect_url, token_file, verifier_file):
    """Sync today's sleep and show the last week with a cycle recommendation."""
    client = _load_client(client_id, client_secret, redirect_url, token_file, verifier_file)
    db = _open_db()

    try:
        today = date_type.today().isoformat()
        log = lib.client.main_sleep(client.get_sleep_log(today))
        if log is not None:
            db.save_sleep_session(lib.client.sample_from_log(log))

        recent = db.get_recent_sleep_sessions(RECENT_DAYS)
        for sample in recent:
            click.echo(f'{sample.date_of_sleep}  {sample.total_minutes / 60:5.2f} h')

        if recent:
            click.echo(f'Last night: {format_minutes(recent[-1].total_minutes)}')
        else:
            click.echo('No sleep data')

        events = lib.client.stage_events_from_log(log) if log is not None else []
        cycle = alarm.cycle.cycle_minutes_or_default(events)
        click.echo(f'Your sleep cycle is about {cycle} minutes. Use "wake-times" to plan your wake-up.')
    except Exception as e:
        _fail('Failed to build summary', e)
    finally:
        db.close()


@cli.command('wake-times')
@fitbit_options
@click.option('--bedtime', required=True, help='Bedtime (HH:MM).')
def wake_times(client_id, client_secret, redirect_url, token_file, verifier_file, bedtime):
    """Recommend wake-up times that complete whole sleep cycles."""
    try:
        bed = alarm.cycle.parse_hhmm(bedtime)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--bedtime')

    client = _load_client(client_id, client_secret, redirect_url, token_file, verifier_file)

    try:
        events = client.fetch_stage_events(date_type.today().isoformat())
    except Exception as e:
        _fail('Failed to get sleep stages', e)

    cycle = alarm.cycle.cycle_minutes_or_default(events)
    click.echo(f'Based on your sleep cycle (about {cycle} minutes), going to bed at {bedtime}:')
    for count, wake_at in alarm.cycle.recommend_wake_times(bed, cycle):
        click.echo(f'  {wake_at:%H:%M} ({count} cycles)')


@cli.command()
@sounds_option
def sounds(sounds_dir):
    """List available alarm sounds."""
    names = alarm.sounds.list_sounds(sounds_dir)
    if not names:
        click.echo(f'No sounds in {sounds_dir}')
    for name in names:
        click.echo(name)


@cli.group()
def alarms():
    """Manage alarms."""


@alarms.command('list')
def alarms_list():
    """List configured alarms."""
    db = _open_db()
    try:
        configured = db.get_alarms()
    finally:
        db.close()

    if not configured:
        click.echo('No alarms set.')
    for a in configured:
        state = 'on' if a.enabled else 'off'
        click.echo(f'[{a.id}] {a.hhmm} {state:3}  {a.sound_nonrem} (non-REM) + {a.sound_rem} (REM)')


@alarms.command('add')
@sounds_option
@click.option('--time', 'hhmm', required=True, help='Alarm time (HH:MM).')
@click.option('--nonrem-sound', required=True, help='Sound for light/deep sleep or unknown stage.')
@click.option('--rem-sound', required=True, help='Sound for REM sleep or awake.')
def alarms_add(sounds_dir, hhmm, nonrem_sound, rem_sound):
    """Add an alarm."""
    try:
        hour, minute = alarm.cycle.parse_hhmm(hhmm)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--time')

    available = alarm.sounds.list_sounds(sounds_dir)
    for sound in (nonrem_sound, rem_sound):
        if sound not in available:
            raise click.BadParameter(f'{sound} not found in {sounds_dir}')

    db = _open_db()
    try:
        if len(db.get_alarms()) >= MAX_ALARMS:
            click.echo(f'✗ At most {MAX_ALARMS} alarms can be set.', err=True)
            sys.exit(1)
        new_alarm = db.add_alarm(hour, minute, nonrem_sound, rem_sound)
        click.echo(f'✓ Alarm {new_alarm.id} set for {new_alarm.hhmm}')
    finally:
        db.close()


@alarms.command('delete')
@click.argument('alarm_id', type=int)
def alarms_delete(alarm_id):
    """Delete an alarm."""
    db = _open_db()
    try:
        if db.delete_alarm(alarm_id):
            click.echo(f'✓ Alarm {alarm_id} deleted')
        else:
            click.echo(f'⊙ No alarm with id {alarm_id}')
    finally:
        db.close()


@alarms.command('toggle')
@click.argument('alarm_id', type=int)
@click.argument('state', type=click.Choice(['on', 'off']))
def alarms_toggle(alarm_id, state):
    """Switch an alarm on or off."""
    db = _open_db()
    try:
        db.toggle_alarm(alarm_id, state == 'on')
        click.echo(f'✓ Alarm {alarm_id} switched {state}')
    finally:
        db.close()


@cli.command()
@fitbit_options
def check(client_id, client_secret, redirect_url, token_file, verifier_file):
    """Print this minute's alarm decision as JSON."""
    client = _load_client(client_id, client_secret, redirect_url, token_file, verifier_file)
    db = _open_db()

    try:
        decision = alarm.engine.AlarmChecker(db, client).check()
        click.echo(json.dumps(decision.to_dict()))
    except FitbitError as e:
        _fail('Alarm check failed', e)
    finally:
        db.close()


def setup_logging(log_file=None):
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8', mode='a'))
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        handlers=handlers,
    )


@cli.command()
@fitbit_options
@sounds_option
@click.option(
    '--check-url',
    default=None,
    help='Poll a remote check endpoint instead of checking locally.',
)
@click.option('--log-file', default=None, help='Also write the log to this file.')
def watch(client_id, client_secret, redirect_url, token_file, verifier_file, sounds_dir, check_url, log_file):
    """Check alarms every minute and ring. Press Enter to stop ringing."""
    # simpleaudio is an optional dependency, only needed here
    import alarm.audio

    setup_logging(log_file)

    db = None
    if check_url:
        def check_fn():
            return alarm.scheduler.http_check(check_url)
    else:
        client = _load_client(client_id, client_secret, redirect_url, token_file, verifier_file)
        db = _open_db()
        check_fn = alarm.engine.AlarmChecker(db, client).check

    player = alarm.player.AlarmPlayer(alarm.audio.SimpleAudioBackend(sounds_dir))
    scheduler = alarm.scheduler.AlarmScheduler(check_fn, player)
    scheduler.start()
    click.echo(f'Watching alarms since {datetime.now():%H:%M:%S} (Enter stops ringing, Ctrl+C exits)')

    try:
        while True:
            try:
                input()
            except EOFError:
                # No terminal attached, run until interrupted
                while True:
                    time.sleep(3600)
            player.stop()
    except KeyboardInterrupt:
        click.echo('\nStopping...')
    finally:
        scheduler.stop(timeout=5)
        player.stop()
        if db is not None:
            db.close()


if __name__ == '__main__':
    cli()
