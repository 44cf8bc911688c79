"""Sync sleep data from Fitbit API to MariaDB.

This module stores one summary row per night of sleep. Nights already in
the database are left untouched.

Juan Hernandez-Vargas - 2025
"""

import os
import sys

import lib.auth
import lib.client
import lib.credentials
import lib.database
from lib.errors import NotAuthenticated


class SleepSync:
    """Sync sleep data from Fitbit API to MariaDB."""

    def __init__(self, db: lib.database.SleepDatabase, fitbit_client: lib.client.FitbitClient):
        """Initialize SleepSync.

        Args:
            db: Connected SleepDatabase.
            fitbit_client: Authenticated FitbitClient instance.
        """
        self.db = db
        self.fitbit_client = fitbit_client

    def sync_sleep_date(self, date: str) -> bool:
        """Sync the main sleep session for a specific date.

        Args:
            date: Date in YYYY-MM-DD format or 'today'.

        Returns:
            True if a new session was stored.
        """
        print(f'Fetching sleep data for {date}...')
        sample = self.fitbit_client.fetch_sleep_session(date)

        if sample is None:
            print(f'  No sleep data found for {date}')
            return False

        if self.db.save_sleep_session(sample):
            print(f'  ✓ Synced sleep session for {sample.date_of_sleep}')
            return True

        print(f'  ⊙ Sleep session for {sample.date_of_sleep} already exists')
        return False


def main():
    """Main entry point for sleep sync."""
    # Load environment variables
    client_id = os.getenv('FITBIT_CLIENT_ID')
    client_secret = os.getenv('FITBIT_CLIENT_SECRET')
    redirect_url = os.getenv('FITBIT_REDIRECT_URL', 'http://localhost:8080/redirect')

    if not client_id or not client_secret:
        print('✗ Error: FITBIT_CLIENT_ID and FITBIT_CLIENT_SECRET environment variables required')
        sys.exit(1)

    store = lib.credentials.CredentialStore(os.getenv('FITBIT_TOKEN_FILE', lib.credentials.DEFAULT_TOKEN_FILE))
    try:
        tokens = store.load_tokens()
    except NotAuthenticated as e:
        print(f'✗ Error: {str(e)}')
        sys.exit(1)
    if tokens is None:
        print(f'✗ Error: Token file {store.token_file} not found. Run login command first.')
        sys.exit(1)

    auth = lib.auth.FitbitAuth(
        client_id=client_id,
        client_secret=client_secret,
        redirect_url=redirect_url,
        store=store,
    )
    client = lib.client.FitbitClient(auth)
    db = lib.database.SleepDatabase(lib.database.db_config_from_env())

    try:
        db.connect()
        print('✓ Connected to database')

        # Get date from command line or default to today
        date = sys.argv[1] if len(sys.argv) > 1 else 'today'

        synced = SleepSync(db, client).sync_sleep_date(date)
        print(f'\n✓ Sessions synced: {int(synced)}')

    except Exception as e:
        print(f'\n✗ Sync failed: {str(e)}')
        sys.exit(1)
    finally:
        db.close()
        print('✓ Database connection closed')


if __name__ == '__main__':
    main()
