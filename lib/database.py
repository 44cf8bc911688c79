"""MariaDB persistence for sleep sessions and alarms.

Juan Hernandez-Vargas - 2025
"""

import os
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

import mysql.connector

from lib.models import Alarm
from lib.models import SleepSample


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS sleep_data (
        id INT AUTO_INCREMENT PRIMARY KEY,
        date DATE NOT NULL UNIQUE,
        total_minutes INT,
        deep_minutes INT,
        light_minutes INT,
        rem_minutes INT,
        wake_minutes INT,
        efficiency INT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS alarms (
        id INT AUTO_INCREMENT PRIMARY KEY,
        hour TINYINT NOT NULL,
        minute TINYINT NOT NULL,
        is_on TINYINT(1) NOT NULL DEFAULT 1,
        sound_nonrem VARCHAR(255),
        sound_rem VARCHAR(255)
    )
    """,
]


def db_config_from_env() -> Dict[str, str]:
    """Build database configuration from DB_* environment variables."""
    return {
        'host': os.getenv('DB_HOST', 'localhost'),
        'user': os.getenv('DB_USER', 'fitbit_user'),
        'password': os.getenv('DB_PASS', 'fitbit_pass'),
        'database': os.getenv('DB_NAME', 'fitbit'),
    }


def _alarm_from_row(row: Dict[str, Any]) -> Alarm:
    return Alarm(
        id=int(row['id']),
        hour=int(row['hour']),
        minute=int(row['minute']),
        enabled=bool(row['is_on']),
        sound_nonrem=row['sound_nonrem'],
        sound_rem=row['sound_rem'],
    )


def _sample_from_row(row: Dict[str, Any]) -> SleepSample:
    date = row['date']
    return SleepSample(
        date_of_sleep=date if isinstance(date, str) else date.isoformat(),
        total_minutes=row['total_minutes'] or 0,
        deep_minutes=row['deep_minutes'] or 0,
        light_minutes=row['light_minutes'] or 0,
        rem_minutes=row['rem_minutes'] or 0,
        wake_minutes=row['wake_minutes'] or 0,
        efficiency=row['efficiency'],
    )


class SleepDatabase:
    """Sleep session and alarm tables in MariaDB."""

    def __init__(self, db_config: Dict[str, str]):
        """Initialize SleepDatabase.

        Args:
            db_config: Database configuration dict with host, user, password, database.
        """
        self.db_config = db_config
        self.conn = None

    def connect(self):
        """Connect to the database."""
        self.conn = mysql.connector.connect(**self.db_config)

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self) -> 'SleepDatabase':
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _cursor(self, dictionary: bool = False):
        if self.conn is None:
            raise RuntimeError('Database is not connected. Call connect() first.')
        # watch keeps one connection open all night
        self.conn.ping(reconnect=True, attempts=3, delay=1)
        return self.conn.cursor(dictionary=dictionary)

    def create_tables(self) -> None:
        """Create the sleep_data and alarms tables if missing."""
        cursor = self._cursor()
        for statement in SCHEMA:
            cursor.execute(statement)
        self.conn.commit()
        cursor.close()

    def save_sleep_session(self, sample: SleepSample) -> bool:
        """Insert a sleep session unless one already exists for its date.

        Args:
            sample: Sleep session summary.

        Returns:
            True if a row was inserted, False if the date already existed.
        """
        sql = """
            INSERT IGNORE INTO sleep_data (
                date, total_minutes, deep_minutes, light_minutes,
                rem_minutes, wake_minutes, efficiency
            ) VALUES (
                %(date)s, %(total_minutes)s, %(deep_minutes)s, %(light_minutes)s,
                %(rem_minutes)s, %(wake_minutes)s, %(efficiency)s
            )
        """

        params = {
            'date': sample.date_of_sleep,
            'total_minutes': sample.total_minutes,
            'deep_minutes': sample.deep_minutes,
            'light_minutes': sample.light_minutes,
            'rem_minutes': sample.rem_minutes,
            'wake_minutes': sample.wake_minutes,
            'efficiency': sample.efficiency,
        }

        cursor = self._cursor()
        cursor.execute(sql, params)
        inserted = cursor.rowcount > 0
        self.conn.commit()
        cursor.close()
        return inserted

    def get_recent_sleep_sessions(self, days: int = 7) -> List[SleepSample]:
        """Get the most recent sleep sessions.

        Args:
            days: Number of sessions to return.

        Returns:
            Up to `days` sessions, oldest first.
        """
        cursor = self._cursor(dictionary=True)
        cursor.execute('SELECT * FROM sleep_data ORDER BY date DESC LIMIT %s', (days,))
        rows = cursor.fetchall()
        # End the read so the next one sees other sessions' changes
        self.conn.commit()
        cursor.close()
        return [_sample_from_row(row) for row in reversed(rows)]

    def get_alarms(self) -> List[Alarm]:
        """Get all alarms ordered by time of day."""
        cursor = self._cursor(dictionary=True)
        cursor.execute('SELECT * FROM alarms ORDER BY hour, minute, id')
        rows = cursor.fetchall()
        self.conn.commit()
        cursor.close()
        return [_alarm_from_row(row) for row in rows]

    def add_alarm(
        self,
        hour: int,
        minute: int,
        sound_nonrem: Optional[str],
        sound_rem: Optional[str],
    ) -> Alarm:
        """Add an enabled alarm.

        Args:
            hour: Hour of day (0-23).
            minute: Minute (0-59).
            sound_nonrem: Sound used when not in REM or awake.
            sound_rem: Sound used when in REM or awake.

        Returns:
            The stored alarm with its id.
        """
        cursor = self._cursor()
        cursor.execute(
            'INSERT INTO alarms (hour, minute, sound_nonrem, sound_rem) VALUES (%s, %s, %s, %s)',
            (hour, minute, sound_nonrem, sound_rem),
        )
        alarm_id = cursor.lastrowid
        self.conn.commit()
        cursor.close()
        return Alarm(
            id=int(alarm_id),
            hour=hour,
            minute=minute,
            enabled=True,
            sound_nonrem=sound_nonrem,
            sound_rem=sound_rem,
        )

    def delete_alarm(self, alarm_id: int) -> int:
        """Delete an alarm.

        Returns:
            Number of rows deleted.
        """
        cursor = self._cursor()
        cursor.execute('DELETE FROM alarms WHERE id = %s', (alarm_id,))
        changes = cursor.rowcount
        self.conn.commit()
        cursor.close()
        return changes

    def toggle_alarm(self, alarm_id: int, enabled: bool) -> int:
        """Switch an alarm on or off.

        Returns:
            Number of rows updated.
        """
        cursor = self._cursor()
        cursor.execute('UPDATE alarms SET is_on = %s WHERE id = %s', (1 if enabled else 0, alarm_id))
        changes = cursor.rowcount
        self.conn.commit()
        cursor.close()
        return changes
