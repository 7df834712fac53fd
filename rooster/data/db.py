"""
Rooster — Alarm and Astronomy Database.

Alarm definitions and the last known solar event table persist in SQLite
across restarts. The core never touches these classes directly; it goes
through the repository and solar source adapters.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from rooster.core.errors import ValidationError
from rooster.core.validation import ensure_valid, sanitize_label, validate_coordinates
from rooster.data.mapper import (
    datetime_to_millis,
    from_schedule,
    millis_to_datetime,
    to_schedule,
)
from rooster.data.models import (
    AlarmDefinition,
    AlarmSchedule,
    Location,
    SolarEvent,
    SolarEventTable,
)

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = (
    "sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday",
)


def _default_db_path() -> str:
    from rooster.config import settings
    return settings.DATABASE_PATH


class AlarmDB:
    """SQLite-backed storage for alarm definitions."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            db_path = _default_db_path()

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the alarms table if it doesn't exist, and migrate schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS alarms (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    label           TEXT    NOT NULL,
                    enabled         INTEGER NOT NULL DEFAULT 0,
                    mode            TEXT    NOT NULL,
                    ringtone_uri    TEXT    NOT NULL DEFAULT 'Default',
                    relative1       TEXT    NOT NULL,
                    relative2       TEXT    NOT NULL,
                    time1           INTEGER NOT NULL DEFAULT 0,
                    time2           INTEGER NOT NULL DEFAULT 0,
                    calculated_time INTEGER NOT NULL DEFAULT 0,
                    sunday          INTEGER NOT NULL DEFAULT 0,
                    monday          INTEGER NOT NULL DEFAULT 0,
                    tuesday         INTEGER NOT NULL DEFAULT 0,
                    wednesday       INTEGER NOT NULL DEFAULT 0,
                    thursday        INTEGER NOT NULL DEFAULT 0,
                    friday          INTEGER NOT NULL DEFAULT 0,
                    saturday        INTEGER NOT NULL DEFAULT 0
                )
            """)
            # Migrate existing DBs: add newer columns if missing
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(alarms)").fetchall()
            }
            migrations = {
                "vibrate": "INTEGER NOT NULL DEFAULT 1",
                "snooze_enabled": "INTEGER NOT NULL DEFAULT 1",
                "snooze_duration": "INTEGER NOT NULL DEFAULT 10",
                "snooze_count": "INTEGER NOT NULL DEFAULT 3",
                "volume": "INTEGER NOT NULL DEFAULT 80",
                "gradual_volume": "INTEGER NOT NULL DEFAULT 0",
            }
            for column, ddl in migrations.items():
                if column not in existing_cols:
                    conn.execute(f"ALTER TABLE alarms ADD COLUMN {column} {ddl}")
        logger.debug("Alarms table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_alarm(row: sqlite3.Row) -> AlarmDefinition:
        return AlarmDefinition(
            id=row["id"],
            label=row["label"],
            schedule=to_schedule(
                row["mode"], row["relative1"], row["relative2"],
                row["time1"], row["time2"],
            ),
            enabled=bool(row["enabled"]),
            calculated_time=millis_to_datetime(row["calculated_time"]),
            sunday=bool(row["sunday"]),
            monday=bool(row["monday"]),
            tuesday=bool(row["tuesday"]),
            wednesday=bool(row["wednesday"]),
            thursday=bool(row["thursday"]),
            friday=bool(row["friday"]),
            saturday=bool(row["saturday"]),
            snooze_enabled=bool(row["snooze_enabled"]),
            snooze_duration_minutes=row["snooze_duration"],
            snooze_max_count=row["snooze_count"],
            volume=row["volume"],
            gradual_volume=bool(row["gradual_volume"]),
            vibrate=bool(row["vibrate"]),
            ringtone_uri=row["ringtone_uri"],
        )

    def _rows_to_alarms(self, rows: list[sqlite3.Row]) -> list[AlarmDefinition]:
        """Map rows, skipping (and logging) any row that no longer parses."""
        alarms = []
        for row in rows:
            try:
                alarms.append(self._row_to_alarm(row))
            except ValidationError as exc:
                logger.warning("Skipping unreadable alarm #%d: %s", row["id"], exc)
        return alarms

    @staticmethod
    def _alarm_columns(alarm: AlarmDefinition) -> dict:
        columns = from_schedule(alarm.schedule)
        columns.update(
            label=alarm.label,
            enabled=int(alarm.enabled),
            ringtone_uri=alarm.ringtone_uri,
            calculated_time=datetime_to_millis(alarm.calculated_time),
            vibrate=int(alarm.vibrate),
            snooze_enabled=int(alarm.snooze_enabled),
            snooze_duration=alarm.snooze_duration_minutes,
            snooze_count=alarm.snooze_max_count,
            volume=alarm.volume,
            gradual_volume=int(alarm.gradual_volume),
        )
        for name, flag in zip(WEEKDAY_NAMES, alarm.weekdays):
            columns[name] = int(flag)
        return columns

    def add_alarm(
        self,
        label: str,
        schedule: AlarmSchedule,
        enabled: bool = False,
        weekdays: Iterable[str] = (),
        snooze_enabled: bool = True,
        snooze_duration_minutes: int | None = None,
        snooze_max_count: int | None = None,
        volume: int | None = None,
        gradual_volume: bool = False,
        vibrate: bool = True,
        ringtone_uri: str = "Default",
    ) -> AlarmDefinition:
        """Validate and insert a new alarm. Defaults come from settings.

        Raises:
            ValidationError: the definition is malformed.
        """
        from rooster.config import settings

        days = {d.lower() for d in weekdays}
        unknown = days - set(WEEKDAY_NAMES)
        if unknown:
            raise ValidationError([f"Unknown weekday: {d}" for d in sorted(unknown)])

        alarm = AlarmDefinition(
            id=0,
            label=sanitize_label(label),
            schedule=schedule,
            enabled=enabled,
            snooze_enabled=snooze_enabled,
            snooze_duration_minutes=(
                snooze_duration_minutes
                if snooze_duration_minutes is not None
                else settings.DEFAULT_SNOOZE_DURATION_MINUTES
            ),
            snooze_max_count=(
                snooze_max_count
                if snooze_max_count is not None
                else settings.DEFAULT_SNOOZE_MAX_COUNT
            ),
            volume=volume if volume is not None else settings.DEFAULT_VOLUME,
            gradual_volume=gradual_volume,
            vibrate=vibrate,
            ringtone_uri=ringtone_uri,
            **{name: name in days for name in WEEKDAY_NAMES},
        )
        ensure_valid(alarm)

        columns = self._alarm_columns(alarm)
        names = ", ".join(columns)
        placeholders = ", ".join("?" for _ in columns)
        with self._connect() as conn:
            cursor = conn.execute(
                f"INSERT INTO alarms ({names}) VALUES ({placeholders})",
                tuple(columns.values()),
            )
            alarm.id = cursor.lastrowid

        logger.info("Alarm added: #%d '%s' (%s)", alarm.id, alarm.label, alarm.mode.value)
        return alarm

    def update_alarm(self, alarm: AlarmDefinition) -> bool:
        """Replace a stored alarm with an edited copy.

        Raises:
            ValidationError: the edited definition is malformed.
        """
        alarm.label = sanitize_label(alarm.label)
        ensure_valid(alarm)

        columns = self._alarm_columns(alarm)
        assignments = ", ".join(f"{name} = ?" for name in columns)
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE alarms SET {assignments} WHERE id = ?",
                (*columns.values(), alarm.id),
            )
        updated = cursor.rowcount > 0
        if updated:
            logger.info("Alarm #%d '%s' updated", alarm.id, alarm.label)
        return updated

    def get_alarm(self, alarm_id: int) -> AlarmDefinition | None:
        """Fetch a single alarm by ID."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM alarms WHERE id = ?", (alarm_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_alarm(row)

    def list_all(self, enabled_only: bool = False) -> list[AlarmDefinition]:
        """List all alarms, optionally only the enabled ones."""
        query = "SELECT * FROM alarms"
        if enabled_only:
            query += " WHERE enabled = 1"
        query += " ORDER BY id"

        with self._connect() as conn:
            rows = conn.execute(query).fetchall()

        return self._rows_to_alarms(rows)

    def get_enabled_alarms(self) -> list[AlarmDefinition]:
        return self.list_all(enabled_only=True)

    def update_calculated_time(self, alarm_id: int, instant: datetime) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE alarms SET calculated_time = ? WHERE id = ?",
                (datetime_to_millis(instant), alarm_id),
            )
        return cursor.rowcount > 0

    def update_enabled(self, alarm_id: int, enabled: bool) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE alarms SET enabled = ? WHERE id = ?",
                (int(enabled), alarm_id),
            )
        updated = cursor.rowcount > 0
        if updated:
            logger.info("Alarm #%d %s", alarm_id, "enabled" if enabled else "disabled")
        return updated

    def delete_alarm(self, alarm_id: int) -> bool:
        """Permanently delete an alarm by ID."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM alarms WHERE id = ?", (alarm_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Alarm #%d deleted", alarm_id)
        return deleted


_EVENT_COLUMNS = {
    SolarEvent.ASTRONOMICAL_DAWN: "astro_dawn",
    SolarEvent.NAUTICAL_DAWN: "nautical_dawn",
    SolarEvent.CIVIL_DAWN: "civil_dawn",
    SolarEvent.SUNRISE: "sunrise",
    SolarEvent.SOLAR_NOON: "solar_noon",
    SolarEvent.SUNSET: "sunset",
    SolarEvent.CIVIL_DUSK: "civil_dusk",
    SolarEvent.NAUTICAL_DUSK: "nautical_dusk",
    SolarEvent.ASTRONOMICAL_DUSK: "astro_dusk",
}


class AstronomyDB:
    """SQLite cache of the last solar event table (a single row)."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            db_path = _default_db_path()

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        event_cols = ",\n".join(
            f"    {col} INTEGER NOT NULL DEFAULT 0" for col in _EVENT_COLUMNS.values()
        )
        with self._connect() as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS astronomy_data (
                    id         INTEGER PRIMARY KEY CHECK (id = 1),
                    latitude   REAL    NOT NULL,
                    longitude  REAL    NOT NULL,
                    fetched_at INTEGER NOT NULL,
                {event_cols}
                )
            """)
        logger.debug("Astronomy table initialized at %s", self._db_path)

    def save_table(self, location: Location, table: SolarEventTable) -> None:
        """Replace the cached table. A missing event is stored as 0.

        Raises:
            ValidationError: the location is out of range.
        """
        errors = validate_coordinates(location.latitude, location.longitude)
        if errors:
            raise ValidationError(errors)

        fetched_at = table.fetched_at or datetime.now(timezone.utc)
        columns = {
            "id": 1,
            "latitude": location.latitude,
            "longitude": location.longitude,
            "fetched_at": datetime_to_millis(fetched_at),
        }
        for event, col in _EVENT_COLUMNS.items():
            columns[col] = datetime_to_millis(table.get(event))

        names = ", ".join(columns)
        placeholders = ", ".join("?" for _ in columns)
        with self._connect() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO astronomy_data ({names}) VALUES ({placeholders})",
                tuple(columns.values()),
            )
        logger.info(
            "Solar data cached for (%.4f, %.4f), fetched %s",
            location.latitude, location.longitude, fetched_at.isoformat(),
        )

    def latest(self) -> tuple[Location, SolarEventTable] | None:
        """Return the cached location and table, or None if nothing is cached."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM astronomy_data WHERE id = 1").fetchone()
        if row is None:
            return None

        table = SolarEventTable(
            events={
                event: millis_to_datetime(row[col])
                for event, col in _EVENT_COLUMNS.items()
            },
            fetched_at=millis_to_datetime(row["fetched_at"]),
        )
        return Location(row["latitude"], row["longitude"]), table
