"""
Tool: SQLite Calendar Store
Purpose: Reference CalendarStore backed by a local SQLite database

Holds users, account settings, friendships, events, attendees and
notification rows. The confirm path writes the event, its attendee rows and
its notification rows inside one BEGIN IMMEDIATE transaction.

Reads run in worker threads with their own connection, so the engine's
per-participant fan-out really overlaps.

Usage:
    from circlecal.store.sqlite_store import SqliteCalendarStore

    store = SqliteCalendarStore(Path("data/calendar.db"))
    store.add_user("alice", name="Alice")
    store.add_friendship("alice", "bob", status=FriendshipStatus.ACCEPTED)

Dependencies:
    - sqlite3 (stdlib)
"""

import asyncio
import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path

from circlecal import DB_PATH
from circlecal.availability.intervals import Interval, from_epoch_ms, to_epoch_ms
from circlecal.config_models import InvitesConfig
from circlecal.policies.models import (
    Anonymity,
    Attendee,
    AttendeeRole,
    AttendeeStatus,
    CoverMode,
    DetailLevel,
    EventFields,
    EventRecord,
    EventVisibility,
    FriendRelationship,
    FriendshipStatus,
)
from circlecal.store.base import CalendarStore

logger = logging.getLogger(__name__)


def get_connection(db_path: Path) -> sqlite3.Connection:
    """
    Get database connection, creating tables if needed.

    Returns:
        SQLite connection with row_factory set and foreign keys enforced
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")

    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            name TEXT,
            email TEXT,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # Account-level settings; default_detail_level applies when no per-friend override exists
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS settings (
            user_id TEXT PRIMARY KEY,
            default_detail_level TEXT NOT NULL DEFAULT 'BUSY_ONLY',
            FOREIGN KEY (user_id) REFERENCES users(id)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS friendships (
            id TEXT PRIMARY KEY,
            requester_id TEXT NOT NULL,
            addressee_id TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'PENDING',
            can_view_calendar BOOLEAN DEFAULT TRUE,
            detail_level TEXT,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(requester_id, addressee_id),
            FOREIGN KEY (requester_id) REFERENCES users(id),
            FOREIGN KEY (addressee_id) REFERENCES users(id)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS events (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            location_name TEXT,
            start_ms INTEGER NOT NULL,
            end_ms INTEGER NOT NULL,
            timezone TEXT DEFAULT 'UTC',
            visibility TEXT DEFAULT 'FRIENDS',
            cover_mode TEXT DEFAULT 'NONE',
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            CHECK (end_ms > start_ms),
            FOREIGN KEY (owner_id) REFERENCES users(id)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS attendees (
            id TEXT PRIMARY KEY,
            event_id TEXT NOT NULL,
            user_id TEXT NOT NULL,
            role TEXT DEFAULT 'ATTENDEE',
            status TEXT DEFAULT 'INVITED',
            anonymity TEXT DEFAULT 'NAMED',
            UNIQUE(event_id, user_id),
            FOREIGN KEY (event_id) REFERENCES events(id),
            FOREIGN KEY (user_id) REFERENCES users(id)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            body TEXT,
            href TEXT,
            read_at DATETIME,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id)
        )
    """)

    # Indexes
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_events_owner_time "
        "ON events(owner_id, start_ms, end_ms)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_attendees_user "
        "ON attendees(user_id, status)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_notifications_user "
        "ON notifications(user_id, created_at)"
    )

    conn.commit()
    return conn


def _row_to_event(row: sqlite3.Row) -> EventRecord:
    return EventRecord(
        id=row["id"],
        owner_id=row["owner_id"],
        start_at=from_epoch_ms(row["start_ms"]),
        end_at=from_epoch_ms(row["end_ms"]),
        title=row["title"],
        description=row["description"],
        location_name=row["location_name"],
        visibility=EventVisibility(row["visibility"]),
        cover_mode=CoverMode(row["cover_mode"]),
        timezone=row["timezone"],
    )


class SqliteCalendarStore(CalendarStore):
    """
    CalendarStore implementation over a single SQLite file.

    Args:
        db_path: Database file, created on first use.
        invites: Notification wording for invite rows.
    """

    def __init__(self, db_path: Path | None = None, invites: InvitesConfig | None = None):
        self.db_path = Path(db_path) if db_path else DB_PATH
        self.invites = invites or InvitesConfig()
        # Create tables eagerly so seeding helpers and reads see the schema
        get_connection(self.db_path).close()

    def _connect(self) -> sqlite3.Connection:
        return get_connection(self.db_path)

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    def _execute(self, sql: str, params: tuple = ()) -> None:
        conn = self._connect()
        try:
            conn.execute(sql, params)
            conn.commit()
        finally:
            conn.close()

    # =========================================================================
    # Reads
    # =========================================================================

    async def fetch_busy_intervals(
        self,
        participant_id: str,
        window_start: int,
        window_end: int,
    ) -> list[Interval]:
        rows = await asyncio.to_thread(
            self._query,
            """
            SELECT DISTINCT e.id, e.start_ms, e.end_ms
            FROM events e
            LEFT JOIN attendees a
                ON a.event_id = e.id AND a.user_id = ? AND a.status != 'DECLINED'
            WHERE e.start_ms < ? AND e.end_ms > ?
            AND (e.owner_id = ? OR a.id IS NOT NULL)
            """,
            (participant_id, window_end, window_start, participant_id),
        )
        return [Interval(row["start_ms"], row["end_ms"]) for row in rows]

    async def fetch_relationship(
        self,
        requester_id: str,
        addressee_id: str,
    ) -> FriendRelationship | None:
        rows = await asyncio.to_thread(
            self._query,
            """
            SELECT requester_id, addressee_id, status, can_view_calendar, detail_level
            FROM friendships
            WHERE requester_id = ? AND addressee_id = ?
            """,
            (requester_id, addressee_id),
        )
        if not rows:
            return None

        row = rows[0]
        return FriendRelationship(
            requester_id=row["requester_id"],
            addressee_id=row["addressee_id"],
            status=FriendshipStatus(row["status"]),
            can_view_calendar=bool(row["can_view_calendar"]),
            detail_level=DetailLevel(row["detail_level"]) if row["detail_level"] else None,
        )

    async def fetch_default_detail_level(self, user_id: str) -> DetailLevel | None:
        rows = await asyncio.to_thread(
            self._query,
            "SELECT default_detail_level FROM settings WHERE user_id = ?",
            (user_id,),
        )
        if not rows:
            return None
        return DetailLevel(rows[0]["default_detail_level"])

    async def fetch_event(self, event_id: str) -> EventRecord | None:
        rows = await asyncio.to_thread(
            self._query, "SELECT * FROM events WHERE id = ?", (event_id,)
        )
        return _row_to_event(rows[0]) if rows else None

    async def fetch_attendees(self, event_id: str) -> list[Attendee]:
        rows = await asyncio.to_thread(
            self._query,
            """
            SELECT a.*, u.name AS user_name, u.email AS user_email
            FROM attendees a
            LEFT JOIN users u ON u.id = a.user_id
            WHERE a.event_id = ?
            ORDER BY a.role DESC, a.id
            """,
            (event_id,),
        )
        return [
            Attendee(
                id=row["id"],
                event_id=row["event_id"],
                user_id=row["user_id"],
                role=AttendeeRole(row["role"]),
                status=AttendeeStatus(row["status"]),
                anonymity=Anonymity(row["anonymity"]),
                name=row["user_name"],
                email=row["user_email"],
            )
            for row in rows
        ]

    async def fetch_owner_events(
        self,
        owner_id: str,
        window_start: int,
        window_end: int,
    ) -> list[EventRecord]:
        rows = await asyncio.to_thread(
            self._query,
            """
            SELECT * FROM events
            WHERE owner_id = ? AND start_ms < ? AND end_ms > ?
            ORDER BY start_ms ASC
            """,
            (owner_id, window_end, window_start),
        )
        return [_row_to_event(row) for row in rows]

    # =========================================================================
    # Writes
    # =========================================================================

    def _create_event_sync(
        self,
        owner_id: str,
        fields: EventFields,
        slot: Interval,
        invitee_ids: list[str],
    ) -> str:
        event_id = str(uuid.uuid4())
        conn = self._connect()
        cursor = conn.cursor()

        try:
            cursor.execute("BEGIN IMMEDIATE")

            owner = cursor.execute("SELECT name FROM users WHERE id = ?", (owner_id,)).fetchone()
            owner_name = owner["name"] if owner and owner["name"] else "Someone"

            cursor.execute(
                """
                INSERT INTO events (
                    id, owner_id, title, description, location_name,
                    start_ms, end_ms, timezone, visibility, cover_mode
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event_id,
                    owner_id,
                    fields.title,
                    fields.description,
                    fields.location_name,
                    slot.start,
                    slot.end,
                    fields.timezone,
                    fields.visibility.value,
                    fields.cover_mode.value,
                ),
            )

            cursor.execute(
                """
                INSERT INTO attendees (id, event_id, user_id, role, status, anonymity)
                VALUES (?, ?, ?, 'HOST', 'GOING', 'NAMED')
                """,
                (str(uuid.uuid4()), event_id, owner_id),
            )

            for invitee_id in invitee_ids:
                cursor.execute(
                    """
                    INSERT INTO attendees (id, event_id, user_id, role, status, anonymity)
                    VALUES (?, ?, ?, 'ATTENDEE', 'INVITED', 'NAMED')
                    """,
                    (str(uuid.uuid4()), event_id, invitee_id),
                )
                cursor.execute(
                    """
                    INSERT INTO notifications (id, user_id, type, title, body, href)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(uuid.uuid4()),
                        invitee_id,
                        self.invites.notification_type,
                        self.invites.notification_title,
                        f'{owner_name} invited you to "{fields.title}"',
                        self.invites.href_template.format(event_id=event_id),
                    ),
                )

            conn.commit()
        except Exception:
            conn.rollback()
            logger.error("Event creation for %s failed, rolled back", owner_id)
            raise
        finally:
            conn.close()

        return event_id

    async def create_event_with_host_and_invites(
        self,
        owner_id: str,
        fields: EventFields,
        slot: Interval,
        invitee_ids: list[str],
    ) -> str:
        return await asyncio.to_thread(
            self._create_event_sync, owner_id, fields, slot, list(invitee_ids)
        )

    async def notify_invited(self, user_id: str, event_id: str, title: str) -> None:
        # Delivery (push, email) belongs to the notification service; the row
        # itself was written inside the confirm transaction.
        logger.info("Invite notification ready for %s (event %s)", user_id, event_id)

    # =========================================================================
    # Seeding helpers
    # =========================================================================

    def add_user(self, user_id: str, name: str | None = None, email: str | None = None) -> None:
        self._execute(
            "INSERT OR REPLACE INTO users (id, name, email) VALUES (?, ?, ?)",
            (user_id, name, email),
        )

    def set_default_detail_level(self, user_id: str, level: DetailLevel) -> None:
        self._execute(
            """
            INSERT INTO settings (user_id, default_detail_level) VALUES (?, ?)
            ON CONFLICT(user_id) DO UPDATE SET default_detail_level = excluded.default_detail_level
            """,
            (user_id, level.value),
        )

    def add_friendship(
        self,
        requester_id: str,
        addressee_id: str,
        status: FriendshipStatus = FriendshipStatus.PENDING,
        can_view_calendar: bool = True,
        detail_level: DetailLevel | None = None,
    ) -> None:
        """Insert or replace the directed row requester_id -> addressee_id."""
        self._execute(
            """
            INSERT INTO friendships (id, requester_id, addressee_id, status, can_view_calendar, detail_level)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(requester_id, addressee_id) DO UPDATE SET
                status = excluded.status,
                can_view_calendar = excluded.can_view_calendar,
                detail_level = excluded.detail_level
            """,
            (
                str(uuid.uuid4()),
                requester_id,
                addressee_id,
                status.value,
                can_view_calendar,
                detail_level.value if detail_level else None,
            ),
        )

    def add_event(
        self,
        owner_id: str,
        start_at: datetime,
        end_at: datetime,
        title: str = "Event",
        description: str | None = None,
        location_name: str | None = None,
        visibility: EventVisibility = EventVisibility.FRIENDS,
        cover_mode: CoverMode = CoverMode.NONE,
        event_id: str | None = None,
    ) -> str:
        event_id = event_id or str(uuid.uuid4())
        self._execute(
            """
            INSERT INTO events (
                id, owner_id, title, description, location_name,
                start_ms, end_ms, visibility, cover_mode
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event_id,
                owner_id,
                title,
                description,
                location_name,
                to_epoch_ms(start_at),
                to_epoch_ms(end_at),
                visibility.value,
                cover_mode.value,
            ),
        )
        return event_id

    def add_attendee(
        self,
        event_id: str,
        user_id: str,
        status: AttendeeStatus = AttendeeStatus.GOING,
        role: AttendeeRole = AttendeeRole.ATTENDEE,
        anonymity: Anonymity = Anonymity.NAMED,
    ) -> str:
        attendee_id = str(uuid.uuid4())
        self._execute(
            """
            INSERT INTO attendees (id, event_id, user_id, role, status, anonymity)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (attendee_id, event_id, user_id, role.value, status.value, anonymity.value),
        )
        return attendee_id

    def count_rows(self, table: str, **where: str) -> int:
        """Row count for tests and diagnostics, e.g. count_rows("events", owner_id="alice")."""
        if table not in ("users", "settings", "friendships", "events", "attendees", "notifications"):
            raise ValueError(f"Unknown table: {table}")
        columns = {row["name"] for row in self._query(f"PRAGMA table_info({table})")}
        unknown = sorted(set(where) - columns)
        if unknown:
            raise ValueError(f"Unknown column(s) for {table}: {unknown}")
        clause = " AND ".join(f"{column} = ?" for column in where)
        sql = f"SELECT COUNT(*) FROM {table}" + (f" WHERE {clause}" if clause else "")
        return self._query(sql, tuple(where.values()))[0][0]
