"""Append-only event store backed by SQLite."""

import json
import logging
import sqlite3
from datetime import UTC, datetime

from yakataka.db.connection import Database
from yakataka.errors import ConcurrencyConflictError, StorageFailureError
from yakataka.events.broadcaster import EventBroadcaster
from yakataka.models import NewEvent, StoredEvent, StreamType

logger = logging.getLogger(__name__)


def _format_timestamp(timestamp: datetime) -> str:
    # Fixed width so that string order in SQL matches chronological order.
    return timestamp.astimezone(UTC).isoformat(timespec="microseconds")


def _truncation(limit: int | None) -> int | None:
    if limit is None or limit <= 0:
        return None
    return limit


class EventStore:
    """Append-only event store. Versions are unique per stream."""

    def __init__(self, db: Database, broadcaster: EventBroadcaster | None = None) -> None:
        self._db = db
        self._broadcaster = broadcaster

    async def append(self, event: NewEvent) -> StoredEvent:
        """Stamp, persist and return an event.

        Raises ConcurrencyConflictError unless the version is exactly one
        past the stream's latest. Project events are broadcast once persisted.
        """
        timestamp = datetime.now(UTC)
        try:
            # The insert only happens if the stream is at version - 1.
            cursor = await self._db.execute(
                """
                INSERT INTO events
                    (stream_type, stream_id, event_type, event_data, version, timestamp)
                SELECT ?, ?, ?, ?, ?, ?
                WHERE (
                    SELECT COALESCE(MAX(version), 0) FROM events
                    WHERE stream_type = ? AND stream_id = ?
                ) = ?
                """,
                (
                    event.stream_type,
                    event.stream_id,
                    event.event_type,
                    json.dumps(event.event_data),
                    event.version,
                    _format_timestamp(timestamp),
                    event.stream_type,
                    event.stream_id,
                    event.version - 1,
                ),
            )
        except sqlite3.IntegrityError as e:
            self._log_conflict(event)
            raise ConcurrencyConflictError(
                event.stream_type, event.stream_id, event.version
            ) from e
        except sqlite3.Error as e:
            raise StorageFailureError(f"Failed to append {event.event_type}: {e}") from e

        if cursor.rowcount == 0:
            self._log_conflict(event)
            raise ConcurrencyConflictError(event.stream_type, event.stream_id, event.version)

        stored = StoredEvent(
            **event.model_dump(),
            timestamp=timestamp,
            id=cursor.lastrowid,
        )
        logger.debug(
            "Appended %s to %s %s at version %d",
            stored.event_type, stored.stream_type, stored.stream_id, stored.version,
        )

        if stored.stream_type == "project" and self._broadcaster is not None:
            self._broadcaster.broadcast(stored.stream_id, stored)

        return stored

    async def get_events(self, stream_type: StreamType, stream_id: str) -> list[StoredEvent]:
        """Get the full history of one stream, ordered by version."""
        rows = await self._fetchall(
            """
            SELECT * FROM events
            WHERE stream_type = ? AND stream_id = ?
            ORDER BY version ASC
            """,
            (stream_type, stream_id),
        )
        return [self._row_to_event(row) for row in rows]

    async def get_latest_version(self, stream_type: StreamType, stream_id: str) -> int:
        """Highest version in the stream, 0 if the stream is empty."""
        row = await self._fetchone(
            "SELECT MAX(version) AS version FROM events WHERE stream_type = ? AND stream_id = ?",
            (stream_type, stream_id),
        )
        if row is None or row["version"] is None:
            return 0
        return row["version"]

    async def get_project_ids_by_workspace(self, workspace_id: str) -> list[str]:
        """Ids of every project stream whose ProjectCreated names the workspace."""
        rows = await self._fetchall(
            """
            SELECT stream_id FROM events
            WHERE stream_type = 'project'
              AND event_type = 'ProjectCreated'
              AND json_extract(event_data, '$.workspace_id') = ?
            ORDER BY id
            """,
            (workspace_id,),
        )
        return [row["stream_id"] for row in rows]

    async def get_workspace_events(
        self, workspace_id: str, limit: int | None = None
    ) -> list[StoredEvent]:
        """Workspace stream merged with all of its project streams, by timestamp.

        With a limit, only the most recent ``limit`` events are kept.
        """
        rows = await self._fetchall(
            """
            SELECT e.* FROM events e
            WHERE (e.stream_type = 'workspace' AND e.stream_id = ?)
               OR (e.stream_type = 'project' AND e.stream_id IN (
                   SELECT stream_id FROM events
                   WHERE stream_type = 'project'
                     AND event_type = 'ProjectCreated'
                     AND json_extract(event_data, '$.workspace_id') = ?
               ))
            ORDER BY e.timestamp ASC, e.id ASC
            """,
            (workspace_id, workspace_id),
        )
        events = [self._row_to_event(row) for row in rows]
        limit = _truncation(limit)
        return events[-limit:] if limit else events

    async def get_card_events(
        self, project_id: str, card_id: str, limit: int | None = None
    ) -> list[StoredEvent]:
        """Events of a project that name the card as subject or dependency target.

        Newest first. With a limit, only the first ``limit`` are kept.
        """
        rows = await self._fetchall(
            """
            SELECT * FROM events
            WHERE stream_type = 'project'
              AND stream_id = ?
              AND (
                  json_extract(event_data, '$.card_id') = ?
                  OR json_extract(event_data, '$.depends_on_card_id') = ?
              )
            ORDER BY version DESC
            """,
            (project_id, card_id, card_id),
        )
        events = [self._row_to_event(row) for row in rows]
        limit = _truncation(limit)
        return events[:limit] if limit else events

    async def _fetchall(self, sql: str, params: tuple) -> list:
        try:
            return await self._db.fetchall(sql, params)
        except sqlite3.Error as e:
            raise StorageFailureError(f"Failed to read events: {e}") from e

    async def _fetchone(self, sql: str, params: tuple):
        try:
            return await self._db.fetchone(sql, params)
        except sqlite3.Error as e:
            raise StorageFailureError(f"Failed to read events: {e}") from e

    @staticmethod
    def _log_conflict(event: NewEvent) -> None:
        logger.warning(
            "Version conflict on %s %s at version %d",
            event.stream_type, event.stream_id, event.version,
        )

    @staticmethod
    def _row_to_event(row) -> StoredEvent:
        """Convert a database row to a StoredEvent."""
        return StoredEvent(
            id=row["id"],
            stream_type=row["stream_type"],
            stream_id=row["stream_id"],
            event_type=row["event_type"],
            event_data=json.loads(row["event_data"]),
            version=row["version"],
            timestamp=row["timestamp"],
        )
