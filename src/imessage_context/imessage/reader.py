"""Read-only access to macOS Messages chat.db."""

from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Iterable
from pathlib import Path

from imessage_context.exceptions import IMessageReadError
from imessage_context.imessage.identifiers import normalize
from imessage_context.imessage.models import (
    DailyCount,
    Group,
    Handle,
    Message,
    transport_from_service,
)
from imessage_context.imessage.timestamps import APPLE_EPOCH_OFFSET, NANOSECONDS_PER_SECOND

logger = logging.getLogger(__name__)

CHAT_DB_PATH = Path(
    os.environ.get("IMESSAGE_DB_PATH", Path.home() / "Library" / "Messages" / "chat.db")
)

# chat.style for multi-party chats (one-to-one chats are 45)
GROUP_CHAT_STYLE = 43

# message.date as a UTC calendar day; {per_second} is the store's date units per second
_MESSAGE_DAY = "DATE(m.date / {per_second} + " + str(APPLE_EPOCH_OFFSET) + ", 'unixepoch')"

# Rows that carry something to show: plain text or an encoded body
_HAS_CONTENT = "((m.text IS NOT NULL AND TRIM(m.text) != '') OR {body} IS NOT NULL)"
_HAS_TEXT = "(m.text IS NOT NULL AND TRIM(m.text) != '')"


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _placeholders(values: Iterable) -> str:
    return ", ".join("?" for _ in values)


def _keyword_filter(keywords: list[str] | None) -> tuple[str, list[str]]:
    """SQL fragment matching any keyword in the lower-cased text, plus its params."""
    if not keywords:
        return "", []
    clause = " OR ".join("LOWER(m.text) LIKE ? ESCAPE '\\'" for _ in keywords)
    return f"AND ({clause})", [f"%{_escape_like(k.lower())}%" for k in keywords]


class ChatDBReader:
    """Read-only connection to the macOS Messages database.

    Every public method opens the database, runs its queries and closes it again;
    no connection outlives a call. Timestamps passed in and handed back are
    nanoseconds since 2001-01-01 whatever unit the store itself uses.
    """

    def __init__(self, db_path: Path | None = None):
        self.db_path = Path(db_path) if db_path else CHAT_DB_PATH
        self._nanoseconds: bool | None = None

    def _connect(self) -> sqlite3.Connection:
        """Open a read-only connection to chat.db."""
        if not self.db_path.exists():
            raise IMessageReadError(
                f"Messages database not found at {self.db_path}. "
                "Make sure you're running on macOS with Messages configured."
            )
        conn: sqlite3.Connection | None = None
        try:
            uri = f"file:{self.db_path}?mode=ro"
            conn = sqlite3.connect(uri, uri=True)
            conn.row_factory = sqlite3.Row
            # Touch the schema so permission problems surface here, not mid-query
            conn.execute("SELECT 1 FROM sqlite_master LIMIT 1").fetchone()
            return conn
        except (sqlite3.OperationalError, sqlite3.DatabaseError) as e:
            if conn is not None:
                conn.close()
            err = str(e).lower()
            if "unable to open" in err or "authorization denied" in err:
                raise IMessageReadError(
                    "Cannot open chat.db — Full Disk Access is required. "
                    "Go to System Settings > Privacy & Security > Full Disk Access "
                    "and enable it for your terminal application."
                ) from e
            raise IMessageReadError(f"Failed to open chat.db: {e}") from e

    def _detect_timestamp_format(self, conn: sqlite3.Connection) -> bool:
        """Detect if timestamps are in nanoseconds (macOS 10.13+) or seconds."""
        if self._nanoseconds is not None:
            return self._nanoseconds
        row = self._query(conn, "SELECT MAX(ABS(date)) AS max_date FROM message", [])[0]
        max_date = row["max_date"] or 0
        # An empty store has nothing to compare against; assume the modern format
        self._nanoseconds = max_date > 1e12 or max_date == 0
        logger.debug(f"chat.db dates in {'nanoseconds' if self._nanoseconds else 'seconds'}")
        return self._nanoseconds

    def _per_second(self, conn: sqlite3.Connection) -> int:
        """Store date units per second."""
        return NANOSECONDS_PER_SECOND if self._detect_timestamp_format(conn) else 1

    def _to_store(self, conn: sqlite3.Connection, native: int) -> int:
        return native * self._per_second(conn) // NANOSECONDS_PER_SECOND

    def _from_store(self, conn: sqlite3.Connection, value: int | None) -> int | None:
        if value is None:
            return None
        return value * NANOSECONDS_PER_SECOND // self._per_second(conn)

    # ------------------------------------------------------------------
    # Handles
    # ------------------------------------------------------------------

    def find_handles(self, search_term: str) -> list[Handle]:
        """Handles whose raw identifier contains the term, its digits, or +digits."""
        patterns = normalize(search_term).patterns()
        if not patterns:
            return []
        conn = self._connect()
        try:
            country = "h.country" if self._has_column(conn, "handle", "country") else "''"
            where = " OR ".join("h.id LIKE ? ESCAPE '\\'" for _ in patterns)
            rows = self._query(
                conn,
                f"""
                SELECT h.ROWID AS handle_id, h.id AS raw_identifier,
                       h.service AS service, {country} AS country
                FROM handle h
                WHERE {where}
                ORDER BY h.ROWID
                """,
                [f"%{_escape_like(p)}%" for p in patterns],
            )
        finally:
            conn.close()

        handles = [self._row_to_handle(row) for row in rows]
        logger.debug(f"Handle search {search_term!r} -> {[h.handle_id for h in handles]}")
        return handles

    def fetch_handle_messages(
        self,
        handle_ids: Iterable[int],
        since: int,
        limit: int | None,
        include_sent: bool = True,
        text_only: bool = False,
        keywords: list[str] | None = None,
    ) -> list[Message]:
        """Messages exchanged with any of the handles after ``since``, newest first.

        ``limit=None`` returns every matching row. ``keywords`` keeps only rows
        whose text contains at least one of them, case-insensitively.
        """
        ids = sorted(set(handle_ids))
        if not ids:
            return []
        conn = self._connect()
        try:
            body = self._body_column(conn)
            content = _HAS_TEXT if text_only else _HAS_CONTENT.format(body=body)
            sent_filter = "" if include_sent else "AND m.is_from_me = 0"
            keyword_filter, keyword_params = _keyword_filter(keywords)
            limit_clause, limit_params = ("LIMIT ?", [limit]) if limit is not None else ("", [])
            rows = self._query(
                conn,
                f"""
                SELECT m.ROWID AS message_id, m.date AS date, m.text AS text,
                       {body} AS body, m.is_from_me AS is_from_me, m.service AS service,
                       h.ROWID AS handle_id, h.id AS raw_identifier,
                       h.service AS handle_service
                FROM message m
                LEFT JOIN handle h ON h.ROWID = m.handle_id
                WHERE m.handle_id IN ({_placeholders(ids)})
                  AND m.date > ?
                  AND {content}
                  {sent_filter}
                  {keyword_filter}
                ORDER BY m.date DESC
                {limit_clause}
                """,
                [*ids, self._to_store(conn, since), *keyword_params, *limit_params],
            )
            return [self._row_to_message(conn, row) for row in rows]
        finally:
            conn.close()

    def handle_stats(self, handle_ids: Iterable[int], since: int) -> dict:
        """Total/sent/received counts and first/last message dates."""
        ids = sorted(set(handle_ids))
        if not ids:
            return {"total": 0, "sent": 0, "received": 0, "first": None, "last": None}
        conn = self._connect()
        try:
            row = self._query(
                conn,
                f"""
                SELECT COUNT(*) AS total,
                       COUNT(CASE WHEN m.is_from_me = 1 THEN 1 END) AS sent,
                       COUNT(CASE WHEN m.is_from_me = 0 THEN 1 END) AS received,
                       MIN(m.date) AS first, MAX(m.date) AS last
                FROM message m
                WHERE m.handle_id IN ({_placeholders(ids)}) AND m.date > ?
                """,
                [*ids, self._to_store(conn, since)],
            )[0]
            stats = dict(row)
            stats["first"] = self._from_store(conn, stats["first"])
            stats["last"] = self._from_store(conn, stats["last"])
        finally:
            conn.close()
        return stats

    def handle_daily_counts(self, handle_ids: Iterable[int], since: int) -> list[DailyCount]:
        """Per-day message counts, newest day first."""
        ids = sorted(set(handle_ids))
        if not ids:
            return []
        conn = self._connect()
        try:
            day = _MESSAGE_DAY.format(per_second=self._per_second(conn))
            rows = self._query(
                conn,
                f"""
                SELECT {day} AS day,
                       COUNT(*) AS total,
                       COUNT(CASE WHEN m.is_from_me = 1 THEN 1 END) AS sent,
                       COUNT(CASE WHEN m.is_from_me = 0 THEN 1 END) AS received
                FROM message m
                WHERE m.handle_id IN ({_placeholders(ids)}) AND m.date > ?
                GROUP BY day
                ORDER BY day DESC
                """,
                [*ids, self._to_store(conn, since)],
            )
        finally:
            conn.close()
        return [
            DailyCount(date=row["day"], total=row["total"], sent=row["sent"], received=row["received"])
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def find_groups(self, query: str, limit: int = 3) -> list[Group]:
        """Multi-party chats whose display name or chat identifier contains ``query``.

        Matching is case-sensitive. One-to-one chats are left out; their
        chat_identifier is the other person's phone or email.
        """
        if not query:
            return []
        conn = self._connect()
        try:
            rows = self._query(
                conn,
                f"""
                SELECT c.ROWID AS group_id, c.display_name AS display_name,
                       c.chat_identifier AS chat_identifier
                FROM chat c
                WHERE (INSTR(COALESCE(c.display_name, ''), ?) > 0
                       OR INSTR(COALESCE(c.chat_identifier, ''), ?) > 0)
                  AND {self._multi_party(conn)}
                ORDER BY c.ROWID
                LIMIT ?
                """,
                [query, query, limit],
            )
        finally:
            conn.close()
        return [self._row_to_group(row) for row in rows]

    def get_group(self, group_id: int) -> Group | None:
        conn = self._connect()
        try:
            rows = self._query(
                conn,
                """
                SELECT c.ROWID AS group_id, c.display_name AS display_name,
                       c.chat_identifier AS chat_identifier
                FROM chat c
                WHERE c.ROWID = ?
                """,
                [group_id],
            )
        finally:
            conn.close()
        return self._row_to_group(rows[0]) if rows else None

    def fetch_group_messages(
        self,
        group_id: int,
        since: int,
        limit: int | None,
        include_sent: bool = True,
        text_only: bool = False,
        keywords: list[str] | None = None,
    ) -> list[Message]:
        """Messages in a chat after ``since``, newest first, with their senders."""
        conn = self._connect()
        try:
            body = self._body_column(conn)
            content = _HAS_TEXT if text_only else _HAS_CONTENT.format(body=body)
            sent_filter = "" if include_sent else "AND m.is_from_me = 0"
            keyword_filter, keyword_params = _keyword_filter(keywords)
            limit_clause, limit_params = ("LIMIT ?", [limit]) if limit is not None else ("", [])
            rows = self._query(
                conn,
                f"""
                SELECT m.ROWID AS message_id, m.date AS date, m.text AS text,
                       {body} AS body, m.is_from_me AS is_from_me, m.service AS service,
                       h.ROWID AS handle_id, h.id AS raw_identifier,
                       h.service AS handle_service
                FROM chat_message_join cmj
                JOIN message m ON m.ROWID = cmj.message_id
                LEFT JOIN handle h ON h.ROWID = m.handle_id
                WHERE cmj.chat_id = ?
                  AND m.date > ?
                  AND {content}
                  {sent_filter}
                  {keyword_filter}
                ORDER BY m.date DESC
                {limit_clause}
                """,
                [group_id, self._to_store(conn, since), *keyword_params, *limit_params],
            )
            return [self._row_to_message(conn, row) for row in rows]
        finally:
            conn.close()

    def group_stats(self, group_id: int, since: int) -> dict:
        """Totals plus the number of distinct non-self senders."""
        conn = self._connect()
        try:
            row = self._query(
                conn,
                """
                SELECT COUNT(*) AS total,
                       COUNT(CASE WHEN m.is_from_me = 1 THEN 1 END) AS sent,
                       COUNT(CASE WHEN m.is_from_me = 0 THEN 1 END) AS received,
                       COUNT(DISTINCT CASE WHEN m.is_from_me = 0 THEN h.id END) AS participants,
                       MIN(m.date) AS first, MAX(m.date) AS last
                FROM chat_message_join cmj
                JOIN message m ON m.ROWID = cmj.message_id
                LEFT JOIN handle h ON h.ROWID = m.handle_id
                WHERE cmj.chat_id = ? AND m.date > ?
                """,
                [group_id, self._to_store(conn, since)],
            )[0]
            stats = dict(row)
            stats["first"] = self._from_store(conn, stats["first"])
            stats["last"] = self._from_store(conn, stats["last"])
        finally:
            conn.close()
        return stats

    def group_participant_counts(self, group_id: int, since: int) -> list[tuple[str, int]]:
        """(raw identifier, message count) per sender, busiest first; "" is you."""
        conn = self._connect()
        try:
            rows = self._query(
                conn,
                """
                SELECT CASE WHEN m.is_from_me = 1 THEN '' ELSE COALESCE(h.id, '') END AS sender,
                       COUNT(*) AS count
                FROM chat_message_join cmj
                JOIN message m ON m.ROWID = cmj.message_id
                LEFT JOIN handle h ON h.ROWID = m.handle_id
                WHERE cmj.chat_id = ? AND m.date > ?
                GROUP BY sender
                ORDER BY count DESC, sender
                """,
                [group_id, self._to_store(conn, since)],
            )
        finally:
            conn.close()
        return [(row["sender"], row["count"]) for row in rows]

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _query(conn: sqlite3.Connection, sql: str, params: list) -> list[sqlite3.Row]:
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise IMessageReadError(f"chat.db query failed: {e}") from e

    @staticmethod
    def _has_column(conn: sqlite3.Connection, table: str, column: str) -> bool:
        rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
        return any(str(row["name"]) == column for row in rows)

    def _body_column(self, conn: sqlite3.Connection) -> str:
        """attributedBody only exists on newer schemas."""
        return "m.attributedBody" if self._has_column(conn, "message", "attributedBody") else "NULL"

    def _multi_party(self, conn: sqlite3.Connection) -> str:
        """SQL condition on ``c`` that holds for group chats only."""
        if self._has_column(conn, "chat", "style"):
            return f"c.style = {GROUP_CHAT_STYLE}"
        # Older schemas: a name or more than one other participant makes a group
        return (
            "(COALESCE(c.display_name, '') != '' OR "
            "(SELECT COUNT(*) FROM chat_handle_join chj WHERE chj.chat_id = c.ROWID) > 1)"
        )

    @staticmethod
    def _row_to_handle(row: sqlite3.Row) -> Handle:
        service = row["service"] or ""
        return Handle(
            handle_id=row["handle_id"],
            raw_identifier=row["raw_identifier"] or "",
            transport=transport_from_service(service),
            service=service,
            country=row["country"] or "",
        )

    @staticmethod
    def _row_to_group(row: sqlite3.Row) -> Group:
        return Group(
            group_id=row["group_id"],
            display_name=row["display_name"] or "",
            chat_identifier=row["chat_identifier"] or "",
        )

    def _row_to_message(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Message:
        is_from_self = bool(row["is_from_me"])
        sender = None
        if not is_from_self and row["handle_id"] is not None:
            handle_service = row["handle_service"] or ""
            sender = Handle(
                handle_id=row["handle_id"],
                raw_identifier=row["raw_identifier"] or "",
                transport=transport_from_service(handle_service),
                service=handle_service,
            )
        body = row["body"]
        return Message(
            message_id=row["message_id"],
            timestamp_native=self._from_store(conn, row["date"]) or 0,
            text=row["text"] or "",
            encoded_body=bytes(body) if body is not None else None,
            is_from_self=is_from_self,
            transport=transport_from_service(row["service"]),
            sender=sender,
        )
