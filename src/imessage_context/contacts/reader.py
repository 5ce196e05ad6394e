"""Read-only access to the macOS Contacts (AddressBook) SQLite databases."""

from __future__ import annotations

import logging
import os
import re
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path

from imessage_context.exceptions import ContactsStoreUnavailableError

logger = logging.getLogger(__name__)

ADDRESSBOOK_DIR = Path(
    os.environ.get(
        "ADDRESSBOOK_DIR",
        Path.home() / "Library" / "Application Support" / "AddressBook",
    )
)
ADDRESSBOOK_DB_NAME = "AddressBook-v22.abcddb"

# ZFULLNUMBER with the usual punctuation removed, for digit comparisons in SQL
_STRIPPED_NUMBER = (
    "REPLACE(REPLACE(REPLACE(REPLACE(REPLACE(REPLACE("
    "p.ZFULLNUMBER, ' ', ''), '-', ''), '(', ''), ')', ''), '.', ''), '+', '')"
)


@dataclass
class Contact:
    """A person record from the AddressBook database."""

    identifier: str
    first_name: str | None = None
    last_name: str | None = None
    organization: str | None = None
    phone_numbers: list[str] = field(default_factory=list)
    email_addresses: list[str] = field(default_factory=list)

    @property
    def display_name(self) -> str | None:
        """First and last name, else the organization."""
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.organization or None


def normalize_phone(raw: str) -> str:
    """Normalize a phone number to last 10 digits."""
    digits = re.sub(r"\D", "", raw)
    # Strip leading country code (1 for US/CA)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    return digits[-10:] if len(digits) >= 10 else digits


def normalize_email(raw: str) -> str:
    """Normalize an email address."""
    return raw.strip().lower()


def find_addressbook_dbs(base_dir: Path | None = None) -> list[Path]:
    """Top-level AddressBook database plus one per account under Sources/."""
    base = base_dir or ADDRESSBOOK_DIR
    paths: list[Path] = []
    root_db = base / ADDRESSBOOK_DB_NAME
    if root_db.exists():
        paths.append(root_db)
    sources = base / "Sources"
    if sources.is_dir():
        paths.extend(sorted(sources.glob(f"*/{ADDRESSBOOK_DB_NAME}")))
    return paths


class AddressBookReader:
    """Looks people up by name, phone number or email across AddressBook sources."""

    def __init__(self, db_paths: list[Path] | None = None):
        self._db_paths = list(db_paths) if db_paths is not None else None

    @property
    def db_paths(self) -> list[Path]:
        if self._db_paths is not None:
            return [p for p in self._db_paths if p.exists()]
        return find_addressbook_dbs()

    def search_by_name(self, query: str, limit: int = 10) -> list[Contact]:
        """Contacts whose first, last or full name contains ``query``."""
        query = (query or "").strip()
        if not query:
            return []
        pattern = f"%{query}%"
        contacts: list[Contact] = []
        for conn in self._connections():
            try:
                rows = conn.execute(
                    """
                    SELECT Z_PK, ZFIRSTNAME, ZLASTNAME, ZORGANIZATION
                    FROM ZABCDRECORD
                    WHERE ZFIRSTNAME LIKE ?
                       OR ZLASTNAME LIKE ?
                       OR (COALESCE(ZFIRSTNAME, '') || ' ' || COALESCE(ZLASTNAME, '')) LIKE ?
                    ORDER BY ZLASTNAME, ZFIRSTNAME
                    LIMIT ?
                    """,
                    (pattern, pattern, pattern, limit),
                ).fetchall()
                contacts.extend(self._build_contact(conn, row) for row in rows)
            except sqlite3.Error as e:
                logger.warning(f"AddressBook name search failed: {e}")
            finally:
                conn.close()
        return contacts[:limit]

    def find_by_identifier(self, identifier: str) -> Contact | None:
        """The person owning a phone number or email, if any source knows it."""
        identifier = (identifier or "").strip()
        if not identifier:
            return None
        for conn in self._connections():
            try:
                if "@" in identifier:
                    row = self._find_by_email(conn, identifier)
                else:
                    row = self._find_by_phone(conn, identifier)
                if row is not None:
                    return self._build_contact(conn, row)
            except sqlite3.Error as e:
                logger.warning(f"AddressBook identifier lookup failed: {e}")
            finally:
                conn.close()
        return None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _connections(self):
        """Yield read-only connections, one per readable source."""
        paths = self.db_paths
        if not paths:
            raise ContactsStoreUnavailableError(
                f"No AddressBook database found under {ADDRESSBOOK_DIR}."
            )
        opened = 0
        for path in paths:
            try:
                conn = sqlite3.connect(f"file:{path}?mode=ro", uri=True)
                conn.row_factory = sqlite3.Row
            except sqlite3.Error as e:
                logger.warning(f"Skipping unreadable AddressBook source {path}: {e}")
                continue
            opened += 1
            yield conn
        if not opened:
            raise ContactsStoreUnavailableError(
                "Cannot open any AddressBook database. "
                "Grant Full Disk Access or Contacts permission to your terminal application."
            )

    @staticmethod
    def _find_by_email(conn: sqlite3.Connection, email: str) -> sqlite3.Row | None:
        return conn.execute(
            """
            SELECT r.Z_PK, r.ZFIRSTNAME, r.ZLASTNAME, r.ZORGANIZATION
            FROM ZABCDRECORD r
            JOIN ZABCDEMAILADDRESS e ON e.ZOWNER = r.Z_PK
            WHERE e.ZADDRESS = ? COLLATE NOCASE
            LIMIT 1
            """,
            (normalize_email(email),),
        ).fetchone()

    @staticmethod
    def _find_by_phone(conn: sqlite3.Connection, phone: str) -> sqlite3.Row | None:
        digits = re.sub(r"\D", "", phone)
        if not digits:
            return None
        # Suffix matching on the last ten digits only for full numbers; short codes
        # and partial numbers must match the stored number exactly.
        if len(digits) >= 10:
            stripped_match, stripped_param = f"{_STRIPPED_NUMBER} LIKE ?", f"%{normalize_phone(digits)}"
        else:
            stripped_match, stripped_param = f"{_STRIPPED_NUMBER} = ?", digits
        return conn.execute(
            f"""
            SELECT r.Z_PK, r.ZFIRSTNAME, r.ZLASTNAME, r.ZORGANIZATION
            FROM ZABCDRECORD r
            JOIN ZABCDPHONENUMBER p ON p.ZOWNER = r.Z_PK
            WHERE p.ZFULLNUMBER IN (?, ?, ?)
               OR {stripped_match}
            LIMIT 1
            """,
            (phone, digits, f"+{digits}", stripped_param),
        ).fetchone()

    @staticmethod
    def _build_contact(conn: sqlite3.Connection, row: sqlite3.Row) -> Contact:
        pk = row["Z_PK"]
        first = row["ZFIRSTNAME"] or ""
        last = row["ZLASTNAME"] or ""
        phones = [
            r["ZFULLNUMBER"]
            for r in conn.execute(
                "SELECT ZFULLNUMBER FROM ZABCDPHONENUMBER WHERE ZOWNER = ?", (pk,)
            ).fetchall()
            if r["ZFULLNUMBER"]
        ]
        emails = [
            r["ZADDRESS"]
            for r in conn.execute(
                "SELECT ZADDRESS FROM ZABCDEMAILADDRESS WHERE ZOWNER = ?", (pk,)
            ).fetchall()
            if r["ZADDRESS"]
        ]
        return Contact(
            identifier=str(pk),
            first_name=first or None,
            last_name=last or None,
            organization=row["ZORGANIZATION"] or None,
            phone_numbers=phones,
            email_addresses=emails,
        )
