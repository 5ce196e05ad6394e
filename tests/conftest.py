"""Shared fixtures: throwaway chat.db and AddressBook databases."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from imessage_context.imessage.timestamps import from_datetime

# NSAttributedString archived in the streamtyped format, body "Hello there"
TYPEDSTREAM_BODY = (
    b"\x04\x0bstreamtyped\x81\xe8\x03\x84\x01@\x84\x84\x84\x12NSAttributedString\x00"
    b"\x84\x84\x08NSObject\x00\x85\x92\x84\x84\x84\x08NSString\x01\x94\x84\x01+"
    b"\x0bHello there\x86\x84\x02iI\x01\x0b\x92\x84\x84\x84\x0cNSDictionary\x00\x94\x84\x01i\x01"
)

# No printable run of 3+ characters and no NSString marker
UNREADABLE_BODY = b"\x00\x01ab\x02\x03\xff\x10c\x00"

CHAT_SCHEMA = """
CREATE TABLE handle (
    ROWID INTEGER PRIMARY KEY,
    id TEXT,
    service TEXT,
    country TEXT
);
CREATE TABLE message (
    ROWID INTEGER PRIMARY KEY,
    guid TEXT,
    text TEXT,
    attributedBody BLOB,
    date INTEGER,
    is_from_me INTEGER DEFAULT 0,
    service TEXT,
    handle_id INTEGER DEFAULT 0
);
CREATE TABLE chat (
    ROWID INTEGER PRIMARY KEY,
    guid TEXT,
    chat_identifier TEXT,
    display_name TEXT,
    service_name TEXT
);
CREATE TABLE chat_message_join (
    chat_id INTEGER,
    message_id INTEGER
);
CREATE TABLE chat_handle_join (
    chat_id INTEGER,
    handle_id INTEGER
);
"""

ADDRESSBOOK_SCHEMA = """
CREATE TABLE ZABCDRECORD (
    Z_PK INTEGER PRIMARY KEY,
    ZFIRSTNAME TEXT,
    ZLASTNAME TEXT,
    ZORGANIZATION TEXT
);
CREATE TABLE ZABCDPHONENUMBER (
    Z_PK INTEGER PRIMARY KEY,
    ZOWNER INTEGER,
    ZFULLNUMBER TEXT
);
CREATE TABLE ZABCDEMAILADDRESS (
    Z_PK INTEGER PRIMARY KEY,
    ZOWNER INTEGER,
    ZADDRESS TEXT
);
"""


def native_ago(days: float = 0, hours: float = 0, minutes: float = 0) -> int:
    """Native (nanosecond, 2001 epoch) timestamp relative to now."""
    return from_datetime(
        datetime.now(timezone.utc) - timedelta(days=days, hours=hours, minutes=minutes)
    )


class ChatDB:
    """Builds a minimal chat.db with the columns the reader consumes."""

    def __init__(self, path):
        self.path = path
        self.conn = sqlite3.connect(str(path), isolation_level=None)
        self.conn.executescript(CHAT_SCHEMA)

    def add_handle(self, rowid, identifier, service="iMessage", country="us"):
        self.conn.execute(
            "INSERT INTO handle (ROWID, id, service, country) VALUES (?, ?, ?, ?)",
            (rowid, identifier, service, country),
        )
        return rowid

    def add_chat(self, rowid, chat_identifier, display_name="", handle_ids=()):
        self.conn.execute(
            "INSERT INTO chat (ROWID, guid, chat_identifier, display_name, service_name) "
            "VALUES (?, ?, ?, ?, 'iMessage')",
            (rowid, f"iMessage;+;{chat_identifier}", chat_identifier, display_name),
        )
        for handle_id in handle_ids:
            self.conn.execute("INSERT INTO chat_handle_join VALUES (?, ?)", (rowid, handle_id))
        return rowid

    def add_message(
        self,
        handle_id,
        text,
        date,
        is_from_me=False,
        service="iMessage",
        body=None,
        chat_id=None,
    ):
        cur = self.conn.execute(
            "INSERT INTO message (guid, text, attributedBody, date, is_from_me, service, handle_id) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (f"guid-{date}-{handle_id}", text, body, date, int(is_from_me), service, handle_id),
        )
        message_id = cur.lastrowid
        if chat_id is not None:
            self.conn.execute(
                "INSERT INTO chat_message_join VALUES (?, ?)", (chat_id, message_id)
            )
        return message_id

    def link(self, chat_id, message_id):
        self.conn.execute("INSERT INTO chat_message_join VALUES (?, ?)", (chat_id, message_id))

    def close(self):
        self.conn.close()


class AddressBookDB:
    """Builds one AddressBook-v22.abcddb source."""

    def __init__(self, path):
        self.path = path
        self.conn = sqlite3.connect(str(path), isolation_level=None)
        self.conn.executescript(ADDRESSBOOK_SCHEMA)

    def add_person(self, pk, first=None, last=None, organization=None, phones=(), emails=()):
        self.conn.execute(
            "INSERT INTO ZABCDRECORD VALUES (?, ?, ?, ?)", (pk, first, last, organization)
        )
        for phone in phones:
            self.conn.execute(
                "INSERT INTO ZABCDPHONENUMBER (ZOWNER, ZFULLNUMBER) VALUES (?, ?)", (pk, phone)
            )
        for email in emails:
            self.conn.execute(
                "INSERT INTO ZABCDEMAILADDRESS (ZOWNER, ZADDRESS) VALUES (?, ?)", (pk, email)
            )
        return pk

    def close(self):
        self.conn.close()


@pytest.fixture
def ago():
    return native_ago


@pytest.fixture
def chat_db(tmp_path):
    """An empty chat.db."""
    db = ChatDB(tmp_path / "chat.db")
    yield db
    db.close()


@pytest.fixture
def populated_db(chat_db):
    """chat.db with one person on three transports, an email contact, groups and a 1:1 chat.

    Handles 1-3 all carry +12484108156 (RCS, SMS, iMessage).
    """
    db = chat_db
    db.add_handle(1, "+12484108156", "RCS")
    db.add_handle(2, "+12484108156", "SMS")
    db.add_handle(3, "+12484108156", "iMessage")
    db.add_handle(4, "+13135550123", "iMessage")
    db.add_handle(5, "jane@example.com", "iMessage")
    db.add_handle(6, "+12489990000", "SMS")

    newest = db.add_message(3, "imessage newest", native_ago(minutes=10))
    db.add_message(1, "rcs hello", native_ago(hours=1), service="RCS")
    db.add_message(2, "sms reply", native_ago(hours=2), is_from_me=True, service="SMS")
    db.add_message(3, None, native_ago(hours=3), body=TYPEDSTREAM_BODY)
    db.add_message(3, "", native_ago(hours=4), body=UNREADABLE_BODY)
    db.add_message(2, "   ", native_ago(hours=5), service="SMS")
    db.add_message(2, "old message", native_ago(days=40), service="SMS")

    db.add_message(5, "You are so STUPID", native_ago(days=1))
    db.add_message(5, "I hate this", native_ago(days=2))
    db.add_message(5, "lovely weather", native_ago(days=2, minutes=5))
    db.add_message(5, "I hate mondays", native_ago(days=1, hours=1), is_from_me=True)

    db.add_message(6, "other number", native_ago(hours=6), service="SMS")

    db.add_chat(10, "chat123456", "Family Trip", handle_ids=(4, 5))
    db.add_message(4, "group hi", native_ago(minutes=30), chat_id=10)
    db.add_message(0, "group reply", native_ago(minutes=20), is_from_me=True, chat_id=10)
    db.add_message(5, "count me in", native_ago(hours=5), chat_id=10)
    db.add_message(4, "ancient plans", native_ago(days=90), chat_id=10)
    db.add_chat(11, "chat999", "", handle_ids=(4, 5))

    # one-to-one chat: its chat_identifier is the phone number itself
    db.add_chat(20, "+12484108156", "", handle_ids=(3,))
    db.link(20, newest)
    return db


@pytest.fixture
def address_book(tmp_path):
    """One AddressBook source under Sources/ with three people."""
    source_dir = tmp_path / "AddressBook" / "Sources" / "ABC-123"
    source_dir.mkdir(parents=True)
    db = AddressBookDB(source_dir / "AddressBook-v22.abcddb")
    db.add_person(1, "Alex", "Morgan", phones=["(248) 410-8156"])
    db.add_person(2, "Jane", "Doe", emails=["Jane@Example.com"])
    db.add_person(3, organization="Acme Plumbing", phones=["+1 313 555 0123"])
    yield db
    db.close()


@pytest.fixture
def typedstream_body():
    return TYPEDSTREAM_BODY


@pytest.fixture
def unreadable_body():
    return UNREADABLE_BODY
