"""Tests for the five query operations."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from imessage_context.contacts.reader import AddressBookReader
from imessage_context.imessage.names import NameCache
from imessage_context.imessage.reader import ChatDBReader
from imessage_context.imessage.tools import MessageTools


@pytest.fixture
def tools(populated_db):
    return MessageTools(
        reader=ChatDBReader(db_path=populated_db.path),
        contacts=AddressBookReader(db_paths=[]),
    )


@pytest.fixture
def named_tools(populated_db, address_book):
    return MessageTools(
        reader=ChatDBReader(db_path=populated_db.path),
        contacts=AddressBookReader(db_paths=[address_book.path]),
    )


def test_search_and_read_compact(tools):
    payload = json.loads(tools.search_and_read("4108156"))
    assert payload["query"] == "4108156"
    assert len(payload["conversations"]) == 1
    conversation = payload["conversations"][0]
    assert conversation["handles"] == 3
    assert conversation["messages"][0]["text"] == "imessage newest"


def test_search_and_read_minimal(named_tools):
    text = named_tools.search_and_read("Alex", format="minimal")
    assert text.splitlines()[0] == "👤 Alex Morgan (5 msgs, 3 handles)"


def test_search_and_read_full_includes_groups(tools):
    payload = json.loads(tools.search_and_read("Family", format="full"))
    assert payload["conversations"][0]["id"] == "group:10"


def test_search_and_read_nothing_in_window(tools):
    assert tools.search_and_read("4108156", days_back=0) == "No conversations found for: 4108156"


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"query": ""}, "Error: query is required"),
        ({"query": "x", "days_back": -1}, "Error: days_back must be >= 0, got -1"),
        ({"query": "x", "limit": 0}, "Error: limit must be >= 1, got 0"),
    ],
)
def test_search_and_read_validation(tools, kwargs, message):
    assert tools.search_and_read(**kwargs) == message


def test_search_and_read_bad_format(tools):
    assert tools.search_and_read("4108156", format="xml").startswith("Error: Invalid format")


def test_search_contacts(named_tools):
    payload = json.loads(named_tools.search_contacts("4108156"))
    assert payload["contacts_found"] == 3
    assert {c["transport"] for c in payload["contacts"]} == {"rcs", "sms", "imessage"}
    assert {c["name"] for c in payload["contacts"]} == {"Alex Morgan"}


def test_search_contacts_none(tools):
    assert tools.search_contacts("+19998887777") == "No contacts found for: +19998887777"


def test_read_conversation_minimal(tools):
    lines = tools.read_conversation("+12484108156").splitlines()
    assert lines[0] == "👤 (248) 410-8156 (5 msgs, 3 handles)"
    assert lines[1].endswith("(248) 410-8156: imessage newest")
    assert any(line.endswith("You: sms reply") for line in lines)
    assert any(line.endswith(": [No text content]") for line in lines)


def test_read_conversation_compact(tools):
    record = json.loads(tools.read_conversation("group:10", format="compact", days_back=7))
    assert record["type"] == "group"
    assert record["name"] == "Family Trip"
    assert record["period_days"] == 7


def test_read_conversation_not_found(tools):
    assert tools.read_conversation("group:999999") == "Group not found: group:999999"
    assert tools.read_conversation("group:abc") == "Invalid group id: group:abc"
    assert tools.read_conversation("nobody@nowhere.test") == (
        "No contacts found for: nobody@nowhere.test"
    )


def test_get_conversation_stats(tools):
    lines = tools.get_conversation_stats("+12484108156").splitlines()
    assert lines[0] == "(248) 410-8156 - 7 msgs (↑1 ↓6)"
    assert lines[1].startswith("first: ")


def test_get_conversation_stats_group(tools):
    first = tools.get_conversation_stats("group:10").splitlines()[0]
    assert first == "Family Trip - 3 msgs (↑1 ↓2) 2 people"


def test_analyze_message_sentiment(named_tools):
    payload = json.loads(named_tools.analyze_message_sentiment("jane@example.com"))
    assert payload["identifier"] == "Jane Doe"
    assert payload["total_hostile_messages"] == 2
    assert payload["days_with_hostile_messages"] == 2


def test_analyze_message_sentiment_flat(tools):
    payload = json.loads(
        tools.analyze_message_sentiment("jane@example.com", keywords=["hate"], group_by_date=False)
    )
    assert payload["keywords_searched"] == ["hate"]
    assert [m["text"] for m in payload["messages"]] == ["I hate this"]


def test_missing_database_is_reported():
    tools = MessageTools(
        reader=ChatDBReader(db_path=Path("/nonexistent/chat.db")),
        contacts=AddressBookReader(db_paths=[]),
    )
    result = tools.search_and_read("4108156")
    assert result.startswith("Error: Messages database not found")


def test_unexpected_errors_are_reported():
    reader = MagicMock()
    reader.find_handles.side_effect = RuntimeError("boom")
    tools = MessageTools(reader=reader, contacts=AddressBookReader(db_paths=[]))
    assert tools.search_contacts("x") == "Error: RuntimeError: boom"


def test_name_cache_shared_across_calls(populated_db, address_book):
    cache = NameCache()
    tools = MessageTools(
        reader=ChatDBReader(db_path=populated_db.path),
        contacts=AddressBookReader(db_paths=[address_book.path]),
        name_cache=cache,
    )
    tools.read_conversation("+12484108156")
    assert cache.get("+12484108156") == "Alex Morgan"


def test_get_conversation_stats_empty_window(tools):
    assert tools.get_conversation_stats("+12484108156", days_back=0) == (
        "(248) 410-8156 - 0 msgs (↑0 ↓0)"
    )
