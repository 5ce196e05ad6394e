"""The five query operations, each returning renderable text and never raising."""

from __future__ import annotations

import functools
import logging

from imessage_context.contacts.reader import AddressBookReader
from imessage_context.exceptions import IMessageContextError, QueryValidationError
from imessage_context.imessage import formatter
from imessage_context.imessage.aggregator import ConversationAggregator
from imessage_context.imessage.body import BodyDecoder
from imessage_context.imessage.identifiers import parse_target
from imessage_context.imessage.keywords import KeywordScanner
from imessage_context.imessage.models import NotFound
from imessage_context.imessage.names import ContactNameResolver, NameCache
from imessage_context.imessage.reader import ChatDBReader

logger = logging.getLogger(__name__)


def _text_response(fn):
    """Fold every failure into a single ``Error: ...`` line."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs) -> str:
        try:
            return fn(*args, **kwargs)
        except IMessageContextError as e:
            logger.warning(f"{fn.__name__} failed: {e}")
            return f"Error: {e}"
        except Exception as e:
            logger.exception(f"{fn.__name__} crashed")
            return f"Error: {type(e).__name__}: {e}"

    return wrapper


def _require_text(value: str, name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise QueryValidationError(f"{name} is required")
    return value


def _validate_window(days_back: int | float, limit: int | None = None) -> None:
    if days_back is None or days_back < 0:
        raise QueryValidationError(f"days_back must be >= 0, got {days_back}")
    if limit is not None and limit < 1:
        raise QueryValidationError(f"limit must be >= 1, got {limit}")


class MessageTools:
    """Query surface over chat.db and the Contacts store.

    Args:
        reader: chat.db reader; defaults to the standard Messages location.
        contacts: AddressBook reader; defaults to the standard AddressBook location.
        name_cache: Process-lifetime name cache shared across calls.
        decoder: attributedBody decoder override.
    """

    def __init__(
        self,
        reader: ChatDBReader | None = None,
        contacts: AddressBookReader | None = None,
        name_cache: NameCache | None = None,
        decoder: BodyDecoder | None = None,
    ):
        self.reader = reader or ChatDBReader()
        self.names = ContactNameResolver(
            contacts if contacts is not None else AddressBookReader(),
            cache=name_cache,
        )
        self.aggregator = ConversationAggregator(self.reader, self.names, decoder=decoder)
        self.scanner = KeywordScanner(self.aggregator)

    @_text_response
    def search_and_read(
        self,
        query: str,
        include_groups: bool = True,
        limit: int = 30,
        days_back: int | float = 30,
        format: str = "compact",
    ) -> str:
        """Find contacts and groups matching ``query`` and show their recent messages."""
        query = _require_text(query, "query")
        _validate_window(days_back, limit)
        fmt = formatter.validate_format(format)

        outcome = self.aggregator.aggregate(query, include_groups, limit, days_back)
        if isinstance(outcome, NotFound):
            return formatter.render_not_found(outcome)
        return formatter.render(outcome, fmt, query)

    @_text_response
    def search_contacts(self, query: str) -> str:
        """Raw handles whose identifier matches ``query``."""
        query = _require_text(query, "query")
        handles = self.reader.find_handles(query)
        if not handles:
            return f"No contacts found for: {query}"
        names = {h.raw_identifier: self.names.resolve(h.raw_identifier) for h in handles}
        return formatter.render_handles(query, handles, names)

    @_text_response
    def read_conversation(
        self,
        identifier: str,
        limit: int = 30,
        days_back: int | float = 30,
        include_sent: bool = True,
        format: str = "minimal",
    ) -> str:
        """One conversation by phone, email, name or ``group:<id>``."""
        identifier = _require_text(identifier, "identifier")
        _validate_window(days_back, limit)
        fmt = formatter.validate_format(format)

        outcome = self.aggregator.read(parse_target(identifier), limit, days_back, include_sent)
        if isinstance(outcome, NotFound):
            return formatter.render_not_found(outcome)
        return formatter.render_conversation(outcome, fmt, days_back)

    @_text_response
    def get_conversation_stats(self, identifier: str, days_back: int | float = 60) -> str:
        """Message counts for a conversation, without message bodies."""
        identifier = _require_text(identifier, "identifier")
        _validate_window(days_back)

        outcome = self.aggregator.stats(parse_target(identifier), days_back)
        if isinstance(outcome, NotFound):
            return formatter.render_not_found(outcome)
        return formatter.render_stats(outcome)

    @_text_response
    def analyze_message_sentiment(
        self,
        identifier: str,
        keywords: list[str] | None = None,
        days_back: int | float = 60,
        group_by_date: bool = True,
    ) -> str:
        """Incoming messages containing hostile (or caller-supplied) keywords."""
        identifier = _require_text(identifier, "identifier")
        _validate_window(days_back)

        outcome = self.scanner.scan(parse_target(identifier), keywords, days_back, group_by_date)
        if isinstance(outcome, NotFound):
            return formatter.render_not_found(outcome)
        return formatter.render_keyword_report(outcome)
