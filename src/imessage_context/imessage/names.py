"""Display names for raw handles, backed by the Contacts store and a process-lifetime cache."""

from __future__ import annotations

import logging
import threading

from imessage_context.contacts.reader import AddressBookReader
from imessage_context.exceptions import ContactsError
from imessage_context.imessage.identifiers import format_identifier

logger = logging.getLogger(__name__)


class NameCache:
    """Identifier -> display name. Append-only, never evicted."""

    def __init__(self):
        self._names: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, identifier: str) -> str | None:
        with self._lock:
            return self._names.get(identifier)

    def put(self, identifier: str, name: str) -> None:
        with self._lock:
            self._names[identifier] = name

    def __contains__(self, identifier: str) -> bool:
        with self._lock:
            return identifier in self._names

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)


class ContactNameResolver:
    """Resolves raw identifiers to names; never raises.

    Args:
        contacts: AddressBook reader, or None to always use the formatted fallback.
        cache: Shared name cache; a fresh one is created when omitted.
    """

    def __init__(self, contacts: AddressBookReader | None = None, cache: NameCache | None = None):
        self.contacts = contacts
        self.cache = cache if cache is not None else NameCache()

    def resolve(self, identifier: str) -> str:
        cached = self.cache.get(identifier)
        if cached is not None:
            return cached

        name = self._lookup(identifier) or format_identifier(identifier)
        self.cache.put(identifier, name)
        return name

    def search_terms(self, query: str) -> list[str]:
        """Phones and emails of contacts whose name matches ``query``."""
        if self.contacts is None:
            return []
        try:
            matches = self.contacts.search_by_name(query)
        except ContactsError as e:
            logger.warning(f"Contacts store unavailable for name search: {e}")
            return []

        terms: list[str] = []
        for contact in matches:
            for value in contact.phone_numbers + contact.email_addresses:
                if value and value not in terms:
                    terms.append(value)
        logger.debug(f"Name search {query!r} -> {len(matches)} contacts, {len(terms)} terms")
        return terms

    def _lookup(self, identifier: str) -> str | None:
        if self.contacts is None or not identifier:
            return None
        try:
            contact = self.contacts.find_by_identifier(identifier)
        except ContactsError as e:
            logger.debug(f"Contacts store unavailable, using fallback name: {e}")
            return None
        return contact.display_name if contact is not None else None
