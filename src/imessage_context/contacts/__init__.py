"""macOS Contacts (AddressBook) lookups."""

from imessage_context.contacts.reader import (
    AddressBookReader,
    Contact,
    find_addressbook_dbs,
    normalize_email,
    normalize_phone,
)

__all__ = [
    "AddressBookReader",
    "Contact",
    "find_addressbook_dbs",
    "normalize_phone",
    "normalize_email",
]
