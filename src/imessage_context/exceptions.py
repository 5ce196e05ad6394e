"""Unified exception hierarchy for imessage-context."""


class IMessageContextError(Exception):
    """Base exception for all imessage-context errors."""


# Messages store
class IMessageError(IMessageContextError):
    """Base exception for Messages store operations."""


class IMessageReadError(IMessageError):
    """The Messages database could not be opened or queried."""


# Contacts store
class ContactsError(IMessageContextError):
    """Base exception for contacts operations."""


class ContactsStoreUnavailableError(ContactsError):
    """No AddressBook database exists or none could be opened."""


class ContactResolutionError(ContactsError):
    """Failed to resolve or look up a contact."""


# Tool arguments
class QueryValidationError(IMessageContextError):
    """A tool was called with arguments it cannot act on."""
