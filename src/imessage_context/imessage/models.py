"""Data models for the iMessage module."""

from __future__ import annotations

from dataclasses import dataclass, field

TRANSPORT_SMS = "sms"
TRANSPORT_IMESSAGE = "imessage"
TRANSPORT_RCS = "rcs"
TRANSPORT_OTHER = "other"

_SERVICE_TRANSPORTS = {
    "sms": TRANSPORT_SMS,
    "imessage": TRANSPORT_IMESSAGE,
    "rcs": TRANSPORT_RCS,
}


def transport_from_service(service: str | None) -> str:
    """Map a chat.db service name ("SMS", "iMessage", "RCS") to a transport."""
    return _SERVICE_TRANSPORTS.get((service or "").strip().lower(), TRANSPORT_OTHER)


@dataclass(frozen=True)
class Handle:
    """A raw addressable endpoint from the handle table."""

    handle_id: int
    raw_identifier: str  # phone/email exactly as stored
    transport: str  # sms | imessage | rcs | other
    service: str = ""
    country: str = ""


@dataclass(frozen=True)
class CanonicalContact:
    """All handles sharing one raw identifier, collapsed into one person."""

    canonical_key: str
    handle_ids: frozenset[int]
    display_name: str


@dataclass(frozen=True)
class Group:
    """A multi-party chat from the chat table."""

    group_id: int
    display_name: str
    chat_identifier: str

    @property
    def label(self) -> str:
        return self.display_name or f"Group {self.group_id}"


@dataclass
class Message:
    """A single message row as read from chat.db."""

    message_id: int
    timestamp_native: int
    text: str
    encoded_body: bytes | None
    is_from_self: bool
    transport: str
    sender: Handle | None = None  # None when is_from_self


@dataclass
class RenderedMessage:
    """A message reshaped for output; never carries the encoded body."""

    timestamp_native: int
    timestamp_readable: str
    resolved_text: str
    sender_label: str  # "You" or a display name
    transport: str
    is_from_self: bool = False


@dataclass
class ConversationResult:
    """One conversation, individual or group, with its messages newest first."""

    kind: str  # "individual" | "group"
    subject: CanonicalContact | Group
    messages: list[RenderedMessage] = field(default_factory=list)
    handle_count: int = 0

    @property
    def label(self) -> str:
        if isinstance(self.subject, Group):
            return self.subject.label
        return self.subject.display_name

    @property
    def is_group(self) -> bool:
        return self.kind == "group"


@dataclass(frozen=True)
class NotFound:
    """Explicit "searched and found nothing" outcome."""

    identifier: str
    reason: str = "not found"


@dataclass(frozen=True)
class IndividualTarget:
    """A phone number, email or name."""

    identifier: str


@dataclass(frozen=True)
class GroupTarget:
    """A ``group:<id>`` reference; ``group_id`` is None when the suffix is not an integer."""

    group_id: int | None
    raw: str

    @property
    def is_valid(self) -> bool:
        return self.group_id is not None


Target = IndividualTarget | GroupTarget


@dataclass
class DailyCount:
    date: str
    total: int
    sent: int
    received: int


@dataclass
class ParticipantCount:
    label: str
    count: int


@dataclass
class ConversationStats:
    """Message counts for one conversation, without any message bodies."""

    kind: str  # "individual" | "group"
    label: str
    days_back: int | float
    total: int = 0
    sent: int = 0
    received: int = 0
    first_message: str = ""
    last_message: str = ""
    handle_count: int = 0
    daily: list[DailyCount] = field(default_factory=list)
    participants: list[ParticipantCount] = field(default_factory=list)


@dataclass
class KeywordDay:
    date: str
    count: int
    samples: list[str] = field(default_factory=list)  # first three matches


@dataclass
class KeywordReport:
    """Keyword scan over the incoming side of one conversation."""

    label: str
    keywords: list[str]
    days_back: int | float
    group_by_date: bool
    days: list[KeywordDay] = field(default_factory=list)
    messages: list[RenderedMessage] = field(default_factory=list)

    @property
    def total_matches(self) -> int:
        if self.group_by_date:
            return sum(day.count for day in self.days)
        return len(self.messages)
