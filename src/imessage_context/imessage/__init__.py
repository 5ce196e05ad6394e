"""iMessage conversation queries (macOS chat.db, read-only)."""

from imessage_context.imessage.aggregator import ConversationAggregator
from imessage_context.imessage.body import (
    BodyDecoder,
    FallbackDecoder,
    PrintableRunDecoder,
    TypedStreamDecoder,
    decode,
)
from imessage_context.imessage.identifiers import SearchKeys, normalize, parse_target
from imessage_context.imessage.keywords import DEFAULT_KEYWORDS, KeywordScanner
from imessage_context.imessage.models import (
    CanonicalContact,
    ConversationResult,
    ConversationStats,
    Group,
    GroupTarget,
    Handle,
    IndividualTarget,
    KeywordReport,
    Message,
    NotFound,
    RenderedMessage,
)
from imessage_context.imessage.names import ContactNameResolver, NameCache
from imessage_context.imessage.reader import ChatDBReader
from imessage_context.imessage.tools import MessageTools

__all__ = [
    "ChatDBReader",
    "ConversationAggregator",
    "ContactNameResolver",
    "NameCache",
    "KeywordScanner",
    "DEFAULT_KEYWORDS",
    "MessageTools",
    "BodyDecoder",
    "PrintableRunDecoder",
    "TypedStreamDecoder",
    "FallbackDecoder",
    "decode",
    "SearchKeys",
    "normalize",
    "parse_target",
    "Handle",
    "CanonicalContact",
    "Group",
    "Message",
    "RenderedMessage",
    "ConversationResult",
    "ConversationStats",
    "KeywordReport",
    "NotFound",
    "IndividualTarget",
    "GroupTarget",
]
