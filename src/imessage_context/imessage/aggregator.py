"""Identity resolution and conversation aggregation over chat.db.

Handles are grouped by their raw identifier (the canonical key) before any
message is fetched, so a person reachable over SMS, iMessage and RCS, or matched
by several search terms, still yields exactly one conversation.
"""

from __future__ import annotations

import logging

from imessage_context.imessage.body import BodyDecoder, default_decoder, resolve_text
from imessage_context.imessage.identifiers import normalize
from imessage_context.imessage.models import (
    CanonicalContact,
    ConversationResult,
    ConversationStats,
    GroupTarget,
    IndividualTarget,
    Message,
    NotFound,
    ParticipantCount,
    RenderedMessage,
    Target,
)
from imessage_context.imessage.names import ContactNameResolver
from imessage_context.imessage.reader import ChatDBReader
from imessage_context.imessage.timestamps import threshold, to_readable

logger = logging.getLogger(__name__)

SELF_LABEL = "You"


class ConversationAggregator:
    """Builds ConversationResults from raw handles and groups.

    Args:
        reader: chat.db reader.
        names: Display-name resolver (owns the process-lifetime name cache).
        decoder: attributedBody decoder; defaults to typedstream + printable-run fallback.
        group_candidates: Max groups matched per search.
    """

    def __init__(
        self,
        reader: ChatDBReader,
        names: ContactNameResolver,
        decoder: BodyDecoder | None = None,
        group_candidates: int = 3,
    ):
        self.reader = reader
        self.names = names
        self.decoder = decoder or default_decoder()
        self.group_candidates = group_candidates

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search_terms(self, query: str) -> list[str]:
        """The query plus phones/emails of contacts whose name matches it."""
        keys = normalize(query)
        terms = [keys.exact] if keys.exact else []
        if keys.looks_like_name:
            for term in self.names.search_terms(keys.exact):
                if term not in terms:
                    terms.append(term)
        return terms

    def group_handles(self, terms: list[str]) -> dict[str, set[int]]:
        """Canonical key (raw identifier) -> distinct handle ids, in first-seen order."""
        grouped: dict[str, set[int]] = {}
        for term in terms:
            for handle in self.reader.find_handles(term):
                grouped.setdefault(handle.raw_identifier, set()).add(handle.handle_id)
        return grouped

    def aggregate(
        self,
        query: str,
        include_groups: bool = True,
        limit: int = 30,
        days_back: int | float = 30,
    ) -> list[ConversationResult] | NotFound:
        """One result per canonical contact plus one per matching group."""
        since = threshold(days_back)
        results: list[ConversationResult] = []

        grouped = self.group_handles(self.search_terms(query))
        for canonical_key, handle_ids in grouped.items():
            messages = self.reader.fetch_handle_messages(handle_ids, since, limit)
            if not messages:
                continue
            display_name = self.names.resolve(canonical_key)
            contact = CanonicalContact(
                canonical_key=canonical_key,
                handle_ids=frozenset(handle_ids),
                display_name=display_name,
            )
            results.append(
                ConversationResult(
                    kind="individual",
                    subject=contact,
                    messages=[self._render(m, display_name) for m in messages],
                    handle_count=len(handle_ids),
                )
            )

        if include_groups:
            for group in self.reader.find_groups(query, limit=self.group_candidates):
                messages = self.reader.fetch_group_messages(group.group_id, since, limit)
                if not messages:
                    continue
                results.append(self._group_result(group, messages))

        logger.info(
            f"search {query!r}: {len(grouped)} canonical contacts, {len(results)} conversations"
        )
        if not results:
            return NotFound(query, f"No conversations found for: {query}")
        return results

    # ------------------------------------------------------------------
    # Single conversation
    # ------------------------------------------------------------------

    def read(
        self,
        target: Target,
        limit: int = 30,
        days_back: int | float = 30,
        include_sent: bool = True,
    ) -> ConversationResult | NotFound:
        """Every handle behind the identifier merged into one conversation."""
        since = threshold(days_back)

        if isinstance(target, GroupTarget):
            group = self._resolve_group(target)
            if isinstance(group, NotFound):
                return group
            messages = self.reader.fetch_group_messages(
                group.group_id, since, limit, include_sent=include_sent
            )
            return self._group_result(group, messages)

        grouped = self.group_handles(self.search_terms(target.identifier))
        if not grouped:
            return NotFound(target.identifier, f"No contacts found for: {target.identifier}")

        handle_ids = set().union(*grouped.values())
        messages = self.reader.fetch_handle_messages(
            handle_ids, since, limit, include_sent=include_sent
        )
        contact = CanonicalContact(
            canonical_key=next(iter(grouped)) if len(grouped) == 1 else target.identifier,
            handle_ids=frozenset(handle_ids),
            display_name=self._label_for(target, grouped),
        )
        return ConversationResult(
            kind="individual",
            subject=contact,
            messages=[self._render(m, self._sender_name(m)) for m in messages],
            handle_count=len(handle_ids),
        )

    def stats(self, target: Target, days_back: int | float = 30) -> ConversationStats | NotFound:
        """Counts only; no message bodies are read."""
        since = threshold(days_back)

        if isinstance(target, GroupTarget):
            group = self._resolve_group(target)
            if isinstance(group, NotFound):
                return group
            totals = self.reader.group_stats(group.group_id, since)
            participants = [
                ParticipantCount(
                    label=self.names.resolve(sender) if sender else SELF_LABEL,
                    count=count,
                )
                for sender, count in self.reader.group_participant_counts(group.group_id, since)
            ]
            return ConversationStats(
                kind="group",
                label=group.label,
                days_back=days_back,
                total=totals["total"],
                sent=totals["sent"],
                received=totals["received"],
                first_message=to_readable(totals["first"]),
                last_message=to_readable(totals["last"]),
                handle_count=totals["participants"],
                participants=participants,
            )

        grouped = self.group_handles(self.search_terms(target.identifier))
        if not grouped:
            return NotFound(target.identifier, f"No contacts found for: {target.identifier}")
        handle_ids = set().union(*grouped.values())
        totals = self.reader.handle_stats(handle_ids, since)
        return ConversationStats(
            kind="individual",
            label=self._label_for(target, grouped),
            days_back=days_back,
            total=totals["total"],
            sent=totals["sent"],
            received=totals["received"],
            first_message=to_readable(totals["first"]),
            last_message=to_readable(totals["last"]),
            handle_count=len(handle_ids),
            daily=self.reader.handle_daily_counts(handle_ids, since),
        )

    def collect_incoming_text(
        self,
        target: Target,
        days_back: int | float = 30,
        keywords: list[str] | None = None,
    ) -> tuple[str, list[RenderedMessage]] | NotFound:
        """Every non-self message with plain text in the window, newest first.

        With ``keywords``, only messages containing one of them are returned.
        """
        since = threshold(days_back)

        if isinstance(target, GroupTarget):
            group = self._resolve_group(target)
            if isinstance(group, NotFound):
                return group
            messages = self.reader.fetch_group_messages(
                group.group_id, since, None, include_sent=False, text_only=True, keywords=keywords
            )
            return group.label, [self._render(m, self._sender_name(m)) for m in messages]

        grouped = self.group_handles(self.search_terms(target.identifier))
        if not grouped:
            return NotFound(target.identifier, f"No contacts found for: {target.identifier}")
        handle_ids = set().union(*grouped.values())
        messages = self.reader.fetch_handle_messages(
            handle_ids, since, None, include_sent=False, text_only=True, keywords=keywords
        )
        label = self._label_for(target, grouped)
        return label, [self._render(m, self._sender_name(m)) for m in messages]

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _resolve_group(self, target: GroupTarget):
        if not target.is_valid:
            return NotFound(f"group:{target.raw}", f"Invalid group id: group:{target.raw}")
        group = self.reader.get_group(target.group_id)
        if group is None:
            return NotFound(f"group:{target.group_id}", f"Group not found: group:{target.group_id}")
        return group

    def _group_result(self, group, messages: list[Message]) -> ConversationResult:
        senders = {m.sender.raw_identifier for m in messages if m.sender is not None}
        return ConversationResult(
            kind="group",
            subject=group,
            messages=[self._render(m, self._sender_name(m)) for m in messages],
            handle_count=len(senders),
        )

    def _label_for(self, target: IndividualTarget, grouped: dict[str, set[int]]) -> str:
        names = {self.names.resolve(key) for key in grouped}
        if len(names) == 1:
            return names.pop()
        return target.identifier

    def _sender_name(self, message: Message) -> str:
        if message.sender is None:
            return "Unknown"
        return self.names.resolve(message.sender.raw_identifier)

    def _render(self, message: Message, sender_label: str) -> RenderedMessage:
        return RenderedMessage(
            timestamp_native=message.timestamp_native,
            timestamp_readable=to_readable(message.timestamp_native),
            resolved_text=resolve_text(message.text, message.encoded_body, self.decoder),
            sender_label=SELF_LABEL if message.is_from_self else sender_label,
            transport=message.transport,
            is_from_self=message.is_from_self,
        )
