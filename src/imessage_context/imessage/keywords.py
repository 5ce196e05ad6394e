"""Keyword scanning over the incoming side of a conversation."""

from __future__ import annotations

import logging

from imessage_context.imessage.aggregator import ConversationAggregator
from imessage_context.imessage.models import KeywordDay, KeywordReport, NotFound, Target
from imessage_context.imessage.timestamps import to_date

logger = logging.getLogger(__name__)

DEFAULT_KEYWORDS = [
    "fuck", "shit", "hate", "angry", "mad", "stupid", "idiot", "asshole", "bitch",
    "damn", "pissed", "annoyed", "irritated", "disgusted", "sick of", "tired of",
    "done with", "over it", "shut up", "leave me alone", "cruel", "attacking",
    "breaking point", "hell", "horrible", "terrible", "awful", "worst", "pathetic",
    "loser", "useless", "worthless", "disappointed", "betrayed", "hurt", "pain",
]

SAMPLES_PER_DAY = 3


def prepare_keywords(keywords: list[str] | None) -> list[str]:
    """Lower-case, drop blanks and duplicates; None or [] means the default list."""
    source = keywords or DEFAULT_KEYWORDS
    prepared: list[str] = []
    for keyword in source:
        value = (keyword or "").strip().lower()
        if value and value not in prepared:
            prepared.append(value)
    return prepared


def matches(text: str, keywords: list[str]) -> bool:
    """True when any (already lower-cased) keyword occurs in ``text``."""
    if not text or not text.strip():
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in keywords)


class KeywordScanner:
    """Finds incoming messages containing any of a set of keywords."""

    def __init__(self, aggregator: ConversationAggregator):
        self.aggregator = aggregator

    def scan(
        self,
        target: Target,
        keywords: list[str] | None = None,
        days_back: int | float = 30,
        group_by_date: bool = True,
    ) -> KeywordReport | NotFound:
        terms = prepare_keywords(keywords)
        # The store narrows rows by keyword; matches() applies the same test to the resolved text
        collected = self.aggregator.collect_incoming_text(target, days_back, keywords=terms)
        if isinstance(collected, NotFound):
            return collected
        label, messages = collected

        hits = [m for m in messages if not m.is_from_self and matches(m.resolved_text, terms)]
        logger.info(f"keyword scan {label!r}: {len(hits)} matches in the last {days_back} days")

        report = KeywordReport(
            label=label,
            keywords=terms,
            days_back=days_back,
            group_by_date=group_by_date,
        )
        if not group_by_date:
            report.messages = hits
            return report

        by_day: dict[str, KeywordDay] = {}
        for message in hits:  # newest first, so days come out newest first too
            day = to_date(message.timestamp_native)
            entry = by_day.setdefault(day, KeywordDay(date=day, count=0))
            entry.count += 1
            if len(entry.samples) < SAMPLES_PER_DAY:
                entry.samples.append(message.resolved_text)
        report.days = list(by_day.values())
        return report
