"""Render aggregated conversations as text at three verbosity tiers.

Every renderer is a pure function of already-fetched results; the tier only
changes presentation, never what was read from the store.
"""

from __future__ import annotations

import json

from imessage_context.exceptions import QueryValidationError
from imessage_context.imessage.models import (
    ConversationResult,
    ConversationStats,
    Group,
    Handle,
    KeywordReport,
    NotFound,
    RenderedMessage,
)
from imessage_context.imessage.timestamps import to_compact

FORMATS = ("minimal", "compact", "full")

INDIVIDUAL_TEXT_BUDGET = 80
GROUP_TEXT_BUDGET = 70
COMPACT_MESSAGE_CAP = 10
ELLIPSIS = "..."


def truncate(text: str, budget: int) -> str:
    """Flatten newlines and cut to ``budget`` characters, ellipsis included."""
    flat = " ".join((text or "").split())
    if len(flat) <= budget:
        return flat
    return flat[: budget - len(ELLIPSIS)] + ELLIPSIS


def validate_format(fmt: str) -> str:
    value = (fmt or "").strip().lower()
    if value not in FORMATS:
        raise QueryValidationError(
            f"Invalid format {fmt!r}. Expected one of: {', '.join(FORMATS)}"
        )
    return value


# ----------------------------------------------------------------------
# Conversations
# ----------------------------------------------------------------------


def render(results: list[ConversationResult], fmt: str, query: str) -> str:
    """Render search results at the requested tier."""
    fmt = validate_format(fmt)
    if fmt == "minimal":
        return render_minimal(results)
    if fmt == "compact":
        return render_compact(results, query)
    return render_full(results, query)


def render_minimal(results: list[ConversationResult]) -> str:
    return "\n\n".join(_minimal_block(result) for result in results)


def render_compact(results: list[ConversationResult], query: str) -> str:
    payload = {
        "query": query,
        "conversations": [_compact_record(result) for result in results],
    }
    return json.dumps(payload, ensure_ascii=False)


def render_full(results: list[ConversationResult], query: str) -> str:
    payload = {
        "query": query,
        "conversations": [_full_record(result) for result in results],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def render_conversation(result: ConversationResult, fmt: str, days_back: int | float) -> str:
    """A single conversation, as returned by read_conversation."""
    fmt = validate_format(fmt)
    if fmt == "minimal":
        return _minimal_block(result)
    if fmt == "compact":
        record = _compact_record(result)
        record["period_days"] = days_back
        return json.dumps(record, ensure_ascii=False)
    record = _full_record(result)
    record["period_days"] = days_back
    return json.dumps(record, indent=2, ensure_ascii=False)


def _header(result: ConversationResult) -> str:
    count = len(result.messages)
    if result.is_group:
        return f"📱 {result.label} ({count} msgs)"
    return f"👤 {result.label} ({count} msgs, {result.handle_count} handles)"


def _minimal_line(message: RenderedMessage, budget: int) -> str:
    when = to_compact(message.timestamp_native)
    return f"{when} {message.sender_label}: {truncate(message.resolved_text, budget)}"


def _minimal_block(result: ConversationResult) -> str:
    budget = GROUP_TEXT_BUDGET if result.is_group else INDIVIDUAL_TEXT_BUDGET
    lines = [_header(result)]
    lines.extend(_minimal_line(m, budget) for m in result.messages)
    return "\n".join(lines)


def _compact_record(result: ConversationResult) -> dict:
    record: dict = {"type": result.kind, "name": result.label}
    if not result.is_group:
        record["handles"] = result.handle_count
    record["count"] = len(result.messages)
    record["messages"] = [
        {"date": m.timestamp_readable, "from": m.sender_label, "text": m.resolved_text}
        for m in result.messages[:COMPACT_MESSAGE_CAP]
    ]
    return record


def _full_record(result: ConversationResult) -> dict:
    subject = result.subject
    if isinstance(subject, Group):
        record = {
            "type": result.kind,
            "name": result.label,
            "id": f"group:{subject.group_id}",
            "identifier": subject.chat_identifier,
            "handle_count": result.handle_count,
        }
    else:
        record = {
            "type": result.kind,
            "name": result.label,
            "identifier": subject.canonical_key,
            "handle_count": result.handle_count,
            "handle_ids": sorted(subject.handle_ids),
        }
    record["count"] = len(result.messages)
    record["messages"] = [
        {
            "date": m.timestamp_readable,
            "from": m.sender_label,
            "text": m.resolved_text,
            "transport": m.transport,
            "is_from_me": m.is_from_self,
        }
        for m in result.messages
    ]
    return record


# ----------------------------------------------------------------------
# Other tool outputs
# ----------------------------------------------------------------------


def render_not_found(outcome: NotFound) -> str:
    return outcome.reason


def render_stats(stats: ConversationStats) -> str:
    """One summary line, then per-day or per-participant counts."""
    line = f"{stats.label} - {stats.total} msgs (↑{stats.sent} ↓{stats.received})"
    if stats.kind == "group":
        line += f" {stats.handle_count} people"
    lines = [line]
    if stats.first_message:
        lines.append(f"first: {stats.first_message} last: {stats.last_message}")
    for day in stats.daily:
        lines.append(f"{day.date}: {day.total} (↑{day.sent} ↓{day.received})")
    for participant in stats.participants:
        lines.append(f"{participant.label}: {participant.count}")
    return "\n".join(lines)


def render_handles(query: str, handles: list[Handle], names: dict[str, str] | None = None) -> str:
    names = names or {}
    payload = {
        "query": query,
        "contacts_found": len(handles),
        "contacts": [
            {
                "handle_id": h.handle_id,
                "identifier": h.raw_identifier,
                "service": h.service,
                "transport": h.transport,
                "country": h.country,
                "name": names.get(h.raw_identifier, ""),
            }
            for h in handles
        ],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def render_keyword_report(report: KeywordReport) -> str:
    payload: dict = {
        "identifier": report.label,
        "analysis_type": "sentiment_by_date" if report.group_by_date else "all_hostile_messages",
        "keywords_searched": report.keywords,
        "period_days": report.days_back,
        "total_hostile_messages": report.total_matches,
    }
    if report.group_by_date:
        payload["days_with_hostile_messages"] = len(report.days)
        payload["daily_breakdown"] = [
            {
                "date": day.date,
                "hostile_message_count": day.count,
                "sample_messages": day.samples,
            }
            for day in report.days
        ]
    else:
        payload["messages"] = [
            {"date": m.timestamp_readable, "text": m.resolved_text, "from": m.sender_label}
            for m in report.messages
        ]
    return json.dumps(payload, indent=2, ensure_ascii=False)
