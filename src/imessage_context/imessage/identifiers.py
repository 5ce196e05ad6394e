"""Turn free-form identifiers into search keys and request targets."""

from __future__ import annotations

import re
from dataclasses import dataclass

from imessage_context.imessage.models import GroupTarget, IndividualTarget, Target

GROUP_PREFIX = "group:"

_NON_DIGIT = re.compile(r"\D")
_NAME_BREAKERS = set("@+-()")


@dataclass(frozen=True)
class SearchKeys:
    """Search keys derived from one identifier."""

    exact: str
    digits_only: str
    looks_like_name: bool

    def patterns(self) -> list[str]:
        """Substrings to look for in a handle's raw identifier."""
        candidates = [self.exact]
        if self.digits_only:
            candidates += [self.digits_only, f"+{self.digits_only}"]
        patterns: list[str] = []
        for candidate in candidates:
            if candidate and candidate not in patterns:
                patterns.append(candidate)
        return patterns


def digits_only(value: str) -> str:
    return _NON_DIGIT.sub("", value or "")


def normalize(value: str) -> SearchKeys:
    """Derive the exact, digits-only and name-likeness keys for an identifier."""
    exact = (value or "").strip()
    looks_like_name = bool(exact) and not any(
        ch in _NAME_BREAKERS or ch.isdigit() for ch in exact
    )
    return SearchKeys(
        exact=exact,
        digits_only=digits_only(exact),
        looks_like_name=looks_like_name,
    )


def parse_target(identifier: str) -> Target:
    """Split ``group:<id>`` references from individual identifiers."""
    value = (identifier or "").strip()
    if value.lower().startswith(GROUP_PREFIX):
        raw = value[len(GROUP_PREFIX):].strip()
        try:
            return GroupTarget(group_id=int(raw), raw=raw)
        except ValueError:
            return GroupTarget(group_id=None, raw=raw)
    return IndividualTarget(identifier=value)


def format_identifier(identifier: str) -> str:
    """Human-friendly fallback label for a raw phone number or email."""
    if not identifier:
        return "Unknown"
    digits = digits_only(identifier)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    if "@" in identifier:
        return identifier.split("@", 1)[0]
    return identifier
