"""Best-effort plain text recovery from the attributedBody column.

Newer macOS versions leave ``message.text`` empty and keep the body only in
``attributedBody``, an NSAttributedString serialized with NSArchiver's
"streamtyped" format. Neither decoder here is a full parser of that format.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

NO_TEXT_SENTINEL = "[No text content]"

_PRINTABLE_RUN = re.compile(r"[\x20-\x7E]{3,}")


class BodyDecoder(ABC):
    """Extracts plain text from an encoded message body."""

    @abstractmethod
    def decode(self, encoded_body: bytes | None) -> str | None:
        """Return the recovered text, or None. Never raises."""
        ...


class PrintableRunDecoder(BodyDecoder):
    """Joins every run of 3+ printable ASCII characters with single spaces.

    Keeps archive class names ("NSString", "streamtyped") alongside the text and
    drops text split by control bytes.
    """

    def decode(self, encoded_body: bytes | None) -> str | None:
        if not encoded_body:
            return None
        try:
            text = bytes(encoded_body).decode("utf-8", errors="replace")
            runs = _PRINTABLE_RUN.findall(text)
        except Exception as e:
            logger.debug(f"Printable-run decode failed: {e}")
            return None
        joined = " ".join(runs).strip()
        return joined or None


class TypedStreamDecoder(BodyDecoder):
    """Reads the length-prefixed string that follows the NSString class marker.

    Layout after the marker: a few class-version bytes, the ``+`` type tag, then
    a length (one byte; 0x81 means a 2-byte and 0x82 a 4-byte little-endian
    length follows) and that many UTF-8 bytes.
    """

    marker = b"NSString"
    max_tag_distance = 16

    def decode(self, encoded_body: bytes | None) -> str | None:
        if not encoded_body:
            return None
        try:
            return self._decode(bytes(encoded_body))
        except Exception as e:
            logger.debug(f"Typedstream decode failed: {e}")
            return None

    def _decode(self, blob: bytes) -> str | None:
        marker_idx = blob.find(self.marker)
        if marker_idx == -1:
            return None
        search_from = marker_idx + len(self.marker)
        tag_idx = blob.find(b"+", search_from, search_from + self.max_tag_distance)
        if tag_idx == -1:
            return None

        pos = tag_idx + 1
        if pos >= len(blob):
            return None
        length = blob[pos]
        pos += 1
        if length == 0x81:
            length = int.from_bytes(blob[pos:pos + 2], "little")
            pos += 2
        elif length == 0x82:
            length = int.from_bytes(blob[pos:pos + 4], "little")
            pos += 4

        if length == 0 or pos + length > len(blob):
            return None
        text = blob[pos:pos + length].decode("utf-8").strip()
        return text or None


class FallbackDecoder(BodyDecoder):
    """Tries each decoder in order; the first non-empty answer wins."""

    def __init__(self, decoders: list[BodyDecoder]):
        self.decoders = list(decoders)

    def decode(self, encoded_body: bytes | None) -> str | None:
        for decoder in self.decoders:
            text = decoder.decode(encoded_body)
            if text:
                return text
        return None


def default_decoder() -> BodyDecoder:
    """Structured parse first, printable-run heuristic as the fallback."""
    return FallbackDecoder([TypedStreamDecoder(), PrintableRunDecoder()])


def decode(encoded_body: bytes | None) -> str | None:
    """Heuristic decode: printable ASCII runs of length 3+, space-joined."""
    return PrintableRunDecoder().decode(encoded_body)


def resolve_text(text: str | None, encoded_body: bytes | None, decoder: BodyDecoder | None = None) -> str:
    """Plain text if present, else decoded body, else the sentinel."""
    if text and text.strip():
        return text
    if encoded_body:
        recovered = (decoder or default_decoder()).decode(encoded_body)
        if recovered:
            return recovered
        logger.debug("attributedBody present but no text recovered")
    return NO_TEXT_SENTINEL
