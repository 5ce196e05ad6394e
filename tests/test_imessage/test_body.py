"""Tests for attributedBody decoding."""

from imessage_context.imessage.body import (
    NO_TEXT_SENTINEL,
    BodyDecoder,
    FallbackDecoder,
    PrintableRunDecoder,
    TypedStreamDecoder,
    decode,
    default_decoder,
    resolve_text,
)


class BrokenDecoder(BodyDecoder):
    def decode(self, encoded_body):
        return None


def test_typedstream_decoder(typedstream_body):
    assert TypedStreamDecoder().decode(typedstream_body) == "Hello there"


def test_typedstream_two_byte_length():
    text = "x" * 300
    blob = b"\x84\x08NSString\x01\x94\x84\x01+\x81" + (300).to_bytes(2, "little") + text.encode()
    assert TypedStreamDecoder().decode(blob) == text


def test_typedstream_utf8_text():
    encoded = "café 👋".encode()
    blob = b"NSString\x01\x94\x84\x01+" + bytes([len(encoded)]) + encoded + b"\x86"
    assert TypedStreamDecoder().decode(blob) == "café 👋"


def test_typedstream_truncated_blob():
    assert TypedStreamDecoder().decode(b"NSString\x01\x94\x84\x01+\x20short") is None


def test_typedstream_no_marker(unreadable_body):
    assert TypedStreamDecoder().decode(unreadable_body) is None
    assert TypedStreamDecoder().decode(None) is None


def test_printable_runs():
    blob = b"\x00\x01Hello\x02\x03world\x04ab\x05"
    assert PrintableRunDecoder().decode(blob) == "Hello world"
    assert decode(blob) == "Hello world"


def test_printable_runs_nothing_readable(unreadable_body):
    assert decode(unreadable_body) is None
    assert decode(b"") is None


def test_fallback_order(typedstream_body):
    decoder = FallbackDecoder([BrokenDecoder(), TypedStreamDecoder(), PrintableRunDecoder()])
    assert decoder.decode(typedstream_body) == "Hello there"


def test_default_decoder_falls_back_to_runs():
    assert default_decoder().decode(b"\x01\x02plain words\x03") == "plain words"


def test_resolve_text_prefers_plain_text(typedstream_body):
    assert resolve_text("hi", typedstream_body) == "hi"


def test_resolve_text_uses_body_when_text_blank(typedstream_body):
    assert resolve_text(None, typedstream_body) == "Hello there"
    assert resolve_text("  ", typedstream_body) == "Hello there"


def test_resolve_text_sentinel(unreadable_body):
    assert resolve_text("", unreadable_body) == NO_TEXT_SENTINEL
    assert resolve_text(None, None) == NO_TEXT_SENTINEL


def test_resolve_text_custom_decoder(typedstream_body):
    assert resolve_text(None, typedstream_body, decoder=BrokenDecoder()) == NO_TEXT_SENTINEL
