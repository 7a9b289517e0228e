"""Minimal DER tag-length-value reader for walking X.509 structures."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from zatca_signer.core.exceptions import MalformedEncoding

SEQUENCE = 0x30
BIT_STRING = 0x03


def read_tlv(buf: bytes, pos: int, expected_tag: int) -> tuple[bytes, int]:
    """Read one TLV record at ``pos`` and return ``(value, next_pos)``.

    The tag byte must equal ``expected_tag``. Lengths are decoded in short
    form (high bit clear) or long form (high bit set, low 7 bits = number of
    big-endian length octets that follow).
    """
    if pos >= len(buf):
        raise MalformedEncoding(f"Unexpected end of data at offset {pos}", offset=pos)

    tag = buf[pos]
    if tag != expected_tag:
        raise MalformedEncoding(
            f"Invalid tag at offset {pos}: expected 0x{expected_tag:02x}, got 0x{tag:02x}",
            offset=pos,
        )
    pos += 1

    if pos >= len(buf):
        raise MalformedEncoding(f"Missing length at offset {pos}", offset=pos)
    length = buf[pos]
    pos += 1

    if length & 0x80:
        count = length & 0x7F
        if count == 0:
            # 0x80 is the BER indefinite form, never valid in DER
            raise MalformedEncoding(f"Indefinite length at offset {pos - 1}", offset=pos - 1)
        if pos + count > len(buf):
            raise MalformedEncoding(f"Truncated length octets at offset {pos}", offset=pos)
        length = int.from_bytes(buf[pos:pos + count], "big")
        pos += count

    end = pos + length
    if end > len(buf):
        raise MalformedEncoding(
            f"Truncated value at offset {pos}: need {length} bytes, have {len(buf) - pos}",
            offset=pos,
        )
    return buf[pos:end], end


def iter_tlv(buf: bytes, expected_tags: Iterable[int], pos: int = 0) -> Iterator[bytes]:
    """Yield the values of consecutive sibling records with the given tags."""
    for tag in expected_tags:
        value, pos = read_tlv(buf, pos, tag)
        yield value
