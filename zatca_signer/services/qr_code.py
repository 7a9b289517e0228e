"""Phase 2 QR payload: TLV-framed invoice summary, base64 encoded."""

from __future__ import annotations

import base64
import enum
import struct
from dataclasses import dataclass, fields as dataclass_fields

from zatca_signer.core.exceptions import MalformedEncoding, MissingInvoiceField

MAX_VALUE_LENGTH = 255


class QrTag(enum.IntEnum):
    SELLER_NAME = 1
    VAT_NUMBER = 2
    TIMESTAMP = 3
    INVOICE_TOTAL = 4
    VAT_TOTAL = 5
    INVOICE_HASH = 6
    ECDSA_SIGNATURE = 7
    PUBLIC_KEY = 8
    CERTIFICATE_SIGNATURE = 9


@dataclass(frozen=True)
class QrFieldSet:
    """The nine QR fields, validated once at construction.

    Tags 1-5 are mandatory. Tags 6-9 may be ``None`` and are then left out
    of the payload entirely. Text values are encoded as UTF-8.
    """

    seller_name: str | None
    vat_number: str | None
    timestamp: str | None
    invoice_total: str | None
    vat_total: str | None
    invoice_hash: bytes | str | None = None
    ecdsa_signature: bytes | str | None = None
    public_key: bytes | None = None
    certificate_signature: bytes | None = None

    def __post_init__(self) -> None:
        for tag, field in zip(QrTag, dataclass_fields(self)):
            value = getattr(self, field.name)
            if value is None:
                if tag <= QrTag.VAT_TOTAL:
                    raise MissingInvoiceField(field.name)
                continue
            length = len(_to_bytes(value))
            if length > MAX_VALUE_LENGTH:
                raise MalformedEncoding(
                    f"QR tag {int(tag)} ({field.name}) is {length} bytes (max {MAX_VALUE_LENGTH})"
                )

    def fields(self) -> list[tuple[QrTag, bytes]]:
        """Present fields as ``(tag, value)`` pairs in ascending tag order."""
        pairs: list[tuple[QrTag, bytes]] = []
        for tag, field in zip(QrTag, dataclass_fields(self)):
            value = getattr(self, field.name)
            if value is not None:
                pairs.append((tag, _to_bytes(value)))
        return pairs


def _to_bytes(value: bytes | str) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def _tlv(tag: int, value: bytes) -> bytes:
    """Encode a single TLV field with 1-byte tag and 1-byte length (max 255)."""
    return struct.pack("BB", tag, len(value)) + value


def encode_tlv(field_set: QrFieldSet) -> bytes:
    return b"".join(_tlv(tag, value) for tag, value in field_set.fields())


def generate_qr_code(field_set: QrFieldSet) -> str:
    """Base64-encoded TLV payload, ready for a QR renderer."""
    return base64.b64encode(encode_tlv(field_set)).decode("ascii")


def is_simplified_subtype(subtype: str | None, prefix: str = "02") -> bool:
    """Simplified (B2C) invoices carry the CA signature in tag 9."""
    return subtype is not None and subtype.startswith(prefix)
