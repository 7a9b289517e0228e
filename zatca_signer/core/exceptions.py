"""Error kinds raised by the signing pipeline."""

from __future__ import annotations


class ZatcaSigningError(Exception):
    """Base class for every failure surfaced by the signer."""


class MalformedEncoding(ZatcaSigningError):
    """DER/TLV structure violation: unexpected tag, truncated length or value."""

    def __init__(self, message: str, offset: int | None = None) -> None:
        self.offset = offset
        super().__init__(message)


class KeyLoadFailure(ZatcaSigningError):
    """Private key cannot be parsed or used with the certificate's curve."""


class SigningFailure(ZatcaSigningError):
    """The ECDSA primitive rejected the digest/key pair."""


class MissingInvoiceField(ZatcaSigningError):
    """A mandatory invoice element is absent from the document."""

    def __init__(self, field_name: str, message: str | None = None) -> None:
        self.field_name = field_name
        super().__init__(message or f"Invoice is missing required field: {field_name}")


class CanonicalizationFailure(ZatcaSigningError):
    """Invoice XML could not be parsed or canonicalized."""
