"""EC private key loading and public key derivation."""

from __future__ import annotations

import base64
from typing import Literal

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.types import CertificatePublicKeyTypes

from zatca_signer.core.exceptions import KeyLoadFailure

_PEM_MARKER = b"-----BEGIN"


def load_private_key(key: ec.EllipticCurvePrivateKey | str | bytes) -> ec.EllipticCurvePrivateKey:
    """Load an EC private key from an object, PEM, DER bytes or base64 DER text.

    Both SEC1 (``EC PRIVATE KEY``) and PKCS#8 encodings are accepted.
    """
    if isinstance(key, ec.EllipticCurvePrivateKey):
        return key

    try:
        data = key.encode("ascii") if isinstance(key, str) else key
        if _PEM_MARKER in data:
            loaded = serialization.load_pem_private_key(data, password=None)
        else:
            der = data if data[:1] == b"\x30" else base64.b64decode(b"".join(data.split()), validate=True)
            loaded = serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise KeyLoadFailure(f"Unable to parse private key: {exc}") from exc

    if not isinstance(loaded, ec.EllipticCurvePrivateKey):
        raise KeyLoadFailure(f"Expected an EC private key, got {type(loaded).__name__}")
    return loaded


def ensure_curve_matches(
    private_key: ec.EllipticCurvePrivateKey,
    certificate_key: CertificatePublicKeyTypes,
) -> None:
    """The certificate's algorithm fixes the curve the private key must use."""
    if not isinstance(certificate_key, ec.EllipticCurvePublicKey):
        raise KeyLoadFailure("Certificate does not carry an EC public key")
    if private_key.curve.name != certificate_key.curve.name:
        raise KeyLoadFailure(
            f"Private key curve {private_key.curve.name} does not match "
            f"certificate curve {certificate_key.curve.name}"
        )


def public_key_bytes(
    private_key: ec.EllipticCurvePrivateKey,
    key_format: Literal["point", "spki"] = "point",
) -> bytes:
    """Public key for QR tag 8, without any PEM armour."""
    public_key = private_key.public_key()
    if key_format == "spki":
        return public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    return public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
