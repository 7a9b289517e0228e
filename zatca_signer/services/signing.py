"""ECDSA signing and XAdES SignedProperties digesting for ZATCA."""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from datetime import datetime
from xml.sax.saxutils import escape as xml_escape

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from zatca_signer.core.exceptions import SigningFailure
from zatca_signer.services.certificate import CertificateInfo
from zatca_signer.services.xml_builder import DS, XADES

SIGNING_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"
SHA256_URI = "http://www.w3.org/2001/04/xmlenc#sha256"


@dataclass(frozen=True)
class SignatureArtifacts:
    invoice_digest: bytes
    invoice_hash: str  # base64 of invoice_digest
    signature: bytes  # DER-encoded ECDSA signature
    signature_value: str  # base64 of signature
    signing_time: str
    signed_properties: str  # exact template text that was hashed
    signed_properties_hash: str


def format_signing_time(moment: datetime) -> str:
    """ISO-8601 with second precision and no zone suffix."""
    return moment.strftime(SIGNING_TIME_FORMAT)


def sign_digest(digest: bytes, private_key: ec.EllipticCurvePrivateKey) -> bytes:
    """ECDSA-SHA256 over the invoice digest bytes. Returns the DER signature."""
    try:
        return private_key.sign(digest, ec.ECDSA(hashes.SHA256()))
    except (ValueError, TypeError, AttributeError, UnsupportedAlgorithm) as exc:
        raise SigningFailure(f"Unable to generate digital signature: {exc}") from exc


def verify_digest_signature(
    public_key: ec.EllipticCurvePublicKey,
    digest: bytes,
    signature: bytes,
) -> bool:
    try:
        public_key.verify(signature, digest, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        return False
    return True


def render_signed_properties(
    signing_time: str,
    cert_digest: str,
    issuer_name: str,
    serial_number: str,
) -> str:
    """Build the SignedProperties text exactly as verifiers re-hash it.

    Indentation and the per-element ``xmlns:ds`` declarations are part of
    the hashed bytes and must not change.
    """
    ds = f'xmlns:ds="{DS}"'
    lines = [
        f'<xades:SignedProperties xmlns:xades="{XADES}" Id="xadesSignedProperties">',
        " " * 36 + "<xades:SignedSignatureProperties>",
        " " * 40 + f"<xades:SigningTime>{xml_escape(signing_time)}</xades:SigningTime>",
        " " * 40 + "<xades:SigningCertificate>",
        " " * 44 + "<xades:Cert>",
        " " * 48 + "<xades:CertDigest>",
        " " * 52 + f'<ds:DigestMethod {ds} Algorithm="{SHA256_URI}"/>',
        " " * 52 + f"<ds:DigestValue {ds}>{xml_escape(cert_digest)}</ds:DigestValue>",
        " " * 48 + "</xades:CertDigest>",
        " " * 48 + "<xades:IssuerSerial>",
        " " * 52 + f"<ds:X509IssuerName {ds}>{xml_escape(issuer_name)}</ds:X509IssuerName>",
        " " * 52 + f"<ds:X509SerialNumber {ds}>{xml_escape(serial_number)}</ds:X509SerialNumber>",
        " " * 48 + "</xades:IssuerSerial>",
        " " * 44 + "</xades:Cert>",
        " " * 40 + "</xades:SigningCertificate>",
        " " * 36 + "</xades:SignedSignatureProperties>",
        " " * 32 + "</xades:SignedProperties>",
    ]
    return "\n".join(lines)


def hash_signed_properties(signed_properties: str) -> str:
    """base64(hex(SHA-256)) of the template text after CRLF normalization.

    Hashed as plain text, not canonicalized.
    """
    normalized = signed_properties.replace("\r\n", "\n")
    hex_digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return base64.b64encode(hex_digest.encode("ascii")).decode("ascii")


def build_signature_artifacts(
    invoice_digest: bytes,
    private_key: ec.EllipticCurvePrivateKey,
    certificate: CertificateInfo,
    signing_time: datetime,
) -> SignatureArtifacts:
    """Sign the invoice digest and digest the SignedProperties for one signing time."""
    signature = sign_digest(invoice_digest, private_key)
    stamp = format_signing_time(signing_time)
    signed_properties = render_signed_properties(
        signing_time=stamp,
        cert_digest=certificate.digest,
        issuer_name=certificate.issuer_name,
        serial_number=certificate.serial_number,
    )
    return SignatureArtifacts(
        invoice_digest=invoice_digest,
        invoice_hash=base64.b64encode(invoice_digest).decode("ascii"),
        signature=signature,
        signature_value=base64.b64encode(signature).decode("ascii"),
        signing_time=stamp,
        signed_properties=signed_properties,
        signed_properties_hash=hash_signed_properties(signed_properties),
    )
