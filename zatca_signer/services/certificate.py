"""X.509 certificate fields needed for XAdES and the QR payload."""

from __future__ import annotations

import base64
import binascii
import hashlib
from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import CertificatePublicKeyTypes
from cryptography.x509.oid import NameOID

from zatca_signer.core.exceptions import MalformedEncoding
from zatca_signer.services.der import BIT_STRING, SEQUENCE, iter_tlv, read_tlv


@dataclass(frozen=True)
class CertificateInfo:
    der: bytes
    base64: str
    issuer_name: str
    serial_number: str  # decimal, serials routinely exceed 64 bits
    signature: bytes  # the CA's signature over tbsCertificate
    digest: str
    public_key: CertificatePublicKeyTypes


def certificate_to_der(certificate: str | bytes) -> bytes:
    """Accept base64 text or binary DER and return DER bytes."""
    if isinstance(certificate, bytes):
        if certificate[:1] == bytes([SEQUENCE]):
            return certificate
        try:
            certificate = certificate.decode("ascii")
        except UnicodeDecodeError as exc:
            raise MalformedEncoding("Certificate is neither DER nor base64 text") from exc
    compact = "".join(certificate.split())
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedEncoding(f"Certificate is not valid base64: {exc}") from exc


def extract_certificate_signature(certificate: str | bytes) -> bytes:
    """Extract the raw signatureValue bytes from an X.509 certificate.

    Certificate ::= SEQUENCE { tbsCertificate, signatureAlgorithm, signatureValue }

    The BIT STRING's first octet is the unused-bits count and is dropped.
    Structural only: the signature is not verified.
    """
    der = certificate_to_der(certificate)
    body, _ = read_tlv(der, 0, SEQUENCE)
    _tbs, _algorithm, signature_value = iter_tlv(body, (SEQUENCE, SEQUENCE, BIT_STRING))
    if not signature_value:
        raise MalformedEncoding("signatureValue BIT STRING is empty")
    return signature_value[1:]


def format_issuer_name(name: x509.Name) -> str:
    """``CN=<cn>, DC=<dc>, ...`` with domain components in reverse order.

    This is the form the Fatoora reference signer writes into
    ``ds:X509IssuerName``.
    """
    common_names = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not common_names:
        return name.rfc4514_string()
    parts = [f"CN={common_names[0].value}"]
    domain_components = name.get_attributes_for_oid(NameOID.DOMAIN_COMPONENT)
    parts.extend(f"DC={dc.value}" for dc in reversed(domain_components))
    return ", ".join(parts)


def compute_certificate_digest(certificate_b64: str) -> str:
    """base64(hex(SHA-256(base64 certificate text))) for xades:CertDigest."""
    hex_digest = hashlib.sha256(certificate_b64.encode("ascii")).hexdigest()
    return base64.b64encode(hex_digest.encode("ascii")).decode("ascii")


def load_certificate(certificate: str | bytes) -> CertificateInfo:
    """Decode the certificate once and derive every field the signer needs."""
    der = certificate_to_der(certificate)
    try:
        cert = x509.load_der_x509_certificate(der)
    except ValueError as exc:
        raise MalformedEncoding(f"Unable to parse X.509 certificate: {exc}") from exc

    cert_b64 = base64.b64encode(der).decode("ascii")
    return CertificateInfo(
        der=der,
        base64=cert_b64,
        issuer_name=format_issuer_name(cert.issuer),
        serial_number=str(cert.serial_number),
        signature=extract_certificate_signature(der),
        digest=compute_certificate_digest(cert_b64),
        public_key=cert.public_key(),
    )
