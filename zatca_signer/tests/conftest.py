"""Shared test fixtures.

Key material is generated per session: a secp256k1 signing key and a
certificate issued to it by a throwaway secp256k1 CA, with an issuer DN and
serial shaped like the ones ZATCA's sandbox CA hands out.
"""

from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

# ─── Certificate data ───────────────────────────────────────────────────────

CERT_SERIAL = 379112742831380471835263969587287663520528387  # > 2**64

ISSUER = x509.Name([
    x509.NameAttribute(NameOID.DOMAIN_COMPONENT, "local"),
    x509.NameAttribute(NameOID.DOMAIN_COMPONENT, "gov"),
    x509.NameAttribute(NameOID.DOMAIN_COMPONENT, "extgazt"),
    x509.NameAttribute(NameOID.COMMON_NAME, "TSZEINVOICE-SubCA-1"),
])

SUBJECT = x509.Name([
    x509.NameAttribute(NameOID.COUNTRY_NAME, "SA"),
    x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, "Riyadh Branch"),
    x509.NameAttribute(NameOID.ORGANIZATION_NAME, "ACME"),
    x509.NameAttribute(NameOID.COMMON_NAME, "TST-886431145-300000000000003"),
])

# ─── Invoice data ───────────────────────────────────────────────────────────

UBL_EXTENSIONS_XML = (
    "<ext:UBLExtensions><ext:UBLExtension>"
    "<ext:ExtensionURI>urn:oasis:names:specification:ubl:dsig:enveloped:xades</ext:ExtensionURI>"
    "<ext:ExtensionContent/></ext:UBLExtension></ext:UBLExtensions>"
)

QR_REFERENCE_XML = (
    "<cac:AdditionalDocumentReference><cbc:ID>QR</cbc:ID><cac:Attachment>"
    '<cbc:EmbeddedDocumentBinaryObject mimeCode="text/plain">AQRBQ01F</cbc:EmbeddedDocumentBinaryObject>'
    "</cac:Attachment></cac:AdditionalDocumentReference>"
)

SIGNATURE_XML = (
    "<cac:Signature>"
    "<cbc:ID>urn:oasis:names:specification:ubl:signature:Invoice</cbc:ID>"
    "<cbc:SignatureMethod>urn:oasis:names:specification:ubl:dsig:enveloped:xades</cbc:SignatureMethod>"
    "</cac:Signature>"
)

_INVOICE_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<Invoice xmlns="urn:oasis:names:specification:ubl:schema:xsd:Invoice-2" xmlns:cac="urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2" xmlns:cbc="urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2" xmlns:ext="urn:oasis:names:specification:ubl:schema:xsd:CommonExtensionComponents-2">
    {extensions}
    <cbc:ProfileID>reporting:1.0</cbc:ProfileID>
    <cbc:ID>SME00010</cbc:ID>
    <cbc:UUID>8e6000cf-1a98-4174-b3e7-b5d5954bc10d</cbc:UUID>
    <cbc:IssueDate>{issue_date}</cbc:IssueDate>
    <cbc:IssueTime>{issue_time}</cbc:IssueTime>
    <cbc:InvoiceTypeCode name="{subtype}">388</cbc:InvoiceTypeCode>
    <cbc:DocumentCurrencyCode>SAR</cbc:DocumentCurrencyCode>
    <cbc:TaxCurrencyCode>SAR</cbc:TaxCurrencyCode>
    <cac:AdditionalDocumentReference>
        <cbc:ID>ICV</cbc:ID>
        <cbc:UUID>10</cbc:UUID>
    </cac:AdditionalDocumentReference>
    <cac:AdditionalDocumentReference>
        <cbc:ID>PIH</cbc:ID>
        <cac:Attachment>
            <cbc:EmbeddedDocumentBinaryObject mimeCode="text/plain">NWZlY2ViNjZmZmM4NmYzOGQ5NTI3ODZjNmQ2OTZjNzljMmRiYzIzOWRkNGU5MWI0NjcyOWQ3M2EyN2ZiNTdlOQ==</cbc:EmbeddedDocumentBinaryObject>
        </cac:Attachment>
    </cac:AdditionalDocumentReference>
    {qr_reference}
    {signature}
    <cac:AccountingSupplierParty>
        <cac:Party>
            <cac:PartyTaxScheme>
                <cbc:CompanyID>{vat_number}</cbc:CompanyID>
                <cac:TaxScheme>
                    <cbc:ID>VAT</cbc:ID>
                </cac:TaxScheme>
            </cac:PartyTaxScheme>
            <cac:PartyLegalEntity>
                <cbc:RegistrationName>{seller_name}</cbc:RegistrationName>
            </cac:PartyLegalEntity>
        </cac:Party>
    </cac:AccountingSupplierParty>
    <cac:TaxTotal>
        <cbc:TaxAmount currencyID="SAR">{vat_total}</cbc:TaxAmount>
    </cac:TaxTotal>
    <cac:LegalMonetaryTotal>
        <cbc:LineExtensionAmount currencyID="SAR">100.00</cbc:LineExtensionAmount>
        <cbc:TaxExclusiveAmount currencyID="SAR">100.00</cbc:TaxExclusiveAmount>
        <cbc:TaxInclusiveAmount currencyID="SAR">{invoice_total}</cbc:TaxInclusiveAmount>
        <cbc:PayableAmount currencyID="SAR">{invoice_total}</cbc:PayableAmount>
    </cac:LegalMonetaryTotal>
</Invoice>
"""


def sample_invoice(**overrides: str) -> str:
    """Minimal UBL invoice; the three signing placeholders default to empty."""
    values = dict(
        extensions="",
        qr_reference="",
        signature="",
        issue_date="2024-01-01",
        issue_time="10:00:00",
        subtype="0100000",
        vat_number="300000000000003",
        seller_name="ACME",
        vat_total="15.00",
        invoice_total="115.00",
    )
    values.update(overrides)
    return _INVOICE_TEMPLATE.format(**values)


def decode_tlv(payload: str) -> list[tuple[int, bytes]]:
    """Split a base64 QR payload back into (tag, value) records."""
    raw = base64.b64decode(payload)
    records: list[tuple[int, bytes]] = []
    pos = 0
    while pos < len(raw):
        tag = raw[pos]
        length = raw[pos + 1]
        records.append((tag, raw[pos + 2:pos + 2 + length]))
        pos += 2 + length
    return records


# ─── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def ca_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256K1())


@pytest.fixture(scope="session")
def private_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256K1())


@pytest.fixture(scope="session")
def private_key_b64(private_key: ec.EllipticCurvePrivateKey) -> str:
    """SEC1 ``EC PRIVATE KEY`` DER, base64 without PEM armour."""
    der = private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return base64.b64encode(der).decode("ascii")


@pytest.fixture(scope="session")
def certificate(
    private_key: ec.EllipticCurvePrivateKey,
    ca_key: ec.EllipticCurvePrivateKey,
) -> x509.Certificate:
    not_before = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(SUBJECT)
        .issuer_name(ISSUER)
        .public_key(private_key.public_key())
        .serial_number(CERT_SERIAL)
        .not_valid_before(not_before)
        .not_valid_after(not_before + timedelta(days=5 * 365))
        .sign(ca_key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def certificate_der(certificate: x509.Certificate) -> bytes:
    return certificate.public_bytes(serialization.Encoding.DER)


@pytest.fixture(scope="session")
def certificate_b64(certificate_der: bytes) -> str:
    return base64.b64encode(certificate_der).decode("ascii")


@pytest.fixture()
def invoice_factory() -> Callable[..., str]:
    return sample_invoice


@pytest.fixture()
def tlv_decoder() -> Callable[[str], list[tuple[int, bytes]]]:
    return decode_tlv
