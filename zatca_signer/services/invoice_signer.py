"""Invoice signing orchestrator: key → certificate → hash → sign → QR → splice.

Each stage takes the previous stage's value and returns a new one; nothing
is shared between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from cryptography.hazmat.primitives.asymmetric import ec
from lxml import etree

from zatca_signer.core.config import Settings, settings
from zatca_signer.services.certificate import load_certificate
from zatca_signer.services.hashing import (
    digest_xml,
    exclude_nodes,
    parse_invoice,
)
from zatca_signer.services.keys import ensure_curve_matches, load_private_key, public_key_bytes
from zatca_signer.services.qr_code import QrFieldSet, generate_qr_code, is_simplified_subtype
from zatca_signer.services.signing import SignatureArtifacts, build_signature_artifacts
from zatca_signer.services.xml_builder import (
    build_qr_reference,
    build_signature_reference,
    build_ubl_extensions,
    insert_signature_fragments,
)

logger = logging.getLogger(__name__)

_INVOICE = "/*[local-name()='Invoice']"
_SUPPLIER_PARTY = f"{_INVOICE}/*[local-name()='AccountingSupplierParty']/*[local-name()='Party']"

_SELLER_NAME_XPATH = (
    f"{_SUPPLIER_PARTY}/*[local-name()='PartyLegalEntity']/*[local-name()='RegistrationName']/text()"
)
_VAT_NUMBER_XPATH = (
    f"{_SUPPLIER_PARTY}/*[local-name()='PartyTaxScheme']/*[local-name()='CompanyID']/text()"
)
_ISSUE_DATE_XPATH = f"{_INVOICE}/*[local-name()='IssueDate']/text()"
_ISSUE_TIME_XPATH = f"{_INVOICE}/*[local-name()='IssueTime']/text()"
_PAYABLE_AMOUNT_XPATH = (
    f"{_INVOICE}/*[local-name()='LegalMonetaryTotal']/*[local-name()='PayableAmount']/text()"
)
_TAX_AMOUNT_XPATH = f"{_INVOICE}/*[local-name()='TaxTotal']/*[local-name()='TaxAmount']/text()"
_SUBTYPE_XPATH = f"{_INVOICE}/*[local-name()='InvoiceTypeCode'][@name]/@name"


@dataclass(frozen=True)
class InvoiceMetadata:
    seller_name: str | None
    vat_number: str | None
    timestamp: str | None  # IssueDate + "T" + IssueTime
    invoice_total: str | None
    vat_total: str | None
    subtype: str | None


@dataclass(frozen=True)
class SignedInvoice:
    xml: str
    invoice_hash: str
    signature_value: str
    signed_properties_hash: str
    signing_time: str
    qr_code: str


def _first(tree: etree._ElementTree, xpath: str) -> str | None:
    result = tree.xpath(xpath)
    return str(result[0]) if result else None


def extract_invoice_metadata(tree: etree._ElementTree) -> InvoiceMetadata:
    """Pull the QR source fields out of the invoice by structural lookup."""
    issue_date = _first(tree, _ISSUE_DATE_XPATH)
    issue_time = _first(tree, _ISSUE_TIME_XPATH)
    return InvoiceMetadata(
        seller_name=_first(tree, _SELLER_NAME_XPATH),
        vat_number=_first(tree, _VAT_NUMBER_XPATH),
        timestamp=f"{issue_date}T{issue_time}" if issue_date and issue_time else None,
        invoice_total=_first(tree, _PAYABLE_AMOUNT_XPATH),
        vat_total=_first(tree, _TAX_AMOUNT_XPATH),
        subtype=_first(tree, _SUBTYPE_XPATH),
    )


def build_qr_fields(
    metadata: InvoiceMetadata,
    artifacts: SignatureArtifacts,
    public_key: bytes,
    certificate_signature: bytes,
    config: Settings | None = None,
) -> QrFieldSet:
    """Assemble the nine QR fields; tag 9 only for simplified invoices."""
    cfg = config or settings
    if cfg.QR_DIGEST_ENCODING == "base64":
        invoice_hash: bytes | str = artifacts.invoice_hash
        ecdsa_signature: bytes | str = artifacts.signature_value
    else:
        invoice_hash = artifacts.invoice_digest
        ecdsa_signature = artifacts.signature

    simplified = is_simplified_subtype(metadata.subtype, cfg.SIMPLIFIED_SUBTYPE_PREFIX)
    return QrFieldSet(
        seller_name=metadata.seller_name,
        vat_number=metadata.vat_number,
        timestamp=metadata.timestamp,
        invoice_total=metadata.invoice_total,
        vat_total=metadata.vat_total,
        invoice_hash=invoice_hash,
        ecdsa_signature=ecdsa_signature,
        public_key=public_key,
        certificate_signature=certificate_signature if simplified else None,
    )


def _now(cfg: Settings) -> datetime:
    return datetime.now(timezone.utc) if cfg.SIGNING_TIME_UTC else datetime.now()


def sign_invoice(
    private_key: ec.EllipticCurvePrivateKey | str | bytes,
    certificate: str | bytes,
    invoice_xml: str | bytes,
    *,
    signing_time: datetime | None = None,
    config: Settings | None = None,
) -> SignedInvoice:
    """Sign a UBL invoice and embed the XAdES signature and QR payload.

    1. Load the private key and derive the public key bytes
    2. Load the certificate (issuer, serial, digest, CA signature)
    3. Parse the invoice
    4. Exclude UBLExtensions / QR reference / Signature and hash the rest
    5. Sign the hash and digest SignedProperties for one signing time
    6. Read the QR source fields from the invoice
    7. Build the QR payload
    8. Splice the extension block and QR/Signature references in

    Any failure raises before a document is produced.
    """
    cfg = config or settings

    key = load_private_key(private_key)
    cert = load_certificate(certificate)
    ensure_curve_matches(key, cert.public_key)
    pub_key = public_key_bytes(key, cfg.QR_PUBLIC_KEY_FORMAT)
    logger.debug("Loaded %s key and certificate serial %s", key.curve.name, cert.serial_number)

    tree = parse_invoice(invoice_xml, cfg)
    redacted = exclude_nodes(tree)
    digest = digest_xml(redacted)

    artifacts = build_signature_artifacts(digest, key, cert, signing_time or _now(cfg))
    logger.debug("Invoice hash %s signed at %s", artifacts.invoice_hash, artifacts.signing_time)

    metadata = extract_invoice_metadata(tree)
    qr_fields = build_qr_fields(metadata, artifacts, pub_key, cert.signature, cfg)
    qr_code = generate_qr_code(qr_fields)

    signed_tree = insert_signature_fragments(
        redacted,
        build_ubl_extensions(artifacts, cert),
        build_qr_reference(qr_code),
        build_signature_reference(),
    )
    xml_bytes = etree.tostring(signed_tree, xml_declaration=True, encoding="UTF-8")

    logger.info(
        "Signed invoice: hash=%s, subtype=%s, qr_tags=%d",
        artifacts.invoice_hash,
        metadata.subtype,
        len(qr_fields.fields()),
    )
    return SignedInvoice(
        xml=xml_bytes.decode("utf-8"),
        invoice_hash=artifacts.invoice_hash,
        signature_value=artifacts.signature_value,
        signed_properties_hash=artifacts.signed_properties_hash,
        signing_time=artifacts.signing_time,
        qr_code=qr_code,
    )


def sign(
    private_key: ec.EllipticCurvePrivateKey | str | bytes,
    certificate: str | bytes,
    invoice_xml: str | bytes,
) -> str:
    """Signed invoice XML for the given key, certificate and unsigned invoice."""
    return sign_invoice(private_key, certificate, invoice_xml).xml
