"""Structured construction of the XAdES extension and QR reference fragments.

The fragments are built with lxml rather than spliced in as text. The only
exception is ``xades:SignedProperties``: its bytes are hashed as authored
text, so the element is parsed from that same text.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING

from lxml import etree

from zatca_signer.core.exceptions import MissingInvoiceField

if TYPE_CHECKING:
    from zatca_signer.services.certificate import CertificateInfo
    from zatca_signer.services.signing import SignatureArtifacts

# ─── UBL Namespaces ─────────────────────────────────────────────────────────

INVOICE_NS = "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"
CAC = "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
CBC = "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"
EXT = "urn:oasis:names:specification:ubl:schema:xsd:CommonExtensionComponents-2"
SIG = "urn:oasis:names:specification:ubl:schema:xsd:CommonSignatureComponents-2"
SBC = "urn:oasis:names:specification:ubl:schema:xsd:SignatureBasicComponents-2"
SAC = "urn:oasis:names:specification:ubl:schema:xsd:SignatureAggregateComponents-2"
DS = "http://www.w3.org/2000/09/xmldsig#"
XADES = "http://uri.etsi.org/01903/v1.3.2#"

# ─── Algorithm and identifier URIs ──────────────────────────────────────────

C14N11_URI = "http://www.w3.org/2006/12/xml-c14n11"
ECDSA_SHA256_URI = "http://www.w3.org/2001/04/xmldsig-more#ecdsa-sha256"
DIGEST_SHA256_URI = "http://www.w3.org/2001/04/xmlenc#sha256"
XPATH_TRANSFORM_URI = "http://www.w3.org/TR/1999/REC-xpath-19991116"
SIGNATURE_PROPERTIES_TYPE = "http://www.w3.org/2000/09/xmldsig#SignatureProperties"
XADES_EXTENSION_URI = "urn:oasis:names:specification:ubl:dsig:enveloped:xades"
UBL_SIGNATURE_ID = "urn:oasis:names:specification:ubl:signature:1"
UBL_INVOICE_SIGNATURE_ID = "urn:oasis:names:specification:ubl:signature:Invoice"

# Mirrors the nodes dropped before hashing the invoice body
INVOICE_REFERENCE_XPATHS = (
    "not(//ancestor-or-self::ext:UBLExtensions)",
    "not(//ancestor-or-self::cac:Signature)",
    "not(//ancestor-or-self::cac:AdditionalDocumentReference[cbc:ID='QR'])",
)


# ─── Builder helpers ─────────────────────────────────────────────────────────


def _sub(
    parent: etree._Element,
    tag: str,
    text: str | None = None,
    nsmap: dict[str, str] | None = None,
    **attribs: str,
) -> etree._Element:
    """Add a sub-element with optional text and attributes."""
    el = etree.SubElement(parent, tag, nsmap=nsmap) if nsmap else etree.SubElement(parent, tag)
    if text is not None:
        el.text = text
    for k, v in attribs.items():
        el.set(k, v)
    return el


def _cbc(parent: etree._Element, local: str, text: str | None = None, **attribs: str) -> etree._Element:
    return _sub(parent, f"{{{CBC}}}{local}", text, nsmap={"cbc": CBC}, **attribs)


def _cac(parent: etree._Element, local: str) -> etree._Element:
    return _sub(parent, f"{{{CAC}}}{local}")


def _ds(parent: etree._Element, local: str, text: str | None = None, **attribs: str) -> etree._Element:
    return _sub(parent, f"{{{DS}}}{local}", text, **attribs)


# ─── Fragment builders ───────────────────────────────────────────────────────


def _build_signed_info(parent: etree._Element, artifacts: SignatureArtifacts) -> None:
    signed_info = _ds(parent, "SignedInfo")
    _ds(signed_info, "CanonicalizationMethod", Algorithm=C14N11_URI)
    _ds(signed_info, "SignatureMethod", Algorithm=ECDSA_SHA256_URI)

    # Reference to invoice body
    invoice_ref = _ds(signed_info, "Reference", Id="invoiceSignedData", URI="")
    transforms = _ds(invoice_ref, "Transforms")
    for xpath in INVOICE_REFERENCE_XPATHS:
        transform = _ds(transforms, "Transform", Algorithm=XPATH_TRANSFORM_URI)
        _ds(transform, "XPath", xpath)
    _ds(transforms, "Transform", Algorithm=C14N11_URI)
    _ds(invoice_ref, "DigestMethod", Algorithm=DIGEST_SHA256_URI)
    _ds(invoice_ref, "DigestValue", artifacts.invoice_hash)

    # Reference to SignedProperties
    props_ref = _ds(
        signed_info,
        "Reference",
        Type=SIGNATURE_PROPERTIES_TYPE,
        URI="#xadesSignedProperties",
    )
    _ds(props_ref, "DigestMethod", Algorithm=DIGEST_SHA256_URI)
    _ds(props_ref, "DigestValue", artifacts.signed_properties_hash)


def build_ubl_extensions(
    artifacts: SignatureArtifacts,
    certificate: CertificateInfo,
) -> etree._Element:
    """``ext:UBLExtensions`` carrying the enveloped XAdES signature."""
    extensions = etree.Element(f"{{{EXT}}}UBLExtensions", nsmap={"ext": EXT})
    extension = _sub(extensions, f"{{{EXT}}}UBLExtension")
    _sub(extension, f"{{{EXT}}}ExtensionURI", XADES_EXTENSION_URI)
    content = _sub(extension, f"{{{EXT}}}ExtensionContent")

    documents = _sub(
        content,
        f"{{{SIG}}}UBLDocumentSignatures",
        nsmap={"sig": SIG, "sac": SAC, "sbc": SBC},
    )
    information = _sub(documents, f"{{{SAC}}}SignatureInformation")
    _cbc(information, "ID", UBL_SIGNATURE_ID)
    _sub(information, f"{{{SBC}}}ReferencedSignatureID", UBL_INVOICE_SIGNATURE_ID)

    signature = _sub(information, f"{{{DS}}}Signature", nsmap={"ds": DS}, Id="signature")
    _build_signed_info(signature, artifacts)
    _ds(signature, "SignatureValue", artifacts.signature_value)

    key_info = _ds(signature, "KeyInfo")
    x509_data = _ds(key_info, "X509Data")
    _ds(x509_data, "X509Certificate", certificate.base64)

    obj = _ds(signature, "Object")
    qualifying = _sub(
        obj,
        f"{{{XADES}}}QualifyingProperties",
        nsmap={"xades": XADES},
        Target="signature",
    )
    qualifying.append(etree.fromstring(artifacts.signed_properties))
    return extensions


def build_qr_reference(qr_code: str) -> etree._Element:
    """``cac:AdditionalDocumentReference`` with ID ``QR`` and the payload."""
    reference = etree.Element(f"{{{CAC}}}AdditionalDocumentReference", nsmap={"cac": CAC})
    _cbc(reference, "ID", "QR")
    attachment = _cac(reference, "Attachment")
    _cbc(attachment, "EmbeddedDocumentBinaryObject", qr_code, mimeCode="text/plain")
    return reference


def build_signature_reference() -> etree._Element:
    """``cac:Signature`` pointing at the enveloped XAdES signature."""
    signature = etree.Element(f"{{{CAC}}}Signature", nsmap={"cac": CAC})
    _cbc(signature, "ID", UBL_INVOICE_SIGNATURE_ID)
    _cbc(signature, "SignatureMethod", XADES_EXTENSION_URI)
    return signature


def insert_signature_fragments(
    tree: etree._ElementTree,
    extensions: etree._Element,
    qr_reference: etree._Element,
    signature_reference: etree._Element,
) -> etree._ElementTree:
    """Return a copy of ``tree`` with the three fragments in place.

    ``UBLExtensions`` goes directly after the root's start tag, ahead of any
    leading whitespace. The QR reference and ``cac:Signature`` go directly in
    front of ``cac:AccountingSupplierParty``.
    """
    signed = copy.deepcopy(tree)
    root = signed.getroot()

    supplier = root.find(f"{{{CAC}}}AccountingSupplierParty")
    if supplier is None:
        raise MissingInvoiceField("AccountingSupplierParty")

    extensions.tail = root.text
    root.text = None
    root.insert(0, extensions)

    supplier.addprevious(qr_reference)
    supplier.addprevious(signature_reference)
    return signed
