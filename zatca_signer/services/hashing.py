"""XML canonicalization and SHA-256 hashing for ZATCA e-invoices."""

from __future__ import annotations

import base64
import copy
import hashlib
import logging
from collections.abc import Sequence

from lxml import etree

from zatca_signer.core.config import Settings, settings
from zatca_signer.core.exceptions import CanonicalizationFailure
from zatca_signer.services.xml_builder import CBC

logger = logging.getLogger(__name__)

# Removed in this order before hashing; each runs against the already-pruned tree
EXCLUDED_NODE_XPATHS: tuple[str, ...] = (
    "//*[local-name()='Invoice']//*[local-name()='UBLExtensions']",
    "//*[local-name()='AdditionalDocumentReference'][cbc:ID[normalize-space(text()) = 'QR']]",
    "//*[local-name()='Invoice']//*[local-name()='Signature']",
)

_XPATH_NS = {"cbc": CBC}


def parse_invoice(xml: str | bytes, config: Settings | None = None) -> etree._ElementTree:
    """Parse invoice XML, keeping whitespace text nodes as they are."""
    cfg = config or settings
    parser = etree.XMLParser(
        remove_blank_text=False,
        resolve_entities=False,
        no_network=True,
        huge_tree=cfg.XML_HUGE_TREE,
    )
    data = xml.encode("utf-8") if isinstance(xml, str) else xml
    try:
        root = etree.fromstring(data, parser)
    except etree.XMLSyntaxError as exc:
        raise CanonicalizationFailure(f"Invoice XML is not well-formed: {exc}") from exc
    return root.getroottree()


def _remove_keeping_tail(element: etree._Element) -> None:
    """Detach ``element`` but leave its trailing text in the parent.

    lxml drops an element's tail together with the element; a DOM
    ``removeChild`` leaves the neighbouring text node in place, and the
    canonical form has to match the latter.
    """
    parent = element.getparent()
    if parent is None:
        raise CanonicalizationFailure("Cannot exclude the document root element")
    tail = element.tail
    if tail:
        previous = element.getprevious()
        if previous is not None:
            previous.tail = (previous.tail or "") + tail
        else:
            parent.text = (parent.text or "") + tail
    parent.remove(element)


def exclude_nodes(
    tree: etree._ElementTree,
    selectors: Sequence[str] = EXCLUDED_NODE_XPATHS,
) -> etree._ElementTree:
    """Return a copy of ``tree`` with every node matched by ``selectors`` removed."""
    pruned = copy.deepcopy(tree)
    root = pruned.getroot()
    for selector in selectors:
        try:
            matches = pruned.xpath(selector, namespaces=_XPATH_NS)
        except etree.XPathError as exc:
            raise CanonicalizationFailure(f"Invalid exclusion selector {selector!r}: {exc}") from exc
        for element in matches:
            # An earlier match in this pass may have taken this node with it
            if element is not root and not any(
                ancestor is root for ancestor in element.iterancestors()
            ):
                continue
            _remove_keeping_tail(element)
        if matches:
            logger.debug("Excluded %d node(s) matching %s", len(matches), selector)
    return pruned


def canonicalize_xml(tree: etree._ElementTree) -> bytes:
    """Inclusive C14N 1.0 of the whole document, comments stripped."""
    try:
        return etree.tostring(tree, method="c14n", exclusive=False, with_comments=False)
    except (etree.C14NError, ValueError) as exc:
        raise CanonicalizationFailure(f"Unable to canonicalize invoice: {exc}") from exc


def digest_xml(tree: etree._ElementTree) -> bytes:
    return hashlib.sha256(canonicalize_xml(tree)).digest()


def hash_invoice(tree: etree._ElementTree) -> bytes:
    """SHA-256 of the canonicalized invoice after exclusions, as raw bytes."""
    return digest_xml(exclude_nodes(tree))


def hash_invoice_xml(tree: etree._ElementTree) -> str:
    """SHA-256 hash of canonicalized XML, returned as base64 string."""
    return base64.b64encode(hash_invoice(tree)).decode("ascii")
