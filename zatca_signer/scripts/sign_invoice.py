"""Sign a single UBL invoice from the command line.

Reads the private key and certificate (PEM or bare base64 DER), signs the
invoice and writes the result next to it, or to ``--output``.

Usage:
    python -m zatca_signer.scripts.sign_invoice --key ec-secp256k1-priv-key.pem \\
        --cert cert.pem invoice.xml [-o signed.xml]
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from zatca_signer.core.config import settings
from zatca_signer.core.exceptions import ZatcaSigningError
from zatca_signer.services.invoice_signer import sign_invoice

logger = logging.getLogger("zatca_signer.scripts.sign_invoice")


def _read_certificate(path: Path) -> bytes | str:
    """PEM framing is stripped here; the signer takes DER or base64 DER."""
    data = path.read_bytes()
    if b"-----BEGIN CERTIFICATE-----" in data:
        cert = x509.load_pem_x509_certificate(data)
        return cert.public_bytes(serialization.Encoding.DER)
    return data.decode("ascii").strip()


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sign a ZATCA UBL invoice.")
    parser.add_argument("invoice", type=Path, help="unsigned invoice XML")
    parser.add_argument("--key", type=Path, required=True, help="EC private key (PEM or base64 DER)")
    parser.add_argument("--cert", type=Path, required=True, help="X.509 certificate (PEM or base64 DER)")
    parser.add_argument("-o", "--output", type=Path, help="where to write the signed XML")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")
    args = _parse_args(argv)
    output = args.output or args.invoice.with_name(f"{args.invoice.stem}_signed.xml")

    try:
        signed = sign_invoice(
            args.key.read_bytes(),
            _read_certificate(args.cert),
            args.invoice.read_bytes(),
        )
    except (ZatcaSigningError, ValueError, OSError) as exc:
        logger.error("Signing %s failed: %s", args.invoice, exc)
        print(f"  [FAIL] {exc}", file=sys.stderr)
        return 1

    output.write_text(signed.xml, encoding="utf-8")
    print(f"  [OK] {output}")
    print(f"  -> invoice hash: {signed.invoice_hash}")
    print(f"  -> QR payload:   {signed.qr_code}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
