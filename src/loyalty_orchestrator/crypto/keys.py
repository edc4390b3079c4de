"""Key material helpers for enrollment and request signing.

Signatures are ECDSA P-256 over SHA-256, DER encoded, normalized to low-S form
(s <= n/2) because Fabric peers and the CA reject high-S signatures.

CA authorization token format:
- <b64(cert_pem)>.<b64(sig)>
where sig signs ``METHOD.b64(uri).b64(body).b64(cert_pem)``.
"""

from __future__ import annotations

import base64

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    load_pem_private_key,
)
from cryptography.x509.oid import NameOID

P256_ORDER = 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551
_HALF_ORDER = P256_ORDER >> 1


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def generate_private_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


def private_key_to_pem(private_key: ec.EllipticCurvePrivateKey) -> bytes:
    return private_key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption())


def load_private_key(private_key_pem: bytes) -> ec.EllipticCurvePrivateKey:
    try:
        key = load_pem_private_key(private_key_pem, password=None)
    except (TypeError, ValueError) as exc:
        raise ValueError("invalid private key PEM") from exc
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise ValueError("private key must be an EC key")
    return key


def build_csr(enrollment_id: str, private_key: ec.EllipticCurvePrivateKey) -> str:
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, enrollment_id)])
    csr = x509.CertificateSigningRequestBuilder().subject_name(subject).sign(
        private_key, hashes.SHA256()
    )
    return csr.public_bytes(Encoding.PEM).decode("ascii")


def sign(private_key_pem: bytes, message: bytes) -> bytes:
    key = load_private_key(private_key_pem)
    der = key.sign(message, ec.ECDSA(hashes.SHA256()))
    r, s = decode_dss_signature(der)
    if s > _HALF_ORDER:
        s = P256_ORDER - s
    return encode_dss_signature(r, s)


def sign_b64(private_key_pem: bytes, message: bytes) -> str:
    return _b64(sign(private_key_pem, message))


def build_auth_token(
    *,
    certificate_pem: bytes,
    private_key_pem: bytes,
    method: str,
    uri: str,
    body: bytes,
) -> str:
    cert_b64 = _b64(certificate_pem)
    payload = ".".join((method.upper(), _b64(uri.encode("utf-8")), _b64(body), cert_b64))
    return f"{cert_b64}.{sign_b64(private_key_pem, payload.encode('utf-8'))}"
