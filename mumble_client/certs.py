from __future__ import annotations
import datetime
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID


@dataclass
class ClientCertificate:
    """Self-signed certificate the server uses to recognise a registered user."""
    private_pem: bytes
    cert_pem: bytes

    @property
    def fingerprint(self) -> str:
        """SHA-1 hex digest of the DER certificate, as shown by Mumble servers."""
        cert = x509.load_pem_x509_certificate(self.cert_pem)
        return cert.fingerprint(hashes.SHA1()).hex()

    @property
    def common_name(self) -> str:
        cert = x509.load_pem_x509_certificate(self.cert_pem)
        return cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value

    @classmethod
    def generate(cls, common_name: str, key_size: int = 2048, valid_days: int = 3650) -> "ClientCertificate":
        key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        now = datetime.datetime.now(datetime.timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=5))
            .not_valid_after(now + datetime.timedelta(days=valid_days))
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .sign(key, hashes.SHA256())
        )
        private_pem = key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
        cert_pem = cert.public_bytes(serialization.Encoding.PEM)
        return cls(private_pem=private_pem, cert_pem=cert_pem)


def save_certificate(path: Path, cert: ClientCertificate) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    (path.with_suffix(".key")).write_bytes(cert.private_pem)
    (path.with_suffix(".pem")).write_bytes(cert.cert_pem)


def load_certificate(path: Path) -> Optional[ClientCertificate]:
    key = path.with_suffix(".key")
    pem = path.with_suffix(".pem")
    if not (key.exists() and pem.exists()):
        return None
    return ClientCertificate(private_pem=key.read_bytes(), cert_pem=pem.read_bytes())
