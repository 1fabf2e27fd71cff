"""Pytest configuration and shared fixtures for ftpsclient tests."""

import datetime
import ipaddress
from dataclasses import dataclass
from pathlib import Path

import pytest


# Test constants
TEST_FTP_HOST = "127.0.0.1"
TEST_FTP_USER = "test"
TEST_FTP_PASS = "test"


@dataclass
class TLSMaterial:
    """Paths of a throwaway CA and the server certificate it signed."""
    ca_file: Path
    server_pem: Path


def _generate_tls_material(directory: Path) -> TLSMaterial:
    from cryptography import x509
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import rsa
    from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

    now = datetime.datetime.now(datetime.timezone.utc)

    ca_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    ca_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "ftpsclient test CA")])
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(ca_name)
        .issuer_name(ca_name)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True, content_commitment=False, key_encipherment=False,
                data_encipherment=False, key_agreement=False, key_cert_sign=True,
                crl_sign=True, encipher_only=False, decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()), critical=False)
        .sign(ca_key, hashes.SHA256())
    )

    server_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    server_cert = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")]))
        .issuer_name(ca_name)
        .public_key(server_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address(TEST_FTP_HOST)),
            ]),
            critical=False,
        )
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )

    ca_file = directory / "ca.pem"
    ca_file.write_bytes(ca_cert.public_bytes(serialization.Encoding.PEM))

    server_pem = directory / "server.pem"
    server_pem.write_bytes(
        server_cert.public_bytes(serialization.Encoding.PEM)
        + server_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )
    )
    return TLSMaterial(ca_file=ca_file, server_pem=server_pem)


@pytest.fixture(scope="session")
def tls_material(tmp_path_factory) -> TLSMaterial:
    """Self-signed CA plus a server certificate for 127.0.0.1/localhost."""
    pytest.importorskip("cryptography")
    return _generate_tls_material(tmp_path_factory.mktemp("tls"))


@pytest.fixture
def sample_text_file(tmp_path: Path) -> Path:
    """Create a small text file with LF line endings."""
    text_file = tmp_path / "notes.txt"
    text_file.write_bytes(b"first line\nsecond line\n\nlast line without newline")
    return text_file


@pytest.fixture
def sample_binary_file(tmp_path: Path) -> Path:
    """Create a binary file containing every byte value, CR and LF included."""
    binary_file = tmp_path / "blob.bin"
    binary_file.write_bytes(bytes(range(256)) * 64 + b"\r\n\r\r\n\n")
    return binary_file
