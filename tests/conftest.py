"""
Shared test fixtures for the acl-reconcile test suite.

Provides throwaway RSA keypairs laid out the way the pipeline expects them
(a key directory of <signer>.pub files plus a PEM private key), and a small
authoritative ACL table.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from acl_reconcile.adapters import archive_codec

SIGNER = "qwerty"

SAMPLE_TSV = (
    "Device ID\tCard Number\tFrom\tTo\tFront Door\tBack Door\n"
    "1\t1001\t2024-01-01\t2024-12-31\tY\tN\n"
    "1\t1002\t2024-01-01\t2024-12-31\tY\tY\n"
    "2\t2001\t2024-03-01\t2024-06-30\tN\tY\n"
).encode("utf-8")


@pytest.fixture(scope="session")
def private_key() -> rsa.RSAPrivateKey:
    """RSA key of the trusted ACL signer."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def untrusted_key() -> rsa.RSAPrivateKey:
    """RSA key whose public half is NOT in the key directory."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def public_pem(key: rsa.RSAPrivateKey) -> bytes:
    return key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def private_pem(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def rsa_sign(key: rsa.RSAPrivateKey, payload: bytes) -> bytes:
    return key.sign(payload, padding.PKCS1v15(), hashes.SHA256())


@pytest.fixture()
def keys_dir(tmp_path: Path, private_key: rsa.RSAPrivateKey) -> Path:
    """Key directory holding <SIGNER>.pub."""
    directory = tmp_path / "keys"
    directory.mkdir()
    (directory / f"{SIGNER}.pub").write_bytes(public_pem(private_key))
    return directory


@pytest.fixture()
def private_key_file(tmp_path: Path, private_key: rsa.RSAPrivateKey) -> Path:
    """PEM file holding the private half of the trusted keypair."""
    path = tmp_path / "signing.key"
    path.write_bytes(private_pem(private_key))
    return path


@pytest.fixture()
def signed_archive(private_key: rsa.RSAPrivateKey) -> Callable[..., bytes]:
    """Factory: build a signed ACL archive for a payload."""

    def _build(payload: bytes = SAMPLE_TSV, signer: str = SIGNER) -> bytes:
        return archive_codec.pack(
            [
                (f"{signer}.acl", payload),
                (archive_codec.SIGNATURE_NAME, rsa_sign(private_key, payload)),
            ]
        )

    return _build
