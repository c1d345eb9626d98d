"""
Signature adapter — RSA PKCS#1 v1.5 / SHA-256 detached signatures.

Adapter layer — uses cryptography (PyCA) for key loading, signing and
verification. PKCS#1 v1.5 is deterministic, so a given key and payload
always produce the same signature.

Public keys live in a flat key directory, one PEM file per signer:

    <keys_dir>/<signer_id>.pub

Verification always runs over the exact payload bytes as extracted from the
archive; nothing may decode or normalise them first.
"""

from __future__ import annotations

from pathlib import Path

import structlog
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from railway import ErrorCode
from railway.result import Result

log = structlog.get_logger()

PUBLIC_KEY_SUFFIX = ".pub"


def public_key_path(signer_id: str, keys_dir: Path) -> Path:
    return keys_dir / f"{signer_id}{PUBLIC_KEY_SUFFIX}"


def _is_plain_name(signer_id: str) -> bool:
    return bool(signer_id) and Path(signer_id).name == signer_id and signer_id not in (".", "..")


def _load_public_key(signer_id: str, keys_dir: Path) -> Result[rsa.RSAPublicKey]:
    if not _is_plain_name(signer_id):
        return Result.failure(
            ErrorCode.UNKNOWN_SIGNER_ERROR,
            f"Signer '{signer_id}' is not a valid key name",
        )

    path = public_key_path(signer_id, keys_dir)
    if not path.is_file():
        return Result.failure(
            ErrorCode.UNKNOWN_SIGNER_ERROR,
            f"No public key for signer '{signer_id}' in {keys_dir}",
        )

    return Result.from_computation(
        lambda: serialization.load_pem_public_key(path.read_bytes()),
        ErrorCode.INVALID_KEY_ERROR,
        f"Public key {path} for signer '{signer_id}' is not a valid PEM key",
    ).flat_map(
        lambda key: Result.success(key)
        if isinstance(key, rsa.RSAPublicKey)
        else Result.failure(
            ErrorCode.INVALID_KEY_ERROR,
            f"Public key {path} for signer '{signer_id}' is not an RSA key",
        )
    )


def _check(
    key: rsa.RSAPublicKey,
    signer_id: str,
    payload: bytes,
    signature: bytes,
) -> Result[bytes]:
    try:
        key.verify(signature, payload, padding.PKCS1v15(), hashes.SHA256())
    except InvalidSignature as e:
        return Result.failure(
            ErrorCode.SIGNATURE_MISMATCH_ERROR,
            f"Signature does not match payload signed by '{signer_id}'",
            e,
        )
    log.info("signature.verified", signer=signer_id, payload_bytes=len(payload))
    return Result.success(payload)


def verify(
    signer_id: str,
    payload: bytes,
    signature: bytes,
    keys_dir: Path,
) -> Result[bytes]:
    """
    Verify `signature` over `payload` with the signer's public key.

    Returns Result.success(payload) on success, otherwise one of:
      - UNKNOWN_SIGNER_ERROR: no <signer_id>.pub in keys_dir
      - INVALID_KEY_ERROR: the key file is not a PEM RSA public key
      - SIGNATURE_MISMATCH_ERROR: the signature does not verify
    """
    return _load_public_key(signer_id, keys_dir).flat_map(
        lambda key: _check(key, signer_id, payload, signature)
    )


def _load_private_key(key_file: Path) -> rsa.RSAPrivateKey:
    key = serialization.load_pem_private_key(key_file.read_bytes(), password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise TypeError(f"{key_file} is not an RSA private key")
    return key


def sign(payload: bytes, key_file: Path) -> Result[bytes]:
    """
    Sign `payload` with the PEM RSA private key in `key_file`.

    Returns Result.failure(SIGNING_ERROR) if the key is missing, unreadable,
    passphrase-protected or not RSA.
    """
    return Result.from_computation(
        lambda: _load_private_key(key_file).sign(payload, padding.PKCS1v15(), hashes.SHA256()),
        ErrorCode.SIGNING_ERROR,
        f"Could not sign with private key {key_file}",
    ).peek(lambda signature: log.info("signature.created", key=str(key_file), size=len(signature)))
