"""Signing keys and signatures in the chain's K1 (secp256k1) formats.

Private keys are accepted as legacy WIF (``5...``) or ``PVT_K1_...``. Signatures
come out as ``SIG_K1_...``: a recovery header byte followed by r and s, with a
ripemd160 checksum suffixed with the key type.
"""
import hashlib
from typing import Protocol

import base58
from ecdsa import SECP256k1, SigningKey, VerifyingKey
from ecdsa.util import sigdecode_string, sigencode_string_canonize

K1_PREFIX = "K1"
WIF_VERSION = 0x80
# Header byte is 27 + 4 (compressed key) + recovery id
SIG_HEADER = 31
MAX_SIGN_ATTEMPTS = 1000


class PrivateKeyError(ValueError):
    """Raised for unreadable private keys."""


def ripemd160(data: bytes) -> bytes:
    h = hashlib.new("ripemd160")
    h.update(data)
    return h.digest()


def _k1_encode(prefix: str, payload: bytes) -> str:
    checksum = ripemd160(payload + K1_PREFIX.encode())[:4]
    return f"{prefix}_{K1_PREFIX}_" + base58.b58encode(payload + checksum).decode()


def _k1_decode(text: str, prefix: str) -> bytes:
    head = f"{prefix}_{K1_PREFIX}_"
    if not text.startswith(head):
        raise PrivateKeyError(f"expected {head}... key")
    try:
        raw = base58.b58decode(text[len(head):])
    except ValueError as e:
        raise PrivateKeyError(f"invalid {prefix}_K1 key: {e}") from e
    payload, checksum = raw[:-4], raw[-4:]
    if ripemd160(payload + K1_PREFIX.encode())[:4] != checksum:
        raise PrivateKeyError("key checksum mismatch")
    return payload


def decode_private_key(key: str) -> bytes:
    """Return the raw 32-byte secret for a WIF or PVT_K1 key."""
    key = key.strip()
    if key.startswith("PVT_"):
        secret = _k1_decode(key, "PVT")
    else:
        try:
            raw = base58.b58decode_check(key)
        except ValueError as e:
            raise PrivateKeyError(f"invalid WIF key: {e}") from e
        if raw[0] != WIF_VERSION:
            raise PrivateKeyError(f"unexpected WIF version byte {raw[0]:#x}")
        secret = raw[1:]
    if len(secret) != 32:
        raise PrivateKeyError(f"private key must be 32 bytes, got {len(secret)}")
    return secret


def is_canonical(sig: bytes) -> bool:
    """Whether a 64-byte r||s signature is accepted by the chain (no high bits, no padding)."""
    r, s = sig[:32], sig[32:]
    return (
        not r[0] & 0x80
        and not (r[0] == 0 and not r[1] & 0x80)
        and not s[0] & 0x80
        and not (s[0] == 0 and not s[1] & 0x80)
    )


class Signer(Protocol):
    def sign(self, digest: bytes, private_key: str) -> str: ...


class K1Signer:
    """Deterministic canonical secp256k1 signer. Performs no I/O."""

    def public_key(self, private_key: str) -> str:
        sk = SigningKey.from_string(decode_private_key(private_key), curve=SECP256k1)
        return _k1_encode("PUB", sk.get_verifying_key().to_string("compressed"))

    def sign(self, digest: bytes, private_key: str) -> str:
        if len(digest) != 32:
            raise ValueError(f"digest must be 32 bytes, got {len(digest)}")
        sk = SigningKey.from_string(decode_private_key(private_key), curve=SECP256k1)
        vk = sk.get_verifying_key()
        for nonce in range(MAX_SIGN_ATTEMPTS):
            sig = sk.sign_digest_deterministic(
                digest,
                hashfunc=hashlib.sha256,
                sigencode=sigencode_string_canonize,
                extra_entropy=nonce.to_bytes(32, "big") if nonce else b"",
            )
            if not is_canonical(sig):
                continue
            recid = _recovery_id(sig, digest, vk)
            return _k1_encode("SIG", bytes([SIG_HEADER + recid]) + sig)
        raise RuntimeError(f"no canonical signature after {MAX_SIGN_ATTEMPTS} attempts")


def _recovery_id(sig: bytes, digest: bytes, vk: VerifyingKey) -> int:
    candidates = VerifyingKey.from_public_key_recovery_with_digest(
        sig, digest, SECP256k1, hashfunc=hashlib.sha256, sigdecode=sigdecode_string
    )
    target = vk.to_string()
    for i, candidate in enumerate(candidates):
        if candidate.to_string() == target:
            return i
    raise RuntimeError("could not recover signing key from signature")
