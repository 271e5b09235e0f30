from __future__ import annotations

import base64
import binascii
import json
import os
from dataclasses import dataclass
from typing import Any, Callable

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import DecryptionFailure, InvalidArgument


SALT_BYTES = 16  # 128-bit, doubles as the AES block-size IV
KEY_BYTES = 32  # AES-256
KDF_ITERATIONS = 100_000

# Maps the derivation salt to the cipher IV. Only `salt_as_iv` is wire-compatible
# with existing cache entries: the stored `iv` field carries the salt.
IvPolicy = Callable[[bytes], bytes]


def salt_as_iv(salt: bytes) -> bytes:
    return salt


@dataclass(frozen=True)
class EncryptedPayload:
    ciphertext: str  # base64
    salt: str  # hex


def derive_key(password: str, salt: bytes) -> bytes:
    """PBKDF2-HMAC-SHA256 key derivation; returns a 256-bit key."""
    if not password:
        raise InvalidArgument("encryption password is required")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_BYTES,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def _dump_json(value: Any) -> bytes:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class CryptoCodec:
    """
    Password-based encryption of JSON payloads for the remote cache.

    - A fresh random salt is generated for every `encrypt` call and never reused.
    - The key is derived from (password, salt) on every call; nothing is kept.
    - AES-256-CBC with PKCS7 padding. The IV is obtained from the salt through
      `iv_policy` (default: the salt itself, as the stored format requires).
    """

    def __init__(
        self,
        *,
        iv_policy: IvPolicy = salt_as_iv,
        random_bytes: Callable[[int], bytes] = os.urandom,
    ) -> None:
        self._iv_policy = iv_policy
        self._random_bytes = random_bytes

    def encrypt(self, plaintext: Any, password: str) -> EncryptedPayload:
        salt = self._random_bytes(SALT_BYTES)
        key = derive_key(password, salt)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(_dump_json(plaintext)) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(self._iv_policy(salt))).encryptor()
        raw = encryptor.update(padded) + encryptor.finalize()
        return EncryptedPayload(
            ciphertext=base64.b64encode(raw).decode("ascii"),
            salt=salt.hex(),
        )

    def decrypt(self, ciphertext: str, salt: str, password: str) -> Any:
        """Decrypt and parse; every failure mode surfaces as `DecryptionFailure`."""
        try:
            salt_bytes = bytes.fromhex(salt)
            raw = base64.b64decode(ciphertext, validate=True)
        except (ValueError, TypeError, binascii.Error) as ex:
            raise DecryptionFailure("Malformed cache payload") from ex
        if len(salt_bytes) != SALT_BYTES:
            raise DecryptionFailure("Malformed cache payload: bad salt length")

        key = derive_key(password, salt_bytes)
        try:
            decryptor = Cipher(algorithms.AES(key), modes.CBC(self._iv_policy(salt_bytes))).decryptor()
            padded = decryptor.update(raw) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            data = unpadder.update(padded) + unpadder.finalize()
            return json.loads(data.decode("utf-8"))
        except ValueError as ex:
            # padding errors, UnicodeDecodeError and JSONDecodeError are all ValueErrors
            raise DecryptionFailure("Failed to decrypt cache payload") from ex


_default_codec = CryptoCodec()


def encrypt(plaintext: Any, password: str) -> EncryptedPayload:
    return _default_codec.encrypt(plaintext, password)


def decrypt(ciphertext: str, salt: str, password: str) -> Any:
    return _default_codec.decrypt(ciphertext, salt, password)


__all__ = [
    "CryptoCodec",
    "EncryptedPayload",
    "IvPolicy",
    "salt_as_iv",
    "derive_key",
    "encrypt",
    "decrypt",
    "KDF_ITERATIONS",
]
