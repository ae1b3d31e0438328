"""
Content codec for protected entries.

Stored content carries a tag naming its scheme:

    CRYPTO:       base64(iv || AES-GCM ciphertext), key = SHA-256(secret)
    SIMPLE:       base64(latin-1 bytes XOR secret bytes)
    SIMPLE-UTF8:  base64(UTF-8 bytes XOR secret bytes)
    (no tag)      plaintext

The SIMPLE schemes are an obfuscation fallback, not encryption. They cannot
detect a wrong secret unless the result fails to decode.
"""

import base64
import binascii
import hashlib
import os
from itertools import cycle

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

CRYPTO_TAG = "CRYPTO:"
SIMPLE_TAG = "SIMPLE:"
SIMPLE_UTF8_TAG = "SIMPLE-UTF8:"
PLAIN = "plain"

NONCE_SIZE = 12

# Longest tag first so SIMPLE-UTF8: is not taken for SIMPLE:
_TAGS = (SIMPLE_UTF8_TAG, SIMPLE_TAG, CRYPTO_TAG)


class DecryptionError(ValueError):
    """Content could not be decoded with the given secret"""


def scheme_of(content: str) -> str:
    for tag in _TAGS:
        if content.startswith(tag):
            return tag
    return PLAIN


def is_encrypted(content: str) -> bool:
    return scheme_of(content) != PLAIN


def _key(secret: str) -> bytes:
    return hashlib.sha256(secret.encode('utf-8')).digest()


def _xor(data: bytes, secret: str) -> bytes:
    return bytes(b ^ k for b, k in zip(data, cycle(secret.encode('utf-8'))))


def encode(text: str, secret: str, scheme: str = "crypto") -> str:
    """Encrypt text under secret; scheme is "crypto" or "simple" """
    if not secret:
        raise ValueError("A secret is required to encode content")

    if scheme == "crypto":
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = AESGCM(_key(secret)).encrypt(nonce, text.encode('utf-8'), None)
        return CRYPTO_TAG + base64.b64encode(nonce + ciphertext).decode('ascii')

    if scheme == "simple":
        try:
            raw, tag = text.encode('latin-1'), SIMPLE_TAG
        except UnicodeEncodeError:
            raw, tag = text.encode('utf-8'), SIMPLE_UTF8_TAG
        return tag + base64.b64encode(_xor(raw, secret)).decode('ascii')

    raise ValueError(f"Unknown scheme: {scheme}")


def decode(content: str, secret: str) -> str:
    """Decrypt tagged content; untagged content is returned unchanged"""
    tag = scheme_of(content)
    if tag == PLAIN:
        return content
    if not secret:
        raise DecryptionError("A secret is required to decode protected content")

    try:
        payload = base64.b64decode(content[len(tag):], validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError("Content is not valid base64") from e

    if tag == CRYPTO_TAG:
        if len(payload) <= NONCE_SIZE:
            raise DecryptionError("Ciphertext is too short")
        nonce, ciphertext = payload[:NONCE_SIZE], payload[NONCE_SIZE:]
        try:
            plaintext = AESGCM(_key(secret)).decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise DecryptionError("Decryption failed, check the password") from e
        return plaintext.decode('utf-8')

    raw = _xor(payload, secret)
    if tag == SIMPLE_TAG:
        return raw.decode('latin-1')
    try:
        return raw.decode('utf-8')
    except UnicodeDecodeError as e:
        raise DecryptionError("Decryption failed, check the password") from e
