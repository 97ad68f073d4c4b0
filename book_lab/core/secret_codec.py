"""
Symmetric encryption for the one sensitive setting (the OpenAI API key).

Values are encrypted with AES-256-CBC under a key derived with scrypt from a
passphrase embedded in the application, and stored as ``<iv hex>:<ciphertext hex>``.
This keeps the key out of plain sight on disk; anyone with the application
code can still decrypt it.
"""

import os
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from book_lab.core.exceptions import SecretDecodeError


APP_PASSPHRASE = b"book-writing-assistant-secret"
APP_SALT = b"salt"
IV_SIZE = 16


class SecretCodec:
    """Encrypt and decrypt short strings with a fresh IV per call."""

    def __init__(self, passphrase: bytes = APP_PASSPHRASE, salt: bytes = APP_SALT):
        self._key = self._derive_key(passphrase, salt)

    @staticmethod
    def _derive_key(passphrase: bytes, salt: bytes) -> bytes:
        kdf = Scrypt(salt=salt, length=32, n=2 ** 14, r=8, p=1)
        return kdf.derive(passphrase)

    def encrypt(self, plaintext: str, iv: Optional[bytes] = None) -> str:
        """Encrypt ``plaintext`` and return ``iv_hex:ciphertext_hex``."""
        iv = iv or os.urandom(IV_SIZE)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, token: str) -> str:
        """Decrypt a value produced by :meth:`encrypt`."""
        iv_hex, sep, ciphertext_hex = token.partition(":")
        if not sep:
            raise SecretDecodeError("Encrypted value is missing its IV")

        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(ciphertext_hex)
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()

            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except ValueError as e:
            raise SecretDecodeError(f"Could not decrypt stored secret: {e}") from e
