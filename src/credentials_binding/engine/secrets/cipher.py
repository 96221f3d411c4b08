"""Wrapping of secret text for persistence.

Secret values must never appear in plain form in persisted state. A ``Secret``
behaves like pydantic's ``SecretStr`` in memory (masked repr, explicit
``get_secret_value()``), but pickles as an AES-256-GCM encrypted token and is
decrypted again on load.

The master key comes from CREDENTIALS_MASTER_KEY (urlsafe base64, 32 bytes)
or from a key file in the state directory, created on first use.

Example:
    >>> secret = Secret("hunter2")
    >>> secret
    Secret('**********')
    >>> restored = pickle.loads(pickle.dumps(secret))
    >>> restored.get_secret_value()
    'hunter2'
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import secrets
import threading

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import SecretStr

from ..state_config import StateConfig
from .exceptions import SecretDecryptionError, SecretProviderError

logger = logging.getLogger(__name__)

KEY_SIZE = 32
NONCE_SIZE = 12


class SecretCipher:
    """AES-256-GCM cipher for wrapping secret text.

    Tokens are urlsafe base64 of ``nonce || ciphertext``.
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise SecretProviderError("SecretCipher", f"master key must be {KEY_SIZE} bytes")
        self._aead = AESGCM(key)

    @classmethod
    def from_environment(cls) -> SecretCipher:
        """Build a cipher from CREDENTIALS_MASTER_KEY or the state key file.

        Raises:
            SecretProviderError: If the configured key is malformed
        """
        env_key = os.getenv("CREDENTIALS_MASTER_KEY", "").strip()
        if env_key:
            try:
                return cls(base64.urlsafe_b64decode(env_key))
            except (binascii.Error, ValueError) as e:
                raise SecretProviderError(
                    "SecretCipher", "CREDENTIALS_MASTER_KEY is not valid base64"
                ) from e

        key_path = StateConfig.get_master_key_path()
        if not key_path.exists():
            key = secrets.token_bytes(KEY_SIZE)
            # Exclusive create so concurrent processes cannot clobber each other's key
            try:
                fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            except FileExistsError:
                pass
            else:
                with os.fdopen(fd, "wb") as f:
                    f.write(key)
                logger.info(f"Created master key file: {key_path}")

        return cls(key_path.read_bytes())

    def encrypt(self, plaintext: str) -> str:
        """Encrypt text, returning an urlsafe base64 token."""
        nonce = secrets.token_bytes(NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, token: str) -> str:
        """Decrypt a token produced by encrypt().

        Raises:
            SecretDecryptionError: If the token is malformed or the key differs
        """
        try:
            raw = base64.urlsafe_b64decode(token.encode("ascii"))
            plaintext = self._aead.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], None)
        except (InvalidTag, binascii.Error, ValueError) as e:
            raise SecretDecryptionError() from e
        return plaintext.decode("utf-8")


_default_cipher: SecretCipher | None = None
_default_cipher_lock = threading.Lock()


def get_default_cipher() -> SecretCipher:
    """Get the process-wide cipher, building it on first use."""
    global _default_cipher
    with _default_cipher_lock:
        if _default_cipher is None:
            _default_cipher = SecretCipher.from_environment()
        return _default_cipher


def set_default_cipher(cipher: SecretCipher | None) -> None:
    """Replace the process-wide cipher (None resets to lazy init)."""
    global _default_cipher
    with _default_cipher_lock:
        _default_cipher = cipher


class Secret(SecretStr):
    """Secret text that only ever persists in encrypted form."""

    @property
    def encrypted_value(self) -> str:
        """Encrypted token for this secret under the default cipher."""
        return get_default_cipher().encrypt(self.get_secret_value())

    @classmethod
    def from_encrypted(cls, token: str) -> Secret:
        """Rebuild a Secret from a token produced by ``encrypted_value``."""
        return cls(get_default_cipher().decrypt(token))

    def __reduce__(self) -> tuple[object, tuple[str]]:
        return (Secret.from_encrypted, (self.encrypted_value,))


__all__ = ["Secret", "SecretCipher", "get_default_cipher", "set_default_cipher"]
