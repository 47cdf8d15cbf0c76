"""PGP encryption for secret files, delegated to pgpy."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import pgpy
from pgpy.constants import (
    CompressionAlgorithm,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)
from pgpy.errors import PGPError

from .errors import DecryptionFailed, EncryptionFailed, KeyUnavailable
from .utils import atomic_write

logger = logging.getLogger(__name__)

CIPHER = SymmetricKeyAlgorithm.AES256


@dataclass(frozen=True)
class KeyConfig:
    """Key material locations supplied by the configuration loader."""

    secret_key: Optional[Path] = None
    recipient_key: Optional[Path] = None
    passphrase: Optional[str] = None


@dataclass(frozen=True)
class KeyParams:
    """Parameters for generating a new key pair."""

    name: str = "dotconf"
    email: Optional[str] = None
    bits: int = 2048
    passphrase: Optional[str] = None


def load_key(path: Path) -> pgpy.PGPKey:
    """Read an ASCII-armored PGP key from ``path``.

    Raises:
        KeyUnavailable: If the file is missing, unreadable, or not a key.
    """
    try:
        blob = Path(path).read_bytes()
    except FileNotFoundError:
        raise KeyUnavailable(path, "file not found") from None
    except OSError as e:
        raise KeyUnavailable(path, e.strerror) from e

    try:
        key, _ = pgpy.PGPKey.from_blob(blob)
    except Exception as e:
        raise KeyUnavailable(path, f"not a PGP key: {e}") from e
    return key


def encrypt(plaintext: bytes, recipient_key: pgpy.PGPKey) -> bytes:
    """Encrypt ``plaintext`` to ``recipient_key``; returns armored bytes.

    A secret key is accepted and its public half is used.
    """
    public = recipient_key
    if not recipient_key.is_public:
        public = recipient_key.pubkey
    message = pgpy.PGPMessage.new(
        bytes(plaintext), file=False, compression=CompressionAlgorithm.ZLIB
    )
    try:
        encrypted = public.encrypt(message, cipher=CIPHER)
    except (PGPError, NotImplementedError, ValueError) as e:
        raise EncryptionFailed(None, str(e)) from e
    return str(encrypted).encode("ascii")


def decrypt(
    ciphertext: bytes,
    secret_key: pgpy.PGPKey,
    passphrase: Optional[str] = None,
) -> bytes:
    """Decrypt an armored or binary PGP message with ``secret_key``.

    Raises:
        DecryptionFailed: On key mismatch, locked key, or corrupt input.
    """
    if secret_key.is_public:
        raise DecryptionFailed(None, "a public key cannot decrypt")

    try:
        message = pgpy.PGPMessage.from_blob(ciphertext)
    except Exception as e:
        raise DecryptionFailed(None, "corrupt ciphertext") from e
    if not message.is_encrypted:
        raise DecryptionFailed(None, "not an encrypted message")

    try:
        if secret_key.is_protected:
            if passphrase is None:
                raise DecryptionFailed(None, "key is passphrase protected")
            with secret_key.unlock(passphrase):
                decrypted = secret_key.decrypt(message)
        else:
            decrypted = secret_key.decrypt(message)
    except (PGPError, NotImplementedError, ValueError) as e:
        raise DecryptionFailed(None, str(e)) from e

    content = decrypted.message
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


def generate_key(params: KeyParams) -> pgpy.PGPKey:
    """Generate an RSA key pair able to sign and encrypt."""
    key = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, params.bits)
    uid = pgpy.PGPUID.new(params.name, email=params.email or "")
    key.add_uid(
        uid,
        usage={
            KeyFlags.Sign,
            KeyFlags.EncryptCommunications,
            KeyFlags.EncryptStorage,
        },
        hashes=[HashAlgorithm.SHA256],
        ciphers=[SymmetricKeyAlgorithm.AES256],
        compression=[CompressionAlgorithm.ZLIB],
    )
    if params.passphrase:
        key.protect(params.passphrase, CIPHER, HashAlgorithm.SHA256)
    return key


def create_key(key_path: Path, params: KeyParams) -> Tuple[Path, Path]:
    """Generate a key pair and write it out.

    The secret key goes to ``key_path`` (mode 0600, never overwritten);
    the public key to ``<key_path>.pub``.

    Returns:
        Tuple of (secret key path, public key path).
    """
    key_path = Path(key_path)
    public_path = key_path.with_name(f"{key_path.name}.pub")
    try:
        key_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError:
        raise KeyUnavailable(key_path, "key file already exists") from None
    except OSError as e:
        raise KeyUnavailable(key_path, e.strerror) from e

    with os.fdopen(fd, "w") as f:
        try:
            key = generate_key(params)
            f.write(str(key))
        except BaseException:
            key_path.unlink()
            raise

    atomic_write(public_path, str(key.pubkey).encode("ascii"), mode=0o644)
    logger.info(f"Created PGP key {key.fingerprint} at {key_path}")
    return key_path, public_path


class CryptoAdapter:
    """Encrypts and decrypts with keys loaded lazily from a KeyConfig.

    Keys are only read when a secret entry needs them, so a missing key
    fails those entries and nothing else.
    """

    def __init__(self, keys: KeyConfig):
        self.keys = keys
        self._secret: Optional[pgpy.PGPKey] = None
        self._recipient: Optional[pgpy.PGPKey] = None

    def _secret_key(self) -> pgpy.PGPKey:
        if self._secret is None:
            if self.keys.secret_key is None:
                raise KeyUnavailable(None, "no secret key configured")
            self._secret = load_key(self.keys.secret_key)
        return self._secret

    def _recipient_key(self) -> pgpy.PGPKey:
        if self._recipient is None:
            if self.keys.recipient_key is not None:
                self._recipient = load_key(self.keys.recipient_key)
            else:
                self._recipient = self._secret_key()
        return self._recipient

    def encrypt(self, plaintext: bytes) -> bytes:
        try:
            key = self._recipient_key()
        except KeyUnavailable as e:
            raise EncryptionFailed(None, str(e)) from e
        return encrypt(plaintext, key)

    def decrypt(self, ciphertext: bytes) -> bytes:
        try:
            key = self._secret_key()
        except KeyUnavailable as e:
            raise DecryptionFailed(None, str(e)) from e
        return decrypt(ciphertext, key, self.keys.passphrase)
