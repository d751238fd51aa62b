import base64
import binascii
import logging
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
import pgpy
from pgpy.constants import SymmetricKeyAlgorithm
from pgpy.errors import PGPDecryptionError, PGPEncryptionError, PGPError

from makura.exceptions import EncryptionError

logger = logging.getLogger(__name__)

IV_SIZE = 16
VALID_KEY_SIZES = (16, 24, 32)

PGP_ERRORS = (
    PGPError,
    PGPEncryptionError,
    PGPDecryptionError,
    NotImplementedError,
    ValueError,
    TypeError,
)


class EncryptionService:
    """
    Encrypts serialized messages with AES-CBC (PKCS7 padding) or to a PGP
    public key.

    AES keys live at ``<keys_path>/aes/<key_ref>.key`` and hold the raw key
    bytes (16, 24 or 32 of them) or their base64 encoding; a file that
    decodes as base64 to a valid key size is read as base64. Ciphertext is
    returned as base64 of the random IV followed by the encrypted bytes.

    PGP keys are ASCII-armored files at ``<keys_path>/pgp/<key_ref>_public.asc``
    and, for decryption, ``<keys_path>/pgp/<key_ref>_private.asc`` (without a
    passphrase). PGP output is base64 of the binary OpenPGP message.

    Args:
        keys_path: Directory holding the ``aes/`` and ``pgp/`` key folders.
    """

    def __init__(self, keys_path: str):
        self.keys_path = keys_path

    def key_path(self, key_ref: str) -> str:
        return os.path.join(self.keys_path, "aes", f"{key_ref}.key")

    def load_key(self, key_ref: str) -> bytes:
        if not key_ref:
            raise EncryptionError("Missing AES key reference")

        path = self.key_path(key_ref)
        try:
            with open(path, "rb") as f:
                raw = f.read()
        except OSError as e:
            raise EncryptionError(f"Failed to read AES key '{key_ref}' from {path}: {e}") from e

        # Text key files are base64 and usually end with a newline.
        try:
            decoded = base64.b64decode(raw.strip(), validate=True)
        except (binascii.Error, ValueError):
            decoded = b""
        if len(decoded) in VALID_KEY_SIZES:
            return decoded
        if len(raw) in VALID_KEY_SIZES:
            return raw

        raise EncryptionError(
            f"AES key '{key_ref}' must be 16, 24 or 32 bytes (raw or base64 encoded)"
        )

    def encrypt_aes(self, content: str, key_ref: str) -> str:
        """
        Encrypts ``content`` (UTF-8) with the key ``key_ref``.

        Raises:
            EncryptionError: If the key cannot be loaded or encryption fails.
        """
        key = self.load_key(key_ref)
        iv = os.urandom(IV_SIZE)
        try:
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            padded = padder.update(content.encode("utf-8")) + padder.finalize()
            encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()
        except (ValueError, TypeError) as e:
            raise EncryptionError(f"AES encryption failed: {e}") from e

        logger.debug("Encrypted %d bytes with AES key '%s'", len(padded), key_ref)
        return base64.b64encode(iv + ciphertext).decode("ascii")

    def decrypt_aes(self, payload: str, key_ref: str) -> str:
        """
        Reverses :meth:`encrypt_aes`.

        Raises:
            EncryptionError: If the payload is malformed or the key is wrong.
        """
        key = self.load_key(key_ref)
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise EncryptionError(f"Encrypted payload is not valid base64: {e}") from e

        if len(data) <= IV_SIZE or (len(data) - IV_SIZE) % IV_SIZE:
            raise EncryptionError("Encrypted payload has an invalid length")

        iv, ciphertext = data[:IV_SIZE], data[IV_SIZE:]
        try:
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plain = unpadder.update(padded) + unpadder.finalize()
            return plain.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise EncryptionError(f"AES decryption failed: {e}") from e

    def pgp_key_path(self, key_ref: str, kind: str = "public") -> str:
        return os.path.join(self.keys_path, "pgp", f"{key_ref}_{kind}.asc")

    def load_pgp_key(self, key_ref: str, kind: str = "public") -> pgpy.PGPKey:
        if not key_ref:
            raise EncryptionError("Missing PGP key reference")

        path = self.pgp_key_path(key_ref, kind)
        try:
            with open(path, "r", encoding="utf-8") as f:
                blob = f.read()
        except OSError as e:
            raise EncryptionError(f"Failed to read PGP {kind} key '{key_ref}' from {path}: {e}") from e

        try:
            key, _ = pgpy.PGPKey.from_blob(blob)
        except PGP_ERRORS as e:
            raise EncryptionError(f"Invalid PGP {kind} key '{key_ref}': {e}") from e
        return key

    def encrypt_pgp(self, content: str, key_ref: str) -> str:
        """
        Encrypts ``content`` (UTF-8) to the public key ``key_ref`` with an
        AES-256 session key.

        Raises:
            EncryptionError: If the key cannot be loaded or encryption fails.
        """
        key = self.load_pgp_key(key_ref, "public")
        if not key.is_public:
            key = key.pubkey
        try:
            message = pgpy.PGPMessage.new(content.encode("utf-8"))
            encrypted = key.encrypt(message, cipher=SymmetricKeyAlgorithm.AES256)
        except PGP_ERRORS as e:
            raise EncryptionError(f"PGP encryption failed: {e}") from e

        logger.debug("Encrypted message to PGP key '%s'", key_ref)
        return base64.b64encode(bytes(encrypted)).decode("ascii")

    def decrypt_pgp(self, payload: str, key_ref: str) -> str:
        """
        Reverses :meth:`encrypt_pgp` with the private key ``key_ref``.

        Raises:
            EncryptionError: If the payload is malformed, the key is
                passphrase-protected or does not match.
        """
        key = self.load_pgp_key(key_ref, "private")
        if key.is_public:
            raise EncryptionError(f"PGP key '{key_ref}' holds no private key")
        if key.is_protected:
            raise EncryptionError(f"PGP private key '{key_ref}' is passphrase-protected")

        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise EncryptionError(f"Encrypted payload is not valid base64: {e}") from e

        try:
            encrypted = pgpy.PGPMessage.from_blob(data)
            plain = key.decrypt(encrypted).message
        except PGP_ERRORS as e:
            raise EncryptionError(f"PGP decryption failed: {e}") from e

        if isinstance(plain, (bytes, bytearray)):
            try:
                return bytes(plain).decode("utf-8")
            except UnicodeDecodeError as e:
                raise EncryptionError(f"PGP decryption failed: {e}") from e
        return plain
