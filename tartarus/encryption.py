"""Authenticated encryption stream: AES-CTR plus an HMAC-SHA256 tag.

Frame layout::

    nonce (16 bytes) || ciphertext (N bytes) || tag (32 bytes)

Both keys come from one SHA-256 digest of the passphrase: the first half keys
AES-128 in CTR mode (the nonce is the full initial counter block), the second
half keys the HMAC. The tag covers the ciphertext only. Encryption streams;
decryption reads the whole frame and verifies the tag before any plaintext is
handed out.

The key split is a fixed, unsalted scheme kept for compatibility with existing
frames. It offers little protection for low-entropy passphrases.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import BinaryIO, Union

from Cryptodome.Cipher import AES
from Cryptodome.Hash import HMAC, SHA256
from Cryptodome.Random import get_random_bytes

from .constants import BUFFER_SIZE, KEY_SIZE, NONCE_SIZE, TAG_SIZE
from .errors import AuthenticationFailure, InvalidParameter, MalformedStreamError
from .streams import StreamWriter, read_all, read_exact


Passphrase = Union[str, bytes, bytearray]


@dataclass(frozen=True)
class DerivedKeys:
    cipher_key: bytes
    mac_key: bytes


def _passphrase_bytes(passphrase: Passphrase) -> bytes:
    if isinstance(passphrase, str):
        passphrase = passphrase.encode("utf-8")
    if not isinstance(passphrase, (bytes, bytearray)):
        raise InvalidParameter("passphrase must be str or bytes")
    if not passphrase:
        raise InvalidParameter("passphrase must not be empty")
    return bytes(passphrase)


def derive_keys(passphrase: Passphrase) -> DerivedKeys:
    digest = SHA256.new(_passphrase_bytes(passphrase)).digest()
    return DerivedKeys(cipher_key=digest[:KEY_SIZE], mac_key=digest[KEY_SIZE:])


def _ctr(key: bytes, nonce: bytes):
    return AES.new(key, AES.MODE_CTR, nonce=b"", initial_value=nonce)


class EncryptingWriter(StreamWriter):
    """Encrypt-then-MAC writer. The nonce is written on construction, the tag on close."""

    def __init__(self, sink: BinaryIO, passphrase: Passphrase):
        keys = derive_keys(passphrase)
        super().__init__(sink)
        self.nonce = get_random_bytes(NONCE_SIZE)
        self._cipher = _ctr(keys.cipher_key, self.nonce)
        self._mac = HMAC.new(keys.mac_key, digestmod=SHA256)
        sink.write(self.nonce)
        self.ciphertext_len = 0

    def write(self, data) -> int:
        self._check_open()
        n = len(data)
        if n:
            ct = self._cipher.encrypt(data)
            self._mac.update(ct)
            self._sink.write(ct)
            self.ciphertext_len += n
        return n

    def _finalize(self) -> None:
        self._sink.write(self._mac.digest())

    def _release(self) -> None:
        self._cipher = None
        self._mac = None
        super()._release()


class DecryptingReader(io.RawIOBase):
    """Plaintext view over an already verified ciphertext buffer."""

    def __init__(self, ciphertext: memoryview, cipher):
        super().__init__()
        self._ct = ciphertext
        self._cipher = cipher
        self._pos = 0

    def readable(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._ct)

    def readinto(self, b) -> int:
        if self._cipher is None:
            raise ValueError("I/O operation on closed reader")
        n = min(len(b), len(self._ct) - self._pos)
        if n <= 0:
            return 0
        b[:n] = self._cipher.decrypt(self._ct[self._pos:self._pos + n])
        self._pos += n
        return n

    def close(self) -> None:
        self._ct = memoryview(b"")
        self._cipher = None
        super().close()


def open_encrypting_writer(sink: BinaryIO, passphrase: Passphrase) -> EncryptingWriter:
    return EncryptingWriter(sink, passphrase)


def open_decrypting_reader(source: BinaryIO, passphrase: Passphrase) -> DecryptingReader:
    """Read a whole frame from ``source``, verify its tag, return a plaintext reader.

    Raises ``AuthenticationFailure`` on any tag mismatch (tampering or a wrong
    passphrase) and ``MalformedStreamError`` when the frame is too short.
    """
    keys = derive_keys(passphrase)
    nonce = read_exact(source, NONCE_SIZE, "nonce")
    frame = read_all(source, BUFFER_SIZE)
    if len(frame) < TAG_SIZE:
        raise MalformedStreamError("data too short for integrity tag")
    view = memoryview(frame)
    ciphertext = view[:-TAG_SIZE]
    tag = bytes(view[-TAG_SIZE:])
    mac = HMAC.new(keys.mac_key, digestmod=SHA256)
    mac.update(ciphertext)
    try:
        mac.verify(tag)
    except ValueError:
        raise AuthenticationFailure("integrity tag verification failed") from None
    return DecryptingReader(ciphertext, _ctr(keys.cipher_key, nonce))


def encrypt_bytes(data: bytes, passphrase: Passphrase) -> bytes:
    out = io.BytesIO()
    with EncryptingWriter(out, passphrase) as w:
        w.write(data)
    return out.getvalue()


def decrypt_bytes(frame: bytes, passphrase: Passphrase) -> bytes:
    return open_decrypting_reader(io.BytesIO(frame), passphrase).readall()
