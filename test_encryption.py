from __future__ import annotations

import hashlib
import hmac
import io
import os
import unittest

from Cryptodome.Cipher import AES

from tartarus.constants import NONCE_SIZE, TAG_SIZE
from tartarus.encryption import (
    EncryptingWriter,
    decrypt_bytes,
    derive_keys,
    encrypt_bytes,
    open_decrypting_reader,
    open_encrypting_writer,
)
from tartarus.errors import AuthenticationFailure, InvalidParameter, MalformedStreamError


def _reference_ctr(key: bytes, nonce: bytes, data: bytes) -> bytes:
    """Big-endian 128-bit counter starting at the nonce, built from raw AES blocks."""
    ecb = AES.new(key, AES.MODE_ECB)
    counter = int.from_bytes(nonce, "big")
    out = bytearray()
    for i in range(0, len(data), 16):
        block = ((counter + i // 16) % (1 << 128)).to_bytes(16, "big")
        ks = ecb.encrypt(block)
        chunk = data[i:i + 16]
        out += bytes(a ^ b for a, b in zip(chunk, ks))
    return bytes(out)


def _flip(frame: bytes, index: int, bit: int = 0) -> bytes:
    b = bytearray(frame)
    b[index] ^= 1 << bit
    return bytes(b)


class KeyDerivationTests(unittest.TestCase):
    def test_split_of_sha256(self):
        digest = hashlib.sha256(b"correct").digest()
        keys = derive_keys("correct")
        self.assertEqual(keys.cipher_key, digest[:16])
        self.assertEqual(keys.mac_key, digest[16:])
        self.assertEqual(derive_keys(b"correct"), keys)

    def test_empty_passphrase_rejected(self):
        for bad in ("", b""):
            with self.assertRaises(InvalidParameter):
                derive_keys(bad)
        sink = io.BytesIO()
        with self.assertRaises(InvalidParameter):
            EncryptingWriter(sink, "")
        self.assertEqual(sink.getvalue(), b"")


class CipherStreamTests(unittest.TestCase):
    def test_roundtrip(self):
        plaintext = b"sensitive data string"
        buf = io.BytesIO()
        enc = open_encrypting_writer(buf, b"testpass")
        enc.write(plaintext)
        enc.close()
        dec = open_decrypting_reader(io.BytesIO(buf.getvalue()), b"testpass")
        self.assertEqual(dec.read(), plaintext)

    def test_frame_layout_matches_reference(self):
        plaintext = os.urandom(1000)
        frame = encrypt_bytes(plaintext, "correct")
        self.assertEqual(len(frame), NONCE_SIZE + len(plaintext) + TAG_SIZE)
        nonce, ct, tag = frame[:NONCE_SIZE], frame[NONCE_SIZE:-TAG_SIZE], frame[-TAG_SIZE:]
        keys = derive_keys("correct")
        self.assertEqual(ct, _reference_ctr(keys.cipher_key, nonce, plaintext))
        self.assertEqual(tag, hmac.new(keys.mac_key, ct, hashlib.sha256).digest())

    def test_counter_wraps_across_full_block(self):
        keys = derive_keys("wrap")
        nonce = b"\xff" * 16
        data = os.urandom(64)
        ct = _reference_ctr(keys.cipher_key, nonce, data)
        frame = nonce + ct + hmac.new(keys.mac_key, ct, hashlib.sha256).digest()
        self.assertEqual(decrypt_bytes(frame, "wrap"), data)

    def test_fresh_nonce_per_call(self):
        a = encrypt_bytes(b"same input", "pw")
        b = encrypt_bytes(b"same input", "pw")
        self.assertNotEqual(a[:NONCE_SIZE], b[:NONCE_SIZE])
        self.assertNotEqual(a[NONCE_SIZE:-TAG_SIZE], b[NONCE_SIZE:-TAG_SIZE])

    def test_chunked_writes_stream_immediately(self):
        sink = io.BytesIO()
        w = EncryptingWriter(sink, "pw")
        self.assertEqual(len(sink.getvalue()), NONCE_SIZE)
        for i in range(10):
            w.write(bytes([i]) * 100)
            self.assertEqual(len(sink.getvalue()), NONCE_SIZE + (i + 1) * 100)
        w.close()
        self.assertEqual(len(sink.getvalue()), NONCE_SIZE + 1000 + TAG_SIZE)
        self.assertEqual(decrypt_bytes(sink.getvalue(), "pw"), b"".join(bytes([i]) * 100 for i in range(10)))

    def test_empty_plaintext(self):
        frame = encrypt_bytes(b"", "pw")
        self.assertEqual(len(frame), NONCE_SIZE + TAG_SIZE)
        self.assertEqual(decrypt_bytes(frame, "pw"), b"")

    def test_wrong_passphrase(self):
        frame = encrypt_bytes(b"root content", "correct")
        with self.assertRaises(AuthenticationFailure):
            decrypt_bytes(frame, "wrong")

    def test_any_single_bit_flip_in_ciphertext_or_tag_fails(self):
        frame = encrypt_bytes(b"root content", "correct")
        for index in range(NONCE_SIZE, len(frame)):
            for bit in (0, 7):
                with self.subTest(index=index, bit=bit):
                    with self.assertRaises(AuthenticationFailure):
                        open_decrypting_reader(io.BytesIO(_flip(frame, index, bit)), "correct")

    def test_nonce_is_not_authenticated(self):
        # Flipping the nonce decrypts to different bytes instead of failing
        frame = encrypt_bytes(b"root content", "correct")
        out = decrypt_bytes(_flip(frame, 0), "correct")
        self.assertEqual(len(out), len(b"root content"))
        self.assertNotEqual(out, b"root content")

    def test_short_frames_are_malformed(self):
        for n in (0, 5, NONCE_SIZE, NONCE_SIZE + TAG_SIZE - 1):
            with self.subTest(n=n):
                with self.assertRaises(MalformedStreamError):
                    decrypt_bytes(os.urandom(n), "pw")

    def test_truncated_frame_fails_authentication(self):
        frame = encrypt_bytes(b"x" * 500, "pw")
        with self.assertRaises(AuthenticationFailure):
            decrypt_bytes(frame[:-1], "pw")
        with self.assertRaises(AuthenticationFailure):
            decrypt_bytes(frame + b"\x00", "pw")

    def test_unclosed_writer_has_no_tag(self):
        sink = io.BytesIO()
        with self.assertRaises(RuntimeError):
            with EncryptingWriter(sink, "pw") as w:
                w.write(b"a" * 100)
                raise RuntimeError("interrupted")
        self.assertEqual(len(sink.getvalue()), NONCE_SIZE + 100)
        with self.assertRaises(AuthenticationFailure):
            decrypt_bytes(sink.getvalue(), "pw")
        with self.assertRaises(ValueError):
            w.write(b"more")

    def test_reader_close_and_small_reads(self):
        data = os.urandom(4096)
        r = open_decrypting_reader(io.BytesIO(encrypt_bytes(data, "pw")), "pw")
        self.assertEqual(len(r), 4096)
        out = bytearray()
        while True:
            chunk = r.read(100)
            if not chunk:
                break
            out += chunk
        self.assertEqual(bytes(out), data)
        r.close()
        self.assertTrue(r.closed)


if __name__ == "__main__":
    unittest.main()
