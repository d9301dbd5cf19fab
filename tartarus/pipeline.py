from __future__ import annotations

import logging
import os
from typing import BinaryIO, Iterable, Optional

from .archiver import PathPredicate, deserialize, serialize
from .codec import DeflateWriter, InflateReader, check_level
from .constants import DEFAULT_COMPRESSION_LEVEL
from .encryption import EncryptingWriter, Passphrase, derive_keys, open_decrypting_reader
from .errors import wrap_os_error
from .filters import PathFilter


logger = logging.getLogger(__name__)


def archive_compress_encrypt(
    root: str,
    sink: BinaryIO,
    compression_level: int,
    passphrase: Passphrase,
    path_filter: Optional[PathPredicate] = None,
) -> int:
    """Tar ``root``, deflate the stream and encrypt it into ``sink`` in one pass.

    The compressor is closed before the cipher writer so the tag covers the
    complete compressed payload. On any error both stages are released without
    finalizing and the exception propagates; whatever reached ``sink`` must be
    discarded. Returns the number of archive entries written.
    """
    check_level(compression_level)
    derive_keys(passphrase)  # reject an empty passphrase before touching the sink
    logger.debug("Sealing %s (level=%d)", root, compression_level)
    with EncryptingWriter(sink, passphrase) as enc:
        with DeflateWriter(enc, compression_level) as comp:
            count = serialize(root, comp, path_filter)
    logger.debug("Sealed %d entries from %s", count, root)
    return count


def decrypt_decompress_extract(source: BinaryIO, dest_root: str, passphrase: Passphrase) -> int:
    """Verify and decrypt ``source``, inflate it and extract the tree into ``dest_root``.

    Nothing is written under ``dest_root`` unless the integrity tag verifies.
    """
    logger.debug("Unsealing into %s", dest_root)
    with open_decrypting_reader(source, passphrase) as plain:
        with InflateReader(plain) as inflated:
            count = deserialize(inflated, dest_root)
    logger.debug("Unsealed %d entries into %s", count, dest_root)
    return count


def seal(
    root: str,
    output_path: str,
    *,
    passphrase: Passphrase,
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
    filters: Optional[Iterable[str]] = None,
) -> int:
    """File-path wrapper for :func:`archive_compress_encrypt`; removes a partial output on failure."""
    path_filter = PathFilter(filters)
    check_level(compression_level)
    derive_keys(passphrase)
    try:
        out = open(output_path, "wb")
    except OSError as exc:
        raise wrap_os_error(exc) from exc
    try:
        with out:
            return archive_compress_encrypt(root, out, compression_level, passphrase, path_filter)
    except BaseException:
        try:
            os.remove(output_path)
        except OSError as exc:
            logger.warning("Failed to remove partial output %s: %s", output_path, exc)
        raise


def unseal(input_path: str, dest_root: str, *, passphrase: Passphrase) -> int:
    try:
        src = open(input_path, "rb")
    except OSError as exc:
        raise wrap_os_error(exc) from exc
    with src:
        return decrypt_decompress_extract(src, dest_root, passphrase)
