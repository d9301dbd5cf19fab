"""
Tartarus: archival and data-protection tooling.

Features:

- Streaming tar archiver/extractor with glob-based path filtering.
- Raw deflate compressor/decompressor wrapping any byte sink or source.
- Authenticated encryption stream: AES-CTR keyed from a passphrase plus an
  HMAC-SHA256 tag over the ciphertext (``nonce || ciphertext || tag``).
- A pipeline composing archive -> compress -> encrypt (and the reverse) in one
  bounded-memory pass.
- Flat-file compressor (combined envelope or one ``.deflate`` per file) and
  plain file-explorer helpers, all reachable from the ``tartarus`` CLI.
"""

__version__ = "1.0.0"

__all__ = [
    "constants",
    "errors",
    "filters",
    "archiver",
    "codec",
    "encryption",
    "pipeline",
    "bundle",
    "explorer",
]

# The programmatic API lives in tartarus.pipeline (seal/unseal and the composed
# stream entry points); the individual stages are importable on their own.
