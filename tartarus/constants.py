# Encrypted frame layout: nonce || ciphertext || tag
NONCE_SIZE = 16
TAG_SIZE = 32

# SHA-256(passphrase) is split in two halves: cipher key | integrity key
DIGEST_SIZE = 32
KEY_SIZE = DIGEST_SIZE // 2

# Copy buffer for every streaming stage
BUFFER_SIZE = 32 * 1024

# Deflate effort: -2 = Huffman only, -1 = library default, 0 = store, 9 = best
HUFFMAN_ONLY = -2
DEFAULT_COMPRESSION_LEVEL = -1
MIN_COMPRESSION_LEVEL = HUFFMAN_ONLY
MAX_COMPRESSION_LEVEL = 9

# Raw deflate stream (no zlib/gzip wrapper)
DEFLATE_WBITS = -15

DEFLATE_SUFFIX = ".deflate"

PASSPHRASE_ENV = "TARTARUS_PASSPHRASE"
