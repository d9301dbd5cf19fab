class TartarusError(Exception):
    """Base class for Tartarus-specific errors."""


class FilesystemError(TartarusError, OSError):
    """A filesystem call failed (missing path, permission denied, disk full)."""


class MalformedStreamError(TartarusError):
    """Input stream is truncated or does not follow the expected framing."""


class AuthenticationFailure(TartarusError):
    """Integrity tag mismatch; no plaintext may be trusted or released."""


class InvalidParameter(TartarusError, ValueError):
    """A caller-supplied setting is out of range (compression level, empty passphrase)."""


def wrap_os_error(exc: OSError) -> FilesystemError:
    """Re-express an ``OSError`` as ``FilesystemError`` keeping errno and paths."""
    if isinstance(exc, FilesystemError):
        return exc
    if exc.errno is None:
        return FilesystemError(str(exc))
    return FilesystemError(exc.errno, exc.strerror, exc.filename, None, exc.filename2)
