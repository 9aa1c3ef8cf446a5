"""Error kinds raised by the UDLF service core.

Every error carries the HTTP status the API layer reports it with; the
core itself never looks at ``status_code``.
"""

from typing import Optional


class UdlfError(Exception):
    """Base class for all recoverable service errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequest(UdlfError):
    """Invalid ordinal, page, line number, pattern or name."""

    status_code = 400


class NotFound(UdlfError):
    """Missing file, line or filename."""

    status_code = 404


class OutOfBounds(UdlfError):
    """Ordinal outside 1..N."""

    status_code = 400

    def __init__(self, ordinal: int, total: int):
        super().__init__(f"Ordinal {ordinal} is out of bounds (1..{total})")
        self.ordinal = ordinal
        self.total = total


class PermissionDenied(UdlfError):
    """Path outside the allowlist."""

    status_code = 403


class ConfigFormatError(UdlfError):
    """A config file could not be read."""

    status_code = 400


class StorageError(UdlfError):
    """Read, exists or download failure in a storage backend."""

    status_code = 502


class Unsupported(UdlfError):
    """Operation not offered by the active storage backend."""

    status_code = 501


class SpawnError(UdlfError):
    """The UDLF binary could not be started."""

    status_code = 500


class ExecutionFailed(UdlfError):
    """The UDLF binary exited with a non-zero status."""

    status_code = 500

    def __init__(
        self,
        exit_code: Optional[int],
        stdout: str,
        stderr: str,
    ):
        super().__init__(f"Process exited with code {exit_code}")
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
