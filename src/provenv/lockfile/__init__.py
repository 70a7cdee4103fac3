"""Source pinning table and lock file APIs."""

from .io import (
    LOCKFILE_VERSION,
    parse_lockfile,
    read_lockfile,
    serialize_lockfile,
    write_lockfile,
)
from .model import PIN_KINDS, PinKind, PinnedInput, PinTable

__all__ = [
    "LOCKFILE_VERSION",
    "PIN_KINDS",
    "PinKind",
    "PinTable",
    "PinnedInput",
    "parse_lockfile",
    "read_lockfile",
    "serialize_lockfile",
    "write_lockfile",
]
