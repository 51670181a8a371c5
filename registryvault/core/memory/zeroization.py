"""
Key Buffer Wiping
=================

Explicit wiping of the short-lived secrets the hybrid protocol handles: the
data encryption key, the KEM shared secret, the RSA-unwrapped protected key
and the serialized private keys inside the vault.

Only mutable buffers (bytearray, or a writable memoryview over one) can be
wiped. Immutable bytes copies made inside cryptography or kyber-py are out of
reach, so this narrows the exposure window without closing it.
"""

from __future__ import annotations

import ctypes
from contextlib import contextmanager
from typing import Iterator


def secure_zero(data: bytearray | memoryview) -> None:
    """
    Overwrite a key buffer in place.

    A bytearray is wiped through ctypes.memset (ones then zeros); a memoryview
    is wiped by slice assignment so that views over part of a buffer work too.
    """
    size = len(data)
    if not size:
        return

    if isinstance(data, memoryview):
        data[:] = bytes(size)
        return

    try:
        view = (ctypes.c_char * size).from_buffer(data)
    except (TypeError, ValueError, BufferError):
        data[:] = bytes(size)
        return

    address = ctypes.addressof(view)
    ctypes.memset(address, 0xFF, size)
    ctypes.memset(address, 0, size)
    del view


def is_zeroed(data: bytearray | memoryview) -> bool:
    """Return True if every byte of the buffer is zero."""
    return not any(data)


@contextmanager
def ZeroizeContext(*buffers: bytearray) -> Iterator[None]:
    """
    Wipe the given buffers when the block exits, on success or on error.

    Usage:
        dek = bytearray(AesGcmCipher.generate_key())
        with ZeroizeContext(dek):
            sealed = cipher.seal(bytes(dek), nonce, plaintext)
    """
    try:
        yield
    finally:
        for buffer in buffers:
            secure_zero(buffer)
