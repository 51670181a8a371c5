"""
Tests for explicit buffer wiping.
"""
import pytest

from registryvault.core.memory import ZeroizeContext, is_zeroed, secure_zero


class TestSecureZero:

    def test_bytearray_wiped(self):
        buf = bytearray(b"\x5a" * 32)
        secure_zero(buf)
        assert is_zeroed(buf)
        assert len(buf) == 32

    def test_memoryview_wiped(self):
        buf = bytearray(b"\x01\x02\x03\x04")
        secure_zero(memoryview(buf)[1:3])
        assert buf == bytearray(b"\x01\x00\x00\x04")

    def test_exported_buffer_still_wiped(self):
        buf = bytearray(b"\xff" * 16)
        view = memoryview(buf)
        secure_zero(buf)
        assert is_zeroed(buf)
        view.release()

    def test_empty_buffer(self):
        buf = bytearray()
        secure_zero(buf)
        assert buf == bytearray()


class TestZeroizeContext:

    def test_wipes_on_exit(self):
        dek, secret = bytearray(b"\x11" * 32), bytearray(b"\x22" * 32)
        with ZeroizeContext(dek, secret):
            assert not is_zeroed(dek)
        assert is_zeroed(dek)
        assert is_zeroed(secret)

    def test_wipes_on_error(self):
        dek = bytearray(b"\x33" * 32)
        with pytest.raises(RuntimeError):
            with ZeroizeContext(dek):
                raise RuntimeError("boom")
        assert is_zeroed(dek)
