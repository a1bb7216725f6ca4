"""
bit_cursor.py - Sequential MSB-first bit reader/writer

Bit 0 of the stream is the most significant bit of byte 0. Reads consume
bits from the current position; writes append at the current position and
grow the buffer one zero byte at a time, so the final partial byte is always
zero padded.

Usage:
    from bit_cursor import BitCursor

    writer = BitCursor()
    writer.write_uint(1, 6)
    writer.write_uint(2011, 16)
    data = writer.finish()

    reader = BitCursor(data)
    version = reader.read_uint(6)
    max_vendor_id = reader.read_uint(16)
"""

from typing import List, Optional

from consent_errors import TruncatedInput, ValueTooLarge


MAX_UINT_BITS = 64


class BitCursor:
    """Bit-level cursor over a byte buffer."""

    def __init__(self, data: Optional[bytes] = None):
        self._buf = bytearray(data or b'')
        self._pos = 0

    def bit_position(self) -> int:
        """Absolute bit offset of the next read or write."""
        return self._pos

    def bits_remaining(self) -> int:
        """Bits left between the cursor and the end of the buffer."""
        return len(self._buf) * 8 - self._pos

    def _check_width(self, n: int) -> None:
        if not 1 <= n <= MAX_UINT_BITS:
            raise ValueError(f"Bit width must be in [1, {MAX_UINT_BITS}], got {n}")

    def read_uint(self, n: int) -> int:
        """Read the next n bits as an unsigned integer."""
        self._check_width(n)
        if self.bits_remaining() < n:
            raise TruncatedInput(
                f"Need {n} bits at bit {self._pos}, only {self.bits_remaining()} left")

        value = 0
        for _ in range(n):
            byte = self._buf[self._pos >> 3]
            value = (value << 1) | ((byte >> (7 - (self._pos & 7))) & 1)
            self._pos += 1
        return value

    def read_bool(self) -> bool:
        return self.read_uint(1) == 1

    def read_bits(self, n: int) -> List[bool]:
        """Read an opaque run of n bits, one bool per bit."""
        if self.bits_remaining() < n:
            raise TruncatedInput(
                f"Need {n} bits at bit {self._pos}, only {self.bits_remaining()} left")
        return [self.read_bool() for _ in range(n)]

    def write_uint(self, value: int, n: int) -> None:
        """Append value as n bits, MSB first."""
        self._check_width(n)
        if value < 0 or value >= (1 << n):
            raise ValueTooLarge(f"Value {value} does not fit in {n} bits")

        for shift in range(n - 1, -1, -1):
            self._write_bit((value >> shift) & 1)

    def write_bool(self, flag: bool) -> None:
        self._write_bit(1 if flag else 0)

    def write_bits(self, flags: List[bool]) -> None:
        """Append an opaque run of bits."""
        for flag in flags:
            self.write_bool(flag)

    def _write_bit(self, bit: int) -> None:
        index = self._pos >> 3
        if index >= len(self._buf):
            self._buf.append(0)
        if bit:
            self._buf[index] |= 0x80 >> (self._pos & 7)
        else:
            self._buf[index] &= ~(0x80 >> (self._pos & 7)) & 0xFF
        self._pos += 1

    def finish(self) -> bytes:
        """Return the buffer, zero padded to the next byte boundary."""
        return bytes(self._buf)
