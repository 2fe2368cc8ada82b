"""
Fixed-capacity bit vector backing a status list.

Bit ``p`` lives in byte ``p >> 3`` at bit ``p & 7``, where bit 0 is the
least significant bit of its byte. Existing encoded lists depend on this
ordering.
"""

from __future__ import annotations

from vc_status_manager.errors import RangeError


class Bitstring:
    """Bit vector over an owned byte buffer."""

    __slots__ = ("value",)

    def __init__(self, value: bytes | bytearray = b"") -> None:
        """Wrap a copy of ``value``; capacity is fixed at ``len(value) * 8``."""
        self.value = bytearray(value)

    @classmethod
    def zeros(cls, size: int) -> Bitstring:
        """Create an all-zero list holding at least ``size`` bits."""
        if size < 0:
            raise ValueError(f"Size must be non-negative, got {size}")
        return cls(bytes((size + 7) // 8))

    @property
    def capacity(self) -> int:
        return len(self.value) << 3

    def _check(self, position: int) -> None:
        if position < 0 or position >= self.capacity:
            raise RangeError(position, self.capacity)

    def test_bit(self, position: int) -> bool:
        """Return True if the bit at ``position`` is set."""
        self._check(position)
        return bool((self.value[position >> 3] >> (position & 7)) & 1)

    def set_bit(self, position: int) -> Bitstring:
        """Set the bit at ``position`` to 1."""
        self._check(position)
        self.value[position >> 3] |= 1 << (position & 7)
        return self

    def clear_bit(self, position: int) -> Bitstring:
        """Set the bit at ``position`` to 0."""
        self._check(position)
        self.value[position >> 3] &= ~(1 << (position & 7)) & 0xFF
        return self

    def equals(self, other: object) -> bool:
        """Structural equality: same capacity and identical bytes."""
        if not isinstance(other, Bitstring):
            return False
        return self.value == other.value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bitstring):
            return NotImplemented
        return self.equals(other)

    __hash__ = None  # mutable

    def __len__(self) -> int:
        return self.capacity

    def __repr__(self) -> str:
        return f"Bitstring(capacity={self.capacity})"

    def to_base64(self) -> str:
        from vc_status_manager.codec import encode_list

        return encode_list(self)

    @classmethod
    def from_base64(cls, encoded: str) -> Bitstring:
        from vc_status_manager.codec import decode_list

        return decode_list(encoded)
