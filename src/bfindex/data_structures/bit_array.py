import numpy as np
import pyarrow as pa
import pyarrow.compute as pc


class BitArray:
    """Fixed-size packed bit vector backed by a numpy byte buffer.

    Bits are stored LSB-first within each byte, the same layout Arrow uses for
    boolean data, so the array can be viewed as a `pyarrow.BooleanArray`
    without copying. The size never changes after construction.

    Index bounds are checked with assertions only: positions come from the
    hash family which never produces out-of-range values.

    Attributes:
        size (int): Number of addressable bits.

    Example:
        >>> bits = BitArray(100)
        >>> bits.set_bit(42)
        >>> bits.get_bit(42)
        True
        >>> bits.count()
        1

    """
    def __init__(self, size: int):
        if size <= 0:
            raise ValueError(f"bit array size must be positive, got {size}")
        self.size = size
        self._bytes = np.zeros((size + 7) // 8, dtype=np.uint8)

    @classmethod
    def frombytes(cls, data, size: int) -> "BitArray":
        """Rebuild an array of `size` bits from its packed representation"""
        bits = cls(size)
        raw = np.frombuffer(data, dtype=np.uint8)
        if len(raw) != len(bits._bytes):
            raise ValueError(
                f"expected {len(bits._bytes)} bytes for {size} bits, got {len(raw)}"
            )
        tail = size % 8
        if tail and raw[-1] >> tail:
            raise ValueError("padding bits past the end of the array are set")
        bits._bytes[:] = raw
        return bits

    def __len__(self) -> int:
        return self.size

    def __eq__(self, other) -> bool:
        if not isinstance(other, BitArray):
            return NotImplemented
        return self.size == other.size and np.array_equal(self._bytes, other._bytes)

    def _check(self, positions: np.ndarray):
        assert positions.size == 0 or int(positions.max()) < self.size, \
            "bit position out of range"

    def set_bit(self, index: int):
        assert 0 <= index < self.size, "bit position out of range"
        self._bytes[index >> 3] |= np.uint8(1 << (index & 7))

    def get_bit(self, index: int) -> bool:
        assert 0 <= index < self.size, "bit position out of range"
        return bool(self._bytes[index >> 3] & (1 << (index & 7)))

    def set_bits(self, positions: np.ndarray):
        """Set every bit in positions (uint64 array)"""
        self._check(positions)
        masks = np.left_shift(1, positions & 7).astype(np.uint8)
        np.bitwise_or.at(self._bytes, positions >> 3, masks)

    def test_bits(self, positions: np.ndarray) -> bool:
        """True if every bit in positions is set"""
        self._check(positions)
        masks = np.left_shift(1, positions & 7).astype(np.uint8)
        return bool(np.all(self._bytes[positions >> 3] & masks))

    def clear(self):
        self._bytes.fill(0)

    def count(self) -> int:
        """Number of set bits"""
        return pc.sum(self.to_arrow()).as_py() or 0

    def to_arrow(self) -> pa.BooleanArray:
        """Zero-copy boolean view over the packed bits"""
        return pa.Array.from_buffers(
            pa.bool_(), self.size, [None, pa.py_buffer(self._bytes)]
        )

    def tobytes(self) -> bytes:
        return self._bytes.tobytes()

    def copy(self) -> "BitArray":
        clone = BitArray(self.size)
        clone._bytes[:] = self._bytes
        return clone

    def _check_size(self, other: "BitArray"):
        if self.size != other.size:
            raise ValueError(f"bit array sizes differ: {self.size} != {other.size}")

    def __ior__(self, other: "BitArray") -> "BitArray":
        self._check_size(other)
        np.bitwise_or(self._bytes, other._bytes, out=self._bytes)
        return self

    def __iand__(self, other: "BitArray") -> "BitArray":
        self._check_size(other)
        np.bitwise_and(self._bytes, other._bytes, out=self._bytes)
        return self
