import numpy as np
import pyarrow as pa
import pytest
from hypothesis import given, strategies as st

from bfindex.data_structures.bit_array import BitArray


class TestBitArray:
    @given(st.integers(1, 4096).flatmap(
        lambda n: st.tuples(st.just(n), st.sets(st.integers(0, n - 1)))
    ))
    def test_set_and_count(self, case):
        size, indices = case
        bits = BitArray(size)
        bits.set_bits(np.array(sorted(indices), dtype=np.uint64))
        assert bits.count() == len(indices)
        for i in indices:
            assert bits.get_bit(i)
        assert bits.to_arrow().to_pylist() == [i in indices for i in range(size)]

    def test_single_bits(self):
        bits = BitArray(100)
        assert not bits.get_bit(42)
        bits.set_bit(42)
        assert bits.get_bit(42)
        assert bits.count() == 1
        assert len(bits) == 100

    def test_lsb_first_layout(self):
        bits = BitArray(16)
        bits.set_bit(0)
        bits.set_bit(9)
        assert bits.tobytes() == b"\x01\x02"

    def test_duplicate_positions(self):
        bits = BitArray(64)
        bits.set_bits(np.array([3, 3, 11, 11, 11], dtype=np.uint64))
        assert bits.count() == 2
        assert bits.test_bits(np.array([3, 11], dtype=np.uint64))
        assert not bits.test_bits(np.array([3, 12], dtype=np.uint64))

    def test_clear(self):
        bits = BitArray(50)
        bits.set_bits(np.arange(50, dtype=np.uint64))
        assert bits.count() == 50
        bits.clear()
        assert bits.count() == 0

    def test_arrow_view(self):
        bits = BitArray(10)
        bits.set_bit(1)
        view = bits.to_arrow()
        assert isinstance(view, pa.BooleanArray)
        assert len(view) == 10
        assert view.to_pylist()[:3] == [False, True, False]

    def test_frombytes(self):
        bits = BitArray(20)
        bits.set_bits(np.array([0, 7, 19], dtype=np.uint64))
        clone = BitArray.frombytes(bits.tobytes(), 20)
        assert clone == bits
        assert clone is not bits

    def test_frombytes_wrong_length(self):
        with pytest.raises(ValueError, match="expected 3 bytes"):
            BitArray.frombytes(b"\x00\x00", 20)

    def test_frombytes_padding_set(self):
        # bit 10 does not exist in a 10-bit array
        with pytest.raises(ValueError, match="padding"):
            BitArray.frombytes(b"\x00\x04", 10)

    def test_out_of_range(self):
        bits = BitArray(100)
        with pytest.raises(AssertionError):
            bits.set_bit(100)
        with pytest.raises(AssertionError):
            bits.test_bits(np.array([5, 100], dtype=np.uint64))

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            BitArray(0)

    def test_union_and_intersection(self):
        a, b = BitArray(16), BitArray(16)
        a.set_bits(np.array([1, 2], dtype=np.uint64))
        b.set_bits(np.array([2, 3], dtype=np.uint64))
        union = a.copy()
        union |= b
        inter = a.copy()
        inter &= b
        assert union.count() == 3
        assert inter.count() == 1 and inter.get_bit(2)
        assert a.count() == 2
        with pytest.raises(ValueError):
            a |= BitArray(8)
