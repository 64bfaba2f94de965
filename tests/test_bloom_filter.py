import ipaddress

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from bfindex.data_structures.bit_array import BitArray
from bfindex.data_structures.bloom_filter import BloomFilter


def ipv4(i: int) -> bytes:
    return ipaddress.IPv4Address(0x0A000000 + i).packed


class TestBloomFilter:
    @settings(deadline=None)
    @given(st.lists(st.binary(min_size=1, max_size=16), max_size=200))
    def test_no_false_negatives(self, items):
        bf = BloomFilter(capacity=200, error_rate=0.01)
        for i, item in enumerate(items):
            if i % 2:
                bf.insert(item)
            else:
                bf.contains_and_insert(item)
        for item in items:
            assert item in bf

    @given(st.binary(max_size=16))
    def test_idempotent_insert(self, item):
        once = BloomFilter(100, 0.05)
        once.insert(item)
        twice = once.copy()
        twice.insert(item)
        assert twice.bits == once.bits

    @given(st.integers(1, 20))
    def test_counter_ignores_duplicates(self, n):
        bf = BloomFilter(1000, 0.01)
        results = [bf.contains_and_insert(b"\xc0\x00\x02\x01") for _ in range(n)]
        assert results == [False] + [True] * (n - 1)
        assert bf.inserted_count == 1
        assert len(bf) == 1

    def test_insert_leaves_counter(self):
        bf = BloomFilter(1000, 0.01)
        bf.insert(b"a")
        assert bf.inserted_count == 0
        assert bf.contains_and_insert(b"a") is True
        assert bf.inserted_count == 0

    def test_sizing(self):
        bf = BloomFilter(1000, 0.01)
        assert bf.size == 9586
        assert bf.hash_count == 7
        assert len(bf.salts) == 7
        assert bf.bits.size == bf.size
        assert bf.params.projected_element_count == 1000

    def test_ip_address_scenario(self):
        bf = BloomFilter(1000, 0.01)
        bf.contains_and_insert(ipaddress.ip_address("192.0.2.1").packed)
        assert bf.contains(ipaddress.ip_address("192.0.2.1").packed)
        assert not bf.contains(ipaddress.ip_address("203.0.113.5").packed)
        absent = sum(bf.contains(ipv4(i)) for i in range(10000))
        assert absent == 0

    def test_false_positive_rate_at_capacity(self):
        bf = BloomFilter(1000, 0.01)
        for i in range(1000):
            bf.contains_and_insert(ipv4(i))
        false_positives = sum(bf.contains(ipv4(i)) for i in range(1000, 21000))
        assert false_positives / 20000 <= 0.02
        assert bf.inserted_count <= 1000
        assert bf.inserted_count >= 990

    def test_clear(self):
        bf = BloomFilter(1000, 0.01)
        items = [ipv4(i) for i in range(50)]
        for item in items:
            bf.contains_and_insert(item)
        salts = bf.salts.copy()
        bf.clear()
        assert bf.inserted_count == 0
        assert bf.fill_ratio() == 0.0
        assert not any(item in bf for item in items)
        assert bf.size == 9586
        assert np.array_equal(bf.salts, salts)

    def test_copy_is_independent(self):
        bf = BloomFilter(100, 0.01)
        bf.contains_and_insert(b"x")
        clone = bf.copy()
        assert clone == bf
        assert clone.inserted_count == 1
        clone.insert(b"y")
        assert b"y" not in bf
        assert clone != bf

    def test_occupancy(self):
        bf = BloomFilter(1000, 0.01)
        assert bf.effective_false_positive_rate() == 0.0
        for i in range(1000):
            bf.contains_and_insert(ipv4(i))
        assert 0.4 < bf.fill_ratio() < 0.6
        assert bf.effective_false_positive_rate() == pytest.approx(0.01, rel=0.1)

    def test_union_and_intersection(self):
        a = BloomFilter(1000, 0.01)
        b = BloomFilter(1000, 0.01)
        a.contains_and_insert(b"left")
        a.contains_and_insert(b"both")
        b.contains_and_insert(b"both")
        b.contains_and_insert(b"right")

        union = a | b
        assert all(item in union for item in (b"left", b"both", b"right"))
        assert union.inserted_count == 0

        inter = a & b
        assert b"both" in inter
        assert b"left" not in inter
        assert a.inserted_count == 2

    def test_incompatible_union(self):
        with pytest.raises(ValueError):
            BloomFilter(1000, 0.01).union(BloomFilter(2000, 0.01))

    def test_from_state(self):
        bf = BloomFilter(100, 0.01)
        bf.insert(b"z")
        rebuilt = BloomFilter.from_state(bf.size, bf.hash_count, bf.salts, bf.bits.copy())
        assert rebuilt == bf
        assert rebuilt.params is None
        assert rebuilt.inserted_count == 0
        assert b"z" in rebuilt
        with pytest.raises(ValueError):
            BloomFilter.from_state(bf.size, bf.hash_count + 1, bf.salts, bf.bits)
        with pytest.raises(ValueError):
            BloomFilter.from_state(bf.size, bf.hash_count, bf.salts, BitArray(bf.size + 1))

    def test_str_items(self):
        bf = BloomFilter(100, 0.01)
        bf.insert("192.0.2.1")
        assert b"192.0.2.1" in bf


# --------------------------
# Running Tests
# --------------------------
#if __name__ == "__main__":
#    pytest.main([
#        "-v",
#        "--hypothesis-show-statistics",
#        "--cov=bfindex",
#        "--cov-report=html:coverage"
#    ])
# --------------------------
