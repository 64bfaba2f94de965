import logging

import numpy as np

from bfindex.algorithms.bloom_params import (
    FilterParameters,
    compute_parameters,
    expected_false_positive_rate,
)
from bfindex.algorithms.hash_family import HashFamily, generate_salts
from bfindex.data_structures.bit_array import BitArray

logger = logging.getLogger(__name__)


class BloomFilter:
    """A space-efficient probabilistic data structure for membership testing.

    Bloom filters answer whether an item has been inserted before without
    storing the items themselves. There is a small, bounded chance of false
    positives (reporting an item as present when it's not) but never false
    negatives.

    The filter is sized once, at construction, from the expected number of
    items and the acceptable false positive rate. It never grows: inserting
    more items than planned keeps working but the false positive rate rises
    past the target.

    Besides the bits, the filter keeps an approximate count of unique
    insertions. It is only advanced by `contains_and_insert` when the item
    was not already (possibly falsely) reported as present, so re-inserting a
    known item never inflates it.

    Attributes:
        params (FilterParameters | None): Sizing this filter was created from,
            None for filters rebuilt from serialized state.
        size (int): Number of bits in the bit array.
        hash_count (int): Number of bit positions derived per item.
        salts (numpy.ndarray): Per-round salts used by the hash family.
        bits (BitArray): The packed bit array.
        inserted_count (int): Approximate number of unique insertions.

    Example:
        >>> bf = BloomFilter(capacity=1000, error_rate=0.01)
        >>> bf.contains_and_insert(b"\\xc0\\x00\\x02\\x01")
        False
        >>> b"\\xc0\\x00\\x02\\x01" in bf
        True
        >>> bf.inserted_count
        1

    """
    def __init__(self, capacity: int, error_rate: float):
        params = compute_parameters(capacity, error_rate)
        self._setup(params.bit_count, generate_salts(params.hash_round_count),
                    BitArray(params.bit_count))
        self.params = params
        logger.debug("Created Bloom filter: %d bits, %d hash rounds for %d items at p=%g",
                     self.size, self.hash_count, capacity, error_rate)

    @classmethod
    def from_state(cls, bit_count: int, hash_count: int, salts, bits: BitArray) -> "BloomFilter":
        """Rebuild a filter from decoded sizing, salts and bits"""
        salts = np.asarray(salts, dtype=np.uint64)
        if len(salts) != hash_count:
            raise ValueError(f"expected {hash_count} salts, got {len(salts)}")
        if bits.size != bit_count:
            raise ValueError(f"bit array has {bits.size} bits, expected {bit_count}")
        bf = cls.__new__(cls)
        bf._setup(bit_count, salts, bits)
        bf.params = None
        return bf

    def _setup(self, bit_count: int, salts: np.ndarray, bits: BitArray):
        self.size = bit_count
        self.salts = salts
        self.bits = bits
        self.inserted_count = 0
        self._hashes = HashFamily(bit_count, salts)

    @property
    def hash_count(self) -> int:
        return len(self.salts)

    def insert(self, item):
        """Insert item into filter"""
        self.bits.set_bits(self._hashes.positions(item))

    def contains(self, item) -> bool:
        """Check item membership"""
        return self.bits.test_bits(self._hashes.positions(item))

    def contains_and_insert(self, item) -> bool:
        """Insert item unless already present.

        Returns:
        True if the item was already considered present (filter unchanged),
        False if it was newly inserted (unique-insertion counter advanced)
        """
        positions = self._hashes.positions(item)
        if self.bits.test_bits(positions):
            return True
        self.bits.set_bits(positions)
        self.inserted_count += 1
        return False

    def clear(self):
        """Unset every bit and reset the counter, keeping the sizing"""
        self.bits.clear()
        self.inserted_count = 0

    def __contains__(self, item) -> bool:
        return self.contains(item)

    def __len__(self) -> int:
        return self.inserted_count

    def __eq__(self, other) -> bool:
        if not isinstance(other, BloomFilter):
            return NotImplemented
        return self.compatible_with(other) and self.bits == other.bits

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(size={self.size}, hash_count={self.hash_count}, "
                f"inserted_count={self.inserted_count})")

    def copy(self) -> "BloomFilter":
        clone = BloomFilter.from_state(self.size, self.hash_count, self.salts.copy(),
                                       self.bits.copy())
        clone.params = self.params
        clone.inserted_count = self.inserted_count
        return clone

    def fill_ratio(self) -> float:
        """Fraction of bits currently set"""
        return self.bits.count() / self.size

    def effective_false_positive_rate(self) -> float:
        """Estimated false positive rate at the current unique-insertion count"""
        return expected_false_positive_rate(self.size, self.hash_count, self.inserted_count)

    def compatible_with(self, other: "BloomFilter") -> bool:
        """Same size, hash rounds and salts, i.e. items map to the same bits"""
        return (self.size == other.size
                and self.hash_count == other.hash_count
                and np.array_equal(self.salts, other.salts))

    def _check_compatible(self, other: "BloomFilter"):
        if not self.compatible_with(other):
            raise ValueError("Bloom filters differ in size, hash rounds or salts")

    def __ior__(self, other: "BloomFilter") -> "BloomFilter":
        self._check_compatible(other)
        self.bits |= other.bits
        self.inserted_count = 0
        return self

    def __iand__(self, other: "BloomFilter") -> "BloomFilter":
        self._check_compatible(other)
        self.bits &= other.bits
        self.inserted_count = 0
        return self

    def union(self, other: "BloomFilter") -> "BloomFilter":
        """New filter containing the items of both filters"""
        result = self.copy()
        result |= other
        return result

    def intersection(self, other: "BloomFilter") -> "BloomFilter":
        """New filter whose bits are set in both filters"""
        result = self.copy()
        result &= other
        return result

    __or__ = union
    __and__ = intersection
