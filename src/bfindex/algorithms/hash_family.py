import hashlib

import numpy as np

# Fixed seed so freshly created filters agree on salts across processes
DEFAULT_SEED = 0xA5A5A5A55A5A5A5A
_MASK64 = (1 << 64) - 1


def generate_salts(count: int, seed: int = DEFAULT_SEED) -> np.ndarray:
    """Derive `count` per-round salts from a seed with splitmix64"""
    salts = np.empty(count, dtype=np.uint64)
    state = seed & _MASK64
    for i in range(count):
        state = (state + 0x9E3779B97F4A7C15) & _MASK64
        z = state
        z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & _MASK64
        z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & _MASK64
        salts[i] = z ^ (z >> 31)
    return salts


def as_key(item) -> bytes:
    if isinstance(item, str):
        return item.encode()
    return item


class HashFamily:
    """Double-hashing position generator for a Bloom filter.

    One blake2b digest is split into two 64-bit base hashes which are combined
    with a per-round salt. Digests are decoded little-endian so positions are
    the same on every host.

    Attributes:
        size (int): Number of addressable bit positions.
        salts (numpy.ndarray): One uint64 salt per hash round.
    """
    def __init__(self, size: int, salts: np.ndarray):
        self.size = size
        self.salts = np.ascontiguousarray(salts, dtype=np.uint64)
        self._size = np.uint64(size)
        self._rounds = np.arange(len(self.salts), dtype=np.uint64)

    @property
    def hash_count(self) -> int:
        return len(self.salts)

    def positions(self, item) -> np.ndarray:
        """Bit positions in [0, size) for item, one per round"""
        h1, h2 = np.frombuffer(
            hashlib.blake2b(as_key(item), digest_size=16).digest(), dtype="<u8"
        )
        # uint64 array arithmetic wraps modulo 2**64
        return ((self.salts ^ h1) + self._rounds * h2) % self._size
