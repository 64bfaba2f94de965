import logging
import math
import numbers
from dataclasses import dataclass

from bfindex.errors import ParameterError

logger = logging.getLogger(__name__)

# Encoded filter header: bit count (u64) + hash round count (u32)
HEADER_SIZE = 12
SALT_SIZE = 8
MAX_BLOB_LENGTH = 0xFFFFFFFF
MAX_HASH_ROUNDS = 4096
# Largest bit array whose encoding still fits the 32-bit length field
MAX_BIT_COUNT = (MAX_BLOB_LENGTH - HEADER_SIZE - MAX_HASH_ROUNDS * SALT_SIZE) * 8


@dataclass(frozen=True)
class FilterParameters:
    """Optimal Bloom filter sizing derived from capacity and error rate.

    Attributes:
        projected_element_count (int): Expected number of distinct items.
        false_positive_probability (float): Target false positive rate (0 < p < 1).
        bit_count (int): Length of the bit array.
        hash_round_count (int): Number of bit positions per item.

    Example:
        >>> params = compute_parameters(1000, 0.01)
        >>> params.bit_count, params.hash_round_count
        (9586, 7)

    """
    projected_element_count: int
    false_positive_probability: float
    bit_count: int
    hash_round_count: int


def compute_parameters(n: int, p: float) -> FilterParameters:
    """Compute bit count and hash rounds for n items at false positive rate p"""
    if isinstance(n, bool) or not isinstance(n, numbers.Integral):
        raise ParameterError(f"projected element count must be an integer, got {n!r}")
    if n <= 0:
        raise ParameterError(f"projected element count must be positive, got {n}")
    if isinstance(p, bool) or not isinstance(p, numbers.Real):
        raise ParameterError(f"false positive probability must be a number, got {p!r}")
    p = float(p)
    if not 0.0 < p < 1.0:
        raise ParameterError(f"false positive probability must be in (0, 1), got {p}")

    n = int(n)
    m = _calc_size(n, p)
    if m <= 0 or m > MAX_BIT_COUNT:
        raise ParameterError(f"bit count {m} out of range (1..{MAX_BIT_COUNT})")
    k = _calc_hash_count(n, m)
    if k <= 0 or k > MAX_HASH_ROUNDS:
        raise ParameterError(f"hash round count {k} out of range (1..{MAX_HASH_ROUNDS})")

    logger.debug("Computed Bloom filter parameters n=%d p=%g -> m=%d k=%d", n, p, m, k)
    return FilterParameters(n, p, m, k)


def expected_false_positive_rate(bit_count: int, hash_round_count: int,
                                 element_count: int) -> float:
    """Estimated false positive rate once element_count items are stored"""
    if element_count <= 0:
        return 0.0
    return (1.0 - math.exp(-hash_round_count * element_count / bit_count)) ** hash_round_count


def _calc_size(n: int, p: float) -> int:
    m = -(n * math.log(p)) / (math.log(2) ** 2)
    if not math.isfinite(m):
        raise ParameterError(f"bit count overflow for n={n} p={p}")
    return math.ceil(m)


def _calc_hash_count(n: int, m: int) -> int:
    return max(1, round((m / n) * math.log(2)))
