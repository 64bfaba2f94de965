"""Lifecycle of a single named Bloom filter index.

`BloomFilterIndex` owns one filter and the file it is stored to or loaded
from. The module level functions are the flat interface used by flow-record
processing code, where an index may be missing (None) when indexing is
disabled.
"""
import contextlib
import logging
import os
import stat
import tempfile

from bfindex.codec import read_index, write_index
from bfindex.data_structures.bloom_filter import BloomFilter
from bfindex.errors import (
    AbsentIndexError,
    ErrorCode,
    FileError,
    ParamComputationError,
    ParameterError,
)

logger = logging.getLogger(__name__)


class BloomFilterIndex:
    """Bloom filter index of IP addresses seen in flow records.

    Addresses are added with `add`, which only advances the item counter for
    addresses not already present, so `item_count` approximates the number
    of distinct addresses. The counter is not stored in the index file.

    An index is destroyed exactly once; any use afterwards raises
    `AbsentIndexError` except `contains` and `item_count`, which report an
    empty index.

    Attributes:
        path (str | None): File the index is stored to by default.

    Example:
        >>> idx = BloomFilterIndex.create(1000, 0.01)
        >>> idx.add(ipaddress.ip_address("192.0.2.1").packed)
        >>> idx.contains(ipaddress.ip_address("192.0.2.1").packed)
        True
        >>> idx.store("bfi.flows")
        >>> BloomFilterIndex.load("bfi.flows").item_count()
        0

    """
    def __init__(self, bf: BloomFilter, path=None):
        self._filter = bf
        self.path = None if path is None else os.fspath(path)

    @classmethod
    def create(cls, projected_element_count: int, false_positive_probability: float,
               path=None) -> "BloomFilterIndex":
        """Compute optimal parameters and allocate an empty index"""
        try:
            bf = BloomFilter(projected_element_count, false_positive_probability)
        except ParameterError as exc:
            raise ParamComputationError(exc.detail) from exc
        return cls(bf, path)

    @classmethod
    def load(cls, path) -> "BloomFilterIndex":
        """Load an index stored by `store`; the item counter starts at 0"""
        path = os.fspath(path)
        try:
            fh = open(path, "rb")
        except OSError as exc:
            raise FileError(f"unable to open '{path}': {exc.strerror}",
                            code=ErrorCode.LOAD_FILE_ERR, path=path) from exc
        with fh:
            bf = read_index(fh, path)
        logger.info("Loaded Bloom filter index from %s (%d bits, %d hash rounds)",
                    path, bf.size, bf.hash_count)
        return cls(bf, path)

    @property
    def filter(self) -> BloomFilter:
        if self._filter is None:
            raise AbsentIndexError("index has been destroyed")
        return self._filter

    @property
    def destroyed(self) -> bool:
        return self._filter is None

    def set_filename(self, path):
        if self._filter is None:
            raise AbsentIndexError("index has been destroyed")
        self.path = None if path is None else os.fspath(path)

    def add(self, item):
        """Insert item; duplicates are ignored"""
        self.filter.contains_and_insert(item)

    def contains(self, item) -> bool:
        if self._filter is None:
            return False
        return self._filter.contains(item)

    __contains__ = contains

    def item_count(self) -> int:
        if self._filter is None:
            return 0
        return self._filter.inserted_count

    def clear(self):
        self.filter.clear()

    def store(self, path=None):
        """Write the index to path (default: `self.path`), replacing the file"""
        bf = self.filter
        path = self.path if path is None else os.fspath(path)
        if path is None:
            raise FileError("no file name set for index", code=ErrorCode.STO_FILE_ERR)
        if _replaceable(path):
            written = _store_replacing(bf, path)
        else:
            fh = _open_for_store(path)
            written = _write_and_close(fh, bf, path)
        logger.info("Stored Bloom filter index to %s (%d bytes, %d items)",
                    path, written, bf.inserted_count)

    def destroy(self):
        """Release the filter; calling it twice is an error"""
        if self._filter is None:
            raise AbsentIndexError("index already destroyed")
        self._filter = None
        self.path = None

    def __enter__(self) -> "BloomFilterIndex":
        return self

    def __exit__(self, *exc_info):
        if self._filter is not None:
            self.destroy()

    def __repr__(self) -> str:
        if self._filter is None:
            return f"{type(self).__name__}(destroyed)"
        return f"{type(self).__name__}({self._filter!r}, path={self.path!r})"


def create_index(projected_element_count: int, false_positive_probability: float) -> BloomFilterIndex:
    return BloomFilterIndex.create(projected_element_count, false_positive_probability)


def destroy_index(index: BloomFilterIndex):
    _require(index).destroy()


def add_item(index: BloomFilterIndex, item):
    _require(index).add(item)


def contains_item(index: BloomFilterIndex, item) -> bool:
    """Membership test; a missing index contains nothing"""
    if index is None:
        return False
    return index.contains(item)


def clear_index(index: BloomFilterIndex):
    _require(index).clear()


def item_count(index: BloomFilterIndex) -> int:
    if index is None:
        return 0
    return index.item_count()


def store_index(index: BloomFilterIndex, path):
    _require(index).store(path)


def load_index(path) -> BloomFilterIndex:
    return BloomFilterIndex.load(path)


def _require(index: BloomFilterIndex) -> BloomFilterIndex:
    if index is None:
        raise AbsentIndexError("no index passed")
    return index


def _replaceable(path: str) -> bool:
    """Regular files (or missing ones) are replaced atomically via a temp file"""
    try:
        return stat.S_ISREG(os.stat(path).st_mode)
    except FileNotFoundError:
        return True
    except OSError:
        return False


def _open_for_store(path: str):
    try:
        return open(path, "wb")
    except OSError as exc:
        raise FileError(f"unable to create '{path}': {exc.strerror}",
                        code=ErrorCode.STO_FILE_ERR, path=path) from exc


def _write_and_close(fh, bf: BloomFilter, path: str) -> int:
    try:
        written = write_index(fh, bf, path)
    except BaseException:
        # the write error is the one reported
        with contextlib.suppress(OSError):
            fh.close()
        raise
    try:
        fh.close()
    except OSError as exc:
        raise FileError(str(exc), code=ErrorCode.STO_INDEX, path=path) from exc
    return written


def _store_replacing(bf: BloomFilter, path: str) -> int:
    directory, name = os.path.split(path)
    try:
        mode = stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        mode = 0o644
    try:
        fd, tmp_path = tempfile.mkstemp(prefix=f".{name}.", dir=directory or ".")
    except OSError as exc:
        raise FileError(f"unable to create '{path}': {exc.strerror}",
                        code=ErrorCode.STO_FILE_ERR, path=path) from exc
    try:
        written = _write_and_close(os.fdopen(fd, "wb"), bf, path)
        try:
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, path)
        except OSError as exc:
            raise FileError(f"unable to replace '{path}': {exc.strerror}",
                            code=ErrorCode.STO_INDEX, path=path) from exc
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
    return written
