"""Binary encoding of Bloom filters and the index file framing.

Encoded filter (native byte order, standard sizes):

    bit_count         u64
    hash_round_count  u32
    salts             u64 * hash_round_count
    bits              ceil(bit_count / 8) bytes, LSB-first

Index file:

    magic             u16   MAGIC, compared verbatim
    blob_length       u32
    blob              encoded filter

Integers are written in the byte order of the writing machine. Nothing is
converted on load: a file from a host of the other endianness shows up as a
byte-swapped magic and is rejected.
"""
import logging
import os
import stat
import struct
from typing import Optional

import numpy as np
import pyarrow as pa

from bfindex.algorithms.bloom_params import MAX_BLOB_LENGTH
from bfindex.data_structures.bit_array import BitArray
from bfindex.data_structures.bloom_filter import BloomFilter
from bfindex.errors import (
    AllocationError,
    BadMagicError,
    DecodingError,
    EncodingError,
    ErrorCode,
    FileError,
    ZeroLengthError,
)

logger = logging.getLogger(__name__)

MAGIC = 0xBF1D
SWAPPED_MAGIC = 0x1DBF

header_struct = struct.Struct("=QI")
magic_struct = struct.Struct("=H")
length_struct = struct.Struct("=I")
_salt_dtype = np.dtype("=u8")
# Largest single read while loading the blob
READ_CHUNK_SIZE = 1 << 20


class SerializedFilter:
    """Encoded filter bytes owned by the caller until released.

    Use it as a context manager (or call `release()`) so the encoded copy of
    the bit array is dropped as soon as it has been written out.

    Example:
        >>> with to_bytes(bf) as blob:
        ...     fh.write(blob.data)

    """
    def __init__(self, buffer: bytearray):
        self._buffer = buffer

    @property
    def released(self) -> bool:
        return self._buffer is None

    def _check(self):
        if self._buffer is None:
            raise EncodingError("serialized filter already released")

    @property
    def data(self) -> memoryview:
        self._check()
        return memoryview(self._buffer)

    @property
    def length(self) -> int:
        self._check()
        return len(self._buffer)

    def __len__(self) -> int:
        return self.length

    def as_buffer(self) -> pa.Buffer:
        """Zero-copy pyarrow view of the encoded bytes"""
        self._check()
        return pa.py_buffer(self._buffer)

    def release(self):
        """Drop the encoded bytes (safe to call more than once)"""
        self._buffer = None

    def __enter__(self) -> "SerializedFilter":
        return self

    def __exit__(self, *exc_info):
        self.release()


def to_bytes(bf: BloomFilter) -> SerializedFilter:
    """Encode filter sizing, salts and bits into one contiguous buffer"""
    if bf is None or bf.size <= 0 or bf.hash_count <= 0:
        raise EncodingError("filter has no bits to encode")
    salts = np.asarray(bf.salts, dtype=_salt_dtype)
    bits = bf.bits.tobytes()
    total = header_struct.size + salts.nbytes + len(bits)
    if total > MAX_BLOB_LENGTH:
        raise EncodingError(f"encoded filter of {total} bytes exceeds the 32-bit length field")

    buffer = bytearray(total)
    header_struct.pack_into(buffer, 0, bf.size, bf.hash_count)
    offset = header_struct.size
    buffer[offset:offset + salts.nbytes] = salts.tobytes()
    offset += salts.nbytes
    buffer[offset:] = bits
    return SerializedFilter(buffer)


def from_bytes(buffer, length: Optional[int] = None) -> BloomFilter:
    """Decode a filter produced by `to_bytes`; the counter starts at 0"""
    if isinstance(buffer, SerializedFilter):
        buffer = buffer.data
    view = memoryview(buffer).cast("B")
    if length is None:
        length = len(view)
    if length == 0:
        raise DecodingError("encoded filter is empty")
    if length != len(view):
        raise DecodingError(f"length {length} does not match buffer of {len(view)} bytes")
    if length < header_struct.size:
        raise DecodingError(f"encoded filter of {length} bytes is shorter than its header")

    bit_count, hash_count = header_struct.unpack_from(view, 0)
    if bit_count == 0 or hash_count == 0:
        raise DecodingError(f"invalid sizing: {bit_count} bits, {hash_count} hash rounds")
    salts_size = hash_count * _salt_dtype.itemsize
    bits_size = (bit_count + 7) // 8
    expected = header_struct.size + salts_size + bits_size
    if expected != length:
        raise DecodingError(
            f"header describes {expected} bytes ({bit_count} bits, {hash_count} rounds), "
            f"got {length}"
        )

    offset = header_struct.size
    salts = np.frombuffer(view[offset:offset + salts_size], dtype=_salt_dtype)
    offset += salts_size
    try:
        bits = BitArray.frombytes(view[offset:], bit_count)
    except MemoryError as exc:
        raise AllocationError(f"unable to allocate {bits_size} bytes of bits") from exc
    except ValueError as exc:
        raise DecodingError(str(exc)) from exc
    return BloomFilter.from_state(bit_count, hash_count, salts.astype(np.uint64), bits)


def write_index(fh, bf: BloomFilter, path=None) -> int:
    """Write magic, blob length and encoded filter to an open binary file.

    Returns:
    Number of bytes written
    """
    with to_bytes(bf) as blob:
        _write(fh, magic_struct.pack(MAGIC), ErrorCode.STO_MAGIC, path)
        _write(fh, length_struct.pack(blob.length), ErrorCode.STO_IDX_LEN, path)
        _write(fh, blob.as_buffer(), ErrorCode.STO_INDEX, path)
        try:
            fh.flush()
        except OSError as exc:
            raise FileError(str(exc), code=ErrorCode.STO_INDEX, path=path) from exc
        return magic_struct.size + length_struct.size + blob.length


def read_index(fh, path=None) -> BloomFilter:
    """Read and check the file framing, then decode the filter"""
    raw = _read(fh, magic_struct.size, ErrorCode.LOAD_MAGIC, path, "magic number")
    (magic,) = magic_struct.unpack(raw)
    if magic != MAGIC:
        if magic == SWAPPED_MAGIC:
            detail = f"got {magic:#06x}, file was written with the other byte order"
        else:
            detail = f"got {magic:#06x}, expected {MAGIC:#06x}"
        raise BadMagicError(detail, path=path)

    raw = _read(fh, length_struct.size, ErrorCode.LOAD_IDX_LEN, path, "index length")
    (length,) = length_struct.unpack(raw)
    if length == 0:
        raise ZeroLengthError("length field is zero", path=path)

    available = _remaining_size(fh)
    if available is not None and available < length:
        raise FileError(f"length field says {length} bytes, file holds {available}",
                        code=ErrorCode.LOAD_BYTES, path=path)
    blob = _read_blob(fh, length, path)

    try:
        trailing = fh.read(1)
    except OSError as exc:
        raise FileError(str(exc), code=ErrorCode.LOAD_BYTES, path=path) from exc
    if trailing:
        logger.warning("Ignoring trailing data after index in %s", path)

    try:
        return from_bytes(blob, length)
    except DecodingError as exc:
        exc.path = None if path is None else str(path)
        raise


def _write(fh, data, code: ErrorCode, path):
    try:
        fh.write(data)
    except OSError as exc:
        raise FileError(str(exc), code=code, path=path) from exc


def _read(fh, size: int, code: ErrorCode, path, what: str) -> bytes:
    try:
        raw = fh.read(size)
    except OSError as exc:
        raise FileError(str(exc), code=code, path=path) from exc
    if len(raw) != size:
        raise FileError(f"file ends before {what} ({len(raw)} of {size} bytes)",
                        code=code, path=path)
    return raw


def _remaining_size(fh) -> Optional[int]:
    """Bytes left in a regular file, None when it cannot be told"""
    try:
        st = os.fstat(fh.fileno())
        position = fh.tell()
    except (AttributeError, OSError):
        return None
    if not stat.S_ISREG(st.st_mode):
        return None
    return max(0, st.st_size - position)


def _read_blob(fh, length: int, path) -> bytes:
    # Chunked so a corrupt length field cannot force one huge allocation
    chunks = []
    remaining = length
    try:
        while remaining:
            chunk = fh.read(min(remaining, READ_CHUNK_SIZE))
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        if remaining:
            raise FileError(f"expected {length} bytes of index, got {length - remaining}",
                            code=ErrorCode.LOAD_BYTES, path=path)
        return b"".join(chunks)
    except OSError as exc:
        raise FileError(str(exc), code=ErrorCode.LOAD_BYTES, path=path) from exc
    except MemoryError as exc:
        raise AllocationError(f"unable to allocate {length} bytes", path=path) from exc
