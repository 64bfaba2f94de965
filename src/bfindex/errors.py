from enum import IntEnum
from typing import Optional


class ErrorCode(IntEnum):
    """Stable numeric codes for every failure the index can report."""
    OK = 0
    BP_COMP_PARAMS = 1
    NO_INDEX = 2
    STO_FILE_ERR = 3
    STO_BYTES = 4
    STO_MAGIC = 5
    STO_IDX_LEN = 6
    STO_INDEX = 7
    LOAD_MEM = 8
    LOAD_FILE_ERR = 9
    LOAD_BYTES = 10
    LOAD_MAGIC = 11
    LOAD_BAD_MAGIC = 12
    LOAD_IDX_LEN = 13
    LOAD_ZERO_LEN = 14
    LOAD_INDEX = 15


_MESSAGES = {
    ErrorCode.OK: "No error",
    ErrorCode.BP_COMP_PARAMS: "Unable to compute Bloom filter parameters",
    ErrorCode.NO_INDEX: "No index",
    ErrorCode.STO_FILE_ERR: "Unable to open index file for writing",
    ErrorCode.STO_BYTES: "Unable to encode index",
    ErrorCode.STO_MAGIC: "Unable to write magic number",
    ErrorCode.STO_IDX_LEN: "Unable to write index length",
    ErrorCode.STO_INDEX: "Unable to write index",
    ErrorCode.LOAD_MEM: "Unable to allocate memory for index",
    ErrorCode.LOAD_FILE_ERR: "Unable to open index file for reading",
    ErrorCode.LOAD_BYTES: "Unable to read index (file truncated)",
    ErrorCode.LOAD_MAGIC: "Unable to read magic number",
    ErrorCode.LOAD_BAD_MAGIC: "Bad magic number (wrong file format or byte order)",
    ErrorCode.LOAD_IDX_LEN: "Unable to read index length",
    ErrorCode.LOAD_ZERO_LEN: "Index length is zero",
    ErrorCode.LOAD_INDEX: "Unable to decode index",
}


def error_message(code: ErrorCode) -> str:
    """Human readable message for an error code"""
    return _MESSAGES[ErrorCode(code)]


class BloomIndexError(Exception):
    """Base class for all index failures.

    Every error carries its own code and detail string, so nothing about a
    failure is kept outside the exception object.

    Attributes:
        code (ErrorCode): Kind of failure.
        detail (str): Context for this particular failure.
        path (str | None): File involved, when the failure is file related.
    """
    code = ErrorCode.OK

    def __init__(self, detail: str = "", *, code: Optional[ErrorCode] = None, path=None):
        if code is not None:
            self.code = ErrorCode(code)
        self.detail = detail
        self.path = None if path is None else str(path)
        super().__init__(str(self))

    @property
    def message(self) -> str:
        return error_message(self.code)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


class ParameterError(BloomIndexError, ValueError):
    code = ErrorCode.BP_COMP_PARAMS


class ParamComputationError(ParameterError):
    """Index creation failed because sizing could not be derived."""


class AbsentIndexError(BloomIndexError):
    code = ErrorCode.NO_INDEX


class EncodingError(BloomIndexError):
    code = ErrorCode.STO_BYTES


class DecodingError(BloomIndexError):
    code = ErrorCode.LOAD_INDEX


class BadMagicError(BloomIndexError):
    code = ErrorCode.LOAD_BAD_MAGIC


class ZeroLengthError(BloomIndexError):
    code = ErrorCode.LOAD_ZERO_LEN


class FileError(BloomIndexError):
    """Open, read, write or truncation failure; the code names the stage."""
    code = ErrorCode.LOAD_FILE_ERR

    @property
    def stage(self) -> str:
        return self.code.name.lower()


class AllocationError(BloomIndexError, MemoryError):
    code = ErrorCode.LOAD_MEM
