import os
from dataclasses import dataclass, fields

from bfindex.algorithms.bloom_params import compute_parameters
from bfindex.errors import ParameterError
from bfindex.index import BloomFilterIndex

DEFAULT_FILE_PREFIX = "bfi."
DEFAULT_FALSE_POSITIVE_PROBABILITY = 0.01


@dataclass(frozen=True)
class IndexConfig:
    """Indexing settings supplied by the flow collector configuration.

    Attributes:
        projected_element_count (int): Expected distinct addresses per index.
        false_positive_probability (float): Target false positive rate.
        file_prefix (str): Prefix that turns a data file name into its index
            file name.
        indexing (bool): Whether indexes are built at all.

    Example:
        >>> cfg = IndexConfig(projected_element_count=100000)
        >>> cfg.index_path("/data/2017/01/nfcapd.201701010000")
        '/data/2017/01/bfi.nfcapd.201701010000'

    """
    projected_element_count: int
    false_positive_probability: float = DEFAULT_FALSE_POSITIVE_PROBABILITY
    file_prefix: str = DEFAULT_FILE_PREFIX
    indexing: bool = True

    def __post_init__(self):
        # Fails early with the same checks used at index creation
        compute_parameters(self.projected_element_count, self.false_positive_probability)
        if not self.file_prefix or os.sep in self.file_prefix:
            raise ParameterError(f"invalid index file prefix {self.file_prefix!r}")

    @classmethod
    def from_mapping(cls, mapping) -> "IndexConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(mapping) - known
        if unknown:
            raise ParameterError(f"unknown index options: {', '.join(sorted(unknown))}")
        return cls(**mapping)

    def index_path(self, data_path) -> str:
        """Index file name for a data file: prefix + basename, same directory"""
        directory, name = os.path.split(os.fspath(data_path))
        if not name:
            raise ParameterError(f"data path {data_path!r} has no file name")
        return os.path.join(directory, self.file_prefix + name)

    def create_index(self, data_path=None):
        """New index for data_path, or None when indexing is disabled"""
        if not self.indexing:
            return None
        path = None if data_path is None else self.index_path(data_path)
        return BloomFilterIndex.create(self.projected_element_count,
                                       self.false_positive_probability, path)
