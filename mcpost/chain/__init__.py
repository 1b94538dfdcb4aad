from mcpost.chain.store import WeightedChain
from mcpost.chain.error_log import ErrorLog
from mcpost.chain.loading import (
    chain_filenames,
    read_chain_file,
    merge_chain_files,
    load_chain,
    load_chains,
)
from mcpost.chain.parallel import ParallelChainLoader

__all__ = [
    "WeightedChain",
    "ErrorLog",
    "chain_filenames",
    "read_chain_file",
    "merge_chain_files",
    "load_chain",
    "load_chains",
    "ParallelChainLoader",
]
