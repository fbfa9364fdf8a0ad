"""Command lines for the external classification toolchain.

The toolchain is a single binary under ``tool_dir`` with one mode per
operation::

    arda -c (-O READS | -P R1 R2) -R RESULT_BASE -b N [-k K] [flags]   classify
    arda -a DATABASE RESULT.csv                                        abundance
    arda -m ABUNDANCE... -o OUTPUT                                     merge

Classify writes ``RESULT_BASE.csv``; abundance estimation writes
``RESULT_BASE_abundance.txt`` next to it.
"""
from pathlib import Path, PurePosixPath
from typing import List, Optional, Sequence

from ardactl.config import Settings
from .models import ClusterConfig

RESULT_SUFFIX = ".csv"
ABUNDANCE_SUFFIX = "_abundance.txt"
MERGED_ABUNDANCE_NAME = "cluster_abundance_merged.txt"


def result_basename(hostname: str, first_read: str) -> str:
    """``<hostname>_<first read name without its last extension>``."""
    name = PurePosixPath(first_read).name
    stem, dot, _ = name.rpartition(".")
    return f"{hostname}_{stem if dot else name}"


class Toolchain:
    def __init__(self, config: ClusterConfig, binary: Optional[str] = None):
        self.config = config
        self.binary = str(config.tool_dir / (binary or Settings.BINARY))

    def result_base(self, hostname: str, reads: Sequence[str]) -> str:
        return str(self.config.results_path / result_basename(hostname, reads[0]))

    def classify(self, reads: Sequence[str], result_base: str) -> List[str]:
        params = self.config.classification
        argv = [self.binary, "-c"]
        if len(reads) == 2:
            argv += ["-P", reads[0], reads[1]]
        else:
            argv += ["-O", reads[0]]
        argv += ["-R", result_base, "-b", str(params.batch_size)]
        if params.kmer_size > 0:
            argv += ["-k", str(params.kmer_size)]
        if params.min_freq_target is not None:
            argv += ["-t", str(params.min_freq_target)]
        if params.num_threads is not None:
            argv += ["-n", str(params.num_threads)]
        if params.num_devices is not None:
            argv += ["-d", str(params.num_devices)]
        if params.gap_iteration is not None:
            argv += ["-g", str(params.gap_iteration)]
        if params.sampling_factor is not None:
            argv += ["-s", params.sampling_factor]
        for flag in ("tsk", "extended", "gzipped", "verbose", "light"):
            if getattr(params, flag):
                argv.append(f"--{flag}")
        return argv

    def estimate_abundance(self, result_file: str) -> List[str]:
        return [self.binary, "-a", str(self.config.database), result_file]

    def merge(self, abundance_files: Sequence[str], output: str) -> List[str]:
        return [self.binary, "-m", *abundance_files, "-o", output]

    @staticmethod
    def result_file(result_base: str) -> str:
        return result_base + RESULT_SUFFIX

    @staticmethod
    def abundance_file(result_base: str) -> str:
        return result_base + ABUNDANCE_SUFFIX

    @property
    def merged_abundance_path(self) -> Path:
        return self.config.results_path / MERGED_ABUNDANCE_NAME
