"""
Data models for cluster classification runs.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ardactl.logging import LEVELS

# Characters that the configuration record uses as delimiters. They are
# rejected in identifiers and paths rather than escaped.
HOSTNAME_RESERVED = (":", ",", " ", "\t", "\n", "\r")
PATH_RESERVED = (",", "\n", "\r")
SCALAR_RESERVED = ("\n", "\r")


def _reject(value: str, reserved: Tuple[str, ...], what: str) -> str:
    bad = [c for c in reserved if c in value]
    if bad:
        shown = ", ".join(repr(c) for c in bad)
        raise ValueError(f"{what} {value!r} contains reserved character(s): {shown}")
    return value


def _split_csv(value) -> List[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(part).strip() for part in value]


class ClassificationParams(BaseModel):
    """Parameters handed through to the classify command.

    Only ``kmer_size`` and ``batch_size`` are always sent; the rest are
    emitted as flags when set.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    kmer_size: int = Field(default=31, gt=0, description="k-mer length (-k)")
    batch_size: int = Field(default=32, gt=0, description="Reads per batch (-b)")
    min_freq_target: Optional[int] = Field(default=None, ge=0, description="-t")
    num_threads: Optional[int] = Field(default=None, gt=0, description="-n")
    num_devices: Optional[int] = Field(default=None, gt=0, description="-d")
    gap_iteration: Optional[int] = Field(default=None, ge=0, description="-g")
    sampling_factor: Optional[str] = Field(default=None, description="-s")
    tsk: bool = False
    extended: bool = False
    gzipped: bool = False
    verbose: bool = False
    light: bool = True

    @field_validator("sampling_factor", mode="before")
    @classmethod
    def blank_sampling_factor(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        if not v:
            return None
        return _reject(v, SCALAR_RESERVED, "sampling_factor")


class RunOptions(BaseModel):
    """How the run is dispatched, retried and collected."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    master_processes_reads: bool = True
    keep_local_results: bool = True
    retry_failed_nodes: bool = True
    max_retries: int = Field(default=3, ge=0)
    collect_results_to_master: bool = True
    ssh_timeout: int = Field(default=30, gt=0, description="Seconds per remote probe or fetch")
    result_timeout: int = Field(
        default=21600, gt=0,
        description="Seconds the coordinator waits for one cohort member's result"
    )


class LogSettings(BaseModel):
    """Logging section of the cluster file."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: str = "info"
    file: str = "cluster_run.log"
    show_progress: bool = True

    @field_validator("level")
    @classmethod
    def known_level(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in LEVELS:
            raise ValueError(f"unknown log level {v!r} (expected one of {', '.join(LEVELS)})")
        return v

    @field_validator("file")
    @classmethod
    def single_line_file(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("log file name must not be empty")
        return _reject(v, SCALAR_RESERVED, "log file")


class ClusterConfig(BaseModel):
    """Validated cluster topology, per-node reads and run options.

    Instances are frozen: the coordinator builds one, and every other process
    receives an equal value through :class:`ConfigDistributor`.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    master: str
    workers: Tuple[str, ...]
    tool_dir: Path
    database: Path
    results_dir: Path = Path("results")
    reads: Dict[str, Tuple[str, ...]] = Field(default_factory=dict)
    classification: ClassificationParams = Field(default_factory=ClassificationParams)
    options: RunOptions = Field(default_factory=RunOptions)
    log: LogSettings = Field(default_factory=LogSettings)

    @field_validator("master", mode="before")
    @classmethod
    def clean_master(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("master node not specified")
        return _reject(v, HOSTNAME_RESERVED, "hostname")

    @field_validator("workers", mode="before")
    @classmethod
    def clean_workers(cls, v):
        workers = _split_csv(v or [])
        if not workers:
            raise ValueError("no worker nodes specified")
        for worker in workers:
            _reject(worker, HOSTNAME_RESERVED, "hostname")
        return tuple(workers)

    @field_validator("tool_dir", "database", "results_dir", mode="before")
    @classmethod
    def non_empty_path(cls, v, info):
        v = str(v if v is not None else "").strip()
        if not v:
            raise ValueError(f"{info.field_name} must not be empty")
        return _reject(v, SCALAR_RESERVED, info.field_name)

    @field_validator("reads", mode="before")
    @classmethod
    def clean_reads(cls, v):
        reads = {}
        for host, files in (v or {}).items():
            host = str(host).strip()
            _reject(host, HOSTNAME_RESERVED, "hostname")
            files = _split_csv(files or [])
            for path in files:
                _reject(path, PATH_RESERVED, "read path")
            if len(files) not in (1, 2):
                raise ValueError(
                    f"{host}: expected 1 (single-end) or 2 (paired-end) read files, got {len(files)}"
                )
            reads[host] = tuple(files)
        return reads

    @model_validator(mode="after")
    def check_topology(self) -> "ClusterConfig":
        if len(set(self.workers)) != len(self.workers):
            raise ValueError("duplicate worker nodes")
        if self.master in self.workers:
            raise ValueError(f"master {self.master!r} must not also be listed as a worker")
        known = set(self.nodes)
        unknown = [host for host in self.reads if host not in known]
        if unknown:
            raise ValueError(f"reads configured for unknown node(s): {', '.join(unknown)}")
        return self

    @property
    def nodes(self) -> Tuple[str, ...]:
        """Master followed by workers, in priority order."""
        return (self.master,) + self.workers

    @property
    def results_path(self) -> Path:
        return self.tool_dir / self.results_dir

    @property
    def log_path(self) -> Path:
        return self.tool_dir / "logs" / self.log.file

    def reads_for(self, hostname: str) -> Tuple[str, ...]:
        return self.reads.get(hostname, ())

    def is_paired(self, hostname: str) -> bool:
        return len(self.reads_for(hostname)) == 2

    def candidates(self) -> List[str]:
        """Nodes to health-check before dispatch."""
        nodes = []
        if self.options.master_processes_reads:
            nodes.append(self.master)
        nodes.extend(w for w in self.workers if w in self.reads)
        return nodes

    def priority(self, hostname: str) -> Tuple[int, str]:
        """Sort key putting known nodes in configured order, strangers last."""
        try:
            return (self.nodes.index(hostname), hostname)
        except ValueError:
            return (len(self.nodes), hostname)


@dataclass
class NodeStatus:
    """Readiness of one node, produced fresh by every preflight."""
    hostname: str
    reachable: bool = False
    database_ok: bool = False
    reads_ok: bool = False
    binary_ok: bool = False
    disk_ok: bool = False
    disk_free_gb: Optional[int] = None
    error_message: str = ""

    @property
    def ready(self) -> bool:
        # Disk space is advisory and never blocks a node
        return self.reachable and self.database_ok and self.reads_ok and self.binary_ok


@dataclass
class NodeResult:
    """Outcome of one node's classify + abundance sequence."""
    hostname: str
    success: bool = False
    result_file: Optional[str] = None
    abundance_file: Optional[str] = None
    elapsed_seconds: float = 0.0
    error_message: str = ""
    attempts: int = 1

    def __post_init__(self):
        if self.elapsed_seconds < 0:
            raise ValueError(f"elapsed_seconds must be >= 0, got {self.elapsed_seconds}")
        if self.success and self.error_message:
            raise ValueError("a successful result cannot carry an error message")
        if not self.success and not self.error_message:
            self.error_message = "unknown error"

    @classmethod
    def failure(cls, hostname: str, message: str, elapsed: float = 0.0) -> "NodeResult":
        return cls(hostname=hostname, success=False, error_message=message, elapsed_seconds=elapsed)
