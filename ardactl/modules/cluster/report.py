"""Aggregate report and cross-node abundance merge."""
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

from .executor import LocalExecutor
from .models import ClusterConfig, NodeResult
from .toolchain import Toolchain

logger = logging.getLogger("ardactl.report")

REPORT_NAME = "cluster_report.txt"
RULE = "-" * 60
BANNER = "=" * 40


@dataclass
class RunSummary:
    succeeded: int
    total: int
    total_elapsed: float
    max_elapsed: float

    @property
    def speedup(self) -> float:
        return self.total_elapsed / self.max_elapsed if self.max_elapsed > 0 else 0.0


def summarize(results: Sequence[NodeResult]) -> RunSummary:
    """Totals over the successful nodes; failed nodes only count in ``total``."""
    ok = [r.elapsed_seconds for r in results if r.success]
    return RunSummary(
        succeeded=len(ok),
        total=len(results),
        total_elapsed=sum(ok),
        max_elapsed=max(ok, default=0.0),
    )


class ReportGenerator:
    """Render the run's report and drive the abundance merge.

    ``render`` is pure; ``merge_abundance`` and ``write`` touch the coordinator's
    filesystem and only ever log warnings on failure.
    """

    def __init__(self, config: ClusterConfig, executor=None, toolchain: Optional[Toolchain] = None,
                 processes: int = 1, mode: str = "parallel",
                 excluded: Union[Mapping[str, str], Sequence[str]] = ()):
        self.config = config
        self.executor = executor or LocalExecutor()
        self.toolchain = toolchain or Toolchain(config)
        self.processes = processes
        self.mode = mode
        # host -> preflight error; the cohort only knows the names
        self.excluded = dict(excluded) if isinstance(excluded, Mapping) else dict.fromkeys(excluded, "")

    @property
    def report_path(self) -> Path:
        return self.config.results_path / REPORT_NAME

    def excluded_labels(self) -> List[str]:
        return [f"{host} (FAILED: {reason})" if reason else f"{host} (FAILED)"
                for host, reason in self.excluded.items()]

    def ordered(self, results: Sequence[NodeResult]) -> List[NodeResult]:
        return sorted(results, key=lambda r: self.config.priority(r.hostname))

    def render(self, results: Sequence[NodeResult], merged_path: Optional[str] = None,
               generated_at: Optional[datetime] = None) -> str:
        config = self.config
        params = config.classification
        generated_at = generated_at or datetime.now()

        lines = [
            BANNER,
            "  ARDA Cluster Classification Report",
            f"  Generated: {generated_at:%Y-%m-%d %H:%M:%S}",
            BANNER,
            "",
            "CLUSTER CONFIGURATION",
            f"  Master: {config.master}",
            f"  Workers: {', '.join(config.workers)}",
            f"  Database: {config.database}",
            f"  K-mer size: {params.kmer_size}",
            f"  Batch size: {params.batch_size}",
            f"  Nodes: {len(results)}",
            f"  Processes: {self.processes}",
            f"  Mode: {self.mode}",
        ]
        if self.excluded:
            lines.append(f"  Excluded by preflight: {', '.join(self.excluded_labels())}")
        lines += ["", "NODE RESULTS", RULE]

        for r in self.ordered(results):
            lines.append(f"  {r.hostname}:")
            lines.append(f"    Status: {'SUCCESS' if r.success else 'FAILED'}")
            lines.append(f"    Elapsed: {r.elapsed_seconds:.1f} seconds")
            lines.append(f"    Attempts: {r.attempts}")
            if r.success:
                lines.append(f"    Result: {r.result_file}")
                if r.abundance_file:
                    lines.append(f"    Abundance: {r.abundance_file}")
            else:
                lines.append(f"    Error: {r.error_message}")
            lines.append("")

        if merged_path:
            lines += ["MERGED ABUNDANCE", RULE, f"  {merged_path}", ""]

        summary = summarize(results)
        lines += [
            "SUMMARY",
            RULE,
            f"  Nodes processed: {summary.succeeded}/{summary.total}",
            f"  Total CPU time: {summary.total_elapsed:.1f} seconds",
            f"  Wall clock time: {summary.max_elapsed:.1f} seconds ({self.mode})",
            f"  Speedup: {summary.speedup:.2f}x",
            "",
        ]
        return "\n".join(lines) + "\n"

    def merge_abundance(self, abundance_files: Sequence[str]) -> Optional[str]:
        """Merge per-node abundance files; needs at least two.

        Returns:
            Path of the merged file, or None when skipped or failed
        """
        files = [f for f in abundance_files if f]
        if len(files) < 2:
            logger.info("Skipping abundance merge: %d abundance file(s) available, need at least 2",
                        len(files))
            return None

        output = str(self.toolchain.merged_abundance_path)
        logger.info("=== Merging Abundance Across %d Nodes ===", len(files))
        result = self.executor.run(self.toolchain.merge(files, output), cwd=self.config.tool_dir,
                                   timeout=self.config.options.result_timeout)
        if not result.ok:
            logger.warning("Abundance merge failed with exit code %d", result.returncode)
            return None
        logger.info("Merged abundance written to: %s", output)
        return output

    def write(self, results: Sequence[NodeResult], merged_path: Optional[str] = None) -> Optional[Path]:
        logger.info("=== Generating Aggregate Report ===")
        path = self.report_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self.render(results, merged_path))
        except OSError as e:
            logger.warning("Could not write report to %s: %s", path, e)
            return None
        logger.info("Report written to: %s", path)
        return path
