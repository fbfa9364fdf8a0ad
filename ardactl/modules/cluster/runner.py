"""Run the classify + abundance sequence for one node."""
import logging
import time
from typing import Callable, Optional

from .models import ClusterConfig, NodeResult
from .toolchain import Toolchain

logger = logging.getLogger("ardactl.runner")


class JobRunner:
    """Execute one node's assigned reads through the external toolchain.

    The same runner serves both dispatch strategies; only the executor
    differs (local subprocesses inside a cohort, SSH in sequential mode).
    """

    def __init__(self, config: ClusterConfig, executor, toolchain: Optional[Toolchain] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config
        self.executor = executor
        self.toolchain = toolchain or Toolchain(config)
        self.clock = clock

    def run_local(self, hostname: str) -> NodeResult:
        """Single attempt. Never raises for job failures.

        Args:
            hostname: Node whose reads should be processed

        Returns:
            NodeResult; ``success`` is set once classification completed,
            whatever happened to abundance estimation
        """
        log_extra = {"node": hostname}
        reads = self.config.reads_for(hostname)
        if not reads:
            logger.error("%s: no reads configured", hostname, extra=log_extra)
            return NodeResult.failure(hostname, "no reads configured")

        start = self.clock()
        mode = "paired-end" if len(reads) == 2 else "single-end"
        logger.info("%s: starting %s classification", hostname, mode, extra=log_extra)

        results_dir = self.config.results_path
        if not self.executor.make_dirs(results_dir):
            logger.warning("%s: could not create results directory %s", hostname, results_dir,
                           extra=log_extra)

        for read_file in reads:
            logger.debug("%s: processing %s", hostname, read_file, extra=log_extra)
            if not self.executor.exists(read_file):
                message = f"read file not found: {read_file}"
                logger.error("%s: %s", hostname, message, extra=log_extra)
                return NodeResult.failure(hostname, message, elapsed=self.clock() - start)

        result_base = self.toolchain.result_base(hostname, reads)
        timeout = self.config.options.result_timeout
        classify = self.executor.run(self.toolchain.classify(reads, result_base), cwd=self.config.tool_dir,
                                     timeout=timeout)
        if not classify.ok:
            message = f"classify failed with exit code {classify.returncode}"
            logger.error("%s: %s", hostname, message, extra=log_extra)
            if classify.output.strip():
                logger.debug("%s: classify output:\n%s", hostname, classify.output, extra=log_extra)
            return NodeResult.failure(hostname, message, elapsed=self.clock() - start)

        result_file = self.toolchain.result_file(result_base)
        logger.info("%s: classification complete: %s", hostname, result_file, extra=log_extra)

        abundance_file = None
        abundance = self.executor.run(self.toolchain.estimate_abundance(result_file), cwd=self.config.tool_dir,
                                      timeout=timeout)
        if abundance.ok:
            abundance_file = self.toolchain.abundance_file(result_base)
            logger.info("%s: abundance estimation complete", hostname, extra=log_extra)
        else:
            logger.warning("%s: abundance estimation failed with exit code %d", hostname,
                           abundance.returncode, extra=log_extra)

        elapsed = self.clock() - start
        logger.info("%s: completed in %.1f seconds", hostname, elapsed, extra=log_extra)
        return NodeResult(
            hostname=hostname,
            success=True,
            result_file=result_file,
            abundance_file=abundance_file,
            elapsed_seconds=elapsed,
        )

    def run(self, hostname: str) -> NodeResult:
        """Run with the configured retry policy.

        A failed node is re-run immediately, with identical inputs, up to
        ``max_retries`` more times when ``retry_failed_nodes`` is on.
        """
        options = self.config.options
        attempts = 1 + (options.max_retries if options.retry_failed_nodes else 0)
        result = None
        for attempt in range(1, attempts + 1):
            result = self.run_local(hostname)
            result.attempts = attempt
            if result.success:
                return result
            if attempt < attempts:
                logger.warning("%s: attempt %d/%d failed (%s), retrying", hostname, attempt, attempts,
                               result.error_message, extra={"node": hostname})

        logger.error("%s: failed permanently after %d attempt(s)", hostname, attempts,
                     extra={"node": hostname})
        return result
