from datetime import datetime

import pytest

from ardactl.modules.cluster.models import NodeResult
from ardactl.modules.cluster.report import ReportGenerator, summarize

from conftest import FakeExecutor, make_config

WHEN = datetime(2024, 5, 1, 12, 30, 0)


def ok(host, elapsed, abundance=True):
    return NodeResult(hostname=host, success=True, result_file=f"/r/{host}.csv",
                      abundance_file=f"/r/{host}_abundance.txt" if abundance else None,
                      elapsed_seconds=elapsed)


def test_speedup():
    summary = summarize([ok("A", 10), ok("B", 15)])
    assert (summary.succeeded, summary.total) == (2, 2)
    assert summary.total_elapsed == 25
    assert summary.max_elapsed == 15
    assert summary.speedup == pytest.approx(25 / 15)


def test_speedup_zero_without_successes():
    summary = summarize([NodeResult.failure("A", "boom", elapsed=4.0)])
    assert summary.succeeded == 0
    assert summary.total_elapsed == 0
    assert summary.speedup == 0


def test_render_sections_in_order():
    report = ReportGenerator(make_config(), processes=2, mode="parallel")
    text = report.render([ok("B", 15), ok("A", 10)], "/r/merged.txt", generated_at=WHEN)
    order = [text.index(s) for s in ("CLUSTER CONFIGURATION", "NODE RESULTS", "MERGED ABUNDANCE", "SUMMARY")]
    assert order == sorted(order)
    assert "  Generated: 2024-05-01 12:30:00" in text
    assert "  Master: A" in text
    assert "  Processes: 2" in text
    assert text.index("  A:") < text.index("  B:")
    assert "    Abundance: /r/B_abundance.txt" in text
    assert "  Nodes processed: 2/2" in text
    assert "  Total CPU time: 25.0 seconds" in text
    assert "  Wall clock time: 15.0 seconds (parallel)" in text
    assert "  Speedup: 1.67x" in text


def test_render_failed_node():
    report = ReportGenerator(make_config(), excluded={"C": "Node not reachable"})
    failed = NodeResult.failure("B", "classify failed with exit code 1", elapsed=2.0)
    failed.attempts = 4
    text = report.render([ok("A", 10, abundance=False), failed], generated_at=WHEN)
    assert "    Status: FAILED" in text
    assert "    Error: classify failed with exit code 1" in text
    assert "    Attempts: 4" in text
    assert "  Excluded by preflight: C (FAILED: Node not reachable)" in text
    assert "  C:" not in text
    assert "MERGED ABUNDANCE" not in text
    assert "  Nodes processed: 1/2" in text
    assert "  Speedup: 1.00x" in text


def test_render_excluded_without_reason():
    report = ReportGenerator(make_config(), excluded=["C", "D"])
    text = report.render([ok("A", 10)], generated_at=WHEN)
    assert "  Excluded by preflight: C (FAILED), D (FAILED)" in text
    assert "  Nodes: 1" in text
    assert "  Nodes processed: 1/1" in text


def test_render_nothing_succeeded():
    text = ReportGenerator(make_config()).render([NodeResult.failure("A", "x")], generated_at=WHEN)
    assert "  Speedup: 0.00x" in text
    assert "  Nodes processed: 0/1" in text


def test_render_is_stable():
    report = ReportGenerator(make_config())
    results = [ok("A", 10), ok("B", 15)]
    assert report.render(results, generated_at=WHEN) == report.render(list(reversed(results)), generated_at=WHEN)


def test_merge_needs_two_files():
    executor = FakeExecutor()
    report = ReportGenerator(make_config(), executor=executor)
    assert report.merge_abundance(["/r/A_abundance.txt", None]) is None
    assert executor.calls == []


def test_merge(tmp_path):
    executor = FakeExecutor()
    report = ReportGenerator(make_config(tool_dir=tmp_path), executor=executor)
    merged = report.merge_abundance(["/r/A_abundance.txt", "/r/B_abundance.txt"])
    assert merged == str(tmp_path / "results" / "cluster_abundance_merged.txt")
    assert executor.calls[0][1:] == ["-m", "/r/A_abundance.txt", "/r/B_abundance.txt", "-o", merged]


def test_merge_failure_is_a_warning():
    report = ReportGenerator(make_config(), executor=FakeExecutor(fail={"-m"}))
    assert report.merge_abundance(["/a", "/b"]) is None


def test_write(tmp_path):
    report = ReportGenerator(make_config(tool_dir=tmp_path))
    path = report.write([ok("A", 10)])
    assert path == tmp_path / "results" / "cluster_report.txt"
    assert "Nodes processed: 1/1" in path.read_text()


def test_write_failure_is_a_warning(tmp_path):
    blocker = tmp_path / "results"
    blocker.write_text("not a directory")
    assert ReportGenerator(make_config(tool_dir=tmp_path)).write([ok("A", 10)]) is None
