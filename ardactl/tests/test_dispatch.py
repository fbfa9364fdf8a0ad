import sys

from ardactl.modules.cluster.dispatch import (
    CohortLauncher,
    SequentialDispatch,
    cohort_plan,
    dispatch_order,
    run_cohort_member,
)
from ardactl.modules.cluster.models import NodeStatus
from ardactl.modules.ssh import CommandResult

from conftest import FakeClock, FakeExecutor, FakeSSH, healthy, make_config, run_cohort


def ready(host):
    return NodeStatus(hostname=host, reachable=True, database_ok=True, reads_ok=True, binary_ok=True)


def run_pair(tmp_path, b_fail=(), **options):
    """Master A (10s) and worker B (15s) as a two-rank cohort."""
    config = make_config(tool_dir=tmp_path, **options)
    clocks = [FakeClock(), FakeClock()]
    executors = [
        FakeExecutor(clock=clocks[0], durations={"-c": 10}),
        FakeExecutor(clock=clocks[1], durations={"-c": 15}, fail=b_fail),
    ]
    ssh = FakeSSH()

    def body(comm):
        return run_cohort_member(
            comm,
            config if comm.rank == 0 else None,
            ssh=ssh if comm.rank == 0 else None,
            executor=executors[comm.rank],
            clock=clocks[comm.rank],
        )

    codes, errors, _ = run_cohort(2, body)
    assert errors == [None, None]
    report = (tmp_path / "results" / "cluster_report.txt").read_text()
    return codes, report, executors, ssh


def test_dispatch_order():
    config = make_config()
    statuses = [ready("B"), NodeStatus(hostname="A")]
    assert dispatch_order(config, statuses) == ["B"]
    assert dispatch_order(config, [ready("B"), ready("A")]) == ["A", "B"]


def test_cohort_plan():
    config = make_config(reads={"B": ["/data/p1.fastq"]}, master_processes_reads=False)
    assert cohort_plan(config) == ["A", "B"]
    assert cohort_plan(config, excluded=["B"]) == ["A"]


def test_two_node_run(tmp_path):
    codes, report, executors, ssh = run_pair(tmp_path)
    assert codes == [0, 0]
    assert "  Nodes processed: 2/2" in report
    assert "  Total CPU time: 25.0 seconds" in report
    assert "  Wall clock time: 15.0 seconds (parallel)" in report
    assert "  Speedup: 1.67x" in report
    assert "MERGED ABUNDANCE" in report
    assert report.count("    Status: SUCCESS") == 2

    merge = [argv for argv in executors[0].calls if argv[1] == "-m"]
    assert merge == [[
        str(tmp_path / "bin" / "arda"), "-m",
        str(tmp_path / "results" / "A_r1_abundance.txt"),
        str(tmp_path / "results" / "aggregated" / "B_abundance.txt"),
        "-o", str(tmp_path / "results" / "cluster_abundance_merged.txt"),
    ]]
    assert [c[0] for c in ssh.copies] == ["B", "B"]


def test_two_node_run_with_failing_worker(tmp_path):
    codes, report, executors, _ = run_pair(tmp_path, b_fail={"-c"}, retry_failed_nodes=False)
    assert codes == [0, 0]
    assert "  Nodes processed: 1/2" in report
    assert "    Error: classify failed with exit code 1" in report
    assert "MERGED ABUNDANCE" not in report
    assert "-m" not in executors[0].modes()
    assert executors[1].modes() == ["-c"]


def test_run_fails_when_no_node_succeeds(tmp_path):
    config = make_config(tool_dir=tmp_path, reads={"B": ["/data/p1.fastq"]}, max_retries=0)
    executors = [FakeExecutor(), FakeExecutor(fail={"-c"})]

    def body(comm):
        return run_cohort_member(comm, config if comm.rank == 0 else None, excluded=["A"],
                                 ssh=FakeSSH(), executor=executors[comm.rank])

    codes, errors, _ = run_cohort(2, body)
    assert errors == [None, None]
    assert codes[0] == 1
    assert executors[0].calls == []


def test_sequential_dispatch(tmp_path):
    config = make_config(tool_dir=tmp_path, max_retries=0)
    ssh = FakeSSH()
    local = FakeExecutor()
    dispatch = SequentialDispatch(config, ssh, coordinator_host="A", local_executor=local)

    results = dispatch.run(["A", "B"])
    assert [r.success for r in results] == [True, True]
    assert local.modes() == ["-c", "-a"]
    remote = ssh.commands_for("B")
    assert any(c.startswith(f"cd {tmp_path} && {tmp_path}/bin/arda -c -P /data/p1.fastq /data/p2.fastq")
               for c in remote)


def test_sequential_jobs_are_bounded_by_result_timeout(tmp_path):
    config = make_config(tool_dir=tmp_path, result_timeout=60, max_retries=0)
    ssh = FakeSSH()
    local = FakeExecutor()
    dispatch = SequentialDispatch(config, ssh, coordinator_host="A", local_executor=local)

    dispatch.run(["A", "B"])
    binary = f"{tmp_path}/bin/arda"
    jobs = {cmd: t for (host, cmd), t in ssh.timeouts.items()
            if host == "B" and (f"{binary} -c" in cmd or f"{binary} -a" in cmd)}
    assert len(jobs) == 2
    assert set(jobs.values()) == {60}
    assert local.timeouts == [60, 60]


def test_sequential_hung_node_fails(tmp_path):
    def hangs(host, command):
        if "bin/arda -c" in command:
            return CommandResult(255, "Command timed out after 60 seconds")
        return healthy(host, command)

    config = make_config(tool_dir=tmp_path, result_timeout=60, max_retries=0)
    dispatch = SequentialDispatch(config, FakeSSH(hangs), coordinator_host="A", local_executor=FakeExecutor())
    a, b = dispatch.run(["A", "B"])
    assert a.success
    assert not b.success
    assert b.error_message == "classify failed with exit code 255"


def test_sequential_execute_writes_report(tmp_path):
    config = make_config(tool_dir=tmp_path)
    dispatch = SequentialDispatch(config, FakeSSH(), coordinator_host="A", local_executor=FakeExecutor())
    assert dispatch.execute(["A", "B"], excluded={"C": "Node not reachable"}) == 0
    report = (tmp_path / "results" / "cluster_report.txt").read_text()
    assert "  Mode: sequential" in report
    assert "  Nodes processed: 2/2" in report
    assert "  Excluded by preflight: C (FAILED: Node not reachable)" in report
    assert "  C:" not in report


def test_launcher_command(tmp_path, monkeypatch):
    monkeypatch.setattr("ardactl.config.Settings.MPI_ARGS", "--mca btl_tcp_if_include eth0")
    config = make_config(tool_dir=tmp_path)
    config_path = tmp_path / "cluster.yaml"
    launcher = CohortLauncher(config, config_path, launcher="mpirun")
    argv = launcher.command(["A", "B"], tmp_path / "hosts", excluded=["C"], verbose=True)
    assert argv == [
        "mpirun", "--hostfile", str(tmp_path / "hosts"), "-np", "2",
        "--wdir", str(tmp_path), "--map-by", "node",
        "--mca", "btl_tcp_if_include", "eth0",
        "-x", "PATH", "-x", "LD_LIBRARY_PATH",
        sys.executable, "-m", "ardactl", "run", "--worker", "-c", str(config_path.resolve()),
        "--exclude", "C", "--verbose",
    ]


def test_launcher_unavailable(tmp_path):
    launcher = CohortLauncher(make_config(tool_dir=tmp_path), tmp_path / "c.yaml",
                              launcher="definitely-not-an-mpirun")
    assert not launcher.available()
