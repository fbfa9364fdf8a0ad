import logging
import queue
import threading

import pytest

from ardactl.config import Settings
from ardactl.logging import shutdown_logging
from ardactl.modules.cluster.comm import TAG_RESULT, Communicator
from ardactl.modules.cluster.models import ClassificationParams, ClusterConfig, RunOptions
from ardactl.modules.ssh import CommandResult


@pytest.fixture(autouse=True)
def fast_polling(monkeypatch):
    monkeypatch.setattr(Settings, "RESULT_POLL_INTERVAL", 0.01)
    yield
    shutdown_logging()
    logging.getLogger("ardactl").propagate = True


def make_config(tool_dir="/opt/arda", reads=None, classification=None, **options) -> ClusterConfig:
    """Master A, worker B; A single-end, B paired-end unless told otherwise."""
    if reads is None:
        reads = {"A": ["/data/r1.fastq"], "B": ["/data/p1.fastq", "/data/p2.fastq"]}
    return ClusterConfig(
        master="A",
        workers=("B",),
        tool_dir=str(tool_dir),
        database="/db",
        reads=reads,
        classification=ClassificationParams(**(classification or {})),
        options=RunOptions(**options),
    )


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeExecutor:
    """Stands in for the toolchain.

    Commands are told apart by their mode flag: ``-c`` classify,
    ``-a`` abundance, ``-m`` merge.
    """

    def __init__(self, clock=None, durations=None, fail=(), missing=()):
        self.clock = clock
        self.durations = durations or {}
        self.fail = set(fail)
        self.missing = set(missing)
        self.calls = []
        self.timeouts = []

    def modes(self):
        return [argv[1] for argv in self.calls]

    def run(self, argv, cwd=None, timeout=None):
        self.calls.append(list(argv))
        self.timeouts.append(timeout)
        mode = argv[1]
        if self.clock is not None:
            self.clock.advance(self.durations.get(mode, 0))
        if mode in self.fail:
            return CommandResult(1, "boom")
        return CommandResult(0, "")

    def exists(self, path):
        return str(path) not in self.missing

    def make_dirs(self, path):
        return True


def healthy(host, command):
    """Answer every probe the way a ready node would."""
    if command.startswith("df "):
        return CommandResult(0, "50\n")
    if "echo " in command:
        return CommandResult(0, command.rsplit("echo ", 1)[-1] + "\n")
    return CommandResult(0, "")


class FakeSSH:
    def __init__(self, handler=healthy, fail_copies=False):
        self.handler = handler
        self.fail_copies = fail_copies
        self.commands = []
        self.copies = []
        self.timeouts = {}
        self.closed = False
        self._lock = threading.Lock()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True

    def execute(self, host, command, timeout=None):
        with self._lock:
            self.commands.append((host, command))
            self.timeouts[(host, command)] = timeout
        return self.handler(host, command)

    def get(self, host, remote_path, local_path, timeout=None):
        with self._lock:
            self.copies.append((host, remote_path, local_path))
        return CommandResult(1, "copy failed") if self.fail_copies else CommandResult(0, "")

    def commands_for(self, host):
        return [c for h, c in self.commands if h == host]


class Cohort:
    """Shared state of an in-process cohort, one thread per rank."""

    def __init__(self, size: int):
        self.size = size
        self.barrier = threading.Barrier(size, timeout=10)
        self.mailboxes = {}
        self.slot = None
        self.aborted = None
        self._lock = threading.Lock()

    def mailbox(self, source, dest, tag):
        with self._lock:
            return self.mailboxes.setdefault((source, dest, tag), queue.Queue())


class ThreadCommunicator(Communicator):
    def __init__(self, cohort: Cohort, rank: int, tamper=None):
        self.cohort = cohort
        self.rank = rank
        self.size = cohort.size
        self.tamper = tamper

    def bcast(self, value, root=0):
        if self.rank == root:
            self.cohort.slot = value
        self.cohort.barrier.wait()
        value = self.cohort.slot
        self.cohort.barrier.wait()
        if self.tamper is not None:
            value = self.tamper(value)
        return value

    def barrier(self):
        self.cohort.barrier.wait()

    def send(self, value, dest, tag=TAG_RESULT):
        self.cohort.mailbox(self.rank, dest, tag).put(value)

    def poll(self, source, tag=TAG_RESULT):
        return not self.cohort.mailbox(source, self.rank, tag).empty()

    def recv(self, source, tag=TAG_RESULT):
        return self.cohort.mailbox(source, self.rank, tag).get(timeout=10)

    def abort(self, code=1):
        self.cohort.aborted = code
        self.cohort.barrier.abort()


def run_cohort(size, body, tamper=None):
    """Run ``body(comm)`` on every rank of a fresh cohort.

    Returns:
        (results, errors, cohort); results and errors are indexed by rank
    """
    cohort = Cohort(size)
    results = [None] * size
    errors = [None] * size

    def target(rank):
        comm = ThreadCommunicator(cohort, rank, tamper=(tamper or {}).get(rank))
        try:
            results[rank] = body(comm)
        except BaseException as e:
            errors[rank] = e

    threads = [threading.Thread(target=target, args=(rank,)) for rank in range(size)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results, errors, cohort
