"""Communication between the processes of one run.

A run is a cohort of processes, one per node, with rank 0 acting as the
coordinator. In parallel mode the cohort is launched by ``mpirun`` and talks
over MPI (mpi4py); a lone coordinator uses :class:`SingleProcessCommunicator`.
"""
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

from ardactl.config import Settings
from ardactl.exceptions import ArdactlError

logger = logging.getLogger("ardactl.comm")

TAG_RESULT = 2


class Communicator(ABC):
    """Collective and point-to-point operations used by a run."""

    rank: int = 0
    size: int = 1

    @property
    def is_coordinator(self) -> bool:
        return self.rank == 0

    @abstractmethod
    def bcast(self, value: Any, root: int = 0) -> Any:
        """Return ``value`` from ``root`` on every participant."""

    @abstractmethod
    def barrier(self) -> None:
        """Block until every participant has arrived."""

    @abstractmethod
    def send(self, value: Any, dest: int, tag: int = TAG_RESULT) -> None:
        pass

    @abstractmethod
    def poll(self, source: int, tag: int = TAG_RESULT) -> bool:
        """True when a message from ``source`` is waiting."""

    @abstractmethod
    def recv(self, source: int, tag: int = TAG_RESULT) -> Any:
        pass

    @abstractmethod
    def abort(self, code: int = 1) -> None:
        """Tear down every participant."""

    def receive(
        self,
        source: int,
        tag: int = TAG_RESULT,
        timeout: Optional[float] = None,
        interval: Optional[float] = None,
    ) -> Any:
        """Receive one message, giving up after ``timeout`` seconds.

        Returns:
            The message, or None if nothing arrived in time
        """
        interval = Settings.RESULT_POLL_INTERVAL if interval is None else interval
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if self.poll(source, tag):
                return self.recv(source, tag)
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning("No message from rank %d after %ss", source, timeout)
                return None
            time.sleep(interval)


class SingleProcessCommunicator(Communicator):
    """A cohort of one: the coordinator alone."""

    rank = 0
    size = 1

    def bcast(self, value: Any, root: int = 0) -> Any:
        return value

    def barrier(self) -> None:
        pass

    def send(self, value: Any, dest: int, tag: int = TAG_RESULT) -> None:
        raise ArdactlError("cannot send: this process has no peers")

    def poll(self, source: int, tag: int = TAG_RESULT) -> bool:
        return False

    def recv(self, source: int, tag: int = TAG_RESULT) -> Any:
        raise ArdactlError("cannot receive: this process has no peers")

    def abort(self, code: int = 1) -> None:
        raise SystemExit(code)


class MPICommunicator(Communicator):
    """Communicator backed by an mpi4py communicator (COMM_WORLD by default)."""

    def __init__(self, comm=None):
        from mpi4py import MPI

        self._comm = comm if comm is not None else MPI.COMM_WORLD
        self.rank = self._comm.Get_rank()
        self.size = self._comm.Get_size()
        self.processor_name = MPI.Get_processor_name()
        logger.debug("MPI rank %d of %d on %s", self.rank, self.size, self.processor_name)

    def bcast(self, value: Any, root: int = 0) -> Any:
        return self._comm.bcast(value, root=root)

    def barrier(self) -> None:
        self._comm.Barrier()

    def send(self, value: Any, dest: int, tag: int = TAG_RESULT) -> None:
        self._comm.send(value, dest=dest, tag=tag)

    def poll(self, source: int, tag: int = TAG_RESULT) -> bool:
        return bool(self._comm.Iprobe(source=source, tag=tag))

    def recv(self, source: int, tag: int = TAG_RESULT) -> Any:
        return self._comm.recv(source=source, tag=tag)

    def abort(self, code: int = 1) -> None:
        self._comm.Abort(code)
