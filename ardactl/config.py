"""Environment settings for the ardactl application."""
import os
import shlex
from typing import List

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


class Settings:
    """Process-level settings with sensible defaults.

    These cover how ardactl reaches nodes and invokes the toolchain. The
    cluster itself (topology, reads, run options) lives in the YAML file
    loaded by :mod:`ardactl.modules.cluster.loader`.
    """

    # SSH
    SSH_USER: str = os.getenv("ARDACTL_SSH_USER", "")
    SSH_KEY: str = os.getenv("ARDACTL_SSH_KEY", "")
    SSH_PORT: int = int(os.getenv("ARDACTL_SSH_PORT", "22"))

    # Toolchain binary, relative to tool_dir
    BINARY: str = os.getenv("ARDACTL_BINARY", "bin/arda")

    # Parallel launcher
    MPIRUN: str = os.getenv("ARDACTL_MPIRUN", "mpirun")
    MPI_ARGS: str = os.getenv("ARDACTL_MPI_ARGS", "--mca btl_tcp_if_include eth0")

    # Identity of this process's node; empty means socket.gethostname()
    NODE_NAME: str = os.getenv("ARDACTL_NODE_NAME", "")

    # Seconds between polls while waiting for a cohort member's result
    RESULT_POLL_INTERVAL: float = float(os.getenv("ARDACTL_RESULT_POLL_INTERVAL", "0.5"))

    # Logging
    LOG_FORMAT: str = os.getenv(
        "ARDACTL_LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - [%(node)s] %(message)s"
    )
    LOG_MAX_SIZE_MB: int = int(os.getenv("ARDACTL_LOG_MAX_SIZE_MB", "100"))
    LOG_BACKUP_COUNT: int = int(os.getenv("ARDACTL_LOG_BACKUP_COUNT", "5"))

    @classmethod
    def mpi_args(cls) -> List[str]:
        """Extra launcher arguments split the way a shell would."""
        return shlex.split(cls.MPI_ARGS)
