"""Make the coordinator's configuration available to every cohort member."""
import logging
from typing import Optional

from ardactl.exceptions import DistributionError
from .comm import Communicator
from .models import ClusterConfig
from .wire import decode_config, encode_config

logger = logging.getLogger("ardactl.distribute")


class ConfigDistributor:
    """Broadcast one authoritative :class:`ClusterConfig` to the cohort.

    The root serializes the configuration, broadcasts the record length and
    then the record itself. Every other participant checks the length,
    decodes and validates. Any mismatch aborts the whole cohort: running with
    diverging configurations is worse than not running. All participants then
    meet at a barrier, so no job starts before everyone holds the config.
    """

    def __init__(self, comm: Communicator, root: int = 0):
        self.comm = comm
        self.root = root

    def distribute(self, config: Optional[ClusterConfig] = None) -> ClusterConfig:
        """Collective call; the root passes the config, everyone gets it back.

        Raises:
            DistributionError: On this participant, after aborting the cohort
        """
        is_root = self.comm.rank == self.root
        payload = None
        length = None

        try:
            if is_root:
                if config is None:
                    raise DistributionError("root has no configuration to distribute")
                payload = encode_config(config)
                length = len(payload)
                if decode_config(payload) != config:
                    raise DistributionError("configuration does not survive serialization")
        except DistributionError as e:
            logger.error("Cannot serialize configuration: %s", e)
            self.comm.abort(1)
            raise

        length = self.comm.bcast(length, root=self.root)
        payload = self.comm.bcast(payload, root=self.root)

        try:
            received = self._receive(length, payload) if not is_root else config
        except DistributionError as e:
            logger.error("Configuration distribution failed on rank %d: %s", self.comm.rank, e)
            self.comm.abort(1)
            raise

        self.comm.barrier()
        if is_root:
            logger.info("Configuration distributed to %d process(es)", self.comm.size)
        return received

    @staticmethod
    def _receive(length, payload) -> ClusterConfig:
        if not isinstance(length, int) or length < 0:
            raise DistributionError(f"bad announced length {length!r}")
        if not isinstance(payload, (bytes, bytearray)):
            raise DistributionError(f"expected bytes, got {type(payload).__name__}")
        if len(payload) != length:
            raise DistributionError(
                f"payload is {len(payload)} bytes, {length} announced"
            )
        return decode_config(bytes(payload))
