import threading

import pytest

from ardactl.exceptions import DistributionError
from ardactl.modules.cluster.comm import SingleProcessCommunicator
from ardactl.modules.cluster.distribute import ConfigDistributor

from conftest import make_config, run_cohort


def test_every_member_gets_an_equal_config():
    config = make_config()

    def body(comm):
        return ConfigDistributor(comm).distribute(config if comm.rank == 0 else None)

    results, errors, cohort = run_cohort(3, body)
    assert errors == [None, None, None]
    assert all(r == config for r in results)
    assert results[1] is not config
    assert cohort.aborted is None


def test_empty_reads_distributed():
    config = make_config(reads={})

    def body(comm):
        return ConfigDistributor(comm).distribute(config if comm.rank == 0 else None)

    results, errors, _ = run_cohort(2, body)
    assert results[1] == config
    assert results[1].reads == {}


def test_truncated_payload_aborts_cohort():
    config = make_config()

    def body(comm):
        return ConfigDistributor(comm).distribute(config if comm.rank == 0 else None)

    def truncate(value):
        return value[:-5] if isinstance(value, bytes) else value

    results, errors, cohort = run_cohort(2, body, tamper={1: truncate})
    assert isinstance(errors[1], DistributionError)
    assert isinstance(errors[0], threading.BrokenBarrierError)
    assert cohort.aborted == 1
    assert results == [None, None]


def test_root_without_config_aborts():
    with pytest.raises(SystemExit):
        ConfigDistributor(SingleProcessCommunicator()).distribute(None)


def test_single_process():
    config = make_config()
    assert ConfigDistributor(SingleProcessCommunicator()).distribute(config) is config
