"""
Cluster Classification Module

One run takes a cluster file, checks every candidate node, hands the
configuration to every participating process, runs classification and
abundance estimation per node, gathers the results on the coordinator and
writes an aggregate report.

Key pieces:
- Typed, frozen cluster configuration loaded from YAML
- Concurrent preflight checks over SSH
- Parallel cohort (MPI) or sequential (SSH) dispatch with one shared job runner
- Result collection with a bounded wait per node
- Aggregate report and cross-node abundance merge
"""

from .models import ClusterConfig, ClassificationParams, RunOptions, LogSettings, NodeStatus, NodeResult
from .loader import load_config, parse_config, write_node_file, node_file_path
from .comm import Communicator, SingleProcessCommunicator, MPICommunicator
from .distribute import ConfigDistributor
from .health import NodeHealthChecker
from .runner import JobRunner
from .collector import ResultCollector
from .report import ReportGenerator, RunSummary, summarize
from .dispatch import (
    CohortLauncher,
    SequentialDispatch,
    cohort_plan,
    dispatch_order,
    finish_run,
    run_cohort_member,
)

__all__ = [
    # Configuration
    'ClusterConfig',
    'ClassificationParams',
    'RunOptions',
    'LogSettings',
    'load_config',
    'parse_config',
    'write_node_file',
    'node_file_path',

    # Records
    'NodeStatus',
    'NodeResult',

    # Components
    'Communicator',
    'SingleProcessCommunicator',
    'MPICommunicator',
    'ConfigDistributor',
    'NodeHealthChecker',
    'JobRunner',
    'ResultCollector',
    'ReportGenerator',
    'RunSummary',
    'summarize',

    # Dispatch
    'CohortLauncher',
    'SequentialDispatch',
    'cohort_plan',
    'dispatch_order',
    'finish_run',
    'run_cohort_member',
]
