"""Replication driver, reconciliation sweep, job entry points and scheduler.

Public API
----------
* :func:`~homeswipe.orchestrator.runner.run_replication_job` /
  :func:`~homeswipe.orchestrator.runner.run_sweep_job` — one job run,
  returning a :class:`~homeswipe.orchestrator.runner.JobResult`.
* :func:`~homeswipe.orchestrator.scheduler.run_continuous` — both jobs on
  jittered cadences until SIGTERM.
* :class:`~homeswipe.orchestrator.replicator.ReplicationDriver` and
  :func:`~homeswipe.orchestrator.sweeper.run_sweep` — the job logic itself,
  for tests or custom wiring.
"""

from homeswipe.orchestrator.gate import AdmissionGate
from homeswipe.orchestrator.replicator import ReplicationDriver, ReplicationStats
from homeswipe.orchestrator.runner import JobResult, run_replication_job, run_sweep_job
from homeswipe.orchestrator.scheduler import (
    next_replication_interval,
    next_sweep_interval,
    run_continuous,
)
from homeswipe.orchestrator.sweeper import SweepStats, run_sweep

__all__ = [
    "AdmissionGate",
    "ReplicationDriver",
    "ReplicationStats",
    "SweepStats",
    "run_sweep",
    "JobResult",
    "run_replication_job",
    "run_sweep_job",
    "run_continuous",
    "next_replication_interval",
    "next_sweep_interval",
]
