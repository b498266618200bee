"""
Run one action across several machines.

Machines run concurrently on a thread pool when every involved provider
declares `parallel = True`; otherwise they run one after another in the
order they were added. Failures never stop the other machines: they are
collected and raised together as BatchActionError.
"""

from __future__ import annotations

import concurrent.futures as _futures
import dataclasses as _dataclasses
import logging as _logging
import typing as _typing

import vessel.errors as errors

if _typing.TYPE_CHECKING:
    import vessel.machine as machine_module

_logger = _logging.getLogger(__name__)


@_dataclasses.dataclass(frozen=True)
class _Job:
    machine: machine_module.Machine
    action: str
    options: dict[str, _typing.Any]


class BatchAction:
    """Collects (machine, action) pairs and runs them together."""

    def __init__(self, *, parallel: bool = True, max_workers: int | None = None) -> None:
        """
        Args:
            parallel: Allow concurrent execution (still requires provider support).
            max_workers: Thread pool size; defaults to one thread per job.
        """
        self._parallel = parallel
        self._max_workers = max_workers
        self._jobs: list[_Job] = []

    def add(self, machine: machine_module.Machine, action: str, **options: _typing.Any) -> BatchAction:
        self._jobs.append(_Job(machine, action, options))
        return self

    def __len__(self) -> int:
        return len(self._jobs)

    @property
    def runs_parallel(self) -> bool:
        """Whether run() will use the thread pool."""
        return (
            self._parallel
            and len(self._jobs) > 1
            and all(type(job.machine.provider).parallel for job in self._jobs)
        )

    def run(self) -> None:
        """
        Run every job.

        Raises:
            BatchActionError: If one or more jobs failed.
        """
        failures: list[tuple[str, str, BaseException]] = []

        if self.runs_parallel:
            workers = self._max_workers or len(self._jobs)
            _logger.debug("Running %d batch jobs on %d threads", len(self._jobs), workers)
            with _futures.ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {executor.submit(self._run_one, job): job for job in self._jobs}
                # Report in submission order, not completion order.
                for future, job in futures.items():
                    error = future.exception()
                    if error is not None:
                        failures.append((job.machine.name, job.action, error))
        else:
            for job in self._jobs:
                try:
                    self._run_one(job)
                except Exception as e:
                    failures.append((job.machine.name, job.action, e))

        if failures:
            raise errors.BatchActionError(failures)

    @staticmethod
    def _run_one(job: _Job) -> None:
        _logger.debug("Batch: %s on machine '%s'", job.action, job.machine.name)
        job.machine.action(job.action, **job.options)
