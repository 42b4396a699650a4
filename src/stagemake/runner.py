# runner.py
from __future__ import annotations

import os
import subprocess
from collections import deque
from dataclasses import dataclass
from typing import Deque, List

from .cache import BuildCache
from .model import Job
from .ui.console import Console

# commands that only display where we are; never executed
DISPLAY_ONLY = {"pwd"}


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------

@dataclass
class JobFailure(Exception):
    job: Job
    exit_code: int

    def __str__(self) -> str:
        return f"[{self.job.label}] failed (exit={self.exit_code}): {self.job.body}"


def exit_status(returncode: int) -> int:
    """Map a child's returncode to a process exit status (signals -> 128+N)."""
    if returncode < 0:
        return 128 + (-returncode)
    return returncode


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _compatible(lead: Job, other: Job) -> bool:
    return (
        other.parallel == lead.parallel
        and other.stage == lead.stage
        and other.directory == lead.directory
    )


class Scheduler:
    """
    Runs a stage's job queue.

    Jobs without `parallel` run one at a time. A job declaring parallel=N
    pulls up to N-1 compatible jobs (same stage, directory and width) off
    the front of the queue and they all run as concurrent children; the
    batch is joined before the next queue item is considered.
    """

    def __init__(self, cache: BuildCache, console: Console):
        self.cache = cache
        self.console = console
        self.executed = 0

    def run(self, jobs: List[Job]) -> int:
        """
        Execute jobs in order. Returns the number of commands executed.

        On failure, jobs still waiting in the queue are rolled back as well,
        so their destinations are re-examined on the next run.
        """
        before = self.executed
        queue: Deque[Job] = deque(jobs)
        try:
            while queue:
                job = queue.popleft()
                width = job.parallel or 1
                if width > 1:
                    batch = [job]
                    while queue and len(batch) < width and _compatible(job, queue[0]):
                        batch.append(queue.popleft())
                    self._run_batch(batch)
                else:
                    self._run_one(job)
        except JobFailure:
            for pending in queue:
                self.cache.rollback(pending.stage, pending.dir_key, pending.sources)
            raise
        return self.executed - before

    def _runnable(self, job: Job) -> bool:
        body = job.body.strip()
        if not body:
            self.console.print_warning(f"{job.label}: empty command; skipped")
            return False
        if body in DISPLAY_ONLY:
            self.console.print_info(f"{job.label}: {job.directory}")
            return False
        return True

    def _popen(self, job: Job) -> subprocess.Popen:
        self.console.print_job_start(job.label, job.reason, job.command, job.body)
        return subprocess.Popen(
            job.command,
            shell=True,
            cwd=str(job.directory),
            env=os.environ.copy(),
        )

    def _fail(self, job: Job, returncode: int) -> JobFailure:
        code = exit_status(returncode)
        self.cache.rollback(job.stage, job.dir_key, job.sources)
        self.console.print_failure(job.label, job.command, code)
        return JobFailure(job=job, exit_code=code)

    def _run_one(self, job: Job) -> None:
        if not self._runnable(job):
            return
        proc = self._popen(job)
        returncode = proc.wait()
        self.executed += 1
        if returncode != 0:
            raise self._fail(job, returncode)
        self.console.print_job_done(job.label, job.reason)

    def _run_batch(self, batch: List[Job]) -> None:
        runnable = [j for j in batch if self._runnable(j)]
        if not runnable:
            return
        self.console.print_batch(len(runnable), runnable[0].dir_key)

        procs = [(job, self._popen(job)) for job in runnable]
        failures: List[JobFailure] = []
        for job, proc in procs:
            returncode = proc.wait()
            self.executed += 1
            if returncode != 0:
                failures.append(self._fail(job, returncode))
            else:
                self.console.print_job_done(job.label, job.reason)
        if failures:
            raise failures[0]
