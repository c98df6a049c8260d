import itertools
import threading
from typing import Dict, List, Optional

from mediaconv.domain.models import ActiveJob, ConversionJob, JobState


class JobRegistry:
    """Active conversion jobs keyed by a monotonically increasing id.

    Holds only PENDING/RUNNING jobs. Entries are added by the orchestrator
    when a process starts and dropped on any terminal transition or cancel;
    removal is idempotent, so nothing can bring a removed job back.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._jobs: Dict[int, ConversionJob] = {}

    def next_id(self) -> int:
        with self._lock:
            return next(self._ids)

    def add(self, job: ConversionJob):
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already registered")
            self._jobs[job.id] = job

    def remove(self, job_id: int) -> Optional[ConversionJob]:
        with self._lock:
            return self._jobs.pop(job_id, None)

    def get(self, job_id: int) -> Optional[ConversionJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def request_cancel(self, job_id: int) -> Optional[ConversionJob]:
        """Drops the job and marks it CANCEL_REQUESTED if it was still active."""
        with self._lock:
            job = self._jobs.pop(job_id, None)
            if job is None or not job.is_active:
                return None
            job.state = JobState.CANCEL_REQUESTED
            return job

    def request_cancel_all(self) -> List[ConversionJob]:
        with self._lock:
            jobs = [job for job in self._jobs.values() if job.is_active]
            self._jobs.clear()
            for job in jobs:
                job.state = JobState.CANCEL_REQUESTED
            return jobs

    def active(self) -> List[ActiveJob]:
        with self._lock:
            return [ActiveJob(job_id=job.id, pid=job.pid) for job in self._jobs.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: int) -> bool:
        with self._lock:
            return job_id in self._jobs
