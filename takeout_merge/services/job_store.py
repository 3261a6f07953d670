"""Registry of background pipeline runs, polled by the dashboard."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional
import threading
import time


def now_ts() -> int:
    return int(time.time())


@dataclass
class PipelineJob:
    job_id: str
    archive: str
    state: str = "idle"
    working_dir: Optional[str] = None
    total_files: int = 0
    total_pairs: int = 0
    processed_pairs: int = 0
    current_file: Optional[str] = None
    summary: Dict[str, int] = field(default_factory=dict)
    errors: List[Dict[str, str]] = field(default_factory=list)
    last_error: Optional[Dict[str, str]] = None
    error: Optional[str] = None
    start_time: Optional[int] = None
    last_update: Optional[int] = None
    finished_time: Optional[int] = None


_UPDATABLE = {f.name for f in fields(PipelineJob)} - {"job_id", "archive", "errors"}


class PipelineJobStore:
    def __init__(self):
        self._jobs: Dict[str, PipelineJob] = {}
        self._lock = threading.Lock()

    def create(self, job_id: str, archive: str) -> PipelineJob:
        with self._lock:
            job = PipelineJob(job_id=job_id, archive=archive)
            self._jobs[job_id] = job
            return job

    def update(self, job_id: str, **changes) -> None:
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise KeyError(f"Unknown job fields: {', '.join(sorted(unknown))}")
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return
            for name, value in changes.items():
                setattr(job, name, value)
            job.last_update = now_ts()

    def record_error(self, job_id: str, path: str, error: str) -> None:
        entry = {"path": path, "error": error}
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return
            job.errors.append(entry)
            job.last_error = entry

    def get(self, job_id: str) -> Dict[str, Any] | None:
        """Snapshot of the job as a plain dict, safe to hand to another thread."""
        with self._lock:
            job = self._jobs.get(job_id)
            return asdict(job) if job else None

    def prune_finished(self, older_than: float) -> List[str]:
        """Drop jobs that finished more than `older_than` seconds ago; return their ids."""
        cutoff = now_ts() - older_than
        with self._lock:
            stale = [job_id for job_id, job in self._jobs.items()
                     if job.finished_time is not None and job.finished_time <= cutoff]
            for job_id in stale:
                del self._jobs[job_id]
        return stale


pipeline_jobs = PipelineJobStore()
