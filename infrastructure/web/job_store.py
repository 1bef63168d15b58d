# infrastructure/web/job_store.py
# Centralized in-memory trim job store, the single source of truth for the HTTP host.
# Each entry holds the latest ProcessingStatus, the running pipeline (for
# cancellation) and, once completed, the EncodedArtifact.
# Thread-safe: all mutations are guarded by a Lock.

from threading import Lock
from typing import Optional

from application.domain.audio import EncodedArtifact
from application.domain.status import ProcessingStatus

_jobs: dict = {}
_lock: Lock = Lock()


def create_job(job_id: str, source_url: str, start: float, end: float, pipeline=None) -> None:
    """Register a new job in the Idle state."""
    with _lock:
        _jobs[job_id] = {
            "source_url": source_url,
            "start": start,
            "end": end,
            "pipeline": pipeline,
            "status": ProcessingStatus(),
            "artifact": None,
        }


def get_job(job_id: str) -> Optional[dict]:
    """Return a shallow copy of the job dict, or None."""
    with _lock:
        job = _jobs.get(job_id)
        return dict(job) if job is not None else None


def set_status(job_id: str, status: ProcessingStatus) -> None:
    """Record the latest status (no-op for unknown or expired jobs)."""
    with _lock:
        if job_id in _jobs:
            _jobs[job_id]["status"] = status


def set_artifact(job_id: str, artifact: EncodedArtifact) -> None:
    with _lock:
        if job_id in _jobs:
            _jobs[job_id]["artifact"] = artifact
            # The pipeline is finished; drop it so its buffers can be freed
            _jobs[job_id]["pipeline"] = None


def release_pipeline(job_id: str) -> None:
    with _lock:
        if job_id in _jobs:
            _jobs[job_id]["pipeline"] = None


def delete_job(job_id: str) -> None:
    """Remove a job entry (no-op if missing)."""
    with _lock:
        _jobs.pop(job_id, None)


def all_jobs() -> dict:
    """Return a shallow copy of the entire store (for diagnostics)."""
    with _lock:
        return dict(_jobs)
