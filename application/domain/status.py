# application/domain/status.py
# Pipeline states and the progress/status values reported to callers.

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PipelineState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DECODING = "decoding"
    SELECTING = "selecting"
    COPYING = "copying"
    ENCODING = "encoding"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.COMPLETED, PipelineState.ERROR)


# Coarse status tags shown to the user (idle | extracting | trimming | completed | error)
STATUS_IDLE = "idle"
STATUS_EXTRACTING = "extracting"
STATUS_TRIMMING = "trimming"
STATUS_COMPLETED = "completed"
STATUS_ERROR = "error"

_STATE_TO_STATUS: dict = {
    PipelineState.IDLE: STATUS_IDLE,
    PipelineState.COMPLETED: STATUS_COMPLETED,
    PipelineState.ERROR: STATUS_ERROR,
}


def status_tag_for(state: PipelineState) -> str:
    """Every working stage of a trim run is reported as 'trimming'."""
    return _STATE_TO_STATUS.get(state, STATUS_TRIMMING)


@dataclass(frozen=True)
class ProcessingStatus:
    status: str = STATUS_IDLE
    progress: int = 0
    message: str = ""
    state: PipelineState = PipelineState.IDLE
    error_kind: Optional[str] = None
    error: Optional[str] = None
    fallback_url: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def to_dict(self) -> dict:
        """JSON shape returned by the HTTP host."""
        return {
            "status": self.status,
            "state": self.state.value,
            "progress": self.progress,
            "message": self.message,
            "errorKind": self.error_kind,
            "error": self.error,
            "fallbackUrl": self.fallback_url,
        }


IDLE_STATUS = ProcessingStatus()
