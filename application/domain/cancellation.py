# application/domain/cancellation.py
# Cancellation signal delivered from the host to a running pipeline.

from threading import Event

from application.domain.errors import PipelineCancelled


class CancellationToken:
    """Thread-safe one-shot cancel flag, checked at every pipeline checkpoint."""

    def __init__(self) -> None:
        self._event: Event = Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise PipelineCancelled("Trim cancelled")
