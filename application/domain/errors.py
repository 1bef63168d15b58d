# application/domain/errors.py
# Error taxonomy for the trim-and-encode pipeline.
# Domain layer: must not import infrastructure or adapter code.


class TrimError(Exception):
    """Base class for every failure the pipeline reports as an Error status."""

    kind: str = "internal_error"
    recoverable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class NetworkError(TrimError):
    """The fetch could not start: bad URL, connection failure, non-2xx status."""
    kind = "network_error"


class TransferError(TrimError):
    """The response body was interrupted, truncated or too large."""
    kind = "transfer_error"


class DecodeError(TrimError):
    """The payload could not be decoded as audio."""
    kind = "decode_error"


class RangeError(TrimError):
    """The requested time range is invalid or cannot be satisfied."""
    kind = "range_error"


class EncodeTimeout(TrimError):
    """Container encoding ran past its deadline. The original stays downloadable."""
    kind = "encode_timeout"
    recoverable = True


class InternalError(TrimError):
    """An invariant was violated. Should never happen for valid buffers."""
    kind = "internal_error"


class PipelineCancelled(Exception):
    """Raised when a run is cancelled. Cancellation is not a failure."""
