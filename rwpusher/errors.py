"""Errors raised by the push pipeline stages."""
from typing import Optional

from rwpusher.series import ErrorKind

# Response bodies longer than this are cut before being attached to errors
MAX_ERROR_BODY_LEN = 512


class PushError(Exception):
    """Base class for failures that skip a single push cycle."""
    kind: ErrorKind


class GatherError(PushError):
    kind = ErrorKind.GATHER


class ExtractionError(PushError):
    kind = ErrorKind.EXTRACTION


class EncodeError(PushError):
    kind = ErrorKind.ENCODE


class CompressError(PushError):
    kind = ErrorKind.COMPRESS


class TransportError(PushError):
    kind = ErrorKind.TRANSPORT


class RemoteRejected(PushError):
    """The endpoint answered with a non-2xx status."""
    kind = ErrorKind.REMOTE_REJECTED

    def __init__(self, status_code: int, body: Optional[str] = None, url: Optional[str] = None):
        self.status_code = status_code
        self.body = (body or "")[:MAX_ERROR_BODY_LEN]
        self.url = url
        message = f"server returned HTTP status {status_code}"
        if self.body:
            message = f"{message}: {self.body}"
        super().__init__(message)

    @property
    def recoverable(self) -> bool:
        """Whether the same payload could succeed on a later attempt."""
        return self.status_code >= 500 or self.status_code == 429
