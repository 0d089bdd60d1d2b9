"""
Exception hierarchy for multipart uploads.

Everything raised to callers derives from UploadError. UploadCancelled is
an internal control-flow signal; the coordinator turns it into a
``None`` result and it never reaches the caller.
"""

from typing import Optional


class UploadError(Exception):
    """Base exception class for all upload errors"""
    pass


class InvalidArgumentError(UploadError, ValueError):
    """Raised for invalid sizes, names or an empty completion manifest"""
    pass


class ProtocolError(UploadError):
    """Raised when a backend response does not have the expected shape"""
    pass


class BrokerRequestError(UploadError):
    """Raised when a broker endpoint answers with a non-2xx status"""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(message)


class CompletionError(BrokerRequestError):
    """Raised when the completion endpoint rejects the manifest"""
    pass


class PartUploadError(UploadError):
    """Raised when a part cannot be stored"""

    def __init__(
        self,
        message: str,
        part_number: int,
        attempts: int,
        status: Optional[int] = None
    ):
        self.part_number = part_number
        self.attempts = attempts
        self.status = status
        super().__init__(message)


class RetriesExhaustedError(PartUploadError):
    """Raised when a part keeps failing after every allowed retry"""
    pass


class UploadCancelled(Exception):
    """Raised internally when the cancellation signal fires"""
    pass
