"""Error taxonomy for conversion jobs.

Every error a caller can see is a `ConversionError` carrying an `ErrorKind`
and a short, human-readable message. Raw ffmpeg diagnostics never leave this
layer except through that message.

`PROBE_FAILURE` and `CAPABILITY_PROBE_FAILURE` are never raised: the duration
probe degrades to `None` and the capability probe to a software-only snapshot.
"""

from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel


class ErrorKind(str, Enum):
    INPUT_NOT_FOUND = "INPUT_NOT_FOUND"
    BINARY_MISSING = "BINARY_MISSING"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    PROCESS_SPAWN_FAILURE = "PROCESS_SPAWN_FAILURE"
    ENCODING_FAILURE = "ENCODING_FAILURE"
    OUTPUT_MISSING_AFTER_SUCCESS = "OUTPUT_MISSING_AFTER_SUCCESS"
    CANCELLED = "CANCELLED"
    PROBE_FAILURE = "PROBE_FAILURE"
    CAPABILITY_PROBE_FAILURE = "CAPABILITY_PROBE_FAILURE"


class FailureKind(str, Enum):
    """Sub-classification of a non-zero ffmpeg exit."""

    CORRUPT_INPUT = "CORRUPT_INPUT"
    DISK_SPACE = "DISK_SPACE"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    CODEC_MISMATCH = "CODEC_MISMATCH"
    UNKNOWN = "UNKNOWN"


class ConversionFailure(BaseModel):
    """Failure variant of a conversion result, safe to hand to a UI layer."""

    kind: ErrorKind
    failure_kind: Optional[FailureKind] = None
    message: str


class ConversionError(Exception):
    kind: ErrorKind = ErrorKind.ENCODING_FAILURE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_failure(self) -> ConversionFailure:
        return ConversionFailure(kind=self.kind, message=self.message)


class InputNotFoundError(ConversionError):
    kind = ErrorKind.INPUT_NOT_FOUND

    def __init__(self, path: Path):
        super().__init__(f"Input file not found: {path}")
        self.path = path


class BinaryMissingError(ConversionError):
    kind = ErrorKind.BINARY_MISSING

    def __init__(self, path: Path):
        super().__init__(f"FFmpeg binary not found: {path}")
        self.path = path


class UnsupportedFormatError(ConversionError):
    kind = ErrorKind.UNSUPPORTED_FORMAT

    def __init__(self, format_value: object):
        super().__init__(f"Unsupported format: {format_value}")
        self.format_value = format_value


class ProcessSpawnError(ConversionError):
    kind = ErrorKind.PROCESS_SPAWN_FAILURE

    def __init__(self, reason: str):
        super().__init__(f"Failed to start conversion process: {reason}")


class EncodingError(ConversionError):
    kind = ErrorKind.ENCODING_FAILURE

    def __init__(self, message: str, failure_kind: FailureKind = FailureKind.UNKNOWN,
                 exit_code: Optional[int] = None):
        super().__init__(message)
        self.failure_kind = failure_kind
        self.exit_code = exit_code

    def to_failure(self) -> ConversionFailure:
        return ConversionFailure(kind=self.kind, failure_kind=self.failure_kind, message=self.message)


class OutputMissingError(ConversionError):
    kind = ErrorKind.OUTPUT_MISSING_AFTER_SUCCESS

    def __init__(self, path: Path):
        super().__init__("Conversion completed but output file not found")
        self.path = path


class ConversionCancelledError(ConversionError):
    kind = ErrorKind.CANCELLED

    def __init__(self, job_id: int):
        super().__init__(f"Conversion {job_id} was cancelled")
        self.job_id = job_id
