"""Parsing of ffmpeg's diagnostic stream into progress samples.

Everything here is pure: no subprocesses, no threads. The supervisor feeds
lines in and decides what to do with the samples that come out.
"""

import math
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from mediaconv.domain.errors import FailureKind
from mediaconv.domain.models import ConversionJob, ProgressSample

# frame=  123 fps= 25 q=28.0 size=    1024kB time=00:00:05.00 bitrate=1677.7kbits/s speed=1.02x
TIME_RE = re.compile(r"time=(\d+):(\d+):(\d+(?:\.\d+)?)")
SIZE_RE = re.compile(r"size=\s*(\d+)\s*(kB|KiB)")
SPEED_RE = re.compile(r"speed=\s*(\d+(?:\.\d*)?)x")

ERROR_PATTERNS: List[Tuple[str, FailureKind, str]] = [
    ("Invalid data found", FailureKind.CORRUPT_INPUT, "Invalid or corrupted input file"),
    ("No space left", FailureKind.DISK_SPACE, "Insufficient disk space for conversion"),
    ("Permission denied", FailureKind.PERMISSION_DENIED, "Permission denied - check file access rights"),
    ("codec", FailureKind.CODEC_MISMATCH, "Unsupported codec or format combination"),
]
ERROR_TOKENS = ("Error", "failed")
MAX_ERROR_LINE = 200
GENERIC_FAILURE = "Conversion failed"


@dataclass(frozen=True)
class ProgressLine:
    elapsed_seconds: float
    bytes_written: Optional[int] = None
    speed_multiplier: Optional[float] = None


def parse_progress_line(line: str) -> Optional[ProgressLine]:
    """Extracts elapsed time plus optional size/speed from one stderr line."""
    match = TIME_RE.search(line)
    if not match:
        return None
    h, m, s = match.groups()
    elapsed = int(h) * 3600 + int(m) * 60 + float(s)

    size_match = SIZE_RE.search(line)
    speed_match = SPEED_RE.search(line)
    return ProgressLine(
        elapsed_seconds=elapsed,
        bytes_written=int(size_match.group(1)) * 1024 if size_match else None,
        speed_multiplier=float(speed_match.group(1)) if speed_match else None,
    )


def calculate_percent(elapsed_seconds: float, total_duration: Optional[float]) -> Optional[int]:
    """Rounds half up and clamps to [0, 100]; None when the duration is unknown."""
    if not total_duration or total_duration <= 0:
        return None
    percent = int(math.floor(elapsed_seconds / total_duration * 100 + 0.5))
    return max(0, min(100, percent))


def next_sample(job: ConversionJob, line: str) -> Optional[ProgressSample]:
    """Returns a sample only when the line moves the job's progress forward.

    With a known duration that means a higher whole percentage; without one,
    a newly reached whole second of output. Updates the job's watermarks.
    """
    parsed = parse_progress_line(line)
    if parsed is None:
        return None

    percent = calculate_percent(parsed.elapsed_seconds, job.duration_seconds)
    if percent is not None:
        if percent <= job.last_emitted_percent:
            return None
        job.last_emitted_percent = percent
    else:
        second = int(parsed.elapsed_seconds)
        if second <= job.last_emitted_second:
            return None
        job.last_emitted_second = second

    return ProgressSample(
        job_id=job.id,
        percent=percent,
        elapsed_seconds=parsed.elapsed_seconds,
        speed_multiplier=parsed.speed_multiplier,
        bytes_written=parsed.bytes_written,
    )


def classify_failure(diagnostic_lines: Iterable[str]) -> Tuple[FailureKind, str]:
    """Maps captured ffmpeg output of a failed run to a user-facing message."""
    lines = [line.rstrip("\r\n") for line in diagnostic_lines]
    text = "\n".join(lines)

    for needle, kind, message in ERROR_PATTERNS:
        if needle in text:
            return kind, message

    for line in lines:
        if any(token in line for token in ERROR_TOKENS):
            candidate = line.strip()
            if len(candidate) < MAX_ERROR_LINE:
                return FailureKind.UNKNOWN, candidate
            break

    return FailureKind.UNKNOWN, GENERIC_FAILURE
