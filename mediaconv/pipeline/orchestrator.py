import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from mediaconv.config.encoding import parse_format, resolve
from mediaconv.config.models import AppConfig
from mediaconv.domain.errors import BinaryMissingError, InputNotFoundError, ProcessSpawnError
from mediaconv.domain.models import (
    ActiveJob, CapabilitySnapshot, ConversionJob, ConversionResult, JobState, OutputFormat,
)
from mediaconv.infrastructure.binaries import BinaryLocator
from mediaconv.infrastructure.capabilities import CapabilityProbe
from mediaconv.infrastructure.ffmpeg import FFmpegAdapter, ProgressCallback
from mediaconv.infrastructure.ffprobe import FFprobeAdapter
from mediaconv.pipeline.registry import JobRegistry


@dataclass
class ConversionHandle:
    """A started job: its id for cancel(), and a future that settles on process exit."""

    job: ConversionJob
    future: "Future[ConversionResult]"

    @property
    def job_id(self) -> int:
        return self.job.id

    def result(self, timeout: Optional[float] = None) -> ConversionResult:
        return self.future.result(timeout=timeout)


class ConversionOrchestrator:
    """Entry point for callers: owns the capability cache and the active-job registry.

    Construct one per application and pass it around. There is no cap on
    concurrent jobs; admission control belongs to the caller.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        locator: Optional[BinaryLocator] = None,
        capability_probe: Optional[CapabilityProbe] = None,
        ffprobe_adapter: Optional[FFprobeAdapter] = None,
        ffmpeg_adapter: Optional[FFmpegAdapter] = None,
    ):
        self.config = config or AppConfig()
        self.locator = locator or BinaryLocator(self.config.binaries)
        self.capabilities = capability_probe or CapabilityProbe(
            self.locator,
            timeout=self.config.probes.capability_timeout_s,
            max_output_bytes=self.config.probes.max_output_bytes,
        )
        self.ffprobe = ffprobe_adapter or FFprobeAdapter(self.locator, timeout=self.config.probes.duration_timeout_s)
        self.ffmpeg = ffmpeg_adapter or FFmpegAdapter(self.locator.ffmpeg, self.config.encoding)
        self.registry = JobRegistry()
        self.logger = logging.getLogger(__name__)

    def is_available(self) -> bool:
        return self.locator.ffmpeg_available()

    def detect_capabilities(self) -> CapabilitySnapshot:
        return self.capabilities.detect()

    def reset_capabilities(self):
        self.capabilities.reset()

    def get_duration(self, path: Path) -> Optional[float]:
        return self.ffprobe.get_duration(Path(path))

    def start(
        self,
        input_path: Path,
        output_path: Path,
        format: Any,
        quality: str,
        duration_seconds: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
        prefer_gpu: Optional[bool] = None,
    ) -> ConversionHandle:
        """Validates, spawns ffmpeg and returns immediately.

        InputNotFoundError, BinaryMissingError and UnsupportedFormatError are
        raised here, before anything is spawned. Everything later (spawn
        failure included) arrives through the handle's future.
        """
        input_path = Path(input_path)
        output_path = Path(output_path)
        if not input_path.is_file():
            raise InputNotFoundError(input_path)
        if not self.locator.ffmpeg_available():
            raise BinaryMissingError(self.locator.ffmpeg)
        fmt = parse_format(format)

        if prefer_gpu is None:
            prefer_gpu = self.config.encoding.prefer_gpu
        # Only GPU-eligible H.264 needs the (possibly slow) first probe
        if fmt == OutputFormat.H264 and prefer_gpu:
            snapshot = self.capabilities.detect()
        else:
            snapshot = self.capabilities.snapshot
        encoding_args = resolve(fmt, quality, snapshot, prefer_gpu=prefer_gpu,
                                vaapi_device=self.config.encoding.vaapi_device)

        if duration_seconds is None and self.config.probes.auto_duration:
            duration_seconds = self.ffprobe.get_duration(input_path)

        job = ConversionJob(
            id=self.registry.next_id(),
            input_path=input_path,
            output_path=output_path,
            format=fmt,
            quality=str(quality),
            duration_seconds=duration_seconds if duration_seconds and duration_seconds > 0 else None,
        )
        future: "Future[ConversionResult]" = Future()
        future.set_running_or_notify_cancel()
        handle = ConversionHandle(job=job, future=future)

        try:
            self.ffmpeg.spawn(job, encoding_args)
        except ProcessSpawnError as e:
            future.set_exception(e)
            return handle

        job.state = JobState.RUNNING
        self.registry.add(job)

        supervisor = threading.Thread(
            target=self._supervise,
            args=(job, future, on_progress),
            name=f"ffmpeg-job-{job.id}",
            daemon=True,
        )
        supervisor.start()
        return handle

    def _supervise(self, job: ConversionJob, future: "Future[ConversionResult]",
                   on_progress: Optional[ProgressCallback]):
        result: Optional[ConversionResult] = None
        error: Optional[BaseException] = None
        try:
            result = self.ffmpeg.supervise(job, on_progress)
        except Exception as e:
            error = e
            if job.is_active:
                job.state = JobState.FAILED
                job.error_message = str(e)
                self.logger.error(f"JOB_CRASHED: job={job.id} {e!r}")

        # Leave the registry before the caller can observe the outcome
        self.registry.remove(job.id)
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def convert(
        self,
        input_path: Path,
        output_path: Path,
        format: Any,
        quality: str,
        duration_seconds: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
        prefer_gpu: Optional[bool] = None,
    ) -> ConversionResult:
        """Runs one conversion to completion; raises ConversionError on failure."""
        handle = self.start(
            input_path,
            output_path,
            format,
            quality,
            duration_seconds=duration_seconds,
            on_progress=on_progress,
            prefer_gpu=prefer_gpu,
        )
        return handle.result()

    def cancel(self, job_id: int) -> bool:
        """Best-effort: signals the process and forgets the job without waiting for exit."""
        job = self.registry.request_cancel(job_id)
        if job is None:
            return False
        self.ffmpeg.terminate(job)
        self.logger.info(f"JOB_CANCEL: job={job_id} pid={job.pid}")
        return True

    def cancel_all(self) -> int:
        jobs = self.registry.request_cancel_all()
        for job in jobs:
            self.ffmpeg.terminate(job)
        self.logger.info(f"JOB_CANCEL_ALL: cancelled {len(jobs)} active conversions")
        return len(jobs)

    def list_active_jobs(self) -> List[ActiveJob]:
        return self.registry.active()
