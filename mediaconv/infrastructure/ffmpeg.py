import subprocess
import logging
import time
import threading
import queue
from collections import deque
from pathlib import Path
from typing import Callable, List, Optional
from mediaconv.config.models import EncodingConfig
from mediaconv.domain.errors import (
    ConversionCancelledError, EncodingError, OutputMissingError, ProcessSpawnError,
)
from mediaconv.domain.models import ConversionJob, ConversionResult, JobState, ProgressSample
from mediaconv.infrastructure.progress import classify_failure, next_sample

ProgressCallback = Callable[[ProgressSample], None]

class FFmpegAdapter:
    """Runs one ffmpeg conversion per job and turns its output into progress and a result."""

    def __init__(self, ffmpeg_path: Path, config: Optional[EncodingConfig] = None):
        self.ffmpeg_path = Path(ffmpeg_path)
        self.config = config or EncodingConfig()
        self.logger = logging.getLogger(__name__)

    def build_command(self, job: ConversionJob, encoding_args: List[str]) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        return [
            str(self.ffmpeg_path),
            "-i", str(job.input_path),
            "-y",  # Overwrite output files
            *encoding_args,
            str(job.output_path),
        ]

    def spawn(self, job: ConversionJob, encoding_args: List[str]) -> subprocess.Popen:
        """Starts ffmpeg for the job; stderr is merged into one line-buffered text stream."""
        cmd = self.build_command(job, encoding_args)
        self.logger.info(f"FFMPEG_START: job={job.id} {job.input_path.name} -> {job.output_path.name} "
                         f"(format={job.format.value}, quality={job.quality})")
        self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,  # ffmpeg ends progress lines with \r
                errors="replace",
                bufsize=1
            )
        except OSError as e:
            job.state = JobState.FAILED
            job.error_message = str(e)
            self.logger.error(f"FFMPEG_SPAWN_FAILED: job={job.id} {e}")
            raise ProcessSpawnError(str(e)) from e

        job.process = process
        return process

    def _emit(self, job: ConversionJob, on_progress: ProgressCallback, sample: ProgressSample):
        try:
            on_progress(sample)
        except Exception as e:
            self.logger.warning(f"FFMPEG_PROGRESS_CALLBACK: job={job.id} callback raised {e!r}")

    def _remove_partial_output(self, job: ConversionJob):
        if not self.config.remove_partial_output:
            return
        try:
            if job.output_path.exists():
                job.output_path.unlink()
        except OSError as e:
            self.logger.warning(f"FFMPEG_CLEANUP: could not remove {job.output_path}: {e}")

    def supervise(self, job: ConversionJob, on_progress: Optional[ProgressCallback] = None) -> ConversionResult:
        """Consumes the job's output until ffmpeg exits and returns the result.

        Blocks the calling thread. Raises ConversionCancelledError, EncodingError
        or OutputMissingError for the matching terminal states.
        """
        process = job.process
        start_time = time.monotonic()
        tail: "deque[str]" = deque(maxlen=self.config.diagnostic_tail_lines)
        output_queue: "queue.Queue[Optional[str]]" = queue.Queue()

        def _reader():
            try:
                if process.stdout:
                    for line in process.stdout:
                        output_queue.put(line)
            finally:
                output_queue.put(None)

        reader_thread = threading.Thread(target=_reader, name=f"ffmpeg-reader-{job.id}", daemon=True)
        reader_thread.start()

        while True:
            line = output_queue.get()
            if line is None:
                break
            tail.append(line)

            # Late output after a cancel request must not surface as progress
            if job.state != JobState.RUNNING:
                continue
            sample = next_sample(job, line)
            if sample is not None and on_progress is not None:
                self._emit(job, on_progress, sample)

        returncode = process.wait()
        reader_thread.join(timeout=1.0)
        elapsed = time.monotonic() - start_time

        if job.state == JobState.CANCEL_REQUESTED:
            job.state = JobState.CANCELLED
            job.error_message = "Cancelled"
            self._remove_partial_output(job)
            self.logger.info(f"FFMPEG_END: job={job.id} status=cancelled code={returncode} elapsed={elapsed:.2f}s")
            raise ConversionCancelledError(job.id)

        if returncode == 0:
            if not job.output_path.exists():
                job.state = JobState.FAILED
                job.error_message = "Output file missing after successful exit"
                self.logger.error(f"FFMPEG_END: job={job.id} status=failed output missing: {job.output_path}")
                raise OutputMissingError(job.output_path)

            job.state = JobState.COMPLETED
            size = job.output_path.stat().st_size
            self.logger.info(f"FFMPEG_END: job={job.id} status=completed size={size} elapsed={elapsed:.2f}s")
            return ConversionResult(
                job_id=job.id,
                output_path=job.output_path,
                file_size_bytes=size,
                elapsed_seconds=elapsed,
            )

        failure_kind, message = classify_failure(tail)
        job.state = JobState.FAILED
        job.error_message = message
        self._remove_partial_output(job)
        self.logger.error(f"FFMPEG_END: job={job.id} status=failed code={returncode} "
                          f"kind={failure_kind.value} elapsed={elapsed:.2f}s: {message}")
        if tail:
            self.logger.debug(f"FFMPEG_TAIL: job={job.id}\n{''.join(list(tail)[-20:])}")
        raise EncodingError(message, failure_kind=failure_kind, exit_code=returncode)

    def terminate(self, job: ConversionJob) -> bool:
        """Sends SIGTERM to the job's process without waiting for it to exit."""
        process = job.process
        if process is None:
            return False
        try:
            process.terminate()
        except (ProcessLookupError, OSError) as e:
            self.logger.debug(f"FFMPEG_TERMINATE: job={job.id} already gone ({e})")
            return False
        return True
