import pytest
from pathlib import Path
from unittest.mock import patch, MagicMock
from mediaconv.config.models import EncodingConfig
from mediaconv.domain.errors import (
    ConversionCancelledError, EncodingError, FailureKind, OutputMissingError, ProcessSpawnError,
)
from mediaconv.domain.models import ConversionJob, JobState, OutputFormat
from mediaconv.infrastructure.ffmpeg import FFmpegAdapter
from conftest import FFMPEG_PROGRESS_LINES


def _job(tmp_path, duration=10.0):
    return ConversionJob(
        id=1,
        input_path=tmp_path / "input.webm",
        output_path=tmp_path / "output.mp4",
        format=OutputFormat.H264,
        quality="1080p",
        duration_seconds=duration,
        state=JobState.RUNNING,
    )


@pytest.fixture
def adapter():
    return FFmpegAdapter(Path("/opt/bin/ffmpeg"), EncodingConfig())


def test_ffmpeg_command_layout(adapter, tmp_path):
    job = _job(tmp_path)
    cmd = adapter.build_command(job, ["-c:v", "libx264", "-crf", "23"])

    assert cmd == [
        "/opt/bin/ffmpeg",
        "-i", str(job.input_path),
        "-y",
        "-c:v", "libx264", "-crf", "23",
        str(job.output_path),
    ]


def test_spawn_pipes_merged_output(adapter, tmp_path):
    job = _job(tmp_path)
    with patch("subprocess.Popen") as mock_popen:
        process = adapter.spawn(job, ["-vn"])

    assert job.process is process
    kwargs = mock_popen.call_args[1]
    assert kwargs["stderr"] is not None
    assert kwargs["universal_newlines"] is True


def test_spawn_failure_raises_process_spawn_error(adapter, tmp_path):
    job = _job(tmp_path)
    with patch("subprocess.Popen", side_effect=PermissionError("Permission denied")):
        with pytest.raises(ProcessSpawnError, match="Failed to start conversion process"):
            adapter.spawn(job, ["-vn"])

    assert job.state == JobState.FAILED
    assert job.process is None


def test_supervise_success_reports_progress(adapter, tmp_path, fake_process):
    job = _job(tmp_path)
    job.output_path.write_bytes(b"x" * 2048)
    job.process = fake_process(FFMPEG_PROGRESS_LINES, returncode=0)
    samples = []

    result = adapter.supervise(job, samples.append)

    assert job.state == JobState.COMPLETED
    assert result.output_path == job.output_path
    assert result.file_size_bytes == 2048
    assert result.job_id == 1
    assert [s.percent for s in samples] == [10, 50, 100]


def test_supervise_output_missing_after_success(adapter, tmp_path, fake_process):
    job = _job(tmp_path)
    job.process = fake_process(FFMPEG_PROGRESS_LINES, returncode=0)

    with pytest.raises(OutputMissingError):
        adapter.supervise(job)

    assert job.state == JobState.FAILED


def test_supervise_failure_is_classified(adapter, tmp_path, fake_process):
    job = _job(tmp_path)
    job.output_path.write_bytes(b"partial")
    job.process = fake_process(
        ["frame= 10 time=00:00:01.00\n", "[mp4 @ 0x1] Error writing: No space left on device\n"],
        returncode=1,
    )

    with pytest.raises(EncodingError) as exc_info:
        adapter.supervise(job)

    assert exc_info.value.failure_kind == FailureKind.DISK_SPACE
    assert exc_info.value.message == "Insufficient disk space for conversion"
    assert exc_info.value.exit_code == 1
    assert job.state == JobState.FAILED
    assert not job.output_path.exists()


def test_supervise_failure_keeps_partial_output_when_configured(tmp_path, fake_process):
    adapter = FFmpegAdapter(Path("ffmpeg"), EncodingConfig(remove_partial_output=False))
    job = _job(tmp_path)
    job.output_path.write_bytes(b"partial")
    job.process = fake_process(["Conversion failed!\n"], returncode=1)

    with pytest.raises(EncodingError, match="Conversion failed!"):
        adapter.supervise(job)

    assert job.output_path.exists()


def test_supervise_classifies_only_retained_tail(tmp_path, fake_process):
    adapter = FFmpegAdapter(Path("ffmpeg"), EncodingConfig(diagnostic_tail_lines=10))
    job = _job(tmp_path)
    lines = ["Invalid data found in an early probe\n"] + [f"frame={i} time=00:00:0{i % 10}.00\n" for i in range(20)]
    job.process = fake_process(lines, returncode=1)

    with pytest.raises(EncodingError) as exc_info:
        adapter.supervise(job)

    assert exc_info.value.failure_kind == FailureKind.UNKNOWN


def test_supervise_cancel_requested(adapter, tmp_path, fake_process):
    job = _job(tmp_path)
    job.output_path.write_bytes(b"partial")
    samples = []

    def _cancel_during_wait():
        job.state = JobState.CANCEL_REQUESTED

    job.process = fake_process(FFMPEG_PROGRESS_LINES[:3], returncode=-15, on_wait=_cancel_during_wait)

    with pytest.raises(ConversionCancelledError):
        adapter.supervise(job, samples.append)

    assert job.state == JobState.CANCELLED
    assert not job.output_path.exists()


def test_supervise_no_progress_after_cancel_request(adapter, tmp_path, fake_process):
    job = _job(tmp_path)
    job.state = JobState.CANCEL_REQUESTED
    job.process = fake_process(FFMPEG_PROGRESS_LINES, returncode=-15)
    samples = []

    with pytest.raises(ConversionCancelledError):
        adapter.supervise(job, samples.append)

    assert samples == []


def test_supervise_callback_errors_do_not_kill_job(adapter, tmp_path, fake_process):
    job = _job(tmp_path)
    job.output_path.write_bytes(b"ok")
    job.process = fake_process(FFMPEG_PROGRESS_LINES, returncode=0)
    callback = MagicMock(side_effect=RuntimeError("ui gone"))

    result = adapter.supervise(job, callback)

    assert result.file_size_bytes == 2
    assert callback.call_count == 3


def test_terminate_sends_sigterm(adapter, tmp_path):
    job = _job(tmp_path)
    job.process = MagicMock()

    assert adapter.terminate(job) is True
    job.process.terminate.assert_called_once()
    job.process.wait.assert_not_called()


def test_terminate_already_exited(adapter, tmp_path):
    job = _job(tmp_path)
    job.process = MagicMock()
    job.process.terminate.side_effect = ProcessLookupError()

    assert adapter.terminate(job) is False


def test_terminate_without_process(adapter, tmp_path):
    assert adapter.terminate(_job(tmp_path)) is False
