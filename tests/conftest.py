import pytest
import yaml
from pathlib import Path
from unittest.mock import MagicMock
from mediaconv.config.models import AppConfig
from mediaconv.domain.models import AccelType, CapabilitySnapshot
from mediaconv.infrastructure.binaries import BinaryLocator, executable_suffix

# ============================================================================
# Captured ffmpeg output
# ============================================================================

FFMPEG_PROGRESS_LINES = [
    "Input #0, matroska,webm, from 'input.webm':\n",
    "  Duration: 00:00:10.00, start: 0.000000, bitrate: 1200 kb/s\n",
    "frame=   25 fps=0.0 q=28.0 size=     256kB time=00:00:01.00 bitrate=2097.2kbits/s speed=2.00x\n",
    "frame=   26 fps=0.0 q=28.0 size=     260kB time=00:00:01.02 bitrate=2097.2kbits/s speed=2.00x\n",
    "frame=  125 fps= 50 q=28.0 size=    1024kB time=00:00:05.00 bitrate=1677.7kbits/s speed=1.02x\n",
    "frame=  250 fps= 50 q=-1.0 Lsize=    2048kB time=00:00:10.00 bitrate=1677.7kbits/s speed=1.01x\n",
]

ENCODERS_OUTPUT = """Encoders:
 V..... = Video
 A..... = Audio
 S..... = Subtitle
 .F.... = Frame-level multithreading
 ..S... = Slice-level multithreading
 ...X.. = Codec is experimental
 ....B. = Supports draw_horiz_band
 .....D = Supports direct rendering method 1
 ------
 V....D libx264              libx264 H.264 / AVC / MPEG-4 AVC / MPEG-4 part 10 (codec h264)
 V....D h264_nvenc           NVIDIA NVENC H.264 encoder (codec h264)
 V....D hevc_nvenc           NVIDIA NVENC hevc encoder (codec hevc)
 V....D h264_vaapi           H.264/AVC (VAAPI) (codec h264)
 V....D hevc_vaapi           H.265/HEVC (VAAPI) (codec hevc)
 V....D h264_qsv             H.264 / AVC / MPEG-4 AVC / MPEG-4 part 10 (Intel Quick Sync Video acceleration) (codec h264)
 V....D h264_amf             AMD AMF H.264 Encoder (codec h264)
 V....D h264_videotoolbox    VideoToolbox H.264 Encoder (codec h264)
 V....D hevc_videotoolbox    VideoToolbox H.265 Encoder (codec hevc)
 A....D aac                  AAC (Advanced Audio Coding)
"""

HWACCELS_OUTPUT = """Hardware acceleration methods:
vdpau
cuda
vaapi
qsv
d3d11va
videotoolbox
"""

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def binaries_dir(tmp_path):
    """A binaries directory holding placeholder ffmpeg/ffprobe files."""
    directory = tmp_path / "binaries"
    directory.mkdir()
    for name in ("ffmpeg", "ffprobe"):
        (directory / f"{name}{executable_suffix()}").write_text("")
    return directory


@pytest.fixture
def app_config(binaries_dir):
    """Config pointing at the placeholder binaries, software-only, no auto duration probe."""
    return AppConfig(
        binaries={"directory": binaries_dir},
        probes={"auto_duration": False},
        encoding={"prefer_gpu": False},
    )


@pytest.fixture
def locator(app_config):
    return BinaryLocator(app_config.binaries)


@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "mediaconv.yaml"

    content = {
        'binaries': {
            'directory': '../bin',
            'ffmpeg_name': 'ffmpeg',
        },
        'probes': {
            'capability_timeout_s': 5,
            'auto_duration': False,
        },
        'encoding': {
            'prefer_gpu': False,
            'diagnostic_tail_lines': 50,
        },
        'logging': {
            'debug': True,
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# Domain Fixtures
# ============================================================================

@pytest.fixture
def input_file(tmp_path):
    path = tmp_path / "input.webm"
    path.write_bytes(b"\x1a\x45\xdf\xa3" + b"x" * 64)
    return path


@pytest.fixture
def software_snapshot():
    return CapabilitySnapshot(platform="linux", arch="x86_64")


@pytest.fixture
def gpu_snapshot():
    def _make(accel: AccelType, encoders=None):
        return CapabilitySnapshot(
            platform="linux",
            arch="x86_64",
            has_gpu=True,
            type=accel,
            encoders=encoders or [f"h264_{accel.value}"],
        )
    return _make

# ============================================================================
# Subprocess Fixtures
# ============================================================================

@pytest.fixture
def fake_process():
    """Builds a Popen stand-in that replays the given output lines and exit code."""
    def _make(lines, returncode=0, pid=4242, on_wait=None):
        process = MagicMock()
        process.pid = pid
        process.stdout = list(lines)
        process.returncode = returncode

        def _wait(*_args, **_kwargs):
            if on_wait:
                on_wait()
            return returncode

        process.wait.side_effect = _wait
        return process
    return _make
