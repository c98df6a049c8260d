import logging
import platform as platform_mod
import re
import subprocess
import sys
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from mediaconv.config.encoding import SOFTWARE_H264_ENCODER, SOFTWARE_HEVC_ENCODER
from mediaconv.domain.models import AccelType, CapabilitySnapshot
from mediaconv.infrastructure.binaries import BinaryLocator

# " V....D h264_nvenc           NVIDIA NVENC H.264 encoder (codec h264)"
ENCODER_LINE_RE = re.compile(r"^\s*[VAS][A-Z.]{5}\s+(\S+)\s")


@dataclass(frozen=True)
class AccelFamily:
    type: AccelType
    h264_encoder: str
    backend: str
    keyword: str
    decoders: Tuple[str, ...]
    description: str


FAMILIES: Dict[AccelType, AccelFamily] = {
    AccelType.VIDEOTOOLBOX: AccelFamily(
        AccelType.VIDEOTOOLBOX, "h264_videotoolbox", "videotoolbox", "videotoolbox",
        ("h264", "hevc", "mpeg4"),
        "Apple VideoToolbox (Hardware Accelerated)",
    ),
    AccelType.NVENC: AccelFamily(
        AccelType.NVENC, "h264_nvenc", "cuda", "nvenc",
        ("h264", "hevc", "mpeg2", "mpeg4", "vc1", "vp8", "vp9"),
        "NVIDIA NVENC (Hardware Accelerated)",
    ),
    AccelType.AMF: AccelFamily(
        AccelType.AMF, "h264_amf", "d3d11va", "amf",
        ("h264", "hevc", "mpeg2", "mpeg4"),
        "AMD AMF (Hardware Accelerated)",
    ),
    AccelType.QSV: AccelFamily(
        AccelType.QSV, "h264_qsv", "qsv", "qsv",
        ("h264", "hevc", "mpeg2", "mpeg4", "vp8", "vp9"),
        "Intel Quick Sync (Hardware Accelerated)",
    ),
    AccelType.VAAPI: AccelFamily(
        AccelType.VAAPI, "h264_vaapi", "vaapi", "vaapi",
        ("h264", "hevc", "mpeg2", "mpeg4", "vp8", "vp9"),
        "VA-API (Hardware Accelerated)",
    ),
}

PLATFORM_PRIORITY: Dict[str, List[AccelType]] = {
    "darwin": [AccelType.VIDEOTOOLBOX],
    "win32": [AccelType.NVENC, AccelType.AMF, AccelType.QSV],
}
DEFAULT_PRIORITY = [AccelType.VAAPI, AccelType.NVENC]


class ProbeError(RuntimeError):
    pass


def parse_encoder_lines(encoders_output: str) -> List[Tuple[str, str]]:
    """Returns (name, raw line) for every encoder row of `ffmpeg -encoders`."""
    lines = encoders_output.splitlines()
    # Legend sits above the " ------" separator
    for index, line in enumerate(lines):
        if line.strip().startswith("--"):
            lines = lines[index + 1:]
            break

    rows = []
    for line in lines:
        match = ENCODER_LINE_RE.match(line)
        if match and match.group(1) != "=":
            rows.append((match.group(1), line))
    return rows


def parse_encoders(encoders_output: str, keywords: List[str]) -> List[str]:
    """Encoder names whose row mentions any keyword (case-insensitive)."""
    lowered = [k.lower() for k in keywords]
    return [
        name for name, line in parse_encoder_lines(encoders_output)
        if any(k in line.lower() for k in lowered)
    ]


def parse_hwaccels(hwaccels_output: str) -> Set[str]:
    """'Hardware acceleration methods:' followed by one backend per line."""
    methods = set()
    for line in hwaccels_output.splitlines():
        token = line.strip()
        if not token or token.endswith(":") or " " in token:
            continue
        methods.add(token.lower())
    return methods


def classify_capabilities(platform: str, arch: str, encoders_output: str, hwaccels_output: str) -> CapabilitySnapshot:
    """Turns raw probe text into a snapshot. The only reader of probe text.

    A family counts only when its H.264 encoder is compiled in and its runtime
    backend is listed by -hwaccels.
    """
    encoder_names = {name for name, _ in parse_encoder_lines(encoders_output)}
    backends = parse_hwaccels(hwaccels_output)

    for accel in PLATFORM_PRIORITY.get(platform, DEFAULT_PRIORITY):
        family = FAMILIES[accel]
        if family.h264_encoder in encoder_names and family.backend in backends:
            return CapabilitySnapshot(
                platform=platform,
                arch=arch,
                has_gpu=True,
                type=accel,
                encoders=parse_encoders(encoders_output, [family.keyword]),
                decoders=list(family.decoders),
                description=family.description,
            )

    return CapabilitySnapshot(platform=platform, arch=arch, description="Software encoding only")


class CapabilityProbe:
    """Detects hardware-accelerated encoders by querying ffmpeg.

    The first successful snapshot is cached for the lifetime of the probe;
    failed probes are reported but not cached.
    """

    def __init__(self, locator: BinaryLocator, timeout: float = 10.0, max_output_bytes: int = 1024 * 1024,
                 platform: Optional[str] = None, arch: Optional[str] = None):
        self.locator = locator
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes
        self.platform = platform or sys.platform
        self.arch = arch or platform_mod.machine()
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._snapshot: Optional[CapabilitySnapshot] = None

    def _run(self, *args: str) -> str:
        cmd = [str(self.locator.ffmpeg), "-hide_banner", *args]
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ProbeError(f"ffmpeg not found: {self.locator.ffmpeg}") from e
        except subprocess.TimeoutExpired as e:
            raise ProbeError(f"ffmpeg {' '.join(args)} timed out after {self.timeout:g}s") from e
        except OSError as e:
            raise ProbeError(f"ffmpeg {' '.join(args)} could not be started: {e}") from e

        output = result.stdout or ""
        if len(output.encode("utf-8", errors="replace")) > self.max_output_bytes:
            raise ProbeError(f"ffmpeg {' '.join(args)} output exceeded {self.max_output_bytes} bytes")
        if result.returncode != 0:
            raise ProbeError(f"ffmpeg {' '.join(args)} exited with code {result.returncode}")
        return output

    def detect(self) -> CapabilitySnapshot:
        """Returns the cached snapshot, probing ffmpeg on first use."""
        with self._lock:
            if self._snapshot is not None:
                return self._snapshot

            try:
                encoders_output = self._run("-encoders")
                hwaccels_output = self._run("-hwaccels")
                snapshot = classify_capabilities(self.platform, self.arch, encoders_output, hwaccels_output)
            except ProbeError as e:
                self.logger.warning(f"CAPS_FAILED: {e} (falling back to software encoding)")
                return CapabilitySnapshot(platform=self.platform, arch=self.arch, error=str(e))

            if snapshot.has_gpu:
                self.logger.info(
                    f"CAPS_DETECTED: {snapshot.description} encoders={','.join(snapshot.encoders)} "
                    f"platform={self.platform} ({self.arch})"
                )
            else:
                self.logger.info(f"CAPS_DETECTED: no GPU acceleration on {self.platform} ({self.arch}), using software encoding")

            self._snapshot = snapshot
            return snapshot

    def reset(self):
        """Drops the cached snapshot so the next detect() probes again."""
        with self._lock:
            self._snapshot = None

    @property
    def snapshot(self) -> Optional[CapabilitySnapshot]:
        return self._snapshot

    def _gpu_encoders(self) -> List[str]:
        snapshot = self._snapshot
        if snapshot is None or not snapshot.has_gpu:
            return []
        return snapshot.encoders

    def get_h264_encoder(self) -> str:
        matches = [e for e in self._gpu_encoders() if "h264" in e or "264" in e]
        return matches[0] if matches else SOFTWARE_H264_ENCODER

    def get_hevc_encoder(self) -> str:
        matches = [e for e in self._gpu_encoders() if "hevc" in e or "265" in e]
        return matches[0] if matches else SOFTWARE_HEVC_ENCODER

    def is_available(self) -> bool:
        return bool(self._snapshot and self._snapshot.has_gpu)

    def get_type(self) -> Optional[AccelType]:
        return self._snapshot.type if self._snapshot else None
