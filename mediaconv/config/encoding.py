"""Encoder argument tables and the pure format/quality -> ffmpeg args resolver.

Each hardware family keeps its own lookup table with its own default entry.
The tiers overlap but the numeric scales differ (bitrate, CQ, QP), so they are
not folded into one quality curve.
"""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from mediaconv.domain.errors import UnsupportedFormatError
from mediaconv.domain.models import AccelType, CapabilitySnapshot, OutputFormat

DEFAULT_VAAPI_DEVICE = "/dev/dri/renderD128"

SOFTWARE_H264_ENCODER = "libx264"
SOFTWARE_HEVC_ENCODER = "libx265"

VIDEO_AUDIO_ARGS = ["-c:a", "aac", "-b:a", "128k"]
AUDIO_ONLY_BITRATE = "192k"

H264_CRF: Dict[str, str] = {
    "4K": "18",
    "1440p": "20",
    "1080p": "23",
    "720p": "25",
    "480p": "28",
}
H264_CRF_DEFAULT = "23"

VIDEOTOOLBOX_BITRATE: Dict[str, str] = {
    "4320p": "80M",
    "2160p": "40M",
    "1440p": "20M",
    "1080p": "10M",
    "720p": "5M",
    "480p": "2.5M",
    "360p": "1M",
}
VIDEOTOOLBOX_BITRATE_DEFAULT = "5M"

NVENC_CQ: Dict[str, str] = {
    "4320p": "19",
    "2160p": "21",
    "1440p": "23",
    "1080p": "23",
    "720p": "25",
    "480p": "28",
    "360p": "30",
}
NVENC_CQ_DEFAULT = "23"

# AMF QP, QSV global_quality and VA-API QP share one scale
HW_QP: Dict[str, str] = {
    "4320p": "18",
    "2160p": "20",
    "1440p": "22",
    "1080p": "22",
    "720p": "24",
    "480p": "26",
    "360p": "28",
}
HW_QP_DEFAULT = "22"

PRORES_PROFILE: Dict[str, str] = {
    "4K": "3",       # HQ
    "1440p": "2",    # Standard
    "1080p": "2",
    "720p": "1",     # LT
    "480p": "0",     # Proxy
}
PRORES_PROFILE_DEFAULT = "2"

DNXHR_PROFILE: Dict[str, str] = {
    "4K": "dnxhr_hqx",
    "1440p": "dnxhr_hq",
    "1080p": "dnxhr_sq",
    "720p": "dnxhr_lb",
    "480p": "dnxhr_lb",
}
DNXHR_PROFILE_DEFAULT = "dnxhr_sq"

OUTPUT_EXTENSIONS: Dict[OutputFormat, str] = {
    OutputFormat.H264: "mp4",
    OutputFormat.PRORES: "mov",
    OutputFormat.DNXHR: "mov",
    OutputFormat.AUDIO_ONLY: "m4a",
}


def lookup(table: Mapping[str, str], quality: Any, default: str) -> str:
    """Returns the table entry for a tier, or the table's default for unknown tiers."""
    return table.get(str(quality), default)


def parse_format(value: Any) -> OutputFormat:
    try:
        return OutputFormat.parse(value)
    except ValueError:
        raise UnsupportedFormatError(value) from None


def amf_quality_preset(quality: str) -> str:
    return "quality" if ("4" in quality or "2160" in quality) else "balanced"


def _gpu_h264_args(quality: str, accel: AccelType, vaapi_device: str) -> Optional[List[str]]:
    if accel == AccelType.VIDEOTOOLBOX:
        return [
            "-c:v", "h264_videotoolbox",
            "-b:v", lookup(VIDEOTOOLBOX_BITRATE, quality, VIDEOTOOLBOX_BITRATE_DEFAULT),
            "-profile:v", "high",
            "-allow_sw", "1",
        ]
    if accel == AccelType.NVENC:
        return [
            "-c:v", "h264_nvenc",
            "-preset", "p4",
            "-cq", lookup(NVENC_CQ, quality, NVENC_CQ_DEFAULT),
            "-b:v", "0",
        ]
    if accel == AccelType.AMF:
        qp = lookup(HW_QP, quality, HW_QP_DEFAULT)
        return [
            "-c:v", "h264_amf",
            "-quality", amf_quality_preset(quality),
            "-rc", "cqp",
            "-qp_i", qp,
            "-qp_p", qp,
        ]
    if accel == AccelType.QSV:
        return [
            "-c:v", "h264_qsv",
            "-preset", "medium",
            "-global_quality", lookup(HW_QP, quality, HW_QP_DEFAULT),
        ]
    if accel == AccelType.VAAPI:
        return [
            "-vaapi_device", vaapi_device,
            "-vf", "format=nv12,hwupload",
            "-c:v", "h264_vaapi",
            "-qp", lookup(HW_QP, quality, HW_QP_DEFAULT),
        ]
    return None


def resolve(
    format: Any,
    quality: str,
    snapshot: Optional[CapabilitySnapshot],
    prefer_gpu: bool = True,
    vaapi_device: str = DEFAULT_VAAPI_DEVICE,
) -> List[str]:
    """Maps (format, quality tier, capabilities) to ffmpeg encoding arguments.

    Pure: it never probes, spawns or touches the filesystem. Unknown tiers
    select the relevant table's default. Raises UnsupportedFormatError for
    anything outside OutputFormat.
    """
    fmt = parse_format(format)
    quality = str(quality)

    if fmt == OutputFormat.H264:
        if prefer_gpu and snapshot is not None and snapshot.has_gpu:
            gpu_args = _gpu_h264_args(quality, snapshot.type, vaapi_device)
            if gpu_args is not None:
                return gpu_args + VIDEO_AUDIO_ARGS
        return [
            "-c:v", SOFTWARE_H264_ENCODER,
            "-preset", "medium",
            "-crf", lookup(H264_CRF, quality, H264_CRF_DEFAULT),
        ] + VIDEO_AUDIO_ARGS

    if fmt == OutputFormat.PRORES:
        return [
            "-c:v", "prores_ks",
            "-profile:v", lookup(PRORES_PROFILE, quality, PRORES_PROFILE_DEFAULT),
            "-c:a", "pcm_s16le",
        ]

    if fmt == OutputFormat.DNXHR:
        return [
            "-c:v", "dnxhd",
            "-profile:v", lookup(DNXHR_PROFILE, quality, DNXHR_PROFILE_DEFAULT),
            "-c:a", "pcm_s16le",
        ]

    # Audio only: drop the video stream entirely
    return ["-vn", "-c:a", "aac", "-b:a", AUDIO_ONLY_BITRATE]


def output_extension(format: Any) -> str:
    return OUTPUT_EXTENSIONS[parse_format(format)]


def build_output_path(input_path: Path, format: Any, output_dir: Optional[Path] = None) -> Path:
    """Output path beside the input (or in output_dir) with the format's extension."""
    input_path = Path(input_path)
    target = input_path.with_suffix(f".{output_extension(format)}")
    if output_dir is not None:
        target = Path(output_dir) / target.name
    if target == input_path:
        target = target.with_name(f"{input_path.stem}_converted{target.suffix}")
    return target
