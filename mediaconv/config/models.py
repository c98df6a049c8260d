from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, field_validator

DEFAULT_BINARIES_DIR = Path(__file__).resolve().parents[2] / "binaries"

class BinariesConfig(BaseModel):
    """Where the bundled ffmpeg/ffprobe pair lives."""
    directory: Path = Field(default=DEFAULT_BINARIES_DIR)
    ffmpeg_name: str = "ffmpeg"
    ffprobe_name: str = "ffprobe"

    @field_validator("ffmpeg_name", "ffprobe_name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v or "/" in v or "\\" in v:
            raise ValueError(f"Binary name must be a bare file name, got '{v}'")
        return v

class ProbeConfig(BaseModel):
    capability_timeout_s: float = Field(default=10.0, gt=0)
    max_output_bytes: int = Field(default=1024 * 1024, gt=0)  # 1 MiB
    duration_timeout_s: float = Field(default=10.0, gt=0)
    auto_duration: bool = True

class EncodingConfig(BaseModel):
    prefer_gpu: bool = True
    vaapi_device: str = "/dev/dri/renderD128"
    remove_partial_output: bool = True
    diagnostic_tail_lines: int = Field(default=500, ge=10)

class LoggingConfig(BaseModel):
    log_path: Optional[Path] = None
    debug: bool = False

class AppConfig(BaseModel):
    binaries: BinariesConfig = Field(default_factory=BinariesConfig)
    probes: ProbeConfig = Field(default_factory=ProbeConfig)
    encoding: EncodingConfig = Field(default_factory=EncodingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
