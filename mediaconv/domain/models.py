from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field

class AccelType(str, Enum):
    NONE = "none"
    VIDEOTOOLBOX = "videotoolbox"
    NVENC = "nvenc"
    AMF = "amf"
    QSV = "qsv"
    VAAPI = "vaapi"

class OutputFormat(str, Enum):
    H264 = "H264"
    PRORES = "ProRes"
    DNXHR = "DNxHR"
    AUDIO_ONLY = "Audio only"

    @classmethod
    def parse(cls, value: Any) -> "OutputFormat":
        """Accepts a member, its value or its name ('audio_only', 'AudioOnly', 'Audio only')."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        key = text.replace(" ", "").replace("_", "").lower()
        for member in cls:
            if text == member.value:
                return member
            if key in (member.name.replace("_", "").lower(), member.value.replace(" ", "").lower()):
                return member
        raise ValueError(f"Unsupported format: {value}")

class JobState(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    CANCEL_REQUESTED = "CANCEL_REQUESTED"  # SIGTERM sent, exit not yet observed
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

ACTIVE_STATES = frozenset({JobState.PENDING, JobState.RUNNING})

class CapabilitySnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    platform: str
    arch: str
    has_gpu: bool = False
    type: AccelType = AccelType.NONE
    encoders: List[str] = Field(default_factory=list)
    decoders: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    error: Optional[str] = None

class ConversionJob(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: int
    input_path: Path
    output_path: Path
    format: OutputFormat
    quality: str
    state: JobState = JobState.PENDING
    process: Optional[Any] = Field(default=None, exclude=True)
    last_emitted_percent: int = 0
    last_emitted_second: int = -1
    duration_seconds: Optional[float] = None
    started_at: datetime = Field(default_factory=datetime.now)
    error_message: Optional[str] = None

    @property
    def pid(self) -> Optional[int]:
        return getattr(self.process, "pid", None)

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

class ProgressSample(BaseModel):
    job_id: int
    percent: Optional[int] = Field(default=None, ge=0, le=100)
    elapsed_seconds: float
    speed_multiplier: Optional[float] = None
    bytes_written: Optional[int] = None

class ConversionResult(BaseModel):
    job_id: int
    output_path: Path
    file_size_bytes: int
    elapsed_seconds: float = 0.0

class ActiveJob(BaseModel):
    job_id: int
    pid: Optional[int] = None
