import sys
from pathlib import Path
from typing import Optional

from mediaconv.config.models import BinariesConfig


def executable_suffix(platform: Optional[str] = None) -> str:
    platform = platform or sys.platform
    return ".exe" if platform == "win32" else ""


class BinaryLocator:
    """Resolves the bundled ffmpeg/ffprobe paths for the current platform."""

    def __init__(self, config: BinariesConfig, platform: Optional[str] = None):
        self.config = config
        self.platform = platform or sys.platform

    def _path(self, name: str) -> Path:
        return Path(self.config.directory) / f"{name}{executable_suffix(self.platform)}"

    @property
    def ffmpeg(self) -> Path:
        return self._path(self.config.ffmpeg_name)

    @property
    def ffprobe(self) -> Path:
        return self._path(self.config.ffprobe_name)

    def ffmpeg_available(self) -> bool:
        return self.ffmpeg.is_file()

    def ffprobe_available(self) -> bool:
        return self.ffprobe.is_file()
