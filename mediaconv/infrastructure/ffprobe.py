import logging
import math
import subprocess
from pathlib import Path
from typing import Any, Optional

from mediaconv.infrastructure.binaries import BinaryLocator

class FFprobeAdapter:
    """Reads an input's duration with ffprobe.

    Duration only improves progress reporting, so every failure resolves to
    None instead of raising.
    """

    def __init__(self, locator: BinaryLocator, timeout: float = 10.0):
        self.locator = locator
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _parse_duration(value: Any) -> Optional[float]:
        text = str(value or "").strip().splitlines()
        if not text:
            return None
        try:
            duration = float(text[0].strip())
        except ValueError:
            return None
        if math.isnan(duration) or math.isinf(duration) or duration <= 0:
            return None
        return duration

    def get_duration(self, file_path: Path) -> Optional[float]:
        """Duration in seconds, or None when it cannot be determined."""
        file_path = Path(file_path)
        if not file_path.exists():
            self.logger.warning(f"FFPROBE_SKIP: input not found: {file_path}")
            return None

        ffprobe_path = self.locator.ffprobe
        if not ffprobe_path.is_file():
            self.logger.warning(f"FFPROBE_SKIP: ffprobe not available ({ffprobe_path}), duration detection disabled")
            return None

        cmd = [
            str(ffprobe_path),
            "-v", "quiet",
            "-show_entries", "format=duration",
            "-of", "csv=p=0",
            str(file_path),
        ]

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors="replace",
                stdin=subprocess.DEVNULL,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            self.logger.warning(f"FFPROBE_FAILED: {file_path.name} timed out after {self.timeout:g}s")
            return None
        except OSError as e:
            self.logger.warning(f"FFPROBE_FAILED: {file_path.name} could not start ffprobe: {e}")
            return None

        if result.returncode != 0:
            self.logger.warning(f"FFPROBE_FAILED: {file_path.name} exit={result.returncode} {(result.stderr or '').strip()}")
            return None

        duration = self._parse_duration(result.stdout)
        if duration is None:
            self.logger.warning(f"FFPROBE_FAILED: {file_path.name} unparsable duration {result.stdout!r}")
        return duration
