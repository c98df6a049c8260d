import logging
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

def setup_logging(log_path: Optional[Path] = None, debug: bool = False) -> logging.Logger:
    """
    Setup logging configuration for mediaconv.

    Logs go to log_path when given (parent directories are created), otherwise
    to stderr through rich so they do not fight with the progress bar.
    Returns configured logger instance.

    Args:
        log_path: Optional path to log file
        debug: If True, enable DEBUG level logging including full ffmpeg command lines
    """
    level = logging.DEBUG if debug else logging.INFO

    if log_path:
        log_file = Path(log_path)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_file)
        fmt = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
    else:
        handler = RichHandler(show_path=False, rich_tracebacks=False)
        fmt = '%(message)s'

    logging.basicConfig(
        level=level,
        format=fmt,
        handlers=[handler],
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_path or 'stderr'} (debug={'ON' if debug else 'OFF'})")

    return logger
