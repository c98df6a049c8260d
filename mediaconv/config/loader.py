import yaml
from pathlib import Path
from typing import Optional
from .models import AppConfig

def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model."""
    if config_path is None:
        return AppConfig()

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a mapping: {config_path}")

    # Relative binaries directory is taken relative to the config file
    binaries = data.get("binaries")
    if isinstance(binaries, dict) and binaries.get("directory"):
        directory = Path(str(binaries["directory"])).expanduser()
        if not directory.is_absolute():
            binaries["directory"] = config_path.parent / directory

    return AppConfig(**data)
