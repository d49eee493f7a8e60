from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
import json
import logging

from .grid import DEFAULT_GRID_SIZE_MM, validate_grid_size

logger = logging.getLogger(__name__)

# -----------------------------
# User settings persistence
# -----------------------------

CONFIG_PATH = Path.home() / ".herbivory_counter.json"


@dataclass
class AppSettings:
    researcher: str = ""
    grid_size_mm: float = DEFAULT_GRID_SIZE_MM
    show_grid: bool = True
    last_folder: str = ""
    log_level: str = "INFO"


def load_settings(path: Path = CONFIG_PATH) -> AppSettings:
    """
    Defaults merged with whatever the file holds. Unknown keys are ignored.
    """
    settings = AppSettings()
    path = Path(path)
    if not path.exists():
        return settings

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("settings file must hold a JSON object")
        known = {f.name for f in fields(AppSettings)}
        merged = {**asdict(settings), **{k: v for k, v in data.items() if k in known}}
        settings = AppSettings(**merged)
    except Exception as e:
        # If the file is corrupt, fall back without blocking app usage.
        logger.warning("ignoring unreadable settings file %s: %s", path, e)
        return AppSettings()

    if not validate_grid_size(settings.grid_size_mm):
        settings.grid_size_mm = DEFAULT_GRID_SIZE_MM
    settings.show_grid = bool(settings.show_grid)
    return settings


def save_settings(settings: AppSettings, path: Path = CONFIG_PATH) -> None:
    Path(path).write_text(json.dumps(asdict(settings), indent=2), encoding="utf-8")
