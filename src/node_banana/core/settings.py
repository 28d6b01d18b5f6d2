"""
Engine Settings - Limits and timeouts for workflow runs.

Settings are stored as JSON next to the provider configuration.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "node_banana"


@dataclass
class EngineSettings:
    """
    Run-level settings.

    Attributes:
        max_in_flight: Provider calls allowed to run at the same time
        image_timeout: Upper bound in seconds for an image generation call
        text_timeout: Upper bound in seconds for a text generation call
        history_size: Number of generated images kept in the history ring
        generations_dir: Existing directory that receives every generated
            image as PNG; unset disables saving
    """
    max_in_flight: int = 3
    image_timeout: float = 300.0
    text_timeout: float = 60.0
    history_size: int = 50
    generations_dir: str | None = None

    def __post_init__(self) -> None:
        if self.max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary for serialization."""
        return {
            "max_in_flight": self.max_in_flight,
            "image_timeout": self.image_timeout,
            "text_timeout": self.text_timeout,
            "history_size": self.history_size,
            "generations_dir": self.generations_dir,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineSettings:
        """Create settings from dictionary."""
        return cls(
            max_in_flight=int(data.get("max_in_flight", 3)),
            image_timeout=float(data.get("image_timeout", 300.0)),
            text_timeout=float(data.get("text_timeout", 60.0)),
            history_size=int(data.get("history_size", 50)),
            generations_dir=data.get("generations_dir"),
        )


def load_settings(path: Path | None = None) -> EngineSettings:
    """Load settings from file, falling back to defaults if it is absent."""
    if path is None:
        path = CONFIG_DIR / "settings.json"
    if not path.exists():
        return EngineSettings()

    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    logger.debug("Loaded engine settings from %s", path)
    return EngineSettings.from_dict(data)


def save_settings(settings: EngineSettings, path: Path | None = None) -> Path:
    """Save settings to file."""
    if path is None:
        path = CONFIG_DIR / "settings.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, indent=2)
    return path
