"""
Generation History - Bounded log of generated images, most recent first.

The engine only appends; the UI reads ``items`` to offer recent images for
drag-back into new nodes. Generated images can also be written to a
generations directory as PNG files and read back by id.
"""

from __future__ import annotations

import base64
import logging
import re
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from uuid import uuid4

from node_banana.core.images import split_data_url, to_data_url, to_png_data_url

logger = logging.getLogger(__name__)


@dataclass
class HistoryRecord:
    """A single generated image."""
    image: str
    prompt: str
    model: str
    timestamp: float = field(default_factory=time.time)
    id: str = field(default_factory=lambda: uuid4().hex)


class GenerationHistory:
    """Ring buffer of recent generations."""

    def __init__(self, max_items: int = 50):
        self._items: deque[HistoryRecord] = deque(maxlen=max_items)

    @property
    def max_items(self) -> int:
        return self._items.maxlen or 0

    def append(self, record: HistoryRecord) -> None:
        """Add a record; the oldest one drops out when full."""
        self._items.appendleft(record)

    @property
    def items(self) -> list[HistoryRecord]:
        """Records, most recent first."""
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


def generation_filename(
    prompt: str | None,
    generation_id: str | None = None,
    timestamp: float | None = None,
) -> str:
    """
    File name for a saved generation.

    ``<id>.png`` when an id is given, otherwise
    ``<YYYY-MM-DDTHH-MM-SS>_<prompt snippet>.png``.
    """
    if generation_id:
        return f"{generation_id}.png"
    stamp = time.strftime(
        "%Y-%m-%dT%H-%M-%S", time.gmtime(time.time() if timestamp is None else timestamp)
    )
    snippet = re.sub(r"[^a-zA-Z0-9]+", "_", (prompt or "")[:30]).strip("_").lower()
    return f"{stamp}_{snippet or 'generation'}.png"


def _require_directory(directory: Path) -> Path:
    directory = Path(directory)
    if not directory.exists():
        raise FileNotFoundError(f"Directory does not exist: {directory}")
    if not directory.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {directory}")
    return directory


def save_generation(
    directory: Path,
    image: str,
    prompt: str | None = None,
    generation_id: str | None = None,
) -> Path:
    """
    Write a generated image into an existing directory as PNG.

    Returns:
        Path of the written file

    Raises:
        FileNotFoundError: If the directory does not exist.
        NotADirectoryError: If the path is not a directory.
    """
    directory = _require_directory(directory)
    _, data = split_data_url(to_png_data_url(image))
    path = directory / generation_filename(prompt, generation_id)
    path.write_bytes(base64.b64decode(data))
    logger.info("Saved generation to %s", path)
    return path


def load_generation(directory: Path, generation_id: str) -> str:
    """
    Read a saved generation back as a PNG data URL.

    Raises:
        ValueError: If the id is not a plain file name.
        FileNotFoundError: If the directory or the image does not exist.
    """
    if not generation_id or Path(generation_id).name != generation_id:
        raise ValueError(f"Invalid generation id: {generation_id!r}")
    directory = _require_directory(directory)
    path = directory / f"{generation_id}.png"
    if not path.is_file():
        raise FileNotFoundError(f"No generation {generation_id} in {directory}")
    return to_data_url(path.read_bytes(), "image/png")
