"""
Workflow Persistence - Save and load graph stores to/from disk.

The file is the store snapshot (``GraphStore.to_dict``) plus a save
timestamp. Loading rebuilds the store through ``GraphStore.from_dict`` so
every edge is validated again.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from node_banana.core.graph import GraphStore

logger = logging.getLogger(__name__)


# Workflow storage directory
WORKFLOW_DIR = Path.home() / ".local" / "share" / "node_banana" / "workflows"


def get_workflow_dir() -> Path:
    """Get the workflow storage directory, creating if needed."""
    WORKFLOW_DIR.mkdir(parents=True, exist_ok=True)
    return WORKFLOW_DIR


def save_workflow(store: GraphStore, path: Path | None = None) -> Path:
    """
    Save a workflow to disk.

    Args:
        store: The graph store to snapshot
        path: Optional specific path, otherwise uses the store name in the
            default location

    Returns:
        Path where the workflow was saved
    """
    data = store.to_dict()
    data["savedAt"] = datetime.now().isoformat()

    if path is None:
        path = get_workflow_dir() / f"{store.name}.json"
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)

    logger.debug("Saved workflow %r (%d nodes) to %s", store.name, len(store), path)
    return path


def load_workflow(path: Path) -> GraphStore:
    """
    Load a workflow from disk.

    Raises:
        FileNotFoundError: If the workflow file doesn't exist
        ValueError: If the workflow format is invalid
    """
    if not path.exists():
        raise FileNotFoundError(f"Workflow not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, dict) or "nodes" not in data:
        raise ValueError(f"Invalid workflow format: {path}")

    store = GraphStore.from_dict(data)
    logger.debug("Loaded workflow %r (%d nodes) from %s", store.name, len(store), path)
    return store


def list_workflows(directory: Path | None = None) -> list[dict[str, Any]]:
    """
    List saved workflows.

    Returns:
        List of metadata dicts with 'name', 'path', 'saved_at', 'node_count'
    """
    workflows = []
    directory = directory or get_workflow_dir()

    for path in directory.glob("*.json"):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            workflows.append({
                "name": data.get("name", path.stem),
                "path": path,
                "saved_at": data.get("savedAt", ""),
                "node_count": len(data.get("nodes", [])),
            })
        except (json.JSONDecodeError, AttributeError):
            continue

    # Sort by most recent
    workflows.sort(key=lambda w: w["saved_at"], reverse=True)
    return workflows
