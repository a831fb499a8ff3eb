"""I/O helpers for artefact directories and YAML/JSON serialisation."""

from __future__ import annotations

import json
import re
from pathlib import Path

import yaml

ARTIFACTS_ROOT = Path("artifacts")

__all__ = [
    "ARTIFACTS_ROOT",
    "ensure_dir",
    "safe_path_segment",
    "read_yaml",
    "write_yaml",
    "write_json",
]

INVALID_FS_CHARS = r'[<>:"/\\|?*\x00-\x1F]'


def ensure_dir(path: Path | str) -> Path:
    """Create ``path`` (parents included) and return it as :class:`Path`."""

    path_obj = Path(path)
    path_obj.mkdir(parents=True, exist_ok=True)
    return path_obj


def safe_path_segment(name: str) -> str:
    """Return ``name`` with characters forbidden in file names replaced."""

    safe = re.sub(INVALID_FS_CHARS, "-", str(name))
    return safe.rstrip(" .")


def read_yaml(path: Path | str) -> object:
    """Load a YAML document with ``yaml.safe_load``."""

    with Path(path).open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)


def write_yaml(data: object, path: Path | str) -> Path:
    """Write ``data`` as YAML with sorted keys."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        # Sorted keys keep diffs deterministic.
        yaml.safe_dump(data, handle, sort_keys=True)
    return target


def write_json(data: object, path: Path | str, *, indent: int = 2) -> Path:
    """Serialise ``data`` as JSON terminated by a newline."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=indent, sort_keys=True)
        handle.write("\n")
    return target
