"""File helpers: YAML loading and all-or-nothing writes.

Output is written to a sibling ``<name>.tmp``, fsynced, then renamed over
the target, so a sender watching the output directory only ever sees a
complete G-code file.

Usage:
    from src.utils import fs
    data = fs.load_yaml("settings.yaml")
    fs.atomic_write_text("out/logo.gcode", gcode)
"""

import os
from pathlib import Path
from typing import Any, Union

import yaml

PathLike = Union[str, Path]


def load_yaml(path: PathLike) -> Any:
    """Parse a YAML file with ``yaml.safe_load``.

    Returns ``None`` for an empty file.

    Raises
    ------
    FileNotFoundError
        If *path* is not a file.
    yaml.YAMLError
        If the content is not valid YAML; the message names the file.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"YAML file not found: {path}")

    text = path.read_text(encoding="utf-8")
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"{path}: {e}") from e


def atomic_write_bytes(path: PathLike, data: bytes) -> None:
    """Replace *path* with *data* in one rename.

    Parent directories are created.  If anything fails, the temp file is
    removed, an existing *path* keeps its old content, and
    ``RuntimeError`` is raised.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")

    try:
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise RuntimeError(f"Failed to write {path} atomically: {e}") from e


def atomic_write_text(path: PathLike, text: str, encoding: str = "utf-8") -> None:
    atomic_write_bytes(path, text.encode(encoding))
