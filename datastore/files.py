from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from datastore.errors import StorageError


def write_json_atomic(path: Path, payload: Any) -> None:
    """Replace ``path`` with ``payload`` so readers see the old or new file, never half of one."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as exc:
        raise StorageError(f"Failed to write {path}: {exc}") from exc


def read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        raw = path.read_text(encoding="utf-8") or "null"
        data = json.loads(raw)
    except (OSError, json.JSONDecodeError):
        return default
    return default if data is None else data


def remove_file(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        raise StorageError(f"Failed to remove {path}: {exc}") from exc
