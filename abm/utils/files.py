import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

PathLike = Union[str, Path]

def load_json(path: PathLike, default: Any) -> Any:
    """Load JSON safely.
    If file is missing or invalid JSON, return default.
    """
    path = Path(path)
    if not path.exists():
        return default
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return default

def save_json(path: PathLike, obj: Any) -> None:
    """Atomic JSON write: a uniquely named temp file beside the target, then os.replace."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(obj, ensure_ascii=False, indent=2) + "\n"

    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=path.parent, prefix=path.name + ".", suffix=".tmp", delete=False
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_path, path)
        tmp_path = None
    finally:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)

def append_json_record(path: PathLike, record: Any) -> int:
    """Append one record to a JSON array file (created if missing). Returns the new length."""
    path = Path(path)
    records = load_json(path, [])
    if not isinstance(records, list):
        records = []
    records.append(record)
    save_json(path, records)
    return len(records)
