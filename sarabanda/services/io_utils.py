"""
Fast JSON IO helpers based on orjson.
- dumps_canonical(data) -> str   (sorted keys, used for "did it change?" checks)
- read_bytes(Path) -> bytes | None  (None when the file is missing)
- write_atomic(Path, data)          (temp file + rename, parent folders created)

Notes:
- orjson produces bytes; the canonical form is decoded to str so that two
  serializations can be compared directly.
- Slot files are read as raw bytes and never decoded here: content that is
  not valid UTF-8 must reach the caller unchanged so it reads as malformed.
- Atomic writes keep a concurrent reader in another process from ever seeing a
  half-written slot.
"""
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

import orjson as json

JSONDecodeError = json.JSONDecodeError


def dumps_canonical(data: Any) -> str:
    """Serialize with sorted keys so equal values always produce equal text."""
    return json.dumps(data, option=json.OPT_SORT_KEYS).decode("utf-8")


def loads(text: Union[bytes, str]) -> Any:
    return json.loads(text)


def read_bytes(path: Path) -> Optional[bytes]:
    """Read a slot file (or None when it does not exist)."""
    try:
        with path.open("rb") as f:
            return f.read()
    except FileNotFoundError:
        return None


def write_atomic(path: Path, data: Union[bytes, str]) -> None:
    """Write a slot file atomically (parent folder created if missing)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data.encode("utf-8") if isinstance(data, str) else data)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def remove(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
