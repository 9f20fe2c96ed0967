# utils.py
from __future__ import annotations
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any

# -------- JSON helpers --------

def write_json(path: Path, obj: Any) -> None:
    """Write JSON atomically: temp file in the same dir, then os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(obj, f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise

def write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise

def read_json(path: Path, default: Any = None) -> Any:
    """Missing file -> default. Malformed JSON raises json.JSONDecodeError."""
    if not path.exists():
        return default
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)

# -------- safe conversions --------

_NUM_CLEAN_RE = re.compile(r"[,\s]")
_NUMERIC_RE = re.compile(r"^-?\d+(?:\.\d+)?$")

def safe_number(x) -> int | float | None:
    """'2' -> 2, '1,500.5' -> 1500.5, '250 m2' -> None."""
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, (int, float)):
        return x
    s = _NUM_CLEAN_RE.sub("", str(x))
    if not _NUMERIC_RE.match(s):
        return None
    f = float(s)
    return int(f) if f.is_integer() and "." not in s else f
