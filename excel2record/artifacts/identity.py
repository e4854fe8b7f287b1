from __future__ import annotations

import re
import threading
import time
from collections.abc import Mapping
from typing import Any

"""Artifact identity: key value extraction and filename sanitization.

An identity is the filename stem of a multi-file artifact. It is derived from
the row value addressed by the key path and is always non-empty and safe to
use as a file name on any platform.
"""

__all__ = [
    "extract_key_value",
    "sanitize_identity",
    "SYNTHETIC_PREFIX",
]

SYNTHETIC_PREFIX = "unnamed_"

# Windows の禁止文字 + 制御文字 (POSIX の '/' と NUL を含む)
_ILLEGAL_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

_SCALARS = (str, int, float, bool)

_ticks_lock = threading.Lock()
_last_ticks = 0


def extract_key_value(row: Mapping[str, Any], key_path: str | None) -> str | None:
    """Read the identity value addressed by a dot-separated key path.

    ``a.b.c`` reads mapping ``a``, then mapping ``b``, then the scalar ``c``.

    Returns:
        The stringified scalar, or None when a segment is missing, a scalar is
        reached before the last segment, or the path ends on a non-scalar
    """
    if not key_path or not isinstance(row, Mapping):
        return None
    segments = key_path.split(".")
    current: Any = row
    for position, segment in enumerate(segments):
        if not isinstance(current, Mapping) or segment not in current:
            return None
        current = current[segment]
        is_last = position == len(segments) - 1
        if not is_last:
            if isinstance(current, Mapping):
                continue
            # パス途中でスカラーに到達 -> 識別子なし
            return None
    if current is None or not isinstance(current, _SCALARS):
        return None
    if current == "":
        return None
    if isinstance(current, float):
        if current != current:  # NaN
            return None
        if current.is_integer():
            return str(int(current))
    return str(current)


def _next_ticks() -> int:
    # 100ns 単位の時刻。同一 tick 内の連続呼び出しでも一意になるよう単調増加させる
    global _last_ticks
    with _ticks_lock:
        ticks = time.time_ns() // 100
        if ticks <= _last_ticks:
            ticks = _last_ticks + 1
        _last_ticks = ticks
        return ticks


def sanitize_identity(value: str | None) -> str:
    """Make ``value`` a safe, non-empty filename stem.

    Illegal characters become ``_`` and surrounding whitespace is trimmed.
    An empty result (or one starting with ``.``) is replaced by a synthetic
    ``unnamed_<ticks>`` identity.
    """
    cleaned = _ILLEGAL_CHARS.sub("_", value or "").strip()
    if not cleaned or cleaned.startswith("."):
        return f"{SYNTHETIC_PREFIX}{_next_ticks()}"
    return cleaned
