"""Output routing: machine JSON on stdout, human text elsewhere."""

from __future__ import annotations

import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional, TextIO


def emit_json(value: Any, *, stream: Optional[TextIO] = None) -> None:
    """Write exactly one compact JSON document followed by a newline."""
    target = stream if stream is not None else sys.stdout
    target.write(json.dumps(value, ensure_ascii=False) + "\n")
    target.flush()


def emit_human(title: str, value: Any, *, stream: Optional[TextIO] = None) -> None:
    """Write a titled, pretty-printed result block for interactive use."""
    target = stream if stream is not None else sys.stdout
    target.write(f"\n{title}\n")
    target.write(json.dumps(value, indent=2, ensure_ascii=False) + "\n")
    target.flush()


def error_payload(code: str, message: str, details: Any = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"ok": False, "error": {"code": code, "message": message}}
    if details is not None:
        payload["error"]["details"] = details
    return payload


def write_text_atomic(path: Path, text: str) -> Path:
    """Write ``text`` next to ``path`` and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path


def write_json_file(path: Path, value: Any) -> Path:
    """Persist ``value`` as indented JSON via an atomic rename."""
    return write_text_atomic(path.resolve(), json.dumps(value, indent=2, ensure_ascii=False) + "\n")


def one_line(text: object, *, max_chars: int = 200) -> str:
    """Collapse ``text`` to a single trimmed line capped at ``max_chars``."""
    flattened = " ".join(str(text if text is not None else "").split())
    return flattened[:max_chars]


__all__ = [
    "emit_human",
    "emit_json",
    "error_payload",
    "one_line",
    "write_json_file",
    "write_text_atomic",
]
