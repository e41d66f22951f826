"""Golden snapshot storage and comparison."""

from __future__ import annotations

import codecs
import json
import sys
from pathlib import Path
from typing import Any, BinaryIO, Dict, Optional

from ..errors import ContractInputError
from ..output import write_text_atomic

_NUL_SAMPLE_BYTES = 200
_NUL_RATIO_THRESHOLD = 0.2


def stable_stringify(value: Any) -> str:
    """Serialise with recursively sorted keys, 2-space indent and a trailing newline."""
    return json.dumps(value, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def snapshot_path_for(contracts_dir: Path, contract_key: str) -> Path:
    safe = contract_key
    for char in (":", "/", "\\"):
        safe = safe.replace(char, "-")
    return Path(contracts_dir) / f"{safe}.json"


def write_snapshot(path: Path, value: Any) -> Path:
    return write_text_atomic(Path(path), stable_stringify(value))


def read_snapshot(path: Path) -> Any:
    """Load a stored snapshot; raise ``ContractInputError`` when missing or unreadable."""
    target = Path(path)
    if not target.is_file():
        raise ContractInputError(
            f"Snapshot not found: {target}", code="ERR_SNAPSHOT_MISSING", details={"path": str(target)}
        )
    return _parse_json(target.read_bytes(), source=str(target), code="ERR_SNAPSHOT_INVALID")


def decode_text(data: bytes) -> str:
    """Decode UTF-8 or UTF-16 (with or without BOM) deterministically."""
    if data.startswith(codecs.BOM_UTF16_LE):
        return data[len(codecs.BOM_UTF16_LE):].decode("utf-16-le", errors="replace")
    if data.startswith(codecs.BOM_UTF16_BE):
        return data[len(codecs.BOM_UTF16_BE):].decode("utf-16-be", errors="replace")
    if data.startswith(codecs.BOM_UTF8):
        return data[len(codecs.BOM_UTF8):].decode("utf-8", errors="replace")

    # Some shells redirect native output as BOM-less UTF-16LE.
    sample = data[:_NUL_SAMPLE_BYTES]
    if sample and sample.count(0) / len(sample) > _NUL_RATIO_THRESHOLD:
        return data.decode("utf-16-le", errors="replace")
    return data.decode("utf-8", errors="replace")


def load_json_file(path: Path) -> Any:
    target = Path(path)
    try:
        data = target.read_bytes()
    except OSError as exc:
        raise ContractInputError(
            f"Failed to read {target}: {exc}", code="ERR_INPUT_READ", details={"path": str(target)}
        ) from exc
    return _parse_json(data, source=str(target), code="ERR_INPUT_JSON")


def load_json_stdin(stream: Optional[BinaryIO] = None) -> Any:
    source = stream if stream is not None else sys.stdin.buffer
    data = source.read()
    if not decode_text(data).strip():
        raise ContractInputError("stdin is empty", code="ERR_INPUT_EMPTY")
    return _parse_json(data, source="<stdin>", code="ERR_INPUT_JSON")


def compare_normalized(expected: Any, actual: Any) -> Dict[str, Any]:
    """Strict JSON deep equality; on mismatch return a coarse shape summary."""
    ok = json_equal(expected, actual)
    return {"ok": ok, "summary": None if ok else _diff_summary(expected, actual)}


def json_equal(left: Any, right: Any) -> bool:
    """Deep equality under JSON semantics: ``True`` never equals ``1``."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, dict) and isinstance(right, dict):
        if left.keys() != right.keys():
            return False
        return all(json_equal(left[key], right[key]) for key in left)
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(json_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return False
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, str) or isinstance(right, str):
        return isinstance(left, str) and isinstance(right, str) and left == right
    return left == right


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _diff_summary(expected: Any, actual: Any) -> Dict[str, Any]:
    summary: Dict[str, Any] = {
        "sameType": _json_type(expected) == _json_type(actual),
        "expectedType": _json_type(expected),
        "actualType": _json_type(actual),
        "expectedKeys": len(expected) if isinstance(expected, dict) else None,
        "actualKeys": len(actual) if isinstance(actual, dict) else None,
        "expectedLength": len(expected) if isinstance(expected, list) else None,
        "actualLength": len(actual) if isinstance(actual, list) else None,
    }
    if isinstance(expected, dict) and isinstance(actual, dict):
        summary["missingKeys"] = sorted(set(expected) - set(actual))
        summary["extraKeys"] = sorted(set(actual) - set(expected))
        summary["changedKeys"] = sorted(
            key for key in set(expected) & set(actual) if not json_equal(expected[key], actual[key])
        )
    return summary


def _parse_json(data: bytes, *, source: str, code: str) -> Any:
    try:
        return json.loads(decode_text(data))
    except json.JSONDecodeError as exc:
        raise ContractInputError(
            f"Invalid JSON in {source}: {exc}", code=code, details={"source": source}
        ) from exc


__all__ = [
    "compare_normalized",
    "decode_text",
    "json_equal",
    "load_json_file",
    "load_json_stdin",
    "read_snapshot",
    "snapshot_path_for",
    "stable_stringify",
    "write_snapshot",
]
