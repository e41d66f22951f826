"""Canonicalisation of command JSON output so snapshots compare across runs and machines."""

from __future__ import annotations

import copy
import re
from typing import Any, Dict

PATH_PLACEHOLDER = "<PATH>"
HASH_PLACEHOLDER = "<HASH>"
PINNED_CONNREFUSED_PORT = 50745

_PATH_KEYS = frozenset({"appPath", "rootPath", "manifestPath", "templateDir"})
_URL_KEYS = frozenset({"url", "baseUrl", "probeUrl"})
_DURATION_KEYS = frozenset({"port", "durationMs", "uptimeSeconds", "ms"})
_TIMESTAMP_KEYS = frozenset(
    {"timestamp", "startedAt", "finishedAt", "lastManifestInitUtc", "lastManifestRefreshUtc"}
)
_HASH_KEY_MARKERS = ("fingerprint", "hash", "checksum", "sha", "md5")

_ISO_TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{1,6})?Z$")
_LOOPBACK_URL = re.compile(r"^https?://(localhost|127\.0\.0\.1|\[::1\])(:\d+)?(/|$)", re.IGNORECASE)
_WINDOWS_ABSOLUTE = re.compile(r"^[a-zA-Z]:\\")
_HEX = re.compile(r"^[a-fA-F0-9]{24,256}$")
_CONNREFUSED = re.compile(
    r"\bconnect\s+ECONNREFUSED\s+(127\.0\.0\.1|localhost|\[::1\]|::1):(\d+)\b", re.IGNORECASE
)


def normalize(value: Any) -> Any:
    """Return a deep copy of ``value`` with volatile leaves replaced by stable placeholders."""
    clone = copy.deepcopy(value)
    return _normalize_node(clone)


def normalize_for_contract(contract_key: str, value: Any) -> Dict[str, Any]:
    return {"contractKey": str(contract_key), "payload": normalize(value)}


def pin_connrefused_port(text: str) -> str:
    return _CONNREFUSED.sub(
        lambda match: f"connect ECONNREFUSED {match.group(1)}:{PINNED_CONNREFUSED_PORT}", text
    )


def _normalize_node(node: Any) -> Any:
    if isinstance(node, dict):
        for key in list(node):
            node[key] = _normalize_entry(str(key), node[key])
        return node
    if isinstance(node, list):
        return [_normalize_node(item) if _is_container(item) else _normalize_element(item) for item in node]
    return node


def _normalize_entry(key: str, value: Any) -> Any:
    if _is_container(value):
        return _normalize_node(value)

    if isinstance(value, str) and _is_path_key(key):
        return PATH_PLACEHOLDER
    if isinstance(value, str) and (key in _URL_KEYS or _LOOPBACK_URL.match(value.strip())):
        return ""
    if _is_duration_key(key):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return 0
        if isinstance(value, str):
            return "0"
    if _is_timestamp_key(key) and (value is None or isinstance(value, (str, int, float, bool))):
        return None
    if isinstance(value, str) and _is_hash_key(key):
        return HASH_PLACEHOLDER
    if isinstance(value, str):
        return _normalize_string_value(value)
    return value


def _normalize_element(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if _LOOPBACK_URL.match(value.strip()):
        return ""
    return _normalize_string_value(value)


def _normalize_string_value(value: str) -> Any:
    stripped = value.strip()
    if _ISO_TIMESTAMP.match(stripped):
        return None
    if stripped and (
        stripped.startswith("/") or stripped.startswith("\\\\") or _WINDOWS_ABSOLUTE.match(stripped)
    ):
        return PATH_PLACEHOLDER
    if _HEX.match(stripped):
        return HASH_PLACEHOLDER
    return pin_connrefused_port(value)


def _is_container(value: Any) -> bool:
    return isinstance(value, (dict, list))


def _is_path_key(key: str) -> bool:
    return key in _PATH_KEYS or key.endswith("Path")


def _is_duration_key(key: str) -> bool:
    return key in _DURATION_KEYS or key.endswith("Ms") or key.endswith("Seconds")


def _is_timestamp_key(key: str) -> bool:
    return key in _TIMESTAMP_KEYS or key.endswith("At")


def _is_hash_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _HASH_KEY_MARKERS)


__all__ = [
    "HASH_PLACEHOLDER",
    "PATH_PLACEHOLDER",
    "PINNED_CONNREFUSED_PORT",
    "normalize",
    "normalize_for_contract",
    "pin_connrefused_port",
]
