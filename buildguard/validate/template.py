"""Deterministic template inference from an app's files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from ..manifest import manifest_template
from .profiles import UNKNOWN_TEMPLATE

NODE_EXPRESS_SQLITE = "node-express-api-sqlite"
PYTHON_FASTAPI = "python-fastapi-api"


def infer_template(app_root: Path) -> str:
    """Return a template name only when the file signals are unambiguous."""
    root = Path(app_root)
    package = _read_json(root / "package.json")
    index_text = _read_text(root / "index.js") or _read_text(root / "src" / "index.js") or ""

    if package is not None or index_text:
        deps = _dependencies(package or {})
        if "express" in deps:
            lowered = index_text.lower()
            has_sqlite_dep = "sqlite3" in deps or "better-sqlite3" in deps
            mentions_sqlite = any(token in lowered for token in ("sqlite", ".db"))
            has_health = "/health" in lowered
            has_api_routes = "api/v1/ping" in lowered or "api/v1/users" in lowered
            if (
                has_sqlite_dep
                or mentions_sqlite
                or (root / "db").is_dir()
                or (has_health and has_api_routes)
            ):
                return NODE_EXPRESS_SQLITE
        return UNKNOWN_TEMPLATE

    main_text = _read_text(root / "main.py")
    if main_text is not None:
        lowered = main_text.lower()
        if ("import fastapi" in lowered or "from fastapi" in lowered) and "/health" in lowered:
            return PYTHON_FASTAPI
    return UNKNOWN_TEMPLATE


def resolve_template(app_root: Path) -> str:
    """Prefer the template recorded in the manifest, then fall back to inference."""
    return manifest_template(app_root) or infer_template(app_root)


def _dependencies(package: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for key in ("dependencies", "devDependencies"):
        value = package.get(key)
        if isinstance(value, dict):
            merged.update(value)
    return merged


def _read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def _read_json(path: Path) -> Optional[Dict[str, Any]]:
    text = _read_text(path)
    if not text:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


__all__ = ["NODE_EXPRESS_SQLITE", "PYTHON_FASTAPI", "infer_template", "resolve_template"]
