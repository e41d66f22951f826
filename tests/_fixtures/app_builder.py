"""Helper utilities for constructing throwaway generated apps in tests."""

from __future__ import annotations

import json
import textwrap
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from buildguard.manifest import init_manifest

# Minimal stdlib app honouring the strict health contract on $PORT.
HEALTHY_APP = """
import json
import os
import time
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, HTTPServer

STARTED = time.monotonic()


class Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        if self.path == "/health":
            body = json.dumps(
                {
                    "status": "ok",
                    "uptimeSeconds": round(time.monotonic() - STARTED, 3),
                    "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                }
            ).encode("utf-8")
            self.send_response(200)
            self.send_header("content-type", "application/json")
            self.send_header("content-length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
            return
        self.send_response(404)
        self.send_header("content-length", "0")
        self.end_headers()

    def log_message(self, *args):
        pass


HTTPServer(("127.0.0.1", int(os.environ["PORT"])), Handler).serve_forever()
"""

# Accepts connections on $PORT but never answers /health.
HANGING_APP = """
import os
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer


class Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        time.sleep(3600)

    def log_message(self, *args):
        pass


ThreadingHTTPServer(("127.0.0.1", int(os.environ["PORT"])), Handler).serve_forever()
"""

EXITING_APP = """
import sys

sys.stderr.write("boom\\n")
sys.exit(3)
"""


class AppBuilder:
    """Utility for writing files into throwaway app directories."""

    def __init__(self, tmp_path: Path) -> None:
        self.base = tmp_path / "apps"
        self.base.mkdir()
        self.template_dir = tmp_path / "templates" / "test-template"
        self.template_dir.mkdir(parents=True)

    def write(self, name: str, files: Mapping[str, str]) -> Path:
        """Write ``path -> contents`` entries into app ``name`` and return its root."""
        root = self.base / name
        root.mkdir(parents=True, exist_ok=True)
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            normalised = textwrap.dedent(content).lstrip("\n")
            path.write_text(normalised, encoding="utf-8")
        return root

    def app(
        self,
        name: str,
        files: Mapping[str, str],
        *,
        template: Optional[str] = "test-template",
    ) -> Path:
        """Write an app and record its manifest baseline."""
        root = self.write(name, files)
        init_manifest(root, self.template_dir, template=template)
        return root

    def manifest(self, root: Path) -> Dict[str, Any]:
        return json.loads((root / "builder.manifest.json").read_text(encoding="utf-8"))


__all__ = ["AppBuilder", "EXITING_APP", "HANGING_APP", "HEALTHY_APP"]
