"""Deterministic, deliberately failing apps that pin diagnostic codes in snapshots."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from ..logging import get_logger
from ..manifest import MANIFEST_NAME, init_manifest
from ..output import write_text_atomic

FIXTURE_TEMPLATE = "diagnostic-fixture"
BOGUS_FINGERPRINT = "0" * 64

_LOGGER = get_logger("contracts.fixtures")


@dataclass(frozen=True)
class DiagnosticFixture:
    name: str
    expected_code: str
    files: Dict[str, str]
    corrupt_fingerprint: bool = False


_HEALTH_TIMEOUT_MAIN = """\
from buildguard.contracts.fixture_app import serve

if __name__ == "__main__":
    serve("health_timeout")
"""

_HEALTHY_MAIN = """\
from buildguard.contracts.fixture_app import serve

if __name__ == "__main__":
    serve("healthy")
"""

_START_EXIT_MAIN = """\
import sys

if __name__ == "__main__":
    sys.stderr.write("fixture: refusing to start\\n")
    sys.exit(1)
"""

DIAGNOSTIC_FIXTURES: List[DiagnosticFixture] = [
    DiagnosticFixture(
        name="err_health_timeout",
        expected_code="ERR_HEALTH_TIMEOUT",
        files={"main.py": _HEALTH_TIMEOUT_MAIN},
    ),
    DiagnosticFixture(
        name="err_manifest_integrity",
        expected_code="ERR_MANIFEST_INTEGRITY",
        files={"main.py": _HEALTHY_MAIN},
        corrupt_fingerprint=True,
    ),
    DiagnosticFixture(
        name="err_start_exit",
        expected_code="ERR_START_EXIT",
        files={"main.py": _START_EXIT_MAIN},
    ),
]


def materialize_fixtures(fixtures_dir: Path) -> Dict[str, Path]:
    """Write every diagnostic fixture under ``fixtures_dir`` with a fresh manifest.

    Existing fixture files are overwritten so the fingerprints are identical on
    every machine.
    """
    base = Path(fixtures_dir).resolve()
    written: Dict[str, Path] = {}
    for fixture in DIAGNOSTIC_FIXTURES:
        app_dir = base / fixture.name
        for relative, content in fixture.files.items():
            write_text_atomic(app_dir / relative, content)
        manifest = init_manifest(app_dir, app_dir, template=FIXTURE_TEMPLATE)
        if fixture.corrupt_fingerprint:
            manifest["fingerprint"] = BOGUS_FINGERPRINT
            write_text_atomic(app_dir / MANIFEST_NAME, json.dumps(manifest, indent=2) + "\n")
        written[fixture.name] = app_dir
    _LOGGER.debug("Materialised %d diagnostic fixtures under %s", len(written), base)
    return written


__all__ = [
    "BOGUS_FINGERPRINT",
    "DIAGNOSTIC_FIXTURES",
    "DiagnosticFixture",
    "FIXTURE_TEMPLATE",
    "materialize_fixtures",
]
