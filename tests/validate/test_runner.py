"""End-to-end validation against small apps spawned with the current interpreter."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from buildguard.config import RuntimeSettings
from buildguard.manifest import MANIFEST_DRIFT, MANIFEST_MISSING
from buildguard.process.install import InstallResult
from buildguard.validate import runner as runner_module
from buildguard.validate.classes import BOOT_FAIL, HEALTH_FAIL, SCHEMA_FAIL
from buildguard.validate.runner import INTEGRITY_ERROR_CODE, validate_app
from tests._fixtures.app_builder import EXITING_APP, HANGING_APP, HEALTHY_APP, AppBuilder

FAST = RuntimeSettings(
    install_mode="never",
    health_deadline_seconds=5.0,
    health_attempt_seconds=0.5,
    quiet=True,
)


def _forbid_spawn(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(*args: object, **kwargs: object) -> None:
        raise AssertionError("the app must not be started")

    monkeypatch.setattr(runner_module, "start_process", _fail)


def test_missing_manifest_gates_before_boot(app_builder: AppBuilder, monkeypatch: pytest.MonkeyPatch) -> None:
    _forbid_spawn(monkeypatch)
    root = app_builder.write("api", {"main.py": HEALTHY_APP})

    result = validate_app(root, FAST)

    assert result.ok is False
    assert result.failure_class == SCHEMA_FAIL
    assert result.exit_code == 13
    assert result.failure_code == INTEGRITY_ERROR_CODE
    check = result.validation.checks[0]
    assert check.id == "manifest_integrity"
    assert check.details["integrityErrorCode"] == MANIFEST_MISSING
    assert result.integrity.to_dict()["error"]["code"] == MANIFEST_MISSING


def test_drift_reports_both_fingerprints(app_builder: AppBuilder, monkeypatch: pytest.MonkeyPatch) -> None:
    _forbid_spawn(monkeypatch)
    root = app_builder.app("api", {"main.py": HEALTHY_APP})
    (root / "extra.py").write_text("x = 1\n", encoding="utf-8")

    result = validate_app(root, FAST)

    details = result.validation.checks[0].details
    assert details["integrityErrorCode"] == MANIFEST_DRIFT
    assert details["expectedFingerprint"] != details["currentFingerprint"]
    assert result.template == "test-template"
    assert result.to_dict()["didInstall"] is False


def test_healthy_app_passes(app_builder: AppBuilder) -> None:
    root = app_builder.app("api", {"main.py": HEALTHY_APP})

    result = validate_app(root, FAST)

    assert result.ok is True
    assert result.exit_code == 0
    payload = result.to_dict()
    assert payload["port"] == result.port
    assert payload["url"] == f"http://127.0.0.1:{result.port}/health"
    assert payload["response"]["status"] == "ok"
    assert payload["template"] == "test-template"
    assert payload["installMode"] == "never"
    assert [check["id"] for check in payload["validation"]["checks"]] == ["boot", "health"]
    assert payload["validation"]["profileUsed"] == "test-template"


def test_strict_profile_passes_for_health_contract(app_builder: AppBuilder) -> None:
    root = app_builder.app("api", {"main.py": HEALTHY_APP})
    settings = RuntimeSettings(
        install_mode="never",
        health_deadline_seconds=5.0,
        quiet=True,
        profile="python-fastapi-api",
    )

    result = validate_app(root, settings)

    assert result.ok is True
    assert result.profile == "python-fastapi-api"
    assert [check.id for check in result.validation.checks] == ["boot", "health", "endpoints"]


def test_process_exit_is_boot_failure(app_builder: AppBuilder) -> None:
    root = app_builder.app("api", {"main.py": EXITING_APP})

    result = validate_app(root, FAST)

    assert result.failure_class == BOOT_FAIL
    assert result.exit_code == 10
    assert result.failure_code == "ERR_START_EXIT"
    details = result.validation.checks[0].details
    assert details["exitCode"] == 3
    assert details["stderrSnippet"] == "boom"


def test_silent_health_endpoint_is_health_failure(app_builder: AppBuilder) -> None:
    root = app_builder.app("api", {"main.py": HANGING_APP})
    settings = RuntimeSettings(
        install_mode="never",
        health_deadline_seconds=1.5,
        health_attempt_seconds=0.4,
        quiet=True,
    )

    result = validate_app(root, settings)

    assert result.failure_class == HEALTH_FAIL
    assert result.exit_code == 11
    assert result.failure_code == "ERR_HEALTH_TIMEOUT"
    assert result.validation.checks[0].id == "health"


def test_missing_app_directory(tmp_path: Path) -> None:
    result = validate_app(tmp_path / "missing", FAST)

    assert result.ok is False
    assert result.template == "unknown"
    assert result.validation.checks[0].details["integrityErrorCode"] == "APP_NOT_FOUND"


def test_failed_install_is_retried_once_then_boot_fails(
    app_builder: AppBuilder, monkeypatch: pytest.MonkeyPatch
) -> None:
    _forbid_spawn(monkeypatch)
    calls: list[Path] = []

    def _failing_install(runtime: object, root: Path, **kwargs: object) -> InstallResult:
        calls.append(root)
        return InstallResult(ok=False, exit_code=3)

    monkeypatch.setattr(runner_module, "run_install", _failing_install)
    root = app_builder.app("api", {"main.py": HEALTHY_APP, "requirements.txt": "\n"})

    result = validate_app(root, replace(FAST, install_mode="always"))

    assert len(calls) == 2
    assert result.ok is False
    assert result.failure_class == BOOT_FAIL
    assert result.exit_code == 10
    assert result.failure_code == "ERR_INSTALL_EXIT"
    check = result.validation.checks[0]
    assert check.id == "install"
    assert check.details["exitCode"] == 3
    assert check.details["installMode"] == "always"
