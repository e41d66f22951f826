"""Tests for validate:all, report:ci and manifest:refresh:all."""

from __future__ import annotations

from pathlib import Path

from buildguard.config import RuntimeSettings
from buildguard.manifest import MANIFEST_NAME, verify_integrity
from buildguard.validate.batch import (
    classify_for_ci,
    discover_apps,
    filter_apps,
    refresh_all,
    report_ci,
    validate_all,
)
from tests._fixtures.app_builder import EXITING_APP, HEALTHY_APP, AppBuilder

SETTINGS = RuntimeSettings(install_mode="never", health_deadline_seconds=5.0, quiet=True)


def test_discover_apps_is_recursive_sorted_and_skips_noise(app_builder: AppBuilder) -> None:
    app_builder.app("b-app", {"main.py": "x = 1\n"})
    app_builder.app("a-group/nested", {"main.py": "x = 1\n"})
    app_builder.app("a-group/nested/inner", {"main.py": "x = 1\n"})
    app_builder.write("node_modules/pkg", {MANIFEST_NAME: "{}"})
    app_builder.write("plain", {"README.md": "no manifest\n"})

    apps = discover_apps(app_builder.base)

    names = [path.relative_to(app_builder.base.resolve()).as_posix() for path in apps]
    assert names == ["a-group/nested", "b-app"]


def test_filter_apps_include_and_max() -> None:
    apps = [Path("/r/alpha"), Path("/r/beta"), Path("/r/alphabet")]
    assert filter_apps(apps, include="ALPHA") == [Path("/r/alpha"), Path("/r/alphabet")]
    assert filter_apps(apps, max_apps=1) == [Path("/r/alpha")]
    assert filter_apps(apps, max_apps=0) == apps


def test_classify_for_ci() -> None:
    assert classify_for_ci({"ok": True})["severity"] == "pass"
    assert classify_for_ci(None)["reason"] == "no-validate-object"

    manifest_only = {
        "ok": False,
        "manifestIntegrity": {"ok": False},
        "validation": {"failureClass": "SCHEMA_FAIL", "checks": [{"id": "manifest_integrity"}]},
    }
    assert classify_for_ci(manifest_only) == {
        "severity": "warn",
        "hardFail": False,
        "warn": True,
        "reason": "manifest_integrity",
    }

    runtime = {
        "ok": False,
        "manifestIntegrity": {"ok": True},
        "validation": {"failureClass": "BOOT_FAIL", "checks": [{"id": "start"}]},
    }
    assert classify_for_ci(runtime)["reason"] == "failure:BOOT_FAIL:start"
    assert classify_for_ci(runtime)["hardFail"] is True


def test_validate_all_exit_code_is_worst_result(app_builder: AppBuilder) -> None:
    app_builder.app("a-ok", {"main.py": HEALTHY_APP})
    drifted = app_builder.app("b-drift", {"main.py": HEALTHY_APP})
    (drifted / "main.py").write_text("print('changed')\n", encoding="utf-8")
    seen: list[tuple[int, int]] = []

    outcome = validate_all(
        app_builder.base, SETTINGS, progress=lambda cmd, index, total, app: seen.append((index, total))
    )

    assert outcome.exit_code == 13
    payload = outcome.payload
    assert payload["ok"] is False
    assert payload["appsFound"] == 2
    assert payload["installMode"] == "never"
    assert [result["ok"] for result in payload["results"]] == [True, False]
    assert seen == [(1, 2), (2, 2)]


def test_report_ci_downgrades_manifest_only_failures(app_builder: AppBuilder) -> None:
    drifted = app_builder.app("a-drift", {"main.py": HEALTHY_APP})
    (drifted / "notes.txt").write_text("hand edit\n", encoding="utf-8")

    outcome = report_ci(app_builder.base, SETTINGS)

    assert outcome.exit_code == 0
    payload = outcome.payload
    assert (payload["passCount"], payload["warnCount"], payload["hardFailCount"]) == (0, 1, 0)
    entry = payload["results"][0]
    assert entry["ci"]["reason"] == "manifest_integrity"
    assert entry["healedManifest"] is None
    assert entry["exitCode"] == 13


def test_report_ci_heal_is_recorded_and_stays_a_warning(app_builder: AppBuilder) -> None:
    drifted = app_builder.app("a-drift", {"main.py": HEALTHY_APP})
    (drifted / "notes.txt").write_text("hand edit\n", encoding="utf-8")

    outcome = report_ci(app_builder.base, SETTINGS, heal_manifest=True)

    entry = outcome.payload["results"][0]
    assert entry["healedManifest"]["ok"] is True
    assert entry["validateAfterHeal"]["ok"] is True
    assert entry["ciAfterHeal"]["severity"] == "pass"
    assert entry["ci"] == {"severity": "warn", "hardFail": False, "warn": True, "reason": "healed_manifest"}
    assert entry["exitCode"] == 0
    assert outcome.payload["healManifest"] is True
    assert verify_integrity(drifted).ok is True


def test_report_ci_runtime_failure_is_hard(app_builder: AppBuilder) -> None:
    app_builder.app("a-crash", {"main.py": EXITING_APP})

    outcome = report_ci(app_builder.base, SETTINGS, heal_manifest=True)

    assert outcome.exit_code == 1
    entry = outcome.payload["results"][0]
    assert entry["ci"]["hardFail"] is True
    assert entry["healedManifest"] is None


def test_refresh_all_dry_run_and_errors(app_builder: AppBuilder) -> None:
    good = app_builder.app("a-good", {"main.py": "x = 1\n"})
    (good / "main.py").write_text("x = 2\n", encoding="utf-8")
    app_builder.write("b-broken", {"main.py": "x = 1\n", MANIFEST_NAME: "not json"})

    outcome = refresh_all(app_builder.base, apply=False)

    payload = outcome.payload
    assert outcome.exit_code == 1
    assert (payload["okCount"], payload["failCount"], payload["apply"]) == (1, 1, False)
    ok_entry, broken_entry = payload["results"]
    assert ok_entry["result"]["applied"] is False
    assert broken_entry["ok"] is False
    assert broken_entry["result"] is None
    assert broken_entry["error"]["code"] == "ERR_MANIFEST_INVALID"
    assert verify_integrity(good).ok is False
