"""CLI parser and entrypoint behaviour tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from buildguard import cli
from buildguard.cli import _build_parser, main
from buildguard.manifest import MANIFEST_NAME
from tests._fixtures.app_builder import AppBuilder
from tests._fixtures.payloads import validate_payload


def test_cli_accepts_verbose_before_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["--verbose", "manifest:verify", "--app", "demo"])
    assert args.verbose is True
    assert args.command == "manifest:verify"


def test_cli_accepts_verbose_after_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["validate", "--app", "demo", "--verbose"])
    assert args.verbose is True
    assert args.command == "validate"


def test_cli_accepts_config_after_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["validate:all", "--root", "apps", "--config", "ci.yml"])
    assert args.config == "ci.yml"
    assert parser.parse_args(["validate:all", "--root", "apps"]).config is None


def test_cli_selection_and_run_options() -> None:
    parser = _build_parser()
    args = parser.parse_args(
        ["report:ci", "--root", "apps", "--max", "3", "--include", "api", "--no-install", "--heal-manifest"]
    )
    assert args.max_apps == 3
    assert args.include == "api"
    assert args.no_install is True
    assert args.heal_manifest is True


def test_cli_contract_run_defaults() -> None:
    args = _build_parser().parse_args(["contract:run", "--root", "apps"])
    assert args.contracts is False
    assert args.contracts_mode == "check"
    assert args.refresh_manifests == "never"


def test_cli_rejects_unknown_contract_mode() -> None:
    with pytest.raises(SystemExit):
        _build_parser().parse_args(["contract:run", "--root", "apps", "--contracts-mode", "rewrite"])


def test_manifest_verify_json(
    app_builder: AppBuilder, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    app = app_builder.app("demo", {"main.py": "x = 1\n"})

    main(["manifest:verify", "--app", str(app), "--json"])
    payload = json.loads(capsys.readouterr().out)
    assert payload["ok"] is True
    assert payload["appPath"] == str(app.resolve())

    (app / "main.py").write_text("x = 2\n", encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        main(["manifest:verify", "--app", str(app), "--json"])
    assert excinfo.value.code == 1
    payload = json.loads(capsys.readouterr().out)
    assert payload["ok"] is False
    assert payload["matches"] is False


def test_manifest_init_requires_yes_to_overwrite(
    app_builder: AppBuilder, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    app = app_builder.write("fresh", {"main.py": "x = 1\n"})
    argv = ["manifest:init", "--app", str(app), "--template-dir", str(app_builder.template_dir), "--json"]

    main(argv)
    created = json.loads(capsys.readouterr().out)
    assert created["ok"] is True
    assert created["template"] == "test-template"
    assert (app / MANIFEST_NAME).is_file()

    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    assert excinfo.value.code == 1
    assert json.loads(capsys.readouterr().out)["error"]["code"] == "ERR_MANIFEST_EXISTS"

    main(argv + ["--yes"])
    assert json.loads(capsys.readouterr().out)["ok"] is True


def test_contract_update_then_check(
    capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    document = tmp_path / "validate.json"
    document.write_text(json.dumps(validate_payload()), encoding="utf-8")
    contracts = tmp_path / "contracts"
    base = ["--cmd", "validate", "--file", str(document), "--contracts-dir", str(contracts), "--json"]

    with pytest.raises(SystemExit) as excinfo:
        main(["contract:check", *base])
    assert excinfo.value.code == 2
    assert json.loads(capsys.readouterr().out)["error"]["code"] == "ERR_SNAPSHOT_MISSING"

    main(["contract:update", *base])
    assert json.loads(capsys.readouterr().out)["updated"] is True

    main(["contract:check", *base])
    assert json.loads(capsys.readouterr().out)["match"] is True

    document.write_text(json.dumps(validate_payload(ok=False, code="ERR_START_EXIT")), encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        main(["contract:check", *base])
    assert excinfo.value.code == 1


def test_contract_check_requires_an_input_source(
    capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    with pytest.raises(SystemExit) as excinfo:
        main(["contract:check", "--cmd", "validate", "--json"])
    assert excinfo.value.code == 2
    assert json.loads(capsys.readouterr().out)["error"]["code"] == "ERR_INPUT_SOURCE"


def test_bad_config_file_exits_with_usage_status(
    capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".buildguard.yml").write_text("- not a mapping\n", encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        main(["manifest:verify", "--app", str(tmp_path), "--json"])
    assert excinfo.value.code == 2
    assert json.loads(capsys.readouterr().out)["error"]["code"] == "ERR_CONFIG"


def test_manifest_drift_json_names_changed_files(
    app_builder: AppBuilder, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    app = app_builder.app("demo", {"main.py": "x = 1\n", "old.py": "y = 1\n"})
    (app / "main.py").write_text("x = 2\n", encoding="utf-8")
    (app / "old.py").unlink()
    (app / "new.py").write_text("z = 1\n", encoding="utf-8")

    main(["manifest:drift", "--app", str(app), "--json"])
    payload = json.loads(capsys.readouterr().out)

    assert payload["ok"] is True
    assert payload["added"] == ["new.py"]
    assert payload["removed"] == ["old.py"]
    assert payload["modified"] == ["main.py"]
    assert payload["fingerprintMatches"] is False


def test_manifest_drift_without_file_map_fails_as_json(
    app_builder: AppBuilder, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    app = app_builder.app("demo", {"main.py": "x = 1\n"})
    manifest = app_builder.manifest(app)
    manifest.pop("fileMap")
    (app / MANIFEST_NAME).write_text(json.dumps(manifest), encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        main(["manifest:drift", "--app", str(app), "--json"])
    assert excinfo.value.code == 1
    assert json.loads(capsys.readouterr().out)["error"]["code"] == "ERR_MANIFEST_NO_FILEMAP"


def test_unexpected_error_still_emits_json(
    capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)

    def _explode(args: object, settings: object) -> int:
        raise RuntimeError("boom")

    monkeypatch.setitem(cli._COMMANDS, "manifest:verify", _explode)
    with pytest.raises(SystemExit) as excinfo:
        main(["manifest:verify", "--app", str(tmp_path), "--json"])

    assert excinfo.value.code == 1
    payload = json.loads(capsys.readouterr().out)
    assert payload["ok"] is False
    assert payload["error"]["code"] == "ERR_INTERNAL"
    assert payload["error"]["message"] == "boom"
