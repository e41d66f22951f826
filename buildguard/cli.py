"""CLI entrypoints for buildguard commands."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, NoReturn, Optional

from .config import RuntimeSettings, load_config, resolve_settings
from .contracts.check import EXIT_INPUT_ERROR, contract_check, contract_update, load_document
from .contracts.runner import CONTRACT_MODES, REFRESH_MODES, ContractRunner, ContractRunOptions
from .errors import BuildGuardError, ConfigError
from .logging import configure_logging
from .manifest import MANIFEST_NAME, drift_report, init_manifest, refresh_manifest, verify_integrity
from .output import emit_human, emit_json, error_payload, write_json_file
from .validate.batch import refresh_all, report_ci, validate_all
from .validate.runner import validate_app


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_config_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    parser.add_argument(
        "--config",
        default=argparse.SUPPRESS if suppress_default else None,
        help="Path to a .buildguard.yml file (defaults to the current directory).",
    )


def _add_output_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit exactly one JSON document on stdout.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Silence child process output and informational logs.",
    )


def _add_run_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--install-mode",
        help="Dependency install policy: always, never or if-missing.",
    )
    parser.add_argument(
        "--no-install",
        action="store_true",
        help="Never install dependencies (same as --install-mode never).",
    )
    parser.add_argument(
        "--profile",
        help="Validation profile to use instead of the template's own.",
    )


def _add_selection_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--root",
        required=True,
        help="Directory containing generated apps (searched recursively).",
    )
    parser.add_argument(
        "--include",
        help="Only process apps whose path contains this substring.",
    )
    parser.add_argument(
        "--max",
        type=int,
        dest="max_apps",
        help="Process at most this many apps.",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Print per-app progress to stderr.",
    )


def _add_common(parser: argparse.ArgumentParser) -> None:
    _add_verbose_option(parser, suppress_default=True)
    _add_config_option(parser, suppress_default=True)
    _add_output_options(parser)


def _add_contract_input_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--cmd",
        required=True,
        help="Contract key, for example validate:all or validate@fixture:err_start_exit.",
    )
    parser.add_argument("--file", help="Read the JSON document from this file.")
    parser.add_argument(
        "--stdin",
        action="store_true",
        help="Read the JSON document from stdin.",
    )
    parser.add_argument("--contracts-dir", help="Directory holding golden snapshots.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="buildguard",
        description="Validate generated applications and lock their diagnostics in golden snapshots.",
    )
    _add_verbose_option(parser)
    _add_config_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser(
        "validate",
        help="Verify, boot and probe one generated app.",
    )
    _add_common(validate_parser)
    _add_run_options(validate_parser)
    validate_parser.add_argument("--app", required=True, help="Path to the app root.")
    validate_parser.add_argument("--out", help="Also write the JSON result to this file.")

    validate_all_parser = subparsers.add_parser(
        "validate:all",
        help="Validate every app under a root, sequentially.",
    )
    _add_common(validate_all_parser)
    _add_run_options(validate_all_parser)
    _add_selection_options(validate_all_parser)

    report_parser = subparsers.add_parser(
        "report:ci",
        help="CI gate: runtime failures are hard, manifest-only failures are warnings.",
    )
    _add_common(report_parser)
    _add_run_options(report_parser)
    _add_selection_options(report_parser)
    report_parser.add_argument(
        "--heal-manifest",
        action="store_true",
        help="Refresh a drifted manifest and re-validate once.",
    )

    init_parser = subparsers.add_parser(
        "manifest:init",
        help="Write the manifest baseline for an app.",
    )
    _add_common(init_parser)
    init_parser.add_argument("--app", required=True, help="Path to the app root.")
    init_parser.add_argument(
        "--template-dir",
        required=True,
        help="Template directory the app was generated from.",
    )
    init_parser.add_argument("--template", help="Template name (defaults to the directory name).")
    init_parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm overwriting an existing manifest.",
    )

    refresh_parser = subparsers.add_parser(
        "manifest:refresh",
        help="Recompute an app's manifest baseline (dry-run unless --apply).",
    )
    _add_common(refresh_parser)
    refresh_parser.add_argument("--app", required=True, help="Path to the app root.")
    refresh_parser.add_argument("--apply", action="store_true", help="Write the refreshed manifest.")

    verify_parser = subparsers.add_parser(
        "manifest:verify",
        help="Check an app against its manifest fingerprint.",
    )
    _add_common(verify_parser)
    verify_parser.add_argument("--app", required=True, help="Path to the app root.")
    verify_parser.add_argument(
        "--allow-missing",
        action="store_true",
        help="Treat a missing manifest as a pass.",
    )

    drift_parser = subparsers.add_parser(
        "manifest:drift",
        help="List files added, removed or modified since the manifest baseline.",
    )
    _add_common(drift_parser)
    drift_parser.add_argument("--app", required=True, help="Path to the app root.")

    refresh_all_parser = subparsers.add_parser(
        "manifest:refresh:all",
        help="Refresh the manifest of every app under a root.",
    )
    _add_common(refresh_all_parser)
    _add_selection_options(refresh_all_parser)
    refresh_all_parser.add_argument("--apply", action="store_true", help="Write refreshed manifests.")

    check_parser = subparsers.add_parser(
        "contract:check",
        help="Compare one JSON document with its golden snapshot.",
    )
    _add_common(check_parser)
    _add_contract_input_options(check_parser)

    update_parser = subparsers.add_parser(
        "contract:update",
        help="Overwrite a golden snapshot from one JSON document.",
    )
    _add_common(update_parser)
    _add_contract_input_options(update_parser)

    run_parser = subparsers.add_parser(
        "contract:run",
        help="Run the full contract battery against a root and the diagnostic fixtures.",
    )
    _add_common(run_parser)
    _add_run_options(run_parser)
    _add_selection_options(run_parser)
    run_parser.add_argument(
        "--contracts",
        action="store_true",
        help="Compare (or update) golden snapshots for every command.",
    )
    run_parser.add_argument(
        "--contracts-mode",
        choices=CONTRACT_MODES,
        default="check",
        help="check compares snapshots; update rewrites them (requires --allow-update).",
    )
    run_parser.add_argument(
        "--allow-update",
        action="store_true",
        help="Acknowledge that --contracts-mode update rewrites golden snapshots.",
    )
    run_parser.add_argument("--contracts-dir", help="Directory holding golden snapshots.")
    run_parser.add_argument("--fixtures-dir", help="Directory for the diagnostic fixtures.")
    run_parser.add_argument(
        "--refresh-manifests",
        choices=REFRESH_MODES,
        default="never",
        help="Also run manifest:refresh:all after the battery.",
    )
    run_parser.add_argument(
        "--apply",
        action="store_true",
        help="With --refresh-manifests after, write the refreshed manifests.",
    )
    run_parser.add_argument(
        "--heal-manifest",
        action="store_true",
        help="Pass --heal-manifest to report:ci.",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for buildguard commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    json_output = bool(getattr(args, "json", False))
    configure_logging(
        verbose=bool(getattr(args, "verbose", False)),
        quiet=json_output or bool(getattr(args, "quiet", False)),
    )

    try:
        settings = _load_settings(args)
    except ConfigError as exc:
        _fail(parser, args, exc, status=2)

    handler = _COMMANDS.get(args.command)
    if handler is None:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")

    try:
        status = handler(args, settings)
    except BuildGuardError as exc:
        _fail(parser, args, exc, status=EXIT_INPUT_ERROR if args.command.startswith("contract:") else 1)
    except OSError as exc:
        _fail(parser, args, BuildGuardError(str(exc), code="ERR_IO"), status=1)
    except Exception as exc:
        _fail(parser, args, BuildGuardError(str(exc), code="ERR_INTERNAL"), status=1)

    if status:
        parser.exit(status)


def _load_settings(args: argparse.Namespace) -> RuntimeSettings:
    config_arg = getattr(args, "config", None)
    if config_arg:
        config = load_config(Path(config_arg), required=True)
    else:
        config = load_config(Path.cwd())
    return resolve_settings(args, os.environ, config)


def _fail(
    parser: argparse.ArgumentParser, args: argparse.Namespace, exc: BuildGuardError, *, status: int
) -> NoReturn:
    if getattr(args, "json", False):
        emit_json(error_payload(exc.code, str(exc), exc.details or None))
        parser.exit(status)
    parser.exit(status, f"buildguard {args.command} failed: {exc}\n")


def _emit(args: argparse.Namespace, title: str, payload: Dict[str, Any]) -> None:
    if args.json:
        emit_json(payload)
    elif not args.quiet:
        emit_human(title, payload)


def _progress(args: argparse.Namespace) -> Optional[Callable[[str, int, int, Path], None]]:
    if not getattr(args, "progress", False):
        return None

    def _report(command: str, index: int, total: int, app: Path) -> None:
        sys.stderr.write(f"[{command}] {index}/{total} {app}\n")
        sys.stderr.flush()

    return _report


def _cmd_validate(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    result = validate_app(Path(args.app), settings)
    payload = result.to_dict()
    if args.out:
        write_json_file(Path(args.out), payload)
    _emit(args, f"validate {'OK' if result.ok else 'FAIL'} ({result.failure_class or 'no failure'})", payload)
    return result.exit_code


def _cmd_validate_all(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    outcome = validate_all(
        Path(args.root),
        settings,
        include=args.include,
        max_apps=args.max_apps,
        progress=_progress(args),
    )
    _emit(args, f"validate:all {'OK' if outcome.payload['ok'] else 'FAIL'}", outcome.payload)
    return outcome.exit_code


def _cmd_report_ci(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    outcome = report_ci(
        Path(args.root),
        settings,
        include=args.include,
        max_apps=args.max_apps,
        heal_manifest=bool(args.heal_manifest),
        progress=_progress(args),
    )
    payload = outcome.payload
    _emit(
        args,
        f"report:ci pass={payload['passCount']} warn={payload['warnCount']} fail={payload['hardFailCount']}",
        payload,
    )
    return outcome.exit_code


def _cmd_manifest_init(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    app = Path(args.app).resolve()
    if (app / MANIFEST_NAME).exists() and not args.yes:
        raise BuildGuardError(
            f"{MANIFEST_NAME} already exists at {app}; pass --yes to overwrite it.",
            code="ERR_MANIFEST_EXISTS",
        )
    manifest = init_manifest(app, Path(args.template_dir), template=args.template)
    payload = {
        "ok": True,
        "appPath": str(app),
        "manifestPath": str(app / MANIFEST_NAME),
        "template": manifest["template"],
        "templateDir": manifest["templateDir"],
        "fingerprint": manifest["fingerprint"],
        "fileMapEntries": len(manifest["fileMap"]),
    }
    _emit(args, "manifest:init OK", payload)
    return 0


def _cmd_manifest_refresh(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    summary = refresh_manifest(Path(args.app), apply=bool(args.apply))
    payload = {"ok": True, **summary.to_dict()}
    _emit(args, f"manifest:refresh {'applied' if summary.applied else 'dry-run'}", payload)
    return 0


def _cmd_manifest_verify(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    app = Path(args.app).resolve()
    result = verify_integrity(app, require_manifest=not args.allow_missing)
    payload = {"appPath": str(app), **result.to_dict()}
    _emit(args, f"manifest:verify {'OK' if result.ok else result.error_kind}", payload)
    return 0 if result.ok else 1


def _cmd_manifest_drift(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    report = drift_report(Path(args.app))
    counts = f"added={len(report.added)} removed={len(report.removed)} modified={len(report.modified)}"
    _emit(args, f"manifest:drift {counts}", report.to_dict())
    return 0


def _cmd_manifest_refresh_all(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    outcome = refresh_all(
        Path(args.root),
        apply=bool(args.apply),
        include=args.include,
        max_apps=args.max_apps,
        progress=_progress(args),
    )
    payload = outcome.payload
    _emit(args, f"manifest:refresh:all ok={payload['okCount']} fail={payload['failCount']}", payload)
    return outcome.exit_code


def _cmd_contract_check(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    document = load_document(file=Path(args.file) if args.file else None, stdin=bool(args.stdin))
    outcome = contract_check(args.cmd, document, settings.contracts_dir)
    _emit(args, f"contract:check {'OK' if outcome.exit_code == 0 else 'FAIL'} ({args.cmd})", outcome.payload)
    return outcome.exit_code


def _cmd_contract_update(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    document = load_document(file=Path(args.file) if args.file else None, stdin=bool(args.stdin))
    outcome = contract_update(args.cmd, document, settings.contracts_dir)
    _emit(args, f"contract:update OK ({args.cmd})", outcome.payload)
    return outcome.exit_code


def _cmd_contract_run(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    options = ContractRunOptions(
        root=Path(args.root),
        contracts=bool(args.contracts),
        mode=args.contracts_mode,
        allow_update=bool(args.allow_update),
        refresh_manifests=args.refresh_manifests,
        apply=bool(args.apply),
        include=args.include,
        max_apps=args.max_apps,
        heal_manifest=bool(args.heal_manifest),
    )
    result = ContractRunner(options, settings).run()
    _emit(args, f"contract:run {'OK' if result.ok else 'FAIL'}", result.to_dict())
    return result.exit_code


_COMMANDS: Dict[str, Callable[[argparse.Namespace, RuntimeSettings], int]] = {
    "validate": _cmd_validate,
    "validate:all": _cmd_validate_all,
    "report:ci": _cmd_report_ci,
    "manifest:init": _cmd_manifest_init,
    "manifest:refresh": _cmd_manifest_refresh,
    "manifest:verify": _cmd_manifest_verify,
    "manifest:drift": _cmd_manifest_drift,
    "manifest:refresh:all": _cmd_manifest_refresh_all,
    "contract:check": _cmd_contract_check,
    "contract:update": _cmd_contract_update,
    "contract:run": _cmd_contract_run,
}


if __name__ == "__main__":
    main(sys.argv[1:])
