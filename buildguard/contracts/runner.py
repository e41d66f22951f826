"""Contract runner: drive a fixed battery of commands and lock their JSON output in snapshots."""

from __future__ import annotations

import json
import os
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..config import RuntimeSettings
from ..errors import ContractInputError, ProcessStartError
from ..logging import get_logger
from ..output import one_line
from ..process import run_to_completion
from ..validate.pipeline import utc_now_iso
from .fixtures import DIAGNOSTIC_FIXTURES, materialize_fixtures
from .normalize import normalize_for_contract
from .schemas import Issue, check_schema
from .snapshot import compare_normalized, read_snapshot, snapshot_path_for, write_snapshot

CHECK = "check"
UPDATE = "update"
CONTRACT_MODES = (CHECK, UPDATE)
REFRESH_MODES = ("never", "after")

CI_ENV_VARS = ("CI", "GITHUB_ACTIONS", "GITLAB_CI", "BUILDKITE", "CIRCLECI", "JENKINS_URL", "TF_BUILD")
SETTLE_SECONDS = 0.05
MISSING_EXIT_CODE = 2

_LOGGER = get_logger("contracts.runner")


@dataclass
class CommandOutcome:
    """Raw result of one sub-invocation."""

    exit_code: int
    stdout: str
    stderr: str = ""
    timed_out: bool = False


Invoker = Callable[[Sequence[str], float], CommandOutcome]


@dataclass(frozen=True)
class RunItem:
    key: str
    command: str
    args: List[str]
    hard_gate: bool = False
    expected_code: Optional[str] = None

    @property
    def argv(self) -> List[str]:
        return [self.command, *self.args]


@dataclass
class ContractRunOptions:
    root: Path
    contracts: bool = False
    mode: str = CHECK
    allow_update: bool = False
    refresh_manifests: str = "never"
    apply: bool = False
    include: Optional[str] = None
    max_apps: Optional[int] = None
    heal_manifest: bool = False


@dataclass
class ContractRunResult:
    ok: bool
    root_path: str
    started_at: str
    finished_at: str
    requested_mode: str
    mode: str
    contracts: bool
    counts: Dict[str, int]
    results: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "rootPath": self.root_path,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "contracts": self.contracts,
            "requestedMode": self.requested_mode,
            "mode": self.mode,
            "counts": dict(self.counts),
            "results": self.results,
        }


def detect_ci(env: Mapping[str, str]) -> Optional[str]:
    """Return the name of the first CI marker variable set to a truthy value."""
    for name in CI_ENV_VARS:
        value = env.get(name, "").strip().lower()
        if value and value not in {"0", "false", "no", "off"}:
            return name
    return None


def effective_mode(requested: str, *, allow_update: bool, env: Mapping[str, str]) -> tuple[str, Optional[str]]:
    """Resolve the snapshot mode; ``update`` degrades to ``check`` unless it is safe.

    Returns ``(mode, refusal_reason)``.
    """
    if requested != UPDATE:
        return CHECK, None
    ci_marker = detect_ci(env)
    if ci_marker is not None:
        return CHECK, f"Refusing contracts update under CI ({ci_marker} is set)."
    if not allow_update:
        return CHECK, "Refusing contracts update without --allow-update."
    return UPDATE, None


def subprocess_invoker(
    env: Optional[Mapping[str, str]] = None, cwd: Optional[Path] = None
) -> Invoker:
    """Invoke ``python -m buildguard`` with the current interpreter."""

    def _invoke(args: Sequence[str], timeout: float) -> CommandOutcome:
        argv = [sys.executable, "-m", "buildguard", *args]
        child_env = dict(env if env is not None else os.environ)
        child_env.setdefault("PYTHONUNBUFFERED", "1")
        code, output, timed_out = run_to_completion(
            argv,
            cwd=cwd or Path.cwd(),
            env=child_env,
            timeout=timeout,
            quiet=True,
        )
        return CommandOutcome(
            exit_code=code if code is not None else MISSING_EXIT_CODE,
            stdout=output.stdout,
            stderr=output.stderr,
            timed_out=timed_out,
        )

    return _invoke


class ContractRunner:
    """Runs the contract battery sequentially and aggregates one verdict."""

    def __init__(
        self,
        options: ContractRunOptions,
        settings: RuntimeSettings,
        *,
        invoker: Optional[Invoker] = None,
        env: Optional[Mapping[str, str]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.options = options
        self.settings = settings
        self.env = dict(env if env is not None else os.environ)
        self.invoker = invoker or subprocess_invoker(self.env)
        self._sleep = sleep

    def battery(self) -> List[RunItem]:
        """The ordered list of sub-invocations for this run."""
        root = str(Path(self.options.root).resolve())
        fixtures_dir = Path(self.settings.fixtures_dir).resolve()
        batch_args = ["--root", root, *self._shared_args(), *self._selection_args()]

        items = [
            RunItem("validate:all", "validate:all", batch_args, hard_gate=True),
            RunItem(
                "report:ci",
                "report:ci",
                batch_args + (["--heal-manifest"] if self.options.heal_manifest else []),
                hard_gate=True,
            ),
        ]
        for fixture in DIAGNOSTIC_FIXTURES:
            items.append(
                RunItem(
                    f"validate@fixture:{fixture.name}",
                    "validate",
                    ["--app", str(fixtures_dir / fixture.name), "--json", "--quiet", "--no-install"]
                    + self._config_args(),
                    expected_code=fixture.expected_code,
                )
            )
        if self.options.refresh_manifests == "after":
            refresh_args = ["--root", root, "--json", "--quiet", *self._selection_args()]
            if self.options.apply:
                refresh_args.append("--apply")
            items.append(
                RunItem("manifest:refresh:all", "manifest:refresh:all", refresh_args + self._config_args())
            )
        return items

    def run(self) -> ContractRunResult:
        requested = self.options.mode if self.options.mode in CONTRACT_MODES else CHECK
        mode, refusal = effective_mode(requested, allow_update=self.options.allow_update, env=self.env)
        if refusal is not None:
            _LOGGER.warning(refusal)

        started_at = utc_now_iso()
        materialize_fixtures(self.settings.fixtures_dir)

        counts = {
            "schemaFailCount": 0,
            "contractFailCount": 0,
            "cmdFailCount": 0,
            "expectationFailCount": 0,
        }
        results: List[Dict[str, Any]] = []
        items = self.battery()

        for index, item in enumerate(items, start=1):
            _LOGGER.info("[contract:run] %d/%d %s", index, len(items), item.key)
            entry, stop = self._run_item(item, mode, counts)
            results.append(entry)
            if stop:
                _LOGGER.warning("Hard gate %s failed; stopping the battery", item.key)
                break
            self._sleep(SETTLE_SECONDS)

        ok = all(value == 0 for value in counts.values())
        return ContractRunResult(
            ok=ok,
            root_path=str(Path(self.options.root).resolve()),
            started_at=started_at,
            finished_at=utc_now_iso(),
            requested_mode=requested,
            mode=mode,
            contracts=self.options.contracts,
            counts=counts,
            results=results,
        )

    def _run_item(self, item: RunItem, mode: str, counts: Dict[str, int]) -> tuple[Dict[str, Any], bool]:
        try:
            outcome = self.invoker(item.argv, self.settings.command_seconds)
        except ProcessStartError as exc:
            outcome = CommandOutcome(exit_code=MISSING_EXIT_CODE, stdout="", stderr=str(exc))
        parsed, run_error = _parse_output(item, outcome)

        issues: List[Issue] = (
            check_schema(item.command, parsed)
            if parsed is not None
            else [{"path": "$", "message": "no JSON document on stdout"}]
        )
        schema_ok = not issues
        if not schema_ok:
            counts["schemaFailCount"] += 1

        contract: Optional[Dict[str, Any]] = None
        if self.options.contracts and parsed is not None:
            contract = self._apply_contract(item, parsed, mode)
            if not contract["match"]:
                counts["contractFailCount"] += 1
        contract_match = contract["match"] if contract is not None else None

        actual_code: Optional[str] = None
        expectation_ok: Optional[bool] = None
        if item.expected_code is not None:
            actual_code = diagnostic_code(parsed)
            expectation_ok = actual_code == item.expected_code
            if not expectation_ok:
                counts["expectationFailCount"] += 1

        explained = outcome.exit_code == 0 or contract_match is True or expectation_ok is True
        if not explained:
            counts["cmdFailCount"] += 1

        entry = {
            "cmd": item.command,
            "snapshotKey": item.key,
            "exitCode": outcome.exit_code,
            "schemaOk": schema_ok,
            "schema": {"ok": schema_ok, "issues": issues},
            "contractMatch": contract_match,
            "contract": contract,
            "expectedCode": item.expected_code,
            "actualCode": actual_code,
            "expectationOk": expectation_ok,
            "runError": run_error,
        }
        return entry, item.hard_gate and (not schema_ok or not explained)

    def _apply_contract(self, item: RunItem, parsed: Any, mode: str) -> Dict[str, Any]:
        path = snapshot_path_for(Path(self.settings.contracts_dir).resolve(), item.key)
        normalized = normalize_for_contract(item.key, parsed)
        if mode == UPDATE:
            write_snapshot(path, normalized)
            _LOGGER.info("Snapshot updated: %s", path)
            return {"mode": UPDATE, "snapshot": str(path), "updated": True, "match": True, "diffSummary": None}
        try:
            stored = read_snapshot(path)
        except ContractInputError as exc:
            return {
                "mode": CHECK,
                "snapshot": str(path),
                "match": False,
                "diffSummary": {"kind": "missing_snapshot", "code": exc.code, "message": str(exc)},
            }
        comparison = compare_normalized(stored, normalized)
        return {
            "mode": CHECK,
            "snapshot": str(path),
            "match": comparison["ok"],
            "diffSummary": comparison["summary"],
        }

    def _shared_args(self) -> List[str]:
        args = ["--json", "--quiet"]
        args.extend(["--install-mode", self.settings.install_mode])
        if self.settings.profile:
            args.extend(["--profile", self.settings.profile])
        return args + self._config_args()

    def _selection_args(self) -> List[str]:
        args: List[str] = []
        if self.options.include:
            args.extend(["--include", self.options.include])
        if self.options.max_apps is not None:
            args.extend(["--max", str(self.options.max_apps)])
        return args

    def _config_args(self) -> List[str]:
        if self.settings.config_path is None:
            return []
        return ["--config", str(self.settings.config_path)]


def diagnostic_code(payload: Any) -> Optional[str]:
    """Return ``details.code`` of the first failed check in a validate payload."""
    if not isinstance(payload, dict):
        return None
    validation = payload.get("validation")
    checks = validation.get("checks") if isinstance(validation, dict) else None
    if not isinstance(checks, list):
        return None
    for check in checks:
        if isinstance(check, dict) and check.get("ok") is False:
            details = check.get("details")
            code = details.get("code") if isinstance(details, dict) else None
            return code if isinstance(code, str) else None
    return None


def _parse_output(item: RunItem, outcome: CommandOutcome) -> tuple[Any, Optional[Dict[str, Any]]]:
    stderr = one_line(outcome.stderr, max_chars=2000) or None
    if outcome.timed_out:
        return None, {
            "code": "ERR_CMD_TIMEOUT",
            "message": f"{item.command} did not finish in time",
            "cmd": item.command,
            "stderr": stderr,
        }

    text = outcome.stdout.strip()
    if not text:
        return None, {
            "code": "ERR_CMD_NO_STDOUT",
            "message": f"{item.command} produced no stdout JSON",
            "cmd": item.command,
            "stderr": stderr,
        }
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        return None, {
            "code": "ERR_CMD_BAD_JSON",
            "message": f"{item.command} stdout was not valid JSON",
            "cmd": item.command,
            "parseError": str(exc),
            "stdout": text[:2000],
            "stderr": stderr,
        }
    if outcome.exit_code != 0:
        return parsed, {
            "code": "ERR_CMD_NONZERO",
            "message": f"{item.command} exited non-zero ({outcome.exit_code})",
            "cmd": item.command,
            "stderr": stderr,
        }
    return parsed, None


__all__ = [
    "CI_ENV_VARS",
    "CONTRACT_MODES",
    "CommandOutcome",
    "ContractRunOptions",
    "ContractRunResult",
    "ContractRunner",
    "Invoker",
    "REFRESH_MODES",
    "RunItem",
    "detect_ci",
    "diagnostic_code",
    "effective_mode",
    "subprocess_invoker",
]
