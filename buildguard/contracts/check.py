"""Single-document contract checks: compare or record one command's JSON output."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Dict, Optional

from ..errors import ContractInputError
from ..logging import get_logger
from .normalize import normalize_for_contract
from .snapshot import compare_normalized, load_json_file, load_json_stdin, read_snapshot, snapshot_path_for, write_snapshot

EXIT_MATCH = 0
EXIT_MISMATCH = 1
EXIT_INPUT_ERROR = 2

_LOGGER = get_logger("contracts.check")


@dataclass
class ContractDocument:
    source: Dict[str, Any]
    value: Any


@dataclass
class ContractCheckOutcome:
    payload: Dict[str, Any]
    exit_code: int


def load_document(
    *, file: Optional[Path] = None, stdin: bool = False, stream: Optional[BinaryIO] = None
) -> ContractDocument:
    """Read the document to check from exactly one of ``file`` or stdin."""
    if file is None and not stdin:
        raise ContractInputError("Provide input via --file <path> or --stdin", code="ERR_INPUT_SOURCE")
    if file is not None and stdin:
        raise ContractInputError("Provide only one input source: --file or --stdin", code="ERR_INPUT_SOURCE")
    if file is not None:
        path = Path(file).resolve()
        return ContractDocument(source={"kind": "file", "path": str(path)}, value=load_json_file(path))
    return ContractDocument(source={"kind": "stdin"}, value=load_json_stdin(stream))


def contract_check(key: str, document: ContractDocument, contracts_dir: Path) -> ContractCheckOutcome:
    """Normalise ``document`` and compare it with the stored snapshot for ``key``."""
    directory = Path(contracts_dir).resolve()
    snapshot = snapshot_path_for(directory, key)
    base = {"cmd": key, "contractsDir": str(directory), "snapshot": str(snapshot), "input": document.source}
    try:
        expected = read_snapshot(snapshot)
    except ContractInputError as exc:
        _LOGGER.error("[contract:check] %s", exc)
        return ContractCheckOutcome({"ok": False, **base, "error": exc.to_dict()}, EXIT_INPUT_ERROR)

    comparison = compare_normalized(expected, normalize_for_contract(key, document.value))
    if comparison["ok"]:
        return ContractCheckOutcome({"ok": True, **base, "match": True}, EXIT_MATCH)

    _LOGGER.warning("[contract:check] MISMATCH for %s against %s", key, snapshot)
    _LOGGER.warning("[contract:check] summary: %s", comparison["summary"])
    return ContractCheckOutcome(
        {"ok": False, **base, "match": False, "diffSummary": comparison["summary"]},
        EXIT_MISMATCH,
    )


def contract_update(key: str, document: ContractDocument, contracts_dir: Path) -> ContractCheckOutcome:
    """Overwrite the snapshot for ``key`` with the normalised ``document``."""
    directory = Path(contracts_dir).resolve()
    snapshot = write_snapshot(snapshot_path_for(directory, key), normalize_for_contract(key, document.value))
    _LOGGER.info("[contract:update] wrote %s", snapshot)
    return ContractCheckOutcome(
        {
            "ok": True,
            "cmd": key,
            "contractsDir": str(directory),
            "snapshot": str(snapshot),
            "input": document.source,
            "updated": True,
        },
        EXIT_MATCH,
    )


__all__ = [
    "ContractCheckOutcome",
    "ContractDocument",
    "EXIT_INPUT_ERROR",
    "EXIT_MATCH",
    "EXIT_MISMATCH",
    "contract_check",
    "contract_update",
    "load_document",
]
