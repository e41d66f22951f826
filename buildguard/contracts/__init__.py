"""Golden-snapshot contracts for buildguard command output."""

from .check import ContractCheckOutcome, ContractDocument, contract_check, contract_update, load_document
from .normalize import normalize, normalize_for_contract
from .schemas import SCHEMA_CHECKERS, check_schema
from .snapshot import compare_normalized, read_snapshot, snapshot_path_for, stable_stringify, write_snapshot

__all__ = [
    "ContractCheckOutcome",
    "ContractDocument",
    "SCHEMA_CHECKERS",
    "check_schema",
    "compare_normalized",
    "contract_check",
    "contract_update",
    "load_document",
    "normalize",
    "normalize_for_contract",
    "read_snapshot",
    "snapshot_path_for",
    "stable_stringify",
    "write_snapshot",
]
