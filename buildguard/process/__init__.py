"""Child process orchestration for candidate applications."""

from .handle import CapturedOutput, ProcessHandle, run_to_completion, start_process
from .install import INSTALL_MODES, InstallResult, parse_install_mode, run_install, should_install
from .ports import allocate_ephemeral_port
from .runtime import Runtime, detect_runtime, get_runtime

__all__ = [
    "CapturedOutput",
    "INSTALL_MODES",
    "InstallResult",
    "ProcessHandle",
    "Runtime",
    "allocate_ephemeral_port",
    "detect_runtime",
    "get_runtime",
    "parse_install_mode",
    "run_install",
    "run_to_completion",
    "should_install",
    "start_process",
]
