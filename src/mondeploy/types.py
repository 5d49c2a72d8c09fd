"""Type definitions for mondeploy.

This module defines the data types threaded through a pipeline invocation:
the run context, log entries, inventory host records and stage outcomes.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .logging import DeploymentLog


class Command(str, Enum):
    """Named command pipelines selectable from the command line."""

    CHECK = "check"
    VALIDATE = "validate"
    DEPLOY = "deploy"
    DRY_RUN = "dry-run"
    UPDATE = "update"
    INFO = "info"

    @classmethod
    def names(cls) -> list[str]:
        """Get all command names in declaration order."""
        return [command.value for command in cls]


class Severity(str, Enum):
    """Severity of a log entry."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"

    @property
    def level(self) -> int:
        """Matching standard library logging level."""
        return _SEVERITY_LEVELS[self]


_SEVERITY_LEVELS = {
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class ExecutionMode(str, Enum):
    """How the automation engine is run against the inventory."""

    APPLY = "apply"
    SIMULATE = "simulate"
    PARTIAL_UPDATE = "partial-update"


class StageStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class ErrorKind(str, Enum):
    """Classification of stage failures."""

    MISSING_TOOL = "missing_tool"
    MISSING_FILE = "missing_file"
    INVALID_INVENTORY = "invalid_inventory"
    HOST_UNREACHABLE = "host_unreachable"
    INVALID_PLAYBOOK = "invalid_playbook"
    EXECUTION_FAILURE = "execution_failure"
    CLEANUP_FAILURE = "cleanup_failure"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class LogEntry:
    """A single entry in the deployment log.

    Attributes:
        timestamp: When the entry was recorded
        severity: Entry severity
        message: Human-readable message
    """

    timestamp: datetime
    severity: Severity
    message: str

    def format_line(self) -> str:
        """Format the entry the way it appears in the log file."""
        stamp = self.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        return f"[{stamp}] {self.severity.value}: {self.message}"


@dataclass(frozen=True)
class HostRecord:
    """A host as reported by the inventory.

    Attributes:
        name: Logical host name from the inventory
        address: Network address (``ansible_host``), if the inventory sets one
        groups: Names of the groups the host belongs to
        vars: Remaining host variables

    Example:
        >>> host = HostRecord(name="gpu-01", address="10.6.254.75", groups=("gpu_nodes",))
        >>> host.display_address
        '10.6.254.75'
        >>> HostRecord(name="gpu-02").display_address
        'gpu-02'
    """

    name: str
    address: str | None = None
    groups: tuple[str, ...] = ()
    vars: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def display_address(self) -> str:
        """Address to render in URLs, falling back to the logical name."""
        return self.address or self.name

    def in_group(self, group: str) -> bool:
        """Check group membership."""
        return group in self.groups


@dataclass
class StageResult:
    """Outcome of a single pipeline stage.

    Attributes:
        status: Success, failure or skipped
        reason: Why the stage failed (empty on success)
        exit_code: Exit status to report when the stage failed
        kind: Classification of the failure

    Example:
        >>> StageResult.success().is_success
        True
        >>> result = StageResult.failure("Missing required tools: jq", kind=ErrorKind.MISSING_TOOL)
        >>> result.exit_code
        1
    """

    status: StageStatus
    reason: str = ""
    exit_code: int = 0
    kind: ErrorKind | None = None

    @property
    def is_success(self) -> bool:
        return self.status == StageStatus.SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.status == StageStatus.FAILURE

    @classmethod
    def success(cls) -> "StageResult":
        """Create a successful result."""
        return cls(status=StageStatus.SUCCESS)

    @classmethod
    def skipped(cls, reason: str = "") -> "StageResult":
        """Create a skipped result."""
        return cls(status=StageStatus.SKIPPED, reason=reason)

    @classmethod
    def failure(
        cls,
        reason: str,
        exit_code: int = 1,
        kind: ErrorKind = ErrorKind.UNKNOWN,
    ) -> "StageResult":
        """Create a failed result.

        A zero exit code is coerced to 1 so a failure can never be reported
        to the caller as success.
        """
        return cls(
            status=StageStatus.FAILURE,
            reason=reason,
            exit_code=exit_code or 1,
            kind=kind,
        )


@dataclass
class RunContext:
    """State of one command invocation.

    Created once by the CLI and handed to every component instead of
    process-wide globals.

    Attributes:
        command: Selected command pipeline
        verbose: Whether debug output goes to the console
        inventory: Path to the inventory file
        playbook: Path to the main playbook
        log: Deployment log for this invocation
        exit_status: Terminal exit status, None until the run finishes
    """

    command: Command
    verbose: bool
    inventory: Path
    playbook: Path
    log: "DeploymentLog"
    exit_status: int | None = field(default=None, init=False)

    @property
    def finished(self) -> bool:
        return self.exit_status is not None

    def set_exit_status(self, status: int) -> None:
        """Record the terminal exit status.

        Raises:
            RuntimeError: If an exit status was already recorded
        """
        if self.exit_status is not None:
            raise RuntimeError(
                f"Exit status already set to {self.exit_status}, cannot change to {status}"
            )
        self.exit_status = status
