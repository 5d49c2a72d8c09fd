"""Pipeline stages for mondeploy.

Each stage runs one step of a command pipeline against the automation engine
and reports a StageResult. Stages never raise for expected failures; the
dispatcher decides what happens next.
"""

import logging
import re
from pathlib import Path

from .config import DeployConfig
from .inventory import InventoryClient
from .logging import log_performance
from .process import CommandRunner
from .types import ErrorKind, ExecutionMode, RunContext, StageResult

logger = logging.getLogger(__name__)

PLAYBOOK_COMMAND = "ansible-playbook"
ADHOC_COMMAND = "ansible"

# "gpu-01 | UNREACHABLE! => {...}" as printed by the ping module
_PING_FAILURE = re.compile(r"^(?P<host>\S+)\s+\|\s+(?:UNREACHABLE|FAILED)!")

_MODE_FLAGS = {
    ExecutionMode.APPLY: ["--become"],
    ExecutionMode.SIMULATE: ["--become", "--check", "--diff"],
    ExecutionMode.PARTIAL_UPDATE: ["--become", "--tags", "update"],
}

# (start, success, failure) messages per mode
_MODE_MESSAGES = {
    ExecutionMode.APPLY: (
        "Deploying monitoring stack...",
        "Deployment completed successfully!",
        "Deployment failed!",
    ),
    ExecutionMode.SIMULATE: (
        "Running dry-run - showing what would be deployed...",
        "Dry-run completed successfully!",
        "Dry-run failed - there may be issues with your playbook.",
    ),
    ExecutionMode.PARTIAL_UPDATE: (
        "Updating monitoring stack...",
        "Update completed successfully!",
        "Update failed!",
    ),
}


def playbook_command(inventory: Path, playbook: Path, *flags: str) -> list[str]:
    """Build an ansible-playbook command line."""
    return [PLAYBOOK_COMMAND, "-i", str(inventory), str(playbook), *flags]


class PrerequisiteChecker:
    """Verifies tools and input files before anything touches the fleet."""

    def __init__(self, ctx: RunContext, config: DeployConfig, runner: CommandRunner) -> None:
        self.ctx = ctx
        self.config = config
        self.runner = runner

    def check(self) -> StageResult:
        """Check required tools, the inventory and the playbook.

        All missing required tools are reported together. Missing optional
        tools (docker) are only a warning since they are needed on the target
        hosts, not on the controller.
        """
        log = self.ctx.log
        log.info("Checking prerequisites...")

        missing_tools = [tool for tool in self.config.required_tools if self.runner.which(tool) is None]
        if missing_tools:
            reason = f"Missing required tools: {' '.join(missing_tools)}"
            log.error(reason)
            log.warning("Please install missing tools before continuing.")
            return StageResult.failure(reason, kind=ErrorKind.MISSING_TOOL)

        for tool in self.config.optional_tools:
            if self.runner.which(tool) is None:
                log.warning(f"{tool} not found locally. Make sure it's installed on target hosts.")

        for label, path in (("Inventory", self.ctx.inventory), ("Playbook", self.ctx.playbook)):
            if not path.is_file():
                reason = f"{label} file not found: {path}"
                log.error(reason)
                return StageResult.failure(reason, kind=ErrorKind.MISSING_FILE)

        client = InventoryClient(self.runner, self.ctx.inventory, env=self.config.engine_env)
        if not client.is_valid():
            reason = f"Invalid inventory file syntax: {self.ctx.inventory}"
            log.error(reason)
            return StageResult.failure(reason, kind=ErrorKind.INVALID_INVENTORY)

        log.info("Prerequisites check completed.")
        return StageResult.success()


class ConnectivityProbe:
    """Pings every inventory host; any unreachable host fails the stage."""

    def __init__(self, ctx: RunContext, config: DeployConfig, runner: CommandRunner) -> None:
        self.ctx = ctx
        self.config = config
        self.runner = runner

    def probe(self, inventory: Path) -> StageResult:
        """Run the ping module against all hosts.

        The fleet is treated as a whole: a single unreachable host fails the
        stage and nothing is deployed to the reachable remainder.
        """
        log = self.ctx.log
        log.info("Testing connectivity to all hosts...")

        unreachable: list[str] = []

        def on_line(line: str) -> None:
            log.echo(line)
            match = _PING_FAILURE.match(line)
            if match and match.group("host") not in unreachable:
                unreachable.append(match.group("host"))

        argv = [ADHOC_COMMAND, "all", "-i", str(inventory), "-m", "ping"]
        returncode = self.runner.stream(argv, on_line, env=self.config.engine_env)

        if returncode != 0 or unreachable:
            if unreachable:
                reason = f"Unreachable hosts: {', '.join(unreachable)}"
            else:
                reason = "Some hosts are not reachable"
            log.error(f"{reason}. Please check your inventory and SSH configuration.")
            log.warning(f"Check log file for detailed connection errors: {log.path}")
            return StageResult.failure(reason, exit_code=returncode, kind=ErrorKind.HOST_UNREACHABLE)

        log.info("All hosts are reachable.")
        return StageResult.success()


class PlaybookValidator:
    """Syntax-checks the playbook without touching any host."""

    def __init__(self, ctx: RunContext, config: DeployConfig, runner: CommandRunner) -> None:
        self.ctx = ctx
        self.config = config
        self.runner = runner

    def validate(self, playbook: Path) -> StageResult:
        log = self.ctx.log
        log.info("Validating playbook syntax...")

        argv = playbook_command(self.ctx.inventory, playbook, "--syntax-check")
        returncode = self.runner.stream(argv, log.echo, env=self.config.engine_env)

        if returncode != 0:
            reason = f"Playbook syntax validation failed: {playbook}"
            log.error(reason)
            return StageResult.failure(reason, exit_code=returncode, kind=ErrorKind.INVALID_PLAYBOOK)

        log.info("Playbook syntax is valid.")
        return StageResult.success()


class StageExecutor:
    """Runs the playbook in apply, simulate or partial-update mode."""

    def __init__(self, ctx: RunContext, config: DeployConfig, runner: CommandRunner) -> None:
        self.ctx = ctx
        self.config = config
        self.runner = runner

    def command_for(self, mode: ExecutionMode, playbook: Path, inventory: Path, verbose: bool) -> list[str]:
        """Build the ansible-playbook command line for a mode."""
        flags = list(_MODE_FLAGS[mode])
        if verbose:
            flags.append("-v")
        return playbook_command(inventory, playbook, *flags)

    def execute(
        self,
        mode: ExecutionMode,
        playbook: Path,
        inventory: Path,
        verbose: bool,
    ) -> StageResult:
        """Run the automation engine, streaming its output into the log.

        A non-zero exit is a failure and is never retried.
        """
        log = self.ctx.log
        start_message, success_message, failure_message = _MODE_MESSAGES[mode]

        log.info(start_message)
        if mode == ExecutionMode.SIMULATE:
            log.warning("This is a simulation - no actual changes will be made.")

        argv = self.command_for(mode, playbook, inventory, verbose)
        log.debug(f"Running: {' '.join(argv)}")
        with log_performance(logger, PLAYBOOK_COMMAND, level=logging.DEBUG, mode=mode.value):
            returncode = self.runner.stream(argv, log.echo, env=self.config.engine_env)

        if returncode != 0:
            log.error(failure_message)
            return StageResult.failure(
                f"{PLAYBOOK_COMMAND} exited with status {returncode} in {mode.value} mode",
                exit_code=returncode,
                kind=ErrorKind.EXECUTION_FAILURE,
            )

        log.info(success_message)
        if mode == ExecutionMode.SIMULATE:
            log.warning("Simulated output only: no host was changed.")
            log.info("Review the output above to see what would be changed.")
        return StageResult.success()
