"""Command pipelines for mondeploy.

Every command maps to a fixed, ordered list of stages. The dispatcher runs
them in order and stops at the first failure, handing control to the
FailureHandler.
"""

import logging
from enum import Enum
from typing import Callable

from .config import DeployConfig
from .exceptions import StageFailedError
from .failure import FailureHandler
from .logging import log_scope
from .process import CommandRunner
from .report import AccessInfoReporter
from .stages import ConnectivityProbe, PlaybookValidator, PrerequisiteChecker, StageExecutor
from .types import Command, ExecutionMode, RunContext, Severity, StageResult

logger = logging.getLogger(__name__)

StageFn = Callable[[], StageResult]


class Stage(str, Enum):
    PREREQUISITES = "prerequisites"
    CONNECTIVITY = "connectivity"
    VALIDATE_PLAYBOOK = "validate-playbook"
    APPLY = "apply"
    SIMULATE = "simulate"
    PARTIAL_UPDATE = "partial-update"
    ACCESS_INFO = "access-info"


PIPELINES: dict[Command, tuple[Stage, ...]] = {
    Command.CHECK: (Stage.PREREQUISITES, Stage.CONNECTIVITY),
    Command.VALIDATE: (Stage.PREREQUISITES, Stage.VALIDATE_PLAYBOOK),
    Command.DEPLOY: (
        Stage.PREREQUISITES,
        Stage.CONNECTIVITY,
        Stage.VALIDATE_PLAYBOOK,
        Stage.APPLY,
        Stage.ACCESS_INFO,
    ),
    Command.DRY_RUN: (
        Stage.PREREQUISITES,
        Stage.CONNECTIVITY,
        Stage.VALIDATE_PLAYBOOK,
        Stage.SIMULATE,
    ),
    Command.UPDATE: (
        Stage.PREREQUISITES,
        Stage.CONNECTIVITY,
        Stage.VALIDATE_PLAYBOOK,
        Stage.PARTIAL_UPDATE,
    ),
    Command.INFO: (Stage.ACCESS_INFO,),
}

COMPLETION_MESSAGES = {
    Command.CHECK: "All checks passed!",
    Command.VALIDATE: "Playbook validation passed!",
    Command.DEPLOY: "Deployment completed successfully!",
    Command.DRY_RUN: "Dry-run completed!",
    Command.UPDATE: "Update completed!",
    Command.INFO: "Access information displayed.",
}


class CommandDispatcher:
    """Runs the pipeline of the selected command.

    Attributes:
        ctx: Run context of this invocation
        config: Deployment configuration
        runner: Runner for the automation engine
        stages: Callable for each stage; defaults wire the real components

    Example:
        >>> dispatcher = CommandDispatcher(ctx, config, SubprocessRunner())
        >>> dispatcher.run()
        0
    """

    def __init__(
        self,
        ctx: RunContext,
        config: DeployConfig,
        runner: CommandRunner,
        stages: dict[Stage, StageFn] | None = None,
    ) -> None:
        self.ctx = ctx
        self.config = config
        self.runner = runner
        self.stages = self.default_stages()
        if stages:
            self.stages.update(stages)

    @property
    def pipeline(self) -> tuple[Stage, ...]:
        return PIPELINES[self.ctx.command]

    def default_stages(self) -> dict[Stage, StageFn]:
        """Wire every stage to its component."""
        ctx, config, runner = self.ctx, self.config, self.runner
        checker = PrerequisiteChecker(ctx, config, runner)
        probe = ConnectivityProbe(ctx, config, runner)
        validator = PlaybookValidator(ctx, config, runner)
        executor = StageExecutor(ctx, config, runner)

        def execute(mode: ExecutionMode) -> StageFn:
            return lambda: executor.execute(mode, ctx.playbook, ctx.inventory, ctx.verbose)

        return {
            Stage.PREREQUISITES: checker.check,
            Stage.CONNECTIVITY: lambda: probe.probe(ctx.inventory),
            Stage.VALIDATE_PLAYBOOK: lambda: validator.validate(ctx.playbook),
            Stage.APPLY: execute(ExecutionMode.APPLY),
            Stage.SIMULATE: execute(ExecutionMode.SIMULATE),
            Stage.PARTIAL_UPDATE: execute(ExecutionMode.PARTIAL_UPDATE),
            Stage.ACCESS_INFO: self.report_access,
        }

    def report_access(self) -> StageResult:
        """Print the access report; it never fails the pipeline."""
        text = AccessInfoReporter(self.ctx, self.config, self.runner).report(self.ctx.inventory)
        self.ctx.log.echo("")
        for line in text.splitlines():
            self.ctx.log.echo(line)
        return StageResult.success()

    def run_stages(self) -> None:
        """Run the pipeline stages in order.

        Raises:
            StageFailedError: On the first stage that fails
        """
        for stage in self.pipeline:
            result = self.stages[stage]()
            self.ctx.log.debug(f"Stage {stage.value}: {result.status.value}")
            if result.is_failure:
                raise StageFailedError(stage.value, result)

    def run(self) -> int:
        """Run the selected command.

        Returns:
            0 when every stage succeeded

        Raises:
            SystemExit: With the failing stage's exit status, after cleanup
        """
        command = self.ctx.command
        with FailureHandler(self.ctx, self.config, self.runner):
            with log_scope(logger, "Running pipeline", level=logging.DEBUG, command=command.value):
                self.run_stages()

        self.ctx.log.info(COMPLETION_MESSAGES[command])
        self.ctx.log.file_only(
            Severity.INFO, f"SUCCESS: Command '{command.value}' completed successfully"
        )
        self.ctx.set_exit_status(0)
        return 0
