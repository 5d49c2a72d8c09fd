"""Failure handling for mondeploy pipelines.

FailureHandler wraps a whole pipeline run. When anything escapes the pipeline
it logs the failure, runs the cleanup playbook if one exists, and exits with
the status of the original failure.

Example:
    with FailureHandler(ctx, config, runner):
        dispatcher.run_stages()
"""

import logging
from enum import Enum
from types import TracebackType

from .config import DeployConfig
from .exceptions import DeployError, StageFailedError
from .process import CommandRunner
from .stages import playbook_command
from .types import ErrorKind, RunContext, Severity

logger = logging.getLogger(__name__)

INTERRUPTED_EXIT_CODE = 130


class HandlerState(str, Enum):
    ARMED = "armed"
    FIRING = "firing"
    DONE = "done"


def exit_code_for(error: BaseException) -> int:
    """Exit status to report for an error escaping the pipeline."""
    if isinstance(error, DeployError):
        return error.exit_code
    if isinstance(error, KeyboardInterrupt):
        return INTERRUPTED_EXIT_CODE
    return 1


class FailureHandler:
    """Guard around a pipeline run that cleans up after failures.

    Attributes:
        state: ARMED until a failure is seen, FIRING while handling it, then DONE
        exit_code: Status of the original failure, once fired
        cleanup_status: Exit status of the cleanup playbook, if it ran
    """

    def __init__(self, ctx: RunContext, config: DeployConfig, runner: CommandRunner) -> None:
        self.ctx = ctx
        self.config = config
        self.runner = runner
        self.state = HandlerState.ARMED
        self.exit_code: int | None = None
        self.cleanup_status: int | None = None

    def __enter__(self) -> "FailureHandler":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc is None or isinstance(exc, (SystemExit, GeneratorExit)):
            return False

        exit_code = self.fire(exit_code_for(exc), exc)
        raise SystemExit(exit_code) from exc

    def fire(self, exit_code: int, error: BaseException | None = None) -> int:
        """Handle a failure and return the status the process must exit with.

        Args:
            exit_code: Status of the failure that stopped the pipeline
            error: The exception that stopped the pipeline, if any

        Returns:
            exit_code, unchanged by anything the cleanup does

        Raises:
            RuntimeError: If the handler has already fired
        """
        if self.state != HandlerState.ARMED:
            raise RuntimeError(f"Failure handler already {self.state.value}")
        self.state = HandlerState.FIRING
        self.exit_code = exit_code
        log = self.ctx.log

        if isinstance(error, KeyboardInterrupt):
            log.error("Interrupted by user")
        elif error is not None and not isinstance(error, StageFailedError):
            log.error(f"Unexpected error: {error.__class__.__name__}: {error}")
            logger.debug("Unexpected error escaped the pipeline", exc_info=error)

        log.error(f"Deployment failed with exit code {exit_code}")
        log.file_only(Severity.ERROR, f"FATAL: Deployment failed with exit code {exit_code}")
        log.warning(f"Check log file for details: {log.path}")

        self.cleanup_status = self.run_cleanup()

        if not self.ctx.finished:
            self.ctx.set_exit_status(exit_code)
        self.state = HandlerState.DONE
        return exit_code

    def run_cleanup(self) -> int | None:
        """Run the cleanup playbook if it exists.

        Failures of the cleanup itself are logged and never raised.

        Returns:
            Exit status of the cleanup playbook, or None if it did not run
        """
        cleanup = self.config.cleanup_playbook
        log = self.ctx.log
        if not cleanup.is_file():
            log.debug(f"No cleanup playbook at {cleanup}")
            return None

        log.warning("Running cleanup playbook...")
        argv = playbook_command(self.ctx.inventory, cleanup, "--become")
        try:
            returncode = self.runner.stream(argv, log.echo, env=self.config.engine_env)
        except KeyboardInterrupt:
            log.error(f"Cleanup playbook interrupted ({ErrorKind.CLEANUP_FAILURE.value})")
            return None
        except Exception as e:
            log.error(f"Cleanup playbook could not be started ({ErrorKind.CLEANUP_FAILURE.value}): {e}")
            return None

        if returncode != 0:
            log.error(f"Cleanup playbook failed with exit code {returncode} ({ErrorKind.CLEANUP_FAILURE.value})")
        else:
            log.info("Cleanup playbook completed.")
        return returncode
