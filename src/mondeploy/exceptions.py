"""mondeploy exceptions."""

from typing import Any

from .types import ErrorKind, StageResult


class DeployError(Exception):
    """Raised when a deployment step fails.

    Attributes:
        msg: Human-readable error message
        kind: Classification of the failure
        exit_code: Exit status the process should report
        context: Extra fields describing the failure (stage, host, tool, file)

    Example:
        raise DeployError("Playbook not found", kind=ErrorKind.MISSING_FILE, path="site.yml")
    """

    def __init__(
        self,
        msg: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        exit_code: int = 1,
        **context: Any,
    ) -> None:
        super().__init__(msg)
        self.msg = msg
        self.kind = kind
        self.exit_code = exit_code or 1
        self.context: dict[str, Any] = context

    def __str__(self) -> str:
        return self.msg


class StageFailedError(DeployError):
    """Raised by the dispatcher when a pipeline stage returns a failure."""

    def __init__(self, stage: str, result: StageResult) -> None:
        super().__init__(
            f"Stage '{stage}' failed: {result.reason}",
            kind=result.kind or ErrorKind.UNKNOWN,
            exit_code=result.exit_code,
            stage=stage,
        )
        self.stage = stage
        self.result = result


class ConfigError(DeployError):
    """Raised when the configuration file cannot be read."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Invalid configuration file {path}: {reason}", path=path)
