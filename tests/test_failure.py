"""Tests for the pipeline failure handler."""

import pytest

from mondeploy.exceptions import DeployError, StageFailedError
from mondeploy.failure import FailureHandler, HandlerState, exit_code_for
from mondeploy.types import Command, ErrorKind, Severity, StageResult


@pytest.fixture
def cleanup_playbook(config):
    config.cleanup_playbook.write_text("- hosts: all\n  tasks: []\n")
    return config.cleanup_playbook


def _stage_failure(exit_code=4):
    return StageFailedError(
        "validate-playbook",
        StageResult.failure("bad syntax", exit_code=exit_code, kind=ErrorKind.INVALID_PLAYBOOK),
    )


class TestExitCodeFor:
    """Tests for exit_code_for."""

    def test_deploy_error(self):
        assert exit_code_for(DeployError("boom", exit_code=3)) == 3

    def test_interrupt(self):
        assert exit_code_for(KeyboardInterrupt()) == 130

    def test_unexpected(self):
        assert exit_code_for(OSError("no such file")) == 1


class TestFailureHandler:
    """Tests for FailureHandler."""

    def test_no_failure_is_noop(self, make_ctx, config, runner):
        ctx = make_ctx()

        with FailureHandler(ctx, config, runner) as handler:
            pass

        assert handler.state == HandlerState.ARMED
        assert ctx.exit_status is None
        assert runner.calls == []

    def test_stage_failure_exits_with_its_status(self, make_ctx, config, runner):
        ctx = make_ctx(Command.DEPLOY)

        with pytest.raises(SystemExit) as exc_info:
            with FailureHandler(ctx, config, runner) as handler:
                raise _stage_failure(exit_code=4)

        assert exc_info.value.code == 4
        assert ctx.exit_status == 4
        assert handler.state == HandlerState.DONE
        assert "Deployment failed with exit code 4" in [
            e.message for e in ctx.log.entries if e.severity == Severity.ERROR
        ]
        assert "FATAL: Deployment failed with exit code 4" in ctx.log.path.read_text()

    def test_points_to_log_file(self, make_ctx, config, runner):
        ctx = make_ctx()

        with pytest.raises(SystemExit):
            with FailureHandler(ctx, config, runner):
                raise _stage_failure()

        warnings = [e.message for e in ctx.log.entries if e.severity == Severity.WARN]
        assert f"Check log file for details: {ctx.log.path}" in warnings

    def test_no_cleanup_without_playbook(self, make_ctx, config, runner):
        ctx = make_ctx()

        with pytest.raises(SystemExit):
            with FailureHandler(ctx, config, runner) as handler:
                raise _stage_failure()

        assert runner.calls == []
        assert handler.cleanup_status is None

    def test_cleanup_runs_when_present(self, make_ctx, config, runner, cleanup_playbook):
        ctx = make_ctx()

        with pytest.raises(SystemExit):
            with FailureHandler(ctx, config, runner) as handler:
                raise _stage_failure()

        assert runner.calls == [
            ["ansible-playbook", "-i", str(config.inventory), str(cleanup_playbook), "--become"]
        ]
        assert handler.cleanup_status == 0

    def test_cleanup_failure_keeps_original_status(self, make_ctx, config, runner, cleanup_playbook):
        """Test a failing cleanup never replaces the root-cause exit status."""
        runner.on(str(cleanup_playbook), returncode=2, output=["fatal: [gpu-01]: FAILED!"])
        ctx = make_ctx()

        with pytest.raises(SystemExit) as exc_info:
            with FailureHandler(ctx, config, runner) as handler:
                raise _stage_failure(exit_code=4)

        assert exc_info.value.code == 4
        assert ctx.exit_status == 4
        assert handler.cleanup_status == 2
        assert any("Cleanup playbook failed with exit code 2" in e.message for e in ctx.log.entries)

    def test_cleanup_exception_is_swallowed(self, make_ctx, config, runner, cleanup_playbook):
        runner.on(str(cleanup_playbook), raises=PermissionError("cannot execute"))
        ctx = make_ctx()

        with pytest.raises(SystemExit) as exc_info:
            with FailureHandler(ctx, config, runner) as handler:
                raise _stage_failure(exit_code=3)

        assert exc_info.value.code == 3
        assert handler.state == HandlerState.DONE
        assert any("cannot execute" in e.message for e in ctx.log.entries)

    def test_interrupted_cleanup_keeps_original_status(self, make_ctx, config, runner, cleanup_playbook):
        """Test a second interrupt during cleanup still exits with the root-cause status."""
        runner.on(str(cleanup_playbook), raises=KeyboardInterrupt())
        ctx = make_ctx()

        with pytest.raises(SystemExit) as exc_info:
            with FailureHandler(ctx, config, runner) as handler:
                raise _stage_failure(exit_code=4)

        assert exc_info.value.code == 4
        assert ctx.exit_status == 4
        assert handler.state == HandlerState.DONE
        assert handler.cleanup_status is None
        assert any("Cleanup playbook interrupted" in e.message for e in ctx.log.entries)

    def test_unexpected_exception(self, make_ctx, config, runner):
        ctx = make_ctx()

        with pytest.raises(SystemExit) as exc_info:
            with FailureHandler(ctx, config, runner):
                raise OSError("broken pipe")

        assert exc_info.value.code == 1
        assert isinstance(exc_info.value.__cause__, OSError)
        assert any("OSError: broken pipe" in e.message for e in ctx.log.entries)

    def test_keyboard_interrupt(self, make_ctx, config, runner, cleanup_playbook):
        ctx = make_ctx()

        with pytest.raises(SystemExit) as exc_info:
            with FailureHandler(ctx, config, runner):
                raise KeyboardInterrupt()

        assert exc_info.value.code == 130
        assert runner.ran(str(cleanup_playbook))

    def test_system_exit_passes_through(self, make_ctx, config, runner):
        ctx = make_ctx()

        with pytest.raises(SystemExit) as exc_info:
            with FailureHandler(ctx, config, runner) as handler:
                raise SystemExit(0)

        assert exc_info.value.code == 0
        assert handler.state == HandlerState.ARMED

    def test_fires_only_once(self, make_ctx, config, runner):
        ctx = make_ctx()
        handler = FailureHandler(ctx, config, runner)

        assert handler.fire(5) == 5
        with pytest.raises(RuntimeError):
            handler.fire(6)
        assert ctx.exit_status == 5
