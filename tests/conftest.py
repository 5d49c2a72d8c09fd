"""Shared fixtures for mondeploy tests."""

from dataclasses import dataclass, field
from typing import Sequence

import pytest

from mondeploy.config import DeployConfig
from mondeploy.logging import DeploymentLog
from mondeploy.process import CommandOutput, CommandRunner, LineCallback
from mondeploy.types import Command, RunContext


@dataclass
class Rule:
    """Scripted response for commands containing all of ``tokens``."""

    tokens: tuple[str, ...]
    returncode: int = 0
    output: list[str] = field(default_factory=list)
    stdout: str = ""
    stderr: str = ""
    raises: BaseException | None = None

    def matches(self, argv: Sequence[str]) -> bool:
        return all(token in argv for token in self.tokens)


class FakeRunner(CommandRunner):
    """CommandRunner that records calls and replays scripted responses.

    The most recently registered matching rule wins; unmatched commands
    succeed with no output.
    """

    def __init__(self, missing: Sequence[str] = ()) -> None:
        self.missing = set(missing)
        self.rules: list[Rule] = []
        self.calls: list[list[str]] = []

    def on(self, *tokens: str, **response) -> "FakeRunner":
        self.rules.append(Rule(tokens=tokens, **response))
        return self

    def ran(self, *tokens: str) -> bool:
        return any(all(token in call for token in tokens) for call in self.calls)

    def _rule(self, argv: Sequence[str]) -> Rule:
        for rule in reversed(self.rules):
            if rule.matches(argv):
                return rule
        return Rule(tokens=())

    def which(self, tool: str) -> str | None:
        return None if tool in self.missing else f"/usr/bin/{tool}"

    def stream(
        self,
        argv: Sequence[str],
        on_line: LineCallback,
        env: dict[str, str] | None = None,
    ) -> int:
        self.calls.append(list(argv))
        rule = self._rule(argv)
        if rule.raises is not None:
            raise rule.raises
        for line in rule.output:
            on_line(line)
        return rule.returncode

    def capture(
        self,
        argv: Sequence[str],
        env: dict[str, str] | None = None,
    ) -> CommandOutput:
        self.calls.append(list(argv))
        rule = self._rule(argv)
        if rule.raises is not None:
            raise rule.raises
        return CommandOutput(returncode=rule.returncode, stdout=rule.stdout or "{}", stderr=rule.stderr)


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def workspace(tmp_path):
    """A deployment directory with an inventory and a playbook."""
    (tmp_path / "inventory").mkdir()
    (tmp_path / "inventory" / "hosts.yml").write_text("all:\n  hosts:\n    master-node:\n")
    (tmp_path / "playbooks").mkdir()
    (tmp_path / "playbooks" / "deploy-monitoring.yml").write_text("- hosts: all\n  tasks: []\n")
    return tmp_path


@pytest.fixture
def config(workspace):
    return DeployConfig(base_dir=workspace)


@pytest.fixture
def make_ctx(config):
    """Build a RunContext for a command with a log under the workspace."""
    logs: list[DeploymentLog] = []

    def _make(command: Command = Command.DEPLOY, verbose: bool = False) -> RunContext:
        log = DeploymentLog(config.log_dir, verbose=verbose)
        logs.append(log)
        return RunContext(
            command=command,
            verbose=verbose,
            inventory=config.inventory,
            playbook=config.playbook,
            log=log,
        )

    yield _make

    for log in logs:
        log.close()


@pytest.fixture(autouse=True)
def plain_console(monkeypatch):
    """Keep rich from emitting color codes into captured output."""
    for name in ("FORCE_COLOR", "TTY_COMPATIBLE", "TTY_INTERACTIVE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NO_COLOR", "1")
