from __future__ import annotations

from typing import Callable

import pytest

from gotodocker.runner import CommandError

NOT_A_REPO = b"fatal: not a git repository (or any of the parent directories): .git\n"


class FakeRunner:
    """
    Records every command instead of running it.

    git answers come from `branch` / `commit` (None branch: not a repository);
    `fail_on(cmd)` returning True makes that command fail; `on_command(cmd, cwd)`
    runs for side effects such as creating the binary a build would produce.
    """

    def __init__(
        self,
        branch: str | None = None,
        commit: str = "abcdef1234567890abcdef1234567890abcdef12",
        *,
        fail_on: Callable[[list[str]], bool] | None = None,
        on_command: Callable[[list[str], str | None], None] | None = None,
    ) -> None:
        self.branch = branch
        self.commit = commit
        self.fail_on = fail_on
        self.on_command = on_command
        self.calls: list[tuple[str, str | None, list[str]]] = []

    def _answer(self, cmd: list[str], cwd: str | None) -> bytes:
        if cmd[:2] == ["git", "rev-parse"]:
            if self.branch is None:
                raise CommandError(cmd, 128, NOT_A_REPO)
            if cmd[2:] == ["--git-dir"]:
                return b".git\n"
            if cmd[2:] == ["--abbrev-ref", "HEAD"]:
                return self.branch.encode() + b"\n"
            if cmd[2:] == ["HEAD"]:
                return self.commit.encode() + b"\n"
        if self.fail_on is not None and self.fail_on(cmd):
            raise CommandError(cmd, 1, b"Error: " + " ".join(cmd).encode())
        if self.on_command is not None:
            self.on_command(cmd, cwd)
        return b""

    def run(self, cwd: str | None, cmd: list[str]) -> bytes:
        self.calls.append(("run", cwd, list(cmd)))
        return self._answer(list(cmd), cwd)

    def run_streaming(self, cwd: str | None, cmd: list[str]) -> None:
        self.calls.append(("stream", cwd, list(cmd)))
        self._answer(list(cmd), cwd)

    def commands(self, prefix: str | None = None) -> list[list[str]]:
        """Non-git commands, optionally only those starting with `prefix`."""
        out = [cmd for _mode, _cwd, cmd in self.calls if cmd[0] != "git"]
        if prefix is not None:
            out = [cmd for cmd in out if cmd[0] == prefix]
        return out


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def restore_cwd():
    import os

    cwd = os.getcwd()
    yield cwd
    os.chdir(cwd)
