"""
runner.py

Responsibility: run external commands (`docker`, `go`, `git`) synchronously.

Two modes:
- `run`: capture combined stdout/stderr and return it as bytes
- `run_streaming`: forward stdout/stderr live to this process' streams

Stages only talk to a `ProcessRunner`; tests swap in a fake with the same
two methods so nothing external is spawned.
"""

from __future__ import annotations

import shutil
import subprocess
import sys
import threading
from typing import BinaryIO, Sequence

from gotodocker.errors import GoToDockerError


class CommandError(GoToDockerError, RuntimeError):
    def __init__(self, cmd: Sequence[str], returncode: int, output: bytes = b"") -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.output = output
        text = output.decode("utf-8", errors="replace").strip()
        if text:
            super().__init__(text)
        else:
            super().__init__(f"Command failed with exit status {returncode}: {' '.join(self.cmd)}")


def _pump(src: BinaryIO, dst: BinaryIO) -> None:
    with src:
        shutil.copyfileobj(src, dst)
    dst.flush()


class ProcessRunner:
    def __init__(self, stdout: BinaryIO | None = None, stderr: BinaryIO | None = None) -> None:
        self._stdout = stdout
        self._stderr = stderr

    def run(self, cwd: str | None, cmd: Sequence[str]) -> bytes:
        """
        Run `cmd` in `cwd` (current directory when empty) and return its combined output.

        Raises CommandError carrying that output on a non-zero exit.
        """
        proc = subprocess.run(
            list(cmd),
            cwd=cwd or None,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
        if proc.returncode != 0:
            raise CommandError(cmd, proc.returncode, proc.stdout)
        return proc.stdout

    def run_streaming(self, cwd: str | None, cmd: Sequence[str]) -> None:
        """
        Run `cmd` in `cwd`, copying its stdout and stderr to ours while it runs.

        Both pipes are drained on their own thread so a chatty child never blocks
        on a full buffer; the call returns once the child exited and both
        streams are empty.
        """
        stdout = self._stdout or sys.stdout.buffer
        stderr = self._stderr or sys.stderr.buffer

        proc = subprocess.Popen(
            list(cmd),
            cwd=cwd or None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        assert proc.stdout is not None and proc.stderr is not None

        pumps = [
            threading.Thread(target=_pump, args=(proc.stdout, stdout), daemon=True),
            threading.Thread(target=_pump, args=(proc.stderr, stderr), daemon=True),
        ]
        for t in pumps:
            t.start()
        returncode = proc.wait()
        for t in pumps:
            t.join()

        if returncode != 0:
            raise CommandError(cmd, returncode)
