import io
import sys

import pytest

from gotodocker.runner import CommandError, ProcessRunner

PY = sys.executable


def test_run_returns_combined_output(tmp_path) -> None:
    out = ProcessRunner().run(
        str(tmp_path),
        [PY, "-c", "import sys; print('out'); sys.stdout.flush(); print('err', file=sys.stderr)"],
    )
    assert b"out" in out
    assert b"err" in out


def test_run_uses_cwd(tmp_path) -> None:
    out = ProcessRunner().run(str(tmp_path), [PY, "-c", "import os; print(os.getcwd())"])
    assert out.decode().strip().endswith(tmp_path.name)


def test_run_failure_carries_output() -> None:
    with pytest.raises(CommandError) as exc:
        ProcessRunner().run(None, [PY, "-c", "import sys; print('no such image'); sys.exit(3)"])
    assert exc.value.returncode == 3
    assert str(exc.value) == "no such image"


def test_run_streaming_forwards_both_streams() -> None:
    stdout, stderr = io.BytesIO(), io.BytesIO()
    # Enough output to fill a pipe buffer if the streams were not drained concurrently.
    script = "import sys\nfor i in range(20000):\n    sys.stdout.write('o' * 10 + '\\n')\n    sys.stderr.write('e' * 10 + '\\n')\n"
    ProcessRunner(stdout=stdout, stderr=stderr).run_streaming(None, [PY, "-c", script])
    assert stdout.getvalue().count(b"\n") == 20000
    assert stderr.getvalue().count(b"\n") == 20000


def test_run_streaming_failure() -> None:
    runner = ProcessRunner(stdout=io.BytesIO(), stderr=io.BytesIO())
    with pytest.raises(CommandError) as exc:
        runner.run_streaming(None, [PY, "-c", "raise SystemExit(2)"])
    assert exc.value.returncode == 2
    assert "exit status 2" in str(exc.value)
