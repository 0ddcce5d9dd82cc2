"""
revision.py

Responsibility: read the git branch and short commit id of the working directory.

Everything goes through a ProcessRunner so tests can script git's answers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gotodocker.errors import GoToDockerError
from gotodocker.runner import CommandError, ProcessRunner

logger = logging.getLogger(__name__)

UNBORN_BRANCH = "master"
UNBORN_REVISION = "0" * 40
REVISION_ID_LENGTH = 8


class RevisionError(GoToDockerError, RuntimeError):
    pass


@dataclass(frozen=True)
class Revision:
    branch: str
    revision_id: str


def _output(data: bytes) -> str:
    return data.decode("utf-8", errors="replace").strip()


def _is_git_dir(runner: ProcessRunner, work_dir: str) -> bool:
    try:
        runner.run(work_dir, ["git", "rev-parse", "--git-dir"])
    except FileNotFoundError:
        logger.debug("git executable not found, treating %s as unversioned", work_dir)
        return False
    except CommandError as e:
        if "not a git repository" in _output(e.output).lower():
            return False
        raise RevisionError(f"Probing git in {work_dir} failed: {e}") from e
    return True


def _rev_parse(runner: ProcessRunner, work_dir: str, args: list[str], unborn: str) -> str:
    try:
        return _output(runner.run(work_dir, ["git", "rev-parse", *args]))
    except CommandError as e:
        # A repository without commits has no HEAD to resolve yet.
        if "HEAD" in _output(e.output):
            return unborn
        raise RevisionError(f"git rev-parse {' '.join(args)} failed: {e}") from e


def read_revision(runner: ProcessRunner, work_dir: str) -> Revision | None:
    """
    Return the current branch and 8-character commit id, or None outside a git tree.
    """
    if not _is_git_dir(runner, work_dir):
        return None

    branch = _rev_parse(runner, work_dir, ["--abbrev-ref", "HEAD"], UNBORN_BRANCH)
    commit = _rev_parse(runner, work_dir, ["HEAD"], UNBORN_REVISION)
    if len(commit) < REVISION_ID_LENGTH:
        raise RevisionError(f"Unexpected commit id from git: {commit!r}")

    revision = Revision(branch=branch, revision_id=commit[:REVISION_ID_LENGTH])
    logger.debug("revision of %s: %s@%s", work_dir, revision.branch, revision.revision_id)
    return revision
