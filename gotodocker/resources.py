"""
resources.py

Responsibility: copy the files an application depends on (configs, assets)
next to its binary in the build output directory.

Glob patterns are expanded relative to the working directory. Matches keep their
path relative to the working directory, so `conf/*.toml` lands in
`<output>/conf/`.
"""

from __future__ import annotations

import glob
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


def expand_resources(patterns: list[str], work_dir: str | Path) -> list[str]:
    """
    Expand glob patterns and return the matches relative to `work_dir`.

    Relative patterns are anchored at `work_dir`; absolute matches are rewritten
    relative to it. Order follows the patterns, then sorted matches.
    """
    base = os.path.abspath(work_dir)
    out: list[str] = []
    for pattern in patterns:
        anchored = pattern if os.path.isabs(pattern) else os.path.join(base, pattern)
        for match in sorted(glob.glob(anchored)):
            out.append(os.path.relpath(match, base))
    return out


def copy_file(src: str | Path, dst: str | Path) -> None:
    """
    Copy bytes from src to dst and flush them to disk before returning.
    """
    with open(src, "rb") as fin, open(dst, "wb") as fout:
        while True:
            chunk = fin.read(COPY_CHUNK_SIZE)
            if not chunk:
                break
            fout.write(chunk)
        fout.flush()
        os.fsync(fout.fileno())


def copy_resources(patterns: list[str], work_dir: str | Path, output_dir: str | Path) -> list[Path]:
    """
    Copy every file matched by `patterns` under `output_dir`, keeping relative paths.

    Stops at the first failure; files already copied are left in place.
    """
    base = Path(work_dir)
    out_dir = Path(output_dir)
    if not out_dir.is_absolute():
        out_dir = base / out_dir

    copied: list[Path] = []
    for rel in expand_resources(patterns, base):
        src = base / rel
        if src.is_dir():
            logger.debug("skipping directory %s", rel)
            continue
        dst = out_dir / rel
        dst.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("copying file %s to %s", rel, dst)
        copy_file(src, dst)
        copied.append(dst)
    return copied
