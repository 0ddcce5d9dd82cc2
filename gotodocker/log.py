"""
log.py

Responsibility: configure the root logger for the CLI.

Verbose runs log at DEBUG (every command line is logged before it runs);
otherwise only warnings and errors are shown.
"""

from __future__ import annotations

import logging
import os
import sys

import colorlog

LOG_FORMAT = "[%(levelname).4s] %(name)s: %(message)s"


def _use_colors(stream) -> bool:
    return stream.isatty() and not os.environ.get("NO_COLOR")


def setup_logger(verbose: bool = False, stream=None) -> logging.Logger:
    stream = stream or sys.stderr
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)

    # Called once per command; a composite command must not stack handlers.
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(stream)
    if _use_colors(stream):
        handler.setFormatter(
            colorlog.ColoredFormatter(
                "%(log_color)s[%(levelname).4s]%(reset)s %(cyan)s%(name)s%(reset)s: %(message)s",
                log_colors={
                    "DEBUG": "cyan",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "red,bg_white",
                },
            )
        )
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger
