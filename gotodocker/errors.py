"""
errors.py

Responsibility: the common base for every error the pipeline raises on purpose.

Each module defines its own exception next to the code that raises it; the CLI
only needs this base (plus OSError) to turn a failure into a non-zero exit.
"""

from __future__ import annotations


class GoToDockerError(Exception):
    pass
