"""
gotodocker package

go-to-docker builds a Go application in a builder container, packages it into
an image rendered from a Dockerfile template, pushes the image and fires
HTTP triggers.

Key responsibilities are split across modules:
- `options.py`: the BuildOptions record, branch tags config, option resolution
- `revision.py`: git branch / commit lookup
- `runner.py`: external command execution (captured or streamed)
- `resources.py`: copying resource files next to the binary
- `renderer.py`: Dockerfile template rendering
- `triggers.py`: HTTP triggers
- `builder.py`: the pipeline stages
- `cli.py`: CLI entrypoint and command -> stage mapping
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "1.0.0"
