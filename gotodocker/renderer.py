"""
renderer.py

Responsibility: turn a Dockerfile template into Dockerfile content.

Rules:
- The template is rendered once with Jinja2 (StrictUndefined, so a misspelled
  variable fails the build instead of producing an empty line).
- The context is the whole options record: every BuildOptions field is a
  template variable (`{{ app_name }}`, `{{ app_image }}`, `{% for p in exposes %}` ...).
- `app_args` entries are also exposed at the top level for convenience.
- A template written for the Go tool (`{{.AppImage}}`, `{{range .Exposes}}`) is
  translated to Jinja2 first, so the GOPATH checkout of the default template works.

This module does not know about docker, git or the CLI.
"""

from __future__ import annotations

import dataclasses
import os
import re
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError

from gotodocker.errors import GoToDockerError

PACKAGED_TEMPLATE = Path(__file__).resolve().parent / "dockerfiles_tmpl" / "default"
GOPATH_TEMPLATE = Path("src", "github.com", "gogap", "go-to-docker", "builder", "dockerfiles_tmpl", "default")


class RenderError(GoToDockerError, RuntimeError):
    pass


# Field references of a template written for the Go tool, e.g. `{{.AppImage}}`.
_GO_FIELD = re.compile(r"\{\{-?\s*\.")
_GO_ACTION = re.compile(r"\{\{(-?)\s*(.*?)\s*(-?)\}\}", re.S)
_GO_NAMES = {"TriggerURIs": "trigger_uris", "BranchTagsConfig": "branch_tags"}


def default_template_path(go_path: str = "") -> Path:
    """
    The template checked out under GOPATH when there is one, else the packaged default.
    """
    for root in filter(None, go_path.split(os.pathsep)):
        candidate = Path(root) / GOPATH_TEMPLATE
        if candidate.is_file():
            return candidate
    return PACKAGED_TEMPLATE


def _snake(name: str) -> str:
    if name in _GO_NAMES:
        return _GO_NAMES[name]
    return re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name).lower()


def translate_go_template(text: str) -> str:
    """
    Rewrite the Go text/template actions a Dockerfile template uses into Jinja2.

    Handles `{{.Field}}`, `{{index .Field "key"}}`, `{{range .Field}}` with `{{.}}`,
    `{{if .Field}}`, `{{else}}` and `{{end}}`. Anything else is left as written
    and fails at render time.
    """
    blocks: list[str] = []

    def action(m: re.Match) -> str:
        left, body, right = m.group(1), m.group(2), m.group(3)

        def var(expr: str) -> str:
            return "{{" + left + " " + expr + " " + right + "}}"

        def tag(expr: str) -> str:
            return "{%" + left + " " + expr + " " + right + "%}"

        if body == ".":
            if blocks and blocks[-1] != "if":
                return var(blocks[-1])
            return m.group(0)
        field = re.fullmatch(r"\.(\w+)", body)
        if field:
            return var(_snake(field.group(1)))
        index = re.fullmatch(r'index \.(\w+) "([^"]*)"', body)
        if index:
            return var(f"{_snake(index.group(1))}[{index.group(2)!r}]")
        loop = re.fullmatch(r"range \.(\w+)", body)
        if loop:
            item = f"item{len(blocks)}"
            blocks.append(item)
            return tag(f"for {item} in {_snake(loop.group(1))}")
        cond = re.fullmatch(r"if \.(\w+)", body)
        if cond:
            blocks.append("if")
            return tag(f"if {_snake(cond.group(1))}")
        if body == "else" and blocks:
            return tag("else")
        if body == "end" and blocks:
            return tag("endif" if blocks.pop() == "if" else "endfor")
        return m.group(0)

    return _GO_ACTION.sub(action, text)


def build_context(options: Any) -> dict[str, Any]:
    context = dict(options.app_args)
    # Record fields win over free-form args with the same name.
    context.update({f.name: getattr(options, f.name) for f in dataclasses.fields(options)})
    return context


def render_string(text: str, context: dict[str, Any], *, name: str = "<template>") -> str:
    env = Environment(
        autoescape=False,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )
    try:
        return env.from_string(text).render(**context)
    except TemplateError as e:
        raise RenderError(f"Failed rendering Dockerfile template {name}: {e}") from e


def render_dockerfile(template_path: str | Path, options: Any) -> str:
    path = Path(template_path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise RenderError(f"Dockerfile template not found: {path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise RenderError(f"Could not read Dockerfile template {path}: {e}") from e
    if _GO_FIELD.search(text):
        text = translate_go_template(text)
    return render_string(text, build_context(options), name=str(path))
