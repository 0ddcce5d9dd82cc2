"""
options.py

Responsibility: the build configuration record and its one-time resolution.

- `BuildOptions`: every setting a stage reads; its field names are also the
  variables available to the Dockerfile template
- `load_branch_tags`: parse the branch -> registry/tags config file
- `derive_tags`: pure tag selection from explicit tags, revision and branch entry
- `resolve_options`: fill defaults, read the git revision, apply the branch entry

`resolve_options` mutates the record in place and is not idempotent on its own
(tags are appended); `Builder` guarantees it runs once.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml

from gotodocker.errors import GoToDockerError
from gotodocker.renderer import default_template_path
from gotodocker.revision import Revision

logger = logging.getLogger(__name__)

DEFAULT_APP_NAME = "app"
DEFAULT_BUILDER_IMAGE = "golang:1.8-alpine"
DEFAULT_APP_IMAGE = "alpine:latest"
DEFAULT_OUTPUT_DIR = "_output_"
DEFAULT_TAG = "latest"
LOCAL_BUILDER = "local"


class ConfigError(GoToDockerError, ValueError):
    pass


@dataclass(frozen=True)
class BranchTag:
    """Registry target and optional tag override for one branch."""

    server: str = ""
    username: str = ""
    password: str = ""
    organization: str = ""
    tags: tuple[str, ...] = ()


@dataclass
class BuildOptions:
    verbose: bool = False

    app_name: str = ""
    work_dir: str = ""
    build_output_dir: str = ""

    builder_image: str = ""
    builder_image_user: str = ""
    go_path: str = ""

    app_image: str = ""
    app_image_user: str = ""
    dockerfile_tmpl: str = ""
    resources: list[str] = field(default_factory=list)
    exposes: list[str] = field(default_factory=list)
    app_args: dict[str, str] = field(default_factory=dict)

    registry_host: str = ""
    registry_org: str = ""
    registry_username: str = ""
    registry_password: str = ""
    app_image_tags: list[str] = field(default_factory=list)

    revision_branch: str = ""
    revision_id: str = ""
    branch_tags: dict[str, BranchTag] = field(default_factory=dict)

    trigger_uris: list[str] = field(default_factory=list)
    docker_in_docker_user: str = ""

    @property
    def image_name(self) -> str:
        """`<registry>/<organization>/<app>`, skipping empty parts."""
        return "/".join(p.strip("/") for p in (self.registry_host, self.registry_org, self.app_name) if p)

    def image_refs(self) -> list[str]:
        return [f"{self.image_name}:{tag}" for tag in self.app_image_tags]


def _str_field(entry: dict[str, Any], key: str, branch: str) -> str:
    value = entry.get(key)
    if value is None:
        return ""
    # bool is an int subclass; `password: yes` must not become "True".
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ConfigError(f"Branch `{branch}`: `{key}` must be a string.")
    return str(value)


def parse_branch_tags(data: Any) -> dict[str, BranchTag]:
    """
    Convert a decoded config document into BranchTag entries.

    Accepted shapes:
    - {"<branch>": {"server": ..., "username": ..., "password": ..., "organization": ..., "tags": [...]}}
    - the same mapping wrapped as {"branchs": {...}}
    """
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Branch tags config must be an object/mapping at the top level.")

    for wrapper in ("branchs", "Branchs", "branches"):
        if set(data) == {wrapper} and isinstance(data[wrapper], dict):
            data = data[wrapper]
            break

    out: dict[str, BranchTag] = {}
    for branch, entry in data.items():
        branch = str(branch)
        if entry is None:
            entry = {}
        if not isinstance(entry, dict):
            raise ConfigError(f"Branch `{branch}` must map to an object/mapping.")

        tags_raw = entry.get("tags") or []
        if not isinstance(tags_raw, list):
            raise ConfigError(f"Branch `{branch}`: `tags` must be a list.")

        out[branch] = BranchTag(
            server=_str_field(entry, "server", branch),
            username=_str_field(entry, "username", branch),
            password=_str_field(entry, "password", branch),
            organization=_str_field(entry, "organization", branch),
            tags=tuple(str(t) for t in tags_raw if str(t).strip()),
        )
    return out


def load_branch_tags(path: str | Path) -> dict[str, BranchTag]:
    """
    Load a branch tags config file (JSON; YAML is accepted as well).
    """
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Branch tags config does not exist: {p}")
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Branch tags config is not valid JSON/YAML: {p}") from e
    except UnicodeDecodeError as e:
        raise ConfigError(f"Branch tags config is not valid UTF-8: {p}") from e
    return parse_branch_tags(data)


def derive_tags(
    explicit: list[str],
    revision: Revision | None,
    branch_tag: BranchTag | None = None,
) -> list[str]:
    """
    Pick the image tags.

    Outside git: the explicit tags, or ["latest"] when there are none.
    Inside git: the explicit tags followed by the branch entry's tags when it has
    any, otherwise by `<branch>` and `<branch>-<revision>`.
    """
    tags = list(explicit)
    if revision is None:
        return tags or [DEFAULT_TAG]

    if branch_tag is not None and branch_tag.tags:
        derived = list(branch_tag.tags)
    else:
        derived = [revision.branch, f"{revision.branch}-{revision.revision_id}"]

    for tag in derived:
        if tag not in tags:
            tags.append(tag)
    return tags


def apply_defaults(options: BuildOptions) -> None:
    if not options.app_name:
        options.app_name = DEFAULT_APP_NAME
    if not options.work_dir:
        options.work_dir = os.getcwd()
    options.work_dir = os.path.abspath(options.work_dir)
    if not os.path.isdir(options.work_dir):
        raise NotADirectoryError(f"Working directory is not a directory: {options.work_dir}")
    if not options.builder_image:
        options.builder_image = DEFAULT_BUILDER_IMAGE
    if not options.app_image:
        options.app_image = DEFAULT_APP_IMAGE
    if not options.build_output_dir:
        options.build_output_dir = DEFAULT_OUTPUT_DIR
    if not options.dockerfile_tmpl:
        options.dockerfile_tmpl = str(default_template_path(options.go_path or os.environ.get("GOPATH", "")))


def resolve_options(
    options: BuildOptions,
    read_revision: Callable[[str], Revision | None],
) -> None:
    """
    Fill unset fields and derive revision-based settings, in place.

    `read_revision` receives the (absolute) working directory.
    """
    apply_defaults(options)

    revision = read_revision(options.work_dir)
    branch_tag: BranchTag | None = None

    if revision is not None:
        if options.revision_branch:
            # Building one branch's code for another branch's images.
            revision = Revision(branch=options.revision_branch, revision_id=revision.revision_id)
        options.revision_branch = revision.branch
        options.revision_id = revision.revision_id

        branch_tag = options.branch_tags.get(revision.branch)
        if branch_tag is not None:
            logger.debug("using registry settings of branch %s", revision.branch)
            options.registry_host = branch_tag.server
            options.registry_org = branch_tag.organization
            options.registry_username = branch_tag.username
            options.registry_password = branch_tag.password

    options.app_image_tags = derive_tags(options.app_image_tags, revision, branch_tag)
    logger.debug("image tags: %s", ", ".join(options.app_image_tags))
