"""
cli.py

Responsibility: CLI entrypoint for go-to-docker.

Commands map to Builder stages:
- build app | image | all
- push image | trigger | all
- all                      (build app, build image, push image, push trigger)
- clear app | image | all

Each invocation assembles one BuildOptions from flags (with GTD_* environment
defaults), hands it to one Builder and runs the stages in order, stopping at
the first failure. This module should orchestrate only:
- Option resolution / pipeline: `builder.py`, `options.py`
- Logging setup: `log.py`
"""

from __future__ import annotations

import argparse
import json
import logging
import os
from typing import Any

from gotodocker import __version__
from gotodocker.builder import Builder
from gotodocker.errors import GoToDockerError
from gotodocker.log import setup_logger
from gotodocker.options import (
    DEFAULT_APP_IMAGE,
    DEFAULT_APP_NAME,
    DEFAULT_BUILDER_IMAGE,
    BuildOptions,
    ConfigError,
    load_branch_tags,
)

logger = logging.getLogger("gotodocker")


def _flag_specs() -> dict[str, tuple[tuple[str, ...], dict[str, Any]]]:
    # Built per parser so environment defaults are read at call time.
    env = os.environ.get
    return {
        "name": (("--name",), dict(default="", help="Build output app name (default: workdir basename)")),
        "workdir": (("--workdir", "-d"), dict(default="", help="Change workdir to this path")),
        "builder-image": (
            ("--builder-image", "--bi"),
            dict(default=env("GTD_BUILDER_IMAGE", DEFAULT_BUILDER_IMAGE), help="Builder image, or `local` to build on the host"),
        ),
        "builder-image-user": (
            ("--builder-image-user", "--biu"),
            dict(default=env("GTD_BUILDER_IMAGE_USER", ""), help="Builder image user (format: <name|uid>[:<group|gid>])"),
        ),
        "res": (
            ("--res",),
            dict(action="append", default=[], help="App related resources the app depends on, e.g. *.conf (repeatable)"),
        ),
        "registry": (("--registry", "-r"), dict(default=env("GTD_REGISTRY", ""), help="The registry host to build and push")),
        "organization": (
            ("--organization", "-o"),
            dict(default=env("GTD_ORG", ""), help="Which registry organization you will push"),
        ),
        "tag": (("--tag", "-t"), dict(action="append", default=[], help="Build image with this tag (repeatable)")),
        "expose": (("--expose",), dict(action="append", default=[], help="Port exposed by the app image (repeatable)")),
        "args": (
            ("--args", "-a"),
            dict(dest="app_args", default="", help="Args for rendering the Dockerfile template, as a JSON object"),
        ),
        "app-image": (
            ("--app-image", "--ai"),
            dict(default=env("GTD_APP_IMAGE", DEFAULT_APP_IMAGE), help="App runs with this image"),
        ),
        "app-image-user": (
            ("--app-image-user", "--aiu"),
            dict(default=env("GTD_APP_IMAGE_USER", ""), help="App image user (format: <name|uid>[:<group|gid>])"),
        ),
        "template": (("--template",), dict(default="", help="Build the app image from this Dockerfile template")),
        "uri": (("--uri", "-u"), dict(action="append", default=[], help="Trigger URI, supported: [HTTP-GET] (repeatable)")),
        "branch-tags-config": (
            ("--branch-tags-config",),
            dict(default="", help="Branch name -> registry/tags config file (JSON)"),
        ),
        "dind-user": (
            ("--dind-user", "--du"),
            dict(default=env("GTD_DIND_USER", ""), help="Docker in docker user (format: <name|uid>[:<group|gid>])"),
        ),
        "fake-branch": (
            ("--fake-branch", "--fb"),
            dict(default="", help="Tag and push as if building this branch"),
        ),
        "gopath": (("--gopath",), dict(default=env("GOPATH", ""), help="GOPATH mounted into the builder image")),
        "verbose": (("--verbose",), dict(action="store_true", help="Print debug info")),
    }


BUILD_APP_FLAGS = ["name", "workdir", "builder-image", "builder-image-user", "res", "verbose", "gopath"]
BUILD_IMAGE_FLAGS = [
    "name", "workdir", "registry", "organization", "tag", "expose", "args", "app-image", "app-image-user",
    "template", "branch-tags-config", "dind-user", "fake-branch", "verbose", "gopath",
]
PUSH_IMAGE_FLAGS = [
    "name", "workdir", "registry", "organization", "tag", "branch-tags-config", "dind-user", "fake-branch", "verbose",
]
PUSH_TRIGGER_FLAGS = ["uri", "verbose"]
CLEAR_APP_FLAGS = ["workdir", "verbose"]
CLEAR_IMAGE_FLAGS = ["name", "workdir", "registry", "organization", "tag", "fake-branch", "verbose"]


def join_flags(*groups: list[str]) -> list[str]:
    out: list[str] = []
    for group in groups:
        for name in group:
            if name not in out:
                out.append(name)
    return out


COMMANDS: dict[str, dict[str, tuple[str, list[str], list[str]]]] = {
    "build": {
        "app": ("Build golang application by docker image", BUILD_APP_FLAGS, ["build_app"]),
        "image": ("Build app image with dockerfile template", BUILD_IMAGE_FLAGS, ["build_image"]),
        "all": ("Build app and image", join_flags(BUILD_APP_FLAGS, BUILD_IMAGE_FLAGS), ["build_app", "build_image"]),
    },
    "push": {
        "image": ("Push image to docker registry", PUSH_IMAGE_FLAGS, ["push_image"]),
        "trigger": ("Push the triggers after the image was pushed", PUSH_TRIGGER_FLAGS, ["push_trigger"]),
        "all": ("Push image and trigger", join_flags(PUSH_IMAGE_FLAGS, PUSH_TRIGGER_FLAGS), ["push_image", "push_trigger"]),
    },
    "clear": {
        "app": ("Clear app's build output", CLEAR_APP_FLAGS, ["clear_app"]),
        "image": ("Clear app's images", CLEAR_IMAGE_FLAGS, ["clear_image"]),
        "all": ("Clear build output and images", join_flags(CLEAR_APP_FLAGS, CLEAR_IMAGE_FLAGS), ["clear_app", "clear_image"]),
    },
}

GROUP_HELP = {
    "build": "Build app and image",
    "push": "Push image and trigger",
    "clear": "Clear app's build output and image",
}

ALL_FLAGS = join_flags(BUILD_APP_FLAGS, BUILD_IMAGE_FLAGS, PUSH_IMAGE_FLAGS, PUSH_TRIGGER_FLAGS)
ALL_STAGES = ["build_app", "build_image", "push_image", "push_trigger"]


def _add_flags(parser: argparse.ArgumentParser, names: list[str]) -> None:
    specs = _flag_specs()
    for name in names:
        flags, kwargs = specs[name]
        parser.add_argument(*flags, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="go-to-docker",
        description="A tool for building your app and pushing its images to a docker registry",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="command", required=True)

    for group, commands in COMMANDS.items():
        gp = sub.add_parser(group, help=GROUP_HELP[group])
        gsub = gp.add_subparsers(dest="target", required=True)
        for target, (help_text, flags, stages) in commands.items():
            tp = gsub.add_parser(target, help=help_text)
            _add_flags(tp, flags)
            tp.set_defaults(stages=stages)

    a = sub.add_parser("all", help="Build app and image, then push image and trigger")
    _add_flags(a, ALL_FLAGS)
    a.set_defaults(stages=ALL_STAGES)
    return p


def default_app_name(work_dir: str) -> str:
    name = os.path.basename(os.path.abspath(work_dir or os.getcwd()))
    return name or DEFAULT_APP_NAME


def _parse_app_args(raw: str) -> dict[str, str]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"--args must be a JSON object: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("--args must be a JSON object")
    return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}


def options_from_args(args: argparse.Namespace) -> BuildOptions:
    """
    Build the options record for one invocation. Flags a command does not take
    keep their empty defaults.
    """

    def arg(name: str, default: Any = "") -> Any:
        value = getattr(args, name, None)
        return default if value is None else value

    go_path = arg("gopath") or os.environ.get("GOPATH", "")
    if go_path:
        os.environ["GOPATH"] = go_path

    work_dir = arg("workdir")
    branch_tags_config = arg("branch_tags_config")

    return BuildOptions(
        verbose=bool(arg("verbose", False)),
        app_name=arg("name") or default_app_name(work_dir),
        work_dir=work_dir,
        builder_image=arg("builder_image"),
        builder_image_user=arg("builder_image_user"),
        go_path=go_path,
        app_image=arg("app_image"),
        app_image_user=arg("app_image_user"),
        dockerfile_tmpl=arg("template"),
        resources=list(arg("res", [])),
        exposes=list(arg("expose", [])),
        app_args=_parse_app_args(arg("app_args")),
        registry_host=arg("registry"),
        registry_org=arg("organization"),
        app_image_tags=list(arg("tag", [])),
        revision_branch=arg("fake_branch"),
        branch_tags=load_branch_tags(branch_tags_config) if branch_tags_config else {},
        trigger_uris=list(arg("uri", [])),
        docker_in_docker_user=arg("dind_user"),
    )


def run_stages(builder: Builder, stages: list[str]) -> None:
    for stage in stages:
        logger.debug("stage: %s", stage)
        getattr(builder, stage)()


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_logger(verbose=bool(getattr(args, "verbose", False)))

    try:
        builder = Builder(options_from_args(args))
        run_stages(builder, args.stages)
    except (GoToDockerError, OSError) as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
