"""
builder.py

Responsibility: the pipeline stages.

A `Builder` holds one BuildOptions record. The first stage call resolves it
(defaults, git revision, branch tags); later calls reuse the result. Each stage
performs one side effect and raises on the first failing step:

- build_app:    go build (in a builder container or locally) + copy resources
- build_image:  render <output>/Dockerfile and `docker build` it
- push_image:   `docker login` / `docker push` through a docker:dind helper
- push_trigger: GET the configured HTTP triggers
- clear_app:    remove the build output directory
- clear_image:  `docker rmi` the image tags

Process execution, HTTP and template rendering live in their own modules.
"""

from __future__ import annotations

import logging
import os
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from gotodocker.errors import GoToDockerError
from gotodocker.options import LOCAL_BUILDER, BuildOptions, resolve_options
from gotodocker.renderer import render_dockerfile
from gotodocker.resources import copy_resources
from gotodocker.revision import read_revision
from gotodocker.runner import ProcessRunner
from gotodocker.triggers import TriggerClient

logger = logging.getLogger(__name__)

CONTAINER_SRC_DIR = "/usr/src/myapp"
CONTAINER_GOPATH = "/go"
DOCKERFILE_NAME = "Dockerfile"
AUTH_CACHE_DIR = ".docker"
DIND_IMAGE = "docker:dind"


class BuildError(GoToDockerError, RuntimeError):
    pass


@contextmanager
def working_directory(path: str) -> Iterator[None]:
    """
    chdir into `path` for the duration of the block, restoring the previous directory
    even when the block raises.
    """
    cwd = os.getcwd()
    if cwd == path:
        yield
        return
    os.chdir(path)
    try:
        yield
    finally:
        os.chdir(cwd)


def is_unsafe_output_dir(output_dir: str, work_dir: str) -> bool:
    if not output_dir.strip():
        return True
    resolved = os.path.abspath(os.path.join(work_dir, output_dir))
    return resolved == os.path.abspath(os.sep) or resolved == os.path.abspath(work_dir)


def _masked(cmd: list[str], secret: str) -> str:
    if not secret:
        return " ".join(cmd)
    return " ".join("******" if part == secret else part for part in cmd)


class Builder:
    def __init__(
        self,
        options: BuildOptions,
        *,
        runner: ProcessRunner | None = None,
        triggers: TriggerClient | None = None,
    ) -> None:
        self.options = options
        self.runner = runner or ProcessRunner()
        self.triggers = triggers or TriggerClient()
        self._resolved = False
        self._resolve_error: Exception | None = None

    # ------------------------------------------------------------------
    # resolution
    # ------------------------------------------------------------------

    @property
    def resolved(self) -> bool:
        return self._resolved

    def resolve(self) -> BuildOptions:
        """
        Resolve options on first use; afterwards return them (or re-raise the
        first resolution error) without touching the record again.
        """
        if self._resolve_error is not None:
            raise self._resolve_error
        if self._resolved:
            return self.options
        try:
            resolve_options(self.options, lambda d: read_revision(self.runner, d))
        except Exception as e:
            self._resolve_error = e
            raise
        self._resolved = True
        return self.options

    def _require_organization(self) -> None:
        if not self.options.registry_org:
            raise BuildError("docker registry organization could not be empty")

    def _run(self, cwd: str | None, cmd: list[str], *, secret: str = "") -> None:
        logger.debug(_masked(cmd, secret))
        self.runner.run_streaming(cwd, cmd)

    # ------------------------------------------------------------------
    # build
    # ------------------------------------------------------------------

    def build_app_command(self) -> list[str]:
        o = self.options
        build_path = os.path.join(o.build_output_dir, o.app_name)
        go_build = ["go", "build", "-o", build_path]

        if o.builder_image == LOCAL_BUILDER:
            logger.debug("use local go build")
            cmd = go_build
        else:
            cmd = ["docker", "run", "--rm"]
            if o.builder_image_user:
                cmd += ["-u", o.builder_image_user]
            cmd += ["-v", f"{o.work_dir}:{CONTAINER_SRC_DIR}"]
            if o.go_path:
                cmd += ["-v", f"{o.go_path}:{CONTAINER_GOPATH}"]
            cmd += ["-w", CONTAINER_SRC_DIR, o.builder_image, *go_build]

        if o.verbose:
            cmd.append("-v")
        return cmd

    def build_app(self) -> None:
        o = self.resolve()
        with working_directory(o.work_dir):
            self._run(o.work_dir, self.build_app_command())
            copy_resources(o.resources, o.work_dir, o.build_output_dir)

    def build_image(self) -> None:
        o = self.resolve()
        self._require_organization()

        with working_directory(o.work_dir):
            output_dir = Path(o.build_output_dir)
            if not output_dir.exists():
                raise BuildError("please build app first")
            if not output_dir.is_dir():
                raise BuildError("output path should be a dir, not a file")

            bin_path = output_dir / o.app_name
            if not bin_path.exists():
                raise BuildError("please build app first")
            if bin_path.is_dir():
                raise BuildError(f"{bin_path} should be an executable file")

            logger.debug("using Dockerfile template of %s", o.dockerfile_tmpl)
            content = render_dockerfile(o.dockerfile_tmpl, o)

            (output_dir / DOCKERFILE_NAME).write_text(content, encoding="utf-8")
            shutil.rmtree(output_dir / AUTH_CACHE_DIR, ignore_errors=True)

            cmd = ["docker", "build"]
            for ref in o.image_refs():
                cmd += ["-t", ref]
            cmd.append(".")
            self._run(str(output_dir), cmd)

    # ------------------------------------------------------------------
    # push
    # ------------------------------------------------------------------

    def auth_cache_dir(self) -> str:
        o = self.options
        return os.path.abspath(os.path.join(o.work_dir, o.build_output_dir, AUTH_CACHE_DIR))

    def dind_command(self, *args: str) -> list[str]:
        """
        Wrap a command so it runs in a docker:dind helper that shares the host
        daemon but keeps its credentials in the private auth cache directory.
        """
        return [
            "docker", "run", "--privileged", "--rm",
            "-v", "/var/run/docker.sock:/var/run/docker.sock",
            "-v", f"{self.auth_cache_dir()}:/root/.docker",
            DIND_IMAGE,
            *args,
        ]

    def _remove_auth_cache(self) -> None:
        try:
            shutil.rmtree(self.auth_cache_dir())
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("could not remove docker auth cache %s: %s", self.auth_cache_dir(), e)

    def push_image(self) -> None:
        o = self.resolve()
        self._require_organization()

        try:
            if o.registry_username:
                login = ["docker", "login", "-u", o.registry_username, "-p", o.registry_password]
                if o.registry_host:
                    login.append(o.registry_host)
                self._run(None, self.dind_command(*login), secret=o.registry_password)

                if o.docker_in_docker_user:
                    self._run(None, self.dind_command("chown", "-R", o.docker_in_docker_user, "/root/.docker"))

            for ref in o.image_refs():
                self._run(None, self.dind_command("docker", "push", ref))
        finally:
            if o.registry_username:
                self._remove_auth_cache()

    def push_trigger(self) -> None:
        o = self.resolve()
        if not o.trigger_uris:
            return
        self.triggers.fire_all(o.trigger_uris)

    # ------------------------------------------------------------------
    # clear
    # ------------------------------------------------------------------

    def clear_app(self) -> None:
        o = self.resolve()
        if is_unsafe_output_dir(o.build_output_dir, o.work_dir):
            logger.warning("refusing to remove build output dir %r", o.build_output_dir)
            return

        with working_directory(o.work_dir):
            output_dir = Path(o.build_output_dir)
            if not output_dir.exists():
                return
            logger.debug("removing %s", output_dir)
            if output_dir.is_dir():
                shutil.rmtree(output_dir)
            else:
                output_dir.unlink()

    def clear_image(self) -> None:
        o = self.resolve()
        self._require_organization()

        cmd = ["docker", "rmi", *o.image_refs()]
        logger.debug(" ".join(cmd))
        self.runner.run(None, cmd)
