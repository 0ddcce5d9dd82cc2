import json
import os
from pathlib import Path

import pytest

from gotodocker import cli
from gotodocker.builder import BuildError
from gotodocker.cli import _build_parser, default_app_name, main, options_from_args


@pytest.fixture
def recorded(monkeypatch: pytest.MonkeyPatch) -> list:
    """Replace every stage with a recorder; returns [(stage, options), ...]."""
    calls: list = []
    for stage in cli.ALL_STAGES + ["clear_app", "clear_image"]:
        monkeypatch.setattr(
            cli.Builder,
            stage,
            lambda self, _stage=stage: calls.append((_stage, self.options)),
        )
    return calls


@pytest.mark.parametrize(
    "argv, stages",
    [
        (["build", "app"], ["build_app"]),
        (["build", "image"], ["build_image"]),
        (["build", "all"], ["build_app", "build_image"]),
        (["push", "image"], ["push_image"]),
        (["push", "trigger"], ["push_trigger"]),
        (["push", "all"], ["push_image", "push_trigger"]),
        (["all"], ["build_app", "build_image", "push_image", "push_trigger"]),
        (["clear", "app"], ["clear_app"]),
        (["clear", "image"], ["clear_image"]),
        (["clear", "all"], ["clear_app", "clear_image"]),
    ],
)
def test_commands_map_to_stages(recorded: list, argv: list, stages: list) -> None:
    assert main(argv) == 0
    assert [s for s, _ in recorded] == stages


def test_composite_command_uses_one_builder(recorded: list) -> None:
    assert main(["all", "-o", "team"]) == 0
    assert len({id(o) for _s, o in recorded}) == 1


def test_first_failure_stops_the_chain(monkeypatch: pytest.MonkeyPatch, recorded: list) -> None:
    def fail(self):
        raise BuildError("please build app first")

    monkeypatch.setattr(cli.Builder, "build_image", fail)
    assert main(["all", "-o", "team"]) == 1
    assert [s for s, _ in recorded] == ["build_app"]


def test_failure_is_logged(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    def fail(self):
        raise BuildError("docker registry organization could not be empty")

    monkeypatch.setattr(cli.Builder, "clear_image", fail)
    assert main(["clear", "image"]) == 1
    assert "organization could not be empty" in caplog.text


def test_flags_fill_options(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GOPATH", raising=False)
    config = tmp_path / "branches.json"
    config.write_text(json.dumps({"master": {"organization": "team", "tags": ["stable"]}}))
    args = _build_parser().parse_args(
        [
            "all",
            "--name", "svc",
            "-d", str(tmp_path),
            "--bi", "local",
            "--res", "conf/*.toml",
            "--res", "*.pem",
            "-r", "registry.example.com",
            "-o", "team",
            "-t", "v1",
            "--expose", "8080",
            "-a", '{"env": "prod", "replicas": 3}',
            "--template", "Dockerfile.tmpl",
            "--branch-tags-config", str(config),
            "--fb", "release",
            "--du", "1000",
            "-u", "https://ci.example.com/hook",
            "--gopath", "/home/me/go",
            "--verbose",
        ]
    )
    o = options_from_args(args)

    assert o.app_name == "svc"
    assert o.work_dir == str(tmp_path)
    assert o.builder_image == "local"
    assert o.resources == ["conf/*.toml", "*.pem"]
    assert (o.registry_host, o.registry_org, o.app_image_tags) == ("registry.example.com", "team", ["v1"])
    assert o.exposes == ["8080"]
    assert o.app_args == {"env": "prod", "replicas": "3"}
    assert o.dockerfile_tmpl == "Dockerfile.tmpl"
    assert o.branch_tags["master"].tags == ("stable",)
    assert o.revision_branch == "release"
    assert o.docker_in_docker_user == "1000"
    assert o.trigger_uris == ["https://ci.example.com/hook"]
    assert o.go_path == "/home/me/go"
    assert os.environ["GOPATH"] == "/home/me/go"
    assert o.verbose


def test_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GTD_REGISTRY", "env.example.com")
    monkeypatch.setenv("GTD_ORG", "env-org")
    monkeypatch.setenv("GTD_BUILDER_IMAGE", "golang:1.22")
    o = options_from_args(_build_parser().parse_args(["build", "all"]))
    assert (o.registry_host, o.registry_org, o.builder_image) == ("env.example.com", "env-org", "golang:1.22")


def test_flags_a_command_does_not_take_stay_empty() -> None:
    o = options_from_args(_build_parser().parse_args(["push", "trigger", "-u", "http://a.example.com"]))
    assert o.trigger_uris == ["http://a.example.com"]
    assert o.registry_org == ""
    assert o.resources == []


def test_unknown_flag_for_command_is_rejected() -> None:
    with pytest.raises(SystemExit):
        _build_parser().parse_args(["clear", "app", "--res", "*.conf"])


def test_bad_app_args(recorded: list) -> None:
    assert main(["build", "image", "-a", "[1, 2]"]) == 1
    assert main(["build", "image", "-a", "{broken"]) == 1
    assert recorded == []


def test_missing_branch_tags_config(recorded: list, tmp_path: Path) -> None:
    assert main(["push", "image", "--branch-tags-config", str(tmp_path / "nope.json")]) == 1
    assert recorded == []


def test_branch_tags_config_not_utf8(recorded: list, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    config = tmp_path / "branches.json"
    config.write_bytes(b"master:\n  organization: \xe9quipe\n")
    assert main(["push", "image", "--branch-tags-config", str(config)]) == 1
    assert recorded == []
    assert "not valid UTF-8" in caplog.text


def test_default_app_name(tmp_path: Path) -> None:
    assert default_app_name(str(tmp_path / "my-service")) == "my-service"
    assert default_app_name("/") == "app"


def test_version(capsys: pytest.CaptureFixture) -> None:
    with pytest.raises(SystemExit) as exc:
        main(["--version"])
    assert exc.value.code == 0
    assert "go-to-docker" in capsys.readouterr().out
