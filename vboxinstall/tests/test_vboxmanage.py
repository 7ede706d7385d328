"""Unit tests for the VBoxManage command plan and runner."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from vboxinstall._install_config import resolve
from vboxinstall._install_errors import VBoxManageCommandError
from vboxinstall._vboxmanage import (
    DEBIAN_KERNEL_PARAMETERS,
    CommandContext,
    VBoxManageCommand,
    build_command_plan,
    password_file,
    run_plan,
    vboxmanage_executable,
)


PASSWORD_PATH = Path("/run/vbox-install/password")


def _plan(*options: str, medium: str = "/iso/debian-12.iso") -> list[VBoxManageCommand]:
    config = resolve([*options, "/vm/debian-12", medium], env={})
    return build_command_plan(config, password_path=PASSWORD_PATH)


def _subcommands(plan: list[VBoxManageCommand]) -> list[str]:
    return [step.args[0] for step in plan]


def test_default_plan_order() -> None:
    plan = _plan()
    assert _subcommands(plan) == [
        "createvm",
        "modifyvm",
        "createmedium",
        "storagectl",
        "storageattach",
        "storagectl",
        "storageattach",
        "unattended",
        "startvm",
    ]


def test_createvm_uses_target_name_folder_and_ostype() -> None:
    createvm = _plan()[0]
    assert createvm.args == (
        "createvm",
        "--name",
        "debian-12",
        "--basefolder",
        str(Path("/vm")),
        "--ostype",
        "Debian_64",
        "--register",
    )


def test_createvm_omits_ostype_when_unknown() -> None:
    createvm = _plan(medium="/iso/unknownos.iso")[0]
    assert "--ostype" not in createvm.args


def test_modifyvm_carries_resources() -> None:
    modifyvm = _plan("--cpus=2", "--memory=2048", "--vram=32")[1]
    args = list(modifyvm.args)
    assert args[args.index("--cpus") + 1] == "2"
    assert args[args.index("--memory") + 1] == "2048"
    assert args[args.index("--vram") + 1] == "32"
    assert args[args.index("--boot1") + 1] == "dvd"


def test_disk_and_medium_are_attached() -> None:
    plan = _plan("--storage=4096")
    createmedium = plan[2]
    disk = str(Path("/vm/debian-12") / "debian-12.vdi")
    assert createmedium.args[createmedium.args.index("--size") + 1] == "4096"
    assert createmedium.args[createmedium.args.index("--filename") + 1] == disk
    assert plan[4].args[-1] == disk
    assert plan[6].args[-1] == str(Path("/iso/debian-12.iso"))


def test_unattended_install_includes_credentials_and_post_install() -> None:
    unattended = _plan("--username=alice", "--hostname=deb.example.com")[-2]
    args = list(unattended.args)
    assert args[:3] == ["unattended", "install", "debian-12"]
    assert args[args.index("--user") + 1] == "alice"
    assert args[args.index("--hostname") + 1] == "deb.example.com"
    assert args[args.index("--post-install-command") + 1] == "apt-get update && apt-get -y upgrade"
    assert "--auxiliary-base-path" not in args
    assert "--extra-install-kernel-parameters" not in args
    assert args[args.index("--password-file") + 1] == str(PASSWORD_PATH)
    assert "--password" not in args
    assert "secret" not in args


def test_empty_post_install_command_is_omitted() -> None:
    unattended = _plan(medium="/iso/FreeDOS-1.3.iso")[-2]
    assert "--post-install-command" not in unattended.args


def test_auxiliary_and_debian_fix_options() -> None:
    unattended = _plan("--use-auxiliary", "--fix-debian")[-2]
    args = list(unattended.args)
    aux = args[args.index("--auxiliary-base-path") + 1]
    assert aux.startswith(str(Path("/vm/debian-12") / "unattended"))
    assert args[args.index("--extra-install-kernel-parameters") + 1] == DEBIAN_KERNEL_PARAMETERS
    assert "grub-installer/bootdev=default" in DEBIAN_KERNEL_PARAMETERS


def test_encryption_feeds_password_on_stdin() -> None:
    plan = _plan("--use-encryption", "--password=hunter2")
    encrypt = next(step for step in plan if step.args[0] == "encryptmedium")
    assert encrypt.stdin == "hunter2\n"
    assert "hunter2" not in encrypt.args
    assert _subcommands(plan).index("encryptmedium") < _subcommands(plan).index("unattended")


def test_vrde_enables_remote_display_and_headless_start() -> None:
    plan = _plan("--use-vrde")
    assert any("--vrde" in step.args for step in plan)
    assert plan[-1].args == ("startvm", "debian-12", "--type", "headless")


def test_start_defaults_to_gui() -> None:
    assert _plan()[-1].args == ("startvm", "debian-12", "--type", "gui")


def test_redacted_masks_secrets() -> None:
    command = VBoxManageCommand(
        "set password",
        ("encryptmedium", "disk.vdi", "--newpassword", "hunter2"),
        secrets=("hunter2",),
    )
    assert command.redacted() == "encryptmedium disk.vdi --newpassword '********'"


def test_no_step_carries_password_in_args() -> None:
    plan = _plan("--use-encryption", "--password=hunter2")
    assert all("hunter2" not in step.args for step in plan)
    assert all("hunter2" not in step.redacted() for step in plan)


def test_password_file_is_private_and_removed(tmp_path: Path) -> None:
    with password_file("hunter2", base_dir=tmp_path) as path:
        assert path.parent == tmp_path
        assert path.read_text(encoding="utf-8") == "hunter2"
        assert path.stat().st_mode & 0o777 == 0o600
    assert not path.exists()


def test_vboxmanage_executable_honours_environment() -> None:
    assert vboxmanage_executable({}) == "VBoxManage"
    assert vboxmanage_executable({"VBOX_INSTALL_VBOXMANAGE": "/opt/vbox/VBoxManage"}) == "/opt/vbox/VBoxManage"


def test_run_plan_executes_each_step(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[str, tuple[str, ...], str | None]] = []

    def fake_run_command(command: str, *args: str, context: CommandContext | None = None) -> str:
        calls.append((command, args, context.stdin if context else None))
        return "ok\n"

    monkeypatch.setattr("vboxinstall._vboxmanage.run_command", fake_run_command)

    plan = _plan("--use-encryption")
    outputs = run_plan(plan, executable="VBoxManage")

    assert len(outputs) == len(plan)
    assert [args for _cmd, args, _stdin in calls] == [step.args for step in plan]
    assert {cmd for cmd, _args, _stdin in calls} == {"VBoxManage"}
    assert [stdin for *_rest, stdin in calls if stdin] == ["secret\n"]


def test_run_plan_dry_run_runs_nothing(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    def fail_run_command(*_args: object, **_kwargs: object) -> str:
        raise AssertionError("dry run must not execute commands")

    monkeypatch.setattr("vboxinstall._vboxmanage.run_command", fail_run_command)

    plan = _plan("--password=hunter2")
    with caplog.at_level(logging.INFO, logger="vboxinstall._vboxmanage"):
        outputs = run_plan(plan, dry_run=True, executable="VBoxManage")

    assert outputs == []
    assert "createvm" in caplog.text
    assert "hunter2" not in caplog.text, "Password must not be logged"


def test_run_plan_stops_at_first_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[str] = []

    def fake_run_command(command: str, *args: str, context: CommandContext | None = None) -> str:
        seen.append(args[0])
        if args[0] == "createmedium":
            raise VBoxManageCommandError(f"Command {command!r} failed: disk exists")
        return ""

    monkeypatch.setattr("vboxinstall._vboxmanage.run_command", fake_run_command)

    with pytest.raises(VBoxManageCommandError, match=r"step 3/9 \(create virtual disk\)"):
        run_plan(_plan(), executable="VBoxManage")
    assert seen == ["createvm", "modifyvm", "createmedium"]
