"""Command helpers for driving ``VBoxManage``.

:func:`build_command_plan` turns a resolved configuration into the ordered
``VBoxManage`` invocations that create, configure and boot the machine;
:func:`run_plan` executes them. :func:`password_file` holds the guest password
for ``unattended install`` while the plan runs.
"""

from __future__ import annotations

import logging
import os
import shlex
import tempfile
from collections import abc as cabc
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from plumbum import local
from plumbum.commands.processes import CommandNotFound, ProcessExecutionError

from vboxinstall._install_config import ResolvedConfiguration
from vboxinstall._install_errors import VBoxManageCommandError

logger = logging.getLogger(__name__)

VBOXMANAGE_ENV_KEY = "VBOX_INSTALL_VBOXMANAGE"
DEFAULT_VBOXMANAGE = "VBoxManage"
REDACTED = "********"

DISK_CONTROLLER = "SATA"
DVD_CONTROLLER = "IDE"
DISK_CIPHER = "AES-XTS256-PLAIN64"
VRDE_PORT = "3389"

# Boot parameters of the stock Debian unattended template, plus the preseed
# answer for the GRUB target device that the template leaves unanswered.
DEBIAN_KERNEL_PARAMETERS = (
    "auto=true preseed/file=/cdrom/preseed.cfg priority=critical quiet splash "
    "noprompt noshell automatic-ubiquity debian-installer/locale=en_US "
    "keyboard-configuration/layoutcode=us languagechooser/language-name=English "
    "localechooser/supported-locales=en_US.UTF-8 countrychooser/shortlist=US "
    "grub-installer/bootdev=default --"
)


@dataclass(frozen=True, slots=True)
class VBoxManageCommand:
    """One ``VBoxManage`` invocation."""

    description: str
    args: tuple[str, ...]
    stdin: str | None = None
    secrets: tuple[str, ...] = ()

    def redacted(self) -> str:
        """Return the shell-quoted argument list with secrets masked.

        Examples
        --------
        >>> VBoxManageCommand("x", ("encryptmedium", "--newpassword", "pw"), secrets=("pw",)).redacted()
        "encryptmedium --newpassword '********'"
        """

        shown = [REDACTED if arg and arg in self.secrets else arg for arg in self.args]
        return " ".join(shlex.quote(arg) for arg in shown)


@dataclass(slots=True)
class CommandContext:
    """Execution options for :func:`run_command`."""

    env: dict[str, str] | None = None
    stdin: str | None = None
    timeout: int | None = None


def vboxmanage_executable(env: cabc.Mapping[str, str] | None = None) -> str:
    """Return the ``VBoxManage`` executable, honouring ``VBOX_INSTALL_VBOXMANAGE``."""

    return (os.environ if env is None else env).get(VBOXMANAGE_ENV_KEY) or DEFAULT_VBOXMANAGE


def run_command(
    command: str,
    *args: str,
    context: CommandContext | None = None,
) -> str:
    """Execute an external command and return its standard output.

    Raises
    ------
    VBoxManageCommandError
        When the executable is missing or exits non-zero.
    """

    ctx = context or CommandContext()
    try:
        bound = local[command][list(args)]
        if ctx.stdin is None:
            _, stdout, stderr = bound.run(env=ctx.env, timeout=ctx.timeout)
        else:
            _, stdout, stderr = (bound << ctx.stdin).run(env=ctx.env, timeout=ctx.timeout)
    except CommandNotFound as exc:
        msg = f"Command {command!r} not found; is VirtualBox installed?"
        raise VBoxManageCommandError(msg) from exc
    except ProcessExecutionError as exc:
        msg = f"Command {command!r} failed: {exc.stderr.strip()}"
        raise VBoxManageCommandError(msg) from exc
    if stderr.strip():
        logger.debug("stderr: %s", stderr.strip())
    return stdout


def _create_vm(config: ResolvedConfiguration) -> VBoxManageCommand:
    args = [
        "createvm",
        "--name",
        config.target_name,
        "--basefolder",
        str(config.base_folder),
    ]
    if config.ostype:
        args.extend(["--ostype", config.ostype])
    args.append("--register")
    return VBoxManageCommand("create and register machine", tuple(args))


def _modify_vm(config: ResolvedConfiguration) -> VBoxManageCommand:
    args = (
        "modifyvm",
        config.target_name,
        "--cpus",
        str(config.cpus),
        "--memory",
        str(config.memory),
        "--vram",
        str(config.vram),
        "--ioapic",
        "on",
        "--boot1",
        "dvd",
        "--boot2",
        "disk",
        "--boot3",
        "none",
        "--boot4",
        "none",
        "--nic1",
        "nat",
    )
    return VBoxManageCommand("configure resources, boot order and network", args)


def _storage_commands(config: ResolvedConfiguration) -> list[VBoxManageCommand]:
    disk = str(config.disk_path)
    name = config.target_name
    return [
        VBoxManageCommand(
            "create virtual disk",
            (
                "createmedium",
                "disk",
                "--filename",
                disk,
                "--size",
                str(config.storage),
                "--format",
                "VDI",
            ),
        ),
        VBoxManageCommand(
            "add disk controller",
            ("storagectl", name, "--name", DISK_CONTROLLER, "--add", "sata", "--controller", "IntelAhci"),
        ),
        VBoxManageCommand(
            "attach virtual disk",
            (
                "storageattach",
                name,
                "--storagectl",
                DISK_CONTROLLER,
                "--port",
                "0",
                "--device",
                "0",
                "--type",
                "hdd",
                "--medium",
                disk,
            ),
        ),
        VBoxManageCommand(
            "add optical drive controller",
            ("storagectl", name, "--name", DVD_CONTROLLER, "--add", "ide"),
        ),
        VBoxManageCommand(
            "attach installation medium",
            (
                "storageattach",
                name,
                "--storagectl",
                DVD_CONTROLLER,
                "--port",
                "0",
                "--device",
                "0",
                "--type",
                "dvddrive",
                "--medium",
                str(config.medium),
            ),
        ),
    ]


def _encrypt_disk(config: ResolvedConfiguration) -> VBoxManageCommand:
    args = (
        "encryptmedium",
        str(config.disk_path),
        "--cipher",
        DISK_CIPHER,
        "--newpasswordid",
        config.target_name,
        "--newpassword",
        "-",
    )
    return VBoxManageCommand(
        "encrypt virtual disk",
        args,
        stdin=f"{config.password}\n",
        secrets=(config.password,),
    )


def _enable_vrde(config: ResolvedConfiguration) -> VBoxManageCommand:
    return VBoxManageCommand(
        "enable remote display",
        ("modifyvm", config.target_name, "--vrde", "on", "--vrdeport", VRDE_PORT),
    )


def _unattended_install(
    config: ResolvedConfiguration,
    password_path: Path,
) -> VBoxManageCommand:
    args = [
        "unattended",
        "install",
        config.target_name,
        "--iso",
        str(config.medium),
        "--user",
        config.username,
        "--password-file",
        str(password_path),
        "--full-user-name",
        config.username,
        "--hostname",
        config.hostname,
    ]
    if config.post_install_command:
        args.extend(["--post-install-command", config.post_install_command])
    if config.use_auxiliary:
        # VBoxManage treats the base path as a prefix, hence the separator.
        args.extend(["--auxiliary-base-path", f"{config.auxiliary_path}{os.sep}"])
    if config.fix_debian:
        args.extend(["--extra-install-kernel-parameters", DEBIAN_KERNEL_PARAMETERS])
    return VBoxManageCommand("prepare unattended installation", tuple(args))


def _start_vm(config: ResolvedConfiguration) -> VBoxManageCommand:
    session = "headless" if config.use_vrde else "gui"
    return VBoxManageCommand(
        "start machine",
        ("startvm", config.target_name, "--type", session),
    )


@contextmanager
def password_file(password: str, base_dir: Path | None = None) -> cabc.Iterator[Path]:
    """Write *password* to an owner-only file that exists for the block's duration."""

    with tempfile.NamedTemporaryFile(
        mode="w",
        delete=False,
        prefix="vbox-install-",
        dir=base_dir,
        encoding="utf-8",
    ) as handle:
        path = Path(handle.name)
        path.chmod(0o600)
        handle.write(password)
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)


def build_command_plan(
    config: ResolvedConfiguration,
    *,
    password_path: Path,
) -> list[VBoxManageCommand]:
    """Return the ordered ``VBoxManage`` invocations for *config*.

    Parameters
    ----------
    config : ResolvedConfiguration
        Resolved install configuration.
    password_path : Path
        File holding the guest password, read by ``unattended install`` so the
        password stays off the command line.

    Returns
    -------
    list[VBoxManageCommand]
        Machine creation, resource configuration, storage, optional disk
        encryption and remote display, the unattended install and the boot.
    """

    plan = [_create_vm(config), _modify_vm(config), *_storage_commands(config)]
    if config.use_encryption:
        plan.append(_encrypt_disk(config))
    if config.use_vrde:
        plan.append(_enable_vrde(config))
    plan.append(_unattended_install(config, password_path))
    plan.append(_start_vm(config))
    return plan


def run_plan(
    plan: cabc.Sequence[VBoxManageCommand],
    *,
    dry_run: bool = False,
    executable: str | None = None,
) -> list[str]:
    """Execute *plan* in order, stopping at the first failure.

    Returns the standard output of each command; in dry-run mode nothing runs
    and the list is empty.

    Raises
    ------
    VBoxManageCommandError
        Naming the step that failed.
    """

    command = executable or vboxmanage_executable()
    outputs: list[str] = []
    total = len(plan)
    for index, step in enumerate(plan, start=1):
        logger.info("[%d/%d] %s: %s %s", index, total, step.description, command, step.redacted())
        if dry_run:
            continue
        try:
            stdout = run_command(command, *step.args, context=CommandContext(stdin=step.stdin))
        except VBoxManageCommandError as exc:
            msg = f"step {index}/{total} ({step.description}) failed: {exc}"
            for secret in filter(None, step.secrets):
                msg = msg.replace(secret, REDACTED)
            raise VBoxManageCommandError(msg) from exc
        if stdout.strip():
            logger.debug("%s", stdout.strip())
        outputs.append(stdout)
    return outputs
