#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.12"
# dependencies = ["cyclopts>=2.9", "plumbum"]
# ///
"""Create a VirtualBox machine and start an unattended OS install.

This script:
- resolves the install configuration from CLI options, ``VBOX_INSTALL_*``
  environment variables and built-in defaults;
- infers the guest OS type and post-install command from the medium's name;
- checks that the installation medium and the target directory exist; and
- runs the ``VBoxManage`` commands that create, configure and boot the machine.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from cyclopts import App

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from vboxinstall._install_config import (
    ResolvedConfiguration,
    describe,
    resolve_option_set,
    validate_paths,
)
from vboxinstall._install_errors import VBoxInstallError
from vboxinstall._option_parsing import OptionSet, OptionValue
from vboxinstall._vboxmanage import build_command_plan, password_file, run_plan

app = App(help="Create a VirtualBox machine and start an unattended OS install.")
logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(*, verbose: bool) -> None:
    """Configure root logging once; ``verbose`` switches to debug output."""

    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")


def build_option_set(
    target: Path,
    medium: Path,
    named: dict[str, str | int | bool | None],
) -> OptionSet:
    """Build an option set from parsed CLI values, dropping unset options."""

    options: dict[str, OptionValue] = {}
    for name, value in named.items():
        if value is None:
            continue
        options[name] = value if isinstance(value, bool) else str(value)
    return OptionSet(options=options, positional=(str(target), str(medium)))


def install(config: ResolvedConfiguration) -> None:
    """Validate paths and drive ``VBoxManage`` for a resolved configuration."""

    validate_paths(config)
    logger.debug("Resolved configuration: %s", describe(config))
    if config.ostype is None:
        logger.warning(
            "Could not infer an OS type from %s; pass --ostype to set one",
            config.medium.name,
        )
    with password_file(config.password) as password_path:
        plan = build_command_plan(config, password_path=password_path)
        run_plan(plan, dry_run=config.dry_run)
    if config.dry_run:
        logger.info("Dry run: %d commands not executed", len(plan))
    else:
        logger.info("Machine %s started; unattended install in progress", config.target_name)


@app.default
def main(
    target: Path,
    medium: Path,
    *,
    ostype: str | None = None,
    cpus: int | None = None,
    memory: int | None = None,
    vram: int | None = None,
    storage: int | None = None,
    hostname: str | None = None,
    username: str | None = None,
    password: str | None = None,
    post_install_command: str | None = None,
    verbose: bool | None = None,
    use_auxiliary: bool | None = None,
    use_encryption: bool | None = None,
    use_vrde: bool | None = None,
    fix_debian: bool | None = None,
    dry_run: bool | None = None,
) -> int:
    """Create a VirtualBox machine and start an unattended OS install.

    Unset options fall back to ``VBOX_INSTALL_<NAME>`` environment variables,
    then to the built-in defaults.

    Parameters
    ----------
    target : Path
        Existing directory for the machine; its name becomes the VM name.
    medium : Path
        Installation ISO.
    ostype : str | None, optional
        VirtualBox OS type; inferred from the ISO name when omitted.
    cpus : int | None, optional
        Virtual CPU count (default 1).
    memory : int | None, optional
        Guest memory in MB (default 1024).
    vram : int | None, optional
        Video memory in MB (default 128).
    storage : int | None, optional
        Virtual disk size in MB (default 10240).
    hostname : str | None, optional
        Guest FQDN (default ``my.example.com``).
    username : str | None, optional
        Guest user account (default ``user``).
    password : str | None, optional
        Guest user password, also the disk encryption password
        (default ``secret``).
    post_install_command : str | None, optional
        Command run in the guest after install; inferred from the OS type.
    verbose : bool | None, optional
        Log debug output.
    use_auxiliary : bool | None, optional
        Keep the unattended auxiliary files under ``<target>/unattended/``.
    use_encryption : bool | None, optional
        Encrypt the virtual disk with the password.
    use_vrde : bool | None, optional
        Enable the remote display server and start headless.
    fix_debian : bool | None, optional
        Pass Debian installer boot parameters that answer the GRUB prompt.
    dry_run : bool | None, optional
        Log the ``VBoxManage`` commands without running them.
    """

    option_set = build_option_set(
        target,
        medium,
        {
            "ostype": ostype,
            "cpus": cpus,
            "memory": memory,
            "vram": vram,
            "storage": storage,
            "hostname": hostname,
            "username": username,
            "password": password,
            "post_install_command": post_install_command,
            "verbose": verbose,
            "use_auxiliary": use_auxiliary,
            "use_encryption": use_encryption,
            "use_vrde": use_vrde,
            "fix_debian": fix_debian,
            "dry_run": dry_run,
        },
    )
    # Resolution logs, so handlers come first; VBOX_INSTALL_VERBOSE may still
    # change the level afterwards.
    configure_logging(verbose=bool(verbose))
    try:
        config = resolve_option_set(option_set, os.environ)
        configure_logging(verbose=config.verbose)
        install(config)
    except VBoxInstallError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
