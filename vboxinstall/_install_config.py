"""Resolve command-line options into a VirtualBox install configuration."""

from __future__ import annotations

import logging
from collections import abc as cabc
from dataclasses import dataclass, fields
from pathlib import Path

from vboxinstall._input_resolution import (
    InputResolution,
    env_key_for,
    parse_bool,
    resolve_input,
)
from vboxinstall._install_errors import InvalidArgument, MissingRequiredPath
from vboxinstall._option_parsing import (
    BOOLEAN_OPTIONS,
    INTEGER_OPTIONS,
    STRING_OPTIONS,
    OptionSet,
    OptionValue,
    parse_arguments,
)
from vboxinstall._os_types import infer_os_type, infer_post_install_command

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InstallDefaults:
    """Values used when neither an option nor the environment supplies one."""

    cpus: int = 1
    memory: int = 1024
    vram: int = 128
    storage: int = 10240
    hostname: str = "my.example.com"
    username: str = "user"
    password: str = "secret"
    ostype: str | None = None
    post_install_command: str | None = None
    verbose: bool = False
    use_auxiliary: bool = False
    use_encryption: bool = False
    use_vrde: bool = False
    fix_debian: bool = False
    dry_run: bool = False


DEFAULTS = InstallDefaults()


@dataclass(frozen=True, slots=True)
class ResolvedConfiguration:
    """Fully resolved inputs for one VirtualBox install run."""

    # Paths
    target: Path
    medium: Path
    target_name: str

    # Guest resources (memory sizes in megabytes)
    cpus: int
    memory: int
    vram: int
    storage: int

    # Unattended install
    hostname: str
    username: str
    password: str
    ostype: str | None
    post_install_command: str | None

    # Toggles
    verbose: bool = False
    use_auxiliary: bool = False
    use_encryption: bool = False
    use_vrde: bool = False
    fix_debian: bool = False
    dry_run: bool = False

    @property
    def base_folder(self) -> Path:
        """Directory VirtualBox creates the machine folder in."""

        return self.target.parent

    @property
    def disk_path(self) -> Path:
        """Location of the virtual hard disk inside the target directory."""

        return self.target / f"{self.target_name}.vdi"

    @property
    def auxiliary_path(self) -> Path:
        """Directory for the unattended-install auxiliary files."""

        return self.target / "unattended"


def _option_or_env(
    name: str,
    options: cabc.Mapping[str, OptionValue],
    env: cabc.Mapping[str, str],
) -> str | int | bool | None:
    resolution = InputResolution(
        env_key=env_key_for(name),
        default=getattr(DEFAULTS, name),
    )
    return resolve_input(options.get(name), resolution, env)


def _to_positive_int(name: str, value: str | int | bool | None) -> int:
    """Coerce *value* to a positive integer or raise InvalidArgument."""

    option = f"--{name.replace('_', '-')}"
    if isinstance(value, bool) or value is None:
        msg = f"{option} requires a value"
        raise InvalidArgument(msg)
    try:
        number = int(value)
    except ValueError as exc:
        msg = f"{option} must be a positive integer, got {value!r}"
        raise InvalidArgument(msg) from exc
    if number <= 0:
        msg = f"{option} must be a positive integer, got {value!r}"
        raise InvalidArgument(msg)
    return number


def _to_bool(value: str | int | bool | None) -> bool:
    if isinstance(value, bool):
        return value
    return parse_bool(None if value is None else str(value))


def _to_str(name: str, value: str | int | bool | None) -> str | None:
    if value is True:
        msg = f"--{name.replace('_', '-')} requires a value"
        raise InvalidArgument(msg)
    if value is None:
        return None
    return str(value)


def _reject_unrecognised(option_set: OptionSet) -> None:
    unknown = option_set.unrecognised()
    if unknown:
        names = ", ".join(f"--{name.replace('_', '-')}" for name in unknown)
        msg = f"unrecognised option(s): {names}"
        raise InvalidArgument(msg)


def resolve_option_set(
    option_set: OptionSet,
    env: cabc.Mapping[str, str] | None = None,
) -> ResolvedConfiguration:
    """Resolve an already parsed option set.

    Parameters
    ----------
    option_set : OptionSet
        Options and positionals, as produced by :func:`parse_arguments`.
    env : Mapping[str, str] | None, optional
        Environment consulted for ``VBOX_INSTALL_*`` fallbacks. When omitted
        no environment is consulted; the CLI passes ``os.environ``.

    Returns
    -------
    ResolvedConfiguration
        Configuration with every field set from an option, the environment or
        the documented default, and the OS type and post-install command
        inferred when they were not given.

    Raises
    ------
    InvalidArgument
        On unknown options, missing positionals or malformed values.
    """

    env = {} if env is None else env
    _reject_unrecognised(option_set)
    if len(option_set.positional) < 2:
        msg = "a target path and a source medium path are required"
        raise InvalidArgument(msg)
    if len(option_set.positional) > 2:
        logger.warning(
            "Ignoring extra positional arguments: %s",
            " ".join(option_set.positional[2:]),
        )

    options = option_set.options
    values: dict[str, object] = {}
    for name in INTEGER_OPTIONS:
        values[name] = _to_positive_int(name, _option_or_env(name, options, env))
    for name in STRING_OPTIONS:
        values[name] = _to_str(name, _option_or_env(name, options, env))
    for name in BOOLEAN_OPTIONS:
        values[name] = _to_bool(_option_or_env(name, options, env))

    target = Path(option_set.target)
    medium = Path(option_set.medium)

    if values["ostype"] is None:
        values["ostype"] = infer_os_type(medium.name)
        logger.debug("Inferred OS type %s from %s", values["ostype"], medium.name)
    if values["post_install_command"] is None:
        values["post_install_command"] = infer_post_install_command(values["ostype"])

    target_name = target.resolve().name if target.name in ("", ".", "..") else target.name
    return ResolvedConfiguration(
        target=target,
        medium=medium,
        target_name=target_name,
        **values,
    )


def resolve(
    args: cabc.Sequence[str],
    env: cabc.Mapping[str, str] | None = None,
) -> ResolvedConfiguration:
    """Parse *args* and resolve them into a :class:`ResolvedConfiguration`.

    Only *env*, when given, supplies ``VBOX_INSTALL_*`` fallbacks; the process
    environment is never read here.

    Examples
    --------
    >>> cfg = resolve(["--cpus=2", "/vm/ubuntu-22.04", "/iso/ubuntu-22.04.iso"])
    >>> cfg.cpus, cfg.ostype, cfg.target_name
    (2, 'Ubuntu_64', 'ubuntu-22.04')
    """

    return resolve_option_set(parse_arguments(args), env)


def validate_paths(config: ResolvedConfiguration) -> None:
    """Check that the source medium and target directory exist.

    Raises
    ------
    MissingRequiredPath
        Naming the first path that is missing.
    InvalidArgument
        When the target directory has no base name to use as the VM name,
        as with a filesystem root.
    """

    if not config.medium.is_file():
        msg = f"source medium not found: {config.medium}"
        raise MissingRequiredPath(msg)
    if not config.target.is_dir():
        msg = f"target directory not found: {config.target}"
        raise MissingRequiredPath(msg)
    if not config.target_name:
        msg = f"target directory has no name to use for the machine: {config.target}"
        raise InvalidArgument(msg)


def describe(config: ResolvedConfiguration) -> dict[str, object]:
    """Return the configuration as a mapping with the password masked."""

    summary = {item.name: getattr(config, item.name) for item in fields(config)}
    summary["password"] = "********"
    return summary
