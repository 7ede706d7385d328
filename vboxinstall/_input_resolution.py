"""Shared helpers for resolving CLI, environment and default inputs."""

from __future__ import annotations

import os
from collections import abc as cabc
from dataclasses import dataclass

ENV_PREFIX = "VBOX_INSTALL_"


@dataclass(frozen=True, slots=True)
class InputResolution:
    """Configuration for resolving an input from multiple sources."""

    env_key: str
    default: str | int | bool | None = None


def env_key_for(name: str) -> str:
    """Return the environment variable consulted for option *name*.

    Examples
    --------
    >>> env_key_for("post_install_command")
    'VBOX_INSTALL_POST_INSTALL_COMMAND'
    """

    return f"{ENV_PREFIX}{name.replace('-', '_').upper()}"


def resolve_input(
    param_value: str | bool | None,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
) -> str | int | bool | None:
    """Resolve input from parameter, environment variable, or default."""

    if param_value is not None:
        return param_value

    env_value = (os.environ if env is None else env).get(resolution.env_key)
    if env_value is not None:
        return env_value

    return resolution.default


def parse_bool(value: str | None, *, default: bool = False) -> bool:
    """Parse a boolean string value.

    Examples
    --------
    >>> parse_bool("yes")
    True
    >>> parse_bool(None)
    False
    """
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")
