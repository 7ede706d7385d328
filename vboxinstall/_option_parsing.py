"""Parse raw command-line tokens into an option set.

Tokens of the form ``--name`` or ``--name=value`` are named options; anything
else is kept as a positional argument in the order it was given.

This is the programmatic entry point, used through
:func:`vboxinstall._install_config.resolve`, and malformed input surfaces as
:class:`~vboxinstall._install_errors.InvalidArgument`. The ``vbox-install``
command parses with ``cyclopts`` instead and reaches the same resolution
through ``create_vm.build_option_set``. Its usage errors, such as a missing
positional or an unknown option, are reported by ``cyclopts`` and exit with
status 2.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TypeAlias

from vboxinstall._install_errors import InvalidArgument

OPTION_PATTERN = re.compile(r"^--(?P<name>[A-Za-z0-9][A-Za-z0-9_-]*)(?:=(?P<value>.*))?$", re.DOTALL)

STRING_OPTIONS: tuple[str, ...] = (
    "ostype",
    "hostname",
    "username",
    "password",
    "post_install_command",
)
INTEGER_OPTIONS: tuple[str, ...] = ("cpus", "memory", "vram", "storage")
BOOLEAN_OPTIONS: tuple[str, ...] = (
    "verbose",
    "use_auxiliary",
    "use_encryption",
    "use_vrde",
    "fix_debian",
    "dry_run",
)
RECOGNISED_OPTIONS = frozenset(STRING_OPTIONS + INTEGER_OPTIONS + BOOLEAN_OPTIONS)

OptionValue: TypeAlias = str | bool


@dataclass(frozen=True, slots=True)
class OptionSet:
    """Named options and positional arguments collected from the command line."""

    options: Mapping[str, OptionValue] = field(default_factory=dict)
    positional: tuple[str, ...] = ()

    @property
    def target(self) -> str:
        """Return the first positional argument, the target path."""

        return self.positional[0]

    @property
    def medium(self) -> str:
        """Return the second positional argument, the source-medium path."""

        return self.positional[1]

    def unrecognised(self) -> list[str]:
        """Return option names outside the whitelist, in insertion order."""

        return [name for name in self.options if name not in RECOGNISED_OPTIONS]


def normalise_name(name: str) -> str:
    """Convert a hyphenated option name to its internal underscore form.

    Examples
    --------
    >>> normalise_name("post-install-command")
    'post_install_command'
    """

    return name.replace("-", "_")


def parse_arguments(args: Sequence[str]) -> OptionSet:
    """Split *args* into named options and positional arguments.

    Parameters
    ----------
    args : Sequence[str]
        Raw argument strings, without the program name.

    Returns
    -------
    OptionSet
        Options keyed by underscore name and the ordered positionals. A later
        occurrence of an option replaces an earlier one.

    Raises
    ------
    InvalidArgument
        If fewer than two positional arguments remain.

    Examples
    --------
    >>> opts = parse_arguments(["--cpus=2", "/vm/box", "--verbose", "box.iso"])
    >>> dict(opts.options), opts.positional
    ({'cpus': '2', 'verbose': True}, ('/vm/box', 'box.iso'))
    """

    options: dict[str, OptionValue] = {}
    positional: list[str] = []
    for arg in args:
        match = OPTION_PATTERN.match(arg)
        if match is None:
            positional.append(arg)
            continue
        name = normalise_name(match.group("name"))
        value = match.group("value")
        options[name] = True if value is None else value

    if len(positional) < 2:
        missing = "target path" if not positional else "source medium path"
        msg = f"missing required positional argument: {missing} (usage: <target-path> <source-medium-path>)"
        raise InvalidArgument(msg)

    return OptionSet(options=options, positional=tuple(positional))
