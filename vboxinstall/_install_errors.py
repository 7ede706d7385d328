"""Exception hierarchy for the VirtualBox install helpers.

Exceptions
----------
VBoxInstallError
InvalidArgument
MissingRequiredPath
VBoxManageCommandError
"""

from __future__ import annotations


class VBoxInstallError(Exception):
    """Base error for VirtualBox install helpers.

    Parameters
    ----------
    message
        Human-readable error message describing the failure.

    Examples
    --------
    >>> raise VBoxInstallError("unexpected install failure")
    """


class InvalidArgument(VBoxInstallError, ValueError):
    """Raised when command-line arguments are malformed or missing.

    Examples
    --------
    >>> raise InvalidArgument("--cpus must be a positive integer, got '0'")
    """


class MissingRequiredPath(VBoxInstallError, FileNotFoundError):
    """Raised when the source medium or the target directory does not exist."""


class VBoxManageCommandError(VBoxInstallError):
    """Raised when a ``VBoxManage`` invocation fails."""
