"""OS-type inference tables for VirtualBox guests.

The first table maps installation-medium filename prefixes to VirtualBox
OS-type tags. It is walked in order and the first matching prefix wins, so
more specific prefixes must precede the generic ones they share a stem with
(``linuxmint`` before ``linux``, ``freedos`` before ``dos``).

The second table maps OS-type tags to the command run inside the guest once the
unattended install has finished.
"""

from __future__ import annotations

from pathlib import PurePath

OS_TYPE_PREFIXES: tuple[tuple[str, str], ...] = (
    ("debian", "Debian_64"),
    ("ubuntu", "Ubuntu_64"),
    ("kubuntu", "Ubuntu_64"),
    ("xubuntu", "Ubuntu_64"),
    ("linuxmint", "Ubuntu_64"),
    ("fedora", "Fedora_64"),
    ("rhel", "RedHat_64"),
    ("centos", "RedHat_64"),
    ("rocky", "RedHat_64"),
    ("almalinux", "RedHat_64"),
    ("oraclelinux", "Oracle_64"),
    ("opensuse", "OpenSUSE_64"),
    ("archlinux", "ArchLinux_64"),
    ("gentoo", "Gentoo_64"),
    ("freebsd", "FreeBSD_64"),
    ("netbsd", "NetBSD_64"),
    ("openbsd", "OpenBSD_64"),
    ("sol-11", "Solaris11_64"),
    ("win11", "Windows11_64"),
    ("win10", "Windows10_64"),
    ("freedos", "DOS"),
    ("dos", "DOS"),
    ("os2", "OS2Warp45"),
    ("linux", "Linux_64"),
)

_APT_UPGRADE = "apt-get update && apt-get -y upgrade"
_DNF_UPGRADE = "dnf -y makecache && dnf -y upgrade"

POST_INSTALL_COMMANDS: dict[str, str] = {
    "Debian": _APT_UPGRADE,
    "Debian_64": _APT_UPGRADE,
    "Ubuntu": _APT_UPGRADE,
    "Ubuntu_64": _APT_UPGRADE,
    "Fedora": _DNF_UPGRADE,
    "Fedora_64": _DNF_UPGRADE,
    "RedHat": _DNF_UPGRADE,
    "RedHat_64": _DNF_UPGRADE,
    "Oracle": _DNF_UPGRADE,
    "Oracle_64": _DNF_UPGRADE,
    "NetBSD": "pkgin -y update && pkgin -y full-upgrade",
    "NetBSD_64": "pkgin -y update && pkgin -y full-upgrade",
    "OpenBSD": "syspatch && pkg_add -u",
    "OpenBSD_64": "syspatch && pkg_add -u",
    # Known guests without a post-install upgrade.
    "OpenSUSE_64": "",
    "ArchLinux_64": "",
    "Gentoo_64": "",
    "FreeBSD_64": "",
    "Solaris11_64": "",
    "Windows11_64": "",
    "Windows10_64": "",
    "DOS": "",
    "OS2Warp45": "",
    "Linux_64": "",
}


def infer_os_type(source_filename: str) -> str | None:
    """Return the OS-type tag implied by an installation medium's filename.

    Parameters
    ----------
    source_filename : str
        Filename or path of the installation medium. Only the base name is
        considered and matching ignores case.

    Returns
    -------
    str | None
        The tag of the first matching prefix, or ``None`` when nothing matches.

    Examples
    --------
    >>> infer_os_type("/iso/DEBIAN-12.5.0-amd64-netinst.iso")
    'Debian_64'
    >>> infer_os_type("unknownos-1.0.iso") is None
    True
    """

    name = PurePath(source_filename).name.casefold()
    for prefix, tag in OS_TYPE_PREFIXES:
        if name.startswith(prefix):
            return tag
    return None


def infer_post_install_command(os_type: str | None) -> str | None:
    """Return the post-install command for *os_type*.

    ``""`` marks a known guest that needs no command; ``None`` means the tag is
    absent or unknown.

    Examples
    --------
    >>> infer_post_install_command("Ubuntu_64")
    'apt-get update && apt-get -y upgrade'
    >>> infer_post_install_command("DOS")
    ''
    >>> infer_post_install_command("Plan9") is None
    True
    """

    if os_type is None:
        return None
    return POST_INSTALL_COMMANDS.get(os_type)
