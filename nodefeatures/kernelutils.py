"""Reading the kernel version and the kernel build configuration."""

from __future__ import annotations

import gzip
import logging
import os
import re
from typing import Dict, Optional, Union

from .base import DEFAULT_HOST, HostPaths

log = logging.getLogger(__name__)

KERNEL_VERSION_PATH = "/proc/sys/kernel/osrelease"
PROC_CONFIG = "/proc/config.gz"
LABEL_VALUE_MAX_LENGTH = 63

_KCONFIG_LINE = re.compile(r"^CONFIG_(\w+)=(.+)", re.ASCII)


def get_kernel_version(path: Optional[str] = None) -> str:
    """Return the running kernel release string."""
    with open(path or KERNEL_VERSION_PATH, encoding="utf-8", errors="replace") as f:
        return f.read().strip()


def parse_kconfig(data: Union[bytes, str]) -> Dict[str, str]:
    """Parse kernel config text into a mapping of option name to value.

    Options set to ``y`` or ``m`` map to ``"true"``; other values are
    unquoted and dropped if longer than a label value may be.
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    kconfig: Dict[str, str] = {}
    for line in data.split("\n"):
        m = _KCONFIG_LINE.match(line)
        if not m:
            continue
        flag, value = m.group(1), m.group(2)
        if value in ("y", "m"):
            kconfig[flag] = "true"
            continue
        value = value.strip('"')
        if len(value) > LABEL_VALUE_MAX_LENGTH:
            log.warning(
                "ignoring kconfig option '%s': value exceeds max length of %d characters",
                flag,
                LABEL_VALUE_MAX_LENGTH,
            )
            continue
        kconfig[flag] = value
    return kconfig


def _read_config_file(path: str) -> bytes:
    if os.path.splitext(path)[1] == ".gz":
        with gzip.open(path, "rb") as f:
            return f.read()
    with open(path, "rb") as f:
        return f.read()


def read_kconfig(
    config_path: str = "",
    host: Optional[HostPaths] = None,
    kernel_version: Optional[str] = None,
) -> Dict[str, str]:
    """Find, read and parse the kernel config.

    ``config_path`` is tried first, then the usual locations. Raises
    FileNotFoundError if none of them can be read.
    """
    host = host or DEFAULT_HOST
    if kernel_version is None:
        try:
            kernel_version = get_kernel_version()
        except OSError:
            kernel_version = None

    if kernel_version is None:
        search_paths = [PROC_CONFIG, host.usr.path("src/linux/.config")]
    else:
        ver = kernel_version
        search_paths = [
            PROC_CONFIG,
            host.usr.path(f"src/linux-{ver}/.config"),
            host.usr.path("src/linux/.config"),
            host.usr.path(f"lib/modules/{ver}/config"),
            host.usr.path(f"lib/ostree-boot/config-{ver}"),
            host.usr.path(f"lib/kernel/config-{ver}"),
            host.usr.path(f"src/linux-headers-{ver}/.config"),
            f"/lib/modules/{ver}/build/.config",
            host.boot.path(f"config-{ver}"),
        ]

    candidates = [config_path, *search_paths]
    for path in candidates:
        if not path:
            continue
        try:
            raw = _read_config_file(path)
        except (OSError, EOFError):
            continue
        return parse_kconfig(raw)
    raise FileNotFoundError(f"failed to read kernel config from {candidates}")